"""Bundled scheme catalog and JSON catalog loading.

``sample_schemes.json`` holds a handful of central and state schemes in the
``SchemeDocument`` shape.  Embedders with their own catalog export can point
:func:`load_schemes` at any file of the same shape.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import orjson
import structlog
from pydantic import ValidationError

from scheme_matcher.models.scheme import CatalogSnapshot, SchemeDocument

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_DATA_DIR: Path = Path(__file__).resolve().parent / "schemes"
DEFAULT_CATALOG_PATH: Path = _DATA_DIR / "sample_schemes.json"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_schemes(path: Path | None = None) -> list[SchemeDocument]:
    """Parse a JSON array of schemes into validated documents.

    Entries that fail model validation are skipped, as are repeats of a
    ``scheme_id`` already seen (first occurrence wins).  Entries whose
    criteria are structurally suspect are kept but logged; the matching
    engine isolates them per call.

    Raises
    ------
    FileNotFoundError
        If *path* (default: the bundled catalog) does not exist.
    orjson.JSONDecodeError
        If the file is not valid JSON.
    """
    source = path or DEFAULT_CATALOG_PATH
    if not source.exists():
        raise FileNotFoundError(f"Scheme data file not found: {source}")

    entries: list[dict] = orjson.loads(source.read_bytes())

    schemes: list[SchemeDocument] = []
    seen: set[str] = set()
    for entry in entries:
        try:
            scheme = SchemeDocument.model_validate(entry)
        except ValidationError as exc:
            logger.warning(
                "seed.parse_error",
                scheme_id=entry.get("scheme_id", "unknown") if isinstance(entry, dict) else "unknown",
                errors=exc.error_count(),
            )
            continue

        if scheme.scheme_id in seen:
            logger.warning("seed.duplicate_scheme", scheme_id=scheme.scheme_id)
            continue
        seen.add(scheme.scheme_id)

        problems = scheme.eligibility.problems()
        if problems:
            logger.warning("seed.invalid_criteria", scheme_id=scheme.scheme_id, problems=problems)
        schemes.append(scheme)

    logger.info("seed.loaded_schemes", count=len(schemes), source=str(source))
    return schemes


def load_catalog(path: Path | None = None, *, taken_at: datetime | None = None) -> CatalogSnapshot:
    """Load schemes from *path* straight into an immutable snapshot."""
    return CatalogSnapshot.capture(load_schemes(path), taken_at=taken_at)
