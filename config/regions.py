"""Closed administrative-division set: the 28 States and 8 Union Territories of India.

Scheme criteria may only name regions from this registry.  Each
``RegionConfig`` carries the canonical name, the two-letter vehicle
registration / ISO 3166-2 code, and whether the region is a Union
Territory, so that scheme data can be validated before matching.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

__all__ = [
    "RegionConfig",
    "REGIONS",
    "REGION_ALIAS_MAP",
    "get_region",
    "is_known_region",
    "normalize_region_name",
]


@dataclass(frozen=True, slots=True)
class RegionConfig:
    """Immutable descriptor for a single State or Union Territory."""

    code: str
    """ISO 3166-2:IN subdivision code without the ``IN-`` prefix."""

    name: str
    """Canonical English name."""

    is_union_territory: bool = False


# ---------------------------------------------------------------------------
# Region registry
# ---------------------------------------------------------------------------

_REGION_LIST: Final[tuple[RegionConfig, ...]] = (
    # -- States -------------------------------------------------------------
    RegionConfig("AP", "Andhra Pradesh"),
    RegionConfig("AR", "Arunachal Pradesh"),
    RegionConfig("AS", "Assam"),
    RegionConfig("BR", "Bihar"),
    RegionConfig("CT", "Chhattisgarh"),
    RegionConfig("GA", "Goa"),
    RegionConfig("GJ", "Gujarat"),
    RegionConfig("HR", "Haryana"),
    RegionConfig("HP", "Himachal Pradesh"),
    RegionConfig("JH", "Jharkhand"),
    RegionConfig("KA", "Karnataka"),
    RegionConfig("KL", "Kerala"),
    RegionConfig("MP", "Madhya Pradesh"),
    RegionConfig("MH", "Maharashtra"),
    RegionConfig("MN", "Manipur"),
    RegionConfig("ML", "Meghalaya"),
    RegionConfig("MZ", "Mizoram"),
    RegionConfig("NL", "Nagaland"),
    RegionConfig("OR", "Odisha"),
    RegionConfig("PB", "Punjab"),
    RegionConfig("RJ", "Rajasthan"),
    RegionConfig("SK", "Sikkim"),
    RegionConfig("TN", "Tamil Nadu"),
    RegionConfig("TG", "Telangana"),
    RegionConfig("TR", "Tripura"),
    RegionConfig("UP", "Uttar Pradesh"),
    RegionConfig("UT", "Uttarakhand"),
    RegionConfig("WB", "West Bengal"),
    # -- Union Territories --------------------------------------------------
    RegionConfig("AN", "Andaman and Nicobar Islands", is_union_territory=True),
    RegionConfig("CH", "Chandigarh", is_union_territory=True),
    RegionConfig("DH", "Dadra and Nagar Haveli and Daman and Diu", is_union_territory=True),
    RegionConfig("DL", "Delhi", is_union_territory=True),
    RegionConfig("JK", "Jammu and Kashmir", is_union_territory=True),
    RegionConfig("LA", "Ladakh", is_union_territory=True),
    RegionConfig("LD", "Lakshadweep", is_union_territory=True),
    RegionConfig("PY", "Puducherry", is_union_territory=True),
)

REGIONS: Final[dict[str, RegionConfig]] = {region.name.casefold(): region for region in _REGION_LIST}

# ---------------------------------------------------------------------------
# Alias map: codes and common alternate spellings -> canonical key
# ---------------------------------------------------------------------------

REGION_ALIAS_MAP: Final[dict[str, str]] = {
    **{region.code.casefold(): region.name.casefold() for region in _REGION_LIST},
    "orissa": "odisha",
    "pondicherry": "puducherry",
    "uttaranchal": "uttarakhand",
    "nct of delhi": "delhi",
    "new delhi": "delhi",
    "andaman & nicobar islands": "andaman and nicobar islands",
    "jammu & kashmir": "jammu and kashmir",
    "dadra & nagar haveli and daman & diu": "dadra and nagar haveli and daman and diu",
}


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------


def get_region(name: str) -> RegionConfig | None:
    """Return the ``RegionConfig`` for *name*, checking codes and aliases.

    Matching is case-insensitive.  Returns ``None`` if the region is unknown.
    """
    key = name.strip().casefold()
    return REGIONS.get(REGION_ALIAS_MAP.get(key, key))


def is_known_region(name: str) -> bool:
    return get_region(name) is not None


def normalize_region_name(name: str) -> str:
    """Return the canonical casefolded key for *name*.

    Unknown names are returned stripped and casefolded so that comparisons
    stay consistent even for districts, which are not in the registry.
    """
    region = get_region(name)
    if region is not None:
        return region.name.casefold()
    return name.strip().casefold()
