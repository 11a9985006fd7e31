"""Citizen profile model used for scheme matching.

Profile collection and validation are owned upstream; the engine receives
an already-validated record.  Every matching attribute is nevertheless
optional so that a partially filled profile can still be matched: a
missing attribute never qualifies the user for a criterion that needs it.
"""

from __future__ import annotations

import hashlib
from typing import Any, Final, Literal
from uuid import uuid4

import orjson
from pydantic import BaseModel, Field

from scheme_matcher.models.enums import EducationLevel, SocialCategory

ProfileAttribute = Literal[
    "age",
    "annual_income",
    "education_level",
    "state",
    "district",
    "social_category",
    "occupation",
]

PROFILE_ATTRIBUTES: Final[tuple[str, ...]] = (
    "age",
    "annual_income",
    "education_level",
    "state",
    "district",
    "social_category",
    "occupation",
)


class Profile(BaseModel):
    """A single citizen's profile.

    Frozen: the engine treats a profile as immutable for the duration of a
    matching call, and callers that want to explore "what if" changes
    should use ``model_copy(update=...)``.
    """

    model_config = {"frozen": True}

    profile_id: str = Field(default_factory=lambda: uuid4().hex)

    age: int | None = Field(default=None, gt=0)
    annual_income: float | None = Field(default=None, ge=0)  # In INR
    education_level: EducationLevel | None = None
    state: str | None = None
    district: str | None = None
    social_category: SocialCategory | None = None
    occupation: str | None = None  # "farmer", "laborer", "student", ...

    def attribute(self, name: str) -> Any:
        """Return the raw value of a matching attribute by name."""
        if name not in PROFILE_ATTRIBUTES:
            raise KeyError(f"unknown profile attribute: {name}")
        return getattr(self, name)

    def fingerprint(self) -> str:
        """Deterministic hash of the matching attributes.

        Excludes ``profile_id`` so two identical profiles share a
        fingerprint.  Callers can key an external result cache on
        ``(fingerprint, scheme_id)``.
        """
        payload = orjson.dumps(
            {name: getattr(self, name) for name in PROFILE_ATTRIBUTES},
            option=orjson.OPT_SORT_KEYS,
        )
        return hashlib.sha256(payload).hexdigest()[:16]
