"""Shared fixtures for the matching-engine test suite."""

from __future__ import annotations

from datetime import datetime

import pytest
from factories import NOW

from scheme_matcher.models.enums import EducationLevel, SocialCategory
from scheme_matcher.models.user_profile import Profile


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def spans() -> dict[str, float]:
    return {"age": 100.0, "annual_income": 1_000_000.0}


@pytest.fixture
def farmer() -> Profile:
    """A 45-year-old OBC farmer from Uttar Pradesh earning Rs 1.2 lakh."""
    return Profile(
        profile_id="farmer-1",
        age=45,
        annual_income=120_000.0,
        education_level=EducationLevel.SECONDARY,
        state="Uttar Pradesh",
        district="Lucknow",
        social_category=SocialCategory.OBC,
        occupation="farmer",
    )


@pytest.fixture
def teenager() -> Profile:
    """A 17-year-old SC student in Odisha."""
    return Profile(
        profile_id="teen-1",
        age=17,
        annual_income=90_000.0,
        education_level=EducationLevel.MIDDLE,
        state="Odisha",
        district="Cuttack",
        social_category=SocialCategory.SC,
        occupation="student",
    )
