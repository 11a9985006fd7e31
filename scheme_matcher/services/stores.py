"""Interfaces to the profile, scheme and preference stores.

The engine never talks to a database directly.  Embedders supply objects
satisfying these protocols; the in-memory implementations below back the
test suite and small deployments that load the catalog from JSON.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

import structlog

from scheme_matcher.errors import ProfileNotFound
from scheme_matcher.models.matching import RankingPreferences
from scheme_matcher.models.scheme import SchemeDocument
from scheme_matcher.models.user_profile import Profile

logger = structlog.get_logger(__name__)


@runtime_checkable
class ProfileStore(Protocol):
    async def get_profile(self, profile_id: str) -> Profile:
        """Return the validated profile or raise :class:`ProfileNotFound`."""
        ...


@runtime_checkable
class SchemeStore(Protocol):
    async def get_active_schemes(self) -> list[SchemeDocument]:
        """Return the schemes considered active as of now."""
        ...


@runtime_checkable
class PreferenceStore(Protocol):
    async def get_preferences(self, profile_id: str) -> RankingPreferences | None: ...


# ---------------------------------------------------------------------------
# In-memory implementations
# ---------------------------------------------------------------------------


class InMemoryProfileStore:
    __slots__ = ("_profiles",)

    def __init__(self, profiles: Iterable[Profile] = ()) -> None:
        self._profiles: dict[str, Profile] = {p.profile_id: p for p in profiles}

    def put(self, profile: Profile) -> None:
        self._profiles[profile.profile_id] = profile

    async def get_profile(self, profile_id: str) -> Profile:
        try:
            return self._profiles[profile_id]
        except KeyError:
            raise ProfileNotFound(profile_id) from None


class InMemorySchemeStore:
    """Scheme store over a mutable list.

    ``get_active_schemes`` returns only ``is_active`` schemes, but does not
    filter on deadline; the engine re-checks both at evaluation time.
    """

    __slots__ = ("_schemes",)

    def __init__(self, schemes: Iterable[SchemeDocument] = ()) -> None:
        self._schemes: list[SchemeDocument] = list(schemes)

    def replace(self, schemes: Iterable[SchemeDocument]) -> None:
        self._schemes = list(schemes)
        logger.info("stores.schemes_replaced", count=len(self._schemes))

    async def get_active_schemes(self) -> list[SchemeDocument]:
        return [s for s in self._schemes if s.is_active]


class InMemoryPreferenceStore:
    __slots__ = ("_preferences",)

    def __init__(self, preferences: dict[str, RankingPreferences] | None = None) -> None:
        self._preferences = dict(preferences or {})

    def put(self, profile_id: str, preferences: RankingPreferences) -> None:
        self._preferences[profile_id] = preferences

    async def get_preferences(self, profile_id: str) -> RankingPreferences | None:
        return self._preferences.get(profile_id)
