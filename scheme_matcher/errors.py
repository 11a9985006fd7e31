"""Exception taxonomy for the matching engine.

Only input-acquisition failures (:class:`InfrastructureUnavailable`,
:class:`ProfileNotFound`) escape ``find_matches``.  Per-scheme problems are
isolated by the orchestrator, and a missing profile attribute is reported
as an ``unknown`` criterion outcome rather than raised.
"""

from __future__ import annotations


class SchemeMatcherError(Exception):
    """Base class for all engine errors."""


class SchemeDataInvalid(SchemeMatcherError):
    """A scheme's criteria are structurally malformed (e.g. min > max)."""

    def __init__(self, scheme_id: str, problems: list[str]) -> None:
        self.scheme_id = scheme_id
        self.problems = problems
        super().__init__(f"scheme {scheme_id!r} has invalid criteria: {'; '.join(problems)}")


class InfrastructureUnavailable(SchemeMatcherError):
    """A profile, scheme or preference store could not be reached."""

    def __init__(self, store: str, detail: str = "") -> None:
        self.store = store
        message = f"{store} unavailable"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ProfileNotFound(SchemeMatcherError, LookupError):
    def __init__(self, profile_id: str) -> None:
        self.profile_id = profile_id
        super().__init__(f"profile {profile_id!r} not found")


class SchemeNotFound(SchemeMatcherError, LookupError):
    def __init__(self, scheme_id: str) -> None:
        self.scheme_id = scheme_id
        super().__init__(f"scheme {scheme_id!r} not in catalog snapshot")
