from __future__ import annotations

from enum import StrEnum


class EducationLevel(StrEnum):
    """Highest completed education, in ascending order.

    Member order is the ordinal order used by education criteria; do not
    reorder members.
    """

    __slots__ = ()

    BELOW_PRIMARY = "below_primary"
    PRIMARY = "primary"
    MIDDLE = "middle"
    SECONDARY = "secondary"
    HIGHER_SECONDARY = "higher_secondary"
    DIPLOMA = "diploma"
    GRADUATE = "graduate"
    POST_GRADUATE = "post_graduate"
    DOCTORATE = "doctorate"

    @property
    def rank(self) -> int:
        return _EDUCATION_RANKS[self]

    @classmethod
    def max_rank(cls) -> int:
        return len(_EDUCATION_RANKS) - 1


_EDUCATION_RANKS: dict[EducationLevel, int] = {level: idx for idx, level in enumerate(EducationLevel)}


class SocialCategory(StrEnum):
    __slots__ = ()

    GENERAL = "general"
    OBC = "obc"
    SC = "sc"
    ST = "st"
    EWS = "ews"


class SchemeCategory(StrEnum):
    __slots__ = ()

    AGRICULTURE = "agriculture"
    HEALTH = "health"
    EDUCATION = "education"
    HOUSING = "housing"
    EMPLOYMENT = "employment"
    SOCIAL_SECURITY = "social_security"
    FINANCIAL_INCLUSION = "financial_inclusion"
    WOMEN_CHILD = "women_child"
    TRIBAL = "tribal"
    DISABILITY = "disability"
    SENIOR_CITIZEN = "senior_citizen"
    SKILL_DEVELOPMENT = "skill_development"
    OTHER = "other"


class CriterionKind(StrEnum):
    __slots__ = ()

    RANGE = "range"
    ORDINAL = "ordinal"
    SET = "set"


class OutcomeStatus(StrEnum):
    """Result of evaluating one criterion.

    ``UNKNOWN`` means the profile attribute was missing or malformed; it is
    always reported as a non-match.
    """

    __slots__ = ()

    MATCHED = "matched"
    MISMATCHED = "mismatched"
    UNKNOWN = "unknown"


class ExclusionReason(StrEnum):
    """Why a scheme was dropped before any criterion was evaluated."""

    __slots__ = ()

    INACTIVE = "inactive"
    EXPIRED = "expired"
    INVALID_DATA = "invalid_data"


class ChangeDirection(StrEnum):
    __slots__ = ()

    INCREASE = "increase"
    DECREASE = "decrease"
