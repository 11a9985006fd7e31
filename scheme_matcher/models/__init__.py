from scheme_matcher.models.enums import (
    ChangeDirection,
    CriterionKind,
    EducationLevel,
    ExclusionReason,
    OutcomeStatus,
    SchemeCategory,
    SocialCategory,
)
from scheme_matcher.models.matching import (
    CriterionOutcome,
    ExplanationEntry,
    MatchResponse,
    MatchResult,
    OrdinalOutcome,
    Qualification,
    RangeOutcome,
    RankingFactors,
    RankingPreferences,
    RankingWeights,
    SetOutcome,
    Suggestion,
)
from scheme_matcher.models.scheme import (
    CatalogSnapshot,
    Criterion,
    EligibilityCriteria,
    OrdinalCriterion,
    RangeCriterion,
    SchemeDocument,
    SetCriterion,
)
from scheme_matcher.models.user_profile import Profile

__all__ = [
    "CatalogSnapshot",
    "ChangeDirection",
    "Criterion",
    "CriterionKind",
    "CriterionOutcome",
    "EducationLevel",
    "EligibilityCriteria",
    "ExclusionReason",
    "ExplanationEntry",
    "MatchResponse",
    "MatchResult",
    "OrdinalCriterion",
    "OrdinalOutcome",
    "OutcomeStatus",
    "Profile",
    "Qualification",
    "RangeCriterion",
    "RangeOutcome",
    "RankingFactors",
    "RankingPreferences",
    "RankingWeights",
    "SchemeCategory",
    "SchemeDocument",
    "SetCriterion",
    "SetOutcome",
    "SocialCategory",
    "Suggestion",
]
