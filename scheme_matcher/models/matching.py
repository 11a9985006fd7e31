"""Value objects produced by one matching call.

None of these are persisted by the engine; callers may cache or store
them externally.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field

from scheme_matcher.models.enums import (
    ChangeDirection,
    EducationLevel,
    ExclusionReason,
    OutcomeStatus,
    SchemeCategory,
)

# ---------------------------------------------------------------------------
# Criterion outcomes
# ---------------------------------------------------------------------------


class _OutcomeBase(BaseModel):
    model_config = {"frozen": True}

    attribute_name: str
    required: Literal[True] = True
    matched: bool
    status: OutcomeStatus
    normalized_margin: float | None = None
    user_value: Any = None


class RangeOutcome(_OutcomeBase):
    kind: Literal["range"] = "range"
    minimum: float | None = None
    maximum: float | None = None


class OrdinalOutcome(_OutcomeBase):
    kind: Literal["ordinal"] = "ordinal"
    minimum: EducationLevel


class SetOutcome(_OutcomeBase):
    kind: Literal["set"] = "set"
    allowed: frozenset[str]


CriterionOutcome = Annotated[
    RangeOutcome | OrdinalOutcome | SetOutcome,
    Field(discriminator="kind"),
]


class Qualification(BaseModel):
    """Verdict of qualifying one profile against one scheme."""

    model_config = {"frozen": True}

    scheme_id: str
    qualifies: bool
    outcomes: tuple[CriterionOutcome, ...] = ()
    exclusion: ExclusionReason | None = None
    eligibility_margin: float = 0.0

    @property
    def failing(self) -> tuple[RangeOutcome | OrdinalOutcome | SetOutcome, ...]:
        return tuple(o for o in self.outcomes if not o.matched)


# ---------------------------------------------------------------------------
# Ranking
# ---------------------------------------------------------------------------


class RankingWeights(BaseModel):
    """Weights of the composite relevance score."""

    model_config = {"frozen": True}

    benefit: float = Field(default=0.35, ge=0)
    deadline: float = Field(default=0.25, ge=0)
    margin: float = Field(default=0.25, ge=0)
    preference: float = Field(default=0.15, ge=0)

    def normalized(self) -> RankingWeights:
        """Return a copy rescaled so the four weights sum to 1."""
        total = self.benefit + self.deadline + self.margin + self.preference
        if total <= 0:
            return RankingWeights()
        return RankingWeights(
            benefit=self.benefit / total,
            deadline=self.deadline / total,
            margin=self.margin / total,
            preference=self.preference / total,
        )


class RankingPreferences(BaseModel):
    """Per-user overrides supplied by the preference store."""

    model_config = {"frozen": True}

    weights: RankingWeights | None = None
    scheme_weights: dict[str, float] = Field(default_factory=dict)
    category_weights: dict[SchemeCategory, float] = Field(default_factory=dict)


class RankingFactors(BaseModel):
    model_config = {"frozen": True}

    normalized_benefit: float = 0.0
    urgency: float = 0.0
    margin_factor: float = 0.0
    preference_weight: float = 0.0
    days_until_deadline: int | None = None


# ---------------------------------------------------------------------------
# Explanations and results
# ---------------------------------------------------------------------------


class ExplanationEntry(BaseModel):
    model_config = {"frozen": True}

    criterion_name: str
    user_value: str | None
    criterion_value: str
    matched: bool
    status: OutcomeStatus


class MatchResult(BaseModel):
    """A qualifying scheme as returned to callers."""

    scheme_id: str
    scheme_name: str
    qualifies: bool
    outcomes: list[CriterionOutcome] = Field(default_factory=list)
    score: float = 0.0
    eligibility_margin: float = 0.0
    benefit_amount: float = 0.0
    ranking_factors: RankingFactors = Field(default_factory=RankingFactors)
    explanation: list[ExplanationEntry] = Field(default_factory=list)


class Suggestion(BaseModel):
    """A single-attribute profile change that would unlock schemes."""

    model_config = {"frozen": True}

    attribute_name: str
    current_value: Any
    required_change: str  # e.g. "≥18", "25–40", "≤250000", "≥graduate"
    target_value: Any
    direction: ChangeDirection
    unlocks_scheme_ids: frozenset[str]
    delta_magnitude: float


class MatchResponse(BaseModel):
    """Outcome of ``find_matches``.

    ``partial`` is set when the hard deadline cut evaluation short and
    ``slow`` when the soft deadline elapsed; neither is an error.
    """

    results: list[MatchResult] = Field(default_factory=list)
    partial: bool = False
    slow: bool = False
    suggestions: list[Suggestion] = Field(default_factory=list)
    total_qualified: int = 0
    evaluated_count: int = 0
    excluded: dict[str, ExclusionReason] = Field(default_factory=dict)
    invalid_scheme_ids: list[str] = Field(default_factory=list)
    elapsed_ms: float = 0.0
