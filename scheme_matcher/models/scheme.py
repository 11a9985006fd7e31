from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import UTC, date, datetime
from typing import Annotated, Final, Literal

from pydantic import BaseModel, Field

from config.regions import is_known_region
from scheme_matcher.models.enums import EducationLevel, SchemeCategory, SocialCategory

# ---------------------------------------------------------------------------
# Criterion variants
# ---------------------------------------------------------------------------

RangeAttribute = Literal["age", "annual_income"]
OrdinalAttribute = Literal["education_level"]
SetAttribute = Literal["state", "district", "social_category", "occupation"]


class RangeCriterion(BaseModel):
    """Inclusive numeric bounds on ``age`` or ``annual_income``."""

    model_config = {"frozen": True}

    kind: Literal["range"] = "range"
    attribute: RangeAttribute
    minimum: float | None = None
    maximum: float | None = None


class OrdinalCriterion(BaseModel):
    """Minimum level on an ordered enum (currently education)."""

    model_config = {"frozen": True}

    kind: Literal["ordinal"] = "ordinal"
    attribute: OrdinalAttribute = "education_level"
    minimum: EducationLevel


class SetCriterion(BaseModel):
    """Membership in an allowed set of values."""

    model_config = {"frozen": True}

    kind: Literal["set"] = "set"
    attribute: SetAttribute
    allowed: frozenset[str]


Criterion = Annotated[
    RangeCriterion | OrdinalCriterion | SetCriterion,
    Field(discriminator="kind"),
]


# ---------------------------------------------------------------------------
# Scheme eligibility
# ---------------------------------------------------------------------------


class EligibilityCriteria(BaseModel):
    """Mandatory eligibility conditions for one scheme.

    Every field is optional; an absent field places no constraint on the
    profile.  ``additional`` holds extra typed criteria for attributes the
    named fields do not cover (e.g. an occupation allow-list).
    """

    model_config = {"frozen": True}

    min_age: int | None = None
    max_age: int | None = None
    max_income: float | None = None  # annual, INR
    min_education: EducationLevel | None = None
    allowed_states: frozenset[str] | None = None
    allowed_districts: frozenset[str] | None = None
    allowed_categories: frozenset[SocialCategory] | None = None
    additional: tuple[Criterion, ...] = ()

    def defined_criteria(self) -> Iterator[RangeCriterion | OrdinalCriterion | SetCriterion]:
        """Yield one typed criterion per defined field, in a stable order."""
        if self.min_age is not None or self.max_age is not None:
            yield RangeCriterion(attribute="age", minimum=self.min_age, maximum=self.max_age)
        if self.max_income is not None:
            yield RangeCriterion(attribute="annual_income", maximum=self.max_income)
        if self.min_education is not None:
            yield OrdinalCriterion(minimum=self.min_education)
        if self.allowed_states is not None:
            yield SetCriterion(attribute="state", allowed=self.allowed_states)
        if self.allowed_districts is not None:
            yield SetCriterion(attribute="district", allowed=self.allowed_districts)
        if self.allowed_categories is not None:
            yield SetCriterion(
                attribute="social_category",
                allowed=frozenset(c.value for c in self.allowed_categories),
            )
        yield from self.additional

    def problems(self) -> list[str]:
        """Return structural defects in these criteria (empty if valid)."""
        found: list[str] = []
        for criterion in self.defined_criteria():
            if isinstance(criterion, RangeCriterion):
                if criterion.minimum is None and criterion.maximum is None:
                    found.append(f"{criterion.attribute}: range criterion has no bounds")
                for bound in (criterion.minimum, criterion.maximum):
                    if bound is not None and bound < 0:
                        found.append(f"{criterion.attribute}: negative bound {bound:g}")
                if (
                    criterion.minimum is not None
                    and criterion.maximum is not None
                    and criterion.minimum > criterion.maximum
                ):
                    found.append(
                        f"{criterion.attribute}: minimum {criterion.minimum:g} "
                        f"exceeds maximum {criterion.maximum:g}"
                    )
            elif isinstance(criterion, SetCriterion):
                if not criterion.allowed:
                    found.append(f"{criterion.attribute}: allowed set is empty")
                if criterion.attribute == "state":
                    unknown = sorted(s for s in criterion.allowed if not is_known_region(s))
                    if unknown:
                        found.append(f"state: unknown regions {', '.join(unknown)}")
        return found


class SchemeDocument(BaseModel):
    model_config = {"frozen": True, "populate_by_name": True}

    scheme_id: str
    name: str
    category: SchemeCategory = SchemeCategory.OTHER
    benefit_amount: float = Field(default=0.0, ge=0)  # INR
    deadline: date | None = None
    is_active: bool = True
    eligibility: EligibilityCriteria = Field(default_factory=EligibilityCriteria)

    # -- Presentation fields (owned by other collaborators) ------------------
    description: str = ""
    ministry: str | None = None
    website: str | None = None
    helpline: str | None = None


# ---------------------------------------------------------------------------
# Catalog snapshot
# ---------------------------------------------------------------------------

_AGE_REFERENCE_SPAN: Final[float] = 100.0


class CatalogSnapshot(BaseModel):
    """Immutable copy of the scheme catalog taken at the start of a call.

    All per-scheme workers read from the same snapshot, so a concurrent
    catalog update can never be observed half-applied.
    """

    model_config = {"frozen": True}

    schemes: tuple[SchemeDocument, ...] = ()
    taken_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def capture(
        cls,
        schemes: Iterable[SchemeDocument],
        *,
        taken_at: datetime | None = None,
    ) -> CatalogSnapshot:
        """Deep-copy *schemes* into a new snapshot."""
        copied = tuple(scheme.model_copy(deep=True) for scheme in schemes)
        if taken_at is None:
            return cls(schemes=copied)
        return cls(schemes=copied, taken_at=taken_at)

    @property
    def max_benefit(self) -> float:
        return max((s.benefit_amount for s in self.schemes), default=0.0)

    def income_reference_span(self, default: float) -> float:
        """Largest income ceiling in the catalog, or *default* if none is set."""
        ceilings = [
            c.maximum
            for s in self.schemes
            for c in s.eligibility.defined_criteria()
            if isinstance(c, RangeCriterion)
            and c.attribute == "annual_income"
            and c.maximum is not None
            and c.maximum > 0
        ]
        return max(ceilings, default=default)

    def reference_spans(self, *, age_span: float = _AGE_REFERENCE_SPAN, income_default: float) -> dict[str, float]:
        """Per-attribute spans used to normalise one-sided range margins."""
        return {
            "age": age_span,
            "annual_income": self.income_reference_span(income_default),
        }

    def get(self, scheme_id: str) -> SchemeDocument | None:
        for scheme in self.schemes:
            if scheme.scheme_id == scheme_id:
                return scheme
        return None

    def __len__(self) -> int:
        return len(self.schemes)
