"""Counterfactual "what would make me eligible" suggestions.

For schemes the profile narrowly misses, the engine inverts the failing
criteria: it works out the interval of values of the failing attribute
that would satisfy *every* criterion on that attribute, and proposes the
nearest point of that interval as the change.  Changes are then
aggregated across the catalog so one suggestion reports every scheme it
would unlock.

Only bounded criteria (range / ordinal) are actionable.  Set-membership
attributes (state, district, social category, occupation) are treated as
things a citizen cannot realistically change, and a scheme failing on more
than one attribute is never offered as a single-attribute suggestion.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Final

import structlog

from scheme_matcher.models.enums import (
    ChangeDirection,
    CriterionKind,
    EducationLevel,
    OutcomeStatus,
)
from scheme_matcher.models.matching import (
    OrdinalOutcome,
    Qualification,
    RangeOutcome,
    Suggestion,
)
from scheme_matcher.models.user_profile import Profile

logger = structlog.get_logger(__name__)

# Directions in which each attribute can realistically move.
_REALISTIC_DIRECTIONS: Final[dict[str, frozenset[ChangeDirection]]] = {
    "age": frozenset({ChangeDirection.INCREASE}),
    "education_level": frozenset({ChangeDirection.INCREASE}),
    "annual_income": frozenset({ChangeDirection.INCREASE, ChangeDirection.DECREASE}),
}

_BOUNDED_KINDS: Final[frozenset[str]] = frozenset({CriterionKind.RANGE, CriterionKind.ORDINAL})


@dataclass(frozen=True, slots=True)
class _NearMiss:
    scheme_id: str
    attribute: str
    low: float
    high: float


class SuggestionEngine:
    """Computes minimal single-attribute changes that unlock schemes."""

    __slots__ = ()

    def suggest(
        self,
        profile: Profile,
        qualifications: Iterable[Qualification],
        *,
        top_k: int = 5,
    ) -> list[Suggestion]:
        """Return up to *top_k* distinct attribute changes.

        Ordered by number of schemes unlocked (descending), then by the
        size of the change (ascending).
        """
        near_misses: list[_NearMiss] = []
        for qualification in qualifications:
            near_miss = self._near_miss(profile, qualification)
            if near_miss is not None:
                near_misses.append(near_miss)

        candidates: dict[tuple[str, float], list[_NearMiss]] = {}
        for near_miss in near_misses:
            current = _numeric(near_miss.attribute, profile.attribute(near_miss.attribute))
            target = near_miss.low if current < near_miss.low else near_miss.high
            candidates.setdefault((near_miss.attribute, target), [])

        for (attribute, target), unlocked in candidates.items():
            unlocked.extend(
                nm for nm in near_misses if nm.attribute == attribute and nm.low <= target <= nm.high
            )

        suggestions = [
            self._build(profile, attribute, target, unlocked)
            for (attribute, target), unlocked in candidates.items()
        ]
        suggestions.sort(
            key=lambda s: (
                -len(s.unlocks_scheme_ids),
                s.delta_magnitude,
                s.attribute_name,
                s.required_change,
            )
        )

        logger.debug(
            "suggestions.computed",
            near_misses=len(near_misses),
            candidates=len(suggestions),
            returned=min(top_k, len(suggestions)),
        )
        return suggestions[:top_k]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _near_miss(profile: Profile, qualification: Qualification) -> _NearMiss | None:
        if qualification.qualifies or qualification.exclusion is not None:
            return None

        failing = qualification.failing
        if not failing:
            return None
        if any(o.kind not in _BOUNDED_KINDS or o.status is OutcomeStatus.UNKNOWN for o in failing):
            return None

        attributes = {o.attribute_name for o in failing}
        if len(attributes) != 1:
            return None
        attribute = attributes.pop()
        if attribute not in _REALISTIC_DIRECTIONS:
            return None

        low, high = _feasible_interval(
            attribute, (o for o in qualification.outcomes if o.attribute_name == attribute)
        )
        if low > high:
            return None

        current = _numeric(attribute, profile.attribute(attribute))
        direction = ChangeDirection.INCREASE if current < low else ChangeDirection.DECREASE
        if direction not in _REALISTIC_DIRECTIONS[attribute]:
            return None

        return _NearMiss(qualification.scheme_id, attribute, low, high)

    @staticmethod
    def _build(profile: Profile, attribute: str, target: float, unlocked: list[_NearMiss]) -> Suggestion:
        current_value = profile.attribute(attribute)
        current = _numeric(attribute, current_value)
        direction = ChangeDirection.INCREASE if target > current else ChangeDirection.DECREASE

        # Values every unlocked scheme accepts; target is always one end.
        low = max(nm.low for nm in unlocked)
        high = min(nm.high for nm in unlocked)

        target_value: Any
        if attribute == "education_level":
            target_value = list(EducationLevel)[int(target)]
        elif attribute == "age":
            target_value = int(math.ceil(target))
        else:
            target_value = target

        label = _label(attribute, target)
        if direction is ChangeDirection.INCREASE:
            ceiling = EducationLevel.max_rank() if attribute == "education_level" else math.inf
            required = f"{label}–{_label(attribute, high)}" if target < high < ceiling else f"≥{label}"
        else:
            required = f"{_label(attribute, low)}–{label}" if 0 < low < target else f"≤{label}"

        return Suggestion(
            attribute_name=attribute,
            current_value=current_value,
            required_change=required,
            target_value=target_value,
            direction=direction,
            unlocks_scheme_ids=frozenset(nm.scheme_id for nm in unlocked),
            delta_magnitude=abs(target - current),
        )


def _feasible_interval(
    attribute: str, outcomes: Iterable[RangeOutcome | OrdinalOutcome]
) -> tuple[float, float]:
    """Intersect every bound on *attribute* into ``(low, high)``."""
    low = -math.inf
    high = math.inf
    for outcome in outcomes:
        if isinstance(outcome, RangeOutcome):
            if outcome.minimum is not None:
                low = max(low, outcome.minimum)
            if outcome.maximum is not None:
                high = min(high, outcome.maximum)
        elif isinstance(outcome, OrdinalOutcome):
            low = max(low, outcome.minimum.rank)
            high = min(high, EducationLevel.max_rank())
    if attribute == "age":
        # ages are whole years
        low = math.ceil(low) if low != -math.inf else low
        high = math.floor(high) if high != math.inf else high
    return low, high


def _label(attribute: str, value: float) -> str:
    if attribute == "education_level":
        return list(EducationLevel)[int(value)].value
    if attribute == "age":
        return str(int(math.ceil(value)))
    return f"{value:.0f}" if float(value).is_integer() else f"{value}"


def _numeric(attribute: str, value: Any) -> float:
    if attribute == "education_level":
        return EducationLevel(value).rank
    return float(value)
