"""Pure evaluators for the three criterion kinds.

Each evaluator depends only on its arguments and returns a fresh outcome
record, so schemes can be evaluated in any order and on any thread.

Margin normalisation
--------------------
``normalized_margin`` is the signed distance from the qualifying boundary
divided by a span, so margins of differently scaled attributes compare:

* two-sided range: ``min(v - min, max - v) / (max - min)``
* one-sided range (or ``min == max``): signed distance to the bound divided
  by the attribute's reference span (age: 100 years, income: the catalog's
  largest income ceiling)
* ordinal: ``(rank(v) - rank(min)) / max_rank``
* set membership: ``None``

Boundaries are inclusive, so a value exactly on a bound has margin 0 and
matches.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog

from config.regions import normalize_region_name
from scheme_matcher.models.enums import EducationLevel, OutcomeStatus
from scheme_matcher.models.matching import OrdinalOutcome, RangeOutcome, SetOutcome
from scheme_matcher.models.scheme import OrdinalCriterion, RangeCriterion, SetCriterion
from scheme_matcher.models.user_profile import Profile

logger = structlog.get_logger(__name__)


def evaluate_range(
    attribute: str,
    value: Any,
    minimum: float | None,
    maximum: float | None,
    reference_span: float,
) -> RangeOutcome:
    """Evaluate ``minimum <= value <= maximum`` (either bound optional)."""
    if not _is_number(value):
        _log_unknown(attribute, value)
        return RangeOutcome(
            attribute_name=attribute,
            matched=False,
            status=OutcomeStatus.UNKNOWN,
            minimum=minimum,
            maximum=maximum,
        )

    matched = (minimum is None or value >= minimum) and (maximum is None or value <= maximum)

    distances: list[float] = []
    if minimum is not None:
        distances.append(value - minimum)
    if maximum is not None:
        distances.append(maximum - value)

    if not distances:
        margin = None
    else:
        if minimum is not None and maximum is not None and maximum > minimum:
            span = maximum - minimum
        else:
            span = reference_span
        margin = min(distances) / span if span > 0 else 0.0

    return RangeOutcome(
        attribute_name=attribute,
        matched=matched,
        status=OutcomeStatus.MATCHED if matched else OutcomeStatus.MISMATCHED,
        normalized_margin=margin,
        user_value=value,
        minimum=minimum,
        maximum=maximum,
    )


def evaluate_ordinal(
    attribute: str,
    value: Any,
    minimum: EducationLevel,
) -> OrdinalOutcome:
    """Evaluate ``rank(value) >= rank(minimum)``."""
    level = _as_level(value)
    if level is None:
        _log_unknown(attribute, value)
        return OrdinalOutcome(
            attribute_name=attribute,
            matched=False,
            status=OutcomeStatus.UNKNOWN,
            minimum=minimum,
        )

    difference = level.rank - minimum.rank
    matched = difference >= 0
    return OrdinalOutcome(
        attribute_name=attribute,
        matched=matched,
        status=OutcomeStatus.MATCHED if matched else OutcomeStatus.MISMATCHED,
        normalized_margin=difference / EducationLevel.max_rank(),
        user_value=level,
        minimum=minimum,
    )


def evaluate_set(
    attribute: str,
    value: Any,
    allowed: frozenset[str],
) -> SetOutcome:
    """Evaluate ``value in allowed`` (case-insensitive for strings)."""
    if not isinstance(value, str) or not value.strip():
        _log_unknown(attribute, value)
        return SetOutcome(
            attribute_name=attribute,
            matched=False,
            status=OutcomeStatus.UNKNOWN,
            allowed=allowed,
        )

    matched = _normalize(attribute, value) in {_normalize(attribute, a) for a in allowed}
    return SetOutcome(
        attribute_name=attribute,
        matched=matched,
        status=OutcomeStatus.MATCHED if matched else OutcomeStatus.MISMATCHED,
        user_value=str(value),
        allowed=allowed,
    )


def evaluate_criterion(
    criterion: RangeCriterion | OrdinalCriterion | SetCriterion,
    profile: Profile,
    reference_spans: Mapping[str, float],
) -> RangeOutcome | OrdinalOutcome | SetOutcome:
    """Dispatch *criterion* to the evaluator for its kind."""
    value = profile.attribute(criterion.attribute)
    match criterion:
        case RangeCriterion():
            return evaluate_range(
                criterion.attribute,
                value,
                criterion.minimum,
                criterion.maximum,
                reference_spans[criterion.attribute],
            )
        case OrdinalCriterion():
            return evaluate_ordinal(criterion.attribute, value, criterion.minimum)
        case SetCriterion():
            return evaluate_set(criterion.attribute, value, criterion.allowed)
    raise TypeError(f"unsupported criterion: {criterion!r}")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _is_number(value: Any) -> bool:
    # bool is an int subclass but never a valid age or income
    return isinstance(value, int | float) and not isinstance(value, bool) and value == value


def _as_level(value: Any) -> EducationLevel | None:
    if isinstance(value, EducationLevel):
        return value
    if isinstance(value, str):
        try:
            return EducationLevel(value.strip().lower())
        except ValueError:
            return None
    return None


def _normalize(attribute: str, value: str) -> str:
    if attribute == "state":
        return normalize_region_name(value)
    return value.strip().casefold()


def _log_unknown(attribute: str, value: Any) -> None:
    logger.debug(
        "criteria.attribute_unknown",
        attribute=attribute,
        value_type=type(value).__name__,
    )
