"""Renders criterion outcomes into an auditable match explanation."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Final

from scheme_matcher.models.enums import EducationLevel
from scheme_matcher.models.matching import (
    ExplanationEntry,
    OrdinalOutcome,
    RangeOutcome,
    SetOutcome,
)

_CURRENCY_ATTRIBUTES: Final[frozenset[str]] = frozenset({"annual_income"})


class ExplanationBuilder:
    """Builds one ``ExplanationEntry`` per evaluated criterion.

    Only outcomes that were actually evaluated are rendered; attributes the
    scheme does not constrain never appear.  For a qualifying scheme every
    entry is ``matched=True``; the value of the explanation is *which*
    attributes drove the verdict.
    """

    __slots__ = ()

    def explain(
        self, outcomes: Iterable[RangeOutcome | OrdinalOutcome | SetOutcome]
    ) -> list[ExplanationEntry]:
        return [
            ExplanationEntry(
                criterion_name=outcome.attribute_name,
                user_value=_format_user_value(outcome),
                criterion_value=describe_boundary(outcome),
                matched=outcome.matched,
                status=outcome.status,
            )
            for outcome in outcomes
        ]


def describe_boundary(outcome: RangeOutcome | OrdinalOutcome | SetOutcome) -> str:
    """Human-readable form of the boundary an outcome was tested against."""
    match outcome:
        case RangeOutcome(minimum=lo, maximum=hi):
            fmt = _formatter(outcome.attribute_name)
            if lo is not None and hi is not None:
                return f"{fmt(lo)}–{fmt(hi)}"
            if lo is not None:
                return f"≥ {fmt(lo)}"
            if hi is not None:
                return f"≤ {fmt(hi)}"
            return "any"
        case OrdinalOutcome(minimum=level):
            return f"≥ {level.value}"
        case SetOutcome(allowed=allowed):
            return "one of: " + ", ".join(sorted(allowed))
    raise TypeError(f"unsupported outcome: {outcome!r}")


def _format_user_value(outcome: RangeOutcome | OrdinalOutcome | SetOutcome) -> str | None:
    value = outcome.user_value
    if value is None:
        return None
    if isinstance(value, EducationLevel):
        return value.value
    if isinstance(outcome, RangeOutcome):
        return _formatter(outcome.attribute_name)(value)
    return str(value)


def _formatter(attribute: str):
    if attribute in _CURRENCY_ATTRIBUTES:
        return format_inr
    return _format_number


def _format_number(value: Any) -> str:
    return f"{value:g}"


def format_inr(amount: float) -> str:
    """Format an amount with Indian digit grouping, e.g. ``₹2,50,000``."""
    whole = f"{abs(amount):.0f}"
    if len(whole) > 3:
        head, tail = whole[:-3], whole[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        whole = ",".join(groups) + "," + tail
    sign = "-" if amount < 0 else ""
    return f"{sign}₹{whole}"
