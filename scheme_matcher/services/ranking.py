"""Composite relevance score and total ordering for qualifying schemes."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from scheme_matcher.models.matching import (
    MatchResult,
    Qualification,
    RankingFactors,
    RankingPreferences,
    RankingWeights,
)
from scheme_matcher.models.scheme import SchemeDocument


@dataclass(frozen=True, slots=True)
class RankingContext:
    """Catalog-wide constants shared by every score in one call."""

    max_benefit: float
    now: datetime
    urgency_window_days: int = 30


class RankingScorer:
    """Scores qualifying schemes and sorts them deterministically.

    Score (each factor in ``[0, 1]``)::

        w_benefit    * benefit / max_benefit
      + w_deadline   * clamp((window - days_left) / window, 0, 1)
      + w_margin     * (1 - clamp(eligibility_margin, 0, 1))
      + w_preference * preference_weight

    Schemes the user only just qualifies for score higher on the margin
    term; deadlines beyond the window contribute nothing rather than
    being penalised.

    Ties on score are broken by smaller eligibility margin, then larger
    benefit, then scheme id, giving a total order.
    """

    __slots__ = ("_weights",)

    def __init__(self, weights: RankingWeights | None = None) -> None:
        self._weights = (weights or RankingWeights()).normalized()

    @property
    def weights(self) -> RankingWeights:
        return self._weights

    def score(
        self,
        qualification: Qualification,
        scheme: SchemeDocument,
        *,
        context: RankingContext,
        preferences: RankingPreferences | None = None,
    ) -> tuple[float, RankingFactors]:
        """Return the composite score and the factors that produced it."""
        weights = self._weights
        if preferences is not None and preferences.weights is not None:
            weights = preferences.weights.normalized()

        if context.max_benefit > 0:
            normalized_benefit = _clamp(scheme.benefit_amount / context.max_benefit)
        else:
            normalized_benefit = 0.0

        days_left: int | None = None
        urgency = 0.0
        if scheme.deadline is not None:
            days_left = (scheme.deadline - context.now.date()).days
            window = context.urgency_window_days
            urgency = _clamp((window - days_left) / window)

        margin_factor = 1.0 - _clamp(qualification.eligibility_margin)
        preference_weight = _preference_weight(scheme, preferences)

        score = (
            weights.benefit * normalized_benefit
            + weights.deadline * urgency
            + weights.margin * margin_factor
            + weights.preference * preference_weight
        )

        factors = RankingFactors(
            normalized_benefit=round(normalized_benefit, 6),
            urgency=round(urgency, 6),
            margin_factor=round(margin_factor, 6),
            preference_weight=round(preference_weight, 6),
            days_until_deadline=days_left,
        )
        return round(score, 6), factors

    @staticmethod
    def sort_key(result: MatchResult) -> tuple[float, float, float, str]:
        return (-result.score, result.eligibility_margin, -result.benefit_amount, result.scheme_id)

    def rank(self, results: Iterable[MatchResult]) -> list[MatchResult]:
        return sorted(results, key=self.sort_key)


def _preference_weight(scheme: SchemeDocument, preferences: RankingPreferences | None) -> float:
    if preferences is None:
        return 0.0
    candidates = [
        preferences.scheme_weights.get(scheme.scheme_id),
        preferences.category_weights.get(scheme.category),
    ]
    return _clamp(max((c for c in candidates if c is not None), default=0.0))


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
