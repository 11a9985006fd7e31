"""Matching engine service layer -- evaluators, qualifier, ranking, explanation,
suggestions, collaborator stores, and the orchestrator tying them together.
"""

from __future__ import annotations

from scheme_matcher.services.criteria import (
    evaluate_criterion,
    evaluate_ordinal,
    evaluate_range,
    evaluate_set,
)
from scheme_matcher.services.eligibility import MatchingOrchestrator
from scheme_matcher.services.explanation import ExplanationBuilder
from scheme_matcher.services.qualifier import SchemeQualifier
from scheme_matcher.services.ranking import RankingContext, RankingScorer
from scheme_matcher.services.stores import (
    InMemoryPreferenceStore,
    InMemoryProfileStore,
    InMemorySchemeStore,
    PreferenceStore,
    ProfileStore,
    SchemeStore,
)
from scheme_matcher.services.suggestions import SuggestionEngine

__all__ = [
    "ExplanationBuilder",
    "InMemoryPreferenceStore",
    "InMemoryProfileStore",
    "InMemorySchemeStore",
    "MatchingOrchestrator",
    "PreferenceStore",
    "ProfileStore",
    "RankingContext",
    "RankingScorer",
    "SchemeQualifier",
    "SchemeStore",
    "SuggestionEngine",
    "evaluate_criterion",
    "evaluate_ordinal",
    "evaluate_range",
    "evaluate_set",
]
