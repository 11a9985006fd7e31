"""Tests for MatchingOrchestrator: the end-to-end matching flow."""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timedelta

import pytest
from factories import NOW, TODAY, make_scheme

from config.settings import Settings
from scheme_matcher.data.seed import load_schemes
from scheme_matcher.errors import (
    InfrastructureUnavailable,
    ProfileNotFound,
    SchemeNotFound,
)
from scheme_matcher.models.enums import EducationLevel, ExclusionReason, OutcomeStatus
from scheme_matcher.models.matching import RankingPreferences
from scheme_matcher.models.scheme import CatalogSnapshot, SchemeDocument
from scheme_matcher.models.user_profile import Profile
from scheme_matcher.services.eligibility import MatchingOrchestrator
from scheme_matcher.services.qualifier import SchemeQualifier
from scheme_matcher.services.stores import (
    InMemoryPreferenceStore,
    InMemoryProfileStore,
    InMemorySchemeStore,
)


class SlowQualifier(SchemeQualifier):
    """Sleeps before qualifying, optionally only for selected schemes."""

    def __init__(self, delay: float, slow_ids: set[str] | None = None) -> None:
        self.delay = delay
        self.slow_ids = slow_ids
        self.calls: list[str] = []

    def qualify(self, profile, scheme, *, now=None, reference_spans):
        self.calls.append(scheme.scheme_id)
        if self.slow_ids is None or scheme.scheme_id in self.slow_ids:
            time.sleep(self.delay)
        return super().qualify(profile, scheme, now=now, reference_spans=reference_spans)


class BrokenProfileStore:
    async def get_profile(self, profile_id: str) -> Profile:
        raise ConnectionError("firestore timeout")


class BrokenSchemeStore:
    async def get_active_schemes(self) -> list[SchemeDocument]:
        raise ConnectionError("catalog offline")


class BrokenPreferenceStore:
    async def get_preferences(self, profile_id: str) -> RankingPreferences | None:
        raise ConnectionError("preferences offline")


@pytest.fixture
def catalog() -> list[SchemeDocument]:
    return load_schemes()


@pytest.fixture
def profiles(farmer: Profile, teenager: Profile) -> InMemoryProfileStore:
    return InMemoryProfileStore([farmer, teenager])


@pytest.fixture
def orchestrator(profiles: InMemoryProfileStore) -> MatchingOrchestrator:
    return MatchingOrchestrator(profiles, config=Settings())


def _timed_config(soft: float, hard: float) -> Settings:
    return Settings(soft_timeout_seconds=soft, hard_timeout_seconds=hard, evaluation_batch_size=1)


# ---------------------------------------------------------------------------
# find_matches: sample catalog
# ---------------------------------------------------------------------------


class TestFindMatches:
    async def test_farmer_ranked_results(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)

        assert [r.scheme_id for r in response.results] == ["pmjay", "pmkvy", "pm-kisan", "pm-ujjwala"]
        assert response.total_qualified == 4
        assert response.partial is False
        assert response.slow is False
        assert response.suggestions == []
        assert response.evaluated_count == len(catalog)

    async def test_excluded_schemes_are_reported(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        assert response.excluded == {
            "pm-shram-yogi-maandhan": ExclusionReason.EXPIRED,
            "mahila-samman-savings": ExclusionReason.INACTIVE,
        }
        returned = {r.scheme_id for r in response.results}
        assert returned.isdisjoint(response.excluded)

    async def test_scores_are_descending(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        scores = [r.score for r in response.results]
        assert scores == sorted(scores, reverse=True)
        assert all(0.0 <= s <= 1.0 for s in scores)

    async def test_results_carry_explanation(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        kisan = next(r for r in response.results if r.scheme_id == "pm-kisan")
        assert [e.criterion_name for e in kisan.explanation] == ["age", "occupation"]
        assert all(e.matched for e in kisan.explanation)
        assert kisan.explanation[0].criterion_value == "≥ 18"
        assert len(kisan.outcomes) == len(kisan.explanation)

    async def test_accepts_catalog_snapshot(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        snapshot = CatalogSnapshot.capture(catalog, taken_at=NOW)
        from_list = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        from_snapshot = await orchestrator.find_matches("farmer-1", snapshot, now=NOW)
        assert from_snapshot.results == from_list.results

    async def test_idempotent(self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]) -> None:
        first = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        second = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        assert [(r.scheme_id, r.score) for r in first.results] == [
            (r.scheme_id, r.score) for r in second.results
        ]
        assert first.results == second.results

    async def test_does_not_mutate_inputs(
        self,
        orchestrator: MatchingOrchestrator,
        profiles: InMemoryProfileStore,
        catalog: list[SchemeDocument],
    ) -> None:
        before_profile = (await profiles.get_profile("farmer-1")).model_dump()
        before_catalog = [s.model_dump() for s in catalog]
        await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        assert (await profiles.get_profile("farmer-1")).model_dump() == before_profile
        assert [s.model_dump() for s in catalog] == before_catalog

    async def test_empty_catalog(self, orchestrator: MatchingOrchestrator) -> None:
        response = await orchestrator.find_matches("farmer-1", [], now=NOW)
        assert response.results == []
        assert response.suggestions == []
        assert response.evaluated_count == 0


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------


class TestPagination:
    async def test_page_size_truncates_but_counts_all(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        response = await orchestrator.find_matches("farmer-1", catalog, page_size=2, now=NOW)
        assert [r.scheme_id for r in response.results] == ["pmjay", "pmkvy"]
        assert response.total_qualified == 4

    async def test_invalid_page_size(self, orchestrator: MatchingOrchestrator) -> None:
        with pytest.raises(ValueError, match="page_size"):
            await orchestrator.find_matches("farmer-1", [], page_size=0, now=NOW)

    async def test_default_page_size_from_settings(self, profiles: InMemoryProfileStore) -> None:
        orchestrator = MatchingOrchestrator(profiles, config=Settings(default_page_size=3))
        catalog = [make_scheme(f"open-{i}") for i in range(5)]
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        assert len(response.results) == 3
        assert response.total_qualified == 5


# ---------------------------------------------------------------------------
# Zero-match fallback
# ---------------------------------------------------------------------------


class TestZeroMatch:
    async def test_single_bounded_miss_yields_suggestion(self, orchestrator: MatchingOrchestrator) -> None:
        response = await orchestrator.find_matches("teen-1", [make_scheme("adults", min_age=18)], now=NOW)
        assert response.results == []
        (suggestion,) = response.suggestions
        assert suggestion.attribute_name == "age"
        assert suggestion.required_change == "≥18"
        assert suggestion.unlocks_scheme_ids == frozenset({"adults"})

    async def test_suggestions_ranked_by_unlocks_then_delta(self, orchestrator: MatchingOrchestrator) -> None:
        catalog = [
            make_scheme("adults", min_age=18),
            make_scheme("grads", min_education=EducationLevel.GRADUATE),
        ]
        response = await orchestrator.find_matches("teen-1", catalog, now=NOW)
        assert [s.required_change for s in response.suggestions] == ["≥18", "≥graduate"]

    async def test_no_suggestions_when_matches_exist(self, orchestrator: MatchingOrchestrator) -> None:
        catalog = [make_scheme("open"), make_scheme("adults", min_age=18)]
        response = await orchestrator.find_matches("teen-1", catalog, now=NOW)
        assert [r.scheme_id for r in response.results] == ["open"]
        assert response.suggestions == []

    async def test_only_excluded_schemes_yield_nothing(self, orchestrator: MatchingOrchestrator) -> None:
        catalog = [
            make_scheme("closed", is_active=False),
            make_scheme("lapsed", deadline=TODAY - timedelta(days=1)),
        ]
        response = await orchestrator.find_matches("teen-1", catalog, now=NOW)
        assert response.results == []
        assert response.suggestions == []
        assert set(response.excluded) == {"closed", "lapsed"}


# ---------------------------------------------------------------------------
# Error isolation and store failures
# ---------------------------------------------------------------------------


class TestErrors:
    async def test_invalid_scheme_is_isolated(self, orchestrator: MatchingOrchestrator) -> None:
        catalog = [make_scheme("bad-range", min_age=60, max_age=18), make_scheme("good")]
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        assert [r.scheme_id for r in response.results] == ["good"]
        assert response.invalid_scheme_ids == ["bad-range"]
        assert response.excluded == {"bad-range": ExclusionReason.INVALID_DATA}
        assert response.evaluated_count == 2

    async def test_unexpected_evaluation_error_is_isolated(self, profiles: InMemoryProfileStore) -> None:
        class ExplodingQualifier(SchemeQualifier):
            def qualify(self, profile, scheme, *, now=None, reference_spans):
                if scheme.scheme_id == "boom":
                    raise RuntimeError("unexpected")
                return super().qualify(profile, scheme, now=now, reference_spans=reference_spans)

        orchestrator = MatchingOrchestrator(profiles, config=Settings(), qualifier=ExplodingQualifier())
        response = await orchestrator.find_matches(
            "farmer-1", [make_scheme("boom"), make_scheme("fine")], now=NOW
        )
        assert [r.scheme_id for r in response.results] == ["fine"]
        assert response.invalid_scheme_ids == ["boom"]

    async def test_unknown_profile(self, orchestrator: MatchingOrchestrator) -> None:
        with pytest.raises(ProfileNotFound):
            await orchestrator.find_matches("nobody", [], now=NOW)

    async def test_profile_store_failure(self) -> None:
        orchestrator = MatchingOrchestrator(BrokenProfileStore(), config=Settings())
        with pytest.raises(InfrastructureUnavailable, match="profile_store"):
            await orchestrator.find_matches("farmer-1", [], now=NOW)

    async def test_scheme_store_failure(self, profiles: InMemoryProfileStore) -> None:
        orchestrator = MatchingOrchestrator(profiles, BrokenSchemeStore(), config=Settings())
        with pytest.raises(InfrastructureUnavailable, match="scheme_store"):
            await orchestrator.find_matches("farmer-1", now=NOW)

    async def test_no_catalog_and_no_store(self, orchestrator: MatchingOrchestrator) -> None:
        with pytest.raises(InfrastructureUnavailable):
            await orchestrator.find_matches("farmer-1", now=NOW)

    async def test_missing_profile_attribute_fails_closed(self, profiles: InMemoryProfileStore) -> None:
        profiles.put(Profile(profile_id="partial", age=30))
        orchestrator = MatchingOrchestrator(profiles, config=Settings())
        response = await orchestrator.find_matches(
            "partial", [make_scheme("capped", max_income=100_000)], now=NOW
        )
        assert response.results == []
        assert response.suggestions == []


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class TestStores:
    async def test_catalog_from_scheme_store(
        self, profiles: InMemoryProfileStore, catalog: list[SchemeDocument]
    ) -> None:
        orchestrator = MatchingOrchestrator(profiles, InMemorySchemeStore(catalog), config=Settings())
        response = await orchestrator.find_matches("farmer-1", now=NOW)
        assert response.total_qualified == 4
        # the store already filters inactive schemes
        assert response.excluded == {"pm-shram-yogi-maandhan": ExclusionReason.EXPIRED}

    async def test_explicit_catalog_wins_over_store(self, profiles: InMemoryProfileStore) -> None:
        store = InMemorySchemeStore([make_scheme("from-store")])
        orchestrator = MatchingOrchestrator(profiles, store, config=Settings())
        response = await orchestrator.find_matches("farmer-1", [make_scheme("explicit")], now=NOW)
        assert [r.scheme_id for r in response.results] == ["explicit"]

    async def test_preferences_from_store_reorder(self, profiles: InMemoryProfileStore) -> None:
        catalog = [make_scheme("a"), make_scheme("b")]
        prefs = InMemoryPreferenceStore({"farmer-1": RankingPreferences(scheme_weights={"b": 1.0})})

        plain = MatchingOrchestrator(profiles, config=Settings())
        preferring = MatchingOrchestrator(profiles, preference_store=prefs, config=Settings())

        assert [r.scheme_id for r in (await plain.find_matches("farmer-1", catalog, now=NOW)).results] == [
            "a",
            "b",
        ]
        assert [
            r.scheme_id for r in (await preferring.find_matches("farmer-1", catalog, now=NOW)).results
        ] == ["b", "a"]

    async def test_explicit_preferences_skip_store(self, profiles: InMemoryProfileStore) -> None:
        orchestrator = MatchingOrchestrator(
            profiles, preference_store=BrokenPreferenceStore(), config=Settings()
        )
        response = await orchestrator.find_matches(
            "farmer-1",
            [make_scheme("a"), make_scheme("b")],
            RankingPreferences(scheme_weights={"b": 1.0}),
            now=NOW,
        )
        assert [r.scheme_id for r in response.results] == ["b", "a"]

    async def test_preference_store_failure_is_not_fatal(self, profiles: InMemoryProfileStore) -> None:
        orchestrator = MatchingOrchestrator(
            profiles, preference_store=BrokenPreferenceStore(), config=Settings()
        )
        response = await orchestrator.find_matches("farmer-1", [make_scheme("a")], now=NOW)
        assert [r.scheme_id for r in response.results] == ["a"]

    async def test_snapshot_isolates_concurrent_catalog_update(self, profiles: InMemoryProfileStore) -> None:
        store = InMemorySchemeStore([make_scheme(f"s{i}") for i in range(4)])
        orchestrator = MatchingOrchestrator(
            profiles, store, config=_timed_config(2.0, 4.0), qualifier=SlowQualifier(0.05)
        )
        task = asyncio.create_task(orchestrator.find_matches("farmer-1", now=NOW))
        await asyncio.sleep(0.01)
        store.replace([])
        response = await task
        assert response.total_qualified == 4


# ---------------------------------------------------------------------------
# Latency contract
# ---------------------------------------------------------------------------


class TestDeadlines:
    async def test_soft_deadline_flags_slow_without_aborting(self, profiles: InMemoryProfileStore) -> None:
        calls: list[str] = []
        orchestrator = MatchingOrchestrator(
            profiles, config=_timed_config(0.05, 3.0), qualifier=SlowQualifier(0.2)
        )
        response = await orchestrator.find_matches(
            "farmer-1",
            [make_scheme("a"), make_scheme("b")],
            now=NOW,
            on_slow=lambda: calls.append("slow"),
        )
        assert response.slow is True
        assert response.partial is False
        assert calls == ["slow"]
        assert {r.scheme_id for r in response.results} == {"a", "b"}

    async def test_failing_slow_callback_is_tolerated(self, profiles: InMemoryProfileStore) -> None:
        def explode() -> None:
            raise RuntimeError("client went away")

        orchestrator = MatchingOrchestrator(
            profiles, config=_timed_config(0.05, 3.0), qualifier=SlowQualifier(0.2)
        )
        response = await orchestrator.find_matches("farmer-1", [make_scheme("a")], now=NOW, on_slow=explode)
        assert response.slow is True
        assert len(response.results) == 1

    async def test_hard_deadline_returns_partial(self, profiles: InMemoryProfileStore) -> None:
        orchestrator = MatchingOrchestrator(
            profiles,
            config=_timed_config(0.05, 0.15),
            qualifier=SlowQualifier(0.5, slow_ids={"slow"}),
        )
        response = await orchestrator.find_matches(
            "farmer-1", [make_scheme("fast"), make_scheme("slow")], now=NOW
        )
        assert response.partial is True
        assert response.slow is True
        assert [r.scheme_id for r in response.results] == ["fast"]
        assert response.evaluated_count == 1

    async def test_hard_deadline_keeps_verdicts_from_unfinished_batch(
        self, profiles: InMemoryProfileStore
    ) -> None:
        qualifier = SlowQualifier(0.05)
        orchestrator = MatchingOrchestrator(
            profiles,
            config=Settings(soft_timeout_seconds=0.05, hard_timeout_seconds=0.3, evaluation_batch_size=10),
            qualifier=qualifier,
        )
        ids = [f"s{i:02d}" for i in range(10)]
        response = await orchestrator.find_matches("farmer-1", [make_scheme(i) for i in ids], now=NOW)

        assert response.partial is True
        assert 0 < response.evaluated_count < 10
        assert len(response.results) == response.evaluated_count
        assert sorted(r.scheme_id for r in response.results) == ids[: response.evaluated_count]

        # The worker stops before its next scheme once the deadline passes.
        seen = len(qualifier.calls)
        await asyncio.sleep(0.3)
        assert len(qualifier.calls) == seen

    async def test_cancellation_propagates(self, profiles: InMemoryProfileStore) -> None:
        orchestrator = MatchingOrchestrator(
            profiles, config=_timed_config(1.0, 2.0), qualifier=SlowQualifier(0.2)
        )
        task = asyncio.create_task(orchestrator.find_matches("farmer-1", [make_scheme("a")], now=NOW))
        await asyncio.sleep(0.02)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    async def test_five_hundred_schemes_within_three_seconds(self, orchestrator: MatchingOrchestrator) -> None:
        catalog = [
            make_scheme(
                f"scheme-{i:03d}",
                benefit=float(1_000 + i * 37 % 5_000),
                deadline=TODAY + timedelta(days=i % 90),
                min_age=18 + i % 10,
                max_age=50 + i % 20,
                max_income=100_000 + (i % 25) * 10_000,
                min_education=list(EducationLevel)[i % 4],
                allowed_states=frozenset({"Uttar Pradesh", "Bihar"}) if i % 3 else None,
            )
            for i in range(500)
        ]
        started = time.perf_counter()
        response = await orchestrator.find_matches("farmer-1", catalog, now=NOW)
        elapsed = time.perf_counter() - started

        assert elapsed < 3.0
        assert response.partial is False
        assert response.evaluated_count == 500
        assert response.total_qualified > 0


# ---------------------------------------------------------------------------
# explain_match
# ---------------------------------------------------------------------------


class TestExplainMatch:
    async def test_returns_outcomes(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        outcomes = await orchestrator.explain_match("farmer-1", "pm-kisan", catalog, now=NOW)
        assert [o.attribute_name for o in outcomes] == ["age", "occupation"]
        assert all(o.matched for o in outcomes)

    async def test_reports_failing_criteria(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        outcomes = await orchestrator.explain_match("farmer-1", "stand-up-india", catalog, now=NOW)
        failing = [o for o in outcomes if not o.matched]
        assert [o.attribute_name for o in failing] == ["social_category"]
        assert failing[0].status is OutcomeStatus.MISMATCHED

    async def test_excluded_scheme_has_no_outcomes(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        assert await orchestrator.explain_match("farmer-1", "mahila-samman-savings", catalog, now=NOW) == []

    async def test_unknown_scheme(self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]) -> None:
        with pytest.raises(SchemeNotFound):
            await orchestrator.explain_match("farmer-1", "does-not-exist", catalog, now=NOW)

    async def test_invalid_scheme_has_no_outcomes(self, orchestrator: MatchingOrchestrator) -> None:
        outcomes = await orchestrator.explain_match(
            "farmer-1", "bad", [make_scheme("bad", min_age=60, max_age=18)], now=NOW
        )
        assert outcomes == []


# ---------------------------------------------------------------------------
# suggest_profile_improvements
# ---------------------------------------------------------------------------


class TestSuggestProfileImprovements:
    async def test_runs_even_when_some_schemes_qualify(
        self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]
    ) -> None:
        suggestions = await orchestrator.suggest_profile_improvements("teen-1", catalog, now=NOW)
        by_change = {s.required_change: s for s in suggestions}

        assert set(by_change) == {"≥60", "≥18", "≥secondary"}
        assert by_change["≥18"].unlocks_scheme_ids == frozenset({"pm-ujjwala", "stand-up-india"})
        assert by_change["≥secondary"].unlocks_scheme_ids == frozenset({"post-matric-scholarship-sc"})
        assert suggestions[0].required_change == "≥60"

    async def test_top_k(self, orchestrator: MatchingOrchestrator, catalog: list[SchemeDocument]) -> None:
        suggestions = await orchestrator.suggest_profile_improvements("teen-1", catalog, top_k=1, now=NOW)
        assert len(suggestions) == 1

    async def test_unknown_profile(self, orchestrator: MatchingOrchestrator) -> None:
        with pytest.raises(ProfileNotFound):
            await orchestrator.suggest_profile_improvements("nobody", [], now=NOW)


# ---------------------------------------------------------------------------
# match_snapshot
# ---------------------------------------------------------------------------


class TestMatchSnapshot:
    async def test_matches_async_path(
        self, orchestrator: MatchingOrchestrator, farmer: Profile, catalog: list[SchemeDocument]
    ) -> None:
        snapshot = CatalogSnapshot.capture(catalog, taken_at=NOW)
        sync = orchestrator.match_snapshot(farmer, snapshot, now=NOW)
        async_ = await orchestrator.find_matches("farmer-1", snapshot, now=NOW)
        assert sync.results == async_.results
        assert sync.excluded == async_.excluded

    def test_stops_at_hard_deadline(self, profiles: InMemoryProfileStore, farmer: Profile) -> None:
        orchestrator = MatchingOrchestrator(
            profiles, config=_timed_config(0.05, 0.15), qualifier=SlowQualifier(0.1)
        )
        snapshot = CatalogSnapshot.capture([make_scheme(f"s{i}") for i in range(5)], taken_at=NOW)
        response = orchestrator.match_snapshot(farmer, snapshot, now=NOW)
        assert response.partial is True
        assert response.evaluated_count < 5

    def test_uses_default_now(self, orchestrator: MatchingOrchestrator, farmer: Profile) -> None:
        far_future = datetime.now().date() + timedelta(days=3650)
        snapshot = CatalogSnapshot.capture([make_scheme("open", deadline=far_future)])
        response = orchestrator.match_snapshot(farmer, snapshot)
        assert [r.scheme_id for r in response.results] == ["open"]
