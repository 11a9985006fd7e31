"""Eligibility matching orchestrator.

Entry point of the engine.  For one profile and one catalog snapshot it:

    * snapshots the inputs so concurrent store updates cannot leak in,
    * qualifies every scheme (in worker threads, batch by batch),
    * scores, explains and ranks the qualifying schemes,
    * falls back to profile-improvement suggestions when nothing qualifies.

Latency contract: 500 active schemes complete well inside 3 seconds.  A
soft deadline (default 5 s) flags the response as ``slow`` and notifies the
caller without aborting; a hard deadline (default 10 s) stops the workers
and returns every verdict finished so far with ``partial=True``.

Every call is a pure read: profiles and schemes are never mutated, nothing
is cached between calls, and repeating a call on identical inputs yields
identical ordered results.
"""

from __future__ import annotations

import asyncio
import threading
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeAlias

import structlog

from config.settings import Settings, settings as default_settings
from scheme_matcher.errors import (
    InfrastructureUnavailable,
    ProfileNotFound,
    SchemeDataInvalid,
    SchemeNotFound,
)
from scheme_matcher.models.enums import ExclusionReason
from scheme_matcher.models.matching import (
    MatchResponse,
    MatchResult,
    Qualification,
    RankingPreferences,
    RankingWeights,
    Suggestion,
)
from scheme_matcher.models.scheme import CatalogSnapshot, SchemeDocument
from scheme_matcher.services.explanation import ExplanationBuilder
from scheme_matcher.services.qualifier import SchemeQualifier
from scheme_matcher.services.ranking import RankingContext, RankingScorer
from scheme_matcher.services.suggestions import SuggestionEngine

if TYPE_CHECKING:
    from scheme_matcher.models.matching import CriterionOutcome
    from scheme_matcher.models.user_profile import Profile
    from scheme_matcher.services.stores import PreferenceStore, ProfileStore, SchemeStore

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

CatalogInput: TypeAlias = "CatalogSnapshot | Iterable[SchemeDocument]"


@dataclass(frozen=True, slots=True)
class _Evaluated:
    """One scheme's verdict; ``qualification`` is None for invalid data."""

    scheme: SchemeDocument
    qualification: Qualification | None


# ---------------------------------------------------------------------------
# MatchingOrchestrator
# ---------------------------------------------------------------------------


class MatchingOrchestrator:
    """Matches a profile against a scheme catalog.

    Parameters
    ----------
    profile_store:
        Source of validated profiles.
    scheme_store:
        Source of the active catalog, used when a call does not pass an
        explicit catalog snapshot.
    preference_store:
        Optional source of per-user ranking overrides.  Failures here are
        logged and ignored.
    config:
        Engine settings; defaults to the module-level ``settings``.
    """

    __slots__ = (
        "_config",
        "_explainer",
        "_preference_store",
        "_profile_store",
        "_qualifier",
        "_scheme_store",
        "_scorer",
        "_suggester",
    )

    def __init__(
        self,
        profile_store: ProfileStore,
        scheme_store: SchemeStore | None = None,
        preference_store: PreferenceStore | None = None,
        *,
        config: Settings | None = None,
        qualifier: SchemeQualifier | None = None,
        scorer: RankingScorer | None = None,
        explainer: ExplanationBuilder | None = None,
        suggester: SuggestionEngine | None = None,
    ) -> None:
        self._profile_store = profile_store
        self._scheme_store = scheme_store
        self._preference_store = preference_store
        self._config = config or default_settings
        self._qualifier = qualifier or SchemeQualifier()
        self._scorer = scorer or RankingScorer(
            RankingWeights(
                benefit=self._config.weight_benefit,
                deadline=self._config.weight_deadline,
                margin=self._config.weight_margin,
                preference=self._config.weight_preference,
            )
        )
        self._explainer = explainer or ExplanationBuilder()
        self._suggester = suggester or SuggestionEngine()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def find_matches(
        self,
        profile_id: str,
        catalog: CatalogInput | None = None,
        preferences: RankingPreferences | None = None,
        *,
        page_size: int | None = None,
        now: datetime | None = None,
        on_slow: Callable[[], None] | None = None,
    ) -> MatchResponse:
        """Return ranked qualifying schemes, or suggestions if none qualify.

        Raises
        ------
        InfrastructureUnavailable
            If the profile or scheme store cannot be reached.
        ProfileNotFound
            If *profile_id* is unknown to the profile store.
        """
        started = time.perf_counter()
        now = now or datetime.now(UTC)
        page_size = self._page_size(page_size)

        log = logger.bind(profile_id=profile_id)

        # -- Step 1: Snapshot inputs -----------------------------------------
        profile = await self._load_profile(profile_id)
        snapshot = await self._load_catalog(catalog, now)
        preferences = await self._load_preferences(profile_id, preferences)
        log.info("eligibility.match_start", schemes=len(snapshot))

        # -- Step 2: Qualify every scheme ------------------------------------
        evaluated, partial, slow = await self._evaluate_concurrently(
            profile, snapshot, now, on_slow=on_slow, log=log
        )

        # -- Steps 3-5: Partition, rank, explain, suggest --------------------
        response = self._assemble(
            profile,
            snapshot,
            evaluated,
            preferences,
            page_size=page_size,
            now=now,
            partial=partial,
            slow=slow,
            started=started,
        )

        log.info(
            "eligibility.match_complete",
            evaluated=response.evaluated_count,
            qualified=response.total_qualified,
            returned=len(response.results),
            suggestions=len(response.suggestions),
            partial=response.partial,
            slow=response.slow,
            elapsed_ms=response.elapsed_ms,
        )
        return response

    async def explain_match(
        self,
        profile_id: str,
        scheme_id: str,
        catalog: CatalogInput | None = None,
        *,
        now: datetime | None = None,
    ) -> list[CriterionOutcome]:
        """Return the per-criterion outcomes of one scheme for one profile.

        Excluded (inactive / expired) schemes and schemes with malformed
        criteria have no outcomes; the latter is logged.

        Raises
        ------
        SchemeNotFound
            If *scheme_id* is not in the catalog snapshot.
        """
        now = now or datetime.now(UTC)
        profile = await self._load_profile(profile_id)
        snapshot = await self._load_catalog(catalog, now)

        scheme = snapshot.get(scheme_id)
        if scheme is None:
            raise SchemeNotFound(scheme_id)

        try:
            qualification = self._qualifier.qualify(
                profile, scheme, now=now, reference_spans=self._reference_spans(snapshot)
            )
        except SchemeDataInvalid as exc:
            logger.warning("eligibility.scheme_invalid", scheme_id=scheme_id, problems=exc.problems)
            return []
        return list(qualification.outcomes)

    async def suggest_profile_improvements(
        self,
        profile_id: str,
        catalog: CatalogInput | None = None,
        *,
        top_k: int | None = None,
        now: datetime | None = None,
    ) -> list[Suggestion]:
        """Return changes that would unlock currently non-qualifying schemes.

        Unlike the zero-match fallback in :meth:`find_matches`, this runs
        even when some schemes already qualify.
        """
        now = now or datetime.now(UTC)
        log = logger.bind(profile_id=profile_id)

        profile = await self._load_profile(profile_id)
        snapshot = await self._load_catalog(catalog, now)
        evaluated, _partial, _slow = await self._evaluate_concurrently(
            profile, snapshot, now, on_slow=None, log=log
        )

        return self._suggester.suggest(
            profile,
            (e.qualification for e in evaluated if e.qualification is not None),
            top_k=top_k or self._config.suggestion_top_k,
        )

    def match_snapshot(
        self,
        profile: Profile,
        snapshot: CatalogSnapshot,
        preferences: RankingPreferences | None = None,
        *,
        page_size: int | None = None,
        now: datetime | None = None,
    ) -> MatchResponse:
        """Synchronous core of :meth:`find_matches` for pre-fetched inputs.

        Evaluates on the calling thread and stops at the hard deadline.
        """
        started = time.perf_counter()
        now = now or datetime.now(UTC)
        hard_deadline = started + self._config.hard_timeout_seconds

        profile = profile.model_copy(deep=True)
        spans = self._reference_spans(snapshot)

        evaluated: list[_Evaluated] = []
        partial = False
        for scheme in snapshot.schemes:
            if time.perf_counter() > hard_deadline:
                partial = True
                logger.warning(
                    "eligibility.hard_deadline_exceeded",
                    evaluated=len(evaluated),
                    total=len(snapshot),
                )
                break
            evaluated.append(self._qualify_safely(profile, scheme, now, spans))

        return self._assemble(
            profile,
            snapshot,
            evaluated,
            preferences,
            page_size=self._page_size(page_size),
            now=now,
            partial=partial,
            slow=False,
            started=started,
        )

    # ------------------------------------------------------------------
    # Input acquisition
    # ------------------------------------------------------------------

    async def _load_profile(self, profile_id: str) -> Profile:
        try:
            profile = await self._profile_store.get_profile(profile_id)
        except ProfileNotFound:
            raise
        except Exception as exc:
            logger.error("eligibility.profile_store_failed", profile_id=profile_id, exc_info=True)
            raise InfrastructureUnavailable("profile_store", str(exc)) from exc
        return profile.model_copy(deep=True)

    async def _load_catalog(self, catalog: CatalogInput | None, now: datetime) -> CatalogSnapshot:
        if isinstance(catalog, CatalogSnapshot):
            return catalog
        if catalog is not None:
            return CatalogSnapshot.capture(catalog, taken_at=now)

        if self._scheme_store is None:
            raise InfrastructureUnavailable("scheme_store", "no catalog supplied and no scheme store configured")
        try:
            schemes = await self._scheme_store.get_active_schemes()
        except Exception as exc:
            logger.error("eligibility.scheme_store_failed", exc_info=True)
            raise InfrastructureUnavailable("scheme_store", str(exc)) from exc
        return CatalogSnapshot.capture(schemes, taken_at=now)

    async def _load_preferences(
        self, profile_id: str, preferences: RankingPreferences | None
    ) -> RankingPreferences | None:
        if preferences is not None or self._preference_store is None:
            return preferences
        try:
            return await self._preference_store.get_preferences(profile_id)
        except Exception:
            logger.warning("eligibility.preference_store_failed", profile_id=profile_id, exc_info=True)
            return None

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def _evaluate_concurrently(
        self,
        profile: Profile,
        snapshot: CatalogSnapshot,
        now: datetime,
        *,
        on_slow: Callable[[], None] | None,
        log: structlog.stdlib.BoundLogger,
    ) -> tuple[list[_Evaluated], bool, bool]:
        """Qualify all schemes in worker threads under the two deadlines.

        Each batch appends verdicts to its own list as it goes, so whatever
        was qualified before the hard deadline is kept even when the batch
        itself has not finished.  Setting ``stop`` makes every worker return
        before its next scheme.

        Returns ``(evaluated, partial, slow)``.  Results keep catalog order
        regardless of which batch finishes first.
        """
        spans = self._reference_spans(snapshot)
        size = self._config.evaluation_batch_size
        schemes = snapshot.schemes
        batches = [schemes[i : i + size] for i in range(0, len(schemes), size)]
        if not batches:
            return [], False, False

        stop = threading.Event()
        sinks: list[list[_Evaluated]] = [[] for _ in batches]
        tasks = [
            asyncio.create_task(
                asyncio.to_thread(self._qualify_batch, profile, batch, now, spans, sink, stop)
            )
            for batch, sink in zip(batches, sinks)
        ]

        partial = False
        slow = False
        soft = self._config.soft_timeout_seconds
        hard = self._config.hard_timeout_seconds
        try:
            _done, pending = await asyncio.wait(tasks, timeout=soft)
            if pending:
                slow = True
                log.warning("eligibility.soft_deadline_exceeded", pending_batches=len(pending))
                if on_slow is not None:
                    try:
                        on_slow()
                    except Exception:
                        log.warning("eligibility.on_slow_callback_failed", exc_info=True)
                _done, pending = await asyncio.wait(pending, timeout=hard - soft)
            if pending:
                partial = True
        finally:
            # Also runs when the caller is cancelled.
            stop.set()
            for task in tasks:
                if not task.done():
                    task.cancel()

        for task in tasks:
            if task.done() and not task.cancelled() and task.exception() is not None:
                log.error("eligibility.batch_failed", error=str(task.exception()))

        # Copy each sink now; a worker mid-scheme may still append once more.
        evaluated = [item for sink in sinks for item in list(sink)]
        if partial:
            log.warning(
                "eligibility.hard_deadline_exceeded",
                evaluated=len(evaluated),
                total=len(schemes),
            )
        return evaluated, partial, slow

    def _qualify_batch(
        self,
        profile: Profile,
        batch: Sequence[SchemeDocument],
        now: datetime,
        spans: dict[str, float],
        sink: list[_Evaluated],
        stop: threading.Event,
    ) -> None:
        for scheme in batch:
            if stop.is_set():
                return
            sink.append(self._qualify_safely(profile, scheme, now, spans))

    def _qualify_safely(
        self,
        profile: Profile,
        scheme: SchemeDocument,
        now: datetime,
        spans: dict[str, float],
    ) -> _Evaluated:
        """Qualify one scheme, isolating any failure to that scheme."""
        try:
            qualification = self._qualifier.qualify(profile, scheme, now=now, reference_spans=spans)
        except SchemeDataInvalid as exc:
            logger.warning(
                "eligibility.scheme_invalid",
                scheme_id=scheme.scheme_id,
                problems=exc.problems,
            )
            return _Evaluated(scheme, None)
        except Exception:
            logger.error("eligibility.scheme_evaluation_failed", scheme_id=scheme.scheme_id, exc_info=True)
            return _Evaluated(scheme, None)
        return _Evaluated(scheme, qualification)

    # ------------------------------------------------------------------
    # Assembly
    # ------------------------------------------------------------------

    def _assemble(
        self,
        profile: Profile,
        snapshot: CatalogSnapshot,
        evaluated: list[_Evaluated],
        preferences: RankingPreferences | None,
        *,
        page_size: int,
        now: datetime,
        partial: bool,
        slow: bool,
        started: float,
    ) -> MatchResponse:
        context = RankingContext(
            max_benefit=snapshot.max_benefit,
            now=now,
            urgency_window_days=self._config.urgency_window_days,
        )

        results: list[MatchResult] = []
        non_qualifying: list[Qualification] = []
        excluded: dict[str, ExclusionReason] = {}
        invalid: list[str] = []

        for item in evaluated:
            qualification = item.qualification
            if qualification is None:
                invalid.append(item.scheme.scheme_id)
                excluded[item.scheme.scheme_id] = ExclusionReason.INVALID_DATA
                continue
            if qualification.exclusion is not None:
                excluded[item.scheme.scheme_id] = qualification.exclusion
                continue
            if not qualification.qualifies:
                non_qualifying.append(qualification)
                continue

            score, factors = self._scorer.score(
                qualification, item.scheme, context=context, preferences=preferences
            )
            results.append(
                MatchResult(
                    scheme_id=item.scheme.scheme_id,
                    scheme_name=item.scheme.name,
                    qualifies=True,
                    outcomes=list(qualification.outcomes),
                    score=score,
                    eligibility_margin=qualification.eligibility_margin,
                    benefit_amount=item.scheme.benefit_amount,
                    ranking_factors=factors,
                    explanation=self._explainer.explain(qualification.outcomes),
                )
            )

        ranked = self._scorer.rank(results)

        suggestions: list[Suggestion] = []
        if not ranked and non_qualifying:
            suggestions = self._suggester.suggest(
                profile, non_qualifying, top_k=self._config.suggestion_top_k
            )

        return MatchResponse(
            results=ranked[:page_size],
            partial=partial,
            slow=slow,
            suggestions=suggestions,
            total_qualified=len(ranked),
            evaluated_count=len(evaluated),
            excluded=excluded,
            invalid_scheme_ids=invalid,
            elapsed_ms=_elapsed_ms(started),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _reference_spans(self, snapshot: CatalogSnapshot) -> dict[str, float]:
        return snapshot.reference_spans(
            age_span=self._config.age_reference_span,
            income_default=self._config.income_reference_span,
        )

    def _page_size(self, page_size: int | None) -> int:
        if page_size is None:
            return self._config.default_page_size
        if page_size < 1:
            raise ValueError(f"page_size must be >= 1, got {page_size}")
        return page_size


def _elapsed_ms(start: float) -> float:
    """Milliseconds elapsed since *start* (a ``time.perf_counter`` value)."""
    return round((time.perf_counter() - start) * 1000, 2)
