"""Qualifies one profile against one scheme."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import UTC, datetime

import structlog

from scheme_matcher.errors import SchemeDataInvalid
from scheme_matcher.models.enums import CriterionKind, ExclusionReason
from scheme_matcher.models.matching import Qualification
from scheme_matcher.models.scheme import SchemeDocument
from scheme_matcher.models.user_profile import Profile
from scheme_matcher.services.criteria import evaluate_criterion

logger = structlog.get_logger(__name__)

_BOUNDED_KINDS = frozenset({CriterionKind.RANGE, CriterionKind.ORDINAL})


class SchemeQualifier:
    """Rules engine for a single (profile, scheme) pair.

    Steps:
    1. Inactive or past-deadline schemes are excluded before any criterion
       is looked at.  Exclusion is recorded as ``Qualification.exclusion``
       and produces no outcomes.
    2. Structurally invalid criteria raise :class:`SchemeDataInvalid`.
    3. Every defined criterion yields exactly one outcome; undefined
       fields yield nothing.
    4. The scheme qualifies iff every outcome matched (vacuously true).

    Stateless, so one instance can be shared across worker threads.
    """

    __slots__ = ()

    def qualify(
        self,
        profile: Profile,
        scheme: SchemeDocument,
        *,
        now: datetime | None = None,
        reference_spans: Mapping[str, float],
    ) -> Qualification:
        now = now or datetime.now(UTC)

        exclusion = self.exclusion_reason(scheme, now)
        if exclusion is not None:
            logger.debug(
                "qualifier.scheme_excluded",
                scheme_id=scheme.scheme_id,
                reason=exclusion.value,
            )
            return Qualification(scheme_id=scheme.scheme_id, qualifies=False, exclusion=exclusion)

        problems = scheme.eligibility.problems()
        if problems:
            raise SchemeDataInvalid(scheme.scheme_id, problems)

        outcomes = tuple(
            evaluate_criterion(criterion, profile, reference_spans)
            for criterion in scheme.eligibility.defined_criteria()
        )

        return Qualification(
            scheme_id=scheme.scheme_id,
            qualifies=all(o.matched for o in outcomes),
            outcomes=outcomes,
            eligibility_margin=_eligibility_margin(outcomes),
        )

    @staticmethod
    def exclusion_reason(scheme: SchemeDocument, now: datetime) -> ExclusionReason | None:
        """Return why *scheme* is not matchable at *now*, or ``None``."""
        if not scheme.is_active:
            return ExclusionReason.INACTIVE
        if scheme.deadline is not None and scheme.deadline < now.date():
            return ExclusionReason.EXPIRED
        return None


def _eligibility_margin(outcomes) -> float:
    """Smallest margin across bounded outcomes; 0.0 when none is graded."""
    margins = [
        o.normalized_margin
        for o in outcomes
        if o.kind in _BOUNDED_KINDS and o.normalized_margin is not None
    ]
    return min(margins, default=0.0)
