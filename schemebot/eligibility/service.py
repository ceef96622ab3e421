"""Audited entry point to the eligibility engine.

Reads versions through the rule store (each read is audited), evaluates,
and emits exactly one ELIGIBILITY_EVALUATED event per result.
"""

from __future__ import annotations

import logging
import uuid

from schemebot.eligibility.engine import evaluate
from schemebot.errors import InvalidStateError
from schemebot.events import emit
from schemebot.rules.store import SchemeRuleStore
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.events import EventType, SystemEvent
from schemebot.schemas.profile import UserProfile
from schemebot.schemas.rules import SchemeVersion

logger = logging.getLogger(__name__)


class EligibilityService:
    def __init__(self, store: SchemeRuleStore) -> None:
        self._store = store

    async def check(
        self,
        profile: UserProfile,
        scheme_ids: list[str] | None = None,
        session_id: uuid.UUID | None = None,
    ) -> list[EligibilityResult]:
        """Evaluate the current version of each scheme (all active schemes by default).

        Raises:
            NotFoundError: a requested scheme has no active version.
            InfrastructureError: the rule store is unavailable.
        """
        snapshot = profile.snapshot()
        if scheme_ids is None:
            scheme_ids = self._store.active_scheme_ids()

        versions = [
            await self._store.get_current_version(scheme_id, session_id=session_id)
            for scheme_id in scheme_ids
        ]
        return await self.check_versions(snapshot, versions, session_id=session_id)

    async def check_versions(
        self,
        profile: UserProfile,
        versions: list[SchemeVersion],
        session_id: uuid.UUID | None = None,
    ) -> list[EligibilityResult]:
        """Evaluate specific versions. Only versions issued by the store are accepted."""
        for version in versions:
            if not self._store.is_tracked(version):
                msg = f"Scheme version {version.scheme_id} v{version.version} was not issued by the rule store"
                raise InvalidStateError(msg)

        results = [evaluate(profile, version) for version in versions]
        for result in results:
            await emit(SystemEvent(
                event_type=EventType.ELIGIBILITY_EVALUATED,
                session_id=session_id,
                scheme_id=result.scheme_id,
                version_number=result.version,
                data={
                    "eligible": result.eligible,
                    "confidence": result.confidence,
                    "requires_human_review": result.requires_human_review,
                    "review_reason": result.review_reason.value if result.review_reason else None,
                    "excluded_by": result.excluded_by,
                    "reasoning": list(result.reasoning),
                    "completeness": profile.completeness,
                },
                source_module="eligibility.service",
            ))

        logger.info(
            "Evaluated %d schemes for session %s: %d eligible, %d flagged for review",
            len(results),
            session_id,
            sum(1 for r in results if r.eligible),
            sum(1 for r in results if r.requires_human_review),
        )
        return results
