"""Review Gate — routes uncertain determinations to a human reviewer.

A session waiting for review is a persisted conversation phase, not a
blocked task. When a decision arrives the gate awaits the registered resume
handler (the conversation engine) with the session id; the engine also pulls
the decision on its next `advance` in case that call failed.

All queue mutation happens under one asyncio.Lock. Events and the resume
handler run after the lock is released.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from schemebot.config import settings
from schemebot.eligibility.confidence import REVIEW_CONFIDENCE_THRESHOLD
from schemebot.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from schemebot.events import emit
from schemebot.models.enums import DecisionKind, ReviewReason, ReviewStatus
from schemebot.review.queue import ReviewQueue
from schemebot.review.repository import ReviewRepository
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.events import EventType, SystemEvent
from schemebot.schemas.profile import UserProfile
from schemebot.schemas.review import PendingCaseView, ReviewCase, ReviewDecision

logger = logging.getLogger(__name__)

ResumeHandler = Callable[[uuid.UUID, ReviewCase, ReviewDecision], Awaitable[object]]

_OPEN = (ReviewStatus.PENDING, ReviewStatus.IN_REVIEW)


# ── Pure helpers ─────────────────────────────────────────────────────


def needs_review(result: EligibilityResult) -> bool:
    return result.confidence < REVIEW_CONFIDENCE_THRESHOLD or result.requires_human_review


def compute_priority(confidence: int, manual: bool, bonus: int | None = None) -> int:
    """Gap below the review threshold, plus a bonus for manual escalation."""
    priority = max(0, REVIEW_CONFIDENCE_THRESHOLD - confidence)
    if manual:
        priority += settings.review.manual_escalation_bonus if bonus is None else bonus
    return priority


def snapshot_fingerprint(profile: UserProfile, results: tuple[EligibilityResult, ...] | list[EligibilityResult]) -> str:
    """Stable hash of a profile snapshot and the versions it was evaluated against."""
    payload = {
        "profile": profile.model_dump(mode="json", exclude={"unresolved"}),
        "unresolved": sorted(profile.unresolved),
        "results": sorted((r.scheme_id, r.version, r.eligible, r.confidence) for r in results),
    }
    return hashlib.sha256(json.dumps(payload, sort_keys=True, default=str).encode()).hexdigest()


def _resolved(result: EligibilityResult, decision: ReviewDecision, **changes: object) -> EligibilityResult:
    update: dict[str, object] = {
        "decided_by": decision.decision_id,
        "requires_human_review": False,
        "review_reason": None,
    }
    update.update(changes)
    return result.model_copy(update=update)


def effective_results(case: ReviewCase, decision: ReviewDecision) -> list[EligibilityResult]:
    """Results that replace the engine's once a decision is recorded.

    approve keeps the engine's determinations, reject makes every scheme
    ineligible with confidence 100, modify swaps in the reviewer's result per
    scheme. Every returned result carries the decision id.
    """
    note = f"Reviewed by {decision.reviewer_id}: {decision.kind.value}"
    if decision.reasoning:
        note = f"{note} ({decision.reasoning})"

    if decision.kind == DecisionKind.REJECT:
        return [
            _resolved(r, decision, eligible=False, confidence=100, reasoning=(*r.reasoning, note))
            for r in case.results
        ]

    replacements = {r.scheme_id: r for r in decision.modified_results} if decision.kind == DecisionKind.MODIFY else {}
    effective: list[EligibilityResult] = []
    for result in case.results:
        source = replacements.get(result.scheme_id, result)
        effective.append(_resolved(source, decision, reasoning=(*source.reasoning, note)))
    return effective


def validate_decision(case: ReviewCase, decision: ReviewDecision) -> None:
    """Raise ValidationError for decisions that cannot be applied to `case`."""
    if decision.case_id != case.case_id:
        msg = f"Decision targets case {decision.case_id}, not {case.case_id}"
        raise ValidationError(msg)

    if not decision.reasoning.strip():
        is_override = decision.kind == DecisionKind.MODIFY or (
            decision.kind == DecisionKind.REJECT and any(r.eligible for r in case.results)
        )
        if is_override:
            raise ValidationError("A decision that overrides the engine must include reasoning")
        msg = f"Decision of kind '{decision.kind.value}' must include reasoning"
        raise ValidationError(msg)

    if decision.kind == DecisionKind.MODIFY:
        if not decision.modified_results:
            raise ValidationError("A modify decision must carry the modified results")
        versions = {r.scheme_id: r.version for r in case.results}
        unknown = sorted({r.scheme_id for r in decision.modified_results} - versions.keys())
        if unknown:
            msg = f"Modified results name schemes outside the case: {unknown}"
            raise ValidationError(msg)
        for result in decision.modified_results:
            # model_copy skips field validation, so the bounds are checked here too
            if not 0 <= result.confidence <= 100:
                msg = f"Modified result for {result.scheme_id} has confidence {result.confidence} outside 0-100"
                raise ValidationError(msg)
            if result.version != versions[result.scheme_id]:
                msg = (
                    f"Modified result for {result.scheme_id} names version {result.version}, "
                    f"but the case was evaluated against version {versions[result.scheme_id]}"
                )
                raise ValidationError(msg)


# ── Gate ─────────────────────────────────────────────────────────────


class ReviewGate:
    """Review queue with case and decision bookkeeping."""

    def __init__(
        self,
        repository: ReviewRepository | None = None,
        clock: Callable[[], datetime] | None = None,
        manual_escalation_bonus: int | None = None,
    ) -> None:
        self._repository = repository
        self._clock = clock or (lambda: datetime.now(UTC))
        self._bonus = manual_escalation_bonus
        self._cases: dict[uuid.UUID, ReviewCase] = {}
        self._decisions: dict[uuid.UUID, ReviewDecision] = {}
        self._queue = ReviewQueue()
        self._lock = asyncio.Lock()
        self._resume_handler: ResumeHandler | None = None

    def set_resume_handler(self, handler: ResumeHandler | None) -> None:
        self._resume_handler = handler

    # ── Intake ───────────────────────────────────────────────────────

    async def submit_for_review(
        self,
        session_id: uuid.UUID,
        profile: UserProfile,
        results: list[EligibilityResult],
    ) -> ReviewCase | None:
        """Queue one case if any result needs review; None when none does.

        Re-submitting the same snapshot while its case is still open returns
        the existing case instead of queueing a duplicate.
        """
        flagged = [r for r in results if needs_review(r)]
        if not flagged:
            return None

        fingerprint = snapshot_fingerprint(profile, results)
        ambiguous = any(r.review_reason == ReviewReason.AMBIGUOUS_RULES for r in flagged)
        reason = ReviewReason.AMBIGUOUS_RULES if ambiguous else ReviewReason.LOW_CONFIDENCE
        lowest = min(r.confidence for r in flagged)

        async with self._lock:
            for existing in self._cases.values():
                if (
                    existing.session_id == session_id
                    and existing.fingerprint == fingerprint
                    and existing.status in _OPEN
                ):
                    logger.info("Session %s already has open case %s for this snapshot", session_id, existing.case_id)
                    return existing

            case = ReviewCase(
                session_id=session_id,
                profile=profile.snapshot(),
                results=tuple(results),
                reasoning=tuple(f"[{r.scheme_id}] {line}" for r in flagged for line in r.reasoning),
                priority=compute_priority(lowest, manual=ambiguous, bonus=self._bonus),
                reason=reason,
                fingerprint=fingerprint,
                queued_at=self._clock(),
            )
            await self._enqueue_locked(case)

        await self._emit_queued(case)
        return case

    async def escalate_manually(
        self,
        session_id: uuid.UUID,
        reason: str,
        profile: UserProfile | None = None,
        results: list[EligibilityResult] | tuple[EligibilityResult, ...] = (),
    ) -> ReviewCase:
        """Queue a case on request of the citizen or an operator. Always creates a new case."""
        lowest = min((r.confidence for r in results), default=REVIEW_CONFIDENCE_THRESHOLD)
        case = ReviewCase(
            session_id=session_id,
            profile=(profile or UserProfile()).snapshot(),
            results=tuple(results),
            reasoning=(f"Manual escalation: {reason}",),
            priority=compute_priority(lowest, manual=True, bonus=self._bonus),
            reason=ReviewReason.MANUAL,
            note=reason,
            queued_at=self._clock(),
        )
        await self.enqueue(case)
        return case

    async def enqueue(self, case: ReviewCase) -> None:
        """Add a prepared case to the queue.

        Raises:
            ConflictError: the case id is already known.
        """
        async with self._lock:
            await self._enqueue_locked(case)
        await self._emit_queued(case)

    async def hydrate(self) -> int:
        """Reload open cases from the repository. Returns the number restored."""
        if self._repository is None:
            return 0
        cases = await self._repository.load_open_cases()
        async with self._lock:
            for case in cases:
                self._cases[case.case_id] = case
                if case.status == ReviewStatus.PENDING:
                    self._queue.push(case.case_id, case.priority, case.queued_at)
        logger.info("Restored %d open review cases", len(cases))
        return len(cases)

    # ── Reviewer side ────────────────────────────────────────────────

    async def dequeue_next(self, reviewer_id: str) -> ReviewCase | None:
        """Assign the highest-priority pending case to a reviewer.

        If the assignment cannot be persisted the case goes back into the
        queue as pending and the error propagates.
        """
        async with self._lock:
            case_id = self._queue.pop()
            if case_id is None:
                return None
            pending = self._cases[case_id]
            case = pending.model_copy(update={"status": ReviewStatus.IN_REVIEW, "assigned_to": reviewer_id})
            if self._repository is not None:
                try:
                    await self._repository.save_case(case)
                except Exception:
                    self._queue.push(case_id, pending.priority, pending.queued_at)
                    raise
            self._cases[case_id] = case

        await emit(SystemEvent(
            event_type=EventType.REVIEW_CASE_ASSIGNED,
            session_id=case.session_id,
            actor_id=reviewer_id,
            actor_role="reviewer",
            data={"case_id": str(case.case_id), "priority": case.priority},
            source_module="review.gate",
        ))
        await emit(SystemEvent(
            event_type=EventType.PERSONAL_DATA_ACCESSED,
            session_id=case.session_id,
            actor_id=reviewer_id,
            actor_role="reviewer",
            data={"case_id": str(case.case_id), "purpose": "review"},
            source_module="review.gate",
        ))
        return case

    async def submit_decision(self, case_id: uuid.UUID, decision: ReviewDecision) -> list[EligibilityResult]:
        """Record a reviewer's decision and resume the session.

        Returns the effective results.

        Raises:
            NotFoundError: unknown case.
            InvalidStateError: the case is already decided or withdrawn.
            ValidationError: missing reasoning, or bad modified results.
        """
        async with self._lock:
            case = self._cases.get(case_id)
            if case is None:
                msg = f"Unknown review case {case_id}"
                raise NotFoundError(msg)
            if case.status not in _OPEN:
                msg = f"Case {case_id} is {case.status.value}"
                raise InvalidStateError(msg)
            validate_decision(case, decision)

            effective = effective_results(case, decision)
            decided = case.model_copy(update={"status": ReviewStatus.DECIDED, "decision_id": decision.decision_id})
            if self._repository is not None:
                await self._repository.save_decision(decided, decision)
            self._cases[case_id] = decided
            self._decisions[case_id] = decision
            self._queue.remove(case_id)

        await emit(SystemEvent(
            event_type=EventType.REVIEW_DECIDED,
            session_id=case.session_id,
            actor_id=decision.reviewer_id,
            actor_role="reviewer",
            data={
                "case_id": str(case_id),
                "decision_id": str(decision.decision_id),
                "kind": decision.kind.value,
                "reasoning": decision.reasoning,
                "schemes": [r.scheme_id for r in effective],
            },
            source_module="review.gate",
        ))
        logger.info("Case %s decided (%s) by %s", case_id, decision.kind.value, decision.reviewer_id)

        if self._resume_handler is not None:
            try:
                await self._resume_handler(case.session_id, decided, decision)
            except Exception:
                # The session pulls the decision on its next advance
                logger.exception("Resume of session %s after case %s failed", case.session_id, case_id)
        return effective

    # ── Queries ──────────────────────────────────────────────────────

    def get_case(self, case_id: uuid.UUID) -> ReviewCase:
        case = self._cases.get(case_id)
        if case is None:
            msg = f"Unknown review case {case_id}"
            raise NotFoundError(msg)
        return case

    def get_decision(self, case_id: uuid.UUID) -> ReviewDecision | None:
        return self._decisions.get(case_id)

    def case_age(self, case_id: uuid.UUID, now: datetime | None = None) -> int:
        """Seconds since the case was queued."""
        case = self.get_case(case_id)
        delta = (now or self._clock()) - case.queued_at
        return max(0, int(delta.total_seconds()))

    def pending_cases(self, now: datetime | None = None) -> list[PendingCaseView]:
        """Open cases, highest priority first, with their age."""
        now = now or self._clock()
        open_cases = sorted(
            (c for c in self._cases.values() if c.status in _OPEN),
            key=lambda c: (-c.priority, c.queued_at),
        )
        return [
            PendingCaseView(
                case_id=c.case_id,
                session_id=c.session_id,
                priority=c.priority,
                status=c.status,
                reason=c.reason,
                queued_at=c.queued_at,
                age_seconds=max(0, int((now - c.queued_at).total_seconds())),
            )
            for c in open_cases
        ]

    def cases_for_session(self, session_id: uuid.UUID) -> list[ReviewCase]:
        return [c for c in self._cases.values() if c.session_id == session_id]

    # ── Maintenance ──────────────────────────────────────────────────

    async def reprioritize(self, case_id: uuid.UUID, priority: int) -> ReviewCase:
        """Change the priority of a pending case (used by external ageing policies)."""
        async with self._lock:
            case = self.get_case(case_id)
            if case.status != ReviewStatus.PENDING:
                msg = f"Only pending cases can be reprioritised; case {case_id} is {case.status.value}"
                raise InvalidStateError(msg)
            case = case.model_copy(update={"priority": priority})
            if self._repository is not None:
                await self._repository.save_case(case)
            self._cases[case_id] = case
            self._queue.push(case_id, priority, case.queued_at)
        return case

    async def withdraw_session(self, session_id: uuid.UUID) -> int:
        """Withdraw the open cases of an abandoned session. Returns the count."""
        withdrawn: list[ReviewCase] = []
        async with self._lock:
            for case in list(self._cases.values()):
                if case.session_id != session_id or case.status not in _OPEN:
                    continue
                updated = case.model_copy(update={"status": ReviewStatus.WITHDRAWN})
                if self._repository is not None:
                    await self._repository.save_case(updated)
                self._cases[case.case_id] = updated
                self._queue.remove(case.case_id)
                withdrawn.append(updated)

        for case in withdrawn:
            await emit(SystemEvent(
                event_type=EventType.REVIEW_CASE_WITHDRAWN,
                session_id=session_id,
                data={"case_id": str(case.case_id)},
                source_module="review.gate",
            ))
        return len(withdrawn)

    async def purge_session(self, session_id: uuid.UUID) -> int:
        """Delete every case and decision of a session. Returns the number of cases removed."""
        async with self._lock:
            case_ids = [cid for cid, c in self._cases.items() if c.session_id == session_id]
            for case_id in case_ids:
                del self._cases[case_id]
                self._decisions.pop(case_id, None)
                self._queue.remove(case_id)
            removed = len(case_ids)
            if self._repository is not None:
                removed = max(removed, await self._repository.delete_session(session_id))
        return removed

    # ── Internals ────────────────────────────────────────────────────

    async def _enqueue_locked(self, case: ReviewCase) -> None:
        if case.case_id in self._cases:
            msg = f"Review case {case.case_id} is already queued"
            raise ConflictError(msg)
        if self._repository is not None:
            await self._repository.save_case(case)
        self._cases[case.case_id] = case
        self._queue.push(case.case_id, case.priority, case.queued_at)
        logger.info(
            "Queued review case %s for session %s (reason=%s, priority=%d)",
            case.case_id,
            case.session_id,
            case.reason.value,
            case.priority,
        )

    async def _emit_queued(self, case: ReviewCase) -> None:
        await emit(SystemEvent(
            event_type=EventType.REVIEW_CASE_QUEUED,
            session_id=case.session_id,
            data={
                "case_id": str(case.case_id),
                "reason": case.reason.value,
                "priority": case.priority,
                "schemes": [r.scheme_id for r in case.results],
            },
            source_module="review.gate",
        ))
