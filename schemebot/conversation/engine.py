"""Conversation orchestrator — drives one citizen session from greeting to output.

Receives structured utterance events from the speech/NLU layer, fills the
profile, decides which question to ask next from what the considered schemes
still need, and hands the profile to the eligibility service. Uncertain
results suspend the session in HUMAN_REVIEW_WAIT until the review gate calls
`resume_after_review` (or the next `advance` pulls the decision).

Every mutation of a session happens under its lock. Live states are cached
in memory; the session store is the durable copy.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from pydantic import ValidationError as PydanticValidationError

from schemebot.config import settings
from schemebot.conversation.fsm import FSM
from schemebot.conversation.locks import SessionLocks
from schemebot.conversation.questions import (
    PHASE_PROMPTS,
    lower_level,
    next_field,
    question_key,
    question_text,
    raise_level,
)
from schemebot.conversation.summary import summarize_for_confirmation
from schemebot.eligibility.service import EligibilityService
from schemebot.errors import InfrastructureError, InvalidStateError, NotFoundError
from schemebot.events import emit
from schemebot.models.enums import (
    ConversationPhase,
    OutcomeKind,
    SessionOutcome,
    Signal,
    TurnRole,
)
from schemebot.persistence.retry import with_retries
from schemebot.persistence.sessions import SessionStore
from schemebot.review.gate import ReviewGate, effective_results
from schemebot.rules.store import SchemeRuleStore
from schemebot.schemas.conversation import (
    ConversationState,
    FieldExtraction,
    PendingQuestion,
    Turn,
    TurnOutcome,
    UtteranceEvent,
)
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.events import EventType, SystemEvent
from schemebot.schemas.profile import FIELD_REGISTRY
from schemebot.schemas.review import ReviewCase, ReviewDecision
from schemebot.schemas.rules import SchemeVersion

logger = logging.getLogger(__name__)

# Outcomes that carry a state snapshot for the explanation/output layer
_SNAPSHOT_KINDS = {OutcomeKind.EXPLANATION, OutcomeKind.OUTPUT}


def _explain(results: list[EligibilityResult]) -> str:
    lines = [PHASE_PROMPTS["explanation"]]
    for result in results:
        verdict = "eligible" if result.eligible else "not eligible"
        line = f"- {result.scheme_id}: {verdict} (confidence {result.confidence}%)"
        if result.excluded_by:
            line += f" ({result.excluded_by})"
        lines.append(line)
    return "\n".join(lines)


def _output(results: list[EligibilityResult]) -> str:
    lines = [PHASE_PROMPTS["output"]]
    for result in results:
        if not result.eligible:
            continue
        docs = ", ".join(result.missing_documents) if result.missing_documents else "none missing"
        lines.append(f"- {result.scheme_id}: documents to bring: {docs}")
    return "\n".join(lines)


def _final_outcome(results: list[EligibilityResult]) -> SessionOutcome:
    if any(r.decided_by is not None for r in results):
        return SessionOutcome.REVIEWED
    if any(r.eligible for r in results):
        return SessionOutcome.ELIGIBLE
    return SessionOutcome.NOT_ELIGIBLE


class ConversationEngine:
    """Orchestrates the conversation flow for all sessions."""

    def __init__(
        self,
        store: SessionStore,
        rules: SchemeRuleStore,
        eligibility: EligibilityService,
        gate: ReviewGate,
        clock: Callable[[], datetime] | None = None,
        max_attempts: int | None = None,
        confidence_threshold: int | None = None,
    ) -> None:
        self._store = store
        self._rules = rules
        self._eligibility = eligibility
        self._gate = gate
        self._clock = clock or (lambda: datetime.now(UTC))
        self._max_attempts = max_attempts or settings.conversation.max_attempts
        self._threshold = (
            confidence_threshold
            if confidence_threshold is not None
            else settings.conversation.extraction_confidence_threshold
        )
        self._live: dict[uuid.UUID, ConversationState] = {}
        self._locks = SessionLocks()

    # ── Session lifecycle ────────────────────────────────────────────

    async def start(
        self,
        user_id: str,
        language: str | None = None,
        scheme_ids: list[str] | None = None,
    ) -> tuple[ConversationState, TurnOutcome]:
        """Create a session in GREETING and persist it.

        Raises:
            NotFoundError: a requested scheme has no active version.
        """
        if scheme_ids is not None:
            active = set(self._rules.active_scheme_ids())
            unknown = [sid for sid in scheme_ids if sid not in active]
            if unknown:
                msg = f"No active version for schemes {unknown}"
                raise NotFoundError(msg)

        now = self._clock()
        state = ConversationState(
            user_id=user_id,
            language=language or settings.conversation.default_language,
            scheme_ids=scheme_ids,
            created_at=now,
            updated_at=now,
        )
        self._live[state.session_id] = state

        await emit(SystemEvent(
            event_type=EventType.SESSION_STARTED,
            session_id=state.session_id,
            actor_id=user_id,
            actor_role="citizen",
            data={"language": state.language, "scheme_ids": scheme_ids},
            source_module="conversation.engine",
        ))
        logger.info("Created new session: id=%s user=%s", state.session_id, user_id)

        async with self._locks.get(state.session_id):
            outcome = await self._finish(state, self._outcome(state, OutcomeKind.GREETING, "greeting"))
        return state.model_copy(deep=True), outcome

    async def advance(self, session_id: uuid.UUID, event: UtteranceEvent) -> TurnOutcome:
        """Process one utterance and return what the front end should say next.

        Raises:
            NotFoundError: unknown session.
            InvalidStateError: the session is complete or abandoned.
        """
        async with self._locks.get(session_id):
            state = await self._load(session_id)
            if state.is_terminal:
                msg = f"Session {session_id} is {state.phase.value}"
                raise InvalidStateError(msg)

            if event.text:
                state.turns.append(Turn(role=TurnRole.USER, text=event.text, phase=state.phase, at=self._clock()))

            if event.signal == Signal.ESCALATE:
                outcome = await self._escalate_locked(state, event.text or "requested by citizen")
            else:
                outcome = await self._dispatch(state, event)
            return await self._finish(state, outcome)

    async def resume_after_review(
        self,
        session_id: uuid.UUID,
        case: ReviewCase,
        decision: ReviewDecision,
    ) -> TurnOutcome | None:
        """Review gate callback: apply the decision and move on to explanation.

        Returns None when the session is no longer waiting on this case.
        """
        async with self._locks.get(session_id):
            state = await self._load(session_id)
            if state.phase != ConversationPhase.HUMAN_REVIEW_WAIT or state.review_case_id != case.case_id:
                logger.info(
                    "Session %s is not waiting on case %s (phase=%s); ignoring decision",
                    session_id,
                    case.case_id,
                    state.phase.value,
                )
                return None
            outcome = await self._apply_decision(state, case, decision)
            return await self._finish(state, outcome)

    async def escalate(self, session_id: uuid.UUID, reason: str) -> TurnOutcome:
        """Hand an active session to a human reviewer."""
        async with self._locks.get(session_id):
            state = await self._load(session_id)
            if state.is_terminal:
                msg = f"Session {session_id} is {state.phase.value}"
                raise InvalidStateError(msg)
            outcome = await self._escalate_locked(state, reason)
            return await self._finish(state, outcome)

    async def persist(self, session_id: uuid.UUID) -> bool:
        """Write the live state to the store. Returns False if it is pending recovery."""
        async with self._locks.get(session_id):
            state = self._live.get(session_id)
            if state is None:
                msg = f"Session {session_id} is not active in this process"
                raise NotFoundError(msg)
            return await self._save(state)

    async def restore(self, session_id: uuid.UUID) -> ConversationState:
        """Return the session state, preferring the live cache over the store."""
        async with self._locks.get(session_id):
            state = await self._load(session_id)
            snapshot = state.model_copy(deep=True)
        await emit(SystemEvent(
            event_type=EventType.PERSONAL_DATA_ACCESSED,
            session_id=session_id,
            data={"purpose": "restore"},
            source_module="conversation.engine",
        ))
        return snapshot

    async def disconnect(self, session_id: uuid.UUID) -> bool:
        """Persist and evict the live state. It stays cached if the save fails."""
        async with self._locks.get(session_id):
            state = self._live.get(session_id)
            if state is None:
                return True
            saved = await self._save(state)
            if saved:
                del self._live[session_id]
        if saved:
            self._locks.discard(session_id)
        return saved

    async def abandon(self, session_id: uuid.UUID) -> TurnOutcome:
        """Finalize a session as abandoned and schedule its deletion."""
        async with self._locks.get(session_id):
            state = await self._load(session_id)
            if state.phase == ConversationPhase.COMPLETE:
                msg = f"Session {session_id} is already complete"
                raise InvalidStateError(msg)
            if state.phase != ConversationPhase.ABANDONED:
                await self._move(state, "abandon")
                state.outcome = SessionOutcome.ABANDONED
                state.pending_question = None
                state.deletion_due_at = self._clock() + timedelta(hours=settings.abandoned_grace_hours)
                withdrawn = await self._gate.withdraw_session(session_id)
                await emit(SystemEvent(
                    event_type=EventType.SESSION_ABANDONED,
                    session_id=session_id,
                    data={
                        "withdrawn_cases": withdrawn,
                        "deletion_due_at": state.deletion_due_at.isoformat(),
                    },
                    source_module="conversation.engine",
                ))
                logger.info("Session %s abandoned; deletion due %s", session_id, state.deletion_due_at)
            outcome = await self._finish(state, self._outcome(state, OutcomeKind.ABANDONED, "abandoned"))
            if not state.pending_recovery:
                self._live.pop(session_id, None)
        self._locks.discard(session_id)
        return outcome

    async def summarize(self, session_id: uuid.UUID) -> str:
        """Confirmation summary for an operator or the front end (audited)."""
        state = await self.restore(session_id)
        return summarize_for_confirmation(state)

    async def erase(self, session_id: uuid.UUID) -> tuple[bool, bool]:
        """Delete the stored state and drop the live state of a session.

        Runs under the session lock: a turn already in flight finishes its
        save first, and later turns find no session. Returns whether stored
        state and live state existed.

        Raises:
            InfrastructureError: the session store stayed unavailable.
        """
        async with self._locks.get(session_id):
            stored = await with_retries(
                lambda: self._store.delete(session_id),
                description=f"deletion of session {session_id}",
            )
            live = self._live.pop(session_id, None) is not None
        self._locks.discard(session_id)
        return stored, live

    def live_session_ids(self) -> list[uuid.UUID]:
        return list(self._live)

    # ── Phase handlers ───────────────────────────────────────────────

    async def _dispatch(self, state: ConversationState, event: UtteranceEvent) -> TurnOutcome:
        phase = state.phase
        if phase == ConversationPhase.GREETING:
            await self._move(state, "begin")
            await self._apply_confident(state, event.extractions)
            return await self._ask_next(state)
        if phase == ConversationPhase.INFO_COLLECTION:
            return await self._collect(state, event)
        if phase == ConversationPhase.CONFIRMATION:
            return await self._confirm(state, event)
        if phase == ConversationPhase.ELIGIBILITY_CHECK:
            return await self._run_eligibility(state)
        if phase == ConversationPhase.HUMAN_REVIEW_WAIT:
            return await self._await_review(state)
        if phase == ConversationPhase.EXPLANATION:
            await self._move(state, "proceed")
            return self._outcome(state, OutcomeKind.OUTPUT, "output", prompt=_output(state.results), results=state.results)
        if phase == ConversationPhase.OUTPUT_GENERATION:
            await self._move(state, "delivered")
            state.outcome = _final_outcome(state.results)
            await emit(SystemEvent(
                event_type=EventType.SESSION_COMPLETED,
                session_id=state.session_id,
                data={"outcome": state.outcome.value, "schemes": [r.scheme_id for r in state.results]},
                source_module="conversation.engine",
            ))
            return self._outcome(state, OutcomeKind.COMPLETE, "complete", results=state.results)
        msg = f"No handler for phase {phase.value}"
        raise InvalidStateError(msg)

    async def _collect(self, state: ConversationState, event: UtteranceEvent) -> TurnOutcome:
        pending = state.pending_question
        answered = await self._apply_confident(state, event.extractions, pending)

        if pending is None:
            return await self._ask_next(state)

        if answered:
            if pending.attempts == 0:
                state.comprehension_level = raise_level(state.comprehension_level)
            state.pending_question = None
            return await self._ask_next(state)

        # Low-confidence or missing answer for the pending field
        pending.attempts += 1
        state.comprehension_level = lower_level(state.comprehension_level)
        if pending.attempts >= pending.max_attempts:
            self._give_up(state, pending)
            await emit(SystemEvent(
                event_type=EventType.DATA_UNRESOLVED,
                session_id=state.session_id,
                data={"field": pending.field, "attempts": pending.attempts, "had_guess": pending.last_guess is not None},
                source_module="conversation.engine",
            ))
            state.pending_question = None
            return await self._ask_next(state)

        prompt = f"{PHASE_PROMPTS['clarify']} {question_text(pending.field, state.comprehension_level)}"
        return self._outcome(state, OutcomeKind.CLARIFY, "clarify", prompt=prompt, field=pending.field)

    async def _confirm(self, state: ConversationState, event: UtteranceEvent) -> TurnOutcome:
        corrections = [ex for ex in event.extractions if ex.field in FIELD_REGISTRY]
        if corrections:
            confident = [ex for ex in corrections if ex.confidence >= self._threshold]
            if confident and await self._apply_confident(state, confident):
                return self._confirmation_outcome(state)
            return self._outcome(state, OutcomeKind.CLARIFY, "confirm.retry")

        if event.signal == Signal.CONFIRM:
            state.confirmed_fields = set(state.profile.populated_fields())
            await emit(SystemEvent(
                event_type=EventType.DATA_CONFIRMED,
                session_id=state.session_id,
                data={"fields": sorted(state.confirmed_fields), "completeness": state.profile.completeness},
                source_module="conversation.engine",
            ))
            await self._move(state, "confirmed")
            return await self._run_eligibility(state)

        if event.signal == Signal.DENY:
            return self._outcome(state, OutcomeKind.CLARIFY, "confirm.retry")

        return self._confirmation_outcome(state)

    async def _run_eligibility(self, state: ConversationState) -> TurnOutcome:
        scheme_ids = await self._considered_schemes(state)
        if not scheme_ids and state.retired_schemes:
            return await self._escalate_locked(
                state, f"requested schemes were retired: {', '.join(state.retired_schemes)}"
            )

        results = await with_retries(
            lambda: self._eligibility.check(state.profile, scheme_ids, session_id=state.session_id),
            description=f"eligibility check for session {state.session_id}",
        )
        state.results = results

        case = await self._gate.submit_for_review(state.session_id, state.profile, results)
        if case is not None:
            state.review_case_id = case.case_id
            await self._move(state, "needs_review")
            return self._outcome(
                state,
                OutcomeKind.REVIEW_PENDING,
                "review_pending",
                review_case_id=case.case_id,
                review_age_seconds=0,
            )

        await self._move(state, "clear")
        return self._outcome(state, OutcomeKind.EXPLANATION, "explanation", prompt=_explain(results), results=results)

    async def _await_review(self, state: ConversationState) -> TurnOutcome:
        case_id = state.review_case_id
        decision = self._gate.get_decision(case_id) if case_id is not None else None
        if decision is not None and case_id is not None:
            logger.info("Session %s picked up decision for case %s", state.session_id, case_id)
            return await self._apply_decision(state, self._gate.get_case(case_id), decision)

        age: int | None = None
        if case_id is not None:
            try:
                age = self._gate.case_age(case_id)
            except NotFoundError:
                logger.warning("Review case %s of session %s is not in the queue", case_id, state.session_id)
        return self._outcome(
            state,
            OutcomeKind.REVIEW_PENDING,
            "review_pending",
            review_case_id=case_id,
            review_age_seconds=age,
        )

    async def _apply_decision(
        self,
        state: ConversationState,
        case: ReviewCase,
        decision: ReviewDecision,
    ) -> TurnOutcome:
        state.results = effective_results(case, decision)
        await self._move(state, "review_decided")
        await emit(SystemEvent(
            event_type=EventType.SESSION_RESUMED,
            session_id=state.session_id,
            data={"case_id": str(case.case_id), "decision_id": str(decision.decision_id), "kind": decision.kind.value},
            source_module="conversation.engine",
        ))
        return self._outcome(
            state,
            OutcomeKind.EXPLANATION,
            "explanation",
            prompt=_explain(state.results),
            results=state.results,
            review_case_id=case.case_id,
        )

    async def _escalate_locked(self, state: ConversationState, reason: str) -> TurnOutcome:
        if state.phase == ConversationPhase.HUMAN_REVIEW_WAIT:
            return await self._await_review(state)

        case = await self._gate.escalate_manually(
            state.session_id, reason, profile=state.profile, results=state.results
        )
        from_phase = state.phase
        state.review_case_id = case.case_id
        state.pending_question = None
        await self._move(state, "escalate")
        await emit(SystemEvent(
            event_type=EventType.SESSION_ESCALATED,
            session_id=state.session_id,
            data={"reason": reason, "from_phase": from_phase.value, "case_id": str(case.case_id)},
            source_module="conversation.engine",
        ))
        return self._outcome(
            state,
            OutcomeKind.REVIEW_PENDING,
            "escalated",
            review_case_id=case.case_id,
            review_age_seconds=0,
        )

    # ── Question planning ────────────────────────────────────────────

    async def _ask_next(self, state: ConversationState) -> TurnOutcome:
        field = next_field(state.profile, await self._versions(state))
        if field is None:
            state.pending_question = None
            await self._move(state, "collected")
            return self._confirmation_outcome(state)

        state.pending_question = PendingQuestion(field=field, max_attempts=self._max_attempts)
        await self._move(state, "next_question")
        return self._outcome(
            state,
            OutcomeKind.QUESTION,
            question_key(field, state.comprehension_level),
            prompt=question_text(field, state.comprehension_level),
            field=field,
        )

    async def _versions(self, state: ConversationState) -> list[SchemeVersion]:
        return [
            await self._rules.get_current_version(scheme_id, session_id=state.session_id)
            for scheme_id in await self._considered_schemes(state)
        ]

    async def _considered_schemes(self, state: ConversationState) -> list[str]:
        """Schemes still in play; requested schemes retired since the session began are dropped."""
        active = self._rules.active_scheme_ids()
        if state.scheme_ids is None:
            return active
        retired = [sid for sid in state.scheme_ids if sid not in active]
        if retired:
            state.scheme_ids = [sid for sid in state.scheme_ids if sid in active]
            state.retired_schemes.extend(retired)
            logger.warning(
                "Session %s: schemes %s were retired and are no longer considered",
                state.session_id,
                retired,
            )
            await emit(SystemEvent(
                event_type=EventType.SESSION_SCHEMES_RETIRED,
                session_id=state.session_id,
                data={"retired": retired, "remaining": list(state.scheme_ids), "phase": state.phase.value},
                source_module="conversation.engine",
            ))
        return state.scheme_ids

    async def _apply_confident(
        self,
        state: ConversationState,
        extractions: list[FieldExtraction],
        pending: PendingQuestion | None = None,
    ) -> bool | None:
        """Write confident extractions to the profile.

        Returns True if the pending field was answered, False if it was not,
        None when nothing at all was written.
        """
        wrote = False
        answered = False
        for extraction in extractions:
            if extraction.field not in FIELD_REGISTRY:
                logger.warning("Ignoring extraction for unknown field %s", extraction.field)
                continue
            is_pending = pending is not None and extraction.field == pending.field
            if extraction.confidence < self._threshold:
                if is_pending:
                    pending.last_guess = extraction.value  # type: ignore[union-attr]
                continue
            try:
                state.profile.set_field(extraction.field, extraction.value, extraction.confidence)
            except PydanticValidationError:
                logger.warning("Extracted value for %s does not fit the field type", extraction.field)
                continue
            wrote = True
            answered = answered or is_pending
            state.confirmed_fields.discard(extraction.field)
            # field name and confidence only; values stay out of the audit trail
            await emit(SystemEvent(
                event_type=EventType.DATA_EXTRACTED,
                session_id=state.session_id,
                data={"field": extraction.field, "confidence": extraction.confidence},
                source_module="conversation.engine",
            ))
        if pending is not None:
            return answered
        return True if wrote else None

    def _give_up(self, state: ConversationState, pending: PendingQuestion) -> None:
        try:
            state.profile.mark_unresolved(pending.field, best_guess=pending.last_guess)
        except PydanticValidationError:
            state.profile.mark_unresolved(pending.field)

    def _confirmation_outcome(self, state: ConversationState) -> TurnOutcome:
        summary = summarize_for_confirmation(state)
        prompt = f"{PHASE_PROMPTS['confirm']}\n{summary}" if summary else PHASE_PROMPTS["confirm"]
        return self._outcome(state, OutcomeKind.CONFIRM, "confirm", prompt=prompt)

    # ── Plumbing ─────────────────────────────────────────────────────

    async def _move(self, state: ConversationState, trigger: str) -> None:
        fsm = FSM(state.session_id, state.phase)
        state.phase = await fsm.transition(trigger)

    async def _load(self, session_id: uuid.UUID) -> ConversationState:
        state = self._live.get(session_id)
        if state is not None:
            return state
        state = await with_retries(
            lambda: self._store.load(session_id),
            description=f"load of session {session_id}",
        )
        if state is None:
            msg = f"Unknown session {session_id}"
            raise NotFoundError(msg)
        self._live[session_id] = state
        return state

    async def _save(self, state: ConversationState) -> bool:
        state.updated_at = self._clock()
        was_pending = state.pending_recovery
        state.pending_recovery = False
        try:
            await with_retries(
                lambda: self._store.save(state),
                description=f"save of session {state.session_id}",
            )
        except InfrastructureError:
            state.pending_recovery = True
            if not was_pending:
                await emit(SystemEvent(
                    event_type=EventType.SESSION_PENDING_RECOVERY,
                    session_id=state.session_id,
                    data={"phase": state.phase.value},
                    source_module="conversation.engine",
                ))
            logger.error("Session %s kept in memory pending recovery", state.session_id)
            return False
        if was_pending:
            logger.info("Session %s recovered; state persisted", state.session_id)
        return True

    async def _finish(self, state: ConversationState, outcome: TurnOutcome) -> TurnOutcome:
        state.turns.append(Turn(role=TurnRole.SYSTEM, text=outcome.prompt, phase=state.phase, at=self._clock()))
        saved = await self._save(state)

        update: dict[str, object] = {
            "phase": state.phase,
            "comprehension_level": state.comprehension_level,
            "progress_saved_locally": not saved,
        }
        if not saved:
            update["prompt"] = f"{outcome.prompt}\n{PHASE_PROMPTS['progress_saved']}"
        if outcome.kind in _SNAPSHOT_KINDS:
            update["state"] = state.model_copy(deep=True)
        return outcome.model_copy(update=update)

    def _outcome(
        self,
        state: ConversationState,
        kind: OutcomeKind,
        prompt_key: str,
        prompt: str | None = None,
        field: str | None = None,
        results: list[EligibilityResult] | None = None,
        review_case_id: uuid.UUID | None = None,
        review_age_seconds: int | None = None,
    ) -> TurnOutcome:
        return TurnOutcome(
            session_id=state.session_id,
            kind=kind,
            phase=state.phase,
            prompt_key=prompt_key,
            prompt=prompt if prompt is not None else PHASE_PROMPTS[prompt_key],
            field=field,
            comprehension_level=state.comprehension_level,
            results=list(results or []),
            review_case_id=review_case_id,
            review_age_seconds=review_age_seconds,
        )
