"""Tests for ReviewGate — intake, assignment, decisions and session cleanup."""

from __future__ import annotations

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from schemebot.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from schemebot.models.enums import DecisionKind, ReviewReason, ReviewStatus
from schemebot.review.gate import ReviewGate, compute_priority, effective_results, needs_review
from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.events import EventType
from schemebot.schemas.review import ReviewDecision


# ── Helpers ──────────────────────────────────────────────────────────


def _result(
    scheme_id: str = "old_age_pension",
    eligible: bool = True,
    confidence: int = 55,
    reason: ReviewReason | None = ReviewReason.LOW_CONFIDENCE,
) -> EligibilityResult:
    return EligibilityResult(
        scheme_id=scheme_id,
        version=1,
        eligible=eligible,
        confidence=confidence,
        requires_human_review=reason is not None,
        review_reason=reason,
        reasoning=("Age 60 or older: met (certainty 55)",),
    )


def _decision(case, kind: DecisionKind, reasoning: str = "documents checked", **extra) -> ReviewDecision:
    return ReviewDecision(case_id=case.case_id, reviewer_id="rev-1", kind=kind, reasoning=reasoning, **extra)


@pytest.fixture()
def gate(clock) -> ReviewGate:
    return ReviewGate(clock=clock)


# ── Pure helpers ─────────────────────────────────────────────────────


class TestHelpers:
    def test_needs_review(self) -> None:
        assert needs_review(_result(confidence=69, reason=None)) is True
        assert needs_review(_result(confidence=70, reason=None)) is False
        assert needs_review(_result(confidence=95, reason=ReviewReason.AMBIGUOUS_RULES)) is True

    def test_priority(self) -> None:
        assert compute_priority(55, manual=False) == 15
        assert compute_priority(90, manual=False) == 0
        assert compute_priority(70, manual=True, bonus=50) == 50
        assert compute_priority(40, manual=True, bonus=10) == 40


# ── Intake ───────────────────────────────────────────────────────────


class TestSubmitForReview:
    @pytest.mark.asyncio
    async def test_confident_results_are_not_queued(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(confidence=80, reason=None)])
        assert case is None
        assert gate.pending_cases() == []

    @pytest.mark.asyncio
    async def test_low_confidence_case(self, gate, make_profile, recorded_events) -> None:
        session_id = uuid.uuid4()
        case = await gate.submit_for_review(session_id, make_profile(), [_result(confidence=55)])

        assert case.priority == 15
        assert case.reason == ReviewReason.LOW_CONFIDENCE
        assert case.status == ReviewStatus.PENDING
        assert case.reasoning == ("[old_age_pension] Age 60 or older: met (certainty 55)",)
        queued = recorded_events.of_type(EventType.REVIEW_CASE_QUEUED)
        assert len(queued) == 1
        assert queued[0].data["priority"] == 15

    @pytest.mark.asyncio
    async def test_ambiguous_rules_get_the_bonus(self, clock, make_profile) -> None:
        gate = ReviewGate(clock=clock, manual_escalation_bonus=30)
        case = await gate.submit_for_review(
            uuid.uuid4(), make_profile(), [_result(confidence=0, reason=ReviewReason.AMBIGUOUS_RULES)]
        )
        assert case.reason == ReviewReason.AMBIGUOUS_RULES
        assert case.priority == 100

    @pytest.mark.asyncio
    async def test_same_snapshot_is_queued_once(self, gate, make_profile) -> None:
        session_id = uuid.uuid4()
        profile = make_profile({"personal.age": (65, 55)})
        results = [_result()]

        first = await gate.submit_for_review(session_id, profile, results)
        second = await gate.submit_for_review(session_id, profile.snapshot(), results)

        assert second.case_id == first.case_id
        assert len(gate.pending_cases()) == 1

    @pytest.mark.asyncio
    async def test_case_keeps_its_own_profile_copy(self, gate, make_profile) -> None:
        profile = make_profile({"personal.age": (65, 55)})
        case = await gate.submit_for_review(uuid.uuid4(), profile, [_result()])
        profile.set_field("personal.age", 20, 100)
        assert gate.get_case(case.case_id).profile.get_value("personal.age") == 65

    @pytest.mark.asyncio
    async def test_duplicate_enqueue(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        with pytest.raises(ConflictError):
            await gate.enqueue(case)


class TestEscalateManually:
    @pytest.mark.asyncio
    async def test_without_results(self, clock, make_profile) -> None:
        gate = ReviewGate(clock=clock, manual_escalation_bonus=50)
        case = await gate.escalate_manually(uuid.uuid4(), "citizen asked for a person")
        assert case.reason == ReviewReason.MANUAL
        assert case.note == "citizen asked for a person"
        assert case.priority == 50

    @pytest.mark.asyncio
    async def test_manual_outranks_low_confidence(self, clock, make_profile) -> None:
        gate = ReviewGate(clock=clock, manual_escalation_bonus=50)
        low = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(confidence=30)])
        clock.advance(minutes=1)
        manual = await gate.escalate_manually(uuid.uuid4(), "help", results=[_result(confidence=80, reason=None)])

        assert manual.priority == 50 > low.priority == 40
        assert (await gate.dequeue_next("rev-1")).case_id == manual.case_id


# ── Reviewer side ────────────────────────────────────────────────────


class TestDequeue:
    @pytest.mark.asyncio
    async def test_empty_queue(self, gate) -> None:
        assert await gate.dequeue_next("rev-1") is None

    @pytest.mark.asyncio
    async def test_assignment_is_audited(self, gate, make_profile, recorded_events) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        assigned = await gate.dequeue_next("rev-1")

        assert assigned.case_id == case.case_id
        assert assigned.status == ReviewStatus.IN_REVIEW
        assert assigned.assigned_to == "rev-1"
        access = recorded_events.of_type(EventType.PERSONAL_DATA_ACCESSED)
        assert access[-1].actor_id == "rev-1"
        assert access[-1].data["purpose"] == "review"
        assert await gate.dequeue_next("rev-2") is None

    @pytest.mark.asyncio
    async def test_concurrent_reviewers_get_distinct_cases(self, gate, make_profile) -> None:
        for _ in range(3):
            await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        assigned = await asyncio.gather(*[gate.dequeue_next(f"rev-{i}") for i in range(4)])
        got = [c.case_id for c in assigned if c is not None]
        assert len(got) == len(set(got)) == 3

    @pytest.mark.asyncio
    async def test_failed_assignment_keeps_case_pending(self, clock, make_profile, recorded_events) -> None:
        repo = AsyncMock()
        gate = ReviewGate(repository=repo, clock=clock)
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        repo.save_case.side_effect = [RuntimeError("db down"), None]

        with pytest.raises(RuntimeError):
            await gate.dequeue_next("rev-1")

        assert gate.get_case(case.case_id).status == ReviewStatus.PENDING
        assert gate.pending_cases()[0].case_id == case.case_id
        assert recorded_events.of_type(EventType.REVIEW_CASE_ASSIGNED) == []

        assigned = await gate.dequeue_next("rev-2")
        assert assigned.case_id == case.case_id
        assert assigned.status == ReviewStatus.IN_REVIEW
        assert assigned.assigned_to == "rev-2"


class TestSubmitDecision:
    @pytest.mark.asyncio
    async def test_approve(self, gate, make_profile, recorded_events) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        decision = _decision(case, DecisionKind.APPROVE)

        effective = await gate.submit_decision(case.case_id, decision)

        assert effective[0].eligible is True
        assert effective[0].confidence == 55
        assert effective[0].decided_by == decision.decision_id
        assert effective[0].requires_human_review is False
        assert effective[0].reasoning[-1] == "Reviewed by rev-1: approve (documents checked)"
        assert gate.get_case(case.case_id).status == ReviewStatus.DECIDED
        assert gate.get_decision(case.case_id) == decision
        assert len(recorded_events.of_type(EventType.REVIEW_DECIDED)) == 1

    @pytest.mark.asyncio
    async def test_override_needs_reasoning(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(eligible=True)])
        with pytest.raises(ValidationError):
            await gate.submit_decision(case.case_id, _decision(case, DecisionKind.REJECT, reasoning="  "))
        assert gate.get_case(case.case_id).status == ReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_reject(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(eligible=True)])
        effective = await gate.submit_decision(
            case.case_id, _decision(case, DecisionKind.REJECT, reasoning="income proof is forged")
        )
        assert effective[0].eligible is False
        assert effective[0].confidence == 100
        assert effective[0].reasoning[-1] == "Reviewed by rev-1: reject (income proof is forged)"

    @pytest.mark.asyncio
    async def test_reject_of_ineligible_result_needs_reasoning(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(eligible=False)])
        with pytest.raises(ValidationError, match="kind 'reject' must include reasoning"):
            await gate.submit_decision(case.case_id, _decision(case, DecisionKind.REJECT, reasoning=""))
        assert gate.get_case(case.case_id).status == ReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_approve_needs_reasoning(self, gate, make_profile, recorded_events) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        with pytest.raises(ValidationError, match="kind 'approve' must include reasoning"):
            await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE, reasoning=" \n"))
        assert gate.get_decision(case.case_id) is None
        assert recorded_events.of_type(EventType.REVIEW_DECIDED) == []

    @pytest.mark.asyncio
    async def test_modify(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(
            uuid.uuid4(), make_profile(),
            [_result("old_age_pension", eligible=False), _result("widow_pension", eligible=False, reason=None, confidence=90)],
        )
        replacement = _result("old_age_pension", eligible=True, confidence=95, reason=None)
        decision = _decision(
            case, DecisionKind.MODIFY, reasoning="birth certificate confirms age", modified_results=(replacement,)
        )

        effective = await gate.submit_decision(case.case_id, decision)

        by_id = {r.scheme_id: r for r in effective}
        assert by_id["old_age_pension"].eligible is True
        assert by_id["old_age_pension"].confidence == 95
        assert by_id["widow_pension"].eligible is False
        assert all(r.decided_by == decision.decision_id for r in effective)

    @pytest.mark.asyncio
    async def test_modify_rejects_unknown_schemes(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        decision = _decision(
            case, DecisionKind.MODIFY, reasoning="x", modified_results=(_result("something_else"),)
        )
        with pytest.raises(ValidationError, match="outside the case"):
            await gate.submit_decision(case.case_id, decision)

    def test_result_confidence_is_bounded(self) -> None:
        with pytest.raises(PydanticValidationError):
            _result(confidence=250)
        with pytest.raises(PydanticValidationError):
            _result(confidence=-1)

    @pytest.mark.asyncio
    async def test_modify_rejects_confidence_out_of_range(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        # model_copy does not re-run field validation
        replacement = _result(confidence=90, reason=None).model_copy(update={"confidence": 250})
        decision = _decision(case, DecisionKind.MODIFY, modified_results=(replacement,))

        with pytest.raises(ValidationError, match="outside 0-100"):
            await gate.submit_decision(case.case_id, decision)
        assert gate.get_case(case.case_id).status == ReviewStatus.PENDING

    @pytest.mark.asyncio
    async def test_modify_rejects_another_version(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        replacement = _result(confidence=90, reason=None).model_copy(update={"version": 7})
        decision = _decision(case, DecisionKind.MODIFY, modified_results=(replacement,))

        with pytest.raises(ValidationError, match="evaluated against version 1"):
            await gate.submit_decision(case.case_id, decision)
        assert gate.get_decision(case.case_id) is None

    @pytest.mark.asyncio
    async def test_modify_without_results(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        with pytest.raises(ValidationError):
            await gate.submit_decision(case.case_id, _decision(case, DecisionKind.MODIFY, reasoning="x"))

    @pytest.mark.asyncio
    async def test_decision_for_another_case(self, gate, make_profile) -> None:
        a = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        b = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        with pytest.raises(ValidationError):
            await gate.submit_decision(a.case_id, _decision(b, DecisionKind.APPROVE))

    @pytest.mark.asyncio
    async def test_unknown_case(self, gate) -> None:
        decision = ReviewDecision(case_id=uuid.uuid4(), reviewer_id="rev-1", kind=DecisionKind.APPROVE)
        with pytest.raises(NotFoundError):
            await gate.submit_decision(decision.case_id, decision)

    @pytest.mark.asyncio
    async def test_case_is_decided_once(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE))
        with pytest.raises(InvalidStateError):
            await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE))

    @pytest.mark.asyncio
    async def test_decided_case_leaves_the_queue(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE))
        assert await gate.dequeue_next("rev-1") is None
        assert gate.pending_cases() == []

    @pytest.mark.asyncio
    async def test_resume_handler_is_called(self, gate, make_profile) -> None:
        handler = AsyncMock()
        gate.set_resume_handler(handler)
        session_id = uuid.uuid4()
        case = await gate.submit_for_review(session_id, make_profile(), [_result()])
        decision = _decision(case, DecisionKind.APPROVE)

        await gate.submit_decision(case.case_id, decision)

        handler.assert_awaited_once()
        args = handler.await_args.args
        assert args[0] == session_id
        assert args[1].status == ReviewStatus.DECIDED
        assert args[2] == decision

    @pytest.mark.asyncio
    async def test_failing_resume_handler_does_not_lose_decision(self, gate, make_profile) -> None:
        gate.set_resume_handler(AsyncMock(side_effect=RuntimeError("session store down")))
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])

        effective = await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE))

        assert effective
        assert gate.get_case(case.case_id).status == ReviewStatus.DECIDED


class TestEffectiveResults:
    @pytest.mark.asyncio
    async def test_original_case_results_untouched(self, gate, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        decision = _decision(case, DecisionKind.REJECT, reasoning="no")
        effective_results(case, decision)
        assert case.results[0].eligible is True
        assert case.results[0].decided_by is None


# ── Queries and maintenance ──────────────────────────────────────────


class TestQueries:
    @pytest.mark.asyncio
    async def test_case_age(self, gate, clock, make_profile) -> None:
        case = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        clock.advance(minutes=10)
        assert gate.case_age(case.case_id) == 600
        assert gate.pending_cases()[0].age_seconds == 600

    @pytest.mark.asyncio
    async def test_pending_cases_ordered_by_priority(self, gate, make_profile) -> None:
        low = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(confidence=65)])
        high = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(confidence=10)])
        assert [v.case_id for v in gate.pending_cases()] == [high.case_id, low.case_id]

    @pytest.mark.asyncio
    async def test_unknown_case(self, gate) -> None:
        with pytest.raises(NotFoundError):
            gate.get_case(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_reprioritize(self, gate, make_profile) -> None:
        a = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(confidence=10)])
        b = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result(confidence=60)])
        await gate.reprioritize(b.case_id, 99)
        assert (await gate.dequeue_next("rev-1")).case_id == b.case_id
        with pytest.raises(InvalidStateError):
            await gate.reprioritize(b.case_id, 1)
        assert gate.get_case(a.case_id).priority == 60


class TestSessionCleanup:
    @pytest.mark.asyncio
    async def test_withdraw_session(self, gate, make_profile, recorded_events) -> None:
        session_id = uuid.uuid4()
        case = await gate.submit_for_review(session_id, make_profile(), [_result()])
        other = await gate.submit_for_review(uuid.uuid4(), make_profile(), [_result()])

        assert await gate.withdraw_session(session_id) == 1
        assert gate.get_case(case.case_id).status == ReviewStatus.WITHDRAWN
        assert len(recorded_events.of_type(EventType.REVIEW_CASE_WITHDRAWN)) == 1
        assert (await gate.dequeue_next("rev-1")).case_id == other.case_id
        with pytest.raises(InvalidStateError):
            await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE))

    @pytest.mark.asyncio
    async def test_purge_session(self, gate, make_profile) -> None:
        session_id = uuid.uuid4()
        decided = await gate.submit_for_review(session_id, make_profile(), [_result()])
        await gate.submit_decision(decided.case_id, _decision(decided, DecisionKind.APPROVE))
        await gate.escalate_manually(session_id, "help")

        assert await gate.purge_session(session_id) == 2
        assert gate.cases_for_session(session_id) == []
        assert gate.get_decision(decided.case_id) is None
        assert await gate.dequeue_next("rev-1") is None

    @pytest.mark.asyncio
    async def test_repository_is_written_through(self, clock, make_profile) -> None:
        repo = AsyncMock()
        repo.delete_session.return_value = 3
        gate = ReviewGate(repository=repo, clock=clock)
        session_id = uuid.uuid4()

        case = await gate.submit_for_review(session_id, make_profile(), [_result()])
        await gate.submit_decision(case.case_id, _decision(case, DecisionKind.APPROVE))

        repo.save_case.assert_awaited_once()
        repo.save_decision.assert_awaited_once()
        assert await gate.purge_session(session_id) == 3

    @pytest.mark.asyncio
    async def test_hydrate_requeues_pending_cases(self, clock, make_profile) -> None:
        source = ReviewGate(clock=clock)
        pending = await source.submit_for_review(uuid.uuid4(), make_profile(), [_result()])
        repo = AsyncMock()
        repo.load_open_cases.return_value = [pending]

        gate = ReviewGate(repository=repo, clock=clock)
        assert await gate.hydrate() == 1
        assert (await gate.dequeue_next("rev-1")).case_id == pending.case_id
