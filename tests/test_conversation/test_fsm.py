"""Tests for FSM transitions across all conversation paths.

Covers: the clear path, the review path, escalation from any active phase,
abandonment, invalid triggers and terminal phases.
"""

from __future__ import annotations

import uuid

import pytest

from schemebot.conversation.fsm import FSM
from schemebot.conversation.states import TERMINAL_PHASES, TRANSITIONS, UNIVERSAL_TRANSITIONS
from schemebot.errors import InvalidStateError
from schemebot.models.enums import ConversationPhase
from schemebot.schemas.events import EventType

ACTIVE_PHASES = [p for p in ConversationPhase if p not in TERMINAL_PHASES]


@pytest.fixture()
def make_fsm():
    """Factory to create an FSM at a given phase."""
    def _make(phase: ConversationPhase = ConversationPhase.GREETING) -> FSM:
        return FSM(session_id=uuid.uuid4(), initial_phase=phase)
    return _make


class TestClearPath:
    """Greeting → collection → confirmation → check → explanation → output → complete."""

    @pytest.mark.asyncio
    async def test_full_path(self, make_fsm):
        fsm = make_fsm()

        await fsm.transition("begin")
        assert fsm.current_phase == ConversationPhase.INFO_COLLECTION

        await fsm.transition("next_question")
        assert fsm.current_phase == ConversationPhase.INFO_COLLECTION

        await fsm.transition("collected")
        assert fsm.current_phase == ConversationPhase.CONFIRMATION

        await fsm.transition("confirmed")
        assert fsm.current_phase == ConversationPhase.ELIGIBILITY_CHECK

        await fsm.transition("clear")
        assert fsm.current_phase == ConversationPhase.EXPLANATION

        await fsm.transition("proceed")
        assert fsm.current_phase == ConversationPhase.OUTPUT_GENERATION

        await fsm.transition("delivered")
        assert fsm.current_phase == ConversationPhase.COMPLETE
        assert fsm.is_terminal


class TestReviewPath:
    @pytest.mark.asyncio
    async def test_needs_review_then_decided(self, make_fsm):
        fsm = make_fsm(ConversationPhase.ELIGIBILITY_CHECK)

        await fsm.transition("needs_review")
        assert fsm.current_phase == ConversationPhase.HUMAN_REVIEW_WAIT

        await fsm.transition("review_decided")
        assert fsm.current_phase == ConversationPhase.EXPLANATION

    @pytest.mark.asyncio
    async def test_waiting_session_cannot_skip_review(self, make_fsm):
        fsm = make_fsm(ConversationPhase.HUMAN_REVIEW_WAIT)
        with pytest.raises(InvalidStateError):
            await fsm.transition("proceed")


class TestUniversalTransitions:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("phase", ACTIVE_PHASES)
    async def test_escalate_from_any_active_phase(self, make_fsm, phase):
        fsm = make_fsm(phase)
        await fsm.transition("escalate")
        assert fsm.current_phase == ConversationPhase.HUMAN_REVIEW_WAIT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phase", ACTIVE_PHASES)
    async def test_abandon_from_any_active_phase(self, make_fsm, phase):
        fsm = make_fsm(phase)
        await fsm.transition("abandon")
        assert fsm.current_phase == ConversationPhase.ABANDONED
        assert fsm.is_terminal


class TestInvalidTransitions:
    @pytest.mark.asyncio
    async def test_unknown_trigger(self, make_fsm):
        fsm = make_fsm()
        with pytest.raises(InvalidStateError, match="Invalid transition"):
            await fsm.transition("teleport")
        assert fsm.current_phase == ConversationPhase.GREETING

    @pytest.mark.asyncio
    async def test_cannot_confirm_before_collecting(self, make_fsm):
        fsm = make_fsm(ConversationPhase.INFO_COLLECTION)
        with pytest.raises(InvalidStateError):
            await fsm.transition("confirmed")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phase", sorted(TERMINAL_PHASES))
    async def test_terminal_phases_accept_nothing(self, make_fsm, phase):
        fsm = make_fsm(phase)
        assert fsm.get_valid_triggers() == []
        assert fsm.can_transition("escalate") is False
        with pytest.raises(InvalidStateError):
            await fsm.transition("abandon")


class TestEventsAndTriggers:
    @pytest.mark.asyncio
    async def test_transition_emits_phase_change(self, make_fsm, recorded_events):
        fsm = make_fsm()
        await fsm.transition("begin")

        changes = recorded_events.of_type(EventType.SESSION_PHASE_CHANGED)
        assert len(changes) == 1
        assert changes[0].session_id == fsm.session_id
        assert changes[0].data == {"from_phase": "greeting", "to_phase": "info_collection", "trigger": "begin"}

    def test_valid_triggers_include_universal(self, make_fsm):
        fsm = make_fsm(ConversationPhase.CONFIRMATION)
        assert set(fsm.get_valid_triggers()) == {"confirmed", *UNIVERSAL_TRANSITIONS}

    def test_terminal_phases_are_complete_and_abandoned(self):
        assert TERMINAL_PHASES == {ConversationPhase.COMPLETE, ConversationPhase.ABANDONED}
        assert set(TRANSITIONS) == set(ConversationPhase)
