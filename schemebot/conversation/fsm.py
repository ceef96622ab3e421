"""Finite state machine for conversation flow control.

The FSM validates transitions and emits phase-change events.
"""

from __future__ import annotations

import logging
import uuid

from schemebot.conversation.states import TERMINAL_PHASES, TRANSITIONS, UNIVERSAL_TRANSITIONS
from schemebot.errors import InvalidStateError
from schemebot.events import emit
from schemebot.models.enums import ConversationPhase
from schemebot.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)


class FSM:
    """Manages conversation phase transitions for a single session."""

    def __init__(
        self,
        session_id: uuid.UUID,
        initial_phase: ConversationPhase = ConversationPhase.GREETING,
    ) -> None:
        self.session_id = session_id
        self.current_phase = initial_phase

    def can_transition(self, trigger: str) -> bool:
        """Check if a trigger is valid from the current phase."""
        if self.is_terminal:
            return False
        if trigger in UNIVERSAL_TRANSITIONS:
            return True
        return trigger in TRANSITIONS.get(self.current_phase, {})

    def get_valid_triggers(self) -> list[str]:
        """Return all valid trigger names for the current phase."""
        if self.is_terminal:
            return []
        triggers = list(TRANSITIONS.get(self.current_phase, {}).keys())
        triggers.extend(UNIVERSAL_TRANSITIONS.keys())
        return triggers

    async def transition(self, trigger: str) -> ConversationPhase:
        """Execute a phase transition.

        Returns:
            The new phase after transition.

        Raises:
            InvalidStateError: the trigger is not valid from the current phase.
        """
        old_phase = self.current_phase

        if not self.can_transition(trigger):
            msg = (
                f"Invalid transition: {old_phase.value} --{trigger}--> ??? "
                f"(valid: {self.get_valid_triggers()})"
            )
            raise InvalidStateError(msg)

        if trigger in UNIVERSAL_TRANSITIONS:
            self.current_phase = UNIVERSAL_TRANSITIONS[trigger]
        else:
            self.current_phase = TRANSITIONS[old_phase][trigger]

        logger.info(
            "Phase transition: %s --%s--> %s (session=%s)",
            old_phase.value,
            trigger,
            self.current_phase.value,
            self.session_id,
        )

        await emit(SystemEvent(
            event_type=EventType.SESSION_PHASE_CHANGED,
            session_id=self.session_id,
            data={
                "from_phase": old_phase.value,
                "to_phase": self.current_phase.value,
                "trigger": trigger,
            },
            source_module="conversation.fsm",
        ))

        return self.current_phase

    @property
    def is_terminal(self) -> bool:
        return self.current_phase in TERMINAL_PHASES
