"""FSM phase definitions and transition map.

The engine decides *when* to move (what the eligibility check still needs,
what the review gate says); the FSM decides whether a move is legal.
"""

from __future__ import annotations

from schemebot.models.enums import ConversationPhase

# Transition map: {current_phase: {trigger_name: next_phase}}
TRANSITIONS: dict[ConversationPhase, dict[str, ConversationPhase]] = {
    ConversationPhase.GREETING: {
        "begin": ConversationPhase.INFO_COLLECTION,
    },
    ConversationPhase.INFO_COLLECTION: {
        "next_question": ConversationPhase.INFO_COLLECTION,
        "collected": ConversationPhase.CONFIRMATION,
    },
    ConversationPhase.CONFIRMATION: {
        "confirmed": ConversationPhase.ELIGIBILITY_CHECK,
    },
    ConversationPhase.ELIGIBILITY_CHECK: {
        "clear": ConversationPhase.EXPLANATION,
        "needs_review": ConversationPhase.HUMAN_REVIEW_WAIT,
    },
    ConversationPhase.HUMAN_REVIEW_WAIT: {
        "review_decided": ConversationPhase.EXPLANATION,
    },
    ConversationPhase.EXPLANATION: {
        "proceed": ConversationPhase.OUTPUT_GENERATION,
    },
    ConversationPhase.OUTPUT_GENERATION: {
        "delivered": ConversationPhase.COMPLETE,
    },
    ConversationPhase.COMPLETE: {},
    ConversationPhase.ABANDONED: {},
}

# Any active phase can be escalated to a human or abandoned
UNIVERSAL_TRANSITIONS: dict[str, ConversationPhase] = {
    "escalate": ConversationPhase.HUMAN_REVIEW_WAIT,
    "abandon": ConversationPhase.ABANDONED,
}

TERMINAL_PHASES: frozenset[ConversationPhase] = frozenset(
    phase for phase, triggers in TRANSITIONS.items() if not triggers
)
