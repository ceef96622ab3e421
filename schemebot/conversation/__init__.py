"""Resumable conversation state machine."""

from schemebot.conversation.engine import ConversationEngine
from schemebot.conversation.fsm import FSM
from schemebot.conversation.summary import summarize_for_confirmation

__all__ = ["FSM", "ConversationEngine", "summarize_for_confirmation"]
