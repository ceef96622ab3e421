"""Domain enums used across SQLAlchemy models and Pydantic schemas.

All enums use str mixin for JSON serialization.
"""

from __future__ import annotations

from enum import Enum


class ConversationPhase(str, Enum):
    """Conversation state machine phases."""

    GREETING = "greeting"
    INFO_COLLECTION = "info_collection"
    CONFIRMATION = "confirmation"
    ELIGIBILITY_CHECK = "eligibility_check"
    HUMAN_REVIEW_WAIT = "human_review_wait"
    EXPLANATION = "explanation"
    OUTPUT_GENERATION = "output_generation"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class Operator(str, Enum):
    """Comparison operators a criterion or exclusion condition can use."""

    EQUALS = "eq"
    NOT_EQUALS = "ne"
    GREATER_THAN = "gt"
    GREATER_EQUAL = "gte"
    LESS_THAN = "lt"
    LESS_EQUAL = "lte"
    IN = "in"
    NOT_IN = "not_in"
    CONTAINS = "contains"


class ValueKind(str, Enum):
    """Kinds of the closed rule-value variant; also the kind of a profile field."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    STRING_SET = "string_set"


class ReviewStatus(str, Enum):
    PENDING = "pending"
    IN_REVIEW = "in_review"
    DECIDED = "decided"
    WITHDRAWN = "withdrawn"  # session abandoned before a reviewer picked it up


class ReviewReason(str, Enum):
    """Why a case entered the review queue."""

    LOW_CONFIDENCE = "low_confidence"
    MANUAL = "manual"
    AMBIGUOUS_RULES = "ambiguous_rules"


class DecisionKind(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    MODIFY = "modify"


class Signal(str, Enum):
    """Structured intents the NLU layer can attach to an utterance."""

    CONFIRM = "confirm"
    DENY = "deny"
    ESCALATE = "escalate"
    CONTINUE = "continue"


class OutcomeKind(str, Enum):
    """What the front end should do with a turn's outcome."""

    GREETING = "greeting"
    QUESTION = "question"
    CLARIFY = "clarify"
    CONFIRM = "confirm"
    REVIEW_PENDING = "review_pending"
    EXPLANATION = "explanation"
    OUTPUT = "output"
    COMPLETE = "complete"
    ABANDONED = "abandoned"


class SessionOutcome(str, Enum):
    """Final result of a session."""

    ELIGIBLE = "eligible"
    NOT_ELIGIBLE = "not_eligible"
    REVIEWED = "reviewed"
    ABANDONED = "abandoned"


class TurnRole(str, Enum):
    USER = "user"
    SYSTEM = "system"
