"""Exception hierarchy for the eligibility core.

Input ambiguity and insufficient data are recovered inside the conversation
flow and never raised; everything here is a failure the caller must handle.
"""

from __future__ import annotations


class SchemeBotError(Exception):
    """Base class for all schemebot errors."""


class NotFoundError(SchemeBotError):
    """A scheme version, session or review case does not exist."""


class ConflictError(SchemeBotError):
    """Concurrent version allocation or duplicate enqueue."""


class InvalidStateError(SchemeBotError):
    """Operation not allowed in the entity's current state."""


class ValidationError(SchemeBotError):
    """Input rejected synchronously (e.g. override decision without reasoning)."""


class MalformedRuleError(ValidationError):
    """Scheme rules failed ingest-time validation."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))


class InfrastructureError(SchemeBotError):
    """A persistence or rule-store backend is unavailable. Retryable."""
