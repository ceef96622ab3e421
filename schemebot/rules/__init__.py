"""Scheme Rule Store — versioned scheme rules with ingest-time validation."""

from schemebot.rules.store import SchemeRuleStore

__all__ = ["SchemeRuleStore"]
