"""Deterministic confirmation summary of a profile."""

from __future__ import annotations

from decimal import Decimal

from schemebot.schemas.conversation import ConversationState
from schemebot.schemas.profile import FIELD_REGISTRY, UserProfile

UNCERTAIN_MARK = " (not sure)"
CERTAIN_THRESHOLD = 80


def format_value(value: object) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (set, frozenset)):
        return ", ".join(sorted(value)) if value else "none"
    return str(value)


def summarize_profile(profile: UserProfile) -> str:
    """One line per populated field, registry order; uncertain values are marked."""
    lines: list[str] = []
    for path in profile.populated_fields():
        line = f"{FIELD_REGISTRY[path].label}: {format_value(profile.get_value(path))}"
        if profile.certainty_of(path) < CERTAIN_THRESHOLD:
            line += UNCERTAIN_MARK
        lines.append(line)
    for path in FIELD_REGISTRY:
        if path in profile.unresolved and not profile.has_value(path):
            lines.append(f"{FIELD_REGISTRY[path].label}: unknown")
    return "\n".join(lines)


def summarize_for_confirmation(state: ConversationState) -> str:
    return summarize_profile(state.profile)
