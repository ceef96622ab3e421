"""Shared fixtures: event capture, a fixed clock, profiles and a seeded rule store."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio

import schemebot.events as events_module
from schemebot.config import settings
from schemebot.models.enums import Operator
from schemebot.rules.store import SchemeRuleStore
from schemebot.schemas.events import EventType, SystemEvent
from schemebot.schemas.profile import UserProfile
from schemebot.schemas.rules import Condition, Criterion, ExclusionRule, SchemeRules, rule_value


class EventRecorder:
    """Stands in for the event queue; keeps every emitted event in order."""

    def __init__(self) -> None:
        self.events: list[SystemEvent] = []

    async def put(self, event: SystemEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: EventType) -> list[SystemEvent]:
        return [e for e in self.events if e.event_type == event_type]

    def clear(self) -> None:
        self.events.clear()


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def recorded_events(monkeypatch: pytest.MonkeyPatch) -> EventRecorder:
    """Capture emitted events instead of running the background worker."""
    recorder = EventRecorder()
    monkeypatch.setattr(events_module, "_ensure_worker", lambda: recorder)
    return recorder


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings.persistence, "retry_base_delay", 0.0)
    monkeypatch.setattr(settings.persistence, "retry_max_delay", 0.0)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2026, 3, 1, 9, 0, tzinfo=UTC))


def criterion(field: str, op: Operator, value: object, weight: str = "1", description: str = "") -> Criterion:
    return Criterion(field=field, operator=op, value=rule_value(value), weight=Decimal(weight), description=description)


def exclusion(field: str, op: Operator, value: object, reason: str) -> ExclusionRule:
    return ExclusionRule(conditions=(Condition(field=field, operator=op, value=rule_value(value)),), reason=reason)


@pytest.fixture()
def make_criterion():
    return criterion


@pytest.fixture()
def make_exclusion():
    return exclusion


@pytest.fixture()
def pension_rules() -> SchemeRules:
    """age >= 60 and income < 100000, weight 1 each; excluded when already on state pension."""
    return SchemeRules(
        name="Old Age Pension",
        criteria=(
            criterion("personal.age", Operator.GREATER_EQUAL, 60, description="Age 60 or older"),
            criterion("economic.annual_income", Operator.LESS_THAN, 100000, description="Income below 100000"),
        ),
        exclusions=(
            exclusion("economic.enrolled_schemes", Operator.CONTAINS, "state_pension", "Already receives a state pension"),
        ),
        required_documents=("aadhaar", "age_proof"),
    )


@pytest.fixture()
def make_profile():
    """Factory: make_profile({"personal.age": (65, 95), ...}) sets each field with its certainty."""

    def _make(fields: dict[str, tuple[object, int]] | None = None) -> UserProfile:
        profile = UserProfile()
        for path, (value, certainty) in (fields or {}).items():
            profile.set_field(path, value, certainty)
        return profile

    return _make


@pytest_asyncio.fixture()
async def rule_store(clock: FakeClock, pension_rules: SchemeRules) -> SchemeRuleStore:
    store = SchemeRuleStore(clock=clock)
    await store.put_new_version("old_age_pension", pension_rules)
    return store
