"""Tests for question wording and next-question planning."""

from __future__ import annotations

import pytest

from schemebot.conversation.questions import (
    FIELD_QUESTIONS,
    MAX_LEVEL,
    MIN_LEVEL,
    lower_level,
    needed_fields,
    next_field,
    question_key,
    question_text,
    raise_level,
)
from schemebot.schemas.profile import EXPECTED_FIELDS


class TestWording:
    def test_every_field_has_a_question(self):
        assert set(FIELD_QUESTIONS) == set(EXPECTED_FIELDS)

    def test_simple_wording_at_low_levels(self):
        assert question_text("personal.age", 2) == "What is your age in years?"
        assert question_text("personal.age", 3) == "How old are you?"
        assert question_key("personal.age", 1) == "question.personal.age.simple"
        assert question_key("personal.age", 5) == "question.personal.age.normal"

    def test_level_bounds(self):
        assert lower_level(MIN_LEVEL) == MIN_LEVEL
        assert raise_level(MAX_LEVEL) == MAX_LEVEL
        assert lower_level(3) == 2
        assert raise_level(3) == 4


class TestPlanning:
    @pytest.mark.asyncio
    async def test_needed_fields_criteria_before_exclusions(self, rule_store):
        version = await rule_store.get_current_version("old_age_pension")
        assert needed_fields([version]) == [
            "personal.age",
            "economic.annual_income",
            "economic.enrolled_schemes",
        ]

    @pytest.mark.asyncio
    async def test_next_field_skips_known_and_unresolved(self, rule_store, make_profile):
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"personal.age": (65, 100)})
        assert next_field(profile, [version]) == "economic.annual_income"

        profile.mark_unresolved("economic.annual_income")
        assert next_field(profile, [version]) == "economic.enrolled_schemes"

        profile.set_field("economic.enrolled_schemes", [], 100)
        assert next_field(profile, [version]) is None

    def test_no_schemes_need_nothing(self, make_profile):
        assert next_field(make_profile(), []) is None
