"""Tests for UserProfile: field writes, certainty and completeness."""

from __future__ import annotations

from decimal import Decimal

import pydantic
import pytest

from schemebot.schemas.profile import EXPECTED_FIELDS, UserProfile


class TestSetField:
    def test_absent_field_has_zero_certainty(self) -> None:
        profile = UserProfile()
        assert profile.certainty_of("personal.age") == 0
        assert profile.has_value("personal.age") is False

    def test_write_updates_certainty_and_completeness(self) -> None:
        profile = UserProfile()
        profile.set_field("personal.age", 65, 90)

        assert profile.get_value("personal.age") == 65
        assert profile.certainty_of("personal.age") == 90
        assert profile.completeness == 6  # 1 of 18 fields

    def test_certainty_is_clamped(self) -> None:
        profile = UserProfile()
        profile.set_field("personal.age", 65, 140)
        profile.set_field("family.dependents", 2, -5)
        assert profile.certainty_of("personal.age") == 100
        assert profile.certainty_of("family.dependents") == 0

    def test_clearing_a_field_drops_its_certainty(self) -> None:
        profile = UserProfile()
        profile.set_field("personal.age", 65, 90)
        profile.set_field("personal.age", None, 90)
        assert "personal.age" not in profile.certainty
        assert profile.completeness == 0

    def test_sets_are_stored_as_frozensets(self) -> None:
        profile = UserProfile()
        profile.set_field("documents.available", ["aadhaar", "pan", "aadhaar"], 100)
        assert profile.documents.available == frozenset({"aadhaar", "pan"})

    def test_numbers_are_coerced(self) -> None:
        profile = UserProfile()
        profile.set_field("economic.annual_income", "45000.50", 80)
        assert profile.economic.annual_income == Decimal("45000.50")

    def test_unknown_field(self) -> None:
        with pytest.raises(KeyError):
            UserProfile().set_field("personal.shoe_size", 9, 100)

    def test_invalid_value_is_rejected(self) -> None:
        profile = UserProfile()
        with pytest.raises(pydantic.ValidationError):
            profile.set_field("personal.age", -3, 100)
        assert profile.has_value("personal.age") is False


class TestDataQuality:
    def test_full_profile_is_complete(self) -> None:
        profile = UserProfile()
        values = {
            "personal.age": 40, "personal.gender": "female", "personal.marital_status": "married",
            "personal.has_disability": False, "personal.social_category": "general", "personal.occupation": "teacher",
            "economic.annual_income": 200000, "economic.employment_status": "employed",
            "economic.land_holding_acres": 0, "economic.has_bpl_card": False, "economic.enrolled_schemes": [],
            "location.state": "Kerala", "location.district": "Kollam", "location.area_type": "urban",
            "family.household_size": 4, "family.dependents": 2, "family.is_head_of_household": True,
            "documents.available": ["aadhaar"],
        }
        assert set(values) == set(EXPECTED_FIELDS)
        for path, value in values.items():
            profile.set_field(path, value, 100)

        assert profile.completeness == 100
        assert profile.overall_certainty() == Decimal(100)

    def test_overall_certainty_counts_absent_fields(self) -> None:
        profile = UserProfile()
        profile.set_field("personal.age", 65, 90)
        assert profile.overall_certainty() == Decimal(90) / Decimal(18)

    def test_populated_fields_follow_registry_order(self) -> None:
        profile = UserProfile()
        profile.set_field("location.state", "Goa", 100)
        profile.set_field("personal.age", 30, 100)
        assert profile.populated_fields() == ["personal.age", "location.state"]


class TestUnresolved:
    def test_mark_without_guess(self) -> None:
        profile = UserProfile()
        profile.mark_unresolved("economic.annual_income")
        assert "economic.annual_income" in profile.unresolved
        assert profile.has_value("economic.annual_income") is False

    def test_mark_with_guess_keeps_value_at_zero_certainty(self) -> None:
        profile = UserProfile()
        profile.mark_unresolved("economic.annual_income", 50000)
        assert profile.get_value("economic.annual_income") == Decimal(50000)
        assert profile.certainty_of("economic.annual_income") == 0
        # set_field clears the flag, so it is re-added after the guess
        assert "economic.annual_income" in profile.unresolved

    def test_later_answer_clears_unresolved(self) -> None:
        profile = UserProfile()
        profile.mark_unresolved("economic.annual_income")
        profile.set_field("economic.annual_income", 50000, 95)
        assert "economic.annual_income" not in profile.unresolved

    def test_snapshot_is_independent(self) -> None:
        profile = UserProfile()
        profile.set_field("personal.age", 65, 90)
        snap = profile.snapshot()
        profile.set_field("personal.age", 70, 100)
        assert snap.get_value("personal.age") == 65
        assert snap.certainty_of("personal.age") == 90
