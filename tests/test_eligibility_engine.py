"""Tests for the eligibility engine: determination, confidence, exclusions and ranking."""

from __future__ import annotations

import pytest
import pytest_asyncio

from schemebot.eligibility.engine import determine_eligibility, evaluate
from schemebot.models.enums import Operator, ReviewReason
from schemebot.schemas.rules import SchemeVersion


# ── Basic determinations ────────────────────────────────────────────


class TestDetermination:
    @pytest.mark.asyncio
    async def test_both_criteria_met_with_certain_data(self, rule_store, make_profile) -> None:
        """age=65 and income=0 with full certainty: eligible, no review needed."""
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"personal.age": (65, 100), "economic.annual_income": (0, 100)})

        result = evaluate(profile, version)

        assert result.eligible is True
        assert result.confidence >= 70
        assert result.confidence == 73
        assert len(result.matched) == 2
        assert result.unmatched == ()
        assert result.requires_human_review is False
        assert result.review_reason is None
        assert result.missing_documents == ("aadhaar", "age_proof")

    @pytest.mark.asyncio
    async def test_missing_income_is_unmatched_with_zero_certainty(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"personal.age": (65, 100)})

        result = evaluate(profile, version)

        assert result.eligible is False
        assert [m.criterion.field for m in result.unmatched] == ["economic.annual_income"]
        assert result.unmatched[0].certainty == 0
        assert result.unmatched[0].profile_value is None
        assert result.missing_fields == ["economic.annual_income"]
        # Not a definite mismatch: confidence reflects the missing data
        assert result.confidence < 70
        assert result.requires_human_review is True
        assert result.review_reason == ReviewReason.LOW_CONFIDENCE
        assert any("no information about economic.annual_income" in line for line in result.reasoning)

    @pytest.mark.asyncio
    async def test_definite_mismatch_is_fully_confident(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"personal.age": (45, 90), "economic.annual_income": (0, 100)})

        result = evaluate(profile, version)

        assert result.eligible is False
        assert result.confidence == 100
        assert result.requires_human_review is False
        assert result.unmatched[0].criterion.field == "personal.age"
        assert "Age 60 or older: not met (certainty 90)" in result.reasoning

    @pytest.mark.asyncio
    async def test_result_references_version(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        result = evaluate(make_profile(), version)
        assert (result.scheme_id, result.version) == ("old_age_pension", 1)

    @pytest.mark.asyncio
    async def test_missing_documents_ignore_case(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"documents.available": (["AADHAAR"], 100)})
        assert evaluate(profile, version).missing_documents == ("age_proof",)


# ── Exclusions ───────────────────────────────────────────────────────


class TestExclusions:
    @pytest.mark.asyncio
    async def test_exclusion_overrides_met_criteria(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({
            "personal.age": (65, 100),
            "economic.annual_income": (0, 100),
            "economic.enrolled_schemes": (["state_pension"], 100),
        })

        result = evaluate(profile, version)

        assert result.eligible is False
        assert result.confidence == 100
        assert result.excluded_by == "Already receives a state pension"
        assert result.reasoning == ("Already receives a state pension",)
        assert result.matched == ()
        assert result.requires_human_review is False

    @pytest.mark.asyncio
    async def test_untriggered_exclusion_is_explained(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"economic.enrolled_schemes": (["ration_card"], 100)})

        result = evaluate(profile, version)

        assert result.excluded_by is None
        assert result.reasoning[0] == "Exclusion not triggered: Already receives a state pension"

    @pytest.mark.asyncio
    async def test_exclusion_with_absent_field_does_not_trigger(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        result = evaluate(make_profile({"personal.age": (70, 100)}), version)
        assert result.excluded_by is None


# ── Confidence ───────────────────────────────────────────────────────


class TestConfidence:
    @pytest.mark.asyncio
    async def test_lower_certainty_never_raises_confidence(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        confident = make_profile({"personal.age": (65, 100), "economic.annual_income": (0, 100)})
        hesitant = make_profile({"personal.age": (65, 100), "economic.annual_income": (0, 85)})

        high = evaluate(confident, version)
        low = evaluate(hesitant, version)

        assert high.eligible and low.eligible
        assert low.confidence <= high.confidence
        assert low.confidence == 68
        assert low.requires_human_review is True

    @pytest.mark.asyncio
    @pytest.mark.parametrize("age_certainty", [0, 1, 35, 50, 99, 100])
    @pytest.mark.parametrize("income_certainty", [0, 20, 70, 100])
    async def test_confidence_stays_in_bounds(
        self, rule_store, make_profile, age_certainty, income_certainty
    ) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({
            "personal.age": (65, age_certainty),
            "economic.annual_income": (0, income_certainty),
        })
        result = evaluate(profile, version)
        assert 0 <= result.confidence <= 100

    @pytest.mark.asyncio
    async def test_evaluation_is_deterministic(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        profile = make_profile({"personal.age": (61, 77), "economic.annual_income": (45000, 64)})
        assert evaluate(profile, version) == evaluate(profile.snapshot(), version)

    @pytest.mark.asyncio
    async def test_scheme_without_criteria(self, rule_store, make_profile) -> None:
        from schemebot.schemas.rules import SchemeRules

        version = await rule_store.put_new_version("open_scheme", SchemeRules(name="Open to all"))
        result = evaluate(make_profile(), version)
        assert result.eligible is True
        assert result.confidence == 70
        assert result.requires_human_review is False


# ── Ambiguity ────────────────────────────────────────────────────────


class TestAmbiguousRules:
    @pytest.mark.asyncio
    async def test_version_conflicts_route_to_review(self, rule_store, make_profile) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        conflicted = version.model_copy(update={"conflicts": ("criterion 'x' is always excluded by 'y'",)})
        profile = make_profile({"personal.age": (65, 100), "economic.annual_income": (0, 100)})

        result = evaluate(profile, conflicted)

        assert result.requires_human_review is True
        assert result.review_reason == ReviewReason.AMBIGUOUS_RULES
        assert result.reasoning[-1] == "Rule conflict: criterion 'x' is always excluded by 'y'"

    @pytest.mark.asyncio
    async def test_inapplicable_operator_is_ambiguous(self, rule_store, make_profile, make_criterion) -> None:
        version = await rule_store.get_current_version("old_age_pension")
        broken = version.model_copy(update={
            "criteria": (make_criterion("personal.age", Operator.EQUALS, "old"),),
        })

        result = evaluate(make_profile({"personal.age": (65, 100)}), broken)

        assert result.eligible is False
        assert result.confidence == 0
        assert result.requires_human_review is True
        assert result.review_reason == ReviewReason.AMBIGUOUS_RULES


# ── Ranking ──────────────────────────────────────────────────────────


class TestDetermineEligibility:
    @pytest_asyncio.fixture()
    async def versions(self, rule_store, make_criterion) -> list[SchemeVersion]:
        from schemebot.schemas.rules import SchemeRules

        await rule_store.put_new_version("a_farm_support", SchemeRules(
            name="Farm support",
            criteria=(make_criterion("economic.land_holding_acres", Operator.LESS_EQUAL, 5),),
        ))
        await rule_store.put_new_version("z_widow_pension", SchemeRules(
            name="Widow pension",
            criteria=(make_criterion("personal.marital_status", Operator.EQUALS, "widowed"),),
        ))
        return [await rule_store.get_current_version(sid) for sid in rule_store.active_scheme_ids()]

    @pytest.mark.asyncio
    async def test_input_order_preserved_by_default(self, versions, make_profile) -> None:
        results = determine_eligibility(make_profile(), versions)
        assert [r.scheme_id for r in results] == ["a_farm_support", "old_age_pension", "z_widow_pension"]

    @pytest.mark.asyncio
    async def test_ranked_puts_eligible_first(self, versions, make_profile) -> None:
        profile = make_profile({"personal.marital_status": ("Widowed", 100), "personal.age": (40, 100)})
        results = determine_eligibility(profile, versions, ranked=True)
        assert [r.scheme_id for r in results] == ["z_widow_pension", "a_farm_support", "old_age_pension"]

    @pytest.mark.asyncio
    async def test_scorer_orders_within_eligibility(self, versions, make_profile) -> None:
        profile = make_profile()
        scores = {"old_age_pension": 5, "z_widow_pension": 3}
        results = determine_eligibility(
            profile, versions, ranked=True, scorer=lambda _p, r: scores.get(r.scheme_id, 0)
        )
        assert [r.scheme_id for r in results] == ["old_age_pension", "z_widow_pension", "a_farm_support"]
