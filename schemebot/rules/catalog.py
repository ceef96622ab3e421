"""Built-in scheme catalogue installed on first start.

Maintainers publish real rules through the store; this catalogue only seeds
an empty deployment so the conversation flow has something to evaluate.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from schemebot.models.enums import Operator
from schemebot.rules.store import SchemeRuleStore
from schemebot.schemas.rules import Condition, Criterion, ExclusionRule, SchemeRules, rule_value

logger = logging.getLogger(__name__)


def _criterion(field: str, op: Operator, value: object, weight: str, description: str) -> Criterion:
    return Criterion(
        field=field,
        operator=op,
        value=rule_value(value),
        weight=Decimal(weight),
        description=description,
    )


def _excluded_if(field: str, op: Operator, value: object, reason: str) -> ExclusionRule:
    return ExclusionRule(conditions=(Condition(field=field, operator=op, value=rule_value(value)),), reason=reason)


DEFAULT_SCHEMES: dict[str, SchemeRules] = {
    "old_age_pension": SchemeRules(
        name="Old Age Pension",
        criteria=(
            _criterion("personal.age", Operator.GREATER_EQUAL, 60, "2", "Applicant is 60 or older"),
            _criterion("economic.annual_income", Operator.LESS_THAN, 100000, "2", "Annual income below 1,00,000"),
        ),
        exclusions=(
            _excluded_if(
                "economic.enrolled_schemes", Operator.CONTAINS, "state_pension",
                "Already receives a state pension",
            ),
        ),
        required_documents=("aadhaar", "age_proof", "income_certificate"),
    ),
    "disability_pension": SchemeRules(
        name="Disability Pension",
        criteria=(
            _criterion("personal.has_disability", Operator.EQUALS, True, "3", "Applicant has a certified disability"),
            _criterion("personal.age", Operator.GREATER_EQUAL, 18, "1", "Applicant is an adult"),
            _criterion("economic.annual_income", Operator.LESS_THAN, 120000, "2", "Annual income below 1,20,000"),
        ),
        exclusions=(
            _excluded_if(
                "economic.enrolled_schemes", Operator.CONTAINS, "disability_pension",
                "Already enrolled in the disability pension",
            ),
        ),
        required_documents=("aadhaar", "disability_certificate"),
    ),
    "farmer_income_support": SchemeRules(
        name="Farmer Income Support",
        criteria=(
            _criterion("personal.occupation", Operator.EQUALS, "farmer", "2", "Applicant farms for a living"),
            _criterion("economic.land_holding_acres", Operator.LESS_EQUAL, 5, "2", "Holds 5 acres or less"),
        ),
        exclusions=(
            _excluded_if(
                "economic.employment_status", Operator.EQUALS, "government_employee",
                "Government employees are not covered",
            ),
            _excluded_if(
                "economic.enrolled_schemes", Operator.CONTAINS, "farmer_income_support",
                "Already enrolled in farmer income support",
            ),
        ),
        required_documents=("aadhaar", "land_record", "bank_passbook"),
    ),
    "widow_pension": SchemeRules(
        name="Widow Pension",
        criteria=(
            _criterion("personal.gender", Operator.EQUALS, "female", "1", "Applicant is a woman"),
            _criterion("personal.marital_status", Operator.EQUALS, "widowed", "3", "Applicant is widowed"),
            _criterion("personal.age", Operator.GREATER_EQUAL, 40, "1", "Applicant is 40 or older"),
            _criterion("economic.annual_income", Operator.LESS_THAN, 100000, "2", "Annual income below 1,00,000"),
        ),
        required_documents=("aadhaar", "death_certificate_spouse"),
    ),
    "rural_housing_assistance": SchemeRules(
        name="Rural Housing Assistance",
        criteria=(
            _criterion("location.area_type", Operator.EQUALS, "rural", "2", "Lives in a rural area"),
            _criterion("economic.has_bpl_card", Operator.EQUALS, True, "2", "Holds a below-poverty-line card"),
            _criterion("economic.annual_income", Operator.LESS_THAN, 300000, "1", "Annual income below 3,00,000"),
        ),
        exclusions=(
            ExclusionRule(
                conditions=(
                    Condition(
                        field="economic.enrolled_schemes",
                        operator=Operator.CONTAINS,
                        value=rule_value("rural_housing_assistance"),
                    ),
                ),
                reason="Already received housing assistance",
            ),
        ),
        required_documents=("aadhaar", "bpl_card"),
    ),
}


async def seed_default_catalog(store: SchemeRuleStore) -> list[str]:
    """Publish catalogue schemes the store has never seen. Returns the seeded ids."""
    known = set(store.known_scheme_ids())
    seeded: list[str] = []
    for scheme_id, rules in DEFAULT_SCHEMES.items():
        if scheme_id in known:
            continue
        await store.put_new_version(scheme_id, rules, expected_version=0, actor_id="system")
        seeded.append(scheme_id)
    if seeded:
        logger.info("Seeded %d default schemes: %s", len(seeded), seeded)
    return seeded
