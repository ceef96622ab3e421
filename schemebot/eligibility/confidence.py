"""Confidence scoring.

All arithmetic is Decimal with ROUND_HALF_UP so the same snapshot always
scores the same on every platform.
"""

from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from schemebot.schemas.eligibility import CriterionMatch
from schemebot.schemas.rules import Criterion

REVIEW_CONFIDENCE_THRESHOLD = 70
DEFINITE = 100

CRITERIA_WEIGHT = Decimal("0.7")
COMPLETENESS_WEIGHT = Decimal("0.2")
CERTAINTY_WEIGHT = Decimal("0.1")

_HUNDRED = Decimal(100)


def weighted_certainty(matched: Iterable[CriterionMatch], criteria: Iterable[Criterion]) -> Decimal:
    """Σ(weight·certainty) over matched criteria divided by the total weight.

    Unmatched criteria contribute nothing to the numerator, so missing data
    costs its weight share. No criteria at all counts as fully certain.
    """
    total_weight = sum((c.weight for c in criteria), Decimal(0))
    if total_weight == 0:
        return _HUNDRED
    earned = sum((m.criterion.weight * Decimal(m.certainty) for m in matched), Decimal(0))
    return earned / total_weight


def blend(weighted: Decimal, completeness: Decimal, overall_certainty: Decimal) -> int:
    """0.7·weighted + 0.2·completeness + 0.1·overall certainty, as an int in [0, 100]."""
    raw = (
        CRITERIA_WEIGHT * weighted
        + COMPLETENESS_WEIGHT * completeness
        + CERTAINTY_WEIGHT * overall_certainty
    )
    score = int(raw.quantize(Decimal(1), rounding=ROUND_HALF_UP))
    return max(0, min(DEFINITE, score))


def is_low_confidence(confidence: int) -> bool:
    return confidence < REVIEW_CONFIDENCE_THRESHOLD
