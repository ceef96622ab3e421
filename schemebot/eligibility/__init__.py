"""Eligibility engine: deterministic rule evaluation and confidence scoring."""

from schemebot.eligibility.engine import determine_eligibility, evaluate
from schemebot.eligibility.service import EligibilityService

__all__ = ["EligibilityService", "determine_eligibility", "evaluate"]
