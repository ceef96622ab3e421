"""Ordering of results for presentation.

The scorer is the hook for weighing a citizen's stated needs; the default
scores everything 0 so ranked output is eligible-first, then by scheme id.
"""

from __future__ import annotations

from collections.abc import Callable

from schemebot.schemas.eligibility import EligibilityResult
from schemebot.schemas.profile import UserProfile

Scorer = Callable[[UserProfile, EligibilityResult], int | float]


def default_scorer(profile: UserProfile, result: EligibilityResult) -> int:
    return 0


def rank_results(
    profile: UserProfile,
    results: list[EligibilityResult],
    scorer: Scorer | None = None,
) -> list[EligibilityResult]:
    """Eligible first, then descending score, then scheme id ascending."""
    score = scorer or default_scorer
    return sorted(results, key=lambda r: (not r.eligible, -score(profile, r), r.scheme_id))
