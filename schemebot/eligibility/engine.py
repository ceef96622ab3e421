"""Eligibility engine — evaluates scheme versions against a profile snapshot.

Pure Python. No I/O, no clock, no randomness: identical inputs give
identical results. The service layer (schemebot.eligibility.service) does
the audited store reads and emits events.
"""

from __future__ import annotations

from schemebot.eligibility.confidence import DEFINITE, blend, is_low_confidence, weighted_certainty
from schemebot.eligibility.operators import RuleTypeError, apply_operator
from schemebot.eligibility.ranking import Scorer, rank_results
from schemebot.models.enums import ReviewReason
from schemebot.schemas.eligibility import CriterionMatch, EligibilityResult
from schemebot.schemas.profile import UserProfile
from schemebot.schemas.rules import Condition, ExclusionRule, SchemeVersion, rule_value


def _condition_holds(profile: UserProfile, condition: Condition) -> bool:
    actual = profile.get_value(condition.field)
    if actual is None:
        return False
    return apply_operator(condition.operator, actual, condition.value)


def _exclusion_holds(profile: UserProfile, exclusion: ExclusionRule) -> bool:
    return all(_condition_holds(profile, c) for c in exclusion.conditions)


def _missing_documents(profile: UserProfile, version: SchemeVersion) -> tuple[str, ...]:
    available = {d.strip().casefold() for d in (profile.documents.available or ())}
    return tuple(d for d in version.required_documents if d.strip().casefold() not in available)


def _ambiguous(
    version: SchemeVersion,
    matched: list[CriterionMatch],
    unmatched: list[CriterionMatch],
    reasoning: list[str],
    missing_documents: tuple[str, ...],
) -> EligibilityResult:
    return EligibilityResult(
        scheme_id=version.scheme_id,
        version=version.version,
        eligible=False,
        confidence=0,
        matched=tuple(matched),
        unmatched=tuple(unmatched),
        requires_human_review=True,
        review_reason=ReviewReason.AMBIGUOUS_RULES,
        reasoning=tuple(reasoning),
        missing_documents=missing_documents,
    )


def evaluate(profile: UserProfile, version: SchemeVersion) -> EligibilityResult:
    """Evaluate one scheme version against one profile snapshot."""
    missing_documents = _missing_documents(profile, version)
    reasoning: list[str] = []
    matched: list[CriterionMatch] = []
    unmatched: list[CriterionMatch] = []

    # 1. Exclusions override everything, first hit wins
    for exclusion in version.exclusions:
        try:
            holds = _exclusion_holds(profile, exclusion)
        except RuleTypeError as exc:
            reasoning.append(f"Exclusion '{exclusion.reason}' could not be applied: {exc}")
            return _ambiguous(version, matched, unmatched, reasoning, missing_documents)
        if holds:
            return EligibilityResult(
                scheme_id=version.scheme_id,
                version=version.version,
                eligible=False,
                confidence=DEFINITE,
                excluded_by=exclusion.reason,
                reasoning=(exclusion.reason,),
                missing_documents=missing_documents,
            )
        reasoning.append(f"Exclusion not triggered: {exclusion.reason}")

    # 2. Criteria
    for criterion in version.criteria:
        actual = profile.get_value(criterion.field)
        if actual is None:
            unmatched.append(CriterionMatch(criterion=criterion, matched=False, certainty=0))
            reasoning.append(f"{criterion.label()}: no information about {criterion.field}")
            continue

        certainty = profile.certainty_of(criterion.field)
        try:
            ok = apply_operator(criterion.operator, actual, criterion.value)
        except RuleTypeError as exc:
            reasoning.append(f"{criterion.label()}: rule could not be applied: {exc}")
            return _ambiguous(version, matched, unmatched, reasoning, missing_documents)

        match = CriterionMatch(
            criterion=criterion,
            profile_value=rule_value(actual),
            matched=ok,
            certainty=certainty,
        )
        (matched if ok else unmatched).append(match)
        verdict = "met" if ok else "not met"
        reasoning.append(f"{criterion.label()}: {verdict} (certainty {certainty})")

    # 3-5. Determination and confidence
    eligible = not unmatched
    definite_mismatch = any(m.certainty > 0 for m in unmatched)
    if definite_mismatch:
        confidence = DEFINITE
    else:
        confidence = blend(
            weighted_certainty(matched, version.criteria),
            profile.completeness_exact(),
            profile.overall_certainty(),
        )

    # 6. Review flag
    review_reason: ReviewReason | None = None
    if version.conflicts:
        review_reason = ReviewReason.AMBIGUOUS_RULES
        reasoning.extend(f"Rule conflict: {conflict}" for conflict in version.conflicts)
    elif is_low_confidence(confidence):
        review_reason = ReviewReason.LOW_CONFIDENCE

    return EligibilityResult(
        scheme_id=version.scheme_id,
        version=version.version,
        eligible=eligible,
        confidence=confidence,
        matched=tuple(matched),
        unmatched=tuple(unmatched),
        requires_human_review=review_reason is not None,
        review_reason=review_reason,
        reasoning=tuple(reasoning),
        missing_documents=missing_documents,
    )


def determine_eligibility(
    profile: UserProfile,
    versions: list[SchemeVersion],
    ranked: bool = False,
    scorer: Scorer | None = None,
) -> list[EligibilityResult]:
    """Evaluate every version; input order unless `ranked` is set."""
    results = [evaluate(profile, version) for version in versions]
    if ranked:
        return rank_results(profile, results, scorer)
    return results
