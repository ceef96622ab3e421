"""Question catalogue and next-question planning.

Each profile field has a normal and a simple wording; the simple one is
used when the citizen's comprehension level is at or below SIMPLE_LEVEL.
Texts here are the English fallback: the language layer renders
`prompt_key` in the session language.
"""

from __future__ import annotations

from schemebot.schemas.profile import EXPECTED_FIELDS, UserProfile
from schemebot.schemas.rules import SchemeVersion

SIMPLE_LEVEL = 2
MIN_LEVEL = 1
MAX_LEVEL = 5

# {field path: (normal wording, simple wording)}
FIELD_QUESTIONS: dict[str, tuple[str, str]] = {
    "personal.age": ("How old are you?", "What is your age in years?"),
    "personal.gender": ("What is your gender?", "Are you a man or a woman, or other?"),
    "personal.marital_status": (
        "What is your marital status: single, married, widowed, divorced or separated?",
        "Are you married? Or single, widowed, or divorced?",
    ),
    "personal.has_disability": (
        "Do you have a certified disability?",
        "Do you have a disability certificate? Yes or no?",
    ),
    "personal.social_category": (
        "Which social category do you belong to (general, OBC, SC or ST)?",
        "What is your caste category?",
    ),
    "personal.occupation": ("What is your main occupation?", "What work do you do?"),
    "economic.annual_income": (
        "What is your household's total annual income?",
        "How much money does your family earn in one year?",
    ),
    "economic.employment_status": (
        "What is your employment status (employed, self-employed, unemployed, government employee, retired)?",
        "Do you have a job? What kind?",
    ),
    "economic.land_holding_acres": (
        "How many acres of agricultural land does your household hold?",
        "How much farm land do you have, in acres?",
    ),
    "economic.has_bpl_card": (
        "Does your household hold a below-poverty-line (BPL) card?",
        "Do you have a BPL card? Yes or no?",
    ),
    "economic.enrolled_schemes": (
        "Which government schemes are you already enrolled in?",
        "Do you already get help from any government scheme? Which ones?",
    ),
    "location.state": ("Which state do you live in?", "What is your state?"),
    "location.district": ("Which district do you live in?", "What is your district?"),
    "location.area_type": (
        "Do you live in a rural or an urban area?",
        "Do you live in a village or a town?",
    ),
    "family.household_size": (
        "How many people live in your household, including you?",
        "How many people live in your home?",
    ),
    "family.dependents": (
        "How many people depend on you financially?",
        "How many people do you support with money?",
    ),
    "family.is_head_of_household": (
        "Are you the head of your household?",
        "Are you the head of your family? Yes or no?",
    ),
    "documents.available": (
        "Which documents do you have (for example Aadhaar, income certificate, land record)?",
        "Which papers do you have? For example Aadhaar card.",
    ),
}

PHASE_PROMPTS: dict[str, str] = {
    "greeting": "Hello! I can help you find government schemes you may be eligible for. Shall we begin?",
    "clarify": "Sorry, I did not quite catch that.",
    "confirm": "Here is what I understood. Is this correct?",
    "confirm.retry": "Please tell me what I should correct.",
    "review_pending": "Your case is being checked by an officer. We will continue as soon as they reply.",
    "escalated": "I have asked an officer to look at your case.",
    "explanation": "Here are the schemes I checked for you.",
    "output": "Here is your summary with the documents you will need.",
    "complete": "Thank you. Your session is complete.",
    "abandoned": "This session has ended.",
    "progress_saved": "We could not save your progress right now, but it is kept and will be saved shortly.",
}


def question_key(field: str, comprehension_level: int) -> str:
    variant = "simple" if comprehension_level <= SIMPLE_LEVEL else "normal"
    return f"question.{field}.{variant}"


def question_text(field: str, comprehension_level: int) -> str:
    normal, simple = FIELD_QUESTIONS[field]
    return simple if comprehension_level <= SIMPLE_LEVEL else normal


def needed_fields(versions: list[SchemeVersion]) -> list[str]:
    """Fields the schemes read: scheme order, then criteria, then exclusions."""
    ordered: list[str] = []
    for version in versions:
        for path in version.referenced_fields():
            if path not in ordered:
                ordered.append(path)
    return ordered


def next_field(profile: UserProfile, versions: list[SchemeVersion]) -> str | None:
    """First needed field that is neither populated nor given up on."""
    for path in needed_fields(versions):
        if path in EXPECTED_FIELDS and not profile.has_value(path) and path not in profile.unresolved:
            return path
    return None


def lower_level(level: int) -> int:
    return max(MIN_LEVEL, level - 1)


def raise_level(level: int) -> int:
    return min(MAX_LEVEL, level + 1)
