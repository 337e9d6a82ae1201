"""
Candidate Question Validator

Structural checks (every category):
- question stem non-empty and inside the length window
- exactly 4 choices (loose profiles: at least `min_choices`)
- choices non-empty text, pairwise distinct case-insensitively
- correct_index an integer within bounds
- answer_text, when present, equals choices[correct_index] case-insensitively

Domain checks (category-specific):
- dictionary: headword + mode, stem wording, choice shape per mode

Returns None when the candidate is acceptable, else a short reason string.
Never raises and never repairs the candidate.
"""

import re
from typing import Any, Mapping, Optional, Union

from generation.schemas import Question

DEFAULT_MIN_LEN = 8
DEFAULT_MAX_LEN = 200
DICTIONARY_MODES = ("definition", "synonym")

_SINGLE_TOKEN = re.compile(r"^[A-Za-z-]+$")

Candidate = Union[Mapping[str, Any], Question]


def _as_mapping(candidate: Candidate) -> Mapping[str, Any]:
    if isinstance(candidate, Question):
        return candidate.model_dump()
    return candidate if isinstance(candidate, Mapping) else {}


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


# ─── Structure ─────────────────────────────────────────────────────────────────

def validate_structure(
    candidate: Candidate,
    *,
    min_choices: int = 4,
    min_len: int = DEFAULT_MIN_LEN,
    max_len: int = DEFAULT_MAX_LEN,
) -> Optional[str]:
    data = _as_mapping(candidate)

    stem = _text(data.get("question"))
    if not stem:
        return "question text missing"
    if len(stem) < min_len:
        return f"question text shorter than {min_len} characters"
    if len(stem) > max_len:
        return f"question text longer than {max_len} characters"

    choices = data.get("choices")
    if not isinstance(choices, list):
        return "choices is not a list"
    if min_choices >= 4 and len(choices) != 4:
        return f"expected exactly 4 choices, got {len(choices)}"
    if len(choices) < min_choices:
        return f"expected at least {min_choices} choices, got {len(choices)}"

    cleaned = [_text(c) for c in choices]
    if any(not isinstance(c, str) for c in choices) or not all(cleaned):
        return "choices must be non-empty text"
    if len({c.lower() for c in cleaned}) != len(cleaned):
        return "choices are not distinct"

    index = data.get("correct_index")
    if not isinstance(index, int) or isinstance(index, bool):
        return "correct_index is not an integer"
    if not 0 <= index < len(cleaned):
        return f"correct_index {index} out of range"

    answer = data.get("answer_text")
    if answer is not None:
        if _text(answer).lower() != cleaned[index].lower():
            return "answer_text does not match choices[correct_index]"

    return None


# ─── Domain ────────────────────────────────────────────────────────────────────

def _validate_dictionary(data: Mapping[str, Any]) -> Optional[str]:
    headword = _text(data.get("headword"))
    mode = _text(data.get("mode")).lower()
    if not headword or mode not in DICTIONARY_MODES:
        return "dictionary requires headword and mode"

    stem = _text(data.get("question")).lower()
    head = headword.lower()
    if head not in stem:
        return "dictionary stem missing headword"
    if mode not in stem:
        return f"dictionary stem must contain '{mode}'"

    choices = [_text(c) for c in data.get("choices", [])]
    if mode == "synonym":
        if any(not _SINGLE_TOKEN.match(c) for c in choices):
            return "synonym choices must be single words"
        correct = choices[data["correct_index"]]
        if correct.lower() == head or _text(data.get("answer_text")).lower() == head:
            return "synonym answer cannot equal headword"
    else:
        if any(not re.search(r"\s", c) for c in choices):
            return "definition choices must be short phrases"
        if any(c.lower() == head for c in choices):
            return "definition choices cannot be the headword"
    return None


DOMAIN_RULES = {
    "dictionary": _validate_dictionary,
}


def validate_domain(candidate: Candidate, category: str) -> Optional[str]:
    """Category rules. Assumes validate_structure already passed."""
    rule = DOMAIN_RULES.get(category)
    if rule is None:
        return None
    return rule(_as_mapping(candidate))


# ─── Main entry ────────────────────────────────────────────────────────────────

def validate(
    candidate: Candidate,
    category: str = "general",
    *,
    min_choices: int = 4,
    min_len: int = DEFAULT_MIN_LEN,
    max_len: int = DEFAULT_MAX_LEN,
) -> Optional[str]:
    """
    Run structural then domain checks.

    Missing optional fields (explanation, topic_key, subject_matter) are not
    errors; Question.from_candidate defaults them.

    Returns:
        None if valid, else the first failing reason.
    """
    reason = validate_structure(candidate, min_choices=min_choices, min_len=min_len, max_len=max_len)
    if reason:
        return reason
    return validate_domain(candidate, category)
