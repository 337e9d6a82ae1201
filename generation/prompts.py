"""
Prompt construction for one trivia question.

The model is asked for a single JSON object shaped like Question, with
answer_text echoing the correct choice and topic_key naming the subject.
"""

from typing import Iterable, List, Optional

from pydantic import BaseModel, Field


# ─── System prompt ─────────────────────────────────────────────────────────────

SYSTEM_PROMPT = " ".join([
    "You generate concise, unambiguous multiple-choice trivia.",
    "Return ONLY a JSON object, no markdown.",
    "Keep the question <= 140 characters.",
    "Provide four plausible, mutually exclusive choices.",
    "Avoid vague stems like 'often', 'commonly', 'usually', or 'popular'.",
    "Avoid offensive/adult content.",
])


# ─── Hints ─────────────────────────────────────────────────────────────────────

DIFFICULTY_HINTS = {
    "easy": "Keep it beginner-friendly and widely known.",
    "medium": "Keep difficulty balanced for a general audience.",
    "hard": "Increase difficulty moderately; no trick wording or obscure minutiae.",
}

CATEGORY_HINTS = {
    "dictionary": " ".join([
        "This is a VOCABULARY question about one headword.",
        "Return fields headword (the word) and mode ('definition' or 'synonym').",
        "If mode is 'definition': the stem MUST be like: What is the best definition of \"<headword>\"?",
        "If mode is 'synonym': the stem MUST be like: Which word is the closest synonym of \"<headword>\"?",
        "For 'synonym' choices must be single words; for 'definition' short definition phrases.",
        "Do NOT write general-knowledge stems (e.g., 'A person who...').",
    ]),
    "science_nature": "Prefer high-school level science; avoid trick questions.",
    "entertainment": "Use film, TV, music, books, or games; avoid spoilers.",
    "food_drink": "Use cuisines, ingredients, techniques, or beverages.",
    "geography": "Use countries, capitals, landmarks, or physical geography.",
    "history": "Prefer well-known events or figures.",
}

DEFAULT_CATEGORY_HINT = "General knowledge suitable for a broad audience."

OUTPUT_FORMAT = """OUTPUT FORMAT:
{
  "question": "<stem>",
  "choices": ["<A>", "<B>", "<C>", "<D>"],
  "correct_index": <0-3>,
  "answer_text": "<EXACT text of the correct choice>",
  "explanation": "<one sentence fun fact>",
  "topic_key": "<main subject, e.g. 'Amazon River', 'photosynthesis'>",
  "subject_matter": "<same subject in a few words>"
}"""

MAX_AVOID_ITEMS = 20


class GenerationPrompt(BaseModel):
    """Everything the text-generation collaborator receives for one attempt."""
    system: str
    user: str
    category: str
    difficulty: str
    avoid: List[str] = Field(default_factory=list)
    temperature: float = 0.95
    top_p: float = 0.95
    seed: Optional[int] = None


def avoid_block(recent: Iterable[str]) -> str:
    items = [str(r).strip() for r in recent if str(r).strip()][-MAX_AVOID_ITEMS:]
    if not items:
        return "Vary subtopics and avoid overused questions."
    return "Avoid repeating any of these exact questions or subjects:\n- " + "\n- ".join(items)


def build_prompt(category: str, difficulty: str, recent: Iterable[str], seed: Optional[int] = None) -> GenerationPrompt:
    recent = list(recent)
    lines = [
        f"Category: {category}",
        f"Difficulty: {difficulty}",
        DIFFICULTY_HINTS.get(difficulty, DIFFICULTY_HINTS["medium"]),
        CATEGORY_HINTS.get(category, DEFAULT_CATEGORY_HINT),
        avoid_block(recent),
        "Create exactly ONE question with four choices and correct_index (0-3).",
        "Ensure the other three choices do not satisfy all facts in the question.",
    ]
    if category == "dictionary":
        lines.append("Also include 'headword' and 'mode'.")
    lines.append(OUTPUT_FORMAT)

    return GenerationPrompt(
        system=SYSTEM_PROMPT,
        user="\n".join(lines),
        category=category,
        difficulty=difficulty,
        avoid=recent[-MAX_AVOID_ITEMS:],
        seed=seed,
    )
