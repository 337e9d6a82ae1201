"""
Pydantic schemas for the trivia question pipeline.

Question           — one multiple-choice question (pre- or post-shuffle)
GenerationRequest  — the immutable, normalized inbound request
AttemptOutcome     — result of one generation attempt (success | retry | fatal)
GenerationResult   — what the generation attempt engine hands back
Resolution         — final question + source tag + diagnostics
TriviaResponse     — JSON body returned to the caller
"""

import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from generation.errors import TriviaError

log = logging.getLogger(__name__)

DIFFICULTIES = ("easy", "medium", "hard")
DEFAULT_CATEGORY = "general"
DEFAULT_DIFFICULTY = "medium"

SourceTag = Literal["cache", "pool", "generated", "fallback"]


# ─── Question ──────────────────────────────────────────────────────────────────

class Question(BaseModel):
    """
    One multiple-choice question.

    `choices[correct_index]` is the correct entry. When `answer_text` is set it
    must equal that entry case-insensitively (enforced by the validator, not here).
    """
    question: str
    choices: List[str]
    correct_index: int
    explanation: str = ""
    # Optional classification fields
    headword: Optional[str] = None
    mode: Optional[str] = None
    answer_text: Optional[str] = None
    topic_key: Optional[str] = None
    subject_matter: Optional[str] = None

    @classmethod
    def from_candidate(cls, data: Dict[str, Any]) -> "Question":
        """Build from an already-validated candidate dict, trimming text fields."""

        def _opt(key: str) -> Optional[str]:
            value = data.get(key)
            if value is None:
                return None
            text = str(value).strip()
            return text or None

        return cls(
            question=str(data.get("question", "")).strip(),
            choices=[str(c).strip() for c in data.get("choices", [])],
            correct_index=int(data["correct_index"]),
            explanation=str(data.get("explanation") or "").strip(),
            headword=_opt("headword"),
            mode=(_opt("mode") or "").lower() or None,
            answer_text=_opt("answer_text"),
            topic_key=_opt("topic_key"),
            subject_matter=_opt("subject_matter"),
        )


# ─── Request ───────────────────────────────────────────────────────────────────

class GenerationRequest(BaseModel):
    """Normalized request. Frozen for the life of one resolution."""
    model_config = ConfigDict(frozen=True)

    category: str = DEFAULT_CATEGORY
    difficulty: str = DEFAULT_DIFFICULTY
    recent: Tuple[str, ...] = ()
    seed: int = 0
    force_gen: bool = False

    @property
    def pool_key(self) -> str:
        return f"{self.category}:{self.difficulty}"

    @classmethod
    def from_payload(cls, body: Any, recent_window: int = 50) -> "GenerationRequest":
        """
        Lenient request parsing. Every malformed field is an InputError that is
        recovered by falling back to the default; nothing here raises.
        """
        if not isinstance(body, dict):
            if body is not None:
                log.info("[REQUEST] body is not a JSON object, using defaults")
            body = {}

        category = body.get("category")
        if isinstance(category, str) and category.strip():
            category = category.strip().lower()
        else:
            category = DEFAULT_CATEGORY

        difficulty = body.get("difficulty")
        if isinstance(difficulty, str) and difficulty.strip().lower() in DIFFICULTIES:
            difficulty = difficulty.strip().lower()
        else:
            difficulty = DEFAULT_DIFFICULTY

        recent_raw = body.get("recent")
        recent: List[str] = []
        if isinstance(recent_raw, list):
            recent = [r.strip() for r in recent_raw if isinstance(r, str) and r.strip()]
        recent = recent[-recent_window:] if recent_window > 0 else []

        seed = body.get("seed")
        if not isinstance(seed, int) or isinstance(seed, bool):
            seed = random.randint(0, 10**9)

        force_gen = body.get("forceGen", body.get("force_gen", False))
        if not isinstance(force_gen, bool):
            force_gen = False

        return cls(
            category=category,
            difficulty=difficulty,
            recent=tuple(recent),
            seed=seed,
            force_gen=force_gen,
        )


# ─── Pipeline results ──────────────────────────────────────────────────────────

SUCCESS = "success"
RETRY = "retryable-failure"
FATAL = "fatal-failure"


@dataclass
class AttemptOutcome:
    """One generation attempt. `outcome` is SUCCESS, RETRY or FATAL."""
    outcome: str
    question: Optional[Question] = None
    error: Optional[TriviaError] = None
    seed: int = 0
    collision_accepted: bool = False
    dedup_hit: bool = False


class GenerationResult(BaseModel):
    """Output of the generation attempt engine. `question is None` means NoResult."""
    question: Optional[Question] = None
    tries: int = 0
    last_error: Optional[str] = None
    collision_accepted: bool = False
    dedup_hit: bool = False

    @property
    def ok(self) -> bool:
        return self.question is not None


class Diagnostics(BaseModel):
    stages: List[str] = Field(default_factory=list)
    tries: int = 0
    last_error: Optional[str] = None
    model: Optional[str] = None
    pool_depth: int = 0
    collision_accepted: bool = False
    dedup_hit: bool = False
    subject: Optional[str] = None


class Resolution(BaseModel):
    question: Question
    source: SourceTag
    diagnostics: Diagnostics = Field(default_factory=Diagnostics)


# ─── Response ──────────────────────────────────────────────────────────────────

class TriviaResponse(BaseModel):
    id: str
    question: str
    choices: List[str]
    correct_index: int
    explanation: str = ""
    headword: Optional[str] = None
    mode: Optional[str] = None
    answer_text: Optional[str] = None
    topic_key: Optional[str] = None
    subject_matter: Optional[str] = None
    source: SourceTag
    debug: Optional[Dict[str, Any]] = None
