"""
Pipeline settings.

Everything is read from environment variables (a `.env` file is loaded by
main.py). Deployment profiles set the per-attempt budget and retry count;
explicit GENERATION_TIMEOUT / GENERATION_MAX_TRIES override the profile.
"""

import logging
import os
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

log = logging.getLogger(__name__)


# ─── Profiles ──────────────────────────────────────────────────────────────────

PROFILES: Dict[str, Dict[str, float]] = {
    "fast":     {"timeout": 1.5, "max_tries": 3},
    "standard": {"timeout": 4.0, "max_tries": 5},
    "thorough": {"timeout": 8.0, "max_tries": 8},
}

DEFAULT_PROFILE = "standard"


# ─── Env helpers ───────────────────────────────────────────────────────────────

def _env_int(name: str, default: int, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        log.warning(f"[CONFIG] {name}={raw!r} is not an integer, using {default}")
        return default
    if minimum is not None and value < minimum:
        log.warning(f"[CONFIG] {name}={value} is below {minimum}, using {default}")
        return default
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning(f"[CONFIG] {name}={raw!r} is not a number, using {default}")
        return default
    if value <= 0:
        log.warning(f"[CONFIG] {name}={value} must be positive, using {default}")
        return default
    return value


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def parse_pool_keys(raw: Optional[str]) -> List[Tuple[str, str]]:
    """Parse "general:easy, history:hard" into [(category, difficulty), ...]."""
    keys = []
    for part in (raw or "").split(","):
        part = part.strip().lower()
        if not part or ":" not in part:
            continue
        category, difficulty = part.split(":", 1)
        if category and difficulty:
            keys.append((category, difficulty))
    return keys


# ─── Settings ──────────────────────────────────────────────────────────────────

class PipelineSettings(BaseModel):
    profile: str = DEFAULT_PROFILE

    # Generation
    generation_timeout: float = Field(4.0, gt=0)
    max_tries: int = Field(5, ge=1)
    seed_stride: int = 1337
    replenish_tries: int = Field(2, ge=1)
    replenish_on_miss: bool = True

    # Validation
    min_choices: int = Field(4, ge=2)
    question_min_len: int = 8
    question_max_len: int = 200

    # Request shaping
    recent_window: int = Field(50, ge=1)

    # Pool / edge cache
    pool_capacity: int = Field(6, ge=1)
    cache_ttl: int = 60
    cache_swr: int = 300
    cache_generated: bool = True
    warmup_keys: List[Tuple[str, str]] = Field(default_factory=list)

    # Dedup
    dedup_ttl: int = 60 * 60 * 24 * 30
    dedup_recency_limit: int = Field(1000, ge=2)

    # Advisory lock
    advisory_lock: bool = False
    advisory_lock_ms: int = 2500

    debug_inline: bool = False

    @property
    def strict_choices(self) -> bool:
        return self.min_choices >= 4

    @classmethod
    def from_env(cls) -> "PipelineSettings":
        profile = (os.getenv("TRIVIA_PROFILE") or DEFAULT_PROFILE).strip().lower()
        if profile not in PROFILES:
            log.warning(f"[CONFIG] unknown TRIVIA_PROFILE={profile!r}, using {DEFAULT_PROFILE}")
            profile = DEFAULT_PROFILE
        base = PROFILES[profile]

        return cls(
            profile=profile,
            generation_timeout=_env_float("GENERATION_TIMEOUT", base["timeout"]),
            max_tries=_env_int("GENERATION_MAX_TRIES", int(base["max_tries"]), minimum=1),
            seed_stride=_env_int("SEED_STRIDE", 1337),
            replenish_tries=_env_int("REPLENISH_TRIES", 2, minimum=1),
            replenish_on_miss=_env_bool("REPLENISH_ON_MISS", True),
            min_choices=_env_int("MIN_CHOICES", 4, minimum=2),
            question_min_len=_env_int("QUESTION_MIN_LEN", 8),
            question_max_len=_env_int("QUESTION_MAX_LEN", 200),
            recent_window=_env_int("RECENT_WINDOW", 50, minimum=1),
            pool_capacity=_env_int("POOL_CAPACITY", 6, minimum=1),
            cache_ttl=_env_int("CACHE_TTL", 60),
            cache_swr=_env_int("CACHE_SWR", 300),
            cache_generated=_env_bool("CACHE_GENERATED", True),
            warmup_keys=parse_pool_keys(os.getenv("POOL_WARMUP_KEYS")),
            dedup_ttl=_env_int("DEDUP_TTL", 60 * 60 * 24 * 30),
            dedup_recency_limit=_env_int("DEDUP_RECENCY_LIMIT", 1000, minimum=2),
            advisory_lock=_env_bool("ADVISORY_LOCK", False),
            advisory_lock_ms=_env_int("ADVISORY_LOCK_MS", 2500),
            debug_inline=_env_bool("TRIVIA_DEBUG", False),
        )
