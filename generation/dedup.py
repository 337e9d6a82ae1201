"""
Deduplication Tracker

Two tiers keyed by a normalized subject:

  request-scoped  fuzzy match of a candidate against the caller's `recent` list
  persistent      exact sha256 key in a durable key-value store, TTL'd

An in-process recency set sits in front of the persistent tier. It is trimmed
to its most recent half once it grows past `recency_limit`. Shared across
concurrent requests without locking; lost updates are tolerated.

Store failures are logged and treated as "not seen". Missing store means
request-scoped checking plus the in-process set only.
"""

import hashlib
import logging
import re
from difflib import SequenceMatcher
from typing import Dict, Iterable, Optional, Protocol, Set

from generation.schemas import Question

log = logging.getLogger(__name__)

PREFIX_LEN = 24
SIMILARITY_THRESHOLD = 0.8
LONG_WORD_LEN = 12
MIN_SUBJECT_LEN = 4
DEFAULT_TTL = 60 * 60 * 24 * 30

_DOUBLE_QUOTED = re.compile(r"[\"“”]([^\"“”]{3,60})[\"“”]")
# single quotes only at word boundaries so contractions don't pair up
_SINGLE_QUOTED = re.compile(r"(?:^|[\s(])['‘]([^'‘’]{3,60})['’](?=[\s?.,!;:)]|$)")


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...

    async def put(self, key: str, value: str, ttl: int) -> None: ...


# ─── Normalization ─────────────────────────────────────────────────────────────

def normalize(text: Optional[str]) -> str:
    t = (text or "").lower()
    t = re.sub(r"[^\w\s-]", "", t)
    t = re.sub(r"\s+", " ", t)
    return t.strip()


def subject_of(question: Question, category: str) -> str:
    """Canonical subject text, normalized."""
    if category == "dictionary":
        order = (question.headword, question.subject_matter, question.topic_key)
    else:
        order = (question.subject_matter, question.topic_key, question.headword)
    for value in order:
        if value and normalize(value):
            return normalize(value)
    return normalize(question.question)


def dedup_key(question: Question, category: str, difficulty: str) -> str:
    subject = subject_of(question, category)
    digest = hashlib.sha256(f"{category}:{difficulty}:{subject}".encode("utf-8")).hexdigest()
    return f"q:{category}:{digest}"


def subject_tokens(text: str) -> Set[str]:
    """Quoted phrases and long words, normalized."""
    text = text or ""
    tokens = {normalize(m) for m in _DOUBLE_QUOTED.findall(text)}
    tokens.update(normalize(m) for m in _SINGLE_QUOTED.findall(text))
    tokens.update(w for w in normalize(text).split() if len(w) >= LONG_WORD_LEN)
    tokens.discard("")
    return tokens


def _prefix_overlap(a: str, b: str) -> bool:
    """A long prefix of one occurs in the other and the texts are similar overall."""
    shared = (
        (len(a) > PREFIX_LEN and a[:PREFIX_LEN] in b)
        or (len(b) > PREFIX_LEN and b[:PREFIX_LEN] in a)
    )
    if not shared:
        return False
    if a in b or b in a:
        return True
    return SequenceMatcher(None, a, b).ratio() >= SIMILARITY_THRESHOLD


def collides_with_recent(question: Question, recent: Iterable[str], category: str = "general") -> bool:
    """Fuzzy request-scoped check against previously served texts or subjects."""
    norm_q = normalize(question.question)
    subject = subject_of(question, category)
    explicit = subject if subject != norm_q and len(subject) >= MIN_SUBJECT_LEN else None
    tokens = subject_tokens(question.question)
    if explicit:
        tokens.add(explicit)

    for item in recent:
        n = normalize(item)
        if not n:
            continue
        if n == norm_q or n == subject:
            return True
        if _prefix_overlap(n, norm_q):
            return True
        if tokens & subject_tokens(item):
            return True
        if explicit and re.search(rf"\b{re.escape(explicit)}\b", n):
            return True
    return False


# ─── Tracker ───────────────────────────────────────────────────────────────────

class DeduplicationTracker:
    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        ttl: int = DEFAULT_TTL,
        recency_limit: int = 1000,
    ):
        self.store = store
        self.ttl = ttl
        self.recency_limit = recency_limit
        # dict keeps insertion order, used as an ordered set
        self._recent_keys: Dict[str, None] = {}

    # Request-scoped tier
    def collides_with_recent(self, question: Question, recent: Iterable[str], category: str = "general") -> bool:
        return collides_with_recent(question, recent, category)

    # Persistent tier
    async def check(self, key: str) -> bool:
        if key in self._recent_keys:
            return True
        if self.store is None:
            return False
        try:
            return bool(await self.store.get(key))
        except Exception as e:
            log.warning(f"[DEDUP] store read failed, treating as unseen: {e}")
            return False

    async def record(self, key: str, ttl: Optional[int] = None) -> None:
        self._remember(key)
        if self.store is None:
            return
        try:
            await self.store.put(key, "1", ttl or self.ttl)
        except Exception as e:
            log.warning(f"[DEDUP] store write failed: {e}")

    def _remember(self, key: str) -> None:
        self._recent_keys.pop(key, None)
        self._recent_keys[key] = None
        if len(self._recent_keys) > self.recency_limit:
            keep = list(self._recent_keys)[-max(1, self.recency_limit // 2):]
            self._recent_keys = dict.fromkeys(keep)

    # Question-level helpers
    async def seen(self, question: Question, category: str, difficulty: str) -> bool:
        return await self.check(dedup_key(question, category, difficulty))

    async def record_question(self, question: Question, category: str, difficulty: str) -> str:
        key = dedup_key(question, category, difficulty)
        await self.record(key)
        return key

    async def is_fresh(self, question: Question, category: str, difficulty: str, recent: Iterable[str]) -> bool:
        if self.collides_with_recent(question, recent, category):
            return False
        return not await self.seen(question, category, difficulty)

    @property
    def recency_size(self) -> int:
        return len(self._recent_keys)
