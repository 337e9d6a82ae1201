"""
Warm pool and edge-cache tier.

QuestionPool  — per `category:difficulty` bounded FIFO of validated, un-shuffled
                questions. Process-local and unlocked; concurrent pop/push may
                race, which only costs an occasional duplicate or lost entry.
EdgeCacheTier — one last-known-good question per key in an external cache,
                with a freshness window plus a stale-while-revalidate window.
"""

import logging
import time
from collections import deque
from typing import Any, Callable, Deque, Dict, Optional, Protocol

from pydantic import BaseModel, ValidationError

from generation.schemas import Question

log = logging.getLogger(__name__)

DEFAULT_CAPACITY = 6


def pool_key(category: str, difficulty: str) -> str:
    return f"{category}:{difficulty}"


# ─── Warm pool ─────────────────────────────────────────────────────────────────

class QuestionPool:
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = capacity
        self._entries: Dict[str, Deque[Question]] = {}

    def _queue(self, category: str, difficulty: str) -> Deque[Question]:
        key = pool_key(category, difficulty)
        queue = self._entries.get(key)
        if queue is None:
            queue = deque(maxlen=self.capacity)
            self._entries[key] = queue
        return queue

    def pop(self, category: str, difficulty: str) -> Optional[Question]:
        """Remove and return the oldest entry, or None when empty."""
        queue = self._entries.get(pool_key(category, difficulty))
        if not queue:
            return None
        return queue.popleft()

    def push(self, category: str, difficulty: str, question: Question) -> bool:
        """Append unless the same question text is already pooled. Oldest is evicted on overflow."""
        queue = self._queue(category, difficulty)
        text = question.question.strip().lower()
        if any(q.question.strip().lower() == text for q in queue):
            return False
        queue.append(question)
        return True

    def depth(self, category: str, difficulty: str) -> int:
        return len(self._entries.get(pool_key(category, difficulty)) or ())


# ─── Edge cache ────────────────────────────────────────────────────────────────

class EdgeCache(Protocol):
    async def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    async def put(self, key: str, value: Dict[str, Any], ttl: int) -> None: ...


class CacheHit(BaseModel):
    question: Question
    stale: bool = False


class EdgeCacheTier:
    """
    Wraps an EdgeCache backend. Entries are stored as
    {"question": {...}, "fresh_until": <epoch seconds>} with a backend TTL of
    ttl + swr, so a stale entry is still served during the revalidate window.
    Backend errors are soft misses.
    """

    def __init__(
        self,
        cache: Optional[EdgeCache],
        ttl: int = 60,
        swr: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.cache = cache
        self.ttl = ttl
        self.swr = swr
        self.clock = clock

    @staticmethod
    def key(category: str, difficulty: str) -> str:
        return f"trivia:edge:{pool_key(category, difficulty)}"

    async def get(self, category: str, difficulty: str) -> Optional[CacheHit]:
        if self.cache is None:
            return None
        try:
            envelope = await self.cache.get(self.key(category, difficulty))
        except Exception as e:
            log.warning(f"[CACHE] read failed for {pool_key(category, difficulty)}: {e}")
            return None
        if not envelope:
            return None

        try:
            question = Question.model_validate(envelope["question"])
            fresh_until = float(envelope.get("fresh_until", 0))
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            log.warning(f"[CACHE] unreadable entry for {pool_key(category, difficulty)}: {e}")
            return None

        now = self.clock()
        if now > fresh_until + self.swr:
            return None
        return CacheHit(question=question, stale=now > fresh_until)

    async def put(self, category: str, difficulty: str, question: Question) -> None:
        if self.cache is None:
            return
        envelope = {
            "question": question.model_dump(),
            "fresh_until": self.clock() + self.ttl,
        }
        try:
            await self.cache.put(self.key(category, difficulty), envelope, self.ttl + self.swr)
        except Exception as e:
            log.warning(f"[CACHE] write failed for {pool_key(category, difficulty)}: {e}")
