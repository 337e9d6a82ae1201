"""
Redis client for the trivia pipeline.

One async connection backs three collaborators:
  - RedisEdgeCache      last-known-good question per category:difficulty
  - RedisKeyValueStore  cross-request dedup records (q:<category>:<sha256>)
  - AdvisoryLock        short per-caller throttle (SET NX PX)

REDIS_URL unset means none of them exist; callers treat that as "source unavailable".
"""

import json
import logging
import os
from typing import Any, Dict, Optional

import redis.asyncio as redis

log = logging.getLogger(__name__)

# ─── Config ────────────────────────────────────────────────────────────────────

REDIS_URL = os.getenv("REDIS_URL")

_redis_client: Optional[redis.Redis] = None


def get_redis() -> Optional[redis.Redis]:
    """Get or create the Redis connection. None when REDIS_URL is not set."""
    global _redis_client
    if _redis_client is None and REDIS_URL:
        _redis_client = redis.from_url(REDIS_URL, decode_responses=True)
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None


# ─── Key helpers ───────────────────────────────────────────────────────────────

def _lock_key(identity: str, category: str, difficulty: str) -> str:
    return f"trivia:lock:{identity}:{category}:{difficulty}"


# ─── Collaborators ─────────────────────────────────────────────────────────────

class RedisKeyValueStore:
    """Dedup records. Values are opaque strings with a TTL in seconds."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def put(self, key: str, value: str, ttl: int) -> None:
        await self.client.set(key, value, ex=ttl)


class RedisEdgeCache:
    """JSON envelopes keyed by trivia:edge:<category>:<difficulty>."""

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self.client.get(key)
        if not raw:
            return None
        return json.loads(raw)

    async def put(self, key: str, value: Dict[str, Any], ttl: int) -> None:
        await self.client.set(key, json.dumps(value), ex=ttl)


class AdvisoryLock:
    """
    Throttles rapid duplicate submissions from one caller. Advisory only:
    a Redis failure lets the request through.
    """

    def __init__(self, client: Optional[redis.Redis], ttl_ms: int = 2500):
        self.client = client
        self.ttl_ms = ttl_ms

    async def acquire(self, identity: str, category: str, difficulty: str) -> bool:
        if self.client is None:
            return True
        try:
            ok = await self.client.set(_lock_key(identity, category, difficulty), "1", nx=True, px=self.ttl_ms)
        except Exception as e:
            log.warning(f"[LOCK] lock check failed, allowing request: {e}")
            return True
        return bool(ok)
