"""
Source Resolver

Resolves one GenerationRequest to a question, trying sources in order:

    CacheCheck → PoolCheck → Generate → Fallback → Done
    (forceGen starts at Generate)

Whatever source wins, the question is shuffled from the request seed and
recorded with the dedup tracker before it is returned. No collaborator error
escapes: a failing source is just a miss, and the fallback bank always answers.

Background work (pool replenishment, stale cache revalidation) is
fire-and-forget; failures are logged and swallowed.
"""

import asyncio
import logging
import random
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set, Tuple

from generation.config import PipelineSettings
from generation.dedup import DeduplicationTracker, subject_of
from generation.fallback_bank import FallbackBank
from generation.pool import EdgeCacheTier, QuestionPool, pool_key
from generation.question_generator import GenerationEngine
from generation.randomizer import RngFactory, seeded_rng, shuffle_choices
from generation.schemas import Diagnostics, GenerationRequest, Question, Resolution
from generation.validator import validate

log = logging.getLogger(__name__)

Picked = Optional[Tuple[Question, str]]


class Stage(str, Enum):
    CACHE_CHECK = "cache_check"
    POOL_CHECK = "pool_check"
    GENERATE = "generate"
    FALLBACK = "fallback"
    DONE = "done"


# Transition taken when a stage produces nothing
ON_MISS = {
    Stage.CACHE_CHECK: Stage.POOL_CHECK,
    Stage.POOL_CHECK: Stage.GENERATE,
    Stage.GENERATE: Stage.FALLBACK,
    Stage.FALLBACK: Stage.DONE,
}


class SourceResolver:
    def __init__(
        self,
        engine: GenerationEngine,
        tracker: DeduplicationTracker,
        pool: QuestionPool,
        bank: FallbackBank,
        edge_cache: Optional[EdgeCacheTier] = None,
        settings: Optional[PipelineSettings] = None,
        rng_factory: RngFactory = seeded_rng,
    ):
        self.engine = engine
        self.tracker = tracker
        self.pool = pool
        self.bank = bank
        self.edge_cache = edge_cache
        self.settings = settings or PipelineSettings()
        self.rng_factory = rng_factory

        self._background: Set[asyncio.Task] = set()
        self._inflight: Set[str] = set()
        self._handlers: Dict[Stage, Callable[[GenerationRequest, Diagnostics], Awaitable[Picked]]] = {
            Stage.CACHE_CHECK: self._from_cache,
            Stage.POOL_CHECK: self._from_pool,
            Stage.GENERATE: self._from_generation,
            Stage.FALLBACK: self._from_fallback,
        }

    # ─── Main entry ────────────────────────────────────────────────────────────

    async def resolve(self, req: GenerationRequest) -> Resolution:
        diag = Diagnostics(model=self.engine.model_name)
        stage = Stage.GENERATE if req.force_gen else Stage.CACHE_CHECK
        picked: Picked = None

        while stage is not Stage.DONE:
            diag.stages.append(stage.value)
            try:
                picked = await self._handlers[stage](req, diag)
            except Exception as e:
                log.warning(f"[RESOLVE] {req.pool_key} stage {stage.value} failed: {e}")
                picked = None
            stage = Stage.DONE if picked else ON_MISS[stage]

        if picked is None:
            # fallback stage itself blew up; serve the first curated entry
            picked = (self.bank.partition(req.category, req.difficulty)[1][0], "fallback")

        question, source = picked
        shuffled = shuffle_choices(question, req.seed, self.rng_factory)
        await self.tracker.record_question(shuffled, req.category, req.difficulty)

        diag.subject = subject_of(shuffled, req.category)[:64]
        diag.pool_depth = self.pool.depth(req.category, req.difficulty)
        log.info(f"[RESOLVE] {req.pool_key} served from {source} (path={'>'.join(diag.stages)})")
        return Resolution(question=shuffled, source=source, diagnostics=diag)

    # ─── Sources ───────────────────────────────────────────────────────────────

    async def _is_fresh(self, question: Question, req: GenerationRequest) -> bool:
        return await self.tracker.is_fresh(question, req.category, req.difficulty, req.recent)

    def _invalid(self, question: Question, category: str) -> Optional[str]:
        """Stored entries may predate the current settings; recheck before serving."""
        return validate(
            question,
            category,
            min_choices=self.settings.min_choices,
            min_len=self.settings.question_min_len,
            max_len=self.settings.question_max_len,
        )

    async def _from_cache(self, req: GenerationRequest, diag: Diagnostics) -> Picked:
        if self.edge_cache is None:
            return None
        hit = await self.edge_cache.get(req.category, req.difficulty)
        if hit is None:
            return None
        reason = self._invalid(hit.question, req.category)
        if reason:
            log.warning(f"[CACHE] {req.pool_key} cached entry rejected: {reason}")
            self.schedule_replenish(req.category, req.difficulty, write_cache=True)
            return None
        if hit.stale:
            self.schedule_replenish(req.category, req.difficulty, write_cache=True)
        if not await self._is_fresh(hit.question, req):
            log.info(f"[CACHE] {req.pool_key} cached question already served, skipping")
            return None
        return hit.question, "cache"

    async def _from_pool(self, req: GenerationRequest, diag: Diagnostics) -> Picked:
        for _ in range(self.pool.capacity):
            question = self.pool.pop(req.category, req.difficulty)
            if question is None:
                return None
            reason = self._invalid(question, req.category)
            if reason:
                log.warning(f"[POOL] {req.pool_key} discarding invalid entry: {reason}")
                continue
            if await self._is_fresh(question, req):
                self.schedule_replenish(req.category, req.difficulty)
                return question, "pool"
            log.info(f"[POOL] {req.pool_key} discarding colliding entry")
        return None

    async def _from_generation(self, req: GenerationRequest, diag: Diagnostics) -> Picked:
        result = await self.engine.attempt(req)
        diag.tries = result.tries
        diag.last_error = result.last_error
        diag.collision_accepted = result.collision_accepted
        diag.dedup_hit = result.dedup_hit
        if result.question is None:
            return None

        question = result.question
        self.pool.push(req.category, req.difficulty, question.model_copy(deep=True))
        if self.edge_cache is not None and self.settings.cache_generated:
            await self.edge_cache.put(req.category, req.difficulty, question)
        if self.settings.replenish_on_miss and self.pool.depth(req.category, req.difficulty) < self.pool.capacity:
            self.schedule_replenish(req.category, req.difficulty)
        return question, "generated"

    async def _from_fallback(self, req: GenerationRequest, diag: Diagnostics) -> Picked:
        async def is_fresh(q: Question) -> bool:
            try:
                return await self._is_fresh(q, req)
            except Exception as e:
                log.warning(f"[FALLBACK] freshness check failed: {e}")
                return True

        return await self.bank.select(req, is_fresh), "fallback"

    # ─── Background work ───────────────────────────────────────────────────────

    def schedule_replenish(self, category: str, difficulty: str, write_cache: bool = False) -> Optional[asyncio.Task]:
        """Fire-and-forget generation into the pool. One in flight per key."""
        key = pool_key(category, difficulty)
        if key in self._inflight:
            return None
        self._inflight.add(key)
        task = asyncio.create_task(self._replenish(category, difficulty, write_cache))
        self._background.add(task)
        task.add_done_callback(lambda t: self._finish(t, key))
        return task

    async def _replenish(self, category: str, difficulty: str, write_cache: bool) -> None:
        req = GenerationRequest(
            category=category,
            difficulty=difficulty,
            seed=random.randint(0, 10**9),
        )
        result = await self.engine.attempt(req, max_tries=self.settings.replenish_tries)
        if result.question is None or result.collision_accepted:
            log.info(f"[REPLENISH] {req.pool_key} produced nothing new ({result.last_error})")
            return
        self.pool.push(category, difficulty, result.question)
        if write_cache and self.edge_cache is not None:
            await self.edge_cache.put(category, difficulty, result.question)
        log.info(f"[REPLENISH] {req.pool_key} pool depth now {self.pool.depth(category, difficulty)}")

    def _finish(self, task: asyncio.Task, key: str) -> None:
        self._background.discard(task)
        self._inflight.discard(key)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.warning(f"[REPLENISH] {key} failed: {exc}")

    async def drain(self) -> None:
        """Wait for outstanding background work (tests and shutdown)."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def close(self, timeout: float = 5.0) -> None:
        """Give background work `timeout` seconds to finish, then cancel the rest."""
        try:
            await asyncio.wait_for(self.drain(), timeout=timeout)
        except asyncio.TimeoutError:
            tasks = list(self._background)
            log.warning(f"[REPLENISH] background work still running after {timeout:.1f}s, cancelling")
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._background)
