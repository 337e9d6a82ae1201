"""
Generation Attempt Engine

Drives bounded, retried calls to the text-generation collaborator:

  for i in 0..max_tries:
      seed_i = seed + i * stride
      call model (bounded by the attempt budget; late calls are abandoned, not killed)
      extract JSON  →  validate structure  →  validate domain  →  dedup pre-check

Every attempt yields an AttemptOutcome (success | retry | fatal). The driver
loop only inspects outcomes. A duplicate on the final attempt is accepted so
the caller still gets a usable question. If nothing succeeds the result is
NoResult (GenerationResult.question is None), never an exception.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from generation.config import PipelineSettings
from generation.dedup import DeduplicationTracker, subject_of
from generation.errors import (
    CollaboratorUnavailable,
    DomainValidationError,
    DuplicateCollision,
    ExhaustedRetries,
    GenerationTimeout,
    ParseError,
    SchemaValidationError,
    TriviaError,
)
from generation.json_extract import extract_json_object
from generation.prompts import GenerationPrompt, build_prompt
from generation.schemas import (
    FATAL,
    RETRY,
    SUCCESS,
    AttemptOutcome,
    GenerationRequest,
    GenerationResult,
    Question,
)
from generation.validator import validate_domain, validate_structure

log = logging.getLogger(__name__)

TextGenerator = Callable[[GenerationPrompt], Awaitable[str]]


def _drain(task: "asyncio.Future") -> None:
    """Consume the result of an abandoned call so it never logs as unretrieved."""
    if not task.cancelled():
        task.exception()


class GenerationEngine:
    def __init__(
        self,
        generate: TextGenerator,
        tracker: DeduplicationTracker,
        settings: Optional[PipelineSettings] = None,
        model_name: Optional[str] = None,
    ):
        self.generate = generate
        self.tracker = tracker
        self.settings = settings or PipelineSettings()
        self.model_name = model_name

    # ─── Driver ────────────────────────────────────────────────────────────────

    async def attempt(self, req: GenerationRequest, max_tries: Optional[int] = None) -> GenerationResult:
        tries = max_tries or self.settings.max_tries
        last_error: Optional[TriviaError] = None
        dedup_hit = False

        for i in range(tries):
            outcome = await self._run_once(req, i, final=(i == tries - 1))
            dedup_hit = dedup_hit or outcome.dedup_hit

            if outcome.outcome == SUCCESS:
                log.info(
                    f"[GENERATE] {req.pool_key} ok on attempt {i + 1}/{tries} (seed={outcome.seed})"
                )
                return GenerationResult(
                    question=outcome.question,
                    tries=i + 1,
                    last_error=str(last_error) if last_error else None,
                    collision_accepted=outcome.collision_accepted,
                    dedup_hit=dedup_hit,
                )

            last_error = outcome.error
            if outcome.outcome == FATAL:
                log.warning(f"[GENERATE] {req.pool_key} giving up: {last_error}")
                return GenerationResult(tries=i + 1, last_error=str(last_error), dedup_hit=dedup_hit)
            log.info(f"[GENERATE] {req.pool_key} attempt {i + 1}/{tries} failed: {last_error}")

        exhausted = ExhaustedRetries(f"{tries} attempts failed; last: {last_error}")
        return GenerationResult(tries=tries, last_error=str(exhausted), dedup_hit=dedup_hit)

    # ─── One attempt ───────────────────────────────────────────────────────────

    async def _run_once(self, req: GenerationRequest, index: int, final: bool) -> AttemptOutcome:
        seed = req.seed + index * self.settings.seed_stride
        prompt = build_prompt(req.category, req.difficulty, req.recent, seed=seed)

        try:
            raw = await self._call_with_budget(prompt)
        except GenerationTimeout as e:
            return AttemptOutcome(RETRY, error=e, seed=seed)
        except CollaboratorUnavailable as e:
            return AttemptOutcome(FATAL, error=e, seed=seed)
        except Exception as e:
            return AttemptOutcome(RETRY, error=CollaboratorUnavailable(str(e)[:200]), seed=seed)

        try:
            data = extract_json_object(raw)
        except ParseError as e:
            return AttemptOutcome(RETRY, error=e, seed=seed)

        reason = validate_structure(
            data,
            min_choices=self.settings.min_choices,
            min_len=self.settings.question_min_len,
            max_len=self.settings.question_max_len,
        )
        if reason:
            return AttemptOutcome(RETRY, error=SchemaValidationError(reason), seed=seed)

        reason = validate_domain(data, req.category)
        if reason:
            return AttemptOutcome(RETRY, error=DomainValidationError(reason), seed=seed)

        question = Question.from_candidate(data)

        recent_hit = self.tracker.collides_with_recent(question, req.recent, req.category)
        dedup_hit = await self.tracker.seen(question, req.category, req.difficulty)
        if recent_hit or dedup_hit:
            subject = subject_of(question, req.category)[:64]
            where = "recent list" if recent_hit else "dedup store"
            collision = DuplicateCollision(f"subject '{subject}' already in {where}")
            if not final:
                return AttemptOutcome(RETRY, error=collision, seed=seed, dedup_hit=dedup_hit)
            log.warning(f"[GENERATE] {req.pool_key} accepting duplicate on final attempt: {collision.reason}")
            return AttemptOutcome(
                SUCCESS, question=question, seed=seed, collision_accepted=True, dedup_hit=dedup_hit
            )

        return AttemptOutcome(SUCCESS, question=question, seed=seed)

    async def _call_with_budget(self, prompt: GenerationPrompt):
        """
        Race the model call against the attempt budget. On expiry the call keeps
        running detached; only this attempt is abandoned.
        """
        budget = self.settings.generation_timeout
        task = asyncio.ensure_future(self.generate(prompt))
        try:
            return await asyncio.wait_for(asyncio.shield(task), timeout=budget)
        except asyncio.TimeoutError:
            task.add_done_callback(_drain)
            raise GenerationTimeout(f"no response within {budget:.1f}s")
