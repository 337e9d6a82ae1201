from __future__ import annotations

import asyncio
import json
from typing import Any, Callable

import pytest

from generation.config import PipelineSettings
from generation.dedup import DeduplicationTracker
from generation.fallback_bank import FallbackBank
from generation.pool import EdgeCacheTier, QuestionPool
from generation.prompts import GenerationPrompt
from generation.question_generator import GenerationEngine
from generation.resolver import SourceResolver


def question_payload(
    question: str = "What is the capital of France?",
    choices: list[str] | None = None,
    correct_index: int = 0,
    **extra: Any,
) -> dict[str, Any]:
    choices = choices if choices is not None else ["Paris", "London", "Berlin", "Madrid"]
    payload = {
        "question": question,
        "choices": choices,
        "correct_index": correct_index,
        "answer_text": choices[correct_index] if 0 <= correct_index < len(choices) else "",
        "explanation": "A short fact.",
    }
    payload.update(extra)
    return payload


def question_json(**kwargs: Any) -> str:
    return json.dumps(question_payload(**kwargs))


def seeded_question_json(seed: int) -> str:
    """Deterministic generator output: one distinct subject per seed."""
    return question_json(
        question=f"Record {seed}: which archive code is listed first?",
        choices=[f"R{seed}", f"X{seed}", f"Y{seed}", f"Z{seed}"],
        correct_index=0,
        topic_key=f"record {seed}",
    )


class FakeGenerator:
    """Text generator double. `responder(prompt)` returns text or an exception to raise."""

    def __init__(self, responder: Callable[[GenerationPrompt], Any], delay: float = 0.0) -> None:
        self.responder = responder
        self.delay = delay
        self.calls: list[GenerationPrompt] = []

    async def __call__(self, prompt: GenerationPrompt) -> str:
        self.calls.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.responder(prompt)
        if isinstance(result, BaseException):
            raise result
        return result

    @property
    def seeds(self) -> list[int | None]:
        return [p.seed for p in self.calls]


class FakeKeyValueStore:
    def __init__(self, fail: bool = False) -> None:
        self.data: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.fail = fail

    async def get(self, key: str) -> str | None:
        if self.fail:
            raise ConnectionError("store down")
        return self.data.get(key)

    async def put(self, key: str, value: str, ttl: int) -> None:
        if self.fail:
            raise ConnectionError("store down")
        self.data[key] = value
        self.ttls[key] = ttl


class FakeEdgeCache:
    def __init__(self, fail: bool = False) -> None:
        self.data: dict[str, dict[str, Any]] = {}
        self.fail = fail

    async def get(self, key: str) -> dict[str, Any] | None:
        if self.fail:
            raise ConnectionError("cache down")
        return self.data.get(key)

    async def put(self, key: str, value: dict[str, Any], ttl: int) -> None:
        if self.fail:
            raise ConnectionError("cache down")
        self.data[key] = value


@pytest.fixture
def settings() -> PipelineSettings:
    return PipelineSettings(
        generation_timeout=0.5,
        max_tries=3,
        replenish_tries=1,
        replenish_on_miss=False,
    )


@pytest.fixture
def store() -> FakeKeyValueStore:
    return FakeKeyValueStore()


@pytest.fixture
def build_resolver(settings: PipelineSettings, store: FakeKeyValueStore):
    def _build(
        generator: FakeGenerator,
        *,
        bank: FallbackBank | None = None,
        edge: FakeEdgeCache | None = None,
        kv_store: Any = "default",
        settings_override: PipelineSettings | None = None,
    ) -> SourceResolver:
        cfg = settings_override or settings
        tracker = DeduplicationTracker(store=store if kv_store == "default" else kv_store, ttl=cfg.dedup_ttl)
        engine = GenerationEngine(generate=generator, tracker=tracker, settings=cfg, model_name="fake-model")
        return SourceResolver(
            engine=engine,
            tracker=tracker,
            pool=QuestionPool(capacity=cfg.pool_capacity),
            bank=bank or FallbackBank(),
            edge_cache=EdgeCacheTier(edge, ttl=cfg.cache_ttl, swr=cfg.cache_swr) if edge is not None else None,
            settings=cfg,
        )

    return _build
