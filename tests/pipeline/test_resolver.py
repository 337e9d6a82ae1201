from __future__ import annotations

import asyncio
import time

import pytest

from conftest import (
    FakeEdgeCache,
    FakeGenerator,
    FakeKeyValueStore,
    question_json,
    question_payload,
    seeded_question_json,
)
from generation.config import PipelineSettings
from generation.fallback_bank import FallbackBank
from generation.pool import EdgeCacheTier
from generation.schemas import GenerationRequest, Question
from generation.validator import validate


def _req(**overrides) -> GenerationRequest:
    data = dict(category="general", difficulty="easy", seed=100)
    data.update(overrides)
    return GenerationRequest(**data)


def _failing() -> FakeGenerator:
    return FakeGenerator(lambda p: RuntimeError("model offline"))


def _resolve(resolver, req):
    async def run():
        resolution = await resolver.resolve(req)
        await resolver.drain()
        return resolution

    return asyncio.run(run())


def test_generated_question_is_shuffled_and_tagged(build_resolver):
    resolver = build_resolver(FakeGenerator(lambda p: question_json()))
    resolution = _resolve(resolver, _req())

    assert resolution.source == "generated"
    q = resolution.question
    assert sorted(q.choices) == ["Berlin", "London", "Madrid", "Paris"]
    assert q.choices[q.correct_index] == "Paris"
    assert resolution.diagnostics.tries == 1
    assert resolution.diagnostics.stages == ["cache_check", "pool_check", "generate"]
    assert resolution.diagnostics.model == "fake-model"


def test_generation_failure_falls_back_to_bank(build_resolver):
    resolver = build_resolver(_failing())
    resolution = _resolve(resolver, _req())

    assert resolution.source == "fallback"
    assert validate(resolution.question) is None
    assert "ExhaustedRetries" in resolution.diagnostics.last_error
    assert resolution.diagnostics.stages[-1] == "fallback"


def test_fallback_serves_colliding_entry_when_nothing_else_matches(build_resolver):
    only = Question(
        question="Who was the first President of the United States?",
        choices=["John Adams", "George Washington", "Thomas Jefferson", "James Madison"],
        correct_index=1,
        answer_text="George Washington",
        topic_key="George Washington",
    )
    filler = Question(
        question="How many legs does a spider have?",
        choices=["Six", "Eight", "Ten", "Twelve"],
        correct_index=1,
    )
    bank = FallbackBank({"general:easy": [filler], "history:medium": [only]})
    resolver = build_resolver(_failing(), bank=bank)

    req = _req(category="history", difficulty="medium", recent=(only.question,))
    resolution = _resolve(resolver, req)

    assert resolution.source == "fallback"
    assert resolution.question.question == only.question
    assert validate(resolution.question) is None


def test_force_gen_bypasses_pool(build_resolver):
    generator = FakeGenerator(lambda p: seeded_question_json(p.seed))
    resolver = build_resolver(generator)
    pooled = Question.from_candidate(question_payload())
    resolver.pool.push("general", "easy", pooled)

    resolution = _resolve(resolver, _req(force_gen=True))

    assert resolution.source == "generated"
    assert resolution.diagnostics.stages == ["generate"]
    assert len(generator.calls) == 1
    assert resolver.pool.depth("general", "easy") == 2


def test_repeat_request_gets_a_different_subject(build_resolver):
    resolver = build_resolver(FakeGenerator(lambda p: seeded_question_json(p.seed)))

    first = _resolve(resolver, _req())
    second = _resolve(resolver, _req())

    assert first.question.topic_key == "record 100"
    assert second.question.topic_key == "record 1437"
    assert second.source == "generated"
    assert second.diagnostics.dedup_hit


def test_dedup_survives_a_new_process(store):
    from generation.dedup import DeduplicationTracker

    first = DeduplicationTracker(store=store)
    q = Question.from_candidate(question_payload(topic_key="record 100"))
    asyncio.run(first.record_question(q, "general", "easy"))

    restarted = DeduplicationTracker(store=store)
    assert asyncio.run(restarted.seen(q, "general", "easy"))


def test_always_timing_out_generator_still_terminates(build_resolver):
    cfg = PipelineSettings(generation_timeout=0.05, max_tries=3, replenish_on_miss=False)
    resolver = build_resolver(
        FakeGenerator(lambda p: question_json(), delay=5.0),
        settings_override=cfg,
    )

    started = time.monotonic()
    resolution = asyncio.run(resolver.resolve(_req()))
    elapsed = time.monotonic() - started

    assert resolution.source == "fallback"
    assert validate(resolution.question) is None
    assert elapsed < 2.0
    assert "GenerationTimeout" in resolution.diagnostics.last_error


def test_same_seed_same_order(build_resolver):
    a = _resolve(build_resolver(FakeGenerator(lambda p: question_json()), kv_store=None), _req(seed=7))
    b = _resolve(build_resolver(FakeGenerator(lambda p: question_json()), kv_store=None), _req(seed=7))
    assert a.question.choices == b.question.choices
    assert a.question.correct_index == b.question.correct_index


def test_pool_hit_schedules_replenishment(build_resolver):
    generator = FakeGenerator(lambda p: seeded_question_json(p.seed))
    resolver = build_resolver(generator)
    resolver.pool.push("general", "easy", Question.from_candidate(question_payload()))

    resolution = _resolve(resolver, _req())

    assert resolution.source == "pool"
    assert resolution.diagnostics.stages == ["cache_check", "pool_check"]
    assert len(generator.calls) == 1
    assert resolver.pool.depth("general", "easy") == 1
    assert resolver.pending == 0


def test_pool_skips_entries_in_recent(build_resolver):
    resolver = build_resolver(_failing())
    resolver.pool.push("general", "easy", Question.from_candidate(question_payload()))
    resolver.pool.push(
        "general",
        "easy",
        Question.from_candidate(
            question_payload(
                question="Which planet is known as the Red Planet?",
                choices=["Venus", "Mars", "Jupiter", "Mercury"],
                correct_index=1,
            )
        ),
    )

    resolution = _resolve(resolver, _req(recent=("What is the capital of France?",)))

    assert resolution.source == "pool"
    assert "Red Planet" in resolution.question.question


def test_cache_hit_is_served(build_resolver):
    edge = FakeEdgeCache()
    resolver = build_resolver(_failing(), edge=edge)
    cached = Question.from_candidate(question_payload())
    asyncio.run(EdgeCacheTier(edge).put("general", "easy", cached))

    resolution = _resolve(resolver, _req())

    assert resolution.source == "cache"
    assert resolution.diagnostics.stages == ["cache_check"]
    assert resolution.question.choices[resolution.question.correct_index] == "Paris"


def test_stale_cache_hit_is_revalidated(build_resolver):
    edge = FakeEdgeCache()
    resolver = build_resolver(FakeGenerator(lambda p: seeded_question_json(p.seed)), edge=edge)
    key = EdgeCacheTier.key("general", "easy")
    edge.data[key] = {
        "question": Question.from_candidate(question_payload()).model_dump(),
        "fresh_until": time.time() - 5,
    }

    resolution = _resolve(resolver, _req())

    assert resolution.source == "cache"
    refreshed = edge.data[key]
    assert refreshed["question"]["question"].startswith("Record ")
    assert refreshed["fresh_until"] > time.time()


def test_generated_question_is_written_to_cache(build_resolver):
    edge = FakeEdgeCache()
    resolver = build_resolver(FakeGenerator(lambda p: question_json()), edge=edge)

    _resolve(resolver, _req())

    assert EdgeCacheTier.key("general", "easy") in edge.data


def test_broken_backends_are_soft_misses(build_resolver):
    resolver = build_resolver(
        FakeGenerator(lambda p: question_json()),
        edge=FakeEdgeCache(fail=True),
        kv_store=FakeKeyValueStore(fail=True),
    )
    resolution = _resolve(resolver, _req())
    assert resolution.source == "generated"


def test_served_question_is_recorded(build_resolver, store):
    resolver = build_resolver(FakeGenerator(lambda p: question_json()))
    _resolve(resolver, _req())
    assert len(store.data) == 1
    (key,) = store.data
    assert key.startswith("q:general:")
    assert store.ttls[key] == 60 * 60 * 24 * 30


def test_replenish_on_miss_fills_pool(build_resolver):
    cfg = PipelineSettings(generation_timeout=0.5, max_tries=3, replenish_tries=1, replenish_on_miss=True)
    resolver = build_resolver(FakeGenerator(lambda p: seeded_question_json(p.seed)), settings_override=cfg)

    _resolve(resolver, _req())

    # generated copy plus one replenished question
    assert resolver.pool.depth("general", "easy") == 2


@pytest.mark.parametrize(
    "cached",
    [
        {"question": "Broken cached entry?", "choices": [], "correct_index": 0},
        {"question": "Which planet is largest?", "choices": ["Jupiter", "Mars"], "correct_index": 0},
        {"question": "Which planet is largest?", "choices": ["Jupiter", "Mars", "Venus", "Earth"], "correct_index": 9},
    ],
)
def test_invalid_cache_entry_is_a_soft_miss(build_resolver, cached):
    edge = FakeEdgeCache()
    edge.data[EdgeCacheTier.key("general", "easy")] = {"question": cached, "fresh_until": 9e12}
    resolver = build_resolver(_failing(), edge=edge)

    resolution = _resolve(resolver, _req(seed=1))

    assert resolution.source == "fallback"
    assert validate(resolution.question) is None


def test_invalid_pool_entry_is_discarded(build_resolver):
    resolver = build_resolver(_failing())
    resolver.pool.push(
        "general", "easy", Question(question="Broken pooled entry?", choices=[], correct_index=0)
    )
    resolver.pool.push("general", "easy", Question.from_candidate(question_payload()))

    resolution = _resolve(resolver, _req())

    assert resolution.source == "pool"
    assert resolution.question.choices[resolution.question.correct_index] == "Paris"


def test_close_cancels_unfinished_background_work(build_resolver):
    resolver = build_resolver(FakeGenerator(lambda p: question_json(), delay=5.0))

    async def run():
        task = resolver.schedule_replenish("general", "easy")
        await resolver.close(timeout=0.05)
        return task

    task = asyncio.run(run())
    assert task.cancelled()
    assert resolver.pending == 0
