"""
Trivia API — Main Application
FastAPI application serving one fresh multiple-choice trivia question per request.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from database.redis_client import AdvisoryLock, RedisEdgeCache, RedisKeyValueStore, close_redis, get_redis
from generation import gpt_client
from generation.config import PipelineSettings
from generation.dedup import DeduplicationTracker
from generation.fallback_bank import FallbackBank
from generation.pool import EdgeCacheTier, QuestionPool
from generation.question_generator import GenerationEngine
from generation.resolver import SourceResolver
from routers import health, trivia

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")
log = logging.getLogger("trivia.app")

SHUTDOWN_GRACE_SECONDS = 5.0


def build_resolver(settings: PipelineSettings, redis_client=None, generate=None) -> SourceResolver:
    """Wire the pipeline. Missing Redis means no edge cache and no persistent dedup."""
    store = RedisKeyValueStore(redis_client) if redis_client is not None else None
    cache = RedisEdgeCache(redis_client) if redis_client is not None else None

    tracker = DeduplicationTracker(
        store=store,
        ttl=settings.dedup_ttl,
        recency_limit=settings.dedup_recency_limit,
    )
    engine = GenerationEngine(
        generate=generate or gpt_client.generate_text,
        tracker=tracker,
        settings=settings,
        model_name=gpt_client.GPT_MODEL,
    )
    return SourceResolver(
        engine=engine,
        tracker=tracker,
        pool=QuestionPool(capacity=settings.pool_capacity),
        bank=FallbackBank(),
        edge_cache=EdgeCacheTier(cache, ttl=settings.cache_ttl, swr=settings.cache_swr) if cache else None,
        settings=settings,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: build the resolver once per process, optionally warm pools."""
    settings = PipelineSettings.from_env()
    client = get_redis()
    if client is None:
        log.warning("REDIS_URL not set — edge cache, persistent dedup and advisory lock disabled")
    if not gpt_client.is_configured():
        log.warning("OPENAI_API_KEY not set — every request will be served from the fallback bank")

    app.state.settings = settings
    app.state.resolver = build_resolver(settings, client)
    app.state.lock = AdvisoryLock(client, ttl_ms=settings.advisory_lock_ms)

    if gpt_client.is_configured():
        for category, difficulty in settings.warmup_keys:
            app.state.resolver.schedule_replenish(category, difficulty)
        if settings.warmup_keys:
            log.info(f"Warming pools: {', '.join(f'{c}:{d}' for c, d in settings.warmup_keys)}")

    log.info(f"Trivia API ready (profile={settings.profile}, model={gpt_client.GPT_MODEL})")
    yield
    await app.state.resolver.close(timeout=SHUTDOWN_GRACE_SECONDS)
    await close_redis()


app = FastAPI(
    title="Trivia API",
    description="Fresh, validated, shuffled multiple-choice trivia questions",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(trivia.router)   # /api/trivia
app.include_router(health.router)   # /health, /health/redis, /health/llm


@app.get("/")
def root():
    return {
        "name": "Trivia API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "trivia": "/api/trivia",
            "health": "/health",
        },
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
