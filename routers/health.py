"""
Health checks

/health        — API is running
/health/redis  — Redis reachable (edge cache, dedup store, advisory lock)
/health/llm    — text-generation binding configured (never calls the model)
"""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException

from database.redis_client import get_redis
from generation import gpt_client

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health_check():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "trivia-api",
    }


@router.get("/redis")
async def redis_health():
    client = get_redis()
    if client is None:
        return {"status": "disabled", "service": "redis", "detail": "REDIS_URL not set"}
    try:
        await client.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Redis unhealthy: {str(e)}")
    return {"status": "healthy", "service": "redis"}


@router.get("/llm")
async def llm_health():
    configured = gpt_client.is_configured()
    return {
        "status": "healthy" if configured else "degraded",
        "service": "llm",
        "model": gpt_client.GPT_MODEL,
        "configured": configured,
        "purpose": "Question generation (fallback bank serves when unavailable)",
    }
