"""
Trivia Router — /api/trivia

POST /api/trivia — one fresh, shuffled multiple-choice question.

The body is parsed leniently (bad fields fall back to defaults). Always 200
with a valid question, except the optional advisory lock path (429).
"""

import logging
import math
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response

from generation.config import PipelineSettings
from generation.errors import InputError
from generation.resolver import SourceResolver
from generation.schemas import GenerationRequest, Resolution, TriviaResponse

router = APIRouter(prefix="/api", tags=["trivia"])

log = logging.getLogger(__name__)

LAST_ERROR_MAX = 120


# ─── Dependencies ──────────────────────────────────────────────────────────────

def get_resolver(request: Request) -> SourceResolver:
    return request.app.state.resolver


def get_settings(request: Request) -> PipelineSettings:
    return request.app.state.settings


def caller_identity(request: Request) -> str:
    ip = request.headers.get("cf-connecting-ip")
    if not ip:
        forwarded = request.headers.get("x-forwarded-for", "")
        ip = forwarded.split(",")[0].strip()
    if not ip and request.client:
        ip = request.client.host
    return ip or "anonymous"


# ─── Helpers ───────────────────────────────────────────────────────────────────

def _diagnostic_headers(resolution: Resolution) -> dict:
    diag = resolution.diagnostics
    headers = {
        "cache-control": "no-store",
        "x-trivia-source": resolution.source,
        "x-trivia-tries": str(diag.tries),
        "x-trivia-pool-depth": str(diag.pool_depth),
    }
    if diag.model:
        headers["x-trivia-model"] = diag.model
    if diag.last_error:
        headers["x-trivia-last-error"] = diag.last_error[:LAST_ERROR_MAX].replace("\n", " ")
    return headers


def _to_response(resolution: Resolution, debug: bool) -> TriviaResponse:
    q = resolution.question
    return TriviaResponse(
        id=str(uuid.uuid4()),
        question=q.question,
        choices=q.choices,
        correct_index=q.correct_index,
        explanation=q.explanation,
        headword=q.headword,
        mode=q.mode,
        answer_text=q.answer_text,
        topic_key=q.topic_key,
        subject_matter=q.subject_matter,
        source=resolution.source,
        debug=resolution.diagnostics.model_dump() if debug else None,
    )


# ─── Routes ────────────────────────────────────────────────────────────────────

@router.post("/trivia", response_model=TriviaResponse, response_model_exclude_none=True)
async def get_trivia(
    request: Request,
    response: Response,
    resolver: SourceResolver = Depends(get_resolver),
    settings: PipelineSettings = Depends(get_settings),
):
    """Resolve one question from cache, warm pool, live generation or the fallback bank."""
    try:
        body = await request.json()
    except ValueError:
        log.info(f"[REQUEST] {InputError('body is not valid JSON')}, using defaults")
        body = None

    req = GenerationRequest.from_payload(body, recent_window=settings.recent_window)

    if settings.advisory_lock:
        lock = request.app.state.lock
        if not await lock.acquire(caller_identity(request), req.category, req.difficulty):
            retry_after = max(1, math.ceil(settings.advisory_lock_ms / 1000))
            raise HTTPException(
                status_code=429,
                detail="try again shortly",
                headers={"Retry-After": str(retry_after)},
            )

    resolution = await resolver.resolve(req)
    for name, value in _diagnostic_headers(resolution).items():
        response.headers[name] = value
    return _to_response(resolution, debug=settings.debug_inline)
