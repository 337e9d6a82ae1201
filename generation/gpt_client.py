"""
Shared OpenAI GPT helper for the trivia pipeline.

Used by:
  - question_generator.py  (one call per generation attempt)
  - routers/health.py      (binding status only, never calls the model)

Model: gpt-4o-mini  (override with GPT_MODEL env var)
Any OpenAI-compatible endpoint works through OPENAI_BASE_URL.
"""

import os
from typing import Optional

from openai import AsyncOpenAI

from generation.errors import CollaboratorUnavailable
from generation.prompts import GenerationPrompt

# ── Model config ───────────────────────────────────────────────────────────────
GPT_MODEL = os.getenv("GPT_MODEL", "gpt-4o-mini")

# Lazy singleton
_client: Optional[AsyncOpenAI] = None


def is_configured() -> bool:
    return bool(os.getenv("OPENAI_API_KEY"))


def _get_client() -> AsyncOpenAI:
    global _client
    if _client is None:
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise CollaboratorUnavailable("OPENAI_API_KEY is not set")
        _client = AsyncOpenAI(
            api_key=api_key,
            base_url=os.getenv("OPENAI_BASE_URL") or None,
            max_retries=0,
        )
    return _client


async def call_gpt(
    prompt: str,
    system: str = "You generate multiple-choice trivia. Output only what is asked.",
    temperature: float = 0.95,
    max_tokens: int = 512,
    top_p: Optional[float] = None,
    seed: Optional[int] = None,
    json_mode: bool = True,
) -> str:
    """
    Call OpenAI Chat Completions and return the assistant message text.

    Args:
        prompt:      User-turn message
        system:      System prompt
        temperature: Sampling temperature
        max_tokens:  Max response tokens
        top_p:       Nucleus sampling
        seed:        Best-effort reproducibility seed
        json_mode:   Ask for a JSON object response

    Returns:
        Raw string content of the model response (may still be malformed)
    """
    client = _get_client()
    kwargs = {}
    if top_p is not None:
        kwargs["top_p"] = top_p
    if seed is not None:
        kwargs["seed"] = seed
    if json_mode:
        kwargs["response_format"] = {"type": "json_object"}

    response = await client.chat.completions.create(
        model=GPT_MODEL,
        messages=[
            {"role": "system", "content": system},
            {"role": "user", "content": prompt},
        ],
        temperature=temperature,
        max_tokens=max_tokens,
        **kwargs,
    )
    return response.choices[0].message.content or ""


async def generate_text(prompt: GenerationPrompt) -> str:
    """TextGenerator binding used by the generation attempt engine."""
    return await call_gpt(
        prompt.user,
        system=prompt.system,
        temperature=prompt.temperature,
        top_p=prompt.top_p,
        seed=prompt.seed,
    )
