"""
Tolerant JSON extraction from model output.

Fallback ladder, first success wins:
  1. parse the whole text (after stripping markdown code fences)
  2. scan for the first balanced {...} span and parse that
  3. strip trailing commas before } or ] and retry 1 and 2
  4. hand the span to json_repair (missing commas, single quotes, ...)

Raises ParseError when nothing parses to a JSON object. Pure: no I/O, no logging.
"""

import json
import re
from typing import Any, Dict, List, Optional

import json_repair

from generation.errors import ParseError

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", flags=re.MULTILINE)
_FENCE_CLOSE = re.compile(r"\s*```$", flags=re.MULTILINE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")


def _strip_fences(raw: str) -> str:
    raw = raw.strip()
    raw = _FENCE_OPEN.sub("", raw)
    raw = _FENCE_CLOSE.sub("", raw)
    return raw.strip()


def _loads_object(text: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(text)
    except (ValueError, TypeError):
        return None
    return value if isinstance(value, dict) else None


def first_brace_span(text: str) -> Optional[str]:
    """
    Return the first balanced {...} span, honouring string literals.
    Falls back to first "{" .. last "}" when the braces never balance.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]

    end = text.rfind("}")
    if end > start:
        return text[start:end + 1]
    return None


def strip_trailing_commas(text: str) -> str:
    return _TRAILING_COMMA.sub(r"\1", text)


def extract_json_object(raw: Any) -> Dict[str, Any]:
    """Run the extraction ladder over `raw`. Raises ParseError if every rung fails."""
    if isinstance(raw, dict):
        return raw
    if not isinstance(raw, str) or not raw.strip():
        raise ParseError("empty model output")

    text = _strip_fences(raw)
    rungs: List[str] = [text]
    span = first_brace_span(text)
    if span is not None:
        rungs.append(span)
    rungs.extend(strip_trailing_commas(r) for r in list(rungs))

    for candidate in rungs:
        data = _loads_object(candidate)
        if data is not None:
            return data

    if span is not None:
        try:
            repaired = json_repair.loads(strip_trailing_commas(span))
        except (ValueError, TypeError, RecursionError):
            repaired = None
        if isinstance(repaired, dict) and repaired:
            return repaired

    raise ParseError(f"no JSON object found: {raw[:80]!r}")
