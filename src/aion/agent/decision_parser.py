"""
Best-effort parser turning raw model text into a :class:`Decision`.

Backends are asked for a single JSON object like:
    {"thought": "...", "toolCalls": [{"name": "<tool>", "args": {...}}], "content": "..."}
but they do not always comply.  Parsing therefore falls back in three stages:

1. strict JSON parse of the whole text;
2. parse of the first balanced ``{...}`` span (quotes and escapes honoured);
3. the whole raw text becomes the decision ``content``.

Nothing here raises: a malformed-but-nonempty reply must still reach the user.
"""

import json
import logging
from typing import (
    Any,
    Tuple,
)

from pydantic import ValidationError

from aion.core.schema import Decision

logger = logging.getLogger(__name__)


class DecisionParseError(ValueError):
    """Raised internally when one parsing stage cannot produce a decision."""


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------
def _skip_string(s: str, i: int) -> int:
    """Given s[i] == '"', return the index just past the closing quote."""
    i += 1
    esc = False
    while i < len(s):
        ch = s[i]
        if esc:
            esc = False
        elif ch == "\\":
            esc = True
        elif ch == '"':
            return i + 1
        i += 1
    raise DecisionParseError("unterminated string literal")


def _find_matching_brace(s: str, i: int) -> int:
    """Given s[i] == '{', return index just past its matching '}'."""
    depth = 0
    while i < len(s):
        ch = s[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i + 1
        elif ch == '"':
            i = _skip_string(s, i)  # braces inside strings do not count
            continue
        i += 1
    raise DecisionParseError("unbalanced braces")


def extract_brace_span(text: str) -> Tuple[int, int]:
    """Return ``(start, end)`` of the first balanced ``{...}`` span in *text*."""
    start = text.find("{")
    if start < 0:
        raise DecisionParseError("no '{' in text")
    return start, _find_matching_brace(text, start)


def _to_decision(payload: Any) -> Decision:
    if not isinstance(payload, dict):
        raise DecisionParseError(f"expected a JSON object, got {type(payload).__name__}")
    try:
        return Decision.model_validate(payload)
    except ValidationError as exc:
        raise DecisionParseError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------
def parse_decision(text: str) -> Decision:
    """Parse *text* into a :class:`Decision` using the three-stage fallback."""
    try:
        return _to_decision(json.loads(text))
    except (json.JSONDecodeError, DecisionParseError) as exc:
        logger.debug("Strict decision parse failed: %s", exc)

    try:
        start, end = extract_brace_span(text)
        return _to_decision(json.loads(text[start:end]))
    except (json.JSONDecodeError, DecisionParseError) as exc:
        logger.debug("Brace-span decision parse failed: %s", exc)

    logger.info("Model reply is not a JSON decision; treating it as content")
    return Decision(content=text)
