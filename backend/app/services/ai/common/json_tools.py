"""Robust JSON object recovery from LLM replies using brace-balancing."""

from __future__ import annotations

import json
import logging
import re

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```[a-zA-Z0-9_-]*")


def strip_code_fences(text: str) -> str:
    """Remove Markdown code-fence markers (```json ... ```) and trim."""
    if not text:
        return ""
    return _FENCE_RE.sub("", text).strip()


def extract_json(text: str) -> dict | None:
    """Return the JSON object carried by *text*, or ``None``.

    Strategy:
    1. Strip code fences.
    2. Attempt ``json.loads`` on the remaining text (fast path).
    3. Locate the first ``{`` and parse its brace-balanced span. Only that
       first span is tried; if it is not valid JSON the reply is treated as
       unparseable.
    """
    if not text or not text.strip():
        return None

    stripped = strip_code_fences(text)

    # Fast path: whole text is a JSON object
    try:
        parsed = json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    start = stripped.find("{")
    if start == -1:
        return None
    return _extract_balanced(stripped, start, "{", "}")


def _extract_balanced(text: str, start: int, open_ch: str, close_ch: str) -> dict | None:
    """Extract a brace-balanced substring starting at *start* and parse it."""
    depth = 0
    in_string = False
    escape = False

    for i in range(start, len(text)):
        ch = text[i]

        if escape:
            escape = False
            continue

        if ch == "\\":
            if in_string:
                escape = True
            continue

        if ch == '"':
            in_string = not in_string
            continue

        if in_string:
            continue

        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                candidate = text[start : i + 1]
                try:
                    result = json.loads(candidate)
                except (json.JSONDecodeError, ValueError):
                    logger.debug("Balanced span is not valid JSON (%d chars)", len(candidate))
                    return None
                return result if isinstance(result, dict) else None

    return None
