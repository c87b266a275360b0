# parsing/__init__.py
"""Sanitizing and parsing of noisy LLM output."""

from __future__ import annotations

import json
import re
from typing import Any

import structlog

logger = structlog.get_logger(__name__)

_OPENING_FENCE_RE = re.compile(r"^```[ \t]*[A-Za-z0-9_+\-]*[ \t]*\r?\n?")
_CLOSING_FENCE_RE = re.compile(r"\r?\n?[ \t]*```\s*$")


class ParseError(Exception):
    """Custom exception for parsing errors."""


def sanitize_llm_output(text: str) -> str:
    """Trim whitespace and unwrap a surrounding markdown code fence.

    Text that does not start with a fence is only trimmed.
    """
    cleaned = (text or "").strip()
    if not cleaned.startswith("```"):
        return cleaned
    cleaned = _OPENING_FENCE_RE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE_RE.sub("", cleaned, count=1)
    return cleaned.strip()


def parse_llm_json(text: str, expected: type[list] | type[dict] | None = None) -> Any:
    """Sanitize ``text`` and decode it as JSON of the ``expected`` container type."""
    cleaned = sanitize_llm_output(text)
    if not cleaned:
        raise ParseError("LLM output is empty.")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ParseError(f"LLM output is not valid JSON: {e}") from e
    if expected is not None and not isinstance(parsed, expected):
        raise ParseError(
            f"Expected a JSON {expected.__name__}, got {type(parsed).__name__}."
        )
    return parsed
