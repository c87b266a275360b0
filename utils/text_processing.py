# utils/text_processing.py
"""Word counting and prompt-size helpers for mixed CJK/Latin text."""

from __future__ import annotations

import re

_CJK_CHAR_RE = re.compile(
    r"[㐀-䶿一-鿿豈-﫿぀-ヿ가-힯]"
)
_LATIN_WORD_RE = re.compile(r"[A-Za-z0-9]+(?:['\-][A-Za-z0-9]+)*")


def count_words(text: str) -> int:
    """Count each CJK character as one word plus each Latin/digit word."""
    if not text:
        return 0
    cjk_count = len(_CJK_CHAR_RE.findall(text))
    latin_count = len(_LATIN_WORD_RE.findall(_CJK_CHAR_RE.sub(" ", text)))
    return cjk_count + latin_count


def truncate_for_prompt(text: str, max_chars: int) -> tuple[str, bool]:
    """Return the first ``max_chars`` characters and whether anything was cut."""
    if max_chars <= 0 or len(text) <= max_chars:
        return text, False
    return text[:max_chars], True


def excerpt(text: str, limit: int) -> str:
    """Short single-line prefix of ``text`` for log messages."""
    snippet = (text or "")[:limit].replace("\n", " ")
    return f"{snippet}..." if len(text or "") > limit else snippet
