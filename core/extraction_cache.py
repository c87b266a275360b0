# core/extraction_cache.py
"""Memoizes structured-extraction results by document identity and freshness."""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


def _normalize_timestamp(last_modified: datetime | float | int | str) -> str:
    if isinstance(last_modified, datetime):
        if last_modified.tzinfo is None:
            last_modified = last_modified.replace(tzinfo=timezone.utc)
        return last_modified.astimezone(timezone.utc).isoformat()
    return str(last_modified)


def freshness_key(document_id: str, last_modified: datetime | float | int | str) -> str:
    """Stable cache key for one version of one document."""
    raw = f"{document_id}\x00{_normalize_timestamp(last_modified)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    key: str
    value: Any
    inserted_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ExtractionCache:
    """Keeps at most one live entry per document id, bounded LRU over ids.

    A lookup whose key differs from the stored one (the document changed)
    is a miss; the new result replaces the old entry. Results of failed
    computations are never stored.
    """

    def __init__(self, max_documents: int = 32) -> None:
        self.max_documents = max_documents
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    async def get_or_compute(
        self,
        document_id: str,
        last_modified: datetime | float | int | str,
        compute_fn: Callable[[], Awaitable[Any]],
    ) -> Any:
        key = freshness_key(document_id, last_modified)
        entry = self._entries.get(document_id)
        if entry is not None and entry.key == key:
            self.hits += 1
            self._entries.move_to_end(document_id)
            logger.debug(f"Extraction cache hit for '{document_id}'.")
            return entry.value

        self.misses += 1
        logger.debug(
            f"Extraction cache miss for '{document_id}' ({'stale' if entry else 'new'})."
        )
        value = await compute_fn()
        self._entries[document_id] = CacheEntry(key=key, value=value)
        self._entries.move_to_end(document_id)
        while len(self._entries) > self.max_documents:
            evicted_id, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted extraction cache entry for '{evicted_id}'.")
        return value

    def clear(self) -> None:
        self._entries.clear()
        logger.info("Extraction cache cleared.")

    def status(self) -> dict[str, Any]:
        return {
            "size": len(self._entries),
            "keys": list(self._entries),
            "hits": self.hits,
            "misses": self.misses,
        }
