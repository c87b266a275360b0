# orchestration/workbench.py
"""Composition root wiring store, gateway, tracker, cache and agents together."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import httpx
import structlog

from agents.document_analysis_agent import DocumentAnalysisAgent
from agents.writing_agent import WritingAgent
from config import WorkbenchSettings
from core.extraction_cache import ExtractionCache
from core.llm_interface import LLMGateway
from core.transport import build_async_client
from core.usage import UsageStats, UsageTracker
from models.story_models import ChapterDraft, ChapterOutline, StoryState
from storage.document_store import DocumentStore, FileDocumentStore

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Workbench:
    """One explicitly constructed service object holding all shared state.

    The HTTP client, usage counters and extraction cache live here rather
    than in module globals, so tests can build a workbench around fake
    stores, clocks and transports.
    """

    def __init__(
        self,
        store: DocumentStore,
        gateway: LLMGateway,
        tracker: UsageTracker,
        cache: ExtractionCache,
        analysis_agent: DocumentAnalysisAgent,
        writing_agent: WritingAgent,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.tracker = tracker
        self.cache = cache
        self.analysis_agent = analysis_agent
        self.writing_agent = writing_agent
        self._http_client = http_client

    @classmethod
    def from_settings(
        cls,
        settings: WorkbenchSettings,
        store: DocumentStore | None = None,
        clock: Callable[[], datetime] = _utc_now,
        http_client: httpx.AsyncClient | None = None,
    ) -> Workbench:
        client = http_client or build_async_client(
            proxy_url=settings.HTTP_PROXY_URL,
            timeout=settings.HTTPX_TIMEOUT,
            max_connections=settings.MAX_HTTP_CONNECTIONS,
        )
        tracker = UsageTracker(settings.DAILY_TOKEN_LIMIT, clock=clock)
        gateway = LLMGateway(
            settings.provider_configs(),
            tracker,
            client=client,
            default_provider=settings.DEFAULT_PROVIDER,
            max_concurrent_calls=settings.MAX_CONCURRENT_LLM_CALLS,
        )
        cache = ExtractionCache(max_documents=settings.EXTRACTION_CACHE_MAX_DOCUMENTS)
        if store is None:
            store = FileDocumentStore(
                settings.DOCUMENTS_DIR, settings.BACKUPS_DIR, clock=clock
            )
        analysis_agent = DocumentAnalysisAgent(
            store,
            gateway,
            cache,
            provider=settings.EXTRACTION_PROVIDER,
            max_document_chars=settings.EXTRACTION_MAX_DOCUMENT_CHARS,
            raw_log_chars=settings.RAW_RESPONSE_LOG_CHARS,
        )
        writing_agent = WritingAgent(
            analysis_agent,
            gateway,
            store,
            system_prompt=settings.SYSTEM_PROMPT,
            chapter_prompt=settings.CHAPTER_PROMPT,
            quality_check_prompt=settings.QUALITY_CHECK_PROMPT,
            clock=clock,
        )
        logger.info(
            f"Workbench ready (default provider '{settings.DEFAULT_PROVIDER}', "
            f"extraction provider '{settings.EXTRACTION_PROVIDER}')."
        )
        return cls(
            store,
            gateway,
            tracker,
            cache,
            analysis_agent,
            writing_agent,
            http_client=None if http_client else client,
        )

    async def __aenter__(self) -> Workbench:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if the workbench created it."""
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def story_state(self) -> StoryState:
        return await self.writing_agent.gather_story_state()

    async def generate_outline(
        self, chapter_number: int, requirements: str = ""
    ) -> ChapterOutline:
        return await self.writing_agent.generate_outline(chapter_number, requirements)

    async def write_chapter(
        self, chapter_number: int, requirements: str = ""
    ) -> ChapterDraft:
        return await self.writing_agent.write_chapter(chapter_number, requirements)

    def usage_stats(self) -> UsageStats:
        return self.tracker.snapshot()

    def cache_status(self) -> dict[str, Any]:
        return self.cache.status()
