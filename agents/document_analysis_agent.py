# agents/document_analysis_agent.py
"""Turns the author-maintained documents into typed story-state records.

Each extraction kind reads one document from the store, asks the extraction
provider for JSON describing it and validates the reply. Results are cached
per document version, so an unchanged document never costs a second provider
call. Unparseable replies are logged and replaced with an empty list or a
fallback record; gateway errors (configuration, transport, provider, budget)
propagate to the caller.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from config import settings
from core.errors import ExtractionParseError
from core.extraction_cache import ExtractionCache
from core.llm_interface import LLMGateway
from models.document_models import DocumentKind
from models.story_models import (
    AgentGuidance,
    AuthorControl,
    ChatMessage,
    ExtractedCharacter,
    ExtractedPlot,
)
from parsing import ParseError, parse_llm_json
from prompt_renderer import render_prompt
from storage.document_store import DocumentStore
from utils.text_processing import excerpt, truncate_for_prompt

logger = structlog.get_logger(__name__)

RecordT = TypeVar("RecordT", bound=BaseModel)

AUTHOR_CONTROL_FALLBACK_FOCUS = "无指导信息"
AUTHOR_CONTROL_FALLBACK_GUIDANCE = "未能从作者意愿控制台提取写作指导，请手动检查文档"
AGENT_GUIDANCE_FALLBACK_RULE = "未能从Agent执行手册提取执行规则，请手动检查文档"


def author_control_fallback() -> AuthorControl:
    return AuthorControl(
        current_focus=AUTHOR_CONTROL_FALLBACK_FOCUS,
        writing_guidelines=[],
        restrictions=[],
        next_chapter_guidance=AUTHOR_CONTROL_FALLBACK_GUIDANCE,
        is_fallback=True,
    )


def agent_guidance_fallback() -> AgentGuidance:
    return AgentGuidance(execution_rules=[AGENT_GUIDANCE_FALLBACK_RULE], is_fallback=True)


class DocumentAnalysisAgent:
    """LLM-powered extractor for characters, plots, author control and agent guidance."""

    def __init__(
        self,
        store: DocumentStore,
        gateway: LLMGateway,
        cache: ExtractionCache,
        provider: str = settings.EXTRACTION_PROVIDER,
        max_document_chars: int = settings.EXTRACTION_MAX_DOCUMENT_CHARS,
        raw_log_chars: int = settings.RAW_RESPONSE_LOG_CHARS,
    ) -> None:
        self.store = store
        self.gateway = gateway
        self.cache = cache
        self.provider = provider
        self.max_document_chars = max_document_chars
        self.raw_log_chars = raw_log_chars
        logger.info(f"DocumentAnalysisAgent initialized with provider: {self.provider}")

    async def extract_characters(self) -> list[ExtractedCharacter]:
        result = await self._extract(
            kind="characters",
            document_kind=DocumentKind.CHARACTER_RELATIONS,
            template="document_analysis/extract_characters.j2",
            expected=list,
            convert=lambda data: self._records_from_list(
                "characters", data, ExtractedCharacter
            ),
            fallback=list,
        )
        return list(result)

    async def extract_plots(self) -> list[ExtractedPlot]:
        result = await self._extract(
            kind="plots",
            document_kind=DocumentKind.PLOT_OUTLINE,
            template="document_analysis/extract_plots.j2",
            expected=list,
            convert=lambda data: self._records_from_list("plots", data, ExtractedPlot),
            fallback=list,
        )
        return list(result)

    async def analyze_author_control(self) -> AuthorControl:
        return await self._extract(
            kind="author_control",
            document_kind=DocumentKind.AUTHOR_CONTROL,
            template="document_analysis/analyze_author_control.j2",
            expected=dict,
            convert=lambda data: self._record_from_dict(data, AuthorControl),
            fallback=author_control_fallback,
        )

    async def get_agent_guidance(self) -> AgentGuidance:
        return await self._extract(
            kind="agent_guidance",
            document_kind=DocumentKind.AGENT_MANUAL,
            template="document_analysis/agent_guidance.j2",
            expected=dict,
            convert=lambda data: self._record_from_dict(data, AgentGuidance),
            fallback=agent_guidance_fallback,
        )

    async def _extract(
        self,
        kind: str,
        document_kind: DocumentKind,
        template: str,
        expected: type[list] | type[dict],
        convert: Callable[[Any], Any],
        fallback: Callable[[], Any],
    ) -> Any:
        snapshot = await self.store.get(document_kind.value)
        if snapshot is None or snapshot.is_empty:
            logger.warning(
                f"Document '{document_kind.value}' is missing or empty. Using {kind} fallback."
            )
            return fallback()

        async def compute() -> Any:
            return await self._run_extraction(
                kind, template, snapshot.content, expected, convert
            )

        try:
            return await self.cache.get_or_compute(
                document_kind.value, snapshot.last_modified, compute
            )
        except ExtractionParseError as exc:
            logger.error(
                f"Failed to parse {exc.kind} extraction output. Raw response: {exc.raw_excerpt}"
            )
            return fallback()

    async def _run_extraction(
        self,
        kind: str,
        template: str,
        content: str,
        expected: type[list] | type[dict],
        convert: Callable[[Any], Any],
    ) -> Any:
        document_text, truncated = truncate_for_prompt(content, self.max_document_chars)
        prompt = render_prompt(
            template, {"document_text": document_text, "truncated": truncated}
        )
        logger.info(f"Running {kind} extraction via '{self.provider}'.")
        response = await self.gateway.send_chat(
            self.provider, [ChatMessage(role="user", content=prompt)]
        )
        try:
            data = parse_llm_json(response.content, expected)
        except ParseError as exc:
            raise ExtractionParseError(
                kind, excerpt(response.content, self.raw_log_chars)
            ) from exc
        try:
            result = convert(data)
        except ValidationError as exc:
            raise ExtractionParseError(
                kind, excerpt(response.content, self.raw_log_chars)
            ) from exc
        logger.info(f"Extracted {kind} successfully.")
        return result

    def _records_from_list(
        self, kind: str, data: list[Any], model: type[RecordT]
    ) -> list[RecordT]:
        records: list[RecordT] = []
        for i, item in enumerate(data):
            if not isinstance(item, dict):
                logger.warning(
                    f"Item {i + 1} in {kind} extraction is not an object. Skipping. Item: {str(item)[:100]}"
                )
                continue
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    f"Item {i + 1} in {kind} extraction failed validation. Skipping. Errors: {e.errors()}"
                )
        return records

    def _record_from_dict(self, data: dict[str, Any], model: type[RecordT]) -> RecordT:
        data.pop("isFallback", None)
        data.pop("is_fallback", None)
        return model.model_validate(data)
