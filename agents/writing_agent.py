# agents/writing_agent.py
"""Composes extracted story state into chapter outlines and chapter prose."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone

import structlog
from pydantic import ValidationError

from agents.document_analysis_agent import DocumentAnalysisAgent
from config import settings
from core.errors import OutlineParseError
from core.llm_interface import LLMGateway
from models.story_models import (
    ChapterDraft,
    ChapterOutline,
    ChatMessage,
    QualityReport,
    StoryState,
)
from parsing import ParseError, parse_llm_json
from prompt_renderer import render_prompt
from storage.document_store import DocumentStore
from utils.text_processing import count_words, excerpt

logger = structlog.get_logger(__name__)

FALLBACK_OUTLINE_SUMMARY = "延续当前主线剧情发展"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def chapter_artifact_id(chapter_number: int, extension: str) -> str:
    return f"{settings.CHAPTERS_SUBDIR}/chapter-{chapter_number:04d}.{extension}"


class WritingAgent:
    """Generates outlines and chapters from the current story documents."""

    def __init__(
        self,
        analysis_agent: DocumentAnalysisAgent,
        gateway: LLMGateway,
        store: DocumentStore,
        provider: str | None = None,
        system_prompt: str = settings.SYSTEM_PROMPT,
        chapter_prompt: str = settings.CHAPTER_PROMPT,
        quality_check_prompt: str = settings.QUALITY_CHECK_PROMPT,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.analysis_agent = analysis_agent
        self.gateway = gateway
        self.store = store
        self.provider = provider
        self.system_prompt = system_prompt
        self.chapter_prompt = chapter_prompt
        self.quality_check_prompt = quality_check_prompt
        self._clock = clock

    async def gather_story_state(self) -> StoryState:
        """Run the four extractions concurrently and wait for all of them."""
        characters, plots, author_control, agent_guidance = await asyncio.gather(
            self.analysis_agent.extract_characters(),
            self.analysis_agent.extract_plots(),
            self.analysis_agent.analyze_author_control(),
            self.analysis_agent.get_agent_guidance(),
        )
        return StoryState(
            characters=characters,
            plots=plots,
            author_control=author_control,
            agent_guidance=agent_guidance,
        )

    def _messages(self, user_prompt: str) -> list[ChatMessage]:
        return [
            ChatMessage(role="system", content=self.system_prompt),
            ChatMessage(role="user", content=user_prompt),
        ]

    async def generate_outline(
        self,
        chapter_number: int,
        requirements: str = "",
        state: StoryState | None = None,
    ) -> ChapterOutline:
        """Ask the model for a JSON outline; fall back to one built from ``state``."""
        if state is None:
            state = await self.gather_story_state()
        prompt = render_prompt(
            "writing_agent/chapter_outline.j2",
            {
                "chapter_number": chapter_number,
                "requirements": requirements,
                "characters": state.characters,
                "plots": state.plots,
                "author_control": state.author_control,
                "agent_guidance": state.agent_guidance,
                "word_count_target": settings.DEFAULT_WORD_COUNT_TARGET,
            },
        )
        response = await self.gateway.chat(self._messages(prompt), self.provider)
        try:
            outline = self._parse_outline(response.content, chapter_number)
        except OutlineParseError as exc:
            logger.error(
                f"Failed to parse outline for Ch {exc.chapter_number}. Using fallback outline. "
                f"Raw response: {exc.raw_excerpt}"
            )
            return self.build_fallback_outline(chapter_number, state)
        logger.info(f"Generated outline for Ch {chapter_number}: '{outline.title}'.")
        return outline

    def _parse_outline(self, text: str, chapter_number: int) -> ChapterOutline:
        raw_excerpt = excerpt(text, settings.RAW_RESPONSE_LOG_CHARS)
        try:
            data = parse_llm_json(text, dict)
        except ParseError as exc:
            raise OutlineParseError(chapter_number, raw_excerpt) from exc
        data["chapterNumber"] = chapter_number
        data.pop("chapter_number", None)
        data.pop("isFallback", None)
        data.setdefault("wordCountTarget", settings.DEFAULT_WORD_COUNT_TARGET)
        try:
            return ChapterOutline.model_validate(data)
        except ValidationError as exc:
            raise OutlineParseError(chapter_number, raw_excerpt) from exc

    def build_fallback_outline(
        self, chapter_number: int, state: StoryState
    ) -> ChapterOutline:
        """Deterministic outline assembled only from already-extracted records."""
        control = state.author_control
        active_plots = state.active_plots()
        if control.is_fallback or not control.current_focus.strip():
            title = f"第{chapter_number}章"
            summary = FALLBACK_OUTLINE_SUMMARY
        else:
            title = f"第{chapter_number}章：{control.current_focus}"
            summary = control.next_chapter_guidance or FALLBACK_OUTLINE_SUMMARY
        key_events = [
            event for plot in active_plots for event in plot.next_planned_events
        ][: settings.FALLBACK_OUTLINE_MAX_EVENTS]
        return ChapterOutline(
            chapter_number=chapter_number,
            title=title,
            summary=summary,
            key_events=key_events,
            characters=[
                character.name
                for character in state.characters[
                    : settings.FALLBACK_OUTLINE_MAX_CHARACTERS
                ]
            ],
            plot_lines=[plot.name for plot in active_plots],
            word_count_target=settings.DEFAULT_WORD_COUNT_TARGET,
            is_fallback=True,
        )

    async def generate_chapter(
        self, outline: ChapterOutline, requirements: str = ""
    ) -> ChapterDraft:
        """Write chapter prose for ``outline`` and persist it with its metadata."""
        prompt = render_prompt(
            "writing_agent/chapter_body.j2",
            {
                "chapter_prompt": self.chapter_prompt,
                "outline": outline,
                "requirements": requirements,
            },
        )
        response = await self.gateway.chat(self._messages(prompt), self.provider)
        content = response.content.strip()
        draft = ChapterDraft(
            chapter_number=outline.chapter_number,
            title=outline.title,
            content=content,
            outline=outline,
            word_count=count_words(content),
            created_at=self._clock(),
        )
        await self.store.put(
            chapter_artifact_id(outline.chapter_number, "txt"), draft.content
        )
        await self.store.put(
            chapter_artifact_id(outline.chapter_number, "json"),
            draft.model_dump_json(by_alias=True, indent=2),
        )
        logger.info(
            f"Saved Ch {draft.chapter_number} draft '{draft.title}' ({draft.word_count} words)."
        )
        return draft

    async def write_chapter(
        self, chapter_number: int, requirements: str = ""
    ) -> ChapterDraft:
        outline = await self.generate_outline(chapter_number, requirements)
        return await self.generate_chapter(outline, requirements)

    async def check_quality(self, content: str) -> QualityReport:
        prompt = render_prompt(
            "writing_agent/quality_check.j2",
            {"quality_check_prompt": self.quality_check_prompt, "content": content},
        )
        response = await self.gateway.chat(self._messages(prompt), self.provider)
        return QualityReport(feedback=response.content)
