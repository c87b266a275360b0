# models/story_models.py
"""Pydantic records exchanged between the gateway, extractor and generator.

Records built from model replies are lenient: numbers and nested objects in
text fields become strings, ``null`` falls back to the field default, and
out-of-range or non-finite scores are clamped or defaulted. Only a missing
``name`` (or other required field) rejects a record.
"""

from __future__ import annotations

import json
import math
from datetime import datetime, timezone
from typing import Annotated, Any, Literal

import structlog
from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from core.usage import TokenUsage

logger = structlog.get_logger(__name__)

Role = Literal["system", "user", "assistant"]


def _clamp_number(
    value: Any, low: float, high: float, default: float, field_name: str
) -> Any:
    """Clamp a model-reported number into ``[low, high]``; logs when it changes."""
    if isinstance(value, bool) or value is None:
        return default
    if isinstance(value, str):
        try:
            value = float(value.strip())
        except ValueError:
            logger.warning(
                f"Non-numeric value {value!r} for '{field_name}'. Using default {default}."
            )
            return default
    if not isinstance(value, int | float):
        logger.warning(
            f"Non-numeric value {value!r} for '{field_name}'. Using default {default}."
        )
        return default
    if not math.isfinite(value):
        logger.warning(
            f"Non-finite value {value!r} for '{field_name}'. Using default {default}."
        )
        return default
    clamped = min(max(value, low), high)
    if clamped != value:
        logger.warning(
            f"Clamped '{field_name}' from {value} to {clamped} (range {low}-{high})."
        )
    if isinstance(clamped, float) and clamped.is_integer():
        return int(clamped)
    return clamped


def _to_text(value: Any) -> Any:
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, int | float):
        return str(value)
    if isinstance(value, dict | list):
        return json.dumps(value, ensure_ascii=False)
    return value


def _to_text_list(value: Any) -> Any:
    if value is None:
        return []
    if not isinstance(value, list):
        value = [value]
    return [_to_text(item) for item in value if item is not None]


Text = Annotated[str, BeforeValidator(_to_text)]
TextList = Annotated[list[str], BeforeValidator(_to_text_list)]


class StoryBaseModel(BaseModel):
    """Base model supporting mapping style access and camelCase JSON keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _nulls_use_defaults(cls, data: Any) -> Any:
        """Drop ``null`` values for fields whose default is not ``None``."""
        if not isinstance(data, dict):
            return data
        cleaned = dict(data)
        for name, field in cls.model_fields.items():
            if field.is_required():
                continue
            if field.get_default(call_default_factory=True) is None:
                continue
            for key in {name, field.alias}:
                if key and key in cleaned and cleaned[key] is None:
                    del cleaned[key]
        return cleaned

    def __getitem__(self, item: str) -> Any:  # pragma: no cover - convenience
        return getattr(self, item)

    def get(self, item: str, default: Any = None) -> Any:  # pragma: no cover
        return getattr(self, item, default)

    def to_json_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class ChatMessage(StoryBaseModel):
    role: Role
    content: str


class NormalizedResponse(StoryBaseModel):
    """Provider-neutral view of one completed chat call."""

    content: str
    usage: TokenUsage = Field(default_factory=TokenUsage)
    model: str
    provider: str


class CharacterRelationship(StoryBaseModel):
    target: Text
    type: Text = "related"
    description: Text = ""
    strength: int | float = 5

    @field_validator("strength", mode="before")
    @classmethod
    def _clamp_strength(cls, value: Any) -> Any:
        return _clamp_number(value, 1, 10, 5, "strength")


class ExtractedCharacter(StoryBaseModel):
    """A character record read out of the character-relations document.

    ``role`` is expected to be one of protagonist/antagonist/supporting/minor
    but is kept as whatever string the model produced.
    """

    name: Text
    role: Text = "supporting"
    level: Text | None = None
    age: int | str | None = None
    description: Text = ""
    relationships: list[CharacterRelationship] = Field(default_factory=list)
    current_status: Text = ""
    importance: int | float = 5

    @field_validator("age", mode="before")
    @classmethod
    def _age_as_given(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        return _to_text(value)

    @field_validator("importance", mode="before")
    @classmethod
    def _clamp_importance(cls, value: Any) -> Any:
        return _clamp_number(value, 1, 10, 5, "importance")

    @field_validator("relationships", mode="before")
    @classmethod
    def _drop_bad_relationships(cls, value: Any) -> Any:
        if not isinstance(value, list):
            return []
        return [rel for rel in value if isinstance(rel, dict) and rel.get("target")]


class ExtractedPlot(StoryBaseModel):
    """A plot line read out of the plot-outline document.

    ``status`` is expected to be one of active/pending/completed/paused.
    """

    name: Text
    description: Text = ""
    current_chapter: int = 0
    progress: int | float = 0
    status: Text = "pending"
    key_events: TextList = Field(default_factory=list)
    next_planned_events: TextList = Field(default_factory=list)
    related_characters: TextList = Field(default_factory=list)

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value: Any) -> Any:
        return _clamp_number(value, 0, 100, 0, "progress")

    @field_validator("current_chapter", mode="before")
    @classmethod
    def _floor_current_chapter(cls, value: Any) -> Any:
        return int(_clamp_number(value, 0, float("inf"), 0, "currentChapter"))


class AuthorControl(StoryBaseModel):
    current_focus: Text = ""
    writing_guidelines: TextList = Field(default_factory=list)
    restrictions: TextList = Field(default_factory=list)
    next_chapter_guidance: Text = ""
    is_fallback: bool = False


class AgentGuidance(StoryBaseModel):
    execution_rules: TextList = Field(default_factory=list)
    quality_standards: TextList = Field(default_factory=list)
    workflow_steps: TextList = Field(default_factory=list)
    is_fallback: bool = False


class StoryState(StoryBaseModel):
    """All four extractions gathered for one generation request."""

    characters: list[ExtractedCharacter] = Field(default_factory=list)
    plots: list[ExtractedPlot] = Field(default_factory=list)
    author_control: AuthorControl
    agent_guidance: AgentGuidance

    def active_plots(self) -> list[ExtractedPlot]:
        return [plot for plot in self.plots if plot.status == "active"]


class ChapterOutline(StoryBaseModel):
    chapter_number: int
    title: Text
    summary: Text = ""
    key_events: TextList = Field(default_factory=list)
    characters: TextList = Field(default_factory=list)
    plot_lines: TextList = Field(default_factory=list)
    word_count_target: int = 2500
    estimated_difficulty: Text = "medium"
    dependencies: TextList = Field(default_factory=list)
    is_fallback: bool = False


class QualityMetrics(StoryBaseModel):
    """Static quality scores attached to every generated chapter."""

    overall: float = 8.2
    fluency: float = 8.5
    consistency: float = 8.0
    character_consistency: float = 8.3
    creativity: float = 7.8
    pacing: float = 8.1
    feedback: str | None = None


class QualityReport(StoryBaseModel):
    score: float = 8.0
    feedback: str = ""
    metrics: dict[str, float] = Field(
        default_factory=lambda: {
            "fluency": 8.2,
            "consistency": 7.8,
            "creativity": 8.5,
        }
    )


class ChapterDraft(StoryBaseModel):
    chapter_number: int
    title: str
    content: str
    outline: ChapterOutline
    word_count: int
    status: str = "draft"
    quality: QualityMetrics = Field(default_factory=QualityMetrics)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 1
