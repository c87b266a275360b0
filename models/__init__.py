"""Central package for workbench data models."""

from .document_models import CORE_DOCUMENT_FILES, DocumentKind, DocumentSnapshot
from .story_models import (
    AgentGuidance,
    AuthorControl,
    ChapterDraft,
    ChapterOutline,
    CharacterRelationship,
    ChatMessage,
    ExtractedCharacter,
    ExtractedPlot,
    NormalizedResponse,
    QualityMetrics,
    QualityReport,
    StoryState,
)

__all__ = [
    "CORE_DOCUMENT_FILES",
    "DocumentKind",
    "DocumentSnapshot",
    "AgentGuidance",
    "AuthorControl",
    "ChapterDraft",
    "ChapterOutline",
    "CharacterRelationship",
    "ChatMessage",
    "ExtractedCharacter",
    "ExtractedPlot",
    "NormalizedResponse",
    "QualityMetrics",
    "QualityReport",
    "StoryState",
]
