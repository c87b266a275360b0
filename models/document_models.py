# models/document_models.py
"""Logical documents and the snapshots the document store hands out."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class DocumentKind(str, Enum):
    """The four author-maintained source documents."""

    AUTHOR_CONTROL = "author-control"
    PLOT_OUTLINE = "plot-outline"
    CHARACTER_RELATIONS = "character-relations"
    AGENT_MANUAL = "agent-manual"


CORE_DOCUMENT_FILES: dict[DocumentKind, str] = {
    DocumentKind.AUTHOR_CONTROL: "作者意愿控制台.txt",
    DocumentKind.PLOT_OUTLINE: "主线剧情脉络.txt",
    DocumentKind.CHARACTER_RELATIONS: "原始人物关系.txt",
    DocumentKind.AGENT_MANUAL: "Agent执行手册.txt",
}


class DocumentSnapshot(BaseModel):
    """Content of one document as of ``last_modified``."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    content: str
    last_modified: datetime

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()
