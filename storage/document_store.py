# storage/document_store.py
"""File-backed store for the author documents and generated chapter artifacts."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Protocol

import structlog

from config import settings
from models.document_models import CORE_DOCUMENT_FILES, DocumentKind, DocumentSnapshot

logger = structlog.get_logger(__name__)


class DocumentStore(Protocol):
    async def get(self, logical_id: str) -> DocumentSnapshot | None: ...

    async def put(self, logical_id: str, content: str) -> None: ...


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class FileDocumentStore:
    """Read and write documents as UTF-8 text files under ``documents_dir``.

    The four core documents live under their fixed file names; any other
    logical id is treated as a path relative to ``documents_dir``
    (e.g. ``chapters/chapter-0001.txt``). Overwriting an existing document
    first copies its previous content into ``backups_dir``.
    """

    def __init__(
        self,
        documents_dir: str = settings.DOCUMENTS_DIR,
        backups_dir: str = settings.BACKUPS_DIR,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.documents_dir = documents_dir
        self.backups_dir = backups_dir
        self._clock = clock
        os.makedirs(self.documents_dir, exist_ok=True)
        os.makedirs(self.backups_dir, exist_ok=True)

    def path_for(self, logical_id: str) -> str:
        try:
            file_name = CORE_DOCUMENT_FILES[DocumentKind(logical_id)]
        except ValueError:
            file_name = logical_id
        path = os.path.normpath(os.path.join(self.documents_dir, file_name))
        root = os.path.normpath(self.documents_dir)
        if os.path.commonpath([root, path]) != root:
            raise ValueError(f"Document id escapes the documents directory: {logical_id}")
        return path

    async def get(self, logical_id: str) -> DocumentSnapshot | None:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._get_sync, logical_id)

    def _get_sync(self, logical_id: str) -> DocumentSnapshot | None:
        path = self.path_for(logical_id)
        try:
            mtime = os.stat(path).st_mtime
            with open(path, "rb") as f:
                raw = f.read()
        except FileNotFoundError:
            logger.debug(f"Document '{logical_id}' not found at {path}.")
            return None
        try:
            content = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(
                f"Document '{logical_id}' is not valid UTF-8 ({e.reason} at byte {e.start}). "
                "Undecodable bytes were replaced."
            )
            content = raw.decode("utf-8", errors="replace")
        return DocumentSnapshot(
            document_id=logical_id,
            content=content,
            last_modified=datetime.fromtimestamp(mtime, tz=timezone.utc),
        )

    async def put(self, logical_id: str, content: str) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._put_sync, logical_id, content)

    def _put_sync(self, logical_id: str, content: str) -> None:
        path = self.path_for(logical_id)
        if os.path.exists(path):
            self._backup_sync(logical_id, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
        logger.info(f"Saved document '{logical_id}' ({len(content)} chars).")

    def _backup_sync(self, logical_id: str, path: str) -> str:
        timestamp = self._clock().strftime("%Y%m%dT%H%M%S%f")
        safe_id = "".join(
            c if c.isalnum() or c in ["_", "-"] else "_" for c in logical_id
        )
        backup_path = os.path.join(self.backups_dir, f"{safe_id}_{timestamp}.txt")
        with open(path, "rb") as src:
            previous = src.read()
        with open(backup_path, "wb") as dst:
            dst.write(previous)
        logger.debug(f"Backed up '{logical_id}' to {backup_path}.")
        return backup_path

    async def list_core_documents(self) -> dict[DocumentKind, DocumentSnapshot]:
        """Snapshots of the four core documents; missing ones come back empty."""
        snapshots: dict[DocumentKind, DocumentSnapshot] = {}
        for kind in DocumentKind:
            snapshot = await self.get(kind.value)
            snapshots[kind] = snapshot or DocumentSnapshot(
                document_id=kind.value, content="", last_modified=self._clock()
            )
        return snapshots
