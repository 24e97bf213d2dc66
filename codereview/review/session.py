"""
session.py — project context sessions.

A session holds one uploaded codebase's flattened text under a random id:

  context:{id}        → build_project_context() blob
  context-meta:{id}   → ContextMetadata JSON

Both keys are written once with the same TTL and never updated; the store
evicts them on expiry. The only delete is the cleanup of a blob whose
metadata write failed.

Session ids come from secrets.token_hex(16) (128 bits), never from content,
so two uploads of the same codebase always get distinct sessions. Content
dedup happens one layer up, in the review cache.

Every store failure here is fatal (StorageFailure): a session has no
alternate persistence to fall back to.
"""
import logging
import os
import secrets
from collections import Counter
from datetime import datetime, timezone
from typing import Optional, Sequence

from pydantic import ValidationError

from codereview.cache import (
    SESSION_TTL,
    EphemeralStore,
    make_context_key,
    make_context_meta_key,
)
from codereview.errors import StorageFailure, StoreUnavailable
from codereview.review.prompts import build_project_context
from codereview.review.schemas import ContextInfo, ContextMetadata, ProjectFile

logger = logging.getLogger(__name__)

NO_EXTENSION = "no-extension"


def file_extension(path: str) -> str:
    """Lowercase extension including the dot ('.ts'), or NO_EXTENSION."""
    ext = os.path.splitext(path)[1].lower()
    return ext or NO_EXTENSION


def count_lines(content: str) -> int:
    """Number of newline-delimited segments (an empty file counts as one line)."""
    return len(content.split("\n"))


def build_metadata(files: Sequence[ProjectFile]) -> ContextMetadata:
    """Compute file count, line count, UTF-8 size and extension histogram."""
    return ContextMetadata(
        total_files=len(files),
        total_lines=sum(count_lines(f.content) for f in files),
        size_in_bytes=sum(len(f.content.encode("utf-8")) for f in files),
        files_by_extension=dict(Counter(file_extension(f.path) for f in files)),
        created_at=datetime.now(timezone.utc).isoformat(),
    )


def new_session_id() -> str:
    """Opaque 128-bit token, 32 hex chars."""
    return secrets.token_hex(16)


class ContextSession:
    """Create and read project context sessions on an EphemeralStore."""

    def __init__(self, store: EphemeralStore, ttl_seconds: int = SESSION_TTL) -> None:
        self._store = store
        self._ttl = ttl_seconds

    async def create_session(self, project_files: Sequence[ProjectFile]) -> str:
        """
        Store the project context and its metadata; return the new session id.
        Raises StorageFailure if the store is unavailable.
        """
        blob = build_project_context(project_files)
        metadata = build_metadata(project_files)
        session_id = new_session_id()

        try:
            await self._store.put(make_context_key(session_id), blob, self._ttl)
            await self._store.put(
                make_context_meta_key(session_id),
                metadata.model_dump_json(by_alias=True),
                self._ttl,
            )
        except StoreUnavailable as exc:
            logger.error("Failed to store project context session_id=%s: %s", session_id, exc)
            await self._discard_blob(session_id)
            raise StorageFailure("Failed to store project context") from exc

        logger.info(
            "Project context stored session_id=%s files=%d bytes=%d ttl=%ds",
            session_id, metadata.total_files, metadata.size_in_bytes, self._ttl,
        )
        return session_id

    async def _discard_blob(self, session_id: str) -> None:
        # Best effort: the id is never returned, so a leftover blob would only sit until expiry.
        try:
            await self._store.delete(make_context_key(session_id))
        except StoreUnavailable as exc:
            logger.warning("Could not discard orphaned context session_id=%s: %s", session_id, exc)

    async def get_session_blob(self, session_id: str) -> Optional[str]:
        """Return the stored context blob, or None if absent or expired."""
        try:
            return await self._store.get(make_context_key(session_id))
        except StoreUnavailable as exc:
            logger.error("Failed to retrieve project context session_id=%s: %s", session_id, exc)
            raise StorageFailure("Failed to retrieve project context") from exc

    async def get_session_info(self, session_id: str) -> ContextInfo:
        """
        Existence, stats and remaining TTL for a session.
        Metadata is only read when the blob exists; missing metadata omits stats.
        """
        try:
            if not await self._store.exists(make_context_key(session_id)):
                return ContextInfo(context_id=session_id, exists=False)
            ttl = await self._store.remaining_ttl(make_context_key(session_id))
            raw_meta = await self._store.get(make_context_meta_key(session_id))
        except StoreUnavailable as exc:
            logger.error("Failed to get context info session_id=%s: %s", session_id, exc)
            raise StorageFailure("Failed to get context info") from exc

        stats: Optional[ContextMetadata] = None
        if raw_meta is not None:
            try:
                stats = ContextMetadata.model_validate_json(raw_meta)
            except ValidationError:
                logger.warning("Unreadable context metadata session_id=%s", session_id)
        else:
            logger.warning("Context metadata missing session_id=%s", session_id)

        return ContextInfo(
            context_id=session_id,
            exists=True,
            stats=stats,
            expires_in=ttl if ttl and ttl > 0 else None,
            created_at=stats.created_at if stats else None,
        )
