"""Normalise vendor file listings into the caller-facing shape."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable

from ..schemas.knowledge import KnowledgeFile
from .resources import VectorStoreFileRecord

ACTIVE = "ACTIVE"


def active_documents(files: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Keep only Gemini files whose processing state is ``ACTIVE``."""

    return [item for item in files if item.get("state") == ACTIVE]


def from_gemini_file(item: dict[str, Any]) -> KnowledgeFile:
    return KnowledgeFile(
        id=item.get("name", ""),
        uri=item.get("uri") or item.get("name", ""),
        name=item.get("displayName") or item.get("name", ""),
        mime_type=item.get("mimeType") or "application/octet-stream",
        create_time=item.get("createTime"),
        expiration_time=item.get("expirationTime"),
        state=item.get("state", "STATE_UNSPECIFIED"),
        provider="gemini",
    )


def from_vector_store_file(record: VectorStoreFileRecord) -> KnowledgeFile:
    created = datetime.fromtimestamp(record.created_at, tz=timezone.utc)
    return KnowledgeFile(
        id=record.file_id,
        uri=record.file_id,
        name=record.name,
        # OpenAI does not report a MIME type for stored files
        mime_type="application/octet-stream",
        create_time=created.isoformat().replace("+00:00", "Z"),
        state=ACTIVE if record.status == "completed" else record.status,
        provider="openai",
    )


__all__ = ["ACTIVE", "active_documents", "from_gemini_file", "from_vector_store_file"]
