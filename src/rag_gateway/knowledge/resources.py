"""Lifecycle of the OpenAI assistant, vector store and ingested files."""

from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Iterator, Optional

from ..config import Settings
from ..errors import GatewayError, IngestionFailed, IngestionTimeout, ResourceNotFound
from ..prompts import ASSISTANT_INSTRUCTIONS, ASSISTANT_NAME, VECTOR_STORE_NAME
from ..vendors.openai import OpenAIClient

logger = logging.getLogger(__name__)

_IN_PROGRESS = "in_progress"
_COMPLETED = "completed"


@dataclass(frozen=True)
class ResourcePair:
    assistant_id: str
    vector_store_id: str


@dataclass(frozen=True)
class VectorStoreFileRecord:
    id: str
    file_id: str
    name: str
    status: str
    created_at: int


@dataclass(frozen=True)
class PollPolicy:
    """How long and how often to poll an in-progress ingestion.

    ``interval`` is the first delay; each following delay is multiplied by
    ``backoff`` and capped at ``max_interval``. Polling stops after
    ``max_attempts`` status checks or once ``deadline`` seconds have passed,
    whichever comes first. ``None`` disables that bound.
    """

    interval: float = 1.0
    backoff: float = 1.0
    max_interval: float = 10.0
    max_attempts: Optional[int] = None
    deadline: Optional[float] = 600.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "PollPolicy":
        return cls(
            interval=settings.ingestion_poll_interval,
            backoff=settings.ingestion_poll_backoff,
            max_interval=settings.ingestion_poll_max_interval,
            max_attempts=settings.ingestion_max_attempts,
            deadline=settings.ingestion_deadline,
        )

    def delays(self) -> Iterator[float]:
        delay = self.interval
        attempt = 0
        while self.max_attempts is None or attempt < self.max_attempts:
            attempt += 1
            yield delay
            delay = min(delay * self.backoff, max(self.max_interval, self.interval))


@dataclass
class _SessionEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    pair: Optional[ResourcePair] = None
    # stale assistant id -> pair that replaced it
    replaced: dict[str, ResourcePair] = field(default_factory=dict)
    holders: int = 0


class ResourceRegistry:
    """In-process memo of resolved pairs, one lock per session key.

    Concurrent ``ensure`` calls for the same key are serialised. A call
    arriving without handles picks up the pair resolved before it, and a
    call carrying an assistant id that was already healed picks up its
    replacement, so one logical session never ends up with two assistants.
    At most ``max_sessions`` idle keys are kept, least recently used first
    out; keys with a caller holding or waiting on the lock are never dropped.
    """

    def __init__(self, max_sessions: int = 1024) -> None:
        self._max_sessions = max_sessions
        self._entries: OrderedDict[str, _SessionEntry] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: str) -> Optional[ResourcePair]:
        entry = self._entries.get(key)
        return entry.pair if entry is not None else None

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[_SessionEntry]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _SessionEntry()
        self._entries.move_to_end(key)
        entry.holders += 1
        try:
            async with entry.lock:
                yield entry
        finally:
            entry.holders -= 1
            self._evict()

    def _evict(self) -> None:
        excess = len(self._entries) - self._max_sessions
        if excess <= 0:
            return
        idle = [key for key, entry in self._entries.items() if entry.holders == 0]
        for key in idle[:excess]:
            del self._entries[key]


class AssistantResources:
    """Get-or-create the assistant/vector store pair and manage its files."""

    def __init__(
        self,
        client: OpenAIClient,
        *,
        registry: Optional[ResourceRegistry] = None,
        assistant_model: str = "gpt-4o",
        poll_policy: Optional[PollPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._client = client
        self._registry = registry or ResourceRegistry()
        self._assistant_model = assistant_model
        self._poll_policy = poll_policy or PollPolicy()
        self._sleep = sleep
        self._clock = clock

    def _registry_key(self, session_key: Optional[str]) -> str:
        return f"{self._client.credential_fingerprint}:{session_key or 'default'}"

    async def ensure(
        self,
        assistant_id: Optional[str] = None,
        vector_store_id: Optional[str] = None,
        *,
        session_key: Optional[str] = None,
    ) -> ResourcePair:
        """Resolve a usable pair, healing stale handles by recreation."""

        key = self._registry_key(session_key)
        async with self._registry.hold(key) as entry:
            requested = assistant_id
            if assistant_id and assistant_id in entry.replaced:
                replacement = entry.replaced[assistant_id]
                logger.info(
                    "Assistant %s was already replaced by %s",
                    assistant_id,
                    replacement.assistant_id,
                )
                assistant_id = replacement.assistant_id
                vector_store_id = replacement.vector_store_id
            elif not assistant_id and entry.pair is not None:
                assistant_id = entry.pair.assistant_id
                vector_store_id = vector_store_id or entry.pair.vector_store_id
            pair = await self._resolve(assistant_id, vector_store_id)
            if requested and pair.assistant_id != requested:
                entry.replaced[requested] = pair
            entry.pair = pair
            return pair

    async def _resolve(
        self, assistant_id: Optional[str], vector_store_id: Optional[str]
    ) -> ResourcePair:
        if assistant_id:
            try:
                assistant = await self._client.retrieve_assistant(assistant_id)
            except ResourceNotFound:
                logger.info("Assistant %s not found, creating a new one", assistant_id)
            else:
                store_id = vector_store_id or await self._attached_store(assistant)
                return ResourcePair(assistant["id"], store_id)

        store = await self._client.create_vector_store(VECTOR_STORE_NAME)
        logger.info("Created vector store %s", store["id"])
        assistant = await self._client.create_assistant(
            name=ASSISTANT_NAME,
            instructions=ASSISTANT_INSTRUCTIONS,
            model=self._assistant_model,
            tools=[{"type": "file_search"}],
            tool_resources={"file_search": {"vector_store_ids": [store["id"]]}},
        )
        logger.info("Created assistant %s", assistant["id"])
        return ResourcePair(assistant["id"], store["id"])

    async def _attached_store(self, assistant: dict[str, Any]) -> str:
        tool_resources = assistant.get("tool_resources") or {}
        file_search = tool_resources.get("file_search") or {}
        existing = file_search.get("vector_store_ids") or []
        if existing:
            return existing[0]

        store = await self._client.create_vector_store(VECTOR_STORE_NAME)
        await self._client.update_assistant(
            assistant["id"],
            tool_resources={"file_search": {"vector_store_ids": [store["id"]]}},
        )
        logger.info(
            "Attached new vector store %s to assistant %s", store["id"], assistant["id"]
        )
        return store["id"]

    async def ingest(
        self,
        vector_store_id: str,
        data: bytes,
        filename: str,
        mime_type: str,
        *,
        policy: Optional[PollPolicy] = None,
    ) -> str:
        """Upload ``data``, attach it to the store and wait for processing.

        Returns the vendor file id once the status is ``completed``.
        """

        policy = policy or self._poll_policy
        uploaded = await self._client.upload_file(
            data, filename=filename, mime_type=mime_type
        )
        file_id = uploaded["id"]
        attachment = await self._client.attach_file(vector_store_id, file_id)
        status = attachment.get("status", _IN_PROGRESS)
        last_error = attachment.get("last_error")

        started = self._clock()
        delays = policy.delays()
        while status == _IN_PROGRESS:
            delay = next(delays, None)
            elapsed = self._clock() - started
            if delay is None or (
                policy.deadline is not None and elapsed + delay > policy.deadline
            ):
                logger.warning(
                    "Gave up waiting for %s after %.1fs", filename, elapsed
                )
                raise IngestionTimeout(status)
            await self._sleep(delay)
            attachment = await self._client.retrieve_vector_store_file(
                vector_store_id, attachment.get("id", file_id)
            )
            status = attachment.get("status", _IN_PROGRESS)
            last_error = attachment.get("last_error")

        if status != _COMPLETED:
            raise IngestionFailed(status, last_error)
        logger.info("Ingested %s into vector store %s", filename, vector_store_id)
        return file_id

    async def list_files(self, vector_store_id: str) -> list[VectorStoreFileRecord]:
        attachments = await self._client.list_vector_store_files(vector_store_id)
        return list(
            await asyncio.gather(*(self._describe(item) for item in attachments))
        )

    async def _describe(self, attachment: dict[str, Any]) -> VectorStoreFileRecord:
        file_id = attachment.get("file_id") or attachment["id"]
        try:
            metadata = await self._client.retrieve_file(file_id)
        except GatewayError as exc:
            logger.info("No metadata for file %s: %s", file_id, exc)
            metadata = {"filename": "Unknown", "created_at": 0}
        return VectorStoreFileRecord(
            id=attachment["id"],
            file_id=file_id,
            name=metadata.get("filename") or "Unknown",
            status=attachment.get("status", "unknown"),
            created_at=int(metadata.get("created_at") or 0),
        )

    async def remove(self, vector_store_id: str, file_id: str) -> None:
        """Detach ``file_id`` from the store, then delete the file itself."""

        try:
            await self._client.detach_file(vector_store_id, file_id)
        except ResourceNotFound:
            logger.info("File %s was not attached to %s", file_id, vector_store_id)
        await self._client.delete_file(file_id)


__all__ = [
    "AssistantResources",
    "PollPolicy",
    "ResourcePair",
    "ResourceRegistry",
    "VectorStoreFileRecord",
]
