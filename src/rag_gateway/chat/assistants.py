"""OpenAI Assistants adapter: runs against a persistent vendor thread."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import Any, Optional

from ..errors import GatewayError, RateLimited, ResourceNotFound, UpstreamError
from ..knowledge.resources import AssistantResources, ResourcePair
from ..schemas.chat import ChatRequest
from ..vendors.openai import OpenAIClient
from ..wire import TextDelta, UsageSummary
from .base import FrameProducer

logger = logging.getLogger(__name__)

MESSAGE_DELTA = "thread.message.delta"
RUN_COMPLETED = "thread.run.completed"
RUN_FAILURES = {
    "thread.run.failed": "failed",
    "thread.run.expired": "expired",
    "thread.run.cancelled": "cancelled",
    "error": "failed",
}
_RATE_LIMIT_CODES = {"rate_limit_exceeded"}


def _delta_text(data: dict[str, Any]) -> str:
    delta = data.get("delta") or {}
    fragments: list[str] = []
    for block in delta.get("content") or []:
        if block.get("type") != "text":
            continue
        value = (block.get("text") or {}).get("value")
        if value:
            fragments.append(value)
    return "".join(fragments)


def run_failure(event: str, data: dict[str, Any]) -> GatewayError:
    """Map a terminal run failure onto the gateway error taxonomy."""

    error = data.get("last_error") or data.get("error")
    if error is None and event == "error":
        error = data
    if not isinstance(error, dict):
        error = {}
    status = data.get("status") or RUN_FAILURES[event]
    message = error.get("message") or f"Assistant run {status}"
    if error.get("code") in _RATE_LIMIT_CODES:
        return RateLimited(message)
    return UpstreamError(message, status_code=502)


class AssistantRunAdapter:
    """Append the newest user message to a thread and stream a run.

    The vendor thread already holds every earlier turn, so only the latest
    message is sent. A rejected thread handle is replaced by a new thread,
    and a rejected assistant handle is healed through ``AssistantResources``
    once before the run starts.
    """

    name = "openai-assistant"

    def __init__(
        self,
        client: OpenAIClient,
        resources: AssistantResources,
        model: str,
    ):
        self._client = client
        self._resources = resources
        self._model = model

    async def _prepare_thread(self, thread_id: Optional[str], content: str) -> str:
        if thread_id:
            try:
                await self._client.create_message(thread_id, content)
                return thread_id
            except ResourceNotFound:
                logger.info("Thread %s no longer exists, starting a new one", thread_id)

        thread = await self._client.create_thread()
        logger.info("Created thread %s", thread["id"])
        await self._client.create_message(thread["id"], content)
        return thread["id"]

    async def open(self, request: ChatRequest) -> FrameProducer:
        thread_id = await self._prepare_thread(
            request.thread_id, request.latest_message.content
        )

        assistant_id = request.assistant_id or ""
        healed: Optional[ResourcePair] = None
        usage: dict[str, Any] = {}
        emitted = False
        while True:
            try:
                async with aclosing(
                    self._client.stream_run(thread_id, assistant_id)
                ) as events:
                    async for event, data in events:
                        if event == MESSAGE_DELTA:
                            text = _delta_text(data)
                            if text:
                                emitted = True
                                yield TextDelta(text)
                        elif event == RUN_COMPLETED:
                            usage = data.get("usage") or {}
                        elif event in RUN_FAILURES:
                            logger.warning(
                                "Run on thread %s ended with %s", thread_id, event
                            )
                            raise run_failure(event, data)
                break
            except ResourceNotFound:
                if emitted or healed is not None:
                    raise
                logger.info("Assistant %s rejected, healing before retry", assistant_id)
                healed = await self._resources.ensure(assistant_id)
                assistant_id = healed.assistant_id

        yield UsageSummary(
            input_tokens=usage.get("prompt_tokens") or 0,
            output_tokens=usage.get("completion_tokens") or 0,
            model=self._model,
            thread_id=thread_id,
            assistant_id=healed.assistant_id if healed else None,
            vector_store_id=healed.vector_store_id if healed else None,
        )


__all__ = ["AssistantRunAdapter", "run_failure"]
