"""Gemini chat adapter grounded in every active uploaded document."""

from __future__ import annotations

import logging
from typing import Any

from ..errors import GatewayError
from ..knowledge.catalog import active_documents
from ..prompts import (
    GROUNDING_ACK,
    GROUNDING_INTRO,
    GROUNDING_OUTRO,
    grounding_instruction,
)
from ..schemas.chat import ChatMessage, ChatRequest
from ..vendors.gemini import GeminiClient
from ..wire import TextDelta, UsageSummary
from .base import FrameProducer

logger = logging.getLogger(__name__)


def _turn(message: ChatMessage) -> dict[str, Any]:
    role = "user" if message.role == "user" else "model"
    return {"role": role, "parts": [{"text": message.content}]}


def build_contents(
    request: ChatRequest, documents: list[dict[str, Any]]
) -> list[dict[str, Any]]:
    """Grounding turn, acknowledgement, prior history, then the new message."""

    file_parts = [
        {
            "fileData": {
                "mimeType": item.get("mimeType", "application/octet-stream"),
                "fileUri": item.get("uri"),
            }
        }
        for item in documents
    ]
    contents: list[dict[str, Any]] = [
        {
            "role": "user",
            "parts": [{"text": GROUNDING_INTRO}, *file_parts, {"text": GROUNDING_OUTRO}],
        },
        {"role": "model", "parts": [{"text": GROUNDING_ACK}]},
    ]
    contents.extend(_turn(message) for message in request.prior_messages)
    contents.append(_turn(request.latest_message))
    return contents


def _chunk_text(chunk: dict[str, Any]) -> str:
    candidates = chunk.get("candidates") or []
    if not candidates:
        return ""
    content = candidates[0].get("content") or {}
    fragments = [
        part["text"]
        for part in content.get("parts") or []
        if isinstance(part.get("text"), str) and not part.get("thought")
    ]
    return "".join(fragments)


class GeminiChatAdapter:
    name = "gemini"

    def __init__(self, client: GeminiClient, model: str):
        self._client = client
        self._model = model

    async def _active_documents(self) -> list[dict[str, Any]]:
        try:
            files = await self._client.list_files()
        except GatewayError as exc:
            logger.warning("Listing Gemini files failed, answering ungrounded: %s", exc)
            return []
        return active_documents(files)

    async def open(self, request: ChatRequest) -> FrameProducer:
        documents = await self._active_documents()
        logger.info("Gemini: using %d files for context", len(documents))

        payload = {
            "systemInstruction": {
                "parts": [
                    {
                        "text": grounding_instruction(
                            item.get("displayName") or item.get("name", "")
                            for item in documents
                        )
                    }
                ]
            },
            "contents": build_contents(request, documents),
        }

        # Usage counts are cumulative; only the latest report matters.
        input_tokens = 0
        output_tokens = 0
        async for chunk in self._client.stream_generate(self._model, payload):
            text = _chunk_text(chunk)
            if text:
                yield TextDelta(text)
            usage = chunk.get("usageMetadata")
            if usage:
                input_tokens = usage.get("promptTokenCount") or 0
                output_tokens = usage.get("candidatesTokenCount") or 0

        yield UsageSummary(
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            model=self._model,
        )


__all__ = ["GeminiChatAdapter", "build_contents"]
