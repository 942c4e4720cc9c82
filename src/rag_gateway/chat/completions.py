"""OpenAI chat-completions adapter used when no assistant is configured."""

from __future__ import annotations

from typing import Any

from ..prompts import COMPLETION_SYSTEM_PROMPT
from ..schemas.chat import ChatRequest
from ..vendors.openai import OpenAIClient
from ..wire import TextDelta, UsageSummary
from .base import FrameProducer


class CompletionAdapter:
    name = "openai-completion"

    def __init__(self, client: OpenAIClient, model: str):
        self._client = client
        self._model = model

    def build_payload(self, request: ChatRequest) -> dict[str, Any]:
        messages = [{"role": "system", "content": COMPLETION_SYSTEM_PROMPT}]
        messages.extend(
            {"role": message.role, "content": message.content}
            for message in request.messages
        )
        return {
            "model": self._model,
            "messages": messages,
            "stream": True,
            "stream_options": {"include_usage": True},
        }

    async def open(self, request: ChatRequest) -> FrameProducer:
        usage: dict[str, Any] = {}
        async for chunk in self._client.stream_chat_completion(self.build_payload(request)):
            choices = chunk.get("choices") or []
            if choices:
                content = (choices[0].get("delta") or {}).get("content")
                if content:
                    yield TextDelta(content)
            if chunk.get("usage"):
                usage = chunk["usage"]

        yield UsageSummary(
            input_tokens=usage.get("prompt_tokens") or 0,
            output_tokens=usage.get("completion_tokens") or 0,
            model=self._model,
        )


__all__ = ["CompletionAdapter"]
