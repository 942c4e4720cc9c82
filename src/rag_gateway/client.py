"""Async client for the gateway's chat stream and knowledge endpoints."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

import httpx

from .errors import describe_detail
from .schemas.chat import ChatMessage
from .wire import FrameDecoder, StreamError, StreamFrame, TextDelta, UsageSummary

logger = logging.getLogger(__name__)

MessageCallback = Callable[[ChatMessage], None]
UsageCallback = Callable[[UsageSummary], None]


class StreamAccumulator:
    """Fold decoded frames into the in-flight assistant message.

    The message object is replaced on every text frame so observers holding
    the previous instance never see it change underneath them.
    """

    def __init__(
        self,
        *,
        on_message: Optional[MessageCallback] = None,
        on_usage: Optional[UsageCallback] = None,
    ) -> None:
        self._decoder = FrameDecoder()
        self._on_message = on_message
        self._on_usage = on_usage
        self._text = ""
        self.message: Optional[ChatMessage] = None
        self.usage: Optional[UsageSummary] = None
        self.error: Optional[str] = None

    @property
    def text(self) -> str:
        return self._text

    def feed(self, chunk: bytes) -> None:
        self._apply(self._decoder.feed(chunk))

    def close(self) -> None:
        self._apply(self._decoder.close())

    def _apply(self, frames: Iterable[StreamFrame]) -> None:
        for frame in frames:
            if isinstance(frame, TextDelta):
                self._text += frame.text
                if self.message is None:
                    self.message = ChatMessage(role="assistant", content=self._text)
                else:
                    self.message = self.message.model_copy(update={"content": self._text})
                if self._on_message is not None:
                    self._on_message(self.message)
            elif isinstance(frame, UsageSummary):
                if self.usage is not None:
                    logger.warning("Ignoring repeated usage frame")
                    continue
                self.usage = frame
                if self._on_usage is not None:
                    self._on_usage(frame)
            elif isinstance(frame, StreamError):
                self.error = frame.message


@dataclass
class ChatTurn:
    """Outcome of one streamed chat turn."""

    messages: list[ChatMessage] = field(default_factory=list)
    usage: Optional[UsageSummary] = None
    error: Optional[str] = None

    @property
    def reply(self) -> Optional[ChatMessage]:
        return self.messages[-1] if self.messages else None

    @property
    def thread_id(self) -> Optional[str]:
        return self.usage.thread_id if self.usage else None

    @property
    def assistant_id(self) -> Optional[str]:
        return self.usage.assistant_id if self.usage else None

    @property
    def vector_store_id(self) -> Optional[str]:
        return self.usage.vector_store_id if self.usage else None


def _error_message(response: httpx.Response) -> str:
    try:
        payload = json.loads(response.content or b"{}")
    except json.JSONDecodeError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        return describe_detail(payload["error"])
    text = response.text.strip() if response.content else ""
    return text or f"HTTP {response.status_code}"


class GatewayClient:
    """Thin httpx wrapper around the gateway HTTP API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        *,
        timeout: float = 300.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "GatewayClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    @staticmethod
    def _headers(
        api_key: str,
        provider: str,
        *,
        assistant_id: Optional[str] = None,
        vector_store_id: Optional[str] = None,
    ) -> dict[str, str]:
        headers = {"x-api-key": api_key, "x-provider": provider}
        if assistant_id:
            headers["x-assistant-id"] = assistant_id
        if vector_store_id:
            headers["x-vector-store-id"] = vector_store_id
        return headers

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        provider: str,
        api_key: str,
        model: Optional[str] = None,
        assistant_id: Optional[str] = None,
        thread_id: Optional[str] = None,
        on_message: Optional[MessageCallback] = None,
        on_usage: Optional[UsageCallback] = None,
    ) -> ChatTurn:
        """Stream one turn. Failures come back as an ``Error: ...`` reply."""

        body: dict[str, Any] = {
            "messages": [message.model_dump() for message in messages],
            "provider": provider,
            "apiKey": api_key,
        }
        if model:
            body["model"] = model
        if assistant_id:
            body["assistantId"] = assistant_id
        if thread_id:
            body["threadId"] = thread_id

        accumulator = StreamAccumulator(on_message=on_message, on_usage=on_usage)
        try:
            async with self._client.stream("POST", self._url("/api/chat"), json=body) as response:
                if response.status_code >= 400:
                    await response.aread()
                    return self._failed(accumulator, _error_message(response))
                async for chunk in response.aiter_bytes():
                    accumulator.feed(chunk)
                accumulator.close()
        except httpx.HTTPError as exc:
            logger.warning("Chat stream failed: %s", exc)
            return self._failed(accumulator, str(exc) or type(exc).__name__)

        if accumulator.error is not None:
            return self._failed(accumulator, accumulator.error)
        messages_out = [accumulator.message] if accumulator.message is not None else []
        return ChatTurn(messages=messages_out, usage=accumulator.usage)

    @staticmethod
    def _failed(accumulator: StreamAccumulator, message: str) -> ChatTurn:
        messages: list[ChatMessage] = []
        if accumulator.message is not None:
            messages.append(accumulator.message)
        messages.append(ChatMessage(role="assistant", content=f"Error: {message}"))
        return ChatTurn(messages=messages, usage=accumulator.usage, error=message)

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, self._url(path), **kwargs)
        if response.status_code >= 400:
            raise httpx.HTTPStatusError(
                _error_message(response), request=response.request, response=response
            )
        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    async def upload(
        self,
        paths: Sequence[Path],
        *,
        provider: str,
        api_key: str,
        assistant_id: Optional[str] = None,
        vector_store_id: Optional[str] = None,
    ) -> dict[str, Any]:
        files = [("files", (path.name, path.read_bytes())) for path in paths]
        return await self._json(
            "POST",
            "/api/upload",
            files=files,
            headers=self._headers(
                api_key,
                provider,
                assistant_id=assistant_id,
                vector_store_id=vector_store_id,
            ),
        )

    async def list_files(
        self, *, provider: str, api_key: str, vector_store_id: Optional[str] = None
    ) -> dict[str, Any]:
        return await self._json(
            "GET",
            "/api/files",
            headers=self._headers(api_key, provider, vector_store_id=vector_store_id),
        )

    async def delete_file(
        self,
        file_id: str,
        *,
        provider: str,
        api_key: str,
        vector_store_id: Optional[str] = None,
    ) -> None:
        await self._json(
            "DELETE",
            f"/api/files/{file_id}",
            headers=self._headers(api_key, provider, vector_store_id=vector_store_id),
        )

    async def validate_key(self, api_key: str, provider: str) -> dict[str, Any]:
        return await self._json(
            "POST", "/api/validate-key", json={"apiKey": api_key, "provider": provider}
        )


__all__ = ["ChatTurn", "GatewayClient", "StreamAccumulator"]
