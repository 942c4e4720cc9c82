"""Capability interface shared by every chat adapter."""

from __future__ import annotations

from typing import AsyncGenerator, Protocol

from ..schemas.chat import ChatRequest
from ..wire import StreamFrame

FrameProducer = AsyncGenerator[StreamFrame, None]


class ChatAdapter(Protocol):
    """Translate one vendor's streaming protocol into wire frames.

    ``open`` yields zero or more ``TextDelta`` frames followed by one
    ``UsageSummary``. Failures are raised as ``GatewayError`` subclasses;
    the caller decides whether they become an HTTP error or a terminal
    error frame. Stopping iteration releases the upstream stream.
    """

    name: str

    def open(self, request: ChatRequest) -> FrameProducer: ...


__all__ = ["ChatAdapter", "FrameProducer"]
