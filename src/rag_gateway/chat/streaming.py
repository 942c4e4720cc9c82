"""Turn a frame producer into the outgoing byte stream."""

from __future__ import annotations

import logging
from typing import AsyncGenerator, AsyncIterator, Optional

from ..errors import GatewayError
from ..wire import StreamError, StreamFrame, encode_frame
from .base import FrameProducer

logger = logging.getLogger(__name__)


async def start_stream(frames: FrameProducer) -> AsyncIterator[bytes]:
    """Pull the first frame, then hand back an encoder for the whole stream.

    Anything raised before the first frame propagates to the caller so it
    can answer with an HTTP error instead of a stream.
    """

    try:
        first: Optional[StreamFrame] = await anext(frames)
    except StopAsyncIteration:
        first = None
    return _encode(first, frames)


async def _encode(
    first: Optional[StreamFrame], frames: FrameProducer
) -> AsyncGenerator[bytes, None]:
    try:
        if first is None:
            return
        yield encode_frame(first)
        async for frame in frames:
            yield encode_frame(frame)
    except GatewayError as exc:
        logger.warning("Stream aborted: %s", exc)
        yield encode_frame(StreamError(exc.message or type(exc).__name__))
    except Exception as exc:  # pragma: no cover - unexpected adapter bug
        logger.exception("Stream failed unexpectedly")
        yield encode_frame(StreamError(str(exc) or type(exc).__name__))
    finally:
        await frames.aclose()


__all__ = ["start_stream"]
