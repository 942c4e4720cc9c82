"""Line-oriented wire format shared by the gateway and its clients.

Each frame is one line: a one-character type marker, a colon, a JSON value
and a newline.

    0:"text fragment"
    2:{"usage":{"inputTokens":10,"outputTokens":5,"model":"m"},"threadId":"t"}
    3:"error message"

A stream is zero or more text frames followed by exactly one usage frame or
one error frame.
"""

from __future__ import annotations

import codecs
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

from .errors import ParseError

logger = logging.getLogger(__name__)

TEXT_MARKER = "0"
USAGE_MARKER = "2"
ERROR_MARKER = "3"
SEPARATOR = ":"
LINE_TERMINATOR = "\n"

MEDIA_TYPE = "text/plain; charset=utf-8"
STREAM_HEADERS = {"X-Vercel-AI-Data-Stream": "v1"}


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class UsageSummary:
    input_tokens: int
    output_tokens: int
    model: str
    thread_id: Optional[str] = None
    assistant_id: Optional[str] = None
    vector_store_id: Optional[str] = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "usage": {
                "inputTokens": self.input_tokens,
                "outputTokens": self.output_tokens,
                "model": self.model,
            }
        }
        if self.thread_id is not None:
            payload["threadId"] = self.thread_id
        if self.assistant_id is not None:
            payload["assistantId"] = self.assistant_id
        if self.vector_store_id is not None:
            payload["vectorStoreId"] = self.vector_store_id
        return payload

    @classmethod
    def from_payload(cls, payload: Any) -> "UsageSummary":
        if not isinstance(payload, dict) or not isinstance(payload.get("usage"), dict):
            raise ParseError("usage frame is missing its usage object")
        usage = payload["usage"]
        try:
            return cls(
                input_tokens=int(usage.get("inputTokens") or 0),
                output_tokens=int(usage.get("outputTokens") or 0),
                model=str(usage.get("model") or ""),
                thread_id=payload.get("threadId"),
                assistant_id=payload.get("assistantId"),
                vector_store_id=payload.get("vectorStoreId"),
            )
        except (TypeError, ValueError) as exc:
            raise ParseError(f"invalid usage frame: {exc}") from exc


@dataclass(frozen=True)
class StreamError:
    message: str


StreamFrame = Union[TextDelta, UsageSummary, StreamError]


def _dumps(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


def encode_frame(frame: StreamFrame) -> bytes:
    if isinstance(frame, TextDelta):
        marker, body = TEXT_MARKER, _dumps(frame.text)
    elif isinstance(frame, UsageSummary):
        marker, body = USAGE_MARKER, _dumps(frame.to_payload())
    elif isinstance(frame, StreamError):
        marker, body = ERROR_MARKER, _dumps(frame.message)
    else:
        raise TypeError(f"cannot encode {type(frame).__name__}")
    return f"{marker}{SEPARATOR}{body}{LINE_TERMINATOR}".encode("utf-8")


def decode_line(line: str) -> Optional[StreamFrame]:
    """Decode one complete line.

    Returns ``None`` for blank lines and unrecognised markers; raises
    :class:`ParseError` for a known marker with a malformed body.
    """

    line = line.rstrip("\r")
    if not line:
        return None
    marker, separator, body = line.partition(SEPARATOR)
    if not separator:
        raise ParseError(f"frame without separator: {line[:80]!r}")
    if marker not in (TEXT_MARKER, USAGE_MARKER, ERROR_MARKER):
        logger.warning("Skipping frame with unknown marker %r", marker)
        return None
    try:
        value = json.loads(body)
    except json.JSONDecodeError as exc:
        raise ParseError(f"malformed frame body: {exc.msg}") from exc

    if marker == USAGE_MARKER:
        return UsageSummary.from_payload(value)
    if not isinstance(value, str):
        raise ParseError(f"frame {marker} expects a JSON string")
    if marker == TEXT_MARKER:
        return TextDelta(value)
    return StreamError(value)


class FrameDecoder:
    """Incremental decoder tolerant of frames split across network reads.

    Bytes are decoded with an incremental UTF-8 decoder, so multi-byte
    characters may also straddle reads. Only complete lines are parsed; the
    remainder is carried over to the next ``feed``.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.skipped = 0

    def feed(self, chunk: bytes) -> list[StreamFrame]:
        self._buffer += self._decoder.decode(chunk)
        if LINE_TERMINATOR not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split(LINE_TERMINATOR)
        return self._decode_lines(lines)

    def close(self) -> list[StreamFrame]:
        """Flush any trailing line that arrived without a terminator."""

        self._buffer += self._decoder.decode(b"", final=True)
        remainder, self._buffer = self._buffer, ""
        return self._decode_lines([remainder])

    def _decode_lines(self, lines: list[str]) -> list[StreamFrame]:
        frames: list[StreamFrame] = []
        for line in lines:
            try:
                frame = decode_line(line)
            except ParseError as exc:
                self.skipped += 1
                logger.warning("Skipping malformed frame: %s", exc)
                continue
            if frame is not None:
                frames.append(frame)
        return frames


__all__ = [
    "FrameDecoder",
    "MEDIA_TYPE",
    "STREAM_HEADERS",
    "StreamError",
    "StreamFrame",
    "TextDelta",
    "UsageSummary",
    "decode_line",
    "encode_frame",
]
