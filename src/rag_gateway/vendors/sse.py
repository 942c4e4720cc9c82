"""Decoding of vendor Server-Sent Event streams into JSON payloads."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, AsyncIterator

import httpx

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
_DEFAULT_EVENT = "message"


@dataclass(frozen=True)
class VendorEvent:
    """One decoded event: its SSE name and JSON object payload."""

    name: str
    payload: dict[str, Any]


async def _frames(lines: AsyncIterator[str]) -> AsyncGenerator[tuple[str, str], None]:
    """Group raw lines into ``(event name, data)`` pairs.

    Multi-line data is joined with ``\\n``; comment lines and events
    without data are dropped.
    """

    name = _DEFAULT_EVENT
    data: list[str] = []
    async for line in lines:
        if not line:
            if data:
                yield name, "\n".join(data)
            name, data = _DEFAULT_EVENT, []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            name = value or _DEFAULT_EVENT
        elif field == "data":
            data.append(value)
    if data:
        yield name, "\n".join(data)


async def iter_events(
    response: httpx.Response, *, source: str = "vendor"
) -> AsyncGenerator[VendorEvent, None]:
    """Yield JSON object events until the stream ends or signals ``[DONE]``.

    Undecodable or non-object payloads are logged and skipped.
    """

    async for name, data in _frames(response.aiter_lines()):
        if name == "done" or data.strip() == DONE_SENTINEL:
            return
        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            logger.warning("Skipping undecodable %s event %s", source, name)
            continue
        if isinstance(payload, dict):
            yield VendorEvent(name, payload)
        else:
            logger.debug("Ignoring non-object %s event %s", source, name)


__all__ = ["DONE_SENTINEL", "VendorEvent", "iter_events"]
