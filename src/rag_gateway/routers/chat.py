"""Chat streaming API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse

from ..chat import ChatDispatcher, start_stream
from ..schemas.chat import ChatRequest
from ..wire import MEDIA_TYPE, STREAM_HEADERS

router = APIRouter(prefix="/api", tags=["chat"])


def get_dispatcher(request: Request) -> ChatDispatcher:
    dispatcher = getattr(request.app.state, "chat_dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=500, detail="Chat dispatcher unavailable")
    return dispatcher


@router.post("/chat", response_model=None, status_code=200)
async def stream_chat(
    payload: ChatRequest,
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
) -> StreamingResponse:
    """Stream one chat turn as line-oriented frames.

    Failures before the first frame are answered with a JSON error and the
    matching status code; later failures end the stream with an error frame.
    """

    body = await start_stream(dispatcher.open(payload))
    return StreamingResponse(body, media_type=MEDIA_TYPE, headers=STREAM_HEADERS)


__all__ = ["get_dispatcher", "router"]
