"""API key validation route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from ..chat import ChatDispatcher
from ..schemas.knowledge import KeyValidationRequest, KeyValidationResponse
from ..services.key_validation import validate_key
from .chat import get_dispatcher

router = APIRouter(prefix="/api", tags=["keys"])


@router.post(
    "/validate-key",
    response_model=KeyValidationResponse,
    response_model_exclude_none=True,
)
async def validate_api_key(
    payload: KeyValidationRequest,
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
) -> KeyValidationResponse:
    return await validate_key(dispatcher, payload.api_key, payload.provider)


__all__ = ["router"]
