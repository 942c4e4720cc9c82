"""Check whether an API key is accepted by its vendor."""

from __future__ import annotations

import logging

from fastapi import status

from ..chat.dispatcher import ChatDispatcher, resolve_provider
from ..errors import GatewayError, InvalidCredential, RateLimited
from ..schemas.knowledge import KeyValidationResponse

logger = logging.getLogger(__name__)

_CHECK_PROMPT = "Say 'OK' if you can read this."
_PERMISSION_MESSAGE = "API key doesn't have required permissions"


async def validate_key(
    dispatcher: ChatDispatcher, api_key: str, provider: str | None
) -> KeyValidationResponse:
    """Check ``api_key`` with one cheap vendor call.

    A rate-limited check still proves the key passed authentication, so it
    counts as valid. Every other failure is reported as a 400.
    """

    if not api_key:
        raise GatewayError("API key required", status_code=status.HTTP_400_BAD_REQUEST)

    provider = resolve_provider(provider)
    try:
        if provider == "openai":
            await dispatcher.openai_client(api_key).list_models()
        else:
            await dispatcher.gemini_client(api_key).generate(
                dispatcher.settings.key_validation_model,
                {"contents": [{"role": "user", "parts": [{"text": _CHECK_PROMPT}]}]},
            )
    except RateLimited:
        return KeyValidationResponse(valid=True, warning="Rate limited, but key is valid")
    except InvalidCredential as exc:
        logger.info("%s key rejected: %s", provider, exc)
        if exc.message == _PERMISSION_MESSAGE:
            message = _PERMISSION_MESSAGE
        elif provider == "openai":
            message = "OpenAI API key is invalid"
        else:
            message = "Gemini API key is invalid"
        raise GatewayError(message, status_code=status.HTTP_400_BAD_REQUEST) from exc
    except GatewayError as exc:
        logger.info("%s key validation failed: %s", provider, exc)
        raise GatewayError(
            "Invalid API key", status_code=status.HTTP_400_BAD_REQUEST
        ) from exc
    return KeyValidationResponse(valid=True)


__all__ = ["validate_key"]
