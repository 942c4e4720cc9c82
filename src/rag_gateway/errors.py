"""Error taxonomy shared by vendor clients, adapters and routes."""

from __future__ import annotations

import json
from typing import Any

from fastapi import status


class GatewayError(Exception):
    """Base class for failures surfaced by the gateway."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: Any, *, status_code: int | None = None):
        super().__init__(describe_detail(detail))
        if status_code is not None:
            self.status_code = status_code
        self.detail = detail

    @property
    def message(self) -> str:
        return str(self)


class MissingCredential(GatewayError):
    """No API key accompanied the request."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, provider: str):
        label = "OpenAI" if provider == "openai" else "Gemini"
        super().__init__(
            f"No {label} API key configured. Please add one in Settings."
        )
        self.provider = provider


class InvalidCredential(GatewayError):
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, detail: Any = None):
        super().__init__(
            detail or "Invalid API key. Please check your key in Settings."
        )


class RateLimited(GatewayError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS


class ResourceNotFound(GatewayError):
    """A vendor-side handle (assistant, thread, vector store, file) is gone."""

    status_code = status.HTTP_404_NOT_FOUND


class IngestionFailed(GatewayError):
    """The vendor finished processing a file without completing it."""

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, vendor_status: str, detail: Any = None):
        message = f"File processing failed: {vendor_status}"
        if detail:
            message = f"{message} ({describe_detail(detail)})"
        super().__init__(message)
        self.vendor_status = vendor_status


class IngestionTimeout(IngestionFailed):
    """The poll policy ran out while the file was still being processed."""

    status_code = status.HTTP_504_GATEWAY_TIMEOUT


class TransportError(GatewayError):
    status_code = status.HTTP_502_BAD_GATEWAY


class UpstreamError(GatewayError):
    """Any other non-success response from a vendor."""


class ParseError(GatewayError):
    status_code = status.HTTP_400_BAD_REQUEST


def describe_detail(detail: Any) -> str:
    """Flatten a vendor error payload into one human-readable line."""

    if detail is None:
        return ""
    if isinstance(detail, str):
        return detail
    if isinstance(detail, dict):
        message = detail.get("message")
        if isinstance(message, str) and message:
            return message
        return json.dumps(detail, ensure_ascii=False)
    return str(detail)


def extract_error_detail(raw: bytes) -> Any:
    if not raw:
        return "Upstream returned an empty error response."
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError:
        text = raw.decode("utf-8", errors="ignore")
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return text
    if isinstance(payload, dict):
        return payload.get("error") or payload
    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        # Gemini occasionally wraps the error object in a one-element array
        return payload[0].get("error") or payload[0]
    return payload


def error_from_response(status_code: int, detail: Any) -> GatewayError:
    """Map a vendor status code and error body onto the gateway taxonomy."""

    text = json.dumps(detail) if not isinstance(detail, str) else detail
    if status_code in (401, 403) or "API_KEY_INVALID" in text:
        if "PERMISSION_DENIED" in text and "API_KEY_INVALID" not in text:
            return InvalidCredential("API key doesn't have required permissions")
        return InvalidCredential()
    if status_code == 404:
        return ResourceNotFound(detail)
    if status_code == 429:
        return RateLimited(detail)
    return UpstreamError(detail, status_code=status_code)


__all__ = [
    "GatewayError",
    "IngestionFailed",
    "IngestionTimeout",
    "InvalidCredential",
    "MissingCredential",
    "ParseError",
    "RateLimited",
    "ResourceNotFound",
    "TransportError",
    "UpstreamError",
    "describe_detail",
    "error_from_response",
    "extract_error_detail",
]
