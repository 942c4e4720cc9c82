"""Gemini REST client: file store and streaming generation."""

from __future__ import annotations

import logging
from typing import Any, AsyncGenerator, Optional

from ..errors import TransportError
from .base import VendorClient
from .sse import iter_events

logger = logging.getLogger(__name__)

_API_VERSION = "v1beta"
_FILES_PAGE_SIZE = 100


def model_path(model: str) -> str:
    """Return the resource path for ``model`` (``models/<id>`` unless qualified)."""

    if "/" in model:
        return model
    return f"models/{model}"


class GeminiClient(VendorClient):
    """Thin async wrapper over the Generative Language API."""

    vendor = "gemini"

    @property
    def _base_url(self) -> str:
        return str(self._settings.gemini_base_url).rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key}

    async def list_files(self) -> list[dict[str, Any]]:
        """Return every file currently stored under the credential."""

        files: list[dict[str, Any]] = []
        page_token: Optional[str] = None
        while True:
            params: dict[str, Any] = {"pageSize": _FILES_PAGE_SIZE}
            if page_token:
                params["pageToken"] = page_token
            payload = await self._request_json(
                "GET", f"{_API_VERSION}/files", params=params
            )
            files.extend(payload.get("files") or [])
            page_token = payload.get("nextPageToken")
            if not page_token:
                return files

    async def upload_file(
        self, data: bytes, *, display_name: str, mime_type: str
    ) -> dict[str, Any]:
        """Upload raw bytes through the resumable upload protocol."""

        start = await self._request(
            "POST",
            f"upload/{_API_VERSION}/files",
            headers={
                "X-Goog-Upload-Protocol": "resumable",
                "X-Goog-Upload-Command": "start",
                "X-Goog-Upload-Header-Content-Length": str(len(data)),
                "X-Goog-Upload-Header-Content-Type": mime_type,
            },
            json={"file": {"display_name": display_name}},
        )
        upload_url = start.headers.get("x-goog-upload-url")
        if not upload_url:
            raise TransportError("Gemini did not return an upload URL")

        payload = await self._request_json(
            "POST",
            upload_url,
            headers={
                "Content-Length": str(len(data)),
                "X-Goog-Upload-Offset": "0",
                "X-Goog-Upload-Command": "upload, finalize",
            },
            content=data,
        )
        uploaded = payload.get("file") or payload
        logger.info("Uploaded %s to Gemini as %s", display_name, uploaded.get("name"))
        return uploaded

    async def delete_file(self, name: str) -> None:
        if not name.startswith("files/"):
            name = f"files/{name}"
        await self._request("DELETE", f"{_API_VERSION}/{name}")

    async def generate(self, model: str, payload: dict[str, Any]) -> dict[str, Any]:
        return await self._request_json(
            "POST",
            f"{_API_VERSION}/{model_path(model)}:generateContent",
            json=payload,
        )

    async def stream_generate(
        self, model: str, payload: dict[str, Any]
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield each decoded chunk of a streamed generation."""

        async with self._stream(
            "POST",
            f"{_API_VERSION}/{model_path(model)}:streamGenerateContent",
            params={"alt": "sse"},
            json=payload,
        ) as response:
            async for event in iter_events(response, source=self.vendor):
                yield event.payload


__all__ = ["GeminiClient", "model_path"]
