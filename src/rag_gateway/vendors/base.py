"""Shared HTTP plumbing for vendor REST clients."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, ClassVar, Optional

import httpx

from ..config import Settings
from ..errors import TransportError, error_from_response, extract_error_detail

logger = logging.getLogger(__name__)


class VendorClient(ABC):
    """Credential-scoped client for one vendor's REST API.

    Instances are cheap and built per request from the caller's credential.
    Connections come from a class-level pool keyed by base URL and timeout,
    which never stores credentials. Tests inject their own
    ``httpx.AsyncClient`` instead.
    """

    vendor: ClassVar[str] = "vendor"

    _client_lock: ClassVar[asyncio.Lock] = asyncio.Lock()
    _client_pool: ClassVar[dict[tuple[str, float], httpx.AsyncClient]] = {}

    def __init__(
        self,
        api_key: str,
        settings: Settings,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._api_key = api_key
        self._settings = settings
        self._http_client = http_client

    @property
    def credential_fingerprint(self) -> str:
        """Stable, non-reversible identifier for the credential."""

        digest = hashlib.sha256(self._api_key.encode("utf-8")).hexdigest()
        return f"{self.vendor}:{digest[:16]}"

    @property
    @abstractmethod
    def _base_url(self) -> str: ...

    @property
    @abstractmethod
    def _headers(self) -> dict[str, str]: ...

    def _client_key(self) -> tuple[str, float]:
        return (self._base_url, float(self._settings.request_timeout))

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is not None:
            return self._http_client

        key = self._client_key()
        client = VendorClient._client_pool.get(key)
        if client is not None:
            return client

        async with VendorClient._client_lock:
            client = VendorClient._client_pool.get(key)
            if client is None:
                timeout = httpx.Timeout(self._settings.request_timeout, connect=10.0)
                limits = httpx.Limits(
                    max_connections=50,
                    max_keepalive_connections=20,
                )
                client = httpx.AsyncClient(
                    timeout=timeout,
                    limits=limits,
                    http2=True,
                )
                VendorClient._client_pool[key] = client
        return client

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[dict[str, str]] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one request and raise the mapped gateway error on failure."""

        client = await self._get_http_client()
        merged = dict(self._headers)
        if headers:
            merged.update(headers)
        try:
            response = await client.request(
                method, self._url(path), headers=merged, **kwargs
            )
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc

        if response.status_code >= 400:
            detail = extract_error_detail(response.content)
            logger.debug(
                "%s %s %s failed with %s", self.vendor, method, path, response.status_code
            )
            raise error_from_response(response.status_code, detail)
        return response

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._request(method, path, **kwargs)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"{self.vendor} returned invalid JSON: {exc}") from exc

    @asynccontextmanager
    async def _stream(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> AsyncIterator[httpx.Response]:
        """Open a streaming response, raising mapped errors before yielding."""

        client = await self._get_http_client()
        headers = dict(self._headers)
        headers["Accept"] = "text/event-stream"
        try:
            async with client.stream(
                method, self._url(path), headers=headers, **kwargs
            ) as response:
                if response.status_code >= 400:
                    body = await response.aread()
                    raise error_from_response(
                        response.status_code, extract_error_detail(body)
                    )
                yield response
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or type(exc).__name__) from exc

    @classmethod
    async def aclose_shared(cls) -> None:
        async with VendorClient._client_lock:
            clients = list(VendorClient._client_pool.values())
            VendorClient._client_pool.clear()
        for client in clients:
            try:
                await client.aclose()
            except Exception:  # pragma: no cover - best effort cleanup
                pass


__all__ = ["VendorClient"]
