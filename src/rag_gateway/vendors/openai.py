"""OpenAI REST client covering assistants, vector stores, threads and chat."""

from __future__ import annotations

from typing import Any, AsyncGenerator, Optional

from .base import VendorClient
from .sse import iter_events

_LIST_LIMIT = 100


class OpenAIClient(VendorClient):
    """Async wrapper over the subset of the OpenAI API the gateway needs."""

    vendor = "openai"

    @property
    def _base_url(self) -> str:
        return str(self._settings.openai_base_url).rstrip("/")

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "OpenAI-Beta": "assistants=v2",
        }

    async def _paginate(self, path: str) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        after: Optional[str] = None
        while True:
            params: dict[str, Any] = {"limit": _LIST_LIMIT}
            if after:
                params["after"] = after
            payload = await self._request_json("GET", path, params=params)
            page = payload.get("data") or []
            items.extend(page)
            if not payload.get("has_more") or not page:
                return items
            after = payload.get("last_id") or page[-1].get("id")

    # Assistants -----------------------------------------------------------------

    async def retrieve_assistant(self, assistant_id: str) -> dict[str, Any]:
        return await self._request_json("GET", f"assistants/{assistant_id}")

    async def create_assistant(self, **payload: Any) -> dict[str, Any]:
        return await self._request_json("POST", "assistants", json=payload)

    async def update_assistant(self, assistant_id: str, **payload: Any) -> dict[str, Any]:
        return await self._request_json(
            "POST", f"assistants/{assistant_id}", json=payload
        )

    # Vector stores --------------------------------------------------------------

    async def create_vector_store(self, name: str) -> dict[str, Any]:
        return await self._request_json("POST", "vector_stores", json={"name": name})

    async def attach_file(self, vector_store_id: str, file_id: str) -> dict[str, Any]:
        return await self._request_json(
            "POST",
            f"vector_stores/{vector_store_id}/files",
            json={"file_id": file_id},
        )

    async def retrieve_vector_store_file(
        self, vector_store_id: str, file_id: str
    ) -> dict[str, Any]:
        return await self._request_json(
            "GET", f"vector_stores/{vector_store_id}/files/{file_id}"
        )

    async def list_vector_store_files(self, vector_store_id: str) -> list[dict[str, Any]]:
        return await self._paginate(f"vector_stores/{vector_store_id}/files")

    async def detach_file(self, vector_store_id: str, file_id: str) -> None:
        await self._request("DELETE", f"vector_stores/{vector_store_id}/files/{file_id}")

    # Files ----------------------------------------------------------------------

    async def upload_file(
        self,
        data: bytes,
        *,
        filename: str,
        mime_type: str,
        purpose: str = "assistants",
    ) -> dict[str, Any]:
        return await self._request_json(
            "POST",
            "files",
            data={"purpose": purpose},
            files={"file": (filename, data, mime_type or "application/octet-stream")},
        )

    async def retrieve_file(self, file_id: str) -> dict[str, Any]:
        return await self._request_json("GET", f"files/{file_id}")

    async def delete_file(self, file_id: str) -> None:
        await self._request("DELETE", f"files/{file_id}")

    # Threads and runs -----------------------------------------------------------

    async def create_thread(self) -> dict[str, Any]:
        return await self._request_json("POST", "threads", json={})

    async def create_message(
        self, thread_id: str, content: str, *, role: str = "user"
    ) -> dict[str, Any]:
        return await self._request_json(
            "POST",
            f"threads/{thread_id}/messages",
            json={"role": role, "content": content},
        )

    async def stream_run(
        self, thread_id: str, assistant_id: str
    ) -> AsyncGenerator[tuple[str, dict[str, Any]], None]:
        """Yield ``(event_name, data)`` pairs for a streaming run."""

        async with self._stream(
            "POST",
            f"threads/{thread_id}/runs",
            json={"assistant_id": assistant_id, "stream": True},
        ) as response:
            async for event in iter_events(response, source=self.vendor):
                yield event.name, event.payload

    # Chat completions -----------------------------------------------------------

    async def stream_chat_completion(
        self, payload: dict[str, Any]
    ) -> AsyncGenerator[dict[str, Any], None]:
        body = dict(payload)
        body["stream"] = True
        async with self._stream("POST", "chat/completions", json=body) as response:
            async for event in iter_events(response, source=self.vendor):
                yield event.payload

    async def list_models(self) -> dict[str, Any]:
        return await self._request_json("GET", "models")


__all__ = ["OpenAIClient"]
