import itertools
import json
import pathlib
import sys
from collections.abc import Generator
from typing import Any, Iterable, Optional

import httpx
import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from rag_gateway.config import Settings  # noqa: E402


def sse_body(events: Iterable[tuple[Optional[str], Any]]) -> bytes:
    """Render ``(event, data)`` pairs as a Server-Sent Events body."""

    chunks = []
    for event, data in events:
        lines = []
        if event:
            lines.append(f"event: {event}")
        payload = data if isinstance(data, str) else json.dumps(data)
        lines.append(f"data: {payload}")
        chunks.append("\n".join(lines) + "\n\n")
    return "".join(chunks).encode("utf-8")


def _sse_response(events: Iterable[tuple[Optional[str], Any]]) -> httpx.Response:
    return httpx.Response(
        200,
        content=sse_body(events),
        headers={"content-type": "text/event-stream"},
    )


def _error(status_code: int, message: str, **extra: Any) -> httpx.Response:
    return httpx.Response(status_code, json={"error": {"message": message, **extra}})


class FakeOpenAI:
    """In-memory stand-in for the OpenAI REST surface the gateway uses."""

    def __init__(self) -> None:
        self.assistants: dict[str, dict[str, Any]] = {}
        self.vector_stores: dict[str, dict[str, dict[str, Any]]] = {}
        self.files: dict[str, dict[str, Any]] = {}
        self.threads: dict[str, list[dict[str, Any]]] = {}
        self.calls: list[tuple[str, str]] = []
        self.runs: list[tuple[str, str]] = []
        self.failures: dict[str, httpx.Response] = {}
        self.ingest_statuses = ["completed"]
        self.reply = ["Hello", " world"]
        self.usage = {"prompt_tokens": 12, "completion_tokens": 4}
        self.completion_payloads: list[dict[str, Any]] = []
        self.run_fails_after_delta = False
        self.run_error: Optional[dict[str, Any]] = {
            "code": "server_error",
            "message": "Sorry, something went wrong.",
        }
        self._ids = itertools.count(1)
        self.transport = httpx.MockTransport(self.handle)
        self.http_client = httpx.AsyncClient(transport=self.transport)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def count(self, method: str, path_prefix: str) -> int:
        return sum(
            1
            for call_method, path in self.calls
            if call_method == method and path == path_prefix
        )

    def add_assistant(self, vector_store_ids: Optional[list[str]] = None) -> str:
        assistant_id = self._next_id("asst")
        self.assistants[assistant_id] = {
            "id": assistant_id,
            "tool_resources": {"file_search": {"vector_store_ids": vector_store_ids or []}},
        }
        for store_id in vector_store_ids or []:
            self.vector_stores.setdefault(store_id, {})
        return assistant_id

    def add_file(
        self, vector_store_id: str, filename: str, status: str = "completed"
    ) -> str:
        file_id = self._next_id("file")
        self.files[file_id] = {"id": file_id, "filename": filename, "created_at": 1700000000}
        self.vector_stores.setdefault(vector_store_id, {})[file_id] = {
            "id": file_id,
            "status": status,
        }
        return file_id

    def _ingest_status(self) -> str:
        if len(self.ingest_statuses) > 1:
            return self.ingest_statuses.pop(0)
        return self.ingest_statuses[0]

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v1/")
        method = request.method
        self.calls.append((method, path))
        parts = path.split("/")
        route = parts[0]
        if route in self.failures:
            return self.failures[route]

        body: dict[str, Any] = {}
        if request.content and request.headers.get("content-type", "").startswith(
            "application/json"
        ):
            body = json.loads(request.content)

        if route == "assistants":
            return self._assistants(method, parts, body)
        if route == "vector_stores":
            return self._vector_stores(method, parts, body)
        if route == "files":
            return self._files(method, parts)
        if route == "threads":
            return self._threads(method, parts, body)
        if route == "chat":
            self.completion_payloads.append(body)
            return self._completion()
        if route == "models":
            return httpx.Response(200, json={"data": [{"id": "gpt-4o"}]})
        return _error(404, f"Unknown route {path}")

    def _assistants(self, method: str, parts: list[str], body: dict[str, Any]) -> httpx.Response:
        if len(parts) == 1:
            assistant_id = self._next_id("asst")
            self.assistants[assistant_id] = {"id": assistant_id, **body}
            return httpx.Response(200, json=self.assistants[assistant_id])
        assistant = self.assistants.get(parts[1])
        if assistant is None:
            return _error(404, f"No assistant found with id '{parts[1]}'.")
        if method == "POST":
            assistant.update(body)
        return httpx.Response(200, json=assistant)

    def _vector_stores(
        self, method: str, parts: list[str], body: dict[str, Any]
    ) -> httpx.Response:
        if len(parts) == 1:
            store_id = self._next_id("vs")
            self.vector_stores[store_id] = {}
            return httpx.Response(200, json={"id": store_id, "name": body.get("name")})
        store = self.vector_stores.get(parts[1])
        if store is None:
            return _error(404, f"No vector store found with id '{parts[1]}'.")
        if len(parts) == 3:
            if method == "POST":
                file_id = body["file_id"]
                store[file_id] = {"id": file_id, "status": self._ingest_status()}
                if store[file_id]["status"] == "failed":
                    store[file_id]["last_error"] = {"message": "unsupported file"}
                return httpx.Response(200, json=store[file_id])
            return httpx.Response(
                200,
                json={"data": list(store.values()), "has_more": False},
            )
        attachment = store.get(parts[3])
        if attachment is None:
            return _error(404, f"No file found with id '{parts[3]}'.")
        if method == "DELETE":
            del store[parts[3]]
            return httpx.Response(200, json={"id": parts[3], "deleted": True})
        if attachment["status"] == "in_progress":
            attachment["status"] = self._ingest_status()
        return httpx.Response(200, json=attachment)

    def _files(self, method: str, parts: list[str]) -> httpx.Response:
        if len(parts) == 1:
            file_id = self._next_id("file")
            self.files[file_id] = {"id": file_id, "filename": "upload", "created_at": 1700000000}
            return httpx.Response(200, json=self.files[file_id])
        stored = self.files.get(parts[1])
        if stored is None:
            return _error(404, f"No such File object: {parts[1]}")
        if method == "DELETE":
            del self.files[parts[1]]
            return httpx.Response(200, json={"id": parts[1], "deleted": True})
        return httpx.Response(200, json=stored)

    def _threads(self, method: str, parts: list[str], body: dict[str, Any]) -> httpx.Response:
        if len(parts) == 1:
            thread_id = self._next_id("thread")
            self.threads[thread_id] = []
            return httpx.Response(200, json={"id": thread_id})
        messages = self.threads.get(parts[1])
        if messages is None:
            return _error(404, f"No thread found with id '{parts[1]}'.")
        if parts[2] == "messages":
            messages.append(body)
            return httpx.Response(200, json={"id": self._next_id("msg"), **body})

        assistant_id = body.get("assistant_id", "")
        self.runs.append((parts[1], assistant_id))
        if assistant_id not in self.assistants:
            return _error(404, f"No assistant found with id '{assistant_id}'.")
        events: list[tuple[Optional[str], Any]] = [
            ("thread.run.created", {"id": "run_1", "status": "queued"}),
        ]
        for fragment in self.reply:
            events.append(
                (
                    "thread.message.delta",
                    {"delta": {"content": [{"type": "text", "text": {"value": fragment}}]}},
                )
            )
        if self.run_fails_after_delta:
            events.append(
                (
                    "thread.run.failed",
                    {"id": "run_1", "status": "failed", "last_error": self.run_error},
                )
            )
        else:
            events.append(
                ("thread.run.completed", {"id": "run_1", "usage": dict(self.usage)})
            )
        events.append(("done", "[DONE]"))
        return _sse_response(events)

    def _completion(self) -> httpx.Response:
        events: list[tuple[Optional[str], Any]] = [
            (None, {"choices": [{"index": 0, "delta": {"role": "assistant"}}]})
        ]
        for fragment in self.reply:
            events.append((None, {"choices": [{"index": 0, "delta": {"content": fragment}}]}))
        events.append((None, {"choices": [], "usage": dict(self.usage)}))
        events.append((None, "[DONE]"))
        return _sse_response(events)


class FakeGemini:
    """In-memory stand-in for the Generative Language file and model APIs."""

    UPLOAD_URL = "https://upload.example.test/session/1"

    def __init__(self) -> None:
        self.files: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.failures: dict[str, httpx.Response] = {}
        self.page_size: Optional[int] = None
        self.chunks: list[dict[str, Any]] = [
            {"candidates": [{"content": {"parts": [{"text": "Hi"}]}}]},
            {
                "candidates": [{"content": {"parts": [{"text": " there"}]}}],
                "usageMetadata": {"promptTokenCount": 20, "candidatesTokenCount": 3},
            },
        ]
        self.stream_payloads: list[dict[str, Any]] = []
        self.generate_payloads: list[dict[str, Any]] = []
        self.pending_uploads: dict[str, Any] = {}
        self._ids = itertools.count(1)
        self.transport = httpx.MockTransport(self.handle)
        self.http_client = httpx.AsyncClient(transport=self.transport)

    def add_file(self, display_name: str, state: str = "ACTIVE", mime_type: str = "text/plain") -> str:
        name = f"files/doc{next(self._ids)}"
        self.files[name] = {
            "name": name,
            "displayName": display_name,
            "mimeType": mime_type,
            "uri": f"https://generativelanguage.googleapis.com/v1beta/{name}",
            "state": state,
            "createTime": "2024-01-01T00:00:00Z",
            "expirationTime": "2024-01-03T00:00:00Z",
        }
        return name

    def _route(self, request: httpx.Request) -> str:
        path = request.url.path
        if request.url.host == "upload.example.test":
            return "finalize"
        if path.startswith("/upload/"):
            return "upload"
        if path.endswith(":streamGenerateContent"):
            return "stream"
        if path.endswith(":generateContent"):
            return "generate"
        if request.method == "DELETE":
            return "delete"
        return "list"

    def handle(self, request: httpx.Request) -> httpx.Response:
        route = self._route(request)
        self.calls.append((request.method, route))
        if route in self.failures:
            return self.failures[route]

        if route == "list":
            items = list(self.files.values())
            start = int(request.url.params.get("pageToken") or 0)
            size = self.page_size or len(items) or 1
            page = items[start : start + size]
            payload: dict[str, Any] = {"files": page}
            if start + size < len(items):
                payload["nextPageToken"] = str(start + size)
            return httpx.Response(200, json=payload)
        if route == "upload":
            body = json.loads(request.content)
            self.pending_uploads["display_name"] = body["file"]["display_name"]
            self.pending_uploads["mime_type"] = request.headers["x-goog-upload-header-content-type"]
            return httpx.Response(200, headers={"x-goog-upload-url": self.UPLOAD_URL})
        if route == "finalize":
            name = self.add_file(
                self.pending_uploads["display_name"],
                state="PROCESSING",
                mime_type=self.pending_uploads["mime_type"],
            )
            return httpx.Response(200, json={"file": self.files[name]})
        if route == "delete":
            name = request.url.path.removeprefix("/v1beta/")
            if self.files.pop(name, None) is None:
                return _error(404, f"File {name} not found", status="NOT_FOUND")
            return httpx.Response(200, json={})
        if route == "generate":
            self.generate_payloads.append(json.loads(request.content))
            return httpx.Response(
                200, json={"candidates": [{"content": {"parts": [{"text": "OK"}]}}]}
            )
        self.stream_payloads.append(json.loads(request.content))
        return _sse_response((None, chunk) for chunk in self.chunks)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        ingestion_poll_interval=0.01,
        ingestion_poll_max_interval=0.01,
        ingestion_max_attempts=5,
    )


@pytest.fixture
def fake_openai() -> FakeOpenAI:
    return FakeOpenAI()


@pytest.fixture
def fake_gemini() -> FakeGemini:
    return FakeGemini()


@pytest.fixture
def vendor_http(fake_openai: FakeOpenAI, fake_gemini: FakeGemini) -> httpx.AsyncClient:
    """One client routing OpenAI and Gemini hosts to their fakes."""

    def handle(request: httpx.Request) -> httpx.Response:
        if request.url.host == "api.openai.com":
            return fake_openai.handle(request)
        return fake_gemini.handle(request)

    return httpx.AsyncClient(transport=httpx.MockTransport(handle))


@pytest.fixture
def dispatcher(settings: Settings, vendor_http: httpx.AsyncClient):
    from rag_gateway.chat import ChatDispatcher
    from rag_gateway.knowledge.resources import ResourceRegistry

    return ChatDispatcher(settings, registry=ResourceRegistry(), http_client=vendor_http)


@pytest.fixture
def api_client(monkeypatch, dispatcher) -> Generator[TestClient, None, None]:
    """Test client whose dispatcher talks to the in-memory vendors."""
    from rag_gateway.app import create_app
    from rag_gateway.config import get_settings
    from rag_gateway.routers.chat import get_dispatcher

    monkeypatch.delenv("LOG_FILE", raising=False)
    get_settings.cache_clear()
    app = create_app()
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher

    with TestClient(app) as client:
        yield client

    get_settings.cache_clear()
