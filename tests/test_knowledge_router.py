"""Tests for the knowledge base upload, listing and removal endpoints."""

import asyncio

import httpx
import pytest
from fastapi.testclient import TestClient

from rag_gateway.errors import IngestionFailed
from rag_gateway.routers.knowledge import run_uploads
from rag_gateway.schemas.knowledge import UploadedFile


def _headers(provider: str, key: str = "k", **handles: str) -> dict[str, str]:
    headers = {"x-api-key": key, "x-provider": provider}
    for name, value in handles.items():
        headers[f"x-{name.replace('_', '-')}"] = value
    return headers


def test_gemini_upload(api_client: TestClient, fake_gemini) -> None:
    response = api_client.post(
        "/api/upload",
        headers=_headers("gemini"),
        files=[("files", ("notes.txt", b"hello", "text/plain"))],
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["provider"] == "gemini"
    assert payload["uploaded"][0]["name"] == "notes.txt"
    assert payload["uploaded"][0]["mimeType"] == "text/plain"
    assert payload["uploaded"][0]["status"] == "PROCESSING"
    assert payload["uploaded"][0]["id"] in fake_gemini.files


def test_openai_upload_creates_resources_once(api_client: TestClient, fake_openai) -> None:
    first = api_client.post(
        "/api/upload",
        headers=_headers("openai"),
        files=[
            ("files", ("a.txt", b"alpha", "text/plain")),
            ("files", ("b.txt", b"beta", "text/plain")),
        ],
    ).json()
    second = api_client.post(
        "/api/upload",
        headers=_headers(
            "openai",
            assistant_id=first["assistantId"],
            vector_store_id=first["vectorStoreId"],
        ),
        files=[("files", ("c.txt", b"gamma", "text/plain"))],
    ).json()

    assert [item["status"] for item in first["uploaded"]] == ["completed", "completed"]
    assert second["assistantId"] == first["assistantId"]
    assert second["vectorStoreId"] == first["vectorStoreId"]
    assert fake_openai.count("POST", "assistants") == 1
    assert len(fake_openai.vector_stores[first["vectorStoreId"]]) == 3


def test_openai_upload_reports_ingestion_failure(api_client: TestClient, fake_openai) -> None:
    fake_openai.ingest_statuses = ["failed"]

    response = api_client.post(
        "/api/upload",
        headers=_headers("openai"),
        files=[("files", ("bad.bin", b"\x00", "application/octet-stream"))],
    )

    assert response.status_code == 502
    assert response.json() == {"error": "File processing failed: failed (unsupported file)"}


def test_upload_without_files(api_client: TestClient) -> None:
    response = api_client.post("/api/upload", headers=_headers("gemini"), data={"note": "x"})

    assert response.status_code == 400
    assert response.json() == {"error": "No files provided"}


def test_upload_without_key(api_client: TestClient) -> None:
    response = api_client.post(
        "/api/upload",
        headers={"x-provider": "openai"},
        files=[("files", ("a.txt", b"alpha", "text/plain"))],
    )

    assert response.status_code == 400
    assert response.json() == {
        "error": "No OpenAI API key configured. Please add one in Settings."
    }


def test_list_gemini_files(api_client: TestClient, fake_gemini) -> None:
    name = fake_gemini.add_file("handbook.pdf", mime_type="application/pdf")

    response = api_client.get("/api/files", headers=_headers("gemini"))

    assert response.status_code == 200
    files = response.json()["files"]
    assert files == [
        {
            "id": name,
            "uri": fake_gemini.files[name]["uri"],
            "name": "handbook.pdf",
            "mimeType": "application/pdf",
            "createTime": "2024-01-01T00:00:00Z",
            "expirationTime": "2024-01-03T00:00:00Z",
            "state": "ACTIVE",
            "provider": "gemini",
        }
    ]


def test_list_openai_without_store(api_client: TestClient) -> None:
    response = api_client.get("/api/files", headers=_headers("openai"))

    assert response.json() == {
        "files": [],
        "provider": "openai",
        "message": "No vector store created yet. Upload a file to create one.",
    }


def test_list_openai_unknown_store(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/files", headers=_headers("openai", vector_store_id="vs_gone")
    )

    assert response.status_code == 200
    assert response.json()["message"] == "Vector store not found. Upload a file to create one."


def test_list_openai_files(api_client: TestClient, fake_openai) -> None:
    file_id = fake_openai.add_file("vs_1", "guide.md")

    response = api_client.get("/api/files", headers=_headers("openai", vector_store_id="vs_1"))

    [item] = response.json()["files"]
    assert item["id"] == file_id
    assert item["name"] == "guide.md"
    assert item["state"] == "ACTIVE"
    assert item["createTime"] == "2023-11-14T22:13:20Z"


def test_delete_gemini_file(api_client: TestClient, fake_gemini) -> None:
    name = fake_gemini.add_file("old.txt")

    response = api_client.delete(f"/api/files/{name}", headers=_headers("gemini"))

    assert response.status_code == 204
    assert name not in fake_gemini.files


def test_delete_missing_gemini_file(api_client: TestClient, fake_gemini) -> None:
    response = api_client.delete("/api/files/files/nope", headers=_headers("gemini"))

    assert response.status_code == 404
    assert response.json() == {"error": "File files/nope not found"}


def test_delete_openai_file(api_client: TestClient, fake_openai) -> None:
    file_id = fake_openai.add_file("vs_1", "old.txt")

    response = api_client.delete(
        f"/api/files/{file_id}", headers=_headers("openai", vector_store_id="vs_1")
    )

    assert response.status_code == 204
    assert file_id not in fake_openai.files
    assert file_id not in fake_openai.vector_stores["vs_1"]


def test_delete_openai_requires_store(api_client: TestClient) -> None:
    response = api_client.delete("/api/files/file_1", headers=_headers("openai"))

    assert response.status_code == 400
    assert response.json() == {"error": "x-vector-store-id header required"}


def test_resources_endpoint_heals_stale_handles(api_client: TestClient, fake_openai) -> None:
    response = api_client.post(
        "/api/resources",
        headers={"x-api-key": "sk"},
        json={"assistantId": "asst_gone", "vectorStoreId": "vs_gone"},
    )

    handles = response.json()
    assert response.status_code == 200
    assert handles["assistantId"] in fake_openai.assistants
    assert handles["vectorStoreId"] in fake_openai.vector_stores


def test_vendor_outage_is_reported(api_client: TestClient, fake_gemini) -> None:
    fake_gemini.failures["list"] = httpx.Response(503, json={"error": {"message": "Overloaded"}})

    response = api_client.get("/api/files", headers=_headers("gemini"))

    assert response.status_code == 503
    assert response.json() == {"error": "Overloaded"}


@pytest.mark.asyncio
async def test_failed_upload_cancels_its_siblings() -> None:
    cancelled = asyncio.Event()

    async def slow() -> UploadedFile:
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return UploadedFile(id="never", name="slow.txt", status="completed")

    async def broken() -> UploadedFile:
        await asyncio.sleep(0)
        raise IngestionFailed("failed", "unsupported file")

    with pytest.raises(IngestionFailed, match="unsupported file"):
        await run_uploads([slow(), broken()])

    assert cancelled.is_set()
