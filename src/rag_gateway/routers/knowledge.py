"""Routes for uploading, listing and removing grounding documents."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Response, UploadFile

from ..chat import ChatDispatcher, resolve_provider
from ..errors import MissingCredential, ResourceNotFound
from ..knowledge.catalog import from_gemini_file, from_vector_store_file
from ..knowledge.resources import AssistantResources
from ..schemas.knowledge import (
    FileListResponse,
    ResourceHandles,
    UploadedFile,
    UploadResponse,
)
from ..vendors.gemini import GeminiClient
from .chat import get_dispatcher

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["knowledge"])

_DEFAULT_MIME_TYPE = "application/octet-stream"


def _require_key(api_key: Optional[str], provider: str) -> str:
    if not api_key:
        raise MissingCredential(provider)
    return api_key


async def run_uploads(
    jobs: list[Coroutine[Any, Any, UploadedFile]],
) -> list[UploadedFile]:
    """Run uploads concurrently; the first failure cancels the rest and is raised."""

    try:
        async with asyncio.TaskGroup() as group:
            tasks = [group.create_task(job) for job in jobs]
    except ExceptionGroup as failures:
        raise failures.exceptions[0]
    return [task.result() for task in tasks]


@router.post("/upload", response_model=UploadResponse)
async def upload_documents(
    files: Optional[list[UploadFile]] = File(default=None),
    x_api_key: Optional[str] = Header(default=None),
    x_provider: Optional[str] = Header(default=None),
    x_assistant_id: Optional[str] = Header(default=None),
    x_vector_store_id: Optional[str] = Header(default=None),
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
) -> UploadResponse:
    provider = resolve_provider(x_provider)
    api_key = _require_key(x_api_key, provider)
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    if provider == "openai":
        resources = dispatcher.resources(api_key)
        pair = await resources.ensure(x_assistant_id, x_vector_store_id)
        uploaded = await run_uploads(
            [_ingest(resources, pair.vector_store_id, upload) for upload in files]
        )
        return UploadResponse(
            uploaded=uploaded,
            provider=provider,
            assistant_id=pair.assistant_id,
            vector_store_id=pair.vector_store_id,
        )

    client = dispatcher.gemini_client(api_key)
    uploaded = await run_uploads([_upload_gemini(client, upload) for upload in files])
    return UploadResponse(uploaded=uploaded, provider=provider)


async def _ingest(
    resources: AssistantResources, vector_store_id: str, upload: UploadFile
) -> UploadedFile:
    name = upload.filename or "upload"
    data = await upload.read()
    file_id = await resources.ingest(
        vector_store_id, data, name, upload.content_type or _DEFAULT_MIME_TYPE
    )
    return UploadedFile(id=file_id, name=name, status="completed")


async def _upload_gemini(client: GeminiClient, upload: UploadFile) -> UploadedFile:
    name = upload.filename or "upload"
    mime_type = upload.content_type or _DEFAULT_MIME_TYPE
    data = await upload.read()
    stored = await client.upload_file(data, display_name=name, mime_type=mime_type)
    return UploadedFile(
        id=stored.get("name", ""),
        name=stored.get("displayName") or name,
        status=stored.get("state", "PROCESSING"),
        mime_type=stored.get("mimeType") or mime_type,
        uri=stored.get("uri"),
    )


@router.get("/files", response_model=FileListResponse, response_model_exclude_none=True)
async def list_documents(
    x_api_key: Optional[str] = Header(default=None),
    x_provider: Optional[str] = Header(default=None),
    x_vector_store_id: Optional[str] = Header(default=None),
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
) -> FileListResponse:
    provider = resolve_provider(x_provider)
    api_key = _require_key(x_api_key, provider)

    if provider == "openai":
        if not x_vector_store_id:
            return FileListResponse(
                files=[],
                provider=provider,
                message="No vector store created yet. Upload a file to create one.",
            )
        try:
            records = await dispatcher.resources(api_key).list_files(x_vector_store_id)
        except ResourceNotFound:
            return FileListResponse(
                files=[],
                provider=provider,
                message="Vector store not found. Upload a file to create one.",
            )
        return FileListResponse(
            files=[from_vector_store_file(record) for record in records],
            provider=provider,
        )

    files = await dispatcher.gemini_client(api_key).list_files()
    return FileListResponse(
        files=[from_gemini_file(item) for item in files], provider=provider
    )


@router.delete("/files/{file_id:path}", status_code=204)
async def delete_document(
    file_id: str,
    x_api_key: Optional[str] = Header(default=None),
    x_provider: Optional[str] = Header(default=None),
    x_vector_store_id: Optional[str] = Header(default=None),
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
) -> Response:
    provider = resolve_provider(x_provider)
    api_key = _require_key(x_api_key, provider)

    if provider == "openai":
        if not x_vector_store_id:
            raise HTTPException(status_code=400, detail="x-vector-store-id header required")
        await dispatcher.resources(api_key).remove(x_vector_store_id, file_id)
    else:
        await dispatcher.gemini_client(api_key).delete_file(file_id)
    logger.info("Removed %s document %s", provider, file_id)
    return Response(status_code=204)


@router.post("/resources", response_model=ResourceHandles)
async def ensure_resources(
    handles: ResourceHandles,
    x_api_key: Optional[str] = Header(default=None),
    dispatcher: ChatDispatcher = Depends(get_dispatcher),
) -> ResourceHandles:
    """Get or create the OpenAI assistant and vector store pair."""

    api_key = _require_key(x_api_key, "openai")
    pair = await dispatcher.resources(api_key).ensure(
        handles.assistant_id, handles.vector_store_id
    )
    return ResourceHandles(
        assistant_id=pair.assistant_id, vector_store_id=pair.vector_store_id
    )


__all__ = ["router"]
