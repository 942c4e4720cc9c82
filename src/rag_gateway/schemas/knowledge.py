"""Pydantic models for knowledge base and key validation endpoints."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class KnowledgeFile(BaseModel):
    """One document as shown to the caller, regardless of provider."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    uri: str
    name: str
    mime_type: str = Field(alias="mimeType")
    create_time: Optional[str] = Field(default=None, alias="createTime")
    expiration_time: Optional[str] = Field(default=None, alias="expirationTime")
    state: str
    provider: str


class FileListResponse(BaseModel):
    files: List[KnowledgeFile]
    provider: str
    message: Optional[str] = None


class UploadedFile(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    status: str
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    uri: Optional[str] = None


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uploaded: List[UploadedFile]
    provider: str
    assistant_id: Optional[str] = Field(default=None, alias="assistantId")
    vector_store_id: Optional[str] = Field(default=None, alias="vectorStoreId")


class ResourceHandles(BaseModel):
    """Assistant/vector store pair as exchanged with the caller."""

    model_config = ConfigDict(populate_by_name=True)

    assistant_id: Optional[str] = Field(default=None, alias="assistantId")
    vector_store_id: Optional[str] = Field(default=None, alias="vectorStoreId")


class KeyValidationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(default="", alias="apiKey")
    provider: str = "gemini"


class KeyValidationResponse(BaseModel):
    valid: bool
    warning: Optional[str] = None


__all__ = [
    "FileListResponse",
    "KeyValidationRequest",
    "KeyValidationResponse",
    "KnowledgeFile",
    "ResourceHandles",
    "UploadResponse",
    "UploadedFile",
]
