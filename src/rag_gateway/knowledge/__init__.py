"""Vendor-side document stores and the OpenAI resource lifecycle."""

from .resources import (
    AssistantResources,
    PollPolicy,
    ResourcePair,
    ResourceRegistry,
    VectorStoreFileRecord,
)

__all__ = [
    "AssistantResources",
    "PollPolicy",
    "ResourcePair",
    "ResourceRegistry",
    "VectorStoreFileRecord",
]
