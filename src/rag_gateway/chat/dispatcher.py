"""Route a chat request to the adapter for its provider."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import httpx

from ..config import Settings
from ..errors import MissingCredential
from ..knowledge.resources import AssistantResources, PollPolicy, ResourceRegistry
from ..schemas.chat import ChatRequest
from ..vendors.gemini import GeminiClient
from ..vendors.openai import OpenAIClient
from .assistants import AssistantRunAdapter
from .base import ChatAdapter, FrameProducer
from .completions import CompletionAdapter
from .gemini import GeminiChatAdapter

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "gemini"


def resolve_provider(tag: Optional[str]) -> str:
    """Normalise a provider tag, falling back to Gemini for unknown values."""

    normalized = (tag or "").strip().lower()
    return normalized if normalized in _ADAPTERS else DEFAULT_PROVIDER


class ChatDispatcher:
    """Build vendor clients for a credential and pick the matching adapter.

    Vendor clients are created per request from the request's credential;
    the dispatcher itself only holds configuration, the resource registry
    and an optional shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        registry: Optional[ResourceRegistry] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._registry = registry or ResourceRegistry()
        self._http_client = http_client

    @property
    def settings(self) -> Settings:
        return self._settings

    def gemini_client(self, api_key: str) -> GeminiClient:
        return GeminiClient(api_key, self._settings, http_client=self._http_client)

    def openai_client(self, api_key: str) -> OpenAIClient:
        return OpenAIClient(api_key, self._settings, http_client=self._http_client)

    def resources(self, api_key: str) -> AssistantResources:
        return AssistantResources(
            self.openai_client(api_key),
            registry=self._registry,
            assistant_model=self._settings.openai_assistant_model,
            poll_policy=PollPolicy.from_settings(self._settings),
        )

    def select(self, request: ChatRequest) -> ChatAdapter:
        provider = resolve_provider(request.provider)
        if not request.api_key:
            raise MissingCredential(provider)
        model = request.model or self._settings.default_model_for(provider)
        adapter = _ADAPTERS[provider](self, request, model)
        logger.info("Provider: %s, model: %s, adapter: %s", provider, model, adapter.name)
        return adapter

    def open(self, request: ChatRequest) -> FrameProducer:
        return self.select(request).open(request)


def _gemini_adapter(
    dispatcher: ChatDispatcher, request: ChatRequest, model: str
) -> ChatAdapter:
    return GeminiChatAdapter(dispatcher.gemini_client(request.api_key), model)


def _openai_adapter(
    dispatcher: ChatDispatcher, request: ChatRequest, model: str
) -> ChatAdapter:
    client = dispatcher.openai_client(request.api_key)
    if not request.assistant_id:
        return CompletionAdapter(client, model)
    return AssistantRunAdapter(client, dispatcher.resources(request.api_key), model)


_ADAPTERS: dict[str, Callable[[ChatDispatcher, ChatRequest, str], ChatAdapter]] = {
    "gemini": _gemini_adapter,
    "openai": _openai_adapter,
}


__all__ = ["ChatDispatcher", "DEFAULT_PROVIDER", "resolve_provider"]
