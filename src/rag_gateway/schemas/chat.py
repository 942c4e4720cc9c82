"""Pydantic models for chat requests and responses."""

from __future__ import annotations

from typing import List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ChatMessage(BaseModel):
    """A single conversation turn.

    Messages are frozen: the in-flight assistant message is replaced with a
    new instance on every streamed fragment instead of being edited.
    """

    id: str = Field(default_factory=lambda: uuid4().hex)
    role: Literal["user", "assistant"]
    content: str

    model_config = ConfigDict(frozen=True)


class ChatRequest(BaseModel):
    """Incoming chat turn: full history plus provider routing details."""

    messages: List[ChatMessage] = Field(min_length=1)
    provider: Optional[str] = None
    model: Optional[str] = None
    api_key: str = Field(default="", alias="apiKey")
    assistant_id: Optional[str] = Field(default=None, alias="assistantId")
    thread_id: Optional[str] = Field(default=None, alias="threadId")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def _ends_with_user_turn(self) -> "ChatRequest":
        if self.messages[-1].role != "user":
            raise ValueError("the last message must come from the user")
        return self

    @property
    def latest_message(self) -> ChatMessage:
        return self.messages[-1]

    @property
    def prior_messages(self) -> List[ChatMessage]:
        return self.messages[:-1]


__all__ = ["ChatMessage", "ChatRequest"]
