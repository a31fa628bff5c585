"""Pydantic v2 schemas for AI chat and rule generation endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rulecraft.schemas.events import RuleType


class _RequestModel(BaseModel):
    """Accept both camelCase (browser clients) and snake_case field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Chat Messages
# ---------------------------------------------------------------------------


class MessagePart(BaseModel):
    """One part of a chat message.

    Text parts carry a ``state`` while they are still arriving
    (``streaming``) and once they are complete (``done``). Other part types
    (tool calls, files, step markers) are kept as-is.
    """

    model_config = ConfigDict(extra="allow")

    type: str
    text: str | None = None
    state: Literal["streaming", "done"] | None = None


class ChatMessage(BaseModel):
    """A chat message made of ordered parts."""

    model_config = ConfigDict(extra="allow")

    id: str
    role: Literal["system", "user", "assistant"]
    parts: list[MessagePart] = Field(default_factory=list)
    # Older clients send a flat content string instead of parts
    content: str | None = None

    def text(self) -> str:
        """Concatenate every text part (falls back to ``content``)."""
        texts = [p.text for p in self.parts if p.type == "text" and p.text]
        if texts:
            return "".join(texts)
        return self.content or ""


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------


class GenerationOptions(_RequestModel):
    """Model selection and sampling options passed through to the backend."""

    model: str | None = None
    provider: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, gt=0)


class ChatRequest(GenerationOptions):
    """Body for POST /api/ai/chat in object form.

    Either ``messages`` or a single ``message`` must be present. A bare JSON
    array of messages is also accepted by the route.
    """

    id: str | None = None
    messages: list[ChatMessage] | None = None
    message: Any = None


class RuleGenerationRequest(GenerationOptions):
    """Body for POST /api/ai/generate-rules."""

    message: str = Field(..., min_length=1, max_length=10000)
    rule_type: RuleType | None = None
    file_name: str | None = None
    mentioned_files: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class ModelsResponse(BaseModel):
    """Available models for a provider."""

    provider: str
    default_model: str
    models: list[str]
