"""Pydantic v2 schemas for the two streaming event protocols.

Phase protocol (``type`` discriminant), produced by ``/api/ai/generate-rules``:
- phase-start: a phase begins (rule-generation or follow-up-message)
- rule-content / follow-up-content: an increment of text for the open phase
- phase-end: the phase settles, optionally carrying the final content
- error: generation failed, nothing follows

Wire protocol (``event`` discriminant), emitted by the model inside chat text:
- meta, chunk, done, clarify, error: payload shape fixed per event
- progress, file: reserved, payload is not validated
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


class RuleType(str, Enum):
    """Kind of cursor rule being generated."""

    PROJECT_RULE = "PROJECT_RULE"
    COMMAND = "COMMAND"
    USER_RULE = "USER_RULE"


class GenerationPhase(str, Enum):
    """Named stage of generation with its own start/content/end triple."""

    RULE_GENERATION = "rule-generation"
    FOLLOW_UP = "follow-up-message"


# ---------------------------------------------------------------------------
# Phase Protocol
# ---------------------------------------------------------------------------


class _PhaseModel(BaseModel):
    """Base for phase protocol models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_sse(self) -> str:
        """Encode as a single ``data:`` SSE frame."""
        return f"data: {self.model_dump_json(by_alias=True, exclude_none=True)}\n\n"


class RuleMetadata(_PhaseModel):
    """Rule type and target file name announced when rule generation starts."""

    rule_type: RuleType = RuleType.PROJECT_RULE
    file_name: str | None = None


class PhaseStartEvent(_PhaseModel):
    type: Literal["phase-start"] = "phase-start"
    phase: GenerationPhase
    metadata: RuleMetadata | None = None


class RuleContentEvent(_PhaseModel):
    type: Literal["rule-content"] = "rule-content"
    content: str


class FollowUpContentEvent(_PhaseModel):
    type: Literal["follow-up-content"] = "follow-up-content"
    content: str


class PhaseEndEvent(_PhaseModel):
    type: Literal["phase-end"] = "phase-end"
    phase: GenerationPhase
    final_content: str | None = None


class ErrorEvent(_PhaseModel):
    type: Literal["error"] = "error"
    error_text: str = "Unknown error occurred"


StreamEvent = Annotated[
    Union[
        PhaseStartEvent,
        RuleContentEvent,
        FollowUpContentEvent,
        PhaseEndEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


# ---------------------------------------------------------------------------
# Wire Protocol
# ---------------------------------------------------------------------------


class WireEventName(str, Enum):
    """Fixed vocabulary of chat-embedded events."""

    META = "meta"
    CHUNK = "chunk"
    DONE = "done"
    CLARIFY = "clarify"
    ERROR = "error"
    PROGRESS = "progress"
    FILE = "file"


class MetaPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    rule_type: RuleType
    tech_stack: list[str]
    filename: str
    schema_version: str


class ChunkPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    content: str


class DonePayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    filename: str
    sha256: str  # Hash of the final rule content
    created_by: str
    version: str


class ClarifyPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    required_fields: list[str]


class ErrorPayload(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    code: str


class OpenPayload(BaseModel):
    """Reserved payload: any keys are kept, none are required."""

    model_config = ConfigDict(extra="allow", frozen=True)


class MetaEvent(BaseModel):
    event: Literal["meta"] = "meta"
    payload: MetaPayload


class ChunkEvent(BaseModel):
    event: Literal["chunk"] = "chunk"
    payload: ChunkPayload


class DoneEvent(BaseModel):
    event: Literal["done"] = "done"
    payload: DonePayload


class ClarifyEvent(BaseModel):
    event: Literal["clarify"] = "clarify"
    payload: ClarifyPayload


class WireErrorEvent(BaseModel):
    event: Literal["error"] = "error"
    payload: ErrorPayload


class ProgressEvent(BaseModel):
    event: Literal["progress"] = "progress"
    payload: OpenPayload = Field(default_factory=OpenPayload)


class FileEvent(BaseModel):
    event: Literal["file"] = "file"
    payload: OpenPayload = Field(default_factory=OpenPayload)


WireEvent = Annotated[
    Union[
        MetaEvent,
        ChunkEvent,
        DoneEvent,
        ClarifyEvent,
        WireErrorEvent,
        ProgressEvent,
        FileEvent,
    ],
    Field(discriminator="event"),
]

wire_event_adapter: TypeAdapter[WireEvent] = TypeAdapter(WireEvent)


def is_terminal(event: BaseModel) -> bool:
    """Return True for events that end a phase or the whole turn."""
    return isinstance(
        event,
        (PhaseEndEvent, ErrorEvent, DoneEvent, WireErrorEvent, ClarifyEvent),
    )
