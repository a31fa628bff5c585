"""Pydantic v2 schemas for client-side generation state and results."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from rulecraft.schemas.events import (
    ClarifyPayload,
    DonePayload,
    ErrorPayload,
    MetaPayload,
    RuleMetadata,
    RuleType,
)


class SessionPhase(str, Enum):
    """Externally observed phase of a generation session."""

    IDLE = "idle"
    RULE_GENERATION = "rule-generation"
    FOLLOW_UP = "follow-up-message"
    COMPLETED = "completed"


class SessionState(BaseModel):
    """Snapshot of a phased rule generation.

    Only the reducer produces new snapshots; nothing mutates one in place.
    """

    model_config = ConfigDict(frozen=True)

    phase: SessionPhase = SessionPhase.IDLE
    is_generating: bool = False
    is_streaming_rule: bool = False
    is_streaming_follow_up: bool = False
    rule_content: str = ""
    follow_up_content: str = ""
    error: str | None = None
    metadata: RuleMetadata | None = None


IDLE_STATE = SessionState()


class RuleDraftState(BaseModel):
    """Snapshot of a rule being assembled from chat-embedded events."""

    model_config = ConfigDict(frozen=True)

    is_generating_rules: bool = False
    rule_content: str = ""
    meta: MetaPayload | None = None
    done: DonePayload | None = None
    clarification: ClarifyPayload | None = None
    error: ErrorPayload | None = None
    # Messages whose whole text decoded to events; the UI hides them
    event_only_message_ids: frozenset[str] = frozenset()


EMPTY_DRAFT = RuleDraftState()


class GenerationMetadata(BaseModel):
    """Provenance attached to a finished generation."""

    generated_at: int  # Unix epoch milliseconds
    model: str
    provider: str


class RuleGenerationResult(BaseModel):
    """Resolved value of a successful phased generation."""

    rule_content: str
    follow_up_message: str
    rule_type: RuleType = RuleType.PROJECT_RULE
    file_name: str = "generated-rule"
    metadata: GenerationMetadata


class IntentResult(BaseModel):
    """Outcome of classifying a user message into a rule type."""

    rule_type: RuleType
    confidence: float = Field(ge=0.0, le=1.0)
    matched_keywords: list[str] = Field(default_factory=list)
