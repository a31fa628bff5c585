"""Pydantic schemas package."""

from rulecraft.schemas.chat import (  # noqa: F401
    ChatMessage,
    ChatRequest,
    GenerationOptions,
    MessagePart,
    ModelsResponse,
    RuleGenerationRequest,
)
from rulecraft.schemas.events import (  # noqa: F401
    ErrorEvent,
    FollowUpContentEvent,
    GenerationPhase,
    PhaseEndEvent,
    PhaseStartEvent,
    RuleContentEvent,
    RuleMetadata,
    RuleType,
    StreamEvent,
    WireEvent,
)
from rulecraft.schemas.session import (  # noqa: F401
    IntentResult,
    RuleDraftState,
    RuleGenerationResult,
    SessionPhase,
    SessionState,
)
