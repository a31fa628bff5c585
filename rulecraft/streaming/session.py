"""Client-side orchestration of a rule generation session.

RuleGenerationSession owns the observed state for one logical session and
drives the pipeline:

    response body -> ChunkDecoder -> EventLineParser -> observer -> reducer

for phased generation (``generate_rule``), and

    chat message -> MessageCompletionGate -> DedupGuard -> EventLineParser
    -> observer -> reducer

for events embedded in chat replies (``consume_message``).

Only one generation should run per session at a time; callers serialize
them. There is no built-in timeout: wrap ``generate_rule`` in
``asyncio.wait_for`` to bound it. A cancelled generation keeps whatever it
accumulated until ``reset`` is called.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from typing import Any, Protocol

import httpx

from rulecraft.core.config import settings
from rulecraft.core.models_config import DEFAULT_PROVIDER, get_default_model
from rulecraft.exceptions import (
    StreamEndedUnexpectedlyError,
    StreamErrorEventError,
    TransportError,
)
from rulecraft.schemas.chat import ChatMessage, RuleGenerationRequest
from rulecraft.schemas.events import (
    ErrorEvent,
    GenerationPhase,
    PhaseEndEvent,
    RuleMetadata,
    RuleType,
    StreamEvent,
    WireEvent,
)
from rulecraft.schemas.session import (
    EMPTY_DRAFT,
    IDLE_STATE,
    GenerationMetadata,
    IntentResult,
    RuleDraftState,
    RuleGenerationResult,
    SessionPhase,
    SessionState,
)
from rulecraft.services.intent import detect_intent
from rulecraft.streaming.decoder import ChunkDecoder, TrailingLinePolicy, iter_lines
from rulecraft.streaming.gate import DedupGuard, MessageCompletionGate
from rulecraft.streaming.parser import (
    EventLineParser,
    phase_event_parser,
    wire_event_parser,
)
from rulecraft.streaming.reducer import apply_event, apply_wire_event

logger = logging.getLogger(__name__)

GENERATE_RULES_PATH = "/api/ai/generate-rules"

EventCallback = Callable[[Any], None]


class StreamTracer(Protocol):
    """Observer for raw stream activity, independent of accumulated state."""

    def on_event(self, event: Any) -> None: ...

    def on_discard(self, line: str) -> None: ...


class NullTracer:
    def on_event(self, event: Any) -> None:
        pass

    def on_discard(self, line: str) -> None:
        pass


class LoggingTracer:
    """Tracer that writes every event and discarded line to a logger."""

    def __init__(self, log: logging.Logger | None = None, level: int = logging.DEBUG):
        self._log = log or logger
        self._level = level

    def on_event(self, event: Any) -> None:
        self._log.log(self._level, "EVENT %s", event.model_dump(exclude_none=True))

    def on_discard(self, line: str) -> None:
        self._log.log(self._level, "DISCARDED line: %s", repr(line[:200]))


class RuleGenerationSession:
    """Observed state for one rule generation session.

    Args:
        client: HTTP client used to open the generation stream. Its base URL
            should point at the rulecraft service.
        endpoint: Path of the phased generation endpoint.
        tracer: Observer for raw events and discarded lines (no-op default).
        trailing_line_policy: Handling of an unterminated last line.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str = GENERATE_RULES_PATH,
        tracer: StreamTracer | None = None,
        trailing_line_policy: TrailingLinePolicy | str | None = None,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self.tracer: StreamTracer = tracer or NullTracer()
        self._trailing_line_policy = TrailingLinePolicy(
            trailing_line_policy or settings.stream_trailing_line_policy
        )
        self._gate = MessageCompletionGate()
        self._guard = DedupGuard()
        self.state: SessionState = IDLE_STATE
        self.draft: RuleDraftState = EMPTY_DRAFT

    # ------------------------------------------------------------------
    # Phased generation
    # ------------------------------------------------------------------

    def _route_line(
        self,
        line: str,
        parser: EventLineParser,
        on_event: EventCallback | None,
    ) -> StreamEvent | None:
        """Parse one line and apply its event, if any."""
        event = parser.parse(line)
        if event is None:
            if line.strip():
                self.tracer.on_discard(line)
            return None

        self.tracer.on_event(event)
        if on_event is not None:
            on_event(event)
        self.state = apply_event(self.state, event)
        return event

    async def _read_body(self, response: httpx.Response) -> AsyncIterator[bytes]:
        received = 0
        async for chunk in response.aiter_bytes():
            received += len(chunk)
            yield chunk
        if received == 0:
            raise TransportError("Response body is empty", response.status_code)

    async def generate_rule(
        self,
        request: RuleGenerationRequest,
        on_event: EventCallback | None = None,
    ) -> RuleGenerationResult:
        """Stream a phased generation and resolve with its final content.

        Raises:
            TransportError: Non-2xx status, empty body or connection failure.
            StreamErrorEventError: The server sent an ``error`` event.
            StreamEndedUnexpectedlyError: No terminal event before stream end.
        """
        self.state = IDLE_STATE.model_copy(
            update={"is_generating": True, "phase": SessionPhase.RULE_GENERATION}
        )
        completed = False

        try:
            async with self._client.stream(
                "POST",
                self._endpoint,
                json=request.model_dump(mode="json", exclude_none=True),
            ) as response:
                if not response.is_success:
                    raise TransportError(
                        f"HTTP {response.status_code}: {response.reason_phrase}",
                        response.status_code,
                    )

                decoder = ChunkDecoder(self._trailing_line_policy)
                lines = iter_lines(self._read_body(response), decoder)
                async with aclosing(lines):
                    async for line in lines:
                        event = self._route_line(line, phase_event_parser, on_event)
                        if isinstance(event, ErrorEvent):
                            raise StreamErrorEventError(event.error_text)
                        if (
                            isinstance(event, PhaseEndEvent)
                            and event.phase == GenerationPhase.FOLLOW_UP
                        ):
                            completed = True
                            break

            if not completed:
                raise StreamEndedUnexpectedlyError()

        except StreamErrorEventError:
            # State already reflects the error event
            logger.warning("Rule generation failed in-stream: %s", self.state.error)
            raise
        except httpx.RequestError as e:
            self._fail(f"Network error: {e}")
            raise TransportError(f"Network error: {e}") from e
        except Exception as e:
            self._fail(str(e) or type(e).__name__)
            raise

        return self._build_result(request)

    def _fail(self, message: str) -> None:
        logger.warning("Rule generation failed: %s", message)
        self.state = self.state.model_copy(
            update={
                "error": message,
                "is_generating": False,
                "is_streaming_rule": False,
                "is_streaming_follow_up": False,
                "phase": SessionPhase.IDLE,
            }
        )

    def _build_result(self, request: RuleGenerationRequest) -> RuleGenerationResult:
        metadata = self.state.metadata
        provider = request.provider or DEFAULT_PROVIDER.value
        return RuleGenerationResult(
            rule_content=self.state.rule_content,
            follow_up_message=self.state.follow_up_content,
            rule_type=metadata.rule_type if metadata else RuleType.PROJECT_RULE,
            file_name=(metadata.file_name if metadata else None) or "generated-rule",
            metadata=GenerationMetadata(
                generated_at=int(time.time() * 1000),
                model=request.model or get_default_model(provider),
                provider=provider,
            ),
        )

    # ------------------------------------------------------------------
    # Chat-embedded events
    # ------------------------------------------------------------------

    def consume_message(
        self,
        message: ChatMessage,
        on_event: EventCallback | None = None,
    ) -> list[WireEvent]:
        """Apply the events carried by a chat message, once it is settled.

        Safe to call on every re-delivery of the same message: nothing
        happens until all text parts are done, and a message is applied at
        most once per session.
        """
        if message.role != "assistant":
            return []
        if not self._gate.is_settled(message):
            return []
        if not self._guard.should_process(message.id):
            return []

        texts = [p.text for p in message.parts if p.type == "text" and p.text]
        if not texts and message.content:
            texts = [message.content]

        events: list[WireEvent] = []
        for text in texts:
            events.extend(wire_event_parser.parse_text(text))

        for event in events:
            self.tracer.on_event(event)
            if on_event is not None:
                on_event(event)
            self.draft = apply_wire_event(self.draft, event)

        if events:
            self.draft = self.draft.model_copy(
                update={
                    "event_only_message_ids": self.draft.event_only_message_ids
                    | {message.id}
                }
            )
        logger.debug(
            "Processed message %s: %d event(s)", message.id, len(events)
        )
        return events

    def is_event_only(self, message_id: str) -> bool:
        """True when a processed message decoded to events (hide it from chat)."""
        return message_id in self.draft.event_only_message_ids

    # ------------------------------------------------------------------
    # Direct state updates
    # ------------------------------------------------------------------

    def set_rule_content(
        self,
        content: str,
        rule_type: RuleType = RuleType.PROJECT_RULE,
        file_name: str | None = None,
    ) -> None:
        """Install a rule produced outside the stream (e.g. by an agent)."""
        self.state = self.state.model_copy(
            update={
                "rule_content": content,
                "phase": SessionPhase.COMPLETED,
                "metadata": RuleMetadata(
                    rule_type=rule_type,
                    file_name=file_name or "agent-generated-rule",
                ),
            }
        )

    @staticmethod
    def detect_intent(message: str) -> IntentResult:
        return detect_intent(message)

    def reset(self) -> None:
        """Return to idle and forget processed messages."""
        self.state = IDLE_STATE
        self.draft = EMPTY_DRAFT
        self._guard.reset()
