"""Business logic for AI chat and phased rule generation.

Two streaming flows:
- Chat: the model is prompted to answer with JSON event lines (meta, chunk,
  done, clarify, error). Its text is passed through unchanged; clients decode
  the events once a message is settled.
- Rule generation: the model writes the rule, a marker line, then a
  follow-up message. The producer turns that into phase events framed as SSE
  ``data:`` lines.

Failures after streaming has started are reported in-band (an ``error``
event) because the HTTP status has already been sent.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import Any
from uuid import uuid4

from pydantic import ValidationError

from rulecraft.core.config import settings
from rulecraft.exceptions import (
    InvalidChatRequestError,
    LLMServiceError,
    PromptTemplateNotFoundError,
)
from rulecraft.schemas.chat import (
    ChatMessage,
    ChatRequest,
    GenerationOptions,
    MessagePart,
    RuleGenerationRequest,
)
from rulecraft.schemas.events import (
    ErrorPayload,
    PhaseEndEvent,
    RuleContentEvent,
    RuleMetadata,
    WireErrorEvent,
)
from rulecraft.services.intent import detect_intent
from rulecraft.services.llm_service import LLMService, StreamOptions, to_model_messages
from rulecraft.services.prompt_service import PromptTemplateService
from rulecraft.streaming.producer import PhaseStateMachine, produce_phase_events

logger = logging.getLogger(__name__)


@dataclass
class StreamTimings:
    """Milestones of one streamed response, in ms since the request began.

    A milestone is recorded the first time it is hit; repeats are ignored.
    """

    request_id: str
    started: float = field(default_factory=time.monotonic)
    milestones: dict[str, int] = field(default_factory=dict)

    def hit(self, name: str) -> None:
        if name in self.milestones:
            return
        self.milestones[name] = round((time.monotonic() - self.started) * 1000)
        logger.debug(
            "Request %s reached %s after %dms",
            self.request_id[:8],
            name,
            self.milestones[name],
        )

    def log_summary(self) -> None:
        total_ms = round((time.monotonic() - self.started) * 1000)
        outcome = "failed" if "error" in self.milestones else "finished"
        logger.info(
            "Request %s %s after %dms, milestones: %s",
            self.request_id[:8],
            outcome,
            total_ms,
            json.dumps(self.milestones),
        )


# ---------------------------------------------------------------------------
# Request Parsing
# ---------------------------------------------------------------------------


def parse_chat_body(body: Any) -> tuple[list[ChatMessage], GenerationOptions]:
    """Normalise the accepted chat body shapes.

    Accepted shapes:
    - a JSON array of messages
    - ``{"messages": [...], ...options}``
    - ``{"message": "text" | object, ...options}``

    Raises:
        InvalidChatRequestError: Unsupported shape, or the last message is
            not a user message with content.
    """
    if isinstance(body, list):
        try:
            messages = [ChatMessage.model_validate(m) for m in body]
        except ValidationError as e:
            raise InvalidChatRequestError(f"Invalid request body format: {e}") from e
        options = GenerationOptions()

    elif isinstance(body, dict):
        try:
            request = ChatRequest.model_validate(body)
        except ValidationError as e:
            raise InvalidChatRequestError(f"Invalid request body format: {e}") from e

        if request.messages:
            messages = request.messages
        elif request.message:
            text = (
                request.message
                if isinstance(request.message, str)
                else json.dumps(request.message)
            )
            messages = [
                ChatMessage(
                    id="user-msg",
                    role="user",
                    parts=[MessagePart(type="text", text=text)],
                )
            ]
        else:
            raise InvalidChatRequestError("No messages found in request body")

        options = GenerationOptions(
            model=request.model,
            provider=request.provider,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
        )

    else:
        raise InvalidChatRequestError("Invalid body format")

    if not messages or messages[-1].role != "user":
        raise InvalidChatRequestError("Last message must be from user")
    if not messages[-1].text():
        raise InvalidChatRequestError("Last message must have content")

    return messages, options


# ---------------------------------------------------------------------------
# Chat Streaming
# ---------------------------------------------------------------------------


async def stream_chat_response(
    messages: list[ChatMessage],
    options: GenerationOptions,
    llm: LLMService,
    prompts: PromptTemplateService,
) -> AsyncGenerator[str, None]:
    """Stream raw model text for a chat turn.

    The model is instructed to answer in JSON event lines; the text is passed
    through as-is. A failure is appended as a wire ``error`` event line.
    """
    request_id = str(uuid4())
    timings = StreamTimings(request_id)

    try:
        system_prompt = prompts.load_template("chat")
        stream_options = StreamOptions(
            model=options.model,
            provider=options.provider,
            temperature=(
                options.temperature
                if options.temperature is not None
                else settings.default_temperature
            ),
            max_tokens=options.max_tokens or settings.default_max_tokens,
            parallel_tool_calls=True,
            service_tier="flex",
        )
        async for token in llm.stream_generate(
            to_model_messages(messages), system_prompt, stream_options
        ):
            timings.hit("first_token")
            yield token

        timings.hit("stream_complete")

    except (LLMServiceError, PromptTemplateNotFoundError) as e:
        timings.hit("error")
        logger.exception("Chat streaming error for request %s: %s", request_id, e)
        yield _wire_error_line(str(e), _error_code(e))

    except Exception as e:
        timings.hit("error")
        logger.exception(
            "Unexpected chat streaming error for request %s: %s", request_id, e
        )
        yield _wire_error_line(f"Internal error: {e}", "INTERNAL_ERROR")

    finally:
        timings.log_summary()


def _error_code(exc: Exception) -> str:
    """Derive an UPPER_SNAKE error code from an exception class name."""
    name = type(exc).__name__.removesuffix("Error")
    code = "".join(f"_{c}" if c.isupper() else c for c in name).lstrip("_")
    return code.upper()


def _wire_error_line(message: str, code: str) -> str:
    event = WireErrorEvent(payload=ErrorPayload(message=message, code=code))
    return f"\n{event.model_dump_json()}\n"


# ---------------------------------------------------------------------------
# Phased Rule Generation
# ---------------------------------------------------------------------------


def build_user_prompt(request: RuleGenerationRequest) -> str:
    """Compose the user turn sent to the model."""
    lines = [request.message.strip()]
    if request.mentioned_files:
        lines.append("")
        lines.append("Relevant files:")
        lines.extend(f"- {path}" for path in request.mentioned_files)
    if request.file_name:
        lines.append("")
        lines.append(f"Target file name: {request.file_name}")
    return "\n".join(lines)


async def stream_rule_generation(
    request: RuleGenerationRequest,
    llm: LLMService,
    prompts: PromptTemplateService,
) -> AsyncGenerator[str, None]:
    """Stream phase events for a rule generation request.

    Yields:
        SSE-formatted event strings (``data: <json>\\n\\n``).
    """
    request_id = str(uuid4())
    timings = StreamTimings(request_id)
    machine = PhaseStateMachine()

    rule_type = request.rule_type or detect_intent(request.message).rule_type
    metadata = RuleMetadata(rule_type=rule_type, file_name=request.file_name)
    logger.info(
        "Starting rule generation %s (rule_type=%s, model=%s)",
        request_id,
        rule_type.value,
        request.model,
    )

    try:
        system_prompt = prompts.render(
            "rules",
            rule_type=rule_type.value,
            follow_up_marker=settings.follow_up_marker,
        )
        stream_options = StreamOptions(
            model=request.model,
            provider=request.provider,
            temperature=(
                request.temperature
                if request.temperature is not None
                else settings.default_temperature
            ),
            max_tokens=request.max_tokens or settings.default_max_tokens,
        )
        text_stream = llm.stream_generate(
            [{"role": "user", "content": build_user_prompt(request)}],
            system_prompt,
            stream_options,
        )

        async for event in produce_phase_events(
            text_stream, metadata, settings.follow_up_marker, machine
        ):
            if isinstance(event, RuleContentEvent):
                timings.hit("first_rule_content")
            elif isinstance(event, PhaseEndEvent):
                timings.hit(f"{event.phase.value}_end")
            yield event.to_sse()

        logger.info(
            "Completed rule generation %s (rule=%d chars, follow_up=%d chars)",
            request_id,
            len(machine.rule_text),
            len(machine.follow_up_text),
        )

    except (LLMServiceError, PromptTemplateNotFoundError) as e:
        timings.hit("error")
        logger.exception("Rule generation error for request %s: %s", request_id, e)
        for event in machine.fail(str(e)):
            yield event.to_sse()

    except Exception as e:
        timings.hit("error")
        logger.exception(
            "Unexpected error generating rule for request %s: %s", request_id, e
        )
        for event in machine.fail(f"Internal error: {e}"):
            yield event.to_sse()

    finally:
        timings.log_summary()
