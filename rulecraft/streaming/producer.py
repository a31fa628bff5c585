"""Server-side phase sequencing for rule generation.

A generation runs through two phases, each framed by start/end events:

    IDLE -> RULE_GENERATION -> FOLLOW_UP -> COMPLETED

ERRORED is reachable from every non-terminal state and absorbs the rest.

PhaseStateMachine enforces the order and builds the events for every
transition. PhaseSplitter feeds it from raw model text, switching from the
rule phase to the follow-up phase when the follow-up marker shows up.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator
from enum import Enum

from rulecraft.exceptions import InvalidPhaseTransitionError
from rulecraft.schemas.events import (
    ErrorEvent,
    FollowUpContentEvent,
    GenerationPhase,
    PhaseEndEvent,
    PhaseStartEvent,
    RuleContentEvent,
    RuleMetadata,
    StreamEvent,
)

logger = logging.getLogger(__name__)


class ProducerState(str, Enum):
    IDLE = "idle"
    RULE_GENERATION = "rule-generation"
    FOLLOW_UP = "follow-up-message"
    COMPLETED = "completed"
    ERRORED = "errored"


_TERMINAL_STATES = (ProducerState.COMPLETED, ProducerState.ERRORED)


class PhaseStateMachine:
    """Emit phase protocol events in a valid order.

    Each method returns the events produced by that step (possibly none).
    Calling a method from the wrong state raises InvalidPhaseTransitionError.
    """

    def __init__(self) -> None:
        self.state = ProducerState.IDLE
        self._rule_parts: list[str] = []
        self._follow_up_parts: list[str] = []

    @property
    def rule_text(self) -> str:
        return "".join(self._rule_parts)

    @property
    def follow_up_text(self) -> str:
        return "".join(self._follow_up_parts)

    @property
    def is_finished(self) -> bool:
        return self.state in _TERMINAL_STATES

    def _require(self, expected: ProducerState, action: str) -> None:
        if self.state != expected:
            raise InvalidPhaseTransitionError(self.state.value, action)

    def start(self, metadata: RuleMetadata | None = None) -> list[StreamEvent]:
        self._require(ProducerState.IDLE, "start rule generation")
        self.state = ProducerState.RULE_GENERATION
        return [
            PhaseStartEvent(phase=GenerationPhase.RULE_GENERATION, metadata=metadata)
        ]

    def rule_content(self, text: str) -> list[StreamEvent]:
        self._require(ProducerState.RULE_GENERATION, "emit rule content")
        if not text:
            return []
        self._rule_parts.append(text)
        return [RuleContentEvent(content=text)]

    def begin_follow_up(self, final_content: str | None = None) -> list[StreamEvent]:
        """End the rule phase and open the follow-up phase.

        ``final_content`` defaults to the accumulated rule text.
        """
        self._require(ProducerState.RULE_GENERATION, "begin follow-up")
        self.state = ProducerState.FOLLOW_UP
        if final_content is None:
            final_content = self.rule_text
        return [
            PhaseEndEvent(
                phase=GenerationPhase.RULE_GENERATION,
                final_content=final_content,
            ),
            PhaseStartEvent(phase=GenerationPhase.FOLLOW_UP),
        ]

    def follow_up_content(self, text: str) -> list[StreamEvent]:
        self._require(ProducerState.FOLLOW_UP, "emit follow-up content")
        if not text:
            return []
        self._follow_up_parts.append(text)
        return [FollowUpContentEvent(content=text)]

    def complete(self, final_content: str | None = None) -> list[StreamEvent]:
        self._require(ProducerState.FOLLOW_UP, "complete")
        self.state = ProducerState.COMPLETED
        if final_content is None:
            final_content = self.follow_up_text
        return [
            PhaseEndEvent(phase=GenerationPhase.FOLLOW_UP, final_content=final_content)
        ]

    def fail(self, error_text: str) -> list[StreamEvent]:
        """Move to ERRORED from any non-terminal state."""
        if self.is_finished:
            logger.debug("Ignoring failure after terminal state %s", self.state.value)
            return []
        self.state = ProducerState.ERRORED
        return [ErrorEvent(error_text=error_text)]


class PhaseSplitter:
    """Route streamed model text into the rule and follow-up phases.

    Text before ``marker`` is rule content, text after it is follow-up
    content. A marker split across tokens is recognised by holding back the
    longest tail that could still become the marker.
    """

    def __init__(self, machine: PhaseStateMachine, marker: str) -> None:
        if not marker:
            raise ValueError("marker must not be empty")
        self._machine = machine
        self._marker = marker
        self._pending = ""
        self._follow_up_started = False

    def _held_back(self, text: str) -> int:
        """Length of the longest suffix of text that is a proper prefix of the marker."""
        for size in range(min(len(text), len(self._marker) - 1), 0, -1):
            if self._marker.startswith(text[-size:]):
                return size
        return 0

    def _emit_follow_up(self, text: str) -> list[StreamEvent]:
        if not self._follow_up_started:
            text = text.lstrip()
            if not text:
                return []
            self._follow_up_started = True
        return self._machine.follow_up_content(text)

    def feed(self, token: str) -> list[StreamEvent]:
        if self._machine.state == ProducerState.FOLLOW_UP:
            return self._emit_follow_up(token)

        self._pending += token
        index = self._pending.find(self._marker)
        if index >= 0:
            before = self._pending[:index]
            after = self._pending[index + len(self._marker):]
            self._pending = ""
            events = self._machine.rule_content(before)
            events += self._machine.begin_follow_up(self._machine.rule_text.strip())
            events += self._emit_follow_up(after)
            return events

        hold = self._held_back(self._pending)
        ready = self._pending[: len(self._pending) - hold]
        self._pending = self._pending[len(self._pending) - hold:]
        return self._machine.rule_content(ready)

    def finish(self) -> list[StreamEvent]:
        """Flush held-back text and close both phases."""
        events: list[StreamEvent] = []
        if self._machine.state == ProducerState.RULE_GENERATION:
            events += self._machine.rule_content(self._pending)
            self._pending = ""
            events += self._machine.begin_follow_up(self._machine.rule_text.strip())
        events += self._machine.complete(self._machine.follow_up_text.strip())
        return events


async def produce_phase_events(
    text_stream: AsyncIterable[str],
    metadata: RuleMetadata | None,
    marker: str,
    machine: PhaseStateMachine | None = None,
) -> AsyncIterator[StreamEvent]:
    """Turn a model text stream into the full phase event sequence.

    Exceptions from ``text_stream`` propagate. Pass ``machine`` to keep a
    handle for reporting them with PhaseStateMachine.fail.
    """
    machine = machine or PhaseStateMachine()
    splitter = PhaseSplitter(machine, marker)

    for event in machine.start(metadata):
        yield event

    async for token in text_stream:
        for event in splitter.feed(token):
            yield event

    for event in splitter.finish():
        yield event
