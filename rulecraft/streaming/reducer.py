"""Pure reducers that apply decoded events to generation state.

``apply_event`` handles the phase protocol and ``apply_wire_event`` the
chat-embedded protocol. Both take a frozen snapshot and an event and return
a new snapshot; neither performs I/O or raises on in-band errors. Replaying
the same events from the same initial state always yields the same state.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from functools import reduce

from rulecraft.schemas.events import (
    ChunkEvent,
    ClarifyEvent,
    DoneEvent,
    ErrorEvent,
    FileEvent,
    FollowUpContentEvent,
    GenerationPhase,
    MetaEvent,
    PhaseEndEvent,
    PhaseStartEvent,
    ProgressEvent,
    RuleContentEvent,
    StreamEvent,
    WireErrorEvent,
    WireEvent,
)
from rulecraft.schemas.session import (
    EMPTY_DRAFT,
    IDLE_STATE,
    RuleDraftState,
    SessionPhase,
    SessionState,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Phase Protocol
# ---------------------------------------------------------------------------


def _apply_phase_start(state: SessionState, event: PhaseStartEvent) -> SessionState:
    if event.phase == GenerationPhase.RULE_GENERATION:
        return state.model_copy(
            update={
                "phase": SessionPhase.RULE_GENERATION,
                "is_generating": True,
                "is_streaming_rule": True,
                "is_streaming_follow_up": False,
                "rule_content": "",
                "follow_up_content": "",
                "error": None,
                "metadata": event.metadata,
            }
        )

    if state.is_streaming_rule:
        # Rule phase never got its phase-end: keep what was accumulated
        logger.warning("follow-up phase started before rule-generation ended")

    return state.model_copy(
        update={
            "phase": SessionPhase.FOLLOW_UP,
            "is_streaming_rule": False,
            "is_streaming_follow_up": True,
        }
    )


def _apply_phase_end(state: SessionState, event: PhaseEndEvent) -> SessionState:
    if event.phase == GenerationPhase.RULE_GENERATION:
        return state.model_copy(
            update={
                "rule_content": (
                    event.final_content
                    if event.final_content is not None
                    else state.rule_content
                ),
                "is_streaming_rule": False,
            }
        )

    return state.model_copy(
        update={
            "follow_up_content": (
                event.final_content
                if event.final_content is not None
                else state.follow_up_content
            ),
            "is_streaming_follow_up": False,
            "phase": SessionPhase.COMPLETED,
            "is_generating": False,
        }
    )


def apply_event(state: SessionState, event: StreamEvent) -> SessionState:
    """Apply one phase protocol event and return the next state."""
    if isinstance(event, PhaseStartEvent):
        return _apply_phase_start(state, event)

    elif isinstance(event, RuleContentEvent):
        if not event.content:
            return state
        if state.phase != SessionPhase.RULE_GENERATION:
            logger.debug("Ignoring rule-content outside rule-generation phase")
            return state
        return state.model_copy(
            update={"rule_content": state.rule_content + event.content}
        )

    elif isinstance(event, FollowUpContentEvent):
        if not event.content:
            return state
        if state.phase != SessionPhase.FOLLOW_UP:
            logger.debug("Ignoring follow-up-content outside follow-up phase")
            return state
        return state.model_copy(
            update={"follow_up_content": state.follow_up_content + event.content}
        )

    elif isinstance(event, PhaseEndEvent):
        return _apply_phase_end(state, event)

    elif isinstance(event, ErrorEvent):
        return state.model_copy(
            update={
                "error": event.error_text,
                "is_generating": False,
                "is_streaming_rule": False,
                "is_streaming_follow_up": False,
                "phase": SessionPhase.IDLE,
            }
        )

    raise TypeError(f"Unhandled stream event: {type(event).__name__}")


def fold_events(
    events: Iterable[StreamEvent],
    initial: SessionState = IDLE_STATE,
) -> SessionState:
    """Apply events in order starting from ``initial``."""
    return reduce(apply_event, events, initial)


# ---------------------------------------------------------------------------
# Wire Protocol
# ---------------------------------------------------------------------------


def apply_wire_event(draft: RuleDraftState, event: WireEvent) -> RuleDraftState:
    """Apply one chat-embedded event and return the next draft."""
    if isinstance(event, MetaEvent):
        return draft.model_copy(
            update={
                "is_generating_rules": True,
                "rule_content": "",
                "meta": event.payload,
                "done": None,
                "clarification": None,
                "error": None,
            }
        )

    elif isinstance(event, ChunkEvent):
        if not draft.is_generating_rules:
            logger.debug("Ignoring chunk received outside a rule draft")
            return draft
        return draft.model_copy(
            update={"rule_content": draft.rule_content + event.payload.content}
        )

    elif isinstance(event, DoneEvent):
        return draft.model_copy(
            update={"is_generating_rules": False, "done": event.payload}
        )

    elif isinstance(event, WireErrorEvent):
        return draft.model_copy(
            update={"is_generating_rules": False, "error": event.payload}
        )

    elif isinstance(event, ClarifyEvent):
        return draft.model_copy(
            update={"is_generating_rules": False, "clarification": event.payload}
        )

    elif isinstance(event, (ProgressEvent, FileEvent)):
        return draft

    raise TypeError(f"Unhandled wire event: {type(event).__name__}")


def fold_wire_events(
    events: Iterable[WireEvent],
    initial: RuleDraftState = EMPTY_DRAFT,
) -> RuleDraftState:
    """Apply wire events in order starting from ``initial``."""
    return reduce(apply_wire_event, events, initial)
