"""Decode single lines of streamed text into validated events.

Parsing never raises: blank lines, SSE control lines, malformed JSON and
objects outside the event vocabulary all yield ``None`` so the consuming loop
keeps going.
"""

from __future__ import annotations

import json
import logging
from typing import Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from rulecraft.schemas.events import stream_event_adapter, wire_event_adapter

logger = logging.getLogger(__name__)

EventT = TypeVar("EventT")

SSE_DATA_PREFIX = "data: "

# SSE fields that carry no event data
_SSE_CONTROL_PREFIXES = ("event:", "id:", "retry:", ":")


class EventLineParser(Generic[EventT]):
    """Validate one line at a time against a discriminated event union.

    Args:
        adapter: TypeAdapter for the event union.
        discriminator: Name of the field that selects the event variant.
        prefix: Required envelope prefix (e.g. ``"data: "``). Lines without
            it are ignored. ``None`` accepts bare JSON lines.
        allow_bare: With a prefix set, also accept lines that are bare JSON.
    """

    def __init__(
        self,
        adapter: TypeAdapter[EventT],
        discriminator: str,
        prefix: str | None = None,
        allow_bare: bool = False,
    ) -> None:
        self._adapter = adapter
        self._discriminator = discriminator
        self._prefix = prefix
        self._allow_bare = allow_bare

    def _candidate(self, line: str) -> str | None:
        """Strip the envelope, or return None when the line is not a candidate."""
        stripped = line.strip()
        if not stripped:
            return None

        if self._prefix is not None:
            prefix = self._prefix.strip()
            if stripped.startswith(prefix):
                return stripped[len(prefix):].strip()
            if stripped.startswith(_SSE_CONTROL_PREFIXES):
                return None
            if not self._allow_bare:
                return None
        elif stripped.startswith(SSE_DATA_PREFIX.strip()):
            # Tolerate SSE framing even when bare JSON is expected
            return stripped[len(SSE_DATA_PREFIX.strip()):].strip()

        return stripped

    def parse(self, line: str) -> EventT | None:
        """Return the validated event on this line, or None."""
        candidate = self._candidate(line)
        if not candidate:
            return None

        try:
            raw = json.loads(candidate)
        except (ValueError, RecursionError) as e:
            # JSONDecodeError, oversized integers and pathological nesting
            logger.debug(
                "Discarding malformed JSON line (%s): %s",
                type(e).__name__,
                repr(candidate[:100]),
            )
            return None

        if not isinstance(raw, dict) or self._discriminator not in raw:
            logger.debug(
                "Discarding JSON without '%s' field: %s",
                self._discriminator,
                repr(candidate[:100]),
            )
            return None

        try:
            return self._adapter.validate_python(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding invalid '%s' event: %d validation error(s), first=%s",
                raw.get(self._discriminator),
                e.error_count(),
                e.errors()[0].get("msg") if e.errors() else None,
            )
            return None

    def parse_text(self, text: str) -> list[EventT]:
        """Parse every line of a block of text, keeping only valid events."""
        events: list[EventT] = []
        for line in text.split("\n"):
            event = self.parse(line)
            if event is not None:
                events.append(event)
        return events


# Phase events travel as SSE ``data:`` frames
phase_event_parser = EventLineParser(
    stream_event_adapter,
    discriminator="type",
    prefix=SSE_DATA_PREFIX,
)

# Wire events are bare JSON lines inside chat message text
wire_event_parser = EventLineParser(
    wire_event_adapter,
    discriminator="event",
)
