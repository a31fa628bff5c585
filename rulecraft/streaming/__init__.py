"""Streaming event protocol: decoding, validation, phase production and reduction."""

from rulecraft.streaming.decoder import ChunkDecoder, TrailingLinePolicy, iter_lines  # noqa: F401
from rulecraft.streaming.gate import DedupGuard, MessageCompletionGate  # noqa: F401
from rulecraft.streaming.parser import (  # noqa: F401
    EventLineParser,
    phase_event_parser,
    wire_event_parser,
)
from rulecraft.streaming.producer import (  # noqa: F401
    PhaseSplitter,
    PhaseStateMachine,
    produce_phase_events,
)
from rulecraft.streaming.reducer import (  # noqa: F401
    apply_event,
    apply_wire_event,
    fold_events,
    fold_wire_events,
)
