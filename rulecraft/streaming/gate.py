"""Admission checks for inbound chat messages.

A chat message is re-delivered every time one of its parts changes. Two
checks decide whether its text may be parsed for events:

1. MessageCompletionGate: every text part has finished arriving, so no JSON
   object is cut off before its closing brace.
2. DedupGuard: the message has not been applied already.
"""

from __future__ import annotations

import logging

from rulecraft.schemas.chat import ChatMessage

logger = logging.getLogger(__name__)


class MessageCompletionGate:
    """Decide whether a message is settled."""

    @staticmethod
    def is_settled(message: ChatMessage) -> bool:
        """True iff no text part is still streaming.

        Non-text parts are ignored. A text part without a state (older
        clients) counts as done. This is looser than the chat panel, which
        only treated a text part as finished once its state was "done";
        clients that never set a state would otherwise never settle.
        """
        return all(
            part.state != "streaming"
            for part in message.parts
            if part.type == "text"
        )


class DedupGuard:
    """Remember which message ids have been processed in this session."""

    def __init__(self) -> None:
        self._processed: set[str] = set()

    def should_process(self, message_id: str) -> bool:
        """Return True exactly once per id; record the id on that call."""
        if message_id in self._processed:
            logger.debug("Skipping already processed message %s", message_id)
            return False
        self._processed.add(message_id)
        return True

    def reset(self) -> None:
        self._processed.clear()

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._processed

    def __len__(self) -> int:
        return len(self._processed)
