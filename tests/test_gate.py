"""Tests for the message completion gate and duplicate suppression."""

from __future__ import annotations

from rulecraft.schemas.chat import ChatMessage, MessagePart
from rulecraft.streaming.gate import DedupGuard, MessageCompletionGate


def _message(*parts: MessagePart, message_id: str = "m1") -> ChatMessage:
    return ChatMessage(id=message_id, role="assistant", parts=list(parts))


class TestMessageCompletionGate:
    def test_streaming_text_part_is_not_settled(self) -> None:
        message = _message(MessagePart(type="text", text='{"event":', state="streaming"))

        assert MessageCompletionGate.is_settled(message) is False

    def test_done_text_part_is_settled(self) -> None:
        message = _message(MessagePart(type="text", text="{}", state="done"))

        assert MessageCompletionGate.is_settled(message) is True

    def test_any_streaming_text_part_blocks(self) -> None:
        """All text parts must be done, not just the first or last."""
        message = _message(
            MessagePart(type="text", text="a", state="done"),
            MessagePart(type="text", text="b", state="streaming"),
            MessagePart(type="text", text="c", state="done"),
        )

        assert MessageCompletionGate.is_settled(message) is False

    def test_non_text_parts_are_ignored(self) -> None:
        message = _message(
            MessagePart(type="step-start", state="streaming"),
            MessagePart(type="text", text="{}", state="done"),
        )

        assert MessageCompletionGate.is_settled(message) is True

    def test_text_part_without_state_counts_as_done(self) -> None:
        message = _message(MessagePart(type="text", text="{}"))

        assert MessageCompletionGate.is_settled(message) is True

    def test_stateless_part_does_not_mask_streaming_part(self) -> None:
        message = _message(
            MessagePart(type="text", text="a"),
            MessagePart(type="text", text="b", state="streaming"),
        )

        assert MessageCompletionGate.is_settled(message) is False

    def test_message_without_parts_is_settled(self) -> None:
        message = ChatMessage(id="m1", role="assistant", content="hello")

        assert MessageCompletionGate.is_settled(message) is True


class TestDedupGuard:
    def test_first_sighting_is_processed_once(self) -> None:
        guard = DedupGuard()

        assert guard.should_process("m1") is True
        assert guard.should_process("m1") is False
        assert guard.should_process("m1") is False
        assert "m1" in guard
        assert len(guard) == 1

    def test_distinct_ids_are_independent(self) -> None:
        guard = DedupGuard()

        assert guard.should_process("m1") is True
        assert guard.should_process("m2") is True
        assert len(guard) == 2

    def test_reset_forgets_processed_ids(self) -> None:
        guard = DedupGuard()
        guard.should_process("m1")

        guard.reset()

        assert "m1" not in guard
        assert guard.should_process("m1") is True
