"""Tests for incremental line decoding of streamed bodies."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from rulecraft.exceptions import StreamEndedUnexpectedlyError
from rulecraft.streaming.decoder import ChunkDecoder, TrailingLinePolicy, iter_lines


async def _fragments(*parts: bytes | str) -> AsyncIterator[bytes | str]:
    for part in parts:
        yield part


class TestChunkDecoderFeed:
    """Test line reassembly across fragment boundaries."""

    def test_line_split_across_fragments_is_reassembled(self) -> None:
        """A JSON line split mid-word comes out as one complete line."""
        decoder = ChunkDecoder()

        first = decoder.feed(b'{"event":"meta"}\n{"eve')
        second = decoder.feed(b'nt":"chunk","payload":{"content":"hi"}}\n')

        assert first == ['{"event":"meta"}']
        assert second == ['{"event":"chunk","payload":{"content":"hi"}}']
        assert decoder.buffer == ""

    def test_fragment_without_newline_yields_nothing(self) -> None:
        decoder = ChunkDecoder()

        assert decoder.feed("partial") == []
        assert decoder.buffer == "partial"

    def test_multiple_lines_in_one_fragment_keep_order(self) -> None:
        decoder = ChunkDecoder()

        lines = decoder.feed("a\nb\nc\nd")

        assert lines == ["a", "b", "c"]
        assert decoder.buffer == "d"

    def test_empty_lines_are_preserved(self) -> None:
        """Blank lines (SSE frame separators) are emitted; the parser skips them."""
        decoder = ChunkDecoder()

        assert decoder.feed("data: x\n\n") == ["data: x", ""]

    def test_crlf_line_endings_are_stripped(self) -> None:
        decoder = ChunkDecoder()

        assert decoder.feed("one\r\ntwo\r\n") == ["one", "two"]

    def test_multibyte_character_split_across_fragments(self) -> None:
        """A UTF-8 character split between two byte fragments decodes intact."""
        encoded = "héllo ✓\n".encode("utf-8")
        split_at = encoded.index("✓".encode("utf-8")) + 1
        decoder = ChunkDecoder()

        first = decoder.feed(encoded[:split_at])
        second = decoder.feed(encoded[split_at:])

        assert first == []
        assert second == ["héllo ✓"]

    def test_feed_after_finish_raises(self) -> None:
        decoder = ChunkDecoder()
        decoder.finish()

        with pytest.raises(RuntimeError):
            decoder.feed("late\n")


class TestTrailingLinePolicy:
    """Test handling of an unterminated final line."""

    def test_drop_discards_trailing_line(self) -> None:
        decoder = ChunkDecoder(TrailingLinePolicy.DROP)
        decoder.feed('{"event":"chunk"')

        assert decoder.finish() is None

    def test_flush_returns_trailing_line(self) -> None:
        decoder = ChunkDecoder(TrailingLinePolicy.FLUSH)
        decoder.feed("complete\nlast line")

        assert decoder.finish() == "last line"

    def test_strict_raises_on_trailing_line(self) -> None:
        decoder = ChunkDecoder("strict")
        decoder.feed("complete\nlast line")

        with pytest.raises(StreamEndedUnexpectedlyError):
            decoder.finish()

    def test_strict_accepts_clean_end(self) -> None:
        """A stream ending on a newline leaves nothing to complain about."""
        decoder = ChunkDecoder(TrailingLinePolicy.STRICT)
        decoder.feed("complete\n")

        assert decoder.finish() is None

    def test_whitespace_tail_is_ignored(self) -> None:
        decoder = ChunkDecoder(TrailingLinePolicy.STRICT)
        decoder.feed("complete\n   ")

        assert decoder.finish() is None

    def test_finish_is_idempotent(self) -> None:
        decoder = ChunkDecoder(TrailingLinePolicy.FLUSH)
        decoder.feed("tail")

        assert decoder.finish() == "tail"
        assert decoder.finish() is None

    def test_invalid_policy_rejected(self) -> None:
        with pytest.raises(ValueError):
            ChunkDecoder("keep")


class TestIterLines:
    """Test the async line iterator."""

    @pytest.mark.asyncio
    async def test_yields_complete_lines_in_order(self) -> None:
        lines = [
            line
            async for line in iter_lines(
                _fragments(b'{"event":"meta"}\n{"eve', b'nt":"chunk"}\n')
            )
        ]

        assert lines == ['{"event":"meta"}', '{"event":"chunk"}']

    @pytest.mark.asyncio
    async def test_trailing_line_dropped_by_default(self) -> None:
        lines = [line async for line in iter_lines(_fragments("a\nb"))]

        assert lines == ["a"]

    @pytest.mark.asyncio
    async def test_trailing_line_flushed_with_flush_policy(self) -> None:
        decoder = ChunkDecoder(TrailingLinePolicy.FLUSH)

        lines = [line async for line in iter_lines(_fragments("a\nb"), decoder)]

        assert lines == ["a", "b"]
