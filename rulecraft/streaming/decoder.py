"""Incremental line decoder for streamed response bodies.

Network reads rarely line up with line boundaries: a JSON event can be split
across two reads and a multi-byte UTF-8 character can be split across two
byte fragments. The decoder keeps the unconsumed tail in a carry-over buffer
and only hands out complete lines.
"""

from __future__ import annotations

import codecs
import logging
from collections.abc import AsyncIterable, AsyncIterator
from enum import Enum

from rulecraft.exceptions import StreamEndedUnexpectedlyError

logger = logging.getLogger(__name__)


class TrailingLinePolicy(str, Enum):
    """What to do with an unterminated line left over at stream end.

    DROP: discard it (legacy behaviour, logged as a warning)
    FLUSH: hand it out as a best-effort final line
    STRICT: treat it as a protocol failure
    """

    DROP = "drop"
    FLUSH = "flush"
    STRICT = "strict"


class ChunkDecoder:
    """Turn successive text/byte fragments into an ordered sequence of lines."""

    def __init__(
        self,
        trailing_line_policy: TrailingLinePolicy | str = TrailingLinePolicy.DROP,
        encoding: str = "utf-8",
    ) -> None:
        self._policy = TrailingLinePolicy(trailing_line_policy)
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        self._finished = False

    @property
    def buffer(self) -> str:
        """The unconsumed tail (an incomplete line, possibly empty)."""
        return self._buffer

    def feed(self, fragment: bytes | str) -> list[str]:
        """Append a fragment and return every line it completed, in order."""
        if self._finished:
            raise RuntimeError("ChunkDecoder already finished")

        if isinstance(fragment, bytes):
            text = self._decoder.decode(fragment, final=False)
        else:
            text = fragment

        self._buffer += text
        *lines, self._buffer = self._buffer.split("\n")
        return [line.removesuffix("\r") for line in lines]

    def finish(self) -> str | None:
        """End the stream and apply the trailing-line policy.

        Returns the leftover line under FLUSH, otherwise None.

        Raises:
            StreamEndedUnexpectedlyError: leftover data under STRICT.
        """
        if self._finished:
            return None
        self._finished = True

        self._buffer += self._decoder.decode(b"", final=True)
        tail = self._buffer.removesuffix("\r")
        self._buffer = ""

        if not tail.strip():
            return None

        if self._policy == TrailingLinePolicy.FLUSH:
            logger.debug("Flushing unterminated trailing line (%d chars)", len(tail))
            return tail

        if self._policy == TrailingLinePolicy.STRICT:
            raise StreamEndedUnexpectedlyError(
                "Stream ended in the middle of a line"
            )

        logger.warning(
            "Dropping unterminated trailing line at stream end (%d chars): %s",
            len(tail),
            repr(tail[:100]),
        )
        return None


async def iter_lines(
    fragments: AsyncIterable[bytes | str],
    decoder: ChunkDecoder | None = None,
) -> AsyncIterator[str]:
    """Yield complete lines from an async stream of fragments.

    Every line of a fragment is yielded (and so fully handled by the consumer)
    before the next fragment is read.
    """
    decoder = decoder or ChunkDecoder()
    async for fragment in fragments:
        for line in decoder.feed(fragment):
            yield line

    tail = decoder.finish()
    if tail is not None:
        yield tail
