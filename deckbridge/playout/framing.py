"""
Reply framing for the CasparCG AMCP protocol.

AMCP carries no request identifiers. Replies come back in the order the
commands were sent, and each command has a known reply shape:

    SINGLE  one status line                       (LOAD, PLAY, STOP, PAUSE)
    TWO     status line + one data line           (CINF)
    MULTI   status line + data lines + blank line (CLS, INFO)

The framer keeps a FIFO of expected shapes and cuts exactly one reply per
entry off the front of the byte buffer, attributing it to the oldest
outstanding request.
"""

from __future__ import annotations

import re
from collections import deque
from collections.abc import Iterator
from enum import Enum
from typing import Generic, TypeVar

T = TypeVar("T")

# A blank line ends a MULTI reply; tolerate bare LF as well as CRLF
_BLANK_LINE = re.compile(rb"\r?\n\r?\n")


class ReplyShape(Enum):
    """Expected shape of an AMCP reply."""

    SINGLE = "single"
    TWO = "two"
    MULTI = "multi"


def _decode(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


class ResponseFramer(Generic[T]):
    """
    Match framed AMCP replies to outstanding requests in send order.

    Each pending entry is a (shape, token) pair; the token is whatever the
    caller uses to deliver the reply (the client uses a Future). Bytes are
    buffered across feeds so replies split at arbitrary byte boundaries are
    reassembled exactly.
    """

    def __init__(self) -> None:
        self._buffer = bytearray()
        self._pending: deque[tuple[ReplyShape, T]] = deque()

    def expect(self, shape: ReplyShape, token: T) -> None:
        """Queue an expected reply behind every reply already queued."""
        self._pending.append((shape, token))

    def feed(self, data: bytes) -> list[tuple[T, str]]:
        """
        Add received bytes and return every reply that is now complete.

        Returns:
            (token, reply) pairs in FIFO order. Several requests may be
            satisfied by one feed.
        """
        self._buffer.extend(data)
        return list(self._drain())

    def _drain(self) -> Iterator[tuple[T, str]]:
        while self._pending:
            shape, token = self._pending[0]
            reply = self._cut(shape)
            if reply is None:
                break
            self._pending.popleft()
            yield token, reply

    def _cut(self, shape: ReplyShape) -> str | None:
        """Remove one reply of the given shape from the buffer, if complete."""
        buf = self._buffer

        if shape is ReplyShape.MULTI:
            match = _BLANK_LINE.search(buf)
            if match is None:
                return None
            reply = _decode(bytes(buf[: match.start()]))
            del buf[: match.end()]
            return reply

        if shape is ReplyShape.TWO:
            first = buf.find(b"\n")
            if first == -1:
                return None
            second = buf.find(b"\n", first + 1)
            if second == -1:
                return None
            reply = _decode(bytes(buf[: second + 1]))
            del buf[: second + 1]
            return reply

        # SINGLE
        idx = buf.find(b"\n")
        if idx == -1:
            return None
        reply = _decode(bytes(buf[:idx])).rstrip("\r")
        del buf[: idx + 1]
        return reply

    def pop_oldest(self) -> T | None:
        """Drop the oldest pending request and return its token."""
        if not self._pending:
            return None
        _shape, token = self._pending.popleft()
        return token

    def reset_buffer(self) -> None:
        """Discard buffered bytes (used when a new connection is opened)."""
        self._buffer.clear()

    @property
    def pending(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._pending)

    @property
    def buffered(self) -> bytes:
        """Bytes received but not yet attributed to a request."""
        return bytes(self._buffer)
