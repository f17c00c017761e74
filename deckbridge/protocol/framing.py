"""
Line framing for the deck protocol.

Controllers send one command per line. Lines end in CRLF, though some
controllers send a bare LF. A trailing fragment without a terminator is
held until the next chunk arrives.

No maximum line length is enforced; the buffer grows until a newline
arrives or the connection closes.
"""

from __future__ import annotations


class LineFramer:
    """Split an incoming byte stream into non-blank text lines."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._encoding = encoding
        self._buffer = bytearray()

    def feed(self, data: bytes) -> list[str]:
        """
        Add received bytes and return every complete, non-blank line.

        The line terminator and a preceding CR are stripped.
        """
        self._buffer.extend(data)

        lines: list[str] = []
        while True:
            idx = self._buffer.find(b"\n")
            if idx == -1:
                break
            raw = bytes(self._buffer[:idx])
            del self._buffer[: idx + 1]

            line = raw.decode(self._encoding, errors="replace")
            if line.endswith("\r"):
                line = line[:-1]
            if line.strip():
                lines.append(line)

        return lines

    @property
    def pending(self) -> bytes:
        """Bytes of an incomplete trailing line."""
        return bytes(self._buffer)
