"""Incremental newline framing for subprocess output."""

from __future__ import annotations


class LineFramer:
    """Turns arbitrary byte chunks into complete text lines.

    Splitting happens on raw bytes, so a multi-byte UTF-8 character cut
    across two reads is reassembled before decoding.  Whatever follows the
    last ``\\n`` is held back and prefixed to the next chunk.
    """

    def __init__(self) -> None:
        self._pending = b""

    @property
    def pending(self) -> bytes:
        """Bytes received after the last newline."""
        return self._pending

    def feed(self, chunk: bytes) -> list[str]:
        """Append *chunk* and return every line it completed.

        Lines are returned without their terminator and may be empty;
        callers decide which lines are worth decoding.
        """
        if not chunk:
            return []
        data = self._pending + chunk
        *complete, self._pending = data.split(b"\n")
        return [raw.decode("utf-8", errors="replace") for raw in complete]

    def reset(self) -> None:
        """Drop any partial line."""
        self._pending = b""
