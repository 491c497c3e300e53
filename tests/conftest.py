"""Shared fakes for agent subprocess tests."""

from __future__ import annotations

import asyncio
import json
from typing import Any
from unittest.mock import AsyncMock, MagicMock


class MockAsyncStream:
    """Async-aware mock pipe that yields chunks on demand.

    Data can be added at any time via ``feed()``.  ``read()`` and
    ``readline()`` block until a chunk is available or ``close()`` is
    called.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[bytes] = asyncio.Queue()

    def feed(self, data: bytes) -> None:
        self._queue.put_nowait(data)

    def feed_json(self, obj: Any) -> None:
        self.feed(json.dumps(obj).encode() + b"\n")

    def close(self) -> None:
        """Signal EOF."""
        self._queue.put_nowait(b"")

    async def read(self, n: int = -1) -> bytes:
        return await self._queue.get()

    async def readline(self) -> bytes:
        return await self._queue.get()


def make_mock_process(returncode: int = 0) -> MagicMock:
    """Create a mock subprocess with async-aware pipes.

    ``proc.wait()`` resolves to *returncode*.
    """
    proc = MagicMock()
    proc.pid = 4242
    proc.returncode = None

    stdin = MagicMock()
    stdin.write = MagicMock()
    stdin.is_closing = MagicMock(return_value=False)
    stdin.close = MagicMock()
    proc.stdin = stdin

    proc.stdout = MockAsyncStream()
    proc.stderr = MockAsyncStream()
    proc.wait = AsyncMock(return_value=returncode)
    proc.terminate = MagicMock()
    proc.kill = MagicMock()
    return proc


def end_process(proc: MagicMock) -> None:
    """Close both output pipes, as an exiting agent would."""
    proc.stdout.close()
    proc.stderr.close()


def assistant_text(text: str, session_id: str = "sess-1") -> dict[str, Any]:
    return {
        "type": "assistant",
        "session_id": session_id,
        "message": {"content": [{"type": "text", "text": text}]},
    }


def assistant_tool(
    name: str, tool_input: dict[str, Any], session_id: str = "sess-1"
) -> dict[str, Any]:
    return {
        "type": "assistant",
        "session_id": session_id,
        "message": {
            "content": [{"type": "tool_use", "id": "t1", "name": name, "input": tool_input}]
        },
    }


def result_record(
    text: str = "", is_error: bool = False, session_id: str = "sess-1"
) -> dict[str, Any]:
    return {
        "type": "result",
        "subtype": "error" if is_error else "success",
        "result": text,
        "is_error": is_error,
        "session_id": session_id,
    }


async def drain(delay: float = 0.02) -> None:
    """Let reader tasks process everything fed so far."""
    await asyncio.sleep(delay)
