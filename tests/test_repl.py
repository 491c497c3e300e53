"""Tests for the ``threadline up`` REPL: command parsing and routing."""

from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from threadline.bridge.session import SessionState
from threadline.chat.console import ConsoleChat
from threadline.chat.models import ChoiceOption, ChoicePrompt
from threadline.commands.up import ReplState, _handle_command, _repl_loop

# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _make_manager(keys: list[str] | None = None) -> MagicMock:
    manager = MagicMock()
    manager.handle_message = AsyncMock(return_value=True)
    manager.remove = AsyncMock(return_value=True)
    manager.keys.return_value = list(keys or [])
    manager.__contains__.side_effect = lambda key: key in (keys or [])
    return manager


async def _run_lines(
    lines: list[str], manager: MagicMock, chat: ConsoleChat | None = None
) -> ReplState:
    state = ReplState(thread="main")
    with patch(
        "threadline.commands.up._read_input",
        side_effect=[*lines, EOFError()],
    ):
        await _repl_loop(manager, chat or ConsoleChat(), state, asyncio.Event())
    return state


# ------------------------------------------------------------------ #
# Slash commands
# ------------------------------------------------------------------ #


class TestHandleCommand:
    async def test_quit(self) -> None:
        assert await _handle_command("/quit", _make_manager(), ReplState("main"))

    async def test_thread_switch(self, capsys: pytest.CaptureFixture[str]) -> None:
        state = ReplState("main")
        assert not await _handle_command("/thread feature-x", _make_manager(), state)
        assert state.thread == "feature-x"
        assert "feature-x" in capsys.readouterr().out

    async def test_thread_without_name_shows_current(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        await _handle_command("/thread", _make_manager(), ReplState("main"))
        assert "Current thread: main" in capsys.readouterr().out

    async def test_new_skips_existing_threads(self) -> None:
        state = ReplState("main")
        await _handle_command("/new", _make_manager(keys=["thread-1"]), state)
        assert state.thread == "thread-2"

    async def test_threads_lists_sessions(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        manager = _make_manager(keys=["main", "other"])
        manager.get_entry.side_effect = lambda key: SimpleNamespace(
            session=SimpleNamespace(
                state=SessionState.BUSY if key == "main" else SessionState.READY
            ),
            queue=deque(["x"]) if key == "main" else deque(),
        )
        await _handle_command("/threads", manager, ReplState("main"))
        out = capsys.readouterr().out
        assert "* main (busy, 1 queued)" in out
        assert "  other (ready)" in out

    async def test_threads_empty(self, capsys: pytest.CaptureFixture[str]) -> None:
        await _handle_command("/threads", _make_manager(), ReplState("main"))
        assert "No active sessions" in capsys.readouterr().out

    async def test_restart_removes_current(self) -> None:
        manager = _make_manager()
        await _handle_command("/restart", manager, ReplState("main"))
        manager.remove.assert_awaited_once_with("main")

    async def test_attach_sends_file(self, tmp_path: Path) -> None:
        file = tmp_path / "report.csv"
        file.write_bytes(b"a,b\n")
        manager = _make_manager()

        await _handle_command(f"/attach {file} summarize this", manager, ReplState("main"))

        args, kwargs = manager.handle_message.call_args
        assert args == ("main", "summarize this")
        [attachment] = kwargs["attachments"]
        assert attachment.name == "report.csv"
        assert attachment.data == b"a,b\n"

    async def test_attach_missing_file(self, tmp_path: Path) -> None:
        manager = _make_manager()
        await _handle_command(f"/attach {tmp_path / 'nope'}", manager, ReplState("main"))
        manager.handle_message.assert_not_called()

    async def test_unknown(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert not await _handle_command("/bogus", _make_manager(), ReplState("main"))
        assert "Unknown command" in capsys.readouterr().out


# ------------------------------------------------------------------ #
# REPL loop
# ------------------------------------------------------------------ #


class TestReplLoop:
    async def test_lines_go_to_current_thread(self) -> None:
        manager = _make_manager()
        state = await _run_lines(["hello", "", "/thread b", "hi"], manager)

        calls = [c.args for c in manager.handle_message.call_args_list]
        assert calls == [("main", "hello"), ("b", "hi")]
        assert state.thread == "b"

    async def test_quit_stops_reading(self) -> None:
        manager = _make_manager()
        await _run_lines(["/quit", "never sent"], manager)
        manager.handle_message.assert_not_called()

    async def test_open_choice_consumes_line(self) -> None:
        manager = _make_manager()
        chat = ConsoleChat(echo=MagicMock())
        prompt = ChoicePrompt(question="Pick", options=[ChoiceOption(label="A")])
        choice = asyncio.create_task(chat.ask_choice("main", prompt))
        await asyncio.sleep(0)

        await _run_lines(["1", "after"], manager, chat)

        assert await choice == "A"
        calls = [c.args for c in manager.handle_message.call_args_list]
        assert calls == [("main", "after")]
