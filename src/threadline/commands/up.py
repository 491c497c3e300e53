"""threadline up: run the session bridge with a terminal chat."""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import select
import signal
import sys
import threading
from dataclasses import dataclass
from pathlib import Path

import click

from threadline.bridge.manager import Attachment, SessionManager
from threadline.chat.console import ConsoleChat
from threadline.config.models import ThreadlineConfig
from threadline.config.parser import ConfigError, load_config
from threadline.sandbox import create_sandbox

logger = logging.getLogger(__name__)

#: Log line format used when ``-v`` is given.
_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


@dataclass
class ReplState:
    """Which thread plain lines go to."""

    thread: str
    new_count: int = 0

    def next_thread(self) -> str:
        self.new_count += 1
        return f"thread-{self.new_count}"


# ------------------------------------------------------------------ #
# Click command
# ------------------------------------------------------------------ #


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "-t",
    "--thread",
    "thread",
    default="main",
    show_default=True,
    help="Thread that plain input goes to at startup.",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def up(config_file: str | None, thread: str, verbose: bool) -> None:
    """Start the bridge and chat with agents from the terminal."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
    )
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    asyncio.run(_run_bridge(config, thread))


# ------------------------------------------------------------------ #
# Runner
# ------------------------------------------------------------------ #


async def _run_bridge(config: ThreadlineConfig, thread: str) -> None:
    """Wire sandbox, console chat and manager, then run the REPL."""
    sandbox = create_sandbox(config.sandbox)
    chat = ConsoleChat()
    manager = SessionManager(
        sandbox,
        chat,
        bridge=config.bridge,
        agent=config.agent,
    )

    where = config.sandbox.container if config.sandbox.type == "docker" else "host"
    click.echo("\n  Threadline")
    click.echo(f"  Agent:   {config.agent.command} | Sandbox: {config.sandbox.type} ({where})")
    click.echo(f"  Thread:  {thread} | /threads /thread NAME /new /restart /quit")
    click.echo()

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _signal_shutdown(sig_name: str) -> None:
        click.echo(f"\nReceived {sig_name}, shutting down...", err=True)
        shutdown_event.set()

    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_shutdown, sig.name)
        except (NotImplementedError, RuntimeError):
            continue
        installed.append(sig)

    try:
        await _repl_loop(manager, chat, ReplState(thread=thread), shutdown_event)
    finally:
        chat.cancel_choices()
        await manager.shutdown()
        for sig in installed:
            loop.remove_signal_handler(sig)
        click.echo("Sessions closed.")


# ------------------------------------------------------------------ #
# REPL loop
# ------------------------------------------------------------------ #


async def _repl_loop(
    manager: SessionManager,
    chat: ConsoleChat,
    state: ReplState,
    shutdown_event: asyncio.Event,
) -> None:
    """Read lines until ``/quit``, EOF or a shutdown signal."""
    thread_cancel = threading.Event()

    async def _bridge_shutdown() -> None:
        await shutdown_event.wait()
        thread_cancel.set()

    bridge_task = asyncio.create_task(_bridge_shutdown())
    loop = asyncio.get_running_loop()

    try:
        while not shutdown_event.is_set():
            try:
                line = await loop.run_in_executor(
                    None,
                    functools.partial(_read_input, thread_cancel),
                )
            except EOFError:
                break

            stripped = line.strip()

            # -- Slash commands --------------------------------------------
            if stripped.startswith("/"):
                should_break = await _handle_command(stripped, manager, state)
                if should_break:
                    break
                continue

            # -- Open choice prompt ----------------------------------------
            if chat.answer(line):
                continue

            if not stripped:
                continue

            # -- Plain text -> current thread ------------------------------
            await manager.handle_message(state.thread, line)
    finally:
        bridge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await bridge_task


def _read_input(cancel: threading.Event | None = None) -> str:
    r"""Blocking stdin reader for use with ``run_in_executor``.

    Polls stdin with ``select`` so a set *cancel* event ends the read
    with ``EOFError``.  Lines ending with ``\\`` continue onto the next
    line.
    """
    lines: list[str] = []
    prompt = "> "

    while True:
        sys.stdout.write(prompt)
        sys.stdout.flush()

        while cancel is not None and not cancel.is_set():
            ready, _, _ = select.select([sys.stdin], [], [], 0.5)
            if ready:
                break

        if cancel is not None and cancel.is_set():
            raise EOFError

        line = sys.stdin.readline()
        if not line:
            raise EOFError
        line = line.rstrip("\n")

        if line.endswith("\\"):
            lines.append(line[:-1])
            prompt = "... "
        else:
            lines.append(line)
            return "\n".join(lines)


async def _handle_command(
    line: str,
    manager: SessionManager,
    state: ReplState,
) -> bool:
    """Process a slash command. Returns ``True`` if the REPL should exit."""
    parts = line.split(None, 1)
    cmd = parts[0].lower()
    arg = parts[1].strip() if len(parts) > 1 else ""

    if cmd in ("/quit", "/exit"):
        return True

    if cmd == "/thread":
        if not arg:
            click.echo(f"Current thread: {state.thread}")
        else:
            state.thread = arg
            click.echo(f"Switched to thread '{arg}'")
        return False

    if cmd == "/new":
        state.thread = state.next_thread()
        while state.thread in manager:
            state.thread = state.next_thread()
        click.echo(f"Started thread '{state.thread}'")
        return False

    if cmd == "/threads":
        keys = manager.keys()
        if not keys:
            click.echo("  No active sessions")
        for key in keys:
            entry = manager.get_entry(key)
            if entry is None:
                continue
            marker = "*" if key == state.thread else " "
            queued = f", {len(entry.queue)} queued" if entry.queue else ""
            click.echo(f" {marker} {key} ({entry.session.state}{queued})")
        return False

    if cmd == "/restart":
        if await manager.remove(state.thread):
            click.echo(f"Session for '{state.thread}' stopped; next message starts fresh")
        else:
            click.echo(f"No session for '{state.thread}'")
        return False

    if cmd == "/attach":
        await _attach(arg, manager, state)
        return False

    click.echo(f"Unknown command: {cmd}")
    return False


async def _attach(arg: str, manager: SessionManager, state: ReplState) -> None:
    if not arg:
        click.echo("Usage: /attach PATH [message]")
        return
    parts = arg.split(None, 1)
    path = Path(parts[0]).expanduser()
    text = parts[1] if len(parts) > 1 else "Please look at the attached file."
    try:
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        click.echo(f"Cannot read {path}: {exc}", err=True)
        return
    await manager.handle_message(
        state.thread,
        text,
        attachments=[Attachment(name=path.name, data=data)],
    )
