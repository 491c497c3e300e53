"""AgentSession: one agent CLI subprocess speaking stream-json over stdio."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from collections.abc import Sequence

from threadline.bridge.events import (
    SessionDiagnostic,
    SessionEvent,
    SessionEventHandler,
    SessionExited,
    SessionFailed,
    TextDelta,
    ToolInvoked,
    TurnResult,
)
from threadline.bridge.framing import LineFramer
from threadline.bridge.protocol import (
    AssistantRecord,
    ResultRecord,
    TextBlock,
    decode_line,
    encode_user_message,
)
from threadline.constants import DEFAULT_SESSION_TOKEN

logger = logging.getLogger(__name__)

#: Bytes requested per stdout read.
_READ_CHUNK = 65_536

#: Seconds to wait for the agent to exit after stdin closes.
_SHUTDOWN_WAIT = 5.0

#: Seconds to wait after SIGTERM before SIGKILL.
_SIGTERM_WAIT = 3.0

#: Seconds stdout EOF waits for stderr to drain before reporting the exit.
_STDERR_DRAIN_WAIT = 1.0


class SessionState(enum.StrEnum):
    STARTING = "starting"
    READY = "ready"
    BUSY = "busy"
    TERMINATED = "terminated"


class SessionError(Exception):
    """Base class for session failures surfaced to the caller."""


class SessionNotStartedError(SessionError):
    """Input was sent to a session that is not running."""


class SessionWriteError(SessionError):
    """The agent's stdin could not be written."""


class AgentSession:
    """One live agent conversation bound to one subprocess.

    stdout is read in chunks, framed into lines, decoded into protocol
    records and re-emitted as typed events through *on_event*, awaited in
    the order the agent wrote them.  stderr lines become
    ``SessionDiagnostic`` events.  When stdout reaches EOF the exit code
    is reported as ``SessionExited``.

    The session never restarts itself; recovery belongs to the owner.
    """

    def __init__(
        self,
        key: str,
        command: Sequence[str],
        on_event: SessionEventHandler,
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
    ) -> None:
        if not command:
            msg = "Agent command must not be empty"
            raise ValueError(msg)
        self.key = key
        self._command = list(command)
        self._on_event = on_event
        self._cwd = cwd
        self._env = env

        self._process: asyncio.subprocess.Process | None = None
        self._state = SessionState.STARTING
        self._remote_token: str | None = None
        self._framer = LineFramer()
        self._stdout_task: asyncio.Task[None] | None = None
        self._stderr_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------ #
    # Properties
    # ------------------------------------------------------------------ #

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def remote_session_token(self) -> str | None:
        """Session id assigned by the agent, ``None`` until first seen."""
        return self._remote_token

    @property
    def pid(self) -> int | None:
        if self._process is None:
            return None
        return self._process.pid

    def is_alive(self) -> bool:
        return self._process is not None and self._process.returncode is None

    def is_busy(self) -> bool:
        return self._state is SessionState.BUSY

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def start(self) -> None:
        """Spawn the agent subprocess and begin reading its output.

        Spawn failures are reported as a ``SessionFailed`` event and leave
        the session ``TERMINATED``; they are not raised.
        """
        if self._process is not None:
            return
        if self._state is SessionState.TERMINATED:
            msg = f"Session '{self.key}' was stopped and cannot be restarted"
            raise SessionError(msg)

        try:
            proc = await asyncio.create_subprocess_exec(
                *self._command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=self._cwd,
                env=self._env,
                start_new_session=True,
            )
        except FileNotFoundError:
            await self._fail(f"Agent CLI not found: {self._command[0]}")
            return
        except OSError as exc:
            await self._fail(f"Failed to spawn agent CLI: {exc}")
            return

        if self._state is SessionState.TERMINATED:
            # stop() ran while the spawn was in flight.
            logger.info("%s: stopped during start, terminating pid %s", self.key, proc.pid)
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
            return

        self._process = proc
        self._state = SessionState.READY
        logger.info("%s: agent started (pid %s)", self.key, proc.pid)
        self._stdout_task = asyncio.create_task(self._read_stdout(proc))
        self._stderr_task = asyncio.create_task(self._read_stderr(proc))

    def send_message(self, text: str) -> None:
        """Write one ``user`` record and mark the session busy.

        The write is not awaited for delivery.

        Raises:
            SessionNotStartedError: Before ``start()`` or after ``stop()``.
            SessionWriteError: The agent's stdin is closed or broken.
        """
        proc = self._process
        if proc is None or proc.stdin is None or self._state is SessionState.TERMINATED:
            msg = f"Session '{self.key}' is not started"
            raise SessionNotStartedError(msg)

        if proc.stdin.is_closing():
            msg = f"Session '{self.key}': agent stdin is closed"
            raise SessionWriteError(msg)
        try:
            proc.stdin.write(encode_user_message(text, self._remote_token))
        except (BrokenPipeError, ConnectionResetError, OSError) as exc:
            msg = f"Session '{self.key}': failed to write to agent: {exc}"
            raise SessionWriteError(msg) from exc

        self._state = SessionState.BUSY

    def stop(self) -> None:
        """Terminate the subprocess without waiting.

        Clears the session token, framing state and busy flag.  No further
        events are emitted.  Safe to call from inside an event callback.
        """
        proc = self._process
        self._process = None
        self._state = SessionState.TERMINATED
        self._remote_token = None
        self._framer.reset()

        if proc is not None and proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                proc.terminate()
            logger.info("%s: agent stopped", self.key)
        self._cancel_readers()

    async def close(self) -> None:
        """Graceful shutdown: close stdin -> wait -> SIGTERM -> SIGKILL."""
        proc = self._process
        self._process = None
        self._state = SessionState.TERMINATED
        self._remote_token = None
        self._framer.reset()

        if proc is not None and proc.returncode is None:
            try:
                if proc.stdin is not None:
                    proc.stdin.close()
            except (BrokenPipeError, ConnectionResetError, OSError):
                pass

            try:
                await asyncio.wait_for(proc.wait(), timeout=_SHUTDOWN_WAIT)
            except TimeoutError:
                with contextlib.suppress(ProcessLookupError):
                    proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=_SIGTERM_WAIT)
                except TimeoutError:
                    with contextlib.suppress(ProcessLookupError):
                        proc.kill()
                    await proc.wait()

        readers = self._cancel_readers()
        if readers:
            await asyncio.gather(*readers, return_exceptions=True)

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    async def _fail(self, error: str) -> None:
        logger.error("%s: %s", self.key, error)
        self._state = SessionState.TERMINATED
        await self._emit(SessionFailed(key=self.key, error=error))

    def _cancel_readers(self) -> list[asyncio.Task[None]]:
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        cancelled: list[asyncio.Task[None]] = []
        for task in (self._stdout_task, self._stderr_task):
            if task is None or task is current or task.done():
                continue
            task.cancel()
            cancelled.append(task)
        return cancelled

    async def _emit(self, event: SessionEvent) -> None:
        try:
            await self._on_event(event)
        except Exception:
            logger.exception("%s: error handling %s event", self.key, event.type)

    async def _read_stdout(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stdout is None:
            return

        try:
            while True:
                chunk = await proc.stdout.read(_READ_CHUNK)
                if not chunk:
                    break
                for line in self._framer.feed(chunk):
                    if self._process is not proc:
                        return
                    await self._handle_line(line)

            tail = self._framer.pending
            self._framer.reset()
            if tail.strip() and self._process is proc:
                await self._handle_line(tail.decode("utf-8", errors="replace"))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("%s: error reading agent stdout: %s", self.key, exc)

        stderr_task = self._stderr_task
        if stderr_task is not None and not stderr_task.done():
            await asyncio.wait({stderr_task}, timeout=_STDERR_DRAIN_WAIT)

        if self._process is not proc:
            return
        returncode = await proc.wait()
        if self._process is not proc:
            return
        self._state = SessionState.TERMINATED
        logger.info("%s: agent exited with code %s", self.key, returncode)
        await self._emit(SessionExited(key=self.key, returncode=returncode))

    async def _read_stderr(self, proc: asyncio.subprocess.Process) -> None:
        if proc.stderr is None:
            return

        while True:
            try:
                raw = await proc.stderr.readline()
            except ValueError:
                logger.warning("%s: stderr line exceeded buffer limit", self.key)
                continue
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.debug("%s: stderr closed: %s", self.key, exc)
                return
            if not raw:
                return
            text = raw.decode("utf-8", errors="replace").strip()
            if text and self._process is proc:
                await self._emit(SessionDiagnostic(key=self.key, text=text))

    async def _handle_line(self, line: str) -> None:
        stripped = line.strip()
        if not stripped:
            return
        record = decode_line(stripped)
        if record is None:
            return

        if (
            self._remote_token is None
            and record.session_id
            and record.session_id != DEFAULT_SESSION_TOKEN
        ):
            self._remote_token = record.session_id

        if isinstance(record, AssistantRecord):
            for block in record.blocks:
                if isinstance(block, TextBlock):
                    await self._emit(TextDelta(key=self.key, text=block.text))
                else:
                    await self._emit(
                        ToolInvoked(key=self.key, name=block.name, input=block.input)
                    )
        elif isinstance(record, ResultRecord):
            if self._state is SessionState.BUSY:
                self._state = SessionState.READY
            await self._emit(
                TurnResult(key=self.key, text=record.text, is_error=record.is_error)
            )
