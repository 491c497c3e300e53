"""SessionManager: one agent session per chat thread, with recovery.

The manager owns the registry ``conversation key -> ConversationEntry``
and is the only place sessions are created, replaced or torn down.  It
routes inbound text to the right session, turns session events into chat
events, and applies two recovery policies:

* **Overflow recovery**: when a turn's text matches the overflow
  pattern, the session is replaced under the same key and the last input
  is resent automatically.
* **Fatal exit**: a nonzero exit of the registered session is reported
  once and the key is deregistered; the next message starts fresh.

Inputs that arrive while a turn is in flight are queued per thread and
sent, in order, once the turn's result has been handled.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from collections import deque
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from threadline.bridge.buffer import OutputBuffer
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
from threadline.bridge.formatting import (
    combine_turn_text,
    format_stderr_preview,
    format_tool_notice,
    friendly_error,
    truncate_message,
)
from threadline.bridge.session import AgentSession, SessionError
from threadline.chat.models import (
    ChatEvent,
    ChoicePrompt,
    DiagnosticNotice,
    FatalExitNotice,
    QuestionMessage,
    SessionErrorNotice,
    StatusNotice,
    ToolNotice,
    TurnCompleted,
    TurnStarted,
)
from threadline.chat.sink import ChatSink
from threadline.config.models import AgentCommandConfig, BridgeConfig
from threadline.constants import AGENT_STREAM_FLAGS
from threadline.sandbox.base import Sandbox, upload_path

logger = logging.getLogger(__name__)

SessionFactory = Callable[..., AgentSession]

#: stderr lines kept per conversation for fatal-exit notices.
_STDERR_TAIL = 20


@dataclass(frozen=True)
class Attachment:
    """A file the user attached to a chat message."""

    name: str
    data: bytes


@dataclass
class ConversationEntry:
    """Registry state for one conversation key."""

    key: str
    session: AgentSession
    buffer: OutputBuffer
    last_input: str | None = None
    #: Origin of the input currently in flight.
    origin: Any = None
    #: ``(text, origin)`` pairs waiting for the current turn to finish.
    queue: deque[tuple[str, Any]] = field(default_factory=deque)
    choice_tasks: set[asyncio.Task[None]] = field(default_factory=set)
    choice_prompted: bool = False
    overflow_retries: int = 0
    stderr_tail: deque[str] = field(default_factory=lambda: deque(maxlen=_STDERR_TAIL))

    def cancel_pending(self) -> None:
        """Cancel the debounce timer and any open choice waits."""
        self.buffer.cancel()
        current = asyncio.current_task()
        for task in list(self.choice_tasks):
            if task is not current and not task.done():
                task.cancel()
        self.choice_tasks.clear()


def parse_choice_prompts(tool_input: dict[str, Any]) -> list[ChoicePrompt]:
    """Extract ``{question, options[]}`` entries from a choice tool input.

    Entries that do not validate are skipped; an empty list means the
    input could not be understood.
    """
    questions = tool_input.get("questions")
    if not isinstance(questions, list):
        return []
    prompts: list[ChoicePrompt] = []
    for raw in questions:
        try:
            prompts.append(ChoicePrompt.model_validate(raw))
        except ValidationError:
            logger.debug("Skipping malformed choice entry: %r", raw)
    return prompts


class SessionManager:
    """Registry and supervisor of per-thread agent sessions."""

    def __init__(
        self,
        sandbox: Sandbox,
        chat: ChatSink,
        bridge: BridgeConfig | None = None,
        agent: AgentCommandConfig | None = None,
        session_factory: SessionFactory = AgentSession,
    ) -> None:
        self._sandbox = sandbox
        self._chat = chat
        self._bridge = bridge or BridgeConfig()
        self._agent = agent or AgentCommandConfig()
        self._session_factory = session_factory
        self._overflow_re = re.compile(self._bridge.overflow_pattern, re.IGNORECASE)
        self._entries: dict[str, ConversationEntry] = {}
        self._spawn_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------ #
    # Registry
    # ------------------------------------------------------------------ #

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[str]:
        return list(self._entries)

    def get_entry(self, key: str) -> ConversationEntry | None:
        return self._entries.get(key)

    def get_session(self, key: str) -> AgentSession | None:
        entry = self._entries.get(key)
        return entry.session if entry is not None else None

    @property
    def agent_command(self) -> list[str]:
        """Host command line that launches one agent session."""
        argv = [self._agent.command, *AGENT_STREAM_FLAGS, *self._agent.extra_args]
        return self._sandbox.wrap_command(argv)

    # ------------------------------------------------------------------ #
    # Inbound
    # ------------------------------------------------------------------ #

    async def handle_message(
        self,
        key: str,
        text: str,
        *,
        origin: Any = None,
        attachments: Iterable[Attachment] = (),
    ) -> bool:
        """Route user *text* to the session for *key*, creating it if needed.

        Returns ``True`` if the text was sent or queued.
        """
        entry = await self._resolve(key)
        if entry is None:
            return False

        text = await self._append_attachments(text, attachments)
        return await self._submit(entry, text, origin, notify=True)

    async def remove(self, key: str) -> bool:
        """Stop the session for *key* and forget everything about it."""
        entry = self._entries.pop(key, None)
        if entry is None:
            return False
        entry.cancel_pending()
        entry.session.stop()
        self._release_lock(key)
        logger.info("%s: conversation deregistered", key)
        return True

    async def shutdown(self) -> None:
        """Close every session gracefully and clear the registry."""
        entries = list(self._entries.values())
        self._entries.clear()
        self._spawn_locks.clear()
        for entry in entries:
            entry.cancel_pending()
        results = await asyncio.gather(
            *(entry.session.close() for entry in entries),
            return_exceptions=True,
        )
        for entry, result in zip(entries, results, strict=True):
            if isinstance(result, BaseException):
                logger.error("%s: error closing session: %s", entry.key, result)

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    def _creation_lock(self, key: str) -> asyncio.Lock:
        lock = self._spawn_locks.get(key)
        if lock is None:
            lock = self._spawn_locks[key] = asyncio.Lock()
        return lock

    def _release_lock(self, key: str) -> None:
        lock = self._spawn_locks.get(key)
        if lock is not None and not lock.locked():
            del self._spawn_locks[key]

    async def _resolve(self, key: str) -> ConversationEntry | None:
        # Concurrent first messages for a key wait here and reuse one session.
        async with self._creation_lock(key):
            return await self._live_or_spawn(key)

    async def _live_or_spawn(self, key: str) -> ConversationEntry | None:
        entry = self._entries.get(key)
        if entry is not None and entry.session.is_alive():
            return entry
        if entry is not None:
            # Dead but never reported; drop it and start over.
            del self._entries[key]
            entry.cancel_pending()
            entry.session.stop()
        return await self._spawn(key)

    async def _spawn(self, key: str) -> ConversationEntry | None:
        """Create, register and start a session; call with the key's lock held."""
        if not await self._sandbox.ensure_running():
            await self._deliver(
                SessionErrorNotice(
                    key=key,
                    text=friendly_error("the sandbox is not running. Try again shortly."),
                )
            )
            return None

        session: AgentSession | None = None

        async def _handler(event: SessionEvent) -> None:
            assert session is not None
            await self._on_session_event(session, event)

        handler: SessionEventHandler = _handler
        session = self._session_factory(
            key,
            self.agent_command,
            handler,
            cwd=self._sandbox.workdir,
        )
        entry = ConversationEntry(
            key=key,
            session=session,
            buffer=OutputBuffer(
                on_question=functools.partial(self._deliver_question, key),
                debounce=self._bridge.question_debounce,
            ),
        )
        self._entries[key] = entry
        await session.start()

        if not session.is_alive():
            if self._entries.get(key) is entry:
                del self._entries[key]
            return None
        logger.info("%s: session registered", key)
        return entry

    def _is_current(self, entry: ConversationEntry) -> bool:
        return self._entries.get(entry.key) is entry

    async def _submit(
        self, entry: ConversationEntry, text: str, origin: Any, *, notify: bool
    ) -> bool:
        if not entry.session.is_busy():
            return await self._send(entry, text, origin)

        if len(entry.queue) >= self._bridge.max_queued:
            logger.warning("%s: queue full, rejecting input", entry.key)
            await self._deliver(
                StatusNotice(
                    key=entry.key,
                    text=f"Agent is busy and {len(entry.queue)} messages are waiting; "
                    "message rejected.",
                )
            )
            return False

        entry.queue.append((text, origin))
        logger.info("%s: turn in flight, input queued (%d)", entry.key, len(entry.queue))
        if notify:
            await self._deliver(
                StatusNotice(key=entry.key, text="Agent is busy, message queued.")
            )
        return True

    async def _send(self, entry: ConversationEntry, text: str, origin: Any) -> bool:
        try:
            entry.session.send_message(text)
        except SessionError as exc:
            logger.error("%s: %s", entry.key, exc)
            if self._is_current(entry):
                del self._entries[entry.key]
            entry.cancel_pending()
            entry.session.stop()
            await self._deliver(
                SessionErrorNotice(
                    key=entry.key,
                    text=friendly_error("failed to send the message to the agent."),
                )
            )
            return False

        entry.last_input = text
        entry.origin = origin
        await self._deliver(TurnStarted(key=entry.key))
        return True

    async def _append_attachments(
        self, text: str, attachments: Iterable[Attachment]
    ) -> str:
        paths: list[str] = []
        for attachment in attachments:
            dest = upload_path(self._sandbox.uploads_dir, attachment.name)
            try:
                await self._sandbox.write_file(dest, attachment.data)
            except (OSError, RuntimeError, ValueError) as exc:
                logger.error("Failed to upload attachment %s: %s", attachment.name, exc)
                continue
            paths.append(dest)

        if not paths:
            return text
        file_list = "\n".join(f"  {p}" for p in paths)
        return f"{text}\n\n[Attached files uploaded to sandbox:\n{file_list}\n]"

    # ------------------------------------------------------------------ #
    # Session events
    # ------------------------------------------------------------------ #

    async def _on_session_event(self, session: AgentSession, event: SessionEvent) -> None:
        entry = self._entries.get(event.key)
        if entry is None or entry.session is not session:
            logger.debug("%s: ignoring %s from a replaced session", event.key, event.type)
            return

        match event:
            case TextDelta():
                entry.buffer.add_delta(event.text)
            case ToolInvoked():
                await self._on_tool(entry, event)
            case TurnResult():
                await self._on_turn_result(entry, event)
            case SessionDiagnostic():
                logger.warning("%s: agent stderr: %s", entry.key, event.text)
                entry.stderr_tail.append(event.text)
                await self._deliver(DiagnosticNotice(key=entry.key, text=event.text))
            case SessionFailed():
                await self._deliver(
                    SessionErrorNotice(key=entry.key, text=friendly_error(event.error))
                )
            case SessionExited():
                await self._on_exit(entry, event)

    async def _on_tool(self, entry: ConversationEntry, event: ToolInvoked) -> None:
        logger.debug("%s: tool %s", entry.key, event.name)
        if event.name == self._bridge.choice_tool:
            prompts = parse_choice_prompts(event.input)
            if prompts:
                entry.buffer.discard()
                entry.choice_prompted = True
                task = asyncio.create_task(self._run_choices(entry, prompts))
                entry.choice_tasks.add(task)
                task.add_done_callback(entry.choice_tasks.discard)
                return
            logger.info(
                "%s: %s input has no parseable questions, treating as a tool notice",
                entry.key,
                event.name,
            )

        await self._deliver(
            ToolNotice(
                key=entry.key,
                tool=event.name,
                summary=format_tool_notice(event.name, event.input),
            )
        )

    async def _run_choices(
        self, entry: ConversationEntry, prompts: Sequence[ChoicePrompt]
    ) -> None:
        for prompt in prompts:
            if not prompt.options:
                await self._deliver(QuestionMessage(key=entry.key, text=prompt.question))
                continue
            answer = await self._await_choice(entry.key, prompt)
            if not self._is_current(entry):
                return
            await self._submit(entry, answer, entry.origin, notify=False)

    async def _await_choice(self, key: str, prompt: ChoicePrompt) -> str:
        fallback = self._bridge.fallback_answer
        try:
            answer = await asyncio.wait_for(
                self._chat.ask_choice(key, prompt),
                timeout=self._bridge.choice_timeout,
            )
        except TimeoutError:
            logger.info("%s: no answer to %r, sending %r", key, prompt.question, fallback)
            return fallback
        except Exception:
            logger.exception("%s: choice prompt failed", key)
            return fallback
        if answer is None or not answer.strip():
            return fallback
        return answer.strip()

    async def _on_turn_result(self, entry: ConversationEntry, event: TurnResult) -> None:
        narrative = entry.buffer.take_narrative()
        combined = f"{narrative}\n{event.text}"
        overflow = self._overflow_re.search(combined) is not None

        if overflow:
            if entry.last_input and entry.overflow_retries < self._bridge.max_overflow_retries:
                await self._recover_overflow(entry)
                return
            logger.warning("%s: context overflow persists after retry", entry.key)

        await self._finalize_turn(
            entry,
            narrative,
            event.text,
            success=not (event.is_error or overflow),
        )

    async def _recover_overflow(self, entry: ConversationEntry) -> None:
        key = entry.key
        last_input = entry.last_input
        assert last_input is not None
        logger.warning("%s: context overflow, restarting session and retrying", key)

        entry.cancel_pending()
        entry.buffer.reset_turn()
        async with self._creation_lock(key):
            entry.session.stop()
            if self._is_current(entry):
                del self._entries[key]
            replacement = await self._live_or_spawn(key)
        if replacement is None:
            return
        replacement.overflow_retries = entry.overflow_retries + 1
        await self._submit(replacement, last_input, entry.origin, notify=False)
        replacement.queue.extend(entry.queue)

    async def _finalize_turn(
        self,
        entry: ConversationEntry,
        narrative: str,
        result_text: str,
        *,
        success: bool,
    ) -> None:
        await entry.buffer.flush_question()

        if entry.choice_prompted:
            text = ""
        else:
            text = combine_turn_text(
                narrative, result_text, entry.buffer.delivered_questions
            )
        if not success and not text:
            text = friendly_error("the agent encountered an error while processing.")

        entry.buffer.reset_turn()
        entry.choice_prompted = False
        entry.overflow_retries = 0

        await self._deliver(
            TurnCompleted(
                key=entry.key,
                success=success,
                text=truncate_message(text),
                origin=entry.origin,
            )
        )

        if entry.queue and self._is_current(entry) and not entry.session.is_busy():
            text, origin = entry.queue.popleft()
            await self._send(entry, text, origin)

    async def _on_exit(self, entry: ConversationEntry, event: SessionExited) -> None:
        code = event.returncode
        del self._entries[entry.key]
        entry.cancel_pending()
        self._release_lock(entry.key)

        if code is None or code == 0:
            logger.info("%s: session ended", entry.key)
            return

        logger.error("%s: session exited with code %d", entry.key, code)
        text = friendly_error(
            f"the agent session exited with code {code}. "
            "Send a new message or restart to begin a fresh session."
        )
        stderr_preview = format_stderr_preview("\n".join(entry.stderr_tail))
        if stderr_preview:
            text += f"\nStderr:\n  {stderr_preview}"
        await self._deliver(
            FatalExitNotice(key=entry.key, returncode=code, text=truncate_message(text))
        )

    # ------------------------------------------------------------------ #
    # Outbound
    # ------------------------------------------------------------------ #

    async def _deliver_question(self, key: str, text: str) -> None:
        await self._deliver(QuestionMessage(key=key, text=truncate_message(text)))

    async def _deliver(self, event: ChatEvent) -> None:
        try:
            await self._chat.deliver(event.key, event)
        except Exception:
            logger.exception("%s: failed to deliver %s", event.key, event.type)
