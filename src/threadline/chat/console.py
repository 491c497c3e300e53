"""ConsoleChat: a terminal rendition of the chat platform."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import click

from threadline.bridge.formatting import truncate_message
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

logger = logging.getLogger(__name__)


@dataclass
class _PendingChoice:
    key: str
    prompt: ChoicePrompt
    future: asyncio.Future[str | None]


class ConsoleChat:
    """Renders chat events with ``click`` and answers choices from stdin.

    Every line is prefixed with the thread it belongs to.  Choice prompts
    are answered by the next line the REPL reads: an option number, free
    text, or an empty line to skip.  Prompts from several threads are
    answered in the order they were shown.
    """

    def __init__(
        self,
        echo: Callable[..., None] = click.echo,
        *,
        show_diagnostics: bool = True,
    ) -> None:
        self._echo = echo
        self._show_diagnostics = show_diagnostics
        self._choices: deque[_PendingChoice] = deque()

    @property
    def choice_pending(self) -> bool:
        return bool(self._choices)

    # ------------------------------------------------------------------ #
    # ChatSink
    # ------------------------------------------------------------------ #

    async def deliver(self, key: str, event: ChatEvent) -> None:
        prefix = click.style(f"[{key}]", bold=True)
        match event:
            case TurnStarted():
                self._echo(f"{prefix} " + click.style("working...", dim=True))
            case QuestionMessage():
                self._echo(f"{prefix} " + click.style(event.text, fg="cyan"))
            case ToolNotice():
                self._echo(f"{prefix} " + click.style(event.summary, dim=True))
            case TurnCompleted():
                if event.success:
                    mark = click.style("done", fg="green")
                else:
                    mark = click.style("failed", fg="red")
                self._echo(f"{prefix} {mark}")
                if event.text:
                    self._echo(truncate_message(event.text))
            case FatalExitNotice():
                self._echo(f"{prefix} " + click.style(event.text, fg="red"), err=True)
            case SessionErrorNotice():
                self._echo(f"{prefix} " + click.style(event.text, fg="red"), err=True)
            case DiagnosticNotice():
                if self._show_diagnostics:
                    self._echo(
                        f"{prefix} " + click.style(f"stderr: {event.text}", fg="yellow"),
                        err=True,
                    )
            case StatusNotice():
                self._echo(f"{prefix} " + click.style(event.text, fg="yellow"))

    async def ask_choice(self, key: str, prompt: ChoicePrompt) -> str | None:
        self._render_choice(key, prompt)
        future: asyncio.Future[str | None] = asyncio.get_running_loop().create_future()
        pending = _PendingChoice(key=key, prompt=prompt, future=future)
        self._choices.append(pending)
        try:
            return await future
        finally:
            if pending in self._choices:
                self._choices.remove(pending)

    # ------------------------------------------------------------------ #
    # Input
    # ------------------------------------------------------------------ #

    def answer(self, line: str) -> bool:
        """Resolve the oldest open choice with *line*.

        Returns ``False`` when no choice is waiting, so the caller can
        treat the line as an ordinary message.
        """
        while self._choices:
            pending = self._choices.popleft()
            if pending.future.done():
                continue
            pending.future.set_result(_resolve_answer(pending.prompt, line))
            return True
        return False

    def cancel_choices(self) -> None:
        while self._choices:
            pending = self._choices.popleft()
            if not pending.future.done():
                pending.future.cancel()

    def _render_choice(self, key: str, prompt: ChoicePrompt) -> None:
        prefix = click.style(f"[{key}]", bold=True)
        self._echo(f"{prefix} " + click.style(prompt.question, fg="cyan", bold=True))
        for i, option in enumerate(prompt.options, start=1):
            line = f"  {i}. {option.label}"
            if option.description:
                line += click.style(f" - {option.description}", dim=True)
            self._echo(line)
        self._echo(f"  {len(prompt.options) + 1}. Other (type your answer)")


def _resolve_answer(prompt: ChoicePrompt, line: str) -> str | None:
    text = line.strip()
    if not text:
        return None
    if text.isdigit():
        index = int(text)
        if 1 <= index <= len(prompt.options):
            return prompt.options[index - 1].label
        if index == len(prompt.options) + 1:
            return None
    return text
