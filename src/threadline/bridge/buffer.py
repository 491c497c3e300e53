"""OutputBuffer: coalesces streamed text into questions and narrative."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable

from threadline.bridge.formatting import contains_question

logger = logging.getLogger(__name__)

QuestionCallback = Callable[[str], Awaitable[None]]


class OutputBuffer:
    """Accumulates text deltas for one conversation turn.

    Narrative text is held until the turn ends.  As soon as the
    accumulated narrative ends with a question, the whole span becomes a
    pending question and a debounce timer is armed; deltas that arrive
    before it fires are appended to the question and re-arm the timer.
    When the timer fires the question is handed to *on_question* in one
    piece.
    """

    def __init__(self, on_question: QuestionCallback, debounce: float) -> None:
        self._on_question = on_question
        self._debounce = debounce
        self._narrative = ""
        self._question: str | None = None
        self._delivered: list[str] = []
        self._timer: asyncio.Task[None] | None = None

    @property
    def narrative(self) -> str:
        return self._narrative

    @property
    def pending_question(self) -> str | None:
        return self._question

    @property
    def delivered_questions(self) -> str:
        """All question text sent during the current turn."""
        return "\n".join(self._delivered)

    @property
    def timer_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def add_delta(self, text: str) -> None:
        if self._question is not None:
            self._question += text
            self._arm()
            return

        self._narrative += text
        if contains_question(self._narrative):
            self._question = self._narrative
            self._narrative = ""
            self._arm()

    async def flush_question(self) -> None:
        """Deliver any pending question immediately."""
        self._cancel_timer()
        await self._deliver()

    def take_narrative(self) -> str:
        text = self._narrative
        self._narrative = ""
        return text

    def discard(self) -> None:
        """Drop all buffered text and the pending timer."""
        self._cancel_timer()
        self._narrative = ""
        self._question = None

    def reset_turn(self) -> None:
        self.discard()
        self._delivered.clear()

    def cancel(self) -> None:
        self._cancel_timer()

    # ------------------------------------------------------------------ #
    # Internal
    # ------------------------------------------------------------------ #

    def _arm(self) -> None:
        self._cancel_timer()
        self._timer = asyncio.create_task(self._fire_after_delay())

    def _cancel_timer(self) -> None:
        timer = self._timer
        self._timer = None
        if timer is None or timer.done():
            return
        with contextlib.suppress(RuntimeError):
            if timer is not asyncio.current_task():
                timer.cancel()

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self._debounce)
        self._timer = None
        await self._deliver()

    async def _deliver(self) -> None:
        text = self._question
        self._question = None
        if text is None or not text.strip():
            return
        self._delivered.append(text)
        try:
            await self._on_question(text)
        except Exception:
            logger.exception("Failed to deliver question")
