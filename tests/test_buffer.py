"""Tests for OutputBuffer question coalescing."""

from __future__ import annotations

import asyncio

from threadline.bridge.buffer import OutputBuffer

DEBOUNCE = 0.02


def _make_buffer(delivered: list[str], debounce: float = DEBOUNCE) -> OutputBuffer:
    async def _on_question(text: str) -> None:
        delivered.append(text)

    return OutputBuffer(on_question=_on_question, debounce=debounce)


class TestNarrative:
    async def test_plain_text_is_held(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("Working on it. ")
        buf.add_delta("Done.")
        await asyncio.sleep(DEBOUNCE * 3)
        assert delivered == []
        assert buf.take_narrative() == "Working on it. Done."
        assert buf.narrative == ""

    async def test_text_without_question_arms_nothing(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("4")
        assert buf.pending_question is None
        assert not buf.timer_armed


class TestQuestions:
    async def test_question_flushed_after_debounce(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("Should I use TypeScript or Python?")
        assert buf.timer_armed
        assert delivered == []
        await asyncio.sleep(DEBOUNCE * 5)
        assert delivered == ["Should I use TypeScript or Python?"]
        assert buf.pending_question is None

    async def test_late_deltas_join_pending_question(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered, debounce=0.05)
        buf.add_delta("Which framework?")
        await asyncio.sleep(0.01)
        buf.add_delta(" Let me know.")
        await asyncio.sleep(0.2)
        assert delivered == ["Which framework? Let me know."]

    async def test_narrative_before_question_is_part_of_it(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("I found two options.\n")
        buf.add_delta("Which one?")
        await asyncio.sleep(DEBOUNCE * 5)
        assert delivered == ["I found two options.\nWhich one?"]
        assert buf.take_narrative() == ""

    async def test_flush_question_delivers_immediately(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered, debounce=10)
        buf.add_delta("Proceed?")
        await buf.flush_question()
        assert delivered == ["Proceed?"]
        assert not buf.timer_armed
        assert buf.delivered_questions == "Proceed?"

    async def test_cancel_prevents_delivery(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("Proceed?")
        buf.cancel()
        await asyncio.sleep(DEBOUNCE * 5)
        assert delivered == []

    async def test_discard_drops_everything(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("Proceed?")
        buf.discard()
        await buf.flush_question()
        assert delivered == []
        assert buf.pending_question is None

    async def test_reset_turn_clears_delivered(self) -> None:
        delivered: list[str] = []
        buf = _make_buffer(delivered)
        buf.add_delta("Proceed?")
        await buf.flush_question()
        buf.reset_turn()
        assert buf.delivered_questions == ""

    async def test_callback_error_is_logged_not_raised(self) -> None:
        async def _boom(text: str) -> None:
            raise RuntimeError("chat down")

        buf = OutputBuffer(on_question=_boom, debounce=DEBOUNCE)
        buf.add_delta("Proceed?")
        await buf.flush_question()
        assert buf.pending_question is None
