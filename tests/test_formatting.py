"""Tests for the text helpers in threadline.bridge.formatting."""

from __future__ import annotations

from threadline.bridge.formatting import (
    combine_turn_text,
    contains_question,
    format_stderr_preview,
    format_tool_notice,
    friendly_error,
    truncate_message,
)


class TestContainsQuestion:
    def test_trailing_question_mark(self) -> None:
        assert contains_question("Should I use TypeScript or Python?")

    def test_question_on_last_nonblank_line(self) -> None:
        assert contains_question("Here is the plan.\nShall I proceed?\n\n  ")

    def test_question_mark_mid_text(self) -> None:
        assert not contains_question("Is it done? Yes, it is.")

    def test_question_not_on_last_line(self) -> None:
        assert not contains_question("Ready?\nStarting now.")

    def test_empty(self) -> None:
        assert not contains_question("")
        assert not contains_question("   \n ")


class TestFormatToolNotice:
    def test_bash(self) -> None:
        assert format_tool_notice("Bash", {"command": "ls -la"}) == "> Ran: `ls -la`"

    def test_bash_long_command_truncated(self) -> None:
        notice = format_tool_notice("Bash", {"command": "x" * 150})
        assert notice == f"> Ran: `{'x' * 100}...`"

    def test_bash_missing_command(self) -> None:
        assert format_tool_notice("Bash", {}) == "> Ran: `unknown command`"

    def test_file_tools(self) -> None:
        assert format_tool_notice("Read", {"file_path": "/a.py"}) == "> Read: `/a.py`"
        assert format_tool_notice("Edit", {"file_path": "/a.py"}) == "> Edited: `/a.py`"
        assert format_tool_notice("Write", {"file_path": "/b.py"}) == "> Created: `/b.py`"

    def test_search_tools(self) -> None:
        assert format_tool_notice("Glob", {"pattern": "**/*.py"}) == (
            "> Searched files: `**/*.py`"
        )
        assert format_tool_notice("Grep", {"pattern": "TODO"}) == (
            "> Searched code: `TODO`"
        )

    def test_unknown_tool(self) -> None:
        assert format_tool_notice("WebFetch", {"url": "x"}) == "> Used tool: WebFetch"


class TestCombineTurnText:
    def test_result_equal_to_narrative_not_duplicated(self) -> None:
        assert combine_turn_text("4", "4") == "4"

    def test_narrative_ending_with_result(self) -> None:
        assert combine_turn_text("Working.\nDone: 4", "Done: 4") == "Working.\nDone: 4"

    def test_distinct_result_appended(self) -> None:
        assert combine_turn_text("Step one.", "All good.") == "Step one.\n\nAll good."

    def test_empty_narrative_uses_result(self) -> None:
        assert combine_turn_text("", "Result") == "Result"

    def test_result_already_delivered_as_question(self) -> None:
        assert combine_turn_text("", "Which one?", "Which one?") == ""

    def test_both_empty(self) -> None:
        assert combine_turn_text("  ", "") == ""


class TestMisc:
    def test_friendly_error(self) -> None:
        assert friendly_error("boom") == "Something went wrong: boom"

    def test_stderr_preview_keeps_last_lines(self) -> None:
        text = "\n".join(f"line {i}" for i in range(10)) + "\n\n"
        assert format_stderr_preview(text, max_lines=3) == "line 7\n  line 8\n  line 9"

    def test_truncate_short_text_untouched(self) -> None:
        assert truncate_message("short", limit=10) == "short"

    def test_truncate_long_text(self) -> None:
        out = truncate_message("x" * 5000)
        assert len(out) == 2000
        assert out.endswith("*(response truncated)*")
