"""Text helpers for classifying and rendering agent output."""

from __future__ import annotations

from typing import Any

from threadline.constants import MAX_MESSAGE_LENGTH

#: Max characters of a shell command quoted in a tool notice.
_COMMAND_PREVIEW_LEN = 100

_PATH_TOOLS = {
    "Read": "Read",
    "Edit": "Edited",
    "Write": "Created",
}

_PATTERN_TOOLS = {
    "Glob": "Searched files",
    "Grep": "Searched code",
}


def contains_question(text: str) -> bool:
    """True if the last non-blank line of *text* ends with ``?``."""
    for line in reversed(text.strip().split("\n")):
        stripped = line.strip()
        if stripped:
            return stripped.endswith("?")
    return False


def format_tool_notice(name: str, tool_input: dict[str, Any]) -> str:
    """One-line, human-readable summary of a tool invocation."""
    if name == "Bash":
        cmd = tool_input.get("command")
        if not isinstance(cmd, str) or not cmd:
            cmd = "unknown command"
        if len(cmd) > _COMMAND_PREVIEW_LEN:
            cmd = cmd[:_COMMAND_PREVIEW_LEN] + "..."
        return f"> Ran: `{cmd}`"
    if name in _PATH_TOOLS:
        return f"> {_PATH_TOOLS[name]}: `{tool_input.get('file_path') or 'unknown'}`"
    if name in _PATTERN_TOOLS:
        return f"> {_PATTERN_TOOLS[name]}: `{tool_input.get('pattern') or 'unknown'}`"
    return f"> Used tool: {name}"


def friendly_error(message: str) -> str:
    return f"Something went wrong: {message}"


def format_stderr_preview(stderr_text: str, max_lines: int = 5) -> str:
    """Extract and format the last N non-empty lines from stderr output."""
    lines = [line for line in stderr_text.split("\n") if line.strip()]
    last = lines[-max_lines:] if len(lines) > max_lines else lines
    return "\n  ".join(last)


def combine_turn_text(narrative: str, result: str, delivered: str = "") -> str:
    """Merge the buffered narrative with the turn's final result text.

    The agent's ``result`` usually repeats the last assistant message, so
    it is only appended when it adds something the narrative (or text
    already *delivered* as a question) does not already end with.
    """
    narrative = narrative.strip()
    result = result.strip()
    if not result or result in delivered:
        return narrative
    if not narrative:
        return result
    if narrative.endswith(result):
        return narrative
    return f"{narrative}\n\n{result}"


def truncate_message(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Shorten *text* to fit one chat message, noting the cut."""
    if len(text) <= limit:
        return text
    note = "\n\n*(response truncated)*"
    return text[: max(0, limit - len(note))] + note
