"""Shared constants for the Threadline runtime."""

from __future__ import annotations

#: Placeholder session id sent until the agent assigns a real one.
DEFAULT_SESSION_TOKEN = "default"

#: Flags that put the agent CLI into bidirectional stream-json mode.
#: Permission prompts are disabled because the process runs in a sandbox.
AGENT_STREAM_FLAGS = (
    "--print",
    "--output-format",
    "stream-json",
    "--input-format",
    "stream-json",
    "--verbose",
    "--dangerously-skip-permissions",
)

#: Seconds of silence before a pending question is sent.
DEFAULT_QUESTION_DEBOUNCE = 0.5

#: Seconds to wait for a choice selection.
DEFAULT_CHOICE_TIMEOUT = 300.0

#: Input sent to the agent when a choice prompt gets no answer.
DEFAULT_FALLBACK_ANSWER = "skip"

#: Tool the agent uses for structured multiple-choice questions.
DEFAULT_CHOICE_TOOL = "AskUserQuestion"

#: Diagnostic emitted by the agent when its context window is exceeded.
DEFAULT_OVERFLOW_PATTERN = r"prompt is too long"

#: Max characters in one outbound chat message.
MAX_MESSAGE_LENGTH = 2000
