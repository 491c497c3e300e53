"""Typed events an AgentSession reports to its owner."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _SessionEventBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Conversation key of the emitting session")


class TextDelta(_SessionEventBase):
    """A streamed chunk of assistant text."""

    type: Literal["text_delta"] = "text_delta"
    text: str


class ToolInvoked(_SessionEventBase):
    """The agent called a tool."""

    type: Literal["tool_invoked"] = "tool_invoked"
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


class TurnResult(_SessionEventBase):
    """The agent finished a turn."""

    type: Literal["turn_result"] = "turn_result"
    text: str = ""
    is_error: bool = False


class SessionDiagnostic(_SessionEventBase):
    """A line the agent wrote to stderr.  Non-fatal."""

    type: Literal["diagnostic"] = "diagnostic"
    text: str


class SessionFailed(_SessionEventBase):
    """The subprocess could not be spawned."""

    type: Literal["failed"] = "failed"
    error: str


class SessionExited(_SessionEventBase):
    """The subprocess exited on its own."""

    type: Literal["exited"] = "exited"
    returncode: int | None


SessionEvent = (
    TextDelta
    | ToolInvoked
    | TurnResult
    | SessionDiagnostic
    | SessionFailed
    | SessionExited
)

#: Callback receiving every event of one session, in emission order.
SessionEventHandler = Callable[[SessionEvent], Awaitable[None]]
