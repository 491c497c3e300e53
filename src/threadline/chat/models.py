"""Pydantic v2 models for events delivered to the chat platform."""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _ChatEventBase(BaseModel):
    """Common envelope shared by every outbound chat event."""

    model_config = ConfigDict(frozen=True)

    key: str = Field(description="Conversation key (chat thread)")


class TurnStarted(_ChatEventBase):
    """An input was handed to the agent; platforms show a typing hint."""

    type: Literal["turn_started"] = "turn_started"


class QuestionMessage(_ChatEventBase):
    """The agent is asking the user something."""

    type: Literal["question"] = "question"
    text: str


class ToolNotice(_ChatEventBase):
    """Short notice that the agent used a tool."""

    type: Literal["tool_notice"] = "tool_notice"
    tool: str = Field(description="Tool name")
    summary: str = Field(description="Rendered one-line summary")


class TurnCompleted(_ChatEventBase):
    """A turn finished; carries the narrative for the thread."""

    type: Literal["turn_completed"] = "turn_completed"
    success: bool
    text: str = Field(default="", description="Completion text, may be empty")
    origin: Any = Field(
        default=None,
        description="Opaque reference to the message that opened the thread",
    )


class FatalExitNotice(_ChatEventBase):
    """The agent process died; the user must start over."""

    type: Literal["fatal_exit"] = "fatal_exit"
    returncode: int
    text: str


class DiagnosticNotice(_ChatEventBase):
    """Non-fatal stderr output from the agent."""

    type: Literal["diagnostic"] = "diagnostic"
    text: str


class SessionErrorNotice(_ChatEventBase):
    """A recoverable problem starting or talking to the agent."""

    type: Literal["session_error"] = "session_error"
    text: str


class StatusNotice(_ChatEventBase):
    """Informational notice from the bridge itself (queueing, restarts)."""

    type: Literal["status"] = "status"
    text: str


ChatEvent = Annotated[
    TurnStarted
    | QuestionMessage
    | ToolNotice
    | TurnCompleted
    | FatalExitNotice
    | DiagnosticNotice
    | SessionErrorNotice
    | StatusNotice,
    Field(discriminator="type"),
]
"""Discriminated union of all outbound chat events."""


class ChoiceOption(BaseModel):
    """One selectable answer."""

    model_config = ConfigDict(extra="ignore")

    label: str = Field(min_length=1)
    description: str | None = None


class ChoicePrompt(BaseModel):
    """A structured multiple-choice question from the agent."""

    model_config = ConfigDict(extra="ignore")

    question: str = Field(min_length=1)
    options: list[ChoiceOption] = Field(default_factory=list)
