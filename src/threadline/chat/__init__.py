"""Chat-platform side of the bridge: events, sink protocol, console sink."""

from threadline.chat.console import ConsoleChat
from threadline.chat.models import (
    ChatEvent,
    ChoiceOption,
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

__all__ = [
    "ChatEvent",
    "ChatSink",
    "ChoiceOption",
    "ChoicePrompt",
    "ConsoleChat",
    "DiagnosticNotice",
    "FatalExitNotice",
    "QuestionMessage",
    "SessionErrorNotice",
    "StatusNotice",
    "ToolNotice",
    "TurnCompleted",
    "TurnStarted",
]
