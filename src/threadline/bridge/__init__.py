"""Agent session bridge: subprocess sessions, output buffering, supervision."""

from threadline.bridge.buffer import OutputBuffer
from threadline.bridge.events import (
    SessionDiagnostic,
    SessionEvent,
    SessionExited,
    SessionFailed,
    TextDelta,
    ToolInvoked,
    TurnResult,
)
from threadline.bridge.framing import LineFramer
from threadline.bridge.manager import Attachment, ConversationEntry, SessionManager
from threadline.bridge.session import (
    AgentSession,
    SessionError,
    SessionNotStartedError,
    SessionState,
    SessionWriteError,
)

__all__ = [
    "AgentSession",
    "Attachment",
    "ConversationEntry",
    "LineFramer",
    "OutputBuffer",
    "SessionDiagnostic",
    "SessionError",
    "SessionEvent",
    "SessionExited",
    "SessionFailed",
    "SessionManager",
    "SessionNotStartedError",
    "SessionState",
    "SessionWriteError",
    "TextDelta",
    "ToolInvoked",
    "TurnResult",
]
