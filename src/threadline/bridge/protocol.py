"""Agent CLI stream-json protocol: record models, decoder and encoder.

The agent CLI in ``--output-format stream-json`` mode writes one JSON
object per line.  The top-level ``type`` field selects the record kind:

* ``system``   : init/hook notices; may carry ``session_id``.
* ``assistant``: an API message; ``message.content[]`` holds ``text`` and
  ``tool_use`` blocks (``thinking`` and other kinds are ignored here).
* ``result``   : terminal record for one turn with the final ``result``
  text, ``is_error`` flag and ``session_id``.

Anything else on stdout (debug output, unknown record types, truncated
JSON) is not a protocol record and decodes to ``None``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from threadline.constants import DEFAULT_SESSION_TOKEN

logger = logging.getLogger(__name__)


class _RecordBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_id: str | None = Field(
        default=None,
        description="Remote session token, when the record carries one",
    )


class TextBlock(BaseModel):
    """Streamed assistant text."""

    kind: Literal["text"] = "text"
    text: str


class ToolUseBlock(BaseModel):
    """A tool invocation by the agent."""

    kind: Literal["tool_use"] = "tool_use"
    name: str
    input: dict[str, Any] = Field(default_factory=dict)


ContentBlock = TextBlock | ToolUseBlock


class SystemRecord(_RecordBase):
    """Informational record; only its session token matters."""

    type: Literal["system"] = "system"
    subtype: str | None = None


class AssistantRecord(_RecordBase):
    """Assistant output for the current turn."""

    type: Literal["assistant"] = "assistant"
    blocks: list[ContentBlock] = Field(default_factory=list)


class ResultRecord(_RecordBase):
    """End of one turn."""

    type: Literal["result"] = "result"
    text: str = ""
    is_error: bool = False


ProtocolRecord = SystemRecord | AssistantRecord | ResultRecord


def decode_line(line: str) -> ProtocolRecord | None:
    """Parse one stdout line into a protocol record.

    Returns ``None`` for anything that is not a well-formed record; this
    is not an error, the agent interleaves plain diagnostic output.
    """
    try:
        raw = json.loads(line)
    except json.JSONDecodeError:
        logger.debug("Skipping non-JSON line: %s", line[:200])
        return None

    if not isinstance(raw, dict):
        return None

    session_id = raw.get("session_id")
    if not isinstance(session_id, str) or not session_id:
        session_id = None

    record_type = raw.get("type")
    if record_type == "system":
        subtype = raw.get("subtype")
        return SystemRecord(
            session_id=session_id,
            subtype=subtype if isinstance(subtype, str) else None,
        )
    if record_type == "assistant":
        return AssistantRecord(
            session_id=session_id,
            blocks=_decode_blocks(raw.get("message")),
        )
    if record_type == "result":
        result = raw.get("result")
        return ResultRecord(
            session_id=session_id,
            text=result if isinstance(result, str) else "",
            is_error=raw.get("is_error") is True,
        )

    # "user" tool-result echoes and unknown types carry nothing we use.
    return None


def _decode_blocks(message: object) -> list[ContentBlock]:
    if not isinstance(message, dict):
        return []
    content = message.get("content")
    if not isinstance(content, list):
        return []

    blocks: list[ContentBlock] = []
    for block in content:
        if not isinstance(block, dict):
            continue
        block_type = block.get("type")
        if block_type == "text":
            text = block.get("text")
            if isinstance(text, str) and text:
                blocks.append(TextBlock(text=text))
        elif block_type == "tool_use":
            name = block.get("name")
            if not isinstance(name, str) or not name:
                continue
            tool_input = block.get("input")
            if not isinstance(tool_input, dict):
                tool_input = {}
            blocks.append(ToolUseBlock(name=name, input=tool_input))
    return blocks


def encode_user_message(text: str, session_token: str | None) -> bytes:
    """Encode a ``user`` input record as one newline-terminated line."""
    record = {
        "type": "user",
        "message": {"role": "user", "content": text},
        "session_id": session_token or DEFAULT_SESSION_TOKEN,
        "parent_tool_use_id": None,
    }
    return (json.dumps(record) + "\n").encode()
