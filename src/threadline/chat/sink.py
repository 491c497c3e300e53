"""ChatSink: what the session bridge needs from a chat platform."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from threadline.chat.models import ChatEvent, ChoicePrompt


@runtime_checkable
class ChatSink(Protocol):
    """Minimal protocol a chat platform must satisfy for the bridge."""

    async def deliver(self, key: str, event: ChatEvent) -> None:
        """Render *event* in the thread identified by *key*."""
        ...

    async def ask_choice(self, key: str, prompt: ChoicePrompt) -> str | None:
        """Show *prompt* and wait for the user's answer.

        Returns the chosen label or free text, or ``None`` when the user
        picked "other" and typed nothing.  The bridge bounds the wait.
        """
        ...
