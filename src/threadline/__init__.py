"""Threadline: chat-thread bridge for long-running coding-agent sessions."""

__version__ = "0.1.0"
