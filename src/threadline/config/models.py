"""Pydantic v2 models for threadline.yaml configuration."""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from threadline.constants import (
    DEFAULT_CHOICE_TIMEOUT,
    DEFAULT_CHOICE_TOOL,
    DEFAULT_FALLBACK_ANSWER,
    DEFAULT_OVERFLOW_PATTERN,
    DEFAULT_QUESTION_DEBOUNCE,
)


class AgentCommandConfig(BaseModel):
    """How to launch the agent CLI inside the sandbox."""

    model_config = ConfigDict(extra="forbid")

    command: str = Field(
        default="claude",
        description="Agent CLI binary, resolved inside the sandbox",
    )
    extra_args: list[str] = Field(
        default_factory=list,
        description="Extra arguments appended after the streaming flags",
    )


class SandboxConfig(BaseModel):
    """Where agent subprocesses run."""

    model_config = ConfigDict(extra="forbid")

    type: Literal["docker", "local"] = Field(
        default="docker",
        description="Execution environment for agent subprocesses",
    )
    container: str | None = Field(
        default=None,
        description="Container name for docker sandboxes",
    )
    workdir: str = Field(
        default="/workspace",
        description="Working directory for the agent subprocess",
    )
    uploads_dir: str = Field(
        default="/workspace/uploads",
        description="Directory that receives chat attachments",
    )

    @model_validator(mode="after")
    def _validate_type_requirements(self) -> SandboxConfig:
        if self.type == "docker" and not self.container:
            msg = "Sandbox type 'docker' requires 'container'"
            raise ValueError(msg)
        return self


class BridgeConfig(BaseModel):
    """Tuning for output buffering and recovery."""

    model_config = ConfigDict(extra="forbid")

    question_debounce: float = Field(
        default=DEFAULT_QUESTION_DEBOUNCE,
        gt=0,
        description="Seconds of silence before a pending question is flushed",
    )
    choice_timeout: float = Field(
        default=DEFAULT_CHOICE_TIMEOUT,
        gt=0,
        description="Seconds to wait for a choice selection",
    )
    fallback_answer: str = Field(
        default=DEFAULT_FALLBACK_ANSWER,
        min_length=1,
        description="Input sent when a choice prompt gets no answer",
    )
    choice_tool: str = Field(
        default=DEFAULT_CHOICE_TOOL,
        description="Tool name reserved for structured multiple-choice questions",
    )
    overflow_pattern: str = Field(
        default=DEFAULT_OVERFLOW_PATTERN,
        description="Case-insensitive regex marking a context-window overflow",
    )
    max_overflow_retries: int = Field(
        default=1,
        ge=0,
        description="Automatic restart-and-retry attempts per input",
    )
    max_queued: int = Field(
        default=100,
        ge=0,
        description="Inputs held per thread while a turn is in flight",
    )

    @field_validator("overflow_pattern")
    @classmethod
    def _compile_pattern(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            msg = f"Invalid overflow_pattern regex: {exc}"
            raise ValueError(msg) from exc
        return value


class ThreadlineConfig(BaseModel):
    """Top-level threadline.yaml configuration."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(description="Config schema version")
    agent: AgentCommandConfig = Field(
        default_factory=AgentCommandConfig,
        description="Agent CLI settings",
    )
    sandbox: SandboxConfig = Field(
        default_factory=lambda: SandboxConfig(type="local"),
        description="Sandbox settings",
    )
    bridge: BridgeConfig = Field(
        default_factory=BridgeConfig,
        description="Session bridge settings",
    )
