"""Configuration models and parser for threadline.yaml."""

from threadline.config.models import (
    AgentCommandConfig,
    BridgeConfig,
    SandboxConfig,
    ThreadlineConfig,
)
from threadline.config.parser import ConfigError, load_config

__all__ = [
    "AgentCommandConfig",
    "BridgeConfig",
    "ConfigError",
    "SandboxConfig",
    "ThreadlineConfig",
    "load_config",
]
