"""Execution environments for agent subprocesses."""

from __future__ import annotations

from threadline.config.models import SandboxConfig
from threadline.sandbox.base import LocalSandbox, Sandbox, upload_path
from threadline.sandbox.docker_sandbox import DockerSandbox

__all__ = [
    "DockerSandbox",
    "LocalSandbox",
    "Sandbox",
    "create_sandbox",
    "upload_path",
]


def create_sandbox(config: SandboxConfig) -> Sandbox:
    """Build the sandbox described by *config*."""
    if config.type == "docker":
        return DockerSandbox(
            container_name=config.container or "",
            workdir=config.workdir,
            uploads_dir=config.uploads_dir,
        )
    return LocalSandbox(workdir=config.workdir, uploads_dir=config.uploads_dir)
