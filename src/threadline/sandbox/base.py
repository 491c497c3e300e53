"""Sandbox protocol and the host-local implementation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class Sandbox(Protocol):
    """Execution environment that hosts agent subprocesses."""

    @property
    def uploads_dir(self) -> str:
        """Directory, as seen by the agent, that receives attachments."""
        ...

    @property
    def workdir(self) -> str | None:
        """Working directory for host-side spawning, if any."""
        ...

    async def ensure_running(self) -> bool:
        """Make sure the environment is up.  ``False`` if it cannot be."""
        ...

    def wrap_command(self, argv: Sequence[str]) -> list[str]:
        """Return the host command line that runs *argv* inside the sandbox."""
        ...

    async def write_file(self, path: str, data: bytes) -> None:
        """Write *data* to *path* inside the sandbox."""
        ...


class LocalSandbox:
    """Runs the agent directly on the host.

    Useful for development and for hosts that are themselves disposable
    (a VM or a container running Threadline).
    """

    def __init__(self, workdir: str | Path, uploads_dir: str | Path) -> None:
        self._workdir = Path(workdir)
        self._uploads_dir = Path(uploads_dir)

    @property
    def uploads_dir(self) -> str:
        return str(self._uploads_dir)

    @property
    def workdir(self) -> str | None:
        return str(self._workdir)

    async def ensure_running(self) -> bool:
        try:
            self._workdir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create workdir %s: %s", self._workdir, exc)
            return False
        return True

    def wrap_command(self, argv: Sequence[str]) -> list[str]:
        return list(argv)

    async def write_file(self, path: str, data: bytes) -> None:
        target = Path(path)
        if not target.resolve().is_relative_to(self._uploads_dir.resolve()):
            msg = f"Refusing to write outside uploads dir: {path}"
            raise ValueError(msg)
        await asyncio.to_thread(_write_bytes, target, data)


def _write_bytes(target: Path, data: bytes) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(data)


def upload_path(uploads_dir: str, filename: str) -> str:
    """Destination for an attachment, stripped of any directory parts."""
    name = PurePosixPath(filename.replace("\\", "/")).name or "attachment"
    return str(PurePosixPath(uploads_dir) / name)
