"""Docker-backed sandbox: agents run via ``docker exec`` in a named container."""

from __future__ import annotations

import asyncio
import logging
import tarfile
import time
from collections.abc import Sequence
from io import BytesIO
from pathlib import PurePosixPath

import docker
from docker.errors import APIError, DockerException, NotFound

logger = logging.getLogger(__name__)


class DockerSandbox:
    """Sandbox backed by a long-lived Docker container.

    The container is created elsewhere (it outlives Threadline); this
    class only makes sure it is running, wraps agent commands in
    ``docker exec -i`` and copies attachments in.

    Attributes:
        container_name: Name of the project container.
    """

    def __init__(
        self,
        container_name: str,
        workdir: str = "/workspace",
        uploads_dir: str = "/workspace/uploads",
        client: docker.DockerClient | None = None,
    ) -> None:
        self.container_name = container_name
        self._workdir = workdir
        self._uploads_dir = uploads_dir
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        """Lazy initialization of Docker client."""
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    @property
    def uploads_dir(self) -> str:
        return self._uploads_dir

    @property
    def workdir(self) -> str | None:
        # The host-side ``docker exec`` needs no cwd; -w sets it inside.
        return None

    async def ensure_running(self) -> bool:
        """Start the container if it is stopped.

        Returns:
            True if the container is running, False if it is missing or
            Docker is unreachable.
        """
        try:
            return await asyncio.to_thread(self._ensure_running_blocking)
        except (NotFound, APIError, DockerException) as exc:
            logger.error("Container %s unavailable: %s", self.container_name, exc)
            return False

    def _ensure_running_blocking(self) -> bool:
        container = self.client.containers.get(self.container_name)
        if container.status != "running":
            logger.info("Starting container %s", self.container_name)
            container.start()
            container.reload()
        return container.status == "running"

    def wrap_command(self, argv: Sequence[str]) -> list[str]:
        return [
            "docker",
            "exec",
            "-i",
            "-w",
            self._workdir,
            self.container_name,
            *argv,
        ]

    async def write_file(self, path: str, data: bytes) -> None:
        """Copy *data* into the container at *path*.

        Raises:
            FileNotFoundError: If the container does not exist.
            RuntimeError: If the upload is rejected.
        """
        try:
            await asyncio.to_thread(self._write_file_blocking, path, data)
        except NotFound as err:
            raise FileNotFoundError(f"Container not found: {self.container_name}") from err
        except APIError as err:
            raise RuntimeError(f"Upload to {self.container_name} failed: {err}") from err

    def _write_file_blocking(self, path: str, data: bytes) -> None:
        target = PurePosixPath(path)
        container = self.client.containers.get(self.container_name)
        container.exec_run(["mkdir", "-p", str(target.parent)])

        tar_stream = BytesIO()
        with tarfile.open(fileobj=tar_stream, mode="w") as tar:
            info = tarfile.TarInfo(name=target.name)
            info.size = len(data)
            info.mtime = int(time.time())
            info.mode = 0o644
            tar.addfile(info, BytesIO(data))
        tar_stream.seek(0)

        if not container.put_archive(str(target.parent), tar_stream.getvalue()):
            raise RuntimeError(f"Upload of {path} was rejected")
