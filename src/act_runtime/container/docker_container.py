"""DockerContainer: container handle backed by the Docker SDK."""

from __future__ import annotations

import asyncio
import io
import os
import posixpath
import subprocess
import sys
import tarfile
import time
from pathlib import Path
from typing import IO, Any, Callable, Iterable, Iterator

import docker
import docker.errors
import docker.types
import docker.utils
import requests.exceptions

from act_runtime.container.client import open_client
from act_runtime.container.environment import LinuxContainerEnvironmentExtensions
from act_runtime.container.errors import ContainerExecError, ContainerRuntimeError
from act_runtime.container.types import FileEntry, Health, NewContainerInput
from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.types import ContainerRuntime
from act_runtime.infrastructure.logger import logger

_DOCKER_ERRORS = (docker.errors.DockerException, requests.exceptions.RequestException)


def parse_env_file(content: str) -> dict[str, str]:
    """Parse a GitHub-style env file: ``KEY=VALUE`` lines and ``KEY<<DELIM`` blocks."""
    result: dict[str, str] = {}
    lines = iter(content.splitlines())
    for line in lines:
        if not line.strip():
            continue
        key, sep, value = line.partition("=")
        if sep and "<<" not in key:
            result[key] = value
            continue
        key, sep, delimiter = line.partition("<<")
        if not sep:
            raise ContainerRuntimeError(f"invalid format '{line}', expected a line with '=' or '<<'")
        block: list[str] = []
        for block_line in lines:
            if block_line == delimiter:
                break
            block.append(block_line)
        else:
            raise ContainerRuntimeError(f"invalid format delimiter '{delimiter}' not found before end of file")
        result[key] = "\n".join(block)
    return result


def _tar_entries(files: Iterable[FileEntry]) -> bytes:
    buf = io.BytesIO()
    now = int(time.time())
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for entry in files:
            data = entry.body.encode()
            info = tarfile.TarInfo(name=entry.name)
            info.mode = entry.mode
            info.size = len(data)
            info.mtime = now
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def _list_files(src_path: str, use_gitignore: bool) -> list[str]:
    """Files under ``src_path``, relative to it. Honours .gitignore via git when asked."""
    if use_gitignore:
        try:
            result = subprocess.run(
                ["git", "ls-files", "--cached", "--others", "--exclude-standard", "-z"],
                cwd=src_path,
                capture_output=True,
                check=False,
            )
        except OSError:
            result = None
        if result is not None and result.returncode == 0:
            names = result.stdout.decode(errors="replace").split("\0")
            return [name for name in names if name and os.path.lexists(os.path.join(src_path, name))]
        logger.debug("git ls-files failed, copying every file", path=src_path)

    files: list[str] = []
    for root, _dirs, names in os.walk(src_path):
        for name in names:
            files.append(os.path.relpath(os.path.join(root, name), src_path))
    return sorted(files)


def _tar_directory(src_path: str, use_gitignore: bool) -> bytes:
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w") as tar:
        for rel in _list_files(src_path, use_gitignore):
            tar.add(os.path.join(src_path, rel), arcname=Path(rel).as_posix(), recursive=False)
    return buf.getvalue()


class _ChunkReader(io.RawIOBase):
    """Readable stream over the chunk iterator returned by get_archive."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._pending = b""

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        while not self._pending:
            try:
                self._pending = next(self._chunks)
            except StopIteration:
                return 0
        size = min(len(buffer), len(self._pending))
        buffer[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size


class DockerContainer(LinuxContainerEnvironmentExtensions):
    """Runs one job container through a Docker-compatible daemon."""

    runtime = ContainerRuntime.DOCKER

    def __init__(self, container_input: NewContainerInput, detector: RuntimeDetector) -> None:
        self.input = container_input
        self._detector = detector
        self.id: str | None = None
        self._client: docker.DockerClient | None = None
        self._stdout: IO[str] = container_input.stdout or sys.stdout
        self._stderr: IO[str] = container_input.stderr or sys.stderr
        self._log = logger.bind(component=f"{self.runtime}-container", container=container_input.name)

    async def _connect(self) -> docker.DockerClient:
        if self._client is None:
            self._client = await open_client(self.runtime, self._detector)
        return self._client

    async def _call(self, action: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except _DOCKER_ERRORS as exc:
            raise ContainerRuntimeError(f"failed to {action}: {exc}") from exc

    def _require_id(self) -> str:
        if not self.id:
            raise ContainerRuntimeError(f"container {self.input.name} has not been created")
        return self.id

    async def create(self, cap_add: list[str], cap_drop: list[str]) -> None:
        client = await self._connect()
        if self.id:
            return

        mounts = [
            docker.types.Mount(target=target, source=volume, type="volume")
            for volume, target in self.input.mounts.items()
        ]
        container = await self._call(
            "create container",
            client.containers.create,
            image=self.input.image,
            name=self.input.name,
            command=self.input.cmd,
            entrypoint=self.input.entrypoint,
            working_dir=self.input.working_dir,
            environment=self.input.env,
            volumes=self.input.binds,
            mounts=mounts,
            network_mode=self.input.network_mode,
            privileged=self.input.privileged,
            userns_mode=self.input.userns_mode,
            platform=self.input.platform,
            auto_remove=self.input.auto_remove,
            cap_add=cap_add,
            cap_drop=cap_drop,
        )
        self.id = container.id
        self._log.debug("Created container", id=self.id)

    async def copy(self, dest_path: str, *files: FileEntry) -> None:
        client = await self._connect()
        container_id = self._require_id()
        self._log.debug("Copying files", dest=dest_path, count=len(files))
        data = _tar_entries(files)
        await self._call("copy content to container", client.api.put_archive, container_id, dest_path, data)

    async def copy_dir(self, dest_path: str, src_path: str, use_gitignore: bool) -> None:
        client = await self._connect()
        container_id = self._require_id()
        self._log.debug("Copying directory", src=src_path, dest=dest_path, use_gitignore=use_gitignore)
        await self._mkdir(dest_path)
        data = await asyncio.to_thread(_tar_directory, src_path, use_gitignore)
        await self._call("copy directory to container", client.api.put_archive, container_id, dest_path, data)

    async def copy_tar_stream(self, dest_path: str, tar_stream: IO[bytes] | bytes) -> None:
        client = await self._connect()
        container_id = self._require_id()
        await self._mkdir(dest_path)
        await self._call("copy tar stream to container", client.api.put_archive, container_id, dest_path, tar_stream)

    async def get_container_archive(self, src_path: str) -> IO[bytes]:
        client = await self._connect()
        container_id = self._require_id()
        chunks, _stat = await self._call("read container archive", client.api.get_archive, container_id, src_path)
        return io.BufferedReader(_ChunkReader(chunks))

    async def pull(self, force_pull: bool) -> None:
        client = await self._connect()
        image = self.input.image

        if not force_pull and await self._image_exists(client, image):
            self._log.debug("Image exists, skipping pull", image=image)
            return

        repository, tag = docker.utils.parse_repository_tag(image)
        auth_config = None
        if self.input.username and self.input.password:
            auth_config = {"username": self.input.username, "password": self.input.password}

        self._log.info("Pulling image", image=image, platform=self.input.platform)
        await self._call(
            "pull image",
            client.images.pull,
            repository,
            tag=tag or "latest",
            platform=self.input.platform,
            auth_config=auth_config,
        )

    async def _image_exists(self, client: docker.DockerClient, image: str) -> bool:
        try:
            await asyncio.to_thread(client.images.get, image)
        except docker.errors.ImageNotFound:
            return False
        except _DOCKER_ERRORS as exc:
            raise ContainerRuntimeError(f"failed to inspect image {image}: {exc}") from exc
        return True

    async def start(self, attach: bool) -> None:
        client = await self._connect()
        container_id = self._require_id()
        self._log.debug("Starting container", id=container_id, attach=attach)
        await self._call("start container", client.api.start, container_id)
        if attach:
            await self._call("attach to container", self._attach_and_wait, client, container_id)

    def _attach_and_wait(self, client: docker.DockerClient, container_id: str) -> None:
        output = client.api.attach(container_id, stream=True, logs=True, demux=True)
        self._write_output(output)
        status = client.api.wait(container_id)
        exit_code = status.get("StatusCode", 0)
        if exit_code != 0:
            raise ContainerExecError(f"exitcode '{exit_code}': failure", exit_code)

    def _write_output(self, output: Iterable[tuple[bytes | None, bytes | None]]) -> None:
        for out, err in output:
            if out:
                self._stdout.write(out.decode(errors="replace"))
            if err:
                self._stderr.write(err.decode(errors="replace"))

    async def exec(self, command: list[str], env: dict[str, str], user: str, workdir: str) -> None:
        client = await self._connect()
        container_id = self._require_id()

        if not workdir:
            workdir = self.input.working_dir
        elif not posixpath.isabs(workdir):
            workdir = posixpath.join(self.input.working_dir, workdir)

        self._log.debug("Exec", command=command, user=user, workdir=workdir)
        environment = [f"{key}={value}" for key, value in env.items()]
        exit_code = await self._call(
            "exec in container",
            self._exec_blocking,
            client,
            container_id,
            command,
            environment,
            user,
            workdir,
        )
        if exit_code != 0:
            raise ContainerExecError(f"exitcode '{exit_code}': failure", exit_code)

    def _exec_blocking(
        self,
        client: docker.DockerClient,
        container_id: str,
        command: list[str],
        environment: list[str],
        user: str,
        workdir: str,
    ) -> int:
        exec_id = client.api.exec_create(
            container_id,
            command,
            stdout=True,
            stderr=True,
            environment=environment,
            user=user,
            workdir=workdir,
        )["Id"]
        self._write_output(client.api.exec_start(exec_id, stream=True, demux=True))
        return client.api.exec_inspect(exec_id).get("ExitCode") or 0

    async def _mkdir(self, path: str) -> None:
        await self.exec(["mkdir", "-p", path], {}, "", "")

    async def update_from_env(self, src_path: str, env: dict[str, str]) -> None:
        """Merge the env file at ``src_path`` into ``env``. A missing file is not an error."""
        client = await self._connect()
        container_id = self._require_id()
        try:
            chunks, _stat = await asyncio.to_thread(client.api.get_archive, container_id, src_path)
            data = await asyncio.to_thread(b"".join, chunks)
        except docker.errors.NotFound:
            return
        except _DOCKER_ERRORS as exc:
            raise ContainerRuntimeError(f"failed to read env file {src_path}: {exc}") from exc

        try:
            with tarfile.open(fileobj=io.BytesIO(data)) as tar:
                member = next((m for m in tar.getmembers() if m.isfile()), None)
                if member is None:
                    return
                extracted = tar.extractfile(member)
                content = extracted.read().decode(errors="replace") if extracted else ""
        except tarfile.TarError as exc:
            raise ContainerRuntimeError(f"failed to read env file {src_path}: {exc}") from exc
        env.update(parse_env_file(content))

    async def update_from_image_env(self, env: dict[str, str]) -> None:
        """Fill ``env`` from the image's declared environment. PATH is appended, not replaced."""
        client = await self._connect()
        image = await self._call("inspect image", client.images.get, self.input.image)
        for item in image.attrs.get("Config", {}).get("Env") or []:
            key, _, value = item.partition("=")
            if key == "PATH" and env.get(key):
                env[key] = f"{env[key]}:{value}"
            elif not env.get(key):
                env[key] = value

    async def remove(self) -> None:
        if not self.id:
            return
        client = await self._connect()
        try:
            await asyncio.to_thread(client.api.remove_container, self.id, v=True, force=True)
        except docker.errors.NotFound:
            pass
        except _DOCKER_ERRORS as exc:
            raise ContainerRuntimeError(f"failed to remove container {self.id}: {exc}") from exc
        self._log.debug("Removed container", id=self.id)
        self.id = None

    async def close(self) -> None:
        if self._client is None:
            return
        client, self._client = self._client, None
        await asyncio.to_thread(client.close)

    def replace_log_writer(self, stdout: IO[str], stderr: IO[str]) -> tuple[IO[str], IO[str]]:
        """Swap output sinks, returning the previous pair so callers can restore them."""
        previous = (self._stdout, self._stderr)
        self._stdout, self._stderr = stdout, stderr
        return previous

    async def get_health(self) -> Health:
        if not self.id:
            return Health.UNKNOWN
        client = await self._connect()
        try:
            attrs = await asyncio.to_thread(client.api.inspect_container, self.id)
        except _DOCKER_ERRORS as exc:
            self._log.error("Failed to query container health", id=self.id, error=str(exc))
            return Health.UNHEALTHY

        if not attrs.get("Config", {}).get("Healthcheck"):
            return Health.HEALTHY
        status = (attrs.get("State", {}).get("Health") or {}).get("Status", "")
        if status == "starting":
            return Health.STARTING
        if status == "healthy":
            return Health.HEALTHY
        return Health.UNHEALTHY

    def get_runner_context(self) -> dict[str, Any]:
        context = super().get_runner_context()
        context["workspace"] = self.input.working_dir
        return context
