"""Execution environment contract shared by every container handle."""

from __future__ import annotations

import platform
import re
from typing import IO, Any, Protocol

from act_runtime.container.types import FileEntry, Health

_WINDOWS_PATH = re.compile(r"^([a-zA-Z]):\\(.+)$")

_RUNNER_ARCH = {
    "x86_64": "X64",
    "amd64": "X64",
    "i386": "X86",
    "i686": "X86",
    "x86": "X86",
    "arm64": "ARM64",
    "aarch64": "ARM64",
}


class ExecutionsEnvironment(Protocol):
    """Interface for container handles (Docker, Podman, or the null handle).

    Callers never learn which backend is behind a handle.
    """

    async def create(self, cap_add: list[str], cap_drop: list[str]) -> None: ...

    async def copy(self, dest_path: str, *files: FileEntry) -> None: ...

    async def copy_dir(self, dest_path: str, src_path: str, use_gitignore: bool) -> None: ...

    async def copy_tar_stream(self, dest_path: str, tar_stream: IO[bytes] | bytes) -> None: ...

    async def get_container_archive(self, src_path: str) -> IO[bytes]: ...

    async def pull(self, force_pull: bool) -> None: ...

    async def start(self, attach: bool) -> None: ...

    async def exec(self, command: list[str], env: dict[str, str], user: str, workdir: str) -> None: ...

    async def update_from_env(self, src_path: str, env: dict[str, str]) -> None: ...

    async def update_from_image_env(self, env: dict[str, str]) -> None: ...

    async def remove(self) -> None: ...

    async def close(self) -> None: ...

    def replace_log_writer(self, stdout: IO[str], stderr: IO[str]) -> tuple[IO[str], IO[str]]: ...

    async def get_health(self) -> Health: ...

    def to_container_path(self, path: str) -> str: ...

    def get_act_path(self) -> str: ...

    def get_path_variable_name(self) -> str: ...

    def default_path_variable(self) -> str: ...

    def join_path_variable(self, *paths: str) -> str: ...

    def get_runner_context(self) -> dict[str, Any]: ...

    def is_environment_case_insensitive(self) -> bool: ...


def runner_arch(machine: str | None = None) -> str:
    machine = (machine or platform.machine()).lower()
    if machine in _RUNNER_ARCH:
        return _RUNNER_ARCH[machine]
    if machine.startswith("arm"):
        return "ARM"
    return machine.upper()


class LinuxContainerEnvironmentExtensions:
    """Path and environment conventions inside Linux containers."""

    def to_container_path(self, path: str) -> str:
        """Translate Windows host paths to their WSL2 mount, e.g. C:\\src -> /mnt/c/src."""
        match = _WINDOWS_PATH.match(path)
        if not match:
            return path
        drive = match.group(1).lower()
        return "/".join(["/mnt", drive, match.group(2).replace("\\", "/")])

    def get_act_path(self) -> str:
        return "/var/run/act"

    def get_path_variable_name(self) -> str:
        return "PATH"

    def default_path_variable(self) -> str:
        return "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

    def join_path_variable(self, *paths: str) -> str:
        return ":".join(paths)

    def get_runner_context(self) -> dict[str, Any]:
        return {
            "os": "Linux",
            "arch": runner_arch(),
            "temp": "/tmp",
            "tool_cache": "/opt/hostedtoolcache",
        }

    def is_environment_case_insensitive(self) -> bool:
        return False
