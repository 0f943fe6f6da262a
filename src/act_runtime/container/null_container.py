"""NullContainer: the handle returned when no container runtime is usable.

Every operation that would touch a backend raises RuntimeUnavailableError with
the detector's diagnostic report. Metadata queries answer with Linux defaults
so dry runs and listings still work.
"""

from __future__ import annotations

from typing import IO, Any, NoReturn

from act_runtime.container.environment import LinuxContainerEnvironmentExtensions
from act_runtime.container.errors import RuntimeUnavailableError
from act_runtime.container.types import FileEntry, Health, NewContainerInput
from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.types import ContainerRuntime


class NullContainer:
    runtime = ContainerRuntime.UNKNOWN

    def __init__(self, container_input: NewContainerInput, detector: RuntimeDetector) -> None:
        self.input = container_input
        self._detector = detector

    async def _unavailable(self) -> NoReturn:
        raise RuntimeUnavailableError(await self._detector.get_helpful_error_message())

    async def create(self, cap_add: list[str], cap_drop: list[str]) -> None:
        await self._unavailable()

    async def copy(self, dest_path: str, *files: FileEntry) -> None:
        await self._unavailable()

    async def copy_dir(self, dest_path: str, src_path: str, use_gitignore: bool) -> None:
        await self._unavailable()

    async def copy_tar_stream(self, dest_path: str, tar_stream: IO[bytes] | bytes) -> None:
        await self._unavailable()

    async def get_container_archive(self, src_path: str) -> IO[bytes]:
        await self._unavailable()

    async def pull(self, force_pull: bool) -> None:
        await self._unavailable()

    async def start(self, attach: bool) -> None:
        await self._unavailable()

    async def exec(self, command: list[str], env: dict[str, str], user: str, workdir: str) -> None:
        await self._unavailable()

    async def update_from_env(self, src_path: str, env: dict[str, str]) -> None:
        await self._unavailable()

    async def update_from_image_env(self, env: dict[str, str]) -> None:
        await self._unavailable()

    async def remove(self) -> None:
        await self._unavailable()

    async def close(self) -> None:
        await self._unavailable()

    def replace_log_writer(self, stdout: IO[str], stderr: IO[str]) -> tuple[IO[str], IO[str]]:
        return stdout, stderr

    async def get_health(self) -> Health:
        return Health.UNHEALTHY

    def to_container_path(self, path: str) -> str:
        return path

    def get_act_path(self) -> str:
        return "/opt/act"

    def get_path_variable_name(self) -> str:
        return "PATH"

    def default_path_variable(self) -> str:
        return "/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin"

    def join_path_variable(self, *paths: str) -> str:
        return LinuxContainerEnvironmentExtensions().join_path_variable(*paths)

    def get_runner_context(self) -> dict[str, Any]:
        return {
            "os": "linux",
            "arch": "x64",
            "temp": "/tmp",
            "tool_cache": "/opt/hostedtoolcache",
            "action_path": "/github/workspace",
            "workspace": "/github/workspace",
        }

    def is_environment_case_insensitive(self) -> bool:
        return False
