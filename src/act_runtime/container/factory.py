"""Container factory: hands out a handle for whichever runtime is usable.

A handle is always returned. When nothing verifies, callers get a
NullContainer whose operations explain what is missing.
"""

from __future__ import annotations

import asyncio
import threading

import docker
import structlog

from act_runtime.container.client import open_client
from act_runtime.container.docker_container import DockerContainer
from act_runtime.container.environment import ExecutionsEnvironment
from act_runtime.container.null_container import NullContainer
from act_runtime.container.podman_container import PodmanContainer
from act_runtime.container.types import NewContainerInput
from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.types import ContainerRuntime
from act_runtime.infrastructure.config import RuntimeConfig, configure_from_environment
from act_runtime.infrastructure.logger import logger


class ContainerFactory:
    """Builds container handles on top of one RuntimeDetector."""

    def __init__(self, detector: RuntimeDetector | None = None) -> None:
        self.detector = detector or RuntimeDetector(RuntimeConfig.from_environment())
        self._override_lock = threading.Lock()
        self._override = ContainerRuntime.UNKNOWN

    @property
    def runtime_override(self) -> ContainerRuntime:
        with self._override_lock:
            return self._override

    def set_runtime_override(self, runtime: ContainerRuntime) -> None:
        """Force every resolution to ``runtime``. Meant for tests."""
        with self._override_lock:
            self._override = runtime

    def clear_runtime_override(self) -> None:
        self.set_runtime_override(ContainerRuntime.UNKNOWN)

    async def get_selected_runtime(self) -> ContainerRuntime:
        override = self.runtime_override
        if override is not ContainerRuntime.UNKNOWN:
            return override
        configure_from_environment(self.detector.config)
        return await self.detector.detect_available_runtime()

    async def new_container(self, container_input: NewContainerInput) -> ExecutionsEnvironment:
        """Handle for the best available runtime."""
        runtime = await self.get_selected_runtime()
        log = logger.bind(component="container-factory", runtime=str(runtime), forced=False)
        return self._build(runtime, container_input, log)

    async def new_container_with_runtime(
        self, container_input: NewContainerInput, runtime: ContainerRuntime
    ) -> ExecutionsEnvironment:
        """Handle for ``runtime`` if it verifies, otherwise a NullContainer."""
        log = logger.bind(component="container-factory", runtime=str(runtime), forced=True)
        if not await self.detector.verify_runtime(runtime):
            log.error("Requested runtime is not available")
            return NullContainer(container_input, self.detector)
        return self._build(runtime, container_input, log)

    def _build(
        self, runtime: ContainerRuntime, container_input: NewContainerInput, log: structlog.stdlib.BoundLogger
    ) -> ExecutionsEnvironment:
        if runtime is ContainerRuntime.PODMAN:
            log.debug("Creating Podman container")
            return PodmanContainer(container_input, self.detector)
        if runtime is ContainerRuntime.DOCKER:
            log.debug("Creating Docker container")
            return DockerContainer(container_input, self.detector)
        log.error("No container runtime available")
        return NullContainer(container_input, self.detector)

    async def get_available_runtimes(self) -> list[ContainerRuntime]:
        """Every runtime that verifies right now, Docker first. Possibly empty."""
        docker_ok, podman_ok = await asyncio.gather(self.detector.verify_docker(), self.detector.verify_podman())
        available: list[ContainerRuntime] = []
        if docker_ok:
            available.append(ContainerRuntime.DOCKER)
        if podman_ok:
            available.append(ContainerRuntime.PODMAN)
        return available

    async def get_runtime_detection_error(self) -> str:
        return await self.detector.get_helpful_error_message()

    async def get_container_client(self) -> docker.DockerClient:
        """Raw Docker-compatible client for the selected runtime."""
        runtime = await self.get_selected_runtime()
        logger.debug("Creating container client", component="container-client", runtime=str(runtime))
        return await open_client(runtime, self.detector)


_default_factory: ContainerFactory | None = None
_default_factory_lock = threading.Lock()


def get_factory() -> ContainerFactory:
    """The process-wide factory used by the module-level helpers."""
    global _default_factory
    with _default_factory_lock:
        if _default_factory is None:
            _default_factory = ContainerFactory()
        return _default_factory


async def new_container(container_input: NewContainerInput) -> ExecutionsEnvironment:
    return await get_factory().new_container(container_input)


async def new_container_with_runtime(
    container_input: NewContainerInput, runtime: ContainerRuntime
) -> ExecutionsEnvironment:
    return await get_factory().new_container_with_runtime(container_input, runtime)


async def get_current_runtime() -> ContainerRuntime:
    """The runtime a new container would use, without creating one."""
    return await get_factory().get_selected_runtime()


async def get_available_runtimes() -> list[ContainerRuntime]:
    return await get_factory().get_available_runtimes()


async def get_runtime_detection_error() -> str:
    return await get_factory().get_runtime_detection_error()


async def get_container_client() -> docker.DockerClient:
    return await get_factory().get_container_client()


def set_runtime_preference(runtime: ContainerRuntime) -> None:
    get_factory().detector.config.set_preferred_runtime(runtime)


def set_custom_socket(socket: str | None) -> None:
    get_factory().detector.config.set_custom_socket(socket)


def set_runtime_override(runtime: ContainerRuntime) -> None:
    get_factory().set_runtime_override(runtime)


def clear_runtime_override() -> None:
    get_factory().clear_runtime_override()
