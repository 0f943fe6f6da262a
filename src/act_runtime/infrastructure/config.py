"""Configuration constants, environment parsing, and detector settings."""

from __future__ import annotations

import os
import threading

from act_runtime.detection.types import ContainerRuntime
from act_runtime.infrastructure.logger import logger

# Environment variables consulted at resolution time
ENV_CONTAINER_RUNTIME = "ACT_CONTAINER_RUNTIME"
ENV_CONTAINER_SOCKET = "ACT_CONTAINER_SOCKET"
ENV_CACHE_TTL = "ACT_CONTAINER_CACHE_TTL"
ENV_PODMAN_HOST = "PODMAN_HOST"
ENV_DOCKER_HOST = "DOCKER_HOST"

PROBE_TIMEOUT: float = 5.0  # seconds, pings and `podman info`
MACHINE_INSPECT_TIMEOUT: float = 3.0  # seconds, `podman machine inspect`


def parse_runtime(value: str | None) -> ContainerRuntime:
    """Map a user-supplied runtime name to a ContainerRuntime.

    Accepts ``docker`` and ``podman`` in any case. ``auto``, empty and
    unrecognised values all mean "no preference".
    """
    if not value:
        return ContainerRuntime.UNKNOWN
    lowered = value.strip().lower()
    if lowered == "docker":
        return ContainerRuntime.DOCKER
    if lowered == "podman":
        return ContainerRuntime.PODMAN
    return ContainerRuntime.UNKNOWN


def _read_cache_ttl() -> float:
    raw = os.environ.get(ENV_CACHE_TTL, "")
    if not raw:
        return 0.0
    try:
        ttl = float(raw)
    except ValueError:
        logger.warning("Ignoring invalid cache TTL", variable=ENV_CACHE_TTL, value=raw)
        return 0.0
    return max(0.0, ttl)


class RuntimeConfig:
    """Detector configuration shared by the factory and the detector.

    Written near process start by CLI or environment setup and read on every
    container creation. Every access takes a short lock; nothing holds it
    across a probe.
    """

    def __init__(
        self,
        preferred_runtime: ContainerRuntime = ContainerRuntime.UNKNOWN,
        custom_socket: str | None = None,
        cache_ttl: float = 0.0,
    ) -> None:
        self._lock = threading.Lock()
        self._preferred_runtime = preferred_runtime
        self._custom_socket = custom_socket or None
        self._cache_ttl = cache_ttl
        self._generation = 0

    @classmethod
    def from_environment(cls) -> RuntimeConfig:
        config = cls(cache_ttl=_read_cache_ttl())
        configure_from_environment(config)
        return config

    @property
    def preferred_runtime(self) -> ContainerRuntime:
        with self._lock:
            return self._preferred_runtime

    @property
    def custom_socket(self) -> str | None:
        with self._lock:
            return self._custom_socket

    @property
    def cache_ttl(self) -> float:
        with self._lock:
            return self._cache_ttl

    @property
    def generation(self) -> int:
        """Incremented on every change, so cached resolutions can be dropped."""
        with self._lock:
            return self._generation

    def set_preferred_runtime(self, runtime: ContainerRuntime) -> None:
        with self._lock:
            if self._preferred_runtime is not runtime:
                self._preferred_runtime = runtime
                self._generation += 1
        logger.debug("Preferred runtime set", component="runtime-detector", runtime=str(runtime))

    def set_custom_socket(self, socket: str | None) -> None:
        socket = socket or None
        with self._lock:
            if self._custom_socket != socket:
                self._custom_socket = socket
                self._generation += 1
        logger.debug("Custom socket set", component="runtime-detector", socket=socket)

    def set_cache_ttl(self, ttl: float) -> None:
        with self._lock:
            self._cache_ttl = max(0.0, ttl)
            self._generation += 1

    def snapshot(self) -> tuple[ContainerRuntime, str | None, int]:
        """Read preference, socket and generation atomically."""
        with self._lock:
            return self._preferred_runtime, self._custom_socket, self._generation


def configure_from_environment(config: RuntimeConfig) -> None:
    """Apply ACT_CONTAINER_RUNTIME and ACT_CONTAINER_SOCKET to ``config``.

    Unset variables leave the current value alone, so CLI settings survive.
    """
    runtime = parse_runtime(os.environ.get(ENV_CONTAINER_RUNTIME))
    if runtime is not ContainerRuntime.UNKNOWN:
        config.set_preferred_runtime(runtime)

    socket = os.environ.get(ENV_CONTAINER_SOCKET)
    if socket:
        config.set_custom_socket(socket)
