"""RuntimeDetector: picks the container backend to use right now.

Resolution order, first success wins:

1. the configured preference, if it verifies
2. environment hints (ACT_CONTAINER_RUNTIME, PODMAN_HOST, DOCKER_HOST)
3. live probing of the socket candidate table, best score first

Detection never raises. Probe failures are logged and read as "not usable".
"""

from __future__ import annotations

import asyncio
import os
import sys
import threading
import time
from dataclasses import dataclass

from act_runtime.detection.probes import DefaultRuntimeProber, RuntimeProber
from act_runtime.detection.sockets import (
    SOCKET_CANDIDATES,
    docker_socket_location,
    existing_candidates,
    guess_runtime_from_socket,
    socket_exists,
    socket_uri,
)
from act_runtime.detection.types import ContainerRuntime, ResolvedSocket, RuntimeSocket
from act_runtime.infrastructure.config import (
    ENV_CONTAINER_RUNTIME,
    ENV_CONTAINER_SOCKET,
    ENV_DOCKER_HOST,
    ENV_PODMAN_HOST,
    MACHINE_INSPECT_TIMEOUT,
    PROBE_TIMEOUT,
    RuntimeConfig,
    parse_runtime,
)
from act_runtime.infrastructure.logger import logger

CUSTOM_SOCKET_SCORE = 100
PODMAN_MACHINE_SOCKET_FORMAT = "{{.ConnectionInfo.PodmanSocket.Path}}"


@dataclass
class _CachedResolution:
    runtime: ContainerRuntime
    expires_at: float
    generation: int
    env: tuple[str | None, ...]


def _env_snapshot() -> tuple[str | None, ...]:
    return tuple(
        os.environ.get(name)
        for name in (ENV_CONTAINER_RUNTIME, ENV_CONTAINER_SOCKET, ENV_PODMAN_HOST, ENV_DOCKER_HOST)
    )


class RuntimeDetector:
    """Detects and verifies Docker and Podman on the current host."""

    def __init__(
        self,
        config: RuntimeConfig | None = None,
        prober: RuntimeProber | None = None,
        candidates: tuple[RuntimeSocket, ...] | list[RuntimeSocket] = SOCKET_CANDIDATES,
        platform: str = sys.platform,
    ) -> None:
        self.config = config or RuntimeConfig()
        self._prober = prober or DefaultRuntimeProber()
        self._candidates = tuple(candidates)
        self._platform = platform
        self._log = logger.bind(component="runtime-detector")
        self._cache_lock = threading.Lock()
        self._cached: _CachedResolution | None = None

    async def detect_available_runtime(self) -> ContainerRuntime:
        """Return the backend to use, or UNKNOWN if none is usable."""
        preferred, _, generation = self.config.snapshot()
        env = _env_snapshot()

        cached = self._get_cached(generation, env)
        if cached is not None:
            self._log.debug("Using cached runtime resolution", runtime=str(cached))
            return cached

        self._log.debug("Starting container runtime detection")
        runtime = await self._resolve(preferred)
        if runtime is not ContainerRuntime.UNKNOWN:
            self._store_cached(runtime, generation, env)
        return runtime

    async def _resolve(self, preferred: ContainerRuntime) -> ContainerRuntime:
        if preferred is not ContainerRuntime.UNKNOWN:
            if await self.verify_runtime(preferred):
                self._log.info("Using preferred runtime", runtime=str(preferred))
                return preferred
            self._log.warning(
                "Preferred runtime is not available, falling back to auto-detection",
                runtime=str(preferred),
            )

        hinted = self.check_environment_hints()
        if hinted is not ContainerRuntime.UNKNOWN:
            if await self.verify_runtime(hinted):
                self._log.info("Using runtime from environment", runtime=str(hinted))
                return hinted
            self._log.warning("Environment-specified runtime is not available", runtime=str(hinted))

        detected = await self.auto_detect_runtime()
        if detected is not ContainerRuntime.UNKNOWN:
            self._log.info("Auto-detected runtime", runtime=str(detected))
            return detected

        self._log.error("No container runtime detected")
        return ContainerRuntime.UNKNOWN

    def check_environment_hints(self) -> ContainerRuntime:
        """Read the runtime hinted by environment variables, UNKNOWN if none."""
        runtime = parse_runtime(os.environ.get(ENV_CONTAINER_RUNTIME))
        if runtime is not ContainerRuntime.UNKNOWN:
            return runtime
        if os.environ.get(ENV_PODMAN_HOST):
            return ContainerRuntime.PODMAN
        if os.environ.get(ENV_DOCKER_HOST):
            return ContainerRuntime.DOCKER
        return ContainerRuntime.UNKNOWN

    async def auto_detect_runtime(self) -> ContainerRuntime:
        if self._platform == "darwin" and not self.config.custom_socket:
            machine_socket = await self.get_podman_machine_socket()
            if machine_socket and await self._prober.ping("unix://" + machine_socket, PROBE_TIMEOUT):
                return ContainerRuntime.PODMAN

        for socket in self.detect_runtime_sockets():
            resolved = await self.verify_socket_connection(socket)
            if resolved:
                return resolved.runtime
        return ContainerRuntime.UNKNOWN

    def detect_runtime_sockets(self) -> list[RuntimeSocket]:
        """Sockets worth probing, best first. A custom socket is the only candidate."""
        custom_socket = self.config.custom_socket
        if custom_socket:
            return [RuntimeSocket(custom_socket, guess_runtime_from_socket(custom_socket), CUSTOM_SOCKET_SCORE)]
        return existing_candidates(self._candidates)

    async def verify_socket_connection(self, socket: RuntimeSocket) -> ResolvedSocket | None:
        uri = socket_uri(socket.path)
        if not await self._prober.ping(uri, PROBE_TIMEOUT):
            return None
        self._log.debug("Verified runtime socket", runtime=str(socket.runtime), socket=uri)
        return ResolvedSocket(uri, socket.runtime)

    async def verify_runtime(self, runtime: ContainerRuntime) -> bool:
        if runtime is ContainerRuntime.DOCKER:
            return await self.verify_docker()
        if runtime is ContainerRuntime.PODMAN:
            return await self.verify_podman()
        return False

    async def verify_docker(self) -> bool:
        """Docker binary on PATH and its daemon answering a ping."""
        if not self._prober.which("docker"):
            self._log.debug("Docker binary not found in PATH")
            return False

        uri = self._custom_socket_for(ContainerRuntime.DOCKER) or docker_socket_location(self._candidates)
        if not uri:
            self._log.debug("No Docker socket found")
            return False
        return await self._prober.ping(uri, PROBE_TIMEOUT)

    async def verify_podman(self) -> bool:
        """Podman binary on PATH and either its socket or `podman info` answering."""
        if not self._prober.which("podman"):
            self._log.debug("Podman binary not found in PATH")
            return False

        custom = self._custom_socket_for(ContainerRuntime.PODMAN)
        sockets = [custom] if custom else [
            socket_uri(s.path) for s in existing_candidates(self._candidates)
            if s.runtime is ContainerRuntime.PODMAN
        ]
        for uri in sockets:
            if await self._prober.ping(uri, PROBE_TIMEOUT):
                return True

        result = await self._prober.run(["podman", "info", "--format", "json"], PROBE_TIMEOUT)
        if result is None or result.returncode != 0:
            self._log.debug("Podman info command failed")
            return False
        return True

    def _custom_socket_for(self, runtime: ContainerRuntime) -> str | None:
        custom_socket = self.config.custom_socket
        if custom_socket and guess_runtime_from_socket(custom_socket) is runtime:
            return socket_uri(custom_socket)
        return None

    async def get_podman_machine_socket(self) -> str | None:
        """Ask `podman machine inspect` for the VM-forwarded API socket.

        Failures only log at debug level; table scanning follows.
        """
        result = await self._prober.run(
            ["podman", "machine", "inspect", "--format", PODMAN_MACHINE_SOCKET_FORMAT],
            MACHINE_INSPECT_TIMEOUT,
        )
        if result is None or result.returncode != 0:
            self._log.debug("Failed to get Podman machine socket")
            return None

        path = result.stdout.strip()
        if not path or path == "<no value>":
            self._log.debug("No Podman machine socket path found")
            return None
        if not os.path.exists(path):
            self._log.debug("Podman machine socket not accessible", socket=path)
            return None

        self._log.debug("Found Podman machine socket", socket=path)
        return path

    async def get_socket_for_runtime(self, runtime: ContainerRuntime) -> str | None:
        """URI of a verified socket for ``runtime``, or None."""
        custom_socket = self.config.custom_socket
        if custom_socket:
            return socket_uri(custom_socket)

        if runtime is ContainerRuntime.PODMAN and self._platform == "darwin":
            machine_socket = await self.get_podman_machine_socket()
            if machine_socket:
                return "unix://" + machine_socket

        for socket in existing_candidates(self._candidates):
            if socket.runtime is not runtime:
                continue
            resolved = await self.verify_socket_connection(socket)
            if resolved:
                return resolved.uri
        return None

    async def get_helpful_error_message(self) -> str:
        """Diagnostic report shown when no runtime can be used."""
        docker_ok, podman_ok = await asyncio.gather(self.verify_docker(), self.verify_podman())
        docker_socket = docker_socket_location(self._candidates)

        lines = [
            "No container runtime detected",
            "",
            "Act requires either Docker or Podman to run GitHub Actions locally.",
            "",
            "Install options:",
            "  Docker:  https://docs.docker.com/get-docker/",
            "  Podman:  https://podman.io/getting-started/installation",
            "",
            "Current detection status:",
        ]
        if docker_socket:
            lines.append(f"  {_mark(docker_ok)} Docker (socket: {docker_socket})")
        else:
            lines.append("  ✗ Docker daemon not running (no socket found)")
        lines.append(f"  {_mark(podman_ok)} Podman (binary check)")
        lines += [
            "",
            "Override detection with:",
            "  act --container-runtime=docker",
            "  act --container-runtime=podman",
            "  act --container-socket=/custom/socket",
        ]
        return "\n".join(lines) + "\n"

    def invalidate_cache(self) -> None:
        with self._cache_lock:
            self._cached = None

    def _get_cached(self, generation: int, env: tuple[str | None, ...]) -> ContainerRuntime | None:
        with self._cache_lock:
            cached = self._cached
        if cached is None:
            return None
        if cached.generation != generation or cached.env != env or time.monotonic() >= cached.expires_at:
            return None
        return cached.runtime

    def _store_cached(self, runtime: ContainerRuntime, generation: int, env: tuple[str | None, ...]) -> None:
        ttl = self.config.cache_ttl
        if ttl <= 0:
            return
        with self._cache_lock:
            self._cached = _CachedResolution(runtime, time.monotonic() + ttl, generation, env)


def _mark(ok: bool) -> str:
    return "✓" if ok else "✗"
