"""Socket candidate table and socket path helpers."""

from __future__ import annotations

import os
import stat

from act_runtime.detection.types import ContainerRuntime, RuntimeSocket
from act_runtime.infrastructure.config import ENV_DOCKER_HOST

WINDOWS_PIPE_PREFIX = "\\\\.\\"

# Podman outranks Docker: rootless and daemonless by default.
# New backends are added by appending rows.
SOCKET_CANDIDATES: tuple[RuntimeSocket, ...] = (
    RuntimeSocket("$XDG_RUNTIME_DIR/podman/podman.sock", ContainerRuntime.PODMAN, 95),
    RuntimeSocket("/run/podman/podman.sock", ContainerRuntime.PODMAN, 90),
    RuntimeSocket("$HOME/.local/share/containers/podman/machine/podman.sock", ContainerRuntime.PODMAN, 85),
    RuntimeSocket("/var/run/docker.sock", ContainerRuntime.DOCKER, 80),
    RuntimeSocket("$HOME/.colima/docker.sock", ContainerRuntime.DOCKER, 75),
    RuntimeSocket("$XDG_RUNTIME_DIR/docker.sock", ContainerRuntime.DOCKER, 70),
    RuntimeSocket("$HOME/.docker/run/docker.sock", ContainerRuntime.DOCKER, 65),
    RuntimeSocket(r"\\.\pipe\docker_engine", ContainerRuntime.DOCKER, 60),
    RuntimeSocket(r"\\.\pipe\podman-machine-default", ContainerRuntime.PODMAN, 85),
)


def expand_path(path: str) -> str | None:
    """Expand ``$VAR`` placeholders; None if any variable is unset."""
    expanded = os.path.expandvars(path)
    if "$" in expanded:
        return None
    return expanded


def is_named_pipe_path(path: str) -> bool:
    return path.startswith(WINDOWS_PIPE_PREFIX)


def socket_exists(path: str) -> bool:
    """True if ``path`` is a unix socket or a named pipe, not a regular file."""
    if is_named_pipe_path(path):
        return os.path.exists(path)
    try:
        mode = os.lstat(path).st_mode
    except OSError:
        return False
    return stat.S_ISSOCK(mode) or stat.S_ISFIFO(mode)


def socket_uri(path: str) -> str:
    """Normalise a socket path to a ``unix://`` or ``npipe://`` URI.

    Paths that already carry a scheme are returned unchanged.
    """
    if "://" in path:
        return path
    if is_named_pipe_path(path):
        return "npipe://" + path.replace("\\", "/")
    return "unix://" + path


def guess_runtime_from_socket(socket: str) -> ContainerRuntime:
    """Guess the backend behind a socket path.

    Unrecognised paths count as Docker, since every supported backend
    speaks the Docker-compatible API.
    """
    lowered = socket.lower()
    if "podman" in lowered:
        return ContainerRuntime.PODMAN
    if "docker" in lowered:
        return ContainerRuntime.DOCKER
    return ContainerRuntime.DOCKER


def existing_candidates(
    candidates: tuple[RuntimeSocket, ...] | list[RuntimeSocket] = SOCKET_CANDIDATES,
) -> list[RuntimeSocket]:
    """Expand and filter the table to sockets present on disk, best score first.

    Ties keep table order.
    """
    available: list[RuntimeSocket] = []
    for candidate in candidates:
        expanded = expand_path(candidate.path)
        if expanded and socket_exists(expanded):
            available.append(RuntimeSocket(expanded, candidate.runtime, candidate.score))
    return sorted(available, key=lambda s: s.score, reverse=True)


def docker_socket_location(
    candidates: tuple[RuntimeSocket, ...] | list[RuntimeSocket] = SOCKET_CANDIDATES,
) -> str | None:
    """Where a Docker client would connect: DOCKER_HOST, else the first Docker socket found."""
    docker_host = os.environ.get(ENV_DOCKER_HOST)
    if docker_host:
        return docker_host
    for candidate in existing_candidates(candidates):
        if candidate.runtime is ContainerRuntime.DOCKER:
            return socket_uri(candidate.path)
    return None
