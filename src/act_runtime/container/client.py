"""Docker-compatible API clients for the detected runtime."""

from __future__ import annotations

import asyncio
import os

import docker
import docker.errors
import requests.exceptions

from act_runtime.container.errors import ContainerConnectionError, RuntimeUnavailableError
from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.types import ContainerRuntime
from act_runtime.infrastructure.config import ENV_DOCKER_HOST
from act_runtime.infrastructure.logger import logger

_CONNECT_ERRORS = (docker.errors.DockerException, requests.exceptions.RequestException, OSError)


def _client_for(base_url: str) -> docker.DockerClient:
    if base_url.startswith("ssh://"):
        # Dial through the local ssh binary, honouring ~/.ssh/config
        return docker.DockerClient(base_url=base_url, use_ssh_client=True, version="auto")
    return docker.DockerClient(base_url=base_url, version="auto")


def create_docker_client(socket: str | None = None) -> docker.DockerClient:
    """Connect to Docker.

    DOCKER_HOST wins and is honoured the way the docker CLI does, TLS settings
    included. Otherwise ``socket``, the URI detection verified, is dialled
    directly; with neither, the SDK defaults apply.
    """
    log = logger.bind(component="container-client", runtime="docker")
    log.debug("Creating Docker client")

    docker_host = os.environ.get(ENV_DOCKER_HOST, "")
    try:
        if docker_host.startswith("ssh://"):
            client = _client_for(docker_host)
        elif docker_host or not socket:
            client = docker.from_env(version="auto")
        else:
            log.debug("Using detected Docker socket", socket=socket)
            client = _client_for(socket)
    except _CONNECT_ERRORS as exc:
        raise ContainerConnectionError(f"failed to connect to Docker daemon: {exc}") from exc

    log.debug("Connected to Docker daemon")
    return client


def create_podman_client(socket: str) -> docker.DockerClient:
    """Connect to Podman's Docker-compatible API at ``socket`` and ping it."""
    log = logger.bind(component="container-client", runtime="podman")
    log.debug("Connecting to Podman", socket=socket)

    try:
        client = _client_for(socket)
    except _CONNECT_ERRORS as exc:
        raise ContainerConnectionError(f"failed to connect to Podman daemon: {exc}") from exc

    try:
        client.ping()
    except _CONNECT_ERRORS as exc:
        client.close()
        raise ContainerConnectionError(f"failed to ping Podman daemon: {exc}") from exc

    log.debug("Connected to Podman daemon")
    return client


async def open_client(runtime: ContainerRuntime, detector: RuntimeDetector) -> docker.DockerClient:
    """Client for ``runtime``; raises RuntimeUnavailableError for UNKNOWN."""
    if runtime is ContainerRuntime.DOCKER:
        socket = None
        if not os.environ.get(ENV_DOCKER_HOST):
            socket = await detector.get_socket_for_runtime(ContainerRuntime.DOCKER)
        return await asyncio.to_thread(create_docker_client, socket)
    if runtime is ContainerRuntime.PODMAN:
        socket = await detector.get_socket_for_runtime(ContainerRuntime.PODMAN)
        if not socket:
            raise ContainerConnectionError("podman socket not found or not accessible")
        return await asyncio.to_thread(create_podman_client, socket)
    raise RuntimeUnavailableError(await detector.get_helpful_error_message())
