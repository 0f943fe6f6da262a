"""PodmanContainer: Docker-compatible handle with Podman diagnostics."""

from __future__ import annotations

import asyncio

import docker
import docker.errors
import requests.exceptions

from act_runtime.container.docker_container import DockerContainer
from act_runtime.container.errors import ContainerRuntimeError, PodmanError
from act_runtime.detection.types import ContainerRuntime

PODMAN_ERROR_INDICATORS = ("slirp4netns", "rootless", "user namespace", "podman")


def is_podman_specific_error(err: BaseException | None) -> bool:
    if err is None:
        return False
    message = str(err).lower()
    return any(indicator in message for indicator in PODMAN_ERROR_INDICATORS)


def get_podman_error_hint(err: BaseException | None) -> str:
    if err is None:
        return ""
    message = str(err).lower()
    if "rootless" in message:
        return "This may be related to rootless Podman. Try running with --privileged or check user namespace configuration."
    if "slirp4netns" in message:
        return "This may be related to Podman networking. Ensure slirp4netns is installed and properly configured."
    if "user namespace" in message:
        return "This may be related to user namespace mapping. Check /etc/subuid and /etc/subgid configuration."
    return "Check Podman documentation at https://podman.io/getting-started/ for troubleshooting."


def is_rootless_podman(client: docker.DockerClient | None) -> bool:
    """True if the daemon reports a rootless security option."""
    if client is None:
        return False
    try:
        info = client.info()
    except (docker.errors.DockerException, requests.exceptions.RequestException):
        return False
    return any("rootless" in str(option).lower() for option in info.get("SecurityOptions") or [])


class PodmanContainer(DockerContainer):
    """Talks to Podman through its Docker-compatible API socket."""

    runtime = ContainerRuntime.PODMAN

    async def create(self, cap_add: list[str], cap_drop: list[str]) -> None:
        try:
            await super().create(cap_add, cap_drop)
        except ContainerRuntimeError as exc:
            if is_podman_specific_error(exc):
                raise PodmanError("container creation", exc, get_podman_error_hint(exc)) from exc
            raise

    async def start(self, attach: bool) -> None:
        client = await self._connect()
        if await asyncio.to_thread(is_rootless_podman, client):
            self._log.debug("Detected rootless Podman, applying rootless adjustments")
            try:
                await self.apply_rootless_optimizations()
            except ContainerRuntimeError as exc:
                self._log.warning("Failed to apply rootless adjustments", error=str(exc))
        await super().start(attach)

    async def apply_rootless_optimizations(self) -> None:
        """Check the container against rootless limits before it starts.

        Privileged mode cannot grant more than the invoking user holds, and
        bind mounts are owned by the subordinate uid range unless the user
        namespace is kept.
        """
        client = await self._connect()
        container_id = self._require_id()
        attrs = await self._call("inspect container", client.api.inspect_container, container_id)
        host_config = attrs.get("HostConfig") or {}

        if host_config.get("Privileged"):
            self._log.warning("Privileged mode is limited to the invoking user's capabilities under rootless Podman")
        if host_config.get("Binds") and not host_config.get("UsernsMode"):
            self._log.debug(
                "Bind mounts will be owned by the subordinate uid range; set userns_mode='keep-id' to keep host ownership",
                binds=len(host_config["Binds"]),
            )
