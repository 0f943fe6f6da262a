"""Live probes: binary lookup, daemon ping, and bounded subprocess calls."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from typing import Protocol

import docker
import docker.errors
import requests.exceptions

from act_runtime.infrastructure.logger import logger

_log = logger.bind(component="runtime-detector")


@dataclass
class CommandResult:
    returncode: int
    stdout: str


class RuntimeProber(Protocol):
    """Interface for the host probes detection relies on."""

    def which(self, binary: str) -> str | None: ...

    async def ping(self, uri: str, timeout: float) -> bool: ...

    async def run(self, args: list[str], timeout: float) -> CommandResult | None: ...


def _ping_blocking(uri: str, timeout: float) -> None:
    client = docker.DockerClient(
        base_url=uri,
        version="auto",
        timeout=timeout,
        use_ssh_client=uri.startswith("ssh://"),
    )
    try:
        client.ping()
    finally:
        client.close()


class DefaultRuntimeProber:
    """Probes the real host. Failures come back as False/None, never raised."""

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)

    async def ping(self, uri: str, timeout: float) -> bool:
        try:
            await asyncio.wait_for(asyncio.to_thread(_ping_blocking, uri, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            _log.debug("Ping timed out", uri=uri, timeout=timeout)
            return False
        except (docker.errors.DockerException, requests.exceptions.RequestException, OSError, ValueError) as exc:
            _log.debug("Failed to ping daemon", uri=uri, error=str(exc))
            return False
        return True

    async def run(self, args: list[str], timeout: float) -> CommandResult | None:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.DEVNULL,
            )
        except OSError as exc:
            _log.debug("Failed to start command", args=args, error=str(exc))
            return None

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            _log.debug("Command timed out, killing", args=args, timeout=timeout)
            _kill(proc)
            await proc.wait()
            return None
        except asyncio.CancelledError:
            _kill(proc)
            await asyncio.shield(proc.wait())
            raise

        return CommandResult(returncode=proc.returncode or 0, stdout=stdout.decode(errors="replace"))


def _kill(proc: asyncio.subprocess.Process) -> None:
    try:
        proc.kill()
    except ProcessLookupError:
        pass
