import os

import pytest

from act_runtime.detection.detector import RuntimeDetector
from act_runtime.detection.probes import CommandResult
from act_runtime.detection.types import ContainerRuntime, RuntimeSocket
from act_runtime.infrastructure.config import RuntimeConfig

RUNTIME_ENV_VARS = (
    "ACT_CONTAINER_RUNTIME",
    "ACT_CONTAINER_SOCKET",
    "ACT_CONTAINER_CACHE_TTL",
    "PODMAN_HOST",
    "DOCKER_HOST",
)


class FakeProber:
    """Stands in for the host: which binaries exist, which URIs answer pings."""

    def __init__(self) -> None:
        self.binaries: set[str] = set()
        self.live: set[str] = set()
        self.commands: dict[tuple[str, ...], CommandResult] = {}
        self.pinged: list[str] = []
        self.ran: list[list[str]] = []

    def which(self, binary: str) -> str | None:
        return f"/usr/bin/{binary}" if binary in self.binaries else None

    async def ping(self, uri: str, timeout: float) -> bool:
        self.pinged.append(uri)
        return uri in self.live

    async def run(self, args: list[str], timeout: float) -> CommandResult | None:
        self.ran.append(list(args))
        return self.commands.get(tuple(args))


def make_socket(path) -> str:
    """Create a named pipe, which detection treats like a socket."""
    os.mkfifo(path)
    return str(path)


@pytest.fixture(autouse=True)
def clean_runtime_env(monkeypatch):
    for name in RUNTIME_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()


@pytest.fixture
def candidates(tmp_path) -> list[RuntimeSocket]:
    return [
        RuntimeSocket(str(tmp_path / "podman-user.sock"), ContainerRuntime.PODMAN, 95),
        RuntimeSocket(str(tmp_path / "podman.sock"), ContainerRuntime.PODMAN, 90),
        RuntimeSocket(str(tmp_path / "docker.sock"), ContainerRuntime.DOCKER, 80),
        RuntimeSocket(str(tmp_path / "colima.sock"), ContainerRuntime.DOCKER, 75),
    ]


@pytest.fixture
def config() -> RuntimeConfig:
    return RuntimeConfig()


@pytest.fixture
def detector(config, prober, candidates) -> RuntimeDetector:
    return RuntimeDetector(config, prober=prober, candidates=candidates, platform="linux")
