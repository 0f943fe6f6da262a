"""Container runtime identities and socket records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ContainerRuntime(Enum):
    """Container backends the runner knows how to drive."""

    UNKNOWN = "unknown"
    DOCKER = "docker"
    PODMAN = "podman"

    def __str__(self) -> str:
        return self.value

    @property
    def binary(self) -> str | None:
        """Name of the backend's command-line tool."""
        return None if self is ContainerRuntime.UNKNOWN else self.value


@dataclass(frozen=True)
class RuntimeSocket:
    """A socket or named pipe conventionally used by a backend.

    ``path`` may contain ``$VAR`` placeholders until expanded. Higher
    ``score`` wins.
    """

    path: str
    runtime: ContainerRuntime
    score: int


@dataclass(frozen=True)
class ResolvedSocket:
    """A candidate that answered a live ping."""

    uri: str  # unix://... or npipe://...
    runtime: ContainerRuntime
