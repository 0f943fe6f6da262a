"""Container domain types."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Health(Enum):
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


class FileEntry(BaseModel):
    name: str  # Relative to the copy destination
    mode: int = 0o644
    body: str = ""


class NewContainerInput(BaseModel):
    """What the execution engine wants created. Opaque beyond the fields read here."""

    image: str
    name: str
    username: str | None = None  # Registry credentials for pull
    password: str | None = None
    entrypoint: list[str] | None = None
    cmd: list[str] | None = None
    working_dir: str = "/github/workspace"
    env: list[str] = Field(default_factory=list)  # KEY=VALUE
    binds: list[str] = Field(default_factory=list)  # host:container[:mode]
    mounts: dict[str, str] = Field(default_factory=dict)  # volume name -> container path
    network_mode: str | None = None
    privileged: bool = False
    userns_mode: str | None = None
    platform: str | None = None
    auto_remove: bool = False
    stdout: Any = None  # Text sinks for container output, default sys.stdout/sys.stderr
    stderr: Any = None
