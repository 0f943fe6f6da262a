"""Errors raised by container handles."""

from __future__ import annotations

NO_RUNTIME_AVAILABLE = "no container runtime available"


class ContainerRuntimeError(Exception):
    """Base class for container runtime failures."""


class RuntimeUnavailableError(ContainerRuntimeError):
    """No usable backend. The message carries the detector's diagnostic report."""

    def __init__(self, report: str) -> None:
        super().__init__(f"{NO_RUNTIME_AVAILABLE}\n\n{report}")
        self.report = report


class ContainerConnectionError(ContainerRuntimeError):
    """Connecting to the backend daemon failed."""


class ContainerExecError(ContainerRuntimeError):
    def __init__(self, message: str, exit_code: int) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class PodmanError(ContainerRuntimeError):
    """A Podman-specific failure, with a troubleshooting hint appended."""

    def __init__(self, action: str, cause: BaseException, hint: str) -> None:
        super().__init__(f"podman {action} failed: {cause}\nHint: {hint}")
        self.hint = hint
