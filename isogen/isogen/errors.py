"""Exceptions raised by ISO generation."""

from __future__ import annotations


class IsoGenerationError(Exception):
    """Base class for ISO generation failures."""


class BackendError(IsoGenerationError):
    """The remote backend answered with a non-2xx status."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"Backend error: {status} {body}")
        self.status = status
        self.body = body


class InvalidBackendResponseError(IsoGenerationError):
    """The remote backend answered with an unusable body."""

    def __init__(self, message: str = "Invalid response from backend, no job ID returned") -> None:
        super().__init__(message)


class BackendNotConfiguredError(IsoGenerationError):
    """No backend URL is configured."""

    def __init__(self) -> None:
        super().__init__("ISO backend API URL is not configured")


class LocalGenerationError(IsoGenerationError):
    """Local container generation failed."""

    def __init__(self, message: str, logs: list[str] | None = None) -> None:
        super().__init__(message)
        self.logs = list(logs or [])


class ContainerRuntimeError(Exception):
    """The local container runtime could not perform an operation."""
