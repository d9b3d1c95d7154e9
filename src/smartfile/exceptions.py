"""Exception hierarchy for the SmartFile client and filesystem layer.

Every error carries a ``status_code`` attribute so callers can tell the
failure kinds apart without parsing messages.  It is ``None`` for errors
that never reached an HTTP response (transport, local I/O, bad arguments).
"""

from __future__ import annotations

from typing import Any


class SmartFileError(Exception):
    """Base exception for all SmartFile errors."""

    status_code: int | None = None


class TransportError(SmartFileError):
    """Raised on connection, DNS, or stream failures (no HTTP status)."""


class ResponseError(SmartFileError):
    """Raised when the API answers with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        reason: str = "",
        method: str = "",
        endpoint: str = "",
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason
        self.method = method
        self.endpoint = endpoint
        self.detail = detail


class PathNotFoundError(ResponseError):
    """Raised when the API reports 404 for a path, or a cached miss says so."""


class DecodeError(SmartFileError):
    """Raised when a response body expected to be JSON does not parse."""

    def __init__(self, message: str, *, status_code: int | None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class RateLimitError(SmartFileError):
    """Raised when a throttled request cannot be replayed automatically.

    ``retry_after`` is the server's suggested wait in seconds.
    """

    status_code = 429

    def __init__(self, message: str, *, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class OperationError(SmartFileError):
    """Base for failures reported by an asynchronous server-side task."""

    def __init__(
        self,
        message: str,
        *,
        task_id: str | None = None,
        status_code: int | None = None,
        payload: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def result(self) -> dict[str, Any]:
        """The task's inner ``result`` object, when the payload has one."""
        outer = self.payload.get("result") or {}
        inner = outer.get("result") if isinstance(outer, dict) else None
        return inner if isinstance(inner, dict) else {}


class OperationFailedError(OperationError):
    """Raised when a task finishes with status FAILURE."""


class PartialFailureError(OperationError):
    """Raised when a task reports SUCCESS but lists per-item errors."""

    @property
    def errors(self) -> Any:
        return self.result.get("errors")


class TaskProtocolError(OperationError):
    """Raised on an unknown task status or a payload without a result."""


class OperationTimeoutError(SmartFileError):
    """Raised when polling a task exceeds the maximum total wait."""

    def __init__(self, message: str, *, task_id: str, elapsed: float) -> None:
        super().__init__(message)
        self.task_id = task_id
        self.elapsed = elapsed


class LocalIOError(SmartFileError, OSError):
    """Raised on staging-file failures, including short writes."""


class InvalidArgumentError(SmartFileError, ValueError):
    """Raised on bad caller input (credentials, flags, descriptors)."""


class UnsupportedModeError(InvalidArgumentError):
    """Raised when ``open`` receives an unknown flags string."""


class BadDescriptorError(InvalidArgumentError):
    """Raised when a file descriptor is unknown, closed, or not ready."""
