"""Retry, backoff, and outcome-classification rules.

Kept in one place so the special cases (throttle replay, idempotent
delete) can be read and tested without a transport.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

DEFAULT_RETRY_AFTER = 1.0
RETRY_AFTER_HEADERS = ("Retry-After", "X-Throttle-Wait-Seconds")


@dataclass(frozen=True)
class PollPolicy:
    """Backoff and ceiling for polling an asynchronous task.

    Intervals start at ``min_interval`` and double up to ``max_interval``;
    polling gives up once ``timeout`` seconds have passed since the task
    started.
    """

    min_interval: float = 0.192
    max_interval: float = 6.144
    timeout: float = 390.0

    def __post_init__(self) -> None:
        if self.min_interval <= 0:
            raise ValueError("min_interval must be positive")
        if self.max_interval < self.min_interval:
            raise ValueError("max_interval must be >= min_interval")
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    def intervals(self) -> Iterator[float]:
        """Yield the wait before each poll, forever."""
        interval = self.min_interval
        while True:
            yield interval
            interval = min(interval * 2, self.max_interval)


def retry_after_seconds(headers: Mapping[str, str]) -> float:
    """Read the throttle delay from a 429 response's headers."""
    for name in RETRY_AFTER_HEADERS:
        value = headers.get(name)
        if value is None:
            continue
        try:
            seconds = float(value)
        except ValueError:
            continue
        if seconds >= 0:
            return seconds
    return DEFAULT_RETRY_AFTER


def is_replayable(
    method: str,
    *,
    content: Any = None,
    data: Any = None,
    files: Mapping[str, Any] | None = None,
) -> bool:
    """True if a request can be re-sent byte-for-byte after a throttle.

    Safe methods always qualify.  Otherwise every body part must be held
    in memory; file objects and iterators are consumed by the first send.
    """
    if method.upper() in SAFE_METHODS:
        return True
    if content is not None and not isinstance(content, (bytes, bytearray, str)):
        return False
    if data is not None and not isinstance(data, Mapping):
        return False
    for part in (files or {}).values():
        value = part[1] if isinstance(part, tuple) else part
        if not isinstance(value, (bytes, bytearray, str)):
            return False
    return True


class DeleteOutcome(Enum):
    SUCCESS = "success"
    ERROR = "error"


def classify_delete_outcome(status_code: int | None) -> DeleteOutcome:
    """Decide whether a failed remove request still counts as done.

    Deleting a path that is already gone (404) is a successful no-op.
    """
    if status_code == 404:
        return DeleteOutcome.SUCCESS
    return DeleteOutcome.ERROR
