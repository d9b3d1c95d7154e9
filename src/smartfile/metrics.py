"""Metrics recorder protocol and the in-process implementations."""

from __future__ import annotations

import time
from collections import Counter, defaultdict
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator


HTTP_REQUEST = "smartfile_rest_http_request"
THROTTLE = "smartfile_rest_throttle"
OPERATION_POLLING = "smartfile_rest_operation_polling"
CHILDREN_PAGES = "smartfile_rest_children_pages"
FS_OPERATION = "smartfile_fs_operation"
CACHE_HIT = "smartfile_fs_cache_hit"
CACHE_MISS = "smartfile_fs_cache_miss"

SUCCESS = "success"
ERROR = "error"


def _label_key(labels: dict[str, Any]) -> tuple[tuple[str, Any], ...]:
    return tuple(sorted(labels.items()))


@runtime_checkable
class MetricsRecorder(Protocol):
    """The narrow interface components use to report measurements."""

    def increment(self, name: str, amount: int = 1, **labels: Any) -> None: ...

    def observe(self, name: str, value: float, **labels: Any) -> None: ...

    def observe_operation(self, name: str, outcome: str, duration_ms: float) -> None: ...


class NullMetrics:
    """Recorder that discards everything."""

    def increment(self, name: str, amount: int = 1, **labels: Any) -> None:
        pass

    def observe(self, name: str, value: float, **labels: Any) -> None:
        pass

    def observe_operation(self, name: str, outcome: str, duration_ms: float) -> None:
        pass


class InMemoryMetrics:
    """Keeps counters and observations in process memory.

    Counters are keyed by ``(name, labels)``; observations keep every
    value so tests and diagnostics can inspect the full series.
    """

    def __init__(self) -> None:
        self.counters: Counter[tuple[str, tuple[tuple[str, Any], ...]]] = Counter()
        self.observations: dict[
            tuple[str, tuple[tuple[str, Any], ...]], list[float]
        ] = defaultdict(list)
        self.operations: list[tuple[str, str, float]] = []

    def increment(self, name: str, amount: int = 1, **labels: Any) -> None:
        self.counters[(name, _label_key(labels))] += amount

    def observe(self, name: str, value: float, **labels: Any) -> None:
        self.observations[(name, _label_key(labels))].append(value)

    def observe_operation(self, name: str, outcome: str, duration_ms: float) -> None:
        self.operations.append((name, outcome, duration_ms))
        self.observe(FS_OPERATION, duration_ms, op_name=name, status=outcome)

    def count(self, name: str, **labels: Any) -> int:
        """Sum a counter across label sets, filtered by the given labels."""
        total = 0
        for (key, label_items), value in self.counters.items():
            if key != name:
                continue
            if all(item in label_items for item in labels.items()):
                total += value
        return total

    def values(self, name: str, **labels: Any) -> list[float]:
        """All observed values for *name* whose labels include *labels*."""
        out: list[float] = []
        for (key, label_items), series in self.observations.items():
            if key == name and all(item in label_items for item in labels.items()):
                out.extend(series)
        return out

    def outcomes(self, name: str) -> list[str]:
        """Outcome labels recorded for operation *name*, in order."""
        return [outcome for op, outcome, _ in self.operations if op == name]


@contextmanager
def time_operation(recorder: MetricsRecorder, name: str) -> Iterator[None]:
    """Time the enclosed block and record it as ``success`` or ``error``.

    A generator closed early by its consumer counts as a success.
    """
    start = time.perf_counter()
    try:
        yield
    except GeneratorExit:
        recorder.observe_operation(name, SUCCESS, (time.perf_counter() - start) * 1000.0)
        raise
    except BaseException:
        recorder.observe_operation(name, ERROR, (time.perf_counter() - start) * 1000.0)
        raise
    recorder.observe_operation(name, SUCCESS, (time.perf_counter() - start) * 1000.0)
