"""OperationPoller — waits for a server-side task to reach a terminal state."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import TYPE_CHECKING, Any

from smartfile.exceptions import (
    OperationFailedError,
    OperationTimeoutError,
    PartialFailureError,
    SmartFileError,
    TaskProtocolError,
)
from smartfile.metrics import ERROR, OPERATION_POLLING, SUCCESS, NullMetrics

from .policy import PollPolicy
from .types import TaskResult, TaskStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from smartfile.metrics import MetricsRecorder

    from .client import Client


TASK_ENDPOINT = "/api/2/task/{task_id}/"


class OperationPoller:
    """Polls ``/api/2/task/{id}/`` with exponential backoff.

    Only the status endpoint is ever retried; the request that started the
    task is the caller's business.  Polls for one task are sequential.
    """

    def __init__(
        self,
        client: Client,
        policy: PollPolicy | None = None,
        *,
        metrics: MetricsRecorder | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = client
        self.policy = policy or PollPolicy()
        self._metrics = metrics or NullMetrics()
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._clock = clock

    async def wait(self, task_id: str) -> TaskResult:
        """Poll *task_id* until SUCCESS, FAILURE, or the policy timeout."""
        endpoint = TASK_ENDPOINT.format(task_id=task_id)
        started = self._clock()
        polls = 0

        for interval in self.policy.intervals():
            elapsed = self._clock() - started
            if elapsed + interval > self.policy.timeout:
                self._metrics.observe(OPERATION_POLLING, polls, endpoint=endpoint, status=ERROR)
                raise OperationTimeoutError(
                    f"Task {task_id} still incomplete after {elapsed:.1f}s",
                    task_id=task_id,
                    elapsed=elapsed,
                )
            await self._sleep(interval)

            polls += 1
            try:
                response = await self._client.request("GET", endpoint)
                payload = self._client.decode_json(response)
                status = self._status_of(task_id, payload, response.status_code)
            except SmartFileError:
                self._metrics.observe(OPERATION_POLLING, polls, endpoint=endpoint, status=ERROR)
                raise

            if status in (TaskStatus.PENDING, TaskStatus.PROGRESS):
                self._logger.warning(
                    "Operation %s incomplete (%s), re-polling", task_id, status.value
                )
                continue

            outcome = self._finish(task_id, status, payload, response.status_code, polls)
            self._metrics.observe(OPERATION_POLLING, polls, endpoint=endpoint, status=SUCCESS)
            return outcome

        raise AssertionError("unreachable")  # intervals() never ends

    def _status_of(self, task_id: str, payload: Any, status_code: int) -> TaskStatus:
        result = payload.get("result") if isinstance(payload, dict) else None
        if not isinstance(result, dict):
            raise TaskProtocolError(
                f"Invalid task response: {payload!r}",
                task_id=task_id,
                status_code=status_code,
                payload=payload if isinstance(payload, dict) else {},
            )
        try:
            return TaskStatus(result.get("status"))
        except ValueError:
            raise TaskProtocolError(
                f"Unexpected task status: {result.get('status')!r}",
                task_id=task_id,
                status_code=status_code,
                payload=payload,
            ) from None

    def _finish(
        self,
        task_id: str,
        status: TaskStatus,
        payload: dict[str, Any],
        status_code: int,
        polls: int,
    ) -> TaskResult:
        endpoint = TASK_ENDPOINT.format(task_id=task_id)
        inner = payload["result"].get("result")
        inner = inner if isinstance(inner, dict) else {}

        if status is TaskStatus.FAILURE:
            self._metrics.observe(OPERATION_POLLING, polls, endpoint=endpoint, status=ERROR)
            raise OperationFailedError(
                f"Task failed: {inner.get('errors')}",
                task_id=task_id,
                status_code=status_code,
                payload=payload,
            )

        if inner.get("errors"):
            self._metrics.observe(OPERATION_POLLING, polls, endpoint=endpoint, status=ERROR)
            raise PartialFailureError(
                "Operation reported errors",
                task_id=task_id,
                status_code=status_code,
                payload=payload,
            )

        return TaskResult(
            task_id=task_id, status=status, result=inner, raw=payload, polls=polls
        )
