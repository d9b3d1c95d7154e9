"""Tests for OperationPoller — backoff, terminal states, protocol errors, timeout."""

from __future__ import annotations

import httpx
import pytest

from smartfile.exceptions import (
    OperationFailedError,
    OperationTimeoutError,
    PartialFailureError,
    ResponseError,
    TaskProtocolError,
)
from smartfile.metrics import OPERATION_POLLING
from smartfile.rest.poller import OperationPoller
from smartfile.rest.policy import PollPolicy
from smartfile.rest.types import TaskStatus

TASK = "/api/2/task/t1/"


class FakeClock:
    """Monotonic clock advanced only by the paired sleep."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now

    async def sleep(self, delay: float) -> None:
        self.now += delay


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


class TestBackoff:
    async def test_pending_then_success(self, api, rest, sleep):
        api.task("t1", "PENDING", "PROGRESS", "PENDING", "SUCCESS")
        result = await rest.poller.wait("t1")

        assert result.status is TaskStatus.SUCCESS
        assert result.task_id == "t1"
        assert result.polls == 4
        assert len(api.calls("GET", TASK)) == 4
        assert sleep.delays == pytest.approx([0.192, 0.384, 0.768, 1.536])

    async def test_intervals_capped(self, api, rest, sleep):
        api.task("t1", *(["PENDING"] * 8), "SUCCESS")
        await rest.poller.wait("t1")

        assert len(api.calls("GET", TASK)) == 9
        assert all(b >= a for a, b in zip(sleep.delays, sleep.delays[1:]))
        assert max(sleep.delays) == pytest.approx(6.144)

    async def test_backoff_resets_per_task(self, api, rest, sleep):
        api.task("t1", "PENDING", "SUCCESS")
        api.task("t2", "SUCCESS")
        await rest.poller.wait("t1")
        await rest.poller.wait("t2")
        assert sleep.delays == pytest.approx([0.192, 0.384, 0.192])

    async def test_poll_count_recorded(self, api, rest, metrics):
        api.task("t1", "PENDING", "SUCCESS")
        await rest.poller.wait("t1")
        assert metrics.values(OPERATION_POLLING, status="success") == [2]


# ---------------------------------------------------------------------------
# Terminal states
# ---------------------------------------------------------------------------


class TestTerminalStates:
    async def test_success_result_payload(self, api, rest):
        api.json(
            "GET",
            TASK,
            {"result": {"status": "SUCCESS", "result": {"copied": 3}}},
        )
        result = await rest.poller.wait("t1")
        assert result.result == {"copied": 3}
        assert result.raw["result"]["status"] == "SUCCESS"
        assert result.errors is None

    async def test_failure(self, api, rest):
        api.task("t1", "FAILURE", errors={"/a": "permission denied"})
        with pytest.raises(OperationFailedError) as exc_info:
            await rest.poller.wait("t1")
        assert exc_info.value.task_id == "t1"
        assert exc_info.value.status_code == 200
        assert "permission denied" in str(exc_info.value)

    async def test_partial_failure(self, api, rest, metrics):
        api.task("t1", "SUCCESS", errors={"/a/b": "locked"})
        with pytest.raises(PartialFailureError) as exc_info:
            await rest.poller.wait("t1")
        assert exc_info.value.errors == {"/a/b": "locked"}
        assert exc_info.value.payload["result"]["status"] == "SUCCESS"
        assert metrics.values(OPERATION_POLLING, status="error") == [1]

    async def test_empty_error_map_is_success(self, api, rest):
        api.task("t1", "SUCCESS", errors={})
        result = await rest.poller.wait("t1")
        assert result.status is TaskStatus.SUCCESS


# ---------------------------------------------------------------------------
# Protocol errors
# ---------------------------------------------------------------------------


class TestProtocolErrors:
    async def test_unknown_status(self, api, rest):
        api.json("GET", TASK, {"result": {"status": "EXPLODED"}})
        with pytest.raises(TaskProtocolError):
            await rest.poller.wait("t1")

    async def test_missing_result(self, api, rest):
        api.json("GET", TASK, {"status": "SUCCESS"})
        with pytest.raises(TaskProtocolError):
            await rest.poller.wait("t1")

    async def test_non_object_payload(self, api, rest):
        api.add("GET", TASK, httpx.Response(200, json=["SUCCESS"]))
        with pytest.raises(TaskProtocolError):
            await rest.poller.wait("t1")

    async def test_protocol_error_recorded(self, api, rest, metrics):
        api.json("GET", TASK, {"result": {"status": "EXPLODED"}})
        with pytest.raises(TaskProtocolError):
            await rest.poller.wait("t1")
        assert metrics.values(OPERATION_POLLING, status="error") == [1]

    async def test_status_poll_http_error_recorded(self, api, rest, metrics):
        api.add("GET", TASK, httpx.Response(500, json={"detail": "boom"}))
        with pytest.raises(ResponseError) as exc_info:
            await rest.poller.wait("t1")
        assert exc_info.value.status_code == 500
        assert metrics.values(OPERATION_POLLING, status="error") == [1]


# ---------------------------------------------------------------------------
# Timeout
# ---------------------------------------------------------------------------


class TestTimeout:
    async def test_gives_up_after_total_wait(self, api, rest):
        api.task("t1", "PENDING")
        clock = FakeClock()
        poller = OperationPoller(
            rest,
            PollPolicy(min_interval=1.0, max_interval=4.0, timeout=10.0),
            sleep=clock.sleep,
            clock=clock,
        )
        with pytest.raises(OperationTimeoutError) as exc_info:
            await poller.wait("t1")

        # Waits of 1, 2, and 4 fit; the next 4 would pass the 10s ceiling.
        assert len(api.calls("GET", TASK)) == 3
        assert exc_info.value.task_id == "t1"
        assert exc_info.value.elapsed == pytest.approx(7.0)
        assert exc_info.value.status_code is None
