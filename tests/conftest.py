"""Shared fixtures for SmartFile tests."""

from __future__ import annotations

from collections import defaultdict, deque
from typing import TYPE_CHECKING, Any

import httpx
import pytest

from smartfile.fs.filesystem import AsyncFileSystem
from smartfile.metrics import InMemoryMetrics
from smartfile.rest.client import Client

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    Reply = httpx.Response | Callable[[httpx.Request], httpx.Response]

BASE_URL = "http://fakeapi.foo"


class FakeAPI:
    """Route table for ``httpx.MockTransport``.

    Replies are queued per ``(method, raw path)``; the last reply for a
    route is repeated once the queue is down to one.  Every request is
    recorded, with its body already read.
    """

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], deque[Reply]] = defaultdict(deque)
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *replies: Reply) -> None:
        self.routes[(method.upper(), path)].extend(replies)

    def json(self, method: str, path: str, payload: Any, status_code: int = 200) -> None:
        self.add(method, path, httpx.Response(status_code, json=payload))

    def task(self, task_id: str, *statuses: str, errors: Any = None) -> None:
        """Queue task-status replies, one per status."""
        for status in statuses:
            inner: dict[str, Any] = {}
            if errors is not None:
                inner["errors"] = errors
            self.json(
                "GET",
                f"/api/2/task/{task_id}/",
                {"result": {"status": status, "result": inner}},
            )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.raw_path.decode("ascii").split("?", 1)[0]
        queue = self.routes.get((request.method, path))
        if not queue:
            return httpx.Response(501, json={"detail": f"no route for {request.method} {path}"})
        reply = queue.popleft() if len(queue) > 1 else queue[0]
        if callable(reply):
            return reply(request)
        # Fresh copy so a repeated reply is never consumed twice.
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method
            and r.url.raw_path.decode("ascii").split("?", 1)[0] == path
        ]


class AbortingStream(httpx.AsyncByteStream):
    """Response body that drops the connection after the first chunk."""

    async def __aiter__(self) -> AsyncIterator[bytes]:
        yield b"part"
        raise httpx.ReadError("connection reset")


@pytest.fixture
def aborted_reply() -> Callable[..., Reply]:
    """Factory for replies whose body fails partway through."""

    def factory(status_code: int = 200) -> Reply:
        def reply(request: httpx.Request) -> httpx.Response:
            return httpx.Response(status_code, stream=AbortingStream())

        return reply

    return factory


class RecordingSleep:
    """Stands in for ``asyncio.sleep``; remembers every delay."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def metrics() -> InMemoryMetrics:
    return InMemoryMetrics()


@pytest.fixture
def make_client(
    api: FakeAPI, sleep: RecordingSleep, metrics: InMemoryMetrics
) -> Callable[..., Client]:
    """Factory for clients wired to the fake API; callers close them."""

    def factory(**kwargs: Any) -> Client:
        kwargs.setdefault("transport", httpx.MockTransport(api.handler))
        kwargs.setdefault("sleep", sleep)
        kwargs.setdefault("metrics", metrics)
        return Client(BASE_URL, **kwargs)

    return factory


@pytest.fixture
async def rest(make_client: Callable[..., Client]) -> AsyncIterator[Client]:
    client = make_client()
    yield client
    await client.aclose()


@pytest.fixture
def fs(rest: Client, metrics: InMemoryMetrics) -> AsyncFileSystem:
    """Filesystem at the default cache level (single use)."""
    return AsyncFileSystem(rest, metrics=metrics)


@pytest.fixture
def fs2(rest: Client, metrics: InMemoryMetrics) -> AsyncFileSystem:
    """Filesystem with the persistent cache."""
    return AsyncFileSystem(rest, cache_level=2, metrics=metrics)
