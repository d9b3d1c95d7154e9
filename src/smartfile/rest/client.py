"""Client — the single point of HTTP access to the SmartFile API."""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING, Any

import httpx

from smartfile.exceptions import (
    DecodeError,
    InvalidArgumentError,
    PathNotFoundError,
    RateLimitError,
    ResponseError,
    TaskProtocolError,
    TransportError,
)
from smartfile.metrics import CHILDREN_PAGES, HTTP_REQUEST, THROTTLE, NullMetrics

from .auth import NoAuth, SupportsSession
from .paths import basename, dirname, encode_path, normalize_path
from .poller import OperationPoller
from .policy import is_replayable, retry_after_seconds
from .types import ListingPage, PathInfo

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Mapping

    from smartfile.config import ClientConfig
    from smartfile.metrics import MetricsRecorder

    from .auth import Authenticator
    from .policy import PollPolicy
    from .types import TaskResult

PING_ENDPOINT = "/api/2/ping/"
WHOAMI_ENDPOINT = "/api/2/whoami/"
INFO_ENDPOINT = "/api/2/path/info"
DATA_ENDPOINT = "/api/2/path/data"
MKDIR_ENDPOINT = "/api/2/path/oper/mkdir/"
REMOVE_ENDPOINT = "/api/2/path/oper/remove/"
COPY_ENDPOINT = "/api/2/path/oper/copy/"
MOVE_ENDPOINT = "/api/2/path/oper/move/"
RENAME_ENDPOINT = "/api/2/path/oper/rename/"
SESSION_ENDPOINT = "/api/2/session/"

DEFAULT_TIMEOUT = 30.0
DEFAULT_PAGE_LIMIT = 1024

_DETAIL_KEYS = ("detail", "message", "error")


def _data_endpoint(path: str, version: int = 2) -> str:
    return f"/api/{version}/path/data{encode_path(path)}"


class Client:
    """Async REST client for the SmartFile API.

    Owns the base URL, default headers and timeout, and delegates
    credentials to an :class:`~smartfile.rest.auth.Authenticator`.
    Throttled (429) requests are replayed transparently when their body
    allows it.  Delete, copy, and move are completed by polling the task
    endpoint before they return.

    Usage::

        async with Client("https://app.smartfile.com", authenticator=auth) as rest:
            info = await rest.info("/reports")
            await rest.move("/reports/q1.csv", "/archive")
    """

    def __init__(
        self,
        base_url: str | None,
        *,
        authenticator: Authenticator | None = None,
        timeout: float | None = DEFAULT_TIMEOUT,
        headers: Mapping[str, str] | None = None,
        poll_policy: PollPolicy | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        metrics: MetricsRecorder | None = None,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        server_tz: str = "UTC",
        max_throttle_retries: int | None = None,
    ) -> None:
        if not base_url:
            raise InvalidArgumentError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.authenticator: Authenticator = authenticator or NoAuth()
        self.server_tz = server_tz
        self.max_throttle_retries = max_throttle_retries
        self.throttle_count = 0

        self._metrics = metrics or NullMetrics()
        self._logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._http = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            headers=dict(headers or {}),
            transport=transport,
        )
        self.poller = OperationPoller(
            self, poll_policy, metrics=self._metrics, logger=self._logger, sleep=sleep
        )

    @classmethod
    def from_config(cls, config: ClientConfig, **kwargs: Any) -> Client:
        """Build a client from a :class:`~smartfile.config.ClientConfig`."""
        kwargs.setdefault("authenticator", config.authenticator())
        kwargs.setdefault("poll_policy", config.poll_policy())
        return cls(
            config.base_url,
            timeout=config.timeout,
            headers=config.headers,
            server_tz=config.server_tz,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ------------------------------------------------------------------
    # Core request machinery
    # ------------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
        content: Any = None,
        headers: Mapping[str, str] | None = None,
        timeout: Any = httpx.USE_CLIENT_DEFAULT,
        stream: bool = False,
    ) -> httpx.Response:
        """Send one request and return the 2xx response.

        ``path`` must already be encoded.  With ``stream=True`` the body is
        left unread and the caller must close the response.
        """
        method = method.upper()
        replayable = is_replayable(method, content=content, data=data, files=files)
        throttled = 0

        while True:
            request = self._http.build_request(
                method,
                path,
                params=params,
                json=json,
                data=data,
                files=files,
                content=content,
                headers=headers,
                timeout=timeout,
            )
            # Credentials, including session cookies, come only from the authenticator.
            request.headers.pop("Cookie", None)
            self.authenticator.apply_auth(request)

            self._logger.debug("%s: %s", method, path)
            started = time.perf_counter()
            try:
                response = await self._http.send(request, stream=True)
            except httpx.TransportError as e:
                raise TransportError(f"{method} {path}: {e}") from e

            self._metrics.observe(
                HTTP_REQUEST,
                (time.perf_counter() - started) * 1000.0,
                method=method,
                endpoint=path,
                status_code=response.status_code,
            )
            self._logger.debug(
                "%s: %s, %s: %s", method, path, response.status_code, response.reason_phrase
            )
            self.authenticator.observe_response(response)

            if response.status_code == 429:
                await response.aclose()
                delay = retry_after_seconds(response.headers)
                self.throttle_count += 1
                self._metrics.increment(THROTTLE, method=method, endpoint=path)
                exhausted = (
                    self.max_throttle_retries is not None
                    and throttled >= self.max_throttle_retries
                )
                if not replayable or exhausted:
                    raise RateLimitError(
                        f"{method} {path} throttled; retry in {delay}s", retry_after=delay
                    )
                self._logger.warning("API throttled, retry in %.3fs", delay)
                throttled += 1
                await self._sleep(delay)
                continue

            if not response.is_success:
                await self._read_body(response, method, path)
                raise self._error_for(response, method, path)

            if not stream:
                await self._read_body(response, method, path)
            return response

    async def _read_body(self, response: httpx.Response, method: str, path: str) -> None:
        try:
            await response.aread()
        except httpx.TransportError as e:
            raise TransportError(f"{method} {path}: body aborted: {e}") from e
        finally:
            await response.aclose()

    def _error_for(self, response: httpx.Response, method: str, path: str) -> ResponseError:
        detail: str | None = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            for key in _DETAIL_KEYS:
                if body.get(key):
                    detail = str(body[key])
                    break
        if detail is None and response.text:
            detail = response.text[:200]

        status = response.status_code
        message = f"{method} {path} returned non 2XX: {status}"
        if detail:
            message = f"{message}: {detail}"
        error_cls = PathNotFoundError if status == 404 else ResponseError
        return error_cls(
            message,
            status_code=status,
            reason=response.reason_phrase,
            method=method,
            endpoint=path,
            detail=detail,
        )

    def decode_json(self, response: httpx.Response) -> Any:
        """Decode a buffered response body; empty bodies decode to ``None``."""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(
                f"Invalid JSON from {response.request.url.path}: {e}",
                status_code=response.status_code,
                body=response.text[:200],
            ) from e

    async def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Send a request and decode its JSON body."""
        response = await self.request(method, path, **kwargs)
        return self.decode_json(response)

    async def request_operation(self, method: str, path: str, **kwargs: Any) -> TaskResult:
        """Start a server-side task and wait for it to finish."""
        payload = await self.request_json(method, path, **kwargs)
        task_id = None
        if isinstance(payload, dict):
            task_id = payload.get("uuid") or payload.get("id")
        if not task_id:
            raise TaskProtocolError(
                f"No task id in response to {method} {path}: {payload!r}",
                payload=payload if isinstance(payload, dict) else {},
            )
        return await self.poller.wait(str(task_id))

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def _session_auth(self) -> SupportsSession:
        if not isinstance(self.authenticator, SupportsSession):
            raise InvalidArgumentError(
                f"{type(self.authenticator).__name__} does not support sessions"
            )
        return self.authenticator

    @property
    def session_active(self) -> bool:
        auth = self.authenticator
        return isinstance(auth, SupportsSession) and auth.session_active

    async def start_session(self) -> None:
        """Open a server session; later requests use its cookie and CSRF token."""
        self._session_auth()
        await self.request("POST", SESSION_ENDPOINT)

    async def end_session(self) -> None:
        """Close the server session and fall back to Basic credentials."""
        auth = self._session_auth()
        try:
            if auth.session_active:
                await self.request("DELETE", SESSION_ENDPOINT)
        finally:
            auth.reset_session()

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------

    async def ping(self) -> Any:
        return await self.request_json("GET", PING_ENDPOINT)

    async def whoami(self) -> Any:
        return await self.request_json("GET", WHOAMI_ENDPOINT)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def info(self, path: str) -> PathInfo:
        """Fetch metadata for a single path."""
        payload = await self.request_json("GET", f"{INFO_ENDPOINT}{encode_path(path)}")
        return PathInfo.from_json(payload or {"path": path}, self.server_tz)

    async def list_children(
        self, path: str, *, limit: int = DEFAULT_PAGE_LIMIT
    ) -> AsyncIterator[ListingPage]:
        """Yield a directory listing one page at a time.

        The next page is requested only when the consumer asks for it.
        Stop iterating (or ``aclose()`` the iterator) to abandon the listing.
        """
        endpoint = f"{INFO_ENDPOINT}{encode_path(path)}"
        params: dict[str, Any] = {"children": "true", "limit": limit}
        fetched = 0
        try:
            while True:
                payload = await self.request_json("GET", endpoint, params=params) or {}
                fetched += 1
                current = int(payload.get("page") or fetched)
                pages = int(payload.get("pages") or current)
                listing = ListingPage(
                    directory=PathInfo.from_json(
                        {"path": normalize_path(path), **payload}, self.server_tz
                    ),
                    children=[
                        PathInfo.from_json(child, self.server_tz)
                        for child in payload.get("children") or []
                    ],
                    page=current,
                    pages=pages,
                )
                yield listing
                if listing.is_last:
                    self._logger.debug("final page of results reached for %s", path)
                    break
                self._logger.debug("getting page %d of %d for %s", current + 1, pages, path)
                params = {**params, "page": current + 1}
        finally:
            self._metrics.observe(CHILDREN_PAGES, fetched)

    # ------------------------------------------------------------------
    # Data transfer
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def download(self, path: str) -> AsyncIterator[httpx.Response]:
        """Open a streamed download; the yielded response already has a 2xx status."""
        response = await self.request("GET", _data_endpoint(path), timeout=None, stream=True)
        try:
            yield response
        finally:
            await response.aclose()

    async def download_to(self, path: str, sink: Callable[[bytes], Awaitable[Any]]) -> int:
        """Stream *path* into *sink* chunk by chunk and return the byte count."""
        total = 0
        async with self.download(path) as response:
            try:
                async for chunk in response.aiter_bytes():
                    await sink(chunk)
                    total += len(chunk)
            except httpx.TransportError as e:
                raise TransportError(f"GET {path}: download aborted: {e}") from e
        return total

    async def upload(self, path: str, data: Any, *, filename: str | None = None) -> Any:
        """Add a file to the parent directory of *path* with a multipart POST.

        ``data`` may be ``bytes`` (buffered, replayable after a throttle) or
        a binary file object (streamed).
        """
        files = {"file": (filename or basename(path), data)}
        return await self.request_json(
            "POST", f"{DATA_ENDPOINT}{encode_path(dirname(path))}", files=files, timeout=None
        )

    async def upload_put(self, path: str, data: Any, *, version: int = 3) -> Any:
        """Replace the whole file at *path*."""
        if version not in (2, 3):
            raise InvalidArgumentError(f"Unsupported API version for PUT: {version}")
        return await self.request_json(
            "PUT", _data_endpoint(path, version), content=data, timeout=None
        )

    async def upload_range(
        self,
        path: str,
        data: Any,
        offset: int,
        *,
        if_unmodified_since: datetime | str | None = None,
    ) -> Any:
        """Write *data* into *path* starting at byte *offset*."""
        if offset < 0:
            raise InvalidArgumentError(f"Negative offset: {offset}")
        if isinstance(data, (bytes, bytearray)):
            byte_range = f"bytes={offset}-{offset + len(data) - 1}"
        else:
            byte_range = f"bytes={offset}-"
        headers = {"Range": byte_range}

        if if_unmodified_since is None:
            self._logger.warning(
                "PATCH %s without If-Unmodified-Since; concurrent changes may be lost", path
            )
        elif isinstance(if_unmodified_since, datetime):
            stamp = if_unmodified_since
            if stamp.tzinfo is None:
                stamp = stamp.replace(tzinfo=UTC)
            headers["If-Unmodified-Since"] = format_datetime(stamp.astimezone(UTC), usegmt=True)
        else:
            headers["If-Unmodified-Since"] = if_unmodified_since

        return await self.request_json(
            "PATCH", _data_endpoint(path, 3), content=data, headers=headers, timeout=None
        )

    # ------------------------------------------------------------------
    # Path operations
    # ------------------------------------------------------------------

    async def mkdir(self, path: str) -> PathInfo:
        payload = await self.request_json(
            "POST", MKDIR_ENDPOINT, data={"path": normalize_path(path)}
        )
        return PathInfo.from_json(payload or {"path": path, "isdir": True}, self.server_tz)

    async def delete(self, path: str) -> TaskResult:
        """Remove a file or directory tree through the task endpoint."""
        return await self.request_operation(
            "POST", REMOVE_ENDPOINT, data={"path": normalize_path(path)}
        )

    async def delete_file(self, path: str) -> None:
        """Delete a single file directly; no task is created."""
        await self.request("DELETE", _data_endpoint(path, 3))

    async def copy(self, src: str, dst: str) -> TaskResult:
        return await self.request_operation(
            "POST", COPY_ENDPOINT, data={"src": normalize_path(src), "dst": normalize_path(dst)}
        )

    async def move(self, src: str, dst: str) -> TaskResult:
        return await self.request_operation(
            "POST", MOVE_ENDPOINT, data={"src": normalize_path(src), "dst": normalize_path(dst)}
        )

    async def rename(self, src: str, dst: str) -> PathInfo:
        payload = await self.request_json(
            "POST",
            RENAME_ENDPOINT,
            data={"src": normalize_path(src), "dst": normalize_path(dst)},
        )
        return PathInfo.from_json(payload or {"path": dst}, self.server_tz)
