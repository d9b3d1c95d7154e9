"""Main SmartFile class — lifecycle and sync wrappers."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from smartfile.config import ClientConfig
from smartfile.fs.filesystem import AsyncFileSystem
from smartfile.rest.client import Client

if TYPE_CHECKING:
    from smartfile.metrics import MetricsRecorder
    from smartfile.rest.types import PathInfo, TaskResult

logger = logging.getLogger(__name__)


class SmartFile:
    """Blocking facade over :class:`Client` and :class:`AsyncFileSystem`.

    Presents a synchronous API backed by a private event loop in a
    background thread.  Every call runs on that one loop, so the async
    layers never see more than one thread.

    Usage::

        with SmartFile(ClientConfig.from_env()) as sf:
            sf.mkdir("/reports")
            sf.write_file("/reports/q1.csv", b"a,b\\n1,2\\n")
            print(sf.readdir("/reports"))
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        metrics: MetricsRecorder | None = None,
        **client_kwargs: Any,
    ) -> None:
        self._closed = False
        self.config = config if config is not None else ClientConfig.from_env()

        # Private event loop in a daemon thread
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, daemon=True)
        self._thread.start()

        try:
            self._run(self._async_init(metrics, client_kwargs))
        except BaseException:
            self._stop_loop()
            raise

    async def _async_init(
        self, metrics: MetricsRecorder | None, client_kwargs: dict[str, Any]
    ) -> None:
        # The httpx client must be created on the loop that will drive it.
        self.rest = Client.from_config(self.config, metrics=metrics, **client_kwargs)
        self.fs = AsyncFileSystem(
            self.rest, cache_level=self.config.cache_level, metrics=metrics
        )
        if self.config.session:
            try:
                await self.rest.start_session()
            except BaseException:
                await self.rest.aclose()
                raise

    def _run(self, coro: Any) -> Any:
        """Submit *coro* to the private loop and block for the result."""
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def _stop_loop(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(timeout=5)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close descriptors and the HTTP client, then stop the loop."""
        if self._closed:
            return
        self._closed = True

        try:
            self._run(self._async_close())
        finally:
            self._stop_loop()

    async def _async_close(self) -> None:
        try:
            await self.fs.close_all()
            if self.rest.session_active:
                await self.rest.end_session()
        finally:
            await self.rest.aclose()

    def __enter__(self) -> SmartFile:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Service and sessions
    # ------------------------------------------------------------------

    def ping(self) -> Any:
        return self._run(self.rest.ping())

    def whoami(self) -> Any:
        return self._run(self.rest.whoami())

    def start_session(self) -> None:
        self._run(self.rest.start_session())

    def end_session(self) -> None:
        self._run(self.rest.end_session())

    # ------------------------------------------------------------------
    # Filesystem wrappers (sync)
    # ------------------------------------------------------------------

    def stat(self, path: str) -> PathInfo:
        return self._run(self.fs.stat(path))

    def exists(self, path: str) -> bool:
        return self._run(self.fs.exists(path))

    def readdir(self, path: str) -> list[str]:
        return self._run(self.fs.readdir(path))

    def readdirstats(self, path: str) -> list[PathInfo]:
        return self._run(self.fs.readdirstats(path))

    def mkdir(self, path: str) -> PathInfo:
        return self._run(self.fs.mkdir(path))

    def unlink(self, path: str) -> TaskResult:
        return self._run(self.fs.unlink(path))

    def rmdir(self, path: str) -> TaskResult:
        return self._run(self.fs.rmdir(path))

    def rename(self, src: str, dst: str) -> PathInfo:
        return self._run(self.fs.rename(src, dst))

    def copy(self, src: str, dst: str) -> TaskResult:
        return self._run(self.fs.copy(src, dst))

    def move(self, src: str, dst: str) -> TaskResult:
        return self._run(self.fs.move(src, dst))

    def read_file(self, path: str) -> bytes:
        """Download the full content of *path*."""
        return self._run(self.fs.read_file(path))

    def write_file(self, path: str, data: bytes) -> Any:
        """Upload *data* as the full content of *path*."""
        logger.debug("write_file %s (%d bytes)", path, len(data))
        return self._run(self.fs.write_file(path, data))
