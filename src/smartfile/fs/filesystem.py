"""AsyncFileSystem — cache-aware filesystem surface over the REST client."""

from __future__ import annotations

import logging
from contextlib import aclosing
from typing import TYPE_CHECKING, Any

from smartfile.exceptions import BadDescriptorError, PathNotFoundError, ResponseError
from smartfile.metrics import CACHE_HIT, CACHE_MISS, NullMetrics, time_operation
from smartfile.rest.client import REMOVE_ENDPOINT
from smartfile.rest.paths import normalize_path
from smartfile.rest.policy import DeleteOutcome, classify_delete_outcome
from smartfile.rest.types import TaskResult, TaskStatus

from .cache import LEVEL_PERSISTENT, LEVEL_SINGLE_USE, NOT_FOUND, StatCache
from .descriptors import DescriptorTable
from .fileproxy import DEFAULT_BUFFER_LIMIT, FileProxy, ProxyState

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from smartfile.metrics import MetricsRecorder
    from smartfile.rest.client import Client
    from smartfile.rest.types import PathInfo

DEFAULT_CHUNK_SIZE = 16384


class AsyncFileSystem:
    """Filesystem work-alike over the SmartFile API.

    Directory and metadata calls go straight to the REST client, with a
    stat cache in front of ``stat()``.  Byte-level access goes through
    :class:`FileProxy` objects addressed by integer descriptors.

    Cache invalidation rules:

    - Removing, moving, or renaming a path drops it and its subtree.
    - ``mkdir`` and ``rename`` prime the cache with the info they return.
    - ``copy`` and ``move`` only drop the destination; the task result
      does not describe the new object.
    - Closing a written file drops its entry.

    Usage::

        fs = AsyncFileSystem(rest, cache_level=1)
        names = await fs.readdir("/reports")
        data = await fs.read_file("/reports/q1.csv")
    """

    def __init__(
        self,
        rest: Client,
        *,
        cache_level: int = LEVEL_SINGLE_USE,
        metrics: MetricsRecorder | None = None,
        logger: logging.Logger | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        buffer_limit: int = DEFAULT_BUFFER_LIMIT,
    ) -> None:
        self.rest = rest
        self.cache = StatCache(cache_level)
        self.fds: DescriptorTable[FileProxy] = DescriptorTable()
        self.chunk_size = chunk_size
        self.buffer_limit = buffer_limit
        self._metrics = metrics or NullMetrics()
        self._logger = logger or logging.getLogger(__name__)

    @property
    def cache_level(self) -> int:
        return self.cache.level

    def _invalidate(self, *paths: str) -> None:
        for path in paths:
            self.cache.invalidate(normalize_path(path).rstrip("/") or "/")

    def _prime(self, info: PathInfo) -> None:
        self.cache.put(info.path, info)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    async def stat(self, path: str) -> PathInfo:
        """Metadata for *path*, from the cache when it has an answer."""
        path = normalize_path(path)
        with time_operation(self._metrics, "stat"):
            entry = self.cache.lookup(path)
            if entry is not None:
                self._metrics.increment(CACHE_HIT)
                self._logger.debug("stat cache hit: %s", path)
                if entry is NOT_FOUND:
                    raise PathNotFoundError(
                        f"{path} not found (cached)",
                        status_code=404,
                        method="GET",
                        endpoint=path,
                    )
                return entry  # type: ignore[return-value]

            self._metrics.increment(CACHE_MISS)
            generation = self.cache.generation
            try:
                info = await self.rest.info(path)
            except ResponseError as e:
                if e.status_code == 404:
                    self.cache.put_not_found(path, generation=generation)
                raise
            self.cache.put(path, info, min_level=LEVEL_PERSISTENT, generation=generation)
            return info

    async def lstat(self, path: str) -> PathInfo:
        return await self.stat(path)

    async def exists(self, path: str) -> bool:
        """True if *path* exists; any error other than 404 propagates."""
        try:
            await self.stat(path)
        except ResponseError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    # ------------------------------------------------------------------
    # Directory listing
    # ------------------------------------------------------------------

    async def iter_readdirstats(self, path: str) -> AsyncIterator[list[PathInfo]]:
        """Yield each page of a listing as soon as it arrives.

        The next page is not requested until the consumer asks for it.
        """
        path = normalize_path(path)
        with time_operation(self._metrics, "readdirstats"):
            # Listing-primed entries are only meant for the stat() calls
            # that follow this listing.
            if self.cache.single_use:
                self.cache.clear()

            generation = self.cache.generation
            async with aclosing(self.rest.list_children(path)) as pages:
                async for listing in pages:
                    self.cache.put(
                        path,
                        listing.directory,
                        min_level=LEVEL_PERSISTENT,
                        generation=generation,
                    )
                    for child in listing.children:
                        self.cache.put(child.path, child, generation=generation)
                    yield listing.children
                    generation = self.cache.generation

    async def readdirstats(self, path: str) -> list[PathInfo]:
        """Every entry of *path*, returned once the last page is in."""
        infos: list[PathInfo] = []
        async for page in self.iter_readdirstats(path):
            infos.extend(page)
        return infos

    async def readdir(self, path: str) -> list[str]:
        return [info.name for info in await self.readdirstats(path)]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def unlink(self, path: str) -> TaskResult:
        """Delete *path*; deleting something already gone succeeds."""
        path = normalize_path(path)
        with time_operation(self._metrics, "unlink"):
            try:
                result = await self.rest.delete(path)
            except ResponseError as e:
                if (
                    e.endpoint != REMOVE_ENDPOINT
                    or classify_delete_outcome(e.status_code) is not DeleteOutcome.SUCCESS
                ):
                    raise
                self._logger.debug("%s already removed", path)
                result = TaskResult(
                    task_id=None,
                    status=TaskStatus.SUCCESS,
                    raw={"result": {"status": TaskStatus.SUCCESS.value}},
                )
            self._invalidate(path)
            return result

    async def rmdir(self, path: str) -> TaskResult:
        return await self.unlink(path)

    async def mkdir(self, path: str) -> PathInfo:
        with time_operation(self._metrics, "mkdir"):
            info = await self.rest.mkdir(path)
            self._prime(info)
            return info

    async def rename(self, src: str, dst: str) -> PathInfo:
        with time_operation(self._metrics, "rename"):
            info = await self.rest.rename(src, dst)
            self._invalidate(src, dst)
            self._prime(info)
            return info

    async def copy(self, src: str, dst: str) -> TaskResult:
        with time_operation(self._metrics, "copy"):
            result = await self.rest.copy(src, dst)
            self._invalidate(dst)
            return result

    async def copy_file(self, src: str, dst: str) -> TaskResult:
        return await self.copy(src, dst)

    async def copy_dir(self, src: str, dst: str) -> TaskResult:
        return await self.copy(src, dst)

    async def move(self, src: str, dst: str) -> TaskResult:
        with time_operation(self._metrics, "move"):
            result = await self.rest.move(src, dst)
            self._invalidate(src, dst)
            return result

    # ------------------------------------------------------------------
    # Descriptors
    # ------------------------------------------------------------------

    async def open(self, path: str, flags: str = "r") -> int:
        """Open *path* and return a descriptor."""
        path = normalize_path(path)
        with time_operation(self._metrics, "open"):
            proxy = await FileProxy.open(
                self.rest,
                path,
                flags,
                buffer_limit=self.buffer_limit,
                logger=self._logger,
            )
            return self.fds.allocate(proxy)

    async def close(self, fd: int, abort: bool = False) -> Any:
        """Close *fd*, uploading written content unless *abort* is set."""
        with time_operation(self._metrics, "close"):
            proxy = self.fds.get(fd)
            # Only the close that takes the proxy out of READY owns the slot.
            if proxy.state is not ProxyState.READY:
                raise BadDescriptorError(f"fd {fd} is already {proxy.state.value}")
            try:
                result = await proxy.close(abort=abort)
            finally:
                self.fds.release(fd)
                if proxy.writable and not abort:
                    self._invalidate(proxy.path)
            return result

    async def fstat(self, fd: int) -> PathInfo:
        return await self.stat(self.fds.get(fd).path)

    async def read(
        self,
        fd: int,
        buffer: bytearray | memoryview,
        offset: int = 0,
        length: int | None = None,
        position: int | None = None,
    ) -> int:
        with time_operation(self._metrics, "read"):
            return await self.fds.get(fd).read(buffer, offset, length, position)

    async def write(
        self,
        fd: int,
        data: bytes | bytearray | memoryview,
        offset: int = 0,
        length: int | None = None,
        position: int | None = None,
    ) -> int:
        with time_operation(self._metrics, "write"):
            return await self.fds.get(fd).write(data, offset, length, position)

    # ------------------------------------------------------------------
    # Whole-file helpers
    # ------------------------------------------------------------------

    async def read_file(self, path: str) -> bytes:
        """Download *path* in full through a descriptor."""
        with time_operation(self._metrics, "read_file"):
            fd = await self.open(path, "r")
            chunks: list[bytes] = []
            try:
                position = 0
                buffer = bytearray(self.chunk_size)
                while True:
                    count = await self.read(fd, buffer, 0, self.chunk_size, position)
                    if count == 0:
                        break
                    chunks.append(bytes(buffer[:count]))
                    position += count
            except BaseException:
                await self.close(fd, abort=True)
                raise
            await self.close(fd)
            return b"".join(chunks)

    async def write_file(self, path: str, data: bytes) -> Any:
        """Upload *data* as the full content of *path*."""
        with time_operation(self._metrics, "write_file"):
            fd = await self.open(path, "w")
            try:
                position = 0
                while position < len(data):
                    length = min(self.chunk_size, len(data) - position)
                    position += await self.write(fd, data, position, length, position)
            except BaseException:
                await self.close(fd, abort=True)
                raise
            return await self.close(fd)

    def create_read_stream(self, path: str) -> Any:
        """Streamed download of *path*; use as ``async with``."""
        return self.rest.download(normalize_path(path))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close_all(self, abort: bool = True) -> None:
        """Close every open descriptor; by default without uploading."""
        for fd in self.fds.open_descriptors():
            try:
                proxy = self.fds.get(fd)
            except BadDescriptorError:
                continue  # released by a close that finished meanwhile
            if proxy.state is ProxyState.READY:
                await self.close(fd, abort=abort)
