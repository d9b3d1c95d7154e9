"""FileProxy — random access to a remote file through a local staging copy.

The API only moves whole objects, so an open file is downloaded into a
temporary file first, read and written locally, and uploaded again in
full when it is closed.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile
from enum import Enum
from typing import TYPE_CHECKING, Any

from smartfile.exceptions import (
    BadDescriptorError,
    InvalidArgumentError,
    LocalIOError,
    ResponseError,
    UnsupportedModeError,
)

if TYPE_CHECKING:
    from smartfile.rest.client import Client

DEFAULT_BUFFER_LIMIT = 8 * 1024 * 1024  # 8MB


class Access(Enum):
    """How a proxy touches the remote object."""

    READ = "read"
    """Download on open, never upload."""
    WRITE = "write"
    """Start empty, upload on close."""
    ALLOWED = "allowed"
    """Download on open (unless truncating), upload on close."""


# Map open() flags strings to access types.
ACCESS_FLAGS: dict[str, Access] = {
    "r": Access.READ,
    "w": Access.WRITE,
    "wx": Access.WRITE,
    "xw": Access.WRITE,
    "r+": Access.ALLOWED,
    "w+": Access.ALLOWED,
    "wx+": Access.ALLOWED,
    "xw+": Access.ALLOWED,
    "a": Access.ALLOWED,
    "ax": Access.ALLOWED,
    "xa": Access.ALLOWED,
    "a+": Access.ALLOWED,
    "ax+": Access.ALLOWED,
    "xa+": Access.ALLOWED,
}


def access_for(flags: str) -> Access:
    try:
        return ACCESS_FLAGS[flags]
    except KeyError:
        raise UnsupportedModeError(f"invalid flags: {flags!r}") from None


class ProxyState(Enum):
    OPENING = "opening"
    READY = "ready"
    CLOSING = "closing"
    CLOSED = "closed"


class FileProxy:
    """One open remote file backed by a local temporary file.

    Use :meth:`open` to create one; the constructor does no I/O.
    """

    def __init__(
        self,
        rest: Client,
        path: str,
        flags: str = "r",
        *,
        buffer_limit: int = DEFAULT_BUFFER_LIMIT,
        logger: logging.Logger | None = None,
    ) -> None:
        self.rest = rest
        self.path = path
        self.flags = flags
        self.access = access_for(flags)
        self.buffer_limit = buffer_limit
        self.cursor = 0
        self.size = 0
        self.state = ProxyState.OPENING
        self._fd: int | None = None
        self._staging_path: str | None = None
        self._logger = logger or logging.getLogger(__name__)

    @classmethod
    async def open(
        cls,
        rest: Client,
        path: str,
        flags: str = "r",
        **kwargs: Any,
    ) -> FileProxy:
        """Create a proxy and stage the remote content."""
        proxy = cls(rest, path, flags, **kwargs)
        await proxy._stage()
        return proxy

    # ------------------------------------------------------------------
    # Flag semantics
    # ------------------------------------------------------------------

    @property
    def readable(self) -> bool:
        return self.access is not Access.WRITE

    @property
    def writable(self) -> bool:
        return self.access is not Access.READ

    @property
    def truncates(self) -> bool:
        return "w" in self.flags

    @property
    def appends(self) -> bool:
        return "a" in self.flags

    @property
    def creates(self) -> bool:
        return self.flags not in ("r", "r+")

    @property
    def needs_download(self) -> bool:
        return self.readable and not self.truncates

    @property
    def staging_path(self) -> str | None:
        return self._staging_path

    # ------------------------------------------------------------------
    # Staging
    # ------------------------------------------------------------------

    async def _stage(self) -> None:
        try:
            self._fd, self._staging_path = await asyncio.to_thread(
                tempfile.mkstemp, prefix="smartfile-"
            )
        except OSError as e:
            self.state = ProxyState.CLOSED
            raise LocalIOError(f"Cannot create staging file for {self.path}: {e}") from e

        if not self.needs_download:
            self.state = ProxyState.READY
            return

        try:
            await self._download()
        except BaseException:
            await self._cleanup()
            self.state = ProxyState.CLOSED
            raise

        if self.appends:
            self.cursor = self.size
        self.state = ProxyState.READY

    async def _download(self) -> None:
        async def sink(chunk: bytes) -> None:
            await asyncio.to_thread(self._pwrite_all, chunk, self.size)
            self.size += len(chunk)

        try:
            await self.rest.download_to(self.path, sink)
        except ResponseError as e:
            if e.status_code != 404 or not self.creates:
                raise
            self._logger.debug("%s does not exist yet; starting empty", self.path)

    def _pwrite_all(self, data: bytes, position: int) -> None:
        view = memoryview(data)
        while view:
            written = os.pwrite(self._require_fd(), view, position)
            if written <= 0:
                raise LocalIOError(f"Staging write stalled for {self.path}")
            view = view[written:]
            position += written

    def _require_fd(self) -> int:
        if self._fd is None:
            raise BadDescriptorError(f"{self.path} has no staging file")
        return self._fd

    def _require_staging_path(self) -> str:
        if self._staging_path is None:
            raise BadDescriptorError(f"{self.path} has no staging file")
        return self._staging_path

    def _ensure_ready(self) -> None:
        if self.state is not ProxyState.READY:
            raise BadDescriptorError(f"{self.path} is {self.state.value}")

    # ------------------------------------------------------------------
    # Random access
    # ------------------------------------------------------------------

    @staticmethod
    def _span(buffer_len: int, offset: int, length: int | None) -> int:
        if length is None:
            length = buffer_len - offset
        if offset < 0 or length < 0 or offset + length > buffer_len:
            raise InvalidArgumentError(
                f"offset {offset} and length {length} out of range for buffer of {buffer_len}"
            )
        return length

    async def read(
        self,
        buffer: bytearray | memoryview,
        offset: int = 0,
        length: int | None = None,
        position: int | None = None,
    ) -> int:
        """Read into ``buffer[offset:offset + length]``; return the count read.

        Fewer bytes than requested is not an error.  With no *position*,
        reads continue from the cursor.
        """
        self._ensure_ready()
        if not self.readable:
            raise InvalidArgumentError(f"{self.path} is not open for reading")
        view = memoryview(buffer)
        length = self._span(len(view), offset, length)
        start = self.cursor if position is None else position

        try:
            data = await asyncio.to_thread(os.pread, self._require_fd(), length, start)
        except OSError as e:
            raise LocalIOError(f"Read failed for {self.path}: {e}") from e

        count = len(data)
        view[offset : offset + count] = data
        if position is None:
            self.cursor = start + count
        return count

    async def write(
        self,
        data: bytes | bytearray | memoryview,
        offset: int = 0,
        length: int | None = None,
        position: int | None = None,
    ) -> int:
        """Write ``data[offset:offset + length]``; a short write is an error."""
        self._ensure_ready()
        if not self.writable:
            raise InvalidArgumentError(f"{self.path} is not open for writing")
        view = memoryview(data)
        length = self._span(len(view), offset, length)

        if position is None:
            start = self.size if self.appends else self.cursor
        else:
            start = position

        try:
            written = await asyncio.to_thread(
                os.pwrite, self._require_fd(), view[offset : offset + length], start
            )
        except OSError as e:
            raise LocalIOError(f"Write failed for {self.path}: {e}") from e

        if written != length:
            raise LocalIOError(f"could not write all the bytes {written} < {length}")
        if position is None:
            self.cursor = start + written
        self.size = max(self.size, start + written)
        return written

    # ------------------------------------------------------------------
    # Close
    # ------------------------------------------------------------------

    async def close(self, abort: bool = False) -> Any:
        """Upload staged content (when writable) and remove the staging file.

        The staging file is removed even if the upload fails; the upload
        error is then re-raised.  Returns the upload response, or ``None``.
        """
        self._ensure_ready()
        self.state = ProxyState.CLOSING
        try:
            if self.writable and not abort:
                return await self._flush()
            return None
        finally:
            await self._cleanup()
            self.state = ProxyState.CLOSED

    async def _flush(self) -> Any:
        fd = self._require_fd()
        size = (await asyncio.to_thread(os.fstat, fd)).st_size
        if size <= self.buffer_limit:
            data = await asyncio.to_thread(os.pread, fd, size, 0) if size else b""
            return await self.rest.upload(self.path, data)

        stream = await asyncio.to_thread(open, self._require_staging_path(), "rb")
        try:
            return await self.rest.upload(self.path, stream)
        finally:
            await asyncio.to_thread(stream.close)

    async def _cleanup(self) -> None:
        if self._fd is not None:
            try:
                await asyncio.to_thread(os.close, self._fd)
            except OSError:
                self._logger.error("Cannot close staging file for %s", self.path, exc_info=True)
            self._fd = None
        if self._staging_path is not None:
            try:
                await asyncio.to_thread(os.unlink, self._staging_path)
            except OSError:
                self._logger.error(
                    "Cannot remove staging file %s", self._staging_path, exc_info=True
                )
            self._staging_path = None
