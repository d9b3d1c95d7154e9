"""DescriptorTable — integer handles for open file proxies."""

from __future__ import annotations

import heapq
from typing import Generic, TypeVar

from smartfile.exceptions import BadDescriptorError

T = TypeVar("T")


class DescriptorTable(Generic[T]):
    """Hands out the lowest free integer for each open object.

    A slot is only returned to the free list by :meth:`release`, which the
    filesystem calls after the proxy has finished its cleanup, so an
    unclosed descriptor can never be reused.
    """

    def __init__(self) -> None:
        self._slots: list[T | None] = []
        self._free: list[int] = []

    def __len__(self) -> int:
        return len(self._slots) - len(self._free)

    def allocate(self, obj: T) -> int:
        if self._free:
            fd = heapq.heappop(self._free)
            self._slots[fd] = obj
            return fd
        self._slots.append(obj)
        return len(self._slots) - 1

    def get(self, fd: int) -> T:
        if not isinstance(fd, int) or fd < 0 or fd >= len(self._slots):
            raise BadDescriptorError(f"invalid fd {fd}")
        obj = self._slots[fd]
        if obj is None:
            raise BadDescriptorError(f"invalid fd {fd}")
        return obj

    def release(self, fd: int) -> T:
        obj = self.get(fd)
        self._slots[fd] = None
        heapq.heappush(self._free, fd)
        return obj

    def open_descriptors(self) -> list[int]:
        return [fd for fd, obj in enumerate(self._slots) if obj is not None]
