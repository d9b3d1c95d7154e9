"""StatCache — path-keyed metadata cache with tiered retention."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from smartfile.exceptions import InvalidArgumentError

if TYPE_CHECKING:
    from collections.abc import Iterator

    from smartfile.rest.types import PathInfo

logger = logging.getLogger(__name__)

LEVEL_OFF = 0
LEVEL_SINGLE_USE = 1
LEVEL_PERSISTENT = 2


class _NotFound:
    """Marker for a path the server said does not exist."""

    _instance: _NotFound | None = None

    def __new__(cls) -> _NotFound:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND: Final = _NotFound()


class StatCache:
    """Maps exact path strings to ``PathInfo`` or ``NOT_FOUND``.

    ``get()`` returning ``None`` is a miss; ``NOT_FOUND`` is a cached
    negative answer.  The level decides which writes are accepted:

    - 0: nothing is stored.
    - 1: listing-primed entries, evicted on their first stat hit.
    - 2: entries persist across hits, and negative answers are kept.

    No locking: every read-modify-write happens without an ``await`` in
    between, which is atomic under a single event loop.  Writes that span
    an ``await`` pass the ``generation`` they started from; it moves on
    every invalidation, so a result fetched before a delete is dropped.
    """

    def __init__(self, level: int = LEVEL_SINGLE_USE) -> None:
        if level not in (LEVEL_OFF, LEVEL_SINGLE_USE, LEVEL_PERSISTENT):
            raise InvalidArgumentError(f"Invalid cache level: {level}")
        self.level = level
        self.hits = 0
        self.misses = 0
        self.generation = 0
        self._entries: dict[str, PathInfo | _NotFound] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._entries))

    @property
    def single_use(self) -> bool:
        return self.level < LEVEL_PERSISTENT

    def get(self, path: str) -> PathInfo | _NotFound | None:
        return self._entries.get(path)

    def lookup(self, path: str) -> PathInfo | _NotFound | None:
        """Read *path* for a stat call, counting the hit or miss.

        At levels below 2 a hit consumes the entry.
        """
        entry = self._entries.get(path)
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        if self.single_use:
            del self._entries[path]
        return entry

    def _stale(self, generation: int | None) -> bool:
        return generation is not None and generation != self.generation

    def put(
        self,
        path: str,
        info: PathInfo,
        *,
        min_level: int = LEVEL_SINGLE_USE,
        generation: int | None = None,
    ) -> bool:
        """Store *info* if the cache level is at least *min_level*.

        Nothing is stored when *generation* is given and the cache has been
        invalidated since.
        """
        if self.level < max(min_level, LEVEL_SINGLE_USE) or self._stale(generation):
            return False
        self._entries[path] = info
        return True

    def put_not_found(self, path: str, *, generation: int | None = None) -> bool:
        """Remember that *path* does not exist (level 2 only)."""
        if self.level < LEVEL_PERSISTENT or self._stale(generation):
            return False
        self._entries[path] = NOT_FOUND
        return True

    def invalidate(self, path: str) -> int:
        """Drop *path* and, unless it is a known file, everything beneath it.

        Returns the number of entries removed.  ``/a`` removes ``/a/b`` but
        never ``/ab``.
        """
        self.generation += 1
        entry = self._entries.pop(path, None)
        removed = 0 if entry is None else 1
        if entry is not None and entry is not NOT_FOUND and getattr(entry, "isfile", False):
            return removed

        prefix = path if path.endswith("/") else path + "/"
        for key in [k for k in self._entries if k.startswith(prefix)]:
            del self._entries[key]
            removed += 1
        if removed:
            logger.debug("Invalidated %d cache entries under %s", removed, path)
        return removed

    def clear(self) -> None:
        self.generation += 1
        self._entries.clear()
