"""Wire records: PathInfo, TaskResult, ListingPage."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

from .paths import basename, normalize_path

# Keys that only describe a listing response, never the resource itself.
LISTING_KEYS = frozenset({"children", "total", "pages", "page", "per_page"})

_KNOWN_KEYS = frozenset({"name", "path", "isdir", "isfile", "size", "time", "mime"})


def to_epoch_ms(value: Any, server_tz: str = "UTC") -> int | None:
    """Normalize a server timestamp to UTC epoch milliseconds.

    Naive ISO timestamps are interpreted in *server_tz*; aware ones keep
    their offset.  Numbers are taken to be epoch milliseconds already.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise TypeError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=ZoneInfo(server_tz))
    return int(parsed.astimezone(UTC).timestamp() * 1000)


@dataclass
class PathInfo:
    """Metadata for one remote file or directory."""

    name: str
    path: str
    isdir: bool = False
    isfile: bool = True
    size: int | None = None
    time: int | None = None
    """Modification time as UTC epoch milliseconds."""
    mime: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    """Service-specific keys not modelled above."""

    @classmethod
    def from_json(cls, payload: dict[str, Any], server_tz: str = "UTC") -> PathInfo:
        path = normalize_path(str(payload.get("path") or "/" + str(payload.get("name", ""))))
        isdir = bool(payload.get("isdir", False))
        size = payload.get("size")
        return cls(
            name=str(payload.get("name") or basename(path)),
            path=path,
            isdir=isdir,
            isfile=bool(payload.get("isfile", not isdir)),
            size=int(size) if size is not None else None,
            time=to_epoch_ms(payload.get("time"), server_tz),
            mime=payload.get("mime"),
            attributes={
                k: v
                for k, v in payload.items()
                if k not in _KNOWN_KEYS and k not in LISTING_KEYS
            },
        )

    def to_json(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.attributes)
        out.update(
            name=self.name,
            path=self.path,
            isdir=self.isdir,
            isfile=self.isfile,
            size=self.size,
            time=self.time,
            mime=self.mime,
        )
        return out


class TaskStatus(Enum):
    """States reported by the task-status endpoint."""

    PENDING = "PENDING"
    PROGRESS = "PROGRESS"
    FAILURE = "FAILURE"
    SUCCESS = "SUCCESS"

    @property
    def is_terminal(self) -> bool:
        return self in (TaskStatus.FAILURE, TaskStatus.SUCCESS)


@dataclass
class TaskResult:
    """Outcome of a completed delete/copy/move task."""

    task_id: str | None
    status: TaskStatus
    result: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)
    polls: int = 0

    @property
    def errors(self) -> Any:
        return self.result.get("errors")


@dataclass
class ListingPage:
    """One page of a paginated children listing."""

    directory: PathInfo
    children: list[PathInfo]
    page: int = 1
    pages: int = 1

    @property
    def is_last(self) -> bool:
        return self.page >= self.pages
