"""Remote path helpers: leading-slash normalization and per-segment encoding."""

from __future__ import annotations

import posixpath
from urllib.parse import quote


def normalize_path(path: str, leading_slash: bool = True) -> str:
    """Apply the requested leading-slash convention to *path*.

    Inner segments are left untouched; only the first character changes.

    Examples:
        normalize_path("foo/bar") -> "/foo/bar"
        normalize_path("/foo/bar", leading_slash=False) -> "foo/bar"
    """
    if leading_slash:
        return path if path.startswith("/") else "/" + path
    return path[1:] if path.startswith("/") else path


def encode_path(path: str, leading_slash: bool = True) -> str:
    """Percent-encode each segment of *path* independently.

    Not idempotent: an existing ``%`` escape is encoded again, so callers
    must encode exactly once.

    Examples:
        encode_path("/foo%bar") -> "/foo%25bar"
        encode_path("/foo%23bar") -> "/foo%2523bar"
        encode_path("a b/c?d") -> "/a%20b/c%3Fd"
    """
    parts = normalize_path(path, leading_slash).split("/")
    return "/".join(quote(part, safe="") for part in parts)


def dirname(path: str) -> str:
    """Parent directory of *path*, always with a leading slash."""
    return posixpath.dirname(normalize_path(path).rstrip("/")) or "/"


def basename(path: str) -> str:
    """Final segment of *path*."""
    return posixpath.basename(normalize_path(path).rstrip("/"))
