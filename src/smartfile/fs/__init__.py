"""Filesystem layer — stat cache, descriptors, file proxies, facade."""

from smartfile.fs.cache import (
    LEVEL_OFF,
    LEVEL_PERSISTENT,
    LEVEL_SINGLE_USE,
    NOT_FOUND,
    StatCache,
)
from smartfile.fs.descriptors import DescriptorTable
from smartfile.fs.fileproxy import Access, FileProxy, ProxyState, access_for
from smartfile.fs.filesystem import AsyncFileSystem

__all__ = [
    "LEVEL_OFF",
    "LEVEL_PERSISTENT",
    "LEVEL_SINGLE_USE",
    "NOT_FOUND",
    "Access",
    "AsyncFileSystem",
    "DescriptorTable",
    "FileProxy",
    "ProxyState",
    "StatCache",
    "access_for",
]
