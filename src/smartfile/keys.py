"""Keys — SSH public keys registered for a SmartFile user."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote

from smartfile.exceptions import InvalidArgumentError, SmartFileError

if TYPE_CHECKING:
    from smartfile.rest.client import Client

KEYS_ENDPOINT = "/api/3/sshkeys/{username}/"


class Keys:
    """List, fetch, save, update, and delete one user's SSH keys.

    Keys are plain dicts with at least ``name`` and ``key``.  Results are
    cached by name; ``list()`` is served from the cache after the first
    full fetch, until ``refresh=True`` is passed.
    """

    def __init__(
        self, rest: Client, username: str, *, logger: logging.Logger | None = None
    ) -> None:
        if not username:
            raise InvalidArgumentError("username is required")
        self.rest = rest
        self.username = username
        self._cache: dict[str, dict[str, Any]] = {}
        self._listed = False
        self._logger = logger or logging.getLogger(__name__)

    @property
    def endpoint(self) -> str:
        return KEYS_ENDPOINT.format(username=quote(self.username, safe=""))

    def _key_endpoint(self, name: str) -> str:
        if not name:
            raise InvalidArgumentError("key name is required")
        return f"{self.endpoint}{quote(name, safe='')}"

    def _remember(self, key: Any) -> Any:
        if isinstance(key, dict) and key.get("name"):
            self._cache[key["name"]] = key
        return key

    async def _call(self, action: str, method: str, path: str, **kwargs: Any) -> Any:
        try:
            return await self.rest.request_json(method, path, **kwargs)
        except SmartFileError:
            self._logger.error("Cannot %s SSH key(s) for %s", action, self.username, exc_info=True)
            raise

    async def list(self, *, refresh: bool = False) -> list[dict[str, Any]]:
        if self._listed and not refresh:
            return list(self._cache.values())
        payload = await self._call("list", "GET", self.endpoint) or []
        if isinstance(payload, dict):
            payload = payload.get("results") or []
        self._cache.clear()
        for key in payload:
            self._remember(key)
        self._listed = True
        return list(payload)

    async def get(self, name: str) -> dict[str, Any]:
        if name in self._cache:
            return self._cache[name]
        return self._remember(await self._call("get", "GET", self._key_endpoint(name)))

    async def save(self, key: dict[str, Any]) -> dict[str, Any]:
        """Create or replace the key named ``key["name"]``."""
        endpoint = self._key_endpoint(key.get("name", ""))
        return self._remember(await self._call("save", "PUT", endpoint, json=key))

    async def update(self, name: str, key: dict[str, Any]) -> dict[str, Any]:
        """Change fields of key *name*; the result may carry a new name."""
        result = await self._call("update", "PATCH", self._key_endpoint(name), json=key)
        self._cache.pop(name, None)
        return self._remember(result)

    async def delete(self, name: str) -> None:
        await self._call("delete", "DELETE", self._key_endpoint(name))
        self._cache.pop(name, None)
