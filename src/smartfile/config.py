"""ClientConfig — connection, credential, and cache settings."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from smartfile.exceptions import InvalidArgumentError
from smartfile.rest.auth import BasicAuthenticator, NoAuth, SessionAuthenticator
from smartfile.rest.policy import PollPolicy

ENV_URL = ("SMARTFILE_URL", "SMARTFILE_API_URL")
ENV_USER = "SMARTFILE_USER"
ENV_PASS = "SMARTFILE_PASS"
ENV_TIMEOUT = "SMARTFILE_TIMEOUT"
ENV_CACHE_LEVEL = "SMARTFILE_CACHE_LEVEL"
ENV_TIMEZONE = "SMARTFILE_TIMEZONE"

CACHE_LEVELS = (0, 1, 2)


@dataclass
class ClientConfig:
    """Settings for one API connection."""

    base_url: str
    """API root, e.g. ``"https://app.smartfile.com"``."""

    username: str | None = None
    password: str | None = None

    timeout: float | None = 30.0
    """Per-request timeout in seconds; uploads and downloads ignore it."""

    headers: dict[str, str] = field(default_factory=dict)
    """Extra headers sent with every request."""

    cache_level: int = 1
    """0 = no stat cache, 1 = listing-primed single use, 2 = persistent."""

    server_tz: str = "UTC"
    """Timezone the server uses for naive timestamps."""

    session: bool = False
    """If True, use a cookie session (with CSRF) once started."""

    poll_min_interval: float = 0.192
    poll_max_interval: float = 6.144
    poll_timeout: float = 390.0

    def __post_init__(self) -> None:
        if not self.base_url:
            raise InvalidArgumentError("base_url is required")
        self.base_url = self.base_url.rstrip("/")
        if self.cache_level not in CACHE_LEVELS:
            raise InvalidArgumentError(f"cache_level must be one of {CACHE_LEVELS}")

    @classmethod
    def from_env(
        cls, environ: Mapping[str, str] | None = None, **overrides: Any
    ) -> ClientConfig:
        """Fill unset fields from ``SMARTFILE_*`` environment variables.

        Explicit keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        for name in ENV_URL:
            if env.get(name):
                values["base_url"] = env[name]
                break
        if env.get(ENV_USER):
            values["username"] = env[ENV_USER]
        if env.get(ENV_PASS):
            values["password"] = env[ENV_PASS]
        if env.get(ENV_TIMEOUT):
            values["timeout"] = float(env[ENV_TIMEOUT])
        if env.get(ENV_CACHE_LEVEL):
            values["cache_level"] = int(env[ENV_CACHE_LEVEL])
        if env.get(ENV_TIMEZONE):
            values["server_tz"] = env[ENV_TIMEZONE]

        values.update({k: v for k, v in overrides.items() if v is not None})
        values.setdefault("base_url", "")
        return cls(**values)

    def authenticator(self) -> BasicAuthenticator | SessionAuthenticator | NoAuth:
        """Build the authenticator these settings describe."""
        if not self.username and not self.password:
            if self.session:
                raise InvalidArgumentError("session auth needs username and password")
            return NoAuth()
        basic = BasicAuthenticator(self.username, self.password)
        return SessionAuthenticator(basic) if self.session else basic

    def poll_policy(self) -> PollPolicy:
        return PollPolicy(
            min_interval=self.poll_min_interval,
            max_interval=self.poll_max_interval,
            timeout=self.poll_timeout,
        )
