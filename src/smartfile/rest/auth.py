"""Authenticators — pluggable credential injection for the REST client.

The client owns no credentials itself.  Each request is handed to an
``Authenticator`` just before it is sent, and each response is shown to
it afterwards so session-based schemes can pick up cookies and tokens.
"""

from __future__ import annotations

import base64
import logging
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import httpx

from smartfile.exceptions import InvalidArgumentError

from .policy import SAFE_METHODS

logger = logging.getLogger(__name__)

SESSION_COOKIE = "sessionid"
CSRF_COOKIE = "csrftoken"
CSRF_HEADER = "X-CSRFToken"


@runtime_checkable
class Authenticator(Protocol):
    """Applies credentials to outgoing requests."""

    def apply_auth(self, request: httpx.Request) -> None: ...

    def observe_response(self, response: httpx.Response) -> None: ...


@runtime_checkable
class SupportsSession(Protocol):
    """Authenticators that can hold a server session."""

    @property
    def session_active(self) -> bool: ...

    def reset_session(self) -> None: ...


class NoAuth:
    """Sends requests without credentials."""

    def apply_auth(self, request: httpx.Request) -> None:
        pass

    def observe_response(self, response: httpx.Response) -> None:
        pass


class BasicAuthenticator:
    """HTTP Basic credentials on every request."""

    def __init__(self, username: str | None, password: str | None) -> None:
        if not username or not password:
            raise InvalidArgumentError("username and password required for basic auth")
        self.username = username
        self.password = password
        token = base64.b64encode(f"{username}:{password}".encode()).decode("ascii")
        self._header = f"Basic {token}"

    @classmethod
    def from_options(cls, **options: Any) -> BasicAuthenticator:
        """Accept ``username``/``password``, ``user``/``pass``, or an ``auth`` mapping."""
        auth = options.get("auth")
        if isinstance(auth, Mapping):
            username = auth.get("user") or auth.get("username")
            password = auth.get("pass") or auth.get("password")
        else:
            username = options.get("username") or options.get("user")
            password = options.get("password") or options.get("pass")
        return cls(username, password)

    @property
    def credentials(self) -> str:
        return f"{self.username}:{self.password}"

    def apply_auth(self, request: httpx.Request) -> None:
        request.headers["Authorization"] = self._header

    def observe_response(self, response: httpx.Response) -> None:
        pass


class SessionAuthenticator:
    """Server-session auth layered over Basic credentials.

    While the cookie jar holds a session cookie, requests carry the
    cookies (and a CSRF token for unsafe methods) instead of the Basic
    header.  Once the session is reset, Basic auth resumes.
    """

    def __init__(self, basic: BasicAuthenticator) -> None:
        self._basic = basic
        self.cookies = httpx.Cookies()
        self._csrf_token: str | None = None

    @property
    def session_active(self) -> bool:
        return self.cookies.get(SESSION_COOKIE) is not None

    @property
    def csrf_token(self) -> str | None:
        return self._csrf_token or self.cookies.get(CSRF_COOKIE)

    def apply_auth(self, request: httpx.Request) -> None:
        if not self.session_active:
            self._basic.apply_auth(request)
            return
        request.headers.pop("Authorization", None)
        self.cookies.set_cookie_header(request)
        token = self.csrf_token
        if request.method.upper() not in SAFE_METHODS:
            if token is None:
                logger.warning("Session active but no CSRF token for %s", request.url.path)
            else:
                request.headers[CSRF_HEADER] = token

    def observe_response(self, response: httpx.Response) -> None:
        self.cookies.extract_cookies(response)
        token = response.headers.get(CSRF_HEADER)
        if token:
            self._csrf_token = token

    def reset_session(self) -> None:
        self.cookies.clear()
        self._csrf_token = None
