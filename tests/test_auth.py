"""Tests for authenticators and the session lifecycle."""

from __future__ import annotations

import httpx
import pytest

from smartfile.exceptions import InvalidArgumentError, ResponseError
from smartfile.rest.auth import (
    CSRF_HEADER,
    Authenticator,
    BasicAuthenticator,
    NoAuth,
    SessionAuthenticator,
    SupportsSession,
)

SESSION = "/api/2/session/"
BASIC = "Basic dXNlcjpwYXNz"


def _session_reply(csrf_header: str | None = None) -> httpx.Response:
    headers = [
        ("Set-Cookie", "sessionid=abc123; Path=/"),
        ("Set-Cookie", "csrftoken=cookie-token; Path=/"),
    ]
    if csrf_header:
        headers.append((CSRF_HEADER, csrf_header))
    return httpx.Response(200, headers=headers, json={})


# ---------------------------------------------------------------------------
# BasicAuthenticator
# ---------------------------------------------------------------------------


class TestBasicAuthenticator:
    def test_header(self):
        request = httpx.Request("GET", "http://fakeapi.foo/api/2/ping/")
        BasicAuthenticator("user", "pass").apply_auth(request)
        assert request.headers["Authorization"] == BASIC

    @pytest.mark.parametrize("username,password", [("", "pass"), ("user", None), (None, None)])
    def test_missing_credentials(self, username, password):
        with pytest.raises(InvalidArgumentError):
            BasicAuthenticator(username, password)

    def test_from_options(self):
        assert BasicAuthenticator.from_options(username="u", password="p").credentials == "u:p"
        assert BasicAuthenticator.from_options(user="u", **{"pass": "p"}).credentials == "u:p"
        auth = BasicAuthenticator.from_options(auth={"user": "u", "pass": "p"})
        assert auth.credentials == "u:p"

    def test_protocols(self):
        assert isinstance(NoAuth(), Authenticator)
        assert isinstance(BasicAuthenticator("u", "p"), Authenticator)
        assert not isinstance(BasicAuthenticator("u", "p"), SupportsSession)
        assert isinstance(SessionAuthenticator(BasicAuthenticator("u", "p")), SupportsSession)


# ---------------------------------------------------------------------------
# SessionAuthenticator (unit)
# ---------------------------------------------------------------------------


class TestSessionAuthenticator:
    def test_basic_until_session(self):
        auth = SessionAuthenticator(BasicAuthenticator("user", "pass"))
        request = httpx.Request("POST", "http://fakeapi.foo/api/2/path/oper/mkdir/")
        auth.apply_auth(request)
        assert not auth.session_active
        assert request.headers["Authorization"] == BASIC
        assert CSRF_HEADER not in request.headers

    def test_csrf_from_cookie_or_header(self):
        auth = SessionAuthenticator(BasicAuthenticator("user", "pass"))
        reply = _session_reply()
        reply.request = httpx.Request("POST", "http://fakeapi.foo/api/2/session/")
        auth.observe_response(reply)
        assert auth.session_active
        assert auth.csrf_token == "cookie-token"

        reply = _session_reply(csrf_header="header-token")
        reply.request = httpx.Request("POST", "http://fakeapi.foo/api/2/session/")
        auth.observe_response(reply)
        assert auth.csrf_token == "header-token"

        auth.reset_session()
        assert not auth.session_active
        assert auth.csrf_token is None


# ---------------------------------------------------------------------------
# Session lifecycle through the client
# ---------------------------------------------------------------------------


class TestSessionLifecycle:
    async def test_start_use_end(self, api, make_client):
        api.add("POST", SESSION, _session_reply())
        api.add("DELETE", SESSION, httpx.Response(204))
        api.json("GET", "/api/2/ping/", {})
        api.json("POST", "/api/2/path/oper/mkdir/", {"path": "/d", "isdir": True})

        auth = SessionAuthenticator(BasicAuthenticator("user", "pass"))
        async with make_client(authenticator=auth) as client:
            await client.start_session()
            assert client.session_active
            await client.ping()
            await client.mkdir("/d")
            await client.end_session()
            assert not client.session_active
            await client.ping()

        login, ping, mkdir, logout, ping_after = api.requests
        assert login.headers["Authorization"] == BASIC

        assert "Authorization" not in ping.headers
        assert "sessionid=abc123" in ping.headers["Cookie"]
        assert CSRF_HEADER not in ping.headers

        assert mkdir.headers[CSRF_HEADER] == "cookie-token"
        assert "Authorization" not in mkdir.headers

        assert logout.headers[CSRF_HEADER] == "cookie-token"

        assert ping_after.headers["Authorization"] == BASIC
        assert "Cookie" not in ping_after.headers

    async def test_end_session_resets_on_error(self, api, make_client):
        api.add("POST", SESSION, _session_reply())
        api.add("DELETE", SESSION, httpx.Response(500))

        auth = SessionAuthenticator(BasicAuthenticator("user", "pass"))
        async with make_client(authenticator=auth) as client:
            await client.start_session()
            with pytest.raises(ResponseError):
                await client.end_session()
            assert not client.session_active

    async def test_sessions_need_session_authenticator(self, rest):
        assert not rest.session_active
        with pytest.raises(InvalidArgumentError):
            await rest.start_session()
