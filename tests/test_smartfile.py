"""Tests for the synchronous SmartFile facade."""

from __future__ import annotations

import tempfile
from typing import TYPE_CHECKING

import httpx
import pytest

from smartfile import ClientConfig, SmartFile
from smartfile.exceptions import PathNotFoundError, ResponseError
from smartfile.rest.client import Client
from smartfile.rest.types import TaskStatus

if TYPE_CHECKING:
    from pathlib import Path

INFO = "/api/2/path/info"
DATA = "/api/2/path/data"


@pytest.fixture(autouse=True)
def staging_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


@pytest.fixture
def make_sf(api, sleep):
    opened: list[SmartFile] = []

    def factory(**config_kwargs) -> SmartFile:
        config = ClientConfig(
            base_url="http://fakeapi.foo", username="user", password="pass", **config_kwargs
        )
        sf = SmartFile(config, transport=httpx.MockTransport(api.handler), sleep=sleep)
        opened.append(sf)
        return sf

    yield factory
    for sf in opened:
        sf.close()


class TestLifecycle:
    def test_context_manager(self, api, make_sf):
        api.json("GET", "/api/2/ping/", {"ping": "pong"})
        with make_sf() as sf:
            assert sf.ping() == {"ping": "pong"}
        assert sf._closed
        assert not sf._thread.is_alive()
        sf.close()

    def test_from_environment(self, api, monkeypatch):
        monkeypatch.setenv("SMARTFILE_URL", "http://fakeapi.foo")
        monkeypatch.delenv("SMARTFILE_USER", raising=False)
        monkeypatch.delenv("SMARTFILE_PASS", raising=False)
        api.json("GET", "/api/2/whoami/", {"user": None})
        with SmartFile(transport=httpx.MockTransport(api.handler)) as sf:
            assert sf.whoami() == {"user": None}
        assert "Authorization" not in api.requests[0].headers

    def test_session_started_and_ended(self, api, make_sf):
        api.add(
            "POST",
            "/api/2/session/",
            httpx.Response(200, headers=[("Set-Cookie", "sessionid=s1; Path=/")], json={}),
        )
        api.add("DELETE", "/api/2/session/", httpx.Response(204))
        sf = make_sf(session=True)
        assert sf.rest.session_active
        sf.close()
        assert [r.method for r in api.requests] == ["POST", "DELETE"]

    def test_failed_session_start_closes_client(self, api, monkeypatch):
        closed: list[Client] = []
        original = Client.aclose

        async def aclose(client: Client) -> None:
            closed.append(client)
            await original(client)

        monkeypatch.setattr(Client, "aclose", aclose)
        api.add("POST", "/api/2/session/", httpx.Response(500, json={"detail": "down"}))
        config = ClientConfig(
            base_url="http://fakeapi.foo", username="user", password="pass", session=True
        )
        with pytest.raises(ResponseError):
            SmartFile(config, transport=httpx.MockTransport(api.handler))
        assert len(closed) == 1
        assert closed[0]._http.is_closed


class TestFilesystemWrappers:
    def test_round_trip(self, api, make_sf):
        api.json("POST", "/api/2/path/oper/mkdir/", {"path": "/docs", "isdir": True})
        api.json("POST", f"{DATA}/docs", {"name": "a.txt"})
        api.json(
            "GET",
            f"{INFO}/docs",
            {"path": "/docs", "isdir": True, "children": [{"path": "/docs/a.txt", "size": 2}]},
        )
        api.add("GET", f"{DATA}/docs/a.txt", httpx.Response(200, content=b"hi"))

        sf = make_sf()
        assert sf.mkdir("/docs").isdir
        sf.write_file("/docs/a.txt", b"hi")
        assert sf.readdir("/docs") == ["a.txt"]
        assert sf.readdirstats("/docs")[0].size == 2
        assert sf.read_file("/docs/a.txt") == b"hi"

    def test_stat_and_exists(self, api, make_sf):
        api.json("GET", f"{INFO}/a.txt", {"path": "/a.txt", "size": 1})
        api.add("GET", f"{INFO}/b.txt", httpx.Response(404))
        sf = make_sf()
        assert sf.stat("/a.txt").size == 1
        assert sf.exists("/b.txt") is False
        with pytest.raises(PathNotFoundError):
            sf.stat("/b.txt")

    def test_operations(self, api, make_sf, sleep):
        for endpoint, task in (("remove", "t1"), ("copy", "t2"), ("move", "t3")):
            api.json("POST", f"/api/2/path/oper/{endpoint}/", {"uuid": task})
            api.task(task, "SUCCESS")
        api.json("POST", "/api/2/path/oper/rename/", {"path": "/z"})

        sf = make_sf()
        assert sf.unlink("/x").status is TaskStatus.SUCCESS
        assert sf.rmdir("/x").status is TaskStatus.SUCCESS
        assert sf.copy("/x", "/y").task_id == "t2"
        assert sf.move("/x", "/y").task_id == "t3"
        assert sf.rename("/y", "/z").path == "/z"
        assert len(sleep.delays) == 4
