from __future__ import annotations

import json

import pytest

from wabot import remote
from wabot.exceptions import RemoteError, SessionFetchError
from wabot.remote import ManagerClient, parse_session_files, parse_wa_version


def test_parse_session_files_ok() -> None:
    body = json.dumps({"files": {"creds.json": "{}", "pre-key-1.json": "{}"}}).encode()
    assert parse_session_files(body) == {"creds.json": "{}", "pre-key-1.json": "{}"}


@pytest.mark.parametrize(
    "body",
    [
        b"<html>bad gateway</html>",
        b"[]",
        b"{}",
        json.dumps({"files": None}).encode(),
        json.dumps({"files": ["creds.json"]}).encode(),
        json.dumps({"files": {}}).encode(),
        json.dumps({"files": {"creds.json": {"nested": 1}}}).encode(),
    ],
)
def test_parse_session_files_rejects_bad_shapes(body: bytes) -> None:
    with pytest.raises(SessionFetchError):
        parse_session_files(body)


@pytest.mark.asyncio
async def test_manager_client_builds_the_auth_url(monkeypatch) -> None:
    seen: list[str] = []

    def fake_get(url: str, *, timeout_s: float) -> bytes:
        seen.append(url)
        return json.dumps({"files": {"creds.json": "{}"}}).encode()

    monkeypatch.setattr(remote, "_http_get", fake_get)
    client = ManagerClient("http://manager.test/api/session/bot-1/auth", timeout_s=5.0)

    files = await client.fetch_session_files()

    assert files == {"creds.json": "{}"}
    assert seen == ["http://manager.test/api/session/bot-1/auth"]


@pytest.mark.asyncio
async def test_manager_client_propagates_http_errors(monkeypatch) -> None:
    def fake_get(url: str, *, timeout_s: float) -> bytes:
        raise RemoteError("http error 404: b'not found'", status=404)

    monkeypatch.setattr(remote, "_http_get", fake_get)

    with pytest.raises(SessionFetchError) as ei:
        await ManagerClient("http://manager.test/x").fetch_session_files()
    assert ei.value.status == 404


def test_http_get_wraps_connection_errors() -> None:
    # Port 9 on localhost: nothing listens, so the connection is refused.
    with pytest.raises(RemoteError) as ei:
        remote._http_get("http://127.0.0.1:9/api/session/x/auth", timeout_s=1.0)
    assert not isinstance(ei.value, SessionFetchError)


def test_parse_wa_version() -> None:
    assert parse_wa_version(b'{"version": [2, 3000, 1027934701]}') == (2, 3000, 1027934701)
    with pytest.raises(ValueError):
        parse_wa_version(b'{"version": [2, 3000]}')


@pytest.mark.asyncio
async def test_fetch_latest_wa_version_falls_back_to_none(monkeypatch) -> None:
    def fake_get(url: str, *, timeout_s: float) -> bytes:
        raise RemoteError("offline")

    monkeypatch.setattr(remote, "_http_get", fake_get)
    assert await remote.fetch_latest_wa_version() is None

    monkeypatch.setattr(remote, "_http_get", lambda url, *, timeout_s: b"<html>")
    assert await remote.fetch_latest_wa_version() is None


@pytest.mark.asyncio
async def test_fetch_latest_wa_version(monkeypatch) -> None:
    monkeypatch.setattr(
        remote, "_http_get", lambda url, *, timeout_s: b'{"version": [2, 3000, 1]}'
    )
    assert await remote.fetch_latest_wa_version() == (2, 3000, 1)
