"""
HTTP calls to services outside WhatsApp: the session manager that hands out
credential bundles, and the published WhatsApp Web version.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import urllib.error
import urllib.request
from typing import Any, cast

import structlog

from .constants import USER_AGENT, WA_VERSION_URL
from .exceptions import RemoteError, SessionFetchError

logger = structlog.get_logger(__name__)


def _http_get(url: str, *, timeout_s: float) -> bytes:
    req = urllib.request.Request(
        url,
        headers={"Accept": "application/json", "User-Agent": USER_AGENT},
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            return cast(bytes, resp.read())
    except urllib.error.HTTPError as e:
        body = b""
        with contextlib.suppress(Exception):
            body = e.read()
        raise RemoteError(f"http error {e.code}: {body[:200]!r}", status=e.code) from e
    except Exception as e:
        raise RemoteError(f"request failed: {e}") from e


def parse_session_files(body: bytes) -> dict[str, str]:
    """
    Extract the `files` map from a session manager response.

    Anything but a non-empty object of string contents is a fetch failure.
    """

    try:
        doc: Any = json.loads(body)
    except ValueError as e:
        raise SessionFetchError(f"response is not JSON: {e}") from e

    files = doc.get("files") if isinstance(doc, dict) else None
    if not isinstance(files, dict):
        raise SessionFetchError("response has no files object")
    if not files:
        raise SessionFetchError("response files object is empty")

    out: dict[str, str] = {}
    for name, content in files.items():
        if not isinstance(content, str):
            raise SessionFetchError(f"file {name!r} content is not a string")
        out[str(name)] = content
    return out


class ManagerClient:
    """Client for the session manager's `GET /api/session/{id}/auth` endpoint."""

    def __init__(self, session_url: str, *, timeout_s: float = 30.0) -> None:
        self.session_url = session_url
        self.timeout_s = timeout_s

    async def fetch_session_files(self) -> dict[str, str]:
        try:
            body = await asyncio.to_thread(_http_get, self.session_url, timeout_s=self.timeout_s)
        except RemoteError as e:
            raise SessionFetchError(str(e), status=e.status) from e
        return parse_session_files(body)


def parse_wa_version(body: bytes) -> tuple[int, int, int]:
    doc = json.loads(body)
    version = doc["version"] if isinstance(doc, dict) else None
    if not isinstance(version, list) or len(version) != 3:
        raise ValueError(f"unexpected version payload: {doc!r}")
    major, minor, patch = (int(v) for v in version)
    return (major, minor, patch)


async def fetch_latest_wa_version(
    *, url: str = WA_VERSION_URL, timeout_s: float = 10.0
) -> tuple[int, int, int] | None:
    """
    Look up the WhatsApp Web version Baileys currently targets.

    Returns None when the lookup fails; callers keep their built-in default.
    """

    try:
        body = await asyncio.to_thread(_http_get, url, timeout_s=timeout_s)
        version = parse_wa_version(body)
    except (RemoteError, ValueError, KeyError, TypeError) as e:
        logger.warning("WA version lookup failed", error=str(e))
        return None
    logger.debug("latest WA version", version=".".join(str(v) for v in version))
    return version
