from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import asdict
from pathlib import Path

import pytest
from pyaileys.auth import init_auth_creds
from pyaileys.util import json as bufferjson
from pyaileys.util.events import AsyncEventEmitter

from wabot.auth import AuthState, CredentialStore
from wabot.config import BotConfig
from wabot.connection import ConnectionState, StateChange
from wabot.disconnect import DisconnectCause
from wabot.messages import InboundMessage
from wabot.supervisor import Supervisor

OWNER = "15550001111"


def creds_json() -> str:
    return bufferjson.dumps(asdict(init_auth_creds()), indent=2)


@pytest.fixture
def config(tmp_path: Path) -> BotConfig:
    return BotConfig(
        session_manager_url="http://manager.test",
        session_id="bot-1",
        session_root=tmp_path / "bot_session",
        owner_number=OWNER,
        reconnect_interval_s=30.0,
        restart_required_delay_s=3.0,
        session_retry_interval_s=10.0,
    )


@pytest.fixture
def store(config: BotConfig) -> CredentialStore:
    return CredentialStore(config.session_dir)


class FakeSource:
    """Session manager stand-in: replays responses, raising the exceptions."""

    def __init__(self, responses: list[dict[str, str] | Exception]) -> None:
        self.responses = list(responses)
        self.calls = 0

    async def fetch_session_files(self) -> dict[str, str]:
        self.calls += 1
        r = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(r, Exception):
            raise r
        return r


class FakeConnection:
    def __init__(
        self, auth: AuthState, epoch: int, version: tuple[int, int, int] | None = None
    ) -> None:
        self.auth = auth
        self.epoch = epoch
        self.version = version
        self.events = AsyncEventEmitter()
        self.auto_open = False
        self.open_error: Exception | None = None
        self.opened = 0
        self.closed = 0
        self.sent: list[tuple[str, str]] = []
        self.read: list[InboundMessage] = []
        self.presence: list[tuple[str, str | None]] = []

    def on_connection_state_change(self, listener) -> None:
        self.events.on("state", listener)

    def on_credential_update(self, listener) -> None:
        self.events.on("creds", listener)

    def on_message(self, listener) -> None:
        self.events.on("message", listener)

    async def open(self) -> None:
        self.opened += 1
        if self.open_error is not None:
            raise self.open_error
        if self.auto_open:
            await self.emit_state(ConnectionState.CONNECTING)
            await self.emit_state(ConnectionState.OPEN)

    async def close(self) -> None:
        self.closed += 1

    async def send_text(self, jid: str, text: str) -> str:
        self.sent.append((jid, text))
        return f"MSG{len(self.sent)}"

    async def mark_read(self, messages) -> None:
        self.read.extend(messages)

    async def set_presence(self, state: str, jid: str | None = None) -> None:
        self.presence.append((state, jid))

    async def emit_state(
        self, state: ConnectionState, cause: DisconnectCause | None = None
    ) -> None:
        await self.events.emit("state", StateChange(state, cause))

    async def emit_creds(self) -> None:
        await self.events.emit("creds")

    async def emit_message(self, message: InboundMessage) -> None:
        await self.events.emit("message", message)


class FakeConnector:
    def __init__(self, *, auto_open: bool = False) -> None:
        self.auto_open = auto_open
        self.handles: list[FakeConnection] = []
        self.next_open_error: Exception | None = None

    def __call__(
        self, auth: AuthState, epoch: int, version: tuple[int, int, int] | None
    ) -> FakeConnection:
        h = FakeConnection(auth, epoch, version)
        h.auto_open = self.auto_open
        h.open_error, self.next_open_error = self.next_open_error, None
        self.handles.append(h)
        return h

    @property
    def notifications(self) -> list[tuple[str, str]]:
        return [s for h in self.handles for s in h.sent if s[0].startswith(OWNER)]


async def drain(sup: Supervisor) -> None:
    """Let pending tasks run, then handle everything queued for the supervisor."""

    for _ in range(3):
        await asyncio.sleep(0)
    while not sup._inbox.empty():
        await sup.handle_event(sup._inbox.get_nowait())
        await asyncio.sleep(0)


async def wait_until(pred: Callable[[], bool], timeout_s: float = 2.0) -> None:
    async def _poll() -> None:
        while not pred():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout=timeout_s)
