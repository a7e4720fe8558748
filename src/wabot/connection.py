from __future__ import annotations

import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Literal, Protocol

import structlog
from pyaileys import WhatsAppClient
from pyaileys.client import ClientConfig
from pyaileys.socket import ConnectionUpdate
from pyaileys.socket_config import SocketConfig
from pyaileys.util.events import AsyncEventEmitter
from pyaileys.wabinary.jid import jid_normalized_user
from pyaileys.wabinary.types import BinaryNode

from .auth import AuthState
from .config import BotConfig
from .disconnect import (
    DisconnectCause,
    DisconnectReason,
    cause_from_failure,
    cause_from_stream_error,
)
from .messages import InboundMessage, from_decrypted_event, is_from_me
from .util.asyncio import cancel_suppress, logged

logger = structlog.get_logger(__name__)

PresenceState = Literal["available", "unavailable", "composing", "paused", "recording"]


class ConnectionState(Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class StateChange:
    state: ConnectionState
    cause: DisconnectCause | None = None


StateListener = Callable[[StateChange], Awaitable[None]]
CredsListener = Callable[[], Awaitable[None]]
MessageListener = Callable[[InboundMessage], Awaitable[None]]


class ConnectionHandle(Protocol):
    """
    One connection attempt.

    A handle reports at most one CLOSED state change; after that it is done
    and a new handle is needed to reconnect.
    """

    epoch: int

    def on_connection_state_change(self, listener: StateListener) -> None: ...

    def on_credential_update(self, listener: CredsListener) -> None: ...

    def on_message(self, listener: MessageListener) -> None: ...

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def send_text(self, jid: str, text: str) -> str: ...

    async def mark_read(self, messages: Sequence[InboundMessage]) -> None: ...

    async def set_presence(self, state: PresenceState, jid: str | None = None) -> None: ...


Connector = Callable[[AuthState, int, tuple[int, int, int] | None], ConnectionHandle]


class PyaileysConnection:
    """ConnectionHandle backed by a fresh `pyaileys.WhatsAppClient`."""

    def __init__(
        self,
        auth: AuthState,
        *,
        epoch: int,
        config: BotConfig,
        version: tuple[int, int, int] | None = None,
    ) -> None:
        self.epoch = epoch
        self.auth = auth
        self.events = AsyncEventEmitter()

        socket_cfg = SocketConfig(
            connect_timeout_s=config.connect_timeout_s,
            keep_alive_interval_s=config.keep_alive_interval_s,
            sync_full_history=False,
            auto_reconnect=False,
        )
        if version is not None:
            socket_cfg.version = version
        self.client = WhatsAppClient(auth=auth.for_client(), config=ClientConfig(socket=socket_cfg))

        self._pending_cause: DisconnectCause | None = None
        self._close_reported = False
        self._released = False
        self._qr_warned = False

        # Registered before connect() so they run ahead of pyaileys' own
        # stream-error handling, which closes the socket.
        self.client.on("cb:stream:error", self._on_stream_error)
        self.client.on("cb:failure", self._on_failure)
        self.client.on("connection.update", logged(self._on_update))
        self.client.on("creds.update", logged(self._on_creds))
        self.client.on("message.decrypted", logged(self._on_decrypted))

    def on_connection_state_change(self, listener: StateListener) -> None:
        self.events.on("state", listener)

    def on_credential_update(self, listener: CredsListener) -> None:
        self.events.on("creds", listener)

    def on_message(self, listener: MessageListener) -> None:
        self.events.on("message", listener)

    async def open(self) -> None:
        await self.client.connect()

    async def close(self) -> None:
        """
        Shut the socket down for good.

        pyaileys answers stream error 515 by restarting the socket itself; that
        restart is cancelled here so a released handle never reconnects.
        """

        self._released = True
        await cancel_suppress(self.client.socket._restart_task)
        await self.client.disconnect()

    async def send_text(self, jid: str, text: str) -> str:
        return await self.client.send_text(jid, text)

    async def mark_read(self, messages: Sequence[InboundMessage]) -> None:
        for msg in messages:
            if not msg.id or not msg.chat_jid:
                continue
            attrs = {
                "id": msg.id,
                "to": msg.chat_jid,
                "type": "read",
                "t": str(int(time.time())),
            }
            if msg.chat_type != "dm" and msg.sender_jid != msg.chat_jid:
                attrs["participant"] = msg.sender_jid
            await self.client.socket.send_node(BinaryNode(tag="receipt", attrs=attrs))

    async def set_presence(self, state: PresenceState, jid: str | None = None) -> None:
        if state in ("available", "unavailable"):
            await self.client.set_presence(state == "available")
            return
        if jid is None:
            raise ValueError(f"presence {state!r} needs a chat jid")
        await self.client.send_chatstate(jid, state)

    async def _on_stream_error(self, node: BinaryNode) -> None:
        self._pending_cause = cause_from_stream_error(node)

    async def _on_failure(self, node: BinaryNode) -> None:
        self._pending_cause = cause_from_failure(node)

    async def _on_update(self, update: ConnectionUpdate) -> None:
        if self._released:
            return
        if update.qr and not self._qr_warned:
            self._qr_warned = True
            logger.warning("session is not paired; server asked for a QR scan", epoch=self.epoch)

        if update.connection == "connecting":
            await self.events.emit("state", StateChange(ConnectionState.CONNECTING))
        elif update.connection == "open":
            await self.events.emit("state", StateChange(ConnectionState.OPEN))
        elif update.connection == "close":
            if self._close_reported:
                return
            self._close_reported = True
            change = StateChange(ConnectionState.CLOSED, self._cause(update))
            await self.events.emit("state", change)

    def _cause(self, update: ConnectionUpdate) -> DisconnectCause:
        if self._pending_cause is not None:
            return self._pending_cause
        if update.last_disconnect is not None:
            cause = DisconnectCause.from_exception(update.last_disconnect)
            if cause.status_code is None:
                return DisconnectCause(
                    status_code=int(DisconnectReason.CONNECTION_LOST),
                    reason=cause.reason,
                    error=cause.error,
                )
            return cause
        return DisconnectCause(
            status_code=int(DisconnectReason.CONNECTION_CLOSED), reason="connection closed"
        )

    async def _on_creds(self, _creds: object) -> None:
        if self._released:
            return
        await self.events.emit("creds")

    async def _on_decrypted(self, ev: dict[str, object]) -> None:
        if self._released or ev.get("message") is None:
            return
        msg = from_decrypted_event(ev, push_name=self._push_name(ev))
        me = self.auth.creds.me
        if me is not None and is_from_me(msg.sender_jid, (me.id, me.lid)):
            return
        await self.events.emit("message", msg)

    def _push_name(self, ev: dict[str, object]) -> str | None:
        # pyaileys records the stanza's `notify` attr before emitting the event.
        sender = str(ev.get("sender_jid") or ev.get("chat_jid") or "")
        contact = self.client.store.get_contact(jid_normalized_user(sender) or sender)
        if contact is None:
            return None
        return contact.notify or contact.name


def pyaileys_connector(config: BotConfig) -> Connector:
    def _connect(
        auth: AuthState, epoch: int, version: tuple[int, int, int] | None
    ) -> ConnectionHandle:
        return PyaileysConnection(auth, epoch=epoch, config=config, version=version)

    return _connect
