"""
Typed events a ConnectionHandle feeds into the supervisor.

Every event carries the epoch of the handle that produced it, so the consumer
can drop anything coming from a handle it has already replaced.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from .connection import ConnectionHandle, ConnectionState, StateChange
from .disconnect import DisconnectCause
from .messages import InboundMessage


@dataclass(frozen=True, slots=True)
class ConnectionConnecting:
    epoch: int


@dataclass(frozen=True, slots=True)
class ConnectionOpened:
    epoch: int


@dataclass(frozen=True, slots=True)
class ConnectionClosed:
    epoch: int
    cause: DisconnectCause


@dataclass(frozen=True, slots=True)
class CredsUpdated:
    epoch: int


@dataclass(frozen=True, slots=True)
class MessageReceived:
    epoch: int
    message: InboundMessage


HandleEvent = (
    ConnectionConnecting | ConnectionOpened | ConnectionClosed | CredsUpdated | MessageReceived
)


class EventRouter:
    """Subscribe to a handle and post its events, epoch-tagged, to one sink."""

    def __init__(self, post: Callable[[HandleEvent], None]) -> None:
        self._post = post

    def attach(self, handle: ConnectionHandle) -> None:
        epoch = handle.epoch
        post = self._post

        async def on_state(change: StateChange) -> None:
            if change.state is ConnectionState.CONNECTING:
                post(ConnectionConnecting(epoch))
            elif change.state is ConnectionState.OPEN:
                post(ConnectionOpened(epoch))
            else:
                post(ConnectionClosed(epoch, change.cause or DisconnectCause()))

        async def on_creds() -> None:
            post(CredsUpdated(epoch))

        async def on_message(message: InboundMessage) -> None:
            post(MessageReceived(epoch, message))

        handle.on_connection_state_change(on_state)
        handle.on_credential_update(on_creds)
        handle.on_message(on_message)
