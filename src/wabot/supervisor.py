"""
Connection supervisor.

A single consumer drains one inbox of typed events: connection events from the
current handle (via the EventRouter), timer expiries and session-acquisition
results. All lifecycle state lives on the Supervisor and is only touched from
that loop, so no locks are needed.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from .auth import AuthState, CredentialStore
from .config import BotConfig
from .connection import ConnectionHandle, ConnectionState, Connector, pyaileys_connector
from .disconnect import DisconnectCause, DisconnectKind, classify
from .events import (
    ConnectionClosed,
    ConnectionConnecting,
    ConnectionOpened,
    CredsUpdated,
    EventRouter,
    HandleEvent,
    MessageReceived,
)
from .exceptions import CorruptStateError
from .inbound import InboundHandler
from .messages import InboundMessage
from .provider import SessionProvider
from .remote import ManagerClient, fetch_latest_wa_version
from .util.asyncio import ScheduledCall, cancel_suppress, ensure_task

logger = structlog.get_logger(__name__)

VersionLookup = Callable[[], Awaitable[tuple[int, int, int] | None]]


@dataclass(frozen=True, slots=True)
class ReconnectDue:
    full: bool
    credential_epoch: int


@dataclass(frozen=True, slots=True)
class SessionAcquired:
    credential_epoch: int
    auth: AuthState
    version: tuple[int, int, int] | None = None


@dataclass(frozen=True, slots=True)
class AcquisitionFailed:
    error: BaseException


@dataclass(frozen=True, slots=True)
class StopRequested:
    pass


SupervisorEvent = HandleEvent | ReconnectDue | SessionAcquired | AcquisitionFailed | StopRequested


class Supervisor:
    """
    Keeps one connection alive and decides how to recover when it drops.

    - logged out: wipe local credentials, start over from session acquisition
    - restart required: reopen with the same credentials after a short delay
    - anything else: reopen with the same credentials after the reconnect interval
    """

    def __init__(
        self,
        config: BotConfig,
        *,
        store: CredentialStore | None = None,
        provider: SessionProvider | None = None,
        connector: Connector | None = None,
        inbound: InboundHandler | None = None,
        version_lookup: VersionLookup | None = fetch_latest_wa_version,
    ) -> None:
        self.config = config
        self.store = store or CredentialStore(config.session_dir)
        self.provider = provider or SessionProvider(
            self.store,
            ManagerClient(config.session_url, timeout_s=config.connect_timeout_s),
            retry_interval_s=config.session_retry_interval_s,
        )
        self.connector = connector or pyaileys_connector(config)
        self.inbound = inbound or InboundHandler(config)
        self._version_lookup = version_lookup

        self.state = ConnectionState.CLOSED
        self.first_connect = True
        self.credential_epoch = 0
        self.auth: AuthState | None = None
        self.handle: ConnectionHandle | None = None

        self._last_epoch = 0
        self._version: tuple[int, int, int] | None = None
        self._inbox: asyncio.Queue[SupervisorEvent] = asyncio.Queue()
        self._router = EventRouter(self.post)
        self._timer: ScheduledCall | None = None
        self._scheduled: tuple[float, bool] | None = None
        self._acquire_task: asyncio.Task[None] | None = None
        self._retired: list[ConnectionHandle] = []

    @property
    def current_epoch(self) -> int | None:
        return self.handle.epoch if self.handle is not None else None

    @property
    def scheduled(self) -> tuple[float, bool] | None:
        """`(delay_s, full_restart)` of the pending reconnect, if any."""

        if self._timer is None or self._timer.done:
            return None
        return self._scheduled

    def post(self, event: SupervisorEvent) -> None:
        self._inbox.put_nowait(event)

    def stop(self) -> None:
        self.post(StopRequested())

    async def run(self) -> None:
        """
        Acquire a session, connect, and keep the connection alive until
        `stop()` is called.

        Raises CorruptStateError when the credentials on disk cannot be loaded.
        """

        logger.info("starting", bot=self.config.bot_name, version=self.config.bot_version)
        self.start_acquisition()
        try:
            while True:
                event = await self._inbox.get()
                if isinstance(event, StopRequested):
                    return
                try:
                    await self.handle_event(event)
                except CorruptStateError:
                    raise
                except Exception:
                    logger.exception("supervisor event failed", kind=type(event).__name__)
        finally:
            await self.shutdown()

    async def handle_event(self, event: SupervisorEvent) -> None:
        if isinstance(event, SessionAcquired):
            if event.credential_epoch != self.credential_epoch:
                logger.debug("dropping session from an earlier credential epoch")
                return
            self.auth = event.auth
            self._version = event.version
            await self.open_connection()
        elif isinstance(event, AcquisitionFailed):
            raise event.error
        elif isinstance(event, ReconnectDue):
            if event.credential_epoch != self.credential_epoch:
                return
            self._scheduled = None
            if event.full or self.auth is None:
                self.start_acquisition()
            else:
                await self.open_connection()
        elif isinstance(event, StopRequested):
            return
        else:
            await self._handle_connection_event(event)

    async def _handle_connection_event(self, event: HandleEvent) -> None:
        if event.epoch != self.current_epoch:
            logger.debug(
                "ignoring event from stale connection",
                kind=type(event).__name__,
                epoch=event.epoch,
                current=self.current_epoch,
            )
            return

        if isinstance(event, ConnectionConnecting):
            self.state = ConnectionState.CONNECTING
        elif isinstance(event, ConnectionOpened):
            await self._on_open()
        elif isinstance(event, ConnectionClosed):
            await self._on_close(event.cause)
        elif isinstance(event, CredsUpdated):
            await self._persist_creds()
        elif isinstance(event, MessageReceived):
            await self._on_message(event.message)

    def start_acquisition(self) -> None:
        if self._acquire_task is not None and not self._acquire_task.done():
            self._acquire_task.cancel()
        self._acquire_task = ensure_task(
            self._acquire(self.credential_epoch), name="wabot.session_acquire"
        )

    async def _acquire(self, credential_epoch: int) -> None:
        while True:
            try:
                auth = await self.provider.resolve()
                break
            except CorruptStateError as e:
                logger.error("session credentials are corrupt", error=str(e), path=e.path)
                self.post(AcquisitionFailed(e))
                return
            except Exception:
                logger.exception(
                    "session acquisition failed", retry_in_s=self.config.reconnect_interval_s
                )
                await asyncio.sleep(self.config.reconnect_interval_s)

        version = await self._version_lookup() if self._version_lookup else None
        self.post(SessionAcquired(credential_epoch, auth, version))

    async def open_connection(self) -> None:
        assert self.auth is not None, "open_connection needs an acquired session"

        await self._release_retired()
        self._last_epoch += 1
        handle = self.connector(self.auth, self._last_epoch, self._version)
        self._router.attach(handle)
        self.handle = handle
        self.state = ConnectionState.CONNECTING
        logger.info("connecting", epoch=handle.epoch)
        ensure_task(self._open_handle(handle), name=f"wabot.open.{handle.epoch}")

    async def _open_handle(self, handle: ConnectionHandle) -> None:
        try:
            await handle.open()
        except Exception as e:
            logger.warning("connection attempt failed", epoch=handle.epoch, error=str(e))
            self.post(ConnectionClosed(handle.epoch, DisconnectCause.from_exception(e)))

    async def _on_open(self) -> None:
        self.state = ConnectionState.OPEN
        logger.info(
            "connected",
            bot=self.config.bot_name,
            version=self.config.bot_version,
            epoch=self.current_epoch,
        )
        if self.first_connect:
            self.first_connect = False
            await self._notify_owner()

    async def _notify_owner(self) -> None:
        owner = self.config.owner_jid
        if owner is None or self.handle is None:
            return
        text = f"🟢 *{self.config.bot_name} v{self.config.bot_version} is connected*"
        try:
            await self.handle.send_text(owner, text)
        except Exception as e:
            logger.warning("could not send startup notification", owner=owner, error=str(e))

    async def _on_close(self, cause: DisconnectCause) -> None:
        self.state = ConnectionState.CLOSED
        kind = classify(cause)
        logger.info(
            "disconnected",
            reason=cause.reason,
            code=cause.status_code,
            kind=kind.value,
            epoch=self.current_epoch,
        )
        self._retire_current()

        if kind is DisconnectKind.LOGGED_OUT:
            logger.warning("logged out; clearing local session", folder=str(self.store.folder))
            try:
                await self.store.wipe()
            except OSError as e:
                logger.error("could not clear local session", error=str(e))
            self.auth = None
            self.first_connect = True
            self.credential_epoch += 1
            await self._schedule(self.config.reconnect_interval_s, full=True)
        elif kind is DisconnectKind.RESTART_REQUIRED:
            await self._schedule(self.config.restart_required_delay_s, full=False)
        else:
            logger.info("reconnecting", in_s=self.config.reconnect_interval_s)
            await self._schedule(self.config.reconnect_interval_s, full=False)

    async def _schedule(self, delay_s: float, *, full: bool) -> None:
        if self._timer is not None:
            await self._timer.cancel()
        credential_epoch = self.credential_epoch

        async def fire() -> None:
            self.post(ReconnectDue(full=full, credential_epoch=credential_epoch))

        self._scheduled = (delay_s, full)
        self._timer = ScheduledCall(delay_s, fire, name="wabot.reconnect")

    async def _persist_creds(self) -> None:
        if self.auth is None:
            return
        try:
            await self.auth.save_creds()
        except OSError as e:
            logger.error("could not persist rotated credentials", error=str(e))

    async def _on_message(self, message: InboundMessage) -> None:
        if self.handle is None:
            return
        try:
            await self.inbound.handle(self.handle, message)
        except Exception:
            logger.exception(
                "inbound message handling failed", id=message.id, chat=message.chat_jid
            )

    def _retire_current(self) -> None:
        handle = self.handle
        self.handle = None
        if handle is None:
            return
        # Released now and again before the next handle opens: pyaileys may
        # reconnect a socket on its own after a restart request.
        self._retired.append(handle)
        ensure_task(self._release(handle), name=f"wabot.release.{handle.epoch}")

    async def _release_retired(self) -> None:
        retired, self._retired = self._retired, []
        for handle in retired:
            await self._release(handle)

    async def _release(self, handle: ConnectionHandle) -> None:
        try:
            await handle.close()
        except Exception as e:
            logger.debug("error closing retired connection", epoch=handle.epoch, error=str(e))

    async def shutdown(self) -> None:
        if self._timer is not None:
            await self._timer.cancel()
            self._timer = None
        await cancel_suppress(self._acquire_task)
        self._acquire_task = None
        self._retire_current()
        await self._release_retired()
        self.state = ConnectionState.CLOSED
        logger.info("stopped")
