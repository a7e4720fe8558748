from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Protocol

import structlog

from .auth import AuthState, CredentialStore
from .exceptions import SessionFetchError

logger = structlog.get_logger(__name__)


class SessionSource(Protocol):
    async def fetch_session_files(self) -> dict[str, str]: ...


class SessionProvider:
    """
    Produce a usable AuthState, local first.

    When nothing is stored locally the session manager is polled until it
    hands out a bundle. There is no attempt limit: the manager, or the session
    it serves, may simply not exist yet. Cancel the calling task to stop.
    """

    def __init__(
        self,
        store: CredentialStore,
        source: SessionSource,
        *,
        retry_interval_s: float,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ) -> None:
        self.store = store
        self.source = source
        self.retry_interval_s = retry_interval_s
        self._sleep = sleep

    async def resolve(self) -> AuthState:
        if self.store.exists():
            logger.info("using local session", folder=str(self.store.folder))
            return await self.store.load()

        files = await self._fetch_until_available()
        await self.store.save(files)
        # Hand out what landed on disk. CorruptStateError propagates.
        return await self.store.load()

    async def _fetch_until_available(self) -> dict[str, str]:
        attempt = 0
        while True:
            attempt += 1
            logger.info("fetching session from manager", attempt=attempt)
            try:
                return await self.source.fetch_session_files()
            except SessionFetchError as e:
                logger.warning(
                    "could not fetch session from manager",
                    attempt=attempt,
                    status=e.status,
                    error=str(e),
                    retry_in_s=self.retry_interval_s,
                )
            await self._sleep(self.retry_interval_s)
