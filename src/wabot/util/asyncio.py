from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, TypeVar

import structlog
from pyaileys.util import asyncio as pa_asyncio
from pyaileys.util.asyncio import cancel_suppress

__all__ = ["ScheduledCall", "cancel_suppress", "ensure_task", "install_exception_handler", "logged"]

T = TypeVar("T")

logger = structlog.get_logger(__name__)


def ensure_task(coro: Coroutine[Any, Any, T], *, name: str | None = None) -> asyncio.Task[T]:
    """pyaileys' `ensure_task`, plus a log line when the task dies with an error."""

    t = pa_asyncio.ensure_task(coro, name=name)
    t.add_done_callback(_log_task_failure)
    return t


def _log_task_failure(task: asyncio.Task[Any]) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error("background task failed", task=task.get_name(), exc_info=exc)


def logged(cb: Callable[..., Awaitable[object]]) -> Callable[..., Coroutine[Any, Any, None]]:
    """
    Wrap an event listener so a failure is logged instead of tearing down the
    emitter's receive loop.
    """

    async def _wrapped(*args: object, **kwargs: object) -> None:
        try:
            await cb(*args, **kwargs)
        except Exception:
            logger.exception(
                "event listener failed", listener=getattr(cb, "__qualname__", repr(cb))
            )

    return _wrapped


class ScheduledCall:
    """
    Cancellable deferred call: `fn()` runs once after `delay_s` unless
    `cancel()` happens first.
    """

    def __init__(
        self, delay_s: float, fn: Callable[[], Awaitable[object]], *, name: str | None = None
    ) -> None:
        self.delay_s = delay_s
        self._fn = fn
        self._task = ensure_task(self._run(), name=name)

    async def _run(self) -> None:
        await asyncio.sleep(self.delay_s)
        await self._fn()

    @property
    def done(self) -> bool:
        return self._task.done()

    async def cancel(self) -> None:
        await cancel_suppress(self._task)

    async def wait(self) -> None:
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


def install_exception_handler(loop: asyncio.AbstractEventLoop) -> None:
    """Log errors nobody awaited instead of letting them vanish or kill the bot."""

    def _handler(_loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        exc = context.get("exception")
        logger.error(
            "unhandled asyncio error",
            message=context.get("message"),
            exc_info=exc if isinstance(exc, BaseException) else None,
        )

    loop.set_exception_handler(_handler)
