from __future__ import annotations

from collections.abc import Awaitable, Callable

import structlog

from .config import BotConfig
from .connection import ConnectionHandle
from .messages import InboundMessage

logger = structlog.get_logger(__name__)

Command = Callable[[ConnectionHandle, InboundMessage, list[str]], Awaitable[None]]


def parse_command(body: str, prefix: str) -> tuple[str, list[str]] | None:
    """
    Split `<prefix>name arg1 arg2` into `("name", ["arg1", "arg2"])`.

    Returns None when `body` does not start with `prefix` or names no command.
    """

    if not body.startswith(prefix):
        return None
    args = body[len(prefix) :].split()
    if not args:
        return None
    return args[0].lower(), args[1:]


class CommandDispatcher:
    def __init__(self, config: BotConfig) -> None:
        self.config = config
        self._commands: dict[str, Command] = {
            "ping": self._ping,
            "alive": self._alive,
        }

    @property
    def names(self) -> list[str]:
        return sorted(self._commands)

    async def dispatch(self, handle: ConnectionHandle, message: InboundMessage) -> bool:
        parsed = parse_command(message.body, self.config.prefix)
        if parsed is None:
            return False
        name, args = parsed
        command = self._commands.get(name)
        if command is None:
            logger.debug("unknown command", command=name, chat=message.chat_jid)
            return False
        logger.info("running command", command=name, chat=message.chat_jid)
        await command(handle, message, args)
        return True

    async def _ping(
        self, handle: ConnectionHandle, message: InboundMessage, _args: list[str]
    ) -> None:
        await handle.send_text(message.chat_jid, "🏓 Pong!")

    async def _alive(
        self, handle: ConnectionHandle, message: InboundMessage, _args: list[str]
    ) -> None:
        cfg = self.config
        text = (
            f"✅ *{cfg.bot_name} v{cfg.bot_version}*\n\n"
            f"> Running 24/7\n"
            f"> Prefix: {cfg.prefix}\n"
            f"> Owner: {cfg.owner_number}"
        )
        await handle.send_text(message.chat_jid, text)
