from __future__ import annotations

import structlog

from .commands import CommandDispatcher
from .config import BotConfig
from .connection import ConnectionHandle
from .messages import InboundMessage

logger = structlog.get_logger(__name__)


class InboundHandler:
    """
    Side effects for one inbound message: log it, optionally mark it read and
    show a typing indicator, then hand prefixed text to the command dispatcher.
    """

    def __init__(self, config: BotConfig, dispatcher: CommandDispatcher | None = None) -> None:
        self.config = config
        self.dispatcher = dispatcher or CommandDispatcher(config)

    def is_owner(self, message: InboundMessage) -> bool:
        return bool(self.config.owner_number) and message.sender_number == self.config.owner_number

    async def handle(self, handle: ConnectionHandle, message: InboundMessage) -> None:
        cfg = self.config
        is_owner = self.is_owner(message)
        logger.info(
            "message received",
            chat_type=message.chat_type,
            name=message.push_name or "Unknown",
            number=message.sender_number,
            body=message.body or "[media/no text]",
            jid=message.chat_jid,
            owner=is_owner,
        )

        if cfg.auto_read:
            await handle.mark_read([message])

        if not message.body.startswith(cfg.prefix):
            return
        if cfg.owner_only and not is_owner:
            logger.debug("ignoring command from non-owner", number=message.sender_number)
            return
        if cfg.reply_in_dm_only and message.chat_type != "dm":
            logger.debug("ignoring command outside a DM", jid=message.chat_jid)
            return

        if cfg.auto_typing:
            await handle.set_presence("composing", message.chat_jid)
        await self.dispatcher.dispatch(handle, message)
