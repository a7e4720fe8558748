from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

from pyaileys.wabinary.jid import jid_decode, jid_normalized_user

from .constants import GROUP_SERVER, LID_SERVER, NEWSLETTER_SERVER, USER_SERVER

ChatType = Literal["dm", "group", "channel"]


@dataclass(frozen=True, slots=True)
class InboundMessage:
    """A decrypted inbound message reduced to what the bot acts on."""

    id: str
    chat_jid: str
    sender_jid: str
    chat_type: ChatType
    body: str = ""
    push_name: str | None = None
    timestamp_s: int | None = None
    raw: Any = None

    @property
    def is_group(self) -> bool:
        return self.chat_type == "group"

    @property
    def is_channel(self) -> bool:
        return self.chat_type == "channel"

    @property
    def sender_number(self) -> str:
        dec = jid_decode(self.sender_jid)
        if not dec or dec.server not in (USER_SERVER, LID_SERVER, "c.us"):
            return "Unknown"
        return dec.user or "Unknown"


def chat_type_of(chat_jid: str) -> ChatType:
    if chat_jid.endswith("@" + GROUP_SERVER):
        return "group"
    if chat_jid.endswith("@" + NEWSLETTER_SERVER):
        return "channel"
    return "dm"


def _text_of(msg: Any, *path: str) -> str:
    cur = msg
    for attr in path:
        has_field = getattr(cur, "HasField", None)
        if callable(has_field) and attr != path[-1] and not has_field(attr):
            return ""
        cur = getattr(cur, attr, None)
        if cur is None:
            return ""
    return cur if isinstance(cur, str) else ""


def extract_body(msg: Any) -> str:
    """
    Text a user typed: plain text, extended text, or an image/video caption.

    Returns "" for everything else, so media without a caption never matches a
    command prefix.
    """

    if msg is None:
        return ""
    return (
        _text_of(msg, "conversation")
        or _text_of(msg, "extendedTextMessage", "text")
        or _text_of(msg, "imageMessage", "caption")
        or _text_of(msg, "videoMessage", "caption")
    )


def from_decrypted_event(ev: dict[str, Any], *, push_name: str | None = None) -> InboundMessage:
    """
    Build an InboundMessage from pyaileys' `message.decrypted` event dict.

    The event carries no display name; callers pass the sender's `notify`
    name from the client's contact store as `push_name`.

    `sender_jid` is the author; for 1:1 chats pyaileys reports the chat as the
    sender, so both fall back to one another.
    """

    chat_jid = str(ev.get("chat_jid") or "")
    sender_jid = str(ev.get("sender_jid") or chat_jid)
    raw = ev.get("message")
    ts = ev.get("timestamp_s")
    return InboundMessage(
        id=str(ev.get("id") or ""),
        chat_jid=chat_jid,
        sender_jid=sender_jid,
        chat_type=chat_type_of(chat_jid),
        body=extract_body(raw),
        push_name=push_name,
        timestamp_s=int(ts) if ts is not None else None,
        raw=raw,
    )


def is_from_me(sender_jid: str, me_ids: tuple[str | None, ...]) -> bool:
    sender = jid_normalized_user(sender_jid)
    if not sender:
        return False
    return any(sender == jid_normalized_user(j) for j in me_ids if j)
