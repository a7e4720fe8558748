from __future__ import annotations

from types import SimpleNamespace

from pyaileys.proto import WAProto_pb2 as proto

from wabot.messages import (
    InboundMessage,
    chat_type_of,
    extract_body,
    from_decrypted_event,
    is_from_me,
)


def test_extract_body_variants() -> None:
    assert extract_body(proto.Message(conversation="hello")) == "hello"

    ext = proto.Message()
    ext.extendedTextMessage.text = ".ping"
    assert extract_body(ext) == ".ping"

    img = proto.Message()
    img.imageMessage.caption = "look"
    assert extract_body(img) == "look"

    vid = proto.Message()
    vid.videoMessage.caption = "watch"
    assert extract_body(vid) == "watch"


def test_extract_body_without_text() -> None:
    img = proto.Message()
    img.imageMessage.mimetype = "image/jpeg"
    assert extract_body(img) == ""

    sticker = proto.Message()
    sticker.stickerMessage.mimetype = "image/webp"
    assert extract_body(sticker) == ""

    assert extract_body(None) == ""


def test_extract_body_duck_typed() -> None:
    msg = SimpleNamespace(
        conversation=None, extendedTextMessage=SimpleNamespace(text="duck")
    )
    assert extract_body(msg) == "duck"


def test_chat_type_of() -> None:
    assert chat_type_of("15550001111@s.whatsapp.net") == "dm"
    assert chat_type_of("12345@lid") == "dm"
    assert chat_type_of("120363000000000000@g.us") == "group"
    assert chat_type_of("120363000000000000@newsletter") == "channel"


def test_sender_number() -> None:
    def msg(sender: str) -> InboundMessage:
        return InboundMessage(id="1", chat_jid=sender, sender_jid=sender, chat_type="dm")

    assert msg("15550001111@s.whatsapp.net").sender_number == "15550001111"
    assert msg("15550001111:7@s.whatsapp.net").sender_number == "15550001111"
    assert msg("status@broadcast").sender_number == "Unknown"
    assert msg("").sender_number == "Unknown"


def test_from_decrypted_event_group() -> None:
    ev = {
        "id": "ABC",
        "chat_jid": "120363000000000000@g.us",
        "sender_jid": "15550002222@s.whatsapp.net",
        "timestamp_s": "1700000000",
        "message": proto.Message(conversation=".alive"),
    }
    m = from_decrypted_event(ev, push_name="Alice")
    assert m.id == "ABC"
    assert m.is_group
    assert m.body == ".alive"
    assert m.sender_number == "15550002222"
    assert m.timestamp_s == 1700000000
    assert m.push_name == "Alice"


def test_from_decrypted_event_dm_falls_back_to_chat() -> None:
    ev = {"id": "X", "chat_jid": "15550002222@s.whatsapp.net", "message": None}
    m = from_decrypted_event(ev)
    assert m.sender_jid == m.chat_jid
    assert m.body == ""
    assert m.timestamp_s is None


def test_is_from_me() -> None:
    me = ("15550001111:3@s.whatsapp.net", "99999:3@lid")
    assert is_from_me("15550001111@s.whatsapp.net", me)
    assert is_from_me("15550001111:5@s.whatsapp.net", me)
    assert is_from_me("99999@lid", me)
    assert not is_from_me("15550002222@s.whatsapp.net", me)
    assert not is_from_me("", me)
    assert not is_from_me("15550001111@s.whatsapp.net", (None, None))
