from __future__ import annotations

import pytest
from pyaileys.wabinary.types import BinaryNode

from wabot.disconnect import (
    DisconnectCause,
    DisconnectKind,
    DisconnectReason,
    cause_from_failure,
    cause_from_stream_error,
    classify,
)


@pytest.mark.parametrize(
    ("code", "kind"),
    [
        (401, DisconnectKind.LOGGED_OUT),
        (515, DisconnectKind.RESTART_REQUIRED),
        (428, DisconnectKind.OTHER),
        (408, DisconnectKind.OTHER),
        (440, DisconnectKind.OTHER),
        (500, DisconnectKind.OTHER),
        (None, DisconnectKind.OTHER),
    ],
)
def test_classify(code: int | None, kind: DisconnectKind) -> None:
    assert classify(DisconnectCause(status_code=code)) is kind


def test_cause_from_exception_reads_status_code() -> None:
    class Boom(Exception):
        status_code = 401

    cause = DisconnectCause.from_exception(Boom("gone"))
    assert cause.status_code == 401
    assert cause.reason == "gone"

    plain = DisconnectCause.from_exception(TimeoutError())
    assert plain.status_code is None
    assert plain.reason == "TimeoutError"


def test_stream_error_code_attr() -> None:
    node = BinaryNode(tag="stream:error", attrs={"code": "515"}, content=None)
    cause = cause_from_stream_error(node)
    assert cause.status_code == DisconnectReason.RESTART_REQUIRED
    assert cause.reason == "restart required"


def test_stream_error_device_removed_is_logged_out() -> None:
    node = BinaryNode(
        tag="stream:error",
        attrs={},
        content=[BinaryNode(tag="conflict", attrs={"type": "device_removed"}, content=None)],
    )
    assert classify(cause_from_stream_error(node)) is DisconnectKind.LOGGED_OUT


def test_stream_error_conflict_is_replaced() -> None:
    node = BinaryNode(
        tag="stream:error",
        attrs={},
        content=[BinaryNode(tag="conflict", attrs={"type": "replaced"}, content=None)],
    )
    cause = cause_from_stream_error(node)
    assert cause.status_code == DisconnectReason.CONNECTION_REPLACED
    assert cause.reason == "conflict"


def test_stream_error_unknown_is_bad_session() -> None:
    node = BinaryNode(tag="stream:error", attrs={}, content=None)
    assert cause_from_stream_error(node).status_code == DisconnectReason.BAD_SESSION


def test_failure_reason() -> None:
    node = BinaryNode(tag="failure", attrs={"reason": "401"}, content=None)
    assert classify(cause_from_failure(node)) is DisconnectKind.LOGGED_OUT

    odd = BinaryNode(tag="failure", attrs={}, content=None)
    assert cause_from_failure(odd).status_code == DisconnectReason.BAD_SESSION
