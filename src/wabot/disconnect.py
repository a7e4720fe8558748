"""
Why a connection closed, and what that means for recovery.

Status codes follow Baileys' `DisconnectReason` so logs line up with what the
session manager (a Baileys app) reports for the same session.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum

from pyaileys.wabinary.types import BinaryNode


class DisconnectReason(IntEnum):
    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    TIMED_OUT = 408
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503


class DisconnectKind(Enum):
    LOGGED_OUT = "logged-out"
    RESTART_REQUIRED = "restart-required"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class DisconnectCause:
    status_code: int | None = None
    reason: str = "unknown"
    error: BaseException | None = None

    @classmethod
    def from_exception(cls, error: BaseException) -> DisconnectCause:
        code = getattr(error, "status_code", None)
        return cls(
            status_code=code if isinstance(code, int) else None,
            reason=str(error) or type(error).__name__,
            error=error,
        )


def classify(cause: DisconnectCause) -> DisconnectKind:
    if cause.status_code == DisconnectReason.LOGGED_OUT:
        return DisconnectKind.LOGGED_OUT
    if cause.status_code == DisconnectReason.RESTART_REQUIRED:
        return DisconnectKind.RESTART_REQUIRED
    return DisconnectKind.OTHER


def _first_child(node: BinaryNode) -> BinaryNode | None:
    if isinstance(node.content, list):
        for c in node.content:
            if isinstance(c, BinaryNode):
                return c
    return None


def cause_from_stream_error(node: BinaryNode) -> DisconnectCause:
    """
    Map a `<stream:error>` stanza to a cause.

    An explicit `code` attr wins; a `<conflict type="device_removed">` child
    means the device was unlinked; any other conflict means another client
    took over the session.
    """

    child = _first_child(node)
    reason = child.tag if child is not None else "unknown"

    code_raw = node.attrs.get("code", "")
    if code_raw.isdigit():
        code = int(code_raw)
    elif child is not None and child.tag == "conflict":
        if child.attrs.get("type") == "device_removed":
            code = int(DisconnectReason.LOGGED_OUT)
        else:
            code = int(DisconnectReason.CONNECTION_REPLACED)
    else:
        code = int(DisconnectReason.BAD_SESSION)

    if code == DisconnectReason.RESTART_REQUIRED:
        reason = "restart required"
    return DisconnectCause(status_code=code, reason=reason)


def cause_from_failure(node: BinaryNode) -> DisconnectCause:
    """Map a `<failure reason="...">` stanza (sent instead of `<success>` at login)."""

    raw = node.attrs.get("reason", "")
    code = int(raw) if raw.isdigit() else int(DisconnectReason.BAD_SESSION)
    return DisconnectCause(status_code=code, reason="connection failure")
