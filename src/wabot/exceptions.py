from __future__ import annotations


class WabotError(Exception):
    """Base error for wabot."""


class ConfigError(WabotError):
    """Invalid or missing configuration value."""


class RemoteError(WabotError):
    """An HTTP request to a service outside WhatsApp failed."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class SessionFetchError(RemoteError):
    """
    The session manager could not supply a usable file set.

    Covers network failures, non-2xx responses and malformed bodies. The
    session provider treats this as transient and retries.
    """


class CorruptStateError(WabotError):
    """Credential files exist but cannot be parsed into an auth state."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path
