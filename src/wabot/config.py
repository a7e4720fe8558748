"""
Bot configuration.

Values come from the process environment (optionally seeded from a `.env`
file by the CLI). Intervals are expressed in seconds.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from .constants import (
    DEFAULT_SESSION_ROOT,
    RESTART_REQUIRED_DELAY_S,
    SESSION_AUTH_PATH,
    USER_SERVER,
)
from .exceptions import ConfigError

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off", ""})


def _parse_bool(name: str, raw: str) -> bool:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")


def _parse_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True, kw_only=True)
class BotConfig:
    """
    Attributes:
        session_manager_url: Base URL of the remote session manager.
        session_id: Session to fetch from the manager; also names the local
            credential directory.
        session_root: Parent directory of all local session directories.
        bot_name: Display name used in replies and the startup notification.
        bot_version: Version string used in replies and the startup notification.
        prefix: Command prefix.
        owner_number: Owner phone number (digits only). Empty disables the
            startup notification and makes `owner_only` reject everyone.
        auto_read: Send read receipts for every inbound message.
        auto_typing: Send a typing indicator before handling a command.
        reply_in_dm_only: Ignore commands outside 1:1 chats.
        owner_only: Only accept commands from the owner.
        reconnect_interval_s: Delay before reopening after a disconnect.
        restart_required_delay_s: Delay before reopening when the server asks
            for a restart.
        keep_alive_interval_s: Interval of application-level pings.
        session_retry_interval_s: Delay between session manager attempts.
        connect_timeout_s: Connection and HTTP timeout.
        log_level: Minimum log level name.
        log_json: Render logs as JSON lines instead of the console format.
    """

    session_manager_url: str
    session_id: str
    session_root: Path = Path(DEFAULT_SESSION_ROOT)
    bot_name: str = "WA-Bot"
    bot_version: str = "1.0.0"
    prefix: str = "."
    owner_number: str = ""
    auto_read: bool = True
    auto_typing: bool = True
    reply_in_dm_only: bool = False
    owner_only: bool = False
    reconnect_interval_s: float = 5.0
    restart_required_delay_s: float = RESTART_REQUIRED_DELAY_S
    keep_alive_interval_s: float = 30.0
    session_retry_interval_s: float = 10.0
    connect_timeout_s: float = 60.0
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self) -> None:
        if not self.session_manager_url:
            raise ConfigError("session_manager_url is required")
        if not self.session_id:
            raise ConfigError("session_id is required")
        if "/" in self.session_id or "\\" in self.session_id or self.session_id in (".", ".."):
            raise ConfigError(f"session_id must be a plain name, got {self.session_id!r}")
        if not self.prefix:
            raise ConfigError("prefix must not be empty")
        if self.reconnect_interval_s < 0:
            raise ConfigError("reconnect_interval_s must be non-negative")
        if self.restart_required_delay_s < 0:
            raise ConfigError("restart_required_delay_s must be non-negative")
        if self.restart_required_delay_s >= self.reconnect_interval_s:
            raise ConfigError(
                "restart_required_delay_s must be shorter than reconnect_interval_s, got "
                f"{self.restart_required_delay_s} >= {self.reconnect_interval_s}"
            )
        if self.session_retry_interval_s < 0:
            raise ConfigError("session_retry_interval_s must be non-negative")
        if self.keep_alive_interval_s <= 0:
            raise ConfigError("keep_alive_interval_s must be positive")
        if self.connect_timeout_s <= 0:
            raise ConfigError("connect_timeout_s must be positive")

    @property
    def session_dir(self) -> Path:
        return self.session_root / self.session_id

    @property
    def owner_jid(self) -> str | None:
        if not self.owner_number:
            return None
        return f"{self.owner_number}@{USER_SERVER}"

    @property
    def session_url(self) -> str:
        base = self.session_manager_url.rstrip("/")
        return base + SESSION_AUTH_PATH.format(session_id=self.session_id)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BotConfig:
        env = os.environ if environ is None else environ

        def get(name: str) -> str | None:
            v = env.get(name)
            return v.strip() if v is not None else None

        kwargs: dict[str, object] = {
            "session_manager_url": get("SESSION_MANAGER_URL") or "",
            "session_id": get("SESSION_ID") or "",
        }

        strings = {
            "BOT_NAME": "bot_name",
            "BOT_VERSION": "bot_version",
            "PREFIX": "prefix",
            "OWNER_NUMBER": "owner_number",
            "LOG_LEVEL": "log_level",
        }
        for var, attr in strings.items():
            v = get(var)
            if v:
                kwargs[attr] = v

        root = get("SESSION_ROOT")
        if root:
            kwargs["session_root"] = Path(root).expanduser()

        bools = {
            "AUTO_READ": "auto_read",
            "AUTO_TYPING": "auto_typing",
            "REPLY_IN_DM_ONLY": "reply_in_dm_only",
            "OWNER_ONLY": "owner_only",
            "LOG_JSON": "log_json",
        }
        for var, attr in bools.items():
            v = get(var)
            if v is not None:
                kwargs[attr] = _parse_bool(var, v)

        floats = {
            "RECONNECT_INTERVAL_S": "reconnect_interval_s",
            "RESTART_REQUIRED_DELAY_S": "restart_required_delay_s",
            "KEEP_ALIVE_INTERVAL_S": "keep_alive_interval_s",
            "SESSION_RETRY_INTERVAL_S": "session_retry_interval_s",
            "CONNECT_TIMEOUT_S": "connect_timeout_s",
        }
        for var, attr in floats.items():
            v = get(var)
            if v:
                kwargs[attr] = _parse_float(var, v)

        return cls(**kwargs)  # type: ignore[arg-type]
