from __future__ import annotations

import argparse
import asyncio
import contextlib
import signal
import sys
from dataclasses import replace
from pathlib import Path

import structlog
from dotenv import load_dotenv

from . import __version__
from .config import BotConfig
from .exceptions import ConfigError, CorruptStateError
from .log import configure_logging
from .supervisor import Supervisor
from .util.asyncio import install_exception_handler

logger = structlog.get_logger("wabot")


async def _run(config: BotConfig) -> int:
    loop = asyncio.get_running_loop()
    install_exception_handler(loop)

    supervisor = Supervisor(config)
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops.
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, supervisor.stop)

    try:
        await supervisor.run()
    except CorruptStateError as e:
        logger.error("cannot continue with corrupt credentials", error=str(e), path=e.path)
        return 2
    return 0


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(prog="wabot", description="Always-on WhatsApp agent.")
    ap.add_argument("--env-file", default=".env", help="dotenv file to load (default: .env)")
    ap.add_argument("--session-root", help="override SESSION_ROOT")
    ap.add_argument("--log-level", help="override LOG_LEVEL")
    ap.add_argument("--version", action="version", version=f"wabot {__version__}")
    args = ap.parse_args(argv)

    env_file = Path(args.env_file).expanduser()
    if env_file.is_file():
        load_dotenv(env_file)

    try:
        config = BotConfig.from_env()
    except ConfigError as e:
        configure_logging()
        logger.error("invalid configuration", error=str(e))
        return 1

    overrides: dict[str, object] = {}
    if args.session_root:
        overrides["session_root"] = Path(args.session_root).expanduser()
    if args.log_level:
        overrides["log_level"] = args.log_level
    if overrides:
        config = replace(config, **overrides)  # type: ignore[arg-type]

    configure_logging(config.log_level, json=config.log_json)
    return asyncio.run(_run(config))


if __name__ == "__main__":
    sys.exit(main())
