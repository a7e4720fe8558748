"""
wabot: an always-on WhatsApp agent built on pyaileys.

The bot keeps one authenticated connection alive, pulls its session from a
remote session manager when none exists locally, and answers a couple of
prefix commands.
"""

from __future__ import annotations

from .config import BotConfig
from .exceptions import WabotError
from .supervisor import Supervisor

__all__ = [
    "BotConfig",
    "Supervisor",
    "WabotError",
]

__version__ = "0.1.0"
