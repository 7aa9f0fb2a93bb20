"""Core application utilities."""

from .clock import Clock, utc_now
from .config import Settings, get_settings
from .database import (
    async_session_factory,
    close_db,
    engine,
    get_session,
)
from .logging import configure_logging

__all__ = [
    # Config
    "Settings",
    "get_settings",
    "configure_logging",
    # Clock
    "Clock",
    "utc_now",
    # Database
    "engine",
    "async_session_factory",
    "get_session",
    "close_db",
]
