"""Domain constants for per-chat joke auto-posting."""

from typing import Final

DEFAULT_AUTOPOST_ENABLED: Final[bool] = True
"""Auto-posting is on for a chat until an admin turns it off."""

DEFAULT_AUTOPOST_INTERVAL_MINUTES: Final[int] = 30

MIN_AUTOPOST_INTERVAL_MINUTES: Final[int] = 1
"""Smaller intervals are rejected, never clamped."""

SECONDS_PER_MINUTE: Final[int] = 60

SHUTDOWN_TICK_TIMEOUT_SECONDS: Final[float] = 5.0
"""How long shutdown waits for each in-flight tick before detaching listeners."""

__all__ = [
    "DEFAULT_AUTOPOST_ENABLED",
    "DEFAULT_AUTOPOST_INTERVAL_MINUTES",
    "MIN_AUTOPOST_INTERVAL_MINUTES",
    "SECONDS_PER_MINUTE",
    "SHUTDOWN_TICK_TIMEOUT_SECONDS",
]
