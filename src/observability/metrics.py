"""Prometheus metrics for the chat bot.

Counters are module-level so every component increments the same series.
The HTTP exporter is started explicitly by the bot manager, never on import.
"""

from __future__ import annotations

import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from src.config.logging_config import get_logger

logger = get_logger(__name__)

MESSAGES_RECORDED_TOTAL: Final[Counter] = Counter(
    "chatbot_messages_recorded_total",
    "Total number of inbound messages counted",
)

RANKS_EARNED_TOTAL: Final[Counter] = Counter(
    "chatbot_ranks_earned_total",
    "Total number of rank transitions",
    labelnames=("category",),
)

JOKES_POSTED_TOTAL: Final[Counter] = Counter(
    "chatbot_jokes_posted_total",
    "Total number of jokes posted",
    labelnames=("trigger",),
)

AUTOPOST_TIMERS_TOTAL: Final[Counter] = Counter(
    "chatbot_autopost_timers_total",
    "Auto-post timer lifecycle transitions",
    labelnames=("action",),
)

AUTOPOST_TICK_DURATION_SECONDS: Final[Histogram] = Histogram(
    "chatbot_autopost_tick_duration_seconds",
    "Duration of auto-post timer ticks in seconds",
)

ERRORS_REPORTED_TOTAL: Final[Counter] = Counter(
    "chatbot_errors_reported_total",
    "Errors contained and reported by the error reporter",
    labelnames=("category",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False


def ensure_metrics_exporter(port: int) -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error(
                "metrics_exporter_start_failed",
                port=port,
                error=str(exc),
            )
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "AUTOPOST_TICK_DURATION_SECONDS",
    "AUTOPOST_TIMERS_TOTAL",
    "ERRORS_REPORTED_TOTAL",
    "JOKES_POSTED_TOTAL",
    "MESSAGES_RECORDED_TOTAL",
    "RANKS_EARNED_TOTAL",
    "ensure_metrics_exporter",
]
