"""Centralized reporting for errors that are contained instead of raised.

Timer ticks and event listeners must never crash the process; they hand their
failures to the ``ErrorReporter``, which classifies, logs, counts and
re-publishes them as ``ErrorOccurred`` events.
"""

from __future__ import annotations

import sqlite3
import threading
from collections import Counter as TallyCounter
from dataclasses import dataclass
from enum import Enum
from typing import Any

from src.config.logging_config import get_logger
from src.domain.events import ErrorOccurred
from src.domain.exceptions import (
    ChatBotError,
    DeliveryError,
    NoJokesAvailableError,
    RepositoryError,
    RetryableError,
    ValidationError,
)
from src.observability.metrics import ERRORS_REPORTED_TOTAL
from src.services.event_channel import EventChannel

logger = get_logger(__name__)


class ErrorCategory(str, Enum):
    """Where an error came from."""

    DATABASE = "database"
    DELIVERY = "delivery"
    VALIDATION = "validation"
    BUSINESS_LOGIC = "business_logic"
    UNKNOWN = "unknown"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True, slots=True)
class ErrorReport:
    """Classification returned to the caller of ``report``."""

    category: ErrorCategory
    severity: ErrorSeverity
    should_retry: bool


def classify_error(error: BaseException) -> tuple[ErrorCategory, ErrorSeverity]:
    """Map an exception to a category and severity.

    Args:
        error: Exception to classify

    Returns:
        (category, severity) pair
    """
    if isinstance(error, ValidationError):
        return ErrorCategory.VALIDATION, ErrorSeverity.LOW
    if isinstance(error, RepositoryError | sqlite3.Error):
        return ErrorCategory.DATABASE, ErrorSeverity.HIGH
    if isinstance(error, DeliveryError):
        return ErrorCategory.DELIVERY, ErrorSeverity.MEDIUM
    if isinstance(error, NoJokesAvailableError):
        return ErrorCategory.BUSINESS_LOGIC, ErrorSeverity.LOW
    if isinstance(error, ChatBotError):
        return ErrorCategory.BUSINESS_LOGIC, ErrorSeverity.MEDIUM
    return ErrorCategory.UNKNOWN, ErrorSeverity.HIGH


class ErrorReporter:
    """Default ``ErrorReporterProtocol`` implementation."""

    def __init__(self, events: EventChannel | None = None) -> None:
        self._events = events
        self._counts: TallyCounter[str] = TallyCounter()
        self._lock = threading.Lock()

    def report(self, error: BaseException, context: dict[str, Any]) -> ErrorReport:
        """Classify, log, count and publish an error. Never raises."""

        category, severity = classify_error(error)
        with self._lock:
            self._counts[category.value] += 1

        log_method = logger.warning if severity is ErrorSeverity.LOW else logger.error
        log_method(
            "error_reported",
            category=category.value,
            severity=severity.value,
            error_type=type(error).__name__,
            error=str(error),
            context=context,
            exc_info=error,
        )
        ERRORS_REPORTED_TOTAL.labels(category=category.value).inc()

        if self._events is not None:
            self._events.publish(
                ErrorOccurred(
                    error=error,
                    category=category.value,
                    severity=severity.value,
                    context=dict(context),
                )
            )

        return ErrorReport(
            category=category,
            severity=severity,
            should_retry=isinstance(error, RetryableError | sqlite3.Error),
        )

    def stats(self) -> dict[str, int]:
        """Reported error counts per category."""

        with self._lock:
            return dict(self._counts)


__all__ = [
    "ErrorCategory",
    "ErrorReport",
    "ErrorReporter",
    "ErrorSeverity",
    "classify_error",
]
