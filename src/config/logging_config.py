"""Centralized logging configuration with structlog.

Structured logging for the chat bot: JSON output for production deployments,
colored console output while developing. Every module obtains its logger via
``get_logger(__name__)`` and logs snake_case event names with keyword context.

Auto-post timers run on their own threads (named ``autopost:<chat_id>``), so
every entry carries the emitting thread's name.
"""

import logging
import sys
from typing import Any, Final

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder
from structlog.types import EventDict, Processor

APP_NAME: Final[str] = "chat_rank_bot"

_QUIET_LOGGERS: Final[tuple[str, ...]] = ("prometheus_client", "urllib3")


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Tag every entry with the application name."""

    event_dict["app"] = APP_NAME
    return event_dict


def _build_processors(json_logs: bool) -> list[Processor]:
    processors: list[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        CallsiteParameterAdder({CallsiteParameter.THREAD_NAME}),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    if json_logs:
        processors += [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def setup_logging(log_level: str = "INFO", json_logs: bool = False) -> None:
    """Configure structured logging with structlog.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Emit one JSON object per line instead of console output

    Example:
        >>> setup_logging(log_level="INFO", json_logs=True)  # Production
        >>> setup_logging(log_level="DEBUG")  # Development
    """
    numeric_level = getattr(logging, log_level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=numeric_level,
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=_build_processors(json_logs),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("message_recorded", chat_id=-100123, message_count=42)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind context for all subsequent log entries of the current context."""

    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


__all__ = [
    "APP_NAME",
    "bind_context",
    "clear_context",
    "get_logger",
    "setup_logging",
    "unbind_context",
]
