"""Per-chat joke auto-posting scheduler.

Owns the ``chat_id -> timer`` registry and keeps at most one live timer per
chat. Each tick re-reads the chat's settings: a disabled chat cancels its own
timer without posting, an enabled chat gets a joke. A running timer keeps the
interval it was started with; ``reschedule`` applies a new interval.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from functools import partial
from itertools import count
from time import perf_counter

from src.adapters.repeating_timer import create_repeating_timer
from src.config.logging_config import get_logger
from src.domain.autopost_constants import (
    MIN_AUTOPOST_INTERVAL_MINUTES,
    SECONDS_PER_MINUTE,
)
from src.domain.events import AutoPostStarted, AutoPostStopped, DomainEvent
from src.domain.exceptions import ValidationError
from src.domain.protocols import (
    ChatSettingsStoreProtocol,
    ErrorReporterProtocol,
    JokePoster,
    TimerFactory,
    TimerHandle,
)
from src.observability.metrics import (
    AUTOPOST_TICK_DURATION_SECONDS,
    AUTOPOST_TIMERS_TOTAL,
)
from src.services.event_channel import EventChannel

logger = get_logger(__name__)


@dataclass(slots=True)
class _ChatTimer:
    handle: TimerHandle
    interval_minutes: int
    generation: int


class AutoPostScheduler:
    """Start, stop and drive per-chat auto-post timers."""

    def __init__(
        self,
        settings_store: ChatSettingsStoreProtocol,
        post_joke: JokePoster,
        error_reporter: ErrorReporterProtocol,
        *,
        events: EventChannel | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self._settings_store = settings_store
        self._post_joke = post_joke
        self._error_reporter = error_reporter
        self._events = events
        self._timer_factory = timer_factory or create_repeating_timer
        self._timers: dict[int, _ChatTimer] = {}
        self._threads: dict[int, int] = {}
        self._generations = count(1)
        self._lock = threading.RLock()

    # Introspection -----------------------------------------------------

    def is_active(self, chat_id: int) -> bool:
        with self._lock:
            return chat_id in self._timers

    def active_chats(self) -> list[int]:
        with self._lock:
            return sorted(self._timers)

    def interval_for(self, chat_id: int) -> int | None:
        """Interval the chat's running timer was started with."""

        with self._lock:
            entry = self._timers.get(chat_id)
            return entry.interval_minutes if entry else None

    def thread_for(self, chat_id: int) -> int | None:
        with self._lock:
            return self._threads.get(chat_id)

    # Lifecycle ---------------------------------------------------------

    def start(
        self, chat_id: int, interval_minutes: int, *, thread_id: int | None = None
    ) -> bool:
        """Start auto-posting for a chat.

        Args:
            chat_id: Chat to post into
            interval_minutes: Minutes between posts, fixed for the timer's life
            thread_id: Topic thread to post into; kept while the timer runs

        Returns:
            True if a timer was created, False if the chat already had one

        Raises:
            ValidationError: If ``interval_minutes`` is below the minimum
        """
        if interval_minutes < MIN_AUTOPOST_INTERVAL_MINUTES:
            raise ValidationError(
                f"interval_minutes must be >= {MIN_AUTOPOST_INTERVAL_MINUTES}, "
                f"got {interval_minutes}"
            )

        with self._lock:
            if thread_id is not None:
                self._threads[chat_id] = thread_id
            existing = self._timers.get(chat_id)
            if existing is not None:
                logger.info(
                    "autopost_already_active",
                    chat_id=chat_id,
                    interval_minutes=existing.interval_minutes,
                    requested_interval_minutes=interval_minutes,
                )
                return False

            generation = next(self._generations)
            handle = self._timer_factory(
                interval_minutes * SECONDS_PER_MINUTE,
                partial(self._tick, chat_id, generation),
                f"autopost:{chat_id}",
            )
            handle.start()
            self._timers[chat_id] = _ChatTimer(
                handle=handle,
                interval_minutes=interval_minutes,
                generation=generation,
            )

        AUTOPOST_TIMERS_TOTAL.labels(action="started").inc()
        logger.info(
            "autopost_started", chat_id=chat_id, interval_minutes=interval_minutes
        )
        self._publish(AutoPostStarted(chat_id=chat_id, interval_minutes=interval_minutes))
        return True

    def stop(self, chat_id: int) -> bool:
        """Cancel a chat's timer and forget its thread target.

        Returns:
            True if a timer was cancelled, False if none was active
        """
        with self._lock:
            self._threads.pop(chat_id, None)
            entry = self._timers.pop(chat_id, None)

        if entry is None:
            logger.debug("autopost_stop_noop", chat_id=chat_id)
            return False

        self._cancelled(chat_id, entry)
        return True

    def ensure_started(self, chat_id: int, thread_id: int | None = None) -> bool:
        """Start auto-posting for an active chat if its settings allow it.

        Called whenever activity is observed in a chat. ``thread_id`` becomes
        the topic to post into once the chat has a timer.

        Returns:
            True if this call created the chat's timer
        """
        with self._lock:
            if chat_id in self._timers:
                if thread_id is not None:
                    self._threads[chat_id] = thread_id
                return False

        settings = self._settings_store.get_or_create_chat_settings(chat_id)
        if not settings.enabled:
            with self._lock:
                if chat_id not in self._timers:
                    self._threads.pop(chat_id, None)
            logger.debug("autopost_disabled_for_chat", chat_id=chat_id)
            return False

        # start() re-checks the registry under the lock
        return self.start(chat_id, settings.interval_minutes, thread_id=thread_id)

    def reschedule(self, chat_id: int) -> bool:
        """Restart a chat's timer so current settings take effect.

        The thread target survives the restart, including one recorded by a
        message that arrives while the restart is in progress.

        Returns:
            True if a new timer is running afterwards
        """
        with self._lock:
            entry = self._timers.pop(chat_id, None)
        if entry is not None:
            self._cancelled(chat_id, entry)

        self.ensure_started(chat_id)
        return self.is_active(chat_id)

    def stop_all(self, *, timeout: float | None = None) -> int:
        """Cancel every timer and wait for in-flight ticks to finish.

        Args:
            timeout: Seconds to wait for each timer's tick; None waits forever

        Returns:
            Number of timers cancelled
        """
        with self._lock:
            entries = list(self._timers.items())
            self._timers.clear()
            self._threads.clear()

        for chat_id, entry in entries:
            self._cancelled(chat_id, entry)
        for _, entry in entries:
            entry.handle.join(timeout)

        logger.info("autopost_all_stopped", stopped=len(entries))
        return len(entries)

    # Internal helpers -------------------------------------------------

    def _tick(self, chat_id: int, generation: int) -> None:
        with self._lock:
            entry = self._timers.get(chat_id)
            if entry is None or entry.generation != generation:
                # Timer was stopped or replaced after this tick was scheduled
                return
            thread_id = self._threads.get(chat_id)

        tick_start = perf_counter()
        try:
            settings = self._settings_store.get_or_create_chat_settings(chat_id)
            if not settings.enabled:
                logger.info("autopost_disabled_observed", chat_id=chat_id)
                self._stop_generation(chat_id, generation)
                return

            self._post_joke(chat_id, thread_id)
        except Exception as exc:  # noqa: BLE001
            self._error_reporter.report(
                exc,
                {
                    "operation": "autopost_tick",
                    "chat_id": chat_id,
                    "thread_id": thread_id,
                },
            )
        finally:
            AUTOPOST_TICK_DURATION_SECONDS.observe(perf_counter() - tick_start)

    def _stop_generation(self, chat_id: int, generation: int) -> None:
        with self._lock:
            entry = self._timers.get(chat_id)
            if entry is None or entry.generation != generation:
                return
            del self._timers[chat_id]
            self._threads.pop(chat_id, None)

        self._cancelled(chat_id, entry)

    def _cancelled(self, chat_id: int, entry: _ChatTimer) -> None:
        """Cancel a timer already removed from the registry and announce it."""

        entry.handle.cancel()
        AUTOPOST_TIMERS_TOTAL.labels(action="stopped").inc()
        logger.info("autopost_stopped", chat_id=chat_id)
        self._publish(AutoPostStopped(chat_id=chat_id))

    def _publish(self, event: DomainEvent) -> None:
        if self._events is not None:
            self._events.publish(event)


__all__ = ["AutoPostScheduler"]
