"""Thread-backed repeating timer with cooperative cancellation."""

from __future__ import annotations

import threading
from collections.abc import Callable

from src.config.logging_config import get_logger

logger = get_logger(__name__)


class RepeatingTimer:
    """Invoke ``callback`` every ``interval_seconds`` on a daemon thread.

    The first call happens one full interval after ``start()``. ``cancel()``
    takes effect before the next call; a callback already running is allowed
    to finish.
    """

    def __init__(
        self,
        interval_seconds: float,
        callback: Callable[[], None],
        name: str,
    ) -> None:
        if interval_seconds <= 0:
            msg = "interval_seconds must be positive"
            raise ValueError(msg)

        self.interval_seconds = interval_seconds
        self.name = name
        self._callback = callback
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def start(self) -> None:
        self._thread.start()

    def cancel(self) -> None:
        self._stop_event.set()

    def is_cancelled(self) -> bool:
        return self._stop_event.is_set()

    def join(self, timeout: float | None = None) -> None:
        """Wait for the timer thread to exit (after ``cancel``).

        A no-op when called from the timer's own callback.
        """
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join(timeout)

    def _run(self) -> None:
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("repeating_timer_callback_failed", timer=self.name)


def create_repeating_timer(
    interval_seconds: float, callback: Callable[[], None], name: str
) -> RepeatingTimer:
    """Default timer factory used by the auto-post scheduler."""

    return RepeatingTimer(interval_seconds, callback, name)


__all__ = ["RepeatingTimer", "create_repeating_timer"]
