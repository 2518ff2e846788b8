"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from pathlib import Path
from unittest.mock import Mock

import pytest

from src.adapters.repository_factory import create_repository
from src.adapters.sqlite_repository import SQLiteRepository
from src.config.settings import Settings
from src.domain.models import ChatUser, Rank
from src.services.error_reporter import ErrorReporter
from src.services.event_channel import EventChannel


@pytest.fixture
def settings(tmp_path_factory: pytest.TempPathFactory) -> Settings:
    """Settings pointing at a fresh temporary SQLite database."""

    base_settings = Settings()
    db_path = tmp_path_factory.mktemp("db") / "test.sqlite"
    return base_settings.model_copy(
        update={
            "db_path": str(db_path),
            "seed_default_ranks": True,
            "metrics_enabled": False,
            "rank_category": None,
            "autopost_default_interval_minutes": 30,
            "autopost_joke_category": None,
        }
    )


@pytest.fixture
def repo(settings: Settings) -> Generator[SQLiteRepository, None, None]:
    """Repository seeded with the default rank ladders."""

    repository = create_repository(settings)
    try:
        yield repository
    finally:
        db_path = Path(settings.db_path)
        if db_path.exists():
            try:
                db_path.unlink()
            except OSError:
                pass


@pytest.fixture
def empty_repo(tmp_path: Path) -> SQLiteRepository:
    """Repository with an empty rank catalog."""

    return SQLiteRepository(str(tmp_path / "empty.sqlite"))


@pytest.fixture
def events() -> EventChannel:
    return EventChannel()


@pytest.fixture
def error_reporter(events: EventChannel) -> ErrorReporter:
    return ErrorReporter(events)


@pytest.fixture
def mock_error_reporter() -> Mock:
    return Mock(spec=["report"])


@pytest.fixture
def sample_user() -> ChatUser:
    return ChatUser(user_id=42, username="neo", first_name="Thomas", last_name="Anderson")


@pytest.fixture
def three_tier_ranks() -> list[Rank]:
    """Ladder used by the rank scenarios: 0, 10 and 50 messages."""

    return [
        Rank(name="Rookie", category="agency", min_messages=0),
        Rank(name="Agent Trainee", category="agency", min_messages=10),
        Rank(name="Junior Agent", category="agency", min_messages=50),
    ]


class FakeTimer:
    """Timer double fired manually by tests."""

    def __init__(
        self, interval_seconds: float, callback: Callable[[], None], name: str
    ) -> None:
        self.interval_seconds = interval_seconds
        self.callback = callback
        self.name = name
        self.started = False
        self.fire_count = 0
        self._cancelled = False
        self._background: list[threading.Thread] = []

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self._cancelled = True

    def is_cancelled(self) -> bool:
        return self._cancelled

    def fire(self) -> None:
        """Run one tick the way a live timer would (skipped once cancelled)."""

        if self._cancelled:
            return
        self.fire_count += 1
        self.callback()

    def fire_in_background(self) -> threading.Thread:
        thread = threading.Thread(target=self.fire)
        self._background.append(thread)
        thread.start()
        return thread

    def join(self, timeout: float | None = None) -> None:
        for thread in self._background:
            if thread is not threading.current_thread():
                thread.join(timeout)


class FakeTimerFactory:
    """``TimerFactory`` recording every timer it builds."""

    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []
        self._lock = threading.Lock()

    def __call__(
        self, interval_seconds: float, callback: Callable[[], None], name: str
    ) -> FakeTimer:
        timer = FakeTimer(interval_seconds, callback, name)
        with self._lock:
            self.timers.append(timer)
        return timer

    def live(self) -> list[FakeTimer]:
        return [timer for timer in self.timers if not timer.is_cancelled()]

    def latest_for(self, chat_id: int) -> FakeTimer:
        name = f"autopost:{chat_id}"
        matching = [timer for timer in self.timers if timer.name == name]
        assert matching, f"no timer created for chat {chat_id}"
        return matching[-1]


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()


class RecordingSender:
    """``MessageSenderProtocol`` double capturing outbound messages."""

    def __init__(self) -> None:
        self.sent: list[tuple[int, str, int | None]] = []
        self.fail_with: Exception | None = None
        self._lock = threading.Lock()

    def send_message(
        self, chat_id: int, text: str, thread_id: int | None = None
    ) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        with self._lock:
            self.sent.append((chat_id, text, thread_id))


@pytest.fixture
def sender() -> RecordingSender:
    return RecordingSender()
