"""Tests for the per-chat auto-post scheduler."""

from __future__ import annotations

import threading
from unittest.mock import Mock

import pytest
from pytest_mock import MockerFixture
from structlog.testing import capture_logs

from src.adapters.sqlite_repository import SQLiteRepository
from src.domain.events import AutoPostStarted, AutoPostStopped
from src.domain.exceptions import DeliveryError, RepositoryError, ValidationError
from src.domain.models import ChatSettings, ChatSettingsUpdate
from src.services.error_reporter import ErrorReporter
from src.services.event_channel import EventChannel
from src.use_cases.auto_post_scheduler import AutoPostScheduler
from tests.conftest import FakeTimerFactory


class PostRecorder:
    def __init__(self) -> None:
        self.posts: list[tuple[int, int | None]] = []
        self.fail_with: Exception | None = None

    def __call__(self, chat_id: int, thread_id: int | None) -> None:
        if self.fail_with is not None:
            raise self.fail_with
        self.posts.append((chat_id, thread_id))


@pytest.fixture
def poster() -> PostRecorder:
    return PostRecorder()


@pytest.fixture
def scheduler(
    empty_repo: SQLiteRepository,
    poster: PostRecorder,
    error_reporter: ErrorReporter,
    events: EventChannel,
    timer_factory: FakeTimerFactory,
) -> AutoPostScheduler:
    return AutoPostScheduler(
        empty_repo,
        poster,
        error_reporter,
        events=events,
        timer_factory=timer_factory,
    )


def test_start_creates_timer_with_interval_in_seconds(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory
) -> None:
    assert scheduler.start(-100, 15) is True

    timer = timer_factory.latest_for(-100)
    assert timer.started
    assert timer.interval_seconds == 15 * 60
    assert scheduler.is_active(-100)
    assert scheduler.interval_for(-100) == 15


def test_duplicate_start_is_noop(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory
) -> None:
    scheduler.start(-100, 15)

    with capture_logs() as logs:
        assert scheduler.start(-100, 5) is False

    assert len(timer_factory.timers) == 1
    assert scheduler.interval_for(-100) == 15
    assert any(log["event"] == "autopost_already_active" for log in logs)


@pytest.mark.parametrize("interval", [0, -1])
def test_start_rejects_invalid_interval(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory, interval: int
) -> None:
    with pytest.raises(ValidationError):
        scheduler.start(-100, interval)

    assert timer_factory.timers == []
    assert not scheduler.is_active(-100)


def test_stop_is_idempotent(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory
) -> None:
    scheduler.start(-100, 15)

    assert scheduler.stop(-100) is True
    assert scheduler.stop(-100) is False
    assert timer_factory.latest_for(-100).is_cancelled()
    assert scheduler.stop(-999) is False


def test_tick_posts_when_enabled(
    scheduler: AutoPostScheduler,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    scheduler.ensure_started(-100, thread_id=9)

    timer_factory.latest_for(-100).fire()
    timer_factory.latest_for(-100).fire()

    assert poster.posts == [(-100, 9), (-100, 9)]


def test_disabled_chat_stops_on_next_tick_without_posting(
    scheduler: AutoPostScheduler,
    empty_repo: SQLiteRepository,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    scheduler.ensure_started(-100)
    timer = timer_factory.latest_for(-100)
    timer.fire()

    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(enabled=False))
    timer.fire()
    timer.fire()

    assert poster.posts == [(-100, None)]
    assert not scheduler.is_active(-100)
    assert timer.is_cancelled()


def test_running_timer_keeps_original_interval(
    scheduler: AutoPostScheduler,
    empty_repo: SQLiteRepository,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(interval_minutes=30))
    scheduler.ensure_started(-100)

    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(interval_minutes=10))
    timer_factory.latest_for(-100).fire()

    assert scheduler.interval_for(-100) == 30
    assert len(timer_factory.timers) == 1
    assert poster.posts == [(-100, None)]


def test_reschedule_applies_new_interval_and_keeps_thread(
    scheduler: AutoPostScheduler,
    empty_repo: SQLiteRepository,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    scheduler.ensure_started(-100, thread_id=3)
    old_timer = timer_factory.latest_for(-100)
    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(interval_minutes=10))

    assert scheduler.reschedule(-100) is True

    new_timer = timer_factory.latest_for(-100)
    assert new_timer is not old_timer
    assert old_timer.is_cancelled()
    assert new_timer.interval_seconds == 10 * 60
    assert scheduler.thread_for(-100) == 3
    assert len(timer_factory.live()) == 1


def test_stale_tick_from_replaced_timer_does_nothing(
    scheduler: AutoPostScheduler,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    scheduler.ensure_started(-100)
    old_timer = timer_factory.latest_for(-100)
    scheduler.reschedule(-100)

    # Simulate a tick that was already in flight when the timer was replaced
    old_timer.callback()

    assert poster.posts == []
    assert scheduler.is_active(-100)


def test_ensure_started_respects_disabled_settings(
    scheduler: AutoPostScheduler,
    empty_repo: SQLiteRepository,
    timer_factory: FakeTimerFactory,
) -> None:
    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(enabled=False))

    assert scheduler.ensure_started(-100, thread_id=4) is False
    assert timer_factory.timers == []


def test_ensure_started_updates_thread_of_running_timer(
    scheduler: AutoPostScheduler,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    assert scheduler.ensure_started(-100, thread_id=1) is True
    assert scheduler.ensure_started(-100, thread_id=2) is False
    assert scheduler.ensure_started(-100) is False

    timer_factory.latest_for(-100).fire()

    assert poster.posts == [(-100, 2)]
    assert len(timer_factory.timers) == 1


def test_stop_clears_thread_target(scheduler: AutoPostScheduler) -> None:
    scheduler.ensure_started(-100, thread_id=7)

    scheduler.stop(-100)

    assert scheduler.thread_for(-100) is None


def test_posting_failure_is_reported_and_timer_survives(
    scheduler: AutoPostScheduler,
    error_reporter: ErrorReporter,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    scheduler.ensure_started(-100)
    timer = timer_factory.latest_for(-100)
    poster.fail_with = DeliveryError(-100, "chat not found")

    timer.fire()

    assert error_reporter.stats() == {"delivery": 1}
    assert scheduler.is_active(-100)

    poster.fail_with = None
    timer.fire()
    assert poster.posts == [(-100, None)]


def test_settings_read_failure_is_reported(
    empty_repo: SQLiteRepository,
    poster: PostRecorder,
    timer_factory: FakeTimerFactory,
    mock_error_reporter: Mock,
) -> None:
    scheduler = AutoPostScheduler(
        empty_repo, poster, mock_error_reporter, timer_factory=timer_factory
    )
    scheduler.start(-100, 5)
    empty_repo.get_or_create_chat_settings = Mock(  # type: ignore[method-assign]
        side_effect=RepositoryError("database is locked")
    )

    timer_factory.latest_for(-100).fire()

    mock_error_reporter.report.assert_called_once()
    error, context = mock_error_reporter.report.call_args.args
    assert isinstance(error, RepositoryError)
    assert context["chat_id"] == -100
    assert context["operation"] == "autopost_tick"
    assert poster.posts == []


def test_stop_all_cancels_every_timer(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory
) -> None:
    for chat_id in (-1, -2, -3):
        scheduler.start(chat_id, 5)

    assert scheduler.stop_all() == 3
    assert scheduler.active_chats() == []
    assert timer_factory.live() == []


def test_lifecycle_events_published(
    scheduler: AutoPostScheduler, events: EventChannel
) -> None:
    started: list[AutoPostStarted] = []
    stopped: list[AutoPostStopped] = []
    events.subscribe(AutoPostStarted, started.append)
    events.subscribe(AutoPostStopped, stopped.append)

    scheduler.start(-100, 5)
    scheduler.start(-100, 5)
    scheduler.stop(-100)
    scheduler.stop(-100)

    assert [(event.chat_id, event.interval_minutes) for event in started] == [(-100, 5)]
    assert [event.chat_id for event in stopped] == [-100]


def test_concurrent_ensure_started_creates_single_timer(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory
) -> None:
    barrier = threading.Barrier(10)

    def _worker() -> None:
        barrier.wait()
        scheduler.ensure_started(-100)

    threads = [threading.Thread(target=_worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert len(timer_factory.timers) == 1
    assert scheduler.active_chats() == [-100]


def test_chats_are_independent(
    scheduler: AutoPostScheduler,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
) -> None:
    scheduler.start(-1, 5)
    scheduler.start(-2, 5)

    scheduler.stop(-1)
    timer_factory.latest_for(-2).fire()

    assert scheduler.active_chats() == [-2]
    assert poster.posts == [(-2, None)]


def test_disabled_chat_keeps_no_thread_target(
    scheduler: AutoPostScheduler, empty_repo: SQLiteRepository
) -> None:
    for chat_id in range(-1, -101, -1):
        empty_repo.update_chat_settings(chat_id, ChatSettingsUpdate(enabled=False))
        scheduler.ensure_started(chat_id, thread_id=7)

    assert scheduler.thread_for(-1) is None
    assert scheduler._threads == {}
    assert scheduler.active_chats() == []


def test_reschedule_of_disabled_chat_forgets_thread(
    scheduler: AutoPostScheduler, empty_repo: SQLiteRepository
) -> None:
    scheduler.ensure_started(-100, thread_id=3)
    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(enabled=False))

    assert scheduler.reschedule(-100) is False
    assert scheduler.thread_for(-100) is None


def test_reschedule_keeps_thread_from_message_during_restart(
    scheduler: AutoPostScheduler,
    empty_repo: SQLiteRepository,
    timer_factory: FakeTimerFactory,
    poster: PostRecorder,
    mocker: MockerFixture,
) -> None:
    scheduler.ensure_started(-100, thread_id=3)
    read_settings = empty_repo.get_or_create_chat_settings
    arrived: list[int] = []

    def _message_arrives_mid_restart(chat_id: int) -> ChatSettings:
        if not arrived:
            arrived.append(chat_id)
            scheduler.ensure_started(chat_id, thread_id=8)
        return read_settings(chat_id)

    mocker.patch.object(
        empty_repo,
        "get_or_create_chat_settings",
        side_effect=_message_arrives_mid_restart,
    )

    assert scheduler.reschedule(-100) is True

    assert scheduler.thread_for(-100) == 8
    assert len(timer_factory.live()) == 1
    timer_factory.latest_for(-100).fire()
    assert poster.posts == [(-100, 8)]


def _lock_is_free(scheduler: AutoPostScheduler) -> bool:
    """True if another thread can take the scheduler lock right now."""

    other = threading.Thread(target=scheduler.active_chats)
    other.start()
    other.join(timeout=2)
    return not other.is_alive()


def test_disabled_tick_announces_stop_outside_lock(
    scheduler: AutoPostScheduler,
    empty_repo: SQLiteRepository,
    events: EventChannel,
    timer_factory: FakeTimerFactory,
) -> None:
    scheduler.ensure_started(-100)
    timer = timer_factory.latest_for(-100)
    empty_repo.update_chat_settings(-100, ChatSettingsUpdate(enabled=False))
    lock_free: list[bool] = []

    def _on_stopped(event: AutoPostStopped) -> None:
        lock_free.append(_lock_is_free(scheduler))

    events.subscribe(AutoPostStopped, _on_stopped)

    timer.fire()

    assert lock_free == [True]
    assert not scheduler.is_active(-100)


@pytest.mark.parametrize("action", ["stop", "reschedule", "stop_all"])
def test_lifecycle_listeners_run_outside_lock(
    scheduler: AutoPostScheduler, events: EventChannel, action: str
) -> None:
    lock_free: list[bool] = []

    def _on_lifecycle(event: AutoPostStarted | AutoPostStopped) -> None:
        lock_free.append(_lock_is_free(scheduler))

    events.subscribe(AutoPostStarted, _on_lifecycle)
    events.subscribe(AutoPostStopped, _on_lifecycle)
    scheduler.ensure_started(-100)

    if action == "stop_all":
        scheduler.stop_all()
    else:
        getattr(scheduler, action)(-100)

    assert lock_free
    assert all(lock_free)


def test_stop_all_waits_for_timers(
    scheduler: AutoPostScheduler, timer_factory: FakeTimerFactory, mocker: MockerFixture
) -> None:
    scheduler.start(-1, 5)
    scheduler.start(-2, 5)
    joins = [mocker.spy(timer, "join") for timer in timer_factory.timers]

    scheduler.stop_all(timeout=1.5)

    for join in joins:
        join.assert_called_once_with(1.5)
