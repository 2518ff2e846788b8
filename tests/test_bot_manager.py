"""End-to-end tests for the bot manager with fake transport and timers."""

from __future__ import annotations

import threading
from collections.abc import Generator
from typing import Any

import pytest
from pytest_mock import MockerFixture

from src.adapters.sqlite_repository import SQLiteRepository
from src.config.settings import Settings
from src.domain.events import RankEarned
from src.domain.exceptions import DeliveryError, ValidationError
from src.domain.models import ChatUser, Joke, Rank
from src.domain.rank_constants import AGENCY_CATEGORY
from src.use_cases.assign_rank import NoChange
from src.use_cases.bot_manager import ChatBotManager
from tests.conftest import FakeTimerFactory, RecordingSender

CHAT_ID = -100123


@pytest.fixture
def bot(
    empty_repo: SQLiteRepository,
    sender: RecordingSender,
    settings: Settings,
    timer_factory: FakeTimerFactory,
    three_tier_ranks: list[Rank],
) -> Generator[ChatBotManager, None, None]:
    for rank in three_tier_ranks:
        empty_repo.add_rank(rank)
    empty_repo.add_joke("Why do programmers prefer dark mode? Light attracts bugs.")
    manager = ChatBotManager(
        empty_repo, sender, settings, timer_factory=timer_factory
    )
    manager.start()
    yield manager
    if manager.is_running:
        manager.stop()


def test_first_message_announces_lowest_rank(
    bot: ChatBotManager, sender: RecordingSender, sample_user: ChatUser
) -> None:
    outcome = bot.handle_message(sample_user, CHAT_ID, thread_id=11)

    assert isinstance(outcome, RankEarned)
    assert len(sender.sent) == 1
    chat_id, text, thread_id = sender.sent[0]
    assert chat_id == CHAT_ID
    assert thread_id == 11
    assert "@neo" in text
    assert "Rookie" in text


def test_threshold_crossing_announced_once(
    bot: ChatBotManager, sender: RecordingSender, sample_user: ChatUser
) -> None:
    outcomes = [bot.handle_message(sample_user, CHAT_ID) for _ in range(12)]

    rank_messages = [text for _, text, _ in sender.sent]
    assert len(rank_messages) == 2
    assert "Agent Trainee" in rank_messages[1]
    assert isinstance(outcomes[9], RankEarned)
    assert isinstance(outcomes[10], NoChange)


def test_message_starts_autopost_and_tick_posts_joke(
    bot: ChatBotManager,
    sender: RecordingSender,
    sample_user: ChatUser,
    timer_factory: FakeTimerFactory,
) -> None:
    bot.handle_message(sample_user, CHAT_ID, thread_id=4)
    sender.sent.clear()

    timer_factory.latest_for(CHAT_ID).fire()

    assert sender.sent == [
        (CHAT_ID, "Why do programmers prefer dark mode? Light attracts bugs.", 4)
    ]
    assert bot.stats()["active_chats"] == [CHAT_ID]


def test_disable_then_tick_posts_nothing(
    bot: ChatBotManager,
    sender: RecordingSender,
    sample_user: ChatUser,
    timer_factory: FakeTimerFactory,
) -> None:
    bot.handle_message(sample_user, CHAT_ID)
    timer = timer_factory.latest_for(CHAT_ID)
    sender.sent.clear()

    settings = bot.set_auto_post_enabled(CHAT_ID, False)
    timer.fire()

    assert settings.enabled is False
    assert sender.sent == []
    assert not bot.scheduler.is_active(CHAT_ID)

    # Further activity in a disabled chat does not restart posting
    bot.handle_message(sample_user, CHAT_ID)
    assert not bot.scheduler.is_active(CHAT_ID)


def test_interval_change_applies_immediately(
    bot: ChatBotManager, sample_user: ChatUser, timer_factory: FakeTimerFactory
) -> None:
    bot.handle_message(sample_user, CHAT_ID)

    bot.set_auto_post_interval(CHAT_ID, 10)

    assert bot.scheduler.interval_for(CHAT_ID) == 10
    assert timer_factory.latest_for(CHAT_ID).interval_seconds == 600


def test_invalid_interval_rejected(bot: ChatBotManager) -> None:
    with pytest.raises(ValidationError):
        bot.set_auto_post_interval(CHAT_ID, 0)


def test_delivery_failure_is_reported_not_raised(
    bot: ChatBotManager,
    sender: RecordingSender,
    sample_user: ChatUser,
    timer_factory: FakeTimerFactory,
) -> None:
    sender.fail_with = DeliveryError(CHAT_ID, "bot was blocked")

    bot.handle_message(sample_user, CHAT_ID)
    timer_factory.latest_for(CHAT_ID).fire()

    assert bot.stats()["errors"] == {"delivery": 2}
    assert bot.scheduler.is_active(CHAT_ID)


def test_tick_without_jokes_is_reported(
    empty_repo: SQLiteRepository,
    sender: RecordingSender,
    settings: Settings,
    timer_factory: FakeTimerFactory,
    sample_user: ChatUser,
) -> None:
    manager = ChatBotManager(empty_repo, sender, settings, timer_factory=timer_factory)
    manager.start()
    try:
        manager.handle_message(sample_user, CHAT_ID)
        timer_factory.latest_for(CHAT_ID).fire()

        assert manager.stats()["errors"] == {"business_logic": 1}
        assert manager.scheduler.is_active(CHAT_ID)
    finally:
        manager.stop()


def test_stop_cancels_timers_and_detaches_listeners(
    bot: ChatBotManager,
    sender: RecordingSender,
    sample_user: ChatUser,
    timer_factory: FakeTimerFactory,
) -> None:
    bot.handle_message(sample_user, CHAT_ID)
    bot.handle_message(sample_user, -200)

    bot.stop()

    assert timer_factory.live() == []
    assert bot.events.listener_count(RankEarned) == 0
    assert bot.handle_message(sample_user, CHAT_ID) is None


def test_post_joke_now_uses_thread(
    bot: ChatBotManager, sender: RecordingSender
) -> None:
    joke = bot.post_joke_now(CHAT_ID, thread_id=6)

    assert joke.used_count == 1
    assert sender.sent[-1][2] == 6


def test_add_joke_rejects_blank_content(bot: ChatBotManager) -> None:
    with pytest.raises(ValidationError):
        bot.add_joke("   ")

    assert bot.add_joke("  new joke ").content == "new joke"


def test_category_setting_scopes_ranks(
    repo: SQLiteRepository,
    sender: RecordingSender,
    settings: Settings,
    timer_factory: FakeTimerFactory,
    sample_user: ChatUser,
) -> None:
    scoped = settings.model_copy(update={"rank_category": AGENCY_CATEGORY})
    manager = ChatBotManager(repo, sender, scoped, timer_factory=timer_factory)
    manager.start()
    try:
        outcome = manager.handle_message(sample_user, CHAT_ID)
    finally:
        manager.stop()

    assert isinstance(outcome, RankEarned)
    assert outcome.rank.category == AGENCY_CATEGORY


def test_start_twice_subscribes_once(bot: ChatBotManager, mocker: MockerFixture) -> None:
    subscribe = mocker.spy(bot.events, "subscribe")

    bot.start()

    subscribe.assert_not_called()
    assert bot.events.listener_count(RankEarned) == 1


def test_stop_delivers_joke_from_in_flight_tick(
    bot: ChatBotManager,
    empty_repo: SQLiteRepository,
    sender: RecordingSender,
    sample_user: ChatUser,
    timer_factory: FakeTimerFactory,
    mocker: MockerFixture,
) -> None:
    bot.handle_message(sample_user, CHAT_ID)
    sender.sent.clear()
    pick_joke = empty_repo.get_random_joke
    entered = threading.Event()
    release = threading.Event()

    def _slow_pick(*args: Any, **kwargs: Any) -> Joke | None:
        entered.set()
        release.wait(timeout=5)
        return pick_joke(*args, **kwargs)

    mocker.patch.object(empty_repo, "get_random_joke", side_effect=_slow_pick)
    timer_factory.latest_for(CHAT_ID).fire_in_background()
    assert entered.wait(timeout=5)
    threading.Timer(0.2, release.set).start()

    bot.stop()

    assert [text for _, text, _ in sender.sent] == [
        "Why do programmers prefer dark mode? Light attracts bugs."
    ]
    assert bot.events.listener_count(RankEarned) == 0
