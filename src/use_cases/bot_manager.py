"""Bot manager wiring inbound messages, ranks and auto-posting together.

The manager owns the event channel, the rank assigner and the auto-post
scheduler for one bot process. The transport adapter calls
``handle_message`` for every group message and the admin surface calls the
``set_auto_post_*`` methods; everything the bot says goes out through the
``MessageSenderProtocol`` passed in.
"""

from __future__ import annotations

import threading
from typing import Any

from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.domain.autopost_constants import SHUTDOWN_TICK_TIMEOUT_SECONDS
from src.domain.events import JokeSent, RankEarned
from src.domain.exceptions import ValidationError
from src.domain.models import ChatSettings, ChatSettingsUpdate, ChatUser, Joke
from src.domain.protocols import (
    MessageSenderProtocol,
    RepositoryProtocol,
    TimerFactory,
)
from src.observability.metrics import ensure_metrics_exporter
from src.observability.tracing import correlation_scope
from src.services.error_reporter import ErrorReporter
from src.services.event_channel import EventChannel
from src.services.notification_renderer import render_joke, render_rank_earned
from src.use_cases.assign_rank import RankAssigner, RankOutcome
from src.use_cases.auto_post_scheduler import AutoPostScheduler
from src.use_cases.record_message import record_message_use_case
from src.use_cases.send_joke import send_joke_use_case
from src.use_cases.update_chat_settings import update_chat_settings_use_case

logger = get_logger(__name__)


class ChatBotManager:
    """Lifecycle and message handling for one bot instance."""

    def __init__(
        self,
        repository: RepositoryProtocol,
        sender: MessageSenderProtocol,
        settings: Settings,
        *,
        events: EventChannel | None = None,
        error_reporter: ErrorReporter | None = None,
        timer_factory: TimerFactory | None = None,
    ) -> None:
        self._repository = repository
        self._sender = sender
        self._settings = settings
        self._events = events or EventChannel()
        self._error_reporter = error_reporter or ErrorReporter(self._events)
        self._rank_assigner = RankAssigner(
            repository, self._events, category=settings.rank_category
        )
        self._scheduler = AutoPostScheduler(
            repository,
            self._post_joke,
            self._error_reporter,
            events=self._events,
            timer_factory=timer_factory,
        )
        self._running = False
        self._lock = threading.Lock()

    @property
    def events(self) -> EventChannel:
        return self._events

    @property
    def scheduler(self) -> AutoPostScheduler:
        return self._scheduler

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        """Subscribe delivery listeners and start the metrics exporter."""

        with self._lock:
            if self._running:
                logger.warning("bot_already_running")
                return

            if self._settings.metrics_enabled:
                ensure_metrics_exporter(self._settings.metrics_port)
            self._events.subscribe(RankEarned, self._deliver_rank_earned)
            self._events.subscribe(JokeSent, self._deliver_joke)
            self._running = True

        logger.info(
            "bot_started",
            rank_category=self._settings.rank_category,
            metrics_enabled=self._settings.metrics_enabled,
        )

    def stop(self) -> None:
        """Cancel every auto-post timer and detach delivery listeners.

        Listeners stay attached until in-flight ticks finish, so a joke picked
        by a tick is still delivered.
        """

        with self._lock:
            if not self._running:
                logger.warning("bot_not_running")
                return
            self._running = False

        stopped = self._scheduler.stop_all(timeout=SHUTDOWN_TICK_TIMEOUT_SECONDS)
        self._events.unsubscribe(RankEarned, self._deliver_rank_earned)
        self._events.unsubscribe(JokeSent, self._deliver_joke)
        logger.info("bot_stopped", timers_stopped=stopped)

    def handle_message(
        self, user: ChatUser, chat_id: int, thread_id: int | None = None
    ) -> RankOutcome | None:
        """Process one inbound group message.

        Counts the message, evaluates the author's rank, then makes sure the
        chat's auto-post timer runs (remembering the topic thread).

        Returns:
            Rank evaluation outcome, or None if the bot is not running

        Raises:
            RepositoryError: On storage errors
        """
        if not self._running:
            logger.warning("message_ignored_bot_not_running", chat_id=chat_id)
            return None

        with correlation_scope(chat_id=chat_id):
            stats = record_message_use_case(
                self._repository, self._events, user, chat_id, thread_id
            )
            outcome = self._rank_assigner.evaluate(
                user.user_id, chat_id, stats.message_count, thread_id=thread_id
            )
            self._scheduler.ensure_started(chat_id, thread_id)
            return outcome

    def set_auto_post_enabled(self, chat_id: int, enabled: bool) -> ChatSettings:
        return update_chat_settings_use_case(
            self._repository,
            self._scheduler,
            chat_id,
            ChatSettingsUpdate(enabled=enabled),
        )

    def set_auto_post_interval(self, chat_id: int, interval_minutes: int) -> ChatSettings:
        """Change a chat's auto-post interval.

        Raises:
            ValidationError: If ``interval_minutes`` is below the minimum
        """
        return update_chat_settings_use_case(
            self._repository,
            self._scheduler,
            chat_id,
            ChatSettingsUpdate(interval_minutes=interval_minutes),
        )

    def post_joke_now(self, chat_id: int, thread_id: int | None = None) -> Joke:
        """Post a joke on demand, outside the chat's timer."""

        with correlation_scope(chat_id=chat_id):
            return send_joke_use_case(
                self._repository,
                self._events,
                chat_id,
                thread_id,
                category=self._settings.autopost_joke_category,
                trigger="manual",
            )

    def add_joke(self, content: str, category: str = "general") -> Joke:
        """Store a new joke for future posts.

        Raises:
            ValidationError: If ``content`` is blank
        """
        if not content.strip():
            raise ValidationError("joke content must not be empty")
        joke = self._repository.add_joke(content.strip(), category)
        logger.info("joke_added", joke_id=joke.id, category=category)
        return joke

    def stats(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "active_chats": self._scheduler.active_chats(),
            "errors": self._error_reporter.stats(),
        }

    # Internal helpers -------------------------------------------------

    def _post_joke(self, chat_id: int, thread_id: int | None) -> None:
        with correlation_scope(chat_id=chat_id):
            send_joke_use_case(
                self._repository,
                self._events,
                chat_id,
                thread_id,
                category=self._settings.autopost_joke_category,
                trigger="auto",
            )

    def _deliver_rank_earned(self, event: RankEarned) -> None:
        user = self._repository.get_user(event.user_id) or ChatUser(
            user_id=event.user_id
        )
        self._send(
            event.chat_id,
            render_rank_earned(user, event.rank),
            event.thread_id,
            operation="deliver_rank_earned",
        )

    def _deliver_joke(self, event: JokeSent) -> None:
        self._send(
            event.chat_id,
            render_joke(event.joke),
            event.thread_id,
            operation="deliver_joke",
        )

    def _send(
        self, chat_id: int, text: str, thread_id: int | None, *, operation: str
    ) -> None:
        try:
            self._sender.send_message(chat_id, text, thread_id=thread_id)
        except Exception as exc:  # noqa: BLE001
            self._error_reporter.report(
                exc,
                {"operation": operation, "chat_id": chat_id, "thread_id": thread_id},
            )
            return

        logger.debug("message_delivered", operation=operation, chat_id=chat_id)


__all__ = ["ChatBotManager"]
