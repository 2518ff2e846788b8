"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
Use cases depend on the narrowest protocol they need; ``RepositoryProtocol``
is the union implemented by the storage adapters.
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

from src.domain.models import (
    ChatSettings,
    ChatSettingsUpdate,
    ChatSummary,
    ChatUser,
    Joke,
    JokeHistoryEntry,
    MessageStats,
    Rank,
)


class MessageCounterProtocol(Protocol):
    """Per-(user, chat) message counters."""

    def increment_message_count(self, user_id: int, chat_id: int) -> MessageStats:
        """Increment the counter by exactly one and return the new stats.

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def get_message_stats(self, user_id: int, chat_id: int) -> MessageStats | None:
        """Return stats for a user in a chat or None if never counted."""
        ...

    def get_top_users(self, chat_id: int, limit: int = 10) -> list[MessageStats]:
        """Return the most active users of a chat, busiest first."""
        ...

    def get_chat_summary(self, chat_id: int) -> ChatSummary:
        """Return aggregate counters for a chat."""
        ...


class RankStoreProtocol(Protocol):
    """Rank catalog and per-user rank assignments."""

    def list_ranks(self, category: str | None = None) -> list[Rank]:
        """Return catalog ranks ordered by threshold, optionally one ladder."""
        ...

    def add_rank(self, rank: Rank) -> Rank:
        """Insert a rank and return it with its assigned id."""
        ...

    def get_user_rank(self, user_id: int) -> Rank | None:
        """Return the user's current rank, if any."""
        ...

    def assign_rank(self, user_id: int, rank_id: int) -> None:
        """Set the user's current rank, replacing any previous assignment.

        Raises:
            RepositoryError: On storage errors
        """
        ...


class ChatSettingsStoreProtocol(Protocol):
    """Lazily created per-chat auto-post settings."""

    def get_or_create_chat_settings(self, chat_id: int) -> ChatSettings:
        """Return settings for a chat, creating defaults on first access.

        Concurrent first calls for the same chat must create exactly one row.
        """
        ...

    def update_chat_settings(
        self, chat_id: int, update: ChatSettingsUpdate
    ) -> ChatSettings:
        """Apply a partial update and return the resulting settings.

        Raises:
            ValidationError: If the update carries an invalid interval
            RepositoryError: On storage errors
        """
        ...


class JokeStoreProtocol(Protocol):
    """Jokes and the per-chat history of posted jokes."""

    def add_joke(self, content: str, category: str = "general") -> Joke:
        ...

    def get_random_joke(self, category: str | None = None) -> Joke | None:
        ...

    def mark_joke_used(self, joke_id: int) -> None:
        ...

    def record_joke_sent(self, joke_id: int, chat_id: int) -> None:
        ...

    def get_joke_history(self, chat_id: int, limit: int = 10) -> list[JokeHistoryEntry]:
        ...


class UserStoreProtocol(Protocol):
    """Known platform users."""

    def upsert_user(self, user: ChatUser) -> ChatUser:
        """Create the user or refresh its profile fields."""
        ...

    def get_user(self, user_id: int) -> ChatUser | None:
        ...


class RepositoryProtocol(
    MessageCounterProtocol,
    RankStoreProtocol,
    ChatSettingsStoreProtocol,
    JokeStoreProtocol,
    UserStoreProtocol,
    Protocol,
):
    """Full storage surface implemented by repository adapters."""


@runtime_checkable
class MessageSenderProtocol(Protocol):
    """Delivery of rendered text to the messaging platform."""

    def send_message(
        self, chat_id: int, text: str, thread_id: int | None = None
    ) -> None:
        """Send a message to a chat (optionally into a topic thread).

        Raises:
            DeliveryError: When the platform rejects or cannot receive the message
        """
        ...


class ErrorReporterProtocol(Protocol):
    """Sink for errors that are contained rather than propagated."""

    def report(self, error: BaseException, context: dict[str, Any]) -> Any:
        """Record an error. Must never raise."""
        ...


class TimerHandle(Protocol):
    """A started repeating timer that can be cancelled."""

    def start(self) -> None: ...

    def cancel(self) -> None: ...

    def is_cancelled(self) -> bool: ...

    def join(self, timeout: float | None = None) -> None: ...


TimerFactory = Callable[[float, Callable[[], None], str], TimerHandle]
"""Build an unstarted repeating timer: ``(interval_seconds, callback, name)``."""

JokePoster = Callable[[int, int | None], None]
"""Post a joke to ``(chat_id, thread_id)``; may raise."""


__all__ = [
    "ChatSettingsStoreProtocol",
    "ErrorReporterProtocol",
    "JokePoster",
    "JokeStoreProtocol",
    "MessageCounterProtocol",
    "MessageSenderProtocol",
    "RankStoreProtocol",
    "RepositoryProtocol",
    "TimerFactory",
    "TimerHandle",
    "UserStoreProtocol",
]
