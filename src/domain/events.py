"""Domain events published through the event channel.

The set of events is closed: every event the bot can emit is one of the
dataclasses below, and ``DomainEvent`` is their union.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

from src.domain.models import ChatUser, Joke, MessageStats, Rank, utc_now


@dataclass(frozen=True, slots=True)
class MessageRecorded:
    """A user's message was counted."""

    name: ClassVar[str] = "message.recorded"

    user: ChatUser
    stats: MessageStats
    chat_id: int
    thread_id: int | None = None
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class RankEarned:
    """A user moved to a new best rank."""

    name: ClassVar[str] = "rank.earned"

    user_id: int
    rank: Rank
    chat_id: int
    thread_id: int | None = None
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class JokeSent:
    """A joke was selected and recorded for a chat."""

    name: ClassVar[str] = "joke.sent"

    joke: Joke
    chat_id: int
    thread_id: int | None = None
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class AutoPostStarted:
    name: ClassVar[str] = "autopost.started"

    chat_id: int
    interval_minutes: int
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class AutoPostStopped:
    name: ClassVar[str] = "autopost.stopped"

    chat_id: int
    occurred_at: datetime = field(default_factory=utc_now)


@dataclass(frozen=True, slots=True)
class ErrorOccurred:
    """An error was contained and reported instead of propagated."""

    name: ClassVar[str] = "error.occurred"

    error: BaseException
    category: str
    severity: str
    context: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=utc_now)


DomainEvent = (
    MessageRecorded
    | RankEarned
    | JokeSent
    | AutoPostStarted
    | AutoPostStopped
    | ErrorOccurred
)

__all__ = [
    "AutoPostStarted",
    "AutoPostStopped",
    "DomainEvent",
    "ErrorOccurred",
    "JokeSent",
    "MessageRecorded",
    "RankEarned",
]
