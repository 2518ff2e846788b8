"""Domain models for the chat rank bot.

All persistent models use Pydantic v2 for validation and serialization.
"""

from datetime import datetime

import pytz
from pydantic import BaseModel, ConfigDict, Field

from src.domain.autopost_constants import (
    DEFAULT_AUTOPOST_ENABLED,
    DEFAULT_AUTOPOST_INTERVAL_MINUTES,
    MIN_AUTOPOST_INTERVAL_MINUTES,
)
from src.domain.exceptions import ValidationError


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(tz=pytz.UTC)


class Rank(BaseModel):
    """A named tier a user qualifies for by message count.

    Ranks are immutable once seeded. ``id`` is ``None`` until the rank store
    assigns one.
    """

    model_config = ConfigDict(frozen=True)

    id: int | None = Field(default=None, description="Catalog identifier")
    name: str = Field(..., min_length=1, description="Unique display label")
    category: str = Field(..., description="Ladder the rank belongs to")
    min_messages: int = Field(..., ge=0, description="Minimum message threshold")
    description: str = Field(default="", description="Display-only description")
    emoji: str = Field(default="", description="Display-only emoji")

    def is_eligible(self, message_count: int) -> bool:
        """Return True when ``message_count`` reaches this rank's threshold."""
        return message_count >= self.min_messages


class ChatUser(BaseModel):
    """Messaging platform user as seen by the bot."""

    user_id: int = Field(..., description="Platform user ID")
    username: str | None = Field(default=None, description="Public handle")
    first_name: str | None = Field(default=None, description="First name")
    last_name: str | None = Field(default=None, description="Last name")

    def display_name(self) -> str:
        """Human-readable name used in notifications."""
        if self.username:
            return f"@{self.username}"
        full_name = " ".join(
            part for part in (self.first_name, self.last_name) if part
        ).strip()
        return full_name or f"user {self.user_id}"


class MessageStats(BaseModel):
    """Message counter for one user in one chat."""

    user_id: int
    chat_id: int
    message_count: int = Field(default=0, ge=0)
    last_message_at: datetime | None = None


class ChatSummary(BaseModel):
    """Aggregate counters for a chat."""

    chat_id: int
    total_users: int = 0
    total_messages: int = 0
    max_messages: int = 0


class ChatSettings(BaseModel):
    """Per-chat auto-post configuration."""

    chat_id: int = Field(..., description="Chat the settings belong to")
    enabled: bool = Field(
        default=DEFAULT_AUTOPOST_ENABLED, description="Whether jokes are auto-posted"
    )
    interval_minutes: int = Field(
        default=DEFAULT_AUTOPOST_INTERVAL_MINUTES,
        ge=MIN_AUTOPOST_INTERVAL_MINUTES,
        description="Minutes between auto-posted jokes",
    )
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ChatSettingsUpdate(BaseModel):
    """Partial update of chat settings; ``None`` leaves a field unchanged."""

    enabled: bool | None = None
    interval_minutes: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.enabled is None and self.interval_minutes is None

    def ensure_valid(self) -> None:
        """Reject values the settings store must never hold.

        Raises:
            ValidationError: If ``interval_minutes`` is below the minimum
        """
        if (
            self.interval_minutes is not None
            and self.interval_minutes < MIN_AUTOPOST_INTERVAL_MINUTES
        ):
            raise ValidationError(
                f"interval_minutes must be >= {MIN_AUTOPOST_INTERVAL_MINUTES}, "
                f"got {self.interval_minutes}"
            )


class Joke(BaseModel):
    """Joke available for posting."""

    id: int | None = None
    content: str = Field(..., min_length=1)
    category: str = Field(default="general")
    used_count: int = Field(default=0, ge=0)
    created_at: datetime = Field(default_factory=utc_now)


class JokeHistoryEntry(BaseModel):
    """A joke sent to a chat."""

    joke_id: int
    chat_id: int
    sent_at: datetime


__all__ = [
    "ChatSettings",
    "ChatSettingsUpdate",
    "ChatSummary",
    "ChatUser",
    "Joke",
    "JokeHistoryEntry",
    "MessageStats",
    "Rank",
    "utc_now",
]
