"""Custom exception hierarchy for the chat rank bot.

Following error taxonomy: retryable, non-retryable, validation.
"""


class ChatBotError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(ChatBotError):
    """Errors that can be retried (storage hiccups, network issues)."""

    pass


class NonRetryableError(ChatBotError):
    """Errors that should not be retried (validation, logic errors)."""

    pass


class ValidationError(NonRetryableError):
    """Caller supplied data that violates a domain constraint."""

    pass


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass


class DeliveryError(RetryableError):
    """Messaging platform delivery errors."""

    def __init__(self, chat_id: int, reason: str) -> None:
        """Initialize with the chat that could not be reached."""
        self.chat_id = chat_id
        super().__init__(f"Failed to deliver message to chat {chat_id}: {reason}")


class NoJokesAvailableError(NonRetryableError):
    """The joke store is empty."""

    def __init__(self) -> None:
        super().__init__("No jokes available")
