"""Record message use case.

Counts an inbound chat message for its author.
"""

from src.config.logging_config import get_logger
from src.domain.events import MessageRecorded
from src.domain.models import ChatUser, MessageStats
from src.domain.protocols import RepositoryProtocol
from src.observability.metrics import MESSAGES_RECORDED_TOTAL
from src.services.event_channel import EventChannel

logger = get_logger(__name__)


def record_message_use_case(
    repository: RepositoryProtocol,
    events: EventChannel,
    user: ChatUser,
    chat_id: int,
    thread_id: int | None = None,
) -> MessageStats:
    """Refresh the author's profile and increment their per-chat counter.

    Args:
        repository: Data repository
        events: Channel receiving ``MessageRecorded``
        user: Message author
        chat_id: Chat the message was sent in
        thread_id: Topic thread, if any

    Returns:
        Counter state after the increment

    Raises:
        RepositoryError: On storage errors
    """
    repository.upsert_user(user)
    stats = repository.increment_message_count(user.user_id, chat_id)
    MESSAGES_RECORDED_TOTAL.inc()

    logger.debug(
        "message_recorded",
        user_id=user.user_id,
        chat_id=chat_id,
        message_count=stats.message_count,
    )
    events.publish(
        MessageRecorded(user=user, stats=stats, chat_id=chat_id, thread_id=thread_id)
    )
    return stats
