"""Admin update of a chat's auto-post settings."""

from src.config.logging_config import get_logger
from src.domain.models import ChatSettings, ChatSettingsUpdate
from src.domain.protocols import ChatSettingsStoreProtocol
from src.use_cases.auto_post_scheduler import AutoPostScheduler

logger = get_logger(__name__)


def update_chat_settings_use_case(
    settings_store: ChatSettingsStoreProtocol,
    scheduler: AutoPostScheduler,
    chat_id: int,
    update: ChatSettingsUpdate,
) -> ChatSettings:
    """Persist a settings change and align the chat's timer with it.

    Disabling stops the timer right away. An interval change restarts a
    running timer so the new period applies immediately. Enabling does not
    start a timer; the next observed message in the chat does.

    Args:
        settings_store: Settings persistence
        scheduler: Auto-post scheduler owning the chat's timer
        chat_id: Chat to update
        update: Fields to change

    Returns:
        Settings after the update

    Raises:
        ValidationError: If the interval is below the minimum (nothing is changed)
        RepositoryError: On storage errors
    """
    if update.is_empty:
        return settings_store.get_or_create_chat_settings(chat_id)

    settings = settings_store.update_chat_settings(chat_id, update)
    logger.info(
        "chat_settings_updated",
        chat_id=chat_id,
        enabled=settings.enabled,
        interval_minutes=settings.interval_minutes,
    )

    if not settings.enabled:
        scheduler.stop(chat_id)
    elif (
        scheduler.is_active(chat_id)
        and scheduler.interval_for(chat_id) != settings.interval_minutes
    ):
        scheduler.reschedule(chat_id)

    return settings
