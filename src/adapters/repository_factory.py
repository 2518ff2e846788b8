"""Factory for creating the bot's repository."""

from src.adapters.sqlite_repository import SQLiteRepository
from src.config.logging_config import get_logger
from src.config.settings import Settings
from src.domain.rank_constants import DEFAULT_RANKS

logger = get_logger(__name__)


def create_repository(settings: Settings) -> SQLiteRepository:
    """Create the SQLite repository and seed default ranks if configured.

    Args:
        settings: Application settings

    Returns:
        Repository instance with schema in place

    Raises:
        RepositoryError: On connection or schema errors
    """
    logger.info("repository_sqlite_selected", path=settings.db_path)
    repository = SQLiteRepository(
        db_path=settings.db_path,
        busy_timeout=settings.db_busy_timeout_seconds,
        default_interval_minutes=settings.autopost_default_interval_minutes,
    )

    if settings.seed_default_ranks:
        repository.seed_ranks(DEFAULT_RANKS)

    return repository
