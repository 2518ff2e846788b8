"""SQLite repository adapter for local storage.

Implements RepositoryProtocol with SQLite backend. Every operation opens its
own connection, so the repository is safe to share between the inbound
message path and the auto-post timer threads. Row-level invariants (one
settings row per chat, one rank per user) are enforced by the schema.
"""

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Final

import pytz

from src.config.logging_config import get_logger
from src.domain.autopost_constants import (
    DEFAULT_AUTOPOST_ENABLED,
    DEFAULT_AUTOPOST_INTERVAL_MINUTES,
    MIN_AUTOPOST_INTERVAL_MINUTES,
)
from src.domain.exceptions import RepositoryError, ValidationError
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

logger = get_logger(__name__)

BUSY_TIMEOUT_SECONDS_DEFAULT: Final[float] = 5.0


def _now_iso() -> str:
    return datetime.now(tz=pytz.UTC).isoformat()


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class SQLiteRepository:
    """SQLite-based repository for the bot's single embedded store."""

    def __init__(
        self,
        db_path: str,
        *,
        busy_timeout: float = BUSY_TIMEOUT_SECONDS_DEFAULT,
        default_interval_minutes: int = DEFAULT_AUTOPOST_INTERVAL_MINUTES,
    ) -> None:
        """Initialize repository and ensure schema.

        Args:
            db_path: Path to SQLite database file
            busy_timeout: Seconds a connection waits on a locked database
            default_interval_minutes: Interval given to newly created chat settings
        """
        self.db_path = db_path
        if busy_timeout <= 0:
            raise RepositoryError("busy_timeout must be positive")
        if default_interval_minutes < MIN_AUTOPOST_INTERVAL_MINUTES:
            raise ValidationError(
                f"default_interval_minutes must be >= {MIN_AUTOPOST_INTERVAL_MINUTES}"
            )
        self._busy_timeout = busy_timeout
        self._default_interval_minutes = default_interval_minutes

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection.

        Returns:
            SQLite connection with foreign keys enforced
        """
        conn = sqlite3.connect(self.db_path, timeout=self._busy_timeout)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id INTEGER PRIMARY KEY,
                    username TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS message_stats (
                    user_id INTEGER NOT NULL,
                    chat_id INTEGER NOT NULL,
                    message_count INTEGER NOT NULL DEFAULT 0,
                    last_message_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    PRIMARY KEY (user_id, chat_id)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS ranks (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT UNIQUE NOT NULL,
                    category TEXT NOT NULL,
                    min_messages INTEGER NOT NULL CHECK(min_messages >= 0),
                    description TEXT,
                    emoji TEXT
                )
            """
            )

            # One row per user: assignment overwrites, never appends
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS user_ranks (
                    user_id INTEGER PRIMARY KEY,
                    rank_id INTEGER NOT NULL REFERENCES ranks(id) ON DELETE CASCADE,
                    earned_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                f"""
                CREATE TABLE IF NOT EXISTS chat_settings (
                    chat_id INTEGER PRIMARY KEY,
                    jokes_enabled INTEGER NOT NULL DEFAULT 1,
                    jokes_interval INTEGER NOT NULL DEFAULT {DEFAULT_AUTOPOST_INTERVAL_MINUTES}
                        CHECK(jokes_interval >= {MIN_AUTOPOST_INTERVAL_MINUTES}),
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS jokes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    content TEXT NOT NULL,
                    category TEXT NOT NULL DEFAULT 'general',
                    used_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS joke_history (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    joke_id INTEGER NOT NULL REFERENCES jokes(id) ON DELETE CASCADE,
                    chat_id INTEGER NOT NULL,
                    sent_at TEXT NOT NULL
                )
            """
            )

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_message_stats_chat "
                "ON message_stats(chat_id, message_count DESC)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_joke_history_chat "
                "ON joke_history(chat_id, sent_at DESC)"
            )

            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to create schema: {e}") from e
        finally:
            conn.close()

    # Users -------------------------------------------------------------

    def upsert_user(self, user: ChatUser) -> ChatUser:
        """Create the user or refresh its profile fields.

        Args:
            user: User as reported by the messaging platform

        Returns:
            Stored user
        """
        now = _now_iso()
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO users (user_id, username, first_name, last_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    username = excluded.username,
                    first_name = excluded.first_name,
                    last_name = excluded.last_name,
                    updated_at = excluded.updated_at
                """,
                (user.user_id, user.username, user.first_name, user.last_name, now, now),
            )
            conn.commit()
            return user
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to upsert user: {e}") from e
        finally:
            conn.close()

    def get_user(self, user_id: int) -> ChatUser | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM users WHERE user_id = ?", (user_id,)
            ).fetchone()
            if row is None:
                return None
            return ChatUser(
                user_id=row["user_id"],
                username=row["username"],
                first_name=row["first_name"],
                last_name=row["last_name"],
            )
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get user: {e}") from e
        finally:
            conn.close()

    # Message counters --------------------------------------------------

    def increment_message_count(self, user_id: int, chat_id: int) -> MessageStats:
        """Increment a user's message counter in a chat by exactly one.

        The write and the read-back share one immediate transaction, so the
        returned count is the value produced by this increment.

        Args:
            user_id: User who sent the message
            chat_id: Chat the message was sent to

        Returns:
            Updated stats

        Raises:
            RepositoryError: On storage errors
        """
        now = _now_iso()
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                """
                INSERT INTO message_stats
                    (user_id, chat_id, message_count, last_message_at, created_at, updated_at)
                VALUES (?, ?, 1, ?, ?, ?)
                ON CONFLICT(user_id, chat_id) DO UPDATE SET
                    message_count = message_count + 1,
                    last_message_at = excluded.last_message_at,
                    updated_at = excluded.updated_at
                """,
                (user_id, chat_id, now, now, now),
            )
            row = conn.execute(
                "SELECT * FROM message_stats WHERE user_id = ? AND chat_id = ?",
                (user_id, chat_id),
            ).fetchone()
            conn.commit()
            return self._row_to_stats(row)
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to increment message count: {e}") from e
        finally:
            conn.close()

    def get_message_stats(self, user_id: int, chat_id: int) -> MessageStats | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM message_stats WHERE user_id = ? AND chat_id = ?",
                (user_id, chat_id),
            ).fetchone()
            return self._row_to_stats(row) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get message stats: {e}") from e
        finally:
            conn.close()

    def get_top_users(self, chat_id: int, limit: int = 10) -> list[MessageStats]:
        """Return the most active users of a chat, busiest first."""
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT * FROM message_stats
                WHERE chat_id = ?
                ORDER BY message_count DESC, user_id ASC
                LIMIT ?
                """,
                (chat_id, limit),
            ).fetchall()
            return [self._row_to_stats(row) for row in rows]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get top users: {e}") from e
        finally:
            conn.close()

    def get_chat_summary(self, chat_id: int) -> ChatSummary:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT
                    COUNT(*) AS total_users,
                    COALESCE(SUM(message_count), 0) AS total_messages,
                    COALESCE(MAX(message_count), 0) AS max_messages
                FROM message_stats
                WHERE chat_id = ?
                """,
                (chat_id,),
            ).fetchone()
            return ChatSummary(
                chat_id=chat_id,
                total_users=row["total_users"],
                total_messages=row["total_messages"],
                max_messages=row["max_messages"],
            )
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get chat summary: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_stats(row: sqlite3.Row) -> MessageStats:
        return MessageStats(
            user_id=row["user_id"],
            chat_id=row["chat_id"],
            message_count=row["message_count"],
            last_message_at=_parse_ts(row["last_message_at"]),
        )

    # Ranks -------------------------------------------------------------

    def list_ranks(self, category: str | None = None) -> list[Rank]:
        """Return catalog ranks ordered by threshold.

        Args:
            category: Optional ladder to restrict the result to

        Returns:
            Ranks ordered by ``min_messages`` then insertion order
        """
        conn = self._get_connection()
        try:
            if category is None:
                rows = conn.execute(
                    "SELECT * FROM ranks ORDER BY min_messages ASC, id ASC"
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM ranks WHERE category = ? "
                    "ORDER BY min_messages ASC, id ASC",
                    (category,),
                ).fetchall()
            return [self._row_to_rank(row) for row in rows]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to list ranks: {e}") from e
        finally:
            conn.close()

    def add_rank(self, rank: Rank) -> Rank:
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT INTO ranks (name, category, min_messages, description, emoji)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    rank.name,
                    rank.category,
                    rank.min_messages,
                    rank.description,
                    rank.emoji,
                ),
            )
            conn.commit()
            return rank.model_copy(update={"id": cursor.lastrowid})
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to add rank '{rank.name}': {e}") from e
        finally:
            conn.close()

    def seed_ranks(self, ranks: Iterable[Rank]) -> int:
        """Insert ranks only when the catalog is empty.

        Args:
            ranks: Ranks to seed

        Returns:
            Number of ranks inserted (0 if the catalog already had ranks)
        """
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            existing = conn.execute("SELECT COUNT(*) FROM ranks").fetchone()[0]
            if existing:
                conn.rollback()
                return 0

            inserted = 0
            for rank in ranks:
                conn.execute(
                    """
                    INSERT INTO ranks (name, category, min_messages, description, emoji)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        rank.name,
                        rank.category,
                        rank.min_messages,
                        rank.description,
                        rank.emoji,
                    ),
                )
                inserted += 1
            conn.commit()
            logger.info("rank_catalog_seeded", ranks=inserted)
            return inserted
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to seed ranks: {e}") from e
        finally:
            conn.close()

    def get_user_rank(self, user_id: int) -> Rank | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                """
                SELECT r.*
                FROM ranks r
                INNER JOIN user_ranks ur ON r.id = ur.rank_id
                WHERE ur.user_id = ?
                """,
                (user_id,),
            ).fetchone()
            return self._row_to_rank(row) if row else None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get user rank: {e}") from e
        finally:
            conn.close()

    def assign_rank(self, user_id: int, rank_id: int) -> None:
        """Set the user's current rank, replacing any previous assignment.

        Args:
            user_id: User receiving the rank
            rank_id: Catalog id of the rank

        Raises:
            RepositoryError: On storage errors (including an unknown rank id)
        """
        conn = self._get_connection()
        try:
            conn.execute(
                """
                INSERT INTO user_ranks (user_id, rank_id, earned_at)
                VALUES (?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    rank_id = excluded.rank_id,
                    earned_at = excluded.earned_at
                """,
                (user_id, rank_id, _now_iso()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to assign rank: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_rank(row: sqlite3.Row) -> Rank:
        return Rank(
            id=row["id"],
            name=row["name"],
            category=row["category"],
            min_messages=row["min_messages"],
            description=row["description"] or "",
            emoji=row["emoji"] or "",
        )

    # Chat settings -----------------------------------------------------

    def get_or_create_chat_settings(self, chat_id: int) -> ChatSettings:
        """Return settings for a chat, creating defaults on first access.

        ``INSERT OR IGNORE`` on the primary key makes the first writer win;
        a concurrent loser simply reads the winner's row.

        Args:
            chat_id: Chat identifier

        Returns:
            Current settings
        """
        now = _now_iso()
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO chat_settings
                    (chat_id, jokes_enabled, jokes_interval, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    chat_id,
                    int(DEFAULT_AUTOPOST_ENABLED),
                    self._default_interval_minutes,
                    now,
                    now,
                ),
            )
            conn.commit()
            if cursor.rowcount:
                logger.debug("chat_settings_created", chat_id=chat_id)
            row = conn.execute(
                "SELECT * FROM chat_settings WHERE chat_id = ?", (chat_id,)
            ).fetchone()
            return self._row_to_settings(row)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get chat settings: {e}") from e
        finally:
            conn.close()

    def update_chat_settings(
        self, chat_id: int, update: ChatSettingsUpdate
    ) -> ChatSettings:
        """Apply a partial settings update.

        Fields left as ``None`` keep their stored value. The row is created
        with defaults first if the chat has never been seen.

        Args:
            chat_id: Chat identifier
            update: Fields to overwrite

        Returns:
            Settings after the update

        Raises:
            ValidationError: If ``interval_minutes`` is below the minimum
            RepositoryError: On storage errors
        """
        update.ensure_valid()

        enabled_param = None if update.enabled is None else int(update.enabled)
        now = _now_iso()
        conn = self._get_connection()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute(
                """
                INSERT OR IGNORE INTO chat_settings
                    (chat_id, jokes_enabled, jokes_interval, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    chat_id,
                    int(DEFAULT_AUTOPOST_ENABLED),
                    self._default_interval_minutes,
                    now,
                    now,
                ),
            )
            conn.execute(
                """
                UPDATE chat_settings
                SET jokes_enabled = COALESCE(?, jokes_enabled),
                    jokes_interval = COALESCE(?, jokes_interval),
                    updated_at = ?
                WHERE chat_id = ?
                """,
                (enabled_param, update.interval_minutes, now, chat_id),
            )
            row = conn.execute(
                "SELECT * FROM chat_settings WHERE chat_id = ?", (chat_id,)
            ).fetchone()
            conn.commit()
            return self._row_to_settings(row)
        except sqlite3.Error as e:
            conn.rollback()
            raise RepositoryError(f"Failed to update chat settings: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _row_to_settings(row: sqlite3.Row) -> ChatSettings:
        return ChatSettings(
            chat_id=row["chat_id"],
            enabled=bool(row["jokes_enabled"]),
            interval_minutes=row["jokes_interval"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    # Jokes -------------------------------------------------------------

    def add_joke(self, content: str, category: str = "general") -> Joke:
        joke = Joke(content=content, category=category)
        conn = self._get_connection()
        try:
            cursor = conn.execute(
                "INSERT INTO jokes (content, category, used_count, created_at) "
                "VALUES (?, ?, 0, ?)",
                (joke.content, joke.category, joke.created_at.isoformat()),
            )
            conn.commit()
            return joke.model_copy(update={"id": cursor.lastrowid})
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to add joke: {e}") from e
        finally:
            conn.close()

    def get_random_joke(self, category: str | None = None) -> Joke | None:
        conn = self._get_connection()
        try:
            if category is None:
                row = conn.execute(
                    "SELECT * FROM jokes ORDER BY RANDOM() LIMIT 1"
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM jokes WHERE category = ? ORDER BY RANDOM() LIMIT 1",
                    (category,),
                ).fetchone()
            if row is None:
                return None
            return Joke(
                id=row["id"],
                content=row["content"],
                category=row["category"],
                used_count=row["used_count"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get random joke: {e}") from e
        finally:
            conn.close()

    def mark_joke_used(self, joke_id: int) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                "UPDATE jokes SET used_count = used_count + 1 WHERE id = ?",
                (joke_id,),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to mark joke used: {e}") from e
        finally:
            conn.close()

    def record_joke_sent(self, joke_id: int, chat_id: int) -> None:
        conn = self._get_connection()
        try:
            conn.execute(
                "INSERT INTO joke_history (joke_id, chat_id, sent_at) VALUES (?, ?, ?)",
                (joke_id, chat_id, _now_iso()),
            )
            conn.commit()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to record joke history: {e}") from e
        finally:
            conn.close()

    def get_joke_history(self, chat_id: int, limit: int = 10) -> list[JokeHistoryEntry]:
        conn = self._get_connection()
        try:
            rows = conn.execute(
                """
                SELECT joke_id, chat_id, sent_at FROM joke_history
                WHERE chat_id = ?
                ORDER BY sent_at DESC, id DESC
                LIMIT ?
                """,
                (chat_id, limit),
            ).fetchall()
            return [
                JokeHistoryEntry(
                    joke_id=row["joke_id"],
                    chat_id=row["chat_id"],
                    sent_at=datetime.fromisoformat(row["sent_at"]),
                )
                for row in rows
            ]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get joke history: {e}") from e
        finally:
            conn.close()


__all__ = ["SQLiteRepository"]
