"""Rank assignment use case.

Decides the best rank for a user's message count and persists/announces a
transition at most once per change.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

from src.config.logging_config import get_logger
from src.domain.events import RankEarned
from src.domain.exceptions import ValidationError
from src.domain.models import Rank
from src.domain.protocols import RankStoreProtocol
from src.observability.metrics import RANKS_EARNED_TOTAL
from src.services.event_channel import EventChannel
from src.services.rank_catalog import RankCatalog

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class NoChange:
    """Evaluation result when the stored rank is already the best one."""

    user_id: int
    chat_id: int
    current_rank: Rank | None
    best_rank: Rank | None


RankOutcome = RankEarned | NoChange


@dataclass(slots=True)
class _UserLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    holders: int = 0


class RankAssigner:
    """Compute and persist rank transitions.

    Evaluations for the same user are serialized so two concurrent messages
    cannot both observe "no rank yet" and both announce the transition.
    Different users never contend, and a user's lock is dropped once no
    evaluation holds or waits on it.
    """

    def __init__(
        self,
        ranks: RankStoreProtocol,
        events: EventChannel,
        *,
        category: str | None = None,
    ) -> None:
        self._ranks = ranks
        self._events = events
        self._category = category
        self._user_locks: dict[int, _UserLock] = {}
        self._user_locks_guard = threading.Lock()

    @contextmanager
    def _locked(self, user_id: int) -> Iterator[None]:
        with self._user_locks_guard:
            entry = self._user_locks.get(user_id)
            if entry is None:
                entry = self._user_locks[user_id] = _UserLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._user_locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._user_locks[user_id]

    def evaluate(
        self,
        user_id: int,
        chat_id: int,
        message_count: int,
        *,
        thread_id: int | None = None,
    ) -> RankOutcome:
        """Evaluate a user's rank after a message was counted.

        Args:
            user_id: User whose count changed
            chat_id: Chat whose counter produced ``message_count``
            message_count: Current count (must be >= 0)
            thread_id: Topic thread to announce the transition in, if any

        Returns:
            ``RankEarned`` when the best rank differs from the stored one,
            otherwise ``NoChange``

        Raises:
            ValidationError: If ``message_count`` is negative
            RepositoryError: If reading or writing the assignment fails
        """
        if message_count < 0:
            raise ValidationError(f"message_count must be >= 0, got {message_count}")

        catalog = RankCatalog.from_store(self._ranks, self._category)
        best = catalog.best_for(message_count)

        with self._locked(user_id):
            current = self._ranks.get_user_rank(user_id)
            if best is None or best.id is None or (
                current is not None and current.id == best.id
            ):
                logger.debug(
                    "rank_unchanged",
                    user_id=user_id,
                    chat_id=chat_id,
                    message_count=message_count,
                    rank=current.name if current else None,
                    catalog_size=len(catalog),
                )
                return NoChange(
                    user_id=user_id,
                    chat_id=chat_id,
                    current_rank=current,
                    best_rank=best,
                )

            self._ranks.assign_rank(user_id, best.id)

        event = RankEarned(
            user_id=user_id, rank=best, chat_id=chat_id, thread_id=thread_id
        )
        RANKS_EARNED_TOTAL.labels(category=best.category).inc()
        logger.info(
            "rank_earned",
            user_id=user_id,
            chat_id=chat_id,
            message_count=message_count,
            rank=best.name,
            previous_rank=current.name if current else None,
        )
        self._events.publish(event)
        return event


__all__ = ["NoChange", "RankAssigner", "RankOutcome"]
