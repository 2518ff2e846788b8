"""Rank catalog: the ordered set of tiers and eligibility queries."""

from __future__ import annotations

from collections.abc import Sequence

from src.domain.models import Rank
from src.domain.protocols import RankStoreProtocol


class RankCatalog:
    """Read-only view over the configured rank tiers."""

    def __init__(self, ranks: Sequence[Rank]) -> None:
        self._ranks: tuple[Rank, ...] = tuple(ranks)

    @classmethod
    def from_store(
        cls, store: RankStoreProtocol, category: str | None = None
    ) -> RankCatalog:
        """Load the catalog from the rank store, optionally one ladder only."""

        return cls(store.list_ranks(category))

    def all_tiers(self) -> list[Rank]:
        return list(self._ranks)

    @staticmethod
    def is_eligible(tier: Rank, message_count: int) -> bool:
        return tier.is_eligible(message_count)

    def best_for(self, message_count: int) -> Rank | None:
        """Return the eligible tier with the highest threshold.

        Tiers sharing a threshold are a data-quality issue; the first one in
        catalog order wins.

        Args:
            message_count: User's current message count

        Returns:
            Best tier or None if no tier is eligible (including empty catalog)
        """
        best: Rank | None = None
        for tier in self._ranks:
            if not self.is_eligible(tier, message_count):
                continue
            if best is None or tier.min_messages > best.min_messages:
                best = tier
        return best

    def __len__(self) -> int:
        return len(self._ranks)


__all__ = ["RankCatalog"]
