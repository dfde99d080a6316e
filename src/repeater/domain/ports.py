"""
Ports (interfaces) for card persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Collection, Iterable
from datetime import datetime

from .models import CollectionStats, Grade, ReviewState


class CardRepository(ABC):
    """
    Port for storing per-card review state keyed by identity.

    Implementations:
        - SqliteCardStore: aiosqlite over a bounded connection pool.
    """

    @abstractmethod
    async def ensure_card(self, identity: str, now: datetime | None = None) -> None:
        """Insert the identity as a new card unless it already exists."""
        pass

    @abstractmethod
    async def ensure_cards_batch(
        self, identities: Iterable[str], now: datetime | None = None
    ) -> None:
        """
        Insert every identity that is not stored yet.

        All-or-nothing: a failure leaves no partial rows behind.
        """
        pass

    @abstractmethod
    async def card_exists(self, identity: str) -> bool:
        pass

    @abstractmethod
    async def get_state(self, identity: str) -> ReviewState:
        """
        Raises:
            CardNotFoundError: The identity was never inserted.
        """
        pass

    @abstractmethod
    async def record_review(
        self, identity: str, grade: Grade, now: datetime | None = None
    ) -> bool:
        """
        Apply a grade and persist the updated state.

        Returns:
            False if no row matched the identity.
        """
        pass

    @abstractmethod
    async def due_set(
        self,
        candidate_identities: Collection[str],
        limit: int | None = None,
        new_limit: int | None = None,
        now: datetime | None = None,
    ) -> list[str]:
        """
        Identities among the candidates that are due (or were never reviewed).
        """
        pass

    @abstractmethod
    async def collection_stats(
        self, candidate_identities: Collection[str], now: datetime | None = None
    ) -> CollectionStats:
        pass

    @abstractmethod
    async def all_identities(self) -> list[str]:
        pass
