"""
Ports (interfaces) for card storage, quota persistence and time.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime

from .models import Card, CardMemoryState, DeckConfig, QuotaState


class CardStore(ABC):
    """
    Port for reading and updating flashcards.

    Implementations:
        - InMemoryCardStore: dict-backed, used by tests.
        - FileCardStore: one YAML file per deck on local disk.
        - HttpCardStore: the REST backend.
    """

    @abstractmethod
    async def fetch_due_cards(self, deck_id: str, until: datetime | None = None) -> list[Card]:
        """
        Fetch the cards of a deck that are due for review.

        Args:
            deck_id: The deck to query.
            until: Optional horizon; cards due at or before it are included.
                Stores use the current time when not given.

        Returns:
            Due cards in the store's natural order.
        """
        pass

    @abstractmethod
    async def fetch_card(self, card_id: str) -> Card:
        """Fetch a single card. Raises CardNotFoundError if it does not exist."""
        pass

    @abstractmethod
    async def persist_review(self, card_id: str, memory: CardMemoryState) -> Card:
        """
        Store a new memory state for a card after a rating.

        The store must remember the previous state so `revert_review` can undo it.
        """
        pass

    @abstractmethod
    async def revert_review(self, card_id: str) -> Card:
        """Restore the memory state the card had before its most recent review."""
        pass

    @abstractmethod
    async def fetch_deck(self, deck_id: str) -> DeckConfig:
        """Fetch session caps and the earliest upcoming review for a deck."""
        pass

    async def aclose(self) -> None:
        """Release connections or handles held by the store."""


class QuotaStore(ABC):
    """
    Port for durable per-deck, per-day quota counters.

    Survives process restarts; keyed by deck id and calendar day.
    """

    @abstractmethod
    async def get(self, deck_id: str, day: date) -> QuotaState | None:
        pass

    @abstractmethod
    async def put(self, deck_id: str, day: date, state: QuotaState) -> None:
        pass

    @abstractmethod
    async def remove(self, deck_id: str, day: date) -> None:
        pass


class Clock(ABC):
    """Source of the current time."""

    @abstractmethod
    def now(self) -> datetime:
        pass
