"""
In-memory adapters.

Dict-backed CardStore and QuotaStore. They keep the same revert semantics as
the durable stores, so sessions behave identically against them.
"""

from datetime import date, datetime

from flashdeck.domain.errors import CardNotFoundError, DeckNotFoundError, StoreFailure
from flashdeck.domain.review.models import Card, CardMemoryState, DeckConfig, QuotaState
from flashdeck.domain.review.ports import CardStore, Clock, QuotaStore
from flashdeck.infrastructure.clock import SystemClock


def earliest_review(cards: list[Card]) -> datetime | None:
    """Earliest scheduled review among a deck's active cards."""
    scheduled = [
        c.memory.next_review_at
        for c in cards
        if not c.is_suspended and c.memory.next_review_at is not None
    ]
    return min(scheduled) if scheduled else None


def due_by(card: Card, horizon: datetime) -> bool:
    return card.memory.next_review_at is None or card.memory.next_review_at <= horizon


class InMemoryCardStore(CardStore):
    def __init__(self, clock: Clock | None = None):
        self._clock = clock or SystemClock()
        self._decks: dict[str, DeckConfig] = {}
        self._cards: dict[str, Card] = {}
        self._history: dict[str, list[CardMemoryState]] = {}

    def add_deck(self, deck: DeckConfig) -> DeckConfig:
        self._decks[deck.deck_id] = deck
        return deck

    def add_card(self, card: Card) -> Card:
        if card.deck_id not in self._decks:
            raise DeckNotFoundError(card.deck_id)
        self._cards[card.id] = card
        self._history.setdefault(card.id, [])
        return card

    def cards_in_deck(self, deck_id: str) -> list[Card]:
        return [c for c in self._cards.values() if c.deck_id == deck_id]

    async def fetch_due_cards(self, deck_id: str, until: datetime | None = None) -> list[Card]:
        if deck_id not in self._decks:
            raise DeckNotFoundError(deck_id)
        horizon = until or self._clock.now()
        return [
            c
            for c in self.cards_in_deck(deck_id)
            if not c.is_suspended and due_by(c, horizon)
        ]

    async def fetch_card(self, card_id: str) -> Card:
        try:
            return self._cards[card_id]
        except KeyError:
            raise CardNotFoundError(card_id) from None

    async def persist_review(self, card_id: str, memory: CardMemoryState) -> Card:
        card = await self.fetch_card(card_id)
        self._history[card_id].append(card.memory)
        updated = card.with_memory(memory)
        self._cards[card_id] = updated
        return updated

    async def revert_review(self, card_id: str) -> Card:
        card = await self.fetch_card(card_id)
        history = self._history[card_id]
        if not history:
            raise StoreFailure(f"Card {card_id} has no review to revert")
        reverted = card.with_memory(history.pop())
        self._cards[card_id] = reverted
        return reverted

    async def fetch_deck(self, deck_id: str) -> DeckConfig:
        try:
            deck = self._decks[deck_id]
        except KeyError:
            raise DeckNotFoundError(deck_id) from None
        return DeckConfig(
            deck_id=deck.deck_id,
            name=deck.name,
            review_cap_per_session=deck.review_cap_per_session,
            learn_cap_per_session=deck.learn_cap_per_session,
            next_review_at=earliest_review(self.cards_in_deck(deck_id)),
        )


class InMemoryQuotaStore(QuotaStore):
    def __init__(self):
        self.entries: dict[tuple[str, date], QuotaState] = {}

    async def get(self, deck_id: str, day: date) -> QuotaState | None:
        return self.entries.get((deck_id, day))

    async def put(self, deck_id: str, day: date, state: QuotaState) -> None:
        self.entries[(deck_id, day)] = state

    async def remove(self, deck_id: str, day: date) -> None:
        self.entries.pop((deck_id, day), None)
