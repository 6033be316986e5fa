"""
Queue builder for review sessions.

Builds the ordered session queue by:
1. Filtering the store's cards down to due, unsuspended candidates
2. Partitioning them into review cards and new cards
3. Slicing each partition to the day's remaining quota
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from flashdeck.application.scheduler.sm2 import is_due
from flashdeck.domain.review.models import Card, DeckConfig, QuotaState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueueBuildResult:
    """Result of queue building."""

    review_cards: tuple[Card, ...]  # Sliced review-stage cards
    new_cards: tuple[Card, ...]  # Sliced never-passed cards
    due_review_total: int  # Review candidates before the quota cut
    due_new_total: int  # New candidates before the quota cut

    @property
    def queue(self) -> tuple[Card, ...]:
        # Review cards always precede new cards
        return self.review_cards + self.new_cards


def remaining_quota(deck: DeckConfig, quota: QuotaState) -> tuple[int, int]:
    """Return (remaining_review, remaining_learn), never negative."""
    remaining_review = max(0, deck.review_cap_per_session - quota.reviewed_count)
    remaining_learn = max(0, deck.learn_cap_per_session - quota.learned_count)
    return remaining_review, remaining_learn


def build_session_queue(
    cards: list[Card],
    deck: DeckConfig,
    quota: QuotaState,
    now: datetime,
) -> QueueBuildResult:
    """
    Build a session queue from the store's candidate cards.

    Args:
        cards: Cards returned by the card store, in store order.
        deck: Deck caps.
        quota: Today's progress counters.
        now: Candidate horizon; cards scheduled after it are dropped.

    Returns:
        QueueBuildResult with both slices and the pre-cut totals.
    """
    review_cards, new_cards = partition_candidates(cards, now)
    remaining_review, remaining_learn = remaining_quota(deck, quota)

    review_slice = tuple(review_cards[: min(len(review_cards), remaining_review)])
    new_slice = tuple(new_cards[: min(len(new_cards), remaining_learn)])

    logger.debug(
        f"deck={deck.deck_id} due review={len(review_cards)} new={len(new_cards)} "
        f"remaining review={remaining_review} learn={remaining_learn}"
    )

    return QueueBuildResult(
        review_cards=review_slice,
        new_cards=new_slice,
        due_review_total=len(review_cards),
        due_new_total=len(new_cards),
    )


def partition_candidates(cards: list[Card], now: datetime) -> tuple[list[Card], list[Card]]:
    """
    Split due, unsuspended cards into (review cards, new cards).

    A card with repetitions > 0 is a review card; repetitions == 0 is new,
    which includes cards reset by a failed recall.
    """
    review_cards: list[Card] = []
    new_cards: list[Card] = []

    for card in cards:
        if card.is_suspended or not is_due(card.memory.next_review_at, now):
            continue
        if card.memory.repetitions > 0:
            review_cards.append(card)
        else:
            new_cards.append(card)

    return review_cards, new_cards
