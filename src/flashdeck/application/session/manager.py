"""
Review session manager: application layer orchestrator.

Drives one review session for one deck:

    LOADING -> ACTIVE -> COMPLETED | ALL_CAUGHT_UP

ACTIVE loops on each rating until the queue is exhausted. COMPLETED offers
`review_again`, which re-runs due-card selection. Store I/O happens before
any local state changes, so a failed call leaves the session where it was
and retrying is safe.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from flashdeck.application.scheduler.sm2 import (
    SM2Scheduler,
    default_scheduler,
    describe_interval,
    rating_to_quality,
)
from flashdeck.application.session.queue_builder import build_session_queue
from flashdeck.application.session.quota import QuotaTracker
from flashdeck.application.utils.text import describe_next_review, progress_percent
from flashdeck.domain.errors import (
    NothingToUndoError,
    SessionBusyError,
    SessionStateError,
    StoreFailure,
    ValidationError,
)
from flashdeck.domain.review.models import (
    Card,
    CardMemoryState,
    DeckConfig,
    QuotaState,
    Rating,
    RatingTally,
    SessionSnapshot,
)
from flashdeck.domain.review.ports import CardStore, Clock, QuotaStore

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    LOADING = "loading"
    ACTIVE = "active"
    COMPLETED = "completed"
    ALL_CAUGHT_UP = "all_caught_up"


@dataclass(frozen=True)
class SessionSummary:
    """Snapshot of session progress for display."""

    status: SessionStatus
    total_cards: int
    position: int
    progress_percent: int
    review_cards: int
    new_cards: int
    ratings: dict[str, int]
    next_review_at: datetime | None
    next_review_message: str | None
    # Due cards before the daily caps were applied
    due_review_total: int = 0
    due_new_total: int = 0
    undo_depth: int = 0


def parse_rating(rating: int) -> Rating:
    """Validate a rating button value (1-4)."""
    if isinstance(rating, bool):
        raise ValidationError(f"Rating must be 1-4, got {rating!r}")
    try:
        return Rating(rating)
    except ValueError as e:
        raise ValidationError(f"Rating must be 1-4, got {rating!r}") from e


class ReviewSession:
    """
    Stateful orchestrator for a single review session.

    Depends on the CardStore, QuotaStore and Clock ports, never on concrete
    adapters. Rating and undo are serialized: a second call while one is
    in flight raises SessionBusyError.
    """

    def __init__(
        self,
        deck_id: str,
        card_store: CardStore,
        quota_store: QuotaStore,
        clock: Clock,
        scheduler: SM2Scheduler | None = None,
        ahead_days: int = 0,
    ):
        """
        Args:
            deck_id: Deck to review.
            card_store: The port for reading and updating cards.
            quota_store: The port for daily quota counters.
            clock: Time source.
            scheduler: Optional custom scheduler; uses the default if not provided.
            ahead_days: Custom study lookahead. Cards due within this many days
                from now are included.
        """
        if ahead_days < 0:
            raise ValidationError(f"ahead_days must be >= 0, got {ahead_days}")

        self.deck_id = deck_id
        self._cards = card_store
        self._quota = QuotaTracker(quota_store)
        self._clock = clock
        self._scheduler = scheduler or default_scheduler
        self.ahead_days = ahead_days

        self.status = SessionStatus.LOADING
        self.error: Exception | None = None
        self.deck: DeckConfig | None = None
        self.queue: tuple[Card, ...] = ()
        self.cursor = 0
        self.rating_tally = RatingTally()
        self.quota: QuotaState | None = None
        self.review_card_count = 0
        self.new_card_count = 0
        self.due_review_total = 0
        self.due_new_total = 0
        self.next_review_at: datetime | None = None

        self._undo_stack: deque[SessionSnapshot] = deque(maxlen=1)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> SessionStatus:
        """
        Select due cards and build the queue.

        On a store failure the session stays LOADING, the error is kept on
        `self.error` and re-raised.
        """
        now = self._clock.now()
        horizon = now + timedelta(days=self.ahead_days)

        try:
            deck = await self._cards.fetch_deck(self.deck_id)
            quota = await self._quota.load(self.deck_id, now)
            cards = await self._cards.fetch_due_cards(self.deck_id, until=horizon)
        except StoreFailure as e:
            self.status = SessionStatus.LOADING
            self.error = e
            logger.error(f"Failed to load due cards for deck {self.deck_id}: {e}")
            raise

        result = build_session_queue(cards, deck, quota, horizon)

        self.error = None
        self.deck = deck
        self.quota = quota
        self.queue = result.queue
        self.cursor = 0
        self.review_card_count = len(result.review_cards)
        self.new_card_count = len(result.new_cards)
        self.due_review_total = result.due_review_total
        self.due_new_total = result.due_new_total
        # Each rating pushes one snapshot and advances the cursor once, so the
        # stack can never outgrow the queue.
        self._undo_stack = deque(maxlen=max(1, len(self.queue)))

        if self.queue:
            self.status = SessionStatus.ACTIVE
            self.next_review_at = None
            logger.info(
                f"Session for deck {self.deck_id}: {self.review_card_count} review, "
                f"{self.new_card_count} new"
            )
        else:
            self.status = SessionStatus.ALL_CAUGHT_UP
            self.next_review_at = deck.next_review_at
            logger.info(f"Deck {self.deck_id} is all caught up")

        return self.status

    async def review_again(self) -> SessionStatus:
        """Re-run due-card selection after a finished session."""
        if self.status not in (SessionStatus.COMPLETED, SessionStatus.ALL_CAUGHT_UP):
            raise SessionStateError(f"Cannot restart a session that is {self.status.value}")
        if self._lock.locked():
            raise SessionBusyError("A review is still being saved")

        self.status = SessionStatus.LOADING
        return await self.load()

    async def aclose(self) -> None:
        """Release the card store's connections."""
        await self._cards.aclose()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def current_card(self) -> Card | None:
        if self.status is not SessionStatus.ACTIVE or self.cursor >= len(self.queue):
            return None
        return self.queue[self.cursor]

    @property
    def can_undo(self) -> bool:
        return bool(self._undo_stack)

    @property
    def undo_depth(self) -> int:
        return len(self._undo_stack)

    def preview(self) -> dict[Rating, CardMemoryState]:
        """Outcome of each rating for the current card. Has no side effects."""
        card = self._require_current_card()
        return self._scheduler.preview(card.memory, self._clock.now())

    def predicted_intervals(self) -> dict[Rating, str]:
        """Interval labels for the rating buttons, e.g. {Rating.GOOD: '3 days'}."""
        return {rating: describe_interval(state.interval_days) for rating, state in self.preview().items()}

    def summary(self) -> SessionSummary:
        return SessionSummary(
            status=self.status,
            total_cards=len(self.queue),
            position=min(self.cursor + 1, len(self.queue)),
            progress_percent=progress_percent(self.cursor, len(self.queue)),
            review_cards=self.review_card_count,
            new_cards=self.new_card_count,
            ratings=self.rating_tally.as_dict(),
            next_review_at=self.next_review_at,
            next_review_message=describe_next_review(self.next_review_at, self._clock.now()),
            due_review_total=self.due_review_total,
            due_new_total=self.due_new_total,
            undo_depth=self.undo_depth,
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    async def submit_rating(self, card: Card, rating: int) -> CardMemoryState:
        """
        Rate the current card and advance.

        Args:
            card: The card being rated; must be the current card.
            rating: 1=Again, 2=Hard, 3=Good, 4=Easy.

        Returns:
            The memory state that was persisted.

        Raises:
            ValidationError: bad rating or not the current card.
            StoreFailure: the card or quota store failed; session unchanged.
            SessionBusyError: another rating or undo is in flight.
        """
        if self._lock.locked():
            raise SessionBusyError("A review is already being saved")

        async with self._lock:
            current = self._require_current_card()
            parsed = parse_rating(rating)
            if card.id != current.id:
                raise ValidationError(f"Card {card.id} is not the current card ({current.id})")

            snapshot = SessionSnapshot(
                queue=self.queue,
                cursor=self.cursor,
                rating_tally=self.rating_tally,
                quota=self.quota,
            )
            memory = self._scheduler.schedule(
                current.memory, rating_to_quality(parsed), self._clock.now()
            )

            try:
                await self._cards.persist_review(current.id, memory)
            except StoreFailure as e:
                logger.error(f"Failed to save review for card {current.id}: {e}")
                raise

            try:
                quota = await self._quota.record(self.deck_id, self.quota, was_new=current.is_new)
            except StoreFailure as e:
                logger.error(f"Failed to save quota for deck {self.deck_id}: {e}")
                await self._compensate_review(current.id)
                raise

            self._undo_stack.append(snapshot)
            self.rating_tally = self.rating_tally.increment(parsed)
            self.quota = quota
            self.cursor += 1

            if self.cursor >= len(self.queue):
                self.status = SessionStatus.COMPLETED
                logger.info(f"Session for deck {self.deck_id} completed ({len(self.queue)} cards)")

            return memory

    async def undo(self) -> Card:
        """
        Roll back the most recent rating, both locally and in the card store.

        If the store refuses the reversal nothing is restored and the snapshot
        stays on the stack so the undo can be retried.

        Returns:
            The card as reverted by the store.
        """
        if self._lock.locked():
            raise SessionBusyError("A review is already being saved")

        async with self._lock:
            if self.status not in (SessionStatus.ACTIVE, SessionStatus.COMPLETED):
                raise SessionStateError(f"Cannot undo in a session that is {self.status.value}")
            if not self._undo_stack:
                raise NothingToUndoError("Nothing to undo")

            snapshot = self._undo_stack[-1]
            card = snapshot.rated_card

            await self._quota.save(self.deck_id, snapshot.quota)
            try:
                reverted = await self._cards.revert_review(card.id)
            except StoreFailure as e:
                logger.error(f"Failed to undo review for card {card.id}: {e}")
                await self._restore_quota()
                raise

            self._undo_stack.pop()
            self.queue = snapshot.queue
            self.cursor = snapshot.cursor
            self.rating_tally = snapshot.rating_tally
            self.quota = snapshot.quota
            self.status = SessionStatus.ACTIVE
            logger.info(f"Undid review of card {card.id}")
            return reverted

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_current_card(self) -> Card:
        card = self.current_card
        if card is None:
            raise SessionStateError(f"No card to review; session is {self.status.value}")
        return card

    async def _compensate_review(self, card_id: str) -> None:
        try:
            await self._cards.revert_review(card_id)
        except StoreFailure as e:
            logger.error(f"Compensating revert for card {card_id} failed: {e}")

    async def _restore_quota(self) -> None:
        try:
            await self._quota.save(self.deck_id, self.quota)
        except StoreFailure as e:
            logger.error(f"Could not restore quota for deck {self.deck_id}: {e}")
