import asyncio
from datetime import date, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from flashdeck.application.session.manager import ReviewSession, SessionStatus, parse_rating
from flashdeck.domain.errors import (
    DeckNotFoundError,
    NothingToUndoError,
    SessionBusyError,
    SessionStateError,
    StoreFailure,
    ValidationError,
)
from flashdeck.domain.review.models import (
    DeckConfig,
    LearningStage,
    QuotaState,
    Rating,
    RatingTally,
)
from flashdeck.domain.review.ports import CardStore
from flashdeck.infrastructure.adapters.memory import InMemoryCardStore, InMemoryQuotaStore

NOW = datetime(2026, 3, 14, 15, 30)
TODAY = date(2026, 3, 14)
PAST = NOW - timedelta(days=2)


class FlakyCardStore(InMemoryCardStore):
    fail_persist = False
    fail_revert = False

    async def persist_review(self, card_id, memory):
        if self.fail_persist:
            raise StoreFailure("card store unavailable")
        return await super().persist_review(card_id, memory)

    async def revert_review(self, card_id):
        if self.fail_revert:
            raise StoreFailure("card store unavailable")
        return await super().revert_review(card_id)


class FlakyQuotaStore(InMemoryQuotaStore):
    fail_put = False

    async def put(self, deck_id, day, state):
        if self.fail_put:
            raise StoreFailure("quota store unavailable")
        await super().put(deck_id, day, state)


@pytest.fixture
def card_store(clock):
    # Same deck as the shared fixture, but able to fail on demand
    store = FlakyCardStore(clock)
    store.add_deck(DeckConfig(deck_id="spanish", name="Spanish"))
    return store


@pytest.fixture
def quota_store():
    return FlakyQuotaStore()


@pytest.fixture
def seeded(card_store, make_card):
    """One review card due two days ago plus two new cards."""
    card_store.add_card(make_card("r0", repetitions=2, interval_days=3, next_review_at=PAST))
    card_store.add_card(make_card("n0"))
    card_store.add_card(make_card("n1"))
    return card_store


@pytest.fixture
def session(seeded, quota_store, clock):
    return ReviewSession("spanish", seeded, quota_store, clock)


async def rate_current(session, rating):
    return await session.submit_rating(session.current_card, rating)


class TestLoad:
    @pytest.mark.asyncio
    async def test_builds_queue(self, session):
        status = await session.load()

        assert status is SessionStatus.ACTIVE
        assert [c.id for c in session.queue] == ["r0", "n0", "n1"]
        assert session.review_card_count == 1
        assert session.new_card_count == 2
        assert session.current_card.id == "r0"
        assert session.quota == QuotaState(date_stamp=NOW)
        assert not session.can_undo

    @pytest.mark.asyncio
    async def test_all_caught_up_reports_next_review(self, card_store, quota_store, clock, make_card):
        upcoming = NOW + timedelta(days=2)
        card_store.add_card(make_card("r0", repetitions=3, interval_days=8, next_review_at=upcoming))
        session = ReviewSession("spanish", card_store, quota_store, clock)

        assert await session.load() is SessionStatus.ALL_CAUGHT_UP

        summary = session.summary()
        assert summary.next_review_at == upcoming
        assert summary.next_review_message == "Next review in 2 days"
        assert session.current_card is None

    @pytest.mark.asyncio
    async def test_exhausted_quota_means_caught_up(self, session, quota_store):
        quota_store.entries[("spanish", TODAY)] = QuotaState(
            date_stamp=NOW - timedelta(hours=2), reviewed_count=10, learned_count=20
        )

        assert await session.load() is SessionStatus.ALL_CAUGHT_UP

        summary = session.summary()
        assert summary.due_review_total == 1
        assert summary.due_new_total == 2
        assert summary.total_cards == 0

    @pytest.mark.asyncio
    async def test_ahead_days_pulls_in_future_cards(self, card_store, quota_store, clock, make_card):
        card_store.add_card(
            make_card("r0", repetitions=3, interval_days=8, next_review_at=NOW + timedelta(days=3))
        )

        normal = ReviewSession("spanish", card_store, quota_store, clock)
        ahead = ReviewSession("spanish", card_store, quota_store, clock, ahead_days=5)

        assert await normal.load() is SessionStatus.ALL_CAUGHT_UP
        assert await ahead.load() is SessionStatus.ACTIVE
        assert ahead.current_card.id == "r0"

    def test_negative_ahead_days_rejected(self, seeded, quota_store, clock):
        with pytest.raises(ValidationError):
            ReviewSession("spanish", seeded, quota_store, clock, ahead_days=-1)

    @pytest.mark.asyncio
    async def test_store_failure_stays_loading(self, quota_store, clock):
        store = AsyncMock(spec=CardStore)
        store.fetch_deck.side_effect = StoreFailure("offline")
        session = ReviewSession("spanish", store, quota_store, clock)

        with pytest.raises(StoreFailure):
            await session.load()

        assert session.status is SessionStatus.LOADING
        assert str(session.error) == "offline"
        store.fetch_due_cards.assert_not_called()

    @pytest.mark.asyncio
    async def test_unknown_deck(self, card_store, quota_store, clock):
        session = ReviewSession("german", card_store, quota_store, clock)

        with pytest.raises(DeckNotFoundError):
            await session.load()


class TestSubmitRating:
    @pytest.mark.asyncio
    async def test_persists_and_advances(self, session, seeded, quota_store):
        await session.load()

        memory = await rate_current(session, Rating.GOOD)

        stored = await seeded.fetch_card("r0")
        assert stored.memory == memory
        assert memory.repetitions == 3
        assert session.cursor == 1
        assert session.current_card.id == "n0"
        assert session.rating_tally == RatingTally(good=1)
        assert quota_store.entries[("spanish", TODAY)].reviewed_count == 1
        assert session.can_undo

    @pytest.mark.asyncio
    async def test_new_cards_count_as_learned(self, session, quota_store):
        await session.load()

        await rate_current(session, 3)
        await rate_current(session, 1)

        quota = quota_store.entries[("spanish", TODAY)]
        assert (quota.reviewed_count, quota.learned_count) == (1, 1)

    @pytest.mark.asyncio
    async def test_completes_after_last_card(self, session):
        await session.load()

        for rating in (4, 3, 2):
            await rate_current(session, rating)

        assert session.status is SessionStatus.COMPLETED
        assert session.current_card is None
        summary = session.summary()
        assert summary.progress_percent == 100
        assert summary.ratings == {"again": 0, "hard": 1, "good": 1, "easy": 1}

    @pytest.mark.asyncio
    async def test_rejects_rating_after_completion(self, session, make_card):
        await session.load()
        for _ in range(3):
            await rate_current(session, 3)

        with pytest.raises(SessionStateError):
            await session.submit_rating(make_card("n1"), 3)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 5, -1, True])
    async def test_rejects_invalid_rating(self, session, seeded, rating):
        await session.load()
        before = await seeded.fetch_card("r0")

        with pytest.raises(ValidationError):
            await rate_current(session, rating)

        assert await seeded.fetch_card("r0") == before
        assert session.cursor == 0

    @pytest.mark.asyncio
    async def test_rejects_card_that_is_not_current(self, session):
        await session.load()

        with pytest.raises(ValidationError):
            await session.submit_rating(session.queue[1], 3)

        assert session.cursor == 0

    @pytest.mark.asyncio
    async def test_card_store_failure_leaves_session_unchanged(self, session, seeded, quota_store):
        await session.load()
        seeded.fail_persist = True

        with pytest.raises(StoreFailure):
            await rate_current(session, 3)

        assert session.cursor == 0
        assert session.rating_tally == RatingTally()
        assert not session.can_undo
        assert quota_store.entries[("spanish", TODAY)].reviewed_count == 0

    @pytest.mark.asyncio
    async def test_quota_failure_reverts_card(self, session, seeded, quota_store):
        await session.load()
        original = await seeded.fetch_card("r0")
        quota_store.fail_put = True

        with pytest.raises(StoreFailure):
            await rate_current(session, 3)

        assert (await seeded.fetch_card("r0")).memory == original.memory
        assert session.cursor == 0
        assert not session.can_undo

    @pytest.mark.asyncio
    async def test_retry_after_failure_gives_same_result(self, session, seeded, quota_store):
        await session.load()
        expected = session.preview()[Rating.GOOD]
        seeded.fail_persist = True

        with pytest.raises(StoreFailure):
            await rate_current(session, 3)

        seeded.fail_persist = False
        assert await rate_current(session, 3) == expected
        assert quota_store.entries[("spanish", TODAY)].reviewed_count == 1

    @pytest.mark.asyncio
    async def test_concurrent_rating_is_rejected(self, quota_store, clock, make_card):
        class GatedStore(InMemoryCardStore):
            def __init__(self, clock):
                super().__init__(clock)
                self.gate = asyncio.Event()

            async def persist_review(self, card_id, memory):
                await self.gate.wait()
                return await super().persist_review(card_id, memory)

        store = GatedStore(clock)
        store.add_deck(DeckConfig(deck_id="spanish"))
        store.add_card(make_card("n0"))
        session = ReviewSession("spanish", store, quota_store, clock)
        await session.load()
        card = session.current_card

        in_flight = asyncio.create_task(session.submit_rating(card, 3))
        await asyncio.sleep(0)

        with pytest.raises(SessionBusyError):
            await session.submit_rating(card, 3)
        with pytest.raises(SessionBusyError):
            await session.undo()

        store.gate.set()
        await in_flight
        assert session.status is SessionStatus.COMPLETED
        assert session.rating_tally.total == 1


class TestUndo:
    @pytest.mark.asyncio
    async def test_restores_session_and_store(self, session, seeded, quota_store):
        await session.load()
        before_card = await seeded.fetch_card("r0")
        before_quota = session.quota

        await rate_current(session, 4)
        reverted = await session.undo()

        assert reverted == before_card
        assert await seeded.fetch_card("r0") == before_card
        assert session.cursor == 0
        assert session.current_card.id == "r0"
        assert session.rating_tally == RatingTally()
        assert session.quota == before_quota
        assert quota_store.entries[("spanish", TODAY)] == before_quota
        assert not session.can_undo

    @pytest.mark.asyncio
    async def test_multiple_undos_unwind_in_order(self, session):
        await session.load()
        await rate_current(session, 3)
        await rate_current(session, 1)

        assert (await session.undo()).id == "n0"
        assert (await session.undo()).id == "r0"
        with pytest.raises(NothingToUndoError):
            await session.undo()

    @pytest.mark.asyncio
    async def test_undo_after_completion_reactivates(self, session):
        await session.load()
        for _ in range(3):
            await rate_current(session, 3)

        await session.undo()

        assert session.status is SessionStatus.ACTIVE
        assert session.current_card.id == "n1"

    @pytest.mark.asyncio
    async def test_failed_revert_keeps_undo_available(self, session, seeded, quota_store):
        await session.load()
        await rate_current(session, 3)
        rated = await seeded.fetch_card("r0")
        seeded.fail_revert = True

        with pytest.raises(StoreFailure):
            await session.undo()

        assert session.undo_depth == 1
        assert session.cursor == 1
        assert session.summary().undo_depth == 1
        assert await seeded.fetch_card("r0") == rated
        assert quota_store.entries[("spanish", TODAY)].reviewed_count == 1

        seeded.fail_revert = False
        await session.undo()
        assert session.cursor == 0

    @pytest.mark.asyncio
    async def test_nothing_to_undo(self, session):
        await session.load()

        with pytest.raises(NothingToUndoError):
            await session.undo()

    @pytest.mark.asyncio
    async def test_undo_while_loading(self, session):
        with pytest.raises(SessionStateError):
            await session.undo()


class TestReviewAgain:
    @pytest.mark.asyncio
    async def test_failed_card_returns_after_delay(self, card_store, quota_store, clock, make_card):
        card_store.add_card(make_card("n0"))
        session = ReviewSession("spanish", card_store, quota_store, clock)
        await session.load()

        memory = await rate_current(session, Rating.AGAIN)
        assert memory.learning_stage is LearningStage.RELEARNING
        assert session.status is SessionStatus.COMPLETED

        # Not due yet
        assert await session.review_again() is SessionStatus.ALL_CAUGHT_UP
        assert session.summary().next_review_message == "Next review in 10 minutes"

        clock.advance(minutes=11)
        assert await session.review_again() is SessionStatus.ACTIVE
        assert session.current_card.id == "n0"
        assert session.rating_tally == RatingTally(again=1)
        assert not session.can_undo

    @pytest.mark.asyncio
    async def test_only_after_finishing(self, session):
        await session.load()

        with pytest.raises(SessionStateError):
            await session.review_again()


class TestQueries:
    @pytest.mark.asyncio
    async def test_preview_has_no_side_effects(self, session, seeded, quota_store):
        await session.load()
        before = await seeded.fetch_card("r0")
        entries = dict(quota_store.entries)

        first = session.preview()
        second = session.preview()

        assert first == second
        assert await seeded.fetch_card("r0") == before
        assert quota_store.entries == entries
        assert session.cursor == 0

    @pytest.mark.asyncio
    async def test_predicted_intervals(self, session):
        await session.load()

        # r0: repetitions=2, interval=3, ef=2.5
        assert session.predicted_intervals() == {
            Rating.AGAIN: "10 min",
            Rating.HARD: "7 days",
            Rating.GOOD: "8 days",
            Rating.EASY: "8 days",
        }

    @pytest.mark.asyncio
    async def test_progress(self, session):
        await session.load()
        await rate_current(session, 3)

        summary = session.summary()
        assert summary.position == 2
        assert summary.total_cards == 3
        assert summary.progress_percent == 33

    def test_preview_without_card(self, session):
        with pytest.raises(SessionStateError):
            session.preview()


def test_parse_rating():
    assert parse_rating(2) is Rating.HARD
    with pytest.raises(ValidationError):
        parse_rating(7)


class TestClose:
    @pytest.mark.asyncio
    async def test_aclose_releases_card_store(self, quota_store, clock):
        store = AsyncMock(spec=CardStore)
        session = ReviewSession("spanish", store, quota_store, clock)

        await session.aclose()

        store.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_summary_counts_undo_depth(self, session):
        await session.load()
        await rate_current(session, 3)
        await rate_current(session, 4)

        assert session.summary().undo_depth == 2
        await session.undo()
        assert session.summary().undo_depth == 1
