"""
Daily quota tracking.

Counters are stored per deck under the calendar day they were started on.
A counter stays live for 24 hours after its stamp, so the live counter is
always filed under today or yesterday.
"""

import logging
from dataclasses import replace
from datetime import date, datetime, timedelta

from flashdeck.domain.constants import QUOTA_WINDOW_HOURS
from flashdeck.domain.review.models import QuotaState
from flashdeck.domain.review.ports import QuotaStore

logger = logging.getLogger(__name__)


def is_expired(state: QuotaState, now: datetime) -> bool:
    return now - state.date_stamp >= timedelta(hours=QUOTA_WINDOW_HOURS)


def storage_day(state: QuotaState) -> date:
    return state.date_stamp.date()


class QuotaTracker:
    """
    Owns every read and write of quota counters for the session manager.

    Args:
        store: Durable key-value store for the counters.
    """

    def __init__(self, store: QuotaStore):
        self._store = store

    async def _find(self, deck_id: str, now: datetime) -> QuotaState | None:
        today = now.date()
        state = await self._store.get(deck_id, today)
        if state is None:
            state = await self._store.get(deck_id, today - timedelta(days=1))
        return state

    async def current(self, deck_id: str, now: datetime) -> QuotaState | None:
        """Read-only lookup of the live counter, None if missing or expired."""
        state = await self._find(deck_id, now)
        if state is None or is_expired(state, now):
            return None
        return state

    async def load(self, deck_id: str, now: datetime) -> QuotaState:
        """
        Return the live counter for a deck, creating or resetting it as needed.

        An expired counter is removed and replaced by a zeroed one stamped `now`.
        """
        today = now.date()
        state = await self._find(deck_id, now)

        if state is not None and not is_expired(state, now):
            return state

        if state is not None:
            logger.info(
                f"Quota for deck {deck_id} stamped {state.date_stamp.isoformat()} expired; resetting"
            )
            await self._store.remove(deck_id, storage_day(state))

        fresh = QuotaState(date_stamp=now)
        await self._store.put(deck_id, today, fresh)
        return fresh

    async def record(self, deck_id: str, state: QuotaState, was_new: bool) -> QuotaState:
        """Count one rated card and persist the result."""
        if was_new:
            updated = replace(state, learned_count=state.learned_count + 1)
        else:
            updated = replace(state, reviewed_count=state.reviewed_count + 1)
        await self.save(deck_id, updated)
        return updated

    async def save(self, deck_id: str, state: QuotaState) -> None:
        await self._store.put(deck_id, storage_day(state), state)

    async def reset(self, deck_id: str, now: datetime) -> None:
        """Drop any counter that could still be live, so the next load starts from zero."""
        today = now.date()
        await self._store.remove(deck_id, today)
        await self._store.remove(deck_id, today - timedelta(days=1))
