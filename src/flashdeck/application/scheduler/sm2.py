"""
SM-2 scheduler.

Maps a card's memory state and a recall quality to the next memory state.
This is a pure computation module with no I/O: the caller supplies `now`.
"""

import logging
import math
from datetime import datetime, time, timedelta, timezone

from flashdeck.domain.constants import (
    FALLBACK_QUALITY,
    FIRST_INTERVAL_DAYS,
    INTRADAY_DELAY_MINUTES,
    MAX_QUALITY,
    MIN_EASE_FACTOR,
    MIN_QUALITY,
    PASSING_QUALITY,
    RATING_TO_QUALITY,
    SECOND_INTERVAL_DAYS,
)
from flashdeck.domain.errors import ValidationError
from flashdeck.domain.review.models import CardMemoryState, LearningStage, Rating

logger = logging.getLogger(__name__)


class SM2Scheduler:
    """
    SM-2 (SuperMemo 2) derivative.

    Differences from the canonical algorithm:
    - the second successful interval is 3 days instead of 6;
    - a failed recall re-offers the card 10 minutes later (interval 0)
      instead of the next day;
    - multi-day reviews are aligned to midnight of the due date.

    Stateless and side-effect free.
    """

    def schedule(self, memory: CardMemoryState, quality: int, now: datetime) -> CardMemoryState:
        """
        Calculate the next memory state based on recall quality.

        Args:
            memory: Current memory state of the card. Not modified.
            quality: Quality of recall (0-5)
                0 - Complete blackout
                1 - Incorrect, but familiar once shown
                2 - Incorrect, but the answer seemed easy to recall
                3 - Correct with serious difficulty
                4 - Correct after hesitation
                5 - Perfect response
            now: Time of the review.

        Returns:
            New CardMemoryState.

        Raises:
            ValidationError: quality is not an integer in [0, 5].
        """
        validate_quality(quality)

        ease_factor = next_ease_factor(memory.ease_factor, quality)

        if quality < PASSING_QUALITY:
            repetitions = 0
            interval_days = 0
            stage = LearningStage.RELEARNING
        else:
            if memory.repetitions == 0:
                interval_days = FIRST_INTERVAL_DAYS
                stage = LearningStage.LEARNING
            elif memory.repetitions == 1:
                interval_days = SECOND_INTERVAL_DAYS
                stage = LearningStage.LEARNING
            else:
                interval_days = round_half_up(memory.interval_days * ease_factor)
                stage = LearningStage.REVIEW
            repetitions = memory.repetitions + 1

        next_review_at = next_review_time(interval_days, now)
        logger.debug(
            f"q={quality} reps {memory.repetitions}->{repetitions} "
            f"ivl {memory.interval_days}->{interval_days} ef {memory.ease_factor:.2f}->{ease_factor:.2f}"
        )

        return CardMemoryState(
            ease_factor=ease_factor,
            interval_days=interval_days,
            repetitions=repetitions,
            learning_stage=stage,
            next_review_at=next_review_at,
        )

    def preview(self, memory: CardMemoryState, now: datetime) -> dict[Rating, CardMemoryState]:
        """
        Compute the outcome of every rating button without committing any of them.

        Used for the interval hints shown on the rating buttons.
        """
        return {rating: self.schedule(memory, rating_to_quality(rating), now) for rating in Rating}


def validate_quality(quality: int) -> None:
    if isinstance(quality, bool) or not isinstance(quality, int):
        raise ValidationError(f"Quality must be an integer, got {quality!r}")
    if quality < MIN_QUALITY or quality > MAX_QUALITY:
        raise ValidationError(f"Quality must be between {MIN_QUALITY} and {MAX_QUALITY}, got {quality}")


def next_ease_factor(ease_factor: float, quality: int) -> float:
    """EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), never below 1.3."""
    miss = MAX_QUALITY - quality
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def round_half_up(value: float) -> int:
    # round() is banker's rounding; stored schedules were computed half-up.
    return int(math.floor(value + 0.5))


def next_review_time(interval_days: int, now: datetime) -> datetime:
    """
    Intraday intervals are an exact offset; day intervals land on local
    midnight of the due date.

    The due date is counted in calendar days from `now`'s wall-clock date.
    Midnight is resolved in `now`'s zone: a ZoneInfo zone or the system
    local zone pick the offset valid on that date, so a daylight-saving
    change in between does not shift the review off midnight.
    """
    if interval_days == 0:
        return now + timedelta(minutes=INTRADAY_DELAY_MINUTES)

    midnight = datetime.combine(now.date() + timedelta(days=interval_days), time.min)
    if now.tzinfo is None:
        return midnight
    if isinstance(now.tzinfo, timezone) and now.utcoffset() == now.astimezone().utcoffset():
        # Fixed offset equal to the system one, as produced by SystemClock
        return midnight.astimezone()
    return midnight.replace(tzinfo=now.tzinfo)


def rating_to_quality(rating: int) -> int:
    """
    Map a rating button (1=Again, 2=Hard, 3=Good, 4=Easy) to SM-2 quality.

    Fixed lookup: 1->0, 2->3, 3->4, 4->5. Anything else, fractional or non-numeric,
    maps to 3.
    """
    if isinstance(rating, bool) or not isinstance(rating, (int, float)):
        return FALLBACK_QUALITY
    return RATING_TO_QUALITY.get(rating, FALLBACK_QUALITY)


def initial_memory_state() -> CardMemoryState:
    """Memory state of a freshly created card."""
    return CardMemoryState()


def is_due(next_review_at: datetime | None, now: datetime) -> bool:
    """A card that was never scheduled is always due."""
    if next_review_at is None:
        return True
    return next_review_at <= now


def describe_interval(interval_days: int) -> str:
    """Short label for a rating button, e.g. '10 min', '1 day', '8 days'."""
    if interval_days == 0:
        return f"{INTRADAY_DELAY_MINUTES} min"
    return f"{interval_days} day{'s' if interval_days != 1 else ''}"


# Default scheduler instance
default_scheduler = SM2Scheduler()
