"""
Domain models for review scheduling and sessions.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum, IntEnum

from flashdeck.domain.constants import (
    DEFAULT_EASE_FACTOR,
    DEFAULT_LEARN_CAP,
    DEFAULT_REVIEW_CAP,
)


class LearningStage(str, Enum):
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"


class Rating(IntEnum):
    """The four review buttons."""

    AGAIN = 1
    HARD = 2
    GOOD = 3
    EASY = 4

    @property
    def label(self) -> str:
        return self.name.capitalize()


@dataclass(frozen=True)
class CardMemoryState:
    """
    Scheduling state of a single flashcard.

    Attributes:
        ease_factor: Interval growth multiplier, never below 1.3.
        interval_days: Current interval. 0 means intraday (re-offered after 10 minutes).
        repetitions: Consecutive successful recalls since the last failure or creation.
        learning_stage: new, learning, review or relearning.
        next_review_at: When the card becomes eligible again. None means never scheduled.
    """

    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = 0
    repetitions: int = 0
    learning_stage: LearningStage = LearningStage.NEW
    next_review_at: datetime | None = None


@dataclass(frozen=True)
class Card:
    """A flashcard together with its memory state."""

    id: str
    deck_id: str
    front: str
    back: str = ""
    hint: str | None = None
    mnemonic: str | None = None
    is_suspended: bool = False
    memory: CardMemoryState = field(default_factory=CardMemoryState)

    @property
    def is_new(self) -> bool:
        return self.memory.repetitions == 0

    def with_memory(self, memory: CardMemoryState) -> "Card":
        return replace(self, memory=memory)


@dataclass(frozen=True)
class DeckConfig:
    """Per-deck session caps plus the deck's earliest upcoming review."""

    deck_id: str
    name: str = ""
    review_cap_per_session: int = DEFAULT_REVIEW_CAP
    learn_cap_per_session: int = DEFAULT_LEARN_CAP
    next_review_at: datetime | None = None


@dataclass(frozen=True)
class QuotaState:
    """
    Daily progress counters for one deck.

    The counter lives for 24 hours from `date_stamp`; after that it is
    treated as expired and replaced with a fresh one.
    """

    date_stamp: datetime
    reviewed_count: int = 0
    learned_count: int = 0


@dataclass(frozen=True)
class RatingTally:
    again: int = 0
    hard: int = 0
    good: int = 0
    easy: int = 0

    def increment(self, rating: Rating) -> "RatingTally":
        attr = rating.name.lower()
        return replace(self, **{attr: getattr(self, attr) + 1})

    def as_dict(self) -> dict[str, int]:
        return {"again": self.again, "hard": self.hard, "good": self.good, "easy": self.easy}

    @property
    def total(self) -> int:
        return self.again + self.hard + self.good + self.easy


@dataclass(frozen=True)
class SessionSnapshot:
    """Session state captured immediately before a rating is applied."""

    queue: tuple[Card, ...]
    cursor: int
    rating_tally: RatingTally
    quota: QuotaState

    @property
    def rated_card(self) -> Card:
        return self.queue[self.cursor]
