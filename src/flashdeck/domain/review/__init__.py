# Domain Review Package
from .models import (
    Card,
    CardMemoryState,
    DeckConfig,
    LearningStage,
    QuotaState,
    Rating,
    RatingTally,
    SessionSnapshot,
)
from .ports import CardStore, Clock, QuotaStore

__all__ = [
    "Card",
    "CardMemoryState",
    "DeckConfig",
    "LearningStage",
    "QuotaState",
    "Rating",
    "RatingTally",
    "SessionSnapshot",
    "CardStore",
    "QuotaStore",
    "Clock",
]
