from datetime import datetime

import pytest

from flashdeck.domain.review.models import (
    Card,
    CardMemoryState,
    DeckConfig,
    LearningStage,
)
from flashdeck.infrastructure.adapters.memory import InMemoryCardStore, InMemoryQuotaStore
from flashdeck.infrastructure.clock import FixedClock

NOW = datetime(2026, 3, 14, 15, 30)


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def make_card():
    """Factory for cards in the 'spanish' deck."""

    def _make(
        card_id: str,
        repetitions: int = 0,
        interval_days: int = 0,
        ease_factor: float = 2.5,
        next_review_at: datetime | None = None,
        stage: LearningStage | None = None,
        deck_id: str = "spanish",
        is_suspended: bool = False,
    ) -> Card:
        if stage is None:
            stage = LearningStage.REVIEW if repetitions > 0 else LearningStage.NEW
        return Card(
            id=card_id,
            deck_id=deck_id,
            front=f"front of {card_id}",
            back=f"back of {card_id}",
            is_suspended=is_suspended,
            memory=CardMemoryState(
                ease_factor=ease_factor,
                interval_days=interval_days,
                repetitions=repetitions,
                learning_stage=stage,
                next_review_at=next_review_at,
            ),
        )

    return _make


@pytest.fixture
def card_store(clock):
    store = InMemoryCardStore(clock)
    store.add_deck(DeckConfig(deck_id="spanish", name="Spanish"))
    return store


@pytest.fixture
def quota_store():
    return InMemoryQuotaStore()


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Isolate config and data from the real user profile
    monkeypatch.setenv("HOME", str(home))
    for var in ("FLASHDECK_BACKEND", "FLASHDECK_DATA_DIR", "FLASHDECK_API_URL"):
        monkeypatch.delenv(var, raising=False)
    return home
