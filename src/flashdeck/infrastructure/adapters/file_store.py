"""
File Card Store: Infrastructure adapter for decks kept on local disk.

Each deck is one YAML file under `<data_dir>/decks/<deck_id>.yaml`:

    deck:
      name: Spanish
      review_cap_per_session: 10
      learn_cap_per_session: 20
    cards:
      - id: card_01J...
        front: hola
        back: hello
        ease_factor: 2.5
        interval_days: 0
        repetitions: 0
        learning_stage: new
        next_review_at: null
        history: []

`history` holds the memory states replaced by each review, newest last,
so a review can be reverted.
"""

import logging
import os
import re
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from ulid import ULID

from flashdeck.domain.constants import DEFAULT_LEARN_CAP, DEFAULT_REVIEW_CAP
from flashdeck.domain.errors import (
    CardNotFoundError,
    DeckNotFoundError,
    StoreFailure,
    ValidationError,
)
from flashdeck.domain.review.models import Card, CardMemoryState, DeckConfig
from flashdeck.domain.review.ports import CardStore, Clock
from flashdeck.infrastructure.adapters.codec import memory_from_dict, memory_to_dict
from flashdeck.infrastructure.adapters.memory import due_by, earliest_review
from flashdeck.infrastructure.clock import SystemClock

logger = logging.getLogger(__name__)

DECK_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def generate_card_id() -> str:
    """Generate a stable card ID using ULID."""
    return f"card_{ULID()}"


class FileCardStore(CardStore):
    """
    Reads and writes YAML deck files.

    Files are rewritten atomically (write to a temp file, then replace).
    """

    def __init__(
        self,
        data_dir: Path,
        clock: Clock | None = None,
        default_review_cap: int = DEFAULT_REVIEW_CAP,
        default_learn_cap: int = DEFAULT_LEARN_CAP,
    ):
        self.decks_dir = Path(data_dir) / "decks"
        self._clock = clock or SystemClock()
        self.default_review_cap = default_review_cap
        self.default_learn_cap = default_learn_cap

    # ------------------------------------------------------------------
    # Deck management (used by the CLI)
    # ------------------------------------------------------------------

    def create_deck(
        self,
        deck_id: str,
        name: str = "",
        review_cap: int | None = None,
        learn_cap: int | None = None,
    ) -> DeckConfig:
        path = self._deck_path(deck_id)
        if path.exists():
            raise ValidationError(f"Deck already exists: {deck_id}")

        data = {
            "deck": {
                "name": name or deck_id,
                "review_cap_per_session": (
                    review_cap if review_cap is not None else self.default_review_cap
                ),
                "learn_cap_per_session": (
                    learn_cap if learn_cap is not None else self.default_learn_cap
                ),
            },
            "cards": [],
        }
        self._write(deck_id, data)
        logger.info(f"Created deck {deck_id} at {path}")
        return self._deck_from_data(deck_id, data)

    def list_decks(self) -> list[DeckConfig]:
        if not self.decks_dir.exists():
            return []
        return [
            self._deck_from_data(path.stem, self._read(path.stem))
            for path in sorted(self.decks_dir.glob("*.yaml"))
        ]

    def add_card(
        self,
        deck_id: str,
        front: str,
        back: str = "",
        hint: str | None = None,
        mnemonic: str | None = None,
    ) -> Card:
        if not front.strip():
            raise ValidationError("Card front must not be empty")

        data = self._read(deck_id)
        card = Card(
            id=generate_card_id(),
            deck_id=deck_id,
            front=front.strip(),
            back=back.strip(),
            hint=hint,
            mnemonic=mnemonic,
        )
        data["cards"].append({**self._card_to_data(card), "history": []})
        self._write(deck_id, data)
        return card

    def list_cards(self, deck_id: str) -> list[Card]:
        data = self._read(deck_id)
        return [self._card_from_data(deck_id, raw) for raw in data["cards"]]

    # ------------------------------------------------------------------
    # CardStore port
    # ------------------------------------------------------------------

    async def fetch_due_cards(self, deck_id: str, until: datetime | None = None) -> list[Card]:
        horizon = until or self._clock.now()
        return [
            card
            for card in self.list_cards(deck_id)
            if not card.is_suspended and due_by(card, horizon)
        ]

    async def fetch_card(self, card_id: str) -> Card:
        deck_id, data, index = self._locate(card_id)
        return self._card_from_data(deck_id, data["cards"][index])

    async def persist_review(self, card_id: str, memory: CardMemoryState) -> Card:
        deck_id, data, index = self._locate(card_id)
        raw = data["cards"][index]

        history = raw.get("history") or []
        history.append(memory_to_dict(memory_from_dict(raw)))
        raw.update(memory_to_dict(memory))
        raw["history"] = history

        self._write(deck_id, data)
        return self._card_from_data(deck_id, raw)

    async def revert_review(self, card_id: str) -> Card:
        deck_id, data, index = self._locate(card_id)
        raw = data["cards"][index]

        history = raw.get("history") or []
        if not history:
            raise StoreFailure(f"Card {card_id} has no review to revert")
        raw.update(history.pop())
        raw["history"] = history

        self._write(deck_id, data)
        return self._card_from_data(deck_id, raw)

    async def fetch_deck(self, deck_id: str) -> DeckConfig:
        data = self._read(deck_id)
        deck = self._deck_from_data(deck_id, data)
        cards = [self._card_from_data(deck_id, raw) for raw in data["cards"]]
        return DeckConfig(
            deck_id=deck.deck_id,
            name=deck.name,
            review_cap_per_session=deck.review_cap_per_session,
            learn_cap_per_session=deck.learn_cap_per_session,
            next_review_at=earliest_review(cards),
        )

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    def _deck_path(self, deck_id: str) -> Path:
        if not DECK_ID_PATTERN.match(deck_id):
            raise ValidationError(
                f"Invalid deck id {deck_id!r}: use letters, digits, '-' or '_'"
            )
        return self.decks_dir / f"{deck_id}.yaml"

    def _read(self, deck_id: str) -> dict[str, Any]:
        path = self._deck_path(deck_id)
        if not path.exists():
            raise DeckNotFoundError(deck_id)
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as e:
            raise StoreFailure(f"Could not read deck file {path}: {e}") from e

        data.setdefault("deck", {})
        data["cards"] = data.get("cards") or []
        return data

    def _write(self, deck_id: str, data: dict[str, Any]) -> None:
        path = self._deck_path(deck_id)
        tmp_path = path.with_suffix(".yaml.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                yaml.safe_dump(data, sort_keys=False, allow_unicode=True), encoding="utf-8"
            )
            os.replace(tmp_path, path)
        except OSError as e:
            raise StoreFailure(f"Could not write deck file {path}: {e}") from e

    def _locate(self, card_id: str) -> tuple[str, dict[str, Any], int]:
        if self.decks_dir.exists():
            for path in sorted(self.decks_dir.glob("*.yaml")):
                data = self._read(path.stem)
                for index, raw in enumerate(data["cards"]):
                    if raw.get("id") == card_id:
                        return path.stem, data, index
        raise CardNotFoundError(card_id)

    def _deck_from_data(self, deck_id: str, data: dict[str, Any]) -> DeckConfig:
        meta = data.get("deck") or {}
        return DeckConfig(
            deck_id=deck_id,
            name=meta.get("name") or deck_id,
            review_cap_per_session=int(
                meta.get("review_cap_per_session", self.default_review_cap)
            ),
            learn_cap_per_session=int(meta.get("learn_cap_per_session", self.default_learn_cap)),
        )

    @staticmethod
    def _card_to_data(card: Card) -> dict[str, Any]:
        return {
            "id": card.id,
            "front": card.front,
            "back": card.back,
            "hint": card.hint,
            "mnemonic": card.mnemonic,
            "is_suspended": card.is_suspended,
            **memory_to_dict(card.memory),
        }

    @staticmethod
    def _card_from_data(deck_id: str, raw: dict[str, Any]) -> Card:
        return Card(
            id=str(raw["id"]),
            deck_id=deck_id,
            front=str(raw.get("front", "")),
            back=str(raw.get("back", "")),
            hint=raw.get("hint"),
            mnemonic=raw.get("mnemonic"),
            is_suspended=bool(raw.get("is_suspended", False)),
            memory=memory_from_dict(raw),
        )
