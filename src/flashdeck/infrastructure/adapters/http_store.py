import logging
from datetime import datetime
from typing import Any

import httpx

from flashdeck.domain.constants import (
    DEFAULT_EASE_FACTOR,
    DEFAULT_LEARN_CAP,
    DEFAULT_REVIEW_CAP,
    REQUEST_TIMEOUT,
)
from flashdeck.domain.errors import CardNotFoundError, DeckNotFoundError, StoreFailure
from flashdeck.domain.review.models import Card, CardMemoryState, DeckConfig, LearningStage
from flashdeck.domain.review.ports import CardStore
from flashdeck.infrastructure.adapters.codec import format_timestamp, parse_timestamp


class HttpCardStore(CardStore):
    """Adapter for the flashcard REST backend."""

    def __init__(
        self,
        url: str = "http://localhost:3001",
        token: str | None = None,
        timeout: float = REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.url = url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_due_cards(self, deck_id: str, until: datetime | None = None) -> list[Card]:
        params = {"until": format_timestamp(until)} if until else None
        data = await self._request(
            "GET",
            f"/flashcards/deck/{deck_id}/due",
            params=params,
            missing=DeckNotFoundError(deck_id),
        )
        if data is None:
            return []
        if not isinstance(data, list):
            raise StoreFailure(f"Expected a list of cards for deck {deck_id}")
        return [self._card_from_json(item) for item in data]

    async def fetch_card(self, card_id: str) -> Card:
        data = await self._request(
            "GET", f"/flashcards/{card_id}", missing=CardNotFoundError(card_id)
        )
        return self._card_from_json(data)

    async def persist_review(self, card_id: str, memory: CardMemoryState) -> Card:
        payload = {
            "interval": memory.interval_days,
            "ease_factor": memory.ease_factor,
            "repetitions": memory.repetitions,
            "state": memory.learning_stage.value,
            "next_review_at": format_timestamp(memory.next_review_at),
        }
        data = await self._request(
            "POST", f"/flashcards/{card_id}/review", json=payload, missing=CardNotFoundError(card_id)
        )
        return self._card_from_json(data)

    async def revert_review(self, card_id: str) -> Card:
        data = await self._request(
            "POST", f"/flashcards/{card_id}/undo-review", missing=CardNotFoundError(card_id)
        )
        return self._card_from_json(data)

    async def fetch_deck(self, deck_id: str) -> DeckConfig:
        data = await self._request("GET", f"/decks/{deck_id}", missing=DeckNotFoundError(deck_id))
        try:
            return DeckConfig(
                deck_id=str(data["id"]),
                name=data.get("name", ""),
                # Zero or missing caps fall back to the defaults
                review_cap_per_session=data.get("review_cards_per_session") or DEFAULT_REVIEW_CAP,
                learn_cap_per_session=data.get("learn_cards_per_session") or DEFAULT_LEARN_CAP,
                next_review_at=parse_timestamp(data.get("next_review_at")),
            )
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"Malformed deck payload for {deck_id}: {e!r}")
            raise StoreFailure(f"Malformed deck payload for {deck_id}: {e!r}") from e

    async def _request(
        self,
        method: str,
        path: str,
        missing: StoreFailure,
        **kwargs: Any,
    ) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.url,
                headers=self._headers,
                timeout=self._timeout,
                transport=self._transport,
            )

        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise missing from e
            self.logger.error(f"{method} {path} failed with HTTP {e.response.status_code}")
            raise StoreFailure(f"{method} {path} failed: HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            self.logger.error(f"{method} {path} failed: {e}")
            raise StoreFailure(f"{method} {path} failed: {e}") from e

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            self.logger.error(f"{method} {path} returned a non-JSON body")
            raise StoreFailure(f"{method} {path} returned invalid JSON: {e}") from e

    def _card_from_json(self, data: dict[str, Any]) -> Card:
        try:
            return self._build_card(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            self.logger.error(f"Malformed card payload: {e!r}")
            raise StoreFailure(f"Malformed card payload: {e!r}") from e

    @staticmethod
    def _build_card(data: dict[str, Any]) -> Card:
        return Card(
            id=str(data["id"]),
            deck_id=str(data.get("deck_id", "")),
            front=data.get("front_content", ""),
            back=data.get("back_content", ""),
            hint=data.get("hint"),
            mnemonic=data.get("mnemonic"),
            is_suspended=bool(data.get("is_suspended", False)),
            memory=CardMemoryState(
                ease_factor=float(data.get("ease_factor") or DEFAULT_EASE_FACTOR),
                interval_days=int(data.get("interval") or 0),
                repetitions=int(data.get("repetitions") or 0),
                learning_stage=LearningStage(data.get("state") or LearningStage.NEW.value),
                next_review_at=parse_timestamp(data.get("next_review_at")),
            ),
        )
