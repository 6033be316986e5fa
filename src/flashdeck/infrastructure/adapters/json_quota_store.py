"""
JSON Quota Store: durable quota counters in a single JSON file.

Entries are keyed `review_<deck_id>_<YYYY-MM-DD>`, one per deck and day.
"""

import json
import logging
import os
from datetime import date
from pathlib import Path
from typing import Any

from flashdeck.domain.errors import StoreFailure
from flashdeck.domain.review.models import QuotaState
from flashdeck.domain.review.ports import QuotaStore
from flashdeck.infrastructure.adapters.codec import quota_from_dict, quota_to_dict

logger = logging.getLogger(__name__)


def quota_key(deck_id: str, day: date) -> str:
    return f"review_{deck_id}_{day.isoformat()}"


class JsonQuotaStore(QuotaStore):
    def __init__(self, path: Path):
        self.path = Path(path)

    async def get(self, deck_id: str, day: date) -> QuotaState | None:
        raw = self._load().get(quota_key(deck_id, day))
        if raw is None:
            return None
        try:
            return quota_from_dict(raw)
        except (KeyError, TypeError, ValueError) as e:
            # A corrupt entry is treated like a missing one and gets recreated
            logger.warning(f"Ignoring unreadable quota entry for {deck_id} on {day}: {e}")
            return None

    async def put(self, deck_id: str, day: date, state: QuotaState) -> None:
        entries = self._load()
        entries[quota_key(deck_id, day)] = quota_to_dict(state)
        self._save(entries)

    async def remove(self, deck_id: str, day: date) -> None:
        entries = self._load()
        if entries.pop(quota_key(deck_id, day), None) is not None:
            self._save(entries)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except OSError as e:
            raise StoreFailure(f"Could not read quota file {self.path}: {e}") from e
        except json.JSONDecodeError as e:
            logger.warning(f"Quota file {self.path} is not valid JSON, starting fresh: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, entries: dict[str, Any]) -> None:
        tmp_path = self.path.with_suffix(".json.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(entries, indent=2, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StoreFailure(f"Could not write quota file {self.path}: {e}") from e
