import json
from datetime import date, datetime, timezone

import pytest

from flashdeck.domain.review.models import QuotaState
from flashdeck.infrastructure.adapters.json_quota_store import JsonQuotaStore, quota_key

DAY = date(2026, 3, 14)
STATE = QuotaState(
    date_stamp=datetime(2026, 3, 14, 9, 15, tzinfo=timezone.utc), reviewed_count=4, learned_count=1
)


@pytest.fixture
def path(tmp_path):
    return tmp_path / "state" / "quota.json"


def test_quota_key():
    assert quota_key("spanish", DAY) == "review_spanish_2026-03-14"


@pytest.mark.asyncio
async def test_put_get_remove(path):
    store = JsonQuotaStore(path)

    assert await store.get("spanish", DAY) is None

    await store.put("spanish", DAY, STATE)
    assert await store.get("spanish", DAY) == STATE
    assert await JsonQuotaStore(path).get("spanish", DAY) == STATE

    await store.remove("spanish", DAY)
    assert await store.get("spanish", DAY) is None


@pytest.mark.asyncio
async def test_file_layout(path):
    await JsonQuotaStore(path).put("spanish", DAY, STATE)

    assert json.loads(path.read_text()) == {
        "review_spanish_2026-03-14": {
            "date_stamp": "2026-03-14T09:15:00+00:00",
            "reviewed_count": 4,
            "learned_count": 1,
        }
    }


@pytest.mark.asyncio
async def test_invalid_json_starts_fresh(path):
    path.parent.mkdir(parents=True)
    path.write_text("{not json")
    store = JsonQuotaStore(path)

    assert await store.get("spanish", DAY) is None

    await store.put("spanish", DAY, STATE)
    assert await store.get("spanish", DAY) == STATE


@pytest.mark.asyncio
async def test_corrupt_entry_is_ignored(path):
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"review_spanish_2026-03-14": {"reviewed_count": 2}}))

    assert await JsonQuotaStore(path).get("spanish", DAY) is None


@pytest.mark.asyncio
async def test_remove_missing_is_noop(path):
    await JsonQuotaStore(path).remove("spanish", DAY)
    assert not path.exists()


@pytest.mark.asyncio
async def test_naive_stamp_is_read_as_local_time(path):
    path.parent.mkdir(parents=True)
    entry = {"date_stamp": "2026-03-14T09:15:00", "reviewed_count": 2, "learned_count": 0}
    path.write_text(json.dumps({"review_spanish_2026-03-14": entry}))

    state = await JsonQuotaStore(path).get("spanish", DAY)

    assert state.date_stamp == datetime(2026, 3, 14, 9, 15).astimezone()
    assert state.date_stamp.tzinfo is not None
