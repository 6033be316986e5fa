"""Plain-dict encoding of domain models shared by the storage adapters."""

from datetime import datetime
from typing import Any

from flashdeck.domain.review.models import CardMemoryState, LearningStage, QuotaState


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value)
        # REST timestamps use JavaScript's trailing Z for UTC
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    # Naive values, such as unquoted YAML timestamps, are local wall time
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def memory_to_dict(memory: CardMemoryState) -> dict[str, Any]:
    return {
        "ease_factor": memory.ease_factor,
        "interval_days": memory.interval_days,
        "repetitions": memory.repetitions,
        "learning_stage": memory.learning_stage.value,
        "next_review_at": format_timestamp(memory.next_review_at),
    }


def memory_from_dict(data: dict[str, Any]) -> CardMemoryState:
    return CardMemoryState(
        ease_factor=float(data.get("ease_factor", 2.5)),
        interval_days=int(data.get("interval_days", 0)),
        repetitions=int(data.get("repetitions", 0)),
        learning_stage=LearningStage(data.get("learning_stage", LearningStage.NEW.value)),
        next_review_at=parse_timestamp(data.get("next_review_at")),
    )


def quota_to_dict(state: QuotaState) -> dict[str, Any]:
    return {
        "date_stamp": format_timestamp(state.date_stamp),
        "reviewed_count": state.reviewed_count,
        "learned_count": state.learned_count,
    }


def quota_from_dict(data: dict[str, Any]) -> QuotaState:
    return QuotaState(
        date_stamp=parse_timestamp(data["date_stamp"]),
        reviewed_count=int(data.get("reviewed_count", 0)),
        learned_count=int(data.get("learned_count", 0)),
    )
