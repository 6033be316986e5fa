from datetime import datetime

# ---------- Countdown labels ----------


def describe_next_review(next_review_at: datetime | None, now: datetime) -> str | None:
    """Human readable countdown shown when a deck has nothing due."""
    if next_review_at is None:
        return None

    diff_seconds = (next_review_at - now).total_seconds()
    if diff_seconds <= 0:
        return "You have cards due now!"

    minutes = int(diff_seconds // 60)
    if minutes < 60:
        return f"Next review in {minutes} minutes"

    hours = minutes // 60
    if hours < 24:
        return f"Next review in {hours} hours"

    return f"Next review in {hours // 24} days"


# ---------- Progress ----------


def progress_percent(cursor: int, total: int) -> int:
    if total <= 0:
        return 0
    return int(cursor * 100 / total + 0.5)
