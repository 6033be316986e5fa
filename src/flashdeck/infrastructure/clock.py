from datetime import datetime, timedelta

from flashdeck.domain.review.ports import Clock


class SystemClock(Clock):
    """Wall clock in the machine's local timezone (tz-aware)."""

    def now(self) -> datetime:
        return datetime.now().astimezone()


class FixedClock(Clock):
    """
    Clock frozen at a given instant, for tests and replays.

    Use `advance` to move it forward.
    """

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current
