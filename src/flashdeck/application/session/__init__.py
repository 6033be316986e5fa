# Application Session Package
from .manager import ReviewSession, SessionStatus, SessionSummary
from .queue_builder import QueueBuildResult, build_session_queue
from .quota import QuotaTracker

__all__ = [
    "ReviewSession",
    "SessionStatus",
    "SessionSummary",
    "QueueBuildResult",
    "build_session_queue",
    "QuotaTracker",
]
