# Application Scheduler Package
from .sm2 import (
    SM2Scheduler,
    default_scheduler,
    describe_interval,
    initial_memory_state,
    is_due,
    rating_to_quality,
)

__all__ = [
    "SM2Scheduler",
    "default_scheduler",
    "describe_interval",
    "initial_memory_state",
    "is_due",
    "rating_to_quality",
]
