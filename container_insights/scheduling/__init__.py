"""
Scheduling for the collection loop.
"""

from .scheduler import (
    APSchedulerTickSource,
    CollectionScheduler,
    ScheduleState,
    SchedulerState,
    TickSource,
)

__all__ = [
    "APSchedulerTickSource",
    "CollectionScheduler",
    "ScheduleState",
    "SchedulerState",
    "TickSource",
]
