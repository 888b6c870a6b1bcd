"""
Shared infrastructure used by every domain package.

Public API:
- Scheduler, ScheduledHandle
- ThreadScheduler (real timers), ManualScheduler (virtual clock)
"""
from .scheduling import ManualScheduler, ScheduledHandle, Scheduler, ThreadScheduler

__all__ = [
    "ManualScheduler",
    "ScheduledHandle",
    "Scheduler",
    "ThreadScheduler",
]
