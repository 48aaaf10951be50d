"""Reading session timing, persistence and finalization."""

from .clock import Clock, ManualClock, SystemClock
from .finalizer import FinalizedSession, SessionFinalizer, derive_progress, parse_page
from .session import ReadingSessionService, SessionStatus, format_elapsed
from .state import TimerState
from .store import TimerStateStore
from .timer import (
    ReadingTimer,
    elapsed_ms,
    elapsed_seconds,
    pause_timer,
    resume_timer,
    start_timer,
)

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "FinalizedSession",
    "SessionFinalizer",
    "derive_progress",
    "parse_page",
    "ReadingSessionService",
    "SessionStatus",
    "format_elapsed",
    "TimerState",
    "TimerStateStore",
    "ReadingTimer",
    "elapsed_ms",
    "elapsed_seconds",
    "pause_timer",
    "resume_timer",
    "start_timer",
]
