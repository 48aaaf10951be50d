"""Wall-clock sources for the session timer.

Timer checkpoints are wall-clock epoch milliseconds, not monotonic
readings, so they stay meaningful across process restarts and system
sleep. The timer tolerates the clock moving backward.
"""

import time
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, Union


def ms_to_datetime(epoch_ms: int) -> datetime:
    """Convert epoch milliseconds to an aware UTC datetime."""
    return datetime.fromtimestamp(epoch_ms / 1000, tz=timezone.utc)


def datetime_to_ms(value: datetime) -> int:
    """Convert a datetime to epoch milliseconds; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


class Clock(Protocol):
    """Source of the current wall-clock time."""

    def now_ms(self) -> int:
        """Current time as epoch milliseconds."""
        ...

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        ...


class SystemClock:
    """Clock backed by the operating system's wall clock."""

    def now_ms(self) -> int:
        return int(time.time() * 1000)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Clock that only moves when told to.

    Used by tests and by CLI commands that replay a given instant.
    """

    def __init__(self, start: Optional[Union[datetime, int]] = None):
        if start is None:
            start = datetime.now(timezone.utc)
        self._ms = datetime_to_ms(start) if isinstance(start, datetime) else int(start)

    def now_ms(self) -> int:
        return self._ms

    def now(self) -> datetime:
        return ms_to_datetime(self._ms)

    def set(self, value: Union[datetime, int]) -> None:
        """Jump to an absolute time. Moving backward is allowed."""
        self._ms = datetime_to_ms(value) if isinstance(value, datetime) else int(value)

    def advance(self, seconds: float = 0, minutes: float = 0, ms: int = 0) -> None:
        """Move the clock by a relative amount; negative values move it back."""
        delta = timedelta(seconds=seconds, minutes=minutes, milliseconds=ms)
        self._ms += int(delta.total_seconds() * 1000)
