"""Reading analytics over session history.

Pure functions: they take finalized session records and return derived
statistics. Sessions that have not been finalized (``ended_at`` is None)
are ignored by every aggregate.

Calendar days are taken from each session's ``started_at`` in a single
reference timezone.
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Iterable, Optional


class StreakPolicy(str, Enum):
    """How the current streak treats a day with no reading yet."""

    # Streak is 0 unless there is a session today
    TODAY = "today"
    # Until today ends, a streak ending yesterday still counts
    YESTERDAY_GRACE = "yesterday_grace"


@dataclass
class ReadingStats:
    """Aggregate statistics for a reader."""

    current_streak: int = 0
    longest_streak: int = 0
    average_session_minutes: int = 0
    total_pages: int = 0
    total_sessions: int = 0
    total_minutes: int = 0
    reading_days: int = 0


def round_half_up(value: float) -> int:
    """Round a non-negative number to the nearest integer, halves up."""
    return int(math.floor(value + 0.5))


def is_finalized(session) -> bool:
    return getattr(session, "ended_at", None) is not None


def local_date(timestamp: datetime, tz: tzinfo = timezone.utc) -> date:
    """Calendar date of a timestamp in ``tz``; naive timestamps are taken as UTC."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(tz).date()


def reading_dates(sessions: Iterable, tz: tzinfo = timezone.utc) -> set[date]:
    """Distinct calendar dates with at least one finalized session."""
    return {
        local_date(s.started_at, tz)
        for s in sessions
        if is_finalized(s) and s.started_at is not None
    }


def calculate_streak(
    dates: Iterable[date],
    today: date,
    policy: StreakPolicy = StreakPolicy.TODAY,
) -> int:
    """Count consecutive reading days ending at ``today``.

    With ``StreakPolicy.TODAY`` a day without reading today yields 0, even
    if yesterday continued an unbroken run. ``YESTERDAY_GRACE`` anchors the
    count on yesterday in that case.
    """
    days = set(dates)
    anchor = today
    if anchor not in days:
        if policy != StreakPolicy.YESTERDAY_GRACE:
            return 0
        anchor = today - timedelta(days=1)

    streak = 0
    while anchor - timedelta(days=streak) in days:
        streak += 1
    return streak


def longest_streak(dates: Iterable[date]) -> int:
    """Length of the longest run of consecutive reading days."""
    longest = 0
    current = 0
    previous: Optional[date] = None
    for day in sorted(set(dates)):
        if previous is not None and day - previous == timedelta(days=1):
            current += 1
        else:
            current = 1
        longest = max(longest, current)
        previous = day
    return longest


def _pages(session) -> int:
    pages = getattr(session, "pages_read", None)
    return pages if pages and pages > 0 else 0


def _seconds(session) -> int:
    seconds = getattr(session, "duration_seconds", None)
    return seconds if seconds and seconds > 0 else 0


def average_session_minutes(sessions: Iterable) -> int:
    """Mean finalized session length in whole minutes (0 with no sessions)."""
    finalized = [s for s in sessions if is_finalized(s)]
    if not finalized:
        return 0
    return round_half_up(sum(_seconds(s) for s in finalized) / len(finalized) / 60)


def total_pages(sessions: Iterable) -> int:
    """Pages read across finalized sessions; missing or negative counts are 0."""
    return sum(_pages(s) for s in sessions if is_finalized(s))


def total_sessions(sessions: Iterable) -> int:
    """Number of finalized sessions."""
    return sum(1 for s in sessions if is_finalized(s))


def aggregate(
    sessions: Iterable,
    today: Optional[date] = None,
    tz: tzinfo = timezone.utc,
    policy: StreakPolicy = StreakPolicy.TODAY,
) -> ReadingStats:
    """Compute all statistics in a single pass.

    Args:
        sessions: Session records (SessionRecord or any object with the
                  same attributes), in any order
        today: Reference day for the current streak (default: today in ``tz``)
        tz: Reference timezone for calendar days
        policy: Current streak policy

    Returns:
        ReadingStats
    """
    if today is None:
        today = datetime.now(tz).date()

    count = 0
    pages = 0
    seconds = 0
    dates: set[date] = set()

    for session in sessions:
        if not is_finalized(session):
            continue
        count += 1
        pages += _pages(session)
        seconds += _seconds(session)
        if session.started_at is not None:
            dates.add(local_date(session.started_at, tz))

    return ReadingStats(
        current_streak=calculate_streak(dates, today, policy),
        longest_streak=longest_streak(dates),
        average_session_minutes=round_half_up(seconds / count / 60) if count else 0,
        total_pages=pages,
        total_sessions=count,
        total_minutes=round_half_up(seconds / 60),
        reading_days=len(dates),
    )
