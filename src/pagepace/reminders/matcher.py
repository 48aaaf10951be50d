"""Matching the current time against daily reminder preferences.

Reminder times carry no timezone and are compared with ``now`` in one
reference timezone (UTC by default). The window is an absolute distance
in minutes and does not wrap around midnight: 23:58 and 00:02 are 1436
minutes apart, not 4.
"""

from datetime import datetime, time, timezone, tzinfo
from typing import Iterable, Optional, Union

from ..db.schemas import BookSummary, ReminderPreference, parse_time_of_day
from .schemas import PushPayload

DEFAULT_WINDOW_MINUTES = 5

REMINDER_TITLE = "📚 Time to read!"
REMINDER_TAG = "reading-reminder"
GENERIC_REMINDER_BODY = "Don't forget your daily reading session"


def minutes_since_midnight(value: Union[datetime, time, str]) -> int:
    """Minutes since midnight of a datetime, time or ``HH:MM[:SS]`` string.

    Seconds are ignored.
    """
    if isinstance(value, str):
        value = parse_time_of_day(value)
    return value.hour * 60 + value.minute


def _in_reference_tz(now: datetime, tz: tzinfo) -> datetime:
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc).astimezone(tz)
    return now.astimezone(tz)


def is_due(
    now: datetime,
    preference: ReminderPreference,
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    tz: tzinfo = timezone.utc,
) -> bool:
    """Check whether a reminder preference matches ``now``.

    Disabled preferences are never due. The window is inclusive.
    """
    if not preference.enabled:
        return False
    current = minutes_since_midnight(_in_reference_tz(now, tz))
    target = minutes_since_midnight(preference.time_of_day)
    return abs(current - target) <= window_minutes


def select_due_users(
    now_utc: datetime,
    preferences: Iterable[ReminderPreference],
    window_minutes: int = DEFAULT_WINDOW_MINUTES,
    tz: tzinfo = timezone.utc,
) -> list[str]:
    """User IDs whose reminder is due, in preference order."""
    return [p.user_id for p in preferences if is_due(now_utc, p, window_minutes, tz)]


def build_reminder_payload(book: Optional[BookSummary] = None) -> PushPayload:
    """Reminder payload naming the book being read, if any."""
    title = getattr(book, "title", None)
    return PushPayload(
        title=REMINDER_TITLE,
        body=f'Continue reading "{title}"' if title else GENERIC_REMINDER_BODY,
        tag=REMINDER_TAG,
        data={"url": "/"},
    )
