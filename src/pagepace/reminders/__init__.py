"""Daily reading reminders delivered as push notifications."""

from .dispatch import ReminderDispatcher
from .matcher import (
    DEFAULT_WINDOW_MINUTES,
    build_reminder_payload,
    is_due,
    minutes_since_midnight,
    select_due_users,
)
from .schemas import DeliveryResult, DispatchReport, PushPayload
from .transport import PushTransport, WebPushTransport

__all__ = [
    "ReminderDispatcher",
    "DEFAULT_WINDOW_MINUTES",
    "build_reminder_payload",
    "is_due",
    "minutes_since_midnight",
    "select_due_users",
    "DeliveryResult",
    "DispatchReport",
    "PushPayload",
    "PushTransport",
    "WebPushTransport",
]
