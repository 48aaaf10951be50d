"""Database module for local SQLite storage."""

from .models import Book, NotificationSetting, PushSubscription, ReadingSession, UserBook
from .schemas import (
    BookCreate,
    BookProgress,
    BookStatus,
    BookSummary,
    ReminderPreference,
    SessionFinalization,
    SessionRecord,
    UserBookResponse,
)
from .sqlite import Database, get_db

__all__ = [
    "Book",
    "NotificationSetting",
    "PushSubscription",
    "ReadingSession",
    "UserBook",
    "BookCreate",
    "BookProgress",
    "BookStatus",
    "BookSummary",
    "ReminderPreference",
    "SessionFinalization",
    "SessionRecord",
    "UserBookResponse",
    "Database",
    "get_db",
]
