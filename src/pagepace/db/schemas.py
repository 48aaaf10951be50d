"""Pydantic schemas for data validation.

These schemas define the records exchanged with the storage layer:
books and per-user book progress, reading sessions, reminder
preferences and push subscriptions.
"""

from datetime import datetime, time
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

# Upper bound for any page number a user can enter
MAX_PAGE_NUMBER = 50000


class BookStatus(str, Enum):
    """Reading status of a book on a user's shelf."""

    WANT_TO_READ = "want_to_read"
    READING = "reading"
    COMPLETED = "completed"


# ============================================================================
# Book Schemas
# ============================================================================


class BookCreate(BaseModel):
    """Schema for creating a book."""

    title: str = Field(..., min_length=1, max_length=500, description="Book title")
    author: Optional[str] = Field(None, max_length=200)
    page_count: Optional[int] = Field(None, ge=1, le=MAX_PAGE_NUMBER)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, v: str) -> str:
        return v.strip() if isinstance(v, str) else v

    @field_validator("author", mode="before")
    @classmethod
    def strip_author(cls, v: Optional[str]) -> Optional[str]:
        """Trim whitespace; a blank author is stored as None."""
        if isinstance(v, str):
            return v.strip() or None
        return v


class BookSummary(BaseModel):
    """Minimal book information used to enrich reminders and displays."""

    id: UUID
    title: str
    author: Optional[str] = None
    page_count: Optional[int] = None

    model_config = {"from_attributes": True}


class BookProgress(BaseModel):
    """Per-user progress on a book.

    ``status == completed`` holds exactly when ``completed_at`` is set.
    """

    current_page: int = Field(..., ge=0, le=MAX_PAGE_NUMBER)
    status: BookStatus
    completed_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_completion(self) -> "BookProgress":
        """Keep status and completion timestamp consistent."""
        if (self.status == BookStatus.COMPLETED) != (self.completed_at is not None):
            raise ValueError("completed_at must be set if and only if status is completed")
        return self


class UserBookResponse(BaseModel):
    """A book on a user's shelf with its progress."""

    id: UUID
    user_id: str
    book_id: UUID
    current_page: int
    status: BookStatus
    started_at: Optional[datetime]
    completed_at: Optional[datetime]

    model_config = {"from_attributes": True}

    @property
    def progress(self) -> BookProgress:
        """Progress fields of this shelf entry."""
        return BookProgress(
            current_page=self.current_page,
            status=self.status,
            completed_at=self.completed_at,
        )


# ============================================================================
# Reading Session Schemas
# ============================================================================


class SessionRecord(BaseModel):
    """One reading session; end fields stay empty until finalization."""

    id: UUID
    user_id: str
    book_id: UUID
    start_page: int = Field(..., ge=0)
    end_page: Optional[int] = Field(None, ge=0)
    started_at: datetime
    ended_at: Optional[datetime] = None
    duration_seconds: Optional[int] = Field(None, ge=0)
    pages_read: Optional[int] = Field(None, ge=0)

    model_config = {"from_attributes": True}

    @property
    def is_finalized(self) -> bool:
        """Check if the session has been finalized."""
        return self.ended_at is not None


class SessionFinalization(BaseModel):
    """Fields written to a session record when it is finalized."""

    ended_at: datetime
    duration_seconds: int = Field(..., ge=0)
    end_page: int = Field(..., ge=0, le=MAX_PAGE_NUMBER)
    pages_read: int = Field(..., ge=0)


# ============================================================================
# Notification Schemas
# ============================================================================


def parse_time_of_day(value: object) -> time:
    """Parse ``HH:MM`` or ``HH:MM:SS`` into a time."""
    if isinstance(value, time):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Expected HH:MM time, got {value!r}")

    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Expected HH:MM time, got {value!r}")

    hour, minute = int(parts[0]), int(parts[1])
    second = int(parts[2]) if len(parts) == 3 else 0
    # time() raises ValueError for out-of-range components
    return time(hour, minute, second)


class ReminderPreference(BaseModel):
    """A user's daily reminder preference.

    Times carry no timezone; they are matched in the reference timezone.
    """

    user_id: str
    enabled: bool = False
    time_of_day: time = Field(default=time(20, 0))

    @field_validator("time_of_day", mode="before")
    @classmethod
    def parse_time(cls, v: object) -> time:
        return parse_time_of_day(v)


class NotificationSettingsUpdate(BaseModel):
    """Schema for updating a user's notification settings."""

    daily_reminder_enabled: Optional[bool] = None
    reminder_time: Optional[time] = None
    goal_notifications: Optional[bool] = None
    streak_notifications: Optional[bool] = None
    completion_notifications: Optional[bool] = None

    @field_validator("reminder_time", mode="before")
    @classmethod
    def parse_time(cls, v: object) -> Optional[time]:
        if v is None:
            return None
        return parse_time_of_day(v)


class PushSubscriptionCreate(BaseModel):
    """Schema for registering a push subscription."""

    user_id: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1, max_length=2048)
    p256dh: str = Field(..., min_length=1)
    auth: str = Field(..., min_length=1)


class PushSubscriptionResponse(BaseModel):
    """A stored push subscription."""

    id: UUID
    user_id: str
    endpoint: str
    p256dh: str
    auth: str

    model_config = {"from_attributes": True}
