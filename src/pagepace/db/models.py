"""SQLAlchemy ORM models for local SQLite database.

Tables:
- books: Book metadata shared by all users
- user_books: A user's shelf entry and progress for a book
- reading_sessions: Timed reading sessions
- notification_settings: Per-user reminder preferences
- push_subscriptions: Web push endpoints per user
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .schemas import BookStatus


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class Book(Base):
    """Book model - metadata independent of any reader."""

    __tablename__ = "books"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[Optional[str]] = mapped_column(String(200))
    page_count: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    shelf_entries: Mapped[list["UserBook"]] = relationship(
        "UserBook", back_populates="book", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}')>"


class UserBook(Base):
    """A book on a user's shelf, with reading progress."""

    __tablename__ = "user_books"
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_user_book"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    current_page: Mapped[int] = mapped_column(Integer, default=0)
    status: Mapped[str] = mapped_column(
        String(20), default=BookStatus.WANT_TO_READ.value, index=True
    )
    started_at: Mapped[Optional[str]] = mapped_column(String(32))
    completed_at: Mapped[Optional[str]] = mapped_column(String(32))

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)
    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_now_iso, onupdate=utc_now_iso
    )

    book: Mapped["Book"] = relationship("Book", back_populates="shelf_entries")

    def __repr__(self) -> str:
        return f"<UserBook(user={self.user_id}, book={self.book_id}, page={self.current_page})>"


class ReadingSession(Base):
    """Reading session model - one timed session on one book."""

    __tablename__ = "reading_sessions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    book_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True
    )
    start_page: Mapped[int] = mapped_column(Integer, default=0)
    end_page: Mapped[Optional[int]] = mapped_column(Integer)
    started_at: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_now_iso, index=True)
    ended_at: Mapped[Optional[str]] = mapped_column(String(32), index=True)
    duration_seconds: Mapped[Optional[int]] = mapped_column(Integer)
    pages_read: Mapped[Optional[int]] = mapped_column(Integer)

    def __repr__(self) -> str:
        return f"<ReadingSession(id={self.id}, book_id={self.book_id}, ended={self.ended_at})>"


class NotificationSetting(Base):
    """Per-user notification preferences."""

    __tablename__ = "notification_settings"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    daily_reminder_enabled: Mapped[bool] = mapped_column(Boolean, default=False, index=True)
    reminder_time: Mapped[str] = mapped_column(String(8), default="20:00:00")  # HH:MM:SS
    goal_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    streak_notifications: Mapped[bool] = mapped_column(Boolean, default=True)
    completion_notifications: Mapped[bool] = mapped_column(Boolean, default=True)

    updated_at: Mapped[str] = mapped_column(
        String(32), default=utc_now_iso, onupdate=utc_now_iso
    )

    def __repr__(self) -> str:
        return f"<NotificationSetting(user={self.user_id}, enabled={self.daily_reminder_enabled})>"


class PushSubscription(Base):
    """A web push endpoint registered by a user's browser."""

    __tablename__ = "push_subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "endpoint", name="uq_user_endpoint"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    endpoint: Mapped[str] = mapped_column(Text, nullable=False)
    p256dh: Mapped[str] = mapped_column(Text, nullable=False)
    auth: Mapped[str] = mapped_column(Text, nullable=False)

    created_at: Mapped[str] = mapped_column(String(32), default=utc_now_iso)

    def __repr__(self) -> str:
        return f"<PushSubscription(id={self.id}, user={self.user_id})>"
