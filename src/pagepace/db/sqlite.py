"""SQLite database operations.

Handles database connection, session management, and the storage
operations used by reading sessions, analytics and reminders.
"""

import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator, Optional

from sqlalchemy import create_engine, func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import AlreadyFinalized, SessionNotFound, StorageUnavailable
from .models import Base, Book, NotificationSetting, PushSubscription, ReadingSession, UserBook
from .schemas import (
    BookCreate,
    BookProgress,
    BookStatus,
    BookSummary,
    NotificationSettingsUpdate,
    PushSubscriptionCreate,
    PushSubscriptionResponse,
    ReminderPreference,
    SessionFinalization,
    SessionRecord,
    UserBookResponse,
)

logger = logging.getLogger(__name__)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a UTC ISO string; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


class Database:
    """Database connection and operations manager."""

    def __init__(self, db_path: Optional[str] = None):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses
                     PAGEPACE_DB_PATH env var or default location.
        """
        if db_path is None:
            db_path = os.environ.get(
                "PAGEPACE_DB_PATH",
                str(Path.home() / ".pagepace" / "pagepace.db"),
            )

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # This ensures all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager.

        Operational failures (locked or unreachable database) surface as
        StorageUnavailable after the transaction is rolled back.
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except OperationalError as e:
            session.rollback()
            logger.warning(f"Storage operation failed: {e}")
            raise StorageUnavailable(str(e)) from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ========================================================================
    # Book Operations
    # ========================================================================

    def create_book(self, book: BookCreate) -> BookSummary:
        """Create a new book record."""
        with self.get_session() as s:
            db_book = Book(title=book.title, author=book.author, page_count=book.page_count)
            s.add(db_book)
            s.flush()
            return BookSummary.model_validate(db_book)

    def get_book(self, book_id: str) -> Optional[BookSummary]:
        """Get a book by ID."""
        with self.get_session() as s:
            book = s.get(Book, str(book_id))
            return BookSummary.model_validate(book) if book else None

    def add_to_shelf(
        self,
        user_id: str,
        book_id: str,
        status: BookStatus = BookStatus.WANT_TO_READ,
    ) -> UserBookResponse:
        """Put a book on a user's shelf, returning the existing entry if present."""
        with self.get_session() as s:
            stmt = select(UserBook).where(
                UserBook.user_id == user_id, UserBook.book_id == str(book_id)
            )
            entry = s.execute(stmt).scalar_one_or_none()
            if entry is None:
                entry = UserBook(user_id=user_id, book_id=str(book_id), status=status.value)
                s.add(entry)
                s.flush()
            return UserBookResponse.model_validate(entry)

    def get_user_book(
        self, user_id: str, book_id: str, session: Optional[Session] = None
    ) -> Optional[UserBookResponse]:
        """Get a user's shelf entry for a book."""

        def _get(s: Session) -> Optional[UserBookResponse]:
            stmt = select(UserBook).where(
                UserBook.user_id == user_id, UserBook.book_id == str(book_id)
            )
            entry = s.execute(stmt).scalar_one_or_none()
            return UserBookResponse.model_validate(entry) if entry else None

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def get_user_books(
        self, user_id: str, status: Optional[BookStatus] = None
    ) -> list[UserBookResponse]:
        """Get a user's shelf, optionally filtered by status."""
        with self.get_session() as s:
            stmt = select(UserBook).where(UserBook.user_id == user_id)
            if status:
                stmt = stmt.where(UserBook.status == status.value)
            stmt = stmt.order_by(UserBook.updated_at.desc())
            return [UserBookResponse.model_validate(e) for e in s.execute(stmt).scalars().all()]

    def count_user_books(self, user_id: str, status: Optional[BookStatus] = None) -> int:
        """Count books on a user's shelf."""
        with self.get_session() as s:
            stmt = select(func.count()).select_from(UserBook).where(UserBook.user_id == user_id)
            if status:
                stmt = stmt.where(UserBook.status == status.value)
            return s.execute(stmt).scalar_one()

    def mark_reading(self, user_book_id: str, started_at: Optional[datetime] = None) -> None:
        """Move a want-to-read shelf entry to reading."""
        with self.get_session() as s:
            entry = s.get(UserBook, str(user_book_id))
            if entry and entry.status == BookStatus.WANT_TO_READ.value:
                entry.status = BookStatus.READING.value
                entry.started_at = to_iso(started_at or datetime.now(timezone.utc))

    def update_book_progress(
        self,
        user_book_id: str,
        progress: BookProgress,
        session: Optional[Session] = None,
    ) -> UserBookResponse:
        """Write current page, status and completion time of a shelf entry."""

        def _update(s: Session) -> UserBookResponse:
            entry = s.get(UserBook, str(user_book_id))
            if entry is None:
                raise ValueError(f"Shelf entry not found: {user_book_id}")

            entry.current_page = progress.current_page
            entry.status = progress.status.value
            entry.completed_at = to_iso(progress.completed_at)
            if entry.started_at is None:
                entry.started_at = datetime.now(timezone.utc).isoformat()
            s.flush()
            return UserBookResponse.model_validate(entry)

        if session:
            return _update(session)
        else:
            with self.get_session() as s:
                return _update(s)

    def get_currently_reading_book(self, user_id: str) -> Optional[BookSummary]:
        """Get the most recently updated book the user is reading."""
        with self.get_session() as s:
            stmt = (
                select(Book)
                .join(UserBook, UserBook.book_id == Book.id)
                .where(
                    UserBook.user_id == user_id,
                    UserBook.status == BookStatus.READING.value,
                )
                .order_by(UserBook.updated_at.desc())
                .limit(1)
            )
            book = s.execute(stmt).scalar_one_or_none()
            return BookSummary.model_validate(book) if book else None

    # ========================================================================
    # Reading Session Operations
    # ========================================================================

    def create_session(
        self,
        user_id: str,
        book_id: str,
        start_page: int,
        started_at: Optional[datetime] = None,
    ) -> SessionRecord:
        """Create an in-progress reading session."""
        with self.get_session() as s:
            record = ReadingSession(
                user_id=user_id,
                book_id=str(book_id),
                start_page=start_page,
                started_at=to_iso(started_at or datetime.now(timezone.utc)),
            )
            s.add(record)
            s.flush()
            return SessionRecord.model_validate(record)

    def get_reading_session(
        self, session_id: str, session: Optional[Session] = None
    ) -> Optional[SessionRecord]:
        """Get a reading session by ID."""

        def _get(s: Session) -> Optional[SessionRecord]:
            record = s.get(ReadingSession, str(session_id))
            return SessionRecord.model_validate(record) if record else None

        if session:
            return _get(session)
        else:
            with self.get_session() as s:
                return _get(s)

    def delete_session(self, session_id: str) -> bool:
        """Delete an unfinished reading session.

        Returns:
            True if a row was removed
        """
        with self.get_session() as s:
            record = s.get(ReadingSession, str(session_id))
            if record is None or record.ended_at is not None:
                return False
            s.delete(record)
            return True

    def finalize_session(
        self,
        session_id: str,
        fields: SessionFinalization,
        session: Optional[Session] = None,
    ) -> SessionRecord:
        """Write the end fields of a session exactly once.

        The update only matches rows whose ``ended_at`` is still empty,
        so a stale second writer cannot overwrite the first result.
        """

        def _finalize(s: Session) -> SessionRecord:
            stmt = (
                update(ReadingSession)
                .where(
                    ReadingSession.id == str(session_id),
                    ReadingSession.ended_at.is_(None),
                )
                .values(
                    ended_at=to_iso(fields.ended_at),
                    duration_seconds=fields.duration_seconds,
                    end_page=fields.end_page,
                    pages_read=fields.pages_read,
                )
                .execution_options(synchronize_session=False)
            )
            result = s.execute(stmt)

            if result.rowcount == 0:
                existing = s.get(ReadingSession, str(session_id))
                if existing is None:
                    raise SessionNotFound(str(session_id))
                raise AlreadyFinalized(str(session_id))

            record = s.get(ReadingSession, str(session_id))
            s.refresh(record)
            return SessionRecord.model_validate(record)

        if session:
            return _finalize(session)
        else:
            with self.get_session() as s:
                return _finalize(s)

    def commit_finalization(
        self,
        session_id: str,
        fields: SessionFinalization,
        user_book_id: Optional[str],
        progress: BookProgress,
    ) -> tuple[SessionRecord, Optional[UserBookResponse]]:
        """Finalize a session and update book progress in one transaction."""
        with self.get_session() as s:
            record = self.finalize_session(session_id, fields, session=s)
            shelf_entry = None
            if user_book_id is not None:
                shelf_entry = self.update_book_progress(user_book_id, progress, session=s)
            return record, shelf_entry

    def list_finalized_sessions(self, user_id: str) -> list[SessionRecord]:
        """List a user's finalized sessions, oldest first."""
        with self.get_session() as s:
            stmt = (
                select(ReadingSession)
                .where(
                    ReadingSession.user_id == user_id,
                    ReadingSession.ended_at.is_not(None),
                )
                .order_by(ReadingSession.started_at)
            )
            return [SessionRecord.model_validate(r) for r in s.execute(stmt).scalars().all()]

    # ========================================================================
    # Notification Operations
    # ========================================================================

    def get_notification_settings(self, user_id: str) -> ReminderPreference:
        """Get a user's reminder preference, with defaults if never saved."""
        with self.get_session() as s:
            setting = s.get(NotificationSetting, user_id)
            if setting is None:
                return ReminderPreference(user_id=user_id)
            return ReminderPreference(
                user_id=setting.user_id,
                enabled=setting.daily_reminder_enabled,
                time_of_day=setting.reminder_time,
            )

    def update_notification_settings(
        self, user_id: str, update_data: NotificationSettingsUpdate
    ) -> ReminderPreference:
        """Create or update a user's notification settings."""
        with self.get_session() as s:
            setting = s.get(NotificationSetting, user_id)
            if setting is None:
                setting = NotificationSetting(user_id=user_id)
                s.add(setting)

            for field, value in update_data.model_dump(exclude_unset=True).items():
                if value is None:
                    continue
                if field == "reminder_time":
                    setting.reminder_time = value.strftime("%H:%M:%S")
                else:
                    setattr(setting, field, value)
            s.flush()

            return ReminderPreference(
                user_id=setting.user_id,
                enabled=setting.daily_reminder_enabled,
                time_of_day=setting.reminder_time,
            )

    def get_reminder_preferences(self, enabled_only: bool = True) -> list[ReminderPreference]:
        """List reminder preferences for all users."""
        with self.get_session() as s:
            stmt = select(NotificationSetting)
            if enabled_only:
                stmt = stmt.where(NotificationSetting.daily_reminder_enabled.is_(True))
            stmt = stmt.order_by(NotificationSetting.user_id)
            return [
                ReminderPreference(
                    user_id=setting.user_id,
                    enabled=setting.daily_reminder_enabled,
                    time_of_day=setting.reminder_time,
                )
                for setting in s.execute(stmt).scalars().all()
            ]

    def add_push_subscription(self, data: PushSubscriptionCreate) -> PushSubscriptionResponse:
        """Register a push endpoint, updating keys if the endpoint is known."""
        with self.get_session() as s:
            stmt = select(PushSubscription).where(
                PushSubscription.user_id == data.user_id,
                PushSubscription.endpoint == data.endpoint,
            )
            sub = s.execute(stmt).scalar_one_or_none()
            if sub is None:
                sub = PushSubscription(user_id=data.user_id, endpoint=data.endpoint)
                s.add(sub)
            sub.p256dh = data.p256dh
            sub.auth = data.auth
            s.flush()
            return PushSubscriptionResponse.model_validate(sub)

    def get_push_subscriptions(self, user_id: str) -> list[PushSubscriptionResponse]:
        """List a user's push subscriptions."""
        with self.get_session() as s:
            stmt = (
                select(PushSubscription)
                .where(PushSubscription.user_id == user_id)
                .order_by(PushSubscription.created_at)
            )
            return [
                PushSubscriptionResponse.model_validate(sub)
                for sub in s.execute(stmt).scalars().all()
            ]

    def delete_push_subscription(self, subscription_id: str) -> bool:
        """Remove a push subscription."""
        with self.get_session() as s:
            sub = s.get(PushSubscription, str(subscription_id))
            if not sub:
                return False
            s.delete(sub)
            return True


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    _db = None
