"""Tests for SQLite database operations."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from pagepace.db.models import NotificationSetting
from pagepace.db.schemas import (
    BookCreate,
    BookProgress,
    BookStatus,
    BookSummary,
    NotificationSettingsUpdate,
    PushSubscriptionCreate,
    SessionFinalization,
)
from pagepace.db.sqlite import Database, to_iso
from pagepace.errors import AlreadyFinalized, SessionNotFound, StorageUnavailable

TEST_USER = "reader-1"
T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


def finalization(end_page: int = 10, seconds: int = 600) -> SessionFinalization:
    return SessionFinalization(
        ended_at=T0 + timedelta(seconds=seconds),
        duration_seconds=seconds,
        end_page=end_page,
        pages_read=end_page,
    )


class TestHelpers:
    """Tests for module helpers."""

    def test_to_iso_naive_is_utc(self):
        assert to_iso(datetime(2026, 1, 5, 9, 0)) == "2026-01-05T09:00:00+00:00"

    def test_to_iso_converts_to_utc(self):
        value = datetime(2026, 1, 5, 10, 0, tzinfo=timezone(timedelta(hours=1)))
        assert to_iso(value) == "2026-01-05T09:00:00+00:00"

    def test_to_iso_none(self):
        assert to_iso(None) is None


class TestDatabaseBooks:
    """Tests for book and shelf operations."""

    def test_create_and_get_book(self, db: Database, sample_book_data: BookCreate):
        book = db.create_book(sample_book_data)

        fetched = db.get_book(str(book.id))
        assert fetched == book
        assert fetched.page_count == 65

    def test_get_missing_book(self, db: Database):
        assert db.get_book("00000000-0000-0000-0000-000000000000") is None

    def test_add_to_shelf_is_idempotent(self, db: Database, created_book: BookSummary):
        first = db.add_to_shelf(TEST_USER, str(created_book.id))
        second = db.add_to_shelf(TEST_USER, str(created_book.id), BookStatus.READING)

        assert first.id == second.id
        assert second.status == BookStatus.WANT_TO_READ
        assert db.count_user_books(TEST_USER) == 1

    def test_mark_reading(self, db: Database, created_book: BookSummary):
        entry = db.add_to_shelf(TEST_USER, str(created_book.id))

        db.mark_reading(str(entry.id), started_at=T0)

        updated = db.get_user_book(TEST_USER, str(created_book.id))
        assert updated.status == BookStatus.READING
        assert updated.started_at == T0

    def test_update_book_progress(self, db: Database, created_book: BookSummary):
        entry = db.add_to_shelf(TEST_USER, str(created_book.id), BookStatus.READING)

        updated = db.update_book_progress(
            str(entry.id),
            BookProgress(current_page=65, status=BookStatus.COMPLETED, completed_at=T0),
        )

        assert updated.current_page == 65
        assert updated.status == BookStatus.COMPLETED
        assert updated.completed_at == T0
        assert updated.progress.status == BookStatus.COMPLETED

    def test_update_missing_shelf_entry(self, db: Database):
        with pytest.raises(ValueError, match="Shelf entry not found"):
            db.update_book_progress(
                "00000000-0000-0000-0000-000000000000",
                BookProgress(current_page=1, status=BookStatus.READING),
            )

    def test_count_by_status(self, db: Database):
        for title, status in [("A", BookStatus.COMPLETED), ("B", BookStatus.READING)]:
            book = db.create_book(BookCreate(title=title))
            db.add_to_shelf(TEST_USER, str(book.id), status)

        assert db.count_user_books(TEST_USER) == 2
        assert db.count_user_books(TEST_USER, BookStatus.COMPLETED) == 1
        assert len(db.get_user_books(TEST_USER, BookStatus.READING)) == 1

    def test_currently_reading_book(self, db: Database, created_book: BookSummary):
        assert db.get_currently_reading_book(TEST_USER) is None

        db.add_to_shelf(TEST_USER, str(created_book.id), BookStatus.READING)

        assert db.get_currently_reading_book(TEST_USER).title == created_book.title


class TestDatabaseSessions:
    """Tests for reading session records."""

    def test_create_session(self, db: Database, created_book: BookSummary):
        record = db.create_session(TEST_USER, str(created_book.id), 12, started_at=T0)

        assert record.start_page == 12
        assert record.started_at == T0
        assert not record.is_finalized

    def test_finalize_session_once(self, db: Database, created_book: BookSummary):
        record = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0)

        final = db.finalize_session(str(record.id), finalization(10, 600))

        assert final.is_finalized
        assert final.duration_seconds == 600
        with pytest.raises(AlreadyFinalized):
            db.finalize_session(str(record.id), finalization(20, 900))
        assert db.get_reading_session(str(record.id)).end_page == 10

    def test_delete_session_only_unfinished(self, db: Database, created_book: BookSummary):
        open_record = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0)
        done = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0)
        db.finalize_session(str(done.id), finalization())

        assert db.delete_session(str(open_record.id))
        assert db.get_reading_session(str(open_record.id)) is None
        assert not db.delete_session(str(done.id))
        assert db.get_reading_session(str(done.id)) is not None

    def test_finalize_missing_session(self, db: Database):
        with pytest.raises(SessionNotFound):
            db.finalize_session("00000000-0000-0000-0000-000000000000", finalization())

    def test_commit_finalization_is_atomic(self, db: Database, created_book: BookSummary):
        """Test session and progress are written together or not at all."""
        record = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0)

        with pytest.raises(ValueError):
            db.commit_finalization(
                str(record.id),
                finalization(),
                "00000000-0000-0000-0000-000000000000",
                BookProgress(current_page=10, status=BookStatus.READING),
            )

        assert not db.get_reading_session(str(record.id)).is_finalized

    def test_commit_finalization(self, db: Database, created_book: BookSummary):
        entry = db.add_to_shelf(TEST_USER, str(created_book.id), BookStatus.READING)
        record = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0)

        final, shelf_entry = db.commit_finalization(
            str(record.id),
            finalization(10),
            str(entry.id),
            BookProgress(current_page=10, status=BookStatus.READING),
        )

        assert final.end_page == 10
        assert shelf_entry.current_page == 10

    def test_list_finalized_sessions_ordered(self, db: Database, created_book: BookSummary):
        late = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0 + timedelta(days=1))
        early = db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0)
        db.create_session(TEST_USER, str(created_book.id), 0, started_at=T0 + timedelta(days=2))
        db.finalize_session(str(late.id), finalization())
        db.finalize_session(str(early.id), finalization())

        sessions = db.list_finalized_sessions(TEST_USER)

        assert [s.id for s in sessions] == [early.id, late.id]

    def test_operational_error_is_storage_unavailable(self, db: Database):
        """Test a locked database surfaces as a retryable error."""
        error = OperationalError("SELECT 1", {}, Exception("database is locked"))
        with patch("sqlalchemy.orm.Session.get", side_effect=error):
            with pytest.raises(StorageUnavailable):
                db.get_reading_session("anything")


class TestDatabaseNotifications:
    """Tests for reminder settings and push subscriptions."""

    def test_default_settings(self, db: Database):
        preference = db.get_notification_settings(TEST_USER)

        assert preference.enabled is False
        assert preference.time_of_day.hour == 20

    def test_update_settings(self, db: Database):
        db.update_notification_settings(
            TEST_USER, NotificationSettingsUpdate(daily_reminder_enabled=True, reminder_time="07:30")
        )
        preference = db.update_notification_settings(
            TEST_USER, NotificationSettingsUpdate(reminder_time="08:15")
        )

        assert preference.enabled is True
        assert preference.time_of_day.strftime("%H:%M") == "08:15"

    def test_update_notification_toggles(self, db: Database):
        db.update_notification_settings(
            TEST_USER,
            NotificationSettingsUpdate(streak_notifications=False, completion_notifications=True),
        )

        with db.get_session() as s:
            setting = s.get(NotificationSetting, TEST_USER)
            assert setting.goal_notifications is True
            assert setting.streak_notifications is False
            assert setting.completion_notifications is True

    def test_reminder_preferences_enabled_only(self, db: Database):
        db.update_notification_settings("a", NotificationSettingsUpdate(daily_reminder_enabled=True))
        db.update_notification_settings("b", NotificationSettingsUpdate(daily_reminder_enabled=False))

        assert [p.user_id for p in db.get_reminder_preferences()] == ["a"]
        assert len(db.get_reminder_preferences(enabled_only=False)) == 2

    def test_push_subscriptions(self, db: Database):
        data = PushSubscriptionCreate(
            user_id=TEST_USER, endpoint="https://push.example/1", p256dh="k1", auth="a1"
        )
        first = db.add_push_subscription(data)
        again = db.add_push_subscription(data.model_copy(update={"p256dh": "k2"}))

        subs = db.get_push_subscriptions(TEST_USER)
        assert len(subs) == 1
        assert first.id == again.id
        assert subs[0].p256dh == "k2"

        assert db.delete_push_subscription(str(first.id)) is True
        assert db.get_push_subscriptions(TEST_USER) == []
        assert db.delete_push_subscription(str(first.id)) is False
