"""Tests for session finalization."""

from datetime import datetime, timezone
from typing import Optional
from unittest.mock import MagicMock

import pytest

from pagepace.db.schemas import (
    BookProgress,
    BookStatus,
    BookSummary,
    SessionFinalization,
    SessionRecord,
    UserBookResponse,
)
from pagepace.db.sqlite import Database
from pagepace.errors import (
    AlreadyFinalized,
    InvalidPage,
    PartiallyCommitted,
    RegressivePage,
    SessionNotFound,
    StorageUnavailable,
)
from pagepace.reading import (
    ManualClock,
    SessionFinalizer,
    TimerState,
    TimerStateStore,
    derive_progress,
    parse_page,
)

TEST_USER = "reader-1"
T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


class TestParsePage:
    """Tests for page input parsing."""

    @pytest.mark.parametrize("value,expected", [(0, 0), (65, 65), ("65", 65), ("  12 ", 12)])
    def test_valid(self, value, expected):
        assert parse_page(value) == expected

    @pytest.mark.parametrize("value", ["", "   ", "abc", "-1", "+5", "1.5", "12a", 3.0, None, True])
    def test_malformed(self, value):
        with pytest.raises(InvalidPage):
            parse_page(value)

    def test_negative(self):
        with pytest.raises(InvalidPage):
            parse_page(-1)

    def test_above_max(self):
        """Test the upper bound is inclusive."""
        assert parse_page(50000) == 50000
        with pytest.raises(InvalidPage):
            parse_page(50001)

    def test_huge_digit_string(self):
        """Test strings too long for int conversion are rejected as pages."""
        with pytest.raises(InvalidPage):
            parse_page("9" * 5000)

    def test_leading_zeros(self):
        assert parse_page("000000000042") == 42
        assert parse_page("0000") == 0


class TestDeriveProgress:
    """Tests for completion derivation."""

    def test_reaching_last_page_completes(self):
        progress = derive_progress(65, 65, T0)

        assert progress.status == BookStatus.COMPLETED
        assert progress.completed_at == T0

    def test_past_last_page_completes(self):
        assert derive_progress(70, 65, T0).status == BookStatus.COMPLETED

    def test_before_last_page_is_reading(self):
        progress = derive_progress(64, 65, T0)

        assert progress.status == BookStatus.READING
        assert progress.completed_at is None

    @pytest.mark.parametrize("page_count", [None, 0, -3])
    def test_unknown_page_count_never_completes(self, page_count):
        assert derive_progress(10_000, page_count, T0).status == BookStatus.READING


class TestFinalizeWithDatabase:
    """Tests for finalization against the SQLite storage."""

    @pytest.fixture
    def open_session(self, db: Database, created_book: BookSummary) -> SessionRecord:
        entry = db.add_to_shelf(TEST_USER, str(created_book.id), BookStatus.READING)
        db.update_book_progress(
            str(entry.id), BookProgress(current_page=50, status=BookStatus.READING)
        )
        return db.create_session(TEST_USER, str(created_book.id), 50, started_at=T0)

    def test_finalize_completes_book(
        self, db: Database, finalizer: SessionFinalizer, open_session, created_book, clock
    ):
        """Test reading from page 50 to the last page 65 in 600s completes the book."""
        clock.advance(seconds=600)

        result = finalizer.finalize(
            session_id=str(open_session.id),
            end_page_input=65,
            start_page=50,
            elapsed_seconds=600,
            book_page_count=created_book.page_count,
        )

        assert result.session.pages_read == 15
        assert result.session.duration_seconds == 600
        assert result.session.end_page == 65
        assert result.session.ended_at is not None
        assert result.book_completed

        entry = db.get_user_book(TEST_USER, str(created_book.id))
        assert entry.current_page == 65
        assert entry.status == BookStatus.COMPLETED
        assert entry.completed_at is not None

    def test_finalize_partial_read(
        self, db: Database, finalizer: SessionFinalizer, open_session, created_book
    ):
        """Test stopping before the end keeps the book in progress."""
        result = finalizer.finalize(str(open_session.id), "60", 50, 300, created_book.page_count)

        assert not result.book_completed
        entry = db.get_user_book(TEST_USER, str(created_book.id))
        assert entry.current_page == 60
        assert entry.status == BookStatus.READING
        assert entry.completed_at is None

    def test_zero_pages_is_allowed(self, finalizer: SessionFinalizer, open_session, created_book):
        result = finalizer.finalize(str(open_session.id), 50, 50, 30, created_book.page_count)
        assert result.session.pages_read == 0

    def test_double_finalize_raises(
        self, db: Database, finalizer: SessionFinalizer, open_session, created_book
    ):
        """Test a session can only be finalized once and the first result stands."""
        finalizer.finalize(str(open_session.id), 60, 50, 300, created_book.page_count)

        with pytest.raises(AlreadyFinalized):
            finalizer.finalize(str(open_session.id), 65, 50, 900, created_book.page_count)

        record = db.get_reading_session(str(open_session.id))
        assert record.end_page == 60
        assert record.duration_seconds == 300
        assert db.get_user_book(TEST_USER, str(created_book.id)).current_page == 60

    def test_regressive_page_writes_nothing(
        self, db: Database, finalizer: SessionFinalizer, open_session, created_book
    ):
        """Test an end page before the start page leaves all records untouched."""
        with pytest.raises(RegressivePage):
            finalizer.finalize(str(open_session.id), 40, 50, 300, created_book.page_count)

        assert not db.get_reading_session(str(open_session.id)).is_finalized
        assert db.get_user_book(TEST_USER, str(created_book.id)).current_page == 50

    def test_invalid_page_writes_nothing(
        self, db: Database, finalizer: SessionFinalizer, open_session, created_book
    ):
        with pytest.raises(InvalidPage):
            finalizer.finalize(str(open_session.id), "sixty", 50, 300, created_book.page_count)

        assert not db.get_reading_session(str(open_session.id)).is_finalized

    def test_unknown_session(self, finalizer: SessionFinalizer):
        with pytest.raises(SessionNotFound):
            finalizer.finalize("00000000-0000-0000-0000-000000000000", 10, 0, 60, 100)

    def test_unknown_page_count_stays_reading(
        self, db: Database, finalizer: SessionFinalizer, unknown_length_book
    ):
        """Test a book without a page count is never marked completed."""
        db.add_to_shelf(TEST_USER, str(unknown_length_book.id), BookStatus.READING)
        record = db.create_session(TEST_USER, str(unknown_length_book.id), 0, started_at=T0)

        result = finalizer.finalize(str(record.id), 900, 0, 60, None)

        assert not result.book_completed
        entry = db.get_user_book(TEST_USER, str(unknown_length_book.id))
        assert entry.status == BookStatus.READING

    def test_success_clears_timer(
        self, finalizer: SessionFinalizer, store: TimerStateStore, open_session, created_book
    ):
        """Test the timer checkpoint is removed once the session is final."""
        store.save(TimerState(session_id=str(open_session.id), session_started_at_ms=0))

        finalizer.finalize(str(open_session.id), 55, 50, 120, created_book.page_count)

        assert store.load(str(open_session.id)) is None

    def test_atomic_rollback_on_progress_failure(
        self, db: Database, store: TimerStateStore, clock, open_session, created_book
    ):
        """Test a failed progress write in the atomic path rolls back the session too."""
        entry = db.get_user_book(TEST_USER, str(created_book.id))
        finalizer = SessionFinalizer(db, store, clock)

        with pytest.raises(ValueError):
            finalizer.finalize(
                str(open_session.id), 60, 50, 300, created_book.page_count,
                user_book_id="00000000-0000-0000-0000-000000000000",
            )

        assert not db.get_reading_session(str(open_session.id)).is_finalized
        assert db.get_user_book(TEST_USER, str(created_book.id)).current_page == entry.current_page


class TwoStepStorage:
    """Storage without an atomic commit, wrapping a MagicMock for assertions."""

    def __init__(self, record: SessionRecord, shelf_entry: Optional[UserBookResponse]):
        self.record = record
        self.shelf_entry = shelf_entry
        self.calls = MagicMock()
        self.fail_progress: Optional[Exception] = None
        self.fail_session: Optional[Exception] = None

    def create_session(self, user_id, book_id, start_page):
        raise NotImplementedError

    def get_reading_session(self, session_id):
        return self.record if str(self.record.id) == session_id else None

    def finalize_session(self, session_id, fields: SessionFinalization):
        self.calls.finalize_session(session_id, fields)
        if self.fail_session:
            raise self.fail_session
        self.record = self.record.model_copy(update=fields.model_dump())
        return self.record

    def get_user_book(self, user_id, book_id):
        return self.shelf_entry

    def update_book_progress(self, user_book_id, progress: BookProgress):
        self.calls.update_book_progress(user_book_id, progress)
        if self.fail_progress:
            raise self.fail_progress
        self.shelf_entry = self.shelf_entry.model_copy(update=progress.model_dump())
        return self.shelf_entry

    def list_finalized_sessions(self, user_id):
        return [self.record] if self.record.is_finalized else []


class TestFinalizeTwoStep:
    """Tests for storage that commits session and progress separately."""

    SESSION_ID = "11111111-1111-1111-1111-111111111111"
    BOOK_ID = "22222222-2222-2222-2222-222222222222"
    SHELF_ID = "33333333-3333-3333-3333-333333333333"

    @pytest.fixture
    def storage(self) -> TwoStepStorage:
        record = SessionRecord(
            id=self.SESSION_ID,
            user_id=TEST_USER,
            book_id=self.BOOK_ID,
            start_page=50,
            started_at=T0,
        )
        entry = UserBookResponse(
            id=self.SHELF_ID,
            user_id=TEST_USER,
            book_id=self.BOOK_ID,
            current_page=50,
            status=BookStatus.READING,
            started_at=T0,
            completed_at=None,
        )
        return TwoStepStorage(record, entry)

    @pytest.fixture
    def two_step(self, storage, store: TimerStateStore, clock: ManualClock) -> SessionFinalizer:
        return SessionFinalizer(storage, store, clock)

    def test_writes_session_then_progress(self, two_step: SessionFinalizer, storage):
        """Test the session record is written before the book progress."""
        result = two_step.finalize(self.SESSION_ID, 65, 50, 600, 65)

        names = [c[0] for c in storage.calls.mock_calls]
        assert names == ["finalize_session", "update_book_progress"]
        assert result.book_completed
        assert result.shelf_entry.status == BookStatus.COMPLETED

    def test_progress_failure_raises_partially_committed(
        self, two_step: SessionFinalizer, storage, store: TimerStateStore
    ):
        """Test a failed second write reports exactly what is pending."""
        store.save(TimerState(session_id=self.SESSION_ID, session_started_at_ms=0))
        storage.fail_progress = StorageUnavailable("database is locked")

        with pytest.raises(PartiallyCommitted) as exc_info:
            two_step.finalize(self.SESSION_ID, 60, 50, 300, 65)

        error = exc_info.value
        assert error.session.end_page == 60
        assert error.user_book_id == self.SHELF_ID
        assert error.pending_progress.current_page == 60
        assert isinstance(error.cause, StorageUnavailable)
        assert storage.shelf_entry.current_page == 50
        # The session is final, so its timer must not come back
        assert store.load(self.SESSION_ID) is None

    def test_complete_partial_retries_progress(self, two_step: SessionFinalizer, storage):
        """Test the pending progress can be written after a partial commit."""
        storage.fail_progress = StorageUnavailable("database is locked")
        with pytest.raises(PartiallyCommitted) as exc_info:
            two_step.finalize(self.SESSION_ID, 65, 50, 600, 65)

        storage.fail_progress = None
        result = two_step.complete_partial(exc_info.value)

        assert result.shelf_entry.current_page == 65
        assert result.book_completed

    def test_reconcile_repairs_stale_progress(self, two_step: SessionFinalizer, storage):
        """Test reconcile brings the shelf entry in line with the last session."""
        storage.fail_progress = StorageUnavailable("database is locked")
        with pytest.raises(PartiallyCommitted):
            two_step.finalize(self.SESSION_ID, 62, 50, 600, 65)
        storage.fail_progress = None

        repaired = two_step.reconcile(TEST_USER, self.BOOK_ID, 65)

        assert repaired is not None
        assert repaired.current_page == 62
        assert repaired.status == BookStatus.READING

    def test_reconcile_noop_when_consistent(self, two_step: SessionFinalizer, storage):
        two_step.finalize(self.SESSION_ID, 60, 50, 300, 65)
        assert two_step.reconcile(TEST_USER, self.BOOK_ID, 65) is None

    def test_session_failure_writes_nothing(self, two_step: SessionFinalizer, storage):
        """Test a failed first write propagates and skips the progress write."""
        storage.fail_session = StorageUnavailable("database is locked")

        with pytest.raises(StorageUnavailable):
            two_step.finalize(self.SESSION_ID, 60, 50, 300, 65)

        names = [c[0] for c in storage.calls.mock_calls]
        assert names == ["finalize_session"]
        assert storage.shelf_entry.current_page == 50

    def test_already_finalized_checked_before_writing(self, two_step: SessionFinalizer, storage):
        storage.record = storage.record.model_copy(
            update={"ended_at": datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)}
        )

        with pytest.raises(AlreadyFinalized):
            two_step.finalize(self.SESSION_ID, 60, 50, 300, 65)

        assert storage.calls.mock_calls == []
