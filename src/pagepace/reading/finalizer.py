"""Session finalization.

Turns the end-of-session page input into a committed session record and
a matching book-progress update. Both records must end up written, or the
caller must be told exactly which one was not:

- Storage with ``commit_finalization`` writes both in one transaction.
- Otherwise the session is written first and the book progress second; a
  failure of the second write raises ``PartiallyCommitted`` so the caller
  can retry it with ``complete_partial`` or repair it later with
  ``reconcile``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..db.interfaces import AtomicFinalizationStorage, SessionStorage
from ..db.schemas import (
    MAX_PAGE_NUMBER,
    BookProgress,
    BookStatus,
    SessionFinalization,
    SessionRecord,
    UserBookResponse,
)
from ..errors import (
    AlreadyFinalized,
    InvalidPage,
    PartiallyCommitted,
    RegressivePage,
    SessionNotFound,
)
from .clock import Clock, SystemClock
from .store import TimerStateStore

logger = logging.getLogger(__name__)


def parse_page(value: Any, max_page: int = MAX_PAGE_NUMBER) -> int:
    """Parse user page input into a page number.

    Accepts integers and strings of decimal digits (surrounding whitespace
    is ignored).

    Raises:
        InvalidPage: If the value is malformed, negative or above ``max_page``.
    """
    if isinstance(value, bool):
        raise InvalidPage(value, "not a number")

    if isinstance(value, int):
        page = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidPage(value, "page number is required")
        if not text.isdigit() or not text.isascii():
            raise InvalidPage(value, "must be a whole number")
        digits = text.lstrip("0") or "0"
        if len(digits) > len(str(max_page)):
            raise InvalidPage(value, f"page number must be at most {max_page}")
        page = int(digits)
    else:
        raise InvalidPage(value, "not a number")

    if page < 0:
        raise InvalidPage(value, "page number cannot be negative")
    if page > max_page:
        raise InvalidPage(value, f"page number must be at most {max_page}")
    return page


def derive_progress(end_page: int, page_count: Optional[int], now: datetime) -> BookProgress:
    """Book progress after reaching ``end_page``.

    A book only completes when its page count is known.
    """
    if page_count is not None and page_count > 0 and end_page >= page_count:
        return BookProgress(current_page=end_page, status=BookStatus.COMPLETED, completed_at=now)
    return BookProgress(current_page=end_page, status=BookStatus.READING, completed_at=None)


@dataclass
class FinalizedSession:
    """Result of a successful finalization."""

    session: SessionRecord
    progress: BookProgress
    shelf_entry: Optional[UserBookResponse] = None

    @property
    def book_completed(self) -> bool:
        return self.progress.status == BookStatus.COMPLETED


class SessionFinalizer:
    """Validates end-of-session input and commits the session."""

    def __init__(
        self,
        storage: SessionStorage,
        timer_store: Optional[TimerStateStore] = None,
        clock: Optional[Clock] = None,
        max_page: int = MAX_PAGE_NUMBER,
    ):
        """Initialize the finalizer.

        Args:
            storage: Storage collaborator for sessions and book progress
            timer_store: Timer checkpoints to clear once a session is final
            clock: Wall-clock source for ``ended_at`` and ``completed_at``
            max_page: Largest page number accepted as input
        """
        self.storage = storage
        self.timer_store = timer_store
        self.clock = clock or SystemClock()
        self.max_page = max_page

    def finalize(
        self,
        session_id: str,
        end_page_input: Any,
        start_page: int,
        elapsed_seconds: int,
        book_page_count: Optional[int],
        user_book_id: Optional[str] = None,
    ) -> FinalizedSession:
        """Finalize a reading session.

        Args:
            session_id: Session to finalize
            end_page_input: Raw page the reader stopped at
            start_page: Page the session started from
            elapsed_seconds: Active reading time
            book_page_count: Page count of the book, if known
            user_book_id: Shelf entry to update; looked up from the
                          session's user and book when omitted

        Raises:
            InvalidPage: Malformed or out-of-range page input.
            RegressivePage: End page before the start page.
            SessionNotFound: Unknown session.
            AlreadyFinalized: The session was finalized before.
            StorageUnavailable: Nothing was written; safe to retry.
            PartiallyCommitted: Session written, book progress not.
        """
        end_page = parse_page(end_page_input, self.max_page)
        if isinstance(start_page, bool) or not isinstance(start_page, int) or start_page < 0:
            raise InvalidPage(start_page, "start page must be a non-negative whole number")
        if end_page < start_page:
            raise RegressivePage(end_page, start_page)

        record = self.storage.get_reading_session(str(session_id))
        if record is None:
            raise SessionNotFound(str(session_id))
        if record.is_finalized:
            raise AlreadyFinalized(str(session_id))

        if user_book_id is None:
            shelf_entry = self.storage.get_user_book(record.user_id, str(record.book_id))
            if shelf_entry is not None:
                user_book_id = str(shelf_entry.id)
            else:
                logger.warning(
                    f"Session {session_id} has no shelf entry; book progress will not be updated"
                )

        now = self.clock.now()
        fields = SessionFinalization(
            ended_at=now,
            duration_seconds=max(0, int(elapsed_seconds)),
            end_page=end_page,
            pages_read=end_page - start_page,
        )
        progress = derive_progress(end_page, book_page_count, now)

        if isinstance(self.storage, AtomicFinalizationStorage):
            committed, entry = self.storage.commit_finalization(
                str(session_id), fields, user_book_id, progress
            )
        else:
            committed, entry = self._commit_in_order(str(session_id), fields, user_book_id, progress)

        self._clear_timer(str(session_id))
        logger.info(
            f"Session {session_id} finalized: {fields.pages_read} pages "
            f"in {fields.duration_seconds}s"
            + (" (book completed)" if progress.status == BookStatus.COMPLETED else "")
        )
        return FinalizedSession(session=committed, progress=progress, shelf_entry=entry)

    def _commit_in_order(
        self,
        session_id: str,
        fields: SessionFinalization,
        user_book_id: Optional[str],
        progress: BookProgress,
    ) -> tuple[SessionRecord, Optional[UserBookResponse]]:
        committed = self.storage.finalize_session(session_id, fields)
        if user_book_id is None:
            return committed, None

        try:
            entry = self.storage.update_book_progress(user_book_id, progress)
        except Exception as e:
            logger.error(
                f"Session {session_id} committed but progress for {user_book_id} failed: {e}"
            )
            # The session is final now, so its timer must not be resumed
            self._clear_timer(session_id)
            raise PartiallyCommitted(committed, user_book_id, progress, cause=e) from e
        return committed, entry

    def complete_partial(self, error: PartiallyCommitted) -> FinalizedSession:
        """Retry the book-progress write of a partially committed session."""
        entry = self.storage.update_book_progress(error.user_book_id, error.pending_progress)
        logger.info(f"Book progress for session {error.session.id} written on retry")
        return FinalizedSession(
            session=error.session,
            progress=error.pending_progress,
            shelf_entry=entry,
        )

    def reconcile(
        self, user_id: str, book_id: str, book_page_count: Optional[int]
    ) -> Optional[UserBookResponse]:
        """Repair book progress left stale by a partial commit.

        Compares the shelf entry with the latest finalized session for the
        book and rewrites the progress if they disagree.

        Returns:
            The updated shelf entry, or None if nothing needed repair
        """
        shelf_entry = self.storage.get_user_book(user_id, str(book_id))
        if shelf_entry is None:
            return None

        sessions = [
            s for s in self.storage.list_finalized_sessions(user_id)
            if str(s.book_id) == str(book_id) and s.end_page is not None
        ]
        if not sessions:
            return None

        latest = sessions[-1]
        if shelf_entry.current_page == latest.end_page:
            return None

        logger.warning(
            f"Shelf entry {shelf_entry.id} shows page {shelf_entry.current_page} "
            f"but session {latest.id} ended at {latest.end_page}; repairing"
        )
        progress = derive_progress(latest.end_page, book_page_count, latest.ended_at)
        return self.storage.update_book_progress(str(shelf_entry.id), progress)

    def _clear_timer(self, session_id: str) -> None:
        if self.timer_store is None:
            return
        try:
            self.timer_store.clear(session_id)
        except OSError as e:
            logger.warning(f"Could not clear timer checkpoint for session {session_id}: {e}")
