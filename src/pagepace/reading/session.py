"""Reading session management.

Handles starting, pausing, resuming and stopping timed reading sessions,
tying together the session records in storage, the resumable timer and
the finalizer.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..db.schemas import BookStatus
from ..db.sqlite import Database
from ..errors import AlreadyActive, NoActiveSession, PartiallyCommitted
from .clock import Clock
from .finalizer import FinalizedSession, SessionFinalizer
from .state import TimerState
from .timer import ReadingTimer

logger = logging.getLogger(__name__)


@dataclass
class SessionStatus:
    """Snapshot of the session being timed."""

    session_id: str
    book_id: Optional[str]
    book_title: Optional[str]
    start_page: int
    elapsed_seconds: int
    is_paused: bool

    @property
    def elapsed_display(self) -> str:
        return format_elapsed(self.elapsed_seconds)


def format_elapsed(seconds: int) -> str:
    """Format seconds as ``M:SS`` or ``H:MM:SS``."""
    hours, remainder = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class ReadingSessionService:
    """Manages the reading session of one user on this device."""

    def __init__(
        self,
        db: Database,
        timer: ReadingTimer,
        finalizer: Optional[SessionFinalizer] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the session service.

        Args:
            db: Database instance
            timer: Resumable timer with its checkpoint store
            finalizer: Session finalizer (built from db and timer if omitted)
            clock: Wall-clock source shared with the timer
        """
        self.db = db
        self.timer = timer
        self.clock = clock or timer.clock
        self.finalizer = finalizer or SessionFinalizer(db, timer.store, self.clock)
        self.timer.restore()

    @property
    def active_state(self) -> Optional[TimerState]:
        return self.timer.state

    def start_session(self, user_id: str, book_id: str) -> TimerState:
        """Start a reading session from the user's current page.

        Raises:
            ValueError: If the book does not exist
            AlreadyActive: If another session is being timed
            OSError: If the timer checkpoint cannot be written; the session
                record is removed again and the shelf status is unchanged
        """
        if self.timer.state is not None:
            raise AlreadyActive(self.timer.state.session_id)

        book = self.db.get_book(book_id)
        if not book:
            raise ValueError(f"Book not found: {book_id}")

        shelf_entry = self.db.get_user_book(user_id, book_id) or self.db.add_to_shelf(
            user_id, book_id
        )
        record = self.db.create_session(
            user_id=user_id,
            book_id=book_id,
            start_page=shelf_entry.current_page,
            started_at=self.clock.now(),
        )
        try:
            state = self.timer.start(
                str(record.id), record.start_page, book_id=str(book_id), user_id=user_id
            )
        except Exception:
            logger.warning(f"Timer checkpoint failed; discarding session {record.id}")
            self.db.delete_session(str(record.id))
            raise

        if shelf_entry.status == BookStatus.WANT_TO_READ:
            self.db.mark_reading(str(shelf_entry.id), started_at=self.clock.now())

        logger.info(f"Reading session {record.id} started for '{book.title}'")
        return state

    def pause_session(self) -> TimerState:
        """Pause the active session."""
        return self.timer.pause()

    def resume_session(self) -> TimerState:
        """Resume the paused session."""
        return self.timer.resume()

    def status(self) -> Optional[SessionStatus]:
        """Describe the active session, or None when idle."""
        state = self.timer.state
        if state is None:
            return None

        book = self.db.get_book(state.book_id) if state.book_id else None
        return SessionStatus(
            session_id=state.session_id,
            book_id=state.book_id,
            book_title=book.title if book else None,
            start_page=state.start_page,
            elapsed_seconds=self.timer.elapsed_seconds(),
            is_paused=state.is_paused,
        )

    def stop_session(self, end_page: Any) -> FinalizedSession:
        """Stop the active session at ``end_page`` and record it.

        Invalid input raises before anything is written and leaves the
        timer running.
        """
        state = self.timer.state
        if state is None:
            raise NoActiveSession()

        book = self.db.get_book(state.book_id) if state.book_id else None
        try:
            result = self.finalizer.finalize(
                session_id=state.session_id,
                end_page_input=end_page,
                start_page=state.start_page,
                elapsed_seconds=self.timer.elapsed_seconds(),
                book_page_count=book.page_count if book else None,
            )
        except PartiallyCommitted:
            # The session record is final even though the book is stale
            self.timer.clear()
            raise
        self.timer.clear()
        return result

    def abandon_session(self) -> bool:
        """Drop the active session without recording it."""
        return self.timer.abandon()
