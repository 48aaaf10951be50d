"""Storage interfaces consumed by the reading-session core.

Any backend can implement these protocols; ``Database`` in ``sqlite.py``
is the bundled SQLite implementation.
"""

from typing import Optional, Protocol, runtime_checkable

from .schemas import (
    BookProgress,
    BookSummary,
    PushSubscriptionResponse,
    ReminderPreference,
    SessionFinalization,
    SessionRecord,
    UserBookResponse,
)


class SessionStorage(Protocol):
    """Protocol defining the storage operations used by sessions and analytics."""

    def create_session(self, user_id: str, book_id: str, start_page: int) -> SessionRecord:
        """Create an in-progress session record."""
        ...

    def get_reading_session(self, session_id: str) -> Optional[SessionRecord]:
        """Retrieve a session record, or None if it does not exist."""
        ...

    def finalize_session(self, session_id: str, fields: SessionFinalization) -> SessionRecord:
        """Write the end fields of a session.

        Raises:
            SessionNotFound: If the session does not exist.
            AlreadyFinalized: If the session already has an end time.
            StorageUnavailable: If the write failed.
        """
        ...

    def get_user_book(self, user_id: str, book_id: str) -> Optional[UserBookResponse]:
        """Retrieve a user's shelf entry for a book."""
        ...

    def update_book_progress(self, user_book_id: str, progress: BookProgress) -> UserBookResponse:
        """Write progress fields of a shelf entry.

        Raises:
            StorageUnavailable: If the write failed.
        """
        ...

    def list_finalized_sessions(self, user_id: str) -> list[SessionRecord]:
        """List a user's finalized sessions ordered by start time."""
        ...


@runtime_checkable
class AtomicFinalizationStorage(Protocol):
    """Storage that can commit a session and its book progress together."""

    def commit_finalization(
        self,
        session_id: str,
        fields: SessionFinalization,
        user_book_id: Optional[str],
        progress: BookProgress,
    ) -> tuple[SessionRecord, Optional[UserBookResponse]]:
        """Finalize the session and update book progress in one transaction."""
        ...


class ReminderStorage(Protocol):
    """Protocol for the read-only lookups made by the reminder dispatcher."""

    def get_reminder_preferences(self, enabled_only: bool = True) -> list[ReminderPreference]:
        """List reminder preferences."""
        ...

    def get_currently_reading_book(self, user_id: str) -> Optional[BookSummary]:
        """Get a book the user is currently reading, if any."""
        ...

    def get_push_subscriptions(self, user_id: str) -> list[PushSubscriptionResponse]:
        """List push subscriptions for a user."""
        ...
