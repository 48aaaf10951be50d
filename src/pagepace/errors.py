"""Exceptions raised by the reading-session core.

Validation errors (``InvalidPage``, ``RegressivePage``, ``AlreadyActive``,
``AlreadyFinalized``) are raised before anything is written. Storage and
transport errors describe failures of the external collaborators.
"""

from typing import Any, Optional


class PagePaceError(Exception):
    """Base exception for all PagePace errors."""

    pass


class AlreadyActive(PagePaceError):
    """Raised when starting a timer while another session is being timed."""

    def __init__(self, active_session_id: str, requested_session_id: Optional[str] = None):
        self.active_session_id = active_session_id
        self.requested_session_id = requested_session_id
        super().__init__(
            f"Session {active_session_id} is already active. "
            "Stop or abandon it before starting another."
        )


class InvalidPage(PagePaceError):
    """Raised for page input that is malformed or out of range."""

    def __init__(self, value: Any, reason: str = "not a valid page number"):
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid page {value!r}: {reason}")


class RegressivePage(PagePaceError):
    """Raised when the end page is lower than the start page."""

    def __init__(self, end_page: int, start_page: int):
        self.end_page = end_page
        self.start_page = start_page
        super().__init__(
            f"End page {end_page} is before start page {start_page}"
        )


class AlreadyFinalized(PagePaceError):
    """Raised when finalizing a session that already has an end time."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} has already been finalized")


class SessionNotFound(PagePaceError):
    """Raised when a session record does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class StorageUnavailable(PagePaceError):
    """Raised when the storage collaborator fails. Safe to retry."""

    pass


class PartiallyCommitted(PagePaceError):
    """Raised when the session record committed but book progress did not.

    Attributes:
        session: The committed SessionRecord
        user_book_id: The UserBook row whose progress is stale
        pending_progress: The BookProgress that still has to be written
    """

    def __init__(
        self,
        session: Any,
        user_book_id: Optional[str],
        pending_progress: Any,
        cause: Optional[BaseException] = None,
    ):
        self.session = session
        self.user_book_id = user_book_id
        self.pending_progress = pending_progress
        self.cause = cause
        super().__init__(
            f"Session {session.id} was saved but book progress was not updated"
            + (f": {cause}" if cause else "")
        )


class TransportFailure(PagePaceError):
    """Raised by a push transport when a single delivery fails."""

    def __init__(self, endpoint: str, reason: str, status_code: Optional[int] = None):
        self.endpoint = endpoint
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Push delivery to {endpoint} failed: {reason}")


class NoActiveSession(PagePaceError):
    """Raised when a timer operation needs an active session and there is none."""

    def __init__(self, message: str = "No active reading session"):
        super().__init__(message)
