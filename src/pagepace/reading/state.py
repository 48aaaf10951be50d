"""Timer state persisted for crash and reload recovery."""

from dataclasses import asdict, dataclass
from typing import Optional


@dataclass(frozen=True)
class TimerState:
    """Checkpoints of the session being timed.

    Elapsed time is never stored as a running counter. It is derived from
    these checkpoints whenever it is observed, so time spent while the
    process was suspended is accounted for on the next observation.
    """

    session_id: str
    session_started_at_ms: int
    accumulated_paused_ms: int = 0
    current_pause_started_at_ms: Optional[int] = None
    is_active: bool = True
    start_page: int = 0
    book_id: Optional[str] = None
    user_id: Optional[str] = None
    # Last elapsed value known to be good; guards against the clock moving back
    last_elapsed_ms: int = 0

    @property
    def key(self) -> str:
        """Persistence key for this state."""
        return self.session_id

    @property
    def is_paused(self) -> bool:
        return self.current_pause_started_at_ms is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TimerState":
        """Create from dictionary."""
        pause_started = data.get("current_pause_started_at_ms")
        return cls(
            session_id=str(data["session_id"]),
            session_started_at_ms=int(data["session_started_at_ms"]),
            accumulated_paused_ms=int(data.get("accumulated_paused_ms", 0)),
            current_pause_started_at_ms=int(pause_started) if pause_started is not None else None,
            is_active=bool(data.get("is_active", pause_started is None)),
            start_page=int(data.get("start_page", 0)),
            book_id=data.get("book_id"),
            user_id=data.get("user_id"),
            last_elapsed_ms=int(data.get("last_elapsed_ms", 0)),
        )
