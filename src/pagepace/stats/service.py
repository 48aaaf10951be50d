"""Dashboard statistics backed by the database."""

import logging
from dataclasses import dataclass, field
from datetime import date, tzinfo
from typing import Optional

from ..config import get_config
from ..db.schemas import BookStatus
from ..db.sqlite import Database, get_db
from ..reading.clock import Clock, SystemClock
from .aggregator import ReadingStats, StreakPolicy, aggregate

logger = logging.getLogger(__name__)


@dataclass
class DashboardStats:
    """Everything the stats dashboard shows for one reader."""

    user_id: str
    total_books: int = 0
    books_completed: int = 0
    reading: ReadingStats = field(default_factory=ReadingStats)


class StatsService:
    """Reads a user's sessions and shelf and derives their statistics."""

    def __init__(
        self,
        db: Optional[Database] = None,
        tz: Optional[tzinfo] = None,
        policy: Optional[StreakPolicy] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the stats service.

        Args:
            db: Database instance
            tz: Reference timezone for calendar days (default: configured)
            policy: Current streak policy (default: configured)
            clock: Source of "today"
        """
        self.db = db or get_db()
        if tz is None or policy is None:
            config = get_config()
            tz = tz or config.tzinfo
            policy = policy or StreakPolicy(config.streak_policy)
        self.tz = tz
        self.policy = policy
        self.clock = clock or SystemClock()

    def today(self) -> date:
        return self.clock.now().astimezone(self.tz).date()

    def reading_stats(self, user_id: str) -> ReadingStats:
        """Session-derived statistics for a user."""
        sessions = self.db.list_finalized_sessions(user_id)
        return aggregate(sessions, today=self.today(), tz=self.tz, policy=self.policy)

    def dashboard(self, user_id: str) -> DashboardStats:
        """Session statistics plus shelf counts for a user."""
        stats = DashboardStats(
            user_id=user_id,
            total_books=self.db.count_user_books(user_id),
            books_completed=self.db.count_user_books(user_id, BookStatus.COMPLETED),
            reading=self.reading_stats(user_id),
        )
        logger.debug(
            f"Dashboard for {user_id}: {stats.reading.total_sessions} sessions, "
            f"streak {stats.reading.current_streak}"
        )
        return stats
