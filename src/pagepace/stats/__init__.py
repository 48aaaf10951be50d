"""Reading statistics and streaks."""

from .aggregator import (
    ReadingStats,
    StreakPolicy,
    aggregate,
    average_session_minutes,
    calculate_streak,
    longest_streak,
    reading_dates,
    total_pages,
    total_sessions,
)
from .service import DashboardStats, StatsService

__all__ = [
    "ReadingStats",
    "StreakPolicy",
    "aggregate",
    "average_session_minutes",
    "calculate_streak",
    "longest_streak",
    "reading_dates",
    "total_pages",
    "total_sessions",
    "DashboardStats",
    "StatsService",
]
