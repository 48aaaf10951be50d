"""Pytest configuration and shared fixtures.

This module provides fixtures for testing PagePace, including an
in-memory database, a controllable clock, timer persistence in a
temporary directory and sample books.
"""

from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest

from pagepace.config import reset_config
from pagepace.db.schemas import BookCreate, BookSummary
from pagepace.db.sqlite import Database, reset_db
from pagepace.reading import (
    ManualClock,
    ReadingSessionService,
    ReadingTimer,
    SessionFinalizer,
    TimerStateStore,
)

TEST_USER = "reader-1"

# Monday morning, UTC
T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def db() -> Generator[Database, None, None]:
    """Create an in-memory test database."""
    reset_db()
    reset_config()

    database = Database(":memory:")
    database.create_tables()
    yield database

    reset_db()


# ============================================================================
# Timer Fixtures
# ============================================================================


@pytest.fixture
def clock() -> ManualClock:
    """Clock starting at a fixed instant."""
    return ManualClock(T0)


@pytest.fixture
def state_dir(tmp_path: Path) -> Path:
    """Directory for timer checkpoints."""
    return tmp_path / "timers"


@pytest.fixture
def store(state_dir: Path) -> TimerStateStore:
    return TimerStateStore(state_dir)


@pytest.fixture
def timer(store: TimerStateStore, clock: ManualClock) -> ReadingTimer:
    return ReadingTimer(store, clock)


@pytest.fixture
def finalizer(db: Database, store: TimerStateStore, clock: ManualClock) -> SessionFinalizer:
    return SessionFinalizer(db, store, clock)


@pytest.fixture
def service(db: Database, timer: ReadingTimer, clock: ManualClock) -> ReadingSessionService:
    return ReadingSessionService(db, timer, clock=clock)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_book_data() -> BookCreate:
    """Create sample book data for testing."""
    return BookCreate(title="The Left Hand of Darkness", author="Ursula K. Le Guin", page_count=65)


@pytest.fixture
def created_book(db: Database, sample_book_data: BookCreate) -> BookSummary:
    """Create and return a book in the database."""
    return db.create_book(sample_book_data)


@pytest.fixture
def unknown_length_book(db: Database) -> BookSummary:
    """A book whose page count is not known."""
    return db.create_book(BookCreate(title="Untitled Manuscript"))


# ============================================================================
# CLI Testing Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
