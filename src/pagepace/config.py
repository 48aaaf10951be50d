"""Configuration management for PagePace.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_HOME = Path.home() / ".pagepace"

STREAK_POLICIES = ("today", "yesterday_grace")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Application configuration."""

    # Storage
    db_path: Path
    state_dir: Path

    # Analytics
    timezone: str
    streak_policy: str

    # Reminders
    reminder_window_minutes: int
    push_timeout: int  # seconds
    vapid_public_key: Optional[str]
    vapid_private_key: Optional[str]

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "PAGEPACE_DB_PATH", str(DEFAULT_HOME / "pagepace.db")
        )
        state_dir_str = os.environ.get(
            "PAGEPACE_STATE_DIR", str(DEFAULT_HOME / "timers")
        )

        return cls(
            db_path=Path(db_path_str).expanduser(),
            state_dir=Path(state_dir_str).expanduser(),
            timezone=os.environ.get("PAGEPACE_TIMEZONE", "UTC"),
            streak_policy=os.environ.get("PAGEPACE_STREAK_POLICY", "today").lower(),
            reminder_window_minutes=int(os.environ.get("PAGEPACE_REMINDER_WINDOW", "5")),
            push_timeout=int(os.environ.get("PAGEPACE_PUSH_TIMEOUT", "10")),
            vapid_public_key=os.environ.get("VAPID_PUBLIC_KEY"),
            vapid_private_key=os.environ.get("VAPID_PRIVATE_KEY"),
            log_level=os.environ.get("PAGEPACE_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError):
            errors.append(f"Unknown timezone: {self.timezone}")

        if self.streak_policy not in STREAK_POLICIES:
            errors.append(
                f"Unknown streak policy '{self.streak_policy}' "
                f"(expected one of: {', '.join(STREAK_POLICIES)})"
            )

        if self.reminder_window_minutes < 0:
            errors.append("Reminder window must not be negative")

        if self.log_level not in LOG_LEVELS:
            errors.append(f"Unknown log level: {self.log_level}")

        return errors

    @property
    def tzinfo(self) -> ZoneInfo:
        """Reference timezone used for calendar-day calculations."""
        return ZoneInfo(self.timezone)

    def has_vapid_keys(self) -> bool:
        """Check if push signing keys are configured."""
        return bool(self.vapid_public_key and self.vapid_private_key)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
