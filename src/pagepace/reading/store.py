"""Local persistence of timer state.

Each timer state lives in its own JSON file named after its key. Writes go
to a temporary file that is renamed over the target, so a crash mid-write
leaves either the old checkpoint or the new one, never a torn file.
"""

import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Optional

from .state import TimerState

logger = logging.getLogger(__name__)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class TimerStateStore:
    """Stores TimerState checkpoints in a directory of JSON files."""

    def __init__(self, directory: Path):
        """Initialize the store.

        Args:
            directory: Directory holding one ``<key>.json`` file per timer
        """
        self.directory = Path(directory).expanduser()

    def _path(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key) or key in (".", ".."):
            raise ValueError(f"Invalid timer key: {key!r}")
        return self.directory / f"{key}.json"

    def save(self, state: TimerState) -> None:
        """Persist a state, replacing any previous checkpoint for its key.

        Raises:
            OSError: If the checkpoint could not be written.
        """
        path = self._path(state.key)
        self.directory.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=self.directory, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(state.to_dict(), f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def load(self, key: str) -> Optional[TimerState]:
        """Load the state for a key, or None if absent or unreadable."""
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r") as f:
                return TimerState.from_dict(json.load(f))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable timer checkpoint {path}: {e}")
            return None

    def load_all(self) -> list[TimerState]:
        """Load every readable state, oldest session first."""
        if not self.directory.exists():
            return []

        states = []
        for path in sorted(self.directory.glob("*.json")):
            if path.name.startswith(".tmp-"):
                continue
            state = self.load(path.stem)
            if state is not None:
                states.append(state)
        return sorted(states, key=lambda s: s.session_started_at_ms)

    def clear(self, key: str) -> bool:
        """Delete the state for a key.

        Returns:
            True if a checkpoint was removed, False if none existed
        """
        path = self._path(key)
        if path.exists():
            path.unlink()
            return True
        return False
