"""Resumable reading timer.

The timer is a small state machine (idle -> active <-> paused -> ended)
expressed as pure functions over an immutable TimerState. ``ReadingTimer``
wraps those functions, persisting every transition before it returns.

Elapsed time is always recomputed from checkpoints:

    elapsed = now - started - paused_total - (now - pause_started if paused)

so nothing depends on a periodic tick having fired while the process was
suspended or backgrounded.
"""

import logging
from dataclasses import replace
from typing import Optional

from ..errors import AlreadyActive, NoActiveSession
from .clock import Clock, SystemClock
from .state import TimerState
from .store import TimerStateStore

logger = logging.getLogger(__name__)


# ============================================================================
# Pure transitions
# ============================================================================


def start_timer(
    session_id: str,
    start_page: int,
    now_ms: int,
    book_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> TimerState:
    """Create the state of a freshly started, active session."""
    return TimerState(
        session_id=str(session_id),
        session_started_at_ms=now_ms,
        accumulated_paused_ms=0,
        current_pause_started_at_ms=None,
        is_active=True,
        start_page=start_page,
        book_id=str(book_id) if book_id is not None else None,
        user_id=user_id,
        last_elapsed_ms=0,
    )


def elapsed_ms(state: TimerState, now_ms: int) -> int:
    """Active milliseconds at ``now_ms``.

    Never negative, and never below the state's last known-good value,
    even if the wall clock has moved backward since it was recorded.
    """
    if state.current_pause_started_at_ms is not None:
        reference = state.current_pause_started_at_ms
    else:
        reference = now_ms
    raw = reference - state.session_started_at_ms - state.accumulated_paused_ms
    return max(raw, state.last_elapsed_ms, 0)


def elapsed_seconds(state: TimerState, now_ms: int) -> int:
    """Whole active seconds at ``now_ms``."""
    return elapsed_ms(state, now_ms) // 1000


def pause_timer(state: TimerState, now_ms: int) -> TimerState:
    """Pause an active timer. Pausing a paused timer returns it unchanged."""
    if not state.is_active:
        return state

    current = elapsed_ms(state, now_ms)
    # Anchor the pause so the frozen elapsed value equals the clamped one
    pause_started = state.session_started_at_ms + state.accumulated_paused_ms + current
    return replace(
        state,
        current_pause_started_at_ms=pause_started,
        is_active=False,
        last_elapsed_ms=current,
    )


def resume_timer(state: TimerState, now_ms: int) -> TimerState:
    """Resume a paused timer. Resuming an active timer returns it unchanged."""
    if state.is_active or state.current_pause_started_at_ms is None:
        return state

    paused_for = max(0, now_ms - state.current_pause_started_at_ms)
    return replace(
        state,
        accumulated_paused_ms=state.accumulated_paused_ms + paused_for,
        current_pause_started_at_ms=None,
        is_active=True,
    )


# ============================================================================
# Persistent timer
# ============================================================================


class ReadingTimer:
    """Times one reading session and checkpoints every transition.

    A transition whose checkpoint cannot be written raises and leaves the
    in-memory state as it was, so memory and disk never disagree.
    """

    def __init__(self, store: TimerStateStore, clock: Optional[Clock] = None):
        """Initialize the timer.

        Args:
            store: Persistence for timer checkpoints
            clock: Wall-clock source (defaults to the system clock)
        """
        self.store = store
        self.clock = clock or SystemClock()
        self._state: Optional[TimerState] = None
        self._high_water_ms = 0

    @property
    def state(self) -> Optional[TimerState]:
        """Current timer state, or None when idle."""
        return self._state

    def has_active_session(self) -> bool:
        return self._state is not None

    def _commit(self, new_state: TimerState) -> TimerState:
        self.store.save(new_state)
        self._state = new_state
        self._high_water_ms = max(self._high_water_ms, new_state.last_elapsed_ms)
        return new_state

    def _require_state(self) -> TimerState:
        if self._state is None:
            self.restore()
        if self._state is None:
            raise NoActiveSession()
        return self._state

    def start(
        self,
        session_id: str,
        start_page: int,
        book_id: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> TimerState:
        """Start timing a session.

        Starting the session that is already being timed returns its
        existing state unchanged.

        Raises:
            AlreadyActive: If a different session is still being timed.
        """
        session_id = str(session_id)
        existing = [self._state] if self._state else self.store.load_all()
        others = [s for s in existing if s.session_id != session_id]
        if others:
            raise AlreadyActive(others[0].session_id, session_id)
        if existing:
            self._state = existing[0]
            self._high_water_ms = existing[0].last_elapsed_ms
            return existing[0]

        state = start_timer(session_id, start_page, self.clock.now_ms(), book_id, user_id)
        self._high_water_ms = 0
        self._commit(state)
        logger.info(f"Timer started for session {session_id} at page {start_page}")
        return state

    def pause(self) -> TimerState:
        """Pause the active session (no-op if already paused)."""
        state = self._require_state()
        if not state.is_active:
            return state

        self.refresh()
        checkpoint = replace(state, last_elapsed_ms=max(state.last_elapsed_ms, self._high_water_ms))
        new_state = self._commit(pause_timer(checkpoint, self.clock.now_ms()))
        logger.info(
            f"Timer paused for session {state.session_id} "
            f"after {new_state.last_elapsed_ms // 1000}s"
        )
        return new_state

    def resume(self) -> TimerState:
        """Resume the paused session (no-op if already active)."""
        state = self._require_state()
        if state.is_active:
            return state

        new_state = self._commit(resume_timer(state, self.clock.now_ms()))
        logger.info(f"Timer resumed for session {state.session_id}")
        return new_state

    def refresh(self) -> int:
        """Re-derive elapsed seconds from checkpoints.

        Call whenever the application becomes visible again. Safe to call
        any number of times; it never mutates the persisted state.

        The backward-clock clamp holds the highest value seen by this
        process only. Across a restart the floor is the checkpointed
        ``last_elapsed_ms``, which advances on pause, so an active timer
        restored after the clock moved back reports what its checkpoints
        give at the new time.
        """
        if self._state is None:
            return 0

        computed = elapsed_ms(self._state, self.clock.now_ms())
        if computed < self._high_water_ms:
            logger.warning(
                f"Clock moved backward for session {self._state.session_id}; "
                f"holding elapsed at {self._high_water_ms // 1000}s"
            )
        self._high_water_ms = max(self._high_water_ms, computed)
        return self._high_water_ms // 1000

    def elapsed_seconds(self) -> int:
        """Elapsed active seconds right now."""
        return self.refresh()

    def restore(self, key: Optional[str] = None) -> Optional[TimerState]:
        """Reload a persisted session after a restart.

        Args:
            key: Session key to load; if omitted, the persisted session
                 (if any) is picked up.

        Returns:
            The restored state, or None if nothing was persisted.
        """
        if key is not None:
            state = self.store.load(key)
        else:
            states = self.store.load_all()
            if len(states) > 1:
                logger.warning(
                    f"Found {len(states)} persisted timers; restoring the most recent"
                )
            state = states[-1] if states else None

        self._state = state
        self._high_water_ms = state.last_elapsed_ms if state else 0
        if state is not None:
            seconds = self.refresh()
            logger.info(f"Restored timer for session {state.session_id} at {seconds}s")
        return state

    def clear(self) -> None:
        """Drop the timer state after its session was finalized."""
        if self._state is not None:
            self.store.clear(self._state.key)
        self._state = None
        self._high_water_ms = 0

    def abandon(self) -> bool:
        """Discard the active session's timer without recording anything.

        Returns:
            True if a session was abandoned, False if there was none
        """
        if self._state is None:
            self.restore()
        if self._state is None:
            return False

        session_id = self._state.session_id
        self.clear()
        logger.info(f"Timer abandoned for session {session_id}")
        return True
