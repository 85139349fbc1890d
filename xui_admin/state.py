"""Per-user conversation state with idle expiry.

Each chat user has at most one dialogue in progress: a :class:`Stage` and
a single optional text payload carried to the next step. Entries expire
after :data:`STATE_TTL` seconds without a write and are purged by the
:class:`StateSweeper` thread.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional, Tuple

LOGGER = logging.getLogger(__name__)

STATE_TTL = 30 * 60
SWEEP_INTERVAL = 10 * 60


class Stage(Enum):
    IDLE = "idle"
    AWAITING_USERNAME = "awaiting_username"
    AWAITING_DURATION = "awaiting_duration"
    AWAITING_SELECTION = "awaiting_selection"
    AWAITING_ACTION = "awaiting_action"
    AWAITING_EXTEND_DURATION = "awaiting_extend_duration"
    AWAITING_RESET_CONFIRMATION = "awaiting_reset_confirmation"
    AWAITING_DELETE_CONFIRMATION = "awaiting_delete_confirmation"
    AWAITING_TRUSTED_USERNAME = "awaiting_trusted_username"


TRANSITIONS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.IDLE: frozenset({
        Stage.AWAITING_USERNAME,
        Stage.AWAITING_SELECTION,
        Stage.AWAITING_RESET_CONFIRMATION,
        Stage.AWAITING_DELETE_CONFIRMATION,
        Stage.AWAITING_TRUSTED_USERNAME,
    }),
    Stage.AWAITING_USERNAME: frozenset({Stage.AWAITING_DURATION}),
    Stage.AWAITING_DURATION: frozenset(),
    Stage.AWAITING_SELECTION: frozenset({
        Stage.AWAITING_ACTION,
        Stage.AWAITING_RESET_CONFIRMATION,
        Stage.AWAITING_DELETE_CONFIRMATION,
    }),
    Stage.AWAITING_ACTION: frozenset({
        Stage.AWAITING_EXTEND_DURATION,
        Stage.AWAITING_RESET_CONFIRMATION,
        Stage.AWAITING_DELETE_CONFIRMATION,
    }),
    Stage.AWAITING_EXTEND_DURATION: frozenset(),
    Stage.AWAITING_RESET_CONFIRMATION: frozenset(),
    Stage.AWAITING_DELETE_CONFIRMATION: frozenset(),
    Stage.AWAITING_TRUSTED_USERNAME: frozenset(),
}


class InvalidTransitionError(RuntimeError):
    """Raised when a dialogue tries to jump to an unrelated stage."""


def can_transition(current: Stage, target: Stage) -> bool:
    """Every stage may return to idle or repeat itself."""

    return target is Stage.IDLE or target is current or target in TRANSITIONS[current]


@dataclass(frozen=True)
class UserState:
    stage: Stage = Stage.IDLE
    payload: Optional[str] = None

    @property
    def is_idle(self) -> bool:
        return self.stage is Stage.IDLE


IDLE_STATE = UserState()

# Sentinel for "leave the payload as it is".
KEEP = object()


class UserStateStore:
    """Thread-safe mapping of chat user id to :class:`UserState`.

    The lock keeps the mapping consistent; concurrent writes for one user
    resolve as last write wins.
    """

    def __init__(self, ttl: float = STATE_TTL, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._states: Dict[int, Tuple[UserState, float]] = {}

    def _expired(self, written_at: float) -> bool:
        return self._clock() - written_at >= self.ttl

    def get(self, user_id: int) -> UserState:
        with self._lock:
            entry = self._states.get(user_id)
            if entry is None:
                return IDLE_STATE
            state, written_at = entry
            if self._expired(written_at):
                del self._states[user_id]
                return IDLE_STATE
            return state

    def set(self, user_id: int, stage: Stage, payload: Optional[str] = None) -> UserState:
        """Store a state unconditionally; idle states are dropped."""

        state = UserState(stage, payload)
        with self._lock:
            if state.is_idle and payload is None:
                self._states.pop(user_id, None)
            else:
                self._states[user_id] = (state, self._clock())
        return state

    def transition(self, user_id: int, stage: Stage, payload=KEEP) -> UserState:
        """Move ``user_id`` to ``stage`` after checking the transition table.

        Starting a new dialogue from idle discards whatever was pending.
        """
        current = self.get(user_id)
        if not can_transition(current.stage, stage):
            raise InvalidTransitionError(f"cannot move from {current.stage.value} to {stage.value}")
        if payload is KEEP:
            payload = current.payload
        return self.set(user_id, stage, payload)

    def clear(self, user_id: int) -> None:
        with self._lock:
            self._states.pop(user_id, None)

    def sweep(self) -> int:
        """Drop expired entries and return how many were removed."""

        with self._lock:
            expired = [uid for uid, (_, written_at) in self._states.items() if self._expired(written_at)]
            for uid in expired:
                del self._states[uid]
        if expired:
            LOGGER.debug("evicted %d idle conversation state(s)", len(expired))
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)


class StateSweeper(threading.Thread):
    """Daemon thread that periodically purges expired conversation states."""

    def __init__(self, store: UserStateStore, *, interval: float = SWEEP_INTERVAL) -> None:
        super().__init__(name="state-sweeper", daemon=True)
        self.store = store
        self.interval = interval
        self._stop_event = threading.Event()

    def stop(self) -> None:
        self._stop_event.set()

    def run(self) -> None:  # pragma: no cover - background thread
        LOGGER.info("state sweeper started")
        while not self._stop_event.wait(self.interval):
            try:
                self.store.sweep()
            except Exception as exc:
                LOGGER.exception("state sweep failed: %s", exc)
        LOGGER.info("state sweeper stopped")
