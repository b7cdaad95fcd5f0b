"""
Heartbeat tracking and derived liveness state.

The stored fields are only ``last_heartbeat`` and ``inactivity_threshold``;
WARNING and PENDING are computed on demand from elapsed time and never
persisted.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..config import DEFAULT_SYNC_BUFFER_SECONDS, WARNING_DENOMINATOR, WARNING_NUMERATOR

logger = logging.getLogger("afterlife.clock")


class ProtocolState(str, Enum):
    ACTIVE = "ACTIVE"          # owner alive, routine monitoring
    WARNING = "WARNING"        # past 70% of the inactivity threshold
    PENDING = "PENDING"        # threshold breached, awaiting guardian
    EXECUTING = "EXECUTING"    # death confirmed, vesting running
    COMPLETED = "COMPLETED"    # every entitlement paid out

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]


_STATE_RANK = {
    ProtocolState.ACTIVE: 0,
    ProtocolState.WARNING: 1,
    ProtocolState.PENDING: 2,
    ProtocolState.EXECUTING: 3,
    ProtocolState.COMPLETED: 4,
}


def system_clock() -> int:
    return int(time.time())


def derive_state(now: int, last_heartbeat: int, threshold: int, sync_buffer: int = 0) -> ProtocolState:
    """Classify an undead instance as ACTIVE, WARNING or PENDING.

    PENDING once ``elapsed > threshold + sync_buffer``; WARNING once
    ``elapsed > threshold * 0.7`` (kept in integers).
    """
    elapsed = now - last_heartbeat
    if elapsed > threshold + sync_buffer:
        return ProtocolState.PENDING
    if elapsed * WARNING_DENOMINATOR > threshold * WARNING_NUMERATOR:
        return ProtocolState.WARNING
    return ProtocolState.ACTIVE


@dataclass
class HeartbeatTracker:
    last_heartbeat: int
    inactivity_threshold: int

    def beat(self, now: int) -> int:
        # never moves backwards, even if the caller's clock does
        if now > self.last_heartbeat:
            self.last_heartbeat = now
        return self.last_heartbeat

    @property
    def deadline(self) -> int:
        return self.last_heartbeat + self.inactivity_threshold

    def elapsed(self, now: int) -> int:
        return max(0, now - self.last_heartbeat)

    def time_remaining(self, now: int) -> int:
        """Seconds until the inactivity deadline. 0 if past deadline."""
        return max(0, self.deadline - now)

    def is_overdue(self, now: int, sync_buffer: int = 0) -> bool:
        return self.elapsed(now) > self.inactivity_threshold + sync_buffer

    def derived_state(self, now: int, sync_buffer: int = 0) -> ProtocolState:
        return derive_state(now, self.last_heartbeat, self.inactivity_threshold, sync_buffer)


class StateMonitor:
    """
    Observer-side view of one protocol instance.

    Each poll derives a state from a fresh snapshot with the sync buffer
    applied. The observed state only moves backwards when the snapshot
    carries a newer heartbeat than any seen before; otherwise a lower
    reading is treated as read lag and ignored.
    """

    def __init__(
        self,
        fetch: Callable[[], dict],
        clock: Callable[[], int] = system_clock,
        sync_buffer: int = DEFAULT_SYNC_BUFFER_SECONDS,
    ):
        self._fetch = fetch
        self._clock = clock
        self.sync_buffer = sync_buffer
        self._state: Optional[ProtocolState] = None
        self._last_heartbeat_seen: Optional[int] = None

    @property
    def state(self) -> Optional[ProtocolState]:
        return self._state

    @property
    def last_heartbeat_seen(self) -> Optional[int]:
        return self._last_heartbeat_seen

    def classify(self, snapshot: dict, now: int) -> ProtocolState:
        canonical = ProtocolState(snapshot["state"])
        if snapshot["is_dead"] or canonical in (ProtocolState.EXECUTING, ProtocolState.COMPLETED):
            return canonical
        return derive_state(
            now,
            snapshot["last_heartbeat"],
            snapshot["inactivity_threshold"],
            self.sync_buffer,
        )

    def observe(self, snapshot: dict, now: int) -> ProtocolState:
        candidate = self.classify(snapshot, now)
        heartbeat = snapshot["last_heartbeat"]
        fresh = self._last_heartbeat_seen is None or heartbeat > self._last_heartbeat_seen

        if self._state is None or fresh or candidate.rank >= self._state.rank:
            if self._state is not None and candidate != self._state:
                logger.info("observed state %s -> %s", self._state.value, candidate.value)
            self._state = candidate
        else:
            logger.debug(
                "ignoring regression %s -> %s without fresh heartbeat",
                self._state.value, candidate.value,
            )

        if fresh:
            self._last_heartbeat_seen = heartbeat
        return self._state

    def poll(self) -> ProtocolState:
        return self.observe(self._fetch(), self._clock())
