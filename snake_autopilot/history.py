"""Bounded loop/oscillation history owned by one autopilot session.

Fingerprints are the msgpack encoding of the full body plus the target, so two
states collide only when they are identical. Both detectors are advisory:
following the tail legitimately revisits nearby states.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Deque, Dict, Optional, Sequence

import msgpack

from . import config
from .rules import OPPOSITE, Cell

logger = logging.getLogger(__name__)


def fingerprint(body: Sequence[Cell], target: Optional[Cell]) -> bytes:
    """Canonical byte key for a (body, target) state."""
    cells = [[int(x), int(y)] for x, y in body]
    food = [int(target[0]), int(target[1])] if target is not None else None
    return msgpack.packb([cells, food], use_bin_type=True)


def oscillates(headings: Sequence[str], window: int) -> bool:
    """True if the last ``window`` headings contain an A, reverse(A), A run."""
    if len(headings) < window:
        return False
    recent = list(headings)[-window:]
    for i in range(window - 2):
        if recent[i] == recent[i + 2] and recent[i + 1] == OPPOSITE.get(recent[i]):
            return True
    return False


class HistoryTracker:
    """Recent state fingerprints and headings, oldest evicted first."""

    def __init__(
        self,
        capacity: Optional[int] = None,
        heading_capacity: Optional[int] = None,
    ) -> None:
        capacity = config.HISTORY_CAPACITY if capacity is None else int(capacity)
        heading_capacity = config.HEADING_CAPACITY if heading_capacity is None else int(heading_capacity)
        if capacity < 1 or heading_capacity < 1:
            raise ValueError("History capacities must be >= 1")
        self.capacity = capacity
        self.heading_capacity = heading_capacity
        self.states: Deque[bytes] = deque(maxlen=capacity)
        # Occurrences per key in ``states``, kept in step with evictions.
        self._counts: Dict[bytes, int] = {}
        self.headings: Deque[str] = deque(maxlen=heading_capacity)

    def __len__(self) -> int:
        return len(self.states)

    def reset(self) -> None:
        self.states.clear()
        self._counts.clear()
        self.headings.clear()

    def seen(self, key: bytes) -> bool:
        return key in self._counts

    def record_and_check_loop(self, key: bytes) -> bool:
        """Record ``key`` and return whether it was already present."""
        looped = key in self._counts
        if len(self.states) == self.capacity:
            oldest = self.states[0]
            if self._counts[oldest] == 1:
                del self._counts[oldest]
            else:
                self._counts[oldest] -= 1
        self.states.append(key)
        self._counts[key] = self._counts.get(key, 0) + 1
        if looped:
            logger.debug("Repeated state fingerprint (%d in history)", len(self.states))
        return looped

    def record_heading(self, direction: str) -> None:
        if direction not in OPPOSITE:
            raise ValueError(f"Unknown heading {direction!r}")
        self.headings.append(direction)

    def is_oscillating(self, window: Optional[int] = None) -> bool:
        window = config.OSCILLATION_WINDOW if window is None else int(window)
        return oscillates(self.headings, window)

    def would_oscillate(self, direction: str, window: Optional[int] = None) -> bool:
        """Check oscillation as if ``direction`` were recorded next."""
        window = config.OSCILLATION_WINDOW if window is None else int(window)
        return oscillates(list(self.headings) + [direction], window)


def create_history_tracker(capacity: Optional[int] = None) -> HistoryTracker:
    return HistoryTracker(capacity=capacity)
