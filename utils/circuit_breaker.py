"""
Consecutive-failure breaker for an upstream connection.

States:
  CLOSED   — connection attempts allowed
  OPEN     — failure budget spent; the caller stops retrying for good

The price oracle keeps one breaker for its active live source. A successful
connection resets the count; reaching the threshold opens the breaker, which is
the oracle's signal to pin itself to the synthetic feed.

Usage:
    breaker = CircuitBreaker(name="primary", failure_threshold=5)
    if breaker.record_failure("connect refused"):
        ... give up, fall back ...
    else:
        ... schedule another attempt ...
"""

from __future__ import annotations
from enum import Enum, auto


class _State(Enum):
    CLOSED = auto()
    OPEN = auto()


class CircuitBreaker:
    __slots__ = ("name", "_state", "_reason", "_failure_count", "_failure_threshold")

    def __init__(self, name: str, failure_threshold: int = 5) -> None:
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        self.name = name
        self._state = _State.CLOSED
        self._reason: str | None = None
        self._failure_count = 0
        self._failure_threshold = failure_threshold

    @property
    def reason(self) -> str | None:
        return self._reason

    @property
    def failures(self) -> int:
        return self._failure_count

    @property
    def remaining(self) -> int:
        return max(0, self._failure_threshold - self._failure_count)

    def is_closed(self) -> bool:
        return self._state == _State.CLOSED

    def is_open(self) -> bool:
        return self._state == _State.OPEN

    def record_failure(self, reason: str) -> bool:
        """Count one failed attempt. Returns True if this failure opened the breaker."""
        if self.is_open():
            return False
        self._failure_count += 1
        self._reason = reason
        if self._failure_count >= self._failure_threshold:
            self._state = _State.OPEN
            return True
        return False

    def record_success(self) -> None:
        """A connection opened: the streak of failures is over."""
        if self.is_closed():
            self._failure_count = 0
            self._reason = None
