"""
Mutable state objects owned by the price oracle.
These are NOT shared across components directly — the oracle owns its state
and hands out copies.
"""

from __future__ import annotations
import bisect
import logging
import statistics
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from utils.clock import now_ms

log = logging.getLogger(__name__)

# 10 minutes of look-back
DEFAULT_RETENTION_MS = 10 * 60 * 1000
# Volatility is measured over the most recent N points only
DEFAULT_VOLATILITY_WINDOW = 60


class Source(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SYNTHETIC = "synthetic"


class FeedPhase(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    SYNTHETIC = "synthetic"


@dataclass(frozen=True, slots=True)
class PricePoint:
    price: float
    timestamp_ms: int


@dataclass(frozen=True, slots=True)
class HighLow:
    high: float
    low: float


@dataclass(slots=True)
class OracleState:
    """
    Owned by PriceOracle. Mutated only by its event handlers;
    readers get a copy via PriceOracle.get_state().
    """
    connected: bool = False
    current_price: float | None = None
    last_update_ms: int | None = None
    active_source: Source = Source.SYNTHETIC
    change_24h: float | None = None

    def apply_tick(self, price: float, timestamp_ms: int) -> None:
        self.current_price = price
        self.last_update_ms = timestamp_ms


class PriceHistoryBuffer:
    """
    Time-bounded, timestamp-ordered price history.

    Every insert purges points older than clock() - retention_ms. The cutoff is
    taken from the clock, not from the newest point, so a source that sends
    backdated ticks cannot keep stale points alive.
    """

    def __init__(
        self,
        retention_ms: int = DEFAULT_RETENTION_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        if retention_ms <= 0:
            raise ValueError(f"retention_ms must be positive, got {retention_ms}")
        self._retention_ms = retention_ms
        self._clock = clock
        self._points: list[PricePoint] = []

    @property
    def retention_ms(self) -> int:
        return self._retention_ms

    def __len__(self) -> int:
        self._cleanup()
        return len(self._points)

    def add(self, price: float, timestamp_ms: int | None = None) -> PricePoint:
        point = PricePoint(
            price=price,
            timestamp_ms=timestamp_ms if timestamp_ms is not None else self._clock(),
        )
        if self._points and point.timestamp_ms < self._points[-1].timestamp_ms:
            # Out-of-order tick: keep the sequence sorted
            bisect.insort_right(self._points, point, key=_ts)
        else:
            self._points.append(point)
        self._cleanup()
        return point

    def _cleanup(self) -> None:
        cutoff = self._clock() - self._retention_ms
        idx = bisect.bisect_left(self._points, cutoff, key=_ts)
        if idx:
            del self._points[:idx]

    def get_history(self) -> list[PricePoint]:
        self._cleanup()
        return list(self._points)

    def latest(self) -> PricePoint | None:
        self._cleanup()
        return self._points[-1] if self._points else None

    def get_price_at(self, timestamp_ms: int) -> PricePoint | None:
        """Closest point at or before timestamp_ms."""
        self._cleanup()
        idx = bisect.bisect_right(self._points, timestamp_ms, key=_ts)
        return self._points[idx - 1] if idx else None

    def get_volatility(self, window: int = DEFAULT_VOLATILITY_WINDOW) -> float:
        """Population standard deviation of the last `window` prices (0 below 2 points)."""
        self._cleanup()
        prices = [p.price for p in self._points[-window:]]
        if len(prices) < 2:
            return 0.0
        return statistics.pstdev(prices)

    def get_high_low(self) -> HighLow | None:
        self._cleanup()
        if not self._points:
            return None
        prices = [p.price for p in self._points]
        return HighLow(high=max(prices), low=min(prices))


def _ts(point: PricePoint) -> int:
    return point.timestamp_ms
