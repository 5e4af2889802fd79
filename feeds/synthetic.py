"""
Synthetic price feed — always-available last-resort source.

A random walk tuned to look like a real market on a chart: a per-tick random
change, a slowly drifting trend that is redrawn now and then, occasional larger
impulses, and a pull back toward a center price. The result is autocorrelated
and mean-reverting rather than white noise, so the odds built on it behave.
"""

from __future__ import annotations
import asyncio
import random
from dataclasses import dataclass
from typing import Any, AsyncIterator

from feeds.base import PriceFeedClient
from feeds.normalizer import to_price


@dataclass(frozen=True, slots=True)
class WalkParams:
    base_price: float = 200.0
    volatility: float = 0.002         # max per-tick move as a fraction of price
    trend_probability: float = 0.06   # chance per tick of redrawing the trend
    trend_scale: float = 0.0002
    big_move_probability: float = 0.05
    big_move_scale: float = 0.006
    mean_reversion: float = 0.002     # fraction of the distance to center closed per tick
    center_price: float | None = None  # defaults to base_price
    floor: float = 50.0
    ceiling: float = 500.0

    @classmethod
    def from_dict(cls, raw: dict[str, Any] | None) -> "WalkParams":
        """Build from the `synthetic` section of oracle.yaml; unknown keys are an error."""
        return cls(**(raw or {}))


class SyntheticPriceGenerator:
    """Stateful random walk. Pass a seeded random.Random for reproducible paths."""

    def __init__(self, params: WalkParams | None = None, rng: random.Random | None = None) -> None:
        self._params = params or WalkParams()
        if self._params.floor >= self._params.ceiling:
            raise ValueError("synthetic floor must be below ceiling")
        self._rng = rng or random.Random()
        self._price = self._clamp(self._params.base_price)
        self._center = self._params.center_price if self._params.center_price is not None else self._price
        self._trend = 0.0

    @property
    def price(self) -> float:
        return round(self._price, 4)

    def next_price(self) -> float:
        p = self._params
        rng = self._rng
        base = self._price

        change = rng.uniform(-1.0, 1.0) * p.volatility * base
        if rng.random() < p.trend_probability:
            self._trend = rng.uniform(-0.5, 0.5) * p.trend_scale * base
        impulse = 0.0
        if rng.random() < p.big_move_probability:
            impulse = rng.uniform(-1.0, 1.0) * p.big_move_scale * base
        reversion = (self._center - base) * p.mean_reversion

        self._price = self._clamp(base + change + self._trend + impulse + reversion)
        return round(self._price, 4)

    def _clamp(self, price: float) -> float:
        return max(self._params.floor, min(self._params.ceiling, price))


class SyntheticFeedClient(PriceFeedClient):
    """Emits one generated price immediately, then one per interval, forever."""

    def __init__(self, generator: SyntheticPriceGenerator | None = None, interval_s: float = 1.0) -> None:
        self._generator = generator or SyntheticPriceGenerator()
        self._interval_s = interval_s

    @property
    def name(self) -> str:
        return "synthetic"

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def stream(self) -> AsyncIterator[float]:  # type: ignore[override]
        while True:
            yield self._generator.next_price()
            await asyncio.sleep(self._interval_s)

    def parse_tick(self, payload: Any) -> float | None:
        return to_price(payload)
