"""
Core data models that cross component boundaries.
All models use __slots__ for minimal memory footprint.
Everything here is frozen (immutable): once published, a message is never edited.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import time
from typing import Literal, Union

from models.state import Source

StatusType = Literal["status", "fallback"]


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    """Emitted by the oracle for every accepted tick."""
    price: float
    timestamp_ms: int
    source: Source
    type: Literal["price"] = "price"


@dataclass(frozen=True, slots=True)
class FeedStatus:
    """
    Connectivity change emitted by the oracle.
    type="fallback" is sent exactly once, when retries are exhausted and the
    oracle pins itself to the synthetic source.
    """
    connected: bool
    source: Source
    timestamp_ms: int
    reason: str | None = None
    type: StatusType = "status"


OracleEvent = Union[PriceUpdate, FeedStatus]


@dataclass(frozen=True, slots=True)
class BetSettlement:
    """
    Published by whoever resolves a bet, consumed by the LedgerAgent.
    true_probability defaults to a coin flip when the caller does not know it.
    """
    bet_id: str
    user_id: str
    bet_amount: float
    multiplier: float
    won: bool
    true_probability: float = 0.5
    settled_at_ns: int = field(default_factory=time.monotonic_ns)
