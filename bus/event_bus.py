"""
Typed event bus between settlement callers and the ledger.

Uses asyncio.Queue — zero network hops, no blocking on the caller side.

Queue sizing rationale:
  settlements: 1000 — bursts of resolutions at round close; the ledger drains
                      in microseconds, so a full queue means the agent is dead
"""

from __future__ import annotations
import asyncio
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from models.events import BetSettlement

log = logging.getLogger(__name__)


class EventBus:
    __slots__ = ("settlements",)

    def __init__(self, settlements_maxsize: int = 1000) -> None:
        self.settlements: asyncio.Queue[BetSettlement] = asyncio.Queue(maxsize=settlements_maxsize)

    def publish_settlement(self, settlement: "BetSettlement") -> bool:
        """Non-blocking publish. Returns False (and logs) if the queue is full."""
        try:
            self.settlements.put_nowait(settlement)
            return True
        except asyncio.QueueFull:
            log.error(
                "settlements queue full — settlement for bet=%s DROPPED. Ledger agent may be stalled.",
                settlement.bet_id,
            )
            return False
