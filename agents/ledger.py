"""
Ledger Agent — Settlement Recording.

Consumes BetSettlement events from the bus and records them in the
RevenueLedger. Invalid settlements are logged and dropped; one bad message never
stops the agent.
"""

from __future__ import annotations
import asyncio
import logging
import time

from bus.event_bus import EventBus
from ledger.revenue_ledger import RevenueLedger
from models.events import BetSettlement

log = logging.getLogger(__name__)


class LedgerAgent:
    """
    Sole consumer of bus.settlements.
    RevenueLedger is shared with the stats surface, which only reads it.
    """

    def __init__(self, bus: EventBus, ledger: RevenueLedger) -> None:
        self._bus = bus
        self._ledger = ledger
        self._recorded = 0
        self._rejected = 0

    @property
    def recorded(self) -> int:
        return self._recorded

    @property
    def rejected(self) -> int:
        return self._rejected

    async def run(self) -> None:
        log.info("Ledger agent running")
        while True:
            try:
                settlement = await self._bus.settlements.get()
                try:
                    self.process(settlement)
                finally:
                    self._bus.settlements.task_done()
            except asyncio.CancelledError:
                break
            except Exception as exc:
                log.exception("Ledger agent unexpected error: %s", exc)

    def process(self, settlement: BetSettlement) -> bool:
        try:
            self._ledger.record_bet_revenue(
                bet_id=settlement.bet_id,
                user_id=settlement.user_id,
                bet_amount=settlement.bet_amount,
                multiplier=settlement.multiplier,
                won=settlement.won,
                true_probability=settlement.true_probability,
            )
        except (ValueError, TypeError) as exc:
            self._rejected += 1
            log.error("Ledger: rejected settlement bet=%s: %s", settlement.bet_id, exc)
            return False
        self._recorded += 1
        log.debug(
            "Ledger: recorded bet=%s %.1fms after settlement",
            settlement.bet_id, (time.monotonic_ns() - settlement.settled_at_ns) / 1e6,
        )
        return True
