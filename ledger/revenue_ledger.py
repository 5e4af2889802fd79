"""
In-process revenue ledger.

An append-only event log of settled-bet economics with time-windowed statistics
derived on read. Each settlement appends two events under one lock:

  - PLATFORM_FEE (won) with the fee on winnings, or
    LOSS_REVENUE (lost) with the whole stake the house keeps;
  - HOUSE_EDGE, always, with the theoretical edge on the stake.

HOUSE_EDGE tracks the priced-in margin and deliberately overlaps the realized
cash events; total_revenue only sums the cash kinds. Dashboards read both.

Statistics are cached for cache_ttl_ms and dropped on every append.
"""

from __future__ import annotations
import logging
import math
import threading
from collections import defaultdict
from typing import Callable, Iterable

from models.revenue import (
    PeriodStats,
    RevenueEvent,
    RevenueKind,
    RevenueStats,
    UserRevenue,
)
from strategy.house_edge import (
    HOUSE_EDGE,
    PLATFORM_FEE_RATE,
    calculate_house_edge,
    calculate_platform_fee,
    money,
    rate,
)
from utils.clock import now_ms

log = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000
PERIOD_MS = {
    "daily": DAY_MS,
    "weekly": 7 * DAY_MS,
    "monthly": 30 * DAY_MS,
}
DEFAULT_CACHE_TTL_MS = 5_000

_CASH_KINDS = (RevenueKind.PLATFORM_FEE, RevenueKind.LOSS_REVENUE)


class RevenueLedger:
    """
    Thread-safe: record_bet_revenue may be called from any number of settlement
    callers while readers pull statistics. Readers never see one half of a
    settlement without the other.
    """

    def __init__(
        self,
        house_edge: float = HOUSE_EDGE,
        platform_fee_rate: float = PLATFORM_FEE_RATE,
        cache_ttl_ms: int = DEFAULT_CACHE_TTL_MS,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._house_edge = house_edge
        self._fee_rate = platform_fee_rate
        self._cache_ttl_ms = cache_ttl_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._events: list[RevenueEvent] = []
        self._next_id = 0
        # Bumped on every write; a stats result computed against an older
        # version is never cached.
        self._version = 0
        self._cached: PeriodStats | None = None
        self._cached_at_ms = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    @property
    def house_edge(self) -> float:
        return self._house_edge

    @property
    def platform_fee_rate(self) -> float:
        return self._fee_rate

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def record_bet_revenue(
        self,
        bet_id: str,
        user_id: str,
        bet_amount: float,
        multiplier: float,
        won: bool,
        true_probability: float = 0.5,
    ) -> tuple[RevenueEvent, RevenueEvent]:
        """
        Record one settled bet. Returns (cash_event, house_edge_event).
        Raises ValueError on input that would corrupt the aggregates.
        """
        _validate(bet_id, user_id, bet_amount, multiplier, true_probability)

        if won:
            kind = RevenueKind.PLATFORM_FEE
            cash_amount = calculate_platform_fee(bet_amount, multiplier, self._fee_rate).platform_fee
        else:
            kind = RevenueKind.LOSS_REVENUE
            cash_amount = bet_amount
        edge_amount = calculate_house_edge(bet_amount, true_probability, self._house_edge).expected_house_revenue

        timestamp = self._clock()
        with self._lock:
            cash = self._make_event(timestamp, kind, cash_amount, bet_id, user_id, bet_amount, multiplier, won)
            edge = self._make_event(
                timestamp, RevenueKind.HOUSE_EDGE, edge_amount, bet_id, user_id, bet_amount, multiplier, won,
            )
            self._events.extend((cash, edge))
            self._version += 1
            self._cached = None

        log.debug(
            "Ledger: bet=%s user=%s amount=%.2f x%.2f %s %s=%.2f edge=%.2f",
            bet_id, user_id, bet_amount, multiplier, "WON" if won else "LOST",
            kind.value, cash_amount, edge_amount,
        )
        return cash, edge

    def _make_event(
        self,
        timestamp: int,
        kind: RevenueKind,
        amount: float,
        bet_id: str,
        user_id: str,
        bet_amount: float,
        multiplier: float,
        won: bool,
    ) -> RevenueEvent:
        self._next_id += 1
        return RevenueEvent(
            id=f"rev_{self._next_id}",
            timestamp_ms=timestamp,
            kind=kind,
            amount=amount,
            bet_id=bet_id,
            user_id=user_id,
            bet_amount=bet_amount,
            multiplier=multiplier,
            won=won,
        )

    def clear_revenue_data(self) -> None:
        """Administrative reset: drop every event and the stats cache."""
        with self._lock:
            dropped = len(self._events)
            self._events.clear()
            self._next_id = 0
            self._version += 1
            self._cached = None
        log.warning("Ledger: cleared %d revenue events", dropped)

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_revenue_stats(self) -> PeriodStats:
        now = self._clock()
        with self._lock:
            if self._cached is not None and now - self._cached_at_ms < self._cache_ttl_ms:
                return self._cached
            events = list(self._events)
            version = self._version

        stats = PeriodStats(
            daily=_aggregate(e for e in events if e.timestamp_ms >= now - PERIOD_MS["daily"]),
            weekly=_aggregate(e for e in events if e.timestamp_ms >= now - PERIOD_MS["weekly"]),
            monthly=_aggregate(e for e in events if e.timestamp_ms >= now - PERIOD_MS["monthly"]),
            all_time=_aggregate(events),
        )

        with self._lock:
            if self._version == version:
                self._cached = stats
                self._cached_at_ms = now
        return stats

    def get_recent_revenue_events(self, limit: int = 100) -> list[RevenueEvent]:
        """Most recent events, newest first."""
        if limit <= 0:
            return []
        with self._lock:
            return list(reversed(self._events[-limit:]))

    def get_revenue_by_user(self, limit: int = 50) -> list[UserRevenue]:
        """Realized revenue and distinct bet count per user, biggest first."""
        revenue: dict[str, float] = defaultdict(float)
        bets: dict[str, set[str]] = defaultdict(set)
        with self._lock:
            events = list(self._events)
        for event in events:
            if event.kind in _CASH_KINDS:
                revenue[event.user_id] += event.amount
                bets[event.user_id].add(event.bet_id)

        rows = [
            UserRevenue(user_id=user_id, revenue=money(total), bets=len(bets[user_id]))
            for user_id, total in revenue.items()
        ]
        rows.sort(key=lambda r: r.revenue, reverse=True)
        return rows[:max(0, limit)]

    def get_raw_revenue_events(self) -> list[RevenueEvent]:
        with self._lock:
            return list(self._events)


def _aggregate(events: Iterable[RevenueEvent]) -> RevenueStats:
    # Two events per bet: volume and multiplier are taken once per bet_id
    by_bet: dict[str, list[RevenueEvent]] = {}
    for event in events:
        by_bet.setdefault(event.bet_id, []).append(event)
    if not by_bet:
        return RevenueStats()

    volume = 0.0
    multiplier_sum = 0.0
    sums = {kind: 0.0 for kind in RevenueKind}
    wins = losses = 0
    for bet_events in by_bet.values():
        first = bet_events[0]
        volume += first.bet_amount
        multiplier_sum += first.multiplier
        for event in bet_events:
            sums[event.kind] += event.amount
            if event.kind is RevenueKind.PLATFORM_FEE:
                wins += 1
            elif event.kind is RevenueKind.LOSS_REVENUE:
                losses += 1

    total_bets = len(by_bet)
    realized = sums[RevenueKind.PLATFORM_FEE] + sums[RevenueKind.LOSS_REVENUE]
    return RevenueStats(
        total_volume=money(volume),
        total_revenue=money(realized),
        house_edge_revenue=money(sums[RevenueKind.HOUSE_EDGE]),
        platform_fee_revenue=money(sums[RevenueKind.PLATFORM_FEE]),
        loss_revenue=money(sums[RevenueKind.LOSS_REVENUE]),
        total_bets=total_bets,
        total_wins=wins,
        total_losses=losses,
        win_rate=rate(wins / total_bets),
        effective_edge=rate(realized / volume) if volume > 0 else 0.0,
        average_bet_size=money(volume / total_bets),
        average_multiplier=money(multiplier_sum / total_bets),
    )


def _validate(bet_id: str, user_id: str, bet_amount: float, multiplier: float, true_probability: float) -> None:
    if not bet_id:
        raise ValueError("bet_id is required")
    if not user_id:
        raise ValueError("user_id is required")
    if not math.isfinite(bet_amount) or bet_amount <= 0:
        raise ValueError(f"bet_amount must be a finite positive number, got {bet_amount!r}")
    if not math.isfinite(multiplier) or multiplier < 1:
        raise ValueError(f"multiplier must be finite and >= 1, got {multiplier!r}")
    if not math.isfinite(true_probability):
        raise ValueError(f"true_probability must be finite, got {true_probability!r}")
