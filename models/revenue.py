"""
Revenue ledger data models.

RevenueEvent is append-only. Every settled bet produces two events sharing a
bet_id: one HOUSE_EDGE tracking event plus one PLATFORM_FEE (win) or
LOSS_REVENUE (loss) cash event.
"""

from __future__ import annotations
from dataclasses import dataclass
from enum import Enum


class RevenueKind(str, Enum):
    HOUSE_EDGE = "house_edge"
    PLATFORM_FEE = "platform_fee"
    LOSS_REVENUE = "loss_revenue"


@dataclass(frozen=True, slots=True)
class RevenueEvent:
    id: str
    timestamp_ms: int
    kind: RevenueKind
    amount: float
    bet_id: str
    user_id: str
    bet_amount: float
    multiplier: float
    won: bool


@dataclass(frozen=True, slots=True)
class RevenueStats:
    total_volume: float = 0.0
    total_revenue: float = 0.0
    house_edge_revenue: float = 0.0
    platform_fee_revenue: float = 0.0
    loss_revenue: float = 0.0
    total_bets: int = 0
    total_wins: int = 0
    total_losses: int = 0
    win_rate: float = 0.0
    effective_edge: float = 0.0
    average_bet_size: float = 0.0
    average_multiplier: float = 0.0


PERIOD_NAMES = ("daily", "weekly", "monthly", "alltime")


@dataclass(frozen=True, slots=True)
class PeriodStats:
    daily: RevenueStats
    weekly: RevenueStats
    monthly: RevenueStats
    all_time: RevenueStats

    def get(self, period: str) -> RevenueStats:
        if period == "alltime":
            return self.all_time
        if period in ("daily", "weekly", "monthly"):
            return getattr(self, period)
        raise KeyError(f"Unknown period '{period}'. Must be one of: {', '.join(PERIOD_NAMES)}")


@dataclass(frozen=True, slots=True)
class UserRevenue:
    user_id: str
    revenue: float
    bets: int


@dataclass(frozen=True, slots=True)
class HouseEdgeCalculation:
    true_probability: float     # after clamping
    fair_multiplier: float
    house_edge: float
    display_multiplier: float
    expected_house_revenue: float


@dataclass(frozen=True, slots=True)
class HouseEdgeCheck:
    valid: bool
    actual_edge: float
    expected_edge: float


@dataclass(frozen=True, slots=True)
class PlatformFeeCalculation:
    gross_payout: float
    winnings: float
    platform_fee: float
    net_payout: float
    fee_rate: float


@dataclass(frozen=True, slots=True)
class RevenueProjection:
    daily: float
    weekly: float
    monthly: float
    yearly: float
    effective_edge: float
