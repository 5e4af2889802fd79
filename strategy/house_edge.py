"""
House-edge and platform-fee calculator.

Every displayed multiplier is the fair multiplier with the house edge taken off:

    fair    = 1 / p
    display = fair * (1 - HOUSE_EDGE)

Since p * fair == 1, the expected house take on a bet is simply
bet_amount * HOUSE_EDGE, whatever the odds.

On top of that, a platform fee is charged on a won bet's winnings only
(never on the returned stake):

    gross = bet * multiplier
    fee   = (gross - bet) * PLATFORM_FEE_RATE
    net   = gross - fee

Out-of-range probabilities are clamped, never rejected: this module prices odds
for display, it is not the ledger of record.
"""

from __future__ import annotations
from decimal import Decimal, ROUND_HALF_UP

from models.revenue import (
    HouseEdgeCalculation,
    HouseEdgeCheck,
    PlatformFeeCalculation,
    RevenueProjection,
)

HOUSE_EDGE: float = 0.20
PLATFORM_FEE_RATE: float = 0.05

MIN_PROBABILITY: float = 0.001
MAX_PROBABILITY: float = 0.95
# |actual - configured| edge accepted by verify_house_edge
EDGE_TOLERANCE: float = 0.01

# Dashboard projection assumptions
ASSUMED_WIN_RATE: float = 0.4
ASSUMED_MULTIPLIER: float = 2.0


def round_half_up(value: float, places: int) -> float:
    """
    Round on the shortest decimal form of the float, halves away from zero.
    round_half_up(0.725, 2) == 0.73 even though 0.725 is stored as 0.72499...
    """
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def money(value: float) -> float:
    return round_half_up(value, 2)


def rate(value: float) -> float:
    return round_half_up(value, 4)


def clamp_probability(p: float) -> float:
    return max(MIN_PROBABILITY, min(MAX_PROBABILITY, p))


def calculate_house_edge(
    bet_amount: float,
    true_probability: float,
    house_edge: float = HOUSE_EDGE,
) -> HouseEdgeCalculation:
    p = clamp_probability(true_probability)
    fair = 1.0 / p
    display = fair * (1.0 - house_edge)
    return HouseEdgeCalculation(
        true_probability=p,
        fair_multiplier=money(fair),
        house_edge=house_edge,
        display_multiplier=money(display),
        expected_house_revenue=money(bet_amount * house_edge),
    )


def verify_house_edge(
    display_multiplier: float,
    true_probability: float,
    house_edge: float = HOUSE_EDGE,
) -> HouseEdgeCheck:
    """Check that a displayed multiplier carries the configured edge (within 1 point)."""
    fair = 1.0 / clamp_probability(true_probability)
    actual = 1.0 - display_multiplier / fair
    return HouseEdgeCheck(
        valid=abs(actual - house_edge) < EDGE_TOLERANCE,
        actual_edge=rate(actual),
        expected_edge=house_edge,
    )


def calculate_platform_fee(
    bet_amount: float,
    multiplier: float,
    fee_rate: float = PLATFORM_FEE_RATE,
) -> PlatformFeeCalculation:
    gross = bet_amount * multiplier
    winnings = gross - bet_amount
    fee = winnings * fee_rate
    net = gross - fee
    return PlatformFeeCalculation(
        gross_payout=money(gross),
        winnings=money(winnings),
        platform_fee=money(fee),
        net_payout=money(net),
        fee_rate=fee_rate,
    )


def calculate_user_ev(
    bet_amount: float,
    multiplier: float,
    probability: float,
    fee_rate: float = PLATFORM_FEE_RATE,
) -> float:
    """
    Expected value of a bet for the user, after the platform fee.
    Negative is the normal case — that is the house's margin.
    """
    net_win = calculate_platform_fee(bet_amount, multiplier, fee_rate).net_payout - bet_amount
    ev = probability * net_win - (1.0 - probability) * bet_amount
    return money(ev)


def calculate_house_ev(
    bet_amount: float,
    multiplier: float,
    probability: float,
    fee_rate: float = PLATFORM_FEE_RATE,
) -> float:
    return -calculate_user_ev(bet_amount, multiplier, probability, fee_rate)


def project_revenue(
    daily_volume: float,
    fee_rate: float = PLATFORM_FEE_RATE,
    win_rate: float = ASSUMED_WIN_RATE,
    avg_multiplier: float = ASSUMED_MULTIPLIER,
) -> RevenueProjection:
    """
    Rough revenue projection for dashboards at a given daily volume.
    An estimate from fixed win-rate / multiplier assumptions, not a forecast.
    """
    if daily_volume <= 0:
        return RevenueProjection(daily=0.0, weekly=0.0, monthly=0.0, yearly=0.0, effective_edge=0.0)

    avg_win_amount = daily_volume * win_rate * avg_multiplier
    # Fee is charged on the winnings portion of the payout
    fee_revenue = avg_win_amount * fee_rate * win_rate
    payouts = daily_volume * win_rate * avg_multiplier * (1.0 - fee_rate)
    daily = daily_volume - payouts + fee_revenue

    return RevenueProjection(
        daily=money(daily),
        weekly=money(daily * 7),
        monthly=money(daily * 30),
        yearly=money(daily * 365),
        effective_edge=rate(daily / daily_volume),
    )
