import pytest

from strategy.house_edge import (
    HOUSE_EDGE,
    calculate_house_edge,
    calculate_house_ev,
    calculate_platform_fee,
    calculate_user_ev,
    project_revenue,
    round_half_up,
    verify_house_edge,
)


@pytest.mark.parametrize("probability", [0.0011, 0.01, 0.1, 0.25, 1 / 3, 0.5, 0.7, 0.9, 0.949])
@pytest.mark.parametrize("bet_amount", [0.01, 1.0, 10.0, 2_500.0])
def test_displayed_multiplier_always_carries_the_edge(bet_amount, probability):
    calc = calculate_house_edge(bet_amount, probability)
    check = verify_house_edge(calc.display_multiplier, probability)
    assert check.valid
    assert check.expected_edge == HOUSE_EDGE


def test_house_edge_figures():
    calc = calculate_house_edge(10, 0.25)
    assert calc.fair_multiplier == 4.0
    assert calc.display_multiplier == 3.2
    assert calc.expected_house_revenue == 2.0
    assert calc.house_edge == 0.20


def test_probability_is_clamped_not_rejected():
    low = calculate_house_edge(10, 0)
    assert low.true_probability == 0.001
    assert low.fair_multiplier == 1000.0
    assert low.display_multiplier == 800.0

    high = calculate_house_edge(10, 1.5)
    assert high.true_probability == 0.95
    assert verify_house_edge(high.display_multiplier, 1.5).valid


def test_fair_multiplier_fails_verification():
    check = verify_house_edge(2.0, 0.5)
    assert not check.valid
    assert check.actual_edge == 0.0


def test_platform_fee_on_winnings_only():
    fee = calculate_platform_fee(10, 2.45)
    assert fee.gross_payout == 24.5
    assert fee.winnings == 14.5
    assert fee.platform_fee == 0.73
    assert fee.net_payout == 23.78
    assert fee.fee_rate == 0.05


def test_platform_fee_is_zero_at_even_money():
    fee = calculate_platform_fee(10, 1.0)
    assert fee.winnings == 0.0
    assert fee.platform_fee == 0.0
    assert fee.net_payout == 10.0


def test_user_ev_is_negative_and_mirrors_house_ev():
    display = calculate_house_edge(10, 0.5).display_multiplier
    assert display == 1.6
    # gross 16, fee 0.30 on 6 of winnings, net win 5.70
    assert calculate_user_ev(10, display, 0.5) == -2.15
    assert calculate_house_ev(10, display, 0.5) == 2.15


def test_project_revenue():
    projection = project_revenue(1_000)
    assert projection.daily == pytest.approx(256.0)
    assert projection.weekly == pytest.approx(1_792.0)
    assert projection.monthly == pytest.approx(7_680.0)
    assert projection.yearly == pytest.approx(93_440.0)
    assert projection.effective_edge == pytest.approx(0.256)


def test_project_revenue_without_volume_is_zero():
    projection = project_revenue(0)
    assert projection.daily == 0.0
    assert projection.effective_edge == 0.0


def test_round_half_up_uses_decimal_form():
    assert round_half_up(0.725, 2) == 0.73
    assert round_half_up(2.675, 2) == 2.68
    assert round_half_up(0.12345, 4) == 0.1235
    assert round_half_up(-1.005, 2) == -1.01
