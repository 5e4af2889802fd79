import random

import pytest

from feeds.synthetic import SyntheticFeedClient, SyntheticPriceGenerator, WalkParams


def test_same_seed_same_path():
    a = SyntheticPriceGenerator(rng=random.Random(42))
    b = SyntheticPriceGenerator(rng=random.Random(42))
    assert [a.next_price() for _ in range(200)] == [b.next_price() for _ in range(200)]


def test_starts_at_base_price():
    gen = SyntheticPriceGenerator(WalkParams(base_price=150.0))
    assert gen.price == 150.0


def test_stays_within_floor_and_ceiling():
    params = WalkParams(base_price=200.0, volatility=0.05, big_move_probability=0.5, floor=199.0, ceiling=201.0)
    gen = SyntheticPriceGenerator(params, rng=random.Random(1))
    prices = [gen.next_price() for _ in range(1_000)]
    assert min(prices) >= 199.0
    assert max(prices) <= 201.0


def test_moves_are_small_per_tick():
    gen = SyntheticPriceGenerator(rng=random.Random(3))
    prev = gen.price
    for _ in range(500):
        price = gen.next_price()
        # volatility + trend + big move + reversion at the default parameters
        assert abs(price - prev) / prev < 0.02
        prev = price


def test_base_price_outside_bounds_is_clamped():
    gen = SyntheticPriceGenerator(WalkParams(base_price=1_000.0))
    assert gen.price == 500.0


def test_invalid_bounds():
    with pytest.raises(ValueError):
        SyntheticPriceGenerator(WalkParams(floor=300.0, ceiling=300.0))


def test_params_from_dict():
    assert WalkParams.from_dict(None) == WalkParams()
    assert WalkParams.from_dict({"base_price": 100.0, "floor": 10.0}).floor == 10.0
    with pytest.raises(TypeError):
        WalkParams.from_dict({"drift": 0.1})


async def test_feed_streams_prices():
    client = SyntheticFeedClient(SyntheticPriceGenerator(rng=random.Random(5)), interval_s=0)
    assert client.is_configured
    await client.startup()
    stream = client.stream()
    prices = [await stream.__anext__() for _ in range(3)]
    await stream.aclose()
    await client.shutdown()

    assert all(client.parse_tick(p) == p for p in prices)
    assert client.change_24h(prices[0]) is None


class _ScriptedRandom:
    """Draws from a fixed list for random(); uniform() always returns its upper bound."""

    def __init__(self, draws):
        self._draws = iter(draws)

    def random(self):
        return next(self._draws)

    def uniform(self, a, b):
        return b


def test_mean_reversion_pulls_toward_center():
    params = WalkParams(
        base_price=300.0,
        center_price=200.0,
        volatility=0.0,
        trend_probability=0.0,
        big_move_probability=0.0,
        mean_reversion=0.1,
    )
    gen = SyntheticPriceGenerator(params, rng=random.Random(0))
    distances = [gen.next_price() - 200.0 for _ in range(20)]

    assert distances[0] == pytest.approx(90.0)
    assert all(0 < later < earlier for earlier, later in zip(distances, distances[1:]))


def test_no_reversion_means_no_drift():
    params = WalkParams(base_price=300.0, center_price=200.0, volatility=0.0,
                        trend_probability=0.0, big_move_probability=0.0, mean_reversion=0.0)
    gen = SyntheticPriceGenerator(params, rng=random.Random(0))
    assert {gen.next_price() for _ in range(10)} == {300.0}


def test_trend_persists_until_redrawn():
    params = WalkParams(
        base_price=200.0,
        volatility=0.0,
        trend_probability=0.5,
        trend_scale=0.001,
        big_move_probability=0.0,
        mean_reversion=0.0,
    )
    # tick 1 redraws the trend (0.5 * 0.001 * 200 = 0.1); ticks 2 and 3 keep it
    rng = _ScriptedRandom([0.0, 0.9, 0.9, 0.9, 0.9, 0.9])
    gen = SyntheticPriceGenerator(params, rng=rng)
    prices = [gen.next_price() for _ in range(3)]
    assert prices == pytest.approx([200.1, 200.2, 200.3])


def test_prices_are_rounded_to_four_places():
    gen = SyntheticPriceGenerator(rng=random.Random(11))
    for _ in range(200):
        price = gen.next_price()
        assert price == round(price, 4)
    assert gen.price == round(gen.price, 4)
