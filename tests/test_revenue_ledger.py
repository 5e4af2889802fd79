import threading

import pytest

from ledger.revenue_ledger import DAY_MS, RevenueLedger
from models.revenue import RevenueKind, RevenueStats


@pytest.fixture
def ledger(clock):
    return RevenueLedger(clock=clock)


def test_single_win_records_fee_and_edge(ledger):
    cash, edge = ledger.record_bet_revenue("bet-1", "alice", 10, 2.45, won=True, true_probability=0.33)
    assert cash.kind is RevenueKind.PLATFORM_FEE
    assert cash.amount == 0.73
    assert edge.kind is RevenueKind.HOUSE_EDGE
    assert edge.amount == 2.0
    assert (cash.id, edge.id) == ("rev_1", "rev_2")

    stats = ledger.get_revenue_stats().all_time
    assert stats.total_volume == 10.0
    assert stats.total_bets == 1
    assert stats.total_wins == 1
    assert stats.platform_fee_revenue == 0.73
    assert stats.total_revenue == 0.73
    assert stats.house_edge_revenue == 2.0


def test_mixed_outcomes_aggregate_once_per_bet(ledger):
    ledger.record_bet_revenue("bet-1", "alice", 5, 2.0, won=False)
    ledger.record_bet_revenue("bet-2", "alice", 10, 3.0, won=True)

    stats = ledger.get_revenue_stats().all_time
    assert stats.loss_revenue == 5.0
    assert stats.platform_fee_revenue == 1.0
    assert stats.total_revenue == 6.0
    assert stats.house_edge_revenue == 3.0
    assert stats.total_volume == 15.0
    assert stats.total_bets == 2
    assert stats.total_wins == 1
    assert stats.total_losses == 1
    assert stats.win_rate == 0.5
    assert stats.effective_edge == 0.4
    assert stats.average_bet_size == 7.5
    assert stats.average_multiplier == 2.5


def test_empty_ledger_reports_zeros(ledger):
    stats = ledger.get_revenue_stats()
    for period in ("daily", "weekly", "monthly", "alltime"):
        assert stats.get(period) == RevenueStats()
    with pytest.raises(KeyError):
        stats.get("hourly")


def test_stats_cached_within_ttl(ledger, clock):
    ledger.record_bet_revenue("bet-1", "alice", 10, 2.0, won=False)
    first = ledger.get_revenue_stats()
    clock.advance(4_999)
    assert ledger.get_revenue_stats() is first

    clock.advance(1)
    refreshed = ledger.get_revenue_stats()
    assert refreshed is not first
    assert refreshed == first


def test_append_invalidates_cache(ledger):
    ledger.record_bet_revenue("bet-1", "alice", 10, 2.0, won=False)
    before = ledger.get_revenue_stats()
    ledger.record_bet_revenue("bet-2", "bob", 20, 2.0, won=False)
    after = ledger.get_revenue_stats()
    assert before.all_time.total_bets == 1
    assert after.all_time.total_bets == 2


def test_period_windows(ledger, clock):
    ledger.record_bet_revenue("old", "alice", 10, 2.0, won=False)
    clock.advance(2 * DAY_MS)
    ledger.record_bet_revenue("new", "alice", 20, 2.0, won=False)

    stats = ledger.get_revenue_stats()
    assert stats.daily.total_bets == 1
    assert stats.daily.total_volume == 20.0
    assert stats.weekly.total_bets == 2

    clock.advance(8 * DAY_MS)
    stats = ledger.get_revenue_stats()
    assert stats.daily.total_bets == 0
    assert stats.weekly.total_bets == 0
    assert stats.monthly.total_bets == 2
    assert stats.all_time.total_bets == 2

    clock.advance(40 * DAY_MS)
    stats = ledger.get_revenue_stats()
    assert stats.monthly.total_bets == 0
    assert stats.all_time.total_volume == 30.0


def test_recent_events_newest_first(ledger):
    ledger.record_bet_revenue("bet-1", "alice", 5, 2.0, won=False)
    ledger.record_bet_revenue("bet-2", "alice", 10, 3.0, won=True)

    recent = ledger.get_recent_revenue_events(3)
    assert [e.id for e in recent] == ["rev_4", "rev_3", "rev_2"]
    assert recent[1].kind is RevenueKind.PLATFORM_FEE
    assert ledger.get_recent_revenue_events(0) == []
    assert len(ledger.get_recent_revenue_events()) == 4


def test_revenue_by_user_counts_realized_revenue(ledger):
    ledger.record_bet_revenue("bet-1", "alice", 5, 2.0, won=False)
    ledger.record_bet_revenue("bet-2", "alice", 10, 3.0, won=True)
    ledger.record_bet_revenue("bet-3", "bob", 20, 1.5, won=False)

    rows = ledger.get_revenue_by_user()
    assert [(r.user_id, r.revenue, r.bets) for r in rows] == [("bob", 20.0, 1), ("alice", 6.0, 2)]
    assert [r.user_id for r in ledger.get_revenue_by_user(1)] == ["bob"]


def test_clear_revenue_data(ledger):
    ledger.record_bet_revenue("bet-1", "alice", 5, 2.0, won=False)
    ledger.get_revenue_stats()
    ledger.clear_revenue_data()

    assert len(ledger) == 0
    assert ledger.get_revenue_stats().all_time.total_bets == 0
    cash, _ = ledger.record_bet_revenue("bet-2", "alice", 5, 2.0, won=False)
    assert cash.id == "rev_1"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"bet_id": ""},
        {"user_id": ""},
        {"bet_amount": 0},
        {"bet_amount": -5},
        {"bet_amount": float("nan")},
        {"multiplier": 0.5},
        {"multiplier": float("inf")},
        {"true_probability": float("nan")},
    ],
)
def test_invalid_settlements_are_rejected(ledger, kwargs):
    args = {"bet_id": "bet-1", "user_id": "alice", "bet_amount": 10.0, "multiplier": 2.0, "won": True}
    args.update(kwargs)
    with pytest.raises(ValueError):
        ledger.record_bet_revenue(**args)
    assert len(ledger) == 0


def test_uses_configured_rates(clock):
    ledger = RevenueLedger(house_edge=0.1, platform_fee_rate=0.1, clock=clock)
    cash, edge = ledger.record_bet_revenue("bet-1", "alice", 10, 3.0, won=True)
    assert cash.amount == 2.0
    assert edge.amount == 1.0


def test_concurrent_writers_never_expose_half_a_settlement():
    ledger = RevenueLedger(cache_ttl_ms=0)
    writers, per_writer = 4, 250
    stop = threading.Event()
    odd_reads = []

    def write(n):
        for i in range(per_writer):
            ledger.record_bet_revenue(f"bet-{n}-{i}", f"user-{n}", 1.0, 2.0, won=i % 2 == 0)

    def read():
        while not stop.is_set():
            count = len(ledger.get_raw_revenue_events())
            if count % 2:
                odd_reads.append(count)
            ledger.get_revenue_stats()

    reader = threading.Thread(target=read)
    reader.start()
    threads = [threading.Thread(target=write, args=(n,)) for n in range(writers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    stop.set()
    reader.join()

    assert odd_reads == []
    events = ledger.get_raw_revenue_events()
    assert len(events) == 2 * writers * per_writer
    assert len({e.id for e in events}) == len(events)
    assert ledger.get_revenue_stats().all_time.total_bets == writers * per_writer
