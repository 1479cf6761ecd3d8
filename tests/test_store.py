"""RateStore tests against a real temporary SQLite database."""

from __future__ import annotations

import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0
from ratekeeper.core.errors import NotFound
from ratekeeper.db.migrate import CURRENT_SCHEMA_VERSION, apply_migrations
from ratekeeper.db.store import RateStore
from ratekeeper.models.rates import RateObservation, minute_bucket


def obs(target: str, rate: float, at: datetime, base: str = "USD") -> RateObservation:
    return RateObservation(base_currency=base, target_currency=target, rate=rate, observed_at=at)


def test_insert_if_absent_keeps_first_row_in_window(store: RateStore) -> None:
    assert store.insert_if_absent(obs("INR", 83.1, T0)) is True
    # same minute, different seconds and rate
    assert store.insert_if_absent(obs("INR", 84.2, T0 + timedelta(seconds=20))) is False
    assert store.insert_if_absent(obs("INR", 85.3, T0 - timedelta(seconds=30))) is False

    assert store.count_observations("USD", "INR") == 1
    assert store.latest_per_target("USD")[0].rate == 83.1


def test_insert_if_absent_new_window_or_pair_is_inserted(store: RateStore) -> None:
    assert store.insert_if_absent(obs("INR", 83.1, T0))
    assert store.insert_if_absent(obs("INR", 83.2, T0 + timedelta(minutes=1)))
    assert store.insert_if_absent(obs("EUR", 0.92, T0))
    assert store.insert_if_absent(obs("USD", 1.08, T0, base="EUR"))

    assert store.count_observations() == 4
    assert store.count_observations(base="USD") == 3


def test_unique_window_enforced_by_database(store: RateStore) -> None:
    store.insert_if_absent(obs("INR", 83.1, T0))
    conn = sqlite3.connect(store.db_path)
    try:
        with pytest.raises(sqlite3.IntegrityError):
            conn.execute(
                "INSERT INTO exchange_rates "
                "(base_currency, target_currency, rate, observed_at, observed_minute) "
                "VALUES ('USD', 'INR', 90.0, ?, ?)",
                (T0.isoformat(), minute_bucket(T0)),
            )
    finally:
        conn.close()


def test_concurrent_inserts_same_window_leave_one_row(store: RateStore) -> None:
    candidates = [obs("INR", 80 + i / 100, T0 + timedelta(milliseconds=i)) for i in range(20)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(store.insert_if_absent, candidates))

    assert results.count(True) == 1
    assert store.count_observations("USD", "INR") == 1


def test_latest_per_target_one_row_per_target_newest_wins(store: RateStore) -> None:
    for i, rate in enumerate((83.0, 83.5, 82.9)):
        store.insert_if_absent(obs("INR", rate, T0 + timedelta(hours=i)))
    store.insert_if_absent(obs("EUR", 0.91, T0 + timedelta(hours=5)))
    store.insert_if_absent(obs("EUR", 0.93, T0))
    store.insert_if_absent(obs("INR", 1.0, T0 + timedelta(hours=9), base="GBP"))

    latest = store.latest_per_target("USD")

    assert [r.target_currency for r in latest] == ["EUR", "INR"]
    by_target = {r.target_currency: r for r in latest}
    assert by_target["INR"].rate == 82.9
    assert by_target["INR"].observed_at == T0 + timedelta(hours=2)
    assert by_target["EUR"].rate == 0.91


def test_latest_per_target_timezone_normalised(store: RateStore) -> None:
    ist = timezone(timedelta(hours=5, minutes=30))
    # 12:10 UTC expressed in IST is later than 12:00 UTC despite a smaller wall clock
    store.insert_if_absent(obs("INR", 83.0, T0))
    store.insert_if_absent(obs("INR", 84.0, (T0 + timedelta(minutes=10)).astimezone(ist)))

    latest = store.latest_per_target("USD")[0]
    assert latest.rate == 84.0
    assert latest.observed_at.utcoffset() == timedelta(0)


def test_latest_per_target_unknown_base_raises(store: RateStore) -> None:
    store.insert_if_absent(obs("INR", 83.0, T0))
    with pytest.raises(NotFound):
        store.latest_per_target("EUR")


def test_average_over_window_is_arithmetic_mean(store: RateStore) -> None:
    for i, rate in enumerate((1.0, 2.0, 3.0)):
        store.insert_if_absent(obs("INR", rate, T0 + timedelta(minutes=i)))

    assert store.average_over_window("USD", "INR", T0) == 2.0


def test_average_over_window_excludes_rows_before_since(store: RateStore) -> None:
    store.insert_if_absent(obs("INR", 100.0, T0 - timedelta(days=2)))
    store.insert_if_absent(obs("INR", 2.0, T0))
    store.insert_if_absent(obs("INR", 4.0, T0 + timedelta(hours=1)))

    assert store.average_over_window("usd", "inr", T0 - timedelta(hours=1)) == 3.0


def test_average_over_window_empty_raises(store: RateStore) -> None:
    store.insert_if_absent(obs("INR", 83.0, T0 - timedelta(days=8)))
    with pytest.raises(NotFound):
        store.average_over_window("USD", "INR", T0 - timedelta(days=7))
    with pytest.raises(NotFound):
        store.average_over_window("USD", "EUR", T0 - timedelta(days=30))


def test_latest_timestamp(store: RateStore) -> None:
    assert store.latest_timestamp("USD") is None
    store.insert_if_absent(obs("INR", 83.0, T0))
    store.insert_if_absent(obs("EUR", 0.9, T0 + timedelta(hours=3)))

    assert store.latest_timestamp("USD") == T0 + timedelta(hours=3)


def test_apply_migrations_is_idempotent(tmp_path) -> None:
    db_path = tmp_path / "again.sqlite3"
    assert apply_migrations(db_path) == CURRENT_SCHEMA_VERSION
    RateStore(db_path).insert_if_absent(obs("INR", 83.0, T0))
    assert apply_migrations(db_path) == CURRENT_SCHEMA_VERSION
    assert RateStore(db_path).count_observations() == 1


def test_observation_model_validation() -> None:
    o = obs("inr", 83.1234567, T0)
    assert o.target_currency == "INR"
    assert o.rate == 83.123457
    assert o.observed_minute == int(T0.timestamp() * 1000) // 60000

    with pytest.raises(ValueError):
        obs("USD", 1.0, T0)  # target == base
    with pytest.raises(ValueError):
        obs("INR", 83.0, datetime(2026, 10, 19, 12, 0))  # naive timestamp
    with pytest.raises(ValueError):
        obs("INR", 0.0, T0)
    with pytest.raises(ValueError):
        obs("RUPEE", 83.0, T0)
