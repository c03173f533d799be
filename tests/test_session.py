from decimal import Decimal
from pathlib import Path

import pytest

from cashflow_dashboard import (
    AggregationEngine,
    DashboardSession,
    DiskMirror,
    Insertion,
    Removal,
    Section,
    TransactionCache,
    Update,
)
from tests.helpers.factories import OTHER_SCOPE, SCOPE, default_catalog, tx

MONTH = "2024-03"


@pytest.fixture
def mirror(tmp_path: Path) -> DiskMirror:
    return DiskMirror(tmp_path / "mirror")


def _session(cache: TransactionCache, **kwargs) -> DashboardSession:
    return DashboardSession(cache, SCOPE, AggregationEngine(default_catalog()), month=MONTH, **kwargs)


def test_invalid_months_are_rejected():
    with pytest.raises(ValueError):
        DashboardSession(TransactionCache(), SCOPE, AggregationEngine(), month="2024-3")
    with pytest.raises(ValueError):
        DashboardSession(
            TransactionCache(), SCOPE, AggregationEngine(), month=MONTH, chart_months=["x"]
        )


def test_fetch_plan_then_ingest_then_load():
    cache = TransactionCache()
    session = _session(cache, chart_months=["2024-01", "2024-02"])
    assert session.month_keys() == ["2024-01", "2024-02", "2024-03"]
    assert session.months_to_fetch() == ["2024-01", "2024-02", "2024-03"]

    count = session.ingest(
        [
            {"id": 1, "amount": "-40", "effective_category_name": "Groceries", "payment_date": "2024-03-05"},
            {"id": 2, "amount": "-12", "effective_category_name": "Dining", "payment_date": "2024-01-15"},
        ],
        covered_months=["2024-01", "2024-02", "2024-03"],
    )
    assert count == 2
    assert session.months_to_fetch() == []

    agg = session.load()
    assert agg.month == MONTH
    assert agg.category("Groceries").total_spent == Decimal("40")
    assert agg.category("Dining") is None
    assert [t.id for t in session.transactions] == ["1", "2"]
    assert session.current() is agg


def test_months_to_fetch_hydrates_from_disk(mirror: DiskMirror):
    TransactionCache(mirror).cache(SCOPE, [tx("a", "-10")])
    session = _session(TransactionCache(mirror), chart_months=["2024-02"])
    assert session.months_to_fetch() == ["2024-02"]
    assert session.load().category("Groceries").total_spent == Decimal("10")


def test_apply_keeps_cache_and_aggregate_in_sync(mirror: DiskMirror):
    cache = TransactionCache(mirror)
    session = _session(cache)
    session.ingest([tx("a", "-10"), tx("r", "-1000", "Rent")], covered_months=[MONTH])
    session.load()

    new = tx("a", "-25", "Dining")
    agg = session.apply([Update(tx("a", "-10"), new), Insertion(tx("b", "-5"))])
    assert agg == AggregationEngine(default_catalog()).compute(session.transactions, MONTH)
    assert agg.category("Dining").total_spent == Decimal("25")
    assert cache.lookup(SCOPE, "a") == new
    assert {t.id for t in mirror.read(SCOPE, MONTH)} == {"a", "b", "r"}

    agg = session.remove(tx("r", "-1000", "Rent"))
    assert agg.groups == {}
    assert cache.lookup(SCOPE, "r") is None


def test_apply_moves_records_between_months():
    cache = TransactionCache()
    session = _session(cache)
    session.ingest([tx("a", "-10")], covered_months=[MONTH, "2024-04"])
    session.load()

    agg = session.upsert(tx("a", "-10", flow_month="2024-04"))
    assert agg.category("Groceries") is None
    assert cache.months(SCOPE) == {"2024-03": 0, "2024-04": 1}

    april = session.select_month("2024-04")
    assert april.category("Groceries").total_spent == Decimal("10")
    assert session.shift_month(-1).month == MONTH


def test_reingest_of_moved_record_counts_it_once(mirror: DiskMirror):
    cache = TransactionCache(mirror)
    session = _session(cache, chart_months=["2024-04"])
    session.ingest([tx("a", "-10"), tx("b", "-5", "Dining")], covered_months=[MONTH, "2024-04"])
    assert session.load().category("Groceries").total_spent == Decimal("10")

    session.ingest([tx("a", "-10", flow_month="2024-04")])
    agg = session.load()
    assert agg.category("Groceries") is None
    assert agg.category("Dining").total_spent == Decimal("5")
    assert [t.id for t in session.transactions] == ["b", "a"]
    assert session.trends().months[-1].expenses == Decimal("10")


def test_apply_before_load_performs_full_recompute():
    session = _session(TransactionCache())
    agg = session.apply([Insertion(tx("a", "-10"))])
    assert agg.category("Groceries").total_spent == Decimal("10")
    assert session.aggregate is agg


def test_removal_of_unknown_record_is_a_no_op():
    session = _session(TransactionCache())
    session.ingest([tx("a", "-10")], covered_months=[MONTH])
    before = session.load()
    assert session.apply([Removal(tx("zzz", "-1"))]) is before


def test_suggested_targets_come_from_previous_months():
    cache = TransactionCache()
    session = _session(cache, suggestion_lookback=3)
    assert session.months_to_fetch() == ["2023-12", "2024-01", "2024-02", "2024-03"]
    session.ingest(
        [
            tx("m1", "-30", "Misc", day="2024-02-03"),
            tx("m2", "-10", "Misc", day="2024-01-03"),
            tx("m3", "-5", "Misc", day="2024-03-03"),
            tx("g1", "-100", "Groceries", day="2024-02-03"),
        ],
        covered_months=["2023-12", "2024-01", "2024-02", "2024-03"],
    )
    agg = session.load()
    misc = agg.category("Misc", Section.EXPENSE)
    assert misc.target == Decimal("20.00")
    assert misc.is_target_suggested
    # The injected catalog itself is left untouched.
    assert session.catalog.suggested_targets == {}


def test_catalog_suggestions_take_precedence():
    cache = TransactionCache()
    engine = AggregationEngine(default_catalog(suggested_targets={"Misc": "99"}))
    session = DashboardSession(cache, SCOPE, engine, month=MONTH, suggestion_lookback=2)
    session.ingest(
        [tx("m1", "-30", "Misc", day="2024-02-03"), tx("m3", "-5", "Misc")],
        covered_months=["2024-01", "2024-02", "2024-03"],
    )
    assert session.load().category("Misc").target == Decimal("99")


def test_update_catalog_recomputes():
    session = _session(TransactionCache())
    session.ingest([tx("a", "-10", "Misc")], covered_months=[MONTH])
    assert session.load().category("Misc").display_order is None
    agg = session.update_catalog(
        default_catalog().model_copy(update={"categories": {}})
    )
    assert agg.category("Rent") is None
    assert session.catalog.categories == {}


def test_reset_only_affects_own_scope(mirror: DiskMirror):
    cache = TransactionCache(mirror)
    cache.cache(OTHER_SCOPE, [tx("o", "-1")])
    session = _session(cache)
    session.ingest([tx("a", "-10")], covered_months=[MONTH])
    session.load()

    session.reset()
    assert session.aggregate is None
    assert cache.lookup(SCOPE, "a") is None
    assert cache.lookup(OTHER_SCOPE, "o") is not None
    # The mirror survives, so the next fetch plan rehydrates.
    assert session.months_to_fetch() == []


def test_trends_cover_session_months():
    session = _session(TransactionCache(), chart_months=["2024-02"])
    session.ingest(
        [
            tx("s", "1000", "Salary", day="2024-02-01"),
            tx("a", "-400", day="2024-02-10"),
            tx("b", "-300", day="2024-03-10"),
        ],
        covered_months=["2024-02", MONTH],
    )
    series = session.trends(goals={"2024-03": Decimal("100")})
    assert series.labels == ["2024-02", "2024-03"]
    assert series.net == [Decimal("600"), Decimal("-300")]
    assert series.months[-1].cumulative_net == Decimal("300")
    assert series.months[-1].goal == Decimal("100")
