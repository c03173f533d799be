from decimal import Decimal

import pytest

from cashflow_dashboard import monthly_trends, suggest_targets, top_expense_categories
from tests.helpers.factories import default_catalog, tx


def _history():
    return [
        tx("s1", "2000", "Salary", day="2024-01-01"),
        tx("g1", "-100", "Groceries", day="2024-01-05"),
        tx("g2", "-50.005", "Groceries", day="2024-02-05"),
        tx("d1", "-30", "Dining", day="2024-02-07"),
        tx("t1", "-500", "Transfers", day="2024-02-08"),
        tx("x1", "-75", "Dining", day="2024-02-09", excluded_from_flow=True),
        tx("s2", "2000", "Salary", day="2024-03-01"),
    ]


def test_monthly_trends_skip_non_cash_flow_and_fill_gaps():
    series = monthly_trends(
        _history(), ["2024-03", "2024-01", "2024-02", "2024-04"], catalog=default_catalog()
    )
    assert series.labels == ["2024-01", "2024-02", "2024-03", "2024-04"]
    assert series.income == [Decimal("2000"), 0, Decimal("2000"), 0]
    assert series.expenses == [Decimal("100"), Decimal("80.005"), 0, 0]
    assert series.net == [Decimal("1900"), Decimal("-80.005"), Decimal("2000"), 0]
    assert series.months[-1].cumulative_net == Decimal("3819.995")
    assert all(m.goal == 0 for m in series.months)


def test_monthly_trends_without_catalog_counts_category_exclusions():
    series = monthly_trends(_history(), ["2024-02"])
    # Only the per-record flag applies without category metadata.
    assert series.expenses == [Decimal("580.005")]


def test_monthly_trends_rejects_bad_keys():
    with pytest.raises(ValueError):
        monthly_trends([], ["2024-1"])


def test_top_expense_categories():
    ranked = top_expense_categories(_history(), catalog=default_catalog(), limit=5)
    assert ranked == [("Groceries", Decimal("150.005")), ("Dining", Decimal("30"))]
    assert top_expense_categories(_history(), limit=1) == [("Transfers", Decimal("500"))]
    with pytest.raises(ValueError):
        top_expense_categories([], limit=0)


def test_suggest_targets_averages_months_with_spend():
    suggestions = suggest_targets(_history(), "2024-03", lookback=3, catalog=default_catalog())
    # Groceries: (100 + 50.005) / 2 = 75.0025 -> 75.00; Dining: 30.
    assert suggestions == {"Dining": Decimal("30.00"), "Groceries": Decimal("75.00")}


def test_suggest_targets_window_and_rounding():
    txs = [
        tx("a", "-10.005", "Misc", day="2024-01-15"),
        tx("b", "-999", "Misc", day="2023-10-01"),
    ]
    assert suggest_targets(txs, "2024-03", lookback=1) == {}
    assert suggest_targets(txs, "2024-03", lookback=2) == {"Misc": Decimal("10.01")}
    with pytest.raises(ValueError):
        suggest_targets(txs, "2024-03", lookback=0)
