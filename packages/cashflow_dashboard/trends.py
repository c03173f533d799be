"""Multi-month series and suggested targets.

These helpers work over the same flattened cache snapshot as the aggregation
engine, but across several months:

- ``monthly_trends``: income / expense / net per month plus a running net and
  an optional goal line, for the dashboard charts.
- ``top_expense_categories``: the largest outflow categories over a window.
- ``suggest_targets``: per-category average spend over the months preceding
  the active one (only months with spend count), used as fallback targets.

Non-cash-flow records (flagged ``excluded_from_flow`` or in an ``is_excluded``
category) are left out of every figure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from .models import CategoryCatalog, Transaction
from .months import parse_month_key, previous_months

_ZERO = Decimal("0")
_CENT = Decimal("0.01")


def _in_flow(tx: Transaction, catalog: CategoryCatalog | None) -> bool:
    if tx.excluded_from_flow:
        return False
    if catalog is not None:
        cfg = catalog.config_for(tx.category_name)
        if cfg is not None and cfg.is_excluded:
            return False
    return True


@dataclass(frozen=True, slots=True)
class MonthTrend:
    month: str
    income: Decimal
    expenses: Decimal
    net: Decimal
    goal: Decimal
    cumulative_net: Decimal


@dataclass(frozen=True, slots=True)
class TrendSeries:
    months: tuple[MonthTrend, ...]

    @property
    def labels(self) -> list[str]:
        return [m.month for m in self.months]

    @property
    def income(self) -> list[Decimal]:
        return [m.income for m in self.months]

    @property
    def expenses(self) -> list[Decimal]:
        return [m.expenses for m in self.months]

    @property
    def net(self) -> list[Decimal]:
        return [m.net for m in self.months]


def monthly_trends(
    transactions: Iterable[Transaction],
    month_keys: Sequence[str],
    *,
    goals: Mapping[str, Decimal] | None = None,
    catalog: CategoryCatalog | None = None,
) -> TrendSeries:
    """Per-month income/expense series over ``month_keys`` (ascending)."""

    months = sorted(set(month_keys))
    for key in months:
        parse_month_key(key)
    income = {k: _ZERO for k in months}
    expenses = {k: _ZERO for k in months}
    for tx in transactions:
        key = tx.flow_month_key
        if key not in income or not _in_flow(tx, catalog):
            continue
        if tx.is_inflow:
            income[key] += abs(tx.amount)
        else:
            expenses[key] += abs(tx.amount)

    goals = goals or {}
    out: list[MonthTrend] = []
    running = _ZERO
    for key in months:
        net = income[key] - expenses[key]
        running += net
        out.append(
            MonthTrend(
                month=key,
                income=income[key],
                expenses=expenses[key],
                net=net,
                goal=goals.get(key, _ZERO),
                cumulative_net=running,
            )
        )
    return TrendSeries(tuple(out))


def top_expense_categories(
    transactions: Iterable[Transaction],
    *,
    limit: int = 10,
    catalog: CategoryCatalog | None = None,
) -> list[tuple[str, Decimal]]:
    """Largest outflow categories, biggest first (ties by name)."""

    if limit <= 0:
        raise ValueError("limit must be a positive integer")
    totals: dict[str, Decimal] = {}
    for tx in transactions:
        if tx.is_inflow or not _in_flow(tx, catalog):
            continue
        totals[tx.category_name] = totals.get(tx.category_name, _ZERO) + abs(tx.amount)
    ranked = sorted(
        ((name, amt) for name, amt in totals.items() if amt > 0),
        key=lambda kv: (-kv[1], kv[0]),
    )
    return ranked[:limit]


def suggest_targets(
    transactions: Iterable[Transaction],
    month: str,
    *,
    lookback: int = 3,
    catalog: CategoryCatalog | None = None,
) -> dict[str, Decimal]:
    """Average monthly outflow per category over the ``lookback`` prior months.

    Months in which a category had no spend do not count towards its
    average. Results are rounded to cents (half up).
    """

    if lookback <= 0:
        raise ValueError("lookback must be a positive integer")
    window = set(previous_months(month, lookback))
    per_month: dict[str, dict[str, Decimal]] = {}
    for tx in transactions:
        key = tx.flow_month_key
        if key not in window or tx.is_inflow or not _in_flow(tx, catalog):
            continue
        months = per_month.setdefault(tx.category_name, {})
        months[key] = months.get(key, _ZERO) + abs(tx.amount)

    out: dict[str, Decimal] = {}
    for name, months in sorted(per_month.items()):
        spent = [v for v in months.values() if v > 0]
        if spent:
            avg = sum(spent, _ZERO) / len(spent)
            out[name] = avg.quantize(_CENT, rounding=ROUND_HALF_UP)
    return out


__all__ = [
    "MonthTrend",
    "TrendSeries",
    "monthly_trends",
    "top_expense_categories",
    "suggest_targets",
]
