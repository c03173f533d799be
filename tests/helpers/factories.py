"""Small builders for transactions, catalogs, and scopes used across tests."""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from cashflow_dashboard import CategoryCatalog, ScopeKey, Transaction

SCOPE = ScopeKey(cash_flow_id="cf-1", endpoint="https://api.example.test")
OTHER_SCOPE = ScopeKey(cash_flow_id="cf-2", endpoint="https://api.example.test")


def tx(
    id: str,
    amount: str | int,
    category: str = "Groceries",
    *,
    day: str | None = "2024-03-05",
    flow_month: str | None = None,
    **extra: Any,
) -> Transaction:
    """Build a transaction; ``amount`` is signed (negative = outflow)."""

    data: dict[str, Any] = {
        "id": id,
        "amount": str(amount),
        "effective_category_name": category,
        "payment_date": day,
        "flow_month": flow_month,
    }
    data.update(extra)
    return Transaction.model_validate(data)


def catalog(
    *rows: dict[str, Any],
    group_targets: dict[str, str] | None = None,
    suggested_targets: dict[str, str] | None = None,
    empty_categories: tuple[str, ...] = (),
) -> CategoryCatalog:
    return CategoryCatalog.from_rows(
        rows,
        group_targets={k: Decimal(v) for k, v in (group_targets or {}).items()},
        suggested_targets={k: Decimal(v) for k, v in (suggested_targets or {}).items()},
        empty_categories=empty_categories,
    )


# A catalog exercising every section and both target sources.
DEFAULT_ROWS: tuple[dict[str, Any], ...] = (
    {"category_name": "Groceries", "display_order": 2, "weekly_display": True, "monthly_target": "400"},
    {"category_name": "Dining", "display_order": 3, "monthly_target": "150.50"},
    {"category_name": "Rent", "display_order": 1, "shared_category": "Housing", "monthly_target": "1000"},
    {"category_name": "Utilities", "display_order": 5, "shared_category": "Housing", "monthly_target": "200"},
    {
        "category_name": "Internet",
        "display_order": 6,
        "shared_category": "Housing",
        "use_shared_target": True,
    },
    {"category_name": "Brokerage", "display_order": 7, "is_savings": True},
    {"category_name": "Transfers", "display_order": 8, "is_excluded": True},
    {"category_name": "Salary", "display_order": 0, "is_income": True},
)


def default_catalog(**kwargs: Any) -> CategoryCatalog:
    return catalog(*DEFAULT_ROWS, **kwargs)
