"""Data models for ``cashflow_dashboard``.

Wire-facing records (transactions, category configuration) are pydantic
models so that decoded API payloads and on-disk month files share one
validation path. Decoding is deliberately lenient: the API sends ids as
numbers or strings, amounts as numbers or comma-grouped strings, and dates in
several ISO shapes. Values that cannot be interpreted degrade to neutral
defaults instead of rejecting the record.

Derived dashboard values live in :mod:`cashflow_dashboard.aggregation` as
frozen dataclasses.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

from .months import is_month_key, month_key

# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ScopeKey:
    """Isolated cache partition: one cash flow on one backend endpoint."""

    cash_flow_id: str
    endpoint: str


# ---------------------------------------------------------------------------
# Lenient scalar parsing shared by the models below
# ---------------------------------------------------------------------------


def _to_decimal(raw: Any) -> Decimal | None:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, int):
        return Decimal(raw)
    s = str(raw).strip().replace(",", "")
    if not s:
        return None
    try:
        d = Decimal(s)
    except (InvalidOperation, ValueError):
        return None
    return d if d.is_finite() else None


def _to_date(raw: Any) -> dt.date | None:
    if raw is None:
        return None
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    s = str(raw).strip()
    if not s:
        return None
    try:
        return dt.date.fromisoformat(s)
    except ValueError:
        pass
    try:
        return dt.datetime.fromisoformat(s).date()
    except ValueError:
        pass
    # Postgres text form, e.g. "2023-03-01 00:00:00 +0000"
    try:
        return dt.datetime.strptime(s, "%Y-%m-%d %H:%M:%S %z").date()
    except ValueError:
        return None


def _blank_to_none(raw: Any) -> Any:
    if isinstance(raw, str) and not raw.strip():
        return None
    return raw


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionStatus(StrEnum):
    PENDING = "pending"
    REVIEWED = "reviewed"


class TransactionFlags(NamedTuple):
    suppressed_from_automation: bool
    manually_split: bool


class Transaction(BaseModel):
    """A single transaction as served by the cash-flow API.

    ``amount`` is signed: negative values are outflows. ``flow_month`` is the
    budgeting month the server attributes the record to; when absent, the
    month of :attr:`effective_date` is used (see :attr:`flow_month_key`).
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", str_strip_whitespace=True
    )

    id: str
    amount: Decimal = Decimal("0")
    is_income: bool = False
    category_name: str = Field(
        default="",
        validation_alias=AliasChoices("effective_category_name", "category_name"),
        serialization_alias="effective_category_name",
    )
    flow_month: str | None = None
    payment_date: dt.date | None = None
    date: dt.date | None = None
    notes: str | None = None
    payment_method: str | None = None
    business_name: str | None = None
    status: TransactionStatus = TransactionStatus.PENDING
    suppress_from_automation: bool = False
    manual_split_applied: bool = False
    excluded_from_flow: bool = False

    @model_validator(mode="before")
    @classmethod
    def _derive_income_flag(cls, data: Any) -> Any:
        # Absent is_income means "positive amount is income".
        if isinstance(data, Mapping) and data.get("is_income") is None:
            data = dict(data)
            amount = _to_decimal(data.get("amount"))
            data["is_income"] = amount is not None and amount > 0
        return data

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, v: Any) -> Any:
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _lenient_amount(cls, v: Any) -> Decimal:
        d = _to_decimal(v)
        return d if d is not None else Decimal("0")

    @field_validator("payment_date", "date", mode="before")
    @classmethod
    def _lenient_date(cls, v: Any) -> dt.date | None:
        return _to_date(v)

    @field_validator("status", mode="before")
    @classmethod
    def _lenient_status(cls, v: Any) -> TransactionStatus:
        if isinstance(v, str) and v.strip().lower() == TransactionStatus.REVIEWED:
            return TransactionStatus.REVIEWED
        return TransactionStatus.PENDING

    @field_validator(
        "suppress_from_automation", "manual_split_applied", "excluded_from_flow", mode="before"
    )
    @classmethod
    def _none_is_false(cls, v: Any) -> Any:
        return False if v is None else v

    @field_validator("category_name", mode="before")
    @classmethod
    def _none_is_empty(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("flow_month", "notes", "payment_method", "business_name", mode="before")
    @classmethod
    def _blank_optional(cls, v: Any) -> Any:
        return _blank_to_none(v)

    # ---- Derived views ---------------------------------------------------

    @property
    def effective_date(self) -> dt.date | None:
        return self.payment_date or self.date

    @property
    def flow_month_key(self) -> str | None:
        """Budget month (``YYYY-MM``) or ``None`` when it cannot be determined."""

        if self.flow_month and is_month_key(self.flow_month):
            return self.flow_month
        d = self.effective_date
        return month_key(d) if d is not None else None

    @property
    def is_inflow(self) -> bool:
        return self.is_income or self.amount > 0

    @property
    def flags(self) -> TransactionFlags:
        return TransactionFlags(
            suppressed_from_automation=self.suppress_from_automation,
            manually_split=self.manual_split_applied,
        )


def transaction_sort_key(tx: Transaction) -> tuple[bool, dt.date, str]:
    """Key for newest-first ordering via ``sorted(..., reverse=True)``.

    Undated records sort after every dated one; equal dates fall back to the
    transaction id so the order is deterministic.
    """

    d = tx.effective_date
    return (d is not None, d or dt.date.min, tx.id)


def sort_newest_first(transactions: Iterable[Transaction]) -> list[Transaction]:
    return sorted(transactions, key=transaction_sort_key, reverse=True)


# ---------------------------------------------------------------------------
# Category metadata (injected lookup table)
# ---------------------------------------------------------------------------


class CategoryConfig(BaseModel):
    """Display and budgeting metadata for one category.

    Mirrors a ``category_order`` row. ``monthly_target`` arrives as text and
    is parsed leniently. ``is_savings`` and ``is_excluded`` place the
    category's outflows in the savings or non-cash-flow section.
    ``is_income`` marks an income category; it only decides where the
    category is shown as a zero-spend placeholder (see
    :attr:`CategoryCatalog.empty_categories`).
    """

    model_config = ConfigDict(
        frozen=True, populate_by_name=True, extra="ignore", str_strip_whitespace=True
    )

    category_name: str
    display_order: int | None = None
    weekly_display: bool = False
    monthly_target: Decimal | None = None
    shared_category: str | None = None
    use_shared_target: bool = False
    is_income: bool = False
    is_savings: bool = False
    is_excluded: bool = False

    @field_validator("monthly_target", mode="before")
    @classmethod
    def _lenient_target(cls, v: Any) -> Decimal | None:
        return _to_decimal(v)

    @field_validator("shared_category", mode="before")
    @classmethod
    def _blank_group(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator(
        "weekly_display",
        "use_shared_target",
        "is_income",
        "is_savings",
        "is_excluded",
        mode="before",
    )
    @classmethod
    def _none_is_false(cls, v: Any) -> Any:
        return False if v is None else v


class CategoryCatalog(BaseModel):
    """Everything the aggregation needs to know about categories.

    - ``categories``: per-category configuration keyed by category name.
    - ``group_targets``: explicit monthly targets for shared groups.
    - ``suggested_targets``: trailing-average targets computed elsewhere (see
      :func:`cashflow_dashboard.trends.suggest_targets`).
    - ``empty_categories``: categories shown with zero spend in the income,
      savings, or non-cash-flow section when the month has no transactions
      for them. Names without a configuration row are ignored.
    """

    model_config = ConfigDict(frozen=True)

    categories: dict[str, CategoryConfig] = Field(default_factory=dict)
    group_targets: dict[str, Decimal] = Field(default_factory=dict)
    suggested_targets: dict[str, Decimal] = Field(default_factory=dict)
    empty_categories: tuple[str, ...] = ()

    @classmethod
    def from_rows(
        cls,
        rows: Iterable[Mapping[str, Any] | CategoryConfig],
        *,
        group_targets: Mapping[str, Any] | None = None,
        suggested_targets: Mapping[str, Any] | None = None,
        empty_categories: Iterable[str] = (),
    ) -> CategoryCatalog:
        """Build a catalog from ``category_order``-shaped rows.

        Later rows win when a category name repeats.
        """

        categories: dict[str, CategoryConfig] = {}
        for row in rows:
            cfg = row if isinstance(row, CategoryConfig) else CategoryConfig.model_validate(row)
            categories[cfg.category_name] = cfg
        return cls(
            categories=categories,
            group_targets=dict(group_targets or {}),
            suggested_targets=dict(suggested_targets or {}),
            empty_categories=tuple(dict.fromkeys(empty_categories)),
        )

    def config_for(self, name: str) -> CategoryConfig | None:
        return self.categories.get(name)

    def with_suggested_targets(self, targets: Mapping[str, Decimal]) -> CategoryCatalog:
        return self.model_copy(update={"suggested_targets": dict(targets)})


__all__ = [
    "ScopeKey",
    "Transaction",
    "TransactionStatus",
    "TransactionFlags",
    "transaction_sort_key",
    "sort_newest_first",
    "CategoryConfig",
    "CategoryCatalog",
]
