"""Full recompute of the monthly dashboard aggregate.

Given the flattened transactions of the cached months and a
:class:`~cashflow_dashboard.models.CategoryCatalog`, :class:`AggregationEngine`
produces a :class:`DashboardAggregate` for one budget month:

- every active-month transaction lands in exactly one :class:`Section`,
  chosen by flags rather than by sign alone:

  1. ``EXCLUDED`` when the record is flagged ``excluded_from_flow`` or its
     category is configured ``is_excluded`` (non-cash-flow);
  2. ``INCOME`` for inflows (``is_income`` or a positive amount);
  3. ``SAVINGS`` for outflows of ``is_savings`` categories;
  4. ``SHARED`` for outflows of categories that name a shared group;
  5. ``EXPENSE`` otherwise.

- within a section, transactions are grouped per category into a
  :class:`CategorySummary` (absolute-amount totals, newest-first listing,
  resolved target, weekly buckets for weekly-display categories);
- categories listed in ``catalog.empty_categories`` get a zero-spend
  placeholder summary in their income, savings, or excluded section when the
  month has no transactions for them there;
- ``SHARED`` summaries are rolled up into :class:`SharedGroup` values;
- section totals and the ordered display items are derived from the
  summaries.

The aggregate is a pure function of (transactions, catalog, month). The
incremental path in :mod:`cashflow_dashboard.mutator` reuses the builders in
this module so both paths agree on every field.
"""

from __future__ import annotations

import calendar
import sys
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import TypeAlias

from .logging_setup import get_logger
from .models import CategoryCatalog, Transaction, sort_newest_first
from .months import month_key, parse_month_key, week_of_month, weeks_in_month

_logger = get_logger("cashflow_dashboard.aggregation")

_ZERO = Decimal("0")
_LAST = sys.maxsize


class Section(StrEnum):
    INCOME = "income"
    SAVINGS = "savings"
    SHARED = "shared"
    EXPENSE = "expense"
    EXCLUDED = "excluded"


# ---------------------------------------------------------------------------
# Derived values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CategorySummary:
    """One category's activity within one section for the active month.

    ``total_spent`` is the sum of absolute amounts (it is the amount earned
    for income categories). ``inflow_total`` is the part of it contributed by
    inflows, which only differs from zero/``total_spent`` in the excluded
    section where both directions mix.
    """

    name: str
    section: Section
    total_spent: Decimal
    inflow_total: Decimal
    transactions: tuple[Transaction, ...]
    target: Decimal | None
    is_target_suggested: bool
    weekly_buckets: dict[int, Decimal]
    is_weekly: bool
    weekly_expected: Decimal
    display_order: int | None
    shared_group: str | None

    @property
    def is_fixed(self) -> bool:
        return self.target is not None and self.target > 0

    @property
    def outflow_total(self) -> Decimal:
        return self.total_spent - self.inflow_total


@dataclass(frozen=True, slots=True)
class SharedGroup:
    """Roll-up of the categories that share a group name."""

    title: str
    members: tuple[CategorySummary, ...]
    target: Decimal
    is_target_override: bool
    total_spent: Decimal
    weekly_buckets: dict[int, Decimal]
    is_weekly: bool
    weekly_expected: Decimal
    display_order: int | None


@dataclass(frozen=True, slots=True)
class SectionTotals:
    income: Decimal = _ZERO
    expense: Decimal = _ZERO
    savings: Decimal = _ZERO
    excluded_income: Decimal = _ZERO
    excluded_expense: Decimal = _ZERO

    @property
    def net(self) -> Decimal:
        return self.income - self.expense - self.savings


@dataclass(frozen=True, slots=True)
class SectionItem:
    """A collapsed section card (income, savings, or non-cash-flow)."""

    section: Section
    total: Decimal
    categories: tuple[CategorySummary, ...]


@dataclass(frozen=True, slots=True)
class GroupItem:
    group: SharedGroup


@dataclass(frozen=True, slots=True)
class CategoryItem:
    summary: CategorySummary


DisplayItem: TypeAlias = SectionItem | GroupItem | CategoryItem


@dataclass(frozen=True, slots=True)
class DashboardAggregate:
    """Everything the dashboard renders for one month.

    ``sections`` always carries every :class:`Section` key. ``index`` holds
    the active-month transactions by id; the incremental mutator uses it to
    find the stored version of a record it has to replace or remove.
    """

    month: str
    weeks_in_month: int
    sections: dict[Section, dict[str, CategorySummary]]
    groups: dict[str, SharedGroup]
    totals: SectionTotals
    items: tuple[DisplayItem, ...]
    index: dict[str, Transaction]

    def category(self, name: str, section: Section | None = None) -> CategorySummary | None:
        """Look up a category summary, optionally restricted to one section."""

        if section is not None:
            return self.sections[section].get(name)
        for s in Section:
            found = self.sections[s].get(name)
            if found is not None:
                return found
        return None

    def summaries(self, section: Section) -> list[CategorySummary]:
        return order_summaries(self.sections[section].values())

    @property
    def transactions(self) -> list[Transaction]:
        return sort_newest_first(self.index.values())


# ---------------------------------------------------------------------------
# Ordering helpers
# ---------------------------------------------------------------------------


def _order(display_order: int | None) -> int:
    return _LAST if display_order is None else display_order


def order_summaries(summaries: Iterable[CategorySummary]) -> list[CategorySummary]:
    """Display order first (unset sorts last), then name ascending."""

    return sorted(summaries, key=lambda s: (_order(s.display_order), s.name))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class AggregationEngine:
    """Builds :class:`DashboardAggregate` values from scratch.

    Parameters
    ----------
    catalog:
        Injected category metadata and target tables.
    first_weekday:
        First day of the week for week-of-month bucketing
        (``calendar.SUNDAY`` by default).
    """

    def __init__(
        self, catalog: CategoryCatalog | None = None, *, first_weekday: int = calendar.SUNDAY
    ) -> None:
        self._catalog = catalog or CategoryCatalog()
        self._first_weekday = first_weekday

    @property
    def catalog(self) -> CategoryCatalog:
        return self._catalog

    @property
    def first_weekday(self) -> int:
        return self._first_weekday

    def with_catalog(self, catalog: CategoryCatalog) -> AggregationEngine:
        return AggregationEngine(catalog, first_weekday=self._first_weekday)

    # ---- Classification --------------------------------------------------

    def section_for(self, tx: Transaction) -> Section:
        cfg = self._catalog.config_for(tx.category_name)
        if tx.excluded_from_flow or (cfg is not None and cfg.is_excluded):
            return Section.EXCLUDED
        if tx.is_inflow:
            return Section.INCOME
        if cfg is not None and cfg.is_savings:
            return Section.SAVINGS
        if cfg is not None and cfg.shared_category:
            return Section.SHARED
        return Section.EXPENSE

    def weeks_in_month(self, month: str) -> int:
        return weeks_in_month(month, first_weekday=self._first_weekday)

    def week_for(self, tx: Transaction, month: str) -> int | None:
        """Week-of-month bucket for ``tx``, or ``None`` when it has none.

        Undated records, and records whose date falls outside the budget
        month (flow month reassigned), are not bucketed.
        """

        d = tx.effective_date
        if d is None or month_key(d) != month:
            return None
        return week_of_month(d, first_weekday=self._first_weekday)

    def resolve_target(self, name: str) -> tuple[Decimal | None, bool]:
        """Return ``(target, is_suggested)`` for a category.

        Resolution order: explicit monthly target, shared-group target (when
        the category opts in and the group has one), injected suggestion.
        """

        cfg = self._catalog.config_for(name)
        if cfg is not None and cfg.monthly_target is not None:
            return cfg.monthly_target, False
        if cfg is not None and cfg.use_shared_target and cfg.shared_category:
            group_target = self._catalog.group_targets.get(cfg.shared_category)
            if group_target is not None:
                return group_target, False
        suggested = self._catalog.suggested_targets.get(name)
        if suggested is not None:
            return suggested, True
        return None, False

    def placeholder_section(self, name: str) -> Section | None:
        """Section that shows ``name`` as an empty category, if any."""

        if name not in self._catalog.empty_categories:
            return None
        cfg = self._catalog.config_for(name)
        if cfg is None:
            return None
        if cfg.is_excluded:
            return Section.EXCLUDED
        if cfg.is_income:
            return Section.INCOME
        if cfg.is_savings:
            return Section.SAVINGS
        return None

    # ---- Builders --------------------------------------------------------

    def build_summary(
        self,
        name: str,
        section: Section,
        transactions: Sequence[Transaction],
        *,
        month: str,
        weeks: int,
    ) -> CategorySummary:
        cfg = self._catalog.config_for(name)
        target, suggested = self.resolve_target(name)
        is_weekly = bool(cfg and cfg.weekly_display)
        buckets: dict[int, Decimal] = (
            {w: _ZERO for w in range(1, weeks + 1)} if is_weekly else {}
        )
        total = _ZERO
        inflow = _ZERO
        for tx in transactions:
            amount = abs(tx.amount)
            total += amount
            if tx.is_inflow:
                inflow += amount
            if is_weekly:
                week = self.week_for(tx, month)
                if week is not None:
                    buckets[week] += amount
        return CategorySummary(
            name=name,
            section=section,
            total_spent=total,
            inflow_total=inflow,
            transactions=tuple(sort_newest_first(transactions)),
            target=target,
            is_target_suggested=suggested,
            weekly_buckets=buckets,
            is_weekly=is_weekly,
            weekly_expected=(target or _ZERO) / weeks,
            display_order=cfg.display_order if cfg is not None else None,
            shared_group=cfg.shared_category if cfg is not None else None,
        )

    def build_group(
        self, title: str, members: Iterable[CategorySummary], *, weeks: int
    ) -> SharedGroup | None:
        ordered = order_summaries(members)
        if not ordered:
            return None
        override = self._catalog.group_targets.get(title)
        target = override if override is not None else sum(
            (m.target or _ZERO for m in ordered), _ZERO
        )
        weekly: dict[int, Decimal] = {}
        for m in ordered:
            for w, v in m.weekly_buckets.items():
                weekly[w] = weekly.get(w, _ZERO) + v
        orders = [m.display_order for m in ordered if m.display_order is not None]
        return SharedGroup(
            title=title,
            members=tuple(ordered),
            target=target,
            is_target_override=override is not None,
            total_spent=sum((m.total_spent for m in ordered), _ZERO),
            weekly_buckets=dict(sorted(weekly.items())),
            is_weekly=any(m.is_weekly for m in ordered),
            weekly_expected=target / weeks,
            display_order=min(orders) if orders else None,
        )

    def build_groups(
        self,
        shared: Mapping[str, CategorySummary],
        *,
        weeks: int,
        titles: Iterable[str] | None = None,
        previous: Mapping[str, SharedGroup] | None = None,
    ) -> dict[str, SharedGroup]:
        """Roll up shared-group members.

        With ``titles`` and ``previous`` only the named groups are rebuilt;
        the rest are carried over from ``previous`` unchanged.
        """

        members: dict[str, list[CategorySummary]] = {}
        rebuild = None if titles is None else set(titles)
        for s in shared.values():
            if s.shared_group is None:
                continue
            if rebuild is None or s.shared_group in rebuild:
                members.setdefault(s.shared_group, []).append(s)

        groups: dict[str, SharedGroup] = {}
        if rebuild is not None and previous is not None:
            groups.update({t: g for t, g in previous.items() if t not in rebuild})
        for title, group_members in members.items():
            group = self.build_group(title, group_members, weeks=weeks)
            if group is not None:
                groups[title] = group
        return dict(sorted(groups.items(), key=lambda kv: (_order(kv[1].display_order), kv[0])))

    def assemble(
        self,
        *,
        month: str,
        weeks: int,
        sections: dict[Section, dict[str, CategorySummary]],
        groups: dict[str, SharedGroup],
        index: dict[str, Transaction],
    ) -> DashboardAggregate:
        """Derive totals and display items from already-built summaries."""

        def total(section: Section) -> Decimal:
            return sum((s.total_spent for s in sections[section].values()), _ZERO)

        excluded = sections[Section.EXCLUDED].values()
        totals = SectionTotals(
            income=total(Section.INCOME),
            expense=total(Section.EXPENSE) + total(Section.SHARED),
            savings=total(Section.SAVINGS),
            excluded_income=sum((s.inflow_total for s in excluded), _ZERO),
            excluded_expense=sum((s.outflow_total for s in excluded), _ZERO),
        )
        return DashboardAggregate(
            month=month,
            weeks_in_month=weeks,
            sections=sections,
            groups=groups,
            totals=totals,
            items=self._display_items(sections, groups, totals),
            index=index,
        )

    def _display_items(
        self,
        sections: Mapping[Section, Mapping[str, CategorySummary]],
        groups: Mapping[str, SharedGroup],
        totals: SectionTotals,
    ) -> tuple[DisplayItem, ...]:
        ranked: list[tuple[tuple[int, str], DisplayItem]] = []
        for title, group in groups.items():
            ranked.append(((_order(group.display_order), title), GroupItem(group)))
        for s in sections[Section.EXPENSE].values():
            # Zero-spend expense categories stay out of the card list.
            if s.total_spent > 0:
                ranked.append(((_order(s.display_order), s.name), CategoryItem(s)))
        ranked.sort(key=lambda r: r[0])

        def section_item(section: Section, amount: Decimal) -> list[DisplayItem]:
            if not sections[section]:
                return []
            return [SectionItem(section, amount, tuple(order_summaries(sections[section].values())))]

        return tuple(
            section_item(Section.INCOME, totals.income)
            + [item for _, item in ranked]
            + section_item(Section.SAVINGS, totals.savings)
            + section_item(
                Section.EXCLUDED, totals.excluded_income + totals.excluded_expense
            )
        )

    # ---- Full recompute --------------------------------------------------

    def compute(self, transactions: Iterable[Transaction], month: str) -> DashboardAggregate:
        """Aggregate the ``month`` transactions from scratch.

        Records attributed to other months are ignored; duplicate ids keep the
        last occurrence.
        """

        parse_month_key(month)
        weeks = self.weeks_in_month(month)

        index: dict[str, Transaction] = {}
        for tx in transactions:
            if tx.flow_month_key == month:
                index[tx.id] = tx

        grouped: dict[tuple[Section, str], list[Transaction]] = {}
        for tx in index.values():
            grouped.setdefault((self.section_for(tx), tx.category_name), []).append(tx)

        sections: dict[Section, dict[str, CategorySummary]] = {s: {} for s in Section}
        for (section, name), txs in grouped.items():
            sections[section][name] = self.build_summary(
                name, section, txs, month=month, weeks=weeks
            )
        for name in self._catalog.empty_categories:
            section = self.placeholder_section(name)
            if section is not None and name not in sections[section]:
                sections[section][name] = self.build_summary(
                    name, section, (), month=month, weeks=weeks
                )

        groups = self.build_groups(sections[Section.SHARED], weeks=weeks)
        aggregate = self.assemble(
            month=month, weeks=weeks, sections=sections, groups=groups, index=index
        )
        _logger.debug(
            "aggregate:computed month=%s transactions=%d categories=%d groups=%d",
            month,
            len(index),
            sum(len(v) for v in sections.values()),
            len(groups),
        )
        return aggregate


__all__ = [
    "Section",
    "CategorySummary",
    "SharedGroup",
    "SectionTotals",
    "SectionItem",
    "GroupItem",
    "CategoryItem",
    "DisplayItem",
    "DashboardAggregate",
    "AggregationEngine",
    "order_summaries",
]
