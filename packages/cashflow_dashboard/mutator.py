"""Diff-driven maintenance of a :class:`~cashflow_dashboard.aggregation.DashboardAggregate`.

A batch of :data:`Change` values is applied in order to a previously computed
aggregate. Each change touches only the categories it names:

- ``Removal(tx)`` subtracts the stored version of ``tx.id`` (amount, weekly
  bucket, listing) from its category; absent ids are a no-op.
  A category left without transactions is dropped, unless it is listed in
  ``catalog.empty_categories`` for that section, where it falls back to
  its zero-spend placeholder.
- ``Insertion(tx)`` replaces any stored version of ``tx.id`` and adds the new
  contribution.
- ``Update(old, new)`` is ``Removal(old)`` followed by ``Insertion(new)``.

Shared groups whose membership or member totals moved are re-rolled; section
totals and display items are re-derived from the summaries, which is linear in
the number of categories rather than transactions.

The result is always equal to ``AggregationEngine.compute`` over the mutated
transaction set; the test-suite checks this for randomized batches.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import TypeAlias

from .aggregation import AggregationEngine, CategorySummary, DashboardAggregate, Section
from .logging_setup import get_logger
from .models import Transaction, transaction_sort_key

_logger = get_logger("cashflow_dashboard.mutator")


@dataclass(frozen=True, slots=True)
class Insertion:
    transaction: Transaction


@dataclass(frozen=True, slots=True)
class Removal:
    transaction: Transaction


@dataclass(frozen=True, slots=True)
class Update:
    old: Transaction
    new: Transaction


Change: TypeAlias = Insertion | Removal | Update


def expand(changes: Iterable[Change]) -> list[Insertion | Removal]:
    """Flatten updates into their removal + insertion pair."""

    out: list[Insertion | Removal] = []
    for change in changes:
        match change:
            case Update(old=old, new=new):
                out.append(Removal(old))
                out.append(Insertion(new))
            case Insertion() | Removal():
                out.append(change)
            case _:
                raise TypeError(f"Unsupported change: {change!r}")
    return out


def _insert_newest_first(
    txs: tuple[Transaction, ...], tx: Transaction
) -> tuple[Transaction, ...]:
    key = transaction_sort_key(tx)
    for i, other in enumerate(txs):
        if transaction_sort_key(other) < key:
            return txs[:i] + (tx,) + txs[i:]
    return txs + (tx,)


class _Draft:
    """Copy-on-write working state for one batch."""

    def __init__(self, base: DashboardAggregate) -> None:
        self.base = base
        self.sections = {s: dict(v) for s, v in base.sections.items()}
        self.index = dict(base.index)
        self.touched_groups: set[str] = set()
        self.changed = False

    def note_group(self, summary: CategorySummary | None) -> None:
        if summary is not None and summary.section is Section.SHARED and summary.shared_group:
            self.touched_groups.add(summary.shared_group)


class IncrementalMutator:
    """Applies change batches using the same builders as the engine."""

    def __init__(self, engine: AggregationEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AggregationEngine:
        return self._engine

    def apply(self, aggregate: DashboardAggregate, changes: Iterable[Change]) -> DashboardAggregate:
        """Return a new aggregate with ``changes`` applied in order.

        ``aggregate`` itself is left untouched.
        """

        draft = _Draft(aggregate)
        for change in expand(changes):
            if isinstance(change, Removal):
                self._remove(draft, change.transaction.id)
            else:
                self._remove(draft, change.transaction.id)
                self._insert(draft, change.transaction)

        if not draft.changed:
            return aggregate

        weeks = aggregate.weeks_in_month
        shared = draft.sections[Section.SHARED]
        groups = self._engine.build_groups(
            shared, weeks=weeks, titles=draft.touched_groups, previous=aggregate.groups
        )
        result = self._engine.assemble(
            month=aggregate.month,
            weeks=weeks,
            sections=draft.sections,
            groups=groups,
            index=draft.index,
        )
        _logger.debug(
            "aggregate:incremental month=%s transactions=%d groups_rebuilt=%d",
            aggregate.month,
            len(draft.index),
            len(draft.touched_groups),
        )
        return result

    # ---- Per-record steps ------------------------------------------------

    def _remove(self, draft: _Draft, tx_id: str) -> None:
        stored = draft.index.pop(tx_id, None)
        if stored is None:
            return
        draft.changed = True
        section = self._engine.section_for(stored)
        bucket = draft.sections[section]
        summary = bucket[stored.category_name]
        draft.note_group(summary)

        remaining = tuple(t for t in summary.transactions if t.id != tx_id)
        if not remaining:
            if self._engine.placeholder_section(stored.category_name) is section:
                bucket[stored.category_name] = self._engine.build_summary(
                    stored.category_name,
                    section,
                    (),
                    month=draft.base.month,
                    weeks=draft.base.weeks_in_month,
                )
            else:
                del bucket[stored.category_name]
            return

        amount = abs(stored.amount)
        weekly = summary.weekly_buckets
        if summary.is_weekly:
            week = self._engine.week_for(stored, draft.base.month)
            if week is not None:
                weekly = dict(weekly)
                weekly[week] -= amount
        bucket[stored.category_name] = replace(
            summary,
            total_spent=summary.total_spent - amount,
            inflow_total=summary.inflow_total - (amount if stored.is_inflow else Decimal("0")),
            transactions=remaining,
            weekly_buckets=weekly,
        )

    def _insert(self, draft: _Draft, tx: Transaction) -> None:
        month = draft.base.month
        if tx.flow_month_key != month:
            return
        draft.changed = True
        draft.index[tx.id] = tx
        section = self._engine.section_for(tx)
        bucket = draft.sections[section]
        summary = bucket.get(tx.category_name)
        if summary is None:
            summary = self._engine.build_summary(
                tx.category_name, section, [tx], month=month, weeks=draft.base.weeks_in_month
            )
            bucket[tx.category_name] = summary
            draft.note_group(summary)
            return

        draft.note_group(summary)
        amount = abs(tx.amount)
        weekly = summary.weekly_buckets
        if summary.is_weekly:
            week = self._engine.week_for(tx, month)
            if week is not None:
                weekly = dict(weekly)
                weekly[week] += amount
        bucket[tx.category_name] = replace(
            summary,
            total_spent=summary.total_spent + amount,
            inflow_total=summary.inflow_total + (amount if tx.is_inflow else Decimal("0")),
            transactions=_insert_newest_first(summary.transactions, tx),
            weekly_buckets=weekly,
        )


__all__ = ["Insertion", "Removal", "Update", "Change", "expand", "IncrementalMutator"]
