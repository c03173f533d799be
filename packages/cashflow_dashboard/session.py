"""One dashboard session: a scope, its cache, and the live aggregate.

:class:`DashboardSession` is the single owner that the cache and aggregate
expect. It wires the pieces together in the order the app uses them:

1. ``months_to_fetch()``: rehydrate what the disk mirror has, report the
   months that still need a network fetch;
2. ``ingest(records, covered_months)``: store the fetch result and mark the
   covered months as known (even when they came back empty);
3. ``load()``: full recompute for the active month;
4. ``apply(changes)``: mirror edits into the cache and update the aggregate
   incrementally.

All public methods take the session lock, so one mutation is in flight at a
time. Different sessions (scopes) never share state beyond the cache object,
which partitions by scope.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from .aggregation import AggregationEngine, DashboardAggregate
from .logging_setup import get_logger
from .models import CategoryCatalog, ScopeKey, Transaction
from .months import parse_month_key, previous_months, shift_month
from .mutator import Change, IncrementalMutator, Insertion, Removal, expand
from .store import TransactionCache
from .trends import TrendSeries, monthly_trends, suggest_targets

_logger = get_logger("cashflow_dashboard.session")


class DashboardSession:
    """Controller for one scope's dashboard.

    Parameters
    ----------
    cache:
        Shared, injected transaction cache.
    scope:
        The cash flow / endpoint this session serves.
    engine:
        Aggregation engine carrying the category catalog.
    month:
        Active budget month (``YYYY-MM``).
    chart_months:
        Additional months needed for trend charts.
    suggestion_lookback:
        When set, suggested targets are computed from the cached months that
        precede ``month`` at every full recompute. Suggestions already present
        in the catalog take precedence.
    """

    def __init__(
        self,
        cache: TransactionCache,
        scope: ScopeKey,
        engine: AggregationEngine,
        *,
        month: str,
        chart_months: Sequence[str] = (),
        suggestion_lookback: int | None = None,
    ) -> None:
        parse_month_key(month)
        for key in chart_months:
            parse_month_key(key)
        self._cache = cache
        self._scope = scope
        self._base_engine = engine
        self._engine = engine
        self._mutator = IncrementalMutator(engine)
        self._month = month
        self._chart_months = tuple(chart_months)
        self._lookback = suggestion_lookback
        self._aggregate: DashboardAggregate | None = None
        self._lock = threading.RLock()

    # ---- Accessors -------------------------------------------------------

    @property
    def scope(self) -> ScopeKey:
        return self._scope

    @property
    def month(self) -> str:
        return self._month

    @property
    def catalog(self) -> CategoryCatalog:
        return self._base_engine.catalog

    @property
    def aggregate(self) -> DashboardAggregate | None:
        return self._aggregate

    def month_keys(self) -> list[str]:
        """Active month plus chart months, ascending and unique."""

        return sorted({self._month, *self._chart_months})

    def _suggestion_months(self) -> list[str]:
        return previous_months(self._month, self._lookback) if self._lookback else []

    @property
    def transactions(self) -> list[Transaction]:
        """Newest-first snapshot of every cached record in the session months."""

        with self._lock:
            return self._cache.collect(self._scope, self.month_keys())

    # ---- Fetch coordination ----------------------------------------------

    def months_to_fetch(self) -> list[str]:
        """Months still unknown after consulting the disk mirror."""

        with self._lock:
            wanted = sorted({*self.month_keys(), *self._suggestion_months()})
            hydrated = self._cache.hydrate_from_disk(self._scope, wanted)
            if hydrated:
                self._aggregate = None
            missing = self._cache.missing_months(self._scope, wanted)
            _logger.info(
                "session:fetch_plan scope=%s hydrated=%s missing=%s",
                self._scope.cash_flow_id,
                ",".join(hydrated) or "-",
                ",".join(missing) or "-",
            )
            return missing

    def ingest(
        self,
        records: Iterable[Transaction | Mapping[str, Any]],
        covered_months: Iterable[str] = (),
    ) -> int:
        """Store a fetch result; returns the number of records cached."""

        txs = [
            r if isinstance(r, Transaction) else Transaction.model_validate(r) for r in records
        ]
        with self._lock:
            self._cache.cache(self._scope, txs)
            self._cache.mark(self._scope, list(covered_months))
            self._aggregate = None
        return len(txs)

    # ---- Aggregation -------------------------------------------------------

    def load(self) -> DashboardAggregate:
        """Full recompute for the active month."""

        with self._lock:
            self._engine = self._engine_for_month()
            self._mutator = IncrementalMutator(self._engine)
            snapshot = self._cache.collect(self._scope, [self._month])
            self._aggregate = self._engine.compute(snapshot, self._month)
            return self._aggregate

    def current(self) -> DashboardAggregate:
        with self._lock:
            return self._aggregate if self._aggregate is not None else self.load()

    def apply(self, changes: Iterable[Change]) -> DashboardAggregate:
        """Apply edits to the cache and the aggregate, in order."""

        batch = list(changes)
        with self._lock:
            for change in expand(batch):
                tx = change.transaction
                if isinstance(change, Insertion) and tx.flow_month_key is not None:
                    self._cache.upsert(self._scope, tx)
                    continue
                # Removals, and edits that leave the record without a month.
                stored = self._cache.lookup(self._scope, tx.id)
                if stored is not None:
                    self._cache.remove(self._scope, stored)

            if self._aggregate is None:
                return self.load()
            self._aggregate = self._mutator.apply(self._aggregate, batch)
            return self._aggregate

    def upsert(self, transaction: Transaction) -> DashboardAggregate:
        return self.apply([Insertion(transaction)])

    def remove(self, transaction: Transaction) -> DashboardAggregate:
        return self.apply([Removal(transaction)])

    def select_month(self, month: str) -> DashboardAggregate:
        parse_month_key(month)
        with self._lock:
            self._month = month
            return self.load()

    def shift_month(self, delta: int) -> DashboardAggregate:
        with self._lock:
            return self.select_month(shift_month(self._month, delta))

    def update_catalog(self, catalog: CategoryCatalog) -> DashboardAggregate:
        with self._lock:
            self._base_engine = self._base_engine.with_catalog(catalog)
            return self.load()

    def reset(self) -> None:
        """Drop the in-memory state for this scope (disk mirror is kept)."""

        with self._lock:
            self._cache.reset(self._scope)
            self._aggregate = None

    def trends(self, goals: Mapping[str, Decimal] | None = None) -> TrendSeries:
        with self._lock:
            keys = self.month_keys()
            return monthly_trends(
                self._cache.collect(self._scope, keys),
                keys,
                goals=goals,
                catalog=self.catalog,
            )

    # ---- Internals ---------------------------------------------------------

    def _engine_for_month(self) -> AggregationEngine:
        if not self._lookback:
            return self._base_engine
        catalog = self._base_engine.catalog
        history = self._cache.collect(self._scope, self._suggestion_months())
        computed = suggest_targets(history, self._month, lookback=self._lookback, catalog=catalog)
        merged = {**computed, **catalog.suggested_targets}
        return self._base_engine.with_catalog(catalog.with_suggested_targets(merged))


__all__ = ["DashboardSession"]
