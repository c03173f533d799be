"""Scoped, month-bucketed transaction cache with a disk mirror.

Storage shape::

    ScopeKey -> {"YYYY-MM" -> MonthBucket(id -> Transaction)}

A month with a bucket has been fetched; an *empty* bucket means the month is
known to contain no transactions, while a missing bucket means it was never
fetched. Callers use :meth:`TransactionCache.missing_months` to decide what to
request from the server.

An id lives in at most one month of a scope. Re-inserting an id replaces the
stored record, including when the new version belongs to a different month.

Every mutation that changes a bucket's contents is mirrored to disk through
:class:`~cashflow_dashboard.disk_mirror.DiskMirror` (one file per scope and
month; the file is deleted when a bucket empties). Mirror failures never
propagate: the in-memory state stays authoritative for the running process.

The cache is owned by a single controller (see
:class:`~cashflow_dashboard.session.DashboardSession`); it performs no
locking of its own.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .disk_mirror import DiskMirror
from .logging_setup import get_logger
from .models import ScopeKey, Transaction, sort_newest_first

_logger = get_logger("cashflow_dashboard.store")


@dataclass(slots=True)
class MonthBucket:
    """Transactions attributed to one budget month, keyed by id."""

    month: str
    items: dict[str, Transaction] = field(default_factory=dict)

    def upsert(self, tx: Transaction) -> None:
        if tx.flow_month_key != self.month:
            raise ValueError(
                f"Transaction {tx.id!r} belongs to {tx.flow_month_key!r}, not {self.month!r}"
            )
        self.items[tx.id] = tx

    def remove(self, tx_id: str) -> Transaction | None:
        return self.items.pop(tx_id, None)

    def __len__(self) -> int:
        return len(self.items)


def _evict_elsewhere(
    months: dict[str, MonthBucket], tx_id: str, *, keep: str
) -> list[MonthBucket]:
    """Drop ``tx_id`` from every bucket except ``keep``; return the buckets changed."""

    changed: list[MonthBucket] = []
    for key, bucket in months.items():
        if key != keep and bucket.remove(tx_id) is not None:
            changed.append(bucket)
    return changed


class TransactionCache:
    """In-memory month buckets per scope, mirrored to disk.

    Parameters
    ----------
    mirror:
        Disk mirror used for persistence. ``None`` keeps the cache purely in
        memory (useful for tests and short-lived tools).
    """

    def __init__(self, mirror: DiskMirror | None = None) -> None:
        self._mirror = mirror
        self._storage: dict[ScopeKey, dict[str, MonthBucket]] = {}

    @property
    def mirror(self) -> DiskMirror | None:
        return self._mirror

    # ---- Queries -----------------------------------------------------------

    def has_months(self, scope: ScopeKey, month_keys: Iterable[str]) -> bool:
        """True when every requested month has a bucket (possibly empty)."""

        months = self._storage.get(scope)
        if months is None:
            return False
        return all(key in months for key in month_keys)

    def missing_months(self, scope: ScopeKey, month_keys: Iterable[str]) -> list[str]:
        """Requested months that were never fetched, in input order."""

        months = self._storage.get(scope) or {}
        return [key for key in month_keys if key not in months]

    def collect(self, scope: ScopeKey, month_keys: Iterable[str]) -> list[Transaction]:
        """Flatten the requested months into a newest-first snapshot.

        The returned list is a copy; later mutations do not affect it.
        """

        months = self._storage.get(scope)
        if not months:
            return []
        out: list[Transaction] = []
        for key in dict.fromkeys(month_keys):
            bucket = months.get(key)
            if bucket is not None:
                out.extend(bucket.items.values())
        return sort_newest_first(out)

    def lookup(self, scope: ScopeKey, transaction_id: str) -> Transaction | None:
        """Return the cached version of ``transaction_id`` from any month."""

        for bucket in (self._storage.get(scope) or {}).values():
            tx = bucket.items.get(transaction_id)
            if tx is not None:
                return tx
        return None

    def scopes(self) -> list[ScopeKey]:
        return list(self._storage)

    def months(self, scope: ScopeKey) -> dict[str, int]:
        """Known months for ``scope`` mapped to their transaction counts."""

        return {k: len(b) for k, b in sorted((self._storage.get(scope) or {}).items())}

    # ---- Mutations ---------------------------------------------------------

    def mark(self, scope: ScopeKey, month_keys: Iterable[str]) -> None:
        """Record months as fetched, creating empty buckets where absent."""

        months = self._storage.setdefault(scope, {})
        for key in month_keys:
            if key not in months:
                months[key] = MonthBucket(key)

    def cache(self, scope: ScopeKey, transactions: Sequence[Transaction]) -> None:
        """Upsert a fetched batch and mirror every touched month.

        A record whose id is already stored under another month (the server
        reassigned its flow month) is moved: the stale copy is evicted and
        both months are mirrored.
        """

        if not transactions:
            return
        months = self._storage.setdefault(scope, {})
        touched: dict[str, MonthBucket] = {}
        skipped = 0
        for tx in transactions:
            key = tx.flow_month_key
            if key is None:
                skipped += 1
                continue
            for stale in _evict_elsewhere(months, tx.id, keep=key):
                touched[stale.month] = stale
            bucket = months.get(key)
            if bucket is None:
                bucket = months[key] = MonthBucket(key)
            bucket.upsert(tx)
            touched[key] = bucket
        if skipped:
            _logger.info(
                "cache:skipped_unbucketable scope=%s count=%d", scope.cash_flow_id, skipped
            )
        for bucket in touched.values():
            self._persist(scope, bucket)

    def upsert(self, scope: ScopeKey, transaction: Transaction) -> None:
        """Store one record, moving it out of any other month that holds its id."""

        key = transaction.flow_month_key
        if key is None:
            _logger.info(
                "cache:upsert_skipped no_month scope=%s id=%s",
                scope.cash_flow_id,
                transaction.id,
            )
            return
        months = self._storage.setdefault(scope, {})
        for stale in _evict_elsewhere(months, transaction.id, keep=key):
            self._persist(scope, stale)
        bucket = months.get(key)
        if bucket is None:
            bucket = months[key] = MonthBucket(key)
        bucket.upsert(transaction)
        self._persist(scope, bucket)

    def remove(self, scope: ScopeKey, transaction: Transaction) -> Transaction | None:
        """Remove ``transaction`` from its month; returns the removed record.

        Removing an absent record is a no-op. A bucket emptied by the removal
        stays as a known-empty month and its mirror file is deleted.
        """

        key = transaction.flow_month_key
        months = self._storage.get(scope)
        if key is None or months is None:
            return None
        bucket = months.get(key)
        if bucket is None:
            return None
        removed = bucket.remove(transaction.id)
        if removed is not None:
            self._persist(scope, bucket)
        return removed

    def reset(self, scope: ScopeKey) -> None:
        """Forget the in-memory state for ``scope``; mirror files are kept."""

        self._storage.pop(scope, None)

    def hydrate_from_disk(self, scope: ScopeKey, month_keys: Iterable[str]) -> list[str]:
        """Load never-fetched months from the mirror.

        Returns the months that were rebuilt. Months whose file is absent,
        empty, or unreadable stay missing so that they will be fetched.
        """

        if self._mirror is None:
            return []
        missing = self.missing_months(scope, month_keys)
        if not missing:
            return []
        months = self._storage.setdefault(scope, {})
        loaded: list[str] = []
        for key in missing:
            cached = self._mirror.read(scope, key)
            if not cached:
                continue
            bucket = MonthBucket(key)
            try:
                for tx in cached:
                    bucket.upsert(tx)
            except ValueError:
                _logger.warning(
                    "cache:hydrate_rejected month=%s scope=%s", key, scope.cash_flow_id,
                    exc_info=True,
                )
                continue
            months[key] = bucket
            loaded.append(key)
            _logger.info(
                "cache:hydrated month=%s count=%d scope=%s", key, len(bucket), scope.cash_flow_id
            )
        return loaded

    # ---- Internals ---------------------------------------------------------

    def _persist(self, scope: ScopeKey, bucket: MonthBucket) -> None:
        if self._mirror is None:
            return
        if bucket.items:
            self._mirror.write(scope, bucket.month, list(bucket.items.values()))
        else:
            self._mirror.delete(scope, bucket.month)


__all__ = ["MonthBucket", "TransactionCache"]
