"""Best-effort on-disk mirror of cached month buckets.

Layout (relative to the mirror root, see :func:`cashflow_dashboard.config.default_cache_dir`):

  ``<root>/<scope_id>/<YYYY-MM>.json``

``scope_id`` is the base64 encoding of ``"<cash_flow_id>|<endpoint>"`` with
``/`` replaced by ``_`` so it is a single path segment. Each file holds the
JSON array of that month's transactions as produced by
``Transaction.model_dump(mode="json", by_alias=True)``.

Every operation is fail-soft. Writes and deletes return ``False`` on failure
and reads return ``None``; errors are logged, never raised. The server stays
the source of truth, so a lost or corrupt file only costs a re-fetch.

Atomicity: writes target ``.tmp`` first and then ``os.replace`` into place.

Background I/O: with ``background=True`` writes and deletes run on a
single-worker thread. A read of a month waits for that month's pending
operation first, so read-after-write holds per month.
"""

from __future__ import annotations

import base64
import contextlib
import json
import os
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from .logging_setup import get_logger
from .models import ScopeKey, Transaction
from .months import is_month_key

_logger = get_logger("cashflow_dashboard.disk_mirror")

_MONTH_FILE = TypeAdapter(list[Transaction])


def scope_identifier(scope: ScopeKey) -> str:
    """Deterministic, path-safe directory name for ``scope``."""

    raw = f"{scope.cash_flow_id}|{scope.endpoint}".encode()
    return base64.b64encode(raw).decode("ascii").replace("/", "_")


class DiskMirror:
    """Per (scope, month) JSON files under ``root``."""

    def __init__(self, root: str | os.PathLike[str], *, background: bool = False) -> None:
        self._root = Path(root)
        self._executor: ThreadPoolExecutor | None = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="cashflow-mirror")
            if background
            else None
        )
        self._pending: dict[Path, Future[bool]] = {}
        self._lock = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    # ---- Paths -----------------------------------------------------------

    def scope_dir(self, scope: ScopeKey) -> Path:
        return self._root / scope_identifier(scope)

    def path_for(self, scope: ScopeKey, month: str) -> Path | None:
        """Return the file path for a month, or ``None`` for a malformed key."""

        if not is_month_key(month):
            return None
        return self.scope_dir(scope) / f"{month}.json"

    # ---- Public operations -------------------------------------------------

    def write(self, scope: ScopeKey, month: str, transactions: Iterable[Transaction]) -> bool:
        """Replace the month file with ``transactions``.

        In background mode the write is queued and ``True`` means "accepted";
        the outcome is logged when the worker finishes.
        """

        path = self.path_for(scope, month)
        if path is None:
            _logger.warning("mirror:write_rejected invalid month=%r", month)
            return False
        payload = list(transactions)
        return self._dispatch(path, lambda: self._write_now(path, payload))

    def delete(self, scope: ScopeKey, month: str) -> bool:
        path = self.path_for(scope, month)
        if path is None:
            return False
        return self._dispatch(path, lambda: self._delete_now(path))

    def read(self, scope: ScopeKey, month: str) -> list[Transaction] | None:
        """Return the month's transactions, or ``None`` when unavailable.

        Missing, unreadable, and malformed files all read as ``None``.
        """

        path = self.path_for(scope, month)
        if path is None:
            return None
        self._wait_for(path)
        if not path.exists():
            return None
        try:
            data = path.read_bytes()
            return _MONTH_FILE.validate_json(data)
        except (OSError, ValueError, ValidationError):
            _logger.debug(
                "mirror:read_failed; treating as cache miss month=%s path=%s",
                month,
                os.fspath(path),
                exc_info=True,
            )
            return None

    def stored_months(self, scope: ScopeKey) -> list[str]:
        """Month keys that currently have a mirror file, ascending."""

        self.flush()
        d = self.scope_dir(scope)
        try:
            names = [p.stem for p in d.iterdir() if p.suffix == ".json"]
        except OSError:
            return []
        return sorted(n for n in names if is_month_key(n))

    def flush(self) -> None:
        """Block until every queued background operation has finished."""

        with self._lock:
            pending = list(self._pending.values())
        for fut in pending:
            fut.exception()

    def close(self) -> None:
        self.flush()
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self) -> DiskMirror:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ---- Internals ---------------------------------------------------------

    def _dispatch(self, path: Path, op: Callable[[], bool]) -> bool:
        if self._executor is None:
            return op()
        fut = self._executor.submit(op)
        with self._lock:
            self._pending[path] = fut
        fut.add_done_callback(lambda f, p=path: self._forget(p, f))
        return True

    def _forget(self, path: Path, fut: Future[bool]) -> None:
        with self._lock:
            if self._pending.get(path) is fut:
                del self._pending[path]

    def _wait_for(self, path: Path) -> None:
        with self._lock:
            fut = self._pending.get(path)
        if fut is not None:
            # The single worker runs in submission order, so the latest
            # future for a path completes after every earlier one.
            fut.exception()

    def _write_now(self, path: Path, transactions: list[Transaction]) -> bool:
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            body = [tx.model_dump(mode="json", by_alias=True) for tx in transactions]
            tmp.write_text(
                json.dumps(body, ensure_ascii=False, separators=(",", ":")),
                encoding="utf-8",
            )
            os.replace(tmp, path)
        except (OSError, TypeError, ValueError):
            with contextlib.suppress(OSError):
                tmp.unlink()
            _logger.warning(
                "mirror:write_failed path=%s count=%d", os.fspath(path), len(transactions),
                exc_info=True,
            )
            return False
        _logger.debug("mirror:written path=%s count=%d", os.fspath(path), len(transactions))
        return True

    def _delete_now(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return True
        except OSError:
            _logger.warning("mirror:delete_failed path=%s", os.fspath(path), exc_info=True)
            return False
        _logger.debug("mirror:deleted path=%s", os.fspath(path))
        return True


__all__ = ["DiskMirror", "scope_identifier"]
