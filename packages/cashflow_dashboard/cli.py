"""Developer CLI for ``cashflow_dashboard``.

The library has no network layer; this Typer app drives the cache and the
aggregation from local JSON files so that a fetch result captured from the API
can be inspected offline:

- ``dashboard``: ingest a transactions file for a scope, then print the
  ordered dashboard items for a month.
- ``cache-status``: list the months mirrored on disk for a scope.
- ``trends``: print income/expense/net per month from the disk mirror.

Environment variables are loaded from a local ``.env`` via ``python-dotenv``
before settings are resolved (see :mod:`cashflow_dashboard.config`).
"""

from __future__ import annotations

import json
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from typer.models import OptionInfo

from .aggregation import (
    AggregationEngine,
    CategoryItem,
    DashboardAggregate,
    GroupItem,
    SectionItem,
)
from .config import Settings, load_settings
from .disk_mirror import DiskMirror
from .logging_setup import configure_logging
from .models import CategoryCatalog, ScopeKey
from .months import month_range
from .session import DashboardSession
from .store import TransactionCache

# ---- Small helpers -------------------------------------------------------------


def _fmt(amount: Decimal | None) -> str:
    return "-" if amount is None else f"{amount:.2f}"


def _read_json(path: Path) -> Any:
    with path.open(encoding="utf-8") as f:
        return json.load(f)


def _load_catalog(path: Path | None) -> CategoryCatalog:
    """Accept either a list of ``category_order`` rows or a catalog object."""

    if path is None:
        return CategoryCatalog()
    data = _read_json(path)
    if isinstance(data, list):
        return CategoryCatalog.from_rows(data)
    if isinstance(data, dict):
        return CategoryCatalog.from_rows(
            data.get("categories") or [],
            group_targets=data.get("group_targets"),
            suggested_targets=data.get("suggested_targets"),
            empty_categories=data.get("empty_categories") or (),
        )
    raise ValueError("categories file must hold a JSON list or object")


def _settings(cache_dir: Path | None) -> Settings:
    settings = load_settings()
    if cache_dir is not None:
        settings = replace(settings, cache_dir=cache_dir.expanduser().resolve())
    return settings


def render_dashboard(aggregate: DashboardAggregate) -> list[str]:
    """Plain-text lines for the ordered dashboard items."""

    lines = [f"Month {aggregate.month} ({aggregate.weeks_in_month} weeks)"]
    for item in aggregate.items:
        match item:
            case SectionItem(section=section, total=total, categories=cats):
                lines.append(f"[{section.value.upper()}] {_fmt(total)}")
                lines.extend(f"    {c.name}\t{_fmt(c.total_spent)}" for c in cats)
            case GroupItem(group=group):
                lines.append(
                    f"[GROUP] {group.title}\t{_fmt(group.total_spent)} / {_fmt(group.target)}"
                )
                lines.extend(
                    f"    {m.name}\t{_fmt(m.total_spent)} / {_fmt(m.target)}"
                    for m in group.members
                )
            case CategoryItem(summary=s):
                suffix = " (suggested)" if s.is_target_suggested else ""
                lines.append(
                    f"[CATEGORY] {s.name}\t{_fmt(s.total_spent)} / {_fmt(s.target)}{suffix}"
                )
                if s.is_weekly:
                    weeks = "  ".join(f"w{w}={_fmt(v)}" for w, v in sorted(s.weekly_buckets.items()))
                    lines.append(f"    {weeks}")
    t = aggregate.totals
    lines.append(
        f"Totals income={_fmt(t.income)} expense={_fmt(t.expense)} "
        f"savings={_fmt(t.savings)} net={_fmt(t.net)}"
    )
    return lines


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Inspect the scoped transaction cache and monthly dashboard aggregates.",
)

# Module-level option objects keep calls out of parameter defaults (ruff B008).
CASH_FLOW_OPTION: OptionInfo = typer.Option(..., "--cash-flow-id", help="Cash flow identifier.")
ENDPOINT_OPTION: OptionInfo = typer.Option(..., "--endpoint", help="Backend base URL.")
CACHE_DIR_OPTION: OptionInfo = typer.Option(
    None, "--cache-dir", help="Override CASHFLOW_CACHE_DIR for this run."
)


@app.command("dashboard")
def dashboard_cmd(
    cash_flow_id: Annotated[str, CASH_FLOW_OPTION],
    endpoint: Annotated[str, ENDPOINT_OPTION],
    month: str = typer.Option(..., help="Budget month to render (YYYY-MM)."),
    transactions_path: Path | None = typer.Option(
        None,
        "--transactions",
        help="JSON array of transaction records to ingest before rendering.",
        dir_okay=False,
    ),
    categories_path: Path | None = typer.Option(
        None,
        "--categories",
        help="JSON list of category_order rows, or a catalog object.",
        dir_okay=False,
    ),
    cache_dir: Path | None = CACHE_DIR_OPTION,
) -> None:
    """Ingest (optionally) and render one month's dashboard."""

    try:
        settings = _settings(cache_dir)
        catalog = _load_catalog(categories_path)
        records = _read_json(transactions_path) if transactions_path is not None else []
        if not isinstance(records, list):
            raise ValueError("transactions file must hold a JSON array")
    except FileNotFoundError as e:
        typer.echo(f"Error: File not found: {e.filename}", err=True)
        raise typer.Exit(1) from None
    except (json.JSONDecodeError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    scope = ScopeKey(cash_flow_id=cash_flow_id, endpoint=endpoint)
    with DiskMirror(settings.cache_dir, background=settings.background_io) as mirror:
        cache = TransactionCache(mirror)
        engine = AggregationEngine(catalog, first_weekday=settings.first_weekday)
        try:
            session = DashboardSession(
                cache,
                scope,
                engine,
                month=month,
                suggestion_lookback=settings.suggestion_lookback,
            )
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1) from None
        missing = session.months_to_fetch()
        if records:
            # The file stands in for a fetch of every month still missing.
            try:
                session.ingest(records, covered_months=missing)
            except ValidationError as e:
                typer.echo(f"Error: invalid transaction record: {e}", err=True)
                raise typer.Exit(1) from None
        aggregate = session.load()

    for line in render_dashboard(aggregate):
        typer.echo(line)


@app.command("cache-status")
def cache_status_cmd(
    cash_flow_id: Annotated[str, CASH_FLOW_OPTION],
    endpoint: Annotated[str, ENDPOINT_OPTION],
    cache_dir: Path | None = CACHE_DIR_OPTION,
) -> None:
    """List months mirrored on disk for a scope."""

    settings = _settings(cache_dir)
    scope = ScopeKey(cash_flow_id=cash_flow_id, endpoint=endpoint)
    mirror = DiskMirror(settings.cache_dir)
    months = mirror.stored_months(scope)
    if not months:
        typer.echo("No cached months.")
        return
    for key in months:
        txs = mirror.read(scope, key)
        count = "unreadable" if txs is None else str(len(txs))
        typer.echo(f"{key}\t{count}")


@app.command("trends")
def trends_cmd(
    cash_flow_id: Annotated[str, CASH_FLOW_OPTION],
    endpoint: Annotated[str, ENDPOINT_OPTION],
    start: str = typer.Option(..., help="First month (YYYY-MM)."),
    end: str = typer.Option(..., help="Last month (YYYY-MM)."),
    cache_dir: Path | None = CACHE_DIR_OPTION,
) -> None:
    """Income, expense and net per month from the disk mirror."""

    try:
        months = month_range(start, end)
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    if not months:
        typer.echo("Error: --end precedes --start", err=True)
        raise typer.Exit(1)

    settings = _settings(cache_dir)
    scope = ScopeKey(cash_flow_id=cash_flow_id, endpoint=endpoint)
    cache = TransactionCache(DiskMirror(settings.cache_dir))
    session = DashboardSession(
        cache, scope, AggregationEngine(), month=months[-1], chart_months=months
    )
    missing = session.months_to_fetch()
    for trend in session.trends().months:
        marker = " (not cached)" if trend.month in missing else ""
        typer.echo(
            f"{trend.month}\tincome={_fmt(trend.income)}\texpense={_fmt(trend.expenses)}"
            f"\tnet={_fmt(trend.net)}\tcumulative={_fmt(trend.cumulative_net)}{marker}"
        )


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    try:
        settings = load_settings()
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    configure_logging(settings.log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
