"""Environment-driven settings for the cache and dashboard.

Values are read once by :func:`load_settings` and passed explicitly to the
objects that need them; nothing in the package consults the environment at
call time except through this module.

Environment variables
---------------------
- ``CASHFLOW_CACHE_DIR``: root directory for month mirror files. Defaults to
  ``$XDG_CACHE_HOME/cashflow_dashboard`` or ``~/.cache/cashflow_dashboard``.
- ``CASHFLOW_CACHE_BACKGROUND_IO``: ``1``/``true`` to run mirror writes on a
  background worker thread.
- ``CASHFLOW_FIRST_WEEKDAY``: ``sunday`` (default) or ``monday``; controls
  week-of-month bucketing.
- ``CASHFLOW_SUGGESTION_LOOKBACK``: number of trailing months averaged for
  suggested targets (default 3).
- ``CASHFLOW_DASHBOARD_LOG_LEVEL``: level name or number handed to
  :func:`~cashflow_dashboard.logging_setup.configure_logging` (default
  ``INFO``).
"""

from __future__ import annotations

import calendar
import os
from dataclasses import dataclass
from pathlib import Path

from .logging_setup import parse_level

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}

_WEEKDAYS = {"sunday": calendar.SUNDAY, "monday": calendar.MONDAY}


@dataclass(frozen=True, slots=True)
class Settings:
    cache_dir: Path
    background_io: bool = False
    first_weekday: int = calendar.SUNDAY
    suggestion_lookback: int = 3
    log_level: str = "INFO"


def default_cache_dir() -> Path:
    """Return the configured mirror root (absolute, not created)."""

    root = os.getenv("CASHFLOW_CACHE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve()
    xdg = os.getenv("XDG_CACHE_HOME")
    base = Path(xdg).expanduser() if xdg and xdg.strip() else Path.home() / ".cache"
    return (base / "cashflow_dashboard").resolve()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _env_weekday(name: str) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return calendar.SUNDAY
    try:
        return _WEEKDAYS[raw.strip().lower()]
    except KeyError:
        raise ValueError(
            f"{name} must be one of {sorted(_WEEKDAYS)}, got {raw!r}"
        ) from None


def _env_positive_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be a positive integer, got {raw!r}") from None
    if value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {raw!r}")
    return value


def _env_log_level(name: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return "INFO"
    level = raw.strip().upper()
    try:
        parse_level(level)
    except ValueError:
        raise ValueError(f"{name} must be a logging level name or number, got {raw!r}") from None
    return level


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""

    return Settings(
        cache_dir=default_cache_dir(),
        background_io=_env_bool("CASHFLOW_CACHE_BACKGROUND_IO", False),
        first_weekday=_env_weekday("CASHFLOW_FIRST_WEEKDAY"),
        suggestion_lookback=_env_positive_int("CASHFLOW_SUGGESTION_LOOKBACK", 3),
        log_level=_env_log_level("CASHFLOW_DASHBOARD_LOG_LEVEL"),
    )


__all__ = ["Settings", "default_cache_dir", "load_settings"]
