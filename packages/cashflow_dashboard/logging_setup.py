"""Logger wiring for the ``cashflow_dashboard`` package.

Library modules obtain loggers with ``get_logger("cashflow_dashboard.<module>")``
and never attach handlers themselves; messages use the
``area:event key=value`` shape so they stay greppable in host logs.

Hosts (the CLI, an application embedding the cache) call
:func:`configure_logging` with the level from
:class:`~cashflow_dashboard.config.Settings`. Calling it again swaps the level
and stream of the package handler instead of stacking a second one.
"""

from __future__ import annotations

import logging
import sys
from typing import IO

_ROOT = "cashflow_dashboard"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class _PackageHandler(logging.StreamHandler):
    """Marker subclass so reconfiguration can find the handler it owns."""


def parse_level(level: int | str) -> int:
    """Resolve ``"debug"``, ``"WARNING"``, ``"10"`` or ``10`` to a level number."""

    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    if numeric is None:
        raise ValueError(f"Unknown log level: {level!r}")
    return numeric


def configure_logging(
    level: int | str = logging.INFO,
    *,
    fmt: str = _DEFAULT_FORMAT,
    stream: IO[str] | None = None,
) -> logging.Logger:
    """Route package logs to ``stream`` (stderr by default) at ``level``.

    Returns the package root logger. Propagation to the host's root logger is
    turned off so records are not printed twice.
    """

    resolved = parse_level(level)
    root = logging.getLogger(_ROOT)
    for handler in list(root.handlers):
        if isinstance(handler, _PackageHandler | logging.NullHandler):
            root.removeHandler(handler)

    handler = _PackageHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt))
    root.addHandler(handler)
    root.setLevel(resolved)
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Logger for a package module; silent until a host configures output."""

    root = logging.getLogger(_ROOT)
    if not root.handlers:
        root.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "parse_level"]
