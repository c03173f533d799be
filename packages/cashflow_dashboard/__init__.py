"""Public interface for the ``cashflow_dashboard`` package.

Scoped, disk-mirrored transaction cache plus full and incremental monthly
dashboard aggregation. This module only re-exports the stable import surface.
"""

from .aggregation import (
    AggregationEngine,
    CategoryItem,
    CategorySummary,
    DashboardAggregate,
    DisplayItem,
    GroupItem,
    Section,
    SectionItem,
    SectionTotals,
    SharedGroup,
)
from .config import Settings, load_settings
from .disk_mirror import DiskMirror
from .models import (
    CategoryCatalog,
    CategoryConfig,
    ScopeKey,
    Transaction,
    TransactionFlags,
    TransactionStatus,
)
from .mutator import Change, IncrementalMutator, Insertion, Removal, Update
from .session import DashboardSession
from .store import MonthBucket, TransactionCache
from .trends import TrendSeries, monthly_trends, suggest_targets, top_expense_categories

__all__ = [
    # Cache
    "ScopeKey",
    "MonthBucket",
    "TransactionCache",
    "DiskMirror",
    # Aggregation
    "AggregationEngine",
    "DashboardAggregate",
    "Section",
    "CategorySummary",
    "SharedGroup",
    "SectionTotals",
    "SectionItem",
    "GroupItem",
    "CategoryItem",
    "DisplayItem",
    # Incremental updates
    "IncrementalMutator",
    "Change",
    "Insertion",
    "Removal",
    "Update",
    # Orchestration
    "DashboardSession",
    # Trends
    "TrendSeries",
    "monthly_trends",
    "suggest_targets",
    "top_expense_categories",
    # Models / config
    "Transaction",
    "TransactionStatus",
    "TransactionFlags",
    "CategoryConfig",
    "CategoryCatalog",
    "Settings",
    "load_settings",
]
