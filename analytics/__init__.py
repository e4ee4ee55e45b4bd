# bhi_project_root/analytics/__init__.py
#
# Analytics Package API
# This file initializes the analytics package and defines its public API.
# It provides a clean, high-level interface to the population aggregation
# engine and the typed results it produces.

"""
Initializes the analytics package, making key functions and classes
available at the top level for easier, cleaner imports in other modules.
"""

# --- Result Models ---
# Pydantic contracts handed to the presentation layer.
from .models import (
    CategoryBucket,
    CategoryDataset,
    ChartDatum,
    ChartView,
    DataCondition,
    Dimension,
    DisplayMode,
    DualSourceHrsnResult,
    FilterCriteria,
    Provenance,
    ServerAggregates,
    TimelinePivot,
)

# --- Filtering, Aggregation, Risk & Reconciliation ---
from .filtering import apply_filters
from .aggregation import aggregate_records, aggregate_hrsn_indicators, aggregate_demographic
from .risk import stratify_risk
from .reconciliation import reconcile_hrsn_sources

# --- Engine Facade ---
# The single entry point most callers need.
from .engine import PopulationAnalyticsEngine
from .views import CHART_REGISTRY


# --- Define the public API for the analytics package ---
__all__ = [
    # Models
    "CategoryBucket",
    "CategoryDataset",
    "ChartDatum",
    "ChartView",
    "DataCondition",
    "Dimension",
    "DisplayMode",
    "DualSourceHrsnResult",
    "FilterCriteria",
    "Provenance",
    "ServerAggregates",
    "TimelinePivot",

    # Building blocks
    "apply_filters",
    "aggregate_records",
    "aggregate_hrsn_indicators",
    "aggregate_demographic",
    "stratify_risk",
    "reconcile_hrsn_sources",

    # Engine
    "PopulationAnalyticsEngine",
    "CHART_REGISTRY",
]
