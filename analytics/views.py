# bhi_project_root/analytics/views.py
#
# View Assembler
# Projects engine results onto the row contract each named chart consumes:
# {id, value, rawValue, percentage}. `value` follows the display mode while
# `rawValue` and `percentage` are always both present, so tooltips can show
# the figure that is not selected.

import logging
from typing import Dict, List, NamedTuple, Optional

try:
    from .models import (
        CategoryBucket, CategoryDataset, ChartDatum, ChartView, DataCondition, Dimension,
        DisplayMode, DualSourceHrsnResult,
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in views.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


class ChartSpec(NamedTuple):
    """What a named chart is built from: a category dimension or a special view."""
    kind: str  # "category" | "risk" | "dual_source"
    dimension: Optional[Dimension] = None


CHART_REGISTRY: Dict[str, ChartSpec] = {
    "symptom_segments": ChartSpec("category", Dimension.SYMPTOM_SEGMENT),
    "diagnoses": ChartSpec("category", Dimension.DIAGNOSIS),
    "diagnostic_categories": ChartSpec("category", Dimension.DIAGNOSTIC_CATEGORY),
    "symptom_ids": ChartSpec("category", Dimension.SYMPTOM_ID),
    "hrsn_indicators": ChartSpec("category", Dimension.HRSN_INDICATOR),
    "risk_stratification": ChartSpec("risk"),
    "hrsn_dual_source": ChartSpec("dual_source"),
}
# Every demographic dimension is also a chart under its own name.
CHART_REGISTRY.update({
    dimension.value: ChartSpec("category", dimension)
    for dimension in Dimension if dimension.is_demographic
})


def resolve_chart(chart: str) -> ChartSpec:
    try:
        return CHART_REGISTRY[chart]
    except KeyError:
        raise ValueError(f"Unknown chart '{chart}'. Known charts: {sorted(CHART_REGISTRY)}") from None


def bucket_to_datum(bucket: CategoryBucket, mode: DisplayMode, include_linkage: bool = False) -> ChartDatum:
    return ChartDatum(
        id=bucket.id,
        value=bucket.value(mode),
        raw_value=bucket.raw_count,
        percentage=bucket.percentage,
        data_source=bucket.data_source,
        linked_patients=bucket.linked_patients if include_linkage else None,
    )


def dataset_to_view(
    chart: str, dataset: CategoryDataset, mode: DisplayMode, include_linkage: bool = False,
    total_patients: Optional[int] = None,
) -> ChartView:
    mode = DisplayMode(mode)
    rows = [bucket_to_datum(bucket, mode, include_linkage) for bucket in dataset.buckets]
    return ChartView(
        chart=chart,
        display_mode=mode,
        rows=rows,
        is_placeholder=dataset.is_placeholder,
        conditions=list(dataset.conditions),
        total_patients=total_patients,
    )


def dual_source_to_view(chart: str, result: DualSourceHrsnResult, mode: DisplayMode) -> ChartView:
    """One row per reconciled category, largest affected population first."""
    mode = DisplayMode(mode)
    ordered = sorted(result.categories.items(), key=lambda item: item[1].total_affected, reverse=True)
    rows: List[ChartDatum] = [
        ChartDatum(
            id=category.label,
            value=category.total_affected if mode == DisplayMode.COUNT else category.percentage,
            raw_value=category.total_affected,
            percentage=category.percentage,
            data_source=category.data_source,
        )
        for _, category in ordered
    ]
    conditions = [] if rows else [DataCondition.EMPTY_INPUT]
    return ChartView(
        chart=chart, display_mode=mode, rows=rows, conditions=conditions,
        total_patients=result.total_patients,
    )
