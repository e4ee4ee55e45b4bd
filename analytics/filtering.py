# bhi_project_root/analytics/filtering.py
#
# Filter Engine
# Applies HRSN, diagnosis and date-of-service constraints to the items behind
# an aggregate (extracted records, patients or server summary rows). Filters
# compose with AND semantics. When a constrained factor is carried by none of
# the items, the missing-factor policy decides between treating the filter as
# a no-op (the default) and applying it strictly.

import logging
from typing import Any, List, Mapping, NamedTuple, Optional

import pandas as pd

try:
    from config.settings import settings
    from data_processing.helpers import is_missing
    from .models import FilterCriteria
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in filtering.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

STATUS_CRITERIA = ("housing", "food", "financial")


class FilterResult(NamedTuple):
    items: pd.DataFrame
    bypassed: List[str]


def _normalize_token(value: Any) -> str:
    return str(value).strip().lower()


def _matches_value(column: pd.Series, expected: Any) -> pd.Series:
    target = _normalize_token(expected)
    return column.map(lambda v: not is_missing(v) and _normalize_token(v) == target).astype(bool)


def _matches_date_range(column: pd.Series, bounds: Any) -> pd.Series:
    date_from, date_to = bounds
    dates = pd.to_datetime(column, errors='coerce')
    mask = dates.notna()
    if date_from is not None:
        mask &= dates >= pd.Timestamp(date_from)
    if date_to is not None:
        # Inclusive of the whole end day.
        mask &= dates < pd.Timestamp(date_to) + pd.Timedelta(days=1)
    return mask.fillna(False).astype(bool)


def _carries_factor(items: pd.DataFrame, column: Optional[str]) -> bool:
    if column is None or column not in items.columns:
        return False
    return bool((~items[column].map(is_missing).astype(bool)).any())


def apply_filters(
    items: pd.DataFrame,
    criteria: Optional[FilterCriteria],
    columns: Mapping[str, str],
    policy: Optional[str] = None,
    context: str = "filter",
) -> FilterResult:
    """
    Returns the items matching every active constraint in `criteria`.

    Args:
        items: Canonical frame of the items behind an aggregate.
        criteria: The constraints; None or all-"all" is the identity filter.
        columns: Criterion name -> column in `items` holding that factor.
        policy: Overrides `settings.filters.missing_factor_policy`.
        context: Label used in log messages.

    Returns:
        The filtered frame, and the criteria that were bypassed because no
        item carries their factor (only under the "assume_match" policy).
    """
    if criteria is None or criteria.is_identity or items.empty:
        return FilterResult(items, [])

    policy = policy or settings.filters.missing_factor_policy
    active = criteria.active_constraints()
    working = items.copy()
    bypassed: List[str] = []

    absent = [name for name in active if not _carries_factor(working, columns.get(name))]
    if absent and policy == "assume_match":
        logger.warning(
            f"[{context}] No item carries {absent}; treating those filters as already matched "
            f"(missing-factor policy 'assume_match')."
        )
        bypassed = absent
        # Synthesize each missing status from the active filter's own value,
        # and neutral statuses for the rest, so downstream consumers see them.
        for name in STATUS_CRITERIA:
            column = columns.get(name)
            if column is None or _carries_factor(working, column):
                continue
            working[column] = active.get(name, settings.filters.neutral_statuses.get(name))
    elif absent:
        logger.warning(f"[{context}] No item carries {absent}; strict policy removes every item.")
        return FilterResult(working.iloc[0:0], [])

    mask = pd.Series(True, index=working.index)
    for name, constraint in active.items():
        if name in bypassed:
            continue
        column = working[columns[name]]
        if name == "date":
            mask &= _matches_date_range(column, constraint)
        else:
            mask &= _matches_value(column, constraint)

    filtered = working[mask]
    logger.debug(f"[{context}] Filters {active} kept {len(filtered)} of {len(items)} item(s).")
    return FilterResult(filtered, bypassed)
