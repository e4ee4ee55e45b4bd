# bhi_project_root/analytics/aggregation.py
#
# Category Aggregators
# One aggregation path per dimension. Each counts occurrences per category
# key and turns the counts into percentage buckets. Denominators differ by
# dimension: symptom segments, diagnoses and diagnostic categories divide by
# the matched record count; symptom IDs, HRSN indicators and demographics
# divide by the number of distinct patients.

import logging
import re
from typing import Dict, Iterable, List, Optional

import pandas as pd

try:
    from config.settings import settings
    from data_processing.helpers import is_missing, safe_percentage
    from data_processing.normalization import (
        RECORD_FILTER_COLUMNS, PATIENT_FILTER_COLUMNS, SERVER_FILTER_COLUMNS
    )
    from .filtering import apply_filters
    from .models import (
        CategoryBucket, CategoryDataset, DataCondition, Dimension, FilterCriteria, LinkedPatient
    )
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in aggregation.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


# --- Shared Bucket Construction ---------------------------------------------------

def clamp_limit(limit: Optional[int]) -> int:
    """Falls back to the default limit and keeps it within the allowed range."""
    cfg = settings.aggregation
    if limit is None:
        return cfg.default_limit
    clamped = max(cfg.min_limit, min(cfg.max_limit, int(limit)))
    if clamped != limit:
        logger.info(f"Requested limit {limit} is outside [{cfg.min_limit}, {cfg.max_limit}]; using {clamped}.")
    return clamped


def build_buckets(
    counts: pd.Series,
    denominator: int,
    linkage: Optional[Dict[str, List[LinkedPatient]]] = None,
) -> List[CategoryBucket]:
    """
    Converts category counts (indexed by category, in discovery order) into
    buckets sorted by count descending. The stable sort keeps discovery order
    for ties.
    """
    if counts.empty:
        return []
    ordered = counts.sort_values(ascending=False, kind='stable')
    return [
        CategoryBucket(
            id=str(category),
            raw_count=int(count),
            percentage=safe_percentage(int(count), denominator),
            denominator=int(denominator),
            linked_patients=None if linkage is None else linkage.get(category, []),
        )
        for category, count in ordered.items()
    ]


def truncate(dataset: CategoryDataset, limit: Optional[int]) -> CategoryDataset:
    """Keeps only the first `limit` buckets of an already-sorted dataset."""
    return dataset.model_copy(update={"buckets": dataset.buckets[:clamp_limit(limit)]})


def _dataset(
    dimension: Dimension, buckets: List[CategoryBucket], source: str, denominator: int,
    bypassed: Iterable[str] = (), conditions: Iterable[DataCondition] = (), is_placeholder: bool = False,
) -> CategoryDataset:
    bypassed = list(bypassed)
    conditions = list(conditions)
    if bypassed and DataCondition.FILTER_BACKSTOP not in conditions:
        conditions.append(DataCondition.FILTER_BACKSTOP)
    if buckets and denominator <= 0 and DataCondition.ZERO_DENOMINATOR not in conditions:
        conditions.append(DataCondition.ZERO_DENOMINATOR)
    return CategoryDataset(
        dimension=dimension.value,
        buckets=buckets,
        source=source,
        is_placeholder=is_placeholder,
        denominator=int(denominator),
        total_buckets=len(buckets),
        bypassed_filters=bypassed,
        conditions=conditions,
    )


def empty_dataset(dimension: Dimension, bypassed: Iterable[str] = ()) -> CategoryDataset:
    logger.info(f"[{dimension.value}] No server or extracted data; returning an empty dataset.")
    return _dataset(dimension, [], "empty", 0, bypassed, [DataCondition.EMPTY_INPUT])


def build_linkage(
    items: pd.DataFrame, key_col: str, roster: Optional[pd.DataFrame] = None
) -> Dict[str, List[LinkedPatient]]:
    """Distinct linked patients per category, in first-seen order."""
    names: Dict[str, Optional[str]] = {}
    if roster is not None and not roster.empty:
        names = {
            pid: (None if is_missing(name) else str(name))
            for pid, name in zip(roster['patient_id'], roster['patient_name'])
        }
    linkage: Dict[str, List[LinkedPatient]] = {}
    for category, group in items.groupby(key_col, sort=False):
        patients = []
        for pid, own_name in group[['patient_id', 'patient_name']].drop_duplicates('patient_id').itertuples(index=False):
            if is_missing(pid):
                continue
            name = names.get(pid) or (None if is_missing(own_name) else str(own_name))
            patients.append(LinkedPatient(patient_id=str(pid), patient_name=name))
        linkage[category] = patients
    return linkage


# --- HRSN Row Detection ---------------------------------------------------------

def _keyword_pattern() -> re.Pattern:
    keywords = "|".join(re.escape(k) for k in settings.aggregation.hrsn_keywords)
    return re.compile(keywords, re.IGNORECASE)


def hrsn_record_mask(records: pd.DataFrame) -> pd.Series:
    """Rows flagged as a "Problem" or whose symptom text names a social need."""
    if records.empty:
        return pd.Series([], index=records.index, dtype=bool)
    pattern = _keyword_pattern()
    keyword_hit = records['symptom_text'].map(
        lambda text: isinstance(text, str) and bool(pattern.search(text))
    ).astype(bool)
    return records['is_problem'].astype(bool) | keyword_hit


def strip_hrsn_prefix(text: object) -> str:
    """Removes a leading "Problem:" / "Z-Code:" marker from an HRSN label."""
    if is_missing(text):
        return settings.aggregation.unknown_hrsn
    label = str(text).strip()
    for prefix in settings.aggregation.hrsn_prefixes:
        if label.startswith(prefix):
            label = label[len(prefix):].strip()
    return label or settings.aggregation.unknown_hrsn


def hrsn_label_series(records: pd.DataFrame) -> pd.Series:
    return records['symptom_text'].map(strip_hrsn_prefix)


def patient_keys(records: pd.DataFrame) -> pd.Series:
    """Patient id per record; records without one count as their own patient."""
    return pd.Series(
        [pid if not is_missing(pid) else f"record-{pos}" for pid, pos in zip(records['patient_id'], records['position'])],
        index=records.index, dtype=object,
    )


# --- Extracted-Record Dimensions ------------------------------------------------------

def aggregate_records(
    records: pd.DataFrame,
    dimension: Dimension,
    criteria: Optional[FilterCriteria] = None,
    population_size: int = 0,
    include_linkage: bool = False,
    roster: Optional[pd.DataFrame] = None,
    policy: Optional[str] = None,
) -> CategoryDataset:
    """
    Aggregates canonical extracted records along a record dimension.
    Symptom segments exclude "Problem" rows (those belong to HRSN indicators).
    """
    if records.empty:
        return empty_dataset(dimension)

    filtered, bypassed = apply_filters(records, criteria, RECORD_FILTER_COLUMNS, policy, dimension.value)
    key_col = dimension.value
    if dimension == Dimension.SYMPTOM_SEGMENT:
        filtered = filtered[~filtered['is_problem'].astype(bool)]

    counts = filtered.groupby(key_col, sort=False).size()
    denominator = population_size if dimension.uses_patient_denominator else int(counts.sum())
    linkage = build_linkage(filtered, key_col, roster) if include_linkage else None
    buckets = build_buckets(counts, denominator, linkage)
    logger.debug(f"[{dimension.value}] {len(buckets)} categories from {len(filtered)} extracted record(s).")
    return _dataset(dimension, buckets, "extracted", denominator, bypassed)


def record_linkage(
    records: pd.DataFrame,
    dimension: Dimension,
    criteria: Optional[FilterCriteria] = None,
    roster: Optional[pd.DataFrame] = None,
    policy: Optional[str] = None,
) -> Dict[str, List[LinkedPatient]]:
    """
    Linked patients per category key, taken from the extracted records. Used
    to attach patients to server-pre-aggregated rows, which carry no ids.
    """
    if records.empty:
        return {}
    filtered, _ = apply_filters(records, criteria, RECORD_FILTER_COLUMNS, policy, f"{dimension.value}:linkage")
    if dimension == Dimension.HRSN_INDICATOR:
        filtered = filtered[hrsn_record_mask(filtered)]
        keys = hrsn_label_series(filtered)
    else:
        if dimension == Dimension.SYMPTOM_SEGMENT:
            filtered = filtered[~filtered['is_problem'].astype(bool)]
        keys = filtered[dimension.value].map(lambda v: None if is_missing(v) else str(v).strip())
    return build_linkage(filtered.assign(linkage_key=keys), 'linkage_key', roster)


def aggregate_server_rows(
    rows: pd.DataFrame,
    dimension: Dimension,
    criteria: Optional[FilterCriteria] = None,
    population_size: int = 0,
    policy: Optional[str] = None,
    linkage: Optional[Dict[str, List[LinkedPatient]]] = None,
) -> CategoryDataset:
    """
    Re-buckets server-pre-aggregated rows under the same denominator policy.
    `linkage` (see `record_linkage`) attaches patients to the server categories.
    """
    filtered, bypassed = apply_filters(rows, criteria, SERVER_FILTER_COLUMNS, policy, f"{dimension.value}:server")
    if dimension == Dimension.SYMPTOM_SEGMENT:
        filtered = filtered[~filtered['is_problem'].astype(bool)]

    # Server rows may repeat a category; merge them in first-seen order.
    counts = filtered.groupby('category', sort=False)['raw_count'].sum()
    denominator = population_size if dimension.uses_patient_denominator else int(counts.sum())
    buckets = build_buckets(counts, denominator, linkage)
    conditions = [DataCondition.SERVER_AGGREGATE]
    if linkage is not None and buckets and not any(b.linked_patients for b in buckets):
        logger.warning(f"[{dimension.value}] No extracted records link patients to the server categories.")
        conditions.append(DataCondition.LINKAGE_UNAVAILABLE)
    return _dataset(dimension, buckets, "server", denominator, bypassed, conditions)


def aggregate_hrsn_indicators(
    server_rows: pd.DataFrame,
    records: pd.DataFrame,
    criteria: Optional[FilterCriteria] = None,
    population_size: int = 0,
    include_linkage: bool = False,
    roster: Optional[pd.DataFrame] = None,
    policy: Optional[str] = None,
) -> CategoryDataset:
    """
    HRSN indicators, trying three strategies in order; the first non-empty
    result wins:
      1. server-pre-aggregated HRSN rows,
      2. extracted "Problem"/keyword rows, counted once per patient,
      3. a flagged illustrative placeholder distribution.
    """
    dimension = Dimension.HRSN_INDICATOR
    bypassed: List[str] = []

    if not server_rows.empty:
        linkage = record_linkage(records, dimension, criteria, roster, policy) if include_linkage else None
        from_server = aggregate_server_rows(server_rows, dimension, criteria, population_size, policy, linkage)
        if from_server.buckets:
            return from_server
        bypassed = from_server.bypassed_filters

    if not records.empty:
        filtered, record_bypassed = apply_filters(records, criteria, RECORD_FILTER_COLUMNS, policy, dimension.value)
        hrsn_rows = filtered[hrsn_record_mask(filtered)].copy()
        if not hrsn_rows.empty:
            hrsn_rows['hrsn_label'] = hrsn_label_series(hrsn_rows)
            hrsn_rows['patient_key'] = patient_keys(hrsn_rows)
            counts = hrsn_rows.groupby('hrsn_label', sort=False)['patient_key'].nunique()
            linkage = build_linkage(hrsn_rows, 'hrsn_label', roster) if include_linkage else None
            buckets = build_buckets(counts, population_size, linkage)
            return _dataset(dimension, buckets, "extracted", population_size, record_bypassed)
        bypassed = bypassed or record_bypassed

    return hrsn_placeholder(population_size, bypassed)


def hrsn_placeholder(population_size: int, bypassed: Iterable[str] = ()) -> CategoryDataset:
    """Illustrative HRSN distribution so the chart is never blank; always flagged."""
    distribution = settings.placeholders.hrsn_indicators
    denominator = population_size if population_size > 0 else sum(distribution.values())
    logger.warning(
        f"[{Dimension.HRSN_INDICATOR.value}] No HRSN data found; returning the illustrative placeholder distribution."
    )
    counts = pd.Series(distribution, dtype=int)
    buckets = build_buckets(counts, denominator)
    return _dataset(
        Dimension.HRSN_INDICATOR, buckets, "placeholder", denominator, bypassed,
        [DataCondition.PLACEHOLDER], is_placeholder=True,
    )


# --- Patient Demographic Dimensions ------------------------------------------------------

def aggregate_demographic(
    patients: pd.DataFrame,
    dimension: Dimension,
    criteria: Optional[FilterCriteria] = None,
    include_linkage: bool = False,
    policy: Optional[str] = None,
) -> CategoryDataset:
    """
    Counts patients per demographic value. Dimensions with a fixed category
    list (age range, gender, race) always report every category, zero or not.
    """
    defaults = settings.demographics.default_categories.get(dimension.value, [])
    filtered, bypassed = apply_filters(patients, criteria, PATIENT_FILTER_COLUMNS, policy, dimension.value)

    if filtered.empty and not defaults:
        return empty_dataset(dimension, bypassed)

    observed = filtered.groupby(dimension.value, sort=False).size() if not filtered.empty else pd.Series(dtype=int)
    # Seed fixed categories first so they lead the discovery order.
    seeded = pd.Series(0, index=pd.Index(defaults, dtype=object), dtype=int)
    extra = observed[~observed.index.isin(defaults)]
    counts = pd.concat([seeded.add(observed, fill_value=0).reindex(defaults), extra]).astype(int)

    denominator = len(filtered)
    linkage = None
    if include_linkage:
        linkage = build_linkage(filtered, dimension.value) if not filtered.empty else {}
    buckets = build_buckets(counts, denominator, linkage)
    conditions = [] if not filtered.empty else [DataCondition.EMPTY_INPUT]
    return _dataset(dimension, buckets, "patients", denominator, bypassed, conditions)
