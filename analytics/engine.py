# bhi_project_root/analytics/engine.py
#
# Population Analytics Engine
# The public face of the aggregation engine. It normalizes the data source's
# collections once, then serves every named aggregate view from them. All
# operations are deterministic, side-effect-free transforms of the inputs;
# results are memoized per instance by (operation, dimension, filters, limit),
# and the display mode is applied on top of a cached result so switching it
# never triggers a re-scan. Callers always receive deep copies of cached results.

import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Hashable, List, Mapping, Optional, Union

import pandas as pd

try:
    from config.settings import settings
    from data_processing.loaders import (
        DataLoader, load_extracted_records, load_patient_records, load_server_aggregates,
    )
    from data_processing.normalization import (
        RECORD_FILTER_COLUMNS, RecordInput, normalize_extracted_records, normalize_patient_records,
        normalize_server_rows,
    )
    from .aggregation import (
        aggregate_demographic, aggregate_hrsn_indicators, aggregate_records, aggregate_server_rows,
        clamp_limit, empty_dataset, hrsn_label_series, hrsn_record_mask, record_linkage, truncate,
    )
    from .filtering import apply_filters
    from .models import (
        CategoryDataset, ChartView, Dimension, DisplayMode, DualSourceHrsnResult, FilterCriteria,
        ServerAggregates, TimelinePivot, TimelineRow,
    )
    from .reconciliation import reconcile_hrsn_sources
    from .risk import stratify_risk
    from .views import dataset_to_view, dual_source_to_view, resolve_chart
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in engine.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

ServerInput = Union[ServerAggregates, Mapping[str, Any], None]


def _as_dimension(dimension: Union[Dimension, str]) -> Dimension:
    try:
        return Dimension(dimension)
    except ValueError:
        raise ValueError(
            f"Unknown dimension '{dimension}'. Known dimensions: {[d.value for d in Dimension]}"
        ) from None


class PopulationAnalyticsEngine:
    """
    Aggregation and categorization engine over one materialized population.

    Args:
        patients: Structured patient roster (DataFrame or iterable of mappings).
        records: NLP-extracted symptom observations.
        server_aggregates: Optional pre-computed summaries, preferred over raw records.
        missing_factor_policy: Overrides `settings.filters.missing_factor_policy`.
        cache_max_entries: Overrides `settings.cache_max_entries`.
    """

    def __init__(
        self,
        patients: RecordInput = None,
        records: RecordInput = None,
        server_aggregates: ServerInput = None,
        missing_factor_policy: Optional[str] = None,
        cache_max_entries: Optional[int] = None,
    ):
        self.patients = normalize_patient_records(patients)
        duplicated = self.patients['patient_id'].duplicated()
        if duplicated.any():
            logger.warning(f"[patients] Dropping {int(duplicated.sum())} duplicate patient row(s).")
            self.patients = self.patients[~duplicated].reset_index(drop=True)

        self.records = normalize_extracted_records(records, self.patients)

        if isinstance(server_aggregates, ServerAggregates):
            self.server_aggregates = server_aggregates
        else:
            self.server_aggregates = ServerAggregates.model_validate(dict(server_aggregates or {}))
        self._server_rows: Dict[Dimension, pd.DataFrame] = {}

        self.policy = missing_factor_policy or settings.filters.missing_factor_policy
        self._cache: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._cache_max_entries = cache_max_entries or settings.cache_max_entries

        self.population_ids: List[str] = self._build_population()
        logger.info(
            f"Engine ready: {len(self.patients)} patient(s), {len(self.records)} extracted record(s), "
            f"population of {len(self.population_ids)}."
        )

    @classmethod
    def from_data_sources(cls, loader: Optional[DataLoader] = None, **kwargs: Any) -> "PopulationAnalyticsEngine":
        """Builds an engine from the configured CSV/JSON data sources."""
        return cls(
            patients=load_patient_records(loader),
            records=load_extracted_records(loader),
            server_aggregates=load_server_aggregates(loader),
            **kwargs,
        )

    # --- Population -------------------------------------------------------------

    def _build_population(self) -> List[str]:
        """Roster ids followed by any record-only ids, in first-seen order."""
        ids = list(self.patients['patient_id'])
        if not self.records.empty:
            ids.extend(self.records['patient_id'].dropna())
        return list(dict.fromkeys(str(pid) for pid in ids))

    @property
    def total_patients(self) -> int:
        if self.population_ids:
            return len(self.population_ids)
        return int(self.server_aggregates.total_patients or 0)

    # --- Memoization ------------------------------------------------------------------

    def _memoized(self, key: Hashable, compute: Callable[[], Any]) -> Any:
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]
        value = compute()
        self._cache[key] = value
        if len(self._cache) > self._cache_max_entries:
            self._cache.popitem(last=False)
        return value

    def clear_cache(self) -> None:
        self._cache.clear()

    def _server_rows_for(self, dimension: Dimension) -> pd.DataFrame:
        if dimension not in self._server_rows:
            self._server_rows[dimension] = normalize_server_rows(self.server_aggregates.rows_for(dimension))
        return self._server_rows[dimension]

    # --- Category Aggregates ----------------------------------------------------------

    def _aggregate(
        self, dimension: Dimension, filters: Optional[FilterCriteria], include_linkage: bool
    ) -> CategoryDataset:
        """Full, unbounded dataset for one dimension."""
        if dimension.is_demographic:
            return aggregate_demographic(self.patients, dimension, filters, include_linkage, self.policy)

        server_rows = self._server_rows_for(dimension)
        if dimension == Dimension.HRSN_INDICATOR:
            return aggregate_hrsn_indicators(
                server_rows, self.records, filters, self.total_patients,
                include_linkage, self.patients, self.policy,
            )
        if not server_rows.empty:
            linkage = None
            if include_linkage:
                linkage = record_linkage(self.records, dimension, filters, self.patients, self.policy)
            return aggregate_server_rows(server_rows, dimension, filters, self.total_patients, self.policy, linkage)
        if self.records.empty:
            return empty_dataset(dimension)
        return aggregate_records(
            self.records, dimension, filters, self.total_patients,
            include_linkage, self.patients, self.policy,
        )

    def get_category_data(
        self,
        dimension: Union[Dimension, str],
        limit: Optional[int] = None,
        filters: Optional[FilterCriteria] = None,
        display_mode: Union[DisplayMode, str] = DisplayMode.COUNT,
    ) -> CategoryDataset:
        """Top `limit` buckets of a dimension, sorted by count descending."""
        dimension = _as_dimension(dimension)
        limit = clamp_limit(limit)
        dataset = self._memoized(
            ("category", dimension, filters, limit),
            lambda: truncate(self._aggregate(dimension, filters, False), limit),
        )
        return dataset.model_copy(update={"display_mode": DisplayMode(display_mode)}, deep=True)

    def get_full_dataset(
        self,
        dimension: Union[Dimension, str],
        include_patient_linkage: bool = False,
        filters: Optional[FilterCriteria] = None,
        display_mode: Union[DisplayMode, str] = DisplayMode.COUNT,
    ) -> CategoryDataset:
        """Every bucket of a dimension, ignoring the limit, for export and drill-down."""
        dimension = _as_dimension(dimension)
        dataset = self._memoized(
            ("full", dimension, filters, include_patient_linkage),
            lambda: self._aggregate(dimension, filters, include_patient_linkage),
        )
        return dataset.model_copy(update={"display_mode": DisplayMode(display_mode)}, deep=True)

    # --- Risk & Dual-Source ---------------------------------------------------------------

    def get_risk_stratification(
        self,
        display_mode: Union[DisplayMode, str] = DisplayMode.COUNT,
        filters: Optional[FilterCriteria] = None,
    ) -> CategoryDataset:
        """Six fixed tiers in fixed order."""
        dataset = self._memoized(
            ("risk", filters),
            lambda: stratify_risk(self.population_ids, self.records, filters, self.policy),
        )
        return dataset.model_copy(update={"display_mode": DisplayMode(display_mode)}, deep=True)

    def get_dual_source_hrsn(self) -> DualSourceHrsnResult:
        result = self._memoized(
            ("dual_source",),
            lambda: reconcile_hrsn_sources(self.patients, self.records, self.total_patients),
        )
        return result.model_copy(deep=True)

    # --- Timeline Pivot -------------------------------------------------------------------

    def get_timeline_pivot(
        self,
        dimension: Union[Dimension, str],
        filters: Optional[FilterCriteria] = None,
        limit: Optional[int] = None,
    ) -> TimelinePivot:
        """Category x date-of-service counts for the top categories of a record dimension."""
        dimension = _as_dimension(dimension)
        if dimension.is_demographic:
            raise ValueError(f"Timeline pivots need a record dimension, got '{dimension.value}'.")
        limit = clamp_limit(limit)
        pivot = self._memoized(
            ("timeline", dimension, filters, limit),
            lambda: self._build_timeline(dimension, filters, limit),
        )
        return pivot.model_copy(deep=True)

    def _build_timeline(self, dimension: Dimension, filters: Optional[FilterCriteria], limit: int) -> TimelinePivot:
        if self.records.empty:
            return TimelinePivot(dimension=dimension.value)

        filtered, _ = apply_filters(self.records, filters, RECORD_FILTER_COLUMNS, self.policy, f"{dimension.value}:timeline")
        if dimension == Dimension.HRSN_INDICATOR:
            filtered = filtered[hrsn_record_mask(filtered)].copy()
            filtered['category'] = hrsn_label_series(filtered)
        else:
            if dimension == Dimension.SYMPTOM_SEGMENT:
                filtered = filtered[~filtered['is_problem'].astype(bool)]
            filtered = filtered.assign(category=filtered[dimension.value])

        dated = filtered[filtered['date_of_service'].notna()]
        undated = len(filtered) - len(dated)
        if dated.empty:
            return TimelinePivot(dimension=dimension.value, undated_records=undated)

        dated = dated.assign(day=pd.to_datetime(dated['date_of_service']).dt.strftime('%Y-%m-%d'))
        cells = dated.groupby(['category', 'day'], sort=False).size()
        totals = dated.groupby('category', sort=False).size().sort_values(ascending=False, kind='stable').head(limit)
        dates = sorted(dated['day'].unique())

        rows = [
            TimelineRow(
                id=str(category),
                total=int(total),
                counts={day: int(n) for day, n in cells.xs(category, level='category').sort_index().items()},
            )
            for category, total in totals.items()
        ]
        return TimelinePivot(dimension=dimension.value, dates=dates, rows=rows, undated_records=undated)

    # --- Chart Views ----------------------------------------------------------------------

    def get_chart_view(
        self,
        chart: str,
        display_mode: Union[DisplayMode, str] = DisplayMode.COUNT,
        limit: Optional[int] = None,
        filters: Optional[FilterCriteria] = None,
        full_dataset: bool = False,
        include_patient_linkage: bool = False,
    ) -> ChartView:
        """The exact row contract a named chart requests."""
        chart_spec = resolve_chart(chart)
        mode = DisplayMode(display_mode)

        if chart_spec.kind == "risk":
            return dataset_to_view(chart, self.get_risk_stratification(mode, filters), mode,
                                   total_patients=self.total_patients)
        if chart_spec.kind == "dual_source":
            return dual_source_to_view(chart, self.get_dual_source_hrsn(), mode)

        if full_dataset:
            dataset = self.get_full_dataset(chart_spec.dimension, include_patient_linkage, filters, mode)
        else:
            dataset = self.get_category_data(chart_spec.dimension, limit, filters, mode)
        return dataset_to_view(chart, dataset, mode, include_linkage=full_dataset and include_patient_linkage,
                               total_patients=self.total_patients)
