# bhi_project_root/analytics/models.py
#
# Typed result models for the aggregation engine. Every chart-facing payload
# is a Pydantic model so the presentation layer receives a stable, validated
# contract (serialized with camelCase aliases, e.g. `rawValue`).

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Dimension(str, Enum):
    """One axis of categorization."""
    # Extracted-record dimensions
    SYMPTOM_SEGMENT = "symptom_segment"
    DIAGNOSIS = "diagnosis"
    DIAGNOSTIC_CATEGORY = "diagnostic_category"
    SYMPTOM_ID = "symptom_id"
    HRSN_INDICATOR = "hrsn_indicator"
    # Patient demographic dimensions
    AGE_RANGE = "age_range"
    GENDER = "gender"
    RACE = "race"
    ETHNICITY = "ethnicity"
    ZIP_CODE = "zip_code"
    EDUCATION_LEVEL = "education_level"
    VETERAN_STATUS = "veteran_status"
    FINANCIAL_STATUS = "financial_status"
    HOUSING_INSECURITY = "housing_insecurity"
    FOOD_INSECURITY = "food_insecurity"
    ACCESS_TO_TRANSPORTATION = "access_to_transportation"
    HAS_A_CAR = "has_a_car"

    @property
    def is_demographic(self) -> bool:
        return self not in RECORD_DIMENSIONS

    @property
    def uses_patient_denominator(self) -> bool:
        """Symptom IDs and HRSN indicators are "% of patients affected"."""
        return self in (Dimension.SYMPTOM_ID, Dimension.HRSN_INDICATOR) or self.is_demographic


RECORD_DIMENSIONS = (
    Dimension.SYMPTOM_SEGMENT,
    Dimension.DIAGNOSIS,
    Dimension.DIAGNOSTIC_CATEGORY,
    Dimension.SYMPTOM_ID,
    Dimension.HRSN_INDICATOR,
)


class DisplayMode(str, Enum):
    COUNT = "count"
    PERCENTAGE = "percentage"


class Provenance(str, Enum):
    CUSTOMER = "customer"
    EXTRACTED = "extracted"
    BOTH = "both"
    NONE = "none"


class DataCondition(str, Enum):
    """Recovered conditions surfaced on a result instead of being raised."""
    EMPTY_INPUT = "empty_input"
    PLACEHOLDER = "placeholder"
    FILTER_BACKSTOP = "filter_backstop"
    ZERO_DENOMINATOR = "zero_denominator"
    SERVER_AGGREGATE = "server_aggregate"
    LINKAGE_UNAVAILABLE = "linkage_unavailable"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FilterCriteria(_CamelModel):
    """
    AND-composed constraints; "all" (or None for dates) means unconstrained.
    Frozen so it can key the engine's memoization cache.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    housing: str = "all"
    food: str = "all"
    financial: str = "all"
    diagnosis: str = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def active_constraints(self) -> Dict[str, Any]:
        """Criterion name -> constraint, for every criterion that narrows the data."""
        active = {
            name: value
            for name, value in (("housing", self.housing), ("food", self.food),
                                ("financial", self.financial), ("diagnosis", self.diagnosis))
            if value is not None and str(value).strip().lower() != "all"
        }
        if self.date_from is not None or self.date_to is not None:
            active["date"] = (self.date_from, self.date_to)
        return active

    @property
    def is_identity(self) -> bool:
        return not self.active_constraints()


class LinkedPatient(_CamelModel):
    patient_id: str
    patient_name: Optional[str] = None


class CategoryBucket(_CamelModel):
    id: str
    raw_count: int
    percentage: int
    denominator: int
    data_source: Optional[Provenance] = None
    linked_patients: Optional[List[LinkedPatient]] = None

    def value(self, mode: DisplayMode) -> int:
        return self.raw_count if DisplayMode(mode) == DisplayMode.COUNT else self.percentage


class CategoryDataset(_CamelModel):
    """
    An ordered bucket list plus the facts needed to interpret it. Placeholder
    datasets are illustrative only and must never be read as real data.
    """
    dimension: str
    buckets: List[CategoryBucket] = Field(default_factory=list)
    source: Literal["server", "extracted", "patients", "placeholder", "empty"] = "empty"
    is_placeholder: bool = False
    denominator: int = 0
    total_buckets: int = 0
    display_mode: DisplayMode = DisplayMode.COUNT
    bypassed_filters: List[str] = Field(default_factory=list)
    conditions: List[DataCondition] = Field(default_factory=list)

    def values(self) -> Dict[str, int]:
        return {bucket.id: bucket.value(self.display_mode) for bucket in self.buckets}

    def raw_counts(self) -> Dict[str, int]:
        return {bucket.id: bucket.raw_count for bucket in self.buckets}

    def __len__(self) -> int:
        return len(self.buckets)


class ReconciledCategory(_CamelModel):
    label: str
    customer_count: int
    extracted_count: int
    total_affected: int
    data_source: Provenance
    percentage: int


class DualSourceSummary(_CamelModel):
    total_customer_data: int = 0
    total_extracted_insights: int = 0
    total_dual_source: int = 0


class DualSourceHrsnResult(_CamelModel):
    categories: Dict[str, ReconciledCategory] = Field(default_factory=dict)
    total_patients: int = 0
    summary: DualSourceSummary = Field(default_factory=DualSourceSummary)


class ChartDatum(_CamelModel):
    id: str
    value: int
    raw_value: int
    percentage: int
    data_source: Optional[Provenance] = None
    linked_patients: Optional[List[LinkedPatient]] = None


class ChartView(_CamelModel):
    chart: str
    display_mode: DisplayMode
    rows: List[ChartDatum] = Field(default_factory=list)
    is_placeholder: bool = False
    conditions: List[DataCondition] = Field(default_factory=list)
    total_patients: Optional[int] = None


class TimelineRow(_CamelModel):
    id: str
    total: int
    counts: Dict[str, int] = Field(default_factory=dict)


class TimelinePivot(_CamelModel):
    dimension: str
    dates: List[str] = Field(default_factory=list)
    rows: List[TimelineRow] = Field(default_factory=list)
    undated_records: int = 0


class ServerAggregates(_CamelModel):
    """Optional server-side summaries the engine prefers over raw records."""
    symptom_segment_data: Optional[List[Dict[str, Any]]] = None
    diagnosis_data: Optional[List[Dict[str, Any]]] = None
    diagnostic_category_data: Optional[List[Dict[str, Any]]] = None
    symptom_id_data: Optional[List[Dict[str, Any]]] = Field(default=None, alias="symptomIDData")
    hrsn_indicator_data: Optional[List[Dict[str, Any]]] = None
    total_patients: Optional[int] = None

    def rows_for(self, dimension: Dimension) -> List[Dict[str, Any]]:
        field_name = {
            Dimension.SYMPTOM_SEGMENT: "symptom_segment_data",
            Dimension.DIAGNOSIS: "diagnosis_data",
            Dimension.DIAGNOSTIC_CATEGORY: "diagnostic_category_data",
            Dimension.SYMPTOM_ID: "symptom_id_data",
            Dimension.HRSN_INDICATOR: "hrsn_indicator_data",
        }.get(dimension)
        if field_name is None:
            return []
        return list(getattr(self, field_name) or [])
