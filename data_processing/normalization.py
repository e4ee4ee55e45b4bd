# bhi_project_root/data_processing/normalization.py
#
# Record Normalizer
# Turns heterogeneous patient rosters, NLP-extracted symptom rows and
# server-side summary rows into canonical DataFrames. Field-name variants are
# resolved through ordered accessor rules, and every demographic attribute
# degrades to a named default category instead of being left empty, so each
# record lands in exactly one bucket per dimension downstream.

import logging
import re
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict

try:
    from config.settings import settings, VocabularyEntry
    from .helpers import is_missing, convert_to_numeric
    from .pipeline import DataPipeline
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in normalization.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

RecordInput = Union[pd.DataFrame, Iterable[Mapping[str, Any]], None]

# Columns the filter engine matches each criterion against, per frame kind.
RECORD_FILTER_COLUMNS = {
    "housing": "housing_status", "food": "food_status", "financial": "financial_status",
    "diagnosis": "diagnosis", "date": "date_of_service",
}
PATIENT_FILTER_COLUMNS = {
    "housing": "housing_status", "food": "food_status", "financial": "financial_status_filter",
    "diagnosis": "diagnosis",
}
SERVER_FILTER_COLUMNS = {
    "housing": "housing_status", "food": "food_status", "financial": "financial_status",
    "diagnosis": "diagnosis",
}


class FieldRule(BaseModel):
    """
    Resolution rule for one canonical field: candidates are tried left to right
    and the first non-missing value wins. `default=None` leaves the field
    missing so callers can tell "absent" from "present".
    """
    model_config = ConfigDict(frozen=True)

    target: str
    candidates: Tuple[str, ...]
    default: Optional[str] = None


NO_DATA = settings.aggregation.no_data_label

# --- Accessor Rules -----------------------------------------------------------
# Order within each tuple is the resolution order: exact snake_case name,
# camelCase alias, then domain-specific aliases.

PATIENT_FIELD_RULES: Tuple[FieldRule, ...] = (
    FieldRule(target="patient_id", candidates=("patient_id", "patientId", "id", "mrn")),
    FieldRule(target="patient_name", candidates=("patient_name", "patientName", "name")),
    # Filterable HRSN statuses, resolved without defaults and before the
    # defaulted demographic columns below overwrite their raw values.
    FieldRule(target="housing_status", candidates=("housing_status", "housingStatus", "housing_insecurity", "housingInsecurity")),
    FieldRule(target="food_status", candidates=("food_status", "foodStatus", "food_insecurity", "foodInsecurity")),
    FieldRule(target="financial_status_filter", candidates=("financial_status", "financialStatus")),
    FieldRule(target="age_range", candidates=("age_range", "ageRange", "age_group", "age")),
    FieldRule(target="gender", candidates=("gender", "sex")),
    FieldRule(target="race", candidates=("race",)),
    FieldRule(target="ethnicity", candidates=("ethnicity",), default=NO_DATA),
    FieldRule(target="zip_code", candidates=("zip_code", "zipCode", "zip", "postal_code"), default=NO_DATA),
    FieldRule(target="education_level", candidates=("education_level", "educationLevel", "education"), default=NO_DATA),
    FieldRule(target="veteran_status", candidates=("veteran_status", "veteranStatus", "veteran"), default=NO_DATA),
    FieldRule(target="financial_status", candidates=("financial_status", "financialStatus", "income_level"), default=NO_DATA),
    FieldRule(target="housing_insecurity", candidates=("housing_insecurity", "housingInsecurity"), default=NO_DATA),
    FieldRule(target="food_insecurity", candidates=("food_insecurity", "foodInsecurity"), default=NO_DATA),
    FieldRule(target="access_to_transportation", candidates=("access_to_transportation", "accessToTransportation", "transportation_access"), default=NO_DATA),
    FieldRule(target="has_a_car", candidates=("has_a_car", "hasACar", "has_car"), default=NO_DATA),
    FieldRule(target="diagnosis", candidates=("diagnosis", "diagnosis1", "diagnosis_1", "primary_diagnosis")),
)

EXTRACTED_FIELD_RULES: Tuple[FieldRule, ...] = (
    FieldRule(target="patient_id", candidates=("patient_id", "patientId")),
    FieldRule(target="patient_name", candidates=("patient_name", "patientName")),
    FieldRule(target="date_of_service", candidates=("dos_date", "dosDate", "date_of_service", "dateOfService", "date")),
    FieldRule(target="symptom_text", candidates=("symptom_segment", "symptomSegment", "symptom_wording", "symptomWording")),
    FieldRule(target="symptom_segment", candidates=("symptom_segment", "symptomSegment", "symptom_wording", "symptomWording"),
              default=settings.aggregation.unspecified_symptom),
    FieldRule(target="diagnosis", candidates=("diagnosis", "diagnosis_name", "diagnosisName"),
              default=settings.aggregation.unspecified_diagnosis),
    FieldRule(target="diagnostic_category", candidates=("diagnostic_category", "diagnosticCategory", "diagnosis_category", "diagnosisCategory"),
              default=settings.aggregation.unspecified_category),
    FieldRule(target="symptom_id", candidates=("symptom_id", "symptomId", "symptomID"),
              default=settings.aggregation.unspecified_id),
    FieldRule(target="problem", candidates=("symp_prob", "sympProb", "problem", "is_problem")),
    FieldRule(target="housing_status", candidates=("housing_status", "housingStatus")),
    FieldRule(target="food_status", candidates=("food_status", "foodStatus")),
    FieldRule(target="financial_status", candidates=("financial_status", "financialStatus")),
)

SERVER_ROW_RULES: Tuple[FieldRule, ...] = (
    FieldRule(target="category", candidates=("id", "label", "name", "category", "symptom_segment", "symptomSegment",
                                             "diagnosis", "diagnostic_category", "diagnosticCategory",
                                             "symptom_id", "symptomId")),
    FieldRule(target="raw_count", candidates=("raw_value", "rawValue", "raw_count", "rawCount", "count", "value")),
    FieldRule(target="problem", candidates=("symp_prob", "sympProb")),
    FieldRule(target="diagnosis", candidates=("diagnosis", "diagnosisName")),
    FieldRule(target="housing_status", candidates=("housing_status", "housingStatus")),
    FieldRule(target="food_status", candidates=("food_status", "foodStatus")),
    FieldRule(target="financial_status", candidates=("financial_status", "financialStatus")),
)

PATIENT_COLUMNS: List[str] = [rule.target for rule in PATIENT_FIELD_RULES]
EXTRACTED_COLUMNS: List[str] = [rule.target for rule in EXTRACTED_FIELD_RULES] + ["is_problem", "position"]
SERVER_ROW_COLUMNS: List[str] = [rule.target for rule in SERVER_ROW_RULES] + ["is_problem", "position"]


# --- Scalar Normalization ----------------------------------------------------------

def classify_age(value: Any) -> str:
    """Maps an age (or an existing age-range label) to its fixed bucket."""
    return classify_age_series(pd.Series([value], dtype=object)).iloc[0]


def classify_age_series(values: pd.Series) -> pd.Series:
    """
    Vectorized age bucketing. Existing bucket labels pass through unchanged;
    numeric ages are cut into the fixed partition; anything else, negative
    ages included, becomes "No Data Available".
    """
    cfg = settings.demographics
    no_data = settings.aggregation.no_data_label
    if values.empty:
        return pd.Series([], index=values.index, dtype=object)

    as_text = values.astype(object).map(lambda v: v.strip() if isinstance(v, str) else v)
    is_label = as_text.isin(cfg.age_buckets + [no_data])

    numeric = convert_to_numeric(values.astype(object), target_type=float)
    bins = [*cfg.age_bucket_edges, np.inf]
    bucketed = pd.cut(numeric, bins=bins, labels=cfg.age_buckets, right=False).astype(object)

    result = bucketed.where(bucketed.notna(), no_data).astype(object)
    result[is_label] = as_text[is_label]
    return result


def normalize_vocabulary_value(value: Any, vocabulary: Sequence[VocabularyEntry]) -> str:
    """Case-insensitive match of free text against a canonical vocabulary."""
    if is_missing(value) or not isinstance(value, str):
        return settings.aggregation.no_data_label
    token = value.strip().lower()
    for entry in vocabulary:
        if token in entry.exact or any(re.search(rf"\b{re.escape(word)}\b", token) for word in entry.contains):
            return entry.label
    return settings.aggregation.other_label


def normalize_gender(value: Any) -> str:
    return normalize_vocabulary_value(value, settings.demographics.gender_vocabulary)


def normalize_race(value: Any) -> str:
    return normalize_vocabulary_value(value, settings.demographics.race_vocabulary)


def is_problem_flag(value: Any) -> bool:
    """Boolean-like "Problem" marker used to tell HRSN rows from clinical symptoms."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if is_missing(value):
        return False
    return str(value).strip().lower() in settings.aggregation.problem_values


def _normalize_identifier(value: Any) -> Optional[str]:
    if is_missing(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def status_from_flag(value: Any) -> Any:
    """Reads a yes/no insecurity flag as a status ("yes" -> "insecure"); statuses pass through."""
    if is_missing(value):
        return value
    return settings.filters.flag_statuses.get(_normalize_identifier(value).lower(), value)


# --- Frame Normalization ----------------------------------------------------------

def to_frame(data: RecordInput) -> pd.DataFrame:
    """Accepts a DataFrame, an iterable of mappings, or None."""
    if data is None:
        return pd.DataFrame()
    if isinstance(data, pd.DataFrame):
        return data
    rows = [dict(row) for row in data if isinstance(row, Mapping)]
    return pd.DataFrame(rows)


def _apply_rules(df: pd.DataFrame, rules: Sequence[FieldRule]) -> DataPipeline:
    pipeline = DataPipeline(df)
    for rule in rules:
        pipeline.coalesce_columns(rule.target, rule.candidates, rule.default)
    return pipeline


def normalize_patient_records(patients: RecordInput) -> pd.DataFrame:
    """
    Produces the canonical patient roster: one row per input patient with
    every demographic column filled and age/gender/race mapped onto their
    closed enumerations. Patients without an identifier get a positional one
    so they still count toward the population.
    """
    raw = to_frame(patients)
    if raw.empty:
        return pd.DataFrame(columns=PATIENT_COLUMNS)

    df = _apply_rules(raw.reset_index(drop=True), PATIENT_FIELD_RULES).keep_columns(PATIENT_COLUMNS).get_df()

    ids = df['patient_id'].map(_normalize_identifier)
    missing_ids = ids.isna()
    if missing_ids.any():
        logger.debug(f"[patients] {int(missing_ids.sum())} patient(s) without an identifier; assigning positional ids.")
        ids[missing_ids] = [f"row-{i}" for i in df.index[missing_ids]]
    df['patient_id'] = ids

    # The status columns may have been resolved from yes/no insecurity flags.
    for column in ('housing_status', 'food_status'):
        df[column] = df[column].map(status_from_flag)

    df['age_range'] = classify_age_series(df['age_range'])
    df['gender'] = df['gender'].map(normalize_gender)
    df['race'] = df['race'].map(normalize_race)
    return df


def normalize_extracted_records(
    records: RecordInput, patients: Optional[pd.DataFrame] = None
) -> pd.DataFrame:
    """
    Produces canonical extracted-symptom rows. Records that lack their own
    HRSN status copies inherit them from the linked, already-normalized
    patient roster when one is given.
    """
    raw = to_frame(records)
    if raw.empty:
        return pd.DataFrame(columns=EXTRACTED_COLUMNS)

    pipeline = _apply_rules(raw.reset_index(drop=True), EXTRACTED_FIELD_RULES)
    df = pipeline.keep_columns([rule.target for rule in EXTRACTED_FIELD_RULES]) \
                 .convert_date_columns(['date_of_service']).get_df()

    df['patient_id'] = df['patient_id'].map(_normalize_identifier)
    df['is_problem'] = df['problem'].map(is_problem_flag).astype(bool)
    df['position'] = np.arange(len(df))

    if patients is not None and not patients.empty:
        df = _inherit_patient_statuses(df, patients)
    return df


def _inherit_patient_statuses(records: pd.DataFrame, patients: pd.DataFrame) -> pd.DataFrame:
    roster = patients.drop_duplicates('patient_id').set_index('patient_id')
    status_sources = {
        "housing_status": "housing_status",
        "food_status": "food_status",
        "financial_status": "financial_status_filter",
    }
    for record_col, patient_col in status_sources.items():
        if patient_col not in roster.columns:
            continue
        inherited = records['patient_id'].map(roster[patient_col])
        missing = records[record_col].map(is_missing).astype(bool)
        records.loc[missing, record_col] = inherited[missing]
    return records


def normalize_server_rows(rows: RecordInput) -> pd.DataFrame:
    """Canonical form of a server-pre-aggregated summary (one row per category)."""
    raw = to_frame(rows)
    if raw.empty:
        return pd.DataFrame(columns=SERVER_ROW_COLUMNS)

    df = _apply_rules(raw.reset_index(drop=True), SERVER_ROW_RULES) \
        .keep_columns([rule.target for rule in SERVER_ROW_RULES]).get_df()
    df['category'] = df['category'].map(
        lambda v: settings.aggregation.no_data_label if is_missing(v) else str(v).strip()
    )
    df['raw_count'] = convert_to_numeric(df['raw_count'].astype(object), default_value=0).clip(lower=0).astype(int)
    df['is_problem'] = df['problem'].map(is_problem_flag).astype(bool)
    df['position'] = np.arange(len(df))
    return df
