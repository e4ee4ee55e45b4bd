from datetime import date

import pandas as pd

from analytics.filtering import apply_filters
from analytics.models import FilterCriteria
from data_processing.normalization import PATIENT_FILTER_COLUMNS, RECORD_FILTER_COLUMNS


def test_identity_filter_returns_items_unchanged(records):
    for criteria in (None, FilterCriteria(), FilterCriteria(housing="ALL")):
        result = apply_filters(records, criteria, RECORD_FILTER_COLUMNS)
        assert len(result.items) == len(records)
        assert result.bypassed == []


def test_filter_matches_case_insensitively(records):
    result = apply_filters(records, FilterCriteria(housing="Insecure"), RECORD_FILTER_COLUMNS)
    assert set(result.items['patient_id']) == {"P1"}
    assert result.bypassed == []


def test_filters_compose_with_and(records):
    only_housing = apply_filters(records, FilterCriteria(housing="secure"), RECORD_FILTER_COLUMNS)
    both = apply_filters(records, FilterCriteria(housing="secure", food="insecure"), RECORD_FILTER_COLUMNS)
    assert set(only_housing.items['patient_id']) == {"P2", "P3"}
    assert set(both.items['patient_id']) == {"P2"}


def test_missing_factor_is_bypassed_by_default(bare_records):
    result = apply_filters(bare_records, FilterCriteria(housing="insecure"), RECORD_FILTER_COLUMNS)
    assert len(result.items) == len(bare_records)
    assert result.bypassed == ["housing"]
    # Statuses are synthesized from the active filter, neutral values otherwise.
    assert (result.items['housing_status'] == "insecure").all()
    assert (result.items['food_status'] == "secure").all()
    assert (result.items['financial_status'] == "medium").all()
    # The caller's frame is untouched.
    assert bare_records['housing_status'].isna().all()


def test_missing_factor_bypass_is_per_criterion(bare_records):
    criteria = FilterCriteria(housing="insecure", diagnosis="Insomnia disorder")
    result = apply_filters(bare_records, criteria, RECORD_FILTER_COLUMNS)
    assert result.bypassed == ["housing"]
    assert set(result.items['diagnosis']) == {"Insomnia disorder"}
    assert len(result.items) == 2


def test_strict_policy_applies_missing_factor_filters(bare_records):
    result = apply_filters(bare_records, FilterCriteria(housing="insecure"), RECORD_FILTER_COLUMNS, policy="strict")
    assert result.items.empty
    assert result.bypassed == []


def test_date_range_is_inclusive(records):
    criteria = FilterCriteria(date_from=date(2024, 1, 6), date_to=date(2024, 2, 1))
    result = apply_filters(records, criteria, RECORD_FILTER_COLUMNS)
    assert list(result.items['position']) == [1, 2, 3, 4]


def test_open_ended_date_range_drops_undated_records(records):
    result = apply_filters(records, FilterCriteria(date_from=date(2024, 3, 1)), RECORD_FILTER_COLUMNS)
    assert list(result.items['position']) == [5, 6, 7]


def test_patient_filters_use_patient_columns(patients):
    result = apply_filters(patients, FilterCriteria(financial="low"), PATIENT_FILTER_COLUMNS)
    assert list(result.items['patient_id']) == ["P1"]


def test_empty_items_pass_through():
    empty = pd.DataFrame(columns=list(RECORD_FILTER_COLUMNS.values()))
    result = apply_filters(empty, FilterCriteria(housing="insecure"), RECORD_FILTER_COLUMNS)
    assert result.items.empty
    assert result.bypassed == []


def test_filter_criteria_is_hashable():
    assert hash(FilterCriteria(housing="insecure")) == hash(FilterCriteria(housing="insecure"))
    assert FilterCriteria(dateFrom="2024-01-01").date_from == date(2024, 1, 1)
