import pandas as pd
import pytest

from analytics.aggregation import (
    aggregate_demographic,
    aggregate_hrsn_indicators,
    aggregate_records,
    aggregate_server_rows,
    build_buckets,
    clamp_limit,
    hrsn_placeholder,
    strip_hrsn_prefix,
    truncate,
)
from analytics.models import DataCondition, Dimension, FilterCriteria
from config.settings import settings
from data_processing.helpers import safe_percentage
from data_processing.normalization import normalize_patient_records, normalize_server_rows

NDA = settings.aggregation.no_data_label


@pytest.mark.parametrize("count, denominator, expected", [
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (1, 200, 1),
    (1, 201, 0),
    (5, 0, 0),
    (7, 4, 100),
])
def test_safe_percentage(count, denominator, expected):
    assert safe_percentage(count, denominator) == expected


def test_build_buckets_sorts_descending_and_keeps_ties_in_discovery_order():
    counts = pd.Series({"b": 1, "a": 3, "c": 1, "d": 3})
    buckets = build_buckets(counts, 8)
    assert [b.id for b in buckets] == ["a", "d", "b", "c"]
    assert [b.percentage for b in buckets] == [38, 38, 13, 13]


@pytest.mark.parametrize("requested, expected", [(None, 10), (1, 5), (7, 7), (1000, 100)])
def test_clamp_limit(requested, expected):
    assert clamp_limit(requested) == expected


def test_symptom_segments_exclude_problem_rows(records):
    dataset = aggregate_records(records, Dimension.SYMPTOM_SEGMENT, population_size=4)
    assert dataset.raw_counts() == {"Anxiety": 2, "Insomnia": 2, "Low mood": 1, "Food insecurity reported": 1}
    # Record-count denominator: raw counts sum to it.
    assert dataset.denominator == 6
    assert sum(dataset.raw_counts().values()) == dataset.denominator
    assert [b.percentage for b in dataset.buckets] == [33, 33, 17, 17]
    assert dataset.source == "extracted"


def test_diagnoses_divide_by_matched_records(records):
    dataset = aggregate_records(records, Dimension.DIAGNOSIS, population_size=4)
    assert [b.id for b in dataset.buckets] == [
        "Z59.0 Homelessness", "Generalized anxiety disorder", "Insomnia disorder",
        "Major depressive disorder", "Z59.4",
    ]
    assert dataset.denominator == 9
    assert dataset.buckets[0].percentage == 33


def test_symptom_ids_divide_by_patients(records):
    dataset = aggregate_records(records, Dimension.SYMPTOM_ID, population_size=4)
    assert dataset.denominator == 4
    assert dataset.buckets[0].id == "Z59"
    assert dataset.buckets[0].raw_count == 3
    assert dataset.buckets[0].percentage == 75


def test_aggregate_records_with_patient_linkage(records, patients):
    dataset = aggregate_records(records, Dimension.SYMPTOM_SEGMENT, population_size=4,
                                include_linkage=True, roster=patients)
    anxiety = dataset.buckets[0]
    assert [p.patient_id for p in anxiety.linked_patients] == ["P1"]
    assert anxiety.linked_patients[0].patient_name == "Ana Reyes"


def test_filtered_aggregate_flags_backstop(bare_records):
    dataset = aggregate_records(bare_records, Dimension.SYMPTOM_SEGMENT, FilterCriteria(housing="insecure"), 4)
    assert sum(dataset.raw_counts().values()) == 6
    assert dataset.bypassed_filters == ["housing"]
    assert DataCondition.FILTER_BACKSTOP in dataset.conditions


def test_truncate_keeps_top_buckets(records):
    dataset = aggregate_records(records, Dimension.DIAGNOSIS, population_size=4)
    limited = truncate(dataset, 5)
    assert len(limited) == 5
    assert limited.total_buckets == dataset.total_buckets


@pytest.mark.parametrize("text, expected", [
    ("Problem: Housing instability", "Housing instability"),
    ("Z-Code: Food insecurity", "Food insecurity"),
    ("Social isolation", "Social isolation"),
    ("Problem:", settings.aggregation.unknown_hrsn),
    (None, settings.aggregation.unknown_hrsn),
])
def test_strip_hrsn_prefix(text, expected):
    assert strip_hrsn_prefix(text) == expected


def test_hrsn_indicators_count_each_patient_once(records):
    dataset = aggregate_hrsn_indicators(normalize_server_rows(None), records, population_size=4)
    assert dataset.raw_counts() == {"Housing instability": 2, "Food insecurity reported": 1}
    assert dataset.buckets[0].percentage == 50
    assert not dataset.is_placeholder


def test_hrsn_indicators_prefer_server_rows(records):
    server_rows = normalize_server_rows([{"id": "Housing Insecurity", "rawValue": 3}])
    dataset = aggregate_hrsn_indicators(server_rows, records, population_size=4)
    assert dataset.source == "server"
    assert dataset.raw_counts() == {"Housing Insecurity": 3}
    assert DataCondition.SERVER_AGGREGATE in dataset.conditions


def test_hrsn_indicators_fall_back_to_placeholder():
    dataset = aggregate_hrsn_indicators(normalize_server_rows(None), pd.DataFrame(), population_size=0)
    assert dataset.is_placeholder
    assert DataCondition.PLACEHOLDER in dataset.conditions
    assert dataset.raw_counts() == settings.placeholders.hrsn_indicators
    assert dataset.denominator == sum(settings.placeholders.hrsn_indicators.values())


def test_hrsn_placeholder_uses_population_when_known():
    dataset = hrsn_placeholder(200)
    assert dataset.denominator == 200
    assert dataset.buckets[0].percentage == 19


def test_server_rows_merge_repeated_categories():
    rows = normalize_server_rows([
        {"id": "Anxiety", "count": 4},
        {"id": "Insomnia", "count": 5},
        {"id": "Anxiety", "count": 3},
        {"id": "Housing", "count": 9, "sympProb": "Problem"},
    ])
    dataset = aggregate_server_rows(rows, Dimension.SYMPTOM_SEGMENT, population_size=10)
    assert dataset.raw_counts() == {"Anxiety": 7, "Insomnia": 5}
    assert dataset.denominator == 12


def test_demographics_report_every_fixed_category(patients):
    dataset = aggregate_demographic(patients, Dimension.AGE_RANGE)
    assert dataset.total_buckets == len(settings.demographics.default_categories["age_range"])
    assert [b.id for b in dataset.buckets[:4]] == ["0-17", "25-34", "65+", NDA]
    assert all(b.percentage == 25 for b in dataset.buckets[:4])
    assert all(b.raw_count == 0 for b in dataset.buckets[4:])
    assert dataset.denominator == 4


def test_three_patient_age_scenario():
    patients = normalize_patient_records([{"age": 17}, {"age": 18}, {"age": "abc"}])
    dataset = aggregate_demographic(patients, Dimension.AGE_RANGE)
    counts = dataset.raw_counts()
    assert counts["0-17"] == 1 and counts["18-24"] == 1 and counts[NDA] == 1
    assert {b.id: b.percentage for b in dataset.buckets if b.raw_count} == {"0-17": 33, "18-24": 33, NDA: 33}


def test_gender_ties_follow_fixed_category_order(patients):
    dataset = aggregate_demographic(patients, Dimension.GENDER)
    assert [b.id for b in dataset.buckets] == ["Female", "Male", NDA, "Other"]


def test_open_demographic_has_no_seeded_categories(patients):
    dataset = aggregate_demographic(patients, Dimension.FINANCIAL_STATUS)
    assert dataset.raw_counts() == {"low": 1, "medium": 1, "high": 1, NDA: 1}


def test_filtered_demographic_uses_filtered_denominator(patients):
    dataset = aggregate_demographic(patients, Dimension.AGE_RANGE, FilterCriteria(housing="insecure"))
    assert dataset.denominator == 1
    assert dataset.buckets[0].id == "0-17"
    assert dataset.buckets[0].percentage == 100
