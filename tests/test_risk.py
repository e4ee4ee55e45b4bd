import pandas as pd
import pytest

from analytics.models import DataCondition, FilterCriteria
from analytics.risk import classify_symptom_counts, risk_placeholder, stratify_risk
from config.settings import settings
from data_processing.normalization import normalize_extracted_records

TIER_LABELS = [tier.label for tier in settings.risk.tiers]


@pytest.mark.parametrize("count, expected", [
    (0, "No Risk (0 symptoms)"),
    (1, "Low Risk (1-9 symptoms)"),
    (9, "Low Risk (1-9 symptoms)"),
    (10, "Low-Medium Risk (10-19 symptoms)"),
    (20, "Medium Risk (20-49 symptoms)"),
    (99, "Medium-High Risk (50-99 symptoms)"),
    (100, "High Risk (100+ symptoms)"),
    (5000, "High Risk (100+ symptoms)"),
])
def test_classify_symptom_counts(count, expected):
    assert classify_symptom_counts(pd.Series([count])).iloc[0] == expected


def test_stratify_risk_assigns_every_patient_once(records):
    dataset = stratify_risk(["P1", "P2", "P3", "P4"], records)
    assert [b.id for b in dataset.buckets] == TIER_LABELS
    counts = dataset.raw_counts()
    assert counts["Low Risk (1-9 symptoms)"] == 3
    assert counts["No Risk (0 symptoms)"] == 1
    assert sum(counts.values()) == 4
    assert dataset.denominator == 4
    assert not dataset.is_placeholder


def test_tier_order_is_fixed_regardless_of_counts():
    records = normalize_extracted_records(
        [{"patient_id": "A", "symptom_segment": "Anxiety"} for _ in range(120)]
    )
    dataset = stratify_risk(["A", "B", "C"], records)
    assert [b.id for b in dataset.buckets] == TIER_LABELS
    assert dataset.buckets[0].raw_count == 1
    assert dataset.buckets[-1].raw_count == 2
    assert dataset.buckets[-1].percentage == 67


def test_patients_without_records_are_no_risk():
    dataset = stratify_risk(["A", "B"], normalize_extracted_records(None))
    assert dataset.raw_counts()["No Risk (0 symptoms)"] == 2
    assert dataset.source == "patients"


def test_empty_population_returns_flagged_placeholder():
    dataset = stratify_risk([], normalize_extracted_records(None))
    assert dataset.is_placeholder
    assert DataCondition.PLACEHOLDER in dataset.conditions
    assert [b.id for b in dataset.buckets] == TIER_LABELS
    assert dataset.denominator == sum(settings.placeholders.risk_tiers.values())


def test_risk_placeholder_percentages():
    dataset = risk_placeholder()
    assert dataset.buckets[0].raw_count == 3
    assert dataset.buckets[0].percentage == 13


def test_filters_narrow_symptoms_but_keep_population(records):
    dataset = stratify_risk(["P1", "P2", "P3", "P4"], records, FilterCriteria(housing="insecure"))
    counts = dataset.raw_counts()
    assert counts["Low Risk (1-9 symptoms)"] == 1
    assert counts["No Risk (0 symptoms)"] == 3
    assert dataset.denominator == 4
