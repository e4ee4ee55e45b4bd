import json
import logging

import pandas as pd
import pytest

from analytics.engine import PopulationAnalyticsEngine
from config.settings import Settings, configure_logging, settings
from data_processing.helpers import is_missing, robust_json_load
from data_processing.loaders import DataLoader, load_extracted_records, load_server_aggregates
from data_processing.pipeline import DataPipeline


@pytest.fixture
def data_dir(tmp_path):
    (tmp_path / "patients.csv").write_text(
        "patientId,patientName,age,gender,race,housingStatus\n"
        "P1,Ana Reyes,17,F,White,insecure\n"
        "P2,Ben Ode,40,M,Asian,secure\n"
    )
    (tmp_path / "extracted_symptoms.csv").write_text(
        "patientId,dosDate,symptomSegment,diagnosis,diagnosticCategory,symptomID,sympProb\n"
        "P1,2024-01-05,Anxiety,GAD,Anxiety Disorders,SYM-1,Symptom\n"
        "P2,2024-01-07,Problem: Food insecurity,Z59.4,Social Determinants,Z59.4,Problem\n"
    )
    (tmp_path / "server_aggregates.json").write_text(json.dumps({
        "diagnosisData": [{"id": "GAD", "rawValue": 1}],
        "totalPatients": 2,
        "debugInfo": {"build": 7},
    }))
    return tmp_path


def test_clean_column_names_splits_camel_case():
    df = pd.DataFrame(columns=["patientId", "symptomID", "dos_date", " Zip Code ", "HRSNIndicator"])
    cleaned = DataPipeline(df).clean_column_names().get_df()
    assert list(cleaned.columns) == ["patient_id", "symptom_id", "dos_date", "zip_code", "hrsn_indicator"]


def test_clean_column_names_dedupes():
    df = pd.DataFrame([[1, 2]], columns=["patientId", "patient_id"])
    cleaned = DataPipeline(df).clean_column_names().get_df()
    assert list(cleaned.columns) == ["patient_id_0", "patient_id_1"]


def test_pipeline_rejects_non_frames():
    with pytest.raises(TypeError):
        DataPipeline([{"a": 1}])


def test_coalesce_columns_fills_per_row():
    df = pd.DataFrame({"a": [None, "x", "n/a"], "b": ["y", "z", None]})
    result = DataPipeline(df).coalesce_columns("c", ["a", "b", "missing"], default="none").get_df()
    assert list(result["c"]) == ["y", "x", "none"]


def test_is_missing():
    assert is_missing(None) and is_missing(float("nan")) and is_missing(" N/A ") and is_missing([])
    assert not is_missing(0) and not is_missing("No") and not is_missing(False)


def test_load_csv_cleans_columns_and_dates(data_dir):
    loader = DataLoader(data_dir)
    df = load_extracted_records(loader)
    assert "symptom_id" in df.columns
    assert pd.api.types.is_datetime64_any_dtype(df["dos_date"])


def test_missing_sources_yield_empty_results(tmp_path):
    loader = DataLoader(tmp_path / "nowhere")
    assert loader.load_csv("patients.csv").empty
    assert load_server_aggregates(loader) is None


def test_malformed_json_is_ignored(tmp_path):
    (tmp_path / "server_aggregates.json").write_text("{not json")
    assert robust_json_load(tmp_path / "server_aggregates.json") is None
    assert load_server_aggregates(DataLoader(tmp_path)) is None


def test_server_aggregates_keep_known_keys(data_dir):
    aggregates = load_server_aggregates(DataLoader(data_dir))
    assert set(aggregates) == {"diagnosisData", "totalPatients"}


def test_engine_from_data_sources(data_dir):
    engine = PopulationAnalyticsEngine.from_data_sources(DataLoader(data_dir))
    assert engine.total_patients == 2
    assert engine.get_category_data("diagnosis").source == "server"
    hrsn = engine.get_category_data("hrsn_indicator")
    assert hrsn.raw_counts() == {"Food insecurity": 1}
    assert hrsn.buckets[0].percentage == 50
    assert engine.get_category_data("symptom_segment").raw_counts() == {"Anxiety": 1}


def test_settings_defaults():
    assert settings.aggregation.default_limit == 10
    assert settings.filters.missing_factor_policy == "assume_match"
    assert [t.label for t in settings.risk.tiers][0].startswith("High Risk")
    assert set(settings.app.model_dump()) == {"name", "version", "log_level", "log_format", "log_date_format"}


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("BHI_FILTERS__MISSING_FACTOR_POLICY", "strict")
    monkeypatch.setenv("BHI_AGGREGATION__DEFAULT_LIMIT", "20")
    fresh = Settings()
    assert fresh.filters.missing_factor_policy == "strict"
    assert fresh.aggregation.default_limit == 20


def test_settings_reject_inconsistent_limits(monkeypatch):
    monkeypatch.setenv("BHI_AGGREGATION__MIN_LIMIT", "50")
    with pytest.raises(ValueError):
        Settings()


def test_configure_logging_applies_settings(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))
    configure_logging(Settings(app={"log_level": "WARNING"}))
    assert calls[0]["level"] == "WARNING"
    assert calls[0]["format"] == settings.app.log_format
    assert calls[0]["force"] is True
