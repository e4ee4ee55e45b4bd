import pandas as pd
import pytest

from analytics.engine import PopulationAnalyticsEngine
from data_processing.normalization import normalize_extracted_records, normalize_patient_records


PATIENTS = [
    {"patientId": "P1", "patientName": "Ana Reyes", "age": 17, "gender": "F", "race": "Caucasian",
     "housingStatus": "insecure", "foodStatus": "secure", "housing_insecurity": "yes",
     "food_insecurity": "no", "financial_status": "low", "access_to_transportation": "yes",
     "has_a_car": "yes"},
    {"patientId": "P2", "patientName": "Ben Ode", "age": 30, "gender": "male", "race": "Black",
     "housingStatus": "secure", "foodStatus": "insecure", "housing_insecurity": "no",
     "food_insecurity": "yes", "financial_status": "medium", "access_to_transportation": "limited",
     "has_a_car": "no"},
    {"patientId": "P3", "patientName": "Cleo Park", "age": 70, "gender": "Woman", "race": "Latina",
     "housingStatus": "secure", "foodStatus": "secure", "housing_insecurity": "no",
     "food_insecurity": "no", "financial_status": "high", "access_to_transportation": "yes",
     "has_a_car": "yes"},
    {"patientId": "P4", "patientName": "Dev Shah", "age": "abc"},
]

RECORDS = [
    {"patientId": "P1", "symptomSegment": "Anxiety", "diagnosis": "Generalized anxiety disorder",
     "diagnosticCategory": "Anxiety Disorders", "symptomId": "SYM-1", "dosDate": "2024-01-05"},
    {"patientId": "P1", "symptomSegment": "Anxiety", "diagnosis": "Generalized anxiety disorder",
     "diagnosticCategory": "Anxiety Disorders", "symptomId": "SYM-1", "dosDate": "2024-01-06"},
    {"patientId": "P1", "symptomSegment": "Insomnia", "diagnosis": "Insomnia disorder",
     "diagnosticCategory": "Sleep Disorders", "symptomId": "SYM-2", "dosDate": "2024-01-06"},
    {"patientId": "P2", "symptomSegment": "Insomnia", "diagnosis": "Insomnia disorder",
     "diagnosticCategory": "Sleep Disorders", "symptomId": "SYM-2", "dosDate": "2024-02-01"},
    {"patientId": "P2", "symptomSegment": "Problem: Housing instability", "sympProb": "Problem",
     "diagnosis": "Z59.0 Homelessness", "diagnosticCategory": "Social Determinants",
     "symptomId": "Z59", "dosDate": "2024-02-01"},
    {"patientId": "P3", "symptomSegment": "Low mood", "diagnosis": "Major depressive disorder",
     "diagnosticCategory": "Mood Disorders", "symptomId": "SYM-3", "dosDate": "2024-03-10"},
    {"patientId": "P3", "symptomSegment": "Problem: Housing instability", "sympProb": "Problem",
     "diagnosis": "Z59.0 Homelessness", "diagnosticCategory": "Social Determinants",
     "symptomId": "Z59", "dosDate": "2024-03-10"},
    {"patientId": "P3", "symptomSegment": "Problem: Housing instability", "sympProb": "Problem",
     "diagnosis": "Z59.0 Homelessness", "diagnosticCategory": "Social Determinants",
     "symptomId": "Z59", "dosDate": "2024-03-11"},
    {"patientId": "P1", "symptomSegment": "Food insecurity reported", "diagnosis": "Z59.4",
     "diagnosticCategory": "Social Determinants", "symptomId": "Z59.4"},
]


@pytest.fixture
def raw_patients():
    return [dict(p) for p in PATIENTS]


@pytest.fixture
def raw_records():
    return [dict(r) for r in RECORDS]


@pytest.fixture
def patients(raw_patients):
    return normalize_patient_records(raw_patients)


@pytest.fixture
def records(raw_records, patients):
    return normalize_extracted_records(raw_records, patients)


@pytest.fixture
def bare_records(raw_records):
    """Extracted records with no HRSN statuses of their own and no roster to inherit from."""
    return normalize_extracted_records(raw_records)


@pytest.fixture
def engine(raw_patients, raw_records):
    return PopulationAnalyticsEngine(patients=raw_patients, records=raw_records)


@pytest.fixture
def empty_engine():
    return PopulationAnalyticsEngine(patients=pd.DataFrame(), records=[])
