# bhi_project_root/data_processing/__init__.py
#
# Data Processing Package API
# This file initializes the data_processing package and defines its public API.
# It provides a clean, high-level interface for loading the raw data sources
# and normalizing them into the canonical frames the analytics engine reads.

"""
Initializes the data_processing package, making key functions and classes
available at the top level for easier, cleaner imports in other modules.
"""

# --- Primary Data Loading Functions ---
# These functions return consistently cleaned DataFrames (or the raw server
# aggregate mapping) and never raise on a missing or malformed source.
from .loaders import (
    DataLoader,
    load_patient_records,
    load_extracted_records,
    load_server_aggregates,
)

# --- Data Preparation & Cleaning ---
# The DataPipeline provides a fluent (chainable) interface for applying a
# sequence of cleaning and transformation steps.
from .pipeline import DataPipeline

# --- Record Normalization ---
# Canonical field resolution and demographic classification.
from .normalization import (
    FieldRule,
    classify_age,
    normalize_gender,
    normalize_race,
    normalize_patient_records,
    normalize_extracted_records,
    normalize_server_rows,
)


# --- Define the Public API for the data_processing package ---
__all__ = [
    # --- Loading ---
    "DataLoader",
    "load_patient_records",
    "load_extracted_records",
    "load_server_aggregates",

    # --- Preparation ---
    "DataPipeline",

    # --- Normalization ---
    "FieldRule",
    "classify_age",
    "normalize_gender",
    "normalize_race",
    "normalize_patient_records",
    "normalize_extracted_records",
    "normalize_server_rows",
]
