# bhi_project_root/config/settings.py
#
# Centralized Application Configuration
# This file defines the engine's configuration using Pydantic for validation
# and type safety. It loads settings from environment variables or a .env file,
# so thresholds and vocabularies can be tuned per deployment without code edits.

import logging
from pathlib import Path
from typing import List, Dict, Literal, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Define Project Root ---
# This is the single source of truth for all file paths.
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# --- Logger for Settings Module ---
settings_logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# 1. NESTED CONFIGURATION MODELS
# -----------------------------------------------------------------------------

class AppConfig(BaseModel):
    """Core application metadata and logging settings."""
    name: str = "Behavioral Health Insights"
    version: str = "3.4.0"

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    log_format: str = "%(asctime)s - %(name)s.%(funcName)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"

class DirectoryConfig(BaseModel):
    """Manages the key directory paths."""
    root: Path = PROJECT_ROOT
    data_sources: Path = root / "data_sources"

class AggregationConfig(BaseModel):
    """Limits, labels and keyword rules shared by every category aggregator."""
    default_limit: int = 10
    min_limit: int = 5
    max_limit: int = 100

    no_data_label: str = "No Data Available"
    other_label: str = "Other"

    unspecified_symptom: str = "Unspecified Symptom"
    unspecified_diagnosis: str = "Unspecified Diagnosis"
    unspecified_category: str = "Unspecified Category"
    unspecified_id: str = "Unspecified ID"
    unknown_hrsn: str = "Unknown HRSN"

    hrsn_keywords: List[str] = ["housing", "food", "transport", "economic", "social"]
    hrsn_prefixes: List[str] = ["Problem:", "Z-Code:"]
    problem_values: List[str] = ["problem", "true", "yes", "1"]

    @model_validator(mode='after')
    def check_limit_range(self) -> 'AggregationConfig':
        if not (0 < self.min_limit <= self.default_limit <= self.max_limit):
            raise ValueError(
                f"Limits must satisfy 0 < min <= default <= max, got "
                f"{self.min_limit}/{self.default_limit}/{self.max_limit}"
            )
        return self

class VocabularyEntry(BaseModel):
    """A canonical label and the raw tokens that map onto it."""
    label: str
    exact: List[str] = []
    contains: List[str] = []

class DemographicsConfig(BaseModel):
    """Fixed demographic enumerations and free-text vocabularies."""
    age_buckets: List[str] = ["0-17", "18-24", "25-34", "35-44", "45-54", "55-64", "65+"]
    # Lower bound of each age bucket; the last bucket is open-ended.
    age_bucket_edges: List[int] = [0, 18, 25, 35, 45, 55, 65]

    default_categories: Dict[str, List[str]] = {
        "age_range": ["0-17", "18-24", "25-34", "35-44", "45-54", "55-64", "65+", "No Data Available"],
        "gender": ["Male", "Female", "Other", "No Data Available"],
        "race": ["White", "Black", "Asian", "Hispanic", "Other", "No Data Available"],
    }

    # Tokens match whole words; the first entry that matches wins.
    gender_vocabulary: List[VocabularyEntry] = [
        VocabularyEntry(label="Female", exact=["f"], contains=["female", "woman"]),
        VocabularyEntry(label="Male", exact=["m"], contains=["male", "man"]),
    ]
    race_vocabulary: List[VocabularyEntry] = [
        VocabularyEntry(label="White", contains=["white", "caucasian"]),
        VocabularyEntry(label="Black", contains=["black", "african"]),
        VocabularyEntry(label="Asian", contains=["asian"]),
        VocabularyEntry(label="Hispanic", contains=["hispanic", "latino", "latina", "latinx"]),
    ]

    @model_validator(mode='after')
    def check_age_edges(self) -> 'DemographicsConfig':
        if len(self.age_bucket_edges) != len(self.age_buckets):
            raise ValueError("age_bucket_edges must have one lower bound per age bucket.")
        if self.age_bucket_edges != sorted(set(self.age_bucket_edges)):
            raise ValueError("age_bucket_edges must be strictly increasing.")
        return self

class RiskTier(BaseModel):
    """One symptom-count band. `max_count=None` means open-ended."""
    label: str
    min_count: int
    max_count: Optional[int] = None

class RiskConfig(BaseModel):
    """Risk tiers in display order, most severe first."""
    tiers: List[RiskTier] = [
        RiskTier(label="High Risk (100+ symptoms)", min_count=100),
        RiskTier(label="Medium-High Risk (50-99 symptoms)", min_count=50, max_count=99),
        RiskTier(label="Medium Risk (20-49 symptoms)", min_count=20, max_count=49),
        RiskTier(label="Low-Medium Risk (10-19 symptoms)", min_count=10, max_count=19),
        RiskTier(label="Low Risk (1-9 symptoms)", min_count=1, max_count=9),
        RiskTier(label="No Risk (0 symptoms)", min_count=0, max_count=0),
    ]

    @model_validator(mode='after')
    def check_tiers_cover_counts(self) -> 'RiskConfig':
        """Tiers must partition [0, inf) with no gaps or overlaps."""
        ordered = sorted(self.tiers, key=lambda t: t.min_count)
        if not ordered or ordered[0].min_count != 0:
            raise ValueError("Risk tiers must start at a symptom count of 0.")
        for lower, upper in zip(ordered, ordered[1:]):
            if lower.max_count is None or lower.max_count + 1 != upper.min_count:
                raise ValueError(f"Risk tiers '{lower.label}' and '{upper.label}' leave a gap or overlap.")
        if ordered[-1].max_count is not None:
            raise ValueError("The highest risk tier must be open-ended.")
        return self

class FilterConfig(BaseModel):
    """Missing-factor backstop policy and neutral statuses."""
    # assume_match: a filter on a factor no item carries is a no-op.
    # strict: the filter is applied anyway and may remove every item.
    missing_factor_policy: Literal["assume_match", "strict"] = "assume_match"
    neutral_statuses: Dict[str, str] = {
        "housing": "secure",
        "food": "secure",
        "financial": "medium",
    }
    # Yes/no roster flags (housing_insecurity, food_insecurity) read as statuses.
    flag_statuses: Dict[str, str] = {
        "yes": "insecure", "true": "insecure", "1": "insecure",
        "no": "secure", "false": "secure", "0": "secure",
    }

class PlaceholderConfig(BaseModel):
    """Illustrative distributions shown when a chart would otherwise be blank."""
    hrsn_indicators: Dict[str, int] = {
        "Housing Insecurity": 38,
        "Food Insecurity": 32,
        "Transportation Issues": 14,
        "Economic Hardship": 7,
        "Social Isolation": 5,
    }
    # Keyed by risk tier label; must cover every tier.
    risk_tiers: Dict[str, int] = {
        "High Risk (100+ symptoms)": 3,
        "Medium-High Risk (50-99 symptoms)": 5,
        "Medium Risk (20-49 symptoms)": 7,
        "Low-Medium Risk (10-19 symptoms)": 4,
        "Low Risk (1-9 symptoms)": 3,
        "No Risk (0 symptoms)": 2,
    }

class HrsnCategoryConfig(BaseModel):
    """How one HRSN category is detected in structured and extracted data."""
    label: str
    patient_field: str
    affected_values: List[str]
    keywords: List[str]

class HrsnConfig(BaseModel):
    """Dual-source HRSN category definitions, keyed by category id."""
    categories: Dict[str, HrsnCategoryConfig] = {
        "housing_insecurity": HrsnCategoryConfig(
            label="Housing Insecurity", patient_field="housing_insecurity",
            affected_values=["yes", "true", "1", "insecure", "unstable", "homeless", "at risk"],
            keywords=["housing", "homeless", "shelter", "evict"]),
        "food_insecurity": HrsnCategoryConfig(
            label="Food Insecurity", patient_field="food_insecurity",
            affected_values=["yes", "true", "1", "insecure", "at risk"],
            keywords=["food", "hunger", "meal", "nutrition"]),
        "financial_status": HrsnCategoryConfig(
            label="Financial Stress", patient_field="financial_status",
            affected_values=["low", "poor", "strained", "insecure", "yes", "true", "1"],
            keywords=["financ", "economic", "income", "poverty", "unemploy"]),
        "access_to_transportation": HrsnCategoryConfig(
            label="Transportation Access", patient_field="access_to_transportation",
            affected_values=["no", "false", "0", "limited", "none"],
            keywords=["transport"]),
        "has_a_car": HrsnCategoryConfig(
            label="Vehicle Access", patient_field="has_a_car",
            affected_values=["no", "false", "0"],
            keywords=["vehicle", "no car"]),
    }

# -----------------------------------------------------------------------------
# 2. MAIN SETTINGS CLASS
# -----------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Main settings class for the analytics engine.
    Aggregates all configuration models and loads from environment variables.
    """
    model_config = SettingsConfigDict(
        env_prefix='BHI_',
        case_sensitive=False,
        env_nested_delimiter='__',
        env_file=f"{PROJECT_ROOT}/.env",
        extra='ignore'
    )

    # --- Nested Configuration Models ---
    app: AppConfig = Field(default_factory=AppConfig)
    directories: DirectoryConfig = Field(default_factory=DirectoryConfig)
    aggregation: AggregationConfig = Field(default_factory=AggregationConfig)
    demographics: DemographicsConfig = Field(default_factory=DemographicsConfig)
    risk: RiskConfig = Field(default_factory=RiskConfig)
    filters: FilterConfig = Field(default_factory=FilterConfig)
    placeholders: PlaceholderConfig = Field(default_factory=PlaceholderConfig)
    hrsn: HrsnConfig = Field(default_factory=HrsnConfig)

    # --- Data Source Paths (relative to directories.data_sources) ---
    patient_records_path: Path = Path("patients.csv")
    extracted_records_path: Path = Path("extracted_symptoms.csv")
    server_aggregates_path: Path = Path("server_aggregates.json")

    # --- Engine memoization ---
    cache_max_entries: int = 128

    @model_validator(mode='after')
    def check_risk_placeholder_covers_tiers(self) -> 'Settings':
        tier_labels = {tier.label for tier in self.risk.tiers}
        missing = tier_labels - set(self.placeholders.risk_tiers)
        if missing:
            raise ValueError(f"Risk placeholder distribution is missing tiers: {sorted(missing)}")
        return self


def configure_logging(app_settings: Optional[Settings] = None) -> None:
    """Sets up global logging based on the level defined in settings."""
    cfg = (app_settings or settings).app
    logging.basicConfig(
        level=cfg.log_level,
        format=cfg.log_format,
        datefmt=cfg.log_date_format,
        force=True  # Override any existing handlers
    )

# -----------------------------------------------------------------------------
# 3. SINGLETON INSTANCE
# -----------------------------------------------------------------------------

try:
    settings = Settings()
    settings_logger.info(
        f"Settings loaded for '{settings.app.name}' v{settings.app.version}. "
        f"LOG_LEVEL={settings.app.log_level}. PROJECT_ROOT='{PROJECT_ROOT}'"
    )
    if settings.filters.missing_factor_policy == "assume_match":
        settings_logger.debug(
            "Missing-factor policy is 'assume_match': filters on factors absent from the data are ignored."
        )
except Exception as e:
    settings_logger.critical(f"FATAL: Could not initialize application settings. Error: {e}", exc_info=True)
    raise
