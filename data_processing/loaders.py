# bhi_project_root/data_processing/loaders.py
#
# Unified Data Loading Engine
# Reads the patient roster, the NLP-extracted symptom table and the optional
# server-side aggregate summaries from the configured data source directory.
# Loaders never raise: a missing or malformed source yields an empty result
# and a log entry, and the engine degrades to its empty/placeholder paths.

import logging
import pandas as pd
from pathlib import Path
from typing import Optional, Any, Dict, List

# --- Core Application Imports ---
try:
    from config.settings import settings
    from .pipeline import DataPipeline
    from .helpers import robust_json_load
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in loaders.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

SERVER_AGGREGATE_KEYS = (
    "symptomSegmentData", "diagnosisData", "diagnosticCategoryData",
    "symptomIDData", "hrsnIndicatorData", "totalPatients",
)


class DataLoader:
    """
    A configuration-driven engine for loading the raw data sources. Column
    names are standardized on load so the normalizer sees one spelling per
    field; everything else is left to the normalizer.
    """
    def __init__(self, data_source_dir: Path):
        self.base_dir = Path(data_source_dir)
        if not self.base_dir.exists():
            logger.warning(f"Data source directory not found: {self.base_dir}. Loads will return empty data.")

    def _get_path(self, file_path: Path) -> Path:
        """Resolves a file path relative to the base data directory."""
        file_path = Path(file_path)
        return self.base_dir / file_path if not file_path.is_absolute() else file_path

    def load_csv(self, file_path: Path, date_cols: Optional[List[str]] = None) -> pd.DataFrame:
        """
        Loads a CSV file and applies the standard column cleaning. Returns an
        empty DataFrame if the source file is missing or malformed.
        """
        full_path = self._get_path(file_path)
        log_ctx = f"CSV({full_path.name})"
        logger.debug(f"[{log_ctx}] Attempting to load data from {full_path}")

        if not full_path.exists():
            # Optional sources are often absent.
            logger.warning(f"[{log_ctx}] Source file not found. Returning empty DataFrame.")
            return pd.DataFrame()

        try:
            df = pd.read_csv(full_path, low_memory=False)
        except pd.errors.EmptyDataError:
            logger.warning(f"[{log_ctx}] File is empty.")
            return pd.DataFrame()
        except (pd.errors.ParserError, UnicodeDecodeError, OSError) as e:
            logger.critical(f"[{log_ctx}] CRITICAL ERROR reading file: {e}", exc_info=True)
            return pd.DataFrame()

        if df.empty:
            logger.warning(f"[{log_ctx}] File has a header but no rows.")
            return pd.DataFrame()

        pipeline = DataPipeline(df).clean_column_names()
        if date_cols:
            pipeline.convert_date_columns(date_cols)

        df_processed = pipeline.get_df()
        logger.info(f"[{log_ctx}] Successfully loaded and cleaned {len(df_processed)} records.")
        return df_processed

    def load_json(self, file_path: Path, context: str = "JSON") -> Optional[Any]:
        return robust_json_load(self._get_path(file_path), context)


# --- Singleton Instance ---
_data_loader = DataLoader(settings.directories.data_sources)


# --- Public API Functions for Data Loading ---

def load_patient_records(loader: Optional[DataLoader] = None) -> pd.DataFrame:
    """Loads the structured patient roster."""
    return (loader or _data_loader).load_csv(settings.patient_records_path)


def load_extracted_records(loader: Optional[DataLoader] = None) -> pd.DataFrame:
    """Loads NLP-extracted symptom observations."""
    return (loader or _data_loader).load_csv(settings.extracted_records_path, date_cols=['dos_date'])


def load_server_aggregates(loader: Optional[DataLoader] = None) -> Optional[Dict[str, Any]]:
    """
    Loads the optional server-pre-aggregated summaries. Only the known summary
    keys are kept; anything that is not a JSON object is treated as absent.
    """
    data = (loader or _data_loader).load_json(settings.server_aggregates_path, "ServerAggregates")
    if data is None:
        return None
    if not isinstance(data, dict):
        logger.error(f"Server aggregates must be a JSON object, got {type(data).__name__}. Ignoring them.")
        return None
    unknown = sorted(set(data) - set(SERVER_AGGREGATE_KEYS))
    if unknown:
        logger.debug(f"Ignoring unrecognized server aggregate keys: {unknown}")
    return {key: data[key] for key in SERVER_AGGREGATE_KEYS if key in data}
