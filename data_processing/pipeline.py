# bhi_project_root/data_processing/pipeline.py
#
# Fluent Data Processing Pipeline
# This module provides a chainable class for applying a sequence of data
# cleaning and preparation steps to patient and extracted-symptom tables.

import pandas as pd
import logging
from typing import Any, List, Sequence
from collections import Counter

try:
    from .helpers import is_missing
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in pipeline.py: could not import helpers. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


class DataPipeline:
    """
    A fluent interface for applying a sequence of data processing operations.
    Enables expressive, readable, and chainable cleaning pipelines.
    """
    def __init__(self, df: pd.DataFrame):
        if not isinstance(df, pd.DataFrame):
            raise TypeError("DataPipeline must be initialized with a pandas DataFrame.")
        self._df = df.copy()

    def get_df(self) -> pd.DataFrame:
        """Returns the processed DataFrame."""
        return self._df

    def clean_column_names(self) -> 'DataPipeline':
        """
        Standardizes column names to lower snake_case. camelCase names are split
        into words first, so `symptomSegment` and `symptom_segment` agree.
        """
        if self._df.empty and len(self._df.columns) == 0:
            return self
        try:
            new_cols = (
                self._df.columns.astype(str)
                .str.strip()
                .str.replace(r'(?<=[a-z0-9])(?=[A-Z])', '_', regex=True)
                .str.replace(r'(?<=[A-Z])(?=[A-Z][a-z])', '_', regex=True)
                .str.lower()
                .str.replace(r'[^0-9a-z_]+', '_', regex=True)
                .str.replace(r'_{2,}', '_', regex=True).str.strip('_')
            )
            new_cols = [f"unnamed_col_{i}" if not name else name for i, name in enumerate(new_cols)]

            counts = Counter(new_cols)
            if max(counts.values(), default=0) > 1:
                seen = Counter()
                final_cols = []
                for col_name in new_cols:
                    if counts[col_name] > 1:
                        suffix = seen[col_name]
                        seen[col_name] += 1
                        final_cols.append(f"{col_name}_{suffix}")
                    else:
                        final_cols.append(col_name)
                self._df.columns = final_cols
            else:
                self._df.columns = new_cols
        except (TypeError, ValueError) as e:
            logger.error(f"Error standardizing column names: {e}", exc_info=True)
        return self

    def coalesce_columns(
        self, target: str, candidates: Sequence[str], default: Any = None
    ) -> 'DataPipeline':
        """
        Builds `target` from the first non-missing value among `candidates`,
        checked left to right per row. Rows where every candidate is missing get
        `default`. Candidate columns absent from the frame are skipped.
        """
        present = [col for col in candidates if col in self._df.columns]
        resolved = pd.Series([None] * len(self._df), index=self._df.index, dtype=object)
        for col in present:
            column = self._df[col].astype(object)
            fill_mask = resolved.map(is_missing).astype(bool) & ~column.map(is_missing).astype(bool)
            resolved[fill_mask] = column[fill_mask]
        if default is not None:
            resolved = resolved.map(lambda v: default if is_missing(v) else v)
        self._df[target] = resolved
        return self

    def convert_date_columns(self, date_columns: List[str], errors: str = 'coerce') -> 'DataPipeline':
        """Converts specified columns to datetime objects."""
        if not date_columns:
            return self
        for col in date_columns:
            if col in self._df.columns:
                self._df[col] = pd.to_datetime(self._df[col], errors=errors)
            else:
                logger.debug(f"Date conversion skipped: Column '{col}' not found.")
        return self

    def keep_columns(self, columns: Sequence[str]) -> 'DataPipeline':
        """Drops every column not listed, creating listed columns that are absent."""
        for col in columns:
            if col not in self._df.columns:
                self._df[col] = None
        self._df = self._df[list(columns)]
        return self
