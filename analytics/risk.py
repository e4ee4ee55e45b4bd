# bhi_project_root/analytics/risk.py
#
# Risk Stratifier
# Buckets each patient's total symptom count into the configured severity
# tiers. Tier order is semantic (most severe first) and is never re-sorted by
# count. Every patient in the population lands in exactly one tier; patients
# without symptom rows sit in the zero-symptom tier.

import logging
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

try:
    from config.settings import settings, RiskTier
    from data_processing.helpers import safe_percentage
    from data_processing.normalization import RECORD_FILTER_COLUMNS
    from .filtering import apply_filters
    from .models import CategoryBucket, CategoryDataset, DataCondition, FilterCriteria
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in risk.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)

RISK_DIMENSION = "risk_stratification"


def classify_symptom_counts(counts: pd.Series, tiers: Optional[Sequence[RiskTier]] = None) -> pd.Series:
    """Maps per-patient symptom counts onto tier labels."""
    tiers = tiers or settings.risk.tiers
    ordered = sorted(tiers, key=lambda t: t.min_count)
    bins = [t.min_count for t in ordered] + [np.inf]
    labels = [t.label for t in ordered]
    return pd.cut(counts.astype(float), bins=bins, labels=labels, right=False).astype(object)


def _tier_buckets(tier_counts: pd.Series, denominator: int) -> List[CategoryBucket]:
    return [
        CategoryBucket(
            id=tier.label,
            raw_count=int(tier_counts.get(tier.label, 0)),
            percentage=safe_percentage(int(tier_counts.get(tier.label, 0)), denominator),
            denominator=int(denominator),
        )
        for tier in settings.risk.tiers
    ]


def risk_placeholder() -> CategoryDataset:
    """Illustrative tier distribution for when no patient or symptom data exists."""
    logger.warning(f"[{RISK_DIMENSION}] No patient or symptom data; returning the illustrative placeholder tiers.")
    distribution = pd.Series(settings.placeholders.risk_tiers, dtype=int)
    denominator = int(distribution.sum())
    buckets = _tier_buckets(distribution, denominator)
    return CategoryDataset(
        dimension=RISK_DIMENSION, buckets=buckets, source="placeholder", is_placeholder=True,
        denominator=denominator, total_buckets=len(buckets),
        conditions=[DataCondition.PLACEHOLDER],
    )


def stratify_risk(
    population_ids: Sequence[str],
    records: pd.DataFrame,
    criteria: Optional[FilterCriteria] = None,
    policy: Optional[str] = None,
) -> CategoryDataset:
    """
    Classifies every patient in `population_ids` by the number of (filtered)
    extracted records linked to them. The denominator is always the
    population size.
    """
    if len(population_ids) == 0:
        return risk_placeholder()

    bypassed: List[str] = []
    per_patient = pd.Series(0, index=pd.Index(list(population_ids), dtype=object), dtype=int)
    if not records.empty:
        filtered, bypassed = apply_filters(records, criteria, RECORD_FILTER_COLUMNS, policy, RISK_DIMENSION)
        linked = filtered[filtered['patient_id'].notna()]
        observed = linked.groupby('patient_id', sort=False).size()
        per_patient = per_patient.add(observed.reindex(per_patient.index, fill_value=0), fill_value=0).astype(int)

    tiers = classify_symptom_counts(per_patient)
    tier_counts = tiers.value_counts()
    denominator = len(per_patient)
    buckets = _tier_buckets(tier_counts, denominator)
    logger.debug(f"[{RISK_DIMENSION}] Stratified {denominator} patient(s): {dict(zip([b.id for b in buckets], [b.raw_count for b in buckets]))}")

    conditions = [DataCondition.FILTER_BACKSTOP] if bypassed else []
    return CategoryDataset(
        dimension=RISK_DIMENSION, buckets=buckets, source="extracted" if not records.empty else "patients",
        denominator=denominator, total_buckets=len(buckets), bypassed_filters=bypassed, conditions=conditions,
    )
