# bhi_project_root/analytics/reconciliation.py
#
# Dual-Source Reconciler
# Merges HRSN evidence from structured patient fields ("customer" data) with
# evidence found in NLP-extracted notes. Counts are sets of patients, so a
# patient reported by both sources is counted once.

import logging
import re
from typing import AbstractSet, Dict, Optional, Set

import pandas as pd

try:
    from config.settings import settings, HrsnCategoryConfig
    from data_processing.helpers import is_missing, safe_percentage
    from .aggregation import hrsn_record_mask
    from .models import DualSourceHrsnResult, DualSourceSummary, Provenance, ReconciledCategory
except ImportError as e:
    logging.basicConfig(level="CRITICAL")
    logging.critical(f"FATAL ERROR in reconciliation.py: A core dependency is missing. {e}", exc_info=True)
    raise

logger = logging.getLogger(__name__)


def determine_provenance(customer_count: int, extracted_count: int) -> Provenance:
    if customer_count > 0 and extracted_count > 0:
        return Provenance.BOTH
    if customer_count > 0:
        return Provenance.CUSTOMER
    if extracted_count > 0:
        return Provenance.EXTRACTED
    return Provenance.NONE


def reconcile_category(
    label: str,
    customer_patients: AbstractSet[str],
    extracted_patients: AbstractSet[str],
    total_patients: int,
) -> ReconciledCategory:
    """Combines the two patient sets of one HRSN category."""
    affected = set(customer_patients) | set(extracted_patients)
    return ReconciledCategory(
        label=label,
        customer_count=len(customer_patients),
        extracted_count=len(extracted_patients),
        total_affected=len(affected),
        data_source=determine_provenance(len(customer_patients), len(extracted_patients)),
        percentage=safe_percentage(len(affected), total_patients),
    )


def customer_affected_patients(patients: pd.DataFrame, category: HrsnCategoryConfig) -> Set[str]:
    """Patients whose structured field marks them as affected."""
    if patients.empty or category.patient_field not in patients.columns:
        return set()
    affected_values = {v.lower() for v in category.affected_values}
    flags = patients[category.patient_field].map(
        lambda v: not is_missing(v) and str(v).strip().lower() in affected_values
    ).astype(bool)
    return set(patients.loc[flags, 'patient_id'].astype(str))


def extracted_affected_patients(hrsn_records: pd.DataFrame, category: HrsnCategoryConfig) -> Set[str]:
    """Patients with an HRSN note row whose text names this category."""
    if hrsn_records.empty:
        return set()
    pattern = re.compile("|".join(re.escape(k) for k in category.keywords), re.IGNORECASE)
    hits = hrsn_records['symptom_text'].map(
        lambda text: isinstance(text, str) and bool(pattern.search(text))
    ).astype(bool)
    linked = hrsn_records.loc[hits, 'patient_id']
    return set(linked[linked.notna()].astype(str))


def reconcile_hrsn_sources(
    patients: pd.DataFrame,
    records: pd.DataFrame,
    total_patients: int,
    categories: Optional[Dict[str, HrsnCategoryConfig]] = None,
) -> DualSourceHrsnResult:
    """
    Builds the dual-source HRSN view. Categories nobody is affected by are
    left out; percentages divide by the whole population.
    """
    categories = categories or settings.hrsn.categories
    hrsn_records = records[hrsn_record_mask(records)] if not records.empty else records

    reconciled: Dict[str, ReconciledCategory] = {}
    any_customer: Set[str] = set()
    any_extracted: Set[str] = set()
    any_both: Set[str] = set()

    for key, category in categories.items():
        customer = customer_affected_patients(patients, category)
        extracted = extracted_affected_patients(hrsn_records, category)
        any_customer |= customer
        any_extracted |= extracted
        any_both |= customer & extracted

        result = reconcile_category(category.label, customer, extracted, total_patients)
        if result.total_affected == 0:
            logger.debug(f"[hrsn_dual_source] '{key}' has no affected patients; omitted.")
            continue
        reconciled[key] = result

    summary = DualSourceSummary(
        total_customer_data=len(any_customer),
        total_extracted_insights=len(any_extracted),
        total_dual_source=len(any_both),
    )
    logger.info(
        f"[hrsn_dual_source] {len(reconciled)} categories with data; "
        f"{summary.total_customer_data} customer / {summary.total_extracted_insights} extracted / "
        f"{summary.total_dual_source} dual-source patient(s) of {total_patients}."
    )
    return DualSourceHrsnResult(categories=reconciled, total_patients=int(total_patients), summary=summary)
