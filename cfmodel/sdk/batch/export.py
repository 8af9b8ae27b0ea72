"""Flatten batch results for CSV export (one row per provider per scenario)."""

import csv
import io
from typing import Any, Dict, List

from .schemas import BatchResults, BatchRowResult

RESULT_COLUMNS = (
    "current_tcc",
    "modeled_tcc",
    "change_in_tcc",
    "current_cf",
    "modeled_cf",
    "total_wrvus",
    "annual_threshold",
    "current_incentive",
    "annual_incentive",
    "psq_dollars",
    "tcc_percentile",
    "modeled_tcc_percentile",
    "wrvu_percentile",
    "cf_percentile_modeled",
    "alignment_gap_baseline",
    "alignment_gap_modeled",
    "imputed_tcc_per_wrvu_ratio_current",
    "imputed_tcc_per_wrvu_ratio_modeled",
)

FLAG_COLUMNS = ("underpay_risk", "cf_below_25", "modeled_in_policy_band", "fmv_check_suggested")


def row_to_record(row: BatchRowResult) -> Dict[str, Any]:
    """Flatten one BatchRowResult to a wide record.

    Result columns are blank when the provider had no market match.
    """
    record: Dict[str, Any] = {
        "provider_id": row.provider_id,
        "provider_name": row.provider_name,
        "specialty": row.specialty,
        "division": row.division,
        "provider_type": row.provider_type,
        "scenario_id": row.scenario_id,
        "scenario_name": row.scenario_name,
        "match_status": row.match_status,
        "matched_market_specialty": row.matched_market_specialty or "",
        "risk_level": row.risk_level,
        "warnings": "; ".join(row.warnings),
    }

    results = row.results
    for column in RESULT_COLUMNS:
        value = getattr(results, column) if results else None
        record[column] = "" if value is None else value

    flags = results.governance_flags if results else None
    for column in FLAG_COLUMNS:
        record[column] = ("Y" if getattr(flags, column) else "N") if flags else ""

    return record


def batch_to_records(results: BatchResults) -> List[Dict[str, Any]]:
    return [row_to_record(r) for r in results.rows]


def export_batch_csv(results: BatchResults) -> str:
    """Export batch results to CSV text (empty string for no rows)."""
    records = batch_to_records(results)
    if not records:
        return ""

    buf = io.StringIO()
    writer = csv.DictWriter(buf, fieldnames=list(records[0].keys()), lineterminator="\n")
    writer.writeheader()
    writer.writerows(records)
    return buf.getvalue()
