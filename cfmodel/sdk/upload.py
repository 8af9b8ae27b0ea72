"""Provider and market file loading.

Accepts CSV, Excel (first sheet), JSON and YAML files. Column headers are
matched leniently: 'providerName', 'Provider Name' and 'provider_name' all
resolve to the provider_name field, and 'TCC_25' / 'tcc_25' to tcc_25. An
explicit mapping (field -> source header) takes precedence over header
matching.

Numeric cells tolerate commas, spaces and trailing junk ("1,234", "1 -");
anything unparseable becomes 0. Rows that miss required fields are reported
in the returned error list and skipped, never raised.
"""

import csv
import json
import logging
import re
import zipfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
import yaml
from pydantic import ValidationError

from .compute import num
from .schemas import MarketRow, ProviderRow

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xls")
SUPPORTED_SUFFIXES = (".csv", ".json", ".yaml", ".yml") + EXCEL_SUFFIXES
HEADER_ROW_SUFFIXES = (".csv",) + EXCEL_SUFFIXES

PROVIDER_TEXT_FIELDS = ("provider_id", "provider_name", "specialty", "division", "provider_type")
PROVIDER_NUMERIC_FIELDS = (
    "total_fte",
    "clinical_fte",
    "base_salary",
    "clinical_fte_salary",
    "non_clinical_pay",
    "work_rvus",
    "outside_wrvus",
    "total_wrvus",
    "current_cf",
    "current_threshold",
    "quality_payments",
    "other_incentives",
    "current_tcc",
)
MARKET_TEXT_FIELDS = ("specialty", "provider_type", "region")
MARKET_NUMERIC_FIELDS = tuple(
    f"{metric}_{p}" for metric in ("tcc", "wrvu", "cf") for p in (25, 50, 75, 90)
)

# Header spellings that don't normalize to the field name
HEADER_ALIASES = {
    "pchwrvus": "work_rvus",
    "workwrvus": "work_rvus",
    "totalworkrvus": "total_wrvus",
    "name": "provider_name",
    "cf": "current_cf",
    "currentconversionfactor": "current_cf",
}

_NUMBER_RE = re.compile(r"^-?\d*\.?\d+")


class UploadError(Exception):
    """Raised when a file cannot be read or has an unsupported format."""
    pass


def to_num(value: Any) -> float:
    """Parse a cell to a float, tolerating commas, spaces and trailing junk.

    Returns 0 for empty, unparseable or non-finite input.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return num(value)
    s = str(value).replace(",", "").replace("$", "").strip()
    if not s:
        return 0.0
    match = _NUMBER_RE.match(s)
    return num(match.group(0)) if match else 0.0


def normalize_header(header: str) -> str:
    """Lower-case a header and strip everything but letters and digits."""
    return re.sub(r"[^a-z0-9]", "", str(header).lower())


def read_table(path: Path) -> List[Dict[str, Any]]:
    """Read a CSV, Excel, JSON or YAML file into a list of row dicts.

    Keys are always header strings. Cells past the end of a CSV header row
    are dropped.

    Raises:
        UploadError: Missing file, unsupported suffix, or unparseable content
    """
    if not path.exists():
        raise UploadError(f"File not found: {path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise UploadError(f"Unsupported file type '{suffix}' (expected one of {', '.join(SUPPORTED_SUFFIXES)})")

    if suffix in EXCEL_SUFFIXES:
        return _read_excel(path)

    try:
        with open(path, newline="", encoding="utf-8-sig") as f:
            if suffix == ".csv":
                rows = list(csv.DictReader(f))
            elif suffix == ".json":
                rows = json.load(f)
            else:
                rows = yaml.safe_load(f)
    except (csv.Error, json.JSONDecodeError, yaml.YAMLError, UnicodeDecodeError) as e:
        raise UploadError(f"Could not parse {path.name}: {e}")

    if isinstance(rows, dict):
        rows = rows.get("rows")
    if not isinstance(rows, list) or not all(isinstance(r, dict) for r in rows):
        raise UploadError(f"{path.name} must contain a list of row objects")
    return [r for r in (_clean_row(row) for row in rows) if not _is_blank(r)]


def _read_excel(path: Path) -> List[Dict[str, Any]]:
    """First sheet of a workbook; the first row holds the headers."""
    try:
        df = pd.read_excel(path, sheet_name=0, dtype=object)
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        raise UploadError(f"Could not parse {path.name}: {e}")
    df = df.astype(object).where(df.notna(), None)
    rows = [_clean_row(row) for row in df.to_dict(orient="records")]
    return [r for r in rows if not _is_blank(r)]


def _clean_row(row: Dict[Any, Any]) -> Dict[str, Any]:
    # csv.DictReader files overflow cells under the None key
    return {str(k): v for k, v in row.items() if k is not None}


def _is_blank(row: Dict[str, Any]) -> bool:
    return not any(v is not None and str(v).strip() for v in row.values())


def _resolve_columns(
    headers: List[str],
    fields: Tuple[str, ...],
    mapping: Optional[Dict[str, str]],
) -> Dict[str, str]:
    """Map each known field to the source header that feeds it."""
    by_normalized = {normalize_header(h): h for h in headers}
    resolved = {}
    for field in fields:
        norm = normalize_header(field)
        if norm in by_normalized:
            resolved[field] = by_normalized[norm]
    for norm, field in HEADER_ALIASES.items():
        if field in fields and field not in resolved and norm in by_normalized:
            resolved[field] = by_normalized[norm]
    if mapping:
        for field, source in mapping.items():
            if field not in fields:
                raise UploadError(f"Unknown field in column mapping: {field}")
            resolved[field] = source
    return resolved


def _extract(
    raw: Dict[str, Any],
    columns: Dict[str, str],
    text_fields: Tuple[str, ...],
) -> Dict[str, Any]:
    row: Dict[str, Any] = {}
    for field, source in columns.items():
        value = raw.get(source)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        if field in text_fields:
            row[field] = str(value).strip()
        else:
            row[field] = to_num(value)
    return row


def apply_provider_mapping(
    raw_rows: List[Dict[str, Any]],
    mapping: Optional[Dict[str, str]] = None,
    first_row_number: int = 2,
) -> Tuple[List[ProviderRow], List[str]]:
    """Coerce raw rows into ProviderRow records.

    Args:
        raw_rows: Row dicts as read from the file
        mapping: Optional field -> source header overrides
        first_row_number: Row number reported for raw_rows[0] in errors

    Returns:
        Tuple of (rows, errors)
    """
    headers = sorted({h for raw in raw_rows for h in raw})
    columns = _resolve_columns(headers, PROVIDER_TEXT_FIELDS + PROVIDER_NUMERIC_FIELDS, mapping)
    component_header = next((h for h in headers if normalize_header(h) == "basepaycomponents"), None)

    rows: List[ProviderRow] = []
    errors: List[str] = []
    for i, raw in enumerate(raw_rows):
        row_number = i + first_row_number
        row = _extract(raw, columns, PROVIDER_TEXT_FIELDS)

        if component_header and isinstance(raw.get(component_header), list):
            row["base_pay_components"] = raw[component_header]

        if "total_wrvus" not in row and ("work_rvus" in row or "outside_wrvus" in row):
            row["total_wrvus"] = row.get("work_rvus", 0.0) + row.get("outside_wrvus", 0.0)

        missing = []
        if not row.get("provider_name"):
            missing.append("provider_name")
        if "base_salary" not in row and not row.get("base_pay_components"):
            missing.append("base_salary")
        if missing:
            errors.append(f"Row {row_number}: missing {', '.join(missing)}")
            continue

        try:
            rows.append(ProviderRow.model_validate(row))
        except ValidationError as e:
            errors.append(f"Row {row_number}: {e.errors()[0]['msg']}")

    if errors:
        logger.warning(f"{len(errors)} provider row(s) skipped")
    return rows, errors


def apply_market_mapping(
    raw_rows: List[Dict[str, Any]],
    mapping: Optional[Dict[str, str]] = None,
    first_row_number: int = 2,
) -> Tuple[List[MarketRow], List[str]]:
    """Coerce raw rows into MarketRow records.

    Missing percentile cells stay None so market matching can skip the row.

    Returns:
        Tuple of (rows, errors)
    """
    headers = sorted({h for raw in raw_rows for h in raw})
    columns = _resolve_columns(headers, MARKET_TEXT_FIELDS + MARKET_NUMERIC_FIELDS, mapping)

    rows: List[MarketRow] = []
    errors: List[str] = []
    for i, raw in enumerate(raw_rows):
        row_number = i + first_row_number
        row = _extract(raw, columns, MARKET_TEXT_FIELDS)
        if not row.get("specialty"):
            errors.append(f"Row {row_number}: missing specialty")
            continue
        try:
            rows.append(MarketRow.model_validate(row))
        except ValidationError as e:
            errors.append(f"Row {row_number}: {e.errors()[0]['msg']}")

    if errors:
        logger.warning(f"{len(errors)} market row(s) skipped")
    return rows, errors


def load_provider_rows(
    path: Path,
    mapping: Optional[Dict[str, str]] = None,
) -> Tuple[List[ProviderRow], List[str]]:
    """Load provider rows from a CSV, Excel, JSON or YAML file.

    Raises:
        UploadError: If the file can't be read
    """
    raw_rows = read_table(path)
    first = 2 if path.suffix.lower() in HEADER_ROW_SUFFIXES else 1
    return apply_provider_mapping(raw_rows, mapping, first_row_number=first)


def load_market_rows(
    path: Path,
    mapping: Optional[Dict[str, str]] = None,
) -> Tuple[List[MarketRow], List[str]]:
    """Load market benchmark rows from a CSV, Excel, JSON or YAML file.

    Raises:
        UploadError: If the file can't be read
    """
    raw_rows = read_table(path)
    first = 2 if path.suffix.lower() in HEADER_ROW_SUFFIXES else 1
    return apply_market_mapping(raw_rows, mapping, first_row_number=first)
