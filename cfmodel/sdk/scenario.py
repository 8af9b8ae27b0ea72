"""Scenario inputs: defaults, partial-merge patching, preset files.

Every control write is a patch, never a full replace:

- key present with None  -> reset the field to "inherit baseline"
- key absent             -> leave the field unchanged

apply_scenario_patch accepts either a plain dict or a ScenarioInputs whose
explicitly-set fields (model_fields_set) form the patch, so
ScenarioInputs(psq_percent=None) resets psq_percent while
ScenarioInputs() changes nothing.
"""

import json
import math
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from .compute import round_cents, round_wrvus
from .schemas import BatchScenarioPreset, ScenarioInputs


DEFAULT_SCENARIO_INPUTS = ScenarioInputs(
    proposed_cf_percentile=40,
    cf_source="target_haircut",
    cf_adjustment_factor=0.95,
    psq_percent=0,
    psq_basis="base_salary",
)

CURRENCY_FIELDS = ("override_cf", "modeled_base_pay", "modeled_non_clinical_pay")
WRVU_FIELDS = ("modeled_wrvus", "modeled_work_wrvus", "modeled_other_wrvus")
NON_NEGATIVE_FIELDS = CURRENCY_FIELDS + WRVU_FIELDS


class ScenarioPatchError(ValueError):
    """Raised when a patch names unknown fields or carries invalid values."""
    pass


def apply_scenario_patch(
    inputs: ScenarioInputs,
    patch: Union[Dict[str, Any], ScenarioInputs],
) -> ScenarioInputs:
    """Shallow-merge a patch into scenario inputs.

    Currency fields are rounded to cents and wRVU fields to 2 decimals;
    negative amounts are floored at 0 and modeled_other_wrvus is clamped to
    modeled_wrvus.

    Args:
        inputs: Current scenario inputs (not modified)
        patch: Fields to change; None values reset to inherited default

    Returns:
        New ScenarioInputs

    Raises:
        ScenarioPatchError: Unknown field or value that fails validation
    """
    if isinstance(patch, ScenarioInputs):
        patch = patch.model_dump(include=patch.model_fields_set)

    unknown = sorted(set(patch) - set(ScenarioInputs.model_fields))
    if unknown:
        raise ScenarioPatchError(f"Unknown scenario field(s): {', '.join(unknown)}")

    merged = inputs.model_dump()
    merged.update(patch)
    for field, value in patch.items():
        if value is None:
            merged[field] = ScenarioInputs.model_fields[field].default

    for field in NON_NEGATIVE_FIELDS:
        value = merged.get(field)
        if value is None:
            continue
        try:
            value = max(0.0, float(value))
        except (TypeError, ValueError):
            raise ScenarioPatchError(f"{field} must be a number, got: {value!r}")
        if not math.isfinite(value):
            raise ScenarioPatchError(f"{field} must be a finite number, got: {value!r}")
        merged[field] = round_cents(value) if field in CURRENCY_FIELDS else round_wrvus(value)

    total = merged.get("modeled_wrvus")
    other = merged.get("modeled_other_wrvus")
    if total is not None and other is not None and other > total:
        merged["modeled_other_wrvus"] = total

    try:
        return ScenarioInputs.model_validate(merged)
    except ValidationError as e:
        raise ScenarioPatchError(str(e))


def load_scenarios(path: Path) -> List[BatchScenarioPreset]:
    """Load scenario presets from a YAML or JSON file.

    The file holds either a list of presets or a mapping with a 'scenarios'
    list. Each preset is {id, name, scenario_inputs}.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the file is malformed
    """
    if not path.exists():
        raise FileNotFoundError(f"Scenario file not found: {path}")

    with open(path) as f:
        if path.suffix.lower() == ".json":
            data = json.load(f)
        else:
            data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("scenarios")
    if not isinstance(data, list):
        raise ValueError(f"Scenario file must contain a list of scenarios: {path}")

    presets = []
    for i, entry in enumerate(data):
        try:
            presets.append(BatchScenarioPreset.model_validate(entry))
        except ValidationError as e:
            raise ValueError(f"Scenario #{i + 1} in {path} is invalid: {e}")

    ids = [p.id for p in presets]
    duplicates = sorted({i for i in ids if ids.count(i) > 1})
    if duplicates:
        raise ValueError(f"Duplicate scenario id(s) in {path}: {', '.join(duplicates)}")
    return presets
