"""Pydantic schemas for cf-model data.

Provider and market rows mirror the columns of the uploaded files. Scenario
inputs are the user-adjustable controls for one what-if; scenario results are
the engine's derived output and are never mutated after computation.

Input schemas use extra='forbid' so typos in scenario files cause clear
errors rather than silent ignoring. Numeric provider fields accept NaN and
infinities; the engine treats non-finite values as 0.
"""

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


CFSource = Literal["target_haircut", "override"]
PSQBasis = Literal["base_salary", "total_pay"]

PERCENTILE_POINTS = (25, 50, 75, 90)


# =============================================================================
# Input data - provider and market rows
# =============================================================================


class BasePayComponent(BaseModel):
    """Single line item that rolls up into total base pay."""

    model_config = ConfigDict(extra="forbid")

    label: str = Field(..., description="Component label (e.g., 'Clinical', 'Medical Director stipend')")
    amount: Optional[float] = Field(None, description="Annual amount")
    fte: Optional[float] = Field(None, description="FTE attributed to this component")


class ProviderRow(BaseModel):
    """One clinician's baseline facts for a compensation period.

    Every field is optional at parse time; the engine resolves missing values
    to safe defaults. provider_id falls back to provider_name.
    """

    model_config = ConfigDict(extra="forbid")

    provider_id: Optional[str] = Field(None, description="Selection key; defaults to provider_name")
    provider_name: Optional[str] = Field(None, description="Display name")
    specialty: Optional[str] = Field(None, description="Specialty used for market matching")
    division: Optional[str] = Field(None, description="Division or department")
    provider_type: Optional[str] = Field(None, description="e.g., 'Physician', 'APP'")
    total_fte: Optional[float] = Field(None, description="Total FTE")
    clinical_fte: Optional[float] = Field(None, description="Clinical FTE")
    base_salary: Optional[float] = Field(None, description="Total guaranteed base pay")
    base_pay_components: List[BasePayComponent] = Field(
        default_factory=list,
        description="Ordered base pay line items; their total overrides base_salary when positive",
    )
    clinical_fte_salary: Optional[float] = Field(
        None, description="Clinical salary; overrides base minus non-clinical when present"
    )
    non_clinical_pay: Optional[float] = Field(
        None, description="Stipends / admin carve-outs included in base salary"
    )
    work_rvus: Optional[float] = Field(None, description="Work RVUs from the standard measure")
    outside_wrvus: Optional[float] = Field(None, description="wRVUs earned outside the standard measure")
    total_wrvus: Optional[float] = Field(None, description="Total wRVUs (work + outside when absent)")
    current_cf: Optional[float] = Field(None, description="Current conversion factor ($/wRVU)")
    current_threshold: Optional[float] = Field(None, description="Current annual wRVU threshold")
    quality_payments: Optional[float] = Field(None, description="Quality / value-based payments")
    other_incentives: Optional[float] = Field(None, description="Other incentives (retention, sign-on)")
    current_tcc: Optional[float] = Field(
        None, description="Authoritative current TCC from the file; trusted over the component sum"
    )

    @model_validator(mode="after")
    def default_provider_id(self) -> "ProviderRow":
        """Use provider_name as the selection key when no id is given."""
        if not self.provider_id and self.provider_name:
            self.provider_id = self.provider_name
        return self


class MarketRow(BaseModel):
    """One specialty/region/type benchmark with 25/50/75/90 bands.

    File columns use the upper-case names (TCC_25, WRVU_50, CF_90, ...);
    snake_case names are accepted as well. Bands may be missing on parse;
    such rows are skipped by market matching.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    specialty: str = Field(..., description="Market specialty name")
    provider_type: Optional[str] = Field(None, alias="providerType")
    region: Optional[str] = Field(None)

    tcc_25: Optional[float] = Field(None, alias="TCC_25")
    tcc_50: Optional[float] = Field(None, alias="TCC_50")
    tcc_75: Optional[float] = Field(None, alias="TCC_75")
    tcc_90: Optional[float] = Field(None, alias="TCC_90")
    wrvu_25: Optional[float] = Field(None, alias="WRVU_25")
    wrvu_50: Optional[float] = Field(None, alias="WRVU_50")
    wrvu_75: Optional[float] = Field(None, alias="WRVU_75")
    wrvu_90: Optional[float] = Field(None, alias="WRVU_90")
    cf_25: Optional[float] = Field(None, alias="CF_25")
    cf_50: Optional[float] = Field(None, alias="CF_50")
    cf_75: Optional[float] = Field(None, alias="CF_75")
    cf_90: Optional[float] = Field(None, alias="CF_90")

    def bands(self, metric: Literal["tcc", "wrvu", "cf"]) -> tuple:
        """Return the (p25, p50, p75, p90) tuple for a metric."""
        return tuple(getattr(self, f"{metric}_{p}") for p in PERCENTILE_POINTS)


# =============================================================================
# Scenario inputs and results
# =============================================================================


class ScenarioInputs(BaseModel):
    """User-adjustable controls for one what-if.

    Every numeric field is optional; None means "inherit the baseline value".
    Updates go through apply_scenario_patch (partial merge), never a full
    replace.
    """

    model_config = ConfigDict(extra="forbid")

    proposed_cf_percentile: Optional[float] = Field(
        None, description="Market percentile (0-100) to target for the modeled CF"
    )
    cf_source: CFSource = Field(
        "target_haircut", description="'target_haircut' (percentile x factor) or 'override'"
    )
    override_cf: Optional[float] = Field(None, description="Explicit modeled CF ($/wRVU)")
    cf_adjustment_factor: Optional[float] = Field(
        None, description="Haircut applied to the percentile CF (None = 1.0)"
    )
    modeled_wrvus: Optional[float] = Field(None, description="Modeled total wRVUs")
    modeled_work_wrvus: Optional[float] = Field(None, description="Modeled work wRVUs")
    modeled_other_wrvus: Optional[float] = Field(None, description="Modeled other (outside) wRVUs")
    modeled_base_pay: Optional[float] = Field(None, description="Modeled total base pay")
    modeled_non_clinical_pay: Optional[float] = Field(None, description="Modeled non-clinical pay")
    psq_percent: Optional[float] = Field(None, description="Modeled PSQ/VBP rate (0-50)")
    psq_basis: PSQBasis = Field("base_salary", description="Pay basis for PSQ dollars")
    current_psq_percent: Optional[float] = Field(
        None, description="PSQ/VBP rate applied to the baseline column (0-50)"
    )


class BatchScenarioPreset(BaseModel):
    """Named scenario used in batch runs and comparisons."""

    model_config = ConfigDict(extra="forbid")

    id: str = Field(..., description="Stable scenario identifier")
    name: str = Field(..., description="Display name")
    scenario_inputs: ScenarioInputs = Field(default_factory=ScenarioInputs)


class RiskAssessment(BaseModel):
    """Risk flags raised while computing a scenario."""

    high_risk: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class GovernanceFlags(BaseModel):
    """Policy-band and FMV guidance derived from modeled percentiles."""

    underpay_risk: bool = Field(False, description="Modeled alignment gap < -15")
    cf_below_25: bool = Field(False, description="Modeled CF below market 25th percentile")
    modeled_in_policy_band: bool = Field(False, description="Modeled TCC percentile within 25th-75th")
    fmv_check_suggested: bool = Field(False, description="Modeled TCC > 75th or alignment gap > +15")


class ScenarioResults(BaseModel):
    """Engine output for one (provider, market row, scenario) triple.

    Percentile fields, alignment gaps and governance flags are None when no
    market row matched the provider.
    """

    current_cf: float
    modeled_cf: float
    current_incentive: float
    annual_incentive: float = Field(..., description="Raw modeled incentive; negative when below threshold")
    current_tcc: float
    modeled_tcc: float
    change_in_tcc: float
    current_psq_dollars: float
    psq_dollars: float
    total_wrvus: float = Field(..., description="Modeled total wRVUs")
    modeled_work_wrvus: float
    modeled_other_wrvus: float
    wrvus_above_threshold: float
    annual_threshold: float
    current_tcc_from_file: bool

    tcc_percentile: Optional[float] = None
    tcc_percentile_below_range: bool = False
    tcc_percentile_above_range: bool = False
    modeled_tcc_percentile: Optional[float] = None
    wrvu_percentile: Optional[float] = None
    wrvu_percentile_below_range: bool = False
    wrvu_percentile_above_range: bool = False
    cf_percentile_current: Optional[float] = None
    cf_percentile_modeled: Optional[float] = None

    imputed_tcc_per_wrvu_ratio_current: float
    imputed_tcc_per_wrvu_ratio_modeled: float
    alignment_gap_baseline: Optional[float] = None
    alignment_gap_modeled: Optional[float] = None

    risk: RiskAssessment = Field(default_factory=RiskAssessment)
    governance_flags: Optional[GovernanceFlags] = None
    warnings: List[str] = Field(default_factory=list)
