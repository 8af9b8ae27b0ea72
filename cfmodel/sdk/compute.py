"""Compensation scenario engine.

compute_scenario turns (provider, market row, scenario inputs) into a
ScenarioResults record. It is a pure function: no I/O, no hidden state, and
it never raises for missing or dirty provider data. Missing and non-finite
numbers resolve to 0 (or to the baseline value for scenario overrides) and
divisions by zero resolve to 0.

Formulas:
    threshold  = clinical base / CF
    incentive  = (wRVUs - threshold) * CF        (reported even when negative)
    PSQ        = psq_percent / 100 * basis
    TCC        = base + max(incentive, 0) + PSQ + quality + other incentives

Baseline TCC prefers the file-supplied current_tcc over the component sum.
"""

import math
from typing import Any, List, Optional, Tuple

from .interpolation import clamp_percentile, infer_bands, interp_bands
from .schemas import (
    GovernanceFlags,
    MarketRow,
    ProviderRow,
    RiskAssessment,
    ScenarioInputs,
    ScenarioResults,
)


LOW_FTE_RISK = 0.7
LOW_WRVU_WARNING = 1000
MAX_PSQ_PERCENT = 50.0
DEFAULT_CF_PERCENTILE = 50.0

# Governance thresholds (percentile points)
UNDERPAY_GAP = -15.0
FMV_GAP = 15.0
POLICY_BAND = (25.0, 75.0)

# Tolerance before a file-supplied current TCC is flagged as disagreeing
TCC_MISMATCH_TOLERANCE = 1.00


def num(value: Any) -> float:
    """Coerce to a finite float; None, NaN, infinities and junk become 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        result = float(value)
    except (TypeError, ValueError):
        return 0.0
    return result if math.isfinite(result) else 0.0


def safe_div(a: float, b: float, fallback: float = 0.0) -> float:
    """Divide, returning fallback when b is zero or the quotient is not finite."""
    if not b:
        return fallback
    q = a / b
    return q if math.isfinite(q) else fallback


def round_cents(value: float) -> float:
    """Round a currency amount to cents; non-finite results become 0."""
    scaled = num(value) * 100
    if not math.isfinite(scaled):
        return 0.0
    return round(scaled) / 100


def round_wrvus(value: float) -> float:
    """Round a wRVU quantity to 2 decimals."""
    return round_cents(value)


def _is_finite(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


# =============================================================================
# Baseline resolution
# =============================================================================


def get_base_pay_total(provider: ProviderRow) -> float:
    """Total base pay: component total when positive, else base_salary."""
    components_total = sum(num(c.amount) for c in provider.base_pay_components)
    if components_total > 0:
        return components_total
    return num(provider.base_salary)


def get_clinical_component(provider: ProviderRow) -> Optional[float]:
    """Amount of the component labelled 'Clinical', if any."""
    for component in provider.base_pay_components:
        if component.label.strip().lower() == "clinical":
            return num(component.amount)
    return None


def get_non_clinical_pay(provider: ProviderRow) -> float:
    """Non-clinical share of base pay.

    With base pay components and a 'Clinical' line, everything else is
    non-clinical. Otherwise the file's non_clinical_pay is used.
    """
    components_total = sum(num(c.amount) for c in provider.base_pay_components)
    clinical = get_clinical_component(provider)
    if components_total > 0 and clinical is not None:
        return max(0.0, components_total - clinical)
    return max(0.0, num(provider.non_clinical_pay))


def get_clinical_base(provider: ProviderRow) -> float:
    """Clinical salary used for the wRVU threshold.

    clinical_fte_salary wins when present and finite; otherwise total base
    minus non-clinical pay.
    """
    if _is_finite(provider.clinical_fte_salary):
        return max(0.0, num(provider.clinical_fte_salary))
    return max(0.0, get_base_pay_total(provider) - get_non_clinical_pay(provider))


def get_total_wrvus(provider: ProviderRow) -> float:
    """Baseline total wRVUs: total_wrvus, else work + outside."""
    total = num(provider.total_wrvus)
    if total:
        return max(0.0, total)
    return max(0.0, num(provider.work_rvus) + num(provider.outside_wrvus))


def get_outside_wrvus(provider: ProviderRow) -> float:
    """Baseline outside wRVUs, clamped to [0, total]."""
    return min(max(0.0, num(provider.outside_wrvus)), get_total_wrvus(provider))


# =============================================================================
# Modeled resolution
# =============================================================================


def resolve_modeled_wrvus(
    provider: ProviderRow, scenario: ScenarioInputs
) -> Tuple[float, float, float]:
    """Resolve (total, work, other) modeled wRVUs.

    Precedence: an explicit total with an explicit or inherited other split
    derives work; an explicit work figure without a total derives the total
    as work + other. work + other always equals total.
    """
    other_source = (
        scenario.modeled_other_wrvus
        if scenario.modeled_other_wrvus is not None
        else get_outside_wrvus(provider)
    )
    other = max(0.0, round_wrvus(num(other_source)))

    if scenario.modeled_wrvus is not None:
        total = max(0.0, round_wrvus(num(scenario.modeled_wrvus)))
    elif scenario.modeled_work_wrvus is not None:
        work = max(0.0, round_wrvus(num(scenario.modeled_work_wrvus)))
        return round_wrvus(work + other), work, other
    else:
        total = round_wrvus(get_total_wrvus(provider))

    other = min(other, total)
    return total, round_wrvus(total - other), other


def resolve_modeled_cf(
    provider: ProviderRow,
    market: Optional[MarketRow],
    scenario: ScenarioInputs,
) -> float:
    """Resolve the modeled conversion factor.

    Override wins when selected and set. Otherwise the market CF at the
    target percentile times the haircut factor. Without a target percentile
    the current CF is inherited (market median when there is none); without
    a market row the current CF is used.
    """
    if scenario.cf_source == "override" and scenario.override_cf is not None:
        return max(0.0, round_cents(num(scenario.override_cf)))

    current_cf = num(provider.current_cf)
    if market is None:
        return max(0.0, current_cf)

    if scenario.proposed_cf_percentile is None:
        if current_cf > 0:
            return current_cf
        target = DEFAULT_CF_PERCENTILE
    else:
        target = clamp_percentile(num(scenario.proposed_cf_percentile))

    factor = 1.0 if scenario.cf_adjustment_factor is None else num(scenario.cf_adjustment_factor)
    cf_bands = tuple(num(v) for v in market.bands("cf"))
    return max(0.0, interp_bands(target, cf_bands) * factor)


def calc_psq_dollars(percent: Optional[float], basis_amount: float) -> float:
    """PSQ/VBP dollars for a rate clamped to [0, 50]."""
    pct = min(MAX_PSQ_PERCENT, max(0.0, num(percent)))
    return basis_amount * pct / 100


# =============================================================================
# Engine
# =============================================================================


def compute_scenario(
    provider: ProviderRow,
    market: Optional[MarketRow],
    scenario: ScenarioInputs,
) -> ScenarioResults:
    """Compute baseline and modeled compensation for one provider.

    Args:
        provider: Baseline provider data
        market: Matched market benchmark row, or None when unmatched
        scenario: Scenario inputs (None fields inherit the baseline)

    Returns:
        ScenarioResults; percentile-derived fields are None without a market
    """
    warnings: List[str] = []
    high_risk: List[str] = []

    total_fte = num(provider.total_fte) or 1.0
    clinical_fte = num(provider.clinical_fte) or total_fte

    # Baseline
    base_pay = get_base_pay_total(provider)
    non_clinical = get_non_clinical_pay(provider)
    clinical_base = get_clinical_base(provider)
    baseline_wrvus = get_total_wrvus(provider)
    quality = num(provider.quality_payments)
    other_incentives = num(provider.other_incentives)

    current_cf = max(0.0, num(provider.current_cf))
    current_threshold = num(provider.current_threshold)
    if current_threshold <= 0:
        current_threshold = safe_div(clinical_base, current_cf, 0.0)
    current_incentive = (baseline_wrvus - current_threshold) * current_cf if current_cf > 0 else 0.0
    current_psq = calc_psq_dollars(scenario.current_psq_percent, base_pay)

    component_tcc = base_pay + max(current_incentive, 0.0) + current_psq + quality + other_incentives
    file_tcc = num(provider.current_tcc)
    current_tcc_from_file = file_tcc > 0
    current_tcc = file_tcc if current_tcc_from_file else component_tcc
    if current_tcc_from_file and abs(file_tcc - component_tcc) > TCC_MISMATCH_TOLERANCE:
        warnings.append(
            f"File current TCC ({file_tcc:,.2f}) differs from sum of components ({component_tcc:,.2f})"
        )

    # Modeled
    modeled_base = (
        max(0.0, round_cents(num(scenario.modeled_base_pay)))
        if scenario.modeled_base_pay is not None
        else base_pay
    )
    if scenario.modeled_non_clinical_pay is not None:
        modeled_non_clinical = max(0.0, round_cents(num(scenario.modeled_non_clinical_pay)))
    else:
        modeled_non_clinical = non_clinical
    if scenario.modeled_base_pay is None and scenario.modeled_non_clinical_pay is None:
        modeled_clinical_base = clinical_base
    else:
        modeled_clinical_base = max(0.0, modeled_base - min(modeled_non_clinical, modeled_base))

    total_wrvus, work_wrvus, other_wrvus = resolve_modeled_wrvus(provider, scenario)
    modeled_cf = resolve_modeled_cf(provider, market, scenario)

    annual_threshold = safe_div(modeled_clinical_base, modeled_cf, 0.0)
    wrvus_above_threshold = max(0.0, total_wrvus - annual_threshold)
    annual_incentive = (total_wrvus - annual_threshold) * modeled_cf if modeled_cf > 0 else 0.0
    positive_incentive = max(annual_incentive, 0.0)

    if scenario.psq_basis == "total_pay":
        psq_basis_amount = modeled_base + positive_incentive + quality + other_incentives
    else:
        psq_basis_amount = modeled_base
    psq_dollars = calc_psq_dollars(scenario.psq_percent, psq_basis_amount)

    modeled_tcc = modeled_base + positive_incentive + psq_dollars + quality + other_incentives
    change_in_tcc = modeled_tcc - current_tcc

    imputed_current = safe_div(current_tcc, baseline_wrvus, 0.0)
    imputed_modeled = safe_div(modeled_tcc, total_wrvus, 0.0) if modeled_cf > 0 else 0.0

    # Risk
    if clinical_fte < LOW_FTE_RISK:
        high_risk.append(f"Clinical FTE ({clinical_fte:g}) < {LOW_FTE_RISK}")
    if total_fte < LOW_FTE_RISK:
        high_risk.append(f"Total FTE ({total_fte:g}) < {LOW_FTE_RISK}")
    if 0 < total_wrvus < LOW_WRVU_WARNING:
        warnings.append(f"Total wRVUs ({total_wrvus:g}) low; ratios may be unstable")

    results = dict(
        current_cf=current_cf,
        modeled_cf=modeled_cf,
        current_incentive=current_incentive,
        annual_incentive=annual_incentive,
        current_tcc=current_tcc,
        modeled_tcc=modeled_tcc,
        change_in_tcc=change_in_tcc,
        current_psq_dollars=current_psq,
        psq_dollars=psq_dollars,
        total_wrvus=total_wrvus,
        modeled_work_wrvus=work_wrvus,
        modeled_other_wrvus=other_wrvus,
        wrvus_above_threshold=wrvus_above_threshold,
        annual_threshold=annual_threshold,
        current_tcc_from_file=current_tcc_from_file,
        imputed_tcc_per_wrvu_ratio_current=imputed_current,
        imputed_tcc_per_wrvu_ratio_modeled=imputed_modeled,
    )

    risk_warnings: List[str] = []
    if market is not None:
        results.update(_market_position(
            market,
            current_tcc=current_tcc,
            modeled_tcc=modeled_tcc,
            total_wrvus=total_wrvus,
            current_cf=current_cf,
            modeled_cf=modeled_cf,
            total_fte=total_fte,
            clinical_fte=clinical_fte,
            risk_warnings=risk_warnings,
        ))

    results["risk"] = RiskAssessment(high_risk=high_risk, warnings=risk_warnings)
    results["warnings"] = warnings
    return ScenarioResults(**results)


def _market_position(
    market: MarketRow,
    *,
    current_tcc: float,
    modeled_tcc: float,
    total_wrvus: float,
    current_cf: float,
    modeled_cf: float,
    total_fte: float,
    clinical_fte: float,
    risk_warnings: List[str],
) -> dict:
    """Percentiles, alignment gaps and governance flags against a market row.

    TCC is normalized per 1.0 total FTE and wRVUs per 1.0 clinical FTE
    before placement on the market curves.
    """
    tcc_bands = tuple(num(v) for v in market.bands("tcc"))
    wrvu_bands = tuple(num(v) for v in market.bands("wrvu"))
    cf_bands = tuple(num(v) for v in market.bands("cf"))

    wrvu_result = infer_bands(safe_div(total_wrvus, clinical_fte, total_wrvus), wrvu_bands)
    tcc_result = infer_bands(safe_div(current_tcc, total_fte, current_tcc), tcc_bands)
    modeled_tcc_result = infer_bands(safe_div(modeled_tcc, total_fte, modeled_tcc), tcc_bands)

    wrvu_pct = clamp_percentile(wrvu_result.percentile)
    tcc_pct = clamp_percentile(tcc_result.percentile)
    modeled_tcc_pct = clamp_percentile(modeled_tcc_result.percentile)

    if current_cf > 0:
        cf_current_result = infer_bands(current_cf, cf_bands)
        cf_pct_current = clamp_percentile(cf_current_result.percentile)
        if cf_current_result.below_range or cf_current_result.above_range:
            risk_warnings.append("CF percentile is off-scale (below 25 or above 90)")
    else:
        cf_pct_current = 0.0
    cf_pct_modeled = clamp_percentile(infer_bands(modeled_cf, cf_bands).percentile) if modeled_cf > 0 else 0.0

    if wrvu_result.below_range or wrvu_result.above_range:
        risk_warnings.append("wRVU percentile is off-scale (below 25 or above 90)")
    if tcc_result.below_range or tcc_result.above_range:
        risk_warnings.append("TCC percentile is off-scale (below 25 or above 90)")

    gap_baseline = tcc_pct - wrvu_pct
    gap_modeled = modeled_tcc_pct - wrvu_pct

    flags = GovernanceFlags(
        underpay_risk=gap_modeled < UNDERPAY_GAP,
        cf_below_25=cf_pct_modeled < 25,
        modeled_in_policy_band=POLICY_BAND[0] <= modeled_tcc_pct <= POLICY_BAND[1],
        fmv_check_suggested=modeled_tcc_pct > POLICY_BAND[1] or gap_modeled > FMV_GAP,
    )

    return dict(
        tcc_percentile=tcc_pct,
        tcc_percentile_below_range=tcc_result.below_range,
        tcc_percentile_above_range=tcc_result.above_range,
        modeled_tcc_percentile=modeled_tcc_pct,
        wrvu_percentile=wrvu_pct,
        wrvu_percentile_below_range=wrvu_result.below_range,
        wrvu_percentile_above_range=wrvu_result.above_range,
        cf_percentile_current=cf_pct_current,
        cf_percentile_modeled=cf_pct_modeled,
        alignment_gap_baseline=gap_baseline,
        alignment_gap_modeled=gap_modeled,
        governance_flags=flags,
    )
