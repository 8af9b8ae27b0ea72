"""Conversion factor optimizer, CF sweep and imputed $/wRVU vs market.

optimize_cf_for_specialty grid-searches one CF per specialty so modeled TCC
percentiles line up with wRVU percentiles (or with a fixed target
percentile). Every candidate CF is run through compute_scenario as a CF
override, so the optimizer and the scenario engine never disagree on pay.

The baseline for a provider is the engine's modeled TCC at the provider's
current CF (market 50th CF when the file has none). Spend impact is the
change from that baseline.

run_cf_sweep models each specialty at fixed market CF percentiles without
recommending anything. imputed_vs_market places each specialty's median
effective $/wRVU on the market's TCC/wRVU ratio curve.
"""

import logging
import statistics
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Literal, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from .batch.matching import match_market_row, normalize_specialty_key
from .compute import compute_scenario, get_total_wrvus, num, safe_div
from .interpolation import infer_bands, interp_bands
from .schemas import MarketRow, ProviderRow, ScenarioInputs, ScenarioResults

logger = logging.getLogger(__name__)

LOW_SAMPLE_THRESHOLD = 3
GRID_STEPS_MAX = 101
DEFAULT_SWEEP_PERCENTILES = (25.0, 40.0, 50.0, 60.0, 75.0, 90.0)

OptimizerAction = Literal["INCREASE", "DECREASE", "HOLD", "NO_RECOMMENDATION"]

# Exclusion reasons
MISSING_MARKET = "missing_market"
LOW_CLINICAL_FTE = "low_clinical_fte"
LOW_WRVU_VOLUME = "low_wrvu_volume"
OUTLIER = "outlier"


class OptimizerSettings(BaseModel):
    """Search bounds, objective and exclusion rules for the CF optimizer."""

    model_config = ConfigDict(extra="forbid")

    objective: Literal["align_percentile", "target_percentile"] = Field(
        "align_percentile",
        description="Match modeled TCC %ile to each provider's wRVU %ile, or to target_percentile",
    )
    target_percentile: float = Field(40.0, ge=0, le=100)
    error_metric: Literal["squared", "absolute"] = Field("squared", description="Mean squared or mean absolute error")
    max_decrease_pct: float = Field(30.0, ge=0, le=100, description="Lowest candidate = current CF x (1 - pct/100)")
    max_increase_pct: float = Field(30.0, ge=0, description="Highest candidate = current CF x (1 + pct/100)")
    grid_steps: int = Field(41, ge=2, description=f"Candidate CFs per specialty (capped at {GRID_STEPS_MAX})")
    max_recommended_cf_percentile: float = Field(
        50.0, ge=0, le=100, description="Never recommend a CF above this market CF percentile"
    )
    hard_cap_percentile: float = Field(
        50.0, description="Block CF increases when the mean baseline TCC %ile is above this"
    )
    min_meaningful_change: float = Field(0.01, ge=0, description="Smaller CF changes (fraction) are a HOLD")
    min_clinical_fte: float = Field(0.5, ge=0)
    min_wrvus_per_cfte: float = Field(1000.0, ge=0)
    outlier_method: Optional[Literal["iqr", "mad_z"]] = Field(
        None, description="Exclude wRVU-per-cFTE outliers within each specialty"
    )
    iqr_k: float = 1.5
    mad_z_threshold: float = 3.5


@dataclass
class ProviderContext:
    """One provider's baseline position, shared by every candidate CF."""

    provider_index: int
    provider: ProviderRow
    provider_id: str
    market: Optional[MarketRow]
    current_cf: float
    clinical_fte: float
    wrvus_per_cfte: float
    wrvu_percentile: float = 0.0
    baseline_tcc: float = 0.0
    baseline_tcc_percentile: float = 0.0
    exclusion_reasons: List[str] = field(default_factory=list)
    modeled_tcc: Optional[float] = None
    modeled_tcc_percentile: Optional[float] = None

    @property
    def included(self) -> bool:
        return not self.exclusion_reasons

    @property
    def specialty_key(self) -> str:
        return normalize_specialty_key(self.market.specialty) if self.market else ""

    @property
    def baseline_gap(self) -> float:
        return self.baseline_tcc_percentile - self.wrvu_percentile


@dataclass
class SpecialtyOptimization:
    """CF recommendation for one market specialty."""

    specialty: str
    included_count: int
    excluded_count: int
    current_cf: float
    recommended_cf: float
    recommended_cf_percentile: float
    action: OptimizerAction
    error_before: float = 0.0
    error_after: float = 0.0
    mean_baseline_gap: float = 0.0
    mean_modeled_gap: float = 0.0
    spend_baseline: float = 0.0
    spend_modeled: float = 0.0
    flags: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    providers: List[ProviderContext] = field(default_factory=list)

    @property
    def cf_change_pct(self) -> float:
        return safe_div(self.recommended_cf - self.current_cf, self.current_cf) * 100

    @property
    def spend_impact(self) -> float:
        return self.spend_modeled - self.spend_baseline


@dataclass
class OptimizerRun:
    """All specialty recommendations plus the providers left out."""

    results: List[SpecialtyOptimization] = field(default_factory=list)
    excluded: List[ProviderContext] = field(default_factory=list)

    @property
    def total_spend_impact(self) -> float:
        return sum(r.spend_impact for r in self.results)

    @property
    def exclusion_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for ctx in self.excluded:
            for reason in ctx.exclusion_reasons:
                counts[reason] = counts.get(reason, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: (-kv[1], kv[0])))


@dataclass
class CFSweepRow:
    """Specialty totals with every included provider paid at one market CF percentile."""

    cf_percentile: float
    cf: float
    mean_modeled_tcc_percentile: float
    mean_wrvu_percentile: float
    total_incentive: float
    spend_impact: float

    @property
    def gap(self) -> float:
        return self.mean_modeled_tcc_percentile - self.mean_wrvu_percentile


@dataclass
class ImputedVsMarketRow:
    """Median effective $/wRVU for a specialty against market TCC/wRVU ratios."""

    specialty: str
    provider_count: int
    median_imputed_per_wrvu: float
    median_current_cf: float
    market_ratios: tuple
    percentile: float
    below_range: bool
    above_range: bool
    mean_tcc_percentile: float
    mean_wrvu_percentile: float
    market_cf: tuple


# =============================================================================
# Helpers
# =============================================================================


def _median(values: Sequence[float]) -> float:
    return statistics.median(values) if values else 0.0


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _objective(errors: Sequence[float], metric: str) -> float:
    if not errors:
        return 0.0
    if metric == "squared":
        return sum(e * e for e in errors) / len(errors)
    return sum(abs(e) for e in errors) / len(errors)


def _at_cf(provider: ProviderRow, market: MarketRow, cf: float) -> ScenarioResults:
    return compute_scenario(provider, market, ScenarioInputs(cf_source="override", override_cf=cf))


def detect_outliers(
    values: Sequence[float],
    method: Literal["iqr", "mad_z"],
    iqr_k: float = 1.5,
    mad_z_threshold: float = 3.5,
) -> List[bool]:
    """Flag outliers by IQR fences or MAD z-score.

    Fewer than 4 values never produce an outlier. MAD z uses the 0.6745
    consistency constant; a zero MAD flags nothing.
    """
    flags = [False] * len(values)
    n = len(values)
    if n < 4:
        return flags

    if method == "iqr":
        ordered = sorted(values)
        q1 = statistics.median(ordered[: n // 2])
        q3 = statistics.median(ordered[(n + 1) // 2:])
        iqr = max(0.0, q3 - q1)
        low, high = q1 - iqr_k * iqr, q3 + iqr_k * iqr
        return [v < low or v > high for v in values]

    med = statistics.median(values)
    mad = statistics.median([abs(v - med) for v in values])
    if mad <= 0:
        return flags
    return [abs(0.6745 * (v - med) / mad) > mad_z_threshold for v in values]


# =============================================================================
# Provider contexts
# =============================================================================


def build_provider_contexts(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: OptimizerSettings,
    synonym_map: Optional[Dict[str, str]] = None,
) -> List[ProviderContext]:
    """Match, baseline and screen every provider once."""
    contexts = []
    for i, provider in enumerate(providers):
        match = match_market_row(provider, market_rows, synonym_map)
        market = match.market_row

        total_fte = num(provider.total_fte) or 1.0
        clinical_fte = num(provider.clinical_fte) or total_fte
        wrvus_per_cfte = safe_div(get_total_wrvus(provider), clinical_fte)

        ctx = ProviderContext(
            provider_index=i,
            provider=provider,
            provider_id=str(provider.provider_id or provider.provider_name or f"provider-{i}"),
            market=market,
            current_cf=max(0.0, num(provider.current_cf)) or (num(market.cf_50) if market else 0.0),
            clinical_fte=clinical_fte,
            wrvus_per_cfte=wrvus_per_cfte,
        )

        if market is None:
            ctx.exclusion_reasons.append(MISSING_MARKET)
        else:
            baseline = _at_cf(provider, market, ctx.current_cf)
            ctx.wrvu_percentile = baseline.wrvu_percentile or 0.0
            ctx.baseline_tcc = baseline.modeled_tcc
            ctx.baseline_tcc_percentile = baseline.modeled_tcc_percentile or 0.0
        if clinical_fte < settings.min_clinical_fte:
            ctx.exclusion_reasons.append(LOW_CLINICAL_FTE)
        if 0 < wrvus_per_cfte < settings.min_wrvus_per_cfte:
            ctx.exclusion_reasons.append(LOW_WRVU_VOLUME)
        contexts.append(ctx)

    if settings.outlier_method:
        by_specialty: Dict[str, List[ProviderContext]] = {}
        for ctx in contexts:
            if ctx.included:
                by_specialty.setdefault(ctx.specialty_key, []).append(ctx)
        for group in by_specialty.values():
            flags = detect_outliers(
                [c.wrvus_per_cfte for c in group],
                settings.outlier_method,
                iqr_k=settings.iqr_k,
                mad_z_threshold=settings.mad_z_threshold,
            )
            for ctx, is_outlier in zip(group, flags):
                if is_outlier:
                    ctx.exclusion_reasons.append(OUTLIER)

    return contexts


def _specialty_markets(
    contexts: Sequence[ProviderContext],
    specialty_filter: Optional[str],
) -> List[MarketRow]:
    """Distinct matched market rows, sorted by specialty name."""
    markets: Dict[str, MarketRow] = {}
    for ctx in contexts:
        if ctx.market is not None:
            markets.setdefault(ctx.specialty_key, ctx.market)
    if specialty_filter and specialty_filter.strip():
        wanted = normalize_specialty_key(specialty_filter)
        markets = {k: m for k, m in markets.items() if k == wanted}
    return sorted(markets.values(), key=lambda m: m.specialty.lower())


# =============================================================================
# Optimizer
# =============================================================================


def optimize_cf_for_specialty(
    contexts: Sequence[ProviderContext],
    market: MarketRow,
    settings: OptimizerSettings,
) -> SpecialtyOptimization:
    """Recommend one CF for the providers matched to a market specialty.

    Candidates span current CF -max_decrease_pct..+max_increase_pct, where
    current CF is the median of the included providers' current CFs. A
    candidate wins only if it strictly lowers the error, so ties keep the
    current CF. The winner is then capped at max_recommended_cf_percentile
    of the market CF curve.

    Args:
        contexts: Provider contexts from build_provider_contexts (any specialty)
        market: Market row for the specialty being optimized
        settings: Optimizer settings

    Returns:
        SpecialtyOptimization; action NO_RECOMMENDATION when no provider is included
    """
    key = normalize_specialty_key(market.specialty)
    members = [c for c in contexts if c.specialty_key == key]
    included = [c for c in members if c.included]
    excluded_count = len(members) - len(included)
    cf_bands = tuple(num(v) for v in market.bands("cf"))

    if not included:
        cf_50 = num(market.cf_50)
        return SpecialtyOptimization(
            specialty=market.specialty,
            included_count=0,
            excluded_count=excluded_count,
            current_cf=cf_50,
            recommended_cf=cf_50,
            recommended_cf_percentile=50.0,
            action="NO_RECOMMENDATION",
            flags=["low_sample"],
            notes=["No included providers for this specialty."],
            providers=members,
        )

    result = SpecialtyOptimization(
        specialty=market.specialty,
        included_count=len(included),
        excluded_count=excluded_count,
        current_cf=0.0,
        recommended_cf=0.0,
        recommended_cf_percentile=0.0,
        action="HOLD",
        providers=members,
    )
    if len(included) <= LOW_SAMPLE_THRESHOLD:
        result.flags.append("low_sample")
        result.notes.append(f"Low sample size (n={len(included)}); result is indicative only.")

    def target(ctx: ProviderContext) -> float:
        if settings.objective == "align_percentile":
            return ctx.wrvu_percentile
        return settings.target_percentile

    def evaluate(cf: float) -> List[ScenarioResults]:
        return [_at_cf(c.provider, market, cf) for c in included]

    current_cf = _median([c.current_cf for c in included]) or num(market.cf_50)
    cf_min = current_cf * (1 - settings.max_decrease_pct / 100)
    cf_max = current_cf * (1 + settings.max_increase_pct / 100)
    steps = min(settings.grid_steps, GRID_STEPS_MAX)
    step = (cf_max - cf_min) / (steps - 1)

    error_before = _objective([c.baseline_tcc_percentile - target(c) for c in included], settings.error_metric)
    mean_comp = _mean([c.baseline_tcc_percentile for c in included])
    increase_blocked = mean_comp > settings.hard_cap_percentile
    if increase_blocked:
        result.notes.append(
            f"Mean TCC percentile {mean_comp:.1f} is above the {settings.hard_cap_percentile:g}th hard cap; "
            "CF increases blocked."
        )

    best_cf, best_error = current_cf, error_before
    for i in range(steps):
        cf = cf_max if i == steps - 1 else cf_min + step * i
        if increase_blocked and cf > current_cf + 1e-6:
            continue
        errors = [
            (r.modeled_tcc_percentile or 0.0) - target(c)
            for r, c in zip(evaluate(cf), included)
        ]
        error = _objective(errors, settings.error_metric)
        if error < best_error:
            best_cf, best_error = cf, error

    if best_cf != current_cf and (best_cf <= cf_min + 1e-6 or best_cf >= cf_max - 1e-6):
        result.flags.append("cf_capped")
        result.notes.append("CF move stopped at the search bound; alignment may be incomplete.")

    max_cf = interp_bands(settings.max_recommended_cf_percentile, cf_bands)
    if best_cf > max_cf > 0:
        best_cf = max_cf
        if "cf_capped" not in result.flags:
            result.flags.append("cf_capped")
        result.notes.append(
            f"Recommended CF capped at the {settings.max_recommended_cf_percentile:g}th market "
            f"percentile ({max_cf:.2f})."
        )

    final = evaluate(best_cf)
    for ctx, r in zip(included, final):
        ctx.modeled_tcc = r.modeled_tcc
        ctx.modeled_tcc_percentile = r.modeled_tcc_percentile or 0.0

    result.current_cf = current_cf
    result.recommended_cf = best_cf
    result.recommended_cf_percentile = infer_bands(best_cf, cf_bands).percentile
    result.error_before = error_before
    result.error_after = _objective([c.modeled_tcc_percentile - target(c) for c in included], settings.error_metric)
    result.mean_baseline_gap = _mean([c.baseline_gap for c in included])
    result.mean_modeled_gap = _mean([c.modeled_tcc_percentile - c.wrvu_percentile for c in included])
    result.spend_baseline = sum(c.baseline_tcc for c in included)
    result.spend_modeled = sum(r.modeled_tcc for r in final)

    if result.error_before > 0 and result.error_after >= result.error_before:
        result.flags.append("not_converged")
    if any(OUTLIER in c.exclusion_reasons for c in members):
        result.flags.append("outliers_excluded")

    change = abs(safe_div(best_cf - current_cf, current_cf))
    if increase_blocked and best_cf >= current_cf - 1e-6:
        result.action = "HOLD"
    elif change < settings.min_meaningful_change:
        result.action = "HOLD"
    elif best_cf > current_cf:
        result.action = "INCREASE"
    else:
        result.action = "DECREASE"

    logger.debug(
        f"{market.specialty}: n={len(included)} CF {current_cf:.2f} -> {best_cf:.2f} "
        f"({result.action}), error {error_before:.1f} -> {result.error_after:.1f}"
    )
    return result


def run_optimizer(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    settings: Optional[OptimizerSettings] = None,
    synonym_map: Optional[Dict[str, str]] = None,
    specialty_filter: Optional[str] = None,
    on_progress: Optional[Callable[[int, int, str], None]] = None,
) -> OptimizerRun:
    """Optimize every matched specialty (or just specialty_filter).

    on_progress(index, total, specialty) is called before each specialty.
    """
    settings = settings or OptimizerSettings()
    contexts = build_provider_contexts(providers, market_rows, settings, synonym_map)
    markets = _specialty_markets(contexts, specialty_filter)

    run = OptimizerRun(excluded=[c for c in contexts if not c.included])
    for i, market in enumerate(markets):
        if on_progress:
            on_progress(i, len(markets), market.specialty)
        run.results.append(optimize_cf_for_specialty(contexts, market, settings))

    logger.info(
        f"Optimizer: {len(run.results)} specialties, {len(contexts) - len(run.excluded)} providers included, "
        f"{len(run.excluded)} excluded"
    )
    return run


# =============================================================================
# CF sweep
# =============================================================================


def sweep_specialty(
    contexts: Sequence[ProviderContext],
    market: MarketRow,
    cf_percentiles: Sequence[float] = DEFAULT_SWEEP_PERCENTILES,
) -> List[CFSweepRow]:
    """Model a specialty's included providers at each market CF percentile."""
    key = normalize_specialty_key(market.specialty)
    included = [c for c in contexts if c.included and c.specialty_key == key]
    cf_bands = tuple(num(v) for v in market.bands("cf"))

    rows = []
    for pct in cf_percentiles:
        cf = interp_bands(pct, cf_bands)
        results = [_at_cf(c.provider, market, cf) for c in included]
        rows.append(CFSweepRow(
            cf_percentile=pct,
            cf=cf,
            mean_modeled_tcc_percentile=_mean([r.modeled_tcc_percentile or 0.0 for r in results]),
            mean_wrvu_percentile=_mean([c.wrvu_percentile for c in included]),
            total_incentive=sum(max(r.annual_incentive, 0.0) for r in results),
            spend_impact=sum(r.modeled_tcc for r in results) - sum(c.baseline_tcc for c in included),
        ))
    return rows


def run_cf_sweep(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    cf_percentiles: Sequence[float] = DEFAULT_SWEEP_PERCENTILES,
    settings: Optional[OptimizerSettings] = None,
    synonym_map: Optional[Dict[str, str]] = None,
    specialty_filter: Optional[str] = None,
) -> Dict[str, List[CFSweepRow]]:
    """CF sweep for every matched specialty, keyed by market specialty name."""
    settings = settings or OptimizerSettings()
    contexts = build_provider_contexts(providers, market_rows, settings, synonym_map)
    return {
        market.specialty: sweep_specialty(contexts, market, cf_percentiles)
        for market in _specialty_markets(contexts, specialty_filter)
    }


# =============================================================================
# Imputed $/wRVU vs market
# =============================================================================


def imputed_vs_market(
    providers: Sequence[ProviderRow],
    market_rows: Sequence[MarketRow],
    synonym_map: Optional[Dict[str, str]] = None,
    min_clinical_fte: float = 0.5,
    min_wrvus_per_cfte: float = 1000.0,
) -> List[ImputedVsMarketRow]:
    """Median imputed TCC per wRVU by specialty, placed on market TCC/wRVU ratios.

    A provider's imputed rate is the engine's TCC at their current CF divided
    by total wRVUs. Providers without a market match, below the cFTE or
    volume floors, or with no positive rate are left out. The market ratio
    at each band is TCC_p / WRVU_p.
    """
    settings = OptimizerSettings(min_clinical_fte=min_clinical_fte, min_wrvus_per_cfte=min_wrvus_per_cfte)
    groups: Dict[str, List[tuple]] = {}
    markets: Dict[str, MarketRow] = {}

    for ctx in build_provider_contexts(providers, market_rows, settings, synonym_map):
        if not ctx.included:
            continue
        r = _at_cf(ctx.provider, ctx.market, ctx.current_cf)
        imputed = r.imputed_tcc_per_wrvu_ratio_modeled
        if imputed <= 0:
            continue
        markets.setdefault(ctx.specialty_key, ctx.market)
        groups.setdefault(ctx.specialty_key, []).append(
            (imputed, ctx.current_cf, ctx.baseline_tcc_percentile, ctx.wrvu_percentile)
        )

    rows = []
    for key, entries in groups.items():
        market = markets[key]
        tcc = [num(v) for v in market.bands("tcc")]
        wrvu = [num(v) for v in market.bands("wrvu")]
        ratios = tuple(safe_div(t, w) for t, w in zip(tcc, wrvu))
        median_imputed = _median([e[0] for e in entries])
        placed = infer_bands(median_imputed, ratios) if ratios[1] > 0 else None

        rows.append(ImputedVsMarketRow(
            specialty=market.specialty,
            provider_count=len(entries),
            median_imputed_per_wrvu=median_imputed,
            median_current_cf=_median([e[1] for e in entries]),
            market_ratios=ratios,
            percentile=placed.percentile if placed else 0.0,
            below_range=placed.below_range if placed else False,
            above_range=placed.above_range if placed else False,
            mean_tcc_percentile=_mean([e[2] for e in entries]),
            mean_wrvu_percentile=_mean([e[3] for e in entries]),
            market_cf=tuple(num(v) for v in market.bands("cf")),
        ))

    return sorted(rows, key=lambda row: row.specialty.lower())
