"""Scenario-to-scenario comparison over batch results.

Both scenarios must come from the same batch run so every provider is
compared against the same baseline and market match.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .batch.schemas import BatchResults, BatchRowResult
from .formatting import format_currency


class ScenarioNotFoundError(Exception):
    """Raised when a scenario id is not present in batch results."""
    pass


@dataclass
class ScenarioRollup:
    """Totals and averages for one scenario across all providers."""

    scenario_id: str
    scenario_name: str
    provider_count: int
    matched_count: int
    missing_market_count: int
    total_current_tcc: float
    total_modeled_tcc: float
    total_change_in_tcc: float
    total_incentive: float
    mean_modeled_tcc_percentile: Optional[float]
    mean_wrvu_percentile: Optional[float]
    mean_alignment_gap_modeled: Optional[float]
    underpay_risk_count: int
    fmv_check_count: int
    in_policy_band_count: int
    cf_below_25_count: int
    high_risk_count: int


@dataclass
class SpecialtyComparisonRow:
    """Modeled spend for one specialty under scenarios A and B."""

    specialty: str
    provider_count: int
    modeled_tcc_a: float
    modeled_tcc_b: float
    mean_modeled_tcc_percentile_a: Optional[float]
    mean_modeled_tcc_percentile_b: Optional[float]

    @property
    def delta(self) -> float:
        return self.modeled_tcc_b - self.modeled_tcc_a


@dataclass
class ProviderDelta:
    """Modeled TCC for one provider under A and B (None when unmatched)."""

    provider_id: str
    provider_name: str
    specialty: str
    modeled_tcc_a: Optional[float]
    modeled_tcc_b: Optional[float]

    @property
    def delta(self) -> Optional[float]:
        if self.modeled_tcc_a is None or self.modeled_tcc_b is None:
            return None
        return self.modeled_tcc_b - self.modeled_tcc_a


@dataclass
class ScenarioComparison:
    """Scenario A vs B: rollups, deltas, by-specialty rows and narrative."""

    rollup_a: ScenarioRollup
    rollup_b: ScenarioRollup
    by_specialty: List[SpecialtyComparisonRow] = field(default_factory=list)
    providers: List[ProviderDelta] = field(default_factory=list)
    narrative: List[str] = field(default_factory=list)

    @property
    def delta_modeled_tcc(self) -> float:
        return self.rollup_b.total_modeled_tcc - self.rollup_a.total_modeled_tcc

    @property
    def delta_modeled_tcc_pct(self) -> Optional[float]:
        base = self.rollup_a.total_modeled_tcc
        if base == 0:
            return None
        return self.delta_modeled_tcc / abs(base) * 100

    @property
    def delta_incentive(self) -> float:
        return self.rollup_b.total_incentive - self.rollup_a.total_incentive


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def _scenario_rows(results: BatchResults, scenario_id: str) -> List[BatchRowResult]:
    rows = [r for r in results.rows if r.scenario_id == scenario_id]
    if not rows:
        known = sorted({r.scenario_id for r in results.rows})
        raise ScenarioNotFoundError(
            f"Scenario '{scenario_id}' not in batch results (available: {', '.join(known) or 'none'})"
        )
    return rows


def summarize_scenario(results: BatchResults, scenario_id: str) -> ScenarioRollup:
    """Roll up one scenario across every provider in the batch.

    Raises:
        ScenarioNotFoundError: If no row carries scenario_id
    """
    rows = _scenario_rows(results, scenario_id)
    matched = [r for r in rows if r.results is not None]
    computed = [r.results for r in matched]
    flags = [c.governance_flags for c in computed if c.governance_flags is not None]

    return ScenarioRollup(
        scenario_id=scenario_id,
        scenario_name=rows[0].scenario_name,
        provider_count=len(rows),
        matched_count=len(matched),
        missing_market_count=len(rows) - len(matched),
        total_current_tcc=sum(c.current_tcc for c in computed),
        total_modeled_tcc=sum(c.modeled_tcc for c in computed),
        total_change_in_tcc=sum(c.change_in_tcc for c in computed),
        total_incentive=sum(max(c.annual_incentive, 0.0) for c in computed),
        mean_modeled_tcc_percentile=_mean(
            [c.modeled_tcc_percentile for c in computed if c.modeled_tcc_percentile is not None]
        ),
        mean_wrvu_percentile=_mean([c.wrvu_percentile for c in computed if c.wrvu_percentile is not None]),
        mean_alignment_gap_modeled=_mean(
            [c.alignment_gap_modeled for c in computed if c.alignment_gap_modeled is not None]
        ),
        underpay_risk_count=sum(1 for f in flags if f.underpay_risk),
        fmv_check_count=sum(1 for f in flags if f.fmv_check_suggested),
        in_policy_band_count=sum(1 for f in flags if f.modeled_in_policy_band),
        cf_below_25_count=sum(1 for f in flags if f.cf_below_25),
        high_risk_count=sum(1 for r in rows if r.risk_level == "high"),
    )


def compare_scenarios(
    results: BatchResults,
    scenario_a_id: str,
    scenario_b_id: str,
) -> ScenarioComparison:
    """Compare two scenarios from the same batch run.

    Raises:
        ScenarioNotFoundError: If either scenario id is unknown
    """
    rows_a = _scenario_rows(results, scenario_a_id)
    rows_b = _scenario_rows(results, scenario_b_id)

    comparison = ScenarioComparison(
        rollup_a=summarize_scenario(results, scenario_a_id),
        rollup_b=summarize_scenario(results, scenario_b_id),
    )

    by_provider_b = {r.provider_index: r for r in rows_b}
    specialty_totals: Dict[str, dict] = defaultdict(lambda: {"a": [], "b": [], "count": 0})

    for row_a in rows_a:
        row_b = by_provider_b.get(row_a.provider_index)
        tcc_a = row_a.results.modeled_tcc if row_a.results else None
        tcc_b = row_b.results.modeled_tcc if row_b and row_b.results else None
        comparison.providers.append(ProviderDelta(
            provider_id=row_a.provider_id,
            provider_name=row_a.provider_name,
            specialty=row_a.specialty,
            modeled_tcc_a=tcc_a,
            modeled_tcc_b=tcc_b,
        ))

        if row_a.results is None:
            continue
        key = row_a.matched_market_specialty or row_a.specialty
        bucket = specialty_totals[key]
        bucket["count"] += 1
        bucket["a"].append(row_a.results)
        if row_b and row_b.results:
            bucket["b"].append(row_b.results)

    for specialty in sorted(specialty_totals):
        bucket = specialty_totals[specialty]
        comparison.by_specialty.append(SpecialtyComparisonRow(
            specialty=specialty,
            provider_count=bucket["count"],
            modeled_tcc_a=sum(r.modeled_tcc for r in bucket["a"]),
            modeled_tcc_b=sum(r.modeled_tcc for r in bucket["b"]),
            mean_modeled_tcc_percentile_a=_mean(
                [r.modeled_tcc_percentile for r in bucket["a"] if r.modeled_tcc_percentile is not None]
            ),
            mean_modeled_tcc_percentile_b=_mean(
                [r.modeled_tcc_percentile for r in bucket["b"] if r.modeled_tcc_percentile is not None]
            ),
        ))

    comparison.narrative = build_narrative(comparison)
    return comparison


def build_narrative(comparison: ScenarioComparison) -> List[str]:
    """Plain-language summary of scenario B relative to scenario A."""
    a, b = comparison.rollup_a, comparison.rollup_b
    lines = []

    delta = comparison.delta_modeled_tcc
    direction = "increases" if delta > 0 else "decreases" if delta < 0 else "does not change"
    line = f"{b.scenario_name} {direction} total modeled TCC vs {a.scenario_name}"
    if delta:
        line += f" by {format_currency(abs(delta), decimals=0)}"
        pct = comparison.delta_modeled_tcc_pct
        if pct is not None:
            line += f" ({abs(pct):.1f}%)"
    lines.append(line + ".")

    if comparison.delta_incentive:
        verb = "more" if comparison.delta_incentive > 0 else "less"
        lines.append(
            f"Productivity incentive pays {format_currency(abs(comparison.delta_incentive), decimals=0)} "
            f"{verb} in {b.scenario_name}."
        )

    if a.mean_modeled_tcc_percentile is not None and b.mean_modeled_tcc_percentile is not None:
        lines.append(
            f"Mean modeled TCC percentile moves from {a.mean_modeled_tcc_percentile:.1f} "
            f"to {b.mean_modeled_tcc_percentile:.1f}."
        )

    if b.underpay_risk_count != a.underpay_risk_count:
        lines.append(f"Underpay-risk providers: {a.underpay_risk_count} -> {b.underpay_risk_count}.")
    if b.fmv_check_count != a.fmv_check_count:
        lines.append(f"FMV checks suggested: {a.fmv_check_count} -> {b.fmv_check_count}.")
    if a.missing_market_count:
        lines.append(f"{a.missing_market_count} provider(s) excluded for missing market data.")

    return lines
