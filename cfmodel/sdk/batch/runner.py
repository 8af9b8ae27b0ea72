"""Batch driver: run the scenario engine over providers x scenarios.

For each provider the market row is matched once, then every scenario is
computed against it. Providers without a market match still produce one row
per scenario (results=None, match_status='Missing', risk_level='high').
"""

import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from ..compute import compute_scenario, num
from ..config import DEFAULT_CHUNK_SIZE
from ..schemas import BatchScenarioPreset, MarketRow, ProviderRow, ScenarioInputs, ScenarioResults
from .matching import match_market_row
from .schemas import BatchResults, BatchRiskLevel, BatchRowResult

# Configure logging based on LOG_LEVEL environment variable
_log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, _log_level, logging.INFO),
    format="%(asctime)s.%(msecs)03d %(levelname)s: %(message)s",
    datefmt="%H:%M:%S"
)
logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]


class BatchCancelledError(Exception):
    """Raised inside run_batch when should_cancel() returns True."""
    pass


def derive_risk_level(results: ScenarioResults) -> BatchRiskLevel:
    """Single risk level for filtering and display."""
    flags = results.governance_flags
    if results.risk.high_risk or (flags and (flags.underpay_risk or flags.fmv_check_suggested)):
        return "high"
    if results.risk.warnings or results.warnings:
        return "medium"
    return "low"


def default_scenarios() -> List[BatchScenarioPreset]:
    """Single scenario that inherits every baseline value."""
    return [BatchScenarioPreset(id="default", name="Current", scenario_inputs=ScenarioInputs())]


def run_batch(
    providers: List[ProviderRow],
    market_rows: List[MarketRow],
    scenarios: List[BatchScenarioPreset],
    synonym_map: Optional[Dict[str, str]] = None,
    on_progress: Optional[ProgressCallback] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> BatchResults:
    """Run every provider x scenario.

    Args:
        providers: Provider rows
        market_rows: Market benchmark rows
        scenarios: Scenario presets (empty list runs a single 'Current' scenario)
        synonym_map: provider specialty -> market specialty
        on_progress: Called as (processed, total, elapsed_ms) after each chunk
            and once more with processed == total; processed never decreases
        chunk_size: Rows between progress callbacks
        should_cancel: Polled before each provider

    Returns:
        BatchResults with rows ordered by provider, then scenario

    Raises:
        BatchCancelledError: If should_cancel() returned True
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got: {chunk_size}")

    scenario_list = scenarios or default_scenarios()
    num_scenarios = len(scenario_list)
    total = len(providers) * num_scenarios
    start = time.perf_counter()
    rows: List[BatchRowResult] = []
    last_reported = -1

    def elapsed_ms() -> int:
        return int(round((time.perf_counter() - start) * 1000))

    logger.debug(f"batch start: {len(providers)} providers x {num_scenarios} scenarios")

    for i, provider in enumerate(providers):
        if should_cancel and should_cancel():
            logger.info(f"batch cancelled after {i} of {len(providers)} providers")
            raise BatchCancelledError(f"Cancelled after {i * num_scenarios} of {total} rows")

        rows.extend(_provider_rows(i, provider, market_rows, scenario_list, synonym_map or {}))

        processed = (i + 1) * num_scenarios
        if on_progress and processed % chunk_size < num_scenarios:
            on_progress(min(processed, total), total, elapsed_ms())
            last_reported = min(processed, total)

    if on_progress and last_reported != total:
        on_progress(total, total, elapsed_ms())

    missing = sum(1 for r in rows if r.match_status == "Missing")
    logger.debug(f"batch done: {len(rows)} rows, {missing} missing market, {elapsed_ms()} ms")

    return BatchResults(
        rows=rows,
        run_at=datetime.now(timezone.utc).isoformat(),
        scenario_count=num_scenarios,
        provider_count=len(providers),
    )


def _provider_rows(
    index: int,
    provider: ProviderRow,
    market_rows: List[MarketRow],
    scenarios: List[BatchScenarioPreset],
    synonym_map: Dict[str, str],
) -> List[BatchRowResult]:
    """Rows for one provider across all scenarios."""
    identity = dict(
        provider_index=index,
        provider_id=str(provider.provider_id or provider.provider_name or f"provider-{index}"),
        provider_name=provider.provider_name or "",
        specialty=provider.specialty or "",
        division=provider.division or "",
        provider_type=provider.provider_type or "",
    )
    specialty = identity["specialty"].strip()

    warnings: List[str] = []
    if not specialty:
        warnings.append("Missing specialty")
    clinical_fte = num(provider.clinical_fte) or num(provider.total_fte) or 1.0
    if clinical_fte <= 0:
        warnings.append("Clinical FTE <= 0; ratios may be unstable")

    match = match_market_row(provider, market_rows, synonym_map)
    rows = []

    if match.market_row is None:
        warnings.append(f"Market missing for specialty: {specialty}" if specialty else "Market missing (no specialty)")
        logger.debug(f"{identity['provider_id']}: no market row for '{specialty}'")
        for scenario in scenarios:
            rows.append(BatchRowResult(
                **identity,
                scenario_id=scenario.id,
                scenario_name=scenario.name,
                scenario_inputs_snapshot=scenario.scenario_inputs,
                results=None,
                match_status="Missing",
                warnings=list(warnings),
                risk_level="high",
            ))
        return rows

    for scenario in scenarios:
        results = compute_scenario(provider, match.market_row, scenario.scenario_inputs)
        row_warnings = warnings + results.warnings + results.risk.warnings
        row_warnings.extend(f"High risk: {r}" for r in results.risk.high_risk)
        rows.append(BatchRowResult(
            **identity,
            scenario_id=scenario.id,
            scenario_name=scenario.name,
            scenario_inputs_snapshot=scenario.scenario_inputs,
            results=results,
            match_status=match.status,
            matched_market_specialty=match.matched_key,
            warnings=row_warnings,
            risk_level=derive_risk_level(results),
        ))
    return rows
