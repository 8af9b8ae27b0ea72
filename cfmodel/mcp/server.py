"""cf-model MCP Server - FastMCP implementation for compensation modeling tools."""

import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP
from pydantic import Field

from cfmodel.sdk import (
    DEFAULT_SCENARIO_INPUTS,
    MarketRow,
    ProviderRow,
    ScenarioInputs,
    apply_scenario_patch,
    compute_scenario as sdk_compute_scenario,
    get_chunk_size,
    infer_percentile as sdk_infer_percentile,
    interp_percentile,
    load_market_rows,
    load_provider_rows,
    load_scenarios,
    load_synonym_map,
    summarize_scenario,
)
from cfmodel.sdk.batch import run_batch

logger = logging.getLogger(__name__)

# Initialize FastMCP server
mcp = FastMCP("cf-model")


# --- Tools ---

@mcp.tool()
async def compute_scenario(
    provider: dict[str, Any] = Field(description="Provider row: base_salary, clinical_fte, work_rvus, current_cf, ..."),
    market: dict[str, Any] | None = Field(default=None, description="Market row with TCC_25..TCC_90, WRVU_25..WRVU_90, CF_25..CF_90; omit for no market data"),
    scenario: dict[str, Any] | None = Field(default=None, description="Scenario patch applied over the defaults (e.g. {'proposed_cf_percentile': 60})"),
    inherit_baseline: bool = Field(default=False, description="Start from an all-inherit scenario instead of the default 40th percentile x 0.95"),
) -> dict[str, Any]:
    """Compute baseline vs modeled compensation for one provider. Returns TCC, incentive, percentiles and governance flags."""
    try:
        provider_row = ProviderRow.model_validate(provider)
        market_row = MarketRow.model_validate(market) if market else None
        base = ScenarioInputs() if inherit_baseline else DEFAULT_SCENARIO_INPUTS
        inputs = apply_scenario_patch(base, scenario or {})

        results = sdk_compute_scenario(provider_row, market_row, inputs)
        return {
            "scenario_inputs": inputs.model_dump(),
            "results": results.model_dump(),
        }

    except Exception as e:
        logger.error(f"Error computing scenario: {e}")
        return {"error": str(e), "results": None}


@mcp.tool()
async def infer_percentile(
    value: float = Field(description="Value to place within the bands (e.g. a TCC of 450000)"),
    p25: float = Field(description="25th percentile value"),
    p50: float = Field(description="50th percentile value"),
    p75: float = Field(description="75th percentile value"),
    p90: float = Field(description="90th percentile value"),
) -> dict[str, Any]:
    """Percentile (0-100) of a value within market survey bands, with off-scale flags."""
    try:
        result = sdk_infer_percentile(value, p25, p50, p75, p90)
        return {
            "percentile": result.percentile,
            "below_range": result.below_range,
            "above_range": result.above_range,
        }

    except Exception as e:
        logger.error(f"Error inferring percentile: {e}")
        return {"error": str(e), "percentile": None}


@mcp.tool()
async def value_at_percentile(
    percentile: float = Field(description="Target percentile (clamped to 0-100)"),
    p25: float = Field(description="25th percentile value"),
    p50: float = Field(description="50th percentile value"),
    p75: float = Field(description="75th percentile value"),
    p90: float = Field(description="90th percentile value"),
) -> dict[str, Any]:
    """Value at a percentile of market survey bands (piecewise-linear, extrapolated off-scale)."""
    try:
        return {"percentile": percentile, "value": interp_percentile(percentile, p25, p50, p75, p90)}

    except Exception as e:
        logger.error(f"Error interpolating percentile: {e}")
        return {"error": str(e), "value": None}


@mcp.tool()
async def run_batch_summary(
    providers_file: str = Field(description="Path to provider CSV/JSON/YAML file"),
    market_file: str = Field(description="Path to market CSV/JSON/YAML file"),
    scenarios_file: str | None = Field(default=None, description="Path to scenario presets file; omit to run the current baseline only"),
    synonyms_file: str | None = Field(default=None, description="Path to specialty synonym map; omit to use the configured map"),
) -> dict[str, Any]:
    """Run every provider x scenario and return per-scenario rollups plus unmatched specialties."""
    try:
        providers, provider_errors = load_provider_rows(Path(providers_file))
        market_rows, market_errors = load_market_rows(Path(market_file))
        scenarios = load_scenarios(Path(scenarios_file)) if scenarios_file else []
        synonym_map = load_synonym_map(Path(synonyms_file) if synonyms_file else None)

        results = run_batch(
            providers,
            market_rows,
            scenarios,
            synonym_map=synonym_map,
            chunk_size=get_chunk_size(),
        )

        scenario_ids = list(dict.fromkeys(r.scenario_id for r in results.rows))
        missing = sorted({r.specialty for r in results.rows if r.match_status == "Missing"})

        return {
            "run_at": results.run_at,
            "provider_count": results.provider_count,
            "scenario_count": results.scenario_count,
            "scenarios": [vars(summarize_scenario(results, sid)) for sid in scenario_ids],
            "missing_market_specialties": missing,
            "skipped_rows": provider_errors + market_errors,
        }

    except Exception as e:
        logger.error(f"Error running batch: {e}")
        return {"error": str(e), "scenarios": []}


def run_server():
    """Run the MCP server in stdio mode."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    run_server()
