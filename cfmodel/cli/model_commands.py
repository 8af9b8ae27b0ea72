"""Model command: run one scenario for one provider."""

import json
from typing import Any, Dict

import click
from rich.console import Console

from cfmodel.sdk import (
    ScenarioInputs,
    ScenarioPatchError,
    apply_scenario_patch,
    compute_scenario,
)
from cfmodel.sdk.batch import match_market_row

from .loaders import find_provider, load_inputs, load_scenario_file, load_synonyms
from .renderers.results_renderer import render_scenario_results


# CLI option name -> ScenarioInputs field
SCENARIO_OPTIONS = {
    "cf_percentile": "proposed_cf_percentile",
    "cf_factor": "cf_adjustment_factor",
    "wrvus": "modeled_wrvus",
    "work_wrvus": "modeled_work_wrvus",
    "other_wrvus": "modeled_other_wrvus",
    "base_pay": "modeled_base_pay",
    "non_clinical_pay": "modeled_non_clinical_pay",
    "psq_percent": "psq_percent",
    "psq_basis": "psq_basis",
    "current_psq_percent": "current_psq_percent",
}


def build_scenario_patch(options: Dict[str, Any]) -> Dict[str, Any]:
    """Scenario patch from CLI options that were actually given."""
    patch = {
        field: options[name]
        for name, field in SCENARIO_OPTIONS.items()
        if options.get(name) is not None
    }
    if options.get("override_cf") is not None:
        patch["cf_source"] = "override"
        patch["override_cf"] = options["override_cf"]
    return patch


@click.command("model")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--provider", "-p", "provider_key", required=True, help="Provider id or name")
@click.option("--scenarios", "scenarios_file", type=click.Path(exists=True, dir_okay=False),
              help="Scenario presets file (YAML or JSON)")
@click.option("--scenario", "scenario_id", help="Preset id from --scenarios to start from")
@click.option("--cf-percentile", type=float, help="Proposed CF market percentile (0-100)")
@click.option("--override-cf", type=float, help="Use this CF directly ($/wRVU)")
@click.option("--cf-factor", type=float, help="Adjustment factor applied to the resolved CF")
@click.option("--wrvus", type=float, help="Modeled total wRVUs")
@click.option("--work-wrvus", type=float, help="Modeled work wRVUs")
@click.option("--other-wrvus", type=float, help="Modeled other wRVUs")
@click.option("--base-pay", type=float, help="Modeled base pay")
@click.option("--non-clinical-pay", type=float, help="Modeled non-clinical pay")
@click.option("--psq-percent", type=float, help="Modeled PSQ percent (0-50)")
@click.option("--psq-basis", type=click.Choice(["base_salary", "total_pay"]),
              help="What PSQ percent applies to")
@click.option("--current-psq-percent", type=float, help="Baseline PSQ percent")
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def model(providers_file, market_file, provider_key, scenarios_file, scenario_id, synonyms_file, as_json, **options):
    """Model a compensation scenario for one provider.

    PROVIDERS_FILE and MARKET_FILE are CSV, JSON or YAML tables. The
    provider's specialty is matched to a market row (exact, then synonym).
    Scenario options override the preset chosen with --scenario; anything
    not given inherits the provider's baseline.

    \b
    Examples:
        cf-model model providers.csv market.csv -p P001 --cf-percentile 60
        cf-model model providers.csv market.csv -p "Dr. Smith" --override-cf 55 --psq-percent 5
        cf-model model providers.csv market.csv -p P001 --scenarios s.yaml --scenario raise
    """
    providers, market_rows = load_inputs(providers_file, market_file)
    provider = find_provider(providers, provider_key)
    synonym_map = load_synonyms(synonyms_file)

    inputs = ScenarioInputs()
    if scenario_id:
        presets = load_scenario_file(scenarios_file)
        preset = next((p for p in presets if p.id == scenario_id), None)
        if preset is None:
            raise click.ClickException(f"Scenario '{scenario_id}' not found in {scenarios_file or 'scenario file'}")
        inputs = preset.scenario_inputs
    elif scenarios_file:
        raise click.UsageError("--scenarios requires --scenario to pick a preset")

    try:
        inputs = apply_scenario_patch(inputs, build_scenario_patch(options))
    except ScenarioPatchError as e:
        raise click.ClickException(str(e))

    match = match_market_row(provider, market_rows, synonym_map)
    results = compute_scenario(provider, match.market_row, inputs)

    if as_json:
        output = {
            "provider_id": provider.provider_id,
            "match_status": match.status,
            "matched_market_specialty": match.matched_key,
            "scenario_inputs": inputs.model_dump(),
            "results": results.model_dump(),
        }
        click.echo(json.dumps(output, indent=2))
        return

    render_scenario_results(Console(), provider, match, results)
