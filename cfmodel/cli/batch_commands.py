"""Batch command group: run scenarios across every provider and compare them."""

import json
from pathlib import Path

import click
from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeElapsedColumn

from cfmodel.sdk import ConfigError, ScenarioNotFoundError, compare_scenarios, get_chunk_size, summarize_scenario
from cfmodel.sdk.batch import (
    BatchCancelledError,
    BatchJob,
    BatchJobError,
    BatchResults,
    BatchWorker,
    export_batch_csv,
)

from .loaders import load_inputs, load_scenario_file, load_synonyms
from .renderers.results_renderer import render_batch_rows, render_comparison, render_rollups


def run_batch_job(providers_file, market_file, scenarios_file, synonyms_file, chunk_size, quiet=False) -> BatchResults:
    """Load inputs and run them on a background worker with a progress bar."""
    providers, market_rows = load_inputs(providers_file, market_file)
    scenarios = load_scenario_file(scenarios_file)
    synonym_map = load_synonyms(synonyms_file)

    if chunk_size is None:
        try:
            chunk_size = get_chunk_size()
        except ConfigError as e:
            raise click.ClickException(str(e))

    job = BatchJob(
        providers=providers,
        market_rows=market_rows,
        scenarios=scenarios,
        synonym_map=synonym_map,
        chunk_size=chunk_size,
    )

    worker = BatchWorker()
    worker.submit(job)
    try:
        if quiet:
            return worker.wait()
        with Progress(
            TextColumn("[bold]Running scenarios"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=Console(stderr=True),
            transient=True,
        ) as progress:
            task = progress.add_task("batch", total=None)

            def on_progress(processed, total, elapsed_ms):
                progress.update(task, completed=processed, total=total)

            return worker.wait(on_progress=on_progress)
    except KeyboardInterrupt:
        worker.cancel()
        worker.join()
        raise click.Abort()
    except (BatchJobError, BatchCancelledError) as e:
        raise click.ClickException(f"Batch failed: {e}")


@click.group()
def batch():
    """Run scenarios across all providers.

    Scenario files are YAML or JSON: a list (or a 'scenarios' list) of
    {id, name, scenario_inputs}. Without a file a single 'Current'
    scenario inheriting every baseline value is run.
    """
    pass


@batch.command("run")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--scenarios", "scenarios_file", type=click.Path(exists=True, dir_okay=False),
              help="Scenario presets file (YAML or JSON)")
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--chunk-size", type=click.IntRange(min=1), help="Rows between progress updates")
@click.option("--output", "-o", type=click.Path(dir_okay=False), help="Write all rows to this CSV file")
@click.option("--limit", type=click.IntRange(min=0), default=50, show_default=True,
              help="Max rows to show in the table")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def batch_run(providers_file, market_file, scenarios_file, synonyms_file, chunk_size, output, limit, as_json):
    """Run every provider x scenario.

    \b
    Examples:
        cf-model batch run providers.csv market.csv
        cf-model batch run providers.csv market.csv --scenarios scenarios.yaml -o results.csv
    """
    results = run_batch_job(providers_file, market_file, scenarios_file, synonyms_file, chunk_size, quiet=as_json)

    if output:
        Path(output).write_text(export_batch_csv(results))
        click.echo(f"Wrote {len(results.rows)} row(s) to {output}", err=True)

    if as_json:
        click.echo(json.dumps(results.model_dump(), indent=2))
        return

    console = Console()
    scenario_ids = list(dict.fromkeys(r.scenario_id for r in results.rows))
    if scenario_ids:
        render_rollups(console, [summarize_scenario(results, sid) for sid in scenario_ids])
    render_batch_rows(console, results, limit=limit)


@batch.command("compare")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("scenario_a")
@click.argument("scenario_b")
@click.option("--scenarios", "scenarios_file", type=click.Path(exists=True, dir_okay=False), required=True,
              help="Scenario presets file (YAML or JSON)")
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def batch_compare(providers_file, market_file, scenario_a, scenario_b, scenarios_file, synonyms_file, as_json):
    """Compare two scenarios across all providers.

    SCENARIO_A and SCENARIO_B are preset ids from --scenarios.

    \b
    Example:
        cf-model batch compare providers.csv market.csv current raise --scenarios s.yaml
    """
    results = run_batch_job(providers_file, market_file, scenarios_file, synonyms_file, None, quiet=as_json)

    try:
        comparison = compare_scenarios(results, scenario_a, scenario_b)
    except ScenarioNotFoundError as e:
        raise click.ClickException(str(e))

    if as_json:
        output = {
            "scenario_a": vars(comparison.rollup_a),
            "scenario_b": vars(comparison.rollup_b),
            "delta_modeled_tcc": comparison.delta_modeled_tcc,
            "delta_modeled_tcc_pct": comparison.delta_modeled_tcc_pct,
            "delta_incentive": comparison.delta_incentive,
            "by_specialty": [
                {**vars(row), "delta": row.delta} for row in comparison.by_specialty
            ],
            "narrative": comparison.narrative,
        }
        click.echo(json.dumps(output, indent=2))
        return

    render_comparison(Console(), comparison)
