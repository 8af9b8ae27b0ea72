"""Optimize command group: specialty CF recommendations, CF sweeps, imputed $/wRVU."""

import json
from dataclasses import asdict

import click
from rich.console import Console

from cfmodel.sdk.optimizer import (
    DEFAULT_SWEEP_PERCENTILES,
    OptimizerSettings,
    imputed_vs_market,
    run_cf_sweep,
    run_optimizer,
)

from .loaders import load_inputs, load_synonyms
from .renderers.optimizer_renderer import render_cf_sweep, render_imputed_vs_market, render_optimizer_run


def _specialty_json(result) -> dict:
    data = {k: v for k, v in vars(result).items() if k != "providers"}
    data["cf_change_pct"] = result.cf_change_pct
    data["spend_impact"] = result.spend_impact
    data["providers"] = [
        {
            "provider_id": c.provider_id,
            "included": c.included,
            "exclusion_reasons": c.exclusion_reasons,
            "wrvu_percentile": c.wrvu_percentile,
            "baseline_tcc_percentile": c.baseline_tcc_percentile,
            "modeled_tcc_percentile": c.modeled_tcc_percentile,
        }
        for c in result.providers
    ]
    return data


@click.group()
def optimize():
    """Recommend conversion factors by specialty.

    Providers are matched to market rows the same way as 'batch run'. The
    baseline is each provider's pay at their current CF (market 50th CF when
    the file has none).
    """
    pass


@optimize.command("run")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--specialty", help="Only optimize this market specialty")
@click.option("--objective", type=click.Choice(["align_percentile", "target_percentile"]),
              default="align_percentile", show_default=True)
@click.option("--target-percentile", type=click.FloatRange(0, 100), default=40, show_default=True,
              help="TCC percentile to aim for with --objective target_percentile")
@click.option("--error-metric", type=click.Choice(["squared", "absolute"]), default="squared", show_default=True)
@click.option("--max-change", type=click.FloatRange(0, 100), default=30, show_default=True,
              help="Largest CF move searched, in percent either way")
@click.option("--max-cf-percentile", type=click.FloatRange(0, 100), default=50, show_default=True,
              help="Never recommend a CF above this market percentile")
@click.option("--outliers", type=click.Choice(["iqr", "mad_z"]), help="Exclude wRVU-per-cFTE outliers")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def optimize_run(providers_file, market_file, synonyms_file, specialty, objective, target_percentile,
                 error_metric, max_change, max_cf_percentile, outliers, as_json):
    """Recommend one CF per specialty.

    \b
    Examples:
        cf-model optimize run providers.csv market.csv
        cf-model optimize run providers.csv market.csv --specialty Cardiology --outliers mad_z
    """
    providers, market_rows = load_inputs(providers_file, market_file)
    settings = OptimizerSettings(
        objective=objective,
        target_percentile=target_percentile,
        error_metric=error_metric,
        max_decrease_pct=max_change,
        max_increase_pct=max_change,
        max_recommended_cf_percentile=max_cf_percentile,
        outlier_method=outliers,
    )
    run = run_optimizer(
        providers, market_rows, settings,
        synonym_map=load_synonyms(synonyms_file),
        specialty_filter=specialty,
    )

    if as_json:
        output = {
            "results": [_specialty_json(r) for r in run.results],
            "total_spend_impact": run.total_spend_impact,
            "exclusion_counts": run.exclusion_counts,
        }
        click.echo(json.dumps(output, indent=2))
        return

    if not run.results:
        raise click.ClickException("No specialty matched a market row")
    render_optimizer_run(Console(), run)


@optimize.command("sweep")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--specialty", help="Only sweep this market specialty")
@click.option("--percentile", "-p", "percentiles", type=click.FloatRange(0, 100), multiple=True,
              help="CF percentile to model (repeatable; default 25 40 50 60 75 90)")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def optimize_sweep(providers_file, market_file, synonyms_file, specialty, percentiles, as_json):
    """Model every specialty at fixed market CF percentiles.

    \b
    Example:
        cf-model optimize sweep providers.csv market.csv -p 40 -p 50 -p 60
    """
    providers, market_rows = load_inputs(providers_file, market_file)
    sweep = run_cf_sweep(
        providers, market_rows,
        cf_percentiles=sorted(percentiles) or DEFAULT_SWEEP_PERCENTILES,
        synonym_map=load_synonyms(synonyms_file),
        specialty_filter=specialty,
    )

    if as_json:
        output = {
            name: [{**asdict(row), "gap": row.gap} for row in rows]
            for name, rows in sweep.items()
        }
        click.echo(json.dumps(output, indent=2))
        return

    render_cf_sweep(Console(), sweep)


@optimize.command("imputed")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--min-cfte", type=click.FloatRange(min=0), default=0.5, show_default=True,
              help="Skip providers below this clinical FTE")
@click.option("--min-wrvus", type=click.FloatRange(min=0), default=1000, show_default=True,
              help="Skip providers below this many wRVUs per 1.0 cFTE")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def optimize_imputed(providers_file, market_file, synonyms_file, min_cfte, min_wrvus, as_json):
    """Compare each specialty's median $/wRVU to the market.

    \b
    Example:
        cf-model optimize imputed providers.csv market.csv
    """
    providers, market_rows = load_inputs(providers_file, market_file)
    rows = imputed_vs_market(
        providers, market_rows,
        synonym_map=load_synonyms(synonyms_file),
        min_clinical_fte=min_cfte,
        min_wrvus_per_cfte=min_wrvus,
    )

    if as_json:
        click.echo(json.dumps([asdict(row) for row in rows], indent=2))
        return

    if not rows:
        click.echo("No providers with a market match and positive $/wRVU.")
        return
    render_imputed_vs_market(Console(), rows)
