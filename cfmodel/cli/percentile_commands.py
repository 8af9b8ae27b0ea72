"""Percentile command group: piecewise-linear interpolation on survey bands."""

import json

import click

from cfmodel.sdk import InterpolationCheckError, infer_percentile, interp_percentile, run_interpolation_self_check
from cfmodel.sdk.interpolation import clamp_percentile


BAND_ARGS = ("p25", "p50", "p75", "p90")


def _band_arguments(f):
    for name in reversed(BAND_ARGS):
        f = click.argument(name, type=float)(f)
    return f


@click.group()
def percentile():
    """Convert between values and market percentiles.

    Bands are the survey's 25th, 50th, 75th and 90th percentile values.
    Below the 25th the 0-25 segment is extrapolated from the 25-50 slope;
    above the 90th the 75-90 slope continues out to the 100th.
    """
    pass


@percentile.command("value")
@click.argument("pct", type=float)
@_band_arguments
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def percentile_value(pct, p25, p50, p75, p90, as_json):
    """Value at percentile PCT (clamped to 0-100).

    \b
    Example:
        cf-model percentile value 60 300000 400000 500000 600000
    """
    value = interp_percentile(pct, p25, p50, p75, p90)
    if as_json:
        click.echo(json.dumps({"percentile": clamp_percentile(pct), "value": value}))
        return
    click.echo(f"{value:,.2f}")


@percentile.command("infer")
@click.argument("value", type=float)
@_band_arguments
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def percentile_infer(value, p25, p50, p75, p90, as_json):
    """Percentile of VALUE within the bands.

    \b
    Example:
        cf-model percentile infer 450000 300000 400000 500000 600000
    """
    result = infer_percentile(value, p25, p50, p75, p90)
    if as_json:
        click.echo(json.dumps({
            "percentile": result.percentile,
            "below_range": result.below_range,
            "above_range": result.above_range,
        }))
        return

    suffix = ""
    if result.below_range:
        suffix = " (below 25th)"
    elif result.above_range:
        suffix = " (above 90th)"
    click.echo(f"{result.percentile:.1f}{suffix}")


@percentile.command("check")
def percentile_check():
    """Run the interpolation self-check against known answers."""
    try:
        run_interpolation_self_check()
    except InterpolationCheckError as e:
        raise click.ClickException(str(e))
    click.echo(click.style("Interpolation self-check passed.", fg="green"))
