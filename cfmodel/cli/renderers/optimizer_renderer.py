"""Rich renderers for CF optimizer, CF sweep and imputed-vs-market output."""

from typing import Dict, List

from rich import box
from rich.console import Console
from rich.table import Table

from cfmodel.sdk.formatting import format_currency, format_number
from cfmodel.sdk.optimizer import CFSweepRow, ImputedVsMarketRow, OptimizerRun

from .results_renderer import _delta, _gap


ACTION_STYLES = {
    "INCREASE": "green",
    "DECREASE": "red",
    "HOLD": "yellow",
    "NO_RECOMMENDATION": "dim",
}


def render_optimizer_run(console: Console, run: OptimizerRun) -> None:
    """Render one recommendation row per specialty, then the notes."""
    table = Table(title="CF recommendations", box=box.ROUNDED)
    table.add_column("Specialty")
    table.add_column("n", justify="right")
    table.add_column("Excl", justify="right")
    table.add_column("Current CF", justify="right")
    table.add_column("Recommended", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Action")
    table.add_column("Gap before", justify="right")
    table.add_column("Gap after", justify="right")
    table.add_column("Spend impact", justify="right")
    table.add_column("Flags")

    for r in run.results:
        style = ACTION_STYLES.get(r.action, "")
        table.add_row(
            r.specialty,
            str(r.included_count),
            str(r.excluded_count),
            format_currency(r.current_cf),
            format_currency(r.recommended_cf),
            f"{r.cf_change_pct:+.1f}%",
            f"[{style}]{r.action}[/{style}]",
            _gap(r.mean_baseline_gap),
            _gap(r.mean_modeled_gap),
            _delta(r.spend_impact, 0),
            ", ".join(r.flags) or "-",
        )
    console.print(table)
    console.print(f"Total spend impact: {_delta(run.total_spend_impact, 0)}")

    if run.exclusion_counts:
        reasons = ", ".join(f"{reason} ({count})" for reason, count in run.exclusion_counts.items())
        console.print(f"[dim]Excluded providers: {reasons}[/dim]")

    for r in run.results:
        for note in r.notes:
            console.print(f"[dim]{r.specialty}: {note}[/dim]")


def render_cf_sweep(console: Console, sweep: Dict[str, List[CFSweepRow]]) -> None:
    """Render one table per specialty."""
    if not sweep:
        console.print("[yellow]No specialty matched a market row.[/yellow]")
        return

    for specialty, rows in sweep.items():
        table = Table(title=f"CF sweep: {specialty}", box=box.ROUNDED)
        table.add_column("CF %ile", justify="right")
        table.add_column("CF", justify="right")
        table.add_column("Mean TCC %ile", justify="right")
        table.add_column("Mean wRVU %ile", justify="right")
        table.add_column("Gap", justify="right")
        table.add_column("Incentive", justify="right")
        table.add_column("Spend impact", justify="right")
        for row in rows:
            table.add_row(
                format_number(row.cf_percentile, 0),
                format_currency(row.cf),
                format_number(row.mean_modeled_tcc_percentile, 1),
                format_number(row.mean_wrvu_percentile, 1),
                _gap(row.gap),
                format_currency(row.total_incentive, 0),
                _delta(row.spend_impact, 0),
            )
        console.print(table)


def render_imputed_vs_market(console: Console, rows: List[ImputedVsMarketRow]) -> None:
    """Render median $/wRVU against the market ratio curve."""
    table = Table(title="Imputed $/wRVU vs market", box=box.ROUNDED)
    table.add_column("Specialty")
    table.add_column("n", justify="right")
    table.add_column("Median $/wRVU", justify="right")
    table.add_column("Mkt 25th", justify="right")
    table.add_column("Mkt 50th", justify="right")
    table.add_column("Mkt 75th", justify="right")
    table.add_column("Mkt 90th", justify="right")
    table.add_column("%ile", justify="right")
    table.add_column("Mean TCC %ile", justify="right")
    table.add_column("Mean wRVU %ile", justify="right")

    for row in rows:
        pct = format_number(row.percentile, 1)
        if row.below_range or row.above_range:
            pct = f"[yellow]{pct}*[/yellow]"
        table.add_row(
            row.specialty,
            str(row.provider_count),
            format_currency(row.median_imputed_per_wrvu),
            *(format_currency(v) for v in row.market_ratios),
            pct,
            format_number(row.mean_tcc_percentile, 1),
            format_number(row.mean_wrvu_percentile, 1),
        )
    console.print(table)
    if any(r.below_range or r.above_range for r in rows):
        console.print("[dim]* off the market curve (below 25th or above 90th)[/dim]")
