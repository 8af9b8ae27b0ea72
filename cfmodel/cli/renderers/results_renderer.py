"""Rich renderers for scenario, batch and comparison results.

Transforms SDK models into formatted Rich tables.
"""

from typing import List, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cfmodel.sdk.batch.schemas import BatchResults, MatchMarketResult
from cfmodel.sdk.compare import ScenarioComparison, ScenarioRollup
from cfmodel.sdk.formatting import format_currency, format_number, format_ordinal
from cfmodel.sdk.schemas import ProviderRow, ScenarioResults


RISK_STYLES = {"high": "red", "medium": "yellow", "low": "green"}
MATCH_STYLES = {"Exact": "green", "Synonym": "cyan", "Missing": "red"}


def render_scenario_results(
    console: Console,
    provider: ProviderRow,
    match: MatchMarketResult,
    results: ScenarioResults,
) -> None:
    """Render baseline vs modeled for one provider.

    Args:
        console: Rich Console instance
        provider: Provider the scenario was computed for
        match: Market match used for percentiles
        results: compute_scenario() output
    """
    for warning in results.warnings + results.risk.warnings:
        console.print(Panel(f"[yellow]{warning}[/yellow]", title="Note", border_style="yellow"))
    for item in results.risk.high_risk:
        console.print(Panel(f"[red]{item}[/red]", title="High risk", border_style="red"))

    market_label = match.matched_key or "no market match"
    table = Table(
        title=f"{provider.provider_name or provider.provider_id} - {provider.specialty or '?'} ({market_label})",
        box=box.ROUNDED,
    )
    table.add_column("", style="bold", min_width=24)
    table.add_column("Baseline", justify="right", min_width=14)
    table.add_column("Modeled", justify="right", min_width=14)
    table.add_column("Change", justify="right", min_width=14)

    table.add_row(
        "Conversion factor",
        format_currency(results.current_cf),
        format_currency(results.modeled_cf),
        _delta(results.modeled_cf - results.current_cf),
    )
    table.add_row(
        "wRVU threshold",
        "",
        format_number(results.annual_threshold, 2),
        "",
    )
    table.add_row(
        "wRVUs (work / other)",
        "",
        f"{format_number(results.modeled_work_wrvus, 2)} / {format_number(results.modeled_other_wrvus, 2)}",
        "",
    )
    table.add_row("Total wRVUs", "", format_number(results.total_wrvus, 2), "")
    table.add_row(
        "Productivity incentive",
        format_currency(results.current_incentive),
        format_currency(results.annual_incentive),
        _delta(results.annual_incentive - results.current_incentive),
    )
    table.add_row(
        "PSQ / VBP",
        format_currency(results.current_psq_dollars),
        format_currency(results.psq_dollars),
        _delta(results.psq_dollars - results.current_psq_dollars),
    )
    tcc_label = "TCC (from file)" if results.current_tcc_from_file else "TCC"
    table.add_row(
        f"[bold]{tcc_label}[/bold]",
        f"[bold]{format_currency(results.current_tcc)}[/bold]",
        f"[bold]{format_currency(results.modeled_tcc)}[/bold]",
        f"[bold]{_delta(results.change_in_tcc)}[/bold]",
    )
    table.add_row("", "", "", "")
    table.add_row(
        "TCC percentile",
        format_ordinal(results.tcc_percentile),
        format_ordinal(results.modeled_tcc_percentile),
        "",
    )
    table.add_row("wRVU percentile", format_ordinal(results.wrvu_percentile), "", "")
    table.add_row(
        "CF percentile",
        format_ordinal(results.cf_percentile_current),
        format_ordinal(results.cf_percentile_modeled),
        "",
    )
    table.add_row(
        "TCC per wRVU",
        format_currency(results.imputed_tcc_per_wrvu_ratio_current),
        format_currency(results.imputed_tcc_per_wrvu_ratio_modeled),
        "",
    )
    table.add_row(
        "Alignment gap",
        _gap(results.alignment_gap_baseline),
        _gap(results.alignment_gap_modeled),
        "",
    )
    console.print(table)

    _render_governance(console, results)


def _render_governance(console: Console, results: ScenarioResults) -> None:
    flags = results.governance_flags
    if flags is None:
        console.print("[dim]No market data: percentiles and governance flags unavailable.[/dim]")
        return

    lines = []
    if flags.underpay_risk:
        lines.append("[red]Underpay risk: alignment gap < -15[/red]")
    if flags.cf_below_25:
        lines.append("[red]CF below 25th percentile[/red]")
    if flags.modeled_in_policy_band:
        lines.append("[green]Modeled TCC within policy band (25th-75th)[/green]")
    if flags.fmv_check_suggested:
        lines.append("[red]FMV check: TCC > 75th or gap > +15[/red]")
    if not lines:
        lines.append("[green]No governance flags for this scenario.[/green]")
    console.print(Panel("\n".join(lines), title="Governance", border_style="dim"))


def render_batch_rows(console: Console, results: BatchResults, limit: Optional[int] = None) -> None:
    """Render one line per provider x scenario."""
    table = Table(
        title=f"Batch: {results.provider_count} provider(s) x {results.scenario_count} scenario(s)",
        box=box.ROUNDED,
    )
    table.add_column("Provider")
    table.add_column("Specialty")
    table.add_column("Scenario")
    table.add_column("Match")
    table.add_column("Current TCC", justify="right")
    table.add_column("Modeled TCC", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("TCC %ile", justify="right")
    table.add_column("Gap", justify="right")
    table.add_column("Risk")

    rows = results.rows if limit is None else results.rows[:limit]
    for row in rows:
        res = row.results
        match_style = MATCH_STYLES.get(row.match_status, "white")
        risk_style = RISK_STYLES.get(row.risk_level, "white")
        table.add_row(
            row.provider_name or row.provider_id,
            row.specialty,
            row.scenario_name,
            f"[{match_style}]{row.match_status}[/{match_style}]",
            format_currency(res.current_tcc, 0) if res else "-",
            format_currency(res.modeled_tcc, 0) if res else "-",
            _delta(res.change_in_tcc, 0) if res else "-",
            format_ordinal(res.modeled_tcc_percentile) if res else "-",
            _gap(res.alignment_gap_modeled) if res else "-",
            f"[{risk_style}]{row.risk_level}[/{risk_style}]",
        )

    console.print(table)
    if limit is not None and len(results.rows) > limit:
        console.print(f"[dim]... {len(results.rows) - limit} more row(s); use --output for the full set[/dim]")


def render_rollups(console: Console, rollups: List[ScenarioRollup]) -> None:
    """Render one summary line per scenario."""
    table = Table(title="Scenario summary", box=box.ROUNDED)
    table.add_column("Scenario")
    table.add_column("Providers", justify="right")
    table.add_column("Missing mkt", justify="right")
    table.add_column("Current TCC", justify="right")
    table.add_column("Modeled TCC", justify="right")
    table.add_column("Change", justify="right")
    table.add_column("Mean TCC %ile", justify="right")
    table.add_column("Underpay", justify="right")
    table.add_column("FMV check", justify="right")

    for r in rollups:
        table.add_row(
            r.scenario_name,
            str(r.provider_count),
            str(r.missing_market_count),
            format_currency(r.total_current_tcc, 0),
            format_currency(r.total_modeled_tcc, 0),
            _delta(r.total_change_in_tcc, 0),
            format_number(r.mean_modeled_tcc_percentile, 1),
            str(r.underpay_risk_count),
            str(r.fmv_check_count),
        )
    console.print(table)


def render_comparison(console: Console, comparison: ScenarioComparison) -> None:
    """Render scenario A vs B."""
    a, b = comparison.rollup_a, comparison.rollup_b
    render_rollups(console, [a, b])

    table = Table(title=f"By specialty: {a.scenario_name} vs {b.scenario_name}", box=box.ROUNDED)
    table.add_column("Specialty")
    table.add_column("Providers", justify="right")
    table.add_column(f"Modeled TCC ({a.scenario_name})", justify="right")
    table.add_column(f"Modeled TCC ({b.scenario_name})", justify="right")
    table.add_column("Delta", justify="right")
    for row in comparison.by_specialty:
        table.add_row(
            row.specialty,
            str(row.provider_count),
            format_currency(row.modeled_tcc_a, 0),
            format_currency(row.modeled_tcc_b, 0),
            _delta(row.delta, 0),
        )
    console.print(table)

    console.print(Panel("\n".join(comparison.narrative), title="Summary", border_style="cyan"))


def render_matches(console: Console, matches: List[tuple]) -> None:
    """Render (provider, MatchMarketResult) pairs."""
    table = Table(title="Market matching", box=box.ROUNDED)
    table.add_column("Provider")
    table.add_column("Specialty")
    table.add_column("Status")
    table.add_column("Market specialty")
    for provider, match in matches:
        style = MATCH_STYLES.get(match.status, "white")
        table.add_row(
            provider.provider_name or provider.provider_id or "?",
            provider.specialty or "",
            f"[{style}]{match.status}[/{style}]",
            match.matched_key or "",
        )
    console.print(table)


def _delta(amount: float, decimals: int = 2) -> str:
    """Signed currency change, colored."""
    if amount > 0:
        return f"[green]+{format_currency(amount, decimals)}[/green]"
    if amount < 0:
        return f"[red]{format_currency(amount, decimals)}[/red]"
    return format_currency(0, decimals)


def _gap(value: Optional[float]) -> str:
    if value is None:
        return "-"
    return f"{value:+.1f}"
