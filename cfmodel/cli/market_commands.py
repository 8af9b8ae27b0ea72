"""Market command group: specialty matching and the synonym map."""

import json
from pathlib import Path

import click
from rich.console import Console

from cfmodel.sdk import ConfigError, get_synonyms_path, load_synonym_map, save_synonym_map
from cfmodel.sdk.batch import match_market_row, specialty_similarity, suggest_specialty_mappings
from cfmodel.sdk.batch.matching import is_market_row_valid

from .loaders import load_inputs, load_synonyms
from .renderers.results_renderer import render_matches


@click.group()
def market():
    """Match provider specialties to market survey rows."""
    pass


@market.command("match")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--missing-only", is_flag=True, help="Only show providers without a market match")
@click.option("--json", "as_json", is_flag=True, help="Output raw JSON")
def market_match(providers_file, market_file, synonyms_file, missing_only, as_json):
    """Show how each provider's specialty matches the market file."""
    providers, market_rows = load_inputs(providers_file, market_file)
    synonym_map = load_synonyms(synonyms_file)

    matches = [(p, match_market_row(p, market_rows, synonym_map)) for p in providers]
    if missing_only:
        matches = [(p, m) for p, m in matches if m.status == "Missing"]

    if as_json:
        output = [
            {
                "provider_id": p.provider_id,
                "specialty": p.specialty,
                "status": m.status,
                "matched_market_specialty": m.matched_key,
            }
            for p, m in matches
        ]
        click.echo(json.dumps(output, indent=2))
        return

    render_matches(Console(), matches)
    counts = {}
    for _, m in matches:
        counts[m.status] = counts.get(m.status, 0) + 1
    click.echo(", ".join(f"{status}: {n}" for status, n in sorted(counts.items())))


@market.command("suggest")
@click.argument("providers_file", type=click.Path(exists=True, dir_okay=False))
@click.argument("market_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--synonyms", "synonyms_file", type=click.Path(exists=True, dir_okay=False),
              help="Specialty synonym map (default: config dir)")
@click.option("--save", is_flag=True, help="Add the suggestions to the synonym map")
def market_suggest(providers_file, market_file, synonyms_file, save):
    """Suggest synonyms for specialties with no market match.

    Suggestions are by name similarity and should be reviewed before use.
    With --save they are merged into the synonym map (existing entries win).
    """
    providers, market_rows = load_inputs(providers_file, market_file)
    synonym_map = load_synonyms(synonyms_file)

    unmatched = sorted({
        p.specialty for p in providers
        if p.specialty and match_market_row(p, market_rows, synonym_map).status == "Missing"
    })
    market_specialties = sorted({m.specialty for m in market_rows if is_market_row_valid(m)})

    if not unmatched:
        click.echo("All provider specialties match the market file.")
        return

    suggestions = suggest_specialty_mappings(unmatched, market_specialties)
    for specialty in unmatched:
        target = suggestions.get(specialty)
        if target:
            score = specialty_similarity(specialty, target)
            click.echo(f"  {specialty} -> {target} ({score:.2f})")
        else:
            click.echo(f"  {specialty} -> (no suggestion)")

    if save and suggestions:
        merged = {**suggestions, **synonym_map}
        path = save_synonym_map(merged, Path(synonyms_file) if synonyms_file else None)
        click.echo(f"Saved {len(merged) - len(synonym_map)} new synonym(s) to {path}")


@click.group()
def synonyms():
    """Manage the specialty synonym map (synonyms.yaml).

    Maps a provider specialty to the market specialty used for percentiles,
    e.g. 'Cardiology - Invasive' -> 'Cardiology'.
    """
    pass


@synonyms.command("show")
def synonyms_show():
    """Show the synonym map."""
    try:
        path = get_synonyms_path()
        current = load_synonym_map(path)
    except ConfigError as e:
        raise click.ClickException(str(e))

    click.echo(f"Synonym file: {path}")
    if not current:
        click.echo("No synonyms configured.")
        return
    for key, value in current.items():
        click.echo(f"  {key} -> {value}")


@synonyms.command("set")
@click.argument("provider_specialty")
@click.argument("market_specialty")
def synonyms_set(provider_specialty, market_specialty):
    """Map PROVIDER_SPECIALTY to MARKET_SPECIALTY."""
    if not market_specialty.strip():
        raise click.BadParameter("Market specialty cannot be empty")
    try:
        current = load_synonym_map()
    except ConfigError as e:
        raise click.ClickException(str(e))

    current[provider_specialty] = market_specialty
    path = save_synonym_map(current)
    click.echo(f"Set {provider_specialty} -> {market_specialty}")
    click.echo(f"Saved to: {path}")


@synonyms.command("remove")
@click.argument("provider_specialty")
def synonyms_remove(provider_specialty):
    """Remove the mapping for PROVIDER_SPECIALTY."""
    try:
        current = load_synonym_map()
    except ConfigError as e:
        raise click.ClickException(str(e))

    if provider_specialty not in current:
        click.echo(f"No synonym for '{provider_specialty}'.")
        return

    del current[provider_specialty]
    save_synonym_map(current)
    click.echo(f"Removed {provider_specialty}")
