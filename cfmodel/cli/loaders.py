"""Shared file loading for CLI commands.

Converts SDK exceptions into click exceptions and echoes skipped-row errors
to stderr so table/JSON output on stdout stays clean.
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click

from cfmodel.sdk import (
    ConfigError,
    ProviderRow,
    MarketRow,
    UploadError,
    load_market_rows,
    load_provider_rows,
    load_scenarios,
    load_synonym_map,
)
from cfmodel.sdk.schemas import BatchScenarioPreset


def load_inputs(providers_path: str, market_path: str) -> Tuple[List[ProviderRow], List[MarketRow]]:
    """Load provider and market files, reporting skipped rows."""
    try:
        providers, provider_errors = load_provider_rows(Path(providers_path))
        market_rows, market_errors = load_market_rows(Path(market_path))
    except UploadError as e:
        raise click.ClickException(str(e))

    for error in provider_errors:
        click.echo(f"Provider file: {error}", err=True)
    for error in market_errors:
        click.echo(f"Market file: {error}", err=True)

    if not providers:
        raise click.ClickException(f"No usable provider rows in {providers_path}")
    return providers, market_rows


def load_synonyms(path: Optional[str]) -> Dict[str, str]:
    """Synonym map from an explicit file, else from the config directory."""
    try:
        return load_synonym_map(Path(path) if path else None)
    except ConfigError as e:
        raise click.ClickException(str(e))


def load_scenario_file(path: Optional[str]) -> List[BatchScenarioPreset]:
    """Scenario presets from a file (empty list when no file given)."""
    if not path:
        return []
    try:
        return load_scenarios(Path(path))
    except (FileNotFoundError, ValueError) as e:
        raise click.ClickException(str(e))


def find_provider(providers: List[ProviderRow], key: str) -> ProviderRow:
    """Find a provider by id or name (case-insensitive)."""
    needle = key.strip().lower()
    for provider in providers:
        if needle in ((provider.provider_id or "").lower(), (provider.provider_name or "").lower()):
            return provider
    raise click.ClickException(f"Provider not found: {key}")
