"""Settings CLI commands for cf-model.

Manages settings.json - batch chunk size, synonym file location.
"""

import click
from pathlib import Path

from cfmodel.sdk import (
    ConfigError,
    DEFAULT_CHUNK_SIZE,
    load_settings,
    save_settings,
    set_setting,
    get_settings_path,
    get_chunk_size,
    get_synonyms_path,
)


def _load():
    try:
        return load_settings()
    except ConfigError as e:
        raise click.ClickException(str(e))


@click.group()
def settings():
    """Manage settings (settings.json).

    Available settings:
    - chunk_size: batch rows between progress updates
    - synonyms: path to the specialty synonym map
    """
    pass


@settings.command("show")
def settings_show():
    """Show current settings and their values."""
    settings_path = get_settings_path()
    current = _load()

    click.echo(f"Settings file: {settings_path}")
    click.echo(f"File exists: {settings_path.exists()}")
    click.echo()

    if current:
        click.echo("Current settings:")
        for key, value in current.items():
            click.echo(f"  {key}: {value}")
    else:
        click.echo("No settings configured (using defaults).")

    try:
        chunk_size = get_chunk_size()
    except ConfigError as e:
        raise click.ClickException(str(e))

    click.echo()
    click.echo("Effective values:")
    click.echo(f"  chunk_size: {chunk_size}")
    click.echo(f"  synonyms: {get_synonyms_path()}")


@settings.command("chunk-size")
@click.argument("size", required=False, type=click.IntRange(min=1))
@click.option("--clear", is_flag=True, help="Revert to the default chunk size")
def settings_chunk_size(size, clear):
    """Set or clear the batch progress chunk size.

    Examples:
        cf-model settings chunk-size 500
        cf-model settings chunk-size --clear
    """
    if clear:
        current = _load()
        if "chunk_size" in current:
            del current["chunk_size"]
            save_settings(current)
            click.echo(f"Cleared chunk_size (default: {DEFAULT_CHUNK_SIZE}).")
        else:
            click.echo("chunk_size was not set.")
        return

    if size is None:
        try:
            click.echo(f"chunk_size: {get_chunk_size()}")
        except ConfigError as e:
            raise click.ClickException(str(e))
        return

    set_setting("chunk_size", size)
    click.echo(f"Set chunk_size: {size}")
    click.echo(f"Saved to: {get_settings_path()}")


@settings.command("synonyms-path")
@click.argument("path", required=False, type=click.Path(dir_okay=False))
@click.option("--clear", is_flag=True, help="Revert to synonyms.yaml in the config directory")
def settings_synonyms_path(path, clear):
    """Set or clear the synonym map location."""
    if clear:
        current = _load()
        current.pop("synonyms", None)
        save_settings(current)
        click.echo(f"Synonym map is now: {get_synonyms_path()} (default)")
        return

    if not path:
        click.echo(f"Synonym map: {get_synonyms_path()}")
        return

    synonyms_path = Path(path).expanduser().resolve()
    set_setting("synonyms", str(synonyms_path))
    click.echo(f"Set synonyms: {synonyms_path}")
