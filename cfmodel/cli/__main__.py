"""cf-model CLI - Command-line interface for provider compensation modeling."""

import click

from cfmodel import __version__

from .model_commands import model as model_command
from .batch_commands import batch as batch_group
from .market_commands import market as market_group, synonyms as synonyms_group
from .settings_commands import settings as settings_group
from .percentile_commands import percentile as percentile_group
from .optimizer_commands import optimize as optimize_group


@click.group()
@click.version_option(version=__version__, prog_name="cf-model")
def cli():
    """cf-model - Provider compensation scenario modeling.

    Models productivity-based pay (conversion factor x wRVUs above a
    threshold) against market survey percentiles, one provider at a time
    or in batch across a whole roster.

    Configuration is loaded from (in order):

    \b
    1. CF_MODEL_CONFIG_PATH environment variable
    2. ~/.config/cf-model/ (XDG default)

    Run 'cf-model settings show' to see effective settings.
    """
    pass


# Add subcommands
cli.add_command(model_command)
cli.add_command(batch_group)
cli.add_command(market_group)
cli.add_command(synonyms_group)
cli.add_command(settings_group)
cli.add_command(percentile_group)
cli.add_command(optimize_group)


def main():
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
