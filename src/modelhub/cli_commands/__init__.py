"""CLI subcommand registration."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import click


def register_commands(cli: click.Group) -> None:
    """Register all subcommands on the CLI group."""
    from modelhub.cli_commands.complete import complete
    from modelhub.cli_commands.models import models
    from modelhub.cli_commands.providers import providers

    cli.add_command(providers)
    cli.add_command(models)
    cli.add_command(complete)
