"""modelhub CLI entrypoint."""

from __future__ import annotations

import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from modelhub import __version__


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__, prog_name="modelhub")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="YAML settings file.",
)
@click.option(
    "--base-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding the user preset store (default: ~/.modelhub).",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Logging level (overrides the settings file).",
)
@click.pass_context
def main(
    ctx: click.Context,
    config_path: Path | None,
    base_dir: Path | None,
    log_level: str | None,
) -> None:
    """modelhub: model presets and LLM inference dispatch."""
    from modelhub.cli_commands._common import CLIState
    from modelhub.settings import SettingsError, load_settings
    from modelhub.utils.telemetry import configure_telemetry

    try:
        settings = load_settings(config_path)
    except SettingsError as exc:
        raise click.ClickException(str(exc)) from exc

    if base_dir is not None:
        settings.base_dir = base_dir
    _configure_logging(log_level or settings.log_level)
    try:
        configure_telemetry(settings.telemetry)
    except ImportError as exc:
        raise click.ClickException(str(exc)) from exc
    ctx.obj = CLIState(settings=settings)


# Register subcommands
from modelhub.cli_commands import register_commands  # noqa: E402

register_commands(main)

if __name__ == "__main__":
    main()
