"""``modelhub models`` — toggle model presets."""

from __future__ import annotations

import click

from modelhub.cli_commands._common import CLIState, pass_state
from modelhub.cli_commands._output import console
from modelhub.presets.errors import PresetsError


@click.group()
def models() -> None:
    """Manage model presets."""


def _set_enabled(state: CLIState, provider: str, model_id: str, enabled: bool) -> None:
    try:
        state.registry().patch_model_preset(provider, model_id, is_enabled=enabled)
    except PresetsError as exc:
        raise click.ClickException(str(exc)) from exc
    word = "enabled" if enabled else "disabled"
    console.print(f"[green]Model preset {provider}/{model_id} {word}.[/green]")


@models.command("enable")
@click.argument("provider")
@click.argument("model_id")
@pass_state
def enable(state: CLIState, provider: str, model_id: str) -> None:
    """Enable model preset MODEL_ID of PROVIDER."""
    _set_enabled(state, provider, model_id, True)


@models.command("disable")
@click.argument("provider")
@click.argument("model_id")
@pass_state
def disable(state: CLIState, provider: str, model_id: str) -> None:
    """Disable model preset MODEL_ID of PROVIDER."""
    _set_enabled(state, provider, model_id, False)
