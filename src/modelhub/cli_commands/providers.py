"""``modelhub providers`` — list, inspect and toggle provider presets."""

from __future__ import annotations

import json

import click

from modelhub.cli_commands._common import CLIState, pass_state
from modelhub.cli_commands._output import console, print_provider, print_providers_table
from modelhub.presets.errors import PresetsError


@click.group()
def providers() -> None:
    """Manage provider presets."""


@providers.command("list")
@click.option("--all", "include_disabled", is_flag=True, help="Include disabled providers.")
@click.option("--name", "names", multiple=True, help="Only show these providers.")
@click.option("--page-size", type=int, default=0, help="Providers per page (0 = default).")
@click.option("--json", "as_json", is_flag=True, help="Print JSON.")
@pass_state
def list_providers(
    state: CLIState,
    include_disabled: bool,
    names: tuple[str, ...],
    page_size: int,
    as_json: bool,
) -> None:
    """List providers, most recently modified first."""
    registry = state.registry()
    collected = []
    token = ""
    while True:
        page = registry.list_provider_presets(
            list(names),
            include_disabled=include_disabled,
            page_size=page_size,
            page_token=token,
        )
        collected.extend(page.providers)
        if not page.next_page_token:
            break
        token = page.next_page_token

    if as_json:
        console.print_json(json.dumps([p.to_json_dict() for p in collected]))
        return
    if not collected:
        console.print("[yellow]No providers found.[/yellow]")
        return
    print_providers_table(collected, registry.get_default_provider())


@providers.command("show")
@click.argument("name")
@click.option("--json", "as_json", is_flag=True, help="Print JSON.")
@pass_state
def show(state: CLIState, name: str, as_json: bool) -> None:
    """Show provider NAME and its model presets."""
    try:
        provider = state.registry().get_provider_preset(name)
    except PresetsError as exc:
        raise click.ClickException(str(exc)) from exc
    print_provider(provider, as_json=as_json)


def _set_enabled(state: CLIState, name: str, enabled: bool) -> None:
    try:
        state.registry().patch_provider_preset(name, is_enabled=enabled)
    except PresetsError as exc:
        raise click.ClickException(str(exc)) from exc
    word = "enabled" if enabled else "disabled"
    console.print(f"[green]Provider {name} {word}.[/green]")


@providers.command("enable")
@click.argument("name")
@pass_state
def enable(state: CLIState, name: str) -> None:
    """Enable provider NAME."""
    _set_enabled(state, name, True)


@providers.command("disable")
@click.argument("name")
@pass_state
def disable(state: CLIState, name: str) -> None:
    """Disable provider NAME."""
    _set_enabled(state, name, False)


@providers.command("default")
@click.argument("name", required=False)
@pass_state
def default(state: CLIState, name: str | None) -> None:
    """Show the default provider, or make NAME the default."""
    registry = state.registry()
    if name is None:
        console.print(registry.get_default_provider() or "(none)")
        return
    try:
        registry.patch_default_provider(name)
    except PresetsError as exc:
        raise click.ClickException(str(exc)) from exc
    console.print(f"[green]Default provider set to {name}.[/green]")
