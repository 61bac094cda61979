"""Shared CLI output formatters."""

from __future__ import annotations

import json

from rich.console import Console
from rich.table import Table

from modelhub.inference.models import Usage  # noqa: TC001
from modelhub.presets.models import ProviderPreset  # noqa: TC001

console = Console()
err_console = Console(stderr=True)


def print_providers_table(providers: list[ProviderPreset], default_provider: str = "") -> None:
    """Pretty-print providers as a table."""
    table = Table(title="Providers")
    table.add_column("Name", style="cyan")
    table.add_column("Display Name")
    table.add_column("SDK")
    table.add_column("Enabled")
    table.add_column("Built-in")
    table.add_column("Default Model")
    table.add_column("Models", justify="right")

    for provider in providers:
        name = provider.name
        if name == default_provider:
            name += " *"
        table.add_row(
            name,
            provider.display_name,
            provider.sdk_type,
            _yes_no(provider.is_enabled),
            _yes_no(provider.is_built_in),
            provider.default_model_preset_id or "-",
            str(len(provider.model_presets)),
        )

    console.print(table)


def print_provider(provider: ProviderPreset, *, as_json: bool = False) -> None:
    """Print one provider with its model presets."""
    if as_json:
        console.print_json(json.dumps(provider.to_json_dict()))
        return

    console.print(f"\n[bold]{provider.display_name}[/bold] ({provider.name})")
    console.print(f"  SDK: {provider.sdk_type}")
    console.print(f"  Endpoint: {provider.origin}{provider.chat_completion_path_prefix}")
    console.print(f"  Enabled: {_yes_no(provider.is_enabled)}")
    console.print(f"  Default model: {provider.default_model_preset_id or '-'}")

    if not provider.model_presets:
        return

    table = Table(title="Model Presets")
    table.add_column("ID", style="cyan")
    table.add_column("Model")
    table.add_column("Display Name")
    table.add_column("Enabled")
    table.add_column("Reasoning")
    for model_id, model in sorted(provider.model_presets.items()):
        reasoning = "-"
        if model.reasoning is not None:
            reasoning = model.reasoning.level or str(model.reasoning.tokens)
        table.add_row(model_id, model.name, model.display_name, _yes_no(model.is_enabled), reasoning)
    console.print(table)


def print_usage(usage: Usage | None) -> None:
    if usage is None:
        return
    err_console.print(
        f"[dim]tokens: input {usage.input_tokens_total} "
        f"(cached {usage.input_tokens_cached}), output {usage.output_tokens}, "
        f"reasoning {usage.reasoning_tokens}[/dim]"
    )


def _yes_no(flag: bool) -> str:
    return "[green]yes[/green]" if flag else "[dim]no[/dim]"
