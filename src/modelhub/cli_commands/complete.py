"""``modelhub complete`` — send one prompt through a model preset."""

from __future__ import annotations

import asyncio
import sys

import click

from modelhub.cli_commands._common import CLIState, pass_state
from modelhub.cli_commands._output import console, err_console, print_usage


@click.command()
@click.argument("provider")
@click.argument("model_id")
@click.argument("prompt")
@click.option("--stream/--no-stream", default=None, help="Override the preset's stream flag.")
@click.option("--system", "system_prompt", default=None, help="Override the system prompt.")
@click.option("--show-thinking", is_flag=True, help="Print reasoning output to stderr.")
@pass_state
def complete(
    state: CLIState,
    provider: str,
    model_id: str,
    prompt: str,
    stream: bool | None,
    system_prompt: str | None,
    show_thinking: bool,
) -> None:
    """Send PROMPT to MODEL_ID of PROVIDER and print the reply."""
    from modelhub.inference.errors import InferenceError
    from modelhub.inference.models import ChatMessage, ModelParams
    from modelhub.inference.provider_set import ProviderSet
    from modelhub.presets.errors import PresetsError
    from modelhub.secrets import ChainedSecretsSource, EnvSecretsSource, SettingsSecretsSource

    registry = state.registry()
    try:
        preset = registry.get_model_preset(provider, model_id)
    except PresetsError as exc:
        raise click.ClickException(str(exc)) from exc

    params = ModelParams.from_preset(preset)
    if stream is not None:
        params.stream = stream
    if system_prompt is not None:
        params.system_prompt = system_prompt

    provider_set = ProviderSet(debug=state.settings.debug)
    secrets = ChainedSecretsSource(EnvSecretsSource(), SettingsSecretsSource(state.settings))
    provider_set.init_from_registry(registry, secrets)
    if not provider_set.is_configured(provider):
        raise click.ClickException(f"no api key configured for provider {provider!r}")

    def on_text(chunk: str) -> None:
        sys.stdout.write(chunk)
        sys.stdout.flush()

    def on_thinking(chunk: str) -> None:
        if show_thinking:
            err_console.print(chunk, end="", style="dim")

    async def _run():
        try:
            data = provider_set.build_completion_data(provider, params, ChatMessage.user(prompt))
            return await provider_set.fetch_completion(provider, data, on_text, on_thinking)
        finally:
            await provider_set.aclose()

    try:
        response = asyncio.run(_run())
    except InferenceError as exc:
        console.print(f"[red]Completion error:[/red] {exc}")
        sys.exit(1)

    if params.stream:
        sys.stdout.write("\n")
    else:
        if show_thinking and response.thinking:
            err_console.print(response.thinking, style="dim")
        console.print(response.text)

    if response.error_details is not None:
        err_console.print(f"[yellow]Partial response:[/yellow] {response.error_details.message}")
    print_usage(response.usage)
