"""State shared by CLI subcommands."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import click

from modelhub.settings import HubSettings

if TYPE_CHECKING:
    from modelhub.presets.registry import PresetRegistry


@dataclass
class CLIState:
    settings: HubSettings
    _registry: PresetRegistry | None = field(default=None, repr=False)

    def registry(self) -> PresetRegistry:
        if self._registry is None:
            from modelhub.presets.registry import PresetRegistry

            self._registry = PresetRegistry(self.settings.base_dir)
        return self._registry


pass_state = click.make_pass_decorator(CLIState)
