"""modelhub: model-preset registry and LLM inference dispatch."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from modelhub.inference.provider_set import ProviderSet as ProviderSet
    from modelhub.presets.registry import PresetRegistry as PresetRegistry

_EXPORTS = {
    "PresetRegistry": "modelhub.presets.registry",
    "ProviderSet": "modelhub.inference.provider_set",
}


def __getattr__(name: str) -> object:
    module_path = _EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'modelhub' has no attribute {name!r}")
