"""Sources of provider API keys.

A secrets source answers one question: what is the API key for provider
*name*?  :meth:`ProviderSet.init_from_registry` consults it once per
provider.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from modelhub.settings import ENV_PREFIX, HubSettings

_NON_ALNUM = re.compile(r"[^A-Z0-9]+")


@runtime_checkable
class SecretsSource(Protocol):
    def get_api_key(self, provider_name: str) -> str | None: ...


def env_var_for(provider_name: str, prefix: str = ENV_PREFIX) -> str:
    """``openaiResponses`` -> ``MODELHUB_OPENAIRESPONSES_API_KEY``."""
    return f"{prefix}{_NON_ALNUM.sub('_', provider_name.upper()).strip('_')}_API_KEY"


class EnvSecretsSource:
    """Read keys from ``MODELHUB_<PROVIDER>_API_KEY`` environment variables."""

    def __init__(self, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX) -> None:
        self._environ = environ if environ is not None else os.environ
        self._prefix = prefix

    def get_api_key(self, provider_name: str) -> str | None:
        return self._environ.get(env_var_for(provider_name, self._prefix)) or None


class SettingsSecretsSource:
    """Read keys from :attr:`HubSettings.api_keys`."""

    def __init__(self, settings: HubSettings) -> None:
        self._keys = dict(settings.api_keys)

    def get_api_key(self, provider_name: str) -> str | None:
        return self._keys.get(provider_name) or None


class ChainedSecretsSource:
    """Return the first key any of *sources* knows about."""

    def __init__(self, *sources: SecretsSource) -> None:
        self._sources = sources

    def get_api_key(self, provider_name: str) -> str | None:
        for source in self._sources:
            key = source.get_api_key(provider_name)
            if key:
                return key
        return None
