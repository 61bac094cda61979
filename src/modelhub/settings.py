"""Runtime constants and user-facing settings for modelhub.

Constants are module-level so that tests can patch them.  :class:`HubSettings`
is the optional YAML configuration consumed by the CLI and by
:func:`modelhub.inference.provider_set.ProviderSet.init_from_registry`.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

# ---------------------------------------------------------------------------
# Preset store constants
# ---------------------------------------------------------------------------

SCHEMA_VERSION = "2025-07-01"

MAX_PAGE_SIZE = 256
DEFAULT_PAGE_SIZE = 256

# Seconds between an overlay edit and the next background snapshot rebuild.
BUILTIN_SNAPSHOT_MAX_AGE = 60.0 * 60.0

MODEL_PRESETS_FILE = "modelpresets.json"
OVERLAY_FILE = "modelpresetsbuiltin.overlay.json"
USER_PRESETS_FILE = "modelpresets.json"

# ---------------------------------------------------------------------------
# Inference constants
# ---------------------------------------------------------------------------

FLUSH_INTERVAL = 0.256
FLUSH_CHUNK_SIZE = 1024

DEFAULT_API_TIMEOUT = 300.0

DEFAULT_OPENAI_ORIGIN = "https://api.openai.com"
DEFAULT_ANTHROPIC_ORIGIN = "https://api.anthropic.com"
DEFAULT_AUTHORIZATION_HEADER_KEY = "Authorization"
DEFAULT_ANTHROPIC_API_KEY_HEADER_KEY = "x-api-key"

MAX_PAGINATION_HOPS = 16

ENV_PREFIX = "MODELHUB_"


class TelemetrySettings(BaseModel):
    """Optional telemetry configuration."""

    enabled: bool = False
    otlp_endpoint: str | None = None


class HubSettings(BaseModel):
    """Top-level settings parsed from YAML."""

    base_dir: Path = Field(default_factory=lambda: Path.home() / ".modelhub")
    debug: bool = False
    log_level: str = "WARNING"
    api_keys: dict[str, str] = {}
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)


class SettingsError(Exception):
    """Raised when a settings file fails parsing or validation."""


def load_settings(path: Path | None) -> HubSettings:
    """Read YAML, interpolate env vars, and validate.

    A missing *path* yields the defaults.

    Raises:
        SettingsError: On read, YAML parse or schema validation failures.
    """
    if path is None:
        return HubSettings()

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise SettingsError(f"Cannot read {path}: {exc}") from exc

    expanded = os.path.expandvars(raw)

    try:
        data: Any = yaml.safe_load(expanded)
    except yaml.YAMLError as exc:
        raise SettingsError(f"YAML parse error: {exc}") from exc

    if data is None:
        return HubSettings()
    if not isinstance(data, dict):
        raise SettingsError("Settings YAML must be a mapping")

    try:
        return HubSettings.model_validate(data)
    except ValidationError as exc:
        raise SettingsError(str(exc)) from exc
