"""Error types for the preset registry."""

from __future__ import annotations


class PresetsError(Exception):
    """Base error for all preset store failures."""


class InvalidRequestError(PresetsError):
    """A request was missing required fields or carried malformed values."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"invalid request: {detail}")


class ValidationFailedError(PresetsError):
    """A provider or model preset failed structural validation."""

    def __init__(self, subject: str, detail: str) -> None:
        self.subject = subject
        self.detail = detail
        super().__init__(f"{subject}: {detail}")


class SchemaVersionError(ValidationFailedError):
    """A persisted document carries an unexpected schema version."""

    def __init__(self, subject: str, got: str, expected: str) -> None:
        self.got = got
        self.expected = expected
        super().__init__(subject, f"schemaVersion {got!r} does not match {expected!r}")


class InvalidTimestampError(ValidationFailedError):
    """``createdAt``/``modifiedAt`` are missing or out of order."""

    def __init__(self, subject: str, detail: str = "createdAt and modifiedAt must be set") -> None:
        super().__init__(subject, detail)


class ProviderNotFoundError(PresetsError):
    """No user or built-in provider has the requested name."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"provider not found: {provider_name!r}")


class ModelPresetNotFoundError(PresetsError):
    """The provider has no model preset with the requested ID."""

    def __init__(self, provider_name: str, model_preset_id: str) -> None:
        self.provider_name = provider_name
        self.model_preset_id = model_preset_id
        super().__init__(f"model preset not found: {provider_name!r}/{model_preset_id!r}")


class BuiltInReadOnlyError(PresetsError):
    """An operation tried to replace or delete built-in data."""

    def __init__(self, subject: str) -> None:
        self.subject = subject
        super().__init__(f"built-in data is read-only: {subject}")


class BuiltInProviderAbsentError(PresetsError):
    """The built-in catalogue does not contain the requested provider."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"built-in provider absent: {provider_name!r}")


class ProviderNotEmptyError(PresetsError):
    """A provider cannot be deleted while it still owns model presets."""

    def __init__(self, provider_name: str, model_count: int) -> None:
        self.provider_name = provider_name
        self.model_count = model_count
        super().__init__(f"provider {provider_name!r} is not empty ({model_count} model preset(s))")


class OverlayStoreError(PresetsError):
    """The overlay file could not be read or parsed."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"overlay store {path}: {detail}")


class FileStoreError(PresetsError):
    """The user presets file could not be read, parsed or written."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"file store {path}: {detail}")
