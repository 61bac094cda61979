"""Error types for the inference dispatch core."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from modelhub.inference.models import CompletionResponse


class InferenceError(Exception):
    """Base error for all inference failures."""


class InferenceRequestError(InferenceError):
    """A completion request or provider definition is malformed."""

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)


class ProviderNotConfiguredError(InferenceError):
    """The adapter has no SDK client (usually because no API key was set)."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"client not initialized for provider {provider_name!r}")


class EmptyCompletionDataError(InferenceError):
    """The completion data carried no messages."""

    def __init__(self) -> None:
        super().__init__("empty completion data")


class UnsupportedSDKTypeError(InferenceError):
    """No adapter exists for the requested SDK family."""

    def __init__(self, sdk_type: str) -> None:
        self.sdk_type = sdk_type
        super().__init__(f"unsupported sdk type: {sdk_type!r}")


class ProviderExistsError(InferenceError):
    """A provider with this name is already registered."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"provider already exists: {provider_name!r}")


class ProviderMissingError(InferenceError):
    """No provider with this name is registered."""

    def __init__(self, provider_name: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"provider not found: {provider_name!r}")


class StreamTerminalError(InferenceError):
    """The provider ended a stream with a failure event."""

    def __init__(self, message: str, reason: str = "") -> None:
        self.reason = reason
        super().__init__(message)


class FetchCompletionError(InferenceError):
    """A provider call failed.

    ``response`` holds whatever the adapter assembled before the failure
    (request capture, partial content) and may be ``None``.  The SDK error is
    chained as ``__cause__``.
    """

    def __init__(
        self,
        provider_name: str,
        response: CompletionResponse | None = None,
        detail: str = "",
    ) -> None:
        self.provider_name = provider_name
        self.response = response
        self.detail = detail
        msg = "error in fetch completion"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class ExistingContentBlockError(InferenceError):
    """The attachment already carries a resolved content block; reuse it."""

    def __init__(self, label: str = "") -> None:
        self.label = label
        super().__init__(f"existing content block for attachment {label!r}")


class AttachmentModifiedSinceSnapshotError(InferenceError):
    """The attachment source changed after it was first resolved."""

    def __init__(self, label: str = "") -> None:
        self.label = label
        super().__init__(f"attachment modified since snapshot: {label!r}")
