"""PresetRegistry — the single entry point for provider and model presets.

Merges the built-in snapshot with the user store, routes writes (built-ins
go to the overlay, user data to the user store) and implements paged
listing with opaque continuation tokens.

Usage::

    registry = PresetRegistry(base_dir)
    page = registry.list_provider_presets(include_disabled=True, page_size=10)
    while page.next_page_token:
        page = registry.list_provider_presets(page_token=page.next_page_token)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from importlib.resources.abc import Traversable
from pathlib import Path

from modelhub.presets.builtin import BuiltInPresets
from modelhub.presets.errors import (
    BuiltInReadOnlyError,
    InvalidRequestError,
    ModelPresetNotFoundError,
    ProviderNotFoundError,
)
from modelhub.presets.models import (
    ListProviderPresetsResponse,
    ModelPreset,
    ModelPresetBody,
    ProviderPageToken,
    ProviderPreset,
    ProviderPresetBody,
)
from modelhub.presets.paging import decode_page_token, encode_page_token
from modelhub.presets.userstore import UserPresetStore
from modelhub.presets.validation import validate_tag
from modelhub.recovery import with_recovery
from modelhub.settings import (
    BUILTIN_SNAPSHOT_MAX_AGE,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    MAX_PAGINATION_HOPS,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=UTC)


def _sort_key(provider: ProviderPreset) -> tuple[float, str]:
    modified = provider.modified_at or _EPOCH
    # Newest first, then name ascending.
    return (-modified.timestamp(), provider.name)


def _clamp_page_size(page_size: int) -> int:
    if page_size <= 0 or page_size > MAX_PAGE_SIZE:
        return DEFAULT_PAGE_SIZE
    return page_size


class PresetRegistry:
    """Facade over built-in presets (with overlay) and user presets.

    Args:
        base_dir: Directory holding the user store and the overlay file.
        max_snapshot_age: See :class:`~modelhub.presets.builtin.BuiltInPresets`.
        presets_source / presets_root: Override the embedded catalogue.
    """

    def __init__(
        self,
        base_dir: Path | str,
        *,
        max_snapshot_age: float = BUILTIN_SNAPSHOT_MAX_AGE,
        presets_source: Traversable | Path | None = None,
        presets_root: str = "",
    ) -> None:
        if not str(base_dir):
            raise InvalidRequestError("base dir is required")
        base = Path(base_dir)
        base.mkdir(parents=True, exist_ok=True)
        self.builtin = BuiltInPresets(
            base,
            max_snapshot_age,
            presets_source=presets_source,
            presets_root=presets_root,
        )
        self.user = UserPresetStore(base)

    # -- default provider ----------------------------------------------------

    @with_recovery
    def get_default_provider(self) -> str:
        """Return the user-chosen default provider, else the built-in default."""
        return self.user.get_default_provider() or self.builtin.default_provider

    @with_recovery
    def patch_default_provider(self, provider_name: str) -> None:
        """Make *provider_name* the default.  The provider must be enabled."""
        if not provider_name:
            raise ProviderNotFoundError(provider_name)
        provider = self.get_provider_preset(provider_name)
        if not provider.is_enabled:
            raise InvalidRequestError(f"provider {provider_name!r} is disabled")
        self.user.set_default_provider(provider_name)
        logger.info("default provider set to %s", provider_name)

    # -- providers ----------------------------------------------------------

    def get_provider_preset(self, provider_name: str) -> ProviderPreset:
        """Return a built-in or user provider by name."""
        if self.builtin.has_provider(provider_name):
            return self.builtin.get_provider(provider_name)
        return self.user.get_provider(provider_name)

    @with_recovery
    def put_provider_preset(self, provider_name: str, body: ProviderPresetBody) -> ProviderPreset:
        if not provider_name:
            raise InvalidRequestError("provider name and body are required")
        if self.builtin.has_provider(provider_name):
            raise BuiltInReadOnlyError(f"provider {provider_name!r}")
        return self.user.put_provider(provider_name, body)

    @with_recovery
    def patch_provider_preset(
        self,
        provider_name: str,
        *,
        is_enabled: bool | None = None,
        default_model_preset_id: str | None = None,
    ) -> ProviderPreset:
        """Toggle a provider and/or change its default model preset.

        At least one of *is_enabled* and *default_model_preset_id* is required.
        """
        if not provider_name:
            raise InvalidRequestError("provider name is required")
        if is_enabled is None and default_model_preset_id is None:
            raise InvalidRequestError(
                "either is_enabled or default_model_preset_id must be supplied"
            )
        if default_model_preset_id is not None:
            problem = validate_tag(default_model_preset_id)
            if problem:
                raise InvalidRequestError(f"default model preset id {problem}")

        if self.builtin.has_provider(provider_name):
            provider = self.builtin.get_provider(provider_name)
            if default_model_preset_id is not None:
                provider = self.builtin.set_default_model_preset(
                    provider_name, default_model_preset_id
                )
            if is_enabled is not None:
                provider = self.builtin.set_provider_enabled(provider_name, is_enabled)
            return provider

        return self.user.patch_provider(
            provider_name,
            is_enabled=is_enabled,
            default_model_preset_id=default_model_preset_id,
        )

    @with_recovery
    def delete_provider_preset(self, provider_name: str) -> None:
        if not provider_name:
            raise InvalidRequestError("provider name is required")
        if self.builtin.has_provider(provider_name):
            raise BuiltInReadOnlyError(f"provider {provider_name!r}")
        self.user.delete_provider(provider_name)

    @with_recovery
    def list_provider_presets(
        self,
        names: list[str] | None = None,
        *,
        include_disabled: bool = False,
        page_size: int = 0,
        page_token: str = "",
    ) -> ListProviderPresetsResponse:
        """Return one page of providers ordered by ``modified_at`` desc, name asc.

        A non-empty *page_token* overrides every other argument.
        """
        if page_token:
            token = decode_page_token(page_token)
            wanted = set(token.names)
            include_disabled = token.include_disabled
            page_size = _clamp_page_size(token.page_size)
            cursor = token.cursor
        else:
            wanted = set(names or [])
            page_size = _clamp_page_size(page_size)
            cursor = ""

        merged = list(self.builtin.list_providers().values())
        merged.extend(self.user.list_providers())

        filtered = [
            p
            for p in merged
            if (not wanted or p.name in wanted) and (include_disabled or p.is_enabled)
        ]
        filtered.sort(key=_sort_key)

        start = 0
        if cursor:
            for idx, provider in enumerate(filtered):
                if provider.name == cursor:
                    start = idx + 1
                    break

        end = min(start + page_size, len(filtered))
        next_token: str | None = None
        if end < len(filtered):
            next_token = encode_page_token(
                ProviderPageToken(
                    names=sorted(wanted),
                    include_disabled=include_disabled,
                    page_size=page_size,
                    cursor=filtered[end - 1].name,
                )
            )

        return ListProviderPresetsResponse(providers=filtered[start:end], next_page_token=next_token)

    def iter_provider_presets(self, *, include_disabled: bool = True) -> Iterator[ProviderPreset]:
        """Walk every page, aborting after a fixed number of hops."""
        token = ""
        hops = 0
        while True:
            page = self.list_provider_presets(
                include_disabled=include_disabled,
                page_size=MAX_PAGE_SIZE,
                page_token=token,
            )
            yield from page.providers
            if not page.next_page_token:
                return
            if hops >= MAX_PAGINATION_HOPS:
                raise InvalidRequestError(
                    f"pagination exceeded {MAX_PAGINATION_HOPS} hops - aborting"
                )
            token = page.next_page_token
            hops += 1

    # -- model presets --------------------------------------------------------

    def get_model_preset(self, provider_name: str, model_preset_id: str) -> ModelPreset:
        if self.builtin.has_provider(provider_name):
            return self.builtin.get_model_preset(provider_name, model_preset_id)
        provider = self.user.get_provider(provider_name)
        model = provider.model_presets.get(model_preset_id)
        if model is None:
            raise ModelPresetNotFoundError(provider_name, model_preset_id)
        return model

    @with_recovery
    def put_model_preset(
        self, provider_name: str, model_preset_id: str, body: ModelPresetBody
    ) -> ModelPreset:
        if not provider_name or not model_preset_id:
            raise InvalidRequestError("provider name and model preset id are required")
        problem = validate_tag(model_preset_id)
        if problem:
            raise InvalidRequestError(f"model preset id {problem}")
        problem = validate_tag(body.slug)
        if problem:
            raise InvalidRequestError(f"slug {problem}")
        if self.builtin.has_provider(provider_name):
            raise BuiltInReadOnlyError(f"provider {provider_name!r}")
        return self.user.put_model(provider_name, model_preset_id, body)

    @with_recovery
    def patch_model_preset(
        self, provider_name: str, model_preset_id: str, *, is_enabled: bool
    ) -> ModelPreset:
        if not provider_name or not model_preset_id:
            raise InvalidRequestError("provider name and model preset id are required")
        if self.builtin.has_provider(provider_name):
            return self.builtin.set_model_preset_enabled(provider_name, model_preset_id, is_enabled)
        return self.user.patch_model(provider_name, model_preset_id, is_enabled)

    @with_recovery
    def delete_model_preset(self, provider_name: str, model_preset_id: str) -> None:
        if not provider_name or not model_preset_id:
            raise InvalidRequestError("provider name and model preset id are required")
        if self.builtin.has_provider(provider_name):
            raise BuiltInReadOnlyError(f"provider {provider_name!r}")
        self.user.delete_model(provider_name, model_preset_id)
