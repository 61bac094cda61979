"""Opaque continuation tokens for paged provider listings."""

from __future__ import annotations

import base64
import binascii
import json

from pydantic import ValidationError

from modelhub.presets.errors import InvalidRequestError
from modelhub.presets.models import ProviderPageToken


def encode_page_token(token: ProviderPageToken) -> str:
    """Serialise *token* as URL-safe base64 of compact JSON."""
    payload = token.model_dump(by_alias=True)
    raw = json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_page_token(value: str) -> ProviderPageToken:
    """Parse a token produced by :func:`encode_page_token`.

    Raises:
        InvalidRequestError: If the token is not valid base64 JSON.
    """
    try:
        raw = base64.urlsafe_b64decode(value.encode("ascii"))
        return ProviderPageToken.model_validate(json.loads(raw))
    except (binascii.Error, UnicodeError, ValueError, ValidationError) as exc:
        raise InvalidRequestError(f"bad page token: {exc}") from exc
