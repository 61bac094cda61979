"""Attachment resolution: turn attachment references into content blocks.

Adapters depend only on the :class:`AttachmentResolver` protocol.
:class:`FileAttachmentResolver` is the default and reads local files.
"""

from __future__ import annotations

import base64
import logging
import mimetypes
import os
from typing import Protocol, runtime_checkable

from modelhub.inference.errors import (
    AttachmentModifiedSinceSnapshotError,
    ExistingContentBlockError,
)
from modelhub.inference.models import Attachment, ContentBlock

logger = logging.getLogger(__name__)


@runtime_checkable
class AttachmentResolver(Protocol):
    """Builds content blocks for a list of attachments.

    Implementations may raise :class:`ExistingContentBlockError` when the
    caller should reuse ``attachment.content_block``, and
    :class:`AttachmentModifiedSinceSnapshotError` when the source changed
    after it was first resolved.
    """

    def build_content_blocks(
        self,
        attachments: list[Attachment],
        *,
        override_original: bool = False,
        only_text_kind: bool = False,
        force_fetch: bool = False,
    ) -> list[ContentBlock]: ...


def format_attachment_as_text(attachment: Attachment) -> str:
    """Render a short placeholder for attachments that cannot be sent natively."""
    label = attachment.label.strip()
    detail = attachment.path.strip()
    if not label:
        label = detail
    if not label:
        return ""
    if not detail or label == detail:
        return f"[Attachment: {label}]"
    return f"[Attachment: {label} — {detail}]"


def _guess_mime(attachment: Attachment) -> str:
    if attachment.mime_type:
        return attachment.mime_type
    guessed, _ = mimetypes.guess_type(attachment.path)
    return guessed or ""


class FileAttachmentResolver:
    """Resolve ``file`` and ``image`` attachments by reading local paths.

    Images become base64 ``image`` blocks, ``text/*`` files become ``text``
    blocks, anything else a base64 ``file`` block.  ``url`` and ``generic``
    attachments get a text placeholder.
    """

    def build_content_blocks(
        self,
        attachments: list[Attachment],
        *,
        override_original: bool = False,
        only_text_kind: bool = False,
        force_fetch: bool = False,
    ) -> list[ContentBlock]:
        blocks: list[ContentBlock] = []
        for attachment in attachments:
            block = self._resolve(attachment, override_original, only_text_kind, force_fetch)
            if block is not None:
                blocks.append(block)
        return blocks

    def _resolve(
        self,
        attachment: Attachment,
        override_original: bool,
        only_text_kind: bool,
        force_fetch: bool,
    ) -> ContentBlock | None:
        if attachment.kind in ("url", "generic") or not attachment.path:
            text = format_attachment_as_text(attachment)
            return ContentBlock(kind="text", text=text) if text else None

        if not force_fetch:
            if attachment.snapshot_mtime is not None:
                try:
                    mtime = os.path.getmtime(attachment.path)
                except OSError:
                    mtime = None
                if mtime != attachment.snapshot_mtime:
                    raise AttachmentModifiedSinceSnapshotError(attachment.label or attachment.path)
            if attachment.content_block is not None and not override_original:
                raise ExistingContentBlockError(attachment.label or attachment.path)

        mime = _guess_mime(attachment)
        with open(attachment.path, "rb") as fh:
            raw = fh.read()

        if mime.startswith("text/"):
            return ContentBlock(kind="text", text=raw.decode("utf-8", errors="replace"))
        if only_text_kind:
            return ContentBlock(kind="text", text=format_attachment_as_text(attachment))

        encoded = base64.b64encode(raw).decode("ascii")
        if attachment.kind == "image" or mime.startswith("image/"):
            return ContentBlock(kind="image", data=encoded, mime_type=mime or "image/png")
        return ContentBlock(
            kind="file",
            data=encoded,
            mime_type=mime or "application/octet-stream",
            file_name=os.path.basename(attachment.path) or "attachment",
        )


def resolve_attachments(
    resolver: AttachmentResolver,
    attachments: list[Attachment],
    *,
    override_original: bool,
) -> list[ContentBlock]:
    """Resolve attachments one at a time, handling the recoverable errors.

    A reusable block is taken from the attachment itself.  A source that
    changed since its snapshot is re-read when *override_original* is set,
    otherwise it is replaced by a text placeholder.
    """
    blocks: list[ContentBlock] = []
    for attachment in attachments:
        try:
            blocks.extend(
                resolver.build_content_blocks([attachment], override_original=override_original)
            )
        except ExistingContentBlockError:
            if attachment.content_block is not None:
                blocks.append(attachment.content_block)
        except AttachmentModifiedSinceSnapshotError:
            if override_original:
                blocks.extend(
                    resolver.build_content_blocks(
                        [attachment], override_original=True, force_fetch=True
                    )
                )
            else:
                logger.debug("attachment %r changed since snapshot, sending placeholder", attachment.label)
                text = format_attachment_as_text(attachment)
                if text:
                    blocks.append(ContentBlock(kind="text", text=text))
    return blocks
