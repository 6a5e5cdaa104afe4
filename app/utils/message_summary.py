"""
Message body sanitising and conversation preview text.

Previews are what conversation lists show under each peer, so an
attachment-only message must still produce a non-empty label.
"""

from __future__ import annotations

import re
from typing import Any, Iterable, Mapping, Optional

MAX_BODY_LENGTH = 4000

_TAG_RE = re.compile(r"<[^>]*>")

ATTACHMENT_ICON = "📎"

_KIND_LABELS = {
    "image": "Photo",
    "video": "Video",
    "audio": "Audio",
    "document": "Document",
}
_DOCUMENT_MIME_PREFIXES = (
    "application/pdf",
    "application/msword",
    "application/vnd.",
    "text/",
)


def sanitize_body(text: Optional[str], max_length: int = MAX_BODY_LENGTH) -> str:
    """Strip HTML tags and cap the length. Non-strings become ''."""
    if not isinstance(text, str):
        return ""
    cleaned = _TAG_RE.sub("", text)
    return cleaned[:max_length]


def has_text(text: Optional[str]) -> bool:
    return isinstance(text, str) and bool(text.strip())


def _field(attachment: Any, *names: str) -> Optional[str]:
    for name in names:
        if isinstance(attachment, Mapping):
            value = attachment.get(name)
        else:
            value = getattr(attachment, name, None)
        if value:
            return str(value).lower()
    return None


def attachment_kind(attachment: Any) -> Optional[str]:
    """Classify an attachment as image, video, audio or document (None if unknown)."""
    file_type = _field(attachment, "file_type", "fileType")
    if file_type in _KIND_LABELS:
        return file_type
    mime = _field(attachment, "mime_type", "mimeType") or ""
    for kind in ("image", "video", "audio"):
        if mime.startswith(kind + "/"):
            return kind
    if mime.startswith(_DOCUMENT_MIME_PREFIXES):
        return "document"
    return None


def build_message_summary(
    body: Optional[str], attachments: Optional[Iterable[Any]] = None
) -> str:
    """
    Preview text for a message.

    Returns the body when it has text, otherwise a label such as
    "📎 Photo", "📎 3 Photos" or "📎 2 Attachments". Returns '' only when
    there is neither text nor attachments.
    """
    if has_text(body):
        return body
    items = list(attachments or [])
    if not items:
        return ""
    kinds = {attachment_kind(a) for a in items}
    kind = kinds.pop() if len(kinds) == 1 else None
    label = _KIND_LABELS.get(kind, "Attachment")
    if len(items) == 1:
        return f"{ATTACHMENT_ICON} {label}"
    return f"{ATTACHMENT_ICON} {len(items)} {label}s"
