"""Helpers for parsing answer text that is still arriving."""

from __future__ import annotations

import re

from . import STREAM_TAGS, Section
from .tags import parse_tagged_content

# ``<``, ``</`` or a tag name still being typed at the very end of the text.
_PARTIAL_TAG_RE = re.compile(r"</?(?P<name>[a-zA-Z]+)?\Z")
_OPEN_TAG_RES = {
    tag: re.compile(rf"<{tag}>", re.IGNORECASE) for tag in STREAM_TAGS
}
_CLOSE_TAG_RES = {
    tag: re.compile(rf"</{tag}>", re.IGNORECASE) for tag in STREAM_TAGS
}


def sanitize_streaming_text(text: str) -> str:
    """Drop a trailing partial tag whose name could still become a known tag."""

    if not text:
        return text
    match = _PARTIAL_TAG_RE.search(text)
    if match is None:
        return text
    partial = (match.group("name") or "").lower()
    if any(tag.startswith(partial) for tag in STREAM_TAGS):
        return text[: match.start()]
    return text


def ensure_balanced_streaming_tags(text: str) -> str:
    """Append a closing tag for every known tag opened more often than closed."""

    balanced = text
    for tag in STREAM_TAGS:
        opened = len(_OPEN_TAG_RES[tag].findall(balanced))
        closed = len(_CLOSE_TAG_RES[tag].findall(balanced))
        if opened > closed:
            balanced += f"</{tag}>" * (opened - closed)
    return balanced


def parse_streaming_sections(text: str) -> list[Section]:
    """Sanitize, force-close and parse partially streamed ``text``."""

    sanitized = sanitize_streaming_text(text)
    if not sanitized or not sanitized.strip():
        return []
    return parse_tagged_content(ensure_balanced_streaming_tags(sanitized))


__all__ = [
    "ensure_balanced_streaming_tags",
    "parse_streaming_sections",
    "sanitize_streaming_text",
]
