"""Parsers that turn tag-annotated answer text into typed sections."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping


class SectionType(Enum):
    """Closed vocabulary of section kinds."""

    ANSWER = "answer"
    GUIDELINE = "guideline"
    DRUG = "drug"
    THINK = "think"
    UNKNOWN = "unknown"


@dataclass(slots=True, frozen=True)
class SectionConfig:
    """Display defaults for a recognised tag."""

    type: SectionType
    title: str
    default_collapsed: bool


@dataclass(slots=True, frozen=True)
class Section:
    """A contiguous, typed chunk of an answer."""

    id: str
    type: SectionType
    title: str
    content: str
    is_collapsed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "content": self.content,
            "isCollapsed": self.is_collapsed,
        }


ANSWER_TITLE = "Answer"

SECTION_CONFIG: Mapping[str, SectionConfig] = MappingProxyType(
    {
        "guideline": SectionConfig(SectionType.GUIDELINE, "Guidelines", False),
        "drug": SectionConfig(SectionType.DRUG, "Drug Information", False),
        "think": SectionConfig(SectionType.THINK, "Reasoning", False),
    }
)

DEFAULT_COLLAPSE_STATE: Mapping[SectionType, bool] = MappingProxyType(
    {
        SectionType.ANSWER: False,
        SectionType.GUIDELINE: False,
        SectionType.DRUG: False,
        SectionType.THINK: False,
        SectionType.UNKNOWN: True,
    }
)

# Tags the streaming sanitizer knows how to complete.
STREAM_TAGS: tuple[str, ...] = tuple(SECTION_CONFIG)


from .merge import merge_sections  # noqa: E402
from .streaming import (  # noqa: E402
    ensure_balanced_streaming_tags,
    parse_streaming_sections,
    sanitize_streaming_text,
)
from .tags import convert_dois_to_links, parse_tagged_content  # noqa: E402


__all__ = [
    "ANSWER_TITLE",
    "DEFAULT_COLLAPSE_STATE",
    "SECTION_CONFIG",
    "STREAM_TAGS",
    "Section",
    "SectionConfig",
    "SectionType",
    "convert_dois_to_links",
    "ensure_balanced_streaming_tags",
    "merge_sections",
    "parse_streaming_sections",
    "parse_tagged_content",
    "sanitize_streaming_text",
]
