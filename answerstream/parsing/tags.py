"""Tag parser that splits complete answer text into ordered sections."""

from __future__ import annotations

import re

from . import (
    ANSWER_TITLE,
    DEFAULT_COLLAPSE_STATE,
    SECTION_CONFIG,
    Section,
    SectionType,
)

# Non-nested ``<tag>...</tag>`` pairs; the closing name must repeat the opening one.
_TAG_RE = re.compile(r"<(?P<tag>\w+)>(?P<body>.*?)</(?P=tag)>", re.DOTALL | re.IGNORECASE)
_DOI_RE = re.compile(r"\[doi:\s*(?P<doi>[^\]]+)\]", re.IGNORECASE)


def convert_dois_to_links(text: str) -> str:
    """Rewrite ``[doi: <id>]`` markers as markdown links to doi.org."""

    def _link(match: re.Match[str]) -> str:
        doi = match.group("doi").strip()
        return f"[doi: {doi}](https://doi.org/{doi})"

    return _DOI_RE.sub(_link, text)


def _answer_section(content: str, ordinal: int) -> Section:
    return Section(
        id=f"{SectionType.ANSWER.value}-{ordinal}",
        type=SectionType.ANSWER,
        title=ANSWER_TITLE,
        content=convert_dois_to_links(content),
        is_collapsed=DEFAULT_COLLAPSE_STATE[SectionType.ANSWER],
    )


def _tagged_section(tag: str, content: str, ordinal: int) -> Section:
    config = SECTION_CONFIG.get(tag.lower())
    if config is None:
        section_type = SectionType.UNKNOWN
        title = tag[:1].upper() + tag[1:]
    else:
        section_type = config.type
        title = config.title
    return Section(
        id=f"{section_type.value}-{ordinal}",
        type=section_type,
        title=title,
        content=convert_dois_to_links(content),
        is_collapsed=DEFAULT_COLLAPSE_STATE[section_type],
    )


def parse_tagged_content(text: str) -> list[Section]:
    """Parse ``text`` into sections in order of appearance.

    Untagged spans become ``answer`` sections interleaved with the tagged
    ones. Content between an opening tag and its matching closing tag is
    taken verbatim, so nested tags of a different name stay literal.
    """

    if not text or not text.strip():
        return []

    sections: list[Section] = []
    last_index = 0
    for match in _TAG_RE.finditer(text):
        leading = text[last_index : match.start()].strip()
        if leading:
            sections.append(_answer_section(leading, len(sections)))
        sections.append(
            _tagged_section(match.group("tag"), match.group("body").strip(), len(sections))
        )
        last_index = match.end()

    trailing = text[last_index:].strip()
    if trailing:
        sections.append(_answer_section(trailing, len(sections)))
    return sections


__all__ = ["convert_dois_to_links", "parse_tagged_content"]
