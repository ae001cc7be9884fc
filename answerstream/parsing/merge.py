"""Reconcile freshly parsed sections with the ones already on display."""

from __future__ import annotations

from dataclasses import replace
from typing import Sequence

from . import Section, SectionType


def _merge_key(section: Section) -> tuple[SectionType, str]:
    # Ids are regenerated on every parse pass; type and title are not.
    return section.type, section.title


def merge_sections(
    existing_sections: Sequence[Section], new_sections: Sequence[Section]
) -> list[Section]:
    """Return ``new_sections`` with collapse state carried over by key.

    Sections that are missing from ``new_sections`` are dropped.
    """

    if not existing_sections:
        return list(new_sections)

    existing = {_merge_key(section): section for section in existing_sections}
    merged: list[Section] = []
    for section in new_sections:
        previous = existing.get(_merge_key(section))
        if previous is not None and previous.is_collapsed != section.is_collapsed:
            section = replace(section, is_collapsed=previous.is_collapsed)
        merged.append(section)
    return merged


__all__ = ["merge_sections"]
