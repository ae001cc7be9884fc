from __future__ import annotations

import pytest

from answerstream.parsing import (
    SectionType,
    ensure_balanced_streaming_tags,
    parse_streaming_sections,
    sanitize_streaming_text,
)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("Some answer <dru", "Some answer "),
        ("Some answer <", "Some answer "),
        ("Some answer </", "Some answer "),
        ("<drug>Aspirin</dr", "<drug>Aspirin"),
        ("Body <THI", "Body "),
        ("Body <guideline", "Body "),
    ],
)
def test_sanitize_strips_trailing_partial_known_tag(text: str, expected: str) -> None:
    assert sanitize_streaming_text(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "",
        "Plain text",
        "x < y",
        "Body <xyz",
        "<drug>complete</drug>",
        "ends with <b",
    ],
)
def test_sanitize_keeps_text_without_partial_known_tag(text: str) -> None:
    assert sanitize_streaming_text(text) == text


def test_ensure_balanced_appends_missing_closing_tags() -> None:
    assert ensure_balanced_streaming_tags("<drug>X") == "<drug>X</drug>"
    assert (
        ensure_balanced_streaming_tags("<think>a</think><think>b<drug>c")
        == "<think>a</think><think>b<drug>c</drug></think>"
    )


def test_ensure_balanced_ignores_unknown_tags() -> None:
    assert ensure_balanced_streaming_tags("<custom>open") == "<custom>open"


def test_parse_streaming_sections_force_closes_open_tag() -> None:
    sections = parse_streaming_sections("Intro <drug>Aspir")

    assert [(s.type, s.content) for s in sections] == [
        (SectionType.ANSWER, "Intro"),
        (SectionType.DRUG, "Aspir"),
    ]


def test_parse_streaming_sections_closes_mixed_case_open_tag() -> None:
    sections = parse_streaming_sections("Intro <Drug>Aspir")

    assert [(s.type, s.content) for s in sections] == [
        (SectionType.ANSWER, "Intro"),
        (SectionType.DRUG, "Aspir"),
    ]


def test_parse_streaming_sections_hides_tag_being_typed() -> None:
    sections = parse_streaming_sections("Intro text <gui")

    assert len(sections) == 1
    assert sections[0].type is SectionType.ANSWER
    assert sections[0].content == "Intro text"


def test_parse_streaming_sections_empty_after_sanitizing() -> None:
    assert parse_streaming_sections("") == []
    assert parse_streaming_sections("  <th") == []
