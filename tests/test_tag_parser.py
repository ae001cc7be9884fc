from __future__ import annotations

import re

from answerstream.parsing import (
    Section,
    SectionType,
    convert_dois_to_links,
    parse_tagged_content,
)


def test_parse_empty_and_blank_text_yields_no_sections() -> None:
    assert parse_tagged_content("") == []
    assert parse_tagged_content(" ") == []
    assert parse_tagged_content("\n\t  \n") == []


def test_parse_plain_text_yields_single_trimmed_answer() -> None:
    sections = parse_tagged_content("  plain text, no tags \n")

    assert sections == [
        Section(
            id="answer-0",
            type=SectionType.ANSWER,
            title="Answer",
            content="plain text, no tags",
            is_collapsed=False,
        )
    ]


def test_parse_drug_tag_uses_configured_title_and_collapse_default() -> None:
    sections = parse_tagged_content("<drug>X</drug>")

    assert len(sections) == 1
    section = sections[0]
    assert section.id == "drug-0"
    assert section.type is SectionType.DRUG
    assert section.title == "Drug Information"
    assert section.content == "X"
    assert section.is_collapsed is False


def test_parse_interleaves_answer_and_tagged_sections_in_order() -> None:
    text = (
        "Intro paragraph.\n"
        "<guideline> Follow the 2023 guidance. </guideline>\n"
        "Middle text.\n"
        "<think>Weighing options</think>"
        "<drug>Dose: 5 mg</drug>\n"
        "Closing remark."
    )

    sections = parse_tagged_content(text)

    assert [(s.id, s.type, s.content) for s in sections] == [
        ("answer-0", SectionType.ANSWER, "Intro paragraph."),
        ("guideline-1", SectionType.GUIDELINE, "Follow the 2023 guidance."),
        ("answer-2", SectionType.ANSWER, "Middle text."),
        ("think-3", SectionType.THINK, "Weighing options"),
        ("drug-4", SectionType.DRUG, "Dose: 5 mg"),
        ("answer-5", SectionType.ANSWER, "Closing remark."),
    ]
    assert [s.title for s in sections] == [
        "Answer",
        "Guidelines",
        "Answer",
        "Reasoning",
        "Drug Information",
        "Answer",
    ]


def test_parse_unknown_tag_is_capitalised_and_collapsed() -> None:
    sections = parse_tagged_content("<warnings>Check renal function</warnings>")

    assert sections[0].type is SectionType.UNKNOWN
    assert sections[0].title == "Warnings"
    assert sections[0].id == "unknown-0"
    assert sections[0].is_collapsed is True


def test_parse_unknown_tag_keeps_rest_of_name_case() -> None:
    sections = parse_tagged_content("<sideEffects>Nausea</sideEffects>")

    assert sections[0].title == "SideEffects"


def test_parse_pairs_mixed_case_opening_and_closing_tags() -> None:
    sections = parse_tagged_content("<Drug>Aspirin</drug>")

    assert sections[0].type is SectionType.DRUG
    assert sections[0].title == "Drug Information"
    assert sections[0].content == "Aspirin"


def test_parse_keeps_nested_tags_of_other_names_verbatim() -> None:
    sections = parse_tagged_content("<guideline>Use <drug>A</drug> first</guideline>")

    assert len(sections) == 1
    assert sections[0].type is SectionType.GUIDELINE
    assert sections[0].content == "Use <drug>A</drug> first"


def test_parse_unclosed_tag_is_left_as_answer_text() -> None:
    sections = parse_tagged_content("Before <drug>never closed")

    assert len(sections) == 1
    assert sections[0].type is SectionType.ANSWER
    assert sections[0].content == "Before <drug>never closed"


def test_parse_emits_empty_tagged_sections() -> None:
    sections = parse_tagged_content("<think></think>Answer body")

    assert [(s.type, s.content) for s in sections] == [
        (SectionType.THINK, ""),
        (SectionType.ANSWER, "Answer body"),
    ]


def test_convert_dois_to_links_trims_identifier() -> None:
    text = "See [doi:  10.1000/xyz123 ] and [DOI: 10.2000/abc]."

    converted = convert_dois_to_links(text)

    assert converted == (
        "See [doi: 10.1000/xyz123](https://doi.org/10.1000/xyz123) and "
        "[doi: 10.2000/abc](https://doi.org/10.2000/abc)."
    )


def test_parse_rewrites_dois_in_answer_and_tagged_sections() -> None:
    sections = parse_tagged_content(
        "Trial data [doi: 10.1/a]<guideline>Ref [doi:10.1/b]</guideline>"
    )

    assert sections[0].content == "Trial data [doi: 10.1/a](https://doi.org/10.1/a)"
    assert sections[1].content == "Ref [doi: 10.1/b](https://doi.org/10.1/b)"


def test_parse_content_matches_input_without_tags() -> None:
    text = (
        "Lead in <guideline>first rule</guideline> between "
        "<drug>dosage table</drug><custom>extra</custom> tail end"
    )

    sections = parse_tagged_content(text)

    joined = " ".join(section.content for section in sections)
    stripped = re.sub(r"</?\w+>", " ", text)
    assert joined.split() == stripped.split()


def test_section_to_dict_uses_presentation_keys() -> None:
    section = parse_tagged_content("<think>Plan</think>")[0]

    assert section.to_dict() == {
        "id": "think-0",
        "type": "think",
        "title": "Reasoning",
        "content": "Plan",
        "isCollapsed": False,
    }
