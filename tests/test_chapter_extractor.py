"""Tests for tools/chapter_extractor.py."""

from __future__ import annotations

import pytest

from srs_assembler.tools.chapter_extractor import (
    classify_chapter_type,
    descendants_of,
    extract,
    natural_key,
    outline,
    parse_candidate,
    render_chapters,
)


class TestParseCandidate:
    @pytest.mark.parametrize("line, expected", [
        ("1.2 Scope", ("1.2", "Scope")),
        ("## 5.1.2. Rules", ("5.1.2", "Rules")),
        ("3、功能需求", ("3", "功能需求")),
        ("4．Glossary", ("4", "Glossary")),
        ("**2 Overall Description**", ("2", "Overall Description")),
        ("7 Appendix 12", ("7", "Appendix")),
    ])
    def test_accepts(self, line, expected):
        assert parse_candidate(line) == expected

    @pytest.mark.parametrize("line", [
        "12 345",
        "3 ----------",
        "2 Overview ........ 5",
        "4 Figure 2 System context",
        "5 Table 3-1 Field list",
        "3 Page 12",
        "1 This line is an ordinary sentence.",
        "Introduction",
        "",
        "6 " + "x" * 80,
    ])
    def test_rejects(self, line):
        assert parse_candidate(line) is None


class TestExtract:
    def test_sample_template(self, sample_chapters):
        numbers = [c.number for c in sample_chapters]
        assert numbers[:4] == ["1", "1.1", "1.2", "2"]
        assert "3.1.1.3" in numbers
        assert numbers[-1] == "5"

    def test_levels_and_bodies(self, sample_chapters):
        by_number = {c.number: c for c in sample_chapters}
        assert by_number["3.1.1.2"].level == 4
        assert "BR-001" in by_number["3.1.1.2"].body_text
        assert by_number["1"].body_text == ""

    def test_children_linked(self, sample_chapters):
        by_number = {c.number: c for c in sample_chapters}
        assert [c.number for c in by_number["3"].children] == ["3.1", "3.2"]
        assert [c.title for c in by_number["3.1.1"].children] == [
            "Function Description", "Business Rules", "Data Fields",
        ]

    def test_natural_order(self):
        text = "# 10 Ten\n\n# 2 Two\n\n## 2.10 Late\n\n## 2.9 Early\n\n# 1 One\n"
        assert [c.number for c in extract(text)] == ["1", "2", "2.9", "2.10", "10"]

    def test_duplicate_first_wins(self):
        text = "# 1 First\n\nbody one\n\n# 1 Again\n\nbody two\n"
        chapters = extract(text)
        assert len(chapters) == 1
        assert chapters[0].title == "First"
        assert "1 Again" in chapters[0].body_text

    def test_orphan_becomes_body(self):
        text = "# 1 Intro\n\n## 7.1 Orphan\n\ntext\n"
        chapters = extract(text)
        assert [c.number for c in chapters] == ["1"]
        assert "7.1 Orphan" in chapters[0].body_text

    def test_numbered_list_items_ignored_in_markdown(self):
        text = "# 1 Steps\n\n1. Open the page\n2. Click save\n\n# 2 Next\n"
        chapters = extract(text)
        assert [c.number for c in chapters] == ["1", "2"]
        assert "2. Click save" in chapters[0].body_text

    def test_plain_text_template(self):
        text = "1 Introduction\nSome words here\n1.1 Purpose\nMore words\n2 Requirements\n"
        chapters = extract(text)
        assert [(c.number, c.title) for c in chapters] == [
            ("1", "Introduction"), ("1.1", "Purpose"), ("2", "Requirements"),
        ]

    def test_no_headings(self):
        assert extract("just prose without any numbering") == []

    def test_idempotent(self, sample_template_text):
        first = extract(sample_template_text)
        second = extract(sample_template_text)
        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]

    def test_render_roundtrip_is_stable(self, sample_chapters):
        again = extract(render_chapters(sample_chapters))
        assert [c.model_dump() for c in again] == [c.model_dump() for c in sample_chapters]


class TestHelpers:
    def test_natural_key(self):
        assert natural_key("2.10") > natural_key("2.9")

    def test_descendants_of(self, sample_chapters):
        numbers = [c.number for c in descendants_of(sample_chapters, "1")]
        assert numbers == ["1.1", "1.2"]

    def test_outline_indents(self, sample_chapters):
        lines = outline(sample_chapters).splitlines()
        assert lines[0] == "1 Introduction"
        assert lines[1] == "  1.1 Purpose"


class TestClassifyChapterType:
    @pytest.mark.parametrize("title, kind", [
        ("Functional Requirements", "functional"),
        ("Non-functional Requirements", "non-functional"),
        ("Introduction", "overview"),
        ("System Architecture", "architecture"),
        ("Appendix", "appendix"),
        ("功能需求", "functional"),
        ("Something Else", "other"),
    ])
    def test_types(self, title, kind):
        assert classify_chapter_type(title) == kind
