"""Tests for tools/quality_check.py."""

from __future__ import annotations

from srs_assembler.models import Chapter, CheckResult, TemplateModel
from srs_assembler.tools.quality_check import (
    PASS_SCORE,
    check_content_completeness,
    check_data_consistency,
    check_format_correctness,
    check_heading_hierarchy,
    check_structural_integrity,
    check_tables,
    comprehensive_quality_check,
    expected_top_level,
    find_placeholders,
    split_headings,
    summarize,
)

FILLER = "This section is written out in complete sentences for the reader of the document."

GOOD_DOCUMENT = f"""\
# 1 Introduction

{FILLER}

# 2 Functional Requirements

## 2.1 Register Account

### 2.1.1 Description

{FILLER}

### 2.1.2 Data Fields

| Field | Type |
|---|---|
| email | varchar |
| display_name | varchar |

# 3 Appendix

{FILLER}
"""


def small_model() -> TemplateModel:
    # Template numbering differs from the positional output numbering
    return TemplateModel(
        chapters=[
            Chapter(number="1", title="Introduction"),
            Chapter(number="5", title="Functional Requirements"),
            Chapter(number="9", title="Appendix"),
        ],
        functional_chapter_number="5",
        header_chapter_numbers=["1"],
        footer_chapter_numbers=["9"],
        process_sections=["Description", "Data Fields"],
    )


class TestHelpers:
    def test_split_headings(self):
        sections = split_headings("intro\n# A\nbody\n## B\n")
        assert sections == [(1, "A", "body"), (2, "B", "")]

    def test_expected_top_level_is_positional(self):
        assert expected_top_level(small_model()) == [
            ("1", "Introduction"), ("2", "Functional Requirements"), ("3", "Appendix"),
        ]

    def test_find_placeholders(self):
        text = "Value XXX is TBD. 待定. TODO: later. [placeholder text]"
        assert find_placeholders(text) == ["XXX", "待定", "TODO", "TBD", "[placeholder text]"]

    def test_stub_text_is_a_placeholder(self):
        assert find_placeholders('(Content for "Rules" could not be generated; to be completed.)')


class TestChecks:
    def test_good_document(self):
        report = comprehensive_quality_check(GOOD_DOCUMENT, small_model(), ["Register Account"])
        assert report.overall_score == 100
        assert report.passed
        assert report.failed_checks == []
        assert report.suggestions == ["Document quality is good"]

    def test_missing_chapter(self):
        document = GOOD_DOCUMENT.replace("# 3 Appendix", "# 3 Annexes")
        result = check_structural_integrity(document, small_model())
        assert result.score == 90
        assert result.issues == ["Missing chapters: 3 Appendix"]

    def test_no_model(self):
        assert check_structural_integrity(GOOD_DOCUMENT, None).score == 50

    def test_short_sections(self):
        result = check_content_completeness("# 1 Intro\n\nshort\n\n# 2 Next\n\n## 2.1 Sub\n\n" + FILLER)
        # 2 Next is a container, only 1 Intro is short
        assert result.details["empty"] == 1
        assert result.score == 95

    def test_missing_function_names(self):
        result = check_data_consistency(GOOD_DOCUMENT, ["Register Account", "Borrow Book"])
        assert result.details["missing"] == ["Borrow Book"]
        assert result.score == 97
        assert check_data_consistency(GOOD_DOCUMENT, None).score == PASS_SCORE

    def test_tables(self):
        assert check_tables("| a | b |\n| c | d |\n| e | f |\n") == ["Line 2: table missing separator row"]
        assert check_tables("| a | b |\n|---|---|\n") == ["Line 1: table has fewer than three rows"]
        assert check_tables(GOOD_DOCUMENT) == []

    def test_heading_jump(self):
        assert check_heading_hierarchy("# A\n### B\n") == ["Line 2: heading level jumps from 1 to 3"]

    def test_format_penalties(self):
        result = check_format_correctness("# A\n\n-\n\n# A\n")
        assert result.details == {
            "table_issues": 0, "heading_issues": 0, "list_issues": 1, "duplicate_headings": 1,
        }
        assert result.score == 94


class TestSummarize:
    def test_low_score(self):
        report = summarize({"a": CheckResult(score=40), "b": CheckResult(score=60)})
        assert report.overall_score == 50
        assert report.failed_checks == ["a", "b"]
        assert not report.passed
        assert "regenerate" in report.suggestions[0]

    def test_mixed(self):
        report = summarize({"a": CheckResult(score=100, issues=["x"]), "b": CheckResult(score=50)})
        assert report.overall_score == 75
        assert report.passed_checks == ["a"]
        assert report.issues == ["x"]
