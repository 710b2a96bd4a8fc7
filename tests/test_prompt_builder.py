"""Tests for tools/prompt_builder.py."""

from __future__ import annotations

import pytest

from srs_assembler.models import FunctionalUnit
from srs_assembler.tools.prompt_builder import (
    build_chapter_prompt,
    build_unit_prompt,
    format_spec,
    summarize_data_flow,
)
from srs_assembler.tools.unit_reader import load_units


@pytest.fixture
def register_unit(units_json_path) -> FunctionalUnit:
    return load_units(units_json_path)[0]


class TestFormatSpec:
    def test_data_fields_use_template_columns(self, sample_model):
        assert format_spec("Data Fields", sample_model) == (
            "table with columns: Field | Type | Length | Required | Description"
        )

    def test_rules_use_default_columns(self, sample_model):
        assert format_spec("Business Rules", sample_model).startswith("table with columns: Rule ID")

    def test_prose_sections(self, sample_model):
        assert format_spec("Function Description", sample_model).startswith("prose")
        assert format_spec("Miscellaneous", sample_model).startswith("prose")
        assert format_spec("Interface Definition", sample_model) == "short prose followed by parameter tables"


class TestUnitPrompt:
    def test_headings_and_samples(self, register_unit, sample_model):
        prompt = build_unit_prompt(register_unit, "3.1.1", sample_model)
        assert 'Write the body of function "Register Account" (3.1.1).' in prompt
        assert "#### 3.1.1.1 Function Description\n#### 3.1.1.2 Business Rules\n#### 3.1.1.3 Data Fields" in prompt
        assert "Example of one complete function from the template:" in prompt
        assert "Rule 1 A member must not hold more than five books." in prompt
        assert "BR-001" in prompt

    def test_reduced_prompt_drops_samples(self, register_unit, sample_model):
        full = build_unit_prompt(register_unit, "3.1.1", sample_model)
        reduced = build_unit_prompt(register_unit, "3.1.1", sample_model, reduced=True)
        assert "Example of one complete function" not in reduced
        assert "#### 3.1.1.3 Data Fields" in reduced
        assert "Receive registration data" in reduced
        assert len(reduced) < len(full)

    def test_prompt_trimmed_to_budget(self, register_unit, sample_model):
        prompt = build_unit_prompt(register_unit, "3.1.1", sample_model, max_chars=300, reduced=True)
        assert len(prompt) <= 304
        assert prompt.endswith("\n...")

    def test_data_flow_summary(self, register_unit):
        summary = summarize_data_flow(register_unit)
        assert summary.splitlines() == [
            "- Entry (E): 1 movement(s); data groups: Registration",
            "- Read (R): 1 movement(s); data groups: Account",
            "- Write (W): 1 movement(s); data groups: Account",
            "- Fields: email, display_name, created_at",
        ]

    def test_unit_without_rows(self, sample_model):
        prompt = build_unit_prompt(FunctionalUnit(name="Search Catalogue"), "3.1.4", sample_model)
        assert "Data flow summary" not in prompt
        assert "#### 3.1.4.1 Function Description" in prompt


class TestChapterPrompt:
    def test_sub_chapters_listed(self, sample_model):
        prompt = build_chapter_prompt(
            sample_model.chapter("1"), "1", [("1.1", "Purpose"), ("1.2", "Scope")], sample_model,
            document_title="Library Portal", project_description="Portal for members.",
        )
        assert prompt.startswith('Write the body of chapter 1 "Introduction" of the document "Library Portal".')
        assert "Use exactly these sub-chapter headings, in this order:\n## 1.1 Purpose\n## 1.2 Scope" in prompt
        assert "Project context:\nPortal for members." in prompt

    def test_template_text_as_guidance(self, sample_model):
        chapter = sample_model.chapter("2")
        prompt = build_chapter_prompt(chapter, "2", [], sample_model)
        assert "has no sub-chapters" in prompt
        assert "Members use a web browser" in prompt
        reduced = build_chapter_prompt(chapter, "2", [], sample_model, reduced=True)
        assert "Members use a web browser" not in reduced

    def test_renumbered_chapter(self, sample_model):
        prompt = build_chapter_prompt(sample_model.chapter("4"), "4", [("4.1", "Performance")], sample_model)
        assert "## 4.1 Performance" in prompt
