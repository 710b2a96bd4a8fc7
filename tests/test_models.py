"""Tests for Pydantic models."""

import pytest
from pydantic import ValidationError

from srs_assembler.models import (
    Chapter,
    Classification,
    Diagnostic,
    DiagnosticKind,
    FunctionalUnit,
    ProjectConfig,
    QualityReport,
    Severity,
    TemplateModel,
    level_of,
    parent_of,
)


class TestOrdinals:
    def test_level_of(self):
        assert level_of("5") == 1
        assert level_of("5.1.2") == 3

    def test_parent_of(self):
        assert parent_of("5.1.2") == "5.1"
        assert parent_of("5") is None


class TestChapter:
    def test_level_derived(self):
        assert Chapter(number="3.2.1", title="Borrow Book").level == 3

    def test_level_mismatch_rejected(self):
        with pytest.raises(ValidationError):
            Chapter(number="3.2", title="Loans", level=3)

    def test_descendant(self):
        c = Chapter(number="3.21", title="X")
        assert c.is_descendant_of("3")
        assert not c.is_descendant_of("3.2")


class TestTemplateModel:
    def test_children_linked(self):
        model = TemplateModel(
            chapters=[
                Chapter(number="1", title="A"),
                Chapter(number="1.1", title="B"),
                Chapter(number="2", title="C"),
            ],
            functional_chapter_number="2",
            process_sections=["Description"],
        )
        assert [c.number for c in model.chapter("1").children] == ["1.1"]
        assert model.functional_chapter.title == "C"
        assert model.top_level(["2", "9", "1"]) == [model.chapter("2"), model.chapter("1")]

    def test_duplicate_numbers_rejected(self):
        with pytest.raises(ValidationError):
            TemplateModel(
                chapters=[Chapter(number="1", title="A"), Chapter(number="1", title="B")],
                functional_chapter_number="1",
                process_sections=["Description"],
            )

    def test_sections_required(self):
        with pytest.raises(ValidationError):
            TemplateModel(functional_chapter_number="1", process_sections=[])

    @pytest.mark.parametrize("depth", [1, 5])
    def test_depth_bounds(self, depth):
        with pytest.raises(ValidationError):
            TemplateModel(functional_chapter_number="1", process_sections=["D"], hierarchy_depth=depth)


class TestClassification:
    def test_units_flattened_in_order(self):
        a, b, c = (FunctionalUnit(name=n) for n in "ABC")
        classification = Classification(groups={"S1": {"M1": [b], "M2": [a]}, "S2": {"M": [c]}})
        assert [u.name for u in classification.units()] == ["B", "A", "C"]

    def test_unit_is_frozen(self):
        unit = FunctionalUnit(name="Login")
        with pytest.raises(ValidationError):
            unit.name = "Logout"
        assert unit.model_copy(update={"assigned_number": "3.1"}).assigned_number == "3.1"


class TestMisc:
    def test_diagnostic_defaults(self):
        d = Diagnostic(kind=DiagnosticKind.GENERATION_FAILURE, message="stub inserted")
        assert d.severity == Severity.WARNING
        assert d.model_dump(mode="json")["kind"] == "generation_failure"

    def test_quality_report_passed(self):
        assert QualityReport(overall_score=80).passed
        assert not QualityReport(overall_score=79).passed

    def test_project_config_defaults(self):
        config = ProjectConfig()
        assert config.generation.min_body_chars == 20
        assert config.reconciler.confidence_floor == 3.0
        assert config.models.default == "gpt-4o"
