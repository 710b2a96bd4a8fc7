"""End-to-end tests for pipeline.py with a fake writer service."""

from __future__ import annotations

import asyncio
import json
import shutil
from pathlib import Path

import pytest
from conftest import SAMPLE_TEMPLATE, UNITS_JSON, FunctionService, RecordingCallbacks, ScriptedService, well_behaved_reply

from srs_assembler.errors import ExtractionFailure
from srs_assembler.generation import GenerationServices
from srs_assembler.models import PipelinePhase, ProjectConfig
from srs_assembler.pipeline import CACHE_DIR, Pipeline


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    shutil.copy(SAMPLE_TEMPLATE, tmp_path / "template.md")
    shutil.copy(UNITS_JSON, tmp_path / "units.json")
    return tmp_path


@pytest.fixture
def config() -> ProjectConfig:
    return ProjectConfig(
        project_name="library-portal",
        template_path="template.md",
        units_path="units.json",
        output_dir="output/",
    )


def make_pipeline(config, project_dir, services=None, **kwargs) -> Pipeline:
    if services is None:
        services = GenerationServices(writer=FunctionService(well_behaved_reply))
    return Pipeline(config, config_dir=project_dir, callbacks=RecordingCallbacks(), services=services, **kwargs)


class TestFullRun:
    def test_writes_outputs(self, config, project_dir):
        result = make_pipeline(config, project_dir).run()

        assert result.success, result.errors
        assert result.phases_completed == list(PipelinePhase)
        out = project_dir / "output"
        document = (out / "document.md").read_text(encoding="utf-8")
        assert document.startswith("# 1 Introduction\n")
        assert "### 3.1.3 Return Book" in document
        assert "# 5 Appendix" in document

        assert json.loads((out / "diagnostics.json").read_text(encoding="utf-8")) == []
        manifest = json.loads((out / "manifest.json").read_text(encoding="utf-8"))
        assert manifest["unit_count"] == 3
        assert manifest["chapter_count"] == 7
        assert manifest["hierarchy_depth"] == 3
        assert manifest["cancelled"] is False
        assert manifest["warnings"] == []
        assert result.quality_report.passed

    def test_phase_events(self, config, project_dir):
        pipeline = make_pipeline(config, project_dir)
        pipeline.run()
        started = [e[1] for e in pipeline.callbacks.of_kind("phase_start")]
        assert started == ["EXTRACTION", "ANALYSIS", "CLASSIFICATION", "GENERATION", "QUALITY_CHECK", "FINALIZATION"]
        assert len(pipeline.callbacks.of_kind("unit_end")) == 3

    def test_quality_check_disabled(self, config, project_dir):
        config.quality_check = False
        result = make_pipeline(config, project_dir).run()
        assert result.success
        assert result.quality_report is None
        assert PipelinePhase.QUALITY_CHECK not in result.phases_completed

    def test_generation_failure_recorded(self, config, project_dir):
        def reply(prompt: str) -> str:
            if '"Borrow Book"' in prompt:
                return ""
            return well_behaved_reply(prompt)

        result = make_pipeline(config, project_dir, GenerationServices(writer=FunctionService(reply))).run()
        assert result.success
        diagnostics = json.loads((project_dir / "output" / "diagnostics.json").read_text(encoding="utf-8"))
        assert [(d["kind"], d["subject"]) for d in diagnostics] == [("generation_failure", "Borrow Book")]
        assert "### 3.1.2 Borrow Book" in result.assembly.document


class TestTemplateCache:
    def test_cache_written_and_reused(self, config, project_dir):
        make_pipeline(config, project_dir).run()
        cached = list((project_dir / "output" / CACHE_DIR).glob("template_*.json"))
        assert len(cached) == 1

        structure = ScriptedService([])
        pipeline = make_pipeline(config, project_dir, GenerationServices(structure=structure))
        model = pipeline.run_analyze_only()
        assert structure.prompts == []
        assert model.hierarchy_depth == 3

    def test_changed_template_misses_cache(self, config, project_dir):
        make_pipeline(config, project_dir).run()
        template = project_dir / "template.md"
        template.write_text(template.read_text(encoding="utf-8") + "\nRevised.\n", encoding="utf-8")
        make_pipeline(config, project_dir).run_analyze_only()
        assert len(list((project_dir / "output" / CACHE_DIR).glob("template_*.json"))) == 2

    def test_degraded_analysis_not_cached(self, config, project_dir):
        failing = ScriptedService([RuntimeError("connection reset")])
        model = make_pipeline(config, project_dir, GenerationServices(structure=failing)).run_analyze_only()
        assert model.degraded
        assert model.functional_chapter_number == "3"
        assert not list((project_dir / "output" / CACHE_DIR).glob("template_*.json"))

        # The next run asks the structure service again and caches the result
        healthy = ScriptedService(['{"functional_chapter_number": "3"}'])
        model = make_pipeline(config, project_dir, GenerationServices(structure=healthy)).run_analyze_only()
        assert len(healthy.prompts) == 1
        assert not model.degraded
        assert len(list((project_dir / "output" / CACHE_DIR).glob("template_*.json"))) == 1

    def test_cache_disabled(self, config, project_dir):
        make_pipeline(config, project_dir, use_cache=False).run()
        assert not (project_dir / "output" / CACHE_DIR).exists()


class TestFailures:
    def test_missing_template(self, config, project_dir):
        (project_dir / "template.md").unlink()
        pipeline = make_pipeline(config, project_dir)
        result = pipeline.run()
        assert not result.success
        assert result.phases_completed == []
        assert "file not found" in result.errors[0]
        assert pipeline.callbacks.of_kind("error")
        assert not (project_dir / "output").exists()

    def test_missing_units(self, config, project_dir):
        (project_dir / "units.json").unlink()
        result = make_pipeline(config, project_dir).run()
        assert not result.success
        assert result.phases_completed == [PipelinePhase.EXTRACTION, PipelinePhase.ANALYSIS]

    def test_no_writer(self, config, project_dir):
        result = make_pipeline(config, project_dir, GenerationServices()).run()
        assert not result.success
        assert "No generation service" in result.errors[0]
        assert result.phases_completed == [
            PipelinePhase.EXTRACTION, PipelinePhase.ANALYSIS, PipelinePhase.CLASSIFICATION,
        ]

    def test_cancelled_run_still_finalizes(self, config, project_dir):
        cancel = asyncio.Event()
        cancel.set()
        result = asyncio.run(make_pipeline(config, project_dir).arun(cancel=cancel))
        assert not result.success
        assert result.manifest.cancelled
        assert PipelinePhase.QUALITY_CHECK not in result.phases_completed
        assert PipelinePhase.FINALIZATION in result.phases_completed
        assert (project_dir / "output" / "document.md").read_text(encoding="utf-8") == ""
        assert result.manifest.warnings == ["Generation was cancelled; document is incomplete"]


class TestPartialRuns:
    def test_extract_only(self, config, project_dir):
        chapters = make_pipeline(config, project_dir).run_extract_only()
        assert [c.number for c in chapters if c.level == 1] == ["1", "2", "3", "4", "5"]

    def test_check_only(self, config, project_dir):
        make_pipeline(config, project_dir).run()
        report = make_pipeline(config, project_dir).run_check_only("output/document.md")
        assert report.passed
        assert report.failed_checks == []

    def test_check_only_flags_missing_content(self, config, project_dir):
        (project_dir / "draft.md").write_text("# 1 Introduction\n\nTBD\n", encoding="utf-8")
        report = make_pipeline(config, project_dir).run_check_only(project_dir / "draft.md")
        assert report.failed_checks == ["structural_integrity"]
        assert any(i.startswith("Missing chapters: 2 Overall Description") for i in report.issues)
        assert any("TBD" in i for i in report.issues)

    def test_check_only_missing_document(self, config, project_dir):
        with pytest.raises(ExtractionFailure):
            make_pipeline(config, project_dir).run_check_only("nope.md")
