"""Pipeline: phase-based assembly of a requirements document.

Phase 1: EXTRACTION      - Read the template and parse its chapter tree
Phase 2: ANALYSIS        - Build (or load the cached) TemplateModel
Phase 3: CLASSIFICATION  - Load functional units and group them
Phase 4: GENERATION      - Header, functional and footer chapters, reconciled
Phase 5: QUALITY_CHECK   - Deterministic checks on the assembled document
Phase 6: FINALIZATION    - Write document, diagnostics and manifest
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

from pydantic import ValidationError

from .analyzer import analyze, template_hash
from .classifier import classify
from .config import has_credentials
from .errors import ExtractionFailure
from .generation import GenerationServices, build_services
from .logging_config import PipelineCallbacks, RichCallbacks
from .models import (
    AssemblyResult,
    BuildManifest,
    Chapter,
    Classification,
    Diagnostic,
    DiagnosticKind,
    FunctionalUnit,
    PipelinePhase,
    PipelineResult,
    ProjectConfig,
    QualityReport,
    TemplateModel,
)
from .orchestrator import Orchestrator
from .tools.chapter_extractor import extract
from .tools.doc_reader import read_template
from .tools.quality_check import comprehensive_quality_check
from .tools.unit_reader import load_units

logger = logging.getLogger(__name__)

CACHE_DIR = ".cache"


class Pipeline:
    """Orchestrates one template + unit set into a finished document."""

    def __init__(
        self,
        config: ProjectConfig,
        config_dir: Path | None = None,
        callbacks: PipelineCallbacks | None = None,
        services: GenerationServices | None = None,
        *,
        use_cache: bool = True,
    ) -> None:
        self.config = config
        self.config_dir = config_dir or Path(".")
        self.callbacks = callbacks or RichCallbacks()
        self.use_cache = use_cache and config.template_cache

        # Resolve paths relative to config dir
        self.template_path = self.config_dir / config.template_path
        self.units_path = self.config_dir / config.units_path
        self.output_dir = self.config_dir / config.output_dir

        if services is None:
            if has_credentials(config):
                services = build_services(config)
            else:
                logger.warning("No model endpoint configured; AI passes disabled")
                services = GenerationServices()
        self.services = services

        # State
        self.raw_text: str | None = None
        self.chapters: list[Chapter] = []
        self.template_model: TemplateModel | None = None
        self.units: list[FunctionalUnit] = []
        self.classification: Classification | None = None
        self.assembly: AssemblyResult | None = None
        self.quality_report: QualityReport | None = None
        self.manifest: BuildManifest | None = None
        self.diagnostics: list[Diagnostic] = []

    def _diagnose(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)
        self.callbacks.on_warning(diagnostic.message)

    # -----------------------------------------------------------------------
    # Phase 1: Extraction
    # -----------------------------------------------------------------------

    def run_extraction(self) -> list[Chapter]:
        """Phase 1: Read the template document and extract its chapters."""
        self.callbacks.on_phase_start("EXTRACTION", f"Reading {self.template_path.name}")
        try:
            self.raw_text = read_template(self.template_path)
        except ExtractionFailure:
            self.callbacks.on_phase_end("EXTRACTION", False)
            raise
        self.chapters = extract(self.raw_text)
        logger.info("Extracted %d chapters", len(self.chapters))
        self.callbacks.on_phase_end("EXTRACTION", True)
        return self.chapters

    # -----------------------------------------------------------------------
    # Phase 2: Analysis
    # -----------------------------------------------------------------------

    def _cache_path(self, digest: str) -> Path:
        return self.output_dir / CACHE_DIR / f"template_{digest[:16]}.json"

    def _load_cached_model(self, digest: str) -> TemplateModel | None:
        path = self._cache_path(digest)
        if not path.exists():
            return None
        try:
            model = TemplateModel.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("Ignoring unreadable template cache %s: %s", path, e)
            return None
        if model.source_hash != digest:
            return None
        logger.info("Loaded template analysis from %s", path)
        return model

    def _store_cached_model(self, model: TemplateModel) -> None:
        path = self._cache_path(model.source_hash)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(model.model_dump_json(indent=2), encoding="utf-8")
        logger.debug("Cached template analysis at %s", path)

    async def run_analysis(self) -> TemplateModel:
        """Phase 2: Understand the template; cached by template content hash."""
        if self.raw_text is None:
            self.run_extraction()
        if self.raw_text is None:
            raise RuntimeError("Template text unavailable after extraction")

        self.callbacks.on_phase_start("ANALYSIS", "Analyzing template structure")
        digest = template_hash(self.raw_text)
        model = self._load_cached_model(digest) if self.use_cache else None
        if model is None:
            model = await analyze(
                self.raw_text,
                self.chapters,
                self.services,
                fallback_sections=self.config.fallback_sections,
            )
            if model.degraded:
                logger.info("Template analysis degraded; not cached")
            elif self.use_cache:
                self._store_cached_model(model)
        self.template_model = model

        for w in model.warnings:
            self._diagnose(Diagnostic(
                kind=DiagnosticKind.ANALYSIS_DEGRADED,
                message=w,
                subject=model.functional_chapter_number,
            ))
        self.callbacks.on_phase_end("ANALYSIS", True)
        return model

    # -----------------------------------------------------------------------
    # Phase 3: Classification
    # -----------------------------------------------------------------------

    async def run_classification(self) -> Classification:
        """Phase 3: Load functional units and group them for the template depth."""
        if self.template_model is None:
            await self.run_analysis()
        if self.template_model is None:
            raise RuntimeError("Template analysis produced no model")

        self.callbacks.on_phase_start("CLASSIFICATION", f"Grouping units from {self.units_path.name}")
        try:
            self.units = load_units(self.units_path)
        except ExtractionFailure:
            self.callbacks.on_phase_end("CLASSIFICATION", False)
            raise

        classification, diagnostics = await classify(
            self.units,
            self.template_model,
            self.services.classifier,
            default_subsystem=self.config.default_subsystem,
            default_module=self.config.default_module,
            uncategorized=self.config.uncategorized_bucket,
        )
        for d in diagnostics:
            self._diagnose(d)
        self.classification = classification
        logger.info(
            "Classified %d units into %d subsystems",
            len(classification.units()), len(classification.groups),
        )
        self.callbacks.on_phase_end("CLASSIFICATION", True)
        return classification

    # -----------------------------------------------------------------------
    # Phase 4: Generation
    # -----------------------------------------------------------------------

    async def run_generation(self, cancel: asyncio.Event | None = None) -> AssemblyResult:
        """Phase 4: Generate and reconcile every chapter in document order."""
        if self.classification is None:
            await self.run_classification()
        if self.template_model is None or self.classification is None:
            raise RuntimeError("Generation requires a template model and a classification")

        if self.services.writer is None:
            raise RuntimeError(
                "No generation service configured for the writer; set azure credentials "
                "or a model endpoint override"
            )

        self.callbacks.on_phase_start("GENERATION", f"Writing {len(self.classification.units())} functions")
        orchestrator = Orchestrator(
            self.template_model,
            self.services.writer,
            generation=self.config.generation,
            reconciler=self.config.reconciler,
            project_description=self.config.project_description,
            document_title=self.config.document_title,
            callbacks=self.callbacks,
        )
        self.assembly = await orchestrator.run(self.classification, cancel=cancel)
        self.diagnostics.extend(self.assembly.diagnostics)
        self.callbacks.on_phase_end("GENERATION", not self.assembly.cancelled)
        return self.assembly

    # -----------------------------------------------------------------------
    # Phase 5: Quality check
    # -----------------------------------------------------------------------

    def run_quality_check(self, document: str | None = None) -> QualityReport:
        """Phase 5: Score *document* (default: the assembled one)."""
        if document is None:
            document = self.assembly.document if self.assembly else ""
        self.callbacks.on_phase_start("QUALITY_CHECK", "Checking document quality")
        unit_names = [u.name for u in self.units]
        self.quality_report = comprehensive_quality_check(document, self.template_model, unit_names)
        logger.info("Quality score: %d/100", self.quality_report.overall_score)
        self.callbacks.on_phase_end("QUALITY_CHECK", self.quality_report.passed)
        return self.quality_report

    # -----------------------------------------------------------------------
    # Phase 6: Finalization
    # -----------------------------------------------------------------------

    def run_finalization(self) -> BuildManifest:
        """Write the document, diagnostics and manifest."""
        self.callbacks.on_phase_start("FINALIZATION", f"Writing output to {self.output_dir}")
        self.output_dir.mkdir(parents=True, exist_ok=True)

        assembly = self.assembly or AssemblyResult()
        warnings: list[str] = []
        if assembly.cancelled:
            warnings.append("Generation was cancelled; document is incomplete")
        if self.quality_report is not None and not self.quality_report.passed:
            warnings.append(f"Quality score {self.quality_report.overall_score} is below the pass mark")

        self.manifest = BuildManifest(
            project_name=self.config.project_name,
            output_dir=str(self.output_dir),
            template_file=str(self.template_path),
            units_file=str(self.units_path),
            unit_count=len(assembly.units),
            chapter_count=len(assembly.chapters),
            hierarchy_depth=self.template_model.hierarchy_depth if self.template_model else 2,
            quality_score=self.quality_report.overall_score if self.quality_report else None,
            cancelled=assembly.cancelled,
            warnings=warnings,
        )

        document_path = self.output_dir / self.manifest.document_file
        document_path.write_text(assembly.document, encoding="utf-8")
        logger.info("Wrote %s", document_path)

        diagnostics_path = self.output_dir / self.manifest.diagnostics_file
        diagnostics_path.write_text(
            json.dumps([d.model_dump(mode="json") for d in self.diagnostics], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        logger.info("Wrote %s", diagnostics_path)

        manifest_path = self.output_dir / "manifest.json"
        manifest_path.write_text(
            self.manifest.model_dump_json(indent=2),
            encoding="utf-8",
        )
        logger.info("Wrote %s", manifest_path)

        self.callbacks.on_phase_end("FINALIZATION", True)
        return self.manifest

    # -----------------------------------------------------------------------
    # Full pipeline
    # -----------------------------------------------------------------------

    async def arun(self, cancel: asyncio.Event | None = None) -> PipelineResult:
        """Run every phase; a cancelled run still writes what was generated.

        Flow::

            EXTRACTION -> ANALYSIS -> CLASSIFICATION -> GENERATION ->
            QUALITY_CHECK -> FINALIZATION
        """
        errors: list[str] = []
        phases: list[PipelinePhase] = []

        try:
            self.run_extraction()
            phases.append(PipelinePhase.EXTRACTION)

            await self.run_analysis()
            phases.append(PipelinePhase.ANALYSIS)

            await self.run_classification()
            phases.append(PipelinePhase.CLASSIFICATION)

            await self.run_generation(cancel=cancel)
            phases.append(PipelinePhase.GENERATION)

            if self.config.quality_check and not self.assembly.cancelled:
                self.run_quality_check()
                phases.append(PipelinePhase.QUALITY_CHECK)

            self.run_finalization()
            phases.append(PipelinePhase.FINALIZATION)

        except ExtractionFailure as e:
            logger.error("%s", e)
            self.callbacks.on_error(str(e))
            errors.append(str(e))
        except Exception as e:
            logger.exception("Pipeline failed")
            self.callbacks.on_error(str(e))
            errors.append(str(e))

        success = (
            not errors
            and self.assembly is not None
            and not self.assembly.cancelled
        )

        return PipelineResult(
            success=success,
            template_model=self.template_model,
            assembly=self.assembly,
            quality_report=self.quality_report,
            manifest=self.manifest,
            output_dir=str(self.output_dir),
            errors=errors,
            phases_completed=phases,
        )

    def run(self) -> PipelineResult:
        """Run the full pipeline on a fresh event loop."""
        return asyncio.run(self.arun())

    # -----------------------------------------------------------------------
    # Partial runs (for CLI modes)
    # -----------------------------------------------------------------------

    def run_extract_only(self) -> list[Chapter]:
        """Run only Phase 1 (template reading + chapter extraction)."""
        return self.run_extraction()

    def run_analyze_only(self) -> TemplateModel:
        """Run Phase 1 + 2 (no units, no generation)."""
        self.run_extraction()
        return asyncio.run(self.run_analysis())

    def run_check_only(self, document_path: str | Path) -> QualityReport:
        """Quality-check an existing document against the template."""
        path = Path(document_path)
        if not path.is_absolute():
            path = self.config_dir / path
        if not path.exists():
            raise ExtractionFailure(str(path), "file not found")
        document = path.read_text(encoding="utf-8")
        self.run_analyze_only()
        if self.units_path.exists():
            self.units = load_units(self.units_path)
        return self.run_quality_check(document)
