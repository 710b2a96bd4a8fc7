"""Pydantic models for the requirements document assembler."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class DiagnosticKind(str, Enum):
    EXTRACTION_FAILURE = "extraction_failure"
    ANALYSIS_DEGRADED = "analysis_degraded"
    CLASSIFICATION_INCOMPLETE = "classification_incomplete"
    GENERATION_FAILURE = "generation_failure"
    RECONCILIATION_AMBIGUITY = "reconciliation_ambiguity"


class GenerationPhase(str, Enum):
    HEADER = "header"
    FUNCTIONAL = "functional"
    FOOTER = "footer"


class PipelinePhase(str, Enum):
    EXTRACTION = "extraction"
    ANALYSIS = "analysis"
    CLASSIFICATION = "classification"
    GENERATION = "generation"
    QUALITY_CHECK = "quality_check"
    FINALIZATION = "finalization"


class SectionType(str, Enum):
    DESCRIPTION = "description"
    RULES = "rules"
    DATA_FIELDS = "data_fields"
    INTERFACE = "interface"
    UI = "ui"
    ACCEPTANCE = "acceptance"


# ---------------------------------------------------------------------------
# Template structure
# ---------------------------------------------------------------------------

def level_of(number: str) -> int:
    """Level of a dot-separated ordinal (``"5.1.2"`` -> 3)."""
    return number.count(".") + 1


def parent_of(number: str) -> str | None:
    """Parent ordinal, or None for a top-level number."""
    if "." not in number:
        return None
    return number.rsplit(".", 1)[0]


class Chapter(BaseModel):
    """A numbered node in the template outline."""
    number: str = Field(..., description="Dot-separated ordinal, e.g. 5.1.2")
    title: str
    level: int = Field(default=0, description="Separator count + 1; derived when 0")
    purpose: str = ""
    body_text: str = ""
    children: list[Chapter] = Field(default_factory=list, exclude=True)

    @model_validator(mode="after")
    def _check_level(self) -> Chapter:
        derived = level_of(self.number)
        if self.level == 0:
            self.level = derived
        elif self.level != derived:
            raise ValueError(
                f"Chapter {self.number!r} has level {self.level}, expected {derived}"
            )
        return self

    @property
    def parent_number(self) -> str | None:
        return parent_of(self.number)

    def is_descendant_of(self, number: str) -> bool:
        return self.number.startswith(number + ".")


class TemplateExamples(BaseModel):
    """Real content snippets lifted from the template for prompt grounding."""
    tables: list[str] = Field(default_factory=list)
    business_rules: list[str] = Field(default_factory=list)
    data_dictionary: list[str] = Field(default_factory=list)
    interfaces: list[str] = Field(default_factory=list)


class TemplateModel(BaseModel):
    """Aggregate understanding of one template."""
    chapters: list[Chapter] = Field(default_factory=list, description="Pre-order")
    functional_chapter_number: str
    process_sections: list[str] = Field(default_factory=list)
    hierarchy_depth: int = Field(default=2, ge=2, le=4)
    header_chapter_numbers: list[str] = Field(default_factory=list)
    footer_chapter_numbers: list[str] = Field(default_factory=list)
    examples: TemplateExamples = Field(default_factory=TemplateExamples)
    unit_example: str = ""
    warnings: list[str] = Field(default_factory=list)
    degraded: bool = Field(default=False, description="An AI analysis pass failed; fallback used")
    source_hash: str = ""

    @model_validator(mode="after")
    def _check_invariants(self) -> TemplateModel:
        numbers = [c.number for c in self.chapters]
        if len(numbers) != len(set(numbers)):
            raise ValueError("Chapter numbers must be unique within a template")
        if self.hierarchy_depth >= 2 and not self.process_sections:
            raise ValueError("process_sections must not be empty")
        _link_children(self.chapters)
        return self

    def chapter(self, number: str) -> Chapter | None:
        for c in self.chapters:
            if c.number == number:
                return c
        return None

    @property
    def functional_chapter(self) -> Chapter | None:
        return self.chapter(self.functional_chapter_number)

    def top_level(self, numbers: list[str]) -> list[Chapter]:
        return [c for c in (self.chapter(n) for n in numbers) if c is not None]


def _link_children(chapters: list[Chapter]) -> None:
    """Rebuild ``children`` lists from a flat, pre-ordered chapter list."""
    by_number = {c.number: c for c in chapters}
    for c in chapters:
        c.children = []
    for c in chapters:
        parent = by_number.get(c.parent_number or "")
        if parent is not None:
            parent.children.append(c)


# ---------------------------------------------------------------------------
# Functional units & generation artefacts
# ---------------------------------------------------------------------------

class FunctionalUnit(BaseModel):
    """One atomic functional process taken from the structured input."""
    model_config = ConfigDict(frozen=True)

    name: str
    rows: list[dict[str, Any]] = Field(default_factory=list)
    assigned_subsystem: str | None = None
    assigned_module: str | None = None
    assigned_number: str | None = None


class Classification(BaseModel):
    """Subsystem -> module -> units grouping produced by the classifier."""
    groups: dict[str, dict[str, list[FunctionalUnit]]] = Field(default_factory=dict)

    def units(self) -> list[FunctionalUnit]:
        return [
            u
            for modules in self.groups.values()
            for members in modules.values()
            for u in members
        ]


class ModuleAssignment(BaseModel):
    name: str
    units: list[str] = Field(default_factory=list, description="Unit names, verbatim")


class SubsystemAssignment(BaseModel):
    name: str
    modules: list[ModuleAssignment] = Field(default_factory=list)


class ClassificationResponse(BaseModel):
    """Shape the unit classifier agent is asked to return."""
    subsystems: list[SubsystemAssignment] = Field(default_factory=list)


class GeneratedChapter(BaseModel):
    expected_number: str
    expected_title: str
    raw_text: str = ""


class ReconciledChapter(BaseModel):
    number: str
    title: str
    final_text: str = ""
    warnings: list[str] = Field(default_factory=list)


class Diagnostic(BaseModel):
    """Out-of-band record of a degraded-but-recovered condition."""
    kind: DiagnosticKind
    message: str
    severity: Severity = Severity.WARNING
    subject: str = Field(default="", description="Chapter number or unit name")


class PartialTemplateModel(BaseModel):
    """Result of a single template analysis pass (any field may be missing)."""
    functional_chapter_number: str | None = None
    header_chapter_numbers: list[str] = Field(default_factory=list)
    footer_chapter_numbers: list[str] = Field(default_factory=list)
    hierarchy_depth: int | None = None
    process_sections: list[str] = Field(default_factory=list)


class AnalysisAttempt(BaseModel):
    source: str
    partial: PartialTemplateModel | None = None
    error: str | None = None


# ---------------------------------------------------------------------------
# Quality check
# ---------------------------------------------------------------------------

class CheckResult(BaseModel):
    score: int = 100
    issues: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class QualityReport(BaseModel):
    overall_score: int = 0
    checks: dict[str, CheckResult] = Field(default_factory=dict)
    issues: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    passed_checks: list[str] = Field(default_factory=list)
    failed_checks: list[str] = Field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.overall_score >= 80


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

class AssemblyResult(BaseModel):
    """Output of one orchestrated generation run."""
    document: str = ""
    chapters: list[ReconciledChapter] = Field(default_factory=list)
    units: list[FunctionalUnit] = Field(default_factory=list, description="With assigned numbers")
    diagnostics: list[Diagnostic] = Field(default_factory=list)
    phases_completed: list[GenerationPhase] = Field(default_factory=list)
    cancelled: bool = False


class BuildManifest(BaseModel):
    """Provenance record for the final output."""
    project_name: str
    output_dir: str
    document_file: str = "document.md"
    diagnostics_file: str = "diagnostics.json"
    template_file: str = ""
    units_file: str = ""
    unit_count: int = 0
    chapter_count: int = 0
    hierarchy_depth: int = 2
    quality_score: int | None = None
    cancelled: bool = False
    warnings: list[str] = Field(default_factory=list)


class PipelineResult(BaseModel):
    success: bool
    template_model: TemplateModel | None = None
    assembly: AssemblyResult | None = None
    quality_report: QualityReport | None = None
    manifest: BuildManifest | None = None
    output_dir: str | None = None
    errors: list[str] = Field(default_factory=list)
    phases_completed: list[PipelinePhase] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Azure & model configuration
# ---------------------------------------------------------------------------

class AzureConfig(BaseModel):
    """Azure OpenAI connection settings."""
    api_key: str = Field(default="", description="Azure OpenAI API key")
    api_version: str = Field(default="", description="API version")
    endpoint: str = Field(default="", description="Azure endpoint URL")


class ModelEndpointOverride(BaseModel):
    """Per-model endpoint that replaces the global azure settings."""
    endpoint: str
    api_key: str | None = None
    api_version: str | None = None
    api_type: str | None = None


class ModelConfig(BaseModel):
    """LLM model configuration per role."""
    default: str = Field(default="gpt-4o", description="Default model")
    analyst: str | None = Field(default=None)
    classifier: str | None = Field(default=None)
    writer: str | None = Field(default=None)
    overrides: dict[str, ModelEndpointOverride] = Field(default_factory=dict)


class GenerationConfig(BaseModel):
    """Prompt sizing and retry behaviour for body generation."""
    max_prompt_chars: int = Field(default=12000, description="Context budget for first attempt")
    reduced_prompt_chars: int = Field(default=4000, description="Context budget for the retry")
    min_body_chars: int = Field(default=20, description="Shorter output counts as unusable")


class ReconcilerConfig(BaseModel):
    """Thresholds for content-feature reassignment."""
    confidence_floor: float = Field(default=3.0, description="Minimum best score to count a mismatch")
    margin_floor: float = Field(default=1.5, description="Minimum lead over the runner-up")
    mismatch_threshold: float = Field(default=0.5, description="Mismatch ratio that must be exceeded")


# ---------------------------------------------------------------------------
# Project configuration (loaded from YAML / Hydra)
# ---------------------------------------------------------------------------

class ProjectConfig(BaseModel):
    """Full project configuration."""
    project_name: str = Field(default="requirements-spec")
    document_title: str = Field(default="", description="Shown as the document heading")
    project_description: str = Field(default="", description="Context for header/footer chapters")
    template_path: str = Field(default="template.md", description="Template document")
    units_path: str = Field(default="units.json", description="Functional unit records")
    output_dir: str = Field(default="output/", description="Output directory")

    azure: AzureConfig = Field(default_factory=AzureConfig)
    models: ModelConfig = Field(default_factory=ModelConfig)

    use_ai_analysis: bool = Field(default=True)
    use_ai_classification: bool = Field(default=True)
    template_cache: bool = Field(default=True)
    quality_check: bool = Field(default=True)

    default_subsystem: str = Field(default="Core Functions")
    default_module: str = Field(default="General")
    uncategorized_bucket: str = Field(default="Uncategorized")
    fallback_sections: list[str] = Field(
        default_factory=lambda: ["Function Description", "Business Rules", "Data Fields"]
    )

    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)

    timeout: int = Field(default=120)
    seed: int = Field(default=42)
