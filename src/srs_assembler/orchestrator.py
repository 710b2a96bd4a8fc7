"""Phase-based generation of the whole document.

Phases run in a fixed order: HEADER -> FUNCTIONAL -> FOOTER. The orchestrator
owns every heading and every number; the generation service only writes
bodies, and each body goes through the reconciler before it is appended.
Numbers follow position: header chapters are 1..k, the functional chapter is
k+1 and footer chapters continue from there.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .generation import GenerationService, collect_stream
from .models import (
    AssemblyResult,
    Chapter,
    Classification,
    Diagnostic,
    DiagnosticKind,
    FunctionalUnit,
    GeneratedChapter,
    GenerationConfig,
    GenerationPhase,
    ReconciledChapter,
    ReconcilerConfig,
    TemplateModel,
    level_of,
)
from .tools.chapter_extractor import descendants_of
from .tools.prompt_builder import build_chapter_prompt, build_unit_prompt
from .tools.reconciler import (
    CHAPTER_PASSES,
    UNIT_PASSES,
    RepairContext,
    reconcile_chapter,
)

if TYPE_CHECKING:
    from .logging_config import PipelineCallbacks

logger = logging.getLogger(__name__)

STUB_TEXT = '(Content for "{title}" could not be generated; to be completed.)'


@dataclass
class PhaseState:
    """Mutable state threaded through the three phases."""
    emitted_headings: list[str] = field(default_factory=list)
    counters: dict[int, int] = field(default_factory=dict)
    chapters: list[ReconciledChapter] = field(default_factory=list)
    units: list[FunctionalUnit] = field(default_factory=list)
    parts: list[str] = field(default_factory=list)
    diagnostics: list[Diagnostic] = field(default_factory=list)
    phases_completed: list[GenerationPhase] = field(default_factory=list)
    cancelled: bool = False

    def next_number(self, level: int) -> int:
        """Increment the counter at *level* and reset every deeper counter."""
        self.counters[level] = self.counters.get(level, 0) + 1
        for deeper in [k for k in self.counters if k > level]:
            del self.counters[deeper]
        return self.counters[level]

    def emit_heading(self, level: int, number: str, title: str) -> None:
        line = f"{'#' * min(level, 6)} {number} {title}"
        self.emitted_headings.append(line)
        self.parts.append(line)

    def to_result(self) -> AssemblyResult:
        document = "\n\n".join(self.parts).strip()
        return AssemblyResult(
            document=document + "\n" if document else "",
            chapters=list(self.chapters),
            units=list(self.units),
            diagnostics=list(self.diagnostics),
            phases_completed=list(self.phases_completed),
            cancelled=self.cancelled,
        )


def renumber(number: str, old_prefix: str, new_prefix: str) -> str:
    """Replace the leading *old_prefix* of *number* with *new_prefix*."""
    return new_prefix + number[len(old_prefix):]


def stub_body(sections: list[tuple[str, str]], title: str) -> str:
    """Placeholder body carrying every expected heading."""
    if not sections:
        return STUB_TEXT.format(title=title)
    blocks = []
    for number, section_title in sections:
        hashes = "#" * min(level_of(number), 6)
        blocks.append(f"{hashes} {number} {section_title}\n\n{STUB_TEXT.format(title=section_title)}")
    return "\n\n".join(blocks)


class Orchestrator:
    """Drives generation for one TemplateModel and one classified unit set."""

    def __init__(
        self,
        template_model: TemplateModel,
        writer: GenerationService,
        *,
        generation: GenerationConfig | None = None,
        reconciler: ReconcilerConfig | None = None,
        project_description: str = "",
        document_title: str = "",
        callbacks: PipelineCallbacks | None = None,
    ) -> None:
        self.model = template_model
        self.writer = writer
        self.generation = generation or GenerationConfig()
        self.reconciler = reconciler or ReconcilerConfig()
        self.project_description = project_description
        self.document_title = document_title
        self.callbacks = callbacks
        self._cancel: asyncio.Event | None = None

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------

    def _cancelled(self, state: PhaseState) -> bool:
        if self._cancel is not None and self._cancel.is_set():
            state.cancelled = True
        return state.cancelled

    def _diagnose(self, state: PhaseState, diagnostic: Diagnostic) -> None:
        state.diagnostics.append(diagnostic)
        logger.warning("%s [%s]: %s", diagnostic.kind.value, diagnostic.subject, diagnostic.message)
        if self.callbacks is not None:
            self.callbacks.on_warning(diagnostic.message)

    async def _generate(self, state: PhaseState, prompt: str, reduced_prompt: str, subject: str) -> str | None:
        """Full prompt, then one retry with the reduced prompt; None when both fail."""
        for attempt, text in enumerate((prompt, reduced_prompt), 1):
            if self._cancelled(state):
                return None
            try:
                body = await collect_stream(self.writer, text)
            except Exception as e:
                logger.warning("Generation attempt %d for %s failed: %s", attempt, subject, e)
                continue
            if len(body.strip()) >= self.generation.min_body_chars:
                return body
            logger.warning("Generation attempt %d for %s returned %d chars", attempt, subject, len(body.strip()))
        return None

    def _record(self, state: PhaseState, reconciled: ReconciledChapter, ctx: RepairContext) -> None:
        for message in ctx.ambiguities:
            self._diagnose(state, Diagnostic(
                kind=DiagnosticKind.RECONCILIATION_AMBIGUITY,
                message=message,
                subject=reconciled.number,
            ))
        for message in ctx.warnings:
            logger.debug("Reconciled %s: %s", reconciled.number, message)
        state.chapters.append(reconciled)
        state.parts.append(reconciled.final_text)

    async def _write_chapter(
        self,
        state: PhaseState,
        chapter: Chapter,
        number: str,
    ) -> None:
        """Generate, reconcile and append a header or footer chapter."""
        subs = [
            (renumber(c.number, chapter.number, number), c.title)
            for c in descendants_of(self.model.chapters, chapter.number)
        ]
        kwargs = dict(
            project_description=self.project_description,
            document_title=self.document_title,
        )
        prompt = build_chapter_prompt(
            chapter, number, subs, self.model, max_chars=self.generation.max_prompt_chars, **kwargs,
        )
        reduced = build_chapter_prompt(
            chapter, number, subs, self.model,
            max_chars=self.generation.reduced_prompt_chars, reduced=True, **kwargs,
        )
        generated = GeneratedChapter(expected_number=number, expected_title=chapter.title)
        body = await self._generate(state, prompt, reduced, number)
        if body is None:
            if state.cancelled:
                return
            self._diagnose(state, Diagnostic(
                kind=DiagnosticKind.GENERATION_FAILURE,
                message=f"Chapter {number} {chapter.title} could not be generated; stub inserted",
                subject=number,
            ))
            body = stub_body(subs, chapter.title)
        generated.raw_text = body

        ctx = RepairContext.for_chapter(number, subs, chapter.title, self.reconciler)
        self._record(state, reconcile_chapter(generated.raw_text, ctx, CHAPTER_PASSES), ctx)

    async def _write_unit(self, state: PhaseState, unit: FunctionalUnit, number: str) -> None:
        sections = [(f"{number}.{i}", name) for i, name in enumerate(self.model.process_sections, 1)]
        if self.callbacks is not None:
            self.callbacks.on_unit_start(unit.name, number)

        prompt = build_unit_prompt(unit, number, self.model, max_chars=self.generation.max_prompt_chars)
        reduced = build_unit_prompt(
            unit, number, self.model, max_chars=self.generation.reduced_prompt_chars, reduced=True,
        )
        body = await self._generate(state, prompt, reduced, unit.name)
        if body is None:
            if state.cancelled:
                return
            self._diagnose(state, Diagnostic(
                kind=DiagnosticKind.GENERATION_FAILURE,
                message=f"Function {number} {unit.name} could not be generated; stub inserted",
                subject=unit.name,
            ))
            body = stub_body(sections, unit.name)

        ctx = RepairContext.for_unit(number, self.model.process_sections, unit.name, self.reconciler)
        reconciled = reconcile_chapter(body, ctx, UNIT_PASSES)
        self._record(state, reconciled, ctx)
        state.units.append(unit.model_copy(update={"assigned_number": number}))
        if self.callbacks is not None:
            self.callbacks.on_unit_end(unit.name, number)

    # -----------------------------------------------------------------------
    # Phases
    # -----------------------------------------------------------------------

    async def _header_phase(self, state: PhaseState) -> None:
        for chapter in self.model.top_level(self.model.header_chapter_numbers):
            if self._cancelled(state):
                return
            number = str(state.next_number(1))
            await self._write_chapter(state, chapter, number)
        state.phases_completed.append(GenerationPhase.HEADER)

    async def _functional_phase(self, state: PhaseState, classification: Classification) -> None:
        if self._cancelled(state):
            return
        functional = self.model.functional_chapter
        title = functional.title if functional else "Functional Requirements"
        f_number = str(state.next_number(1))
        state.emit_heading(1, f_number, title)

        depth = self.model.hierarchy_depth
        if depth == 2:
            for unit in classification.units():
                if self._cancelled(state):
                    return
                number = f"{f_number}.{state.next_number(2)}"
                await self._write_unit(state, unit, number)
            state.phases_completed.append(GenerationPhase.FUNCTIONAL)
            return

        for subsystem, modules in classification.groups.items():
            members = [u for units in modules.values() for u in units]
            if not members:
                continue
            if self._cancelled(state):
                return
            s_number = f"{f_number}.{state.next_number(2)}"
            state.emit_heading(2, s_number, subsystem)

            if depth == 3:
                for unit in members:
                    if self._cancelled(state):
                        return
                    await self._write_unit(state, unit, f"{s_number}.{state.next_number(3)}")
                continue

            for module, units in modules.items():
                if not units:
                    continue
                if self._cancelled(state):
                    return
                m_number = f"{s_number}.{state.next_number(3)}"
                state.emit_heading(3, m_number, module)
                for unit in units:
                    if self._cancelled(state):
                        return
                    await self._write_unit(state, unit, f"{m_number}.{state.next_number(4)}")
        state.phases_completed.append(GenerationPhase.FUNCTIONAL)

    async def _footer_phase(self, state: PhaseState) -> None:
        for chapter in self.model.top_level(self.model.footer_chapter_numbers):
            if self._cancelled(state):
                return
            number = str(state.next_number(1))
            await self._write_chapter(state, chapter, number)
        state.phases_completed.append(GenerationPhase.FOOTER)

    async def run(
        self,
        classification: Classification,
        cancel: asyncio.Event | None = None,
    ) -> AssemblyResult:
        """Run HEADER, FUNCTIONAL and FOOTER; stop early once *cancel* is set."""
        self._cancel = cancel
        state = PhaseState()
        logger.info("Generation phase %s", GenerationPhase.HEADER.value)
        await self._header_phase(state)
        if not state.cancelled:
            logger.info("Generation phase %s", GenerationPhase.FUNCTIONAL.value)
            await self._functional_phase(state, classification)
        if not state.cancelled:
            logger.info("Generation phase %s", GenerationPhase.FOOTER.value)
            await self._footer_phase(state)
        if state.cancelled:
            logger.warning("Generation cancelled after phases %s", [p.value for p in state.phases_completed])
        return state.to_result()
