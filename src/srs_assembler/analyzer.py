"""Template understanding: three independent passes merged into a TemplateModel.

1. Structural pass (generation service): functional chapter, header and
   footer chapter groups.
2. Hierarchy pass (generation service): depth and per-unit section names.
3. Fallback pass (deterministic): marker search plus outline inspection.

Every pass produces an ``AnalysisAttempt``; ``merge_attempts`` reduces them
to one ``PartialTemplateModel`` without touching the network. A failed or
missing AI pass only degrades the result, it never aborts.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections.abc import Sequence

from .generation import GenerationService, GenerationServices, generate_json
from .models import AnalysisAttempt, Chapter, PartialTemplateModel, TemplateModel
from .tools.chapter_extractor import (
    classify_chapter_type,
    descendants_of,
    natural_key,
    outline,
)
from .tools.section_types import classify_title
from .tools.template_examples import extract_template_examples, extract_unit_example

logger = logging.getLogger(__name__)

DEFAULT_SECTIONS = ["Function Description", "Business Rules", "Data Fields"]
SYNTHETIC_FUNCTIONAL_TITLE = "Functional Requirements"
MIN_DEPTH, MAX_DEPTH = 2, 4
SECTION_MATCH_RATIO = 0.5

_FUNCTIONAL_MARKER_RE = re.compile(
    r"functional\s+requirements?|functional\s+specification|"
    r"功能需求|功能性需求|功能要求|功能描述",
    re.IGNORECASE,
)
_NON_FUNCTIONAL_RE = re.compile(r"non[- ]?functional|非功能", re.IGNORECASE)

_STRUCTURE_PROMPT_CHARS = 4000
_HIERARCHY_PROMPT_CHARS = 8000


# ---------------------------------------------------------------------------
# Deterministic helpers
# ---------------------------------------------------------------------------

def template_hash(raw_text: str) -> str:
    return hashlib.sha256(raw_text.encode("utf-8")).hexdigest()


def _top_level(chapters: Sequence[Chapter]) -> list[Chapter]:
    return [c for c in chapters if c.level == 1]


def find_functional_chapter(chapters: Sequence[Chapter]) -> Chapter | None:
    """First top-level chapter whose title marks functional requirements."""
    for c in _top_level(chapters):
        if _NON_FUNCTIONAL_RE.search(c.title):
            continue
        if _FUNCTIONAL_MARKER_RE.search(c.title) or classify_chapter_type(c.title) == "functional":
            return c
    return None


def split_header_footer(chapters: Sequence[Chapter], functional_number: str) -> tuple[list[str], list[str]]:
    """Top-level chapter numbers before and after the functional chapter."""
    key = natural_key(functional_number)
    header = [c.number for c in _top_level(chapters) if natural_key(c.number) < key]
    footer = [c.number for c in _top_level(chapters) if natural_key(c.number) > key]
    return header, footer


def _first_unit_sections(chapters: Sequence[Chapter], functional_number: str, deepest: int) -> list[str]:
    """Child titles of the first chapter one level above the deepest level."""
    for c in descendants_of(list(chapters), functional_number):
        if c.level == deepest - 1:
            titles = [k.title for k in chapters if k.parent_number == c.number]
            if titles:
                return titles
    return []


def derive_hierarchy(
    chapters: Sequence[Chapter],
    functional_number: str,
    fallback_sections: Sequence[str],
) -> tuple[int, list[str], list[str]]:
    """Return ``(depth, process_sections, warnings)`` from the outline alone.

    When the deepest titles under the functional chapter look like section
    names, they are the sections and the depth is their distance from the
    functional chapter. Otherwise the deepest chapters are the units and
    the sections fall back to *fallback_sections*.
    """
    warnings: list[str] = []
    functional_level = functional_number.count(".") + 1
    under = descendants_of(list(chapters), functional_number)
    if not under:
        warnings.append(
            f"Functional chapter {functional_number} has no sub-chapters; "
            f"using generic sections"
        )
        return MIN_DEPTH, list(fallback_sections), warnings

    deepest = max(c.level for c in under)
    diff = deepest - functional_level
    deepest_titles = [c.title for c in under if c.level == deepest]
    matched = sum(1 for t in deepest_titles if classify_title(t) is not None)

    sections: list[str] = []
    if diff >= 2 and matched / len(deepest_titles) >= SECTION_MATCH_RATIO:
        depth = diff
        sections = _first_unit_sections(chapters, functional_number, deepest)
    else:
        depth = diff + 1

    if depth < MIN_DEPTH or depth > MAX_DEPTH:
        clamped = max(MIN_DEPTH, min(MAX_DEPTH, depth))
        warnings.append(f"Hierarchy depth {depth} out of range; clamped to {clamped}")
        depth = clamped
    if not sections:
        warnings.append("No per-unit sections found in template; using generic sections")
        sections = list(fallback_sections)
    return depth, sections, warnings


# ---------------------------------------------------------------------------
# Passes
# ---------------------------------------------------------------------------

def fallback_pass(
    chapters: Sequence[Chapter],
    fallback_sections: Sequence[str] = DEFAULT_SECTIONS,
) -> AnalysisAttempt:
    """Deterministic understanding from chapter titles and nesting."""
    functional = find_functional_chapter(chapters)
    if functional is None:
        return AnalysisAttempt(source="fallback", error="no functional-requirements chapter found")
    header, footer = split_header_footer(chapters, functional.number)
    depth, sections, _ = derive_hierarchy(chapters, functional.number, fallback_sections)
    return AnalysisAttempt(
        source="fallback",
        partial=PartialTemplateModel(
            functional_chapter_number=functional.number,
            header_chapter_numbers=header,
            footer_chapter_numbers=footer,
            hierarchy_depth=depth,
            process_sections=sections,
        ),
    )


async def structural_pass(
    raw_text: str,
    chapters: Sequence[Chapter],
    service: GenerationService,
) -> AnalysisAttempt:
    """Ask the service for the functional chapter and header/footer groups."""
    prompt = (
        "Identify the functional-requirements chapter of this template.\n\n"
        f"Chapter outline:\n{outline(list(chapters))}\n\n"
        f"Template excerpt:\n{raw_text[:_STRUCTURE_PROMPT_CHARS]}"
    )
    try:
        partial = await generate_json(service, prompt, PartialTemplateModel)
    except Exception as e:
        logger.warning("Structural analysis failed: %s", e)
        return AnalysisAttempt(source="structure", error=str(e))
    if partial is None:
        return AnalysisAttempt(source="structure", error="unparseable response")
    return AnalysisAttempt(source="structure", partial=partial)


async def hierarchy_pass(
    raw_text: str,
    chapters: Sequence[Chapter],
    functional_number: str,
    service: GenerationService,
) -> AnalysisAttempt:
    """Ask the service for depth and per-unit section names."""
    scope = [c for c in chapters if c.number == functional_number or c.is_descendant_of(functional_number)]
    body = "\n\n".join(f"{c.number} {c.title}\n{c.body_text}".strip() for c in scope)
    prompt = (
        f"Analyze the functional chapter {functional_number} of this template.\n\n"
        f"Outline:\n{outline(scope)}\n\n"
        f"Chapter text:\n{body[:_HIERARCHY_PROMPT_CHARS]}"
    )
    try:
        partial = await generate_json(service, prompt, PartialTemplateModel)
    except Exception as e:
        logger.warning("Hierarchy analysis failed: %s", e)
        return AnalysisAttempt(source="hierarchy", error=str(e))
    if partial is None:
        return AnalysisAttempt(source="hierarchy", error="unparseable response")
    return AnalysisAttempt(source="hierarchy", partial=partial)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------

def _clean_sections(sections: Sequence[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for s in sections:
        s = s.strip()
        if s and s.lower() not in seen:
            seen.add(s.lower())
            result.append(s)
    return result


def merge_attempts(
    attempts: Sequence[AnalysisAttempt],
    chapters: Sequence[Chapter],
    fallback_sections: Sequence[str] = DEFAULT_SECTIONS,
) -> tuple[PartialTemplateModel, list[str]]:
    """Reduce ordered attempts to a complete partial model plus warnings.

    Functional chapter: structural pass when it names an existing top-level
    chapter, else the fallback. Hierarchy: the hierarchy pass when it returned
    sections, else the outline under the chosen functional chapter, else the
    generic section set.
    """
    by_source = {a.source: a for a in attempts}
    warnings: list[str] = []
    top_numbers = {c.number for c in _top_level(chapters)}

    for a in attempts:
        if a.error:
            warnings.append(f"{a.source} analysis degraded: {a.error}")

    functional: str | None = None
    structure = by_source.get("structure")
    if structure and structure.partial and structure.partial.functional_chapter_number in top_numbers:
        functional = structure.partial.functional_chapter_number
    elif structure and structure.partial:
        warnings.append(
            f"structure analysis named unknown chapter "
            f"{structure.partial.functional_chapter_number!r}; ignored"
        )
    if functional is None:
        fb = by_source.get("fallback")
        if fb and fb.partial:
            functional = fb.partial.functional_chapter_number
    if functional is None:
        return PartialTemplateModel(process_sections=list(fallback_sections), hierarchy_depth=MIN_DEPTH), warnings

    header, footer = split_header_footer(chapters, functional)

    hierarchy = by_source.get("hierarchy")
    sections = _clean_sections(hierarchy.partial.process_sections) if hierarchy and hierarchy.partial else []
    if sections:
        depth = hierarchy.partial.hierarchy_depth or MIN_DEPTH
        if depth < MIN_DEPTH or depth > MAX_DEPTH:
            clamped = max(MIN_DEPTH, min(MAX_DEPTH, depth))
            warnings.append(f"hierarchy analysis returned depth {depth}; clamped to {clamped}")
            depth = clamped
    else:
        depth, sections, derived_warnings = derive_hierarchy(chapters, functional, fallback_sections)
        warnings.extend(derived_warnings)

    return (
        PartialTemplateModel(
            functional_chapter_number=functional,
            header_chapter_numbers=header,
            footer_chapter_numbers=footer,
            hierarchy_depth=depth,
            process_sections=sections,
        ),
        warnings,
    )


def _append_synthetic_functional(chapters: list[Chapter]) -> Chapter:
    tops = _top_level(chapters)
    number = str(max((natural_key(c.number)[0] for c in tops), default=0) + 1)
    synthetic = Chapter(number=number, title=SYNTHETIC_FUNCTIONAL_TITLE)
    chapters.append(synthetic)
    return synthetic


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def analyze(
    raw_text: str,
    chapters: Sequence[Chapter],
    services: GenerationServices | None = None,
    *,
    fallback_sections: Sequence[str] = DEFAULT_SECTIONS,
) -> TemplateModel:
    """Build the TemplateModel for *raw_text* and its extracted *chapters*.

    With no services configured only the deterministic pass runs. Every
    degradation is recorded in ``TemplateModel.warnings``.
    """
    chapters = list(chapters)
    fallback_sections = list(fallback_sections) or DEFAULT_SECTIONS
    attempts: list[AnalysisAttempt] = []

    structure_service = services.structure if services else None
    hierarchy_service = services.hierarchy if services else None

    if structure_service is not None:
        attempts.append(await structural_pass(raw_text, chapters, structure_service))

    fallback = fallback_pass(chapters, fallback_sections)
    attempts.append(fallback)

    functional_hint = None
    for a in attempts:
        if a.partial and a.partial.functional_chapter_number:
            functional_hint = a.partial.functional_chapter_number
            break
    if hierarchy_service is not None and functional_hint is not None:
        attempts.append(await hierarchy_pass(raw_text, chapters, functional_hint, hierarchy_service))

    merged, warnings = merge_attempts(attempts, chapters, fallback_sections)

    if merged.functional_chapter_number is None:
        synthetic = _append_synthetic_functional(chapters)
        warnings.append(
            f"No functional-requirements chapter found; appended {synthetic.number} {synthetic.title}"
        )
        header, footer = split_header_footer(chapters, synthetic.number)
        merged = merged.model_copy(update={
            "functional_chapter_number": synthetic.number,
            "header_chapter_numbers": header,
            "footer_chapter_numbers": footer,
        })

    if not merged.process_sections:
        warnings.append("Empty section list; using generic sections")
        merged = merged.model_copy(update={"process_sections": list(fallback_sections)})

    depth = merged.hierarchy_depth or MIN_DEPTH
    for w in warnings:
        logger.warning("Template analysis: %s", w)

    return TemplateModel(
        chapters=chapters,
        functional_chapter_number=merged.functional_chapter_number,
        process_sections=merged.process_sections,
        hierarchy_depth=depth,
        header_chapter_numbers=merged.header_chapter_numbers,
        footer_chapter_numbers=merged.footer_chapter_numbers,
        examples=extract_template_examples(raw_text),
        unit_example=extract_unit_example(chapters, merged.functional_chapter_number, depth),
        warnings=warnings,
        degraded=any(a.error for a in attempts),
        source_hash=template_hash(raw_text),
    )
