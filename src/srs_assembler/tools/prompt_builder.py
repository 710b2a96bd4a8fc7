"""Template-aware prompts for chapter and functional-unit bodies.

Each prompt lists the exact sub-headings the body must use, a format
specification per section (table columns when the section is tabular), the
unit's data-flow summary and real template samples, trimmed to a character
budget. The reduced variant used for retries keeps the headings and the unit
data but drops the samples.
"""

from __future__ import annotations

from collections.abc import Sequence

from ..models import Chapter, FunctionalUnit, SectionType, TemplateModel
from .section_types import DEFAULT_TABLE_HEADERS, classify_title
from .unit_reader import MOVEMENT_NAMES, analyze_data_flow, render_unit_detail, unique_fields

_SECTION_REQUIREMENTS: dict[SectionType, str] = {
    SectionType.DESCRIPTION: (
        "Describe the complete business flow following the data movements "
        "(Entry -> Read -> Write -> eXit), the purpose of the function and how "
        "exceptions are handled."
    ),
    SectionType.RULES: (
        "List at least five rules covering validation, permissions and business "
        "logic, numbered BR-001, BR-002, ... with trigger condition and handling."
    ),
    SectionType.DATA_FIELDS: (
        "List every data field from the data attributes with type, length and "
        "whether it is required."
    ),
    SectionType.INTERFACE: (
        "Request parameters come from Entry data, response parameters from eXit "
        "data. Give method, URL, parameter table and error codes."
    ),
    SectionType.UI: (
        "Describe the page layout, the input fields (Entry data), the displayed "
        "fields (eXit data) and the buttons and interactions."
    ),
    SectionType.ACCEPTANCE: (
        "Give at least five test cases covering the normal flow, validation, "
        "permissions and error handling."
    ),
}


def _table_headers_from_dictionary(examples: Sequence[str]) -> list[str]:
    for table in examples:
        first = table.splitlines()[0] if table else ""
        if "|" in first:
            headers = [h.strip() for h in first.strip().strip("|").split("|")]
            headers = [h for h in headers if h]
            if headers:
                return headers
    return []


def format_spec(section: str, model: TemplateModel) -> str:
    """One-line format instruction for *section*."""
    section_type = classify_title(section)
    headers: Sequence[str] = ()
    if section_type == SectionType.DATA_FIELDS:
        headers = _table_headers_from_dictionary(model.examples.data_dictionary)
    if not headers and section_type is not None:
        headers = DEFAULT_TABLE_HEADERS.get(section_type, ())
    if headers:
        return f"table with columns: {' | '.join(headers)}"
    if section_type == SectionType.INTERFACE:
        return "short prose followed by parameter tables"
    return "prose paragraphs, bullet lists where helpful"


def summarize_data_flow(unit: FunctionalUnit) -> str:
    flow = analyze_data_flow(unit.rows)
    lines = []
    for code, rows in flow.items():
        if rows:
            groups = ", ".join(dict.fromkeys(str(r.get("data_group") or "-") for r in rows))
            lines.append(f"- {MOVEMENT_NAMES[code]} ({code}): {len(rows)} movement(s); data groups: {groups}")
    fields = unique_fields(unit.rows)
    if fields:
        lines.append(f"- Fields: {', '.join(fields)}")
    return "\n".join(lines)


def _samples_for(section_type: SectionType | None, model: TemplateModel) -> list[str]:
    ex = model.examples
    if section_type == SectionType.RULES:
        return ex.business_rules[:2]
    if section_type == SectionType.DATA_FIELDS:
        return ex.data_dictionary[:2]
    if section_type == SectionType.INTERFACE:
        return ex.interfaces[:2]
    return []


def _truncate(text: str, budget: int) -> str:
    if budget <= 0:
        return ""
    if len(text) <= budget:
        return text
    return text[:budget].rstrip() + "\n..."


def build_unit_prompt(
    unit: FunctionalUnit,
    ordinal: str,
    model: TemplateModel,
    *,
    max_chars: int = 12000,
    reduced: bool = False,
) -> str:
    """Prompt for one functional unit body with its numbered sub-sections."""
    hashes = "#" * min(ordinal.count(".") + 2, 6)
    headings = [f"{hashes} {ordinal}.{i} {name}" for i, name in enumerate(model.process_sections, 1)]

    parts = [
        f'Write the body of function "{unit.name}" ({ordinal}).',
        "Use exactly these headings, in this order, and nothing else at this level:",
        "\n".join(headings),
        "",
        "Format per section:",
    ]
    for i, name in enumerate(model.process_sections, 1):
        section_type = classify_title(name)
        line = f"- {ordinal}.{i} {name}: {format_spec(name, model)}"
        if section_type is not None and not reduced:
            line += f". {_SECTION_REQUIREMENTS[section_type]}"
        parts.append(line)

    parts += ["", "Function data:", render_unit_detail(unit)]
    flow = summarize_data_flow(unit)
    if flow:
        parts += ["", "Data flow summary:", flow]

    prompt = "\n".join(parts)
    if reduced:
        return _truncate(prompt, max_chars)

    context: list[str] = []
    if model.unit_example:
        context.append(f"Example of one complete function from the template:\n{model.unit_example}")
    for name in model.process_sections:
        for sample in _samples_for(classify_title(name), model):
            context.append(f"Template sample for {name}:\n{sample}")
    budget = max_chars - len(prompt) - 2
    if budget <= 0:
        return _truncate(prompt, max_chars)
    if context:
        prompt += "\n\n" + _truncate("\n\n".join(context), budget)
    return prompt


def build_chapter_prompt(
    chapter: Chapter,
    number: str,
    sub_chapters: Sequence[tuple[str, str]],
    model: TemplateModel,
    *,
    project_description: str = "",
    document_title: str = "",
    max_chars: int = 12000,
    reduced: bool = False,
) -> str:
    """Prompt for a header or footer chapter body."""
    parts = [f'Write the body of chapter {number} "{chapter.title}"'
             + (f' of the document "{document_title}".' if document_title else ".")]
    if sub_chapters:
        parts.append("Use exactly these sub-chapter headings, in this order:")
        for sub_number, title in sub_chapters:
            hashes = "#" * min(sub_number.count(".") + 1, 6)
            parts.append(f"{hashes} {sub_number} {title}")
    else:
        parts.append("The chapter has no sub-chapters; write its content directly.")
    if chapter.purpose:
        parts += ["", f"Purpose of this chapter: {chapter.purpose}"]
    if project_description:
        parts += ["", f"Project context:\n{project_description}"]

    prompt = "\n".join(parts)
    if reduced or not chapter.body_text:
        return _truncate(prompt, max_chars)
    guidance = f"Template text for this chapter (follow its structure and tone):\n{chapter.body_text}"
    budget = max_chars - len(prompt) - 2
    if budget > 0:
        prompt += "\n\n" + _truncate(guidance, budget)
    return prompt
