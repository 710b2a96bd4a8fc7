"""Deterministic extraction of real content samples from a template.

The samples (tables, business-rule lines, data-dictionary tables, interface
blocks and one complete functional unit) are shown to the writer so generated
bodies copy the template's format instead of inventing one.
"""

from __future__ import annotations

import re

from ..models import Chapter, TemplateExamples, level_of
from .chapter_extractor import descendants_of, render_chapters

MAX_TABLES = 15
MAX_RULES = 10
MAX_DATA_DICTIONARY = 5
MAX_INTERFACES = 5
UNIT_EXAMPLE_CHARS = 3000

_HEADING_RE = re.compile(r"^(?:#+\s+|\d+(?:\.\d+)*[.\s、])")
_RULE_LINE_RE = re.compile(r"^(?:BR-\d+|Rule\s*\d+|业务规则\d+|规则\d+)[：:、.\s]", re.IGNORECASE)
_DICT_HEADER_RE = re.compile(r"(?:字段|field).*(?:类型|type)", re.IGNORECASE)
_INTERFACE_RE = re.compile(r"(?:API[-_]\w+|INT[-_]\d+|接口\d+)[：:、.\s]")
_NUMBERED_HEADING_RE = re.compile(r"^#+\s+\d+")


def _is_table_row(line: str) -> bool:
    return "|" in line and len(line.split("|")) >= 3


def extract_tables(text: str) -> list[str]:
    """Markdown tables with at least two rows, prefixed by the nearest heading line."""
    tables: list[str] = []
    context = ""
    rows: list[str] = []

    def flush() -> None:
        if len(rows) >= 2:
            tables.append("\n".join([context, *rows]).strip())
        rows.clear()

    for raw in text.splitlines():
        line = raw.strip()
        if _is_table_row(line):
            rows.append(line)
            continue
        flush()
        if _HEADING_RE.match(line):
            context = line
    flush()
    return tables[:MAX_TABLES]


def extract_business_rules(text: str) -> list[str]:
    """Lines that start with a rule identifier (``BR-001``, ``Rule 1``, ``规则1``)."""
    rules = [line.strip() for line in text.splitlines() if _RULE_LINE_RE.match(line.strip())]
    return rules[:MAX_RULES]


def extract_data_dictionary(text: str) -> list[str]:
    """Tables whose header row names both a field column and a type column."""
    lines = text.splitlines()
    found: list[str] = []
    i = 0
    while i < len(lines):
        line = lines[i].strip()
        if "|" in line and _DICT_HEADER_RE.search(line):
            table = [line]
            j = i + 1
            while j < len(lines) and j < i + 10 and "|" in lines[j]:
                table.append(lines[j].strip())
                j += 1
            if len(table) >= 3:
                found.append("\n".join(table))
            i = j
            continue
        i += 1
    return found[:MAX_DATA_DICTIONARY]


def extract_interfaces(text: str) -> list[str]:
    """Blocks introduced by an interface id or a request/response line."""
    lines = text.splitlines()
    blocks: list[str] = []
    for i, raw in enumerate(lines):
        line = raw.strip()
        request_response = ("request" in line.lower() and "response" in line.lower()) or (
            "请求" in line and "响应" in line
        )
        if not (_INTERFACE_RE.search(line) or request_response):
            continue
        block = [line]
        for nxt in lines[i + 1:i + 20]:
            if _NUMBERED_HEADING_RE.match(nxt.strip()):
                break
            block.append(nxt.strip())
        if len(block) >= 5:
            blocks.append("\n".join(block).strip())
    return blocks[:MAX_INTERFACES]


def extract_template_examples(text: str) -> TemplateExamples:
    return TemplateExamples(
        tables=extract_tables(text),
        business_rules=extract_business_rules(text),
        data_dictionary=extract_data_dictionary(text),
        interfaces=extract_interfaces(text),
    )


def extract_unit_example(
    chapters: list[Chapter],
    functional_number: str,
    hierarchy_depth: int,
) -> str:
    """Render the first complete functional unit found under the functional chapter.

    The unit sits ``hierarchy_depth - 1`` levels below the functional chapter;
    an empty string means the template has no filled-in unit to imitate.
    """
    unit_level = level_of(functional_number) + hierarchy_depth - 1
    for c in descendants_of(chapters, functional_number):
        if c.level != unit_level:
            continue
        block = [c, *descendants_of(chapters, c.number)]
        if len(block) < 2:
            continue
        return render_chapters(block)[:UNIT_EXAMPLE_CHARS].strip()
    return ""
