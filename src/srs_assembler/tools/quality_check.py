"""Deterministic quality checks for an assembled requirements document.

Each check returns a ``CheckResult`` scored from 100 downwards; the report's
overall score is their rounded mean and a check passes at ``PASS_SCORE``.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from ..models import CheckResult, QualityReport, TemplateModel

PASS_SCORE = 80
MIN_SECTION_CHARS = 50

_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*$")
_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-{2,}:?\s*(\|\s*:?-{2,}:?\s*)*\|?\s*$")
_PLACEHOLDER_PATTERNS = [
    re.compile(r"\bXXX\b"),
    re.compile(r"待.{0,4}?定"),
    re.compile(r"\bTODO\b", re.IGNORECASE),
    re.compile(r"\bTBD\b"),
    re.compile(r"\[[^\]]*placeholder[^\]]*\]", re.IGNORECASE),
    re.compile(r"could not be generated; to be completed"),
]


def split_headings(document: str) -> list[tuple[int, str, str]]:
    """``(level, heading text, body)`` for every markdown heading."""
    result: list[tuple[int, str, str]] = []
    body: list[str] = []
    current: tuple[int, str] | None = None
    for line in document.splitlines():
        m = _HEADING_RE.match(line)
        if m:
            if current is not None:
                result.append((*current, "\n".join(body).strip()))
            current = (len(m.group(1)), m.group(2))
            body = []
        elif current is not None:
            body.append(line)
    if current is not None:
        result.append((*current, "\n".join(body).strip()))
    return result


def expected_top_level(model: TemplateModel) -> list[tuple[str, str]]:
    """Positional ``(number, title)`` of every top-level chapter the output must hold."""
    numbers = [*model.header_chapter_numbers, model.functional_chapter_number, *model.footer_chapter_numbers]
    expected = []
    for position, number in enumerate(numbers, 1):
        chapter = model.chapter(number)
        if chapter is not None:
            expected.append((str(position), chapter.title))
    return expected


def find_placeholders(document: str) -> list[str]:
    found: dict[str, None] = {}
    for pattern in _PLACEHOLDER_PATTERNS:
        for m in pattern.finditer(document):
            found.setdefault(m.group(0), None)
    return list(found)


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def check_structural_integrity(document: str, model: TemplateModel | None) -> CheckResult:
    result = CheckResult()
    if model is None:
        result.score = 50
        result.issues.append("No template model available; structure not verified")
        return result
    expected = expected_top_level(model)
    missing = []
    for number, title in expected:
        pattern = re.compile(rf"^#\s*{re.escape(number)}\.?\s+{re.escape(title)}\s*$", re.MULTILINE)
        if not pattern.search(document):
            missing.append(f"{number} {title}")
            result.score -= 10
    if missing:
        result.issues.append(f"Missing chapters: {', '.join(missing)}")
    result.details = {"required": len(expected), "missing": len(missing)}
    result.score = max(0, result.score)
    return result


def check_content_completeness(document: str) -> CheckResult:
    result = CheckResult()
    headings = split_headings(document)
    empty = 0
    for i, (level, text, body) in enumerate(headings):
        is_container = i + 1 < len(headings) and headings[i + 1][0] > level and not body
        if is_container:
            continue
        if len(body) < MIN_SECTION_CHARS:
            empty += 1
            result.issues.append(f'Section "{text}" is empty or too short ({len(body)} chars)')
            result.score -= 5
    placeholders = find_placeholders(document)
    if placeholders:
        result.issues.append(f"{len(placeholders)} placeholder(s) found: {', '.join(placeholders[:5])}")
        result.score -= 2 * len(placeholders)
    result.details = {"sections": len(headings), "empty": empty, "placeholders": len(placeholders)}
    result.score = max(0, result.score)
    return result


def check_data_consistency(document: str, unit_names: Sequence[str] | None) -> CheckResult:
    result = CheckResult()
    if not unit_names:
        result.score = PASS_SCORE
        return result
    missing = [n for n in unit_names if n not in document]
    if missing:
        result.issues.append(f"{len(missing)} function name(s) not found in document")
        result.score -= 3 * len(missing)
    result.details = {"functions": len(unit_names), "missing": missing}
    result.score = max(0, result.score)
    return result


def check_tables(document: str) -> list[str]:
    """Tables need a separator as their second row and at least three rows."""
    issues: list[str] = []
    rows: list[tuple[int, str]] = []

    def flush() -> None:
        if not rows:
            return
        first = rows[0][0]
        if len(rows) >= 2 and not _SEPARATOR_RE.match(rows[1][1]):
            issues.append(f"Line {rows[1][0]}: table missing separator row")
        if len(rows) < 3:
            issues.append(f"Line {first}: table has fewer than three rows")
        rows.clear()

    for idx, line in enumerate(document.splitlines(), 1):
        if line.strip().startswith("|"):
            rows.append((idx, line))
        else:
            flush()
    flush()
    return issues


def check_heading_hierarchy(document: str) -> list[str]:
    issues: list[str] = []
    last = 0
    for idx, line in enumerate(document.splitlines(), 1):
        m = _HEADING_RE.match(line)
        if m:
            level = len(m.group(1))
            if level > last + 1:
                issues.append(f"Line {idx}: heading level jumps from {last} to {level}")
            last = level
    return issues


def check_lists(document: str) -> list[str]:
    issues: list[str] = []
    for idx, line in enumerate(document.splitlines(), 1):
        if re.match(r"^[-*+]\s*$", line) or re.match(r"^\d+\.\s*$", line):
            issues.append(f"Line {idx}: empty list item")
    return issues


def check_duplicate_headings(document: str) -> list[str]:
    seen: set[str] = set()
    issues = []
    for _, text, _ in split_headings(document):
        if text in seen:
            issues.append(f"Duplicate heading: {text}")
        seen.add(text)
    return issues


def check_format_correctness(document: str) -> CheckResult:
    result = CheckResult()
    tables = check_tables(document)
    headings = check_heading_hierarchy(document)
    lists = check_lists(document)
    duplicates = check_duplicate_headings(document)
    result.issues = [*tables, *headings, *lists, *duplicates]
    result.score = max(
        0, 100 - 2 * len(tables) - 3 * len(headings) - len(lists) - 5 * len(duplicates)
    )
    result.details = {
        "table_issues": len(tables),
        "heading_issues": len(headings),
        "list_issues": len(lists),
        "duplicate_headings": len(duplicates),
    }
    return result


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def summarize(checks: dict[str, CheckResult]) -> QualityReport:
    report = QualityReport(checks=checks)
    if checks:
        report.overall_score = round(sum(c.score for c in checks.values()) / len(checks))
    for name, check in checks.items():
        report.issues.extend(check.issues)
        (report.passed_checks if check.score >= PASS_SCORE else report.failed_checks).append(name)
    if report.overall_score < 60:
        report.suggestions.append("Document quality is low; regenerate it")
    elif report.overall_score < PASS_SCORE:
        report.suggestions.append("Document has issues; review the failed checks")
    else:
        report.suggestions.append("Document quality is good")
    return report


def comprehensive_quality_check(
    document: str,
    model: TemplateModel | None = None,
    unit_names: Sequence[str] | None = None,
) -> QualityReport:
    """Run every deterministic check and summarize the results."""
    return summarize({
        "structural_integrity": check_structural_integrity(document, model),
        "content_completeness": check_content_completeness(document),
        "data_consistency": check_data_consistency(document, unit_names),
        "format_correctness": check_format_correctness(document),
    })
