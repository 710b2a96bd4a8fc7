"""Deterministic chapter extraction from raw template text.

Scans line by line for numbered headings, filters out artefacts that merely
look like headings (captions, page markers, TOC entries, list items) and
returns the accepted chapters in natural order with their bodies attached.
"""

from __future__ import annotations

import logging
import re

from ..models import Chapter, level_of, parent_of

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 60

# ---------------------------------------------------------------------------
# Candidate recognition
# ---------------------------------------------------------------------------

_MD_PREFIX_RE = re.compile(r"^\s*#{1,6}\s*")
_BOLD_RE = re.compile(r"^\*\*(.+?)\*\*$")
_CANDIDATE_RE = re.compile(
    r"^(\d{1,3}(?:\.\d{1,3})*)\.?"          # ordinal, optional trailing dot
    r"(?:[ \t　]+|[.．、,，])\s*"         # separator
    r"(\S.*?)\s*$"                           # title
)
_TRAILING_PAGE_RE = re.compile(r"(?:[\s.…·]+\d{1,4})+$")
_TOC_LEADER_RE = re.compile(r"(?:\.{3,}|…{2,}|·{3,}|\t)\s*\d{1,4}\s*$")

_NUMERIC_TITLE_RE = re.compile(r"^[\d\s.,%:/\-+]+$")
_RULE_LINE_RE = re.compile(r"^[-=_*~]{3,}$")
_SENTENCE_END_RE = re.compile(r"[。；;:：!！?？.]$|[，。]")
_MD_CANDIDATE_RE = re.compile(r"^\s*#{1,6}\s*\**\d")

_DENYLIST = [
    re.compile(r"^page\b", re.IGNORECASE),
    re.compile(r"^第\s*\d+\s*页"),
    re.compile(r"^(table|figure|fig\.?|chart)\s*[\d.\-]*\b", re.IGNORECASE),
    re.compile(r"^[图表]\s*[\d.\-]+"),
    re.compile(r"^of\s+\d+$", re.IGNORECASE),
    re.compile(r"^(kb|mb|gb|ms|s|%|px)\b", re.IGNORECASE),
]


def natural_key(number: str) -> tuple[int, ...]:
    """Segment-wise numeric sort key for dot-separated ordinals."""
    return tuple(int(p) for p in number.split(".") if p.isdigit())


def _clean_line(line: str) -> str:
    text = _MD_PREFIX_RE.sub("", line.strip())
    m = _BOLD_RE.match(text)
    if m:
        text = m.group(1).strip()
    return text


def parse_candidate(line: str) -> tuple[str, str] | None:
    """Return ``(number, title)`` if *line* is an acceptable chapter header."""
    text = _clean_line(line)
    if not text or _TOC_LEADER_RE.search(text):
        return None

    m = _CANDIDATE_RE.match(text)
    if not m:
        return None
    number, title = m.group(1), m.group(2)

    title = _TRAILING_PAGE_RE.sub("", title).strip()
    if not title or len(title) > MAX_TITLE_LENGTH:
        return None
    if _NUMERIC_TITLE_RE.match(title) or _RULE_LINE_RE.match(title):
        return None
    if _SENTENCE_END_RE.search(title):
        return None
    if any(p.match(title) for p in _DENYLIST):
        return None
    return number, title


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def extract(raw_text: str) -> list[Chapter]:
    """Parse *raw_text* into chapters sorted by natural order.

    Duplicate numbers keep their first occurrence; a chapter whose parent
    number has not been accepted yet is treated as body text. When the text
    carries markdown-style numbered headings, only those lines are considered,
    so numbered list items in the bodies are never mistaken for chapters.
    ``children`` lists are linked on the returned objects.
    """
    lines = raw_text.splitlines()
    markdown_mode = any(_MD_CANDIDATE_RE.match(line) for line in lines)

    accepted: dict[str, Chapter] = {}
    bodies: dict[str, list[str]] = {}
    current: str | None = None

    for line in lines:
        candidate = None
        if not markdown_mode or _MD_CANDIDATE_RE.match(line):
            candidate = parse_candidate(line)
        if candidate is not None:
            number, title = candidate
            parent = parent_of(number)
            if number in accepted:
                logger.debug("Duplicate chapter %s ignored", number)
            elif parent is not None and parent not in accepted:
                logger.debug("Orphan chapter %s ignored (no %s)", number, parent)
            else:
                accepted[number] = Chapter(number=number, title=title)
                bodies[number] = []
                current = number
                continue
        if current is not None:
            bodies[current].append(line)

    chapters = sorted(accepted.values(), key=lambda c: natural_key(c.number))
    for c in chapters:
        c.body_text = "\n".join(bodies[c.number]).strip()
    build_tree(chapters)
    return chapters


def build_tree(chapters: list[Chapter]) -> list[Chapter]:
    """Link ``children`` in place and return the root chapters."""
    by_number = {c.number: c for c in chapters}
    roots: list[Chapter] = []
    for c in chapters:
        c.children = []
    for c in chapters:
        parent = by_number.get(c.parent_number or "")
        if parent is None:
            roots.append(c)
        else:
            parent.children.append(c)
    return roots


def descendants_of(chapters: list[Chapter], number: str) -> list[Chapter]:
    """All chapters strictly below *number*, in list order."""
    return [c for c in chapters if c.is_descendant_of(number)]


def render_chapters(chapters: list[Chapter]) -> str:
    """Serialise chapters back to markdown text that ``extract`` re-reads identically."""
    blocks: list[str] = []
    for c in chapters:
        block = f"{'#' * min(c.level, 6)} {c.number} {c.title}"
        if c.body_text:
            block += f"\n\n{c.body_text}"
        blocks.append(block)
    return "\n\n".join(blocks) + "\n"


def outline(chapters: list[Chapter]) -> str:
    """Indented one-line-per-chapter outline used in prompts."""
    return "\n".join(
        f"{'  ' * (c.level - 1)}{c.number} {c.title}" for c in chapters
    )


# ---------------------------------------------------------------------------
# Chapter type classification
# ---------------------------------------------------------------------------

_CHAPTER_TYPES: list[tuple[str, re.Pattern]] = [
    ("non-functional", re.compile(r"non[- ]?functional|performance|security|非功能|性能|安全", re.I)),
    ("functional", re.compile(r"functional requirement|功能.*需求|功能性需求", re.I)),
    ("overview", re.compile(r"overview|introduction|preface|概述|引言|前言", re.I)),
    ("business", re.compile(r"business requirement|业务.*需求", re.I)),
    ("user", re.compile(r"user requirement|用户.*需求", re.I)),
    ("architecture", re.compile(r"architecture|design|架构|设计", re.I)),
    ("appendix", re.compile(r"appendix|reference|glossary|附录|参考|术语", re.I)),
]


def classify_chapter_type(title: str) -> str:
    """Coarse chapter role from its title."""
    for name, pattern in _CHAPTER_TYPES:
        if pattern.search(title):
            return name
    return "other"
