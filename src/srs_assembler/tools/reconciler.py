"""Deterministic structural repair of generated chapter bodies.

No LLM calls. Every pass has the signature ``(text, ctx) -> text`` and only
removes, renumbers or regroups headings; it never introduces a heading that
is not in ``ctx.expected_sections``. ``UNIT_PASSES`` and ``CHAPTER_PASSES``
are the ordered pipelines applied by the orchestrator.
"""

from __future__ import annotations

import math
import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from ..models import ReconciledChapter, ReconcilerConfig, SectionType, level_of
from .section_types import (
    DEFAULT_RULES,
    SectionTypeRule,
    best_match,
    classify_title,
    title_candidates,
)

# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExpectedSection:
    ordinal: str
    title: str
    section_type: SectionType | None = None


@dataclass
class RepairContext:
    """Everything a pass may consult.

    ``warnings`` and ``ambiguities`` are the only mutable parts: repairs are
    noted in the former, undecidable cases in the latter.
    """
    expected_ordinal: str
    expected_sections: list[ExpectedSection]
    unit_title: str
    config: ReconcilerConfig = field(default_factory=ReconcilerConfig)
    rules: tuple[SectionTypeRule, ...] = DEFAULT_RULES
    warnings: list[str] = field(default_factory=list)
    ambiguities: list[str] = field(default_factory=list)

    @classmethod
    def for_unit(
        cls,
        ordinal: str,
        section_names: Sequence[str],
        unit_title: str,
        config: ReconcilerConfig | None = None,
        rules: tuple[SectionTypeRule, ...] = DEFAULT_RULES,
    ) -> RepairContext:
        expected = [
            ExpectedSection(f"{ordinal}.{i}", name, classify_title(name, rules))
            for i, name in enumerate(section_names, 1)
        ]
        return cls(ordinal, expected, unit_title, config or ReconcilerConfig(), rules)

    @classmethod
    def for_chapter(
        cls,
        number: str,
        sub_chapters: Sequence[tuple[str, str]],
        title: str,
        config: ReconcilerConfig | None = None,
    ) -> RepairContext:
        expected = [ExpectedSection(o, t) for o, t in sub_chapters]
        return cls(number, expected, title, config or ReconcilerConfig())

    @property
    def own_level(self) -> int:
        return level_of(self.expected_ordinal)

    @property
    def section_level(self) -> int:
        return min(self.own_level + 1, 6)

    @property
    def deepest_level(self) -> int:
        """Deepest ordinal level among the expected sections."""
        levels = [level_of(e.ordinal) for e in self.expected_sections]
        return min(max(levels, default=self.section_level), 6)

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)

    def ambiguous(self, message: str) -> None:
        if message not in self.ambiguities:
            self.ambiguities.append(message)


RepairPass = Callable[[str, RepairContext], str]

# ---------------------------------------------------------------------------
# Heading parsing & title matching
# ---------------------------------------------------------------------------

_MD_HEADING_RE = re.compile(r"^(#{1,6})[ \t]+(.*?)[ \t#]*$")
_ORDINAL_RE = re.compile(r"^(\d+(?:\.\d+)*)[.．、]?\s*(\D.*)$")
_BOLD_RE = re.compile(r"^\*\*(.+?)\*\*:?$")
_QUALIFIER_RE = re.compile(r"[(（\[【<《].*?[)）\]】>》]")
_NON_WORD_RE = re.compile(r"[\W_]+")
_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_BARE_LINE_MAX = 60


@dataclass
class Heading:
    hashes: str
    ordinal: str | None
    title: str

    @property
    def depth(self) -> int | None:
        return level_of(self.ordinal) if self.ordinal else None

    def render(self) -> str:
        if self.ordinal:
            return f"{self.hashes} {self.ordinal} {self.title}"
        return f"{self.hashes} {self.title}"


def _split_ordinal(text: str) -> tuple[str | None, str]:
    m = _BOLD_RE.match(text)
    if m:
        text = m.group(1).strip()
    m = _ORDINAL_RE.match(text)
    if m:
        return m.group(1), m.group(2).strip().strip("*").strip()
    return None, text.strip("*").strip()


def parse_heading(line: str) -> Heading | None:
    """Parse a markdown heading line into hashes, ordinal and title."""
    m = _MD_HEADING_RE.match(line)
    if not m:
        return None
    ordinal, title = _split_ordinal(m.group(2).strip())
    if not title:
        return None
    return Heading(m.group(1), ordinal, title)


def bare_title(line: str) -> str | None:
    """Title text of a non-heading line that looks like a stand-alone title."""
    text = line.strip()
    if not text or text[0] in "|->`#+" or len(text) > _BARE_LINE_MAX:
        return None
    _, title = _split_ordinal(text)
    title = title.rstrip(":：").strip()
    return title or None


def normalize_title(title: str) -> str:
    return _NON_WORD_RE.sub("", _QUALIFIER_RE.sub("", title)).lower()


def titles_match(a: str, b: str, *, min_ratio: float = 0.6) -> bool:
    """Match that tolerates punctuation, spacing and bracket qualifiers."""
    na, nb = normalize_title(a), normalize_title(b)
    if not na or not nb:
        return False
    if na == nb:
        return True
    short, long_ = sorted((na, nb), key=len)
    return len(short) >= 2 and short in long_ and len(short) / len(long_) >= min_ratio


def match_expected(
    title: str,
    ordinal: str | None,
    ctx: RepairContext,
    *,
    allow_type: bool = True,
) -> int | None:
    """Index of the expected section *title* refers to, or None."""
    expected = ctx.expected_sections
    candidates = [i for i, e in enumerate(expected) if titles_match(title, e.title)]
    if not candidates and allow_type:
        declared = classify_title(title, ctx.rules)
        if declared is not None:
            typed = [i for i, e in enumerate(expected) if e.section_type == declared]
            if len(typed) == 1:
                candidates = typed
    if not candidates:
        return None
    if ordinal:
        exact = [i for i in candidates if expected[i].ordinal == ordinal]
        if exact:
            return exact[0]
        same_depth = [i for i in candidates if level_of(expected[i].ordinal) == level_of(ordinal)]
        if same_depth:
            return same_depth[0]
    return candidates[0]


def is_section_heading(h: Heading, ctx: RepairContext) -> bool:
    """True when *h* sits at a level an expected section can occupy.

    Sub-headings nested inside a section body (``#### Input data`` under a
    level-3 section) are content and never stand for an expected section.
    """
    if h.ordinal is not None:
        return level_of(h.ordinal) <= ctx.deepest_level
    return len(h.hashes) <= ctx.deepest_level


def match_section(h: Heading, ctx: RepairContext, *, allow_type: bool = True) -> int | None:
    """``match_expected`` restricted to section-level headings."""
    if not is_section_heading(h, ctx):
        return None
    return match_expected(h.title, h.ordinal, ctx, allow_type=allow_type)


def _within(ordinal: str, ctx: RepairContext) -> bool:
    own = ctx.expected_ordinal
    return ordinal == own or ordinal.startswith(own + ".")


def _scan(lines: list[str]) -> list[Heading | None]:
    """Heading per line, ignoring anything inside fenced code blocks."""
    result: list[Heading | None] = []
    in_fence = False
    for line in lines:
        if _FENCE_RE.match(line):
            in_fence = not in_fence
            result.append(None)
            continue
        result.append(None if in_fence else parse_heading(line))
    return result


def _tidy(lines: list[str]) -> str:
    return re.sub(r"\n{3,}", "\n\n", "\n".join(lines)).strip()


# ---------------------------------------------------------------------------
# Pass 1: own-title stripping
# ---------------------------------------------------------------------------


def strip_own_title(text: str, ctx: RepairContext) -> str:
    """Drop headings (and leading bare lines) that restate the unit's own heading."""
    lines = text.splitlines()
    headings = _scan(lines)
    out: list[str] = []
    leading = True
    for line, h in zip(lines, headings):
        if h is not None:
            restates = h.ordinal == ctx.expected_ordinal or (
                (h.ordinal is None or h.depth == ctx.own_level)
                and titles_match(h.title, ctx.unit_title)
                and match_expected(h.title, h.ordinal, ctx, allow_type=False) is None
            )
            if restates:
                continue
            leading = False
            out.append(line)
            continue
        if leading and line.strip():
            title = bare_title(line)
            if title and normalize_title(title) == normalize_title(ctx.unit_title):
                continue
            leading = False
        out.append(line)
    return _tidy(out)


# ---------------------------------------------------------------------------
# Pass 2: wrong-parent-number removal
# ---------------------------------------------------------------------------


def remove_wrong_parent_headings(text: str, ctx: RepairContext) -> str:
    """Drop numbered headings that belong to a different unit's numbering.

    A foreign-numbered heading survives only when its title names an expected
    section that has no correctly numbered heading yet; numbering correction
    rewrites its ordinal later.
    """
    lines = text.splitlines()
    headings = _scan(lines)

    present: set[int] = set()
    for h in headings:
        if h is not None and h.ordinal and _within(h.ordinal, ctx):
            idx = match_section(h, ctx)
            if idx is not None and ctx.expected_sections[idx].ordinal == h.ordinal:
                present.add(idx)

    out: list[str] = []
    claimed: set[int] = set()
    for line, h in zip(lines, headings):
        if h is None or not h.ordinal or _within(h.ordinal, ctx):
            out.append(line)
            continue
        idx = match_section(h, ctx)
        if idx is not None and idx not in present and idx not in claimed:
            claimed.add(idx)
            out.append(line)
            continue
        ctx.warn(f"Removed heading with foreign numbering: {h.ordinal} {h.title}")
    return _tidy(out)


# ---------------------------------------------------------------------------
# Pass 3: duplicate-section removal
# ---------------------------------------------------------------------------


def remove_duplicate_sections(text: str, ctx: RepairContext) -> str:
    """Keep the first occurrence of every expected section heading.

    A repeat with content is dropped together with its body; a repeat that
    immediately restates the previous heading (markdown or plain text) is
    dropped on its own.
    """
    lines = text.splitlines()
    headings = _scan(lines)
    out: list[str] = []
    seen: set[int] = set()
    last_idx: int | None = None
    content_since_heading = True
    skip_level: int | None = None

    for line, h in zip(lines, headings):
        if skip_level is not None:
            if h is None or (len(h.hashes) > skip_level and match_section(h, ctx) is None):
                continue
            skip_level = None

        if h is not None:
            idx = match_section(h, ctx)
            if idx is not None and idx in seen:
                if idx == last_idx and not content_since_heading:
                    continue
                ctx.warn(f"Removed duplicate section: {h.render().lstrip('# ')}")
                skip_level = len(h.hashes)
                continue
            if idx is not None:
                seen.add(idx)
                last_idx = idx
                content_since_heading = False
            else:
                content_since_heading = True
            out.append(line)
            continue

        if line.strip() and not content_since_heading and last_idx is not None:
            title = bare_title(line)
            if title and titles_match(title, ctx.expected_sections[last_idx].title):
                continue
            content_since_heading = True
        out.append(line)
    return _tidy(out)


# ---------------------------------------------------------------------------
# Pass 4: misplaced-title removal
# ---------------------------------------------------------------------------


def remove_misplaced_titles(text: str, ctx: RepairContext) -> str:
    """Drop bare lines naming another expected section inside a section body."""
    lines = text.splitlines()
    headings = _scan(lines)
    out: list[str] = []
    current: int | None = None
    in_section = False

    for line, h in zip(lines, headings):
        if h is not None:
            if is_section_heading(h, ctx):
                current = match_section(h, ctx)
                in_section = in_section or current is not None
            out.append(line)
            continue
        if in_section:
            title = bare_title(line)
            if title:
                idx = match_expected(title, None, ctx, allow_type=False)
                if idx is not None and idx != current and normalize_title(title) == normalize_title(
                    ctx.expected_sections[idx].title
                ):
                    ctx.warn(f"Removed misplaced title line: {line.strip()}")
                    continue
        out.append(line)
    return _tidy(out)


# ---------------------------------------------------------------------------
# Pass 5: content-feature reassignment
# ---------------------------------------------------------------------------


@dataclass
class ParsedSection:
    heading: Heading
    expected_index: int | None
    body_lines: list[str] = field(default_factory=list)

    @property
    def body(self) -> str:
        return "\n".join(self.body_lines).strip()


def parse_sections(text: str, ctx: RepairContext) -> tuple[str, list[ParsedSection]]:
    """Split a unit body into its preamble and sub-section blocks."""
    lines = text.splitlines()
    headings = _scan(lines)
    preamble: list[str] = []
    sections: list[ParsedSection] = []
    for line, h in zip(lines, headings):
        if h is not None and is_section_heading(h, ctx):
            sections.append(ParsedSection(h, match_section(h, ctx)))
            continue
        if sections:
            sections[-1].body_lines.append(line)
        else:
            preamble.append(line)
    return "\n".join(preamble).strip(), sections


def _strip_nested_headings(body: str) -> str:
    lines = body.splitlines()
    return _tidy([line for line, h in zip(lines, _scan(lines)) if h is None])


def _confident(score: float, margin: float, cfg: ReconcilerConfig) -> bool:
    return score >= cfg.confidence_floor and margin >= cfg.margin_floor


def reorganize_content(text: str, ctx: RepairContext) -> str:
    """Reassign section bodies to the section type their content matches.

    Rebuilds the whole unit only when more than ``mismatch_threshold`` of the
    typed sections carry content of a different, confidently detected type.
    A ratio exactly at the threshold is recorded as an ambiguity and the text
    is returned untouched.
    """
    cfg = ctx.config
    preamble, sections = parse_sections(text, ctx)

    type_to_index: dict[SectionType, int] = {}
    for i, e in enumerate(ctx.expected_sections):
        if e.section_type is not None:
            type_to_index.setdefault(e.section_type, i)

    considered = 0
    mismatches = 0
    verdicts: list[SectionType | None] = []
    for s in sections:
        declared = ctx.expected_sections[s.expected_index].section_type if s.expected_index is not None else None
        if declared is None:
            if len(title_candidates(s.heading.title, ctx.rules)) > 1:
                ctx.ambiguous(f"Heading matches several section types equally: {s.heading.title}")
            verdicts.append(None)
            continue
        best, score, margin = best_match(s.body, ctx.rules)
        confident = best is not None and _confident(score, margin, cfg)
        verdicts.append(best if confident else None)
        if s.expected_index is None:
            continue
        considered += 1
        # Content of a type with no expected section has nowhere to go
        if confident and best != declared and best in type_to_index:
            mismatches += 1

    if considered == 0 or mismatches == 0:
        return text
    ratio = mismatches / considered
    if math.isclose(ratio, cfg.mismatch_threshold):
        ctx.ambiguous(
            f"Content reassignment ambiguous for {ctx.expected_ordinal}: "
            f"{mismatches}/{considered} sections mismatched; layout kept"
        )
        return text
    if ratio < cfg.mismatch_threshold:
        return text

    buckets: dict[int, list[str]] = {i: [] for i in range(len(ctx.expected_sections))}
    previous: int | None = None
    for s, verdict in zip(sections, verdicts):
        target = s.expected_index
        if verdict is not None and verdict in type_to_index:
            target = type_to_index[verdict]
        if target is None:
            target = previous if previous is not None else 0
        body = _strip_nested_headings(s.body)
        if body:
            buckets[target].append(body)
        previous = target

    hashes = "#" * ctx.section_level
    out: list[str] = [preamble] if preamble else []
    for i, e in enumerate(ctx.expected_sections):
        out.append(f"{hashes} {e.ordinal} {e.title}")
        if buckets[i]:
            out.append("\n\n".join(buckets[i]))
        else:
            ctx.warn(f"Section {e.ordinal} {e.title} has no content after reassignment")
    ctx.warn(
        f"Reassigned content of {ctx.expected_ordinal}: {mismatches}/{considered} sections mismatched"
    )
    return "\n\n".join(out).strip()


# ---------------------------------------------------------------------------
# Pass 6: numbering correction
# ---------------------------------------------------------------------------


def fix_sub_section_numbers(text: str, ctx: RepairContext) -> str:
    """Rewrite the ordinal of headings naming an expected section.

    Only the ordinal changes; heading level and title text are preserved.
    Deeper headings (more hashes or a deeper ordinal) are left alone.
    """
    lines = text.splitlines()
    headings = _scan(lines)
    out: list[str] = []
    for line, h in zip(lines, headings):
        if h is None:
            out.append(line)
            continue
        idx = match_section(h, ctx)
        if idx is None:
            out.append(line)
            continue
        target = ctx.expected_sections[idx].ordinal
        if h.ordinal == target:
            out.append(line)
            continue
        if h.ordinal is None:
            applicable = len(h.hashes) <= ctx.section_level
        else:
            applicable = level_of(h.ordinal) == level_of(target)
        if applicable:
            if h.ordinal:
                ctx.warn(f"Renumbered {h.ordinal} {h.title} -> {target}")
            out.append(Heading(h.hashes, target, h.title).render())
        else:
            out.append(line)
    return _tidy(out)


def fix_header_chapter_numbers(text: str, ctx: RepairContext) -> str:
    """Numbering correction for header/footer chapters against their sub-chapter list."""
    return fix_sub_section_numbers(text, ctx)


# ---------------------------------------------------------------------------
# Pipelines
# ---------------------------------------------------------------------------

UNIT_PASSES: tuple[RepairPass, ...] = (
    strip_own_title,
    remove_wrong_parent_headings,
    remove_duplicate_sections,
    remove_misplaced_titles,
    reorganize_content,
    fix_sub_section_numbers,
)

CHAPTER_PASSES: tuple[RepairPass, ...] = (
    strip_own_title,
    remove_wrong_parent_headings,
    remove_duplicate_sections,
    remove_misplaced_titles,
    fix_header_chapter_numbers,
)


def reconcile(text: str, ctx: RepairContext, passes: Sequence[RepairPass] = UNIT_PASSES) -> str:
    """Apply *passes* in order."""
    for repair in passes:
        text = repair(text, ctx)
    return text


def reconcile_chapter(
    raw_text: str,
    ctx: RepairContext,
    passes: Sequence[RepairPass] = UNIT_PASSES,
) -> ReconciledChapter:
    """Repair *raw_text* and prefix the orchestrator-owned heading."""
    body = reconcile(raw_text, ctx, passes)
    heading = f"{'#' * min(ctx.own_level, 6)} {ctx.expected_ordinal} {ctx.unit_title}"
    final = f"{heading}\n\n{body}".strip() if body else heading
    return ReconciledChapter(
        number=ctx.expected_ordinal,
        title=ctx.unit_title,
        final_text=final,
        warnings=[*ctx.warnings, *ctx.ambiguities],
    )
