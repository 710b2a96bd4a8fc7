"""Weighted rule-based classifier for functional-unit sub-section content.

Each ``SectionTypeRule`` contributes title keywords (used to decide which
type a heading *declares*) and body features (keywords, regex patterns,
a weight and optional veto patterns) used to decide which type a body
*looks like*. Extending the taxonomy means appending a rule; the scoring
functions never change.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from ..models import SectionType


@dataclass(frozen=True)
class SectionTypeRule:
    section_type: SectionType
    title_keywords: tuple[str, ...]
    keywords: tuple[str, ...]
    patterns: tuple[re.Pattern, ...] = ()
    weight: float = 1.0
    exclusions: tuple[re.Pattern, ...] = ()
    table_headers: tuple[str, ...] = field(default=())


def _p(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE | re.MULTILINE) for p in patterns)


_TABLE_ROW = r"^\s*\|.*\|.*\|"

DEFAULT_RULES: tuple[SectionTypeRule, ...] = (
    SectionTypeRule(
        section_type=SectionType.DESCRIPTION,
        title_keywords=("description", "overview", "summary", "功能说明", "功能描述", "概述", "说明"),
        keywords=(
            "this function", "purpose", "allows", "used to", "enables", "workflow",
            "scenario", "user", "users", "process", "本功能", "用于", "流程", "目的",
        ),
        patterns=_p(
            r"\bthis (?:function|feature|process)\b",
            r"\bis used to\b",
            r"\ballows (?:the )?users?\b",
            r"本功能|该功能",
        ),
        weight=0.8,
        exclusions=_p(_TABLE_ROW),
    ),
    SectionTypeRule(
        section_type=SectionType.RULES,
        title_keywords=(
            "rule", "rules", "constraint", "constraints", "policy", "policies", "规则", "约束",
        ),
        keywords=(
            "rule", "rules", "must", "shall", "not allowed", "only", "validate", "validation",
            "permission", "permissions", "if", "when", "规则", "必须", "不得", "校验", "权限",
        ),
        patterns=_p(
            r"\bBR-\d+",
            r"\|\s*(?:rule (?:id|no\.?|number)|规则编号)\s*\|",
            r"^\s*(?:rule|规则)\s*\d+",
            r"\b(?:must|shall) (?:not )?be\b",
        ),
        weight=1.0,
    ),
    SectionTypeRule(
        section_type=SectionType.DATA_FIELDS,
        title_keywords=(
            "data field", "data fields", "data item", "data items", "data", "field", "fields",
            "数据", "字段",
        ),
        keywords=(
            "field", "fields", "type", "types", "length", "required", "varchar", "integer", "int",
            "string", "date", "decimal", "字段", "类型", "长度", "必填",
        ),
        patterns=_p(
            r"\|\s*(?:field(?: name)?|字段名?)\s*\|\s*(?:data )?(?:type|类型)\s*\|",
            r"\|\s*(?:length|长度)\s*\|",
            r"\b(?:varchar|char|int|bigint|decimal|datetime)\b\s*\(?\d*",
        ),
        weight=1.2,
    ),
    SectionTypeRule(
        section_type=SectionType.INTERFACE,
        title_keywords=("interface", "interfaces", "api", "apis", "endpoint", "endpoints", "接口"),
        keywords=(
            "interface", "interfaces", "request", "requests", "response", "responses", "api",
            "apis", "endpoint", "endpoints", "url", "parameter", "parameters", "error code",
            "json", "http", "请求", "响应", "接口", "参数",
        ),
        patterns=_p(
            r"\b(?:GET|POST|PUT|DELETE|PATCH)\s+/",
            r"/api/",
            r"\b(?:request|response) param",
            r"\bHTTP\s*\d{3}\b",
        ),
        weight=1.0,
    ),
    SectionTypeRule(
        section_type=SectionType.UI,
        title_keywords=(
            "user interface", "ui", "screen", "screens", "page", "pages", "界面", "页面",
        ),
        keywords=(
            "page", "pages", "button", "buttons", "screen", "screens", "input field", "click",
            "layout", "form", "forms", "dropdown", "dialog", "页面", "按钮", "输入框", "点击", "布局",
        ),
        patterns=_p(
            r"\b(?:click|tap)s?\b",
            r"\bbuttons?\b",
            r"\b(?:top|side|main) (?:bar|panel|area)\b",
        ),
        weight=1.0,
    ),
    SectionTypeRule(
        section_type=SectionType.ACCEPTANCE,
        title_keywords=("acceptance", "criteria", "test", "tests", "验收", "测试"),
        keywords=(
            "test", "tests", "scenario", "scenarios", "precondition", "expected result",
            "steps", "verify", "pass", "passes", "测试", "前置条件", "预期结果", "操作步骤",
        ),
        patterns=_p(
            r"\bTC-\d+",
            r"\|\s*(?:test )?scenario\s*\|",
            r"\bexpected result",
            r"\bgiven\b.*\bwhen\b.*\bthen\b",
        ),
        weight=1.0,
    ),
)

DEFAULT_TABLE_HEADERS: dict[SectionType, tuple[str, ...]] = {
    SectionType.RULES: ("Rule ID", "Rule Name", "Trigger Condition", "Handling Logic"),
    SectionType.DATA_FIELDS: ("Field", "Type", "Length", "Required", "Description"),
    SectionType.ACCEPTANCE: ("ID", "Test Scenario", "Precondition", "Steps", "Expected Result"),
}

_ASCII_RE = re.compile(r"^[\x00-\x7f]+$")


def _keyword_re(keyword: str) -> re.Pattern:
    # Whole words only; plurals are listed as separate keywords
    if _ASCII_RE.match(keyword):
        return re.compile(r"\b" + re.escape(keyword) + r"\b", re.IGNORECASE)
    return re.compile(re.escape(keyword))


def title_candidates(
    title: str,
    rules: tuple[SectionTypeRule, ...] = DEFAULT_RULES,
) -> list[SectionType]:
    """Section types whose longest matching title keyword ties for longest."""
    best_len = 0
    found: list[SectionType] = []
    for rule in rules:
        lengths = [len(k) for k in rule.title_keywords if _keyword_re(k).search(title)]
        if not lengths:
            continue
        longest = max(lengths)
        if longest > best_len:
            best_len, found = longest, [rule.section_type]
        elif longest == best_len:
            found.append(rule.section_type)
    return found


def classify_title(
    title: str,
    rules: tuple[SectionTypeRule, ...] = DEFAULT_RULES,
) -> SectionType | None:
    """Type a heading declares, or None when unknown or ambiguous."""
    found = title_candidates(title, rules)
    return found[0] if len(found) == 1 else None


def score_body(
    text: str,
    rules: tuple[SectionTypeRule, ...] = DEFAULT_RULES,
) -> dict[SectionType, float]:
    """Weighted feature score of *text* against every rule.

    Each keyword counts up to three occurrences, each matching pattern counts
    double. Any exclusion match vetoes the type with a score of zero.
    """
    scores: dict[SectionType, float] = {}
    for rule in rules:
        if any(p.search(text) for p in rule.exclusions):
            scores[rule.section_type] = 0.0
            continue
        hits = sum(min(len(_keyword_re(k).findall(text)), 3) for k in rule.keywords)
        hits += 2 * sum(1 for p in rule.patterns if p.search(text))
        scores[rule.section_type] = round(hits * rule.weight, 3)
    return scores


def best_match(
    text: str,
    rules: tuple[SectionTypeRule, ...] = DEFAULT_RULES,
) -> tuple[SectionType | None, float, float]:
    """Return ``(best_type, best_score, margin_over_runner_up)``.

    ``best_type`` is None when the text scores zero everywhere or the top two
    types tie.
    """
    ranked = sorted(score_body(text, rules).items(), key=lambda kv: kv[1], reverse=True)
    if not ranked or ranked[0][1] <= 0:
        return None, 0.0, 0.0
    best_type, best = ranked[0]
    second = ranked[1][1] if len(ranked) > 1 else 0.0
    if best == second:
        return None, best, 0.0
    return best_type, best, round(best - second, 3)
