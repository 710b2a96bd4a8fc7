"""Functional-unit source reader (JSON, YAML or CSV).

Accepted shapes:

- mapping ``{unit name: [row, ...]}``
- list of ``{"name": ..., "rows": [...]}`` objects
- flat list of rows (or a CSV file) carrying a functional-process column;
  rows with the same name form one unit, a blank name continues the
  previous row's unit

Row keys are normalised to snake_case canonical names so English and Chinese
column headers both work.
"""

from __future__ import annotations

import csv
import json
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from ..errors import ExtractionFailure
from ..models import FunctionalUnit

logger = logging.getLogger(__name__)

COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "functional_process": ("functional_process", "functional process", "process", "function", "功能过程", "功能名称"),
    "functional_user": ("functional_user", "functional user", "user", "功能用户"),
    "trigger_event": ("trigger_event", "trigger event", "trigger", "触发事件"),
    "sub_process_desc": ("sub_process_desc", "sub-process description", "sub process", "subprocess", "子过程描述", "子过程"),
    "data_movement_type": ("data_movement_type", "data movement type", "movement", "type", "数据移动类型"),
    "data_group": ("data_group", "data group", "数据组"),
    "data_attributes": ("data_attributes", "data attributes", "attributes", "数据属性"),
    "subsystem": ("subsystem", "子系统"),
    "module": ("module", "功能模块", "模块"),
}

MOVEMENT_NAMES = {"E": "Entry", "R": "Read", "W": "Write", "X": "eXit"}

_ATTR_SPLIT_RE = re.compile(r"[,、，;；]")


def _canonical(key: str) -> str:
    k = key.strip().lower()
    for canonical, aliases in COLUMN_ALIASES.items():
        if k in aliases:
            return canonical
    return re.sub(r"\W+", "_", k).strip("_") or key


def normalize_row(row: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in row.items():
        if key is None:
            continue
        if isinstance(value, str):
            value = value.strip()
        out[_canonical(str(key))] = value
    movement = out.get("data_movement_type")
    if isinstance(movement, str) and movement:
        out["data_movement_type"] = movement[0].upper()
    return out


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    n = 2
    while f"{name} ({n})" in taken:
        n += 1
    renamed = f"{name} ({n})"
    logger.warning("Duplicate unit name %r renamed to %r", name, renamed)
    return renamed


def group_rows(rows: list[dict[str, Any]]) -> list[FunctionalUnit]:
    """Group flat rows into units by their ``functional_process`` value.

    Rows sharing a name belong to one unit even when they are not adjacent;
    units keep the order of first appearance. A row with a blank name
    continues the unit of the row before it.
    """
    grouped: dict[str, list[dict[str, Any]]] = {}
    current: str | None = None
    for raw in rows:
        row = normalize_row(raw)
        name = str(row.get("functional_process") or "").strip()
        if not name and current is None:
            logger.warning("Row without a functional process skipped: %s", row)
            continue
        if name:
            current = name
        grouped.setdefault(current, []).append(row)
    return [FunctionalUnit(name=n, rows=r) for n, r in grouped.items()]


def _from_structure(data: Any, source: str) -> list[FunctionalUnit]:
    if isinstance(data, dict):
        if "units" in data and isinstance(data["units"], list):
            return _from_structure(data["units"], source)
        return [
            FunctionalUnit(name=str(name), rows=[normalize_row(r) for r in rows or []])
            for name, rows in data.items()
        ]
    if isinstance(data, list):
        if all(isinstance(item, dict) and "name" in item and "rows" in item for item in data):
            taken: set[str] = set()
            units = []
            for item in data:
                name = _unique_name(str(item["name"]).strip(), taken)
                taken.add(name)
                units.append(FunctionalUnit(name=name, rows=[normalize_row(r) for r in item["rows"] or []]))
            return units
        if all(isinstance(item, dict) for item in data):
            return group_rows(data)
    raise ExtractionFailure(source, "unsupported unit structure")


def load_units(path: str | Path) -> list[FunctionalUnit]:
    """Read functional units from *path*; raises ``ExtractionFailure`` on any problem."""
    path = Path(path)
    if not path.exists():
        raise ExtractionFailure(str(path), "file not found")
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8-sig")
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in (".yaml", ".yml"):
            data = yaml.safe_load(text)
        elif suffix == ".csv":
            data = list(csv.DictReader(text.splitlines()))
        else:
            raise ExtractionFailure(str(path), f"unsupported format {suffix!r}")
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ExtractionFailure(str(path), str(e)) from e

    units = _from_structure(data, str(path))
    if not units:
        raise ExtractionFailure(str(path), "no functional units found")
    logger.info("Loaded %d functional units from %s", len(units), path.name)
    return units


# ---------------------------------------------------------------------------
# Data-flow helpers used by the prompt builder
# ---------------------------------------------------------------------------

def analyze_data_flow(rows: list[dict[str, Any]]) -> dict[str, list[dict[str, Any]]]:
    """Bucket rows by data movement type (E, R, W, X)."""
    flow: dict[str, list[dict[str, Any]]] = {k: [] for k in MOVEMENT_NAMES}
    for row in rows:
        movement = str(row.get("data_movement_type") or "").upper()[:1]
        if movement in flow:
            flow[movement].append(row)
    return flow


def unique_fields(rows: list[dict[str, Any]]) -> list[str]:
    """Distinct data attributes across rows, in first-seen order."""
    seen: dict[str, None] = {}
    for row in rows:
        attrs = row.get("data_attributes")
        if isinstance(attrs, list):
            parts = [str(a) for a in attrs]
        else:
            parts = _ATTR_SPLIT_RE.split(str(attrs or ""))
        for part in parts:
            part = part.strip()
            if part:
                seen.setdefault(part, None)
    return list(seen)


def render_unit_detail(unit: FunctionalUnit) -> str:
    """Numbered data-movement listing for one unit."""
    lines = [f"Function: {unit.name}"]
    first = unit.rows[0] if unit.rows else {}
    for key, label in (("functional_user", "Functional user"), ("trigger_event", "Trigger event")):
        if first.get(key):
            lines.append(f"{label}: {first[key]}")
    lines.append("Data movements:")
    for i, row in enumerate(unit.rows, 1):
        movement = row.get("data_movement_type") or "?"
        desc = row.get("sub_process_desc") or ""
        lines.append(f"  {i}. {movement} - {desc}".rstrip(" -"))
        if row.get("data_group"):
            lines.append(f"     Data group: {row['data_group']}")
        if row.get("data_attributes"):
            lines.append(f"     Data attributes: {row['data_attributes']}")
    return "\n".join(lines)
