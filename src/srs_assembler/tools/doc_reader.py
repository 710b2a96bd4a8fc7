"""Read a template document into plain markdown-ish text."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table

from ..errors import ExtractionFailure

logger = logging.getLogger(__name__)

TEXT_SUFFIXES = {".md", ".markdown", ".txt"}

_HEADING_STYLE_RE = re.compile(r"heading\s*(\d)", re.IGNORECASE)


def _table_to_markdown(table: Table) -> list[str]:
    lines: list[str] = []
    for i, row in enumerate(table.rows):
        cells = [cell.text.strip().replace("\n", " ") for cell in row.cells]
        lines.append("| " + " | ".join(cells) + " |")
        if i == 0:
            lines.append("|" + "|".join("---" for _ in cells) + "|")
    return lines


def read_docx(path: Path) -> str:
    """Paragraphs and tables in document order.

    Paragraphs with a ``Heading N`` style become ``#``-prefixed lines so the
    chapter extractor sees them as markdown headings.
    """
    try:
        doc = Document(str(path))
    except (PackageNotFoundError, ValueError, KeyError) as e:
        raise ExtractionFailure(str(path), f"not a readable .docx file ({e})") from e

    lines: list[str] = []
    for block in doc.iter_inner_content():
        if isinstance(block, Table):
            lines.append("")
            lines.extend(_table_to_markdown(block))
            lines.append("")
            continue
        text = block.text.strip()
        if not text:
            continue
        style_name = (block.style.name or "") if block.style is not None else ""
        m = _HEADING_STYLE_RE.search(style_name)
        if m:
            lines.append(f"{'#' * max(1, min(int(m.group(1)), 6))} {text}")
        else:
            lines.append(text)
    return "\n".join(lines)


def read_template(path: str | Path) -> str:
    """Read a ``.md``/``.txt``/``.docx`` template; raises ``ExtractionFailure``."""
    p = Path(path)
    if not p.exists():
        raise ExtractionFailure(str(p), "file not found")
    suffix = p.suffix.lower()
    if suffix == ".docx":
        text = read_docx(p)
    elif suffix in TEXT_SUFFIXES:
        try:
            text = p.read_text(encoding="utf-8-sig")
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionFailure(str(p), str(e)) from e
    else:
        raise ExtractionFailure(str(p), f"unsupported format {suffix!r}")
    if not text.strip():
        raise ExtractionFailure(str(p), "document is empty")
    logger.info("Read template %s (%d chars)", p.name, len(text))
    return text
