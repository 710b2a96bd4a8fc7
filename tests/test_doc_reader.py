"""Tests for doc_reader tool."""

from pathlib import Path

import pytest
from docx import Document

from srs_assembler.errors import ExtractionFailure
from srs_assembler.tools.chapter_extractor import extract
from srs_assembler.tools.doc_reader import read_template


@pytest.fixture
def docx_template(tmp_path: Path) -> Path:
    doc = Document()
    doc.add_heading("1 Introduction", level=1)
    doc.add_paragraph("This document specifies the library portal.")
    doc.add_heading("3 Functional Requirements", level=1)
    doc.add_heading("3.1 Register Account", level=2)
    doc.add_paragraph("")
    table = doc.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "Field"
    table.cell(0, 1).text = "Type"
    table.cell(1, 0).text = "email"
    table.cell(1, 1).text = "varchar"
    path = tmp_path / "template.docx"
    doc.save(str(path))
    return path


class TestReadTemplate:
    def test_markdown(self, sample_template_path):
        assert read_template(sample_template_path).startswith("# 1 Introduction")

    def test_docx_headings_and_tables(self, docx_template):
        text = read_template(docx_template)
        lines = text.splitlines()
        assert lines[0] == "# 1 Introduction"
        assert "## 3.1 Register Account" in lines
        assert "| Field | Type |" in lines
        assert "|---|---|" in lines
        assert "| email | varchar |" in lines

    def test_docx_chapters_extracted(self, docx_template):
        chapters = extract(read_template(docx_template))
        assert [c.number for c in chapters] == ["1", "3", "3.1"]
        assert "| email | varchar |" in chapters[-1].body_text

    def test_missing_file(self, tmp_path):
        with pytest.raises(ExtractionFailure, match="file not found"):
            read_template(tmp_path / "missing.md")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.md"
        path.write_text("   \n", encoding="utf-8")
        with pytest.raises(ExtractionFailure, match="empty"):
            read_template(path)

    def test_unsupported_suffix(self, tmp_path):
        path = tmp_path / "template.pdf"
        path.write_bytes(b"%PDF-1.4")
        with pytest.raises(ExtractionFailure, match="unsupported format"):
            read_template(path)

    def test_corrupt_docx(self, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"not a zip file")
        with pytest.raises(ExtractionFailure, match="not a readable"):
            read_template(path)
