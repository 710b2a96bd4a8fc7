"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import pytest

from srs_assembler.analyzer import analyze
from srs_assembler.models import Chapter, TemplateModel
from srs_assembler.tools.chapter_extractor import extract

FIXTURES_DIR = Path(__file__).parent / "fixtures"
SAMPLE_TEMPLATE = FIXTURES_DIR / "sample_template.md"
SAMPLE_CONFIG = FIXTURES_DIR / "sample_config.yaml"
UNITS_JSON = FIXTURES_DIR / "units.json"
UNITS_CSV = FIXTURES_DIR / "units.csv"


# ---------------------------------------------------------------------------
# Fake generation services
# ---------------------------------------------------------------------------

class ScriptedService:
    """Replays canned replies in order; an Exception item is raised instead."""

    def __init__(self, replies: list[str | Exception]) -> None:
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def stream(self, prompt: str):
        self.prompts.append(prompt)
        if not self.replies:
            raise RuntimeError("no scripted reply left")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        # Yield in small chunks like a real stream
        for i in range(0, len(reply), 16):
            yield reply[i:i + 16]


class FunctionService:
    """Computes each reply from the prompt."""

    def __init__(self, fn: Callable[[str], str]) -> None:
        self.fn = fn
        self.prompts: list[str] = []

    async def stream(self, prompt: str):
        self.prompts.append(prompt)
        yield self.fn(prompt)


class RecordingCallbacks:
    """PipelineCallbacks that keeps every event as a tuple."""

    def __init__(self) -> None:
        self.events: list[tuple[str, ...]] = []

    def on_phase_start(self, phase, description):
        self.events.append(("phase_start", phase))

    def on_phase_end(self, phase, success):
        self.events.append(("phase_end", phase, success))

    def on_unit_start(self, name, number):
        self.events.append(("unit_start", name, number))

    def on_unit_end(self, name, number):
        self.events.append(("unit_end", name, number))

    def on_warning(self, message):
        self.events.append(("warning", message))

    def on_error(self, message):
        self.events.append(("error", message))

    def of_kind(self, kind: str) -> list[tuple[str, ...]]:
        return [e for e in self.events if e[0] == kind]


def requested_headings(prompt: str) -> list[str]:
    """Heading lines a body prompt asks for."""
    lines = prompt.splitlines()
    for i, line in enumerate(lines):
        if line.startswith("Use exactly these"):
            headings = []
            for nxt in lines[i + 1:]:
                if not nxt.startswith("#"):
                    break
                headings.append(nxt)
            return headings
    return []


def well_behaved_reply(prompt: str) -> str:
    """Body that uses exactly the requested headings."""
    headings = requested_headings(prompt)
    if not headings:
        return "General content for this chapter, written in full sentences for the reader."
    return "\n\n".join(
        f"{h}\n\nGenerated content for {h.lstrip('# ')} written in full sentences for the reader."
        for h in headings
    )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_template_path() -> Path:
    return SAMPLE_TEMPLATE


@pytest.fixture
def sample_template_text() -> str:
    return SAMPLE_TEMPLATE.read_text(encoding="utf-8")


@pytest.fixture
def sample_config_path() -> Path:
    return SAMPLE_CONFIG


@pytest.fixture
def units_json_path() -> Path:
    return UNITS_JSON


@pytest.fixture
def units_csv_path() -> Path:
    return UNITS_CSV


@pytest.fixture
def sample_chapters(sample_template_text: str) -> list[Chapter]:
    return extract(sample_template_text)


@pytest.fixture
def sample_model(sample_template_text: str, sample_chapters: list[Chapter]) -> TemplateModel:
    """Deterministic (no services) analysis of the sample template."""
    return asyncio.run(analyze(sample_template_text, sample_chapters))


@pytest.fixture
def echo_writer() -> FunctionService:
    return FunctionService(well_behaved_reply)


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    out = tmp_path / "output"
    out.mkdir()
    return out
