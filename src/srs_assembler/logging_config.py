"""Rich console setup and pipeline progress helpers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from .tools.chapter_extractor import classify_chapter_type

if TYPE_CHECKING:
    from .models import Chapter, QualityReport, TemplateModel

console = Console()

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


def setup_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """Configure root logger with Rich handler."""
    level = logging.DEBUG if verbose else (logging.ERROR if quiet else logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # AG2 and the OpenAI client are chatty at INFO
    for noisy in ("autogen", "httpx", "openai"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


logger = logging.getLogger("srsa")


# ---------------------------------------------------------------------------
# Pipeline callbacks protocol
# ---------------------------------------------------------------------------


class PipelineCallbacks(Protocol):
    """Protocol for pipeline progress reporting."""

    def on_phase_start(self, phase: str, description: str) -> None: ...
    def on_phase_end(self, phase: str, success: bool) -> None: ...
    def on_unit_start(self, name: str, number: str) -> None: ...
    def on_unit_end(self, name: str, number: str) -> None: ...
    def on_warning(self, message: str) -> None: ...
    def on_error(self, message: str) -> None: ...


class RichCallbacks:
    """Rich-based implementation of PipelineCallbacks."""

    def on_phase_start(self, phase: str, description: str) -> None:
        console.rule(f"[bold blue]{phase}[/] - {description}")

    def on_phase_end(self, phase: str, success: bool) -> None:
        status = "[green]OK[/]" if success else "[red]FAILED[/]"
        console.print(f"  Phase {phase}: {status}")

    def on_unit_start(self, name: str, number: str) -> None:
        console.print(f"  [dim]Writing[/] {number} {name}")

    def on_unit_end(self, name: str, number: str) -> None:
        console.print(f"  [dim]Done:[/] {number}")

    def on_warning(self, message: str) -> None:
        console.print(f"  [yellow]WARNING:[/] {message}")

    def on_error(self, message: str) -> None:
        console.print(f"  [red]ERROR:[/] {message}")


# ---------------------------------------------------------------------------
# Tables
# ---------------------------------------------------------------------------


def print_outline(chapters: list[Chapter], title: str = "Template outline") -> None:
    """Chapter tree as a Rich table."""
    table = Table(title=title, show_lines=False)
    table.add_column("Number", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Type", style="dim")
    table.add_column("Body", justify="right")
    for c in chapters:
        indent = "  " * (c.level - 1)
        kind = classify_chapter_type(c.title) if c.level == 1 else ""
        table.add_row(c.number, f"{indent}{c.title}", kind, str(len(c.body_text)))
    console.print(table)


def print_template_model(model: TemplateModel) -> None:
    table = Table(title="Template analysis", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    functional = model.functional_chapter
    table.add_row("Functional chapter", f"{model.functional_chapter_number} {functional.title if functional else ''}")
    table.add_row("Header chapters", ", ".join(model.header_chapter_numbers) or "-")
    table.add_row("Footer chapters", ", ".join(model.footer_chapter_numbers) or "-")
    table.add_row("Hierarchy depth", str(model.hierarchy_depth))
    table.add_row("Unit sections", "\n".join(model.process_sections))
    table.add_row(
        "Examples",
        f"{len(model.examples.tables)} tables, {len(model.examples.business_rules)} rules, "
        f"{len(model.examples.data_dictionary)} data dictionaries, {len(model.examples.interfaces)} interfaces",
    )
    console.print(table)
    for w in model.warnings:
        console.print(f"  [yellow]WARNING:[/] {w}")


def print_quality_report(report: QualityReport) -> None:
    table = Table(title=f"Quality check: {report.overall_score}/100")
    table.add_column("Check", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Issues")
    for name, check in report.checks.items():
        style = "green" if name in report.passed_checks else "red"
        issues = "\n".join(check.issues[:5]) + (f"\n... {len(check.issues) - 5} more" if len(check.issues) > 5 else "")
        table.add_row(name, f"[{style}]{check.score}[/]", issues or "-")
    console.print(table)
    for s in report.suggestions:
        console.print(f"  {s}")


def create_progress() -> Progress:
    """Create a Rich progress bar for unit generation."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    )
