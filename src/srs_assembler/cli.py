"""CLI entry point using Hydra.

Usage examples:
  srsa --config-dir examples/sample_project --config-name config mode=run
  srsa --config-dir examples/sample_project --config-name config mode=extract
  srsa --config-dir examples/sample_project --config-name config mode=analyze no_cache=true
  srsa --config-dir examples/sample_project --config-name config mode=check document=output/document.md
"""

from __future__ import annotations

import sys
import warnings
from pathlib import Path
from typing import Any

import hydra
from omegaconf import DictConfig, OmegaConf

from ._hydra_conf import CLI_ONLY_KEYS, register_configs
from .config import apply_azure_fallbacks
from .errors import ExtractionFailure
from .logging_config import (
    RichCallbacks,
    console,
    print_outline,
    print_quality_report,
    print_template_model,
    setup_logging,
)
from .models import ProjectConfig
from .pipeline import Pipeline

register_configs()

# Suppress Hydra 1.1 deprecation warning about automatic schema matching.
# Our user configs already reference the schema explicitly via ``defaults``.
warnings.filterwarnings("ignore", category=UserWarning, message=r"(?s).*ConfigStore schema.*")

# ---------------------------------------------------------------------------
# Hydra DictConfig -> Pydantic ProjectConfig bridge
# ---------------------------------------------------------------------------


def _to_project_config(cfg: DictConfig) -> ProjectConfig:
    """Convert a Hydra DictConfig to a Pydantic ProjectConfig."""
    container: dict[str, Any] = OmegaConf.to_container(cfg, resolve=True)  # type: ignore[assignment]
    for key in CLI_ONLY_KEYS:
        container.pop(key, None)
    config = ProjectConfig.model_validate(container)
    return apply_azure_fallbacks(config)


def _get_config_dir() -> Path:
    """Extract --config-dir from sys.argv."""
    for i, arg in enumerate(sys.argv):
        if arg == "--config-dir" and i + 1 < len(sys.argv):
            return Path(sys.argv[i + 1])
        if arg.startswith("--config-dir="):
            return Path(arg.split("=", 1)[1])
    return Path.cwd()


def _make_pipeline(cfg: DictConfig) -> Pipeline:
    return Pipeline(
        _to_project_config(cfg),
        config_dir=_get_config_dir(),
        callbacks=RichCallbacks(),
        use_cache=not cfg.get("no_cache", False),
    )


# ---------------------------------------------------------------------------
# Mode handlers
# ---------------------------------------------------------------------------


def _run_mode(cfg: DictConfig) -> None:
    pipeline = _make_pipeline(cfg)

    console.print("[bold]Starting document assembly...[/]")
    result = pipeline.run()

    if result.success:
        console.print("\n[bold green]Pipeline completed successfully![/]")
        if result.output_dir:
            console.print(f"  Output: {result.output_dir}")
        if result.assembly:
            console.print(f"  Functions written: {len(result.assembly.units)}")
            console.print(f"  Diagnostics: {len(result.assembly.diagnostics)}")
        if result.quality_report:
            console.print(f"  Quality score: {result.quality_report.overall_score}/100")
    else:
        console.print("\n[bold red]Pipeline failed.[/]")
        for err in result.errors:
            console.print(f"  [red]{err}[/]")
        sys.exit(1)


def _extract_mode(cfg: DictConfig) -> None:
    pipeline = _make_pipeline(cfg)
    chapters = pipeline.run_extract_only()
    if not chapters:
        console.print("[yellow]No numbered chapters found in the template.[/]")
        return
    print_outline(chapters, title=f"Template outline: {pipeline.template_path.name}")


def _analyze_mode(cfg: DictConfig) -> None:
    pipeline = _make_pipeline(cfg)
    model = pipeline.run_analyze_only()
    print_template_model(model)


def _check_mode(cfg: DictConfig) -> None:
    document = cfg.get("document")
    if not document:
        console.print("[red]mode=check needs document=<path to the document to check>[/]")
        sys.exit(1)
    pipeline = _make_pipeline(cfg)
    report = pipeline.run_check_only(document)
    print_quality_report(report)
    if not report.passed:
        sys.exit(1)


_MODE_DISPATCH: dict[str, Any] = {
    "run": _run_mode,
    "extract": _extract_mode,
    "analyze": _analyze_mode,
    "check": _check_mode,
}


# ---------------------------------------------------------------------------
# Hydra entry point
# ---------------------------------------------------------------------------


@hydra.main(config_path=None, config_name="config", version_base=None)
def hydra_entry(cfg: DictConfig) -> None:
    """Hydra-managed CLI entry point."""
    setup_logging(verbose=cfg.get("verbose", False), quiet=cfg.get("quiet", False))

    mode = cfg.get("mode", "run")
    handler = _MODE_DISPATCH.get(mode)
    if handler is None:
        console.print(f"[red]Unknown mode: {mode!r}. Choose from: {', '.join(_MODE_DISPATCH)}[/]")
        sys.exit(1)

    try:
        handler(cfg)
    except ExtractionFailure as e:
        console.print(f"[red]{e}[/]")
        sys.exit(1)


def main() -> None:
    """Package entry point (``[project.scripts]`` target)."""
    hydra_entry()  # pylint: disable=no-value-for-parameter
