"""Grouping of functional units into subsystems and modules.

The generation service proposes the grouping; ``validate_grouping`` then
enforces completeness: every input unit appears exactly once, unknown and
repeated names are dropped and omitted units land in a catch-all bucket.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from .generation import GenerationService, generate_json
from .models import (
    Classification,
    ClassificationResponse,
    Diagnostic,
    DiagnosticKind,
    FunctionalUnit,
    TemplateModel,
)

logger = logging.getLogger(__name__)


def _assign(unit: FunctionalUnit, subsystem: str, module: str) -> FunctionalUnit:
    return unit.model_copy(update={"assigned_subsystem": subsystem, "assigned_module": module})


def default_grouping(
    units: Sequence[FunctionalUnit],
    subsystem: str,
    module: str,
) -> Classification:
    """Every unit in one subsystem/module, original order."""
    return Classification(groups={subsystem: {module: [_assign(u, subsystem, module) for u in units]}})


def validate_grouping(
    response: ClassificationResponse,
    units: Sequence[FunctionalUnit],
    *,
    hierarchy_depth: int,
    default_module: str,
    uncategorized: str,
) -> tuple[Classification, list[Diagnostic]]:
    """Turn a proposed grouping into a complete one.

    Within a module, units keep their input order. At depth 3 modules are
    collapsed so each subsystem holds a single module named *default_module*.
    """
    by_name = {u.name: u for u in units}
    order = {u.name: i for i, u in enumerate(units)}
    diagnostics: list[Diagnostic] = []
    placed: set[str] = set()
    groups: dict[str, dict[str, list[FunctionalUnit]]] = {}

    for subsystem in response.subsystems:
        sub_name = subsystem.name.strip() or uncategorized
        for module in subsystem.modules:
            mod_name = module.name.strip() or default_module
            if hierarchy_depth < 4:
                mod_name = default_module
            for raw in module.units:
                name = raw.strip()
                if name not in by_name:
                    logger.warning("Classifier returned unknown unit %r; dropped", raw)
                    continue
                if name in placed:
                    logger.warning("Classifier placed %r more than once; later placement dropped", name)
                    continue
                placed.add(name)
                groups.setdefault(sub_name, {}).setdefault(mod_name, []).append(
                    _assign(by_name[name], sub_name, mod_name)
                )

    for modules in groups.values():
        for members in modules.values():
            members.sort(key=lambda u: order[u.name])

    missing = [u for u in units if u.name not in placed]
    if missing:
        names = ", ".join(u.name for u in missing)
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.CLASSIFICATION_INCOMPLETE,
            message=f"{len(missing)} unit(s) not classified, moved to {uncategorized!r}: {names}",
            subject=uncategorized,
        ))
        bucket = groups.setdefault(uncategorized, {}).setdefault(default_module, [])
        bucket.extend(_assign(u, uncategorized, default_module) for u in missing)
        bucket.sort(key=lambda u: order[u.name])

    return Classification(groups=groups), diagnostics


def _classification_prompt(units: Sequence[FunctionalUnit], hierarchy_depth: int) -> str:
    levels = "subsystems and modules" if hierarchy_depth >= 4 else "subsystems only (one module each)"
    names = "\n".join(u.name for u in units)
    return f"Group these {len(units)} functions into {levels}.\n\nFunctions:\n{names}"


async def classify(
    units: Sequence[FunctionalUnit],
    template_model: TemplateModel,
    service: GenerationService | None = None,
    *,
    default_subsystem: str = "Core Functions",
    default_module: str = "General",
    uncategorized: str = "Uncategorized",
) -> tuple[Classification, list[Diagnostic]]:
    """Group *units* for a template whose depth needs grouping levels.

    At depth 2 no grouping is needed and everything goes to the default
    bucket. Any service failure yields the default bucket as well, with a
    diagnostic.
    """
    if template_model.hierarchy_depth <= 2:
        return default_grouping(units, default_subsystem, default_module), []
    if service is None:
        return default_grouping(units, default_subsystem, default_module), []

    try:
        response = await generate_json(
            service,
            _classification_prompt(units, template_model.hierarchy_depth),
            ClassificationResponse,
        )
    except Exception as e:
        logger.warning("Unit classification failed: %s", e)
        response = None
    if response is None or not response.subsystems:
        return default_grouping(units, default_subsystem, default_module), [Diagnostic(
            kind=DiagnosticKind.CLASSIFICATION_INCOMPLETE,
            message=f"Classification unavailable; all units placed in {default_subsystem!r}",
            subject=default_subsystem,
        )]

    return validate_grouping(
        response,
        units,
        hierarchy_depth=template_model.hierarchy_depth,
        default_module=default_module,
        uncategorized=uncategorized,
    )
