"""UnitClassifier agent: groups functional units into subsystems and modules."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import ClassificationResponse, ProjectConfig

SYSTEM_PROMPT = """\
You are a business analyst organising the functions of a software system.

You receive a list of function names (one per line). Group them into
subsystems and, inside each subsystem, into modules, following business
domain boundaries.

Rules:
- Every function name must appear exactly once.
- Copy function names verbatim; never rename, merge or invent functions.
- Use short, descriptive subsystem and module names.
- When only two levels are requested, put a single module per subsystem.

Return a JSON object:
{
  "subsystems": [
    {"name": "Order Management",
     "modules": [{"name": "Ordering", "units": ["Create order", "Cancel order"]}]}
  ]
}

Return ONLY valid JSON. No markdown fences or explanations.
"""


def make_unit_classifier(config: ProjectConfig) -> autogen.AssistantAgent:
    """Create the UnitClassifier agent."""
    agent = autogen.AssistantAgent(
        name="UnitClassifier",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("unit_classifier", config),
    )
    if isinstance(agent.llm_config, dict):
        agent.llm_config["response_format"] = ClassificationResponse
    return agent
