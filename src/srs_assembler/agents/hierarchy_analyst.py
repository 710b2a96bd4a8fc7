"""HierarchyAnalyst agent: reads the functional chapter's nesting and per-unit sections."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import PartialTemplateModel, ProjectConfig

SYSTEM_PROMPT = """\
You are a requirements-engineering analyst who studies document templates.

You receive the functional-requirements chapter of a template, with its
numbered sub-chapters and their text. Determine:
- hierarchy_depth: how many numbering levels sit below the functional chapter
  down to (and including) the sections inside one function.
  2 = functions directly under the chapter, each with sections;
  3 = subsystem -> function -> sections;
  4 = subsystem -> module -> function -> sections.
- process_sections: the ordered section titles that every single function
  contains (for example "Function Description", "Business Rules", "Data Fields").
  Use the template's own wording.

Return a JSON object:
{
  "hierarchy_depth": 3,
  "process_sections": ["Function Description", "Business Rules", "Data Fields"]
}

Return ONLY valid JSON. No markdown fences or explanations.
"""


def make_hierarchy_analyst(config: ProjectConfig) -> autogen.AssistantAgent:
    """Create the HierarchyAnalyst agent."""
    agent = autogen.AssistantAgent(
        name="HierarchyAnalyst",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("hierarchy_analyst", config),
    )
    if isinstance(agent.llm_config, dict):
        agent.llm_config["response_format"] = PartialTemplateModel
    return agent
