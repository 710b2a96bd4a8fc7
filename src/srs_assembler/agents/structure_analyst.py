"""StructureAnalyst agent: locates the functional chapter and the header/footer groups."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import PartialTemplateModel, ProjectConfig

SYSTEM_PROMPT = """\
You are a requirements-engineering analyst who studies document templates.

You receive the numbered chapter outline of a requirements specification
template. Identify:
- the single top-level chapter that holds the functional requirements
  (one sub-chapter per function in a filled-in document),
- the top-level chapters that come BEFORE it (header chapters),
- the top-level chapters that come AFTER it (footer chapters).

Return a JSON object:
{
  "functional_chapter_number": "3",
  "header_chapter_numbers": ["1", "2"],
  "footer_chapter_numbers": ["4", "5"]
}

Use chapter numbers exactly as they appear in the outline.
Return ONLY valid JSON. No markdown fences or explanations.
"""


def make_structure_analyst(config: ProjectConfig) -> autogen.AssistantAgent:
    """Create the StructureAnalyst agent."""
    agent = autogen.AssistantAgent(
        name="StructureAnalyst",
        system_message=SYSTEM_PROMPT,
        llm_config=build_role_llm_config("structure_analyst", config),
    )
    if isinstance(agent.llm_config, dict):
        agent.llm_config["response_format"] = PartialTemplateModel
    return agent
