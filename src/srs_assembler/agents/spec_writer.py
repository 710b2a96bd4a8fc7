"""SpecWriter agent: writes chapter and function bodies as markdown."""

from __future__ import annotations

import autogen

from ..config import build_role_llm_config
from ..models import ProjectConfig

SYSTEM_PROMPT = """\
You are a senior requirements engineer writing a software requirements
specification that must follow a given template exactly.

Guidelines:
- Write only the BODY of the chapter you are asked for. The chapter heading
  itself is added by the caller; do not repeat it.
- Use exactly the sub-section headings, numbers and order you are given.
  Never add, rename, renumber or skip a sub-section.
- Follow the format of the template examples: when a section is shown as a
  table, write a table with the same columns.
- Ground the content in the function data provided. Do not invent fields,
  interfaces or rules that the data does not support.
- Use markdown headings for sub-sections, pipe tables and bullet lists.

Return ONLY the markdown body. No meta-commentary and no code fences.
"""


def make_spec_writer(config: ProjectConfig) -> autogen.AssistantAgent:
    """Create the SpecWriter agent."""
    context = ""
    if config.project_description:
        context = f"\nPROJECT CONTEXT:\n{config.project_description}\n"
    return autogen.AssistantAgent(
        name="SpecWriter",
        system_message=SYSTEM_PROMPT + context,
        llm_config=build_role_llm_config("spec_writer", config),
    )
