"""Generation service protocol and its AG2 agent adapter.

Everything that talks to a language model goes through ``GenerationService``:
an object with a single ``stream(prompt)`` method yielding text chunks. The
analyzer, classifier and orchestrator only ever see this protocol, so tests
drive them with in-memory fakes.
"""

from __future__ import annotations

import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

import autogen
from pydantic import BaseModel, ValidationError

from .agents.hierarchy_analyst import make_hierarchy_analyst
from .agents.spec_writer import make_spec_writer
from .agents.structure_analyst import make_structure_analyst
from .agents.unit_classifier import make_unit_classifier
from .models import ProjectConfig

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class GenerationService(Protocol):
    def stream(self, prompt: str) -> AsyncIterator[str]: ...


# ---------------------------------------------------------------------------
# Response helpers
# ---------------------------------------------------------------------------

_FENCE_OPEN_RE = re.compile(r"^\s*```(?:json|markdown|md|text)?\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def extract_text(response: Any) -> str:
    """Extract the text of an AG2 chat response, minus a wrapping code fence."""
    if hasattr(response, "summary") and response.summary:
        text = str(response.summary)
    elif hasattr(response, "chat_history") and response.chat_history:
        last = response.chat_history[-1]
        text = last.get("content", "") if isinstance(last, dict) else str(last)
    else:
        text = str(response)

    text = _FENCE_OPEN_RE.sub("", text)
    text = _FENCE_CLOSE_RE.sub("", text)
    return text.strip()


def parse_json(text: str, model_cls: type[M]) -> M | None:
    """Validate *text* (or the outermost ``{...}`` inside it) as *model_cls*."""
    text = extract_text(text)
    if "{" in text:
        json_str = text[text.find("{"):text.rfind("}") + 1]
        try:
            return model_cls.model_validate_json(json_str)
        except ValidationError:
            pass
    try:
        return model_cls.model_validate_json(text)
    except ValidationError as e:
        logger.warning("Failed to parse %s from response: %s", model_cls.__name__, e)
        return None


async def collect_stream(service: GenerationService, prompt: str) -> str:
    """Buffer a whole stream into one string."""
    chunks: list[str] = []
    async for chunk in service.stream(prompt):
        chunks.append(chunk)
    return "".join(chunks)


async def generate_json(service: GenerationService, prompt: str, model_cls: type[M]) -> M | None:
    """Run *prompt* and parse the reply as *model_cls*; None when unparseable."""
    text = await collect_stream(service, prompt)
    return parse_json(text, model_cls)


# ---------------------------------------------------------------------------
# AG2 adapter
# ---------------------------------------------------------------------------

def make_orchestrator() -> autogen.UserProxyAgent:
    """Create the proxy that drives single-turn chats with the assistant agents."""
    return autogen.UserProxyAgent(
        name="Orchestrator",
        human_input_mode="NEVER",
        code_execution_config=False,
    )


class AgentGenerationService:
    """``GenerationService`` over one AG2 ``AssistantAgent``.

    AG2 returns the full reply at once, so the stream has a single chunk.
    """

    def __init__(self, agent: autogen.AssistantAgent) -> None:
        self.agent = agent

    async def stream(self, prompt: str) -> AsyncIterator[str]:
        orchestrator = make_orchestrator()
        response = await orchestrator.a_initiate_chat(
            self.agent, message=prompt, max_turns=1, silent=True,
        )
        text = extract_text(response)
        if text:
            yield text


@dataclass
class GenerationServices:
    """One service per role; any may be None (deterministic fallbacks apply)."""
    structure: GenerationService | None = None
    hierarchy: GenerationService | None = None
    classifier: GenerationService | None = None
    writer: GenerationService | None = None


def build_services(config: ProjectConfig) -> GenerationServices:
    """Create agent-backed services for every role the config enables."""
    services = GenerationServices(writer=AgentGenerationService(make_spec_writer(config)))
    if config.use_ai_analysis:
        services.structure = AgentGenerationService(make_structure_analyst(config))
        services.hierarchy = AgentGenerationService(make_hierarchy_analyst(config))
    if config.use_ai_classification:
        services.classifier = AgentGenerationService(make_unit_classifier(config))
    return services
