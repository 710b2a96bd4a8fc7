"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from hydra.core.config_store import ConfigStore


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelEndpointOverrideConf:
    endpoint: str = ""
    api_key: str | None = None
    api_version: str | None = None
    api_type: str | None = None


@dataclass
class ModelConf:
    default: str = "gpt-4o"
    analyst: str | None = None
    classifier: str | None = None
    writer: str | None = None
    overrides: dict[str, ModelEndpointOverrideConf] = field(default_factory=dict)


@dataclass
class GenerationConf:
    max_prompt_chars: int = 12000
    reduced_prompt_chars: int = 4000
    min_body_chars: int = 20


@dataclass
class ReconcilerConf:
    confidence_floor: float = 3.0
    margin_floor: float = 1.5
    mismatch_threshold: float = 0.5


@dataclass
class SrsaConf:
    # --- CLI-only fields ---
    mode: str = "run"                     # run | extract | analyze | check
    document: str | None = None           # existing document for mode=check
    no_cache: bool = False
    verbose: bool = False
    quiet: bool = False

    # --- ProjectConfig fields ---
    project_name: str = "requirements-spec"
    document_title: str = ""
    project_description: str = ""
    template_path: str = "template.md"
    units_path: str = "units.json"
    output_dir: str = "output/"

    # Azure OpenAI
    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)

    use_ai_analysis: bool = True
    use_ai_classification: bool = True
    template_cache: bool = True
    quality_check: bool = True

    default_subsystem: str = "Core Functions"
    default_module: str = "General"
    uncategorized_bucket: str = "Uncategorized"
    fallback_sections: list[str] = field(
        default_factory=lambda: ["Function Description", "Business Rules", "Data Fields"]
    )

    generation: GenerationConf = field(default_factory=GenerationConf)
    reconciler: ReconcilerConf = field(default_factory=ReconcilerConf)

    timeout: int = 120
    seed: int = 42


# Keys in SrsaConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "document", "no_cache", "verbose", "quiet",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore.

    Two entries are stored:
    - ``srsa_schema`` - referenced by user config files via ``defaults: [srsa_schema]``
    - ``config`` - fallback when no ``--config-dir`` is provided (e.g. ``srsa mode=extract``)
    """
    cs = ConfigStore.instance()
    cs.store(name="srsa_schema", node=SrsaConf)
    cs.store(name="config", node=SrsaConf)
