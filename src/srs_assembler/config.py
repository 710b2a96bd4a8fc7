"""Project configuration: YAML loading and per-role AG2 ``llm_config``.

Three agent roles talk to a model. The template analysts share
``models.analyst``, the unit classifier uses ``models.classifier`` and the
spec writer uses ``models.writer``; any of them left unset runs on
``models.default``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import ModelEndpointOverride, ProjectConfig

load_dotenv()

# ---------------------------------------------------------------------------
# YAML loading with ${ENV_VAR} interpolation
# ---------------------------------------------------------------------------

_ENV_RE = re.compile(r"\$\{([^}]+)\}")

# AzureConfig field -> environment variable read when the YAML leaves it empty
AZURE_ENV_VARS: dict[str, str] = {
    "api_key": "AZURE_OPENAI_API_KEY",
    "api_version": "AZURE_OPENAI_API_VERSION",
    "endpoint": "AZURE_OPENAI_ENDPOINT",
}


def _resolve_env_vars(value: Any) -> Any:
    """Substitute ``${NAME}`` in every string of a loaded YAML tree; unset names become ``""``."""
    if isinstance(value, str):
        return _ENV_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _resolve_env_vars(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_env_vars(v) for v in value]
    return value


def apply_azure_fallbacks(config: ProjectConfig) -> ProjectConfig:
    """Take blank azure settings from the environment and normalise the endpoint."""
    for field_name, env_name in AZURE_ENV_VARS.items():
        if not getattr(config.azure, field_name):
            setattr(config.azure, field_name, os.getenv(env_name, ""))
    config.azure.endpoint = config.azure.endpoint.rstrip("/")
    return config


def load_config(config_path: str | Path) -> ProjectConfig:
    """Read an ``srsa`` project file (template, units, models, thresholds)."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Project config not found: {path}")

    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    config = ProjectConfig.model_validate(_resolve_env_vars(raw))
    return apply_azure_fallbacks(config)


# ---------------------------------------------------------------------------
# Role -> model resolution
# ---------------------------------------------------------------------------

# Agent role -> ModelConfig attribute
ROLE_MODELS: dict[str, str] = {
    "analyst": "analyst",
    "structure_analyst": "analyst",
    "hierarchy_analyst": "analyst",
    "classifier": "classifier",
    "unit_classifier": "classifier",
    "writer": "writer",
    "spec_writer": "writer",
}


def model_for_role(role: str, config: ProjectConfig) -> str:
    """Model name an agent *role* runs on; unknown roles get the default."""
    attr = ROLE_MODELS.get(role.lower())
    chosen = getattr(config.models, attr) if attr else None
    return chosen or config.models.default


def has_credentials(config: ProjectConfig) -> bool:
    """True when every role can reach an endpoint.

    Either the global azure endpoint and key are set, or each role's model
    has its own entry under ``models.overrides``.
    """
    if config.azure.endpoint and config.azure.api_key:
        return True
    roles = set(ROLE_MODELS.values())
    return all(model_for_role(role, config) in config.models.overrides for role in roles)


# ---------------------------------------------------------------------------
# AG2 config_list entries
# ---------------------------------------------------------------------------

_AZURE_OPENAI_HOSTS = ("openai.azure.com", "cognitiveservices.azure.com")


def _endpoint_entry(
    model: str,
    config: ProjectConfig,
    override: ModelEndpointOverride | None,
) -> dict[str, Any]:
    """One ``config_list`` entry for *model*.

    An override replaces the azure endpoint; when it names an ``api_type``
    that type is used verbatim with the endpoint as ``base_url``. Azure
    OpenAI hosts route by deployment name. Anything else is treated as an
    OpenAI-compatible ``base_url``.
    """
    azure = config.azure
    api_key, api_version, endpoint = azure.api_key, azure.api_version, azure.endpoint
    if override is not None:
        endpoint = override.endpoint.rstrip("/")
        api_key = override.api_key or api_key
        api_version = override.api_version or api_version

    entry: dict[str, Any] = {"model": model, "api_key": api_key}
    if override is not None and override.api_type:
        entry.update(api_type=override.api_type, base_url=endpoint)
    elif any(host in endpoint.lower() for host in _AZURE_OPENAI_HOSTS):
        entry.update(
            api_type="azure",
            azure_endpoint=endpoint,
            api_version=api_version,
            azure_deployment=model,
        )
    elif endpoint:
        entry["base_url"] = endpoint
    return entry


def build_role_llm_config(role: str, config: ProjectConfig) -> dict[str, Any]:
    """AG2 ``llm_config`` for one of the assembler's agent roles."""
    model = model_for_role(role, config)
    entry = _endpoint_entry(model, config, config.models.overrides.get(model))
    return {
        "config_list": [entry],
        "timeout": config.timeout,
        "seed": config.seed,
    }
