"""Project settings: YAML files, environment variables and AG2 endpoint entries.

Settings normally come from Hydra (see ``cli.py``). A YAML file named by the
``config_file`` CLI key is layered on top; its strings may reference
``${VAR}`` or ``${VAR:-default}``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from .models import ProjectConfig

load_dotenv()

_ENV_RE = re.compile(r"\$\{(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?::-(?P<default>[^}]*))?\}")

# Azure settings read from the environment when left empty.
_AZURE_ENV = {
    "api_key": "AZURE_OPENAI_API_KEY",
    "api_version": "AZURE_OPENAI_API_VERSION",
    "endpoint": "AZURE_OPENAI_ENDPOINT",
}

_AZURE_HOSTS = ("openai.azure.com", "cognitiveservices.azure.com")

AGENT_ROLES = ("detector", "analyzer", "drafter", "sanitizer", "reviewer", "refiner", "formatter")

_ROLE_ALIASES = {
    "course_detector": "detector",
    "gap_analyzer": "analyzer",
    "fact_sanitizer": "sanitizer",
    "quality_reviewer": "reviewer",
    "polish_refiner": "refiner",
    "assignment_formatter": "formatter",
}


# ---------------------------------------------------------------------------
# Settings files
# ---------------------------------------------------------------------------


def expand_env(value: Any) -> Any:
    """Substitute environment references in every string of a YAML tree."""
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    if not isinstance(value, str):
        return value
    return _ENV_RE.sub(lambda m: os.environ.get(m["name"]) or (m["default"] or ""), value)


def _layer(base: dict[str, Any], top: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in top.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _layer(merged[key], value)
        else:
            merged[key] = value
    return merged


def apply_azure_fallbacks(config: ProjectConfig) -> ProjectConfig:
    """Fill empty Azure settings from ``AZURE_OPENAI_*`` and drop the endpoint's trailing slash."""
    azure = config.azure
    for attr, env_name in _AZURE_ENV.items():
        if not getattr(azure, attr):
            setattr(azure, attr, os.getenv(env_name, ""))
    azure.endpoint = azure.endpoint.rstrip("/")
    return config


def load_config(config_path: str | Path, base: dict[str, Any] | None = None) -> ProjectConfig:
    """Read a YAML settings file into a ``ProjectConfig``.

    The file is layered over *base* section by section, so a partial file
    only changes the keys it names.
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping, got {type(data).__name__}")

    config = ProjectConfig.model_validate(expand_env(_layer(base or {}, data)))
    return apply_azure_fallbacks(config)


# ---------------------------------------------------------------------------
# Models and AG2 llm_config
# ---------------------------------------------------------------------------


def model_for_role(role: str, config: ProjectConfig) -> str:
    """Model id for an agent role; long agent names are accepted, unknown roles get the default."""
    key = role.lower()
    key = _ROLE_ALIASES.get(key, key)
    chosen = getattr(config.models, key) if key in AGENT_ROLES else None
    return chosen or config.models.default


def _is_azure_openai_endpoint(endpoint: str) -> bool:
    lower = endpoint.lower()
    return any(host in lower for host in _AZURE_HOSTS)


def endpoint_entry(model: str, config: ProjectConfig) -> dict[str, Any]:
    """One AG2 ``config_list`` entry for *model*.

    A ``models.overrides`` entry for *model* brings its own endpoint and may
    replace the key, the API version or force an ``api_type``. Azure OpenAI
    hosts get deployment routing; other endpoints are OpenAI-compatible.
    """
    azure = config.azure
    override = config.models.overrides.get(model)
    endpoint = override.endpoint.rstrip("/") if override else azure.endpoint

    entry: dict[str, Any] = {
        "model": model,
        "api_key": (override.api_key if override else None) or azure.api_key,
    }
    if override is not None and override.api_type:
        entry.update(api_type=override.api_type, base_url=endpoint)
    elif endpoint and _is_azure_openai_endpoint(endpoint):
        entry.update(
            api_type="azure",
            azure_endpoint=endpoint,
            api_version=(override.api_version if override else None) or azure.api_version,
            azure_deployment=model,
        )
    elif endpoint:
        entry["base_url"] = endpoint
    return entry


def build_model_llm_config(model: str, config: ProjectConfig) -> dict[str, Any]:
    """AG2 ``llm_config`` for a concrete *model* id (the id agents meter cost against)."""
    return {
        "config_list": [endpoint_entry(model, config)],
        "timeout": config.timeout,
        "seed": config.seed,
    }
