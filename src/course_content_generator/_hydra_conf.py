"""Hydra structured config dataclasses.

These mirror the Pydantic ``ProjectConfig`` for Hydra schema validation.
At runtime the Hydra DictConfig is converted to ``ProjectConfig`` via
``cli._to_project_config()``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from hydra.core.config_store import ConfigStore

HAIKU = "claude-haiku-4-5-20251001"


@dataclass
class AzureConf:
    api_key: str = "${oc.env:AZURE_OPENAI_API_KEY,''}"
    api_version: str = "${oc.env:AZURE_OPENAI_API_VERSION,''}"
    endpoint: str = "${oc.env:AZURE_OPENAI_ENDPOINT,''}"


@dataclass
class ModelConf:
    default: str = "claude-sonnet-4-5-20250929"
    detector: str | None = HAIKU
    analyzer: str | None = HAIKU
    drafter: str | None = None
    sanitizer: str | None = HAIKU
    reviewer: str | None = HAIKU
    refiner: str | None = None
    formatter: str | None = HAIKU
    overrides: dict[str, Any] = field(default_factory=dict)


@dataclass
class CourseConf:
    # --- Dispatch + CLI-only fields ---
    mode: str = "run"
    topic: str = ""
    subtopics: str = ""
    content_mode: str = "lecture"
    instructions: str = ""
    transcript_file: str | None = None
    input_file: str | None = None
    patch_file: str | None = None
    output_file: str | None = None
    config_file: str | None = None
    mcsc: int = 2
    mcmc: int = 2
    subjective: int = 1
    no_interactive: bool = False
    verbose: bool = False
    quiet: bool = False

    # --- ProjectConfig fields (1:1 mapping) ---
    project_name: str = "course-content"

    azure: AzureConf = field(default_factory=AzureConf)
    models: ModelConf = field(default_factory=ModelConf)
    pricing: dict[str, Any] = field(default_factory=dict)

    review_max_rounds: int = 2
    polish_threshold: float = 9.0
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout: int = 120
    seed: int = 42

    detector_transcript_chars: int = 5000
    drafter_transcript_chars: int = 20000
    sanitizer_transcript_chars: int = 50000
    reviewer_content_chars: int = 15000

    strip_ai_patterns: bool = False

    cache_max_age_seconds: int = 1800
    cache_max_entries: int = 20


# Keys present in CourseConf that are NOT part of ProjectConfig.
CLI_ONLY_KEYS = frozenset({
    "mode", "topic", "subtopics", "content_mode", "instructions",
    "transcript_file", "input_file", "patch_file", "output_file", "config_file",
    "mcsc", "mcmc", "subjective", "no_interactive", "verbose", "quiet",
})


def register_configs() -> None:
    """Register the structured config schema with Hydra's ConfigStore."""
    cs = ConfigStore.instance()
    cs.store(name="course_schema", node=CourseConf)
