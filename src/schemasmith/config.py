# Copyright (c) Syntropy Systems
"""Configuration management for schemasmith."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import cast

import yaml

CONFIG_FILENAME = "schemasmith.yaml"


@dataclass
class PipelineConfig:
    """Service endpoints and tunables for schemasmith."""

    # Workload platform
    platform_url: str = "https://api.apify.com/v2"
    schema_generator_id: str = "kMFja3BjKqZiO7pGc"
    schema_validator_id: str = "jaroslavhejlek/validate-dataset-with-json-schema"

    # Seconds a single variant run may take, and its memory in MB
    run_timeout: int = 300
    run_memory: int = 2048

    # LLM chat completion endpoint
    llm_url: str = "https://openrouter.apify.actor/api/v1"
    llm_model: str = "anthropic/claude-sonnet-4"
    input_temperature: float = 0.0
    refine_temperature: float = 0.1
    refine_max_tokens: int = 4000

    # Metrics/query backend
    metrics_url: str = "https://charts.apify.com/api"
    metrics_query_id: int = 2039
    poll_interval: float = 10.0
    poll_attempts: int = 30

    # Source control
    github_api_url: str = "https://api.github.com"
    metadata_filename: str = "actor.json"
    artifact_filename: str = "dataset_schema.json"

    # Production sampling
    sample_fraction: float = 0.5
    sample_cap: int = 1000

    # HTTP request timeout in seconds
    request_timeout: float = 60.0


@dataclass
class Credentials:
    """Secrets for the remote collaborators, read from the environment."""

    platform_token: str | None = None
    github_token: str | None = None
    metrics_api_key: str | None = None

    @classmethod
    def from_env(cls) -> Credentials:
        """Read credentials from ``APIFY_TOKEN``, ``GITHUB_TOKEN``, ``REDASH_API_KEY``."""
        return cls(
            platform_token=os.environ.get("APIFY_TOKEN") or None,
            github_token=os.environ.get("GITHUB_TOKEN") or None,
            metrics_api_key=os.environ.get("REDASH_API_KEY") or None,
        )


def find_config_file(start_path: Path | None = None) -> Path | None:
    """Find the nearest schemasmith.yaml by walking up from start_path.

    Returns None if no config file is found.
    """
    if start_path is None:
        start_path = Path.cwd()

    current = start_path.resolve()

    while current != current.parent:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        current = current.parent

    # Check root
    candidate = current / CONFIG_FILENAME
    if candidate.is_file():
        return candidate

    return None


def get_global_config_dir() -> Path:
    """Get the global schemasmith config directory (~/.schemasmith)."""
    return Path.home() / ".schemasmith"


def load_config(config_path: Path | None = None) -> PipelineConfig:
    """Load configuration from schemasmith.yaml or defaults.

    Looks for config in:
    1. Provided config_path
    2. Nearest schemasmith.yaml walking up
    3. ~/.schemasmith/config.yaml
    4. Defaults

    Unknown keys and values of the wrong type are ignored.
    """
    config = PipelineConfig()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        global_config = get_global_config_dir() / "config.yaml"
        if global_config.exists():
            config_path = global_config

    if config_path is None or not config_path.exists():
        return config

    with config_path.open() as f:
        data = cast("dict[str, object]", yaml.safe_load(f) or {})

    for field in fields(PipelineConfig):
        value = data.get(field.name)
        default = getattr(config, field.name)
        if isinstance(default, bool) or value is None:
            continue
        if isinstance(default, str) and isinstance(value, str):
            setattr(config, field.name, value)
        elif isinstance(default, int) and isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(config, field.name, type(default)(value))
        elif isinstance(default, float) and isinstance(value, (int, float)) and not isinstance(value, bool):
            setattr(config, field.name, float(value))

    return config


def default_config_dict() -> dict[str, object]:
    """Return the defaults as a plain mapping, for writing a config file."""
    config = PipelineConfig()
    return {field.name: getattr(config, field.name) for field in fields(PipelineConfig)}
