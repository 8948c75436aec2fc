"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field


class ProviderEndpoint(BaseModel):
    base_url: str
    timeout: float = 30.0
    probe_timeout: float = 2.0


class ProvidersConfig(BaseModel):
    ollama: ProviderEndpoint = Field(
        default_factory=lambda: ProviderEndpoint(base_url="http://127.0.0.1:11434")
    )
    groq: ProviderEndpoint = Field(
        default_factory=lambda: ProviderEndpoint(base_url="https://api.groq.com/openai/v1")
    )
    openrouter: ProviderEndpoint = Field(
        default_factory=lambda: ProviderEndpoint(base_url="https://openrouter.ai/api/v1")
    )

    def endpoint(self, kind: str) -> ProviderEndpoint:
        return getattr(self, kind)


class StorageConfig(BaseModel):
    db_path: str = "./data/quickllm.db"
    settings_path: str = "./data/settings.yaml"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    data_dir: str = "./data"
    status_reset_seconds: float = 2.0
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation.

    A missing config file is not an error: every field has a default.
    """
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        return AppConfig()

    raw_text = config_file.read_text(encoding="utf-8")

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = raw_data.get("data_dir", "./data")
    data_dir = _interpolate_env_vars(data_dir)

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
