"""Load configuration from YAML and environment variables. No hardcoded secrets."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Default config lives next to this module
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "default.yaml"

_TRUTHY = ("1", "true", "yes", "on")


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class ClientSettings(BaseSettings):
    """Endpoint, credentials and transport mode. Secrets come from env only."""

    model_config = SettingsConfigDict(env_prefix="CHATSTREAM_", extra="ignore", populate_by_name=True)
    endpoint: Optional[str] = None
    api_key: str = Field(default="", alias="AZURE_OPENAI_API_KEY")
    non_azure_api_key: str = Field(default="", alias="OPENAI_API_KEY")
    api_version: str = "2024-10-21"
    deployment_name: str = "gpt-35-turbo"
    use_async: bool = True
    include_usage: bool = True
    timeout_seconds: float = 60.0
    max_retries: int = 2
    custom_headers: dict[str, str] = Field(default_factory=dict)


class DefaultsSettings(BaseSettings):
    """Client-level request defaults; request values override them."""

    model_config = SettingsConfigDict(env_prefix="CHATSTREAM_DEFAULT_", extra="ignore")
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    top_p: Optional[float] = None
    presence_penalty: Optional[float] = None
    frequency_penalty: Optional[float] = None
    logit_bias: Optional[dict[str, int]] = None
    stop: Optional[list[str]] = None
    seed: Optional[int] = None
    user: Optional[str] = None
    response_format: Optional[str] = Field(default=None, description="text | json")
    strict_json_schema: bool = False
    token_estimator_model: str = "gpt-3.5-turbo"


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHATSTREAM_LOG_", extra="ignore", populate_by_name=True)
    level: str = "INFO"
    json_format: bool = Field(default=True, alias="json")
    log_requests: bool = False


class Config(BaseSettings):
    """Application config: YAML + env. Secrets from env only."""

    model_config = SettingsConfigDict(env_nested_delimiter="__", extra="ignore")

    client: ClientSettings = Field(default_factory=ClientSettings)
    defaults: DefaultsSettings = Field(default_factory=DefaultsSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def load(cls, config_path: str | Path | None = None) -> "Config":
        path = Path(config_path) if config_path else _DEFAULT_CONFIG_PATH
        yaml_data = _load_yaml(path)
        env_prefix = os.getenv("CHATSTREAM_ENV_PREFIX", "")
        if env_prefix:
            yaml_data = _deep_merge(yaml_data, _load_yaml(Path(f"config/{env_prefix}.yaml")))
        endpoint = os.getenv("CHATSTREAM_ENDPOINT")
        if endpoint:
            yaml_data.setdefault("client", {})["endpoint"] = endpoint
        deployment = os.getenv("CHATSTREAM_DEPLOYMENT")
        if deployment:
            yaml_data.setdefault("client", {})["deployment_name"] = deployment
        use_async = os.getenv("CHATSTREAM_USE_ASYNC")
        if use_async:
            yaml_data.setdefault("client", {})["use_async"] = use_async.lower() in _TRUTHY
        for env_key, field_name in (("AZURE_OPENAI_API_KEY", "api_key"), ("OPENAI_API_KEY", "non_azure_api_key")):
            value = os.getenv(env_key)
            if value:
                yaml_data.setdefault("client", {}).pop(field_name, None)
                yaml_data["client"][env_key] = value
        level = os.getenv("CHATSTREAM_LOG_LEVEL")
        if level:
            yaml_data.setdefault("logging", {})["level"] = level
        return cls(**yaml_data)


def get_config(config_path: str | Path | None = None) -> Config:
    return Config.load(config_path)
