"""
Service configuration.

Settings are resolved in three layers, later layers winning:

1. Defaults declared on ``Settings``
2. A YAML or JSON file (``config_path`` argument or ``CLUSTERPROF_CONFIG_PATH``)
3. Environment variables named ``CLUSTERPROF_<FIELD>`` (upper case); list
   fields accept comma-separated values

Example file::

    gateway: http
    admin_endpoint: https://cluster.local:9000
    admin_access_token: s3cr3t
    start_timeout: 20
    memory_nodes: [node1:9000, node2:9000]
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from clusterprof.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "CLUSTERPROF_"
CONFIG_PATH_ENV = f"{ENV_PREFIX}CONFIG_PATH"


class Settings(BaseModel):
    """Runtime settings for the API, CLI and gateways."""

    environment: str = Field(default="development", description="Deployment environment name.")
    log_level: str = Field(default="INFO")
    log_format: Literal["detailed", "simple", "json"] = Field(default="detailed")
    log_file: Optional[str] = Field(default=None, description="Log to this file instead of the console.")

    api_prefix: str = Field(default="/api")
    api_host: str = Field(default="127.0.0.1")
    api_port: int = Field(default=8000, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=list)

    gateway: Literal["http", "memory"] = Field(default="http", description="Admin gateway implementation.")
    admin_endpoint: Optional[str] = Field(default=None, description="Base URL of the cluster admin API.")
    admin_access_token: Optional[str] = Field(default=None)
    admin_verify_ssl: bool = Field(default=True)
    admin_timeout: float = Field(default=30.0, gt=0)

    start_timeout: Optional[float] = Field(default=None, gt=0, description="Deadline for profiling start calls.")
    stop_timeout: Optional[float] = Field(default=None, gt=0, description="Deadline for profiling stop calls.")

    chunk_size: int = Field(default=64 * 1024, gt=0, description="Archive copy chunk size in bytes.")
    archive_filename: str = Field(default="profile.zip")

    memory_nodes: list[str] = Field(default_factory=lambda: ["127.0.0.1:9000"])

    model_config = ConfigDict(extra="forbid")

    @field_validator("cors_origins", "memory_nodes", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("api_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if value and not value.startswith("/"):
            value = f"/{value}"
        return value

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


def _load_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            if path.suffix.lower() in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            elif path.suffix.lower() == ".json":
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported configuration format: {path.suffix}")
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ConfigurationError(f"Failed to parse configuration file {path}: {e}") from e
    except OSError as e:
        raise ConfigurationError(f"Error reading configuration file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Invalid configuration format in {path}")
    logger.debug(f"Loaded configuration from {path}")
    return data


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for field_name in Settings.model_fields:
        key = f"{ENV_PREFIX}{field_name.upper()}"
        if key in environ:
            overrides[field_name] = environ[key]
    return overrides


def load_settings(config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build settings from defaults, an optional config file and the environment.

    Args:
        config_path: Path to a YAML/JSON file; falls back to ``CLUSTERPROF_CONFIG_PATH``
        environ: Environment mapping, ``os.environ`` when omitted

    Returns:
        Settings: Validated settings

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    environ = os.environ if environ is None else environ
    path = config_path or environ.get(CONFIG_PATH_ENV)

    values: dict[str, Any] = {}
    if path:
        values.update(_load_file(Path(path)))
    values.update(_env_overrides(environ))

    try:
        return Settings(**values)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


__all__ = ["CONFIG_PATH_ENV", "ENV_PREFIX", "Settings", "load_settings"]
