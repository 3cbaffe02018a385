"""Configuration loading, validation, and access."""

from __future__ import annotations

import copy
import os
from pathlib import Path

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    ValidationError,
    field_validator,
    model_validator,
)

from stockbook.core.exceptions import ConfigError
from stockbook.core.models import StorageBackend


class ProviderConfig(BaseModel):
    """Yahoo Finance access configuration."""

    model_config = ConfigDict(frozen=True)

    base_url: str = "https://query1.finance.yahoo.com"
    user_agent: str = "Mozilla/5.0 (compatible; stockbook/0.1)"
    timeout: float = 15.0
    rate_limit: int = 5

    @field_validator("base_url")
    @classmethod
    def base_url_is_http(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("timeout")
    @classmethod
    def timeout_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeout must be > 0")
        return v

    @field_validator("rate_limit")
    @classmethod
    def rate_limit_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("rate_limit must be >= 1")
        return v


class StorageConfig(BaseModel):
    """Storage backend configuration."""

    model_config = ConfigDict(frozen=True)

    backend: StorageBackend = StorageBackend.SQLITE
    sqlite_path: str = "./data/stockbook.db"


class CacheConfig(BaseModel):
    """In-memory expiring cache in front of the provider path."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True


class SearchConfig(BaseModel):
    """Symbol search configuration."""

    model_config = ConfigDict(frozen=True)

    symbols_path: str | None = None
    asset_types: list[str] = ["EQUITY", "ETF"]
    default_limit: int = 10
    max_limit: int = 50

    @field_validator("asset_types")
    @classmethod
    def asset_types_uppercase(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("asset_types must not be empty")
        return [t.upper() for t in v]

    @model_validator(mode="after")
    def limits_consistent(self) -> SearchConfig:
        if self.default_limit < 1:
            raise ValueError("default_limit must be >= 1")
        if self.max_limit < self.default_limit:
            raise ValueError("max_limit must be >= default_limit")
        return self


class StockbookConfig(BaseModel):
    """Root configuration for the entire stockbook system."""

    model_config = ConfigDict(frozen=True)

    provider: ProviderConfig = ProviderConfig()
    storage: StorageConfig = StorageConfig()
    cache: CacheConfig = CacheConfig()
    search: SearchConfig = SearchConfig()


DEFAULT_CONFIG_FILE = "stockbook.yml"


def load_config(
    config_path: str | None = None,
    env_prefix: str = "STOCKBOOK_",
) -> StockbookConfig:
    """Build the configuration from defaults, a YAML file, and the environment.

    Later sources win: built-in defaults, then the YAML file, then
    ``{env_prefix}SECTION__KEY`` variables. The YAML file is the first of
    ``config_path``, ``${env_prefix}CONFIG`` and ``./stockbook.yml`` that
    is given; an explicitly named file must exist.

    Example:
        STOCKBOOK_PROVIDER__TIMEOUT=5  ->  provider.timeout = 5.0
    """
    path = _find_config_file(config_path, env_prefix)
    settings = _read_yaml_mapping(path) if path is not None else {}
    settings = _merge_env_vars(settings, env_prefix)

    try:
        return StockbookConfig.model_validate(settings)
    except ValidationError as e:
        raise ConfigError(
            f"Invalid configuration: {e}",
            context={"field": _first_error_field(e), "value": str(path)},
        ) from e


def _find_config_file(explicit: str | None, env_prefix: str) -> Path | None:
    env_var = f"{env_prefix}CONFIG"
    candidates = (("config_path", explicit), (env_var, os.environ.get(env_var)))
    for source, candidate in candidates:
        if not candidate:
            continue
        path = Path(candidate)
        if not path.is_file():
            raise ConfigError(
                f"Config file not found: {candidate}",
                context={"field": source, "value": candidate},
            )
        return path

    default = Path(DEFAULT_CONFIG_FILE)
    return default if default.is_file() else None


def _read_yaml_mapping(path: Path) -> dict:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(
            f"Cannot load config file {path}: {e}",
            context={"field": "config_file", "value": str(path)},
        ) from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(
            f"Config file {path} must hold a mapping, not a {type(data).__name__}",
            context={"field": "config_file", "value": str(path)},
        )
    return data


def _first_error_field(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return ""
    return ".".join(str(part) for part in errors[0]["loc"])


def _merge_env_vars(base: dict, prefix: str) -> dict:
    """Return a copy of ``base`` with ``{prefix}A__B=value`` applied as ``a.b``.

    ``{prefix}CONFIG`` names the config file and is skipped.
    """
    merged = copy.deepcopy(base)
    for name, raw in sorted(os.environ.items()):
        if not name.startswith(prefix) or name == f"{prefix}CONFIG":
            continue
        *sections, leaf = name[len(prefix) :].lower().split("__")
        node = merged
        for section in sections:
            child = node.get(section)
            if not isinstance(child, dict):
                child = node[section] = {}
            node = child
        node[leaf] = _auto_cast(raw)
    return merged


def _auto_cast(value: str) -> str | int | float | bool:
    """Read an env var as a YAML scalar; anything but bool/int/float stays text."""
    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError:
        return value
    if isinstance(parsed, (bool, int, float)):
        return parsed
    return value
