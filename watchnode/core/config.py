"""Configuration management with validation.

Supports TOML and YAML configuration files with Pydantic validation.
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal
from urllib.parse import urlparse

import tomlkit
import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from tomlkit.exceptions import ParseError as TOMLKitParseError
from tomlkit.toml_document import TOMLDocument

from watchnode.core.errors import ConfigError

DEFAULT_COLLECTOR_URL = "http://127.0.0.1:10000"
DEFAULT_INTERVAL_S = 0.5


class WatcherConfig(BaseModel):
    """Watcher node configuration."""

    folder: str = "."
    collector_url: str = DEFAULT_COLLECTOR_URL
    agent_id: str | None = None  # Generated at startup when unset

    interval_s: float = Field(default=DEFAULT_INTERVAL_S, gt=0)
    timeout_s: float = Field(default=5.0, gt=0)

    # Pools: listing/diff/encode work, and HTTP exchanges
    worker_threads: int = Field(default=1, ge=1)
    network_threads: int = Field(default=4, ge=1)
    max_in_flight: int | None = Field(default=None, ge=1)  # None: unbounded overlap

    baseline_policy: Literal["eager", "acknowledged"] = "eager"
    console_verbosity: Literal["debug", "info", "warning", "error"] = Field(default="info")
    log_file: str | None = None

    @field_validator("collector_url")
    @classmethod
    def validate_collector_url(cls, v: str) -> str:
        """Collector must be an absolute http(s) URL."""
        parsed = urlparse(v)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(f"Collector URL must be an absolute http(s) URL: {v}")
        return v

    @field_validator("agent_id")
    @classmethod
    def validate_agent_id(cls, v: str | None) -> str | None:
        """Blank ids mean "generate one"."""
        if v is None:
            return None
        v = v.strip()
        return v or None


class Config(BaseModel):
    """Root configuration model."""

    watcher: WatcherConfig = Field(default_factory=WatcherConfig)

    model_config = {"extra": "forbid"}


def load_config(path: Path | str) -> Config:
    """Load and validate configuration from file.

    Supports both TOML and YAML formats (detected by extension).

    Args:
        path: Path to configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If file cannot be read, parsed, or validated.
    """
    path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        if path.suffix == ".toml":
            with open(path, "rb") as f:
                data = tomllib.load(f)
        elif path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            raise ConfigError(f"Unsupported config file extension: {path.suffix}")
    except ConfigError:
        raise
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to parse configuration file {path}: {e}") from e

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"Configuration validation failed: {e}") from e


def load_config_or_default(path: Path | str | None = None) -> Config:
    """Load config from file, or return default if file doesn't exist.

    Raises:
        ConfigError: If file exists but cannot be parsed or validated.
    """
    if path is None:
        return Config()

    path = Path(path)
    if not path.exists():
        return Config()

    return load_config(path)


def apply_overrides(config: Config, overrides: dict[str, Any]) -> Config:
    """Return a copy of ``config`` with watcher fields replaced and revalidated.

    ``None`` values are ignored so unset CLI flags leave the config alone.

    Raises:
        ConfigError: If an override does not validate.
    """
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return config
    try:
        watcher = WatcherConfig.model_validate({**config.watcher.model_dump(), **updates})
    except ValidationError as e:
        raise ConfigError(f"Invalid override: {e}") from e
    return Config(watcher=watcher)


def create_default_config(path: Path | str) -> None:
    """Create a default configuration file.

    Raises:
        ConfigError: If file already exists or cannot be written.
    """
    path = Path(path)

    if path.exists():
        raise ConfigError(f"Configuration file already exists: {path}")

    save_config(Config(), path)


def save_config(config: Config, path: Path | str) -> None:
    """Persist validated config to disk.

    TOML files keep existing comments and formatting where possible.

    Raises:
        ConfigError: If serialization or write fails.
    """
    path = Path(path)

    if path.suffix == ".toml":
        _save_toml_config_roundtrip(config, path)
        return
    if path.suffix not in (".yaml", ".yml"):
        raise ConfigError(f"Unsupported config file extension: {path.suffix}")

    content = yaml.dump(config.model_dump(), default_flow_style=False, sort_keys=False)
    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise ConfigError(f"Failed to save configuration file {path}: {e}") from e


def _save_toml_config_roundtrip(config: Config, path: Path) -> None:
    """Save TOML config while preserving existing comments/format where possible."""
    try:
        with open(path, encoding="utf-8") as f:
            doc = tomlkit.parse(f.read())
    except FileNotFoundError:
        doc = tomlkit.document()
    except (OSError, TOMLKitParseError) as e:
        raise ConfigError(f"Failed to parse existing TOML for save: {e}") from e

    _sync_toml_document_from_config(doc, config)

    try:
        with open(path, "w", encoding="utf-8") as f:
            f.write(tomlkit.dumps(doc))
    except OSError as e:
        raise ConfigError(f"Failed writing TOML config {path}: {e}") from e


def _sync_toml_document_from_config(doc: TOMLDocument, config: Config) -> None:
    """Mutate TOML document to match config model."""
    watcher_table = doc.get("watcher")
    if watcher_table is None or not isinstance(watcher_table, dict):
        watcher_table = tomlkit.table()
        doc["watcher"] = watcher_table

    # TOML has no null; unset optionals are simply absent
    data = config.watcher.model_dump(exclude_none=True)
    existing_keys = {key for key in watcher_table.keys() if isinstance(key, str)}
    for key in existing_keys - set(data.keys()):
        del watcher_table[key]
    for key, value in data.items():
        watcher_table[key] = tomlkit.item(value)
