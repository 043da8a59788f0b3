"""
Configuration Loader (``fulfillment_kernel.config``).

Responsibility
--------------
Loads the kernel settings from YAML into a frozen ``FulfillmentConfig``.
The packaged ``defaults.yaml`` supplies every key; an optional override
file and a small set of environment variables are layered on top.

Invariants enforced
-------------------
* Every value is type-checked and range-checked; an unusable value raises
  ``ConfigurationError`` naming the key.  There are no silent fallbacks
  for values that were provided but malformed.
* Unknown keys in an override file are rejected so typos surface early.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad value or unknown key  -> ``ConfigurationError``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from fulfillment_kernel.exceptions import ConfigurationError

_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_ENV_DATABASE_URL = ("FULFILLMENT_DATABASE_URL", "DATABASE_URL")
_ENV_LOG_LEVEL = "FULFILLMENT_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class FulfillmentConfig:
    """Runtime settings for one fulfillment kernel process."""

    database_url: str
    echo: bool = False
    pool_size: int = 20
    max_overflow: int = 10
    pool_timeout: int = 30
    claim_max_attempts: int = 10
    low_stock_threshold: int = 5
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not isinstance(self.database_url, str) or not self.database_url.strip():
            raise ConfigurationError("database_url", "must be a non-empty string")
        if not isinstance(self.echo, bool):
            raise ConfigurationError("echo", "must be a boolean")
        _require_int("pool_size", self.pool_size, minimum=1)
        _require_int("max_overflow", self.max_overflow, minimum=0)
        _require_int("pool_timeout", self.pool_timeout, minimum=1)
        _require_int("claim_max_attempts", self.claim_max_attempts, minimum=1)
        _require_int("low_stock_threshold", self.low_stock_threshold, minimum=0)
        if str(self.log_level).upper() not in _LOG_LEVELS:
            raise ConfigurationError(
                "log_level", f"must be one of {', '.join(_LOG_LEVELS)}"
            )

    @property
    def is_postgres(self) -> bool:
        return self.database_url.startswith("postgresql")


def _require_int(key: str, value: Any, minimum: int) -> None:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(key, "must be an integer")
    if value < minimum:
        raise ConfigurationError(key, f"must be >= {minimum}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), "top-level YAML value must be a mapping")
    return data


def config_from_dict(data: dict[str, Any]) -> FulfillmentConfig:
    """Build a config from a mapping, rejecting unknown keys."""
    known = {f.name for f in fields(FulfillmentConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(unknown[0], "unknown configuration key")
    return FulfillmentConfig(**data)


def load_config(
    path: Path | str | None = None,
    environ: dict[str, str] | None = None,
) -> FulfillmentConfig:
    """
    Load the active configuration.

    Layering, lowest to highest precedence: packaged defaults, the YAML
    file at ``path`` (if given), then environment variables.

    Args:
        path: Optional override YAML file.
        environ: Environment mapping (defaults to ``os.environ``).

    Returns:
        A validated, frozen ``FulfillmentConfig``.
    """
    env = os.environ if environ is None else environ

    data = load_yaml_file(_DEFAULTS_PATH)
    if path is not None:
        data.update(load_yaml_file(Path(path)))

    config = config_from_dict(data)

    for var in _ENV_DATABASE_URL:
        if env.get(var):
            config = replace(config, database_url=env[var])
            break
    if env.get(_ENV_LOG_LEVEL):
        config = replace(config, log_level=env[_ENV_LOG_LEVEL].upper())

    return config
