# === NAVMAP v1 ===
# {
#   "module": "GcsCensus.config.loader",
#   "purpose": "Configuration Loading with File/Env/CLI Precedence.",
#   "sections": [
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "assign-nested",
#       "name": "_assign_nested",
#       "anchor": "function-assign-nested",
#       "kind": "function"
#     },
#     {
#       "id": "coerce-env-value",
#       "name": "_coerce_env_value",
#       "anchor": "function-coerce-env-value",
#       "kind": "function"
#     },
#     {
#       "id": "merge-env-overrides",
#       "name": "_merge_env_overrides",
#       "anchor": "function-merge-env-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "merge-cli-overrides",
#       "name": "_merge_cli_overrides",
#       "anchor": "function-merge-cli-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/CLI Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: GCSCENSUS_* prefixed variables override file
3. **CLI level**: programmatic overrides win

Environment variables use double-underscore notation:
  GCSCENSUS_PIPELINE__COOKIE="session=xyz"  →  pipeline.cookie="session=xyz"
  GCSCENSUS_CREDENTIALS__SCOPES='["devstorage.read_only"]'  →  credentials.scopes=[...]

CLI overrides accept either nested dicts or dotted keys
(``{"pipeline.latency_ms": 5}``). Environment values that look like JSON
lists or objects are decoded; other values stay strings for pydantic to coerce.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from GcsCensus.config.models import CensusConfig
from GcsCensus.errors import ConfigurationError

_LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "GCSCENSUS_"

# ============================================================================
# Helpers
# ============================================================================


def _read_file(path: str | Path) -> dict[str, Any]:
    """
    Read YAML or JSON config file.

    Args:
        path: File path (suffix determines format: .yaml/.yml or .json)

    Returns:
        Parsed config dictionary

    Raises:
        ConfigurationError: If file cannot be read or parsed
    """
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigurationError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    elif suffix == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e
    else:
        raise ConfigurationError(f"Unsupported file format: {suffix}. Use .yaml or .json")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping at the top level")
    return data


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """
    Assign value to nested dict using dot notation.

    Example:
        _assign_nested(data, "pipeline.cookie", "a=1")
        → data["pipeline"]["cookie"] = "a=1"
    """
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Decode JSON lists and objects; leave every other value as a string.

    Scalars stay strings so a str field such as ``demo.object_name=2024``
    keeps its text; pydantic coerces ``"50"`` or ``"false"`` for numeric and
    boolean fields itself.
    """
    stripped = value.strip()
    if stripped[:1] in ("[", "{"):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            pass
    return value


def _merge_env_overrides(
    data: dict[str, Any], env: Mapping[str, str], env_prefix: str = ENV_PREFIX
) -> dict[str, Any]:
    """
    Overlay environment variables onto config dict.

    Looks for ``env_prefix`` variables and maps double-underscore notation to
    nested dicts.
    """
    for env_key, env_value in env.items():
        if not env_key.startswith(env_prefix):
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        dotted_key = relative_key.replace("__", ".")
        coerced_value = _coerce_env_value(env_value)

        _assign_nested(data, dotted_key, coerced_value)
        _LOGGER.debug("Environment override: %s → %s", env_key, dotted_key)

    return data


def _merge_cli_overrides(
    data: dict[str, Any], cli_overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """
    Recursively merge CLI overrides into base config dict.

    Dotted keys are expanded; later values win. ``None`` values are skipped
    so optional CLI flags that were not passed leave lower layers intact.
    """
    if not cli_overrides:
        return data

    for key, value in cli_overrides.items():
        if value is None:
            continue
        if "." in key:
            _assign_nested(data, key, value)
        elif isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_cli_overrides(data[key], value)
        else:
            data[key] = value
        _LOGGER.debug("CLI override: %s", key)

    return data


# ============================================================================
# Public API
# ============================================================================


def load_config(
    path: str | Path | None = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    env_prefix: str = ENV_PREFIX,
    cli_overrides: Mapping[str, Any] | None = None,
) -> CensusConfig:
    """
    Load CensusConfig from file, environment, and CLI with proper precedence.

    **Precedence:** file < environment < CLI

    Args:
        path: Path to YAML/JSON config file (optional)
        env: Environment mapping (default: ``os.environ``)
        env_prefix: Environment variable prefix (default: GCSCENSUS_)
        cli_overrides: CLI override dict (optional)

    Returns:
        Validated CensusConfig instance

    Raises:
        ConfigurationError: If the file cannot be read or the result is invalid
    """
    data: dict[str, Any] = {}

    if path:
        data = _read_file(path)
        _LOGGER.info("Loaded config from %s", path)

    data = _merge_env_overrides(data, os.environ if env is None else env, env_prefix)
    data = _merge_cli_overrides(data, cli_overrides)

    try:
        config = CensusConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e

    _LOGGER.debug("Configuration validated", extra={"config_hash": config.config_hash()[:8]})
    return config


def export_config_schema() -> dict[str, Any]:
    """Export JSON Schema for CensusConfig (Pydantic v2 format)."""
    return CensusConfig.model_json_schema()
