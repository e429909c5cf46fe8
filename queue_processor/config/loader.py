"""YAML configuration loader with environment variable overrides.

# ─── CONFIGURATION HIERARCHY ───────────────────────────────────────────
#
#   1. config/config.yaml  - static defaults, including the per-queue table
#   2. .env file           - local developer overrides (not committed)
#   3. Environment vars    - set at deploy time
#
# load_config() reads the YAML first, then deep-merges the scalar values
# from Settings on top.  queue_configs() turns the ``queues:`` section into
# QueueConfig objects, falling back to the built-in table for any queue
# the YAML does not mention.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from queue_processor.config.settings import Settings
from queue_processor.dispatch.queues import DEFAULT_QUEUE_CONFIGS, QueueConfig
from queue_processor.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings instance to overlay; a fresh one is built when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    config_path = Path(path)
    if config_path.exists():
        with open(config_path) as f:
            yaml_config = yaml.safe_load(f) or {}
    else:
        yaml_config = {}

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "host": settings.app_host,
            "port": settings.app_port,
            "env": settings.app_env,
        },
        "coordination": {
            "kv_backend": settings.kv_backend,
            "kv_sqlite_path": settings.kv_sqlite_path,
            "state_retention_days": settings.state_retention_days,
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def queue_configs(config: dict[str, Any]) -> dict[str, QueueConfig]:
    """Build the queue table from the ``queues:`` section of *config*.

    Raises:
        ConfigurationError: If a queue entry does not validate.
    """
    resolved = dict(DEFAULT_QUEUE_CONFIGS)
    for name, entry in (config.get("queues") or {}).items():
        base = resolved.get(name)
        merged: dict[str, Any] = base.model_dump() if base else {}
        merged.update(entry or {})
        merged["name"] = name
        try:
            resolved[name] = QueueConfig.model_validate(merged)
        except ValidationError as exc:
            raise ConfigurationError(
                message=f"Invalid configuration for queue '{name}': {exc.errors()[0]['msg']}",
                provider_name="config",
            ) from exc
    return resolved


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
