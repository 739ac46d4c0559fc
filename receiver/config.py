"""
receiver/config.py
Persistent config in receiver_config.json, merged over defaults.

The pipeline never reads this file itself. Callers take a
PipelineSettings snapshot per invocation with settings_from_config(),
so a preference change mid-flight cannot split one message's
processing across two settings.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

from receiver.blocking.base import BLOCKING_MANAGERS
from receiver.errors import ConfigError

logger = logging.getLogger(__name__)

CONFIG_FILE = "receiver_config.json"

DEFAULT_CONFIG = {
    "db_path": "receiver.db",
    "drop_blocked": False,          # discard blocked messages instead of storing them
    "blocking_manager": "local",    # one of BLOCKING_MANAGERS
    "workers": 4,
    "shortcut_limit": 3,
    "api_host": "127.0.0.1",
    "api_port": 8766,
}


@dataclass(frozen=True)
class PipelineSettings:
    """Preferences the pipeline needs, frozen for one invocation."""
    drop:              bool = False
    blocking_manager:  str  = "local"


def _config_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path.cwd()
    return root / CONFIG_FILE


def load_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """Load config from receiver_config.json. Returns defaults if missing."""
    path = _config_path(project_root)
    if path.exists():
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return {**DEFAULT_CONFIG, **data}
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(f"Config load failed: {e}")
    return dict(DEFAULT_CONFIG)


def save_config(config: Dict[str, Any], project_root: Optional[Path] = None) -> Path:
    """Validate and persist config to receiver_config.json."""
    validate_config(config)
    path = _config_path(project_root)
    path.write_text(json.dumps(config, indent=2), encoding="utf-8")
    return path


def validate_config(config: Dict[str, Any]) -> None:
    manager = config.get("blocking_manager", DEFAULT_CONFIG["blocking_manager"])
    if manager not in BLOCKING_MANAGERS:
        raise ConfigError(
            f"Unknown blocking_manager {manager!r}; expected one of {', '.join(BLOCKING_MANAGERS)}"
        )
    drop = config.get("drop_blocked", DEFAULT_CONFIG["drop_blocked"])
    if not isinstance(drop, bool):
        raise ConfigError(f"drop_blocked must be true or false, got {drop!r}")
    workers = config.get("workers", DEFAULT_CONFIG["workers"])
    if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
        raise ConfigError(f"workers must be a positive integer, got {workers!r}")


def ensure_config(project_root: Optional[Path] = None) -> Dict[str, Any]:
    """
    Load or create config. Writes the defaults on first run.
    Returns merged config.
    """
    path = _config_path(project_root)
    config = load_config(project_root)
    if not path.exists():
        save_config(config, project_root)
        logger.info(f"Wrote default config to {path}")
    validate_config(config)
    return config


def settings_from_config(config: Dict[str, Any]) -> PipelineSettings:
    validate_config(config)
    return PipelineSettings(
        drop             = config.get("drop_blocked", False),
        blocking_manager = config.get("blocking_manager", "local"),
    )
