"""Configuration file loading and CLI-over-config precedence.

Settings come from, in decreasing priority: command line flags, the config
file (``--config`` or the MODSTAGE_CONFIG environment variable), and the
defaults in ``Constants``.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from constants import Constants

logger = logging.getLogger(__name__)

CONFIG_KEYS = (
    "mod_path", "data_path", "targets", "dump_data", "dump_history", "full_debug",
    "output_dir", "workers", "log_level",
)


class ConfigError(Exception):
    """The configuration file is unreadable or has the wrong shape."""


@dataclass
class RunConfig:
    mod_path: Optional[str] = None
    data_path: Optional[str] = None
    targets: List[str] = field(default_factory=list)
    dump_data: bool = False
    dump_history: bool = False
    full_debug: bool = False
    output_dir: str = Constants.DEFAULT_OUTPUT_DIR
    workers: int = Constants.DEFAULT_WORKERS
    log_level: Optional[str] = None
    log_file: Optional[str] = None


def load_config_file(config_path: Optional[str]) -> Dict[str, Any]:
    """Load a YAML or JSON config file.

    ``.json`` files are parsed as JSON, anything else as YAML. A ``modstage``
    section is used when present, otherwise the whole document.

    Raises:
        ConfigError: When the file cannot be read or is not a mapping.
    """
    if not config_path:
        return {}
    try:
        with open(config_path, "r", encoding="utf-8") as fh:
            if config_path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {config_path}") from e
    except (OSError, ValueError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must contain a mapping")
    data = data.get("modstage", data)
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path}: 'modstage' must be a mapping")

    unknown = sorted(set(data) - set(CONFIG_KEYS))
    if unknown:
        logger.warning("Ignoring unknown config keys: %s", ", ".join(unknown))
    return {k: v for k, v in data.items() if k in CONFIG_KEYS}


def resolve_config(args) -> RunConfig:
    """Merge parsed CLI arguments over the config file over defaults.

    Raises:
        ConfigError: When the config file is unusable or a value has the wrong type.
    """
    config_path = getattr(args, "CONFIG", None) or os.environ.get(Constants.CONFIG_ENV)
    file_cfg = load_config_file(config_path)

    cfg = RunConfig()
    for key, value in file_cfg.items():
        setattr(cfg, key, value)

    if isinstance(cfg.targets, str):
        cfg.targets = [cfg.targets]
    if not isinstance(cfg.targets, list):
        raise ConfigError("'targets' must be a list of mod names")

    cli_values = {
        "mod_path": getattr(args, "MOD_PATH", None),
        "data_path": getattr(args, "DATA_PATH", None),
        "targets": getattr(args, "TARGETS", None) or None,
        "dump_data": getattr(args, "DUMP_DATA", None),
        "dump_history": getattr(args, "DUMP_HISTORY", None),
        "full_debug": getattr(args, "FULL_DEBUG", None),
        "output_dir": getattr(args, "OUTPUT_DIR", None),
        "workers": getattr(args, "WORKERS", None),
        "log_level": getattr(args, "LOG_LEVEL", None),
        "log_file": getattr(args, "LOG_FILE", None),
    }
    for key, value in cli_values.items():
        if value is not None:
            setattr(cfg, key, value)

    try:
        cfg.workers = max(1, int(cfg.workers))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'workers' must be an integer, got {cfg.workers!r}") from e
    cfg.dump_data = bool(cfg.dump_data)
    cfg.dump_history = bool(cfg.dump_history)
    cfg.full_debug = bool(cfg.full_debug)
    if cfg.log_level:
        cfg.log_level = str(cfg.log_level).upper()
    return cfg
