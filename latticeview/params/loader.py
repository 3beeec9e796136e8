"""YAML persistence for ViewerConfig.

A config file holds any subset of the groups in ViewerConfig; missing
groups and keys take their defaults:

    channel:
      retry_budget: 500
    stream:
      combined_port: 5000
"""

from pathlib import Path
from typing import Any

import yaml

from latticeview.params.schema import ValidationError, ViewerConfig


def load_config(path: str | Path) -> ViewerConfig:
    """Read and validate a viewer config.

    An empty file is the default config.

    Raises:
        FileNotFoundError: no file at path
        ValidationError: top level is not a mapping, or a value is invalid
        yaml.YAMLError: the file is not YAML
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValidationError(
            f"Configuration must be a dictionary of parameter groups, got {type(data).__name__}"
        )
    return ViewerConfig.from_dict(data)


def save_config(config: ViewerConfig, path: str | Path) -> None:
    """Write every group of config to path, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.safe_dump(config.to_dict(), default_flow_style=False, sort_keys=False))


def load_config_with_overrides(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ViewerConfig:
    """Defaults or a file, then per-group overrides on top.

    Example:
        load_config_with_overrides("viewer.yaml", {"stream": {"combined_port": 5000}})
    """
    config = load_config(path) if path is not None else ViewerConfig()
    if overrides:
        config = config.with_updates(**overrides)
    return config


def merge_configs(base: ViewerConfig, override: ViewerConfig) -> ViewerConfig:
    """Layer override on base.

    Only values that override changes from the defaults are taken, so an
    override built from a partial file does not reset what base set.
    """
    merged = base.to_dict()
    defaults = ViewerConfig().to_dict()
    for group, values in override.to_dict().items():
        for key, value in values.items():
            if value != defaults[group][key]:
                merged[group][key] = value
    return ViewerConfig.from_dict(merged)
