"""
Parameter management for LatticeView.

This module provides:
- Validated, immutable parameter containers (schema.py)
- YAML loading utilities (loader.py)
"""

from latticeview.params.schema import (
    ChannelParams,
    BACKENDS,
    DisplayParams,
    RuntimeParams,
    StreamlineParams,
    StreamParams,
    ValidationError,
    ViewerConfig,
)
from latticeview.params.loader import (
    load_config,
    load_config_with_overrides,
    merge_configs,
    save_config,
)

__all__ = [
    # Schema classes
    "ChannelParams",
    "StreamParams",
    "StreamlineParams",
    "DisplayParams",
    "RuntimeParams",
    "BACKENDS",
    "ViewerConfig",
    "ValidationError",
    # Loader functions
    "load_config",
    "load_config_with_overrides",
    "merge_configs",
    "save_config",
]
