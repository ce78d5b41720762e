"""
dagedit.config - Configuration loading and defaults
"""

from dagedit.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG
from dagedit.config.loader import (
    _apply_env_overrides,
    _try_parse_env_value,
    find_config_file,
    load_config,
    load_default_config,
    merge_configs,
)
from dagedit.config.settings import EditorConfig, HistoryConfig, LayoutConfig, ValidationPolicy

__all__ = [
    "load_config",
    "load_default_config",
    "find_config_file",
    "merge_configs",
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG",
    "EditorConfig",
    "HistoryConfig",
    "LayoutConfig",
    "ValidationPolicy",
    "_apply_env_overrides",
    "_try_parse_env_value",
]
