"""
dagedit.config.loader - Locate, parse and merge .dagedit.toml files

Configuration is a nested dict keyed by TOML section. File values are
deep-merged over DEFAULT_CONFIG, then DAGEDIT_<SECTION>_<KEY> environment
variables are applied on top.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import tomlkit
from tomlkit.exceptions import TOMLKitError

from dagedit.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG, ENV_PREFIX
from dagedit.errors import ConfigError

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"^[+-]?\d+$")
_FLOAT_RE = re.compile(r"^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$")


def find_config_file(start: Path) -> Path | None:
    """Find .dagedit.toml in start or any parent directory.

    Args:
        start: Directory (or file inside the directory) to search from.

    Returns:
        Path to the config file, or None if none exists up to the root.
    """
    current = start.resolve()
    if current.is_file():
        current = current.parent
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def merge_configs(defaults: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Deep-merge override into a copy of defaults.

    Nested dicts merge key by key; any other value in override replaces
    the default outright.
    """
    merged = copy.deepcopy(dict(defaults))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def parse_config_text(text: str, source: str | None = None) -> dict[str, Any]:
    """Parse TOML text into plain Python containers.

    Raises:
        ConfigError: If the text is not valid TOML.
    """
    try:
        document = tomlkit.parse(text)
    except TOMLKitError as e:
        raise ConfigError(str(e), source) from e
    return document.unwrap()


def load_config(path: Path, environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Load a config file merged over DEFAULT_CONFIG, with env overrides.

    Args:
        path: The .dagedit.toml file.
        environ: Environment to read overrides from (default: os.environ).

    Returns:
        The merged configuration dict.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"cannot read config file: {e}", str(path)) from e

    user_config = parse_config_text(text, str(path))
    logger.debug("loaded config from %s", path)
    return _apply_env_overrides(merge_configs(DEFAULT_CONFIG, user_config), environ)


def load_default_config(environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """DEFAULT_CONFIG with env overrides applied."""
    return _apply_env_overrides(copy.deepcopy(DEFAULT_CONFIG), environ)


def _try_parse_env_value(value: str) -> Any:
    """Interpret an environment string as a typed config value.

    - "true"/"false" (any case) become booleans
    - integer and decimal literals become int/float
    - JSON arrays and objects are parsed; malformed JSON stays a string
    - anything else is returned unchanged
    """
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    stripped = value.strip()
    if _INT_RE.match(stripped):
        return int(stripped)
    if _FLOAT_RE.match(stripped):
        return float(stripped)
    if stripped.startswith(("[", "{")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return value
    return value


def _split_env_key(key: str, sections: list[str]) -> tuple[str, str] | None:
    """Split "multi_parent_max_parents" into ("multi_parent", "max_parents").

    Known section names are matched longest first so sections containing
    underscores resolve correctly; otherwise the first underscore splits.
    """
    for section in sorted(sections, key=len, reverse=True):
        prefix = section + "_"
        if key.startswith(prefix) and len(key) > len(prefix):
            return section, key[len(prefix) :]
    if "_" in key:
        section, _, name = key.partition("_")
        if section and name:
            return section, name
    return None


def _apply_env_overrides(
    config: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Apply DAGEDIT_<SECTION>_<KEY> environment variables to config.

    Creates missing sections. Modifies and returns config.
    """
    env = os.environ if environ is None else environ
    sections = list(DEFAULT_CONFIG) + [k for k in config if k not in DEFAULT_CONFIG]
    for name, raw in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        split = _split_env_key(name[len(ENV_PREFIX) :].lower(), sections)
        if split is None:
            logger.debug("ignoring env var %s (no section/key)", name)
            continue
        section, key = split
        target = config.setdefault(section, {})
        if not isinstance(target, dict):
            raise ConfigError(f"{name} overrides non-table section '{section}'")
        target[key] = _try_parse_env_value(raw)
        logger.debug("env override %s.%s from %s", section, key, name)
    return config
