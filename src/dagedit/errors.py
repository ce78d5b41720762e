"""Exception types for dagedit.

User edits never raise: they report an EditResult. These exceptions cover
misconfiguration and host-side misuse only.
"""

from __future__ import annotations


class DagEditError(Exception):
    """Base class for all dagedit exceptions."""


class ConfigError(DagEditError):
    """Invalid configuration value or unreadable config file."""

    def __init__(self, message: str, config_path: str | None = None) -> None:
        self.config_path = config_path
        where = f" at '{config_path}'" if config_path else ""
        super().__init__(f"Configuration error{where}: {message}")


class LayoutError(DagEditError):
    """Layout stabilizer used out of sequence (e.g. settle() with nothing pending)."""
