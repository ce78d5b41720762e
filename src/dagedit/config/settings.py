"""
dagedit.config.settings - Typed views over the configuration dict

Each dataclass maps one or more TOML sections and validates its values
on construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from dagedit.config.loader import find_config_file, load_config, load_default_config
from dagedit.errors import ConfigError

if TYPE_CHECKING:
    from dagedit.graph.validation import EdgeValidator


def _non_negative_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{section}.{key} must be a non-negative integer, got {value!r}")
    return value


def _number(section: str, key: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{section}.{key} must be a number, got {value!r}")
    return float(value)


@dataclass(frozen=True)
class ValidationPolicy:
    """
    Structural rules applied before any edge is created.

    Attributes:
        allow_cycles: Permit edges that close a cycle (default: False)
        allow_self_loops: Permit a node to be its own parent (default: False)
        max_depth: Longest allowed root-to-leaf path; 0 = unlimited
        max_parents: Maximum parents per node; 0 = unlimited
        max_children: Maximum children per node; 0 = unlimited
        custom_validator: Extra predicate evaluated last (see EdgeValidator)
    """

    allow_cycles: bool = False
    allow_self_loops: bool = False
    max_depth: int = 0
    max_parents: int = 0
    max_children: int = 0
    custom_validator: EdgeValidator | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        _non_negative_int("validation", "max_depth", self.max_depth)
        _non_negative_int("multi_parent", "max_parents", self.max_parents)
        _non_negative_int("validation", "max_children", self.max_children)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ValidationPolicy:
        """
        Create a policy from the [validation] and [multi_parent] sections.

        Args:
            data: Full configuration dictionary

        Returns:
            ValidationPolicy with values from data or defaults
        """
        validation = data.get("validation", {})
        multi_parent = data.get("multi_parent", {})
        return cls(
            allow_cycles=bool(validation.get("allow_cycles", False)),
            allow_self_loops=bool(validation.get("allow_self_loops", False)),
            max_depth=validation.get("max_depth", 0),
            max_parents=multi_parent.get("max_parents", 0),
            max_children=validation.get("max_children", 0),
        )

    def with_validator(self, validator: EdgeValidator | None) -> ValidationPolicy:
        """Return a copy of this policy using validator as the custom predicate."""
        return replace(self, custom_validator=validator)


@dataclass(frozen=True)
class HistoryConfig:
    """
    Undo/redo settings.

    Attributes:
        enabled: Capture snapshots before mutations (default: True)
        max_stack_size: Cap for each of the undo and redo stacks (default: 50)
    """

    enabled: bool = True
    max_stack_size: int = 50

    def __post_init__(self) -> None:
        size = _non_negative_int("history", "max_stack_size", self.max_stack_size)
        if size < 1:
            raise ConfigError("history.max_stack_size must be at least 1")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> HistoryConfig:
        """Create from the [history] section of data."""
        history = data.get("history", {})
        return cls(
            enabled=bool(history.get("enabled", True)),
            max_stack_size=history.get("max_stack_size", 50),
        )


@dataclass(frozen=True)
class LayoutConfig:
    """
    Seeding offsets for nodes that enter an incremental layout uncached.

    Attributes:
        seed_offset_x: Horizontal offset from the first parent (default: 150)
        seed_offset_y: Vertical offset from the first parent (default: 0)
        root_seed_offset_y: Vertical offset from the viewport centre for
            parentless nodes (default: 50)
    """

    seed_offset_x: float = 150.0
    seed_offset_y: float = 0.0
    root_seed_offset_y: float = 50.0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> LayoutConfig:
        """Create from the [layout] section of data."""
        layout = data.get("layout", {})
        return cls(
            seed_offset_x=_number("layout", "seed_offset_x", layout.get("seed_offset_x", 150.0)),
            seed_offset_y=_number("layout", "seed_offset_y", layout.get("seed_offset_y", 0.0)),
            root_seed_offset_y=_number(
                "layout", "root_seed_offset_y", layout.get("root_seed_offset_y", 50.0)
            ),
        )


@dataclass(frozen=True)
class EditorConfig:
    """
    Complete editor configuration.

    Attributes:
        validation: Structural policy
        history: Undo/redo settings
        layout: Layout seeding settings
        id_prefix: Prefix for generated node ids (default: "node")
    """

    validation: ValidationPolicy = field(default_factory=ValidationPolicy)
    history: HistoryConfig = field(default_factory=HistoryConfig)
    layout: LayoutConfig = field(default_factory=LayoutConfig)
    id_prefix: str = "node"

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EditorConfig:
        """
        Create EditorConfig from a full configuration dictionary.

        Args:
            data: Dictionary as returned by load_config()

        Returns:
            EditorConfig with values from data or defaults

        Raises:
            ConfigError: If a value is out of range or has the wrong type
        """
        return cls(
            validation=ValidationPolicy.from_dict(data),
            history=HistoryConfig.from_dict(data),
            layout=LayoutConfig.from_dict(data),
            id_prefix=str(data.get("ids", {}).get("prefix", "node")),
        )

    @classmethod
    def discover(cls, start: Path | None = None) -> EditorConfig:
        """
        Load configuration from the nearest .dagedit.toml, or defaults.

        Args:
            start: Directory to search upward from (default: cwd)

        Returns:
            EditorConfig built from the file (or defaults) plus env overrides
        """
        config_path = find_config_file(start or Path.cwd())
        if config_path is not None:
            return cls.from_dict(load_config(config_path))
        return cls.from_dict(load_default_config())
