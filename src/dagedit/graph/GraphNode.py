"""GraphNode - Node representation for the editable hierarchy.

This module provides the core value types:
- Position: Immutable 2D point in layout coordinates
- GraphNode: A node with an ordered set of parent links and an opaque payload

Nodes reference each other only by id. The parent list is the single
encoding of structure; children are always derived from it.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

# Fields a caller may change through update_node(); structure goes through
# the parent-link operations instead.
UPDATABLE_FIELDS = frozenset({"label", "data", "position", "locked", "classes"})


@dataclass(frozen=True)
class Position:
    """Immutable 2D point in layout coordinates."""

    x: float
    y: float

    def translated(self, dx: float, dy: float) -> Position:
        """Return this position shifted by (dx, dy)."""
        return Position(self.x + dx, self.y + dy)

    def as_dict(self) -> dict[str, float]:
        """Return the point as an {"x", "y"} mapping."""
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_value(cls, value: Any) -> Position:
        """Coerce a Position, an {"x", "y"} mapping, or an (x, y) pair.

        Args:
            value: The value to coerce.

        Returns:
            A Position instance.

        Raises:
            TypeError: If the value has no recognizable point shape.
        """
        if isinstance(value, Position):
            return value
        if isinstance(value, dict):
            return cls(float(value["x"]), float(value["y"]))
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return cls(float(value[0]), float(value[1]))
        raise TypeError(f"Cannot interpret {value!r} as a position")

    def __str__(self) -> str:
        return f"({self.x:g}, {self.y:g})"


@dataclass
class GraphNode:
    """A node in the editable hierarchy.

    Attributes:
        id: Unique, stable identifier.
        label: Human-readable display label.
        parent_ids: Ordered parent ids (parent -> this node edges).
        data: Opaque caller payload, deep-copied with the node.
        position: Optional manual position hint.
        locked: Whether the node is locked from editing in the host UI.
        classes: Host styling classes.
    """

    id: str
    label: str = ""
    parent_ids: list[str] = field(default_factory=list)
    data: Any = None
    position: Position | None = None
    locked: bool = False
    classes: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.parent_ids = list(self.parent_ids)
        self.classes = list(self.classes)
        if self.position is not None:
            self.position = Position.from_value(self.position)

    # Count and membership checks
    def parent_count(self) -> int:
        """Return number of parents."""
        return len(self.parent_ids)

    def has_parent(self, parent_id: str) -> bool:
        """Check if parent_id is one of this node's parents."""
        return parent_id in self.parent_ids

    @property
    def is_root(self) -> bool:
        """True if this node has no parents."""
        return not self.parent_ids

    def clone(self) -> GraphNode:
        """Create an independent structural copy of this node.

        Lists are copied and the payload is deep-copied, so mutating the
        clone never affects the original. Position is immutable and shared.

        Returns:
            A new GraphNode equal to this one.
        """
        return GraphNode(
            id=self.id,
            label=self.label,
            parent_ids=list(self.parent_ids),
            data=copy.deepcopy(self.data),
            position=self.position,
            locked=self.locked,
            classes=list(self.classes),
        )

    def with_changes(self, **changes: Any) -> GraphNode:
        """Return a clone with non-structural fields replaced.

        Args:
            **changes: Any of label, data, position, locked, classes.

        Returns:
            The updated clone.

        Raises:
            ValueError: If a field outside UPDATABLE_FIELDS is given.
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update field(s) {sorted(unknown)} on node '{self.id}'")
        node = self.clone()
        for key, value in changes.items():
            if key == "position" and value is not None:
                value = Position.from_value(value)
            elif key == "classes":
                value = list(value)
            elif key == "data":
                value = copy.deepcopy(value)
            setattr(node, key, value)
        return node

    def __str__(self) -> str:
        if self.parent_ids:
            return f"{self.id} <- {', '.join(self.parent_ids)}"
        return self.id
