"""Relations - Edges derived from parent links.

Edges are never stored; they are projected from each node's parent_ids
whenever a consumer (layout, export, renderer) needs them.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Edge:
    """A parent -> child edge.

    Attributes:
        source: The parent node ID.
        target: The child node ID.
    """

    source: str
    target: str

    @property
    def id(self) -> str:
        """Stable edge identifier used by renderers."""
        return f"{self.source}->{self.target}"

    def touches(self, node_id: str) -> bool:
        """Check whether either endpoint is node_id."""
        return self.source == node_id or self.target == node_id

    def __str__(self) -> str:
        return self.id
