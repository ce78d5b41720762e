"""GraphStore - Canonical owner of the node collection.

The store is the single source of truth for structure. It hands out
clones from its query API, so no mutable node reference escapes; package
engines read through nodes_view() and must treat those nodes as read-only.

Structural edits should go through MutationEngine so that history and
notifications stay in step. The primitives here (insert, replace, pop)
perform no validation beyond id uniqueness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping

from dagedit.graph import algorithms
from dagedit.graph.GraphNode import GraphNode
from dagedit.graph.relations import Edge

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IntegrityIssue:
    """A structural invariant violation found by check_integrity().

    Attributes:
        kind: One of "dangling-parent", "duplicate-parent", "self-loop", "cycle".
        node_id: The node carrying the bad link (first node of a cycle).
        related_id: The offending parent id, if any.
        path: For cycles, the parent -> child path.
    """

    kind: str
    node_id: str
    related_id: str | None = None
    path: tuple[str, ...] = ()

    def __str__(self) -> str:
        if self.kind == "cycle":
            return f"cycle: {' -> '.join(self.path)}"
        if self.related_id is not None:
            return f"{self.kind}: {self.node_id} <- {self.related_id}"
        return f"{self.kind}: {self.node_id}"


class GraphStore:
    """Container for the canonical node collection.

    Nodes are kept in insertion order, which is also the order of
    snapshot() and all iteration.

    Example:
        >>> store = GraphStore([GraphNode("a"), GraphNode("b", parent_ids=["a"])])
        >>> store.children_of("a")
        ['b']
    """

    def __init__(self, nodes: Iterable[GraphNode] = ()) -> None:
        self._index: dict[str, GraphNode] = {}
        self.restore(nodes)

    # ─────────────────────────────────────────────────────────────────────────
    # Query API
    # ─────────────────────────────────────────────────────────────────────────

    def find_by_id(self, node_id: str) -> GraphNode | None:
        """Find node by ID.

        Args:
            node_id: The node ID to find.

        Returns:
            A clone of the matching node, or None if not found.
        """
        node = self._index.get(node_id)
        return node.clone() if node is not None else None

    def has_node(self, node_id: str) -> bool:
        """Check if a node ID is present."""
        return node_id in self._index

    def node_count(self) -> int:
        """Return total number of nodes."""
        return len(self._index)

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._index

    def node_ids(self) -> list[str]:
        """Return all node ids in insertion order."""
        return list(self._index)

    def all_nodes(self) -> Iterator[GraphNode]:
        """Iterate clones of all nodes."""
        for node in self._index.values():
            yield node.clone()

    def nodes_view(self) -> Mapping[str, GraphNode]:
        """Read-only id -> node view of the live collection.

        For package engines that need to traverse without cloning. The
        nodes themselves must not be modified.
        """
        return MappingProxyType(self._index)

    def iter_roots(self) -> Iterator[GraphNode]:
        """Iterate clones of nodes with no parents."""
        for node in self._index.values():
            if node.is_root:
                yield node.clone()

    def iter_leaves(self) -> Iterator[GraphNode]:
        """Iterate clones of nodes with no children."""
        for node_id in algorithms.leaf_ids(self._index.values()):
            yield self._index[node_id].clone()

    def children_of(self, node_id: str) -> list[str]:
        """Return ids of the direct children of node_id."""
        return [n.id for n in self._index.values() if node_id in n.parent_ids]

    def parents_of(self, node_id: str) -> list[str]:
        """Return the parent ids of node_id (empty if unknown)."""
        node = self._index.get(node_id)
        return list(node.parent_ids) if node is not None else []

    def edges(self) -> list[Edge]:
        """Return every parent -> child edge."""
        return algorithms.nodes_to_edges(self._index.values())

    def snapshot(self) -> list[GraphNode]:
        """Return an independent deep copy of the full node list."""
        return [node.clone() for node in self._index.values()]

    # ─────────────────────────────────────────────────────────────────────────
    # Integrity
    # ─────────────────────────────────────────────────────────────────────────

    def check_integrity(
        self,
        allow_cycles: bool = False,
        allow_self_loops: bool = False,
    ) -> list[IntegrityIssue]:
        """Report structural invariant violations.

        Checks that every parent id names a present node, that no parent is
        listed twice, and (unless allowed) that there are no self-loops or
        cycles.

        Returns:
            The issues found; empty when the collection is consistent.
        """
        issues: list[IntegrityIssue] = []
        for node in self._index.values():
            seen: set[str] = set()
            for parent_id in node.parent_ids:
                if parent_id in seen:
                    issues.append(IntegrityIssue("duplicate-parent", node.id, parent_id))
                seen.add(parent_id)
                if parent_id == node.id:
                    if not allow_self_loops:
                        issues.append(IntegrityIssue("self-loop", node.id, parent_id))
                elif parent_id not in self._index:
                    issues.append(IntegrityIssue("dangling-parent", node.id, parent_id))

        if not allow_cycles:
            # Self-loops are reported (or allowed) above.
            acyclic_view = [
                GraphNode(n.id, parent_ids=[p for p in n.parent_ids if p != n.id])
                for n in self._index.values()
            ]
            cycle = algorithms.find_cycle(acyclic_view)
            if cycle is not None:
                issues.append(IntegrityIssue("cycle", cycle[0], path=tuple(cycle)))
        return issues

    # ─────────────────────────────────────────────────────────────────────────
    # Mutation primitives
    # ─────────────────────────────────────────────────────────────────────────

    def restore(self, nodes: Iterable[GraphNode]) -> None:
        """Replace the whole collection with clones of nodes.

        Callers loading external data are responsible for checking the
        structural invariants (see check_integrity()).

        Raises:
            ValueError: If two nodes share an id.
        """
        index: dict[str, GraphNode] = {}
        for node in nodes:
            if node.id in index:
                raise ValueError(f"Duplicate node id '{node.id}'")
            index[node.id] = node.clone()
        self._index = index
        logger.debug("store restored with %d nodes", len(index))

    def insert(self, node: GraphNode) -> None:
        """Add a new node (stored as-is; pass a clone).

        Raises:
            ValueError: If the id is already present.
        """
        if node.id in self._index:
            raise ValueError(f"Node '{node.id}' already exists")
        self._index[node.id] = node

    def replace(self, node: GraphNode) -> None:
        """Swap in a new version of an existing node, keeping its order.

        Raises:
            KeyError: If the id is not present.
        """
        if node.id not in self._index:
            raise KeyError(f"Node '{node.id}' not found")
        self._index[node.id] = node

    def pop(self, node_id: str) -> GraphNode:
        """Remove and return a node without touching other nodes' links.

        Raises:
            KeyError: If the id is not present.
        """
        if node_id not in self._index:
            raise KeyError(f"Node '{node_id}' not found")
        return self._index.pop(node_id)
