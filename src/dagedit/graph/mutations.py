"""MutationEngine - Apply structural edits to a GraphStore.

The engine assumes its input was already validated (see ValidationEngine)
and only guards against programming errors: unknown ids raise KeyError,
inconsistent arguments raise ValueError.

Every mutation:
1. snapshots the store through the HistoryEngine hook
2. commits the change to the store
3. publishes GraphEvents
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from dagedit.graph.events import EventBus, EventKind, GraphEvent
from dagedit.graph.GraphNode import GraphNode
from dagedit.graph.history import HistoryEngine
from dagedit.graph.store import GraphStore

logger = logging.getLogger(__name__)


class MutationEngine:
    """Applies edits to a store with history capture and notifications.

    Args:
        store: The store to mutate.
        history: Snapshot hook called before every mutation; optional.
        events: Bus receiving link and node events; optional.
    """

    def __init__(
        self,
        store: GraphStore,
        history: HistoryEngine | None = None,
        events: EventBus | None = None,
    ) -> None:
        self._store = store
        self._history = history
        self._events = events

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _require(self, node_id: str) -> GraphNode:
        node = self._store.nodes_view().get(node_id)
        if node is None:
            raise KeyError(f"Node '{node_id}' not found")
        return node

    def _save_state(self) -> None:
        if self._history is not None:
            self._history.save_state(self._store.nodes_view().values())

    def _emit(self, kind: EventKind, **fields: Any) -> None:
        if self._events is not None:
            self._events.emit(GraphEvent(kind, **fields))

    def _emit_link(self, kind: EventKind, parent_id: str, child_id: str) -> None:
        self._emit(kind, source_id=parent_id, target_id=child_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Node Mutation API
    # ─────────────────────────────────────────────────────────────────────────

    def add_node(self, node: GraphNode) -> None:
        """Insert a new node with its parent links.

        Args:
            node: The node to add; a clone is stored.

        Raises:
            ValueError: If the id exists or a parent is listed twice.
            KeyError: If a parent id (other than the node's own) is unknown.
        """
        if self._store.has_node(node.id):
            raise ValueError(f"Node '{node.id}' already exists")
        if len(set(node.parent_ids)) != len(node.parent_ids):
            raise ValueError(f"Node '{node.id}' lists a parent more than once")
        for parent_id in node.parent_ids:
            if parent_id != node.id:
                self._require(parent_id)

        self._save_state()
        self._store.insert(node.clone())
        logger.debug("added node %s under %s", node.id, node.parent_ids)
        self._emit(EventKind.NODE_ADDED, node_id=node.id)
        for parent_id in node.parent_ids:
            self._emit_link(EventKind.LINK_ADDED, parent_id, node.id)

    def update_node(self, node_id: str, **changes: Any) -> None:
        """Replace non-structural fields (label, data, position, locked, classes).

        Raises:
            KeyError: If node_id is not found.
            ValueError: If a structural or unknown field is given.
        """
        node = self._require(node_id)
        updated = node.with_changes(**changes)

        self._save_state()
        self._store.replace(updated)
        logger.debug("updated %s on %s", sorted(changes), node_id)
        self._emit(EventKind.NODE_UPDATED, node_id=node_id, details={"fields": sorted(changes)})

    def remove_node(self, node_id: str) -> None:
        """Delete a node and strip it from every other node's parent list.

        Both happen under one snapshot, so a single undo restores the node
        and all of its links.

        Raises:
            KeyError: If node_id is not found.
        """
        node = self._require(node_id)
        child_ids = [cid for cid in self._store.children_of(node_id) if cid != node_id]

        self._save_state()
        self._store.pop(node_id)
        for child_id in child_ids:
            child = self._store.nodes_view()[child_id].clone()
            child.parent_ids = [pid for pid in child.parent_ids if pid != node_id]
            self._store.replace(child)

        logger.debug("removed node %s (children %s)", node_id, child_ids)
        for parent_id in node.parent_ids:
            self._emit_link(EventKind.LINK_REMOVED, parent_id, node_id)
        for child_id in child_ids:
            self._emit_link(EventKind.LINK_REMOVED, node_id, child_id)
        self._emit(EventKind.NODE_REMOVED, node_id=node_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Edge Mutation API
    # ─────────────────────────────────────────────────────────────────────────

    def add_parent(self, child_id: str, parent_id: str) -> None:
        """Append parent_id to child_id's parent list.

        Raises:
            KeyError: If either node is not found.
            ValueError: If the edge already exists.
        """
        child = self._require(child_id)
        self._require(parent_id)
        if parent_id in child.parent_ids:
            raise ValueError(f"Edge '{parent_id}' -> '{child_id}' already exists")
        self._apply_parents("add_parent", child, [*child.parent_ids, parent_id])

    def remove_parent(self, child_id: str, parent_id: str) -> None:
        """Drop parent_id from child_id's parent list.

        Raises:
            KeyError: If child_id is not found.
            ValueError: If parent_id is not a parent of child_id.
        """
        child = self._require(child_id)
        if parent_id not in child.parent_ids:
            raise ValueError(f"Edge '{parent_id}' -> '{child_id}' does not exist")
        remaining = [pid for pid in child.parent_ids if pid != parent_id]
        self._apply_parents("remove_parent", child, remaining)

    def set_parents(self, child_id: str, parent_ids: Sequence[str]) -> None:
        """Replace child_id's whole parent list.

        Emits LINK_ADDED for each gained parent, then LINK_REMOVED for each
        dropped parent.

        Raises:
            KeyError: If any referenced node is not found.
            ValueError: If a parent is listed twice.
        """
        child = self._require(child_id)
        if len(set(parent_ids)) != len(parent_ids):
            raise ValueError(f"Parent list for '{child_id}' contains duplicates")
        for parent_id in parent_ids:
            self._require(parent_id)
        self._apply_parents("set_parents", child, list(parent_ids))

    def reparent(self, child_id: str, new_parent_id: str) -> None:
        """Make new_parent_id the only parent of child_id.

        Raises:
            KeyError: If either node is not found.
        """
        child = self._require(child_id)
        self._require(new_parent_id)
        self._apply_parents("reparent", child, [new_parent_id])

    def detach(self, node_id: str) -> None:
        """Remove all parents, making node_id a root.

        Raises:
            KeyError: If node_id is not found.
            ValueError: If the node is already a root.
        """
        node = self._require(node_id)
        if not node.parent_ids:
            raise ValueError(f"Node '{node_id}' has no parents")
        self._apply_parents("detach", node, [])

    def _apply_parents(
        self, operation: str, child: GraphNode, new_parent_ids: list[str]
    ) -> None:
        old_parent_ids = list(child.parent_ids)
        updated = child.clone()
        updated.parent_ids = new_parent_ids

        self._save_state()
        self._store.replace(updated)
        logger.debug("%s %s: %s -> %s", operation, child.id, old_parent_ids, new_parent_ids)
        for parent_id in new_parent_ids:
            if parent_id not in old_parent_ids:
                self._emit_link(EventKind.LINK_ADDED, parent_id, child.id)
        for parent_id in old_parent_ids:
            if parent_id not in new_parent_ids:
                self._emit_link(EventKind.LINK_REMOVED, parent_id, child.id)


__all__ = ["MutationEngine"]
