"""CollapseEngine - Hide the descendants of user-collapsed nodes.

Each collapsed node records the descendant closure it hides. The hidden
set is always the union of those closures and is recomputed from scratch
after every change; it is never patched incrementally.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, Iterator

from dagedit.graph import algorithms
from dagedit.graph.GraphNode import GraphNode
from dagedit.graph.results import EditResult, RejectionReason
from dagedit.graph.store import GraphStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CollapseEntry:
    """One collapsed node.

    Attributes:
        node_id: The collapsed node.
        hidden_descendant_ids: Its descendant closure at last recompute.
        collapsed_at: Epoch seconds when the node was collapsed.
    """

    node_id: str
    hidden_descendant_ids: frozenset[str] = frozenset()
    collapsed_at: float = field(default_factory=time.time)


@dataclass(frozen=True)
class CollapseState:
    """Serializable view of the collapse engine.

    Attributes:
        entries: Collapsed nodes in collapse order.
        hidden_ids: Union of every entry's hidden descendants.
    """

    entries: tuple[CollapseEntry, ...] = ()
    hidden_ids: frozenset[str] = frozenset()

    @property
    def collapsed_ids(self) -> list[str]:
        return [entry.node_id for entry in self.entries]


class CollapseEngine:
    """Tracks collapsed nodes over a GraphStore.

    Example:
        >>> engine = CollapseEngine(store)
        >>> result = engine.collapse("A")
        >>> engine.hidden_ids
        frozenset({'B', 'C', 'D'})
    """

    def __init__(self, store: GraphStore) -> None:
        self._store = store
        self._entries: dict[str, CollapseEntry] = {}
        self._hidden: frozenset[str] = frozenset()

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    def _descendants(self, node_id: str) -> frozenset[str]:
        return frozenset(algorithms.descendants(self._store.nodes_view().values(), node_id))

    def _recompute_hidden(self) -> None:
        hidden: set[str] = set()
        for entry in self._entries.values():
            hidden.update(entry.hidden_descendant_ids)
        self._hidden = frozenset(hidden)

    # ─────────────────────────────────────────────────────────────────────────
    # Operations
    # ─────────────────────────────────────────────────────────────────────────

    def collapse(self, node_id: str) -> EditResult:
        """Hide every descendant of node_id.

        Returns:
            Acceptance with the ids hidden by this node, or NODE_NOT_FOUND,
            ALREADY_COLLAPSED, CANNOT_COLLAPSE_LEAF.
        """
        if not self._store.has_node(node_id):
            return EditResult.reject(
                RejectionReason.NODE_NOT_FOUND,
                f'Node with id "{node_id}" not found',
                node_id=node_id,
            )
        if node_id in self._entries:
            return EditResult.reject(
                RejectionReason.ALREADY_COLLAPSED,
                f'Node "{node_id}" is already collapsed',
                node_id=node_id,
            )
        hidden = self._descendants(node_id)
        if not hidden:
            return EditResult.reject(
                RejectionReason.CANNOT_COLLAPSE_LEAF,
                f'Node "{node_id}" has no children to collapse',
                node_id=node_id,
            )

        self._entries[node_id] = CollapseEntry(node_id, hidden)
        self._recompute_hidden()
        logger.debug("collapsed %s (hides %d)", node_id, len(hidden))
        return EditResult.ok(node_id=node_id, hidden=sorted(hidden))

    def expand(self, node_id: str) -> EditResult:
        """Undo a collapse. Rejected with NOT_COLLAPSED otherwise."""
        if node_id not in self._entries:
            return EditResult.reject(
                RejectionReason.NOT_COLLAPSED,
                f'Node "{node_id}" is not collapsed',
                node_id=node_id,
            )
        del self._entries[node_id]
        self._recompute_hidden()
        logger.debug("expanded %s", node_id)
        return EditResult.ok(node_id=node_id)

    def toggle(self, node_id: str) -> EditResult:
        """Expand node_id if collapsed, collapse it otherwise."""
        if node_id in self._entries:
            return self.expand(node_id)
        return self.collapse(node_id)

    def expand_all(self) -> None:
        """Expand every collapsed node."""
        self.clear()

    def reveal_node(self, node_id: str) -> EditResult:
        """Expand every collapsed ancestor of node_id so it becomes visible.

        Returns:
            Acceptance listing the expanded ids, or NODE_NOT_FOUND.
        """
        if not self._store.has_node(node_id):
            return EditResult.reject(
                RejectionReason.NODE_NOT_FOUND,
                f'Node with id "{node_id}" not found',
                node_id=node_id,
            )
        ancestor_ids = algorithms.ancestors(self._store.nodes_view().values(), node_id)
        expanded = [aid for aid in ancestor_ids if aid in self._entries]
        for ancestor_id in expanded:
            del self._entries[ancestor_id]
        if expanded:
            self._recompute_hidden()
        return EditResult.ok(node_id=node_id, expanded=expanded)

    def on_node_deleted(self, node_id: str) -> None:
        """Forget node_id and recompute against the new structure."""
        self._entries.pop(node_id, None)
        self.refresh()

    def refresh(self) -> None:
        """Re-derive every entry from the store's current structure.

        Entries whose node no longer exists are dropped. Call after any
        structural change, undo, redo or restore.
        """
        view = self._store.nodes_view()
        refreshed: dict[str, CollapseEntry] = {}
        for node_id, entry in self._entries.items():
            if node_id not in view:
                logger.debug("dropping collapse entry for missing node %s", node_id)
                continue
            refreshed[node_id] = CollapseEntry(
                node_id, self._descendants(node_id), entry.collapsed_at
            )
        self._entries = refreshed
        self._recompute_hidden()

    def clear(self) -> None:
        """Forget all collapse state."""
        self._entries.clear()
        self._hidden = frozenset()

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def hidden_ids(self) -> frozenset[str]:
        return self._hidden

    @property
    def collapsed_ids(self) -> list[str]:
        """Collapsed node ids in collapse order."""
        return list(self._entries)

    def is_collapsed(self, node_id: str) -> bool:
        return node_id in self._entries

    def is_hidden(self, node_id: str) -> bool:
        return node_id in self._hidden

    def is_visible(self, node_id: str) -> bool:
        return node_id not in self._hidden

    def hidden_count(self) -> int:
        return len(self._hidden)

    def hidden_descendants(self, node_id: str) -> frozenset[str]:
        """Ids hidden by node_id's own collapse (empty if not collapsed)."""
        entry = self._entries.get(node_id)
        return entry.hidden_descendant_ids if entry is not None else frozenset()

    def can_collapse(self, node_id: str) -> bool:
        return (
            node_id not in self._entries
            and self._store.has_node(node_id)
            and bool(self._store.children_of(node_id))
        )

    def can_expand(self, node_id: str) -> bool:
        return node_id in self._entries

    def visible_nodes(self, nodes: Iterable[GraphNode] | None = None) -> list[GraphNode]:
        """Filter out hidden nodes.

        Args:
            nodes: Nodes to filter (default: clones of the whole store).
        """
        source: Iterable[GraphNode] = self._store.all_nodes() if nodes is None else nodes
        return [node for node in source if node.id not in self._hidden]

    def iter_entries(self) -> Iterator[CollapseEntry]:
        yield from self._entries.values()

    # ─────────────────────────────────────────────────────────────────────────
    # Serialization
    # ─────────────────────────────────────────────────────────────────────────

    def get_state(self) -> CollapseState:
        """Capture the current state."""
        return CollapseState(tuple(self._entries.values()), self._hidden)

    def restore_state(self, state: CollapseState) -> None:
        """Replace the current state with state, re-derived against the store.

        Entries are applied oldest collapse first.
        """
        ordered = sorted(state.entries, key=lambda entry: entry.collapsed_at)
        self._entries = {entry.node_id: entry for entry in ordered}
        self.refresh()
