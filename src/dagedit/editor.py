"""GraphEditor - One object wiring every engine for interactive editing.

Each user edit runs validate -> snapshot -> apply -> react:

1. ValidationEngine accepts or rejects (rejections are published as
   VALIDATION_FAILED and returned, nothing changes)
2. MutationEngine snapshots through HistoryEngine and commits
3. CollapseEngine is recomputed against the new structure
4. if a layout callback is attached, LayoutStabilizer runs an
   incremental pass for the change
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Sequence

from dagedit.config.settings import EditorConfig, ValidationPolicy
from dagedit.errors import LayoutError
from dagedit.graph import algorithms
from dagedit.graph.collapse import CollapseEngine
from dagedit.graph.events import EventBus, EventKind, GraphEvent, Listener
from dagedit.graph.GraphNode import GraphNode, Position
from dagedit.graph.history import HistoryEngine, Snapshot
from dagedit.graph.mutations import MutationEngine
from dagedit.graph.relations import Edge
from dagedit.graph.results import EditResult, RejectionReason
from dagedit.graph.store import GraphStore
from dagedit.graph.validation import EdgeValidator, ValidationEngine
from dagedit.layout.stabilizer import (
    ChangeKind,
    LayoutAlgorithm,
    LayoutChange,
    LayoutStabilizer,
)

logger = logging.getLogger(__name__)


def _merge_changes(first: LayoutChange, second: LayoutChange) -> LayoutChange:
    """Combine two queued changes into one pass covering both."""
    if ChangeKind.FULL in (first.kind, second.kind):
        return LayoutChange.full()
    return LayoutChange.reparent(dict.fromkeys([*first.seed_ids(), *second.seed_ids()]))


class GraphEditor:
    """Editing session over a node collection.

    Args:
        nodes: Initial collection.
        config: Editor configuration (default: EditorConfig()).
        layout: Optional layout callback; enables the stabilizer.
        events: Bus to publish on (default: a new EventBus).
        validator: Optional custom edge validator, overriding the one in
            config.validation.

    Example:
        >>> editor = GraphEditor([GraphNode("A"), GraphNode("B", parent_ids=["A"])])
        >>> editor.add_parent("A", "B").reason
        <RejectionReason.CYCLE_REJECTED: 'cycle'>
    """

    def __init__(
        self,
        nodes: Iterable[GraphNode] = (),
        config: EditorConfig | None = None,
        layout: LayoutAlgorithm | None = None,
        events: EventBus | None = None,
        validator: EdgeValidator | None = None,
    ) -> None:
        self._config = config or EditorConfig()
        self._policy = self._config.validation
        if validator is not None:
            self._policy = self._policy.with_validator(validator)

        self.events = events or EventBus()
        self.store = GraphStore()
        self.history = HistoryEngine(self._config.history)
        self.validation = ValidationEngine(self.store, self.events)
        self.mutations = MutationEngine(self.store, self.history, self.events)
        self.collapse_engine = CollapseEngine(self.store)
        self.layout = (
            LayoutStabilizer(layout, self._config.layout) if layout is not None else None
        )
        self._queued_change: LayoutChange | None = None
        self.initialize(nodes)

    # ─────────────────────────────────────────────────────────────────────────
    # Session
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def config(self) -> EditorConfig:
        return self._config

    @property
    def policy(self) -> ValidationPolicy:
        return self._policy

    def set_validator(self, validator: EdgeValidator | None) -> None:
        """Install (or with None, remove) the custom edge validator."""
        self._policy = self._policy.with_validator(validator)

    def initialize(self, nodes: Iterable[GraphNode], config: EditorConfig | None = None) -> None:
        """Load a collection, resetting history, collapse and layout state.

        Args:
            nodes: The new collection.
            config: Replacement configuration; a custom validator already
                installed is kept.

        Raises:
            ValueError: If two nodes share an id.
        """
        if config is not None:
            validator = self._policy.custom_validator
            self._config = config
            self._policy = config.validation
            if config.validation.custom_validator is None and validator is not None:
                self._policy = self._policy.with_validator(validator)
            self.history.configure(config.history)
            if self.layout is not None:
                self.layout.configure(config.layout)

        self.store.restore(nodes)
        for issue in self.store.check_integrity(
            allow_cycles=self._policy.allow_cycles,
            allow_self_loops=self._policy.allow_self_loops,
        ):
            logger.warning("loaded graph violates structure: %s", issue)

        self.history.clear()
        self.collapse_engine.clear()
        self._queued_change = None
        if self.layout is not None:
            self.layout.clear_cache()
            self._run_layout(LayoutChange.full())
        logger.info("editor initialized with %d nodes", self.store.node_count())

    def subscribe(
        self, listener: Listener, kinds: Iterable[EventKind] | None = None
    ) -> Callable[[], None]:
        """Shortcut for events.subscribe()."""
        return self.events.subscribe(listener, kinds)

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    def nodes(self) -> list[GraphNode]:
        """Deep copy of the full collection."""
        return self.store.snapshot()

    def find_by_id(self, node_id: str) -> GraphNode | None:
        return self.store.find_by_id(node_id)

    def edges(self) -> list[Edge]:
        return self.store.edges()

    def visible_nodes(self) -> list[GraphNode]:
        """Nodes not hidden by a collapsed ancestor."""
        return self.collapse_engine.visible_nodes()

    def visible_edges(self) -> list[Edge]:
        """Edges whose endpoints are both visible."""
        hidden = self.collapse_engine.hidden_ids
        return [e for e in self.store.edges() if e.source not in hidden and e.target not in hidden]

    @property
    def hidden_ids(self) -> frozenset[str]:
        return self.collapse_engine.hidden_ids

    @property
    def can_undo(self) -> bool:
        return self.history.can_undo

    @property
    def can_redo(self) -> bool:
        return self.history.can_redo

    @property
    def is_dirty(self) -> bool:
        return self.history.is_dirty

    def mark_clean(self) -> None:
        """Declare the current state saved."""
        self.history.mark_clean()

    def can_reparent(self, child_id: str, new_parent_id: str) -> bool:
        """Whether reparent(child_id, new_parent_id) would be accepted."""
        return self.validation.validate_reparent(child_id, new_parent_id, self._policy).accepted

    def positions(self) -> dict[str, Position]:
        """Current layout positions (empty without a layout callback)."""
        return self.layout.positions() if self.layout is not None else {}

    # ─────────────────────────────────────────────────────────────────────────
    # Node edits
    # ─────────────────────────────────────────────────────────────────────────

    def add_node(
        self,
        label: str = "",
        *,
        node_id: str | None = None,
        parent_ids: Sequence[str] = (),
        data: Any = None,
        position: Any = None,
    ) -> EditResult:
        """Create a node, generating an id when none is given.

        Returns:
            Acceptance with details["node_id"], or the rejection.
        """
        if node_id is None:
            node_id = algorithms.generate_node_id(
                self.store.nodes_view().values(), self._config.id_prefix
            )
        parent_ids = list(parent_ids)
        result = self.validation.validate_add_node(node_id, parent_ids, self._policy, emit=True)
        if result.rejected:
            return result

        node = GraphNode(
            id=node_id,
            label=label,
            parent_ids=parent_ids,
            data=data,
            position=position,
        )
        self.mutations.add_node(node)
        self._after_structure_change(LayoutChange.add(node_id))
        return EditResult.ok(node_id=node_id)

    def update_node(self, node_id: str, **changes: Any) -> EditResult:
        """Change label, data, position, locked or classes.

        Raises:
            ValueError: If a structural or unknown field is given.
        """
        if not self.store.has_node(node_id):
            return self._not_found(node_id)
        self.mutations.update_node(node_id, **changes)
        return EditResult.ok(node_id=node_id)

    def remove_node(self, node_id: str) -> EditResult:
        """Delete a node; its children lose it as a parent."""
        if not self.store.has_node(node_id):
            return self._not_found(node_id)
        child_ids = [cid for cid in self.store.children_of(node_id) if cid != node_id]
        self.mutations.remove_node(node_id)
        self.collapse_engine.on_node_deleted(node_id)
        self._run_layout(LayoutChange.remove(child_ids))
        orphaned = [cid for cid in child_ids if not self.store.parents_of(cid)]
        return EditResult.ok(node_id=node_id, orphaned=orphaned)

    # ─────────────────────────────────────────────────────────────────────────
    # Link edits
    # ─────────────────────────────────────────────────────────────────────────

    def add_parent(self, child_id: str, parent_id: str) -> EditResult:
        """Add parent_id as an extra parent of child_id."""
        result = self.validation.validate_add_edge(parent_id, child_id, self._policy, emit=True)
        return self._apply_add_parent(child_id, parent_id, result)

    def remove_parent(self, child_id: str, parent_id: str) -> EditResult:
        """Drop one parent link of child_id."""
        child = self.store.nodes_view().get(child_id)
        if child is None:
            return self._not_found(child_id)
        if parent_id not in child.parent_ids:
            return EditResult.reject(
                RejectionReason.EDGE_NOT_FOUND,
                f'"{parent_id}" is not a parent of "{child_id}"',
                source_id=parent_id,
                target_id=child_id,
            )
        self.mutations.remove_parent(child_id, parent_id)
        self._after_structure_change(LayoutChange.reparent([child_id]))
        return EditResult.ok(source_id=parent_id, target_id=child_id)

    def reparent(self, child_id: str, new_parent_id: str) -> EditResult:
        """Replace all parents of child_id with new_parent_id."""
        result = self.validation.validate_reparent(
            child_id, new_parent_id, self._policy, emit=True
        )
        return self._apply_parents(child_id, [new_parent_id], result, "reparent")

    def set_parents(self, child_id: str, parent_ids: Sequence[str]) -> EditResult:
        """Replace child_id's parent list with parent_ids."""
        parent_ids = list(parent_ids)
        result = self.validation.validate_set_parents(
            child_id, parent_ids, self._policy, emit=True
        )
        return self._apply_parents(child_id, parent_ids, result, "set_parents")

    def detach(self, node_id: str) -> EditResult:
        """Remove every parent of node_id, making it a root."""
        node = self.store.nodes_view().get(node_id)
        if node is None:
            return self._not_found(node_id)
        if not node.parent_ids:
            return EditResult.reject(
                RejectionReason.EDGE_NOT_FOUND,
                f'Node "{node_id}" has no parents to detach from',
                node_id=node_id,
            )
        self.mutations.detach(node_id)
        self._after_structure_change(LayoutChange.reparent([node_id]))
        return EditResult.ok(node_id=node_id)

    async def aadd_parent(self, child_id: str, parent_id: str) -> EditResult:
        """add_parent() for asynchronous custom validators."""
        result = await self.validation.avalidate_add_edge(
            parent_id, child_id, self._policy, emit=True
        )
        return self._apply_add_parent(child_id, parent_id, result)

    async def areparent(self, child_id: str, new_parent_id: str) -> EditResult:
        """reparent() for asynchronous custom validators."""
        result = await self.validation.avalidate_reparent(
            child_id, new_parent_id, self._policy, emit=True
        )
        return self._apply_parents(child_id, [new_parent_id], result, "reparent")

    async def aset_parents(self, child_id: str, parent_ids: Sequence[str]) -> EditResult:
        """set_parents() for asynchronous custom validators."""
        parent_ids = list(parent_ids)
        result = await self.validation.avalidate_set_parents(
            child_id, parent_ids, self._policy, emit=True
        )
        return self._apply_parents(child_id, parent_ids, result, "set_parents")

    def _apply_add_parent(self, child_id: str, parent_id: str, result: EditResult) -> EditResult:
        if result.rejected:
            return result
        self.mutations.add_parent(child_id, parent_id)
        self._after_structure_change(LayoutChange.reparent([child_id]))
        return EditResult.ok(source_id=parent_id, target_id=child_id)

    def _apply_parents(
        self, child_id: str, parent_ids: list[str], result: EditResult, operation: str
    ) -> EditResult:
        if result.rejected:
            return result
        if self.store.parents_of(child_id) == parent_ids:
            return EditResult.ok("unchanged", node_id=child_id)
        if operation == "reparent":
            self.mutations.reparent(child_id, parent_ids[0])
        else:
            self.mutations.set_parents(child_id, parent_ids)
        self._after_structure_change(LayoutChange.reparent([child_id]))
        return EditResult.ok(node_id=child_id, parent_ids=parent_ids)

    @staticmethod
    def _not_found(node_id: str) -> EditResult:
        return EditResult.reject(
            RejectionReason.NODE_NOT_FOUND,
            f'Node with id "{node_id}" not found',
            node_id=node_id,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # History
    # ─────────────────────────────────────────────────────────────────────────

    def undo(self) -> EditResult:
        """Restore the state before the last mutation."""
        snapshot = self.history.undo(self.store.nodes_view().values())
        if snapshot is None:
            return EditResult.reject(RejectionReason.NOTHING_TO_UNDO, "Nothing to undo")
        return self._restore("undo", snapshot)

    def redo(self) -> EditResult:
        """Re-apply the last undone mutation."""
        snapshot = self.history.redo(self.store.nodes_view().values())
        if snapshot is None:
            return EditResult.reject(RejectionReason.NOTHING_TO_REDO, "Nothing to redo")
        return self._restore("redo", snapshot)

    def _restore(self, action: str, snapshot: Snapshot) -> EditResult:
        before = {nid: list(n.parent_ids) for nid, n in self.store.nodes_view().items()}
        self.store.restore(snapshot.restore_nodes())
        changed = [
            nid
            for nid, node in self.store.nodes_view().items()
            if before.get(nid) != node.parent_ids
        ]
        logger.info("%s restored snapshot %s", action, snapshot)
        self.events.emit(
            GraphEvent(EventKind.HISTORY_RESTORED, action=action, details={"changed": changed})
        )
        self._after_structure_change(LayoutChange.reparent(changed))
        return EditResult.ok(action=action, changed=changed)

    # ─────────────────────────────────────────────────────────────────────────
    # Collapse
    # ─────────────────────────────────────────────────────────────────────────

    def collapse(self, node_id: str) -> EditResult:
        return self.collapse_engine.collapse(node_id)

    def expand(self, node_id: str) -> EditResult:
        return self.collapse_engine.expand(node_id)

    def toggle(self, node_id: str) -> EditResult:
        return self.collapse_engine.toggle(node_id)

    def expand_all(self) -> None:
        self.collapse_engine.expand_all()

    def reveal_node(self, node_id: str) -> EditResult:
        """Expand collapsed ancestors so node_id becomes visible."""
        return self.collapse_engine.reveal_node(node_id)

    # ─────────────────────────────────────────────────────────────────────────
    # Layout
    # ─────────────────────────────────────────────────────────────────────────

    def relayout(self, change: LayoutChange | None = None) -> dict[str, Position] | None:
        """Run a layout pass (full when change is None).

        Returns:
            The new positions, or None if the pass is deferred or queued
            behind a pending one.

        Raises:
            LayoutError: If no layout callback is attached.
        """
        if self.layout is None:
            raise LayoutError("no layout algorithm attached")
        return self._run_layout(change or LayoutChange.full())

    def settle_layout(self, positions: dict[str, Any]) -> dict[str, Position] | None:
        """Complete a deferred pass, then run any change queued behind it.

        Raises:
            LayoutError: If no layout callback is attached or no pass is pending.
        """
        if self.layout is None:
            raise LayoutError("no layout algorithm attached")
        settled = self.layout.settle(positions)
        if self._queued_change is None:
            return settled
        queued, self._queued_change = self._queued_change, None
        return self.layout.run(self.store.all_nodes(), queued)

    def _after_structure_change(self, change: LayoutChange) -> None:
        self.collapse_engine.refresh()
        self._run_layout(change)

    def _run_layout(self, change: LayoutChange) -> dict[str, Position] | None:
        if self.layout is None:
            return None
        if self.layout.pending:
            self._queued_change = (
                change
                if self._queued_change is None
                else _merge_changes(self._queued_change, change)
            )
            logger.debug("layout pass pending; queued %s change", change.kind.value)
            return None
        return self.layout.run(self.store.all_nodes(), change)
