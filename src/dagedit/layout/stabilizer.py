"""LayoutStabilizer - Incremental layout that keeps unaffected nodes still.

The concrete layout algorithm is a callback. The stabilizer decides which
nodes it may move and reconciles the result with the position cache:

- The first pass (or a FULL change) hands the whole graph to the callback.
- Later ADD / REMOVE / REPARENT changes hand over only the affected
  subtree. Every other node is pinned at its cached position, and the
  re-laid-out subtree is translated so its centroid stays where it was.

A callback may return positions immediately, or return None and report
them later through settle().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Iterator, Mapping, Optional, Sequence

from dagedit.config.settings import LayoutConfig
from dagedit.errors import LayoutError
from dagedit.graph import algorithms
from dagedit.graph.GraphNode import GraphNode, Position
from dagedit.graph.relations import Edge

logger = logging.getLogger(__name__)

ORIGIN = Position(0.0, 0.0)


class ChangeKind(Enum):
    """What kind of structural change triggered a layout pass."""

    FULL = "full"
    ADD = "add"
    REMOVE = "remove"
    REPARENT = "reparent"


@dataclass(frozen=True)
class LayoutChange:
    """Description of a structural change for the stabilizer.

    Attributes:
        kind: The change kind.
        affected_node_ids: Change sites; their descendants are added.
        new_node_id: For ADD, the inserted node.
    """

    kind: ChangeKind
    affected_node_ids: tuple[str, ...] = ()
    new_node_id: str | None = None

    @classmethod
    def full(cls) -> LayoutChange:
        return cls(ChangeKind.FULL)

    @classmethod
    def add(cls, node_id: str) -> LayoutChange:
        return cls(ChangeKind.ADD, (node_id,), new_node_id=node_id)

    @classmethod
    def remove(cls, affected_node_ids: Iterable[str]) -> LayoutChange:
        return cls(ChangeKind.REMOVE, tuple(affected_node_ids))

    @classmethod
    def reparent(cls, affected_node_ids: Iterable[str]) -> LayoutChange:
        return cls(ChangeKind.REPARENT, tuple(affected_node_ids))

    def seed_ids(self) -> list[str]:
        """Affected ids plus the new node, without duplicates."""
        ids = list(dict.fromkeys(self.affected_node_ids))
        if self.new_node_id is not None and self.new_node_id not in ids:
            ids.append(self.new_node_id)
        return ids


@dataclass(frozen=True)
class Extent:
    """Visible viewport rectangle in layout coordinates."""

    x1: float
    y1: float
    x2: float
    y2: float

    @property
    def center(self) -> Position:
        return Position((self.x1 + self.x2) / 2, (self.y1 + self.y2) / 2)


@dataclass(frozen=True)
class LayoutRequest:
    """Input handed to the layout callback.

    Attributes:
        nodes: Nodes the callback should position (clones).
        edges: Edges touching those nodes.
        positions: Starting position of every node in the graph; pinned
            nodes must be treated as fixed obstacles.
        locked_ids: Ids the callback must not move.
        full: True for a whole-graph pass.
    """

    nodes: tuple[GraphNode, ...]
    edges: tuple[Edge, ...]
    positions: Mapping[str, Position]
    locked_ids: frozenset[str] = frozenset()
    full: bool = False

    @property
    def node_ids(self) -> list[str]:
        return [node.id for node in self.nodes]


LayoutAlgorithm = Callable[[LayoutRequest], Optional[Mapping[str, Position]]]


class LayoutState(Enum):
    """Stabilizer lifecycle."""

    UNINITIALIZED = "uninitialized"
    STABLE = "stable"


class PositionCache:
    """Last known position per node id."""

    def __init__(self, positions: Mapping[str, Position] | None = None) -> None:
        self._positions: dict[str, Position] = {}
        if positions:
            self.update(positions)

    def get(self, node_id: str) -> Position | None:
        return self._positions.get(node_id)

    def update(self, positions: Mapping[str, object]) -> None:
        for node_id, value in positions.items():
            self._positions[node_id] = Position.from_value(value)

    def replace(self, positions: Mapping[str, object]) -> None:
        self._positions = {}
        self.update(positions)

    def retain(self, node_ids: Iterable[str]) -> None:
        """Drop entries for ids not in node_ids."""
        keep = set(node_ids)
        self._positions = {k: v for k, v in self._positions.items() if k in keep}

    def clear(self) -> None:
        self._positions.clear()

    def as_dict(self) -> dict[str, Position]:
        return dict(self._positions)

    def center(self) -> Position | None:
        """Centre of the bounding box of all cached positions."""
        if not self._positions:
            return None
        xs = [p.x for p in self._positions.values()]
        ys = [p.y for p in self._positions.values()]
        return Position((min(xs) + max(xs)) / 2, (min(ys) + max(ys)) / 2)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[str]:
        return iter(self._positions)


@dataclass
class _Pass:
    """A layout pass awaiting its callback result."""

    node_ids: list[str]
    start: dict[str, Position]
    affected: set[str]
    full: bool
    locked: frozenset[str] = field(default_factory=frozenset)


def _centroid(points: Sequence[Position]) -> Position:
    if not points:
        return ORIGIN
    return Position(
        sum(p.x for p in points) / len(points),
        sum(p.y for p in points) / len(points),
    )


class LayoutStabilizer:
    """Runs layout passes through a callback with minimal visual movement.

    Args:
        algorithm: The layout callback.
        config: Seeding offsets (default: LayoutConfig()).
    """

    def __init__(self, algorithm: LayoutAlgorithm, config: LayoutConfig | None = None) -> None:
        self._algorithm = algorithm
        self._config = config or LayoutConfig()
        self._cache = PositionCache()
        self._state = LayoutState.UNINITIALIZED
        self._viewport: Extent | None = None
        self._pending: _Pass | None = None

    # ─────────────────────────────────────────────────────────────────────────
    # Properties
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def state(self) -> LayoutState:
        return self._state

    @property
    def is_first_layout(self) -> bool:
        return self._state is LayoutState.UNINITIALIZED

    @property
    def pending(self) -> bool:
        """True while a pass waits for settle()."""
        return self._pending is not None

    @property
    def locked_ids(self) -> frozenset[str]:
        """Ids pinned by the pending pass (empty when none)."""
        return self._pending.locked if self._pending is not None else frozenset()

    @property
    def config(self) -> LayoutConfig:
        return self._config

    def configure(self, config: LayoutConfig) -> None:
        self._config = config

    def set_viewport(self, extent: Extent | None) -> None:
        """Set the visible area used to seed new parentless nodes."""
        self._viewport = extent

    # ─────────────────────────────────────────────────────────────────────────
    # Cache access
    # ─────────────────────────────────────────────────────────────────────────

    def cached_position(self, node_id: str) -> Position | None:
        return self._cache.get(node_id)

    def positions(self) -> dict[str, Position]:
        """Copy of the position cache."""
        return self._cache.as_dict()

    def restore_positions(self, positions: Mapping[str, object]) -> None:
        """Replace the cache wholesale (e.g. with positions saved for undo)."""
        self._cache.replace(positions)
        if len(self._cache):
            self._state = LayoutState.STABLE

    def clear_cache(self) -> None:
        """Forget all positions; the next pass is a full layout."""
        self._cache.clear()
        self._pending = None
        self._state = LayoutState.UNINITIALIZED

    # ─────────────────────────────────────────────────────────────────────────
    # Layout passes
    # ─────────────────────────────────────────────────────────────────────────

    def run(
        self, nodes: Iterable[GraphNode], change: LayoutChange | None = None
    ) -> dict[str, Position] | None:
        """Lay out nodes after change.

        Args:
            nodes: The full current node collection.
            change: What changed; None or FULL forces a full pass.

        Returns:
            The new position map, or None if the callback deferred its
            result to settle().

        Raises:
            LayoutError: If a previous pass is still pending.
        """
        if self._pending is not None:
            raise LayoutError("a layout pass is already pending; call settle() first")

        node_list = list(nodes)
        node_ids = [node.id for node in node_list]
        self._cache.retain(node_ids)

        full = (
            self._state is LayoutState.UNINITIALIZED
            or change is None
            or change.kind is ChangeKind.FULL
            or not len(self._cache)
        )
        start = self._seed_positions(node_list)

        if full or change is None:
            affected = set(node_ids)
            request = LayoutRequest(
                nodes=tuple(node.clone() for node in node_list),
                edges=tuple(algorithms.nodes_to_edges(node_list)),
                positions=dict(start),
                full=True,
            )
            logger.info("full layout pass over %d nodes", len(node_list))
        else:
            present = set(node_ids)
            seeds = [nid for nid in change.seed_ids() if nid in present]
            affected = algorithms.subtree_ids(node_list, seeds)
            if not affected:
                self._cache.replace(start)
                logger.debug("%s change affects no nodes; cache pruned", change.kind.value)
                return self._cache.as_dict()
            locked = frozenset(present - affected)
            request = LayoutRequest(
                nodes=tuple(node.clone() for node in node_list if node.id in affected),
                edges=tuple(
                    edge
                    for edge in algorithms.nodes_to_edges(node_list)
                    if edge.source in affected or edge.target in affected
                ),
                positions=dict(start),
                locked_ids=locked,
            )
            logger.debug(
                "incremental %s pass: %d affected, %d pinned",
                change.kind.value,
                len(affected),
                len(locked),
            )

        self._pending = _Pass(node_ids, start, affected, full, request.locked_ids)
        try:
            result = self._algorithm(request)
        except Exception:
            self._pending = None
            raise
        if result is None:
            logger.debug("layout deferred; waiting for settle()")
            return None
        return self.settle(result)

    def settle(self, positions: Mapping[str, object]) -> dict[str, Position]:
        """Complete the pending pass with the callback's positions.

        Returns:
            The reconciled position map (also stored in the cache).

        Raises:
            LayoutError: If no pass is pending.
        """
        current = self._pending
        if current is None:
            raise LayoutError("settle() called with no layout pass pending")
        self._pending = None

        produced = {nid: Position.from_value(pos) for nid, pos in positions.items()}
        final = dict(current.start)
        if current.full:
            for node_id in current.node_ids:
                if node_id in produced:
                    final[node_id] = produced[node_id]
        else:
            affected = [nid for nid in current.node_ids if nid in current.affected]
            after = {nid: produced.get(nid, current.start[nid]) for nid in affected}
            before_c = _centroid([current.start[nid] for nid in affected])
            after_c = _centroid(list(after.values()))
            dx, dy = before_c.x - after_c.x, before_c.y - after_c.y
            for node_id, pos in after.items():
                final[node_id] = pos.translated(dx, dy)

        self._cache.replace(final)
        self._state = LayoutState.STABLE
        return self._cache.as_dict()

    # ─────────────────────────────────────────────────────────────────────────
    # Seeding
    # ─────────────────────────────────────────────────────────────────────────

    def _seed_positions(self, node_list: list[GraphNode]) -> dict[str, Position]:
        """Starting position for every node.

        Cached nodes keep their cached position. Others use their own
        position hint, else their first placed parent's position plus the
        seed offset, else the viewport (or cache) centre plus the root offset.
        """
        start: dict[str, Position] = {}
        by_id = {node.id: node for node in node_list}
        order = algorithms.topological_order(node_list)
        in_order = set(order)
        ordered_ids = order + [nid for nid in by_id if nid not in in_order]

        cfg = self._config
        anchor = self._viewport.center if self._viewport is not None else self._cache.center()
        root_seed = (anchor or ORIGIN).translated(0.0, cfg.root_seed_offset_y)

        for node_id in ordered_ids:
            cached = self._cache.get(node_id)
            if cached is not None:
                start[node_id] = cached
                continue
            node = by_id[node_id]
            if node.position is not None:
                start[node_id] = node.position
                continue
            parent_pos = next(
                (start[pid] for pid in node.parent_ids if pid in start),
                None,
            )
            if parent_pos is not None:
                start[node_id] = parent_pos.translated(cfg.seed_offset_x, cfg.seed_offset_y)
            else:
                start[node_id] = root_seed
        return {nid: start[nid] for nid in by_id}
