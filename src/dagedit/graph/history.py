"""HistoryEngine - Snapshot-based undo/redo.

A Snapshot is a deep clone of the full node collection captured just
before a mutation. Undo and redo are each a bounded stack; pushing onto a
full stack evicts the oldest snapshot.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from itertools import count
from typing import Iterable
from uuid import uuid4

from dagedit.config.settings import HistoryConfig
from dagedit.graph.GraphNode import GraphNode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """An immutable copy of the node collection.

    Attributes:
        nodes: Cloned nodes in collection order.
        clock: Logical clock value at capture; strictly increasing.
        id: Unique snapshot ID (UUID4).
        taken_at: Wall-clock capture time.
    """

    nodes: tuple[GraphNode, ...]
    clock: int
    id: str = field(default_factory=lambda: uuid4().hex)
    taken_at: datetime = field(default_factory=datetime.now)

    @classmethod
    def capture(cls, nodes: Iterable[GraphNode], clock: int) -> Snapshot:
        """Clone nodes into a new snapshot."""
        return cls(nodes=tuple(node.clone() for node in nodes), clock=clock)

    def restore_nodes(self) -> list[GraphNode]:
        """Return fresh clones so the snapshot itself stays untouched."""
        return [node.clone() for node in self.nodes]

    def __len__(self) -> int:
        return len(self.nodes)

    def __str__(self) -> str:
        return f"[{self.id[:8]}] snapshot@{self.clock} ({len(self.nodes)} nodes)"


class HistoryEngine:
    """Bounded undo/redo stacks of Snapshots.

    Example:
        >>> history = HistoryEngine(HistoryConfig(max_stack_size=2))
        >>> history.save_state([GraphNode("a")])
        >>> history.can_undo
        True
    """

    def __init__(self, config: HistoryConfig | None = None) -> None:
        self._config = config or HistoryConfig()
        self._clock = count(1)
        self._undo: deque[Snapshot] = deque(maxlen=self._config.max_stack_size)
        self._redo: deque[Snapshot] = deque(maxlen=self._config.max_stack_size)

    # ─────────────────────────────────────────────────────────────────────────
    # Configuration
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def config(self) -> HistoryConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def configure(self, config: HistoryConfig) -> None:
        """Apply new settings.

        Shrinking max_stack_size drops the oldest entries of each stack.
        """
        self._config = config
        self._undo = deque(self._undo, maxlen=config.max_stack_size)
        self._redo = deque(self._redo, maxlen=config.max_stack_size)

    # ─────────────────────────────────────────────────────────────────────────
    # Capture and restore
    # ─────────────────────────────────────────────────────────────────────────

    def _capture(self, nodes: Iterable[GraphNode]) -> Snapshot:
        return Snapshot.capture(nodes, next(self._clock))

    def save_state(self, nodes: Iterable[GraphNode]) -> None:
        """Record the pre-mutation state and invalidate redo.

        Redo is cleared even while history is disabled; only the snapshot
        is skipped.

        Args:
            nodes: The collection as it is before the mutation.
        """
        self._redo.clear()
        if not self._config.enabled:
            return
        snapshot = self._capture(nodes)
        self._undo.append(snapshot)
        logger.debug("saved %s (undo depth %d)", snapshot, len(self._undo))

    def undo(self, current_nodes: Iterable[GraphNode]) -> Snapshot | None:
        """Step back one mutation.

        Args:
            current_nodes: The present collection, pushed onto redo.

        Returns:
            The snapshot to restore, or None if there is nothing to undo.
        """
        if not self._undo:
            logger.debug("nothing to undo")
            return None
        self._redo.append(self._capture(current_nodes))
        snapshot = self._undo.pop()
        logger.debug("undo to %s", snapshot)
        return snapshot

    def redo(self, current_nodes: Iterable[GraphNode]) -> Snapshot | None:
        """Step forward one undone mutation.

        Args:
            current_nodes: The present collection, pushed onto undo.

        Returns:
            The snapshot to restore, or None if there is nothing to redo.
        """
        if not self._redo:
            logger.debug("nothing to redo")
            return None
        self._undo.append(self._capture(current_nodes))
        snapshot = self._redo.pop()
        logger.debug("redo to %s", snapshot)
        return snapshot

    def clear(self) -> None:
        """Empty both stacks."""
        self._undo.clear()
        self._redo.clear()

    def mark_clean(self) -> None:
        """Declare the current state saved; discards all history."""
        self.clear()

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    @property
    def is_dirty(self) -> bool:
        """True while there are unsaved (undoable) changes."""
        return bool(self._undo)

    def undo_size(self) -> int:
        return len(self._undo)

    def redo_size(self) -> int:
        return len(self._redo)

    def undo_stack(self) -> list[Snapshot]:
        """Undo snapshots, oldest first."""
        return list(self._undo)

    def redo_stack(self) -> list[Snapshot]:
        """Redo snapshots, oldest first."""
        return list(self._redo)
