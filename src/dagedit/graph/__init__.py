"""Graph module - Editable DAG core.

Exports:
- GraphNode, Position: Node representation
- Edge: Parent -> child edge projected from parent links
- GraphStore, IntegrityIssue: Canonical node collection
- CycleGuard: Structural queries (cycles, depth, height, closures)
- ValidationEngine, EdgeValidator, FunctionValidator: Edit validation
- MutationEngine: Edit application
- HistoryEngine, Snapshot: Undo/redo
- CollapseEngine, CollapseEntry, CollapseState: Descendant hiding
- EventBus, EventKind, GraphEvent: Change notifications
- EditResult, RejectionReason: Edit outcomes

Note: GraphEditor (dagedit.editor) wires these together.
"""

from dagedit.graph.algorithms import CycleGuard
from dagedit.graph.collapse import CollapseEngine, CollapseEntry, CollapseState
from dagedit.graph.events import EventBus, EventKind, GraphEvent
from dagedit.graph.GraphNode import GraphNode, Position
from dagedit.graph.history import HistoryEngine, Snapshot
from dagedit.graph.mutations import MutationEngine
from dagedit.graph.relations import Edge
from dagedit.graph.results import EditResult, RejectionReason
from dagedit.graph.store import GraphStore, IntegrityIssue
from dagedit.graph.validation import EdgeValidator, FunctionValidator, ValidationEngine

__all__ = [
    "GraphNode",
    "Position",
    "Edge",
    "GraphStore",
    "IntegrityIssue",
    "CycleGuard",
    "ValidationEngine",
    "EdgeValidator",
    "FunctionValidator",
    "MutationEngine",
    "HistoryEngine",
    "Snapshot",
    "CollapseEngine",
    "CollapseEntry",
    "CollapseState",
    "EventBus",
    "EventKind",
    "GraphEvent",
    "EditResult",
    "RejectionReason",
]
