"""
dagedit - Editing core for multi-parent node hierarchies

dagedit keeps a directed acyclic graph consistent while users reparent,
link, detach, delete, collapse and expand nodes, with snapshot undo/redo
and an incremental layout stabilizer that keeps unaffected nodes still.
"""

import logging
from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("dagedit")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"  # Not installed
__license__ = "MIT"

logging.getLogger(__name__).addHandler(logging.NullHandler())

from dagedit.config import EditorConfig, HistoryConfig, LayoutConfig, ValidationPolicy
from dagedit.editor import GraphEditor
from dagedit.errors import ConfigError, DagEditError, LayoutError
from dagedit.graph import (
    EditResult,
    EventBus,
    EventKind,
    FunctionValidator,
    GraphEvent,
    GraphNode,
    GraphStore,
    Position,
    RejectionReason,
)
from dagedit.layout import ChangeKind, Extent, LayoutChange, LayoutRequest, LayoutStabilizer

__all__ = [
    "__version__",
    "GraphEditor",
    "GraphNode",
    "GraphStore",
    "Position",
    "EditResult",
    "RejectionReason",
    "EventBus",
    "EventKind",
    "GraphEvent",
    "FunctionValidator",
    "EditorConfig",
    "HistoryConfig",
    "LayoutConfig",
    "ValidationPolicy",
    "ChangeKind",
    "Extent",
    "LayoutChange",
    "LayoutRequest",
    "LayoutStabilizer",
    "DagEditError",
    "ConfigError",
    "LayoutError",
]
