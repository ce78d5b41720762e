"""
dagedit.layout - Incremental layout stabilization
"""

from dagedit.layout.stabilizer import (
    ChangeKind,
    Extent,
    LayoutAlgorithm,
    LayoutChange,
    LayoutRequest,
    LayoutStabilizer,
    LayoutState,
    PositionCache,
)

__all__ = [
    "ChangeKind",
    "Extent",
    "LayoutAlgorithm",
    "LayoutChange",
    "LayoutRequest",
    "LayoutStabilizer",
    "LayoutState",
    "PositionCache",
]
