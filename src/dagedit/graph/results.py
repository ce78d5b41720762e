"""Edit outcomes and the rejection taxonomy.

Every user-facing operation (validation, edit, undo/redo, collapse) reports
its outcome as an EditResult instead of raising. A rejected result always
means nothing was changed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RejectionReason(Enum):
    """Why an operation was refused."""

    NODE_NOT_FOUND = "node-not-found"
    DUPLICATE_NODE = "duplicate-node"
    DUPLICATE_EDGE = "duplicate-edge"
    EDGE_NOT_FOUND = "edge-not-found"
    SELF_LOOP_REJECTED = "self-loop"
    CYCLE_REJECTED = "cycle"
    MAX_PARENTS_EXCEEDED = "max-parents"
    MAX_CHILDREN_EXCEEDED = "max-children"
    MAX_DEPTH_EXCEEDED = "max-depth"
    CUSTOM_VALIDATION_REJECTED = "custom"
    NOTHING_TO_UNDO = "nothing-to-undo"
    NOTHING_TO_REDO = "nothing-to-redo"
    CANNOT_COLLAPSE_LEAF = "cannot-collapse-leaf"
    ALREADY_COLLAPSED = "already-collapsed"
    NOT_COLLAPSED = "not-collapsed"

    @property
    def is_history_underflow(self) -> bool:
        """True for the expected, silently ignorable history conditions."""
        return self in (RejectionReason.NOTHING_TO_UNDO, RejectionReason.NOTHING_TO_REDO)


@dataclass(frozen=True)
class EditResult:
    """Outcome of a validation or edit.

    Truthy when accepted, so callers can write ``if editor.add_parent(...):``.

    Attributes:
        accepted: Whether the operation was accepted (and, for edits, applied).
        reason: The rejection reason; None when accepted.
        message: Human-readable explanation.
        details: Operation-specific context (ids, counts, limits).
    """

    accepted: bool
    reason: RejectionReason | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, message: str = "", **details: Any) -> EditResult:
        """Build an accepted result."""
        return cls(accepted=True, message=message, details=details)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str, **details: Any) -> EditResult:
        """Build a rejected result."""
        return cls(accepted=False, reason=reason, message=message, details=details)

    @property
    def rejected(self) -> bool:
        """True if the operation was refused."""
        return not self.accepted

    def __bool__(self) -> bool:
        return self.accepted

    def __str__(self) -> str:
        if self.accepted:
            return f"accepted{': ' + self.message if self.message else ''}"
        reason = self.reason.value if self.reason is not None else "unknown"
        return f"rejected [{reason}]: {self.message}"
