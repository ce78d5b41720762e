"""Notification channel for graph changes.

Engines publish GraphEvent records on an EventBus owned by the caller.
Listeners run synchronously, in subscription order, after the change they
describe has been committed to the store.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable

from dagedit.graph.results import RejectionReason

logger = logging.getLogger(__name__)


class EventKind(Enum):
    """Types of graph notifications."""

    LINK_ADDED = "link-added"
    LINK_REMOVED = "link-removed"
    VALIDATION_FAILED = "validation-failed"
    NODE_ADDED = "node-added"
    NODE_UPDATED = "node-updated"
    NODE_REMOVED = "node-removed"
    HISTORY_RESTORED = "history-restored"


@dataclass(frozen=True)
class GraphEvent:
    """A single notification.

    Link events carry the edge as source (parent) and target (child).
    Node events carry node_id. Validation failures carry the action
    name, the rejection reason and the message.
    """

    kind: EventKind
    source_id: str | None = None
    target_id: str | None = None
    node_id: str | None = None
    action: str | None = None
    reason: RejectionReason | None = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        if self.kind in (EventKind.LINK_ADDED, EventKind.LINK_REMOVED):
            return f"{self.kind.value}: {self.source_id} -> {self.target_id}"
        if self.kind is EventKind.VALIDATION_FAILED:
            return f"{self.kind.value}({self.action}): {self.message}"
        if self.node_id is not None:
            return f"{self.kind.value}: {self.node_id}"
        return self.kind.value


Listener = Callable[[GraphEvent], None]


class EventBus:
    """Observer list for GraphEvent notifications.

    Example:
        >>> bus = EventBus()
        >>> seen = []
        >>> unsubscribe = bus.subscribe(seen.append, kinds=[EventKind.LINK_ADDED])
        >>> bus.emit(GraphEvent(EventKind.LINK_ADDED, source_id="a", target_id="b"))
        >>> len(seen)
        1
    """

    def __init__(self) -> None:
        self._listeners: list[tuple[Listener, frozenset[EventKind] | None]] = []

    def subscribe(
        self,
        listener: Listener,
        kinds: Iterable[EventKind] | None = None,
    ) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Called with each matching event.
            kinds: Restrict delivery to these kinds; None means all.

        Returns:
            A callable that removes this subscription.
        """
        entry = (listener, frozenset(kinds) if kinds is not None else None)
        self._listeners.append(entry)

        def unsubscribe() -> None:
            if entry in self._listeners:
                self._listeners.remove(entry)

        return unsubscribe

    def emit(self, event: GraphEvent) -> None:
        """Deliver an event to every matching listener."""
        logger.debug("event %s", event)
        for listener, kinds in list(self._listeners):
            if kinds is None or event.kind in kinds:
                listener(event)

    def listener_count(self) -> int:
        """Return the number of active subscriptions."""
        return len(self._listeners)

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._listeners.clear()
