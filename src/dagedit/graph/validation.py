"""ValidationEngine - Accept or reject proposed structural changes.

Validation is the first half of a strict validate-then-apply pair: it only
reads the store and never mutates it. Checks run in a fixed order and stop
at the first failure:

1. referenced nodes exist
2. the edge is not a duplicate (add-edge only)
3. self-loop policy
4. cycle policy
5. fan-in (max_parents, on the resulting parent count) and fan-out
   (max_children)
6. depth: depth(parent) + 1 + height(child) <= max_depth
7. the injected custom validator

Custom validators may be asynchronous; use the ``avalidate_*`` coroutines
for those. A validator that raises is reported as a rejection.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol, Sequence, Union

from dagedit.config.settings import ValidationPolicy
from dagedit.graph.algorithms import CycleGuard
from dagedit.graph.events import EventBus, EventKind, GraphEvent
from dagedit.graph.GraphNode import GraphNode
from dagedit.graph.results import EditResult, RejectionReason
from dagedit.graph.store import GraphStore

logger = logging.getLogger(__name__)

Verdict = Union[bool, Awaitable[bool]]


class EdgeValidator(Protocol):
    """Capability evaluated last for every proposed parent -> child edge.

    ``nodes`` is a snapshot of the collection before the change. Return
    True to accept. May return an awaitable (async hosts).
    """

    def evaluate(self, source_id: str, target_id: str, nodes: Sequence[GraphNode]) -> Verdict: ...


@dataclass(frozen=True)
class FunctionValidator:
    """Adapt a plain function to the EdgeValidator interface."""

    func: Callable[[str, str, Sequence[GraphNode]], Verdict]

    def evaluate(self, source_id: str, target_id: str, nodes: Sequence[GraphNode]) -> Verdict:
        return self.func(source_id, target_id, nodes)


class ValidationEngine:
    """Checks proposed edges against a ValidationPolicy.

    Args:
        store: The store to validate against.
        events: Optional bus; rejections are published as VALIDATION_FAILED
            when a validate call passes ``emit=True``.
    """

    def __init__(self, store: GraphStore, events: EventBus | None = None) -> None:
        self._store = store
        self._guard = CycleGuard(store)
        self._events = events

    # ─────────────────────────────────────────────────────────────────────────
    # Synchronous API
    # ─────────────────────────────────────────────────────────────────────────

    def validate_add_edge(
        self,
        source_id: str,
        target_id: str,
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Validate adding source_id as an extra parent of target_id.

        Args:
            source_id: The proposed parent.
            target_id: The proposed child.
            policy: Rules to enforce.
            emit: Publish a VALIDATION_FAILED event on rejection.

        Returns:
            Acceptance, or the first rejection found.
        """
        result = self._check_add_edge(source_id, target_id, policy)
        if result is None:
            result = self._run_validator(policy, [(source_id, target_id)])
        return self._finish("add_edge", result, emit)

    def validate_reparent(
        self,
        child_id: str,
        new_parent_id: str,
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Validate replacing all of child_id's parents with new_parent_id."""
        result = self._check_reparent(child_id, new_parent_id, policy)
        if result is None:
            result = self._run_validator(policy, [(new_parent_id, child_id)])
        return self._finish("reparent", result, emit)

    def validate_set_parents(
        self,
        child_id: str,
        parent_ids: Sequence[str],
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Validate replacing child_id's parent list with parent_ids.

        Parents the child already has are not re-checked; every newly
        gained parent goes through the full edge checks, and max_parents is
        enforced against the final list length.
        """
        result, gained = self._check_set_parents(child_id, parent_ids, policy)
        if result is None:
            result = self._run_validator(policy, [(pid, child_id) for pid in gained])
        return self._finish("set_parents", result, emit)

    def validate_add_node(
        self,
        node_id: str,
        parent_ids: Sequence[str],
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Validate inserting a new node under parent_ids.

        The custom validator is not consulted: it judges edges between
        existing nodes.
        """
        result = self._check_add_node(node_id, parent_ids, policy) or EditResult.ok()
        return self._finish("add_node", result, emit)

    # ─────────────────────────────────────────────────────────────────────────
    # Asynchronous API (suspends only on the custom validator)
    # ─────────────────────────────────────────────────────────────────────────

    async def avalidate_add_edge(
        self,
        source_id: str,
        target_id: str,
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Coroutine form of validate_add_edge().

        The structural checks run again once the validator resumes, so an
        accepted result always describes the graph as it is on return.
        """
        result = self._check_add_edge(source_id, target_id, policy)
        if result is None:
            result = await self._arun_validator(policy, [(source_id, target_id)])
            if result.accepted:
                result = self._check_add_edge(source_id, target_id, policy) or result
        return self._finish("add_edge", result, emit)

    async def avalidate_reparent(
        self,
        child_id: str,
        new_parent_id: str,
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Coroutine form of validate_reparent(), rechecked after the validator."""
        result = self._check_reparent(child_id, new_parent_id, policy)
        if result is None:
            result = await self._arun_validator(policy, [(new_parent_id, child_id)])
            if result.accepted:
                result = self._check_reparent(child_id, new_parent_id, policy) or result
        return self._finish("reparent", result, emit)

    async def avalidate_set_parents(
        self,
        child_id: str,
        parent_ids: Sequence[str],
        policy: ValidationPolicy,
        emit: bool = False,
    ) -> EditResult:
        """Coroutine form of validate_set_parents(), rechecked after the validator.

        If a concurrent edit dropped one of the listed parents while the
        validator was suspended, that parent is now gained and goes through
        the validator as well.
        """
        result, gained = self._check_set_parents(child_id, parent_ids, policy)
        judged: set[str] = set()
        while result is None:
            pending = [pid for pid in gained if pid not in judged]
            if not pending:
                result = EditResult.ok()
                break
            result = await self._arun_validator(policy, [(pid, child_id) for pid in pending])
            if result.rejected:
                break
            judged.update(pending)
            result, gained = self._check_set_parents(child_id, parent_ids, policy)
        return self._finish("set_parents", result, emit)

    # ─────────────────────────────────────────────────────────────────────────
    # Structural checks (steps 1-6)
    # ─────────────────────────────────────────────────────────────────────────

    def _missing(self, *node_ids: str) -> EditResult | None:
        view = self._store.nodes_view()
        for node_id in node_ids:
            if node_id not in view:
                return EditResult.reject(
                    RejectionReason.NODE_NOT_FOUND,
                    f'Node with id "{node_id}" not found',
                    node_id=node_id,
                )
        return None

    def _check_add_edge(
        self, source_id: str, target_id: str, policy: ValidationPolicy
    ) -> EditResult | None:
        missing = self._missing(source_id, target_id)
        if missing is not None:
            return missing

        target = self._store.nodes_view()[target_id]
        if source_id in target.parent_ids:
            return EditResult.reject(
                RejectionReason.DUPLICATE_EDGE,
                "Edge already exists",
                source_id=source_id,
                target_id=target_id,
            )
        return self._check_link(
            source_id,
            target_id,
            policy,
            resulting_parents=len(target.parent_ids) + 1,
            gains_child=True,
        )

    def _check_reparent(
        self, child_id: str, new_parent_id: str, policy: ValidationPolicy
    ) -> EditResult | None:
        missing = self._missing(child_id, new_parent_id)
        if missing is not None:
            return missing

        child = self._store.nodes_view()[child_id]
        return self._check_link(
            new_parent_id,
            child_id,
            policy,
            resulting_parents=1,
            gains_child=new_parent_id not in child.parent_ids,
        )

    def _check_set_parents(
        self, child_id: str, parent_ids: Sequence[str], policy: ValidationPolicy
    ) -> tuple[EditResult | None, list[str]]:
        missing = self._missing(child_id, *parent_ids)
        if missing is not None:
            return missing, []

        seen: set[str] = set()
        for parent_id in parent_ids:
            if parent_id in seen:
                return (
                    EditResult.reject(
                        RejectionReason.DUPLICATE_EDGE,
                        f'Parent "{parent_id}" is listed more than once',
                        source_id=parent_id,
                        target_id=child_id,
                    ),
                    [],
                )
            seen.add(parent_id)

        child = self._store.nodes_view()[child_id]
        gained = [pid for pid in parent_ids if pid not in child.parent_ids]
        for parent_id in gained:
            rejection = self._check_link(
                parent_id,
                child_id,
                policy,
                resulting_parents=len(parent_ids),
                gains_child=True,
            )
            if rejection is not None:
                return rejection, gained

        # Also covers a shrinking list that still exceeds the limit.
        if policy.max_parents and len(parent_ids) > policy.max_parents:
            return self._too_many_parents(child_id, len(parent_ids), policy.max_parents), gained
        return None, gained

    def _check_add_node(
        self, node_id: str, parent_ids: Sequence[str], policy: ValidationPolicy
    ) -> EditResult | None:
        if self._store.has_node(node_id):
            return EditResult.reject(
                RejectionReason.DUPLICATE_NODE,
                f'Node with id "{node_id}" already exists',
                node_id=node_id,
            )
        if len(set(parent_ids)) != len(parent_ids):
            return EditResult.reject(
                RejectionReason.DUPLICATE_EDGE,
                "A parent is listed more than once",
                node_id=node_id,
            )
        if node_id in parent_ids and not policy.allow_self_loops:
            return self._self_loop(node_id)

        existing = [pid for pid in parent_ids if pid != node_id]
        missing = self._missing(*existing)
        if missing is not None:
            return missing
        if policy.max_parents and len(parent_ids) > policy.max_parents:
            return self._too_many_parents(node_id, len(parent_ids), policy.max_parents)
        for parent_id in existing:
            rejection = self._check_fan_out(parent_id, policy) or self._check_depth(
                parent_id, 0, policy
            )
            if rejection is not None:
                return rejection
        return None

    def _check_link(
        self,
        parent_id: str,
        child_id: str,
        policy: ValidationPolicy,
        resulting_parents: int,
        gains_child: bool,
    ) -> EditResult | None:
        """Steps 3-6 for a single prospective parent -> child edge."""
        is_self_loop = parent_id == child_id
        if is_self_loop and not policy.allow_self_loops:
            return self._self_loop(child_id)

        if (
            not is_self_loop
            and not policy.allow_cycles
            and self._guard.would_create_cycle(parent_id, child_id)
        ):
            return EditResult.reject(
                RejectionReason.CYCLE_REJECTED,
                f'Cannot create edge: would create a cycle between "{parent_id}" and "{child_id}"',
                source_id=parent_id,
                target_id=child_id,
            )

        if policy.max_parents and resulting_parents > policy.max_parents:
            return self._too_many_parents(child_id, resulting_parents, policy.max_parents)

        if gains_child:
            rejection = self._check_fan_out(parent_id, policy)
            if rejection is not None:
                return rejection

        return self._check_depth(parent_id, self._guard.height(child_id), policy)

    def _check_fan_out(self, parent_id: str, policy: ValidationPolicy) -> EditResult | None:
        if not policy.max_children:
            return None
        child_count = len(self._store.children_of(parent_id))
        if child_count + 1 > policy.max_children:
            return EditResult.reject(
                RejectionReason.MAX_CHILDREN_EXCEEDED,
                f'Node "{parent_id}" cannot have more than {policy.max_children} children '
                f"(current: {child_count})",
                node_id=parent_id,
                current=child_count,
                limit=policy.max_children,
            )
        return None

    def _check_depth(
        self, parent_id: str, child_height: int, policy: ValidationPolicy
    ) -> EditResult | None:
        if not policy.max_depth:
            return None
        longest = self._guard.depth(parent_id) + 1 + child_height
        if longest > policy.max_depth:
            return EditResult.reject(
                RejectionReason.MAX_DEPTH_EXCEEDED,
                f"This connection would exceed the maximum graph depth of {policy.max_depth}",
                node_id=parent_id,
                depth=longest,
                limit=policy.max_depth,
            )
        return None

    @staticmethod
    def _self_loop(node_id: str) -> EditResult:
        return EditResult.reject(
            RejectionReason.SELF_LOOP_REJECTED,
            f'Cannot create self-loop on node "{node_id}"',
            node_id=node_id,
        )

    @staticmethod
    def _too_many_parents(node_id: str, count: int, limit: int) -> EditResult:
        return EditResult.reject(
            RejectionReason.MAX_PARENTS_EXCEEDED,
            f'Node "{node_id}" cannot have more than {limit} parents (would have: {count})',
            node_id=node_id,
            count=count,
            limit=limit,
        )

    # ─────────────────────────────────────────────────────────────────────────
    # Custom validator (step 7)
    # ─────────────────────────────────────────────────────────────────────────

    def _run_validator(
        self, policy: ValidationPolicy, edges: Sequence[tuple[str, str]]
    ) -> EditResult:
        validator = policy.custom_validator
        if validator is None or not edges:
            return EditResult.ok()
        nodes = self._store.snapshot()
        for source_id, target_id in edges:
            try:
                verdict = validator.evaluate(source_id, target_id, nodes)
            except Exception as e:
                return self._validator_error(source_id, target_id, e)
            if inspect.isawaitable(verdict):
                if inspect.iscoroutine(verdict):
                    verdict.close()
                logger.warning(
                    "custom validator returned an awaitable for %s -> %s; "
                    "use the async validation API",
                    source_id,
                    target_id,
                )
                return EditResult.reject(
                    RejectionReason.CUSTOM_VALIDATION_REJECTED,
                    "Custom validator is asynchronous; use the async validation API",
                    source_id=source_id,
                    target_id=target_id,
                )
            if not verdict:
                return self._validator_refused(source_id, target_id)
        return EditResult.ok()

    async def _arun_validator(
        self, policy: ValidationPolicy, edges: Sequence[tuple[str, str]]
    ) -> EditResult:
        validator = policy.custom_validator
        if validator is None or not edges:
            return EditResult.ok()
        nodes = self._store.snapshot()
        for source_id, target_id in edges:
            try:
                verdict = validator.evaluate(source_id, target_id, nodes)
                if inspect.isawaitable(verdict):
                    verdict = await verdict
            except Exception as e:
                return self._validator_error(source_id, target_id, e)
            if not verdict:
                return self._validator_refused(source_id, target_id)
        return EditResult.ok()

    @staticmethod
    def _validator_error(source_id: str, target_id: str, error: Exception) -> EditResult:
        logger.warning("custom validator raised for %s -> %s: %r", source_id, target_id, error)
        return EditResult.reject(
            RejectionReason.CUSTOM_VALIDATION_REJECTED,
            f"Custom validation error: {error}",
            source_id=source_id,
            target_id=target_id,
        )

    @staticmethod
    def _validator_refused(source_id: str, target_id: str) -> EditResult:
        return EditResult.reject(
            RejectionReason.CUSTOM_VALIDATION_REJECTED,
            "Custom validation failed",
            source_id=source_id,
            target_id=target_id,
        )

    # ─────────────────────────────────────────────────────────────────────────

    def _finish(self, action: str, result: EditResult, emit: bool) -> EditResult:
        if result.rejected:
            logger.debug("%s rejected: %s", action, result)
            if emit and self._events is not None:
                self._events.emit(
                    GraphEvent(
                        EventKind.VALIDATION_FAILED,
                        source_id=result.details.get("source_id"),
                        target_id=result.details.get("target_id"),
                        node_id=result.details.get("node_id"),
                        action=action,
                        reason=result.reason,
                        message=result.message,
                        details=dict(result.details),
                    )
                )
        return result
