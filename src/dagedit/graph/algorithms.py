"""Graph algorithms over parent-link node collections.

Pure, read-only functions: cycle detection, depth/height, ancestor and
descendant closures, topological ordering. Every function takes any
iterable of GraphNode and never mutates it.

All traversals keep visited sets, so they terminate on disconnected
subgraphs and on input that already contains a cycle. Depth and height
are iterative and ignore back edges, so deep chains never hit the
recursion limit.

CycleGuard binds the same queries to a GraphStore's current contents.
"""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING, Callable, Iterable, Iterator, Sequence

from dagedit.graph.GraphNode import GraphNode
from dagedit.graph.relations import Edge

if TYPE_CHECKING:
    from dagedit.graph.store import GraphStore

Neighbours = Callable[[str], Sequence[str]]


def children_map(nodes: Iterable[GraphNode]) -> dict[str, list[str]]:
    """Build the forward (parent -> children) adjacency map.

    Args:
        nodes: The node collection.

    Returns:
        Mapping of parent id to child ids, in node order.
    """
    children: dict[str, list[str]] = {}
    for node in nodes:
        for parent_id in node.parent_ids:
            children.setdefault(parent_id, []).append(node.id)
    return children


def would_create_cycle(nodes: Iterable[GraphNode], source_id: str, target_id: str) -> bool:
    """Check whether adding edge source -> target would close a cycle.

    Searches breadth-first from target_id along forward edges; reaching
    source_id means source is already reachable from target. A self-loop
    always counts as a cycle, so callers that permit self-loops must test
    that case before calling.

    Args:
        nodes: The node collection.
        source_id: The proposed parent.
        target_id: The proposed child.

    Returns:
        True if the edge would create a cycle.
    """
    if source_id == target_id:
        return True

    children = children_map(nodes)
    visited: set[str] = set()
    queue: deque[str] = deque([target_id])
    while queue:
        current = queue.popleft()
        if current == source_id:
            return True
        if current in visited:
            continue
        visited.add(current)
        for child_id in children.get(current, ()):
            if child_id not in visited:
                queue.append(child_id)
    return False


def is_descendant(nodes: Iterable[GraphNode], ancestor_id: str, descendant_id: str) -> bool:
    """Check if descendant_id is reachable from ancestor_id (or equal to it)."""
    if ancestor_id == descendant_id:
        return True
    return ancestor_id in ancestors(nodes, descendant_id)


def _longest_path(start_id: str, neighbours: Neighbours) -> int:
    """Longest simple path length from start_id following neighbours.

    Iterative depth-first search with memoization. Edges back into the
    current path are skipped.
    """
    memo: dict[str, int] = {}
    best: dict[str, int] = {start_id: 0}
    on_path: set[str] = {start_id}
    stack: list[tuple[str, Iterator[str]]] = [(start_id, iter(neighbours(start_id)))]

    while stack:
        current, pending = stack[-1]
        descended = False
        for next_id in pending:
            if next_id in on_path:
                continue
            if next_id in memo:
                best[current] = max(best[current], memo[next_id] + 1)
                continue
            on_path.add(next_id)
            best[next_id] = 0
            stack.append((next_id, iter(neighbours(next_id))))
            descended = True
            break
        if descended:
            continue

        stack.pop()
        on_path.discard(current)
        memo[current] = best[current]
        if stack:
            caller = stack[-1][0]
            best[caller] = max(best[caller], memo[current] + 1)

    return memo[start_id]


def depth(nodes: Iterable[GraphNode], node_id: str) -> int:
    """Longest path length from any root to node_id (roots are 0).

    A dangling parent id counts as a root one level up.
    """
    node_map = {n.id: n for n in nodes}

    def parents_of(nid: str) -> Sequence[str]:
        node = node_map.get(nid)
        return node.parent_ids if node is not None else ()

    return _longest_path(node_id, parents_of)


def height(nodes: Iterable[GraphNode], node_id: str) -> int:
    """Longest path length from node_id down to any leaf (leaves are 0)."""
    children = children_map(nodes)
    return _longest_path(node_id, lambda nid: children.get(nid, ()))


def _closure(start_id: str, neighbours: Neighbours) -> list[str]:
    """Breadth-first closure from start_id, excluding start_id itself."""
    seen: set[str] = {start_id}
    order: list[str] = []
    queue: deque[str] = deque(neighbours(start_id))
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        order.append(current)
        queue.extend(neighbours(current))
    return order


def ancestors(nodes: Iterable[GraphNode], node_id: str) -> list[str]:
    """All ancestor ids of node_id in breadth-first order.

    Dangling parent ids are skipped.
    """
    node_map = {n.id: n for n in nodes}

    def parents_of(nid: str) -> Sequence[str]:
        node = node_map.get(nid)
        if node is None:
            return ()
        return [pid for pid in node.parent_ids if pid in node_map]

    return _closure(node_id, parents_of)


def descendants(nodes: Iterable[GraphNode], node_id: str) -> list[str]:
    """All descendant ids of node_id in breadth-first order."""
    children = children_map(nodes)
    return _closure(node_id, lambda nid: children.get(nid, ()))


def subtree_ids(nodes: Iterable[GraphNode], node_ids: Iterable[str]) -> set[str]:
    """The given ids plus every descendant of each.

    Args:
        nodes: The node collection.
        node_ids: Change sites.

    Returns:
        The combined affected subtree.
    """
    children = children_map(nodes)
    result: set[str] = set()
    for node_id in node_ids:
        result.add(node_id)
        result.update(_closure(node_id, lambda nid: children.get(nid, ())))
    return result


def topological_order(nodes: Iterable[GraphNode]) -> list[str]:
    """Root-to-leaf ordering by Kahn's algorithm.

    In-degree is the length of each node's parent_ids. Nodes on a cycle,
    or below a dangling parent id, never reach in-degree zero and are
    left out.

    Returns:
        Node ids in dependency order.
    """
    node_list = list(nodes)
    in_degree = {n.id: len(n.parent_ids) for n in node_list}
    children = children_map(node_list)

    queue: deque[str] = deque(n.id for n in node_list if not n.parent_ids)
    ordered: list[str] = []
    while queue:
        current = queue.popleft()
        ordered.append(current)
        for child_id in children.get(current, ()):
            in_degree[child_id] -= 1
            if in_degree[child_id] == 0:
                queue.append(child_id)
    return ordered


def find_cycle(nodes: Iterable[GraphNode]) -> list[str] | None:
    """Find one cycle in the collection.

    Returns:
        The cycle as a parent -> child path whose first and last ids are
        equal (e.g. ["a", "b", "a"]), or None if the graph is acyclic.
    """
    node_list = list(nodes)
    children = children_map(node_list)
    on_stack, done = 1, 2
    state: dict[str, int] = {}

    for start in node_list:
        if start.id in state:
            continue
        path = [start.id]
        state[start.id] = on_stack
        stack: list[Iterator[str]] = [iter(children.get(start.id, ()))]
        while stack:
            next_id = next(stack[-1], None)
            if next_id is None:
                state[path.pop()] = done
                stack.pop()
                continue
            mark = state.get(next_id)
            if mark == on_stack:
                return path[path.index(next_id) :] + [next_id]
            if mark is None:
                state[next_id] = on_stack
                path.append(next_id)
                stack.append(iter(children.get(next_id, ())))
    return None


def root_ids(nodes: Iterable[GraphNode]) -> list[str]:
    """Ids of nodes with no parents."""
    return [n.id for n in nodes if not n.parent_ids]


def leaf_ids(nodes: Iterable[GraphNode]) -> list[str]:
    """Ids of nodes with no children."""
    node_list = list(nodes)
    with_children = {pid for n in node_list for pid in n.parent_ids}
    return [n.id for n in node_list if n.id not in with_children]


def nodes_to_edges(nodes: Iterable[GraphNode]) -> list[Edge]:
    """Project parent links into parent -> child edges."""
    return [Edge(source=pid, target=n.id) for n in nodes for pid in n.parent_ids]


def generate_node_id(nodes: Iterable[GraphNode], prefix: str = "node") -> str:
    """Generate an id of the form ``<prefix>-<n>`` not used by any node.

    n starts at the node count plus one and increments until unique.
    """
    existing = {n.id for n in nodes}
    counter = len(existing) + 1
    candidate = f"{prefix}-{counter}"
    while candidate in existing:
        counter += 1
        candidate = f"{prefix}-{counter}"
    return candidate


class CycleGuard:
    """Structural queries bound to a GraphStore's current contents.

    Each call reads the store at call time, so results always reflect the
    latest committed structure.
    """

    def __init__(self, store: GraphStore) -> None:
        self._store = store

    def _nodes(self) -> Iterable[GraphNode]:
        return self._store.nodes_view().values()

    def would_create_cycle(self, source_id: str, target_id: str) -> bool:
        """See would_create_cycle()."""
        return would_create_cycle(self._nodes(), source_id, target_id)

    def depth(self, node_id: str) -> int:
        """See depth()."""
        return depth(self._nodes(), node_id)

    def height(self, node_id: str) -> int:
        """See height()."""
        return height(self._nodes(), node_id)

    def ancestors(self, node_id: str) -> list[str]:
        """See ancestors()."""
        return ancestors(self._nodes(), node_id)

    def descendants(self, node_id: str) -> list[str]:
        """See descendants()."""
        return descendants(self._nodes(), node_id)

    def is_descendant(self, ancestor_id: str, descendant_id: str) -> bool:
        """See is_descendant()."""
        return is_descendant(self._nodes(), ancestor_id, descendant_id)

    def topological_order(self) -> list[str]:
        """See topological_order()."""
        return topological_order(self._nodes())

    def find_cycle(self) -> list[str] | None:
        """See find_cycle()."""
        return find_cycle(self._nodes())
