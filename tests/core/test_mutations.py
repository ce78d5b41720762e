"""Tests for MutationEngine edits, events and history capture."""

import pytest

from dagedit.config import HistoryConfig
from dagedit.graph import EventBus, EventKind, HistoryEngine, MutationEngine
from tests.core.graph_test_helpers import (
    abc_chain,
    build_store,
    diamond,
    make_node,
    structure,
)


def build(nodes, with_history=True):
    store = build_store(nodes)
    history = HistoryEngine(HistoryConfig()) if with_history else None
    bus = EventBus()
    events = []
    bus.subscribe(events.append)
    return store, history, MutationEngine(store, history, bus), events


def links(events):
    return [(e.kind, e.source_id, e.target_id) for e in events if e.source_id is not None]


class TestNodeMutations:
    """add_node / update_node / remove_node."""

    def test_add_node(self):
        store, history, engine, events = build(abc_chain())
        engine.add_node(make_node("D", "C"))

        assert store.parents_of("D") == ["C"]
        assert [e.kind for e in events] == [EventKind.NODE_ADDED, EventKind.LINK_ADDED]
        assert history.undo_size() == 1

    def test_add_node_errors(self):
        _, history, engine, _ = build(abc_chain())
        with pytest.raises(ValueError):
            engine.add_node(make_node("A"))
        with pytest.raises(KeyError):
            engine.add_node(make_node("D", "ghost"))
        with pytest.raises(ValueError):
            engine.add_node(make_node("D", "A", "A"))
        assert history.undo_size() == 0

    def test_update_node(self):
        store, history, engine, events = build(abc_chain())
        engine.update_node("B", label="Bee", data={"k": 1})

        node = store.find_by_id("B")
        assert node.label == "Bee"
        assert node.data == {"k": 1}
        previous = history.undo_stack()[-1]
        assert [n.label for n in previous.nodes if n.id == "B"] == ["B"]
        assert events[-1].kind is EventKind.NODE_UPDATED
        assert events[-1].details == {"fields": ["data", "label"]}

    def test_update_node_errors(self):
        _, _, engine, _ = build(abc_chain())
        with pytest.raises(KeyError):
            engine.update_node("Z", label="x")
        with pytest.raises(ValueError):
            engine.update_node("B", parent_ids=[])

    def test_remove_node_strips_links(self):
        store, _, engine, events = build(abc_chain())
        engine.remove_node("B")

        assert not store.has_node("B")
        assert store.parents_of("C") == []
        assert links(events) == [
            (EventKind.LINK_REMOVED, "A", "B"),
            (EventKind.LINK_REMOVED, "B", "C"),
        ]
        assert events[-1].kind is EventKind.NODE_REMOVED

    def test_remove_node_is_one_history_step(self):
        store, history, engine, _ = build(diamond())
        engine.remove_node("A")
        assert history.undo_size() == 1
        assert structure(store.snapshot()) == {"B": [], "C": [], "D": ["B", "C"]}

    def test_remove_missing(self):
        _, _, engine, _ = build(abc_chain())
        with pytest.raises(KeyError):
            engine.remove_node("Z")


class TestEdgeMutations:
    """add_parent / remove_parent / set_parents / reparent / detach."""

    def test_add_parent_appends(self):
        store, _, engine, events = build(abc_chain())
        engine.add_parent("C", "A")
        assert store.parents_of("C") == ["B", "A"]
        assert links(events) == [(EventKind.LINK_ADDED, "A", "C")]

    def test_add_parent_errors(self):
        _, _, engine, _ = build(abc_chain())
        with pytest.raises(ValueError):
            engine.add_parent("C", "B")
        with pytest.raises(KeyError):
            engine.add_parent("C", "ghost")

    def test_remove_parent(self):
        store, _, engine, events = build(diamond())
        engine.remove_parent("D", "B")
        assert store.parents_of("D") == ["C"]
        assert links(events) == [(EventKind.LINK_REMOVED, "B", "D")]

    def test_remove_parent_missing_edge(self):
        _, _, engine, _ = build(diamond())
        with pytest.raises(ValueError):
            engine.remove_parent("D", "A")

    def test_set_parents_emits_added_then_removed(self):
        store, _, engine, events = build(diamond())
        engine.set_parents("D", ["C", "A"])

        assert store.parents_of("D") == ["C", "A"]
        assert links(events) == [
            (EventKind.LINK_ADDED, "A", "D"),
            (EventKind.LINK_REMOVED, "B", "D"),
        ]

    def test_set_parents_errors(self):
        _, _, engine, _ = build(diamond())
        with pytest.raises(ValueError):
            engine.set_parents("D", ["A", "A"])
        with pytest.raises(KeyError):
            engine.set_parents("D", ["ghost"])

    def test_reparent(self):
        store, _, engine, events = build(diamond())
        engine.reparent("D", "A")
        assert store.parents_of("D") == ["A"]
        assert links(events) == [
            (EventKind.LINK_ADDED, "A", "D"),
            (EventKind.LINK_REMOVED, "B", "D"),
            (EventKind.LINK_REMOVED, "C", "D"),
        ]

    def test_detach(self):
        store, _, engine, events = build(abc_chain())
        engine.detach("C")
        assert store.parents_of("C") == []
        assert links(events) == [(EventKind.LINK_REMOVED, "B", "C")]
        with pytest.raises(ValueError):
            engine.detach("C")

    def test_each_mutation_is_one_history_step(self):
        _, history, engine, _ = build(abc_chain())
        engine.add_parent("C", "A")
        engine.detach("B")
        assert history.undo_size() == 2


class TestHistoryHook:
    """Snapshots are taken before the store changes."""

    def test_snapshot_holds_pre_mutation_state(self):
        _, history, engine, _ = build(abc_chain())
        engine.detach("C")
        snapshot = history.undo_stack()[-1]
        assert structure(snapshot.nodes)["C"] == ["B"]

    def test_works_without_history(self):
        store, _, engine, _ = build(abc_chain(), with_history=False)
        engine.detach("C")
        assert store.parents_of("C") == []

    def test_listener_sees_committed_state(self):
        store = build_store(abc_chain())
        bus = EventBus()
        seen = []
        bus.subscribe(lambda e: seen.append(store.parents_of("C")))
        MutationEngine(store, None, bus).add_parent("C", "A")
        assert seen == [["B", "A"]]
