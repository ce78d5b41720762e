"""Tests for CollapseEngine."""

from dagedit.graph import CollapseEngine
from dagedit.graph.results import RejectionReason
from tests.core.graph_test_helpers import build_store, collapse_tree, diamond, make_node


def collapse_engine(nodes=None):
    store = build_store(nodes if nodes is not None else collapse_tree())
    return store, CollapseEngine(store)


def union_of_collapsed(engine):
    hidden = set()
    for entry in engine.iter_entries():
        hidden |= entry.hidden_descendant_ids
    return hidden


class TestCollapseExpand:
    """collapse / expand / toggle."""

    def test_collapse_hides_all_descendants(self):
        _, engine = collapse_engine()
        result = engine.collapse("A")

        assert result.accepted
        assert engine.hidden_ids == {"B", "C", "D"}
        assert result.details["hidden"] == ["B", "C", "D"]

    def test_expand_restores_visibility(self):
        _, engine = collapse_engine()
        engine.collapse("A")
        assert engine.expand("A")
        assert engine.hidden_ids == frozenset()

    def test_rejections(self):
        _, engine = collapse_engine()
        assert engine.collapse("Z").reason is RejectionReason.NODE_NOT_FOUND
        assert engine.collapse("D").reason is RejectionReason.CANNOT_COLLAPSE_LEAF
        engine.collapse("C")
        assert engine.collapse("C").reason is RejectionReason.ALREADY_COLLAPSED
        assert engine.expand("A").reason is RejectionReason.NOT_COLLAPSED

    def test_nested_collapse_keeps_inner_hidden(self):
        _, engine = collapse_engine()
        engine.collapse("C")
        engine.collapse("A")
        engine.expand("A")
        assert engine.hidden_ids == {"D"}

    def test_toggle(self):
        _, engine = collapse_engine()
        engine.toggle("C")
        assert engine.is_collapsed("C")
        engine.toggle("C")
        assert not engine.is_collapsed("C")

    def test_expand_all(self):
        _, engine = collapse_engine()
        engine.collapse("A")
        engine.collapse("C")
        engine.expand_all()
        assert engine.collapsed_ids == []
        assert engine.hidden_count() == 0

    def test_shared_child_hidden_while_any_collapsing_parent_remains(self):
        _, engine = collapse_engine(diamond())
        engine.collapse("B")
        engine.collapse("C")
        engine.expand("B")
        assert engine.hidden_ids == {"D"}


class TestQueries:
    """Visibility and capability queries."""

    def test_visibility(self):
        _, engine = collapse_engine()
        engine.collapse("C")
        assert engine.is_hidden("D")
        assert engine.is_visible("C")
        assert [n.id for n in engine.visible_nodes()] == ["A", "B", "C"]

    def test_visible_nodes_filters_given_list(self):
        _, engine = collapse_engine()
        engine.collapse("A")
        assert [n.id for n in engine.visible_nodes(collapse_tree())] == ["A"]

    def test_can_collapse_and_expand(self):
        _, engine = collapse_engine()
        assert engine.can_collapse("A")
        assert not engine.can_collapse("D")
        assert not engine.can_collapse("Z")
        engine.collapse("A")
        assert not engine.can_collapse("A")
        assert engine.can_expand("A")

    def test_hidden_descendants(self):
        _, engine = collapse_engine()
        engine.collapse("C")
        assert engine.hidden_descendants("C") == {"D"}
        assert engine.hidden_descendants("A") == frozenset()


class TestStructuralChange:
    """refresh / on_node_deleted / reveal_node."""

    def test_refresh_picks_up_new_descendants(self):
        store, engine = collapse_engine()
        engine.collapse("C")
        store.insert(make_node("E", "D"))
        engine.refresh()
        assert engine.hidden_ids == {"D", "E"}
        assert engine.hidden_ids == union_of_collapsed(engine)

    def test_refresh_drops_missing_nodes(self):
        store, engine = collapse_engine()
        engine.collapse("C")
        store.pop("C")
        engine.refresh()
        assert engine.collapsed_ids == []
        assert engine.hidden_ids == frozenset()

    def test_on_node_deleted(self):
        store, engine = collapse_engine()
        engine.collapse("A")
        engine.collapse("C")
        store.pop("C")
        d = store.find_by_id("D")
        d.parent_ids = []
        store.replace(d)

        engine.on_node_deleted("C")

        assert engine.collapsed_ids == ["A"]
        assert engine.hidden_ids == {"B"}

    def test_reveal_node_expands_collapsed_ancestors(self):
        _, engine = collapse_engine()
        engine.collapse("A")
        engine.collapse("C")

        result = engine.reveal_node("D")

        assert sorted(result.details["expanded"]) == ["A", "C"]
        assert engine.is_visible("D")
        assert engine.hidden_ids == frozenset()

    def test_reveal_unknown_node(self):
        _, engine = collapse_engine()
        assert engine.reveal_node("Z").reason is RejectionReason.NODE_NOT_FOUND


class TestSerialization:
    """get_state / restore_state."""

    def test_round_trip_into_fresh_engine(self):
        store, engine = collapse_engine()
        engine.collapse("C")
        engine.collapse("A")
        state = engine.get_state()

        other = CollapseEngine(store)
        other.restore_state(state)

        assert other.collapsed_ids == ["C", "A"]
        assert other.hidden_ids == engine.hidden_ids
        assert state.collapsed_ids == ["C", "A"]

    def test_restore_drops_unknown_ids(self):
        store, engine = collapse_engine()
        engine.collapse("C")
        state = engine.get_state()

        other_store = build_store([make_node("A")])
        other = CollapseEngine(other_store)
        other.restore_state(state)
        assert other.collapsed_ids == []

    def test_entries_keep_collapse_time(self):
        _, engine = collapse_engine()
        engine.collapse("C")
        before = engine.get_state().entries[0].collapsed_at
        engine.refresh()
        assert engine.get_state().entries[0].collapsed_at == before
