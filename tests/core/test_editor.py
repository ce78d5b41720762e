"""Tests for GraphEditor end-to-end editing flows."""

import asyncio
import random

import pytest

from dagedit.config import EditorConfig, HistoryConfig, ValidationPolicy
from dagedit.editor import GraphEditor
from dagedit.errors import LayoutError
from dagedit.graph import EventKind, FunctionValidator, GraphNode, algorithms
from dagedit.graph.results import RejectionReason
from dagedit.layout import LayoutChange
from tests.core.graph_test_helpers import (
    RecordingLayout,
    abc_chain,
    build_editor,
    collapse_tree,
    diamond,
    make_nodes,
    parents,
    structure,
)


class TestScenarios:
    """Worked examples of the editing rules."""

    def test_cycle_and_delete(self, editor):
        assert algorithms.would_create_cycle(editor.nodes(), "C", "A")

        result = editor.add_parent("A", "C")
        assert result.reason is RejectionReason.CYCLE_REJECTED

        assert editor.remove_node("B")
        assert parents(editor, "C") == []

        assert editor.undo()
        assert editor.find_by_id("B") is not None
        assert parents(editor, "C") == ["B"]

    def test_fan_in_limit(self):
        editor = build_editor(make_nodes({"A": [], "X": [], "D": ["A"]}), max_parents=1)
        result = editor.add_parent("D", "X")
        assert result.reason is RejectionReason.MAX_PARENTS_EXCEEDED
        assert parents(editor, "D") == ["A"]

    def test_collapse(self):
        editor = build_editor(collapse_tree())
        editor.collapse("A")
        assert editor.hidden_ids == {"B", "C", "D"}
        editor.expand("A")
        assert editor.hidden_ids == frozenset()


class TestEdits:
    """Façade edit operations."""

    def test_add_node_generates_id(self, editor):
        result = editor.add_node("New", parent_ids=["C"])
        assert result.details["node_id"] == "node-4"
        assert parents(editor, "node-4") == ["C"]
        assert editor.find_by_id("node-4").label == "New"

    def test_add_node_uses_configured_prefix(self):
        editor = GraphEditor(abc_chain(), config=EditorConfig(id_prefix="task"))
        assert editor.add_node().details["node_id"] == "task-4"

    def test_add_node_rejections(self, editor):
        assert editor.add_node(node_id="A").reason is RejectionReason.DUPLICATE_NODE
        assert editor.add_node(parent_ids=["ghost"]).reason is RejectionReason.NODE_NOT_FOUND
        assert not editor.can_undo

    def test_update_node(self, editor):
        assert editor.update_node("A", label="Root", position=(1, 2))
        assert editor.find_by_id("A").label == "Root"
        assert editor.update_node("Z", label="x").reason is RejectionReason.NODE_NOT_FOUND
        with pytest.raises(ValueError):
            editor.update_node("A", parent_ids=["B"])

    def test_remove_node_reports_orphans(self):
        editor = build_editor(diamond())
        result = editor.remove_node("B")
        assert result.details["orphaned"] == []
        result = editor.remove_node("A")
        assert result.details["orphaned"] == ["C"]

    def test_remove_parent(self):
        editor = build_editor(diamond())
        assert editor.remove_parent("D", "B")
        assert parents(editor, "D") == ["C"]
        assert editor.remove_parent("D", "B").reason is RejectionReason.EDGE_NOT_FOUND
        assert editor.remove_parent("Z", "B").reason is RejectionReason.NODE_NOT_FOUND

    def test_reparent(self):
        editor = build_editor(diamond())
        assert editor.reparent("D", "A")
        assert parents(editor, "D") == ["A"]

    def test_reparent_to_same_parent_is_noop(self, editor):
        result = editor.reparent("C", "B")
        assert result.message == "unchanged"
        assert not editor.can_undo

    def test_set_parents(self):
        editor = build_editor(diamond())
        assert editor.set_parents("D", ["A"])
        assert parents(editor, "D") == ["A"]
        assert editor.set_parents("B", ["D"]).reason is RejectionReason.CYCLE_REJECTED

    def test_detach(self, editor):
        assert editor.detach("C")
        assert parents(editor, "C") == []
        assert editor.detach("C").reason is RejectionReason.EDGE_NOT_FOUND
        assert editor.detach("Z").reason is RejectionReason.NODE_NOT_FOUND

    def test_can_reparent(self, editor):
        assert editor.can_reparent("C", "A")
        assert not editor.can_reparent("A", "C")
        assert not editor.can_undo

    def test_rejections_publish_validation_failed(self, editor, recorded_events):
        editor.add_parent("A", "C")
        assert [e.kind for e in recorded_events] == [EventKind.VALIDATION_FAILED]
        assert recorded_events[0].action == "add_edge"

    def test_visible_edges_skip_hidden(self):
        editor = build_editor(collapse_tree())
        editor.collapse("C")
        assert [e.id for e in editor.visible_edges()] == ["A->B", "A->C"]
        assert [n.id for n in editor.visible_nodes()] == ["A", "B", "C"]


class TestHistory:
    """Undo / redo through the façade."""

    def test_round_trip(self):
        editor = build_editor(diamond())
        before = editor.nodes()

        editor.reparent("D", "A")
        after = editor.nodes()

        editor.undo()
        assert editor.nodes() == before
        editor.redo()
        assert editor.nodes() == after

    def test_new_edit_invalidates_redo(self, editor):
        editor.detach("C")
        editor.undo()
        assert editor.can_redo

        editor.add_parent("C", "A")
        assert not editor.can_redo
        assert editor.redo().reason is RejectionReason.NOTHING_TO_REDO

    def test_underflow(self, editor):
        result = editor.undo()
        assert result.reason is RejectionReason.NOTHING_TO_UNDO
        assert result.reason.is_history_underflow

    def test_undo_publishes_history_restored(self, editor, recorded_events):
        editor.detach("C")
        recorded_events.clear()

        editor.undo()

        assert [e.kind for e in recorded_events] == [EventKind.HISTORY_RESTORED]
        assert recorded_events[0].action == "undo"
        assert recorded_events[0].details["changed"] == ["C"]

    def test_undo_refreshes_collapse(self, editor):
        editor.collapse("B")
        editor.remove_node("B")
        assert editor.collapse_engine.collapsed_ids == []

        editor.add_parent("C", "A")
        editor.undo()
        assert editor.hidden_ids == frozenset()

    def test_stack_cap(self):
        editor = build_editor(abc_chain(), max_stack_size=2)
        editor.update_node("A", label="1")
        editor.update_node("A", label="2")
        editor.update_node("A", label="3")
        assert editor.undo()
        assert editor.undo()
        assert editor.undo().reason is RejectionReason.NOTHING_TO_UNDO
        assert editor.find_by_id("A").label == "1"

    def test_mark_clean(self, editor):
        editor.detach("C")
        assert editor.is_dirty
        editor.mark_clean()
        assert not editor.is_dirty
        assert not editor.can_undo

    def test_disabled_history(self):
        config = EditorConfig(history=HistoryConfig(enabled=False))
        editor = GraphEditor(abc_chain(), config=config)
        editor.detach("C")
        assert editor.undo().reason is RejectionReason.NOTHING_TO_UNDO


class TestProperties:
    """Invariants over random edit sequences."""

    def random_session(self, seed, steps=200):
        rng = random.Random(seed)
        editor = build_editor(make_nodes({f"n{i}": [] for i in range(8)}))
        ops = ["add_parent", "reparent", "remove_parent", "detach", "add_node", "remove_node"]
        for _ in range(steps):
            ids = [n.id for n in editor.nodes()]
            if len(ids) < 2:
                editor.add_node()
                continue
            a, b = rng.sample(ids, 2)
            op = rng.choice(ops)
            if op == "add_node":
                editor.add_node(parent_ids=[a])
            elif op == "remove_node":
                editor.remove_node(a)
            elif op == "detach":
                editor.detach(a)
            else:
                getattr(editor, op)(a, b)
        return editor

    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_accepted_edits_never_create_cycles(self, seed):
        editor = self.random_session(seed)
        assert algorithms.find_cycle(editor.nodes()) is None
        assert editor.store.check_integrity() == []

    @pytest.mark.parametrize("seed", [4, 5])
    def test_hidden_set_matches_union_of_collapsed(self, seed):
        editor = self.random_session(seed, steps=60)
        for node in editor.nodes():
            editor.collapse(node.id)
        editor.detach(editor.nodes()[-1].id)
        expected = set()
        for node_id in editor.collapse_engine.collapsed_ids:
            expected |= set(algorithms.descendants(editor.nodes(), node_id))
        assert editor.hidden_ids == expected

    def test_full_undo_returns_to_start(self):
        editor = build_editor(diamond(), max_stack_size=500)
        start = structure(editor.nodes())
        editor.add_node("x", node_id="X", parent_ids=["D"])
        editor.reparent("C", "B")
        editor.remove_node("B")
        editor.set_parents("X", ["A", "C"])
        while editor.can_undo:
            editor.undo()
        assert structure(editor.nodes()) == start


class TestConfigAndValidators:
    """Policy wiring."""

    def test_custom_validator_argument(self):
        editor = GraphEditor(
            make_nodes({"A": [], "B": []}),
            validator=FunctionValidator(lambda s, t, n: s != "A"),
        )
        assert editor.add_parent("B", "A").reason is RejectionReason.CUSTOM_VALIDATION_REJECTED
        editor.set_validator(None)
        assert editor.add_parent("B", "A")

    def test_initialize_resets_session(self, editor):
        editor.detach("C")
        editor.collapse("A")

        editor.initialize(diamond(), EditorConfig(validation=ValidationPolicy(max_parents=1)))

        assert not editor.can_undo
        assert editor.hidden_ids == frozenset()
        assert editor.policy.max_parents == 1
        assert not editor.can_redo

    def test_initialize_keeps_installed_validator(self):
        validator = FunctionValidator(lambda s, t, n: False)
        editor = GraphEditor(make_nodes({"A": [], "B": []}), validator=validator)
        editor.initialize(make_nodes({"A": [], "B": []}), EditorConfig())
        assert editor.policy.custom_validator is validator

    def test_initialize_warns_on_bad_structure(self, caplog):
        with caplog.at_level("WARNING", logger="dagedit.editor"):
            GraphEditor([GraphNode("A", parent_ids=["ghost"])])
        assert any("dangling-parent" in r.getMessage() for r in caplog.records)


class TestAsyncEdits:
    """aadd_parent / areparent / aset_parents."""

    @pytest.mark.asyncio
    async def test_async_validator_gates_edit(self):
        async def only_from_a(source_id, target_id, nodes):
            return source_id == "A"

        editor = GraphEditor(
            make_nodes({"A": [], "B": [], "C": []}),
            validator=FunctionValidator(only_from_a),
        )

        assert await editor.aadd_parent("C", "A")
        rejected = await editor.aadd_parent("C", "B")
        assert rejected.reason is RejectionReason.CUSTOM_VALIDATION_REJECTED
        assert parents(editor, "C") == ["A"]

        assert not await editor.areparent("C", "B")
        assert await editor.aset_parents("B", ["A"])
        assert parents(editor, "B") == ["A"]

    @pytest.mark.asyncio
    async def test_sync_edit_with_async_validator_is_rejected(self):
        async def approve(source_id, target_id, nodes):
            return True

        editor = GraphEditor(
            make_nodes({"A": [], "B": []}), validator=FunctionValidator(approve)
        )
        result = editor.add_parent("B", "A")
        assert result.reason is RejectionReason.CUSTOM_VALIDATION_REJECTED
        assert await editor.aadd_parent("B", "A")

    @pytest.mark.asyncio
    async def test_concurrent_edits_cannot_close_a_cycle(self):
        async def slow_approve(source_id, target_id, nodes):
            await asyncio.sleep(0.01)
            return True

        editor = GraphEditor(
            make_nodes({"A": [], "B": []}), validator=FunctionValidator(slow_approve)
        )

        first, second = await asyncio.gather(
            editor.aadd_parent("B", "A"), editor.aadd_parent("A", "B")
        )

        assert [r.accepted for r in (first, second)].count(True) == 1
        rejected = second if first.accepted else first
        assert rejected.reason is RejectionReason.CYCLE_REJECTED
        assert algorithms.find_cycle(editor.nodes()) is None

    @pytest.mark.asyncio
    async def test_node_removed_while_validator_waits(self):
        async def slow_approve(source_id, target_id, nodes):
            await asyncio.sleep(0.01)
            return True

        editor = GraphEditor(
            make_nodes({"A": [], "B": []}), validator=FunctionValidator(slow_approve)
        )

        pending = asyncio.ensure_future(editor.aadd_parent("B", "A"))
        await asyncio.sleep(0)
        assert editor.remove_node("A")

        result = await pending

        assert result.reason is RejectionReason.NODE_NOT_FOUND
        assert structure(editor.nodes()) == {"B": []}

    @pytest.mark.asyncio
    async def test_parent_dropped_while_validator_waits_is_judged(self):
        calls = []

        async def record(source_id, target_id, nodes):
            calls.append((source_id, target_id))
            await asyncio.sleep(0.01)
            return True

        editor = GraphEditor(
            make_nodes({"A": [], "B": [], "C": ["A"]}), validator=FunctionValidator(record)
        )

        pending = asyncio.ensure_future(editor.aset_parents("C", ["A", "B"]))
        await asyncio.sleep(0)
        assert editor.detach("C")

        assert await pending
        assert calls == [("B", "C"), ("A", "C")]
        assert parents(editor, "C") == ["A", "B"]


class TestEditorLayout:
    """Layout passes triggered by edits."""

    def test_initialize_runs_full_pass(self):
        layout = RecordingLayout()
        editor = build_editor(abc_chain(), layout=layout)
        assert layout.last.full
        assert set(editor.positions()) == {"A", "B", "C"}

    def test_edit_runs_incremental_pass(self):
        layout = RecordingLayout()
        editor = build_editor(diamond(), layout=layout)
        before = editor.positions()

        editor.detach("C")

        request = layout.last
        assert not request.full
        assert set(request.node_ids) == {"C", "D"}
        after = editor.positions()
        assert after["A"] == before["A"]
        assert after["B"] == before["B"]

    def test_add_node_is_seeded_next_to_parent(self):
        layout = RecordingLayout()
        editor = build_editor(abc_chain(), layout=layout)
        c = editor.positions()["C"]

        editor.add_node(node_id="N", parent_ids=["C"])

        assert layout.last.positions["N"] == c.translated(150.0, 0.0)
        assert editor.positions()["N"] == c.translated(150.0, 0.0)

    def test_remove_drops_position(self):
        layout = RecordingLayout()
        editor = build_editor(abc_chain(), layout=layout)
        editor.remove_node("C")
        assert "C" not in editor.positions()

    def test_deferred_layout_queues_changes(self):
        layout = RecordingLayout(deferred=True)
        editor = build_editor(diamond(), layout=layout)
        assert editor.layout.pending

        editor.detach("C")
        editor.remove_parent("D", "B")
        assert len(layout.requests) == 1

        layout.deferred = False
        editor.settle_layout(RecordingLayout.grid(layout.last))

        assert len(layout.requests) == 2
        assert layout.last.full is False
        assert set(layout.last.node_ids) == {"C", "D"}
        assert not editor.layout.pending

    def test_relayout_without_layout_raises(self, editor):
        with pytest.raises(LayoutError):
            editor.relayout()
        with pytest.raises(LayoutError):
            editor.settle_layout({})

    def test_relayout_full(self):
        layout = RecordingLayout()
        editor = build_editor(abc_chain(), layout=layout)
        editor.relayout()
        assert layout.last.full
        editor.relayout(LayoutChange.reparent(["B"]))
        assert set(layout.last.node_ids) == {"B", "C"}
        assert layout.last.locked_ids == {"A"}

    def test_undo_relayouts_changed_nodes(self):
        layout = RecordingLayout()
        editor = build_editor(diamond(), layout=layout)
        editor.detach("D")
        editor.undo()
        assert set(layout.last.node_ids) == {"D"}
