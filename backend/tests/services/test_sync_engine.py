"""Tests for SyncEngine: converging the store to the local canvas.

Run: pytest backend/tests/services/test_sync_engine.py -v
"""

import asyncio

import pytest

from app.services.canvas_editor import CanvasEditor
from app.services.graph_model import CanvasNode, GraphModel
from app.services.history import HistoryStack
from app.services.sync_engine import SaveInProgressError, SyncEngine, SyncError

WF = 7


def _node(node_id, kind="action"):
    return {
        "id": node_id,
        "workflow_id": WF,
        "title": f"n{node_id}",
        "type": kind,
        "x": 0.0,
        "y": float(node_id * 100),
        "details": {"goldenPath": False},
        "status": "active",
    }


def _edge(edge_id, source, target, label=None, style="solid"):
    return {
        "id": edge_id,
        "workflow_id": WF,
        "from_node_id": source,
        "to_node_id": target,
        "label": label,
        "style": style,
    }


CHAIN_NODES = [_node(1), _node(2, "decision"), _node(3, "terminal")]
CHAIN_EDGES = [_edge(10, 1, 2), _edge(11, 2, 3, label="ok")]


class Canvas:
    """Store fakes plus model/editor/engine wired the way a session wires them."""

    def __init__(self, store_factory, node_rows, edge_rows, node_cls=None):
        self.nodes = (node_cls or store_factory)("node", node_rows)
        self.edges = store_factory("edge", edge_rows)
        self.model = GraphModel.load_from(node_rows, edge_rows)
        self.history = HistoryStack(self.model, capacity=100)
        self.engine = SyncEngine(WF, self.model, self.nodes, self.edges)
        self.editor = CanvasEditor(self.model, self.history, self.engine.deletions)

    def reset_calls(self):
        self.nodes.calls.clear()
        self.edges.calls.clear()

    def remote_keys(self):
        return sorted(f"{r['from_node_id']}_{r['to_node_id']}" for r in self.edges.rows.values())


@pytest.fixture
def canvas(store_factory):
    return Canvas(store_factory, CHAIN_NODES, CHAIN_EDGES)


# ---------------------------------------------------------------------------
# Idempotence and minimality
# ---------------------------------------------------------------------------


class TestDiff:
    @pytest.mark.asyncio
    async def test_unchanged_canvas_performs_no_edge_writes(self, canvas):
        report = await canvas.engine.save()
        assert report.edge_operations == 0
        assert canvas.edges.writes() == []
        assert report.nodes_updated == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_second_save_is_a_no_op_for_edges(self, canvas):
        canvas.editor.connect(3, 1, label="loop")
        canvas.editor.relabel_edge("10", "go")
        await canvas.engine.save()

        canvas.reset_calls()
        report = await canvas.engine.save()
        assert report.edge_operations == 0
        assert canvas.edges.writes() == []

    @pytest.mark.asyncio
    async def test_one_write_per_changed_key(self, canvas):
        canvas.editor.relabel_edge("11", "approved")
        canvas.editor.connect(3, 1)
        canvas.editor.delete_edge("10")

        report = await canvas.engine.save()

        assert report.edges_updated == ["2_3"]
        assert report.edges_inserted == ["3_1"]
        assert report.buffered_edges_deleted == [10]
        assert report.edges_deleted == []
        assert len(canvas.edges.writes("update")) == 1
        assert len(canvas.edges.writes("insert")) == 1
        assert canvas.remote_keys() == ["2_3", "3_1"]

    @pytest.mark.asyncio
    async def test_inserted_edge_carries_label_and_style(self, canvas):
        edge = canvas.editor.connect(1, 3, label="skip")
        canvas.editor.set_edge_animated(edge.id, True)
        await canvas.engine.save()

        [(_, row)] = canvas.edges.writes("insert")
        assert row == {
            "from_node_id": 1,
            "to_node_id": 3,
            "workflow_id": WF,
            "label": "skip",
            "style": "dashed",
        }

    @pytest.mark.asyncio
    async def test_empty_remote_label_matches_missing_local_label(self, store_factory):
        canvas = Canvas(store_factory, CHAIN_NODES[:2], [_edge(10, 1, 2, label="")])
        report = await canvas.engine.save()
        assert report.edges_updated == []

    @pytest.mark.asyncio
    async def test_animation_change_updates_style(self, canvas):
        canvas.editor.set_edge_animated("10", True)
        report = await canvas.engine.save()
        assert report.edges_updated == ["1_2"]
        assert canvas.edges.rows[10]["style"] == "dashed"

    @pytest.mark.asyncio
    async def test_remote_only_edges_are_deleted(self, store_factory):
        canvas = Canvas(store_factory, CHAIN_NODES, CHAIN_EDGES)
        # appears remotely after the canvas was loaded
        canvas.edges.rows[12] = _edge(12, 1, 3)
        report = await canvas.engine.save()
        assert report.edges_deleted == [12]
        assert 12 not in canvas.edges.rows

    @pytest.mark.asyncio
    async def test_parallel_remote_rows_collapse_to_one(self, store_factory):
        canvas = Canvas(
            store_factory, CHAIN_NODES[:2], [_edge(10, 1, 2), _edge(20, 1, 2)]
        )
        report = await canvas.engine.save()
        assert report.edges_deleted == [20]
        assert list(canvas.edges.rows) == [10]

    @pytest.mark.asyncio
    async def test_node_patch_contents(self, canvas):
        canvas.editor.move_node(1, 5, 6)
        canvas.editor.set_golden_path(1, True)
        await canvas.engine.save()

        patch = next(c[2] for c in canvas.nodes.writes("update") if c[1] == 1)
        assert patch == {
            "x": 5.0,
            "y": 6.0,
            "title": "n1",
            "type": "action",
            "details": {"goldenPath": True},
        }


# ---------------------------------------------------------------------------
# Deletions
# ---------------------------------------------------------------------------


class TestDeletions:
    @pytest.mark.asyncio
    async def test_cascade_delete_order(self, store_factory):
        canvas = Canvas(store_factory, CHAIN_NODES, CHAIN_EDGES)
        shared = []
        canvas.nodes.calls = shared
        canvas.edges.calls = shared
        canvas.editor.delete_node(2)

        report = await canvas.engine.save()

        removes = [c for c in shared if c[0] == "remove_in"]
        assert removes == [
            ("remove_in", "id", [10, 11]),
            ("remove_in", "from_node_id", [2]),
            ("remove_in", "to_node_id", [2]),
            ("remove_in", "id", [2]),
        ]
        assert report.nodes_deleted == [2]
        assert 2 not in canvas.nodes.rows
        assert canvas.edges.rows == {}
        assert canvas.engine.deletions.is_empty

    @pytest.mark.asyncio
    async def test_remote_edges_of_deleted_node_are_removed_even_if_unseen(self, store_factory):
        canvas = Canvas(store_factory, CHAIN_NODES, CHAIN_EDGES)
        canvas.editor.delete_node(3)
        # created elsewhere after load; only the endpoint filter can catch it
        canvas.edges.rows[30] = _edge(30, 3, 1)

        await canvas.engine.save()
        assert canvas.remote_keys() == ["1_2"]

    @pytest.mark.asyncio
    async def test_undo_of_delete_keeps_remote_rows(self, canvas):
        canvas.editor.delete_node(2)
        canvas.history.undo()

        report = await canvas.engine.save()

        assert report.nodes_deleted == []
        assert report.buffered_edges_deleted == []
        assert canvas.remote_keys() == ["1_2", "2_3"]
        assert canvas.engine.deletions.is_empty

    @pytest.mark.asyncio
    async def test_undo_after_saved_delete_recreates_the_node(self, canvas):
        canvas.editor.delete_node(3)
        await canvas.engine.save()
        assert 3 not in canvas.nodes.rows

        canvas.history.undo()
        report = await canvas.engine.save()

        new_id = report.nodes_restored[3]
        assert report.nodes_updated == [1, 2]
        assert canvas.nodes.rows[new_id]["workflow_id"] == WF
        assert canvas.nodes.rows[new_id]["title"] == "n3"
        assert canvas.nodes.rows[new_id]["type"] == "terminal"
        assert canvas.model.node(3) is None
        assert canvas.model.find_edge(2, new_id).label == "ok"
        assert report.edges_inserted == [f"2_{new_id}"]
        assert canvas.remote_keys() == sorted(["1_2", f"2_{new_id}"])

        canvas.reset_calls()
        report = await canvas.engine.save()
        assert report.nodes_restored == {}
        assert report.nodes_updated == [1, 2, new_id]
        assert canvas.edges.writes() == []

    @pytest.mark.asyncio
    async def test_failed_save_keeps_buffers(self, canvas):
        canvas.editor.delete_node(2)
        canvas.nodes.fail_on.add(("remove_in", "id"))

        with pytest.raises(SyncError) as exc_info:
            await canvas.engine.save()

        assert exc_info.value.stage == "deletions"
        assert canvas.engine.deletions.node_ids == {2}
        assert canvas.engine.deletions.edge_ids == {10, 11}
        assert not canvas.engine.is_saving

        canvas.nodes.fail_on.clear()
        report = await canvas.engine.save()
        assert report.nodes_deleted == [2]
        assert canvas.engine.deletions.is_empty

    @pytest.mark.asyncio
    async def test_failure_stage_is_reported(self, canvas):
        canvas.edges.fail_on.add("list")
        with pytest.raises(SyncError) as exc_info:
            await canvas.engine.save()
        assert exc_info.value.stage == "edges"
        assert exc_info.value.cause.table == "edge"


# ---------------------------------------------------------------------------
# Workflow scoping
# ---------------------------------------------------------------------------


class TestScoping:
    @pytest.fixture
    def foreign(self, canvas):
        canvas.nodes.rows[9] = {**_node(9), "workflow_id": 99, "title": "theirs"}
        canvas.edges.rows[90] = {**_edge(90, 9, 9), "workflow_id": 99}
        return canvas

    @pytest.mark.asyncio
    async def test_buffered_deletes_never_reach_other_workflows(self, foreign):
        foreign.engine.deletions.node_ids.add(9)
        foreign.engine.deletions.edge_ids.add(90)

        report = await foreign.engine.save()

        assert report.nodes_deleted == [9]
        assert foreign.nodes.rows[9]["title"] == "theirs"
        assert 90 in foreign.edges.rows
        assert foreign.nodes.scopes + foreign.edges.scopes == [{"workflow_id": WF}] * 4

    @pytest.mark.asyncio
    async def test_node_of_another_workflow_is_not_overwritten(self, foreign):
        foreign.model.add_node(CanvasNode(id=9, title="mine", kind="action", x=0, y=0))

        report = await foreign.engine.save()

        assert foreign.nodes.rows[9]["title"] == "theirs"
        new_id = report.nodes_restored[9]
        assert foreign.nodes.rows[new_id]["workflow_id"] == WF
        assert foreign.nodes.rows[new_id]["title"] == "mine"


# ---------------------------------------------------------------------------
# Unresolved endpoints
# ---------------------------------------------------------------------------


class TestUnresolved:
    @pytest.mark.asyncio
    async def test_synthetic_nodes_and_their_edges_are_skipped(self, canvas):
        node = canvas.editor.add_node("action")
        assert node.id <= 0

        report = await canvas.engine.save()

        assert node.id not in report.nodes_updated
        assert len(report.edges_skipped) == 1
        assert canvas.edges.writes("insert") == []
        assert canvas.nodes.writes("insert") == []


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.fixture
    def blocking(self, store_factory):
        gate = asyncio.Event()

        class BlockingNodeStore(store_factory):
            async def update(self, row_id, patch, scope=None):
                await gate.wait()
                return await super().update(row_id, patch, scope)

        canvas = Canvas(store_factory, CHAIN_NODES, CHAIN_EDGES, node_cls=BlockingNodeStore)
        return canvas, gate

    @pytest.mark.asyncio
    async def test_second_save_while_busy_raises(self, blocking):
        canvas, gate = blocking
        first = asyncio.create_task(canvas.engine.save())
        await asyncio.sleep(0)
        assert canvas.engine.is_saving

        with pytest.raises(SaveInProgressError):
            await canvas.engine.save()

        gate.set()
        await first
        assert not canvas.engine.is_saving

    @pytest.mark.asyncio
    async def test_edits_during_save_are_left_for_next_save(self, blocking):
        canvas, gate = blocking
        first = asyncio.create_task(canvas.engine.save())
        await asyncio.sleep(0)

        canvas.editor.delete_edge("11")
        gate.set()
        await first

        assert canvas.engine.deletions.edge_ids == {11}
        assert 11 in canvas.edges.rows

        report = await canvas.engine.save()
        assert report.buffered_edges_deleted == [11]
        assert canvas.engine.deletions.is_empty


# ---------------------------------------------------------------------------
# Eager node creation
# ---------------------------------------------------------------------------


class TestCreateNode:
    @pytest.mark.asyncio
    async def test_returns_persisted_id(self, canvas):
        node_id = await canvas.engine.create_node("human", "Review", 10, 20)
        row = canvas.nodes.rows[node_id]
        assert row["workflow_id"] == WF
        assert row["type"] == "human"
        assert row["details"] == {"goldenPath": False}

    @pytest.mark.asyncio
    async def test_store_failure_raises_sync_error(self, canvas):
        canvas.nodes.fail_on.add("insert")
        with pytest.raises(SyncError) as exc_info:
            await canvas.engine.create_node("action", "x", 0, 0)
        assert exc_info.value.stage == "create_node"
