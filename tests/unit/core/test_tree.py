"""
Unit tests for RuntimeTree and TickContext.

Tests:
- runtime index space (root at 0, nodes 1..n in pre-order)
- tick outcome and re-poll handling
- halt / reset / overrides
"""

from typing import List, Optional

import pytest

from btbridge.core.context import TickContext
from btbridge.core.tree import ROOT_INDEX, RuntimeTree, TickOutcome
from btbridge.nodes.adapters import ConditionAdapter
from btbridge.nodes.base import LeafNode
from btbridge.nodes.composites import Sequence
from btbridge.state.base import NodeKind, NodeStatus
from btbridge.state.blackboard import SharedValueStore
from btbridge.state.models import ActionModel, ConditionModel, PortDescriptor


class MockLeafNode(LeafNode):
    def __init__(self, name: str, results: Optional[List[NodeStatus]] = None) -> None:
        super().__init__(name, ActionModel(registration_id="Mock"))
        self._results = results or [NodeStatus.SUCCESS]
        self._tick_index = 0

    def _tick(self, ctx: TickContext) -> NodeStatus:
        result = self._results[self._tick_index % len(self._results)]
        self._tick_index += 1
        return result


def make_condition(name: str = "ready") -> ConditionAdapter:
    model = ConditionModel(
        registration_id="IsReady",
        ports=(PortDescriptor(name="service_name", default="/is_ready"),),
    )
    return ConditionAdapter(name, model)


# =============================================================================
# Index space
# =============================================================================


class TestIndexSpace:
    def test_preorder_indices(self):
        a, b, c = MockLeafNode("a"), MockLeafNode("b"), MockLeafNode("c")
        tree = RuntimeTree("T", Sequence("root", [a, Sequence("inner", [b]), c]))

        assert ROOT_INDEX == 0
        assert len(tree) == 5
        assert [n.name for n in tree] == ["root", "a", "inner", "b", "c"]
        assert tree.node_at(1) is tree.root
        assert tree.node_at(4) is b
        assert b.index == 4
        assert tree.descendant_count(3) == 1

    @pytest.mark.parametrize("index", [0, -1, 6])
    def test_node_at_out_of_range(self, index):
        tree = RuntimeTree("T", Sequence("root", [MockLeafNode(f"x{i}") for i in range(4)]))
        with pytest.raises(IndexError):
            tree.node_at(index)

    def test_nodes_attached_to_store(self):
        store = SharedValueStore()
        leaf = MockLeafNode("a")
        tree = RuntimeTree("T", leaf, store=store)
        assert leaf.store is store
        assert tree.store is store

    def test_own_store_by_default(self):
        tree = RuntimeTree("T", MockLeafNode("a"))
        assert tree.store.scope_name == "T"

    def test_find_and_kinds(self):
        tree = RuntimeTree("T", Sequence("root", [MockLeafNode("a"), make_condition()]))
        assert tree.find("ready").kind == NodeKind.CONDITION
        assert tree.find("missing") is None
        assert tree.leaf_count() == 2
        assert tree.has_kind(NodeKind.CONDITION)
        assert not tree.has_kind(NodeKind.SUBTREE)

    def test_empty_name_rejected(self):
        with pytest.raises(ValueError):
            RuntimeTree("", MockLeafNode("a"))


# =============================================================================
# Ticking
# =============================================================================


class TestTick:
    def test_statuses_root_first(self):
        leaves = [MockLeafNode("a"), MockLeafNode("b", [NodeStatus.RUNNING])]
        tree = RuntimeTree("T", Sequence("root", leaves))
        assert tree.statuses() == [NodeStatus.IDLE] * 4

        outcome = tree.tick()
        assert outcome == TickOutcome(status=NodeStatus.RUNNING)
        assert tree.root_status == NodeStatus.RUNNING
        assert tree.statuses() == [
            NodeStatus.RUNNING,
            NodeStatus.RUNNING,
            NodeStatus.SUCCESS,
            NodeStatus.RUNNING,
        ]
        assert tree.running_indices() == [1, 3]
        assert tree.tick_count == 1

    def test_repoll_keeps_root_status(self, dispatcher):
        condition = make_condition()
        tree = RuntimeTree("T", Sequence("root", [condition, MockLeafNode("after")]))

        outcome = tree.tick(dispatcher)

        assert outcome.repoll_requested
        assert outcome.status == NodeStatus.IDLE
        assert tree.root_status == NodeStatus.IDLE
        assert len(dispatcher.conditions) == 1
        assert tree.find("after").tick_count == 0

        condition.on_resolved(1, True)
        outcome = tree.tick(dispatcher)
        assert not outcome.repoll_requested
        assert outcome.status == NodeStatus.SUCCESS

    def test_halt(self):
        tree = RuntimeTree("T", Sequence("root", [MockLeafNode("a", [NodeStatus.RUNNING])]))
        tree.tick()
        tree.halt()
        assert tree.statuses() == [NodeStatus.IDLE] * 3

    def test_reset(self):
        tree = RuntimeTree("T", MockLeafNode("a"))
        tree.tick()
        tree.reset()
        assert tree.root_status == NodeStatus.IDLE
        assert tree.tick_count == 0

    def test_set_root_status(self):
        tree = RuntimeTree("T", MockLeafNode("a"))
        tree.set_root_status(NodeStatus.FAILURE)
        assert tree.statuses()[0] == NodeStatus.FAILURE


class TestTickContext:
    def test_request_repoll(self):
        ctx = TickContext()
        node = MockLeafNode("a")
        ctx.request_repoll(node)
        assert ctx.repoll_requested
        assert ctx.repoll_nodes == [node]

    def test_require_dispatcher(self, dispatcher):
        assert TickContext(dispatcher=dispatcher).require_dispatcher() is dispatcher
        with pytest.raises(RuntimeError):
            TickContext().require_dispatcher()
