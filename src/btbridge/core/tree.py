"""
RuntimeTree - The fully expanded, tickable tree.

Index space:
- index 0 is the synthetic root: the tree's overall status, never a node
- index i >= 1 is the i-th node in depth-first pre-order

The tree owns the blackboard its nodes read and write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

from ..nodes.base import TreeNode
from ..state.base import NodeKind, NodeStatus
from ..state.blackboard import SharedValueStore
from .context import Dispatcher, TickContext

logger = logging.getLogger(__name__)

ROOT_INDEX = 0


@dataclass(frozen=True)
class TickOutcome:
    """Result of one tick pass.

    Attributes:
        status: Root status after the pass. When a re-poll was requested
            this is the root status from before the pass.
        repoll_requested: A condition is waiting for its service response.
    """

    status: NodeStatus
    repoll_requested: bool = False


class RuntimeTree:
    """Named tree of runtime nodes.

    Example:
        >>> tree = RuntimeTree("BehaviorTree", Sequence("seq", [a, b]))
        >>> outcome = tree.tick(dispatcher)
        >>> tree.node_at(1) is tree.root
        True
    """

    def __init__(
        self,
        name: str,
        root: TreeNode,
        store: Optional[SharedValueStore] = None,
    ) -> None:
        if not name:
            raise ValueError("Tree name cannot be empty")
        self.name = name
        self.root = root
        self.store = store if store is not None else SharedValueStore(scope_name=name)
        self._root_status = NodeStatus.IDLE
        self._tick_count = 0

        self._nodes: List[TreeNode] = list(root.iter_preorder())
        for index, node in enumerate(self._nodes, start=1):
            node.attach(index, self.store)

    # =========================================================================
    # Index space
    # =========================================================================

    @property
    def nodes(self) -> List[TreeNode]:
        """Nodes in pre-order; ``nodes[i - 1]`` has runtime index i."""
        return list(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[TreeNode]:
        return iter(self._nodes)

    def node_at(self, index: int) -> TreeNode:
        """Node at runtime index ``index`` (1-based).

        Raises:
            IndexError: For the synthetic root or an index out of range.
        """
        if not 1 <= index <= len(self._nodes):
            raise IndexError(f"Runtime index {index} is not a node of '{self.name}'")
        return self._nodes[index - 1]

    def find(self, name: str) -> Optional[TreeNode]:
        for node in self._nodes:
            if node.name == name:
                return node
        return None

    def descendant_count(self, index: int) -> int:
        return self.node_at(index).descendant_count()

    # =========================================================================
    # Status
    # =========================================================================

    @property
    def root_status(self) -> NodeStatus:
        return self._root_status

    @property
    def tick_count(self) -> int:
        return self._tick_count

    def statuses(self) -> List[NodeStatus]:
        """Status per runtime index, root status first."""
        return [self._root_status] + [node.status for node in self._nodes]

    def running_indices(self) -> List[int]:
        return [
            index
            for index, node in enumerate(self._nodes, start=1)
            if node.status == NodeStatus.RUNNING
        ]

    def leaf_count(self) -> int:
        return sum(1 for node in self._nodes if node.kind.is_leaf())

    def has_kind(self, kind: NodeKind) -> bool:
        return any(node.kind == kind for node in self._nodes)

    # =========================================================================
    # Execution
    # =========================================================================

    def tick(self, dispatcher: Optional[Dispatcher] = None) -> TickOutcome:
        """Run one pass from the root node."""
        ctx = TickContext(store=self.store, dispatcher=dispatcher, tick_count=self._tick_count)
        status = self.root.tick(ctx)
        self._tick_count += 1

        if ctx.repoll_requested:
            names = ", ".join(node.name for node in ctx.repoll_nodes)
            logger.debug(f"Tree '{self.name}': re-poll requested by {names}")
            return TickOutcome(status=self._root_status, repoll_requested=True)

        self._root_status = status
        return TickOutcome(status=status)

    def set_root_status(self, status: NodeStatus) -> None:
        self._root_status = status

    def halt(self) -> None:
        """Halt every node, cancelling outstanding remote calls."""
        self.root.halt()
        self._root_status = NodeStatus.IDLE

    def reset(self) -> None:
        self.root.reset()
        self._root_status = NodeStatus.IDLE
        self._tick_count = 0
        logger.info(f"Tree '{self.name}' reset")

    def __repr__(self) -> str:
        return (
            f"RuntimeTree(name={self.name!r}, nodes={len(self._nodes)}, "
            f"status={self._root_status.name})"
        )


__all__ = ["ROOT_INDEX", "RuntimeTree", "TickOutcome"]
