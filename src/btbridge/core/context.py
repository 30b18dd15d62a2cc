"""
TickContext - Execution context passed to every node on tick.

Carries the blackboard, the dispatcher that starts remote calls on
background workers, and the re-poll flag raised by condition adapters
whose service call has not been answered yet.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, TYPE_CHECKING

if TYPE_CHECKING:
    from ..nodes.base import TreeNode
    from ..state.blackboard import SharedValueStore
    from .events import ActionCall, ConditionCall


class Dispatcher(Protocol):
    """Starts and cancels remote calls on behalf of leaf adapters.

    Implementations must not block: the tick loop calls these methods.
    """

    def start_action(self, call: "ActionCall") -> None: ...

    def cancel_action(self, node_index: int, generation: int) -> None: ...

    def start_condition(self, call: "ConditionCall") -> None: ...


@dataclass
class TickContext:
    """Execution context for one tick pass.

    Attributes:
        store: Blackboard shared by all nodes of the tree.
        dispatcher: Starts remote calls for leaf adapters.
        tick_count: Number of passes run by the owning tree.
        repoll_requested: Set when a condition is waiting for its
            service response; composites stop the pass early.
        repoll_nodes: Conditions that requested the re-poll.
    """

    store: Optional["SharedValueStore"] = None
    dispatcher: Optional[Dispatcher] = None
    tick_count: int = 0
    repoll_requested: bool = False
    repoll_nodes: List["TreeNode"] = field(default_factory=list)

    def request_repoll(self, node: "TreeNode") -> None:
        """Ask for another pass once the pending evaluation resolves."""
        self.repoll_requested = True
        self.repoll_nodes.append(node)

    def require_dispatcher(self) -> Dispatcher:
        if self.dispatcher is None:
            raise RuntimeError("TickContext has no dispatcher; remote leaves cannot run")
        return self.dispatcher


__all__ = ["Dispatcher", "TickContext"]
