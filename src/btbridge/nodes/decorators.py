"""
Decorator Nodes - Nodes that modify the result of exactly one child.

Implements the BehaviorTree.CPP v3 decorators:
- Inverter: swaps SUCCESS and FAILURE
- ForceSuccess / ForceFailure: force the completion status
- Repeat: re-runs a succeeding child ``num_cycles`` times
- RetryUntilSuccessful: re-runs a failing child up to ``num_attempts`` times
- SubtreeNode: transparent wrapper around an inlined subtree

Decorators halt their child once it completes, so the child is IDLE
again when the next activation starts.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, TYPE_CHECKING

from .. import marshal
from ..state.base import NodeStatus
from ..state.models import DecoratorModel, PortBinding, PortDescriptor, SubtreeModel
from .base import TreeNode

if TYPE_CHECKING:
    from ..core.context import TickContext

logger = logging.getLogger(__name__)


class DecoratorNode(TreeNode):
    """Base class for nodes with exactly one child."""

    PORTS: tuple = ()

    def __init__(
        self,
        name: str,
        child: TreeNode,
        model: Optional[DecoratorModel] = None,
        bindings: Optional[Dict[str, PortBinding]] = None,
    ) -> None:
        super().__init__(name, model or self.default_model(), bindings)
        self._add_child(child)

    @classmethod
    def default_model(cls) -> DecoratorModel:
        return DecoratorModel(registration_id=cls.__name__, ports=cls.PORTS)

    @property
    def child(self) -> TreeNode:
        return self._children[0]

    def halt(self) -> None:
        super().halt()
        self._on_restart()

    def reset(self) -> None:
        super().reset()
        self._on_restart()

    def _on_restart(self) -> None:
        """Clear per-activation state. Overridden by stateful decorators."""


class Inverter(DecoratorNode):
    """SUCCESS becomes FAILURE and vice versa; RUNNING passes through."""

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        status = self.child.tick(ctx)
        if status == NodeStatus.RUNNING:
            return NodeStatus.RUNNING
        self.child.halt()
        if status == NodeStatus.SUCCESS:
            return NodeStatus.FAILURE
        return NodeStatus.SUCCESS


class ForceSuccess(DecoratorNode):
    def _tick(self, ctx: "TickContext") -> NodeStatus:
        status = self.child.tick(ctx)
        if status == NodeStatus.RUNNING:
            return NodeStatus.RUNNING
        self.child.halt()
        return NodeStatus.SUCCESS


class ForceFailure(DecoratorNode):
    def _tick(self, ctx: "TickContext") -> NodeStatus:
        status = self.child.tick(ctx)
        if status == NodeStatus.RUNNING:
            return NodeStatus.RUNNING
        self.child.halt()
        return NodeStatus.FAILURE


class Repeat(DecoratorNode):
    """Repeat a succeeding child ``num_cycles`` times.

    A child FAILURE fails the decorator immediately. Between cycles the
    decorator reports RUNNING so the next cycle starts on the next tick.
    ``num_cycles=-1`` repeats forever.

    State:
        _repeat_count: Completed cycles in this activation (reset_to: 0)
    """

    PORTS = (PortDescriptor(name="num_cycles", type_name="int32"),)

    def __init__(self, name, child, model=None, bindings=None) -> None:
        self._repeat_count = 0
        super().__init__(name, child, model, bindings)

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        num_cycles = marshal.encode(self, "num_cycles", "int32")

        if num_cycles != -1 and self._repeat_count >= num_cycles:
            self._repeat_count = 0
            return NodeStatus.SUCCESS

        status = self.child.tick(ctx)
        if status == NodeStatus.RUNNING:
            return NodeStatus.RUNNING

        self.child.halt()
        if status == NodeStatus.FAILURE:
            self._repeat_count = 0
            return NodeStatus.FAILURE

        self._repeat_count += 1
        if num_cycles != -1 and self._repeat_count >= num_cycles:
            self._repeat_count = 0
            return NodeStatus.SUCCESS

        logger.debug(f"Repeat '{self._name}': cycle {self._repeat_count} done")
        return NodeStatus.RUNNING

    def _on_restart(self) -> None:
        self._repeat_count = 0


class RetryUntilSuccessful(DecoratorNode):
    """Retry a failing child up to ``num_attempts`` times.

    ``num_attempts=-1`` retries forever.

    State:
        _attempt_count: Failed attempts in this activation (reset_to: 0)
    """

    PORTS = (PortDescriptor(name="num_attempts", type_name="int32"),)

    def __init__(self, name, child, model=None, bindings=None) -> None:
        self._attempt_count = 0
        super().__init__(name, child, model, bindings)

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        num_attempts = marshal.encode(self, "num_attempts", "int32")

        status = self.child.tick(ctx)
        if status == NodeStatus.RUNNING:
            return NodeStatus.RUNNING

        self.child.halt()
        if status == NodeStatus.SUCCESS:
            self._attempt_count = 0
            return NodeStatus.SUCCESS

        self._attempt_count += 1
        if num_attempts != -1 and self._attempt_count >= num_attempts:
            logger.warning(
                f"RetryUntilSuccessful '{self._name}': {num_attempts} attempts exhausted"
            )
            self._attempt_count = 0
            return NodeStatus.FAILURE

        logger.debug(
            f"RetryUntilSuccessful '{self._name}': attempt {self._attempt_count} failed"
        )
        return NodeStatus.RUNNING

    def _on_restart(self) -> None:
        self._attempt_count = 0


class SubtreeNode(DecoratorNode):
    """Root of an inlined subtree; reports its child's status unchanged.

    The visual layer may show this node collapsed, hiding every node
    below it.
    """

    def __init__(
        self,
        name: str,
        child: TreeNode,
        model: Optional[SubtreeModel] = None,
        bindings: Optional[Dict[str, PortBinding]] = None,
    ) -> None:
        super().__init__(name, child, model or SubtreeModel(registration_id=name), bindings)

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        return self.child.tick(ctx)


DECORATOR_NODES = {
    "Inverter": Inverter,
    "ForceSuccess": ForceSuccess,
    "ForceFailure": ForceFailure,
    "Repeat": Repeat,
    "RetryUntilSuccessful": RetryUntilSuccessful,
}


__all__ = [
    "DecoratorNode",
    "Inverter",
    "ForceSuccess",
    "ForceFailure",
    "Repeat",
    "RetryUntilSuccessful",
    "SubtreeNode",
    "DECORATOR_NODES",
]
