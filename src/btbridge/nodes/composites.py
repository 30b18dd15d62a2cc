"""
Composite Nodes - Control nodes that orchestrate multiple children.

Implements the BehaviorTree.CPP v3 control nodes:
- Sequence: remembers the running child, restarts after completion
- SequenceStar: like Sequence, but resumes at the failed child
- Fallback: tries children in order until one succeeds
- ReactiveSequence / ReactiveFallback: re-tick from the first child every tick
- Parallel: ticks all children, completes on success/failure thresholds

Composites halt (and so reset to IDLE) their children whenever they
finish, which makes "became IDLE" transitions visible to the status
synchronizer.

A pending condition re-poll (ctx.repoll_requested) stops every
composite early with RUNNING, so the rest of the pass is skipped.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Set, TYPE_CHECKING

from .. import marshal
from ..state.base import NodeStatus
from ..state.errors import PortValueError
from ..state.models import ControlModel, PortBinding, PortDescriptor
from .base import TreeNode

if TYPE_CHECKING:
    from ..core.context import TickContext

logger = logging.getLogger(__name__)

THRESHOLD_PORTS = ("success_threshold", "failure_threshold")


class CompositeNode(TreeNode):
    """Base class for nodes with one or more children.

    Subclasses implement _tick(). Built-in composites are registered by
    their ID in ``CONTROL_NODES`` and describe their ports in ``PORTS``.
    """

    PORTS: tuple = ()

    def __init__(
        self,
        name: str,
        children: List[TreeNode],
        model: Optional[ControlModel] = None,
        bindings: Optional[Dict[str, PortBinding]] = None,
    ) -> None:
        super().__init__(name, model or self.default_model(), bindings)

        if not children:
            raise ValueError(f"Control node '{name}' requires at least one child node")

        for child in children:
            self._add_child(child)

    @classmethod
    def default_model(cls) -> ControlModel:
        return ControlModel(registration_id=cls.__name__, ports=cls.PORTS)

    def halt_children(self, start: int = 0) -> None:
        """Halt children from ``start`` onwards, leaving them IDLE."""
        for child in self._children[start:]:
            child.halt()

    def halt(self) -> None:
        super().halt()
        self._on_restart()

    def reset(self) -> None:
        super().reset()
        self._on_restart()

    def _on_restart(self) -> None:
        """Clear per-activation state. Overridden by stateful composites."""


class Sequence(CompositeNode):
    """Tick children left-to-right until one fails or all succeed.

    A RUNNING child is resumed on the next tick without re-ticking the
    children before it.
    """

    def __init__(self, name, children, model=None, bindings=None) -> None:
        self._current_child_index = 0
        super().__init__(name, children, model, bindings)

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        while self._current_child_index < len(self._children):
            child = self._children[self._current_child_index]
            status = child.tick(ctx)

            if status == NodeStatus.RUNNING:
                return NodeStatus.RUNNING
            if status == NodeStatus.FAILURE:
                self._on_child_failure()
                return NodeStatus.FAILURE
            self._current_child_index += 1

        self.halt_children()
        self._current_child_index = 0
        return NodeStatus.SUCCESS

    def _on_child_failure(self) -> None:
        self.halt_children()
        self._current_child_index = 0

    def _on_restart(self) -> None:
        self._current_child_index = 0


class SequenceStar(Sequence):
    """Sequence that retries the failed child instead of starting over.

    After a failure the children that already succeeded are not ticked
    again; the next tick resumes at the child that failed. Halting the
    node starts it over from the first child.
    """

    def _on_child_failure(self) -> None:
        self.halt_children(self._current_child_index)


class Fallback(CompositeNode):
    """Tick children left-to-right until one succeeds or all fail."""

    def __init__(self, name, children, model=None, bindings=None) -> None:
        self._current_child_index = 0
        super().__init__(name, children, model, bindings)

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        while self._current_child_index < len(self._children):
            child = self._children[self._current_child_index]
            status = child.tick(ctx)

            if status == NodeStatus.RUNNING:
                return NodeStatus.RUNNING
            if status == NodeStatus.SUCCESS:
                self.halt_children()
                self._current_child_index = 0
                return NodeStatus.SUCCESS
            self._current_child_index += 1

        self.halt_children()
        self._current_child_index = 0
        return NodeStatus.FAILURE

    def _on_restart(self) -> None:
        self._current_child_index = 0


class ReactiveSequence(CompositeNode):
    """Sequence that re-evaluates earlier children on every tick.

    When a child is RUNNING, the children after it are halted so that
    a previously running branch is interrupted when an earlier condition
    changes.
    """

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        for index, child in enumerate(self._children):
            status = child.tick(ctx)

            if status == NodeStatus.RUNNING:
                self.halt_children(index + 1)
                return NodeStatus.RUNNING
            if status == NodeStatus.FAILURE:
                self.halt_children()
                return NodeStatus.FAILURE

        self.halt_children()
        return NodeStatus.SUCCESS


class ReactiveFallback(CompositeNode):
    """Fallback that re-evaluates earlier children on every tick."""

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        for index, child in enumerate(self._children):
            status = child.tick(ctx)

            if status == NodeStatus.RUNNING:
                self.halt_children(index + 1)
                return NodeStatus.RUNNING
            if status == NodeStatus.SUCCESS:
                self.halt_children()
                return NodeStatus.SUCCESS

        self.halt_children()
        return NodeStatus.FAILURE


class Parallel(CompositeNode):
    """Tick all children and complete on the configured thresholds.

    Ports:
        success_threshold: Successes needed for SUCCESS (default 1).
        failure_threshold: Failures needed for FAILURE (default 1).

    A negative threshold counts from the number of children, so -1
    means "all children".

    Completed children are not ticked again until the parallel itself
    completes.
    """

    PORTS = (
        PortDescriptor(name="success_threshold", type_name="int32", default="1"),
        PortDescriptor(name="failure_threshold", type_name="int32", default="1"),
    )

    def __init__(self, name, children, model=None, bindings=None) -> None:
        self._completed: Set[int] = set()
        super().__init__(name, children, model, bindings)

    def check_thresholds(self) -> None:
        """Validate thresholds written as literals in the tree definition.

        Thresholds bound to the blackboard are checked when ticked.

        Raises:
            PortValueError: If a threshold does not fit the children.
        """
        for port_name in THRESHOLD_PORTS:
            if self.input_is_literal(port_name):
                self._threshold(port_name)

    def _threshold(self, port_name: str) -> int:
        value = marshal.encode(self, port_name, "int32")
        count = len(self._children)
        resolved = count + value + 1 if value < 0 else value
        if not 0 < resolved <= count:
            raise PortValueError(f"threshold for {count} children", port_name, value)
        return resolved

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        success_threshold = self._threshold("success_threshold")
        failure_threshold = self._threshold("failure_threshold")

        success_count = 0
        failure_count = 0
        for index, child in enumerate(self._children):
            if index in self._completed:
                status = child.status
            else:
                status = child.tick(ctx)
                if status.is_complete():
                    self._completed.add(index)

            if status == NodeStatus.SUCCESS:
                success_count += 1
            elif status == NodeStatus.FAILURE:
                failure_count += 1

            if ctx.repoll_requested:
                return NodeStatus.RUNNING

        if success_count >= success_threshold:
            self.halt_children()
            self._completed.clear()
            return NodeStatus.SUCCESS
        if failure_count >= failure_threshold:
            self.halt_children()
            self._completed.clear()
            return NodeStatus.FAILURE
        return NodeStatus.RUNNING

    def _on_restart(self) -> None:
        self._completed.clear()


CONTROL_NODES = {
    "Sequence": Sequence,
    "SequenceStar": SequenceStar,
    "Fallback": Fallback,
    "ReactiveSequence": ReactiveSequence,
    "ReactiveFallback": ReactiveFallback,
    "Parallel": Parallel,
}


__all__ = [
    "CompositeNode",
    "Sequence",
    "SequenceStar",
    "Fallback",
    "ReactiveSequence",
    "ReactiveFallback",
    "Parallel",
    "CONTROL_NODES",
]
