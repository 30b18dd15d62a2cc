"""
Leaf Adapters - Runtime leaves that run their work on remote services.

ActionAdapter:
    IDLE -> DISPATCHED -> RUNNING -> SUCCESS | FAILURE

    The first tick of an activation builds the goal from the node's
    inputs, hands it to the dispatcher and returns RUNNING without
    blocking. Goal acknowledgement, feedback and the result arrive as
    hand-off events drained by the tick loop; the next tick after the
    result reports the outcome. Halting cancels the outstanding goal
    exactly once.

ConditionAdapter:
    UNRESOLVED -> PENDING -> SUCCESS | FAILURE

    The first tick of an activation sends one service request and
    reports PENDING, which the adapter turns into a re-poll request on
    the tick context plus RUNNING for its parent. Once the response is
    drained the resolved status is returned on every tick until the
    node is halted or reset.

Both adapters number their activations. Events from an older
generation are dropped.

Error codes:
- E2001: Missing input while building the goal/request (leaf FAILURE)
- E2007: Feedback names an undeclared port
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Mapping, Optional, TYPE_CHECKING

from .. import marshal
from ..core.events import ActionCall, ConditionCall
from ..state.base import NodeStatus
from ..state.errors import MissingInputError
from ..state.models import ActionModel, ConditionModel, PortBinding
from .base import LeafNode

if TYPE_CHECKING:
    from ..core.context import Dispatcher, TickContext

logger = logging.getLogger(__name__)

SERVER_PORT = "server_name"
SERVICE_PORT = "service_name"


class ActionState(str, Enum):
    IDLE = "idle"
    DISPATCHED = "dispatched"
    RUNNING = "running"
    SUCCESS = "success"
    FAILURE = "failure"


class Evaluation(str, Enum):
    """Outcome of ConditionAdapter.evaluate()."""

    UNRESOLVED = "unresolved"
    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"

    @classmethod
    def from_status(cls, status: NodeStatus) -> "Evaluation":
        return cls.SUCCESS if status == NodeStatus.SUCCESS else cls.FAILURE

    def to_status(self) -> NodeStatus:
        if self == Evaluation.SUCCESS:
            return NodeStatus.SUCCESS
        if self == Evaluation.FAILURE:
            return NodeStatus.FAILURE
        return NodeStatus.RUNNING


def _route_name(node: LeafNode, port_name: str) -> str:
    value = node.get_input(port_name)
    if not isinstance(value, str) or not value:
        raise MissingInputError(port_name, node.name, "route name must be a non-empty string")
    return value


class ActionAdapter(LeafNode):
    """Leaf that runs a remote long-running action.

    The node never blocks the tick. It reports RUNNING from the moment
    the goal is handed to the dispatcher until a result is drained.
    """

    def __init__(
        self,
        name: str,
        model: ActionModel,
        bindings: Optional[Dict[str, PortBinding]] = None,
    ) -> None:
        super().__init__(name, model, bindings)
        self._state = ActionState.IDLE
        self._generation = 0
        self._dispatcher: Optional["Dispatcher"] = None
        self._last_result: Dict[str, Any] = {}

    @property
    def state(self) -> ActionState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def last_result(self) -> Dict[str, Any]:
        return dict(self._last_result)

    @property
    def server_name(self) -> str:
        return _route_name(self, SERVER_PORT)

    def is_outstanding(self) -> bool:
        return self._state in (ActionState.DISPATCHED, ActionState.RUNNING)

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        if self._state == ActionState.IDLE:
            return self._dispatch(ctx)

        if self._state in (ActionState.SUCCESS, ActionState.FAILURE):
            outcome = NodeStatus.SUCCESS if self._state == ActionState.SUCCESS else NodeStatus.FAILURE
            # next tick starts a new activation
            self._state = ActionState.IDLE
            return outcome

        return NodeStatus.RUNNING

    def _dispatch(self, ctx: "TickContext") -> NodeStatus:
        dispatcher = ctx.require_dispatcher()
        goal = marshal.request_from_node(self)
        server_name = self.server_name

        self._generation += 1
        self._dispatcher = dispatcher
        self._last_result = {}
        self._state = ActionState.DISPATCHED
        dispatcher.start_action(
            ActionCall(
                node_index=self._index,
                generation=self._generation,
                server_name=server_name,
                goal=goal,
            )
        )
        logger.info(f"Action '{self._name}' dispatched goal to {server_name}")
        return NodeStatus.RUNNING

    # =========================================================================
    # Hand-off events
    # =========================================================================

    def _is_current(self, generation: int) -> bool:
        if generation != self._generation or not self.is_outstanding():
            logger.debug(
                f"Action '{self._name}': dropping event of generation {generation} "
                f"(current {self._generation}, {self._state.value})"
            )
            return False
        return True

    def on_goal_sent(self, generation: int) -> bool:
        if not self._is_current(generation):
            return False
        self._state = ActionState.RUNNING
        return True

    def on_feedback(self, generation: int, feedback: Mapping[str, Any]) -> bool:
        if not self._is_current(generation):
            return False
        marshal.apply_feedback(self, feedback)
        return True

    def on_result(
        self, generation: int, success: bool, result: Optional[Mapping[str, Any]] = None
    ) -> bool:
        if not self._is_current(generation):
            return False
        self._state = ActionState.SUCCESS if success else ActionState.FAILURE
        self._last_result = dict(result or {})
        self._dispatcher = None
        logger.info(f"Action '{self._name}' finished: {self._state.value}")
        return True

    # =========================================================================
    # Interruption and overrides
    # =========================================================================

    def _cancel_outstanding(self) -> None:
        if not self.is_outstanding():
            return
        if self._dispatcher is not None:
            self._dispatcher.cancel_action(self._index, self._generation)
            logger.info(f"Action '{self._name}' cancelled")
        self._dispatcher = None
        self._generation += 1

    def halt(self) -> None:
        self._cancel_outstanding()
        self._state = ActionState.IDLE
        super().halt()

    def reset(self) -> None:
        self._cancel_outstanding()
        self._state = ActionState.IDLE
        super().reset()

    def set_status(self, status: NodeStatus) -> None:
        """Force a status, recording terminal statuses as the outcome."""
        if status.is_complete():
            self._cancel_outstanding()
            self._state = ActionState.SUCCESS if status == NodeStatus.SUCCESS else ActionState.FAILURE
        elif status == NodeStatus.IDLE:
            self._cancel_outstanding()
            self._state = ActionState.IDLE
        super().set_status(status)


class ConditionAdapter(LeafNode):
    """Leaf that evaluates a remote service once per activation."""

    def __init__(
        self,
        name: str,
        model: ConditionModel,
        bindings: Optional[Dict[str, PortBinding]] = None,
    ) -> None:
        super().__init__(name, model, bindings)
        self._evaluation = Evaluation.UNRESOLVED
        self._generation = 0
        self._call_count = 0

    @property
    def evaluation(self) -> Evaluation:
        return self._evaluation

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def call_count(self) -> int:
        """Service requests sent over the node's lifetime."""
        return self._call_count

    @property
    def service_name(self) -> str:
        return _route_name(self, SERVICE_PORT)

    def evaluate(self, ctx: "TickContext") -> Evaluation:
        """Advance the evaluation, sending the request if none was sent yet."""
        if self._evaluation != Evaluation.UNRESOLVED:
            return self._evaluation

        dispatcher = ctx.require_dispatcher()
        request = marshal.request_from_node(self)
        service_name = self.service_name

        self._generation += 1
        self._call_count += 1
        self._evaluation = Evaluation.PENDING
        dispatcher.start_condition(
            ConditionCall(
                node_index=self._index,
                generation=self._generation,
                service_name=service_name,
                request=request,
            )
        )
        logger.debug(f"Condition '{self._name}' requested {service_name}")
        return self._evaluation

    def _tick(self, ctx: "TickContext") -> NodeStatus:
        evaluation = self.evaluate(ctx)
        if evaluation == Evaluation.PENDING:
            ctx.request_repoll(self)
        return evaluation.to_status()

    def on_resolved(self, generation: int, success: bool) -> bool:
        if generation != self._generation or self._evaluation != Evaluation.PENDING:
            logger.debug(f"Condition '{self._name}': dropping stale response {generation}")
            return False
        self._evaluation = Evaluation.SUCCESS if success else Evaluation.FAILURE
        logger.debug(f"Condition '{self._name}' resolved: {self._evaluation.value}")
        return True

    def _unresolve(self) -> None:
        if self._evaluation == Evaluation.PENDING:
            # the in-flight response becomes stale
            self._generation += 1
        self._evaluation = Evaluation.UNRESOLVED

    def halt(self) -> None:
        self._unresolve()
        super().halt()

    def reset(self) -> None:
        self._unresolve()
        super().reset()

    def set_status(self, status: NodeStatus) -> None:
        """Force a status, recording terminal statuses as the resolution."""
        if status.is_complete():
            self._unresolve()
            self._evaluation = Evaluation.from_status(status)
        elif status == NodeStatus.IDLE:
            self._unresolve()
        super().set_status(status)


__all__ = [
    "ActionAdapter",
    "ActionState",
    "ConditionAdapter",
    "Evaluation",
    "SERVER_PORT",
    "SERVICE_PORT",
]
