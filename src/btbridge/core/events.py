"""
Hand-off Events - Messages from background workers to the tick loop.

Workers never touch tree state. They post events to a ``HandoffQueue``
which the interpreter drains once per step, on the tick loop thread.
Every node-scoped event carries the runtime index of its node and the
activation generation it belongs to, so results from a halted
activation can be recognized and dropped. The epoch names the tree load
the event belongs to; events from an earlier load or reset are stale.
"""

from __future__ import annotations

import logging
import queue
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


# =============================================================================
# Calls (tick loop -> workers)
# =============================================================================


@dataclass(frozen=True)
class ActionCall:
    """A goal to send on behalf of an action leaf."""

    node_index: int
    generation: int
    server_name: str
    goal: Dict[str, Any]
    epoch: int = 0


@dataclass(frozen=True)
class ConditionCall:
    """A service request to send on behalf of a condition leaf."""

    node_index: int
    generation: int
    service_name: str
    request: Dict[str, Any]
    epoch: int = 0


# =============================================================================
# Events (workers -> tick loop)
# =============================================================================


@dataclass(frozen=True)
class GoalSent:
    node_index: int
    generation: int
    epoch: int = 0


@dataclass(frozen=True)
class FeedbackReceived:
    node_index: int
    generation: int
    feedback: Dict[str, Any] = field(default_factory=dict)
    epoch: int = 0


@dataclass(frozen=True)
class ActionResult:
    node_index: int
    generation: int
    success: bool
    result: Dict[str, Any] = field(default_factory=dict)
    epoch: int = 0


@dataclass(frozen=True)
class ConditionResolved:
    node_index: int
    generation: int
    success: bool
    epoch: int = 0


@dataclass(frozen=True)
class ConnectionCreated:
    address: str


@dataclass(frozen=True)
class ConnectionFailed:
    message: str


HandoffEvent = Union[
    GoalSent,
    FeedbackReceived,
    ActionResult,
    ConditionResolved,
    ConnectionCreated,
    ConnectionFailed,
]


class HandoffQueue:
    """Single-consumer queue of hand-off events.

    Any thread may post; only the tick loop drains.

    Example:
        >>> events = HandoffQueue()
        >>> events.post(GoalSent(node_index=3, generation=1))
        >>> events.drain()
        [GoalSent(node_index=3, generation=1, epoch=0)]
    """

    def __init__(self) -> None:
        self._queue: "queue.Queue[HandoffEvent]" = queue.Queue()

    def post(self, event: HandoffEvent) -> None:
        logger.debug(f"Hand-off posted: {event}")
        self._queue.put(event)

    def drain(self, limit: Optional[int] = None) -> List[HandoffEvent]:
        """Remove and return all pending events, oldest first."""
        events: List[HandoffEvent] = []
        while limit is None or len(events) < limit:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return events

    def empty(self) -> bool:
        return self._queue.empty()

    def __len__(self) -> int:
        return self._queue.qsize()


__all__ = [
    "ActionCall",
    "ConditionCall",
    "GoalSent",
    "FeedbackReceived",
    "ActionResult",
    "ConditionResolved",
    "ConnectionCreated",
    "ConnectionFailed",
    "HandoffEvent",
    "HandoffQueue",
]
