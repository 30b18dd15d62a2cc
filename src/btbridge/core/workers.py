"""
Background Workers - One thread per outstanding remote call.

- ActionWorker: resolves the action type, sends the goal, relays
  feedback and reports the result
- ConditionWorker: performs one service call
- ConnectionMonitor: keeps a standing connection open and reports when it
  is created or lost
- WorkerPool: the dispatcher used by leaf adapters during a tick

Workers never touch tree state. Threaded workers report through the
hand-off queue; ``execute()`` runs the same call synchronously in the
caller's thread and returns the outcome instead, which is what manual
single-node execution uses.

Error codes:
- E6001: Connection errors become a FAILURE result plus a
  ConnectionFailed hand-off
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional

from ..remote import protocol
from ..remote.action_client import ActionClient, FeedbackCallback
from ..remote.connection import Connection, MessageChannel
from ..remote.resolver import ActionTypeResolver
from ..remote.service_client import ServiceClient
from ..state.errors import RemoteConnectionError
from .events import (
    ActionCall,
    ActionResult,
    ConditionCall,
    ConditionResolved,
    ConnectionCreated,
    ConnectionFailed,
    FeedbackReceived,
    GoalSent,
    HandoffQueue,
)

logger = logging.getLogger(__name__)

ChannelFactory = Callable[[], MessageChannel]


class ActionWorker:
    """Runs one action goal to completion.

    Args:
        call: Goal, server and the activation it belongs to.
        channel_factory: Opens a fresh channel for this goal.
        resolver: Maps the server name to its action type.
        events: Hand-off queue for the threaded path.
        on_feedback: Feedback handler for the synchronous path. When
            given, feedback is passed to it instead of the queue.
    """

    def __init__(
        self,
        call: ActionCall,
        channel_factory: ChannelFactory,
        resolver: ActionTypeResolver,
        events: Optional[HandoffQueue] = None,
        on_feedback: Optional[FeedbackCallback] = None,
    ) -> None:
        self.call = call
        self._channel_factory = channel_factory
        self._resolver = resolver
        self._events = events
        self._on_feedback = on_feedback

        self._lock = threading.Lock()
        self._released = False
        self._channel: Optional[MessageChannel] = None
        self._client: Optional[ActionClient] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def released(self) -> bool:
        return self._released

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _post(self, event: Any) -> None:
        if self._events is not None:
            self._events.post(event)

    def _handle_feedback(self, feedback: Dict[str, Any]) -> None:
        if self._released:
            return
        if self._on_feedback is not None:
            self._on_feedback(feedback)
            return
        self._post(
            FeedbackReceived(
                node_index=self.call.node_index,
                generation=self.call.generation,
                feedback=feedback,
                epoch=self.call.epoch,
            )
        )

    def execute(self) -> ActionResult:
        """Send the goal and block until its result.

        Raises:
            RemoteConnectionError: If the channel cannot be opened or fails.
        """
        channel = self._channel_factory()
        try:
            action_type = self._resolver.resolve(self.call.server_name)
            client = ActionClient(channel, self.call.server_name, action_type)
            client.register_feedback_callback(self._handle_feedback)

            with self._lock:
                if self._released:
                    return self._result(False, {})
                self._channel = channel
                self._client = client
                client.send_goal(self.call.goal)

            self._post(
                GoalSent(
                    node_index=self.call.node_index,
                    generation=self.call.generation,
                    epoch=self.call.epoch,
                )
            )
            result = client.wait_for_result()
            return self._result(protocol.is_success(result), result)
        finally:
            channel.close()

    def _result(self, success: bool, result: Dict[str, Any]) -> ActionResult:
        return ActionResult(
            node_index=self.call.node_index,
            generation=self.call.generation,
            success=success,
            result=result,
            epoch=self.call.epoch,
        )

    def _run(self) -> None:
        try:
            outcome = self.execute()
        except RemoteConnectionError as e:
            if self._released:
                logger.debug(f"Released action worker for node {self.call.node_index} stopped: {e}")
                return
            logger.warning(f"Action on {self.call.server_name} lost its connection: {e}")
            self._post(self._result(False, {}))
            self._post(ConnectionFailed(message=e.detail))
            return

        if self._released:
            logger.warning(
                f"Late result for released worker of node {self.call.node_index}, dropping"
            )
            return
        self._post(outcome)

    def start(self) -> "ActionWorker":
        self._thread = threading.Thread(
            target=self._run,
            name=f"action-{self.call.node_index}-{self.call.generation}",
            daemon=True,
        )
        self._thread.start()
        return self

    def release(self) -> None:
        """Cancel the goal and stop waiting for it. Idempotent."""
        with self._lock:
            if self._released:
                return
            self._released = True
            client, channel = self._client, self._channel

        if client is not None:
            try:
                client.cancel_goal()
            except RemoteConnectionError as e:
                logger.warning(f"Could not cancel goal on {self.call.server_name}: {e}")
        if channel is not None:
            # unblocks wait_for_result
            channel.close()


class ConditionWorker:
    """Performs one service call for a condition leaf."""

    def __init__(
        self,
        call: ConditionCall,
        channel_factory: ChannelFactory,
        events: Optional[HandoffQueue] = None,
    ) -> None:
        self.call = call
        self._channel_factory = channel_factory
        self._events = events

        self._lock = threading.Lock()
        self._released = False
        self._channel: Optional[MessageChannel] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def released(self) -> bool:
        return self._released

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _resolved(self, success: bool) -> ConditionResolved:
        return ConditionResolved(
            node_index=self.call.node_index,
            generation=self.call.generation,
            success=success,
            epoch=self.call.epoch,
        )

    def execute(self) -> ConditionResolved:
        """Call the service and block until it answers.

        Raises:
            RemoteConnectionError: If the channel cannot be opened or fails.
        """
        channel = self._channel_factory()
        try:
            with self._lock:
                if self._released:
                    return self._resolved(False)
                self._channel = channel
            values = ServiceClient(channel, self.call.service_name).call(self.call.request)
        finally:
            channel.close()
        return self._resolved(protocol.is_success(values))

    def _run(self) -> None:
        try:
            outcome = self.execute()
        except RemoteConnectionError as e:
            if self._released:
                logger.debug(
                    f"Released condition worker for node {self.call.node_index} stopped: {e}"
                )
                return
            logger.warning(f"Service {self.call.service_name} lost its connection: {e}")
            outcome = self._resolved(False)
            if self._events is not None:
                self._events.post(ConnectionFailed(message=e.detail))

        if self._released:
            logger.debug(
                f"Late response for released condition of node {self.call.node_index}, dropping"
            )
            return
        if self._events is not None:
            self._events.post(outcome)

    def start(self) -> "ConditionWorker":
        self._thread = threading.Thread(
            target=self._run,
            name=f"condition-{self.call.node_index}-{self.call.generation}",
            daemon=True,
        )
        self._thread.start()
        return self

    def release(self) -> None:
        """Stop waiting for the response. Idempotent."""
        with self._lock:
            if self._released:
                return
            self._released = True
            channel = self._channel
        if channel is not None:
            channel.close()


class ConnectionMonitor:
    """Holds a standing connection and reports its lifecycle.

    Posts ConnectionCreated once the websocket is open, then
    ConnectionFailed when it is refused or lost. Nothing is posted after
    stop().
    """

    def __init__(
        self,
        host: str,
        port: int,
        events: HandoffQueue,
        open_timeout: float = 5.0,
    ) -> None:
        self._connection = Connection(host, port, open_timeout=open_timeout)
        self._events = events
        self._stopped = threading.Event()
        self._created = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def address(self) -> str:
        return self._connection.address

    def is_establishing(self) -> bool:
        """True while the connection attempt has not completed yet."""
        return self.is_alive() and not self._created.is_set()

    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        try:
            self._connection.open()
        except RemoteConnectionError as e:
            if not self._stopped.is_set():
                self._events.post(ConnectionFailed(message=e.detail))
            return

        self._created.set()
        self._events.post(ConnectionCreated(address=self.address))
        try:
            while not self._stopped.is_set():
                self._connection.receive()
        except RemoteConnectionError as e:
            if not self._stopped.is_set():
                logger.warning(f"Connection to {self.address} lost: {e}")
                self._events.post(ConnectionFailed(message="Connection closed."))
        finally:
            self._connection.close()

    def start(self) -> "ConnectionMonitor":
        logger.info(f"Connecting to rosbridge at {self.address}")
        self._thread = threading.Thread(
            target=self._run, name=f"connection-{self.address}", daemon=True
        )
        self._thread.start()
        return self

    def stop(self) -> None:
        self._stopped.set()
        self._connection.close()


class WorkerPool:
    """Dispatcher that runs each remote call on its own worker thread.

    Holds at most one action worker and one condition worker per node
    index. Every call is stamped with the pool's current epoch, which
    ``new_epoch()`` advances when the tree is reloaded or reset.
    """

    def __init__(
        self,
        events: HandoffQueue,
        channel_factory: ChannelFactory,
        resolver: ActionTypeResolver,
        join_timeout: float = 1.0,
    ) -> None:
        self._events = events
        self._channel_factory = channel_factory
        self._resolver = resolver
        self._join_timeout = join_timeout
        self._actions: Dict[int, ActionWorker] = {}
        self._conditions: Dict[int, ConditionWorker] = {}
        self._lock = threading.Lock()
        self.epoch = 0

    def start_action(self, call: ActionCall) -> None:
        call = replace(call, epoch=self.epoch)
        with self._lock:
            previous = self._actions.pop(call.node_index, None)
        if previous is not None:
            logger.warning(
                f"Node {call.node_index} started a new goal while one was outstanding"
            )
            previous.release()

        worker = ActionWorker(call, self._channel_factory, self._resolver, events=self._events)
        with self._lock:
            self._actions[call.node_index] = worker
        worker.start()

    def cancel_action(self, node_index: int, generation: int) -> None:
        with self._lock:
            worker = self._actions.get(node_index)
            if worker is None or worker.call.generation != generation:
                return
            del self._actions[node_index]
        worker.release()

    def finish_action(self, node_index: int, generation: int) -> None:
        """Forget a worker whose result has been drained."""
        with self._lock:
            worker = self._actions.get(node_index)
            if worker is not None and worker.call.generation == generation:
                del self._actions[node_index]

    def start_condition(self, call: ConditionCall) -> None:
        call = replace(call, epoch=self.epoch)
        with self._lock:
            previous = self._conditions.pop(call.node_index, None)
        if previous is not None:
            previous.release()

        worker = ConditionWorker(call, self._channel_factory, events=self._events)
        with self._lock:
            self._conditions[call.node_index] = worker
        worker.start()

    def finish_condition(self, node_index: int, generation: int) -> None:
        with self._lock:
            worker = self._conditions.get(node_index)
            if worker is not None and worker.call.generation == generation:
                del self._conditions[node_index]

    def active_actions(self) -> int:
        with self._lock:
            return len(self._actions)

    def active_conditions(self) -> int:
        with self._lock:
            return len(self._conditions)

    def shutdown(self) -> None:
        """Release every outstanding worker and wait briefly for its thread."""
        with self._lock:
            workers: List[Any] = list(self._actions.values()) + list(self._conditions.values())
            self._actions.clear()
            self._conditions.clear()
        for worker in workers:
            worker.release()
        for worker in workers:
            worker.join(self._join_timeout)
            if worker.is_alive():
                logger.warning(f"Worker for node {worker.call.node_index} did not stop in time")

    def new_epoch(self) -> int:
        """Shut down all workers and start a new epoch. Returns it."""
        self.shutdown()
        self.epoch += 1
        return self.epoch


__all__ = [
    "ChannelFactory",
    "ActionWorker",
    "ConditionWorker",
    "ConnectionMonitor",
    "WorkerPool",
]
