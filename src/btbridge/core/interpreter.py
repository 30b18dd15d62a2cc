"""
Interpreter - Drives a runtime tree against rosbridge and mirrors it visually.

Responsibilities:
- load (and reload) a tree, clearing the blackboard each time
- drain worker hand-offs once per step, on the calling thread
- tick when something changed and auto-run is enabled
- push status batches through the synchronizer to the visual layer
- manual execution of single leaves and manual status overrides
- connection lifecycle through a ConnectionMonitor

Only the thread calling run_step()/run() touches tree state.

Error handling:
- BridgeError during a step disables auto-run, is logged as a warning
  and is passed to ``on_error``
- ConnectionFailed hand-offs are reported the same way
- node hand-offs from before the last load or reset are dropped
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

from .. import marshal
from ..config import Settings, get_settings
from ..nodes.adapters import SERVER_PORT, SERVICE_PORT, ActionAdapter, ConditionAdapter
from ..remote.connection import Connection, MessageChannel
from ..remote.resolver import ActionTypeResolver, TopicTypeResolver
from ..state.base import NodeKind, NodeStatus
from ..state.blackboard import SharedValueStore
from ..state.errors import BridgeError, MissingInputError, RemoteConnectionError
from ..state.models import NodeModel, PortBinding
from ..sync.synchronizer import StatusSynchronizer
from ..sync.translator import to_runtime
from ..sync.visual import RecordingSink, SimpleVisualTree, StatusChange, StatusSink, VisualTree
from .events import (
    ActionCall,
    ActionResult,
    ConditionCall,
    ConditionResolved,
    ConnectionCreated,
    ConnectionFailed,
    FeedbackReceived,
    GoalSent,
    HandoffEvent,
    HandoffQueue,
)
from .loader import TreeLoader
from .tree import RuntimeTree
from .workers import ActionWorker, ConditionWorker, ConnectionMonitor, WorkerPool

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[BridgeError], None]


class Interpreter:
    """Interpreter session for one tree at a time.

    Args:
        settings: Configuration; defaults to ``get_settings()``.
        sink: Receives visual status batches. Defaults to a RecordingSink.
        resolver: Action type resolver; defaults to the topic type service.
        channel_factory: Opens a channel for each remote call; defaults to
            a websocket connection to the configured rosbridge.
        on_error: Called with every error reported to the user.

    Example:
        >>> interp = Interpreter(sink=my_sink)
        >>> interp.load_tree(path="tree.xml")
        >>> interp.connect()
        >>> interp.run(stop_event)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        sink: Optional[StatusSink] = None,
        resolver: Optional[ActionTypeResolver] = None,
        channel_factory: Optional[Callable[[], MessageChannel]] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.host = self.settings.rosbridge_host
        self.port = self.settings.rosbridge_port

        self.store = SharedValueStore()
        self.events = HandoffQueue()
        self.sink: StatusSink = sink if sink is not None else RecordingSink()
        self.on_error = on_error
        self.on_connection_change: Optional[Callable[[bool], None]] = None

        self._channel_factory = channel_factory or self._open_channel
        self.resolver = resolver or TopicTypeResolver(
            self._channel_factory, self.settings.type_service
        )
        self.pool = WorkerPool(self.events, self._channel_factory, self.resolver)

        self.tree: Optional[RuntimeTree] = None
        self.visual_tree: Optional[VisualTree] = None
        self.synchronizer: Optional[StatusSynchronizer] = None

        self._autorun = self.settings.autorun
        self._updated = True
        self._connected = False
        self._monitor: Optional[ConnectionMonitor] = None

    def _open_channel(self) -> MessageChannel:
        return Connection(self.host, self.port, open_timeout=self.settings.open_timeout_s).open()

    # =========================================================================
    # State
    # =========================================================================

    @property
    def autorun(self) -> bool:
        return self._autorun

    @property
    def updated(self) -> bool:
        """True while a change is waiting to be ticked."""
        return self._updated

    def mark_updated(self) -> None:
        self._updated = True

    @property
    def connected(self) -> bool:
        return self._connected

    def _require_tree(self) -> RuntimeTree:
        if self.tree is None:
            raise RuntimeError("No tree loaded")
        return self.tree

    def _has_nodes(self) -> bool:
        return self.tree is not None and len(self.tree) > 0

    def _report_error(self, error: BridgeError) -> None:
        if self.on_error is not None:
            self.on_error(error)

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def load_tree(
        self,
        text: Optional[str] = None,
        path: Optional[Union[str, Path]] = None,
        visual_tree: Optional[VisualTree] = None,
        collapse_subtrees: bool = False,
    ) -> RuntimeTree:
        """Load a tree from XML text or a file, replacing the current one.

        Raises:
            TreeLoadError: If the definition is invalid.
        """
        if (text is None) == (path is None):
            raise ValueError("load_tree() takes exactly one of text or path")

        loader = TreeLoader(main_tree=self.settings.main_tree)
        if self.tree is not None:
            self.tree.halt()
        self.pool.new_epoch()
        self._discard_node_events()
        self.store.clear()

        if path is not None:
            tree = loader.load(path, store=self.store)
        else:
            tree = loader.load_string(text, store=self.store)

        self.tree = tree
        self.visual_tree = visual_tree or SimpleVisualTree.from_runtime(
            tree, collapse_subtrees=collapse_subtrees
        )
        self.synchronizer = StatusSynchronizer(
            self.visual_tree, self.sink, expand_on_change=self.settings.expand_on_change
        )
        self._updated = True
        return tree

    def reset(self) -> None:
        """Return every node to IDLE and clear the blackboard."""
        tree = self._require_tree()
        tree.reset()
        self.pool.new_epoch()
        self._discard_node_events()
        self.store.clear()
        if self.synchronizer is not None and self.visual_tree is not None:
            rows = range(len(self.visual_tree.nodes()))
            self.synchronizer.publish_visual([(i, NodeStatus.IDLE) for i in rows], True)
        self._updated = True

    def close(self) -> None:
        """Stop the session: cancel outstanding calls and disconnect."""
        if self.tree is not None:
            self.tree.halt()
        self.pool.shutdown()
        self.disconnect()

    # =========================================================================
    # Connection
    # =========================================================================

    def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Start connecting to rosbridge in the background.

        The outcome arrives as a ConnectionCreated or ConnectionFailed
        hand-off. A second call while connecting is ignored.
        """
        if self._connected:
            logger.debug("Already connected")
            return
        if self._monitor is not None and self._monitor.is_establishing():
            logger.debug("Still connecting...")
            return

        self.host = host or self.host
        self.port = port or self.port
        self._monitor = ConnectionMonitor(
            self.host, self.port, self.events, open_timeout=self.settings.open_timeout_s
        ).start()

    def disconnect(self) -> None:
        if self._monitor is not None:
            self._monitor.stop()
            self._monitor = None
        if self._connected:
            self._set_connected(False)

    def _set_connected(self, connected: bool) -> None:
        self._connected = connected
        if self.on_connection_change is not None:
            self.on_connection_change(connected)

    # =========================================================================
    # Hand-offs
    # =========================================================================

    def _discard_node_events(self) -> None:
        for event in self.events.drain():
            if isinstance(event, (ConnectionCreated, ConnectionFailed)):
                self._apply_event(event)

    def _adapter(self, index: int):
        if self.tree is None or not 1 <= index <= len(self.tree):
            return None
        return self.tree.node_at(index)

    def _apply_event(self, event: HandoffEvent) -> None:
        if isinstance(event, ConnectionCreated):
            logger.info(f"Connection created: {event.address}")
            self._set_connected(True)
            return
        if isinstance(event, ConnectionFailed):
            self._monitor = None
            self._set_connected(False)
            self.disable_autorun()
            logger.warning(f"Connection error: {event.message}")
            self._report_error(RemoteConnectionError(event.message))
            return

        if event.epoch != self.pool.epoch:
            logger.debug(f"Dropping hand-off from epoch {event.epoch}: {event}")
            return

        node = self._adapter(event.node_index)
        if isinstance(event, ActionResult):
            self.pool.finish_action(event.node_index, event.generation)
        elif isinstance(event, ConditionResolved):
            self.pool.finish_condition(event.node_index, event.generation)
        if isinstance(node, ActionAdapter):
            if isinstance(event, GoalSent):
                node.on_goal_sent(event.generation)
            elif isinstance(event, FeedbackReceived):
                node.on_feedback(event.generation, event.feedback)
            elif isinstance(event, ActionResult):
                node.on_result(event.generation, event.success, event.result)
            return
        if isinstance(node, ConditionAdapter) and isinstance(event, ConditionResolved):
            node.on_resolved(event.generation, event.success)
            return
        logger.debug(f"No node for hand-off {event}")

    def drain_events(self) -> int:
        """Apply all pending hand-offs. Returns how many were drained.

        Every event is applied even if an earlier one fails; the first
        failure is raised afterwards.
        """
        events = self.events.drain()
        first_error: Optional[BridgeError] = None
        for event in events:
            try:
                self._apply_event(event)
            except BridgeError as e:
                if first_error is None:
                    first_error = e
        if events:
            self._updated = True
        if first_error is not None:
            raise first_error
        return len(events)

    # =========================================================================
    # Ticking
    # =========================================================================

    def tick_root(self) -> List[StatusChange]:
        """Tick once and publish the resulting status changes."""
        if not self._has_nodes() or self.synchronizer is None:
            return []
        tree = self.tree

        before = tree.statuses()
        outcome = tree.tick(self.pool)
        after = tree.statuses()

        if outcome.status != NodeStatus.RUNNING:
            # stop evaluations until the next change
            self._updated = False

        kinds = [node.kind for node in tree]
        return self.synchronizer.synchronize(before, after, kinds, outcome.repoll_requested)

    def run_step(self) -> List[StatusChange]:
        """One timer period: drain hand-offs, then tick if needed."""
        try:
            self.drain_events()
            if self._updated and self._autorun:
                changes = self.tick_root()
                self._updated = False
                return changes
        except BridgeError as e:
            self.disable_autorun()
            logger.warning(f"Error during auto callback: {e}")
            self._report_error(e)
        return []

    def run(self, stop_event: threading.Event, max_steps: Optional[int] = None) -> int:
        """Call run_step() every tick interval until ``stop_event`` is set.

        Returns the number of steps run.
        """
        steps = 0
        interval = self.settings.tick_interval_s
        while not stop_event.is_set():
            self.run_step()
            steps += 1
            if max_steps is not None and steps >= max_steps:
                break
            stop_event.wait(interval)
        return steps

    def run_tree(self) -> List[StatusChange]:
        """Tick once regardless of auto-run."""
        try:
            self.drain_events()
            return self.tick_root()
        except BridgeError as e:
            logger.warning(f"Error running tree: {e}")
            self._report_error(e)
            return []

    def enable_autorun(self) -> None:
        self._autorun = True
        self._updated = True

    def disable_autorun(self) -> None:
        if self._autorun:
            logger.info("Auto-run disabled")
        self._autorun = False

    # =========================================================================
    # Manual execution
    # =========================================================================

    def _route_name(self, model: NodeModel, bindings: Dict[str, str], port_name: str, node_name: str) -> str:
        descriptor = model.port(port_name)
        raw = bindings.get(port_name) or (descriptor.default if descriptor else None)
        if not raw:
            raise MissingInputError(port_name, node_name, "port is not bound")
        binding = PortBinding.parse(raw)
        if not binding.is_reference:
            return binding.literal
        value = self.store.get(binding.reference)
        if not isinstance(value, str) or not value:
            raise MissingInputError(
                port_name, node_name, f"blackboard key '{binding.reference}' is not set"
            )
        return value

    def execute_node(self, visual_index: int) -> Optional[NodeStatus]:
        """Run one leaf to completion, bypassing the tick.

        Blocks until the remote call completes. The visual row and the
        matching runtime node are both set to the outcome. Control nodes
        are ignored.
        """
        tree = self._require_tree()
        visual_nodes = self.visual_tree.nodes()
        row = visual_nodes[visual_index]
        if row.kind not in (NodeKind.ACTION, NodeKind.CONDITION):
            return None

        runtime_index = to_runtime([(visual_index, NodeStatus.IDLE)], visual_nodes)[0][0]
        runtime_node = tree.node_at(runtime_index)

        try:
            status = self._execute_leaf(row.name, row.model, row.bindings, runtime_index, runtime_node)
        except MissingInputError as e:
            logger.error(f"Node '{row.name}' failed: {e}")
            status = NodeStatus.FAILURE
        except RemoteConnectionError as e:
            logger.warning(f"Manual execution of '{row.name}' failed: {e}")
            self._report_error(e)
            status = NodeStatus.FAILURE

        self.synchronizer.publish_visual([(visual_index, status)], True)
        runtime_node.set_status(status)
        return status

    def _execute_leaf(self, name, model, bindings, runtime_index, runtime_node) -> NodeStatus:
        request = marshal.request_from_bindings(model, bindings, self.store, node_name=name)

        if model.kind == NodeKind.CONDITION:
            service = self._route_name(model, bindings, SERVICE_PORT, name)
            call = ConditionCall(
                node_index=runtime_index, generation=0, service_name=service, request=request
            )
            outcome = ConditionWorker(call, self._channel_factory).execute()
            return NodeStatus.from_bool(outcome.success)

        server = self._route_name(model, bindings, SERVER_PORT, name)
        call = ActionCall(node_index=runtime_index, generation=0, server_name=server, goal=request)
        worker = ActionWorker(
            call,
            self._channel_factory,
            self.resolver,
            on_feedback=lambda feedback: marshal.apply_feedback(runtime_node, feedback),
        )
        outcome = worker.execute()
        return NodeStatus.from_bool(outcome.success)

    def execute_selection(self) -> Dict[int, NodeStatus]:
        """Execute every selected leaf, by visual index."""
        if not self._has_nodes():
            return {}
        if not self._connected:
            logger.warning("Not connected; cannot execute nodes")
            return {}

        results: Dict[int, NodeStatus] = {}
        selected = [i for i, row in enumerate(self.visual_tree.nodes()) if row.selected]
        for visual_index in selected:
            status = self.execute_node(visual_index)
            if status is not None:
                results[visual_index] = status
        self._updated = True
        return results

    def execute_running(self) -> Dict[int, NodeStatus]:
        """Execute every RUNNING leaf, by visual index."""
        if not self._has_nodes():
            return {}
        if not self._connected:
            logger.warning("Not connected; cannot execute nodes")
            return {}

        running = [(i, NodeStatus.RUNNING) for i in self.tree.running_indices()]
        visual_indices = sorted({i for i, _ in self.synchronizer.translate(running)})

        results: Dict[int, NodeStatus] = {}
        for visual_index in visual_indices:
            status = self.execute_node(visual_index)
            if status is not None:
                results[visual_index] = status
        self._updated = True
        return results

    # =========================================================================
    # Manual status overrides
    # =========================================================================

    def _force_status(self, runtime_index: int, status: NodeStatus) -> None:
        if runtime_index == 0:
            self.tree.set_root_status(status)
            return
        self.tree.node_at(runtime_index).set_status(status)

    def set_selected_status(self, status: NodeStatus) -> List[StatusChange]:
        """Force every selected row (and its runtime node) to ``status``."""
        if not self._has_nodes():
            return []
        visual_nodes = self.visual_tree.nodes()
        changes = [(i, status) for i, row in enumerate(visual_nodes) if row.selected]
        self.synchronizer.publish_visual(changes, True)
        for runtime_index, new_status in to_runtime(changes, visual_nodes):
            self._force_status(runtime_index, new_status)
        self._updated = True
        return changes

    def set_running_status(self, status: NodeStatus) -> List[StatusChange]:
        """Force every RUNNING runtime node to ``status``."""
        if not self._has_nodes():
            return []
        changes: List[StatusChange] = []
        for runtime_index in self.tree.running_indices():
            self._force_status(runtime_index, status)
            changes.append((runtime_index, status))
        published = self.synchronizer.publish(changes, reset_before_update=True)
        self._updated = True
        return published


__all__ = ["Interpreter", "ErrorCallback"]
