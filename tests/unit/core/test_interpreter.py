"""
Unit tests for the Interpreter session.

Tests:
- auto-run steps: condition re-poll, action dispatch, result and feedback
- connection lifecycle and error reporting
- manual execution of single leaves
- manual status overrides and reset
- hand-offs from an earlier load are dropped
"""

import threading
from unittest.mock import patch

import pytest

from btbridge.config import Settings
from btbridge.core.events import ConditionResolved, ConnectionCreated, ConnectionFailed
from btbridge.core.interpreter import Interpreter
from btbridge.nodes.adapters import Evaluation
from btbridge.remote.resolver import StaticTypeResolver
from btbridge.state.base import NodeStatus
from btbridge.state.errors import PortValueError, RemoteConnectionError, TreeLoadError
from btbridge.sync.visual import RecordingSink

RUNNING = NodeStatus.RUNNING
SUCCESS = NodeStatus.SUCCESS
FAILURE = NodeStatus.FAILURE
IDLE = NodeStatus.IDLE

MISSION = """
<root main_tree_to_execute="BehaviorTree">
  <BehaviorTree ID="BehaviorTree">
    <Sequence name="mission">
      <Condition ID="IsReady"/>
      <MoveTo name="go" target="{goal}" progress="{progress}"/>
    </Sequence>
  </BehaviorTree>
  <TreeNodesModel>
    <Action ID="MoveTo">
      <input_port name="server_name" default="/move_to"/>
      <input_port name="target" type="string"/>
      <output_port name="progress" type="float64"/>
    </Action>
    <Condition ID="IsReady">
      <input_port name="service_name" default="/is_ready"/>
    </Condition>
  </TreeNodesModel>
</root>
"""

FEEDBACK = {"update_field_name": "progress", "progress": 0.5}

FOLLOW = """
<root main_tree_to_execute="BehaviorTree">
  <BehaviorTree ID="BehaviorTree">
    <Sequence>
      <Follow name="first" target="{waypoint}" next="{waypoint}"/>
      <Follow name="second" target="{waypoint}"/>
    </Sequence>
  </BehaviorTree>
  <TreeNodesModel>
    <Action ID="Follow">
      <input_port name="server_name" default="/follow"/>
      <input_port name="target" type="string"/>
      <output_port name="next" type="string"/>
    </Action>
  </TreeNodesModel>
</root>
"""

PARALLEL = """
<root main_tree_to_execute="BehaviorTree">
  <BehaviorTree ID="BehaviorTree">
    <Parallel success_threshold="{needed}">
      <Condition ID="IsReady"/>
      <Condition ID="IsReady" name="again"/>
    </Parallel>
  </BehaviorTree>
  <TreeNodesModel>
    <Condition ID="IsReady">
      <input_port name="service_name" default="/is_ready"/>
    </Condition>
  </TreeNodesModel>
</root>
"""


@pytest.fixture
def stub(make_rosbridge):
    return make_rosbridge(
        services={"/is_ready": {"success": True}},
        actions={"/move_to": {"success": True}},
        feedback={"/move_to": [FEEDBACK]},
    )


@pytest.fixture
def errors():
    return []


def make_interpreter(channel_factory, errors, types=None) -> Interpreter:
    return Interpreter(
        settings=Settings(_env_file=None, autorun=True, tick_interval_ms=1),
        sink=RecordingSink(),
        resolver=StaticTypeResolver(types or {"/move_to": "nav_msgs/MoveTo"}),
        channel_factory=channel_factory,
        on_error=errors.append,
    )


@pytest.fixture
def interp(stub, errors):
    interpreter = make_interpreter(stub, errors)
    interpreter.load_tree(text=MISSION)
    yield interpreter
    interpreter.close()


def connect(interp: Interpreter) -> None:
    interp.events.post(ConnectionCreated(address="robot:9090"))
    interp.drain_events()


# =============================================================================
# Auto-run
# =============================================================================


class TestAutoRun:
    def test_full_mission(self, interp, stub, wait_for):
        interp.store.set("goal", "dock")

        # condition sent, root unchanged while the re-poll is pending
        assert interp.run_step() == [(1, RUNNING), (2, RUNNING)]
        assert not interp.updated

        assert wait_for(lambda: len(interp.events) == 1)
        assert interp.run_step() == [(0, RUNNING), (1, RUNNING), (2, SUCCESS), (3, RUNNING)]

        # goal sent, feedback and result
        assert wait_for(lambda: len(interp.events) == 3)
        assert interp.run_step() == [
            (0, SUCCESS),
            (1, SUCCESS),
            (2, SUCCESS),
            (2, IDLE),
            (3, RUNNING),
            (3, IDLE),
        ]
        assert interp.tree.root_status == SUCCESS
        assert interp.store.get("progress") == 0.5
        assert stub.published("/move_to/goal")[0]["goal"] == {"target": "dock"}

        # nothing changed, nothing ticked
        assert interp.run_step() == []
        assert interp.pool.active_actions() == 0

    def test_feedback_reaches_next_goal(self, make_rosbridge, errors, wait_for):
        stub = make_rosbridge(
            actions={"/follow": {"success": True}},
            feedback={"/follow": [{"update_field_name": "next", "next": "dock"}]},
        )
        interp = make_interpreter(stub, errors, {"/follow": "nav_msgs/Follow"})
        try:
            interp.load_tree(text=FOLLOW)
            interp.store.set("waypoint", "start")

            interp.run_step()
            assert wait_for(lambda: len(interp.events) == 3)
            # feedback is drained before the tick that sends the next goal
            interp.run_step()
            assert wait_for(lambda: len(stub.published("/follow/goal")) == 2)

            goals = [message["goal"] for message in stub.published("/follow/goal")]
            assert goals == [{"target": "start"}, {"target": "dock"}]
            assert errors == []
        finally:
            interp.close()

    def test_threshold_error_stops_autorun(self, interp, errors):
        interp.load_tree(text=PARALLEL)
        interp.store.set("needed", 5)

        assert interp.run_step() == []
        assert not interp.autorun
        assert isinstance(errors[0], PortValueError)
        assert errors[0].port_name == "success_threshold"
        assert interp.pool.active_conditions() == 0

    def test_sink_receives_batches(self, interp):
        interp.run_step()
        assert interp.sink.batches == [([(1, RUNNING), (2, RUNNING)], False)]

    def test_no_tick_when_autorun_disabled(self, interp):
        interp.disable_autorun()
        assert interp.run_step() == []
        assert interp.tree.tick_count == 0

        interp.enable_autorun()
        assert interp.run_step() != []

    def test_missing_input_fails_leaf_not_session(self, interp, wait_for):
        interp.run_step()
        assert wait_for(lambda: len(interp.events) == 1)

        changes = interp.run_step()

        # the action fails in place, the sequence fails with it
        assert (0, FAILURE) in changes
        assert interp.autorun
        assert interp.pool.active_actions() == 0

    def test_run_tree_ignores_autorun(self, interp):
        interp.disable_autorun()
        assert interp.run_tree() == [(1, RUNNING), (2, RUNNING)]

    def test_run_stops_after_max_steps(self, interp):
        assert interp.run(threading.Event(), max_steps=3) == 3

    def test_run_stops_on_event(self, interp):
        stop = threading.Event()
        stop.set()
        assert interp.run(stop) == 0


# =============================================================================
# Connection
# =============================================================================


class TestConnection:
    def test_created(self, interp):
        seen = []
        interp.on_connection_change = seen.append
        connect(interp)
        assert interp.connected
        assert seen == [True]

    def test_failed_disables_autorun(self, interp, errors):
        interp.events.post(ConnectionFailed(message="Connection closed."))
        interp.run_step()

        assert not interp.autorun
        assert not interp.connected
        assert len(errors) == 1
        assert isinstance(errors[0], RemoteConnectionError)
        assert errors[0].detail == "Connection closed."

    def test_connect_refused(self, interp, errors, wait_for):
        with patch("btbridge.remote.connection.connect", side_effect=OSError("refused")):
            interp.connect("nowhere", 1)
            assert wait_for(lambda: len(interp.events) == 1)
        interp.run_step()

        assert (interp.host, interp.port) == ("nowhere", 1)
        assert not interp.connected
        assert "Could not connect to nowhere:1" in errors[0].detail

    def test_disconnect_reports_change(self, interp):
        seen = []
        connect(interp)
        interp.on_connection_change = seen.append
        interp.disconnect()
        assert seen == [False]
        assert not interp.connected


# =============================================================================
# Manual execution
# =============================================================================


class TestExecuteNode:
    def test_condition(self, interp, stub):
        assert interp.execute_node(2) == SUCCESS
        assert interp.sink.last == [(2, SUCCESS)]
        assert interp.sink.batches[-1][1] is True
        assert interp.tree.node_at(2).status == SUCCESS
        assert stub.sent()[0]["service"] == "/is_ready"

    def test_action_applies_feedback(self, interp, stub):
        interp.store.set("goal", "dock")
        assert interp.execute_node(3) == SUCCESS
        assert interp.store.get("progress") == 0.5
        assert stub.published("/move_to/goal")[0]["goal"] == {"target": "dock"}

    def test_missing_input(self, interp, stub):
        assert interp.execute_node(3) == FAILURE
        assert stub.sent() == []

    def test_control_node_ignored(self, interp):
        assert interp.execute_node(1) is None
        assert interp.sink.batches == []

    def test_connection_error_reported(self, interp, errors):
        def refuse():
            raise RemoteConnectionError("Could not connect to robot:9090")

        interp._channel_factory = refuse
        assert interp.execute_node(2) == FAILURE
        assert isinstance(errors[0], RemoteConnectionError)

    def test_selection_requires_connection(self, interp):
        interp.visual_tree.select(2)
        assert interp.execute_selection() == {}

    def test_selection(self, interp):
        connect(interp)
        interp.visual_tree.select(1, 2)
        assert interp.execute_selection() == {2: SUCCESS}
        assert interp.updated

    def test_running(self, interp):
        connect(interp)
        interp.store.set("goal", "dock")
        interp.tree.node_at(1).set_status(RUNNING)
        interp.tree.node_at(3).set_status(RUNNING)
        assert interp.execute_running() == {3: SUCCESS}


# =============================================================================
# Overrides and reset
# =============================================================================


class TestOverrides:
    def test_set_selected_status(self, interp):
        interp.visual_tree.select(0, 3)
        changes = interp.set_selected_status(FAILURE)

        assert changes == [(0, FAILURE), (3, FAILURE)]
        assert interp.sink.batches[-1] == ([(0, FAILURE), (3, FAILURE)], True)
        assert interp.tree.root_status == FAILURE
        assert interp.tree.node_at(3).status == FAILURE

    def test_set_running_status(self, interp):
        interp.tree.node_at(1).set_status(RUNNING)
        interp.tree.node_at(3).set_status(RUNNING)

        assert interp.set_running_status(SUCCESS) == [(1, SUCCESS), (3, SUCCESS)]
        assert interp.tree.running_indices() == []
        assert interp.sink.batches[-1][1] is True

    def test_reset(self, interp):
        interp.store.set("goal", "dock")
        interp.run_step()

        interp.reset()

        assert interp.sink.last == [(0, IDLE), (1, IDLE), (2, IDLE), (3, IDLE)]
        assert interp.tree.statuses() == [IDLE] * 4
        assert not interp.store.has("goal")
        assert interp.updated
        assert interp.pool.epoch == 2


# =============================================================================
# Loading
# =============================================================================


class TestLoadTree:
    def test_reload_clears_blackboard(self, interp):
        interp.store.set("goal", "dock")
        tree = interp.load_tree(text=MISSION)
        assert interp.tree is tree
        assert not interp.store.has("goal")
        assert len(interp.visual_tree.nodes()) == 4

    def test_load_from_file(self, interp, tmp_path):
        path = tmp_path / "mission.xml"
        path.write_text(MISSION, encoding="utf-8")
        assert len(interp.load_tree(path=path)) == 3

    def test_invalid_tree(self, interp):
        with pytest.raises(TreeLoadError):
            interp.load_tree(text="<root")

    def test_exactly_one_source(self, interp):
        with pytest.raises(ValueError):
            interp.load_tree()
        with pytest.raises(ValueError):
            interp.load_tree(text=MISSION, path="mission.xml")


# =============================================================================
# Stale hand-offs
# =============================================================================


class TestStaleHandoffs:
    @pytest.fixture
    def held(self, make_rosbridge, errors):
        stub = make_rosbridge(held_services=["/is_ready"])
        interpreter = make_interpreter(stub, errors)
        interpreter.load_tree(text=MISSION)
        yield interpreter, stub
        interpreter.close()

    def test_late_response_after_reload_is_ignored(self, held, wait_for):
        interp, stub = held
        interp.run_step()
        assert wait_for(lambda: len(stub.sent()) == 1)
        old_channel = stub.channels[0]
        old_request = old_channel.sent[0]

        interp.load_tree(text=MISSION)
        assert old_channel.closed
        interp.run_step()
        assert wait_for(lambda: len(stub.sent()) == 2)

        old_channel.push(
            {
                "op": "service_response",
                "id": old_request["id"],
                "result": True,
                "values": {"success": True},
            }
        )
        interp.run_step()

        assert interp.tree.node_at(2).evaluation == Evaluation.PENDING
        assert interp.pool.active_conditions() == 1

    def test_handoff_from_previous_load_dropped(self, held, wait_for):
        interp, stub = held
        interp.run_step()
        stale_epoch = interp.pool.epoch
        interp.load_tree(text=MISSION)
        interp.run_step()
        assert wait_for(lambda: len(stub.sent()) == 2)
        condition = interp.tree.node_at(2)

        interp.events.post(
            ConditionResolved(node_index=2, generation=1, success=True, epoch=stale_epoch)
        )
        interp.drain_events()
        assert condition.evaluation == Evaluation.PENDING

        interp.events.post(
            ConditionResolved(node_index=2, generation=1, success=True, epoch=interp.pool.epoch)
        )
        interp.drain_events()
        assert condition.evaluation == Evaluation.SUCCESS
