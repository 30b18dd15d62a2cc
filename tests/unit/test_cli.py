"""
Unit tests for the btbridge command line.
"""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from btbridge.cli import ConsoleSink, app
from btbridge.state.base import NodeStatus

runner = CliRunner()

MISSION = """
<root>
  <BehaviorTree ID="BehaviorTree">
    <Sequence name="main">
      <Condition ID="IsReady"/>
      <MoveTo name="go"/>
    </Sequence>
  </BehaviorTree>
  <TreeNodesModel>
    <Action ID="MoveTo">
      <input_port name="server_name" default="/move_to"/>
    </Action>
    <Condition ID="IsReady">
      <input_port name="service_name" default="/is_ready"/>
    </Condition>
  </TreeNodesModel>
</root>
"""


@pytest.fixture
def tree_file(tmp_path):
    path = tmp_path / "mission.xml"
    path.write_text(MISSION, encoding="utf-8")
    return path


class TestShow:
    def test_prints_tree_and_leaves(self, tree_file):
        result = runner.invoke(app, ["show", str(tree_file)])
        assert result.exit_code == 0
        assert "[1] main (Sequence)" in result.stdout
        assert "[3] go (ActionAdapter)" in result.stdout
        assert "Leaves" in result.stdout
        assert "IsReady" in result.stdout

    def test_bindings(self, tree_file):
        result = runner.invoke(app, ["show", str(tree_file), "--bindings"])
        assert result.exit_code == 0
        assert "server_name=/move_to" in result.stdout

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["show", str(tmp_path / "missing.xml")])
        assert result.exit_code == 1
        assert "Error:" in result.stdout


class TestRun:
    def test_connection_refused(self, tree_file):
        with patch("btbridge.remote.connection.connect", side_effect=OSError("refused")):
            result = runner.invoke(
                app,
                ["run", str(tree_file), "--host", "nowhere", "--port", "1", "--interval-ms", "1"],
            )
        assert result.exit_code == 1
        assert "Connecting to nowhere:1" in result.stdout
        assert "Could not connect to nowhere:1" in result.stdout
        assert "IDLE" in result.stdout

    def test_invalid_tree(self, tmp_path):
        path = tmp_path / "broken.xml"
        path.write_text("<root", encoding="utf-8")
        result = runner.invoke(app, ["run", str(path)])
        assert result.exit_code == 1
        assert "Malformed XML" in result.stdout


class TestConsoleSink:
    def test_labels_without_interpreter(self, capsys):
        ConsoleSink().change_node_style([(2, NodeStatus.SUCCESS)], True)
        out = capsys.readouterr().out
        assert "reset" in out
        assert "2=SUCCESS" in out
