"""
btbridge command line.

    btbridge show TREE.xml
    btbridge run TREE.xml --host robot.local --port 9090 --ticks 500
"""

import logging
import threading
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from btbridge.config import Settings, get_settings
from btbridge.core.interpreter import Interpreter
from btbridge.core.loader import TreeLoader
from btbridge.state.base import NodeStatus
from btbridge.state.errors import BridgeError
from btbridge.sync.visual import StatusChange
from btbridge.visualizer import ascii_tree

logger = logging.getLogger(__name__)

APP_HELP = """
btbridge: run BehaviorTree.CPP trees against remote ROS services.

Action leaves are executed as actionlib goals and condition leaves as
service calls, both over a rosbridge websocket.
"""

app = typer.Typer(name="btbridge", help=APP_HELP, no_args_is_help=True)
console = Console()

STATUS_STYLES = {
    NodeStatus.IDLE: "dim",
    NodeStatus.RUNNING: "yellow",
    NodeStatus.SUCCESS: "green",
    NodeStatus.FAILURE: "red",
}


class ConsoleSink:
    """Prints each status batch as one line."""

    def __init__(self, interpreter: Optional[Interpreter] = None) -> None:
        self.interpreter = interpreter

    def _label(self, index: int) -> str:
        if self.interpreter is None or self.interpreter.visual_tree is None:
            return str(index)
        rows = self.interpreter.visual_tree.nodes()
        if 0 <= index < len(rows):
            return f"{index}:{rows[index].name}"
        return str(index)

    def change_node_style(self, changes: List[StatusChange], reset_before_update: bool) -> None:
        parts = [
            f"[{STATUS_STYLES[status]}]{self._label(index)}={status.name}[/]"
            for index, status in changes
        ]
        marker = "[bold]reset[/bold] " if reset_before_update else ""
        console.print(f"{marker}{' '.join(parts)}")


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _report(error: BridgeError) -> None:
    console.print(f"[bold red]Error:[/bold red] {error}")


@app.command()
def show(
    tree_file: Path = typer.Argument(..., help="BehaviorTree.CPP v3 XML file"),
    bindings: bool = typer.Option(False, "--bindings", "-b", help="Show port bindings"),
):
    """Print the runtime tree with its runtime indices."""
    settings = get_settings()
    _configure_logging(settings.log_level)
    try:
        tree = TreeLoader(main_tree=settings.main_tree).load(tree_file)
    except BridgeError as e:
        _report(e)
        raise typer.Exit(code=1)

    console.print(ascii_tree(tree, show_status=False, show_bindings=bindings), markup=False)

    table = Table(title="Leaves", show_header=True)
    table.add_column("Index", justify="right")
    table.add_column("Name")
    table.add_column("Kind")
    table.add_column("Model")
    for node in tree:
        if node.kind.is_leaf():
            table.add_row(str(node.index), node.name, node.kind.value, node.registration_id)
    console.print(table)


@app.command()
def run(
    tree_file: Path = typer.Argument(..., help="BehaviorTree.CPP v3 XML file"),
    host: Optional[str] = typer.Option(None, "--host", help="rosbridge host"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="rosbridge port"),
    ticks: int = typer.Option(0, "--ticks", "-n", help="Stop after this many steps (0 = until the tree completes)"),
    interval_ms: Optional[int] = typer.Option(None, "--interval-ms", help="Step period in milliseconds"),
    collapse_subtrees: bool = typer.Option(False, "--collapse-subtrees", help="Fold subtrees in the status view"),
):
    """Connect to rosbridge and run the tree headless."""
    overrides = {}
    if host:
        overrides["rosbridge_host"] = host
    if port:
        overrides["rosbridge_port"] = port
    if interval_ms:
        overrides["tick_interval_ms"] = interval_ms
    settings = Settings(**{**get_settings().model_dump(), **overrides})
    _configure_logging(settings.log_level)

    sink = ConsoleSink()
    interpreter = Interpreter(settings=settings, sink=sink, on_error=_report)
    sink.interpreter = interpreter

    try:
        interpreter.load_tree(path=tree_file, collapse_subtrees=collapse_subtrees)
    except BridgeError as e:
        _report(e)
        raise typer.Exit(code=1)

    connected = threading.Event()
    failed = threading.Event()

    def on_connection_change(ok: bool) -> None:
        if ok:
            connected.set()
            interpreter.enable_autorun()
        elif not connected.is_set():
            failed.set()

    # hold the first tick until rosbridge answers
    interpreter.disable_autorun()
    interpreter.on_connection_change = on_connection_change
    interpreter.connect()
    console.print(f"[dim]Connecting to {settings.rosbridge_address}...[/dim]")

    stop = threading.Event()
    steps = 0
    try:
        while not stop.is_set():
            interpreter.run_step()
            steps += 1
            if ticks and steps >= ticks:
                break
            if failed.is_set():
                break
            if connected.is_set():
                if not interpreter.autorun:
                    # disabled after an error
                    break
                if interpreter.tree.root_status.is_complete() and not interpreter.updated:
                    break
            stop.wait(settings.tick_interval_s)
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
    finally:
        interpreter.close()

    status = interpreter.tree.root_status
    console.print(f"Finished after {steps} steps: [{STATUS_STYLES[status]}]{status.name}[/]")
    if status == NodeStatus.FAILURE or not connected.is_set():
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
