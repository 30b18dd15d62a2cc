"""
BT Bridge Core - Runtime components of the interpreter.

Contains:
- TickContext, Dispatcher: per-pass execution context (context.py)
- Hand-off calls, events and queue (events.py)
- RuntimeTree, TickOutcome: the tickable tree (tree.py)
- TreeLoader: BehaviorTree.CPP v3 XML loading (loader.py)
- Workers: ActionWorker, ConditionWorker, ConnectionMonitor, WorkerPool
- Interpreter: the tick loop and manual controls (interpreter.py)
"""

# context and events are imported by the node modules, load them first
from .context import Dispatcher, TickContext
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
from .tree import ROOT_INDEX, RuntimeTree, TickOutcome
from .loader import DEFAULT_MAIN_TREE, TreeLoader, load_tree, parse_node_models
from .workers import ActionWorker, ConditionWorker, ConnectionMonitor, WorkerPool
from .interpreter import ErrorCallback, Interpreter

__all__ = [
    # Context
    "Dispatcher",
    "TickContext",
    # Events
    "ActionCall",
    "ActionResult",
    "ConditionCall",
    "ConditionResolved",
    "ConnectionCreated",
    "ConnectionFailed",
    "FeedbackReceived",
    "GoalSent",
    "HandoffEvent",
    "HandoffQueue",
    # Tree
    "ROOT_INDEX",
    "RuntimeTree",
    "TickOutcome",
    # Loader
    "DEFAULT_MAIN_TREE",
    "TreeLoader",
    "load_tree",
    "parse_node_models",
    # Workers
    "ActionWorker",
    "ConditionWorker",
    "ConnectionMonitor",
    "WorkerPool",
    # Interpreter
    "ErrorCallback",
    "Interpreter",
]
