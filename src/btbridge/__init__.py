"""
BT Bridge

Runs BehaviorTree.CPP v3 trees in Python, executing action leaves as
actionlib goals and condition leaves as service calls through a
rosbridge websocket, and mirrors node statuses onto a visual tree.

Subpackages:
- btbridge.state: enums, errors, node models and the blackboard
- btbridge.core: runtime tree, XML loader, workers and the interpreter
- btbridge.nodes: control, decorator and remote leaf nodes
- btbridge.remote: rosbridge connection and call clients
- btbridge.sync: visual tree, index translation and status sync
"""

__version__ = "0.1.0"

from .state import (
    BridgeError,
    CallInProgressError,
    MissingInputError,
    NodeKind,
    NodeModel,
    NodeStatus,
    PortBinding,
    PortDescriptor,
    PortDirection,
    PortValueError,
    RemoteConnectionError,
    SharedValueStore,
    TreeLoadError,
    UnknownPortError,
    UnsupportedTypeError,
)

# core must load before nodes
from .core import Interpreter, RuntimeTree, TreeLoader, load_tree
from .nodes import ActionAdapter, ConditionAdapter, TreeNode
from .sync import SimpleVisualTree, StatusSynchronizer, VisualNode, to_runtime, to_visual
from .config import Settings, get_settings

__all__ = [
    "__version__",
    # State
    "BridgeError",
    "CallInProgressError",
    "MissingInputError",
    "NodeKind",
    "NodeModel",
    "NodeStatus",
    "PortBinding",
    "PortDescriptor",
    "PortDirection",
    "PortValueError",
    "RemoteConnectionError",
    "SharedValueStore",
    "TreeLoadError",
    "UnknownPortError",
    "UnsupportedTypeError",
    # Core
    "Interpreter",
    "RuntimeTree",
    "TreeLoader",
    "load_tree",
    # Nodes
    "ActionAdapter",
    "ConditionAdapter",
    "TreeNode",
    # Sync
    "SimpleVisualTree",
    "StatusSynchronizer",
    "VisualNode",
    "to_runtime",
    "to_visual",
    # Config
    "Settings",
    "get_settings",
]
