"""
BT Bridge State

Core enums (base.py):
- NodeStatus: IDLE, RUNNING, SUCCESS, FAILURE
- NodeKind: ACTION, CONDITION, CONTROL, DECORATOR, SUBTREE
- PortDirection: INPUT, OUTPUT, INOUT

Errors (errors.py):
- BridgeError and its coded subclasses

Models (models.py):
- PortDescriptor, PortBinding
- NodeModel tagged union and its variants

Blackboard (blackboard.py):
- SharedValueStore
"""

from .base import NodeKind, NodeStatus, PortDirection
from .blackboard import SharedValueStore
from .errors import (
    BridgeError,
    CallInProgressError,
    MissingInputError,
    PortValueError,
    RemoteConnectionError,
    TreeLoadError,
    UnknownPortError,
    UnsupportedTypeError,
)
from .models import (
    ActionModel,
    ConditionModel,
    ControlModel,
    DecoratorModel,
    NodeModel,
    PortBinding,
    PortDescriptor,
    SubtreeModel,
    make_model,
    node_model_adapter,
)

__all__ = [
    "NodeKind",
    "NodeStatus",
    "PortDirection",
    "SharedValueStore",
    "BridgeError",
    "CallInProgressError",
    "MissingInputError",
    "PortValueError",
    "RemoteConnectionError",
    "TreeLoadError",
    "UnknownPortError",
    "UnsupportedTypeError",
    "ActionModel",
    "ConditionModel",
    "ControlModel",
    "DecoratorModel",
    "NodeModel",
    "PortBinding",
    "PortDescriptor",
    "SubtreeModel",
    "make_model",
    "node_model_adapter",
]
