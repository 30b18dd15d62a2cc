"""
BT Bridge State - Core Enums

This module provides the foundational enums for the interpreter:
- NodeStatus: Execution status of a runtime node (IDLE, RUNNING, SUCCESS, FAILURE)
- NodeKind: Classification of a node model (ACTION, CONDITION, CONTROL, DECORATOR, SUBTREE)
- PortDirection: Direction of a declared port (INPUT, OUTPUT, INOUT)
"""

from enum import Enum, IntEnum


class NodeStatus(IntEnum):
    """Status of a runtime tree node.

    Values mirror the tick engine's statuses:
    - IDLE (0): Node is not active (never ticked, halted or reset)
    - RUNNING (1): Node is mid-execution, will continue next tick
    - SUCCESS (2): Node completed successfully
    - FAILURE (3): Node failed

    IntEnum allows numeric comparisons and ordering.
    """

    IDLE = 0
    RUNNING = 1
    SUCCESS = 2
    FAILURE = 3

    @classmethod
    def from_bool(cls, value: bool) -> "NodeStatus":
        """Convert boolean to SUCCESS (True) or FAILURE (False).

        Example:
            >>> NodeStatus.from_bool(True)
            <NodeStatus.SUCCESS: 2>
        """
        return cls.SUCCESS if value else cls.FAILURE

    def is_complete(self) -> bool:
        """Check if status indicates completion (SUCCESS or FAILURE)."""
        return self in (NodeStatus.SUCCESS, NodeStatus.FAILURE)

    def is_running(self) -> bool:
        """Check if status indicates ongoing execution."""
        return self == NodeStatus.RUNNING


class NodeKind(str, Enum):
    """Classification of a node model.

    ACTION and CONDITION are leaves that talk to remote services;
    CONTROL and DECORATOR only route status; SUBTREE is a reference to
    another tree that may be shown collapsed in the visual layer.

    Using str Enum for JSON serialization compatibility.
    """

    ACTION = "action"
    CONDITION = "condition"
    CONTROL = "control"
    DECORATOR = "decorator"
    SUBTREE = "subtree"

    def is_leaf(self) -> bool:
        """Check if nodes of this kind perform externally visible work."""
        return self in (NodeKind.ACTION, NodeKind.CONDITION)


class PortDirection(str, Enum):
    """Direction of a declared port."""

    INPUT = "input"
    OUTPUT = "output"
    INOUT = "inout"


__all__ = ["NodeStatus", "NodeKind", "PortDirection"]
