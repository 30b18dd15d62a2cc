"""
BT Bridge Node Types

Contains the runtime node implementations:
- Base: TreeNode, LeafNode (base.py)
- Composites: Sequence, SequenceStar, Fallback, ReactiveSequence, ReactiveFallback, Parallel
- Decorators: Inverter, ForceSuccess, ForceFailure, Repeat,
  RetryUntilSuccessful, SubtreeNode
- Leaf adapters: ActionAdapter, ConditionAdapter (adapters.py)
"""

from .base import LeafNode, TreeNode

from .composites import (
    CONTROL_NODES,
    CompositeNode,
    Fallback,
    Parallel,
    ReactiveFallback,
    ReactiveSequence,
    Sequence,
    SequenceStar,
)

from .decorators import (
    DECORATOR_NODES,
    DecoratorNode,
    ForceFailure,
    ForceSuccess,
    Inverter,
    Repeat,
    RetryUntilSuccessful,
    SubtreeNode,
)

from .adapters import (
    SERVER_PORT,
    SERVICE_PORT,
    ActionAdapter,
    ActionState,
    ConditionAdapter,
    Evaluation,
)

__all__ = [
    # Base
    "TreeNode",
    "LeafNode",
    # Composites
    "CONTROL_NODES",
    "CompositeNode",
    "Sequence",
    "SequenceStar",
    "Fallback",
    "ReactiveSequence",
    "ReactiveFallback",
    "Parallel",
    # Decorators
    "DECORATOR_NODES",
    "DecoratorNode",
    "Inverter",
    "ForceSuccess",
    "ForceFailure",
    "Repeat",
    "RetryUntilSuccessful",
    "SubtreeNode",
    # Adapters
    "SERVER_PORT",
    "SERVICE_PORT",
    "ActionAdapter",
    "ActionState",
    "ConditionAdapter",
    "Evaluation",
]
