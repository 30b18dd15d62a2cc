"""
TreeNode Base Class - Base abstraction for all runtime tree nodes.

All runtime nodes inherit from this class. A node carries:
- its node model (the tagged-union variant it was built from)
- its port bindings (literal or blackboard reference per port)
- its status and tick count
- its runtime index (position in depth-first pre-order, root excluded)

Error codes:
- E2001: Missing required input (causes FAILURE of the ticking leaf)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, List, Optional, TYPE_CHECKING

from ..state.base import NodeKind, NodeStatus
from ..state.blackboard import SharedValueStore
from ..state.errors import MissingInputError
from ..state.models import NodeModel, PortBinding

if TYPE_CHECKING:
    from ..core.context import TickContext

logger = logging.getLogger(__name__)


class TreeNode(ABC):
    """Base class for all runtime tree nodes.

    Invariants:
    - _status reflects the result of the most recent tick, halt or override
    - every binding refers to a port declared by the model
    - _index is -1 until the owning tree assigns it

    Usage:
        class MyLeaf(LeafNode):
            def _tick(self, ctx: TickContext) -> NodeStatus:
                return NodeStatus.SUCCESS

    Override _tick(), NOT tick().
    """

    def __init__(
        self,
        name: str,
        model: NodeModel,
        bindings: Optional[Dict[str, PortBinding]] = None,
    ) -> None:
        """Initialize a tree node.

        Args:
            name: Instance name shown in the editor.
            model: Node model variant describing kind and ports.
            bindings: Port bindings from the tree definition. Declared
                port defaults fill in the rest.

        Raises:
            ValueError: If a binding names a port the model does not declare.
        """
        if not name:
            raise ValueError("Node name cannot be empty")

        for port_name in bindings or {}:
            if model.port(port_name) is None:
                raise ValueError(
                    f"Node '{name}' ({model.registration_id}) has no port named '{port_name}'"
                )

        self._name = name
        self._model = model
        self._bindings: Dict[str, PortBinding] = {
            **model.default_bindings(),
            **(bindings or {}),
        }
        self._store: Optional[SharedValueStore] = None
        self._values: Dict[str, Any] = {}

        self._status = NodeStatus.IDLE
        self._tick_count = 0
        self._index = -1

        self._parent: Optional[TreeNode] = None
        self._children: List[TreeNode] = []

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def name(self) -> str:
        return self._name

    @property
    def model(self) -> NodeModel:
        return self._model

    @property
    def kind(self) -> NodeKind:
        return self._model.kind

    @property
    def registration_id(self) -> str:
        return self._model.registration_id

    @property
    def status(self) -> NodeStatus:
        return self._status

    @property
    def tick_count(self) -> int:
        return self._tick_count

    @property
    def index(self) -> int:
        """Runtime index (1-based pre-order position, -1 if unattached)."""
        return self._index

    @property
    def children(self) -> List["TreeNode"]:
        return list(self._children)

    @property
    def parent(self) -> Optional["TreeNode"]:
        return self._parent

    @property
    def store(self) -> Optional[SharedValueStore]:
        return self._store

    # =========================================================================
    # Hierarchy
    # =========================================================================

    def _add_child(self, child: "TreeNode") -> None:
        if child._parent is not None:
            raise ValueError(
                f"Node '{child.name}' already has parent '{child._parent.name}'"
            )
        child._parent = self
        self._children.append(child)

    def iter_preorder(self) -> Iterator["TreeNode"]:
        """Yield this node and its descendants in depth-first pre-order."""
        yield self
        for child in self._children:
            yield from child.iter_preorder()

    def descendant_count(self) -> int:
        """Number of nodes below this one."""
        return sum(1 for _ in self.iter_preorder()) - 1

    def attach(self, index: int, store: SharedValueStore) -> None:
        """Bind the node to its tree position and blackboard."""
        self._index = index
        self._store = store

    # =========================================================================
    # Ports
    # =========================================================================

    def binding(self, port_name: str) -> Optional[PortBinding]:
        return self._bindings.get(port_name)

    @property
    def bindings(self) -> Dict[str, PortBinding]:
        return dict(self._bindings)

    def input_is_literal(self, port_name: str) -> bool:
        """True when get_input() returns the unparsed literal text."""
        binding = self._bindings.get(port_name)
        return (
            binding is not None
            and not binding.is_reference
            and port_name not in self._values
        )

    def get_input(self, port_name: str) -> Any:
        """Read the current value of a port.

        References are read from the blackboard, values written through
        set_output() win over literals, and literals come back as text.

        Raises:
            MissingInputError: If the port is unbound or its key is unset.
        """
        binding = self._bindings.get(port_name)
        if binding is not None and binding.is_reference:
            if self._store is None or not self._store.has(binding.reference):
                raise MissingInputError(
                    port_name, self._name, f"blackboard key '{binding.reference}' is not set"
                )
            return self._store.get(binding.reference)
        if port_name in self._values:
            return self._values[port_name]
        if binding is None:
            raise MissingInputError(port_name, self._name, "port is not bound")
        return binding.literal

    def set_output(self, port_name: str, value: Any) -> None:
        """Write a port value, to the blackboard when the port is a reference."""
        binding = self._bindings.get(port_name)
        if binding is not None and binding.is_reference:
            if self._store is None:
                raise RuntimeError(f"Node '{self._name}' is not attached to a blackboard")
            self._store.set(binding.reference, value)
            return
        self._values[port_name] = value

    # =========================================================================
    # Execution
    # =========================================================================

    def tick(self, ctx: "TickContext") -> NodeStatus:
        """Execute node for one tick.

        DO NOT override this method - override _tick() instead.

        A MissingInputError fails only this node; every other error
        propagates and ends the tick pass.
        """
        try:
            status = self._tick(ctx)
        except MissingInputError as e:
            logger.error(f"Node '{self._name}' failed: {e}")
            status = NodeStatus.FAILURE

        self._tick_count += 1
        self._status = status
        return status

    @abstractmethod
    def _tick(self, ctx: "TickContext") -> NodeStatus:
        """Subclass implementation of the tick logic."""

    def halt(self) -> None:
        """Interrupt the node and its children, leaving them IDLE."""
        for child in self._children:
            child.halt()
        self._status = NodeStatus.IDLE

    def reset(self) -> None:
        """Reset node and children to initial state, dropping written values."""
        self._status = NodeStatus.IDLE
        self._values.clear()
        for child in self._children:
            child.reset()

    def set_status(self, status: NodeStatus) -> None:
        """Force a status from outside the tick (manual override)."""
        self._status = status

    def debug_info(self) -> Dict[str, Any]:
        return {
            "name": self._name,
            "registration_id": self.registration_id,
            "kind": self.kind.value,
            "index": self._index,
            "status": self._status.name,
            "tick_count": self._tick_count,
            "bindings": {name: str(b) for name, b in self._bindings.items()},
            "children": [child.name for child in self._children],
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"name='{self._name}', "
            f"index={self._index}, "
            f"status={self._status.name})"
        )


class LeafNode(TreeNode):
    """Base class for nodes with no children."""

    def _add_child(self, child: TreeNode) -> None:
        raise ValueError(
            f"Cannot add child to leaf node '{self._name}'. "
            f"Leaf nodes have no children."
        )


__all__ = ["TreeNode", "LeafNode"]
