"""
Visual Layer Interfaces - What the interpreter needs from the tree editor.

- VisualNode: one visible row (node model, bindings, collapse state)
- VisualTree: ordered visible rows plus expand/collapse of placeholders
- StatusSink: receives (visual_index, status) batches

SimpleVisualTree is a list-backed VisualTree built from a RuntimeTree,
used headless by the CLI and by tests. Visual index 0 is the visual
root, which stands for the synthetic runtime root.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from ..state.base import NodeKind, NodeStatus
from ..state.models import ControlModel, NodeModel

if TYPE_CHECKING:
    from ..core.tree import RuntimeTree

logger = logging.getLogger(__name__)

StatusChange = Tuple[int, NodeStatus]

VISUAL_ROOT_ID = "Root"


class VisualNode(BaseModel):
    """A visible row of the editor tree.

    Attributes:
        name: Instance name.
        model: Node model variant (kind, ports).
        bindings: Port name to raw binding text as typed in the editor.
        collapsed: For subtree placeholders, whether the subtree is folded.
        subtree_size: Number of runtime nodes hidden below a collapsed
            placeholder (0 when expanded).
        selected: Whether the row is selected in the editor.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    model: NodeModel
    bindings: Dict[str, str] = Field(default_factory=dict)
    collapsed: bool = False
    subtree_size: int = 0
    selected: bool = False

    @property
    def kind(self) -> NodeKind:
        return self.model.kind

    @property
    def is_placeholder(self) -> bool:
        """True for a collapsed subtree that hides runtime nodes."""
        return self.collapsed and self.subtree_size > 0


class VisualTree(Protocol):
    def nodes(self) -> Sequence[VisualNode]: ...

    def set_expanded(self, index: int, expanded: bool) -> None: ...


class StatusSink(Protocol):
    def change_node_style(
        self, changes: List[StatusChange], reset_before_update: bool
    ) -> None: ...


@dataclass
class _Entry:
    node: VisualNode
    descendants: int


class SimpleVisualTree:
    """List-backed visual tree mirroring a runtime tree.

    Every runtime node gets a row. Subtree rows can be collapsed, which
    hides all of their descendants from ``nodes()``.

    Example:
        >>> visual = SimpleVisualTree.from_runtime(tree, collapse_subtrees=True)
        >>> [n.name for n in visual.nodes()]
        ['Root', 'main', 'Dock']
    """

    def __init__(self, entries: List[Tuple[VisualNode, int]]) -> None:
        self._entries = [_Entry(node, descendants) for node, descendants in entries]

    @classmethod
    def from_runtime(cls, tree: "RuntimeTree", collapse_subtrees: bool = False) -> "SimpleVisualTree":
        root = VisualNode(
            name=VISUAL_ROOT_ID,
            model=ControlModel(registration_id=VISUAL_ROOT_ID),
        )
        entries: List[Tuple[VisualNode, int]] = [(root, len(tree))]
        for node in tree:
            visual = VisualNode(
                name=node.name,
                model=node.model,
                bindings={name: str(binding) for name, binding in node.bindings.items()},
                collapsed=collapse_subtrees and node.kind == NodeKind.SUBTREE,
            )
            entries.append((visual, node.descendant_count()))
        return cls(entries)

    def _visible(self) -> List[_Entry]:
        visible: List[_Entry] = []
        skip = 0
        for entry in self._entries:
            if skip:
                skip -= 1
                continue
            hidden = entry.descendants if entry.node.collapsed else 0
            entry.node.subtree_size = hidden
            visible.append(entry)
            skip = hidden
        return visible

    def nodes(self) -> List[VisualNode]:
        return [entry.node for entry in self._visible()]

    def set_expanded(self, index: int, expanded: bool) -> None:
        entry = self._visible()[index]
        if entry.node.kind != NodeKind.SUBTREE:
            raise ValueError(f"Visual node {index} ({entry.node.name}) is not a subtree")
        entry.node.collapsed = not expanded
        logger.debug(f"Subtree '{entry.node.name}' {'expanded' if expanded else 'collapsed'}")

    def select(self, *indices: int) -> None:
        """Select the given visible rows, clearing any other selection."""
        visible = self._visible()
        for entry in self._entries:
            entry.node.selected = False
        for index in indices:
            visible[index].node.selected = True

    def selected_indices(self) -> List[int]:
        return [index for index, node in enumerate(self.nodes()) if node.selected]


@dataclass
class RecordingSink:
    """StatusSink that keeps every batch it receives."""

    batches: List[Tuple[List[StatusChange], bool]] = field(default_factory=list)
    styles: Dict[int, NodeStatus] = field(default_factory=dict)

    def change_node_style(self, changes: List[StatusChange], reset_before_update: bool) -> None:
        self.batches.append((list(changes), reset_before_update))
        for index, status in changes:
            self.styles[index] = status

    @property
    def last(self) -> Optional[List[StatusChange]]:
        return self.batches[-1][0] if self.batches else None

    def clear(self) -> None:
        self.batches.clear()
        self.styles.clear()


__all__ = [
    "StatusChange",
    "VisualNode",
    "VisualTree",
    "StatusSink",
    "SimpleVisualTree",
    "RecordingSink",
    "VISUAL_ROOT_ID",
]
