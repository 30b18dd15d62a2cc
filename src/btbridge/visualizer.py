"""
Tree Visualizer - Text renderings of runtime trees.

- ASCII tree with runtime indices and statuses
- JSON export of the tree structure
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .core.tree import RuntimeTree
    from .nodes.base import TreeNode


# =============================================================================
# ASCII Tree Visualization
# =============================================================================


def ascii_tree(
    tree: "RuntimeTree",
    show_status: bool = True,
    show_bindings: bool = False,
) -> str:
    """
    Generate an ASCII rendering of a runtime tree.

    ```
    [0] BehaviorTree [RUNNING]
    \\-- [1] main (Sequence) [RUNNING]
        |-- [2] IsReady (ConditionAdapter) [SUCCESS]
        \\-- [3] MoveTo (ActionAdapter) [RUNNING]
    ```

    Args:
        tree: The runtime tree to render.
        show_status: Whether to show node status.
        show_bindings: Whether to list port bindings below each leaf.

    Returns:
        ASCII string representation of the tree.
    """
    lines: List[str] = []
    status_str = f" [{tree.root_status.name}]" if show_status else ""
    lines.append(f"[0] {tree.name}{status_str}")

    _render_node_ascii(
        node=tree.root,
        lines=lines,
        prefix="",
        is_last=True,
        show_status=show_status,
        show_bindings=show_bindings,
    )
    return "\n".join(lines)


def _render_node_ascii(
    node: "TreeNode",
    lines: List[str],
    prefix: str,
    is_last: bool,
    show_status: bool,
    show_bindings: bool,
) -> None:
    """Recursively render a node and its children as ASCII."""
    connector = "\\-- " if is_last else "|-- "
    status_suffix = f" [{node.status.name}]" if show_status else ""
    node_type = type(node).__name__
    lines.append(f"{prefix}{connector}[{node.index}] {node.name} ({node_type}){status_suffix}")

    child_prefix = prefix + ("    " if is_last else "|   ")
    children = node.children

    if show_bindings and node.bindings:
        bindings = ", ".join(f"{name}={value}" for name, value in sorted(node.bindings.items()))
        joiner = "|   " if children else "    "
        lines.append(f"{child_prefix}{joiner}ports: {bindings}")

    for i, child in enumerate(children):
        _render_node_ascii(
            node=child,
            lines=lines,
            prefix=child_prefix,
            is_last=i == len(children) - 1,
            show_status=show_status,
            show_bindings=show_bindings,
        )


# =============================================================================
# JSON Export
# =============================================================================


def json_export(tree: "RuntimeTree", blackboard: bool = False) -> Dict[str, Any]:
    """Export the tree structure and statuses as a JSON-ready dict."""
    export: Dict[str, Any] = {
        "name": tree.name,
        "status": tree.root_status.name,
        "tick_count": tree.tick_count,
        "node_count": len(tree),
        "root": _node_to_dict(tree.root),
    }
    if blackboard:
        export["blackboard"] = tree.store.snapshot()
    return export


def _node_to_dict(node: "TreeNode") -> Dict[str, Any]:
    result: Dict[str, Any] = {
        "index": node.index,
        "name": node.name,
        "registration_id": node.registration_id,
        "kind": node.kind.value,
        "status": node.status.name,
    }
    if node.bindings:
        result["bindings"] = {name: str(b) for name, b in node.bindings.items()}
    children: Optional[List[Dict[str, Any]]] = [_node_to_dict(c) for c in node.children]
    if children:
        result["children"] = children
    return result


__all__ = ["ascii_tree", "json_export"]
