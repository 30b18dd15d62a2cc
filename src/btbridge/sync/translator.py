"""
Index Translator - Map status changes between runtime and visual indices.

The runtime tree is always fully expanded; the visual tree may fold a
subtree into a single placeholder row. A collapsed placeholder at
runtime index r with subtree size s hides runtime indices r+1 .. r+s.

Both directions are pure functions of the current visual rows, scanned
in ascending index order:

- to_visual: indices after a collapsed span shift down by its size;
  indices inside a span map to the placeholder, or, with
  ``expand_hidden``, the placeholder is reported for expansion and the
  span no longer counts as hidden.
- to_runtime: indices after a collapsed placeholder shift up by its size.

For any index i outside a collapsed span,
to_visual(to_runtime(i)) == i.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .visual import StatusChange, VisualNode, VisualTree

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TranslationResult:
    """Changes in visual-index space plus placeholders to expand."""

    changes: List[StatusChange] = field(default_factory=list)
    expand: List[int] = field(default_factory=list)


def collapsed_spans(visual_nodes: Sequence[VisualNode]) -> List[Tuple[int, int, int]]:
    """Collapsed placeholders as (visual_index, runtime_index, size), ascending."""
    spans: List[Tuple[int, int, int]] = []
    offset = 0
    for visual_index, node in enumerate(visual_nodes):
        if node.is_placeholder:
            spans.append((visual_index, visual_index + offset, node.subtree_size))
            offset += node.subtree_size
    return spans


def to_visual(
    changes: Sequence[StatusChange],
    visual_nodes: Sequence[VisualNode],
    expand_hidden: bool = False,
) -> TranslationResult:
    """Translate runtime-index changes to visual indices.

    Example:
        With runtime nodes 2..4 folded under the placeholder at index 1:
        >>> to_visual([(3, RUNNING), (5, SUCCESS)], rows).changes
        [(1, RUNNING), (2, SUCCESS)]
    """
    if not changes:
        return TranslationResult()

    last_change = max(index for index, _ in changes)
    spans = [span for span in collapsed_spans(visual_nodes) if span[1] < last_change]

    expand: List[int] = []
    if expand_hidden:
        folded = []
        for span in spans:
            _, runtime_index, size = span
            if any(runtime_index < index <= runtime_index + size for index, _ in changes):
                expand.append(span[0])
            else:
                folded.append(span)
        spans = folded

    translated: List[StatusChange] = []
    for index, status in changes:
        visual_index = index
        for placeholder, runtime_index, size in spans:
            if index > runtime_index + size:
                visual_index -= size
            elif index > runtime_index:
                visual_index = placeholder
                break
        translated.append((visual_index, status))

    if expand:
        logger.debug(f"Changes inside collapsed subtrees at visual {expand}")
    return TranslationResult(changes=translated, expand=expand)


def to_runtime(
    changes: Sequence[StatusChange],
    visual_nodes: Sequence[VisualNode],
) -> List[StatusChange]:
    """Translate visual-index changes to runtime indices.

    A change on a placeholder addresses the subtree's own runtime node.
    """
    if not changes:
        return []

    spans = collapsed_spans(visual_nodes)
    translated: List[StatusChange] = []
    for index, status in changes:
        runtime_index = index
        for placeholder, _, size in spans:
            if placeholder < index:
                runtime_index += size
        translated.append((runtime_index, status))
    return translated


def expand_and_translate(
    changes: Sequence[StatusChange],
    visual_tree: VisualTree,
    expand_hidden: bool = True,
) -> List[StatusChange]:
    """Translate to visual indices, unfolding subtrees that hide a change.

    Each unfold reveals new rows (and possibly nested placeholders), so
    the translation is repeated until nothing is left to expand.
    """
    while True:
        result = to_visual(changes, visual_tree.nodes(), expand_hidden=expand_hidden)
        if not result.expand:
            return result.changes
        # unfold right to left so earlier indices stay valid
        for placeholder in sorted(result.expand, reverse=True):
            visual_tree.set_expanded(placeholder, True)


__all__ = [
    "TranslationResult",
    "collapsed_spans",
    "to_visual",
    "to_runtime",
    "expand_and_translate",
]
