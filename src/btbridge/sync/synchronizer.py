"""
Status Synchronizer - Minimal status batches for the visual layer.

Rules for a node whose status changed during the tick:
- it is emitted with its new status
- if the new status is IDLE, the previous status is emitted first, so
  the editor can render the "was X, now reset" transition

Rules for a node whose status did not change:
- a RUNNING node that is not a condition is re-emitted as RUNNING so the
  editor keeps refreshing it
- while a condition re-poll is pending, each such re-emission is
  followed by IDLE, rendering the node as transiently grayed

The synthetic root (index 0) is emitted only when it changed.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from ..state.base import NodeKind, NodeStatus
from .translator import expand_and_translate, to_visual
from .visual import StatusChange, StatusSink, VisualTree

logger = logging.getLogger(__name__)


def diff_statuses(
    before: Sequence[NodeStatus],
    after: Sequence[NodeStatus],
    kinds: Sequence[NodeKind],
    repoll_pending: bool = False,
) -> List[StatusChange]:
    """Compute runtime-index changes between two status snapshots.

    Args:
        before: Statuses per runtime index (root first) before the tick.
        after: Statuses per runtime index after the tick.
        kinds: Node kind per node, i.e. ``kinds[i - 1]`` for runtime index i.
        repoll_pending: A condition asked for a re-poll during the tick.
    """
    if len(before) != len(after) or len(after) != len(kinds) + 1:
        raise ValueError(
            f"Snapshot sizes differ: before={len(before)}, after={len(after)}, "
            f"nodes={len(kinds)}"
        )

    changes: List[StatusChange] = []
    if after[0] != before[0]:
        changes.append((0, after[0]))

    for index in range(1, len(after)):
        previous, current = before[index], after[index]
        if current != previous:
            if current == NodeStatus.IDLE:
                changes.append((index, previous))
            changes.append((index, current))
        elif current == NodeStatus.RUNNING and kinds[index - 1] != NodeKind.CONDITION:
            changes.append((index, NodeStatus.RUNNING))
            if repoll_pending:
                changes.append((index, NodeStatus.IDLE))
    return changes


class StatusSynchronizer:
    """Pushes runtime status changes to a visual tree's sink.

    Args:
        visual_tree: Visible rows used for index translation.
        sink: Receives visual-index batches.
        expand_on_change: Unfold collapsed subtrees that hide a change
            instead of reporting the change on the placeholder.
    """

    def __init__(
        self,
        visual_tree: VisualTree,
        sink: StatusSink,
        expand_on_change: bool = True,
    ) -> None:
        self.visual_tree = visual_tree
        self.sink = sink
        self.expand_on_change = expand_on_change

    def translate(self, changes: Sequence[StatusChange]) -> List[StatusChange]:
        if self.expand_on_change:
            return expand_and_translate(changes, self.visual_tree)
        return to_visual(changes, self.visual_tree.nodes()).changes

    def publish(
        self, changes: Sequence[StatusChange], reset_before_update: bool = False
    ) -> List[StatusChange]:
        """Translate runtime-index changes and deliver them. Empty batches are dropped."""
        if not changes:
            return []
        visual_changes = self.translate(changes)
        self.sink.change_node_style(visual_changes, reset_before_update)
        return visual_changes

    def publish_visual(
        self, changes: Sequence[StatusChange], reset_before_update: bool = True
    ) -> None:
        """Deliver changes that are already in visual-index space."""
        if changes:
            self.sink.change_node_style(list(changes), reset_before_update)

    def synchronize(
        self,
        before: Sequence[NodeStatus],
        after: Sequence[NodeStatus],
        kinds: Sequence[NodeKind],
        repoll_pending: bool = False,
    ) -> List[StatusChange]:
        """Diff two snapshots and publish the result."""
        changes = diff_statuses(before, after, kinds, repoll_pending)
        logger.debug(f"Tick produced {len(changes)} status changes")
        return self.publish(changes)


__all__ = ["diff_statuses", "StatusSynchronizer"]
