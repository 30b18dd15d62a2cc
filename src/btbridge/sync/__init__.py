"""
BT Bridge Sync - Keeping the visual tree in step with the runtime tree.

Contains:
- VisualNode, VisualTree, StatusSink, SimpleVisualTree (visual.py)
- Index Translator: to_visual, to_runtime (translator.py)
- Status Synchronizer: diff_statuses, StatusSynchronizer (synchronizer.py)
"""

from .synchronizer import StatusSynchronizer, diff_statuses
from .translator import (
    TranslationResult,
    collapsed_spans,
    expand_and_translate,
    to_runtime,
    to_visual,
)
from .visual import (
    RecordingSink,
    SimpleVisualTree,
    StatusChange,
    StatusSink,
    VisualNode,
    VisualTree,
)

__all__ = [
    "StatusSynchronizer",
    "diff_statuses",
    "TranslationResult",
    "collapsed_spans",
    "expand_and_translate",
    "to_runtime",
    "to_visual",
    "RecordingSink",
    "SimpleVisualTree",
    "StatusChange",
    "StatusSink",
    "VisualNode",
    "VisualTree",
]
