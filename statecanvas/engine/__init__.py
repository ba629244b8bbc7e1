"""
Workflow engine components.

- consistency: pure edit operations that keep configuration and layout in step
- history: per-workflow undo/redo stacks
- layout: hierarchical auto-layout
"""

from statecanvas.engine import consistency
from statecanvas.engine.history import (
    HistoryEntry,
    WorkflowHistory,
    HistoryStore,
)
from statecanvas.engine.layout import (
    LayoutOptions,
    StatePosition,
    LayoutResult,
    AutoLayoutEngine,
    apply_layout,
    can_auto_layout,
)

__all__ = [
    "consistency",
    # History
    "HistoryEntry",
    "WorkflowHistory",
    "HistoryStore",
    # Layout
    "LayoutOptions",
    "StatePosition",
    "LayoutResult",
    "AutoLayoutEngine",
    "apply_layout",
    "can_auto_layout",
]
