"""
Per-workflow undo/redo history.

Each workflow gets a pair of bounded stacks holding document snapshots:

- add_entry() pushes the document as it was *before* an edit onto the undo
  stack and clears the redo stack (a new edit abandons the redo branch)
- undo() pops the undo stack and pushes the current document onto redo
- redo() is the mirror image

The store is an explicit object owned by an editing session, with one
history per resident workflow. Callers must not record the document produced
by undo() or redo() as a new entry; EditorSession.apply(track_history=False)
exists for that.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Deque, Dict, Optional

from statecanvas.workflow.schema import WorkflowDocument

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50


@dataclass
class HistoryEntry:
    """A document snapshot and the edit that followed it."""

    snapshot: WorkflowDocument
    description: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class WorkflowHistory:
    """Undo and redo stacks for a single workflow. Right end is the top."""

    workflow_id: str
    max_depth: int = DEFAULT_MAX_DEPTH
    undo_stack: Deque[HistoryEntry] = field(default_factory=deque)
    redo_stack: Deque[HistoryEntry] = field(default_factory=deque)

    def __post_init__(self):
        self.undo_stack = deque(self.undo_stack, maxlen=self.max_depth)
        self.redo_stack = deque(self.redo_stack, maxlen=self.max_depth)


def _snapshot(document: WorkflowDocument) -> WorkflowDocument:
    return document.model_copy(deep=True)


class HistoryStore:
    """
    Undo/redo histories keyed by workflow id.

    Histories are created lazily on first use and removed with discard()
    when their workflow stops being resident.

    Example:
        ```python
        history = HistoryStore(max_depth=50)

        history.add_entry(doc.id, doc, "Added state: review")
        doc = consistency.add_state(doc, "review")

        previous = history.undo(doc.id, current=doc)
        ```
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        if max_depth < 1:
            raise ValueError(f"max_depth must be at least 1: {max_depth}")
        self.max_depth = max_depth
        self._histories: Dict[str, WorkflowHistory] = {}

    def _get(self, workflow_id: str) -> Optional[WorkflowHistory]:
        return self._histories.get(workflow_id)

    def _get_or_create(self, workflow_id: str) -> WorkflowHistory:
        if workflow_id not in self._histories:
            self._histories[workflow_id] = WorkflowHistory(
                workflow_id=workflow_id, max_depth=self.max_depth
            )
        return self._histories[workflow_id]

    def add_entry(
        self, workflow_id: str, snapshot: WorkflowDocument, description: str
    ) -> None:
        """
        Record the document as it was before an edit.

        Clears the redo stack. Once the undo stack holds max_depth entries,
        the oldest one is evicted.
        """
        history = self._get_or_create(workflow_id)
        if len(history.undo_stack) == self.max_depth:
            logger.debug(f"History for '{workflow_id}' full; evicting oldest entry")

        history.undo_stack.append(
            HistoryEntry(snapshot=_snapshot(snapshot), description=description)
        )
        history.redo_stack.clear()
        logger.debug(
            f"History entry for '{workflow_id}': {description} "
            f"(undo={len(history.undo_stack)})"
        )

    def undo(
        self, workflow_id: str, current: WorkflowDocument
    ) -> Optional[WorkflowDocument]:
        """
        Step back one edit.

        Args:
            workflow_id: Workflow whose history to use
            current: The resident document, pushed onto the redo stack

        Returns:
            The document to restore, or None when there is nothing to undo
        """
        history = self._get(workflow_id)
        if not history or not history.undo_stack:
            return None

        entry = history.undo_stack.pop()
        history.redo_stack.append(
            HistoryEntry(snapshot=_snapshot(current), description=entry.description)
        )
        logger.debug(f"Undo '{entry.description}' for '{workflow_id}'")
        return _snapshot(entry.snapshot)

    def redo(
        self, workflow_id: str, current: WorkflowDocument
    ) -> Optional[WorkflowDocument]:
        """
        Re-apply the most recently undone edit.

        Args:
            workflow_id: Workflow whose history to use
            current: The resident document, pushed onto the undo stack

        Returns:
            The document to restore, or None when there is nothing to redo
        """
        history = self._get(workflow_id)
        if not history or not history.redo_stack:
            return None

        entry = history.redo_stack.pop()
        history.undo_stack.append(
            HistoryEntry(snapshot=_snapshot(current), description=entry.description)
        )
        logger.debug(f"Redo '{entry.description}' for '{workflow_id}'")
        return _snapshot(entry.snapshot)

    def can_undo(self, workflow_id: str) -> bool:
        return self.undo_count(workflow_id) > 0

    def can_redo(self, workflow_id: str) -> bool:
        return self.redo_count(workflow_id) > 0

    def undo_count(self, workflow_id: str) -> int:
        history = self._get(workflow_id)
        return len(history.undo_stack) if history else 0

    def redo_count(self, workflow_id: str) -> int:
        history = self._get(workflow_id)
        return len(history.redo_stack) if history else 0

    def peek_undo_description(self, workflow_id: str) -> Optional[str]:
        """Description of the edit undo() would revert."""
        history = self._get(workflow_id)
        if not history or not history.undo_stack:
            return None
        return history.undo_stack[-1].description

    def peek_redo_description(self, workflow_id: str) -> Optional[str]:
        """Description of the edit redo() would re-apply."""
        history = self._get(workflow_id)
        if not history or not history.redo_stack:
            return None
        return history.redo_stack[-1].description

    def discard(self, workflow_id: str) -> None:
        """Drop the history of a workflow that is no longer resident."""
        if self._histories.pop(workflow_id, None) is not None:
            logger.debug(f"Discarded history for '{workflow_id}'")

    def clear(self) -> None:
        self._histories.clear()

    def workflow_ids(self) -> list[str]:
        return list(self._histories.keys())

    def debug_info(self) -> Dict[str, Dict[str, int]]:
        """Undo/redo counts per workflow."""
        return {
            workflow_id: {
                "undo_count": len(h.undo_stack),
                "redo_count": len(h.redo_stack),
            }
            for workflow_id, h in self._histories.items()
        }
