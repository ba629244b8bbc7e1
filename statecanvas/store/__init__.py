"""
Workflow persistence.

- WorkflowStore: async backend interface (configuration and layout saved separately)
- InMemoryWorkflowStore / JsonDirectoryStore: bundled backends
- PersistenceDispatcher: ordered background saves with timeout and failure reporting
- open_store: the store configured by StateCanvasSettings
"""

from typing import Optional

from statecanvas.config.settings import StateCanvasSettings
from statecanvas.store.protocols import WorkflowStore
from statecanvas.store.memory import InMemoryWorkflowStore
from statecanvas.store.filesystem import JsonDirectoryStore
from statecanvas.store.dispatcher import (
    PersistRequest,
    PersistenceDispatcher,
    DispatchStats,
)


def open_store(settings: Optional[StateCanvasSettings] = None) -> JsonDirectoryStore:
    """Directory store rooted at ``persistence.store_root``."""
    settings = settings or StateCanvasSettings()
    return JsonDirectoryStore(settings.persistence.store_root)


__all__ = [
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "JsonDirectoryStore",
    "PersistRequest",
    "PersistenceDispatcher",
    "DispatchStats",
    "open_store",
]
