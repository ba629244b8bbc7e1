"""
StateCanvas - Workflow consistency engine.

Keeps a workflow's functional configuration (states and transitions) and its
canvas layout (positions, label offsets) consistent while it is edited, with
undo/redo history, hierarchical auto-layout and pluggable persistence.

Quick Start:
    ```python
    from statecanvas import EditorSession, InMemoryWorkflowStore, EntityModel, WorkflowParser

    config = WorkflowParser.parse_configuration_file("registration.json")

    session = EditorSession(InMemoryWorkflowStore())
    await session.import_workflow(config, EntityModel(model_name="user"))
    await session.delete_state("pending")
    await session.undo()
    await session.close()
    ```

Using the engine directly:
    ```python
    from statecanvas.engine import consistency

    document = consistency.add_state(document, "archived", position=(400, 300))
    document = consistency.delete_transition(document, "email-sent-0")
    ```
"""

__version__ = "0.1.0"

# Configuration
from statecanvas.config.settings import StateCanvasSettings

# Document model
from statecanvas.workflow import (
    identity,
    WorkflowEngineError,
    DuplicateStateError,
    UnknownStateError,
    UnknownTransitionError,
    MalformedIdentityError,
    InvalidConfigurationError,
    NotFoundError,
    NoResidentWorkflowError,
    PersistenceError,
    TransitionDefinition,
    StateDefinition,
    WorkflowConfiguration,
    Position,
    CanvasLayout,
    EntityModel,
    WorkflowDocument,
    WorkflowParser,
    import_configuration,
)

# Engine
from statecanvas.engine import (
    consistency,
    HistoryStore,
    AutoLayoutEngine,
    LayoutOptions,
    LayoutResult,
)

# Persistence and session
from statecanvas.store import (
    WorkflowStore,
    InMemoryWorkflowStore,
    JsonDirectoryStore,
    PersistenceDispatcher,
)
from statecanvas.session import EditorSession

__all__ = [
    # Version
    "__version__",
    # Configuration
    "StateCanvasSettings",
    # Document model
    "identity",
    "WorkflowEngineError",
    "DuplicateStateError",
    "UnknownStateError",
    "UnknownTransitionError",
    "MalformedIdentityError",
    "InvalidConfigurationError",
    "NotFoundError",
    "NoResidentWorkflowError",
    "PersistenceError",
    "TransitionDefinition",
    "StateDefinition",
    "WorkflowConfiguration",
    "Position",
    "CanvasLayout",
    "EntityModel",
    "WorkflowDocument",
    "WorkflowParser",
    "import_configuration",
    # Engine
    "consistency",
    "HistoryStore",
    "AutoLayoutEngine",
    "LayoutOptions",
    "LayoutResult",
    # Persistence and session
    "WorkflowStore",
    "InMemoryWorkflowStore",
    "JsonDirectoryStore",
    "PersistenceDispatcher",
    "EditorSession",
]
