"""
Workflow document model.

Contains the data side of the consistency engine:
- Schema: WorkflowConfiguration, StateDefinition, TransitionDefinition, CanvasLayout, WorkflowDocument
- Identity: canonical '<sourceStateId>-<index>' transition ids and legacy id migration
- Parser: WorkflowParser for YAML/JSON loading, import and export
- Errors: the typed error hierarchy
"""

from statecanvas.workflow import identity
from statecanvas.workflow.errors import (
    WorkflowEngineError,
    DuplicateStateError,
    UnknownStateError,
    UnknownTransitionError,
    MalformedIdentityError,
    InvalidConfigurationError,
    NotFoundError,
    NoResidentWorkflowError,
    PersistenceError,
)
from statecanvas.workflow.schema import (
    ExternalizedFunctionConfig,
    FunctionDescriptor,
    SimpleCriterion,
    GroupCriterion,
    FunctionCriterion,
    OpaqueCriterion,
    Criterion,
    ProcessorDefinition,
    TransitionDefinition,
    StateDefinition,
    WorkflowConfiguration,
    Position,
    StateLayout,
    TransitionLayout,
    CanvasLayout,
    EntityModel,
    WorkflowSummary,
    WorkflowDocument,
    generate_workflow_id,
    check_invariants,
)
from statecanvas.workflow.parser import (
    WorkflowParser,
    import_configuration,
    document_to_json,
    write_document,
)

__all__ = [
    "identity",
    # Errors
    "WorkflowEngineError",
    "DuplicateStateError",
    "UnknownStateError",
    "UnknownTransitionError",
    "MalformedIdentityError",
    "InvalidConfigurationError",
    "NotFoundError",
    "NoResidentWorkflowError",
    "PersistenceError",
    # Schema
    "ExternalizedFunctionConfig",
    "FunctionDescriptor",
    "SimpleCriterion",
    "GroupCriterion",
    "FunctionCriterion",
    "OpaqueCriterion",
    "Criterion",
    "ProcessorDefinition",
    "TransitionDefinition",
    "StateDefinition",
    "WorkflowConfiguration",
    "Position",
    "StateLayout",
    "TransitionLayout",
    "CanvasLayout",
    "EntityModel",
    "WorkflowSummary",
    "WorkflowDocument",
    "generate_workflow_id",
    "check_invariants",
    # Parser
    "WorkflowParser",
    "import_configuration",
    "document_to_json",
    "write_document",
]
