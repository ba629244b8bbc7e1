"""
Typed errors raised by the workflow consistency engine.

Every engine operation either returns a new, invariant-respecting document or
raises one of these before any new value is built.
"""

from typing import Optional, Dict, Any, List


class WorkflowEngineError(Exception):
    """Base class for all workflow engine errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}


class DuplicateStateError(WorkflowEngineError):
    """A state with the requested id already exists."""

    def __init__(self, state_id: str):
        super().__init__(f"State already exists: {state_id}", context={"state_id": state_id})
        self.state_id = state_id


class UnknownStateError(WorkflowEngineError):
    """The referenced state is not part of the configuration."""

    def __init__(self, state_id: str):
        super().__init__(f"Unknown state: {state_id}", context={"state_id": state_id})
        self.state_id = state_id


class UnknownTransitionError(WorkflowEngineError):
    """The transition id parses but does not point at a live transition."""

    def __init__(self, transition_id: str):
        super().__init__(
            f"Unknown transition: {transition_id}",
            context={"transition_id": transition_id},
        )
        self.transition_id = transition_id


class MalformedIdentityError(UnknownTransitionError):
    """
    A transition id is not of the form '<sourceStateId>-<index>'.

    A malformed id never names a live transition, hence the base class.
    """

    def __init__(self, transition_id: str):
        WorkflowEngineError.__init__(
            self,
            f"Malformed transition id: {transition_id!r}",
            context={"transition_id": transition_id},
        )
        self.transition_id = transition_id


class InvalidConfigurationError(WorkflowEngineError):
    """
    A configuration or document violates the referential invariants.

    Raised on load/import; the engine never repairs such input.
    """

    def __init__(self, message: str, violations: Optional[List[str]] = None):
        self.violations = list(violations or [])
        if self.violations:
            message = f"{message}: " + "; ".join(self.violations)
        super().__init__(message, context={"violations": self.violations})


class NotFoundError(WorkflowEngineError):
    """A store has no configuration or layout for the requested workflow."""

    def __init__(self, model_name: str, workflow_id: str, kind: str = "workflow"):
        super().__init__(
            f"No {kind} found for workflow '{workflow_id}' of entity '{model_name}'",
            context={"model_name": model_name, "workflow_id": workflow_id, "kind": kind},
        )
        self.workflow_id = workflow_id


class NoResidentWorkflowError(WorkflowEngineError):
    """An editing operation was requested while no workflow is selected."""

    def __init__(self):
        super().__init__("No workflow is currently selected")


class PersistenceError(WorkflowEngineError):
    """A save call failed or timed out. The in-memory document is kept."""

    def __init__(self, workflow_id: str, cause: BaseException):
        super().__init__(
            f"Failed to persist workflow '{workflow_id}': {cause}",
            context={"workflow_id": workflow_id},
        )
        self.workflow_id = workflow_id
        self.cause = cause
