"""
Workflow document schema using Pydantic models.

A workflow document pairs two referentially-linked parts:

- Configuration: the functional definition (states, transitions,
  guards and processors). This is what the workflow runtime executes.
- Layout: the purely visual overlay (state positions, transition label
  offsets and handle anchors) keyed to configuration ids.

Field names serialize in the camelCase form of the exported file format.

Example JSON (configuration):
```json
{
  "version": "1.0",
  "name": "User Registration",
  "initialState": "pending",
  "states": {
    "pending": {
      "transitions": [
        {"name": "send_email", "next": "email-sent", "manual": false}
      ]
    },
    "email-sent": {"transitions": []}
  }
}
```
"""

import re
from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from statecanvas.workflow import identity


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serializing to the camelCase field names of the file format."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json_dict(self) -> Dict[str, Any]:
        """Dump in the persisted JSON shape."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


# ---------------------------------------------------------------------------
# Guards (criteria) and processors
# ---------------------------------------------------------------------------


class ExternalizedFunctionConfig(CamelModel):
    """
    Execution settings for an externally hosted function.

    Unknown keys are kept so configs written by newer tools survive a round trip.
    """

    model_config = ConfigDict(extra="allow")

    attach_entity: Optional[bool] = None
    calculation_nodes_tags: Optional[str] = None
    response_timeout_ms: Optional[int] = Field(default=None, ge=0)
    retry_policy: Optional[str] = None
    context: Optional[str] = None


class FunctionDescriptor(CamelModel):
    """Name and config of an externalized function used as a guard."""

    name: str = Field(..., min_length=1)
    config: Optional[ExternalizedFunctionConfig] = None


class SimpleCriterion(CamelModel):
    """Field/operator/value predicate."""

    model_config = ConfigDict(extra="allow")

    type: Literal["simple"] = "simple"
    json_path: str
    operator_type: str
    value: Any = None


class GroupCriterion(CamelModel):
    """Boolean combination of nested criteria."""

    model_config = ConfigDict(extra="allow")

    type: Literal["group"] = "group"
    operator: Literal["AND", "OR", "NOT"] = "AND"
    conditions: List["Criterion"] = Field(default_factory=list)


class FunctionCriterion(CamelModel):
    """Guard evaluated by an externalized function."""

    model_config = ConfigDict(extra="allow")

    type: Literal["function"] = "function"
    function: FunctionDescriptor


class OpaqueCriterion(CamelModel):
    """
    Passthrough for criterion kinds this package does not model.

    The raw payload is kept as extra fields and written back unchanged.
    """

    model_config = ConfigDict(extra="allow")

    type: str


_CRITERION_TAGS = frozenset({"simple", "group", "function"})


def _criterion_tag(value: Any) -> str:
    if isinstance(value, OpaqueCriterion):
        return "opaque"
    if isinstance(value, dict):
        kind = value.get("type")
    else:
        kind = getattr(value, "type", None)
    return kind if kind in _CRITERION_TAGS else "opaque"


Criterion = Annotated[
    Union[
        Annotated[SimpleCriterion, Tag("simple")],
        Annotated[GroupCriterion, Tag("group")],
        Annotated[FunctionCriterion, Tag("function")],
        Annotated[OpaqueCriterion, Tag("opaque")],
    ],
    Discriminator(_criterion_tag),
]

GroupCriterion.model_rebuild()


class ProcessorDefinition(CamelModel):
    """Side effect executed when a transition fires."""

    name: str = Field(..., min_length=1)
    execution_mode: Literal["SYNC", "ASYNC_SAME_TX", "ASYNC_NEW_TX"] = "ASYNC_NEW_TX"
    config: Optional[ExternalizedFunctionConfig] = None


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class TransitionDefinition(CamelModel):
    """
    A directed edge from its owning state to ``next``.

    Transitions carry no id of their own; their identity is their position in
    the owning state's transition list (see ``statecanvas.workflow.identity``).
    """

    name: Optional[str] = None
    next: str = Field(..., min_length=1)
    manual: bool = False
    disabled: bool = False
    criterion: Optional[Criterion] = None
    processors: Optional[List[ProcessorDefinition]] = None


class StateDefinition(CamelModel):
    """A workflow state and its ordered outgoing transitions."""

    name: Optional[str] = None
    description: Optional[str] = None
    transitions: List[TransitionDefinition] = Field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return not self.transitions


def configuration_violations(
    initial_state: str, states: Dict[str, StateDefinition]
) -> List[str]:
    """Violations of the initial-state and dangling-target invariants."""
    violations = []

    if states:
        if initial_state not in states:
            violations.append(f"Initial state '{initial_state}' is not a defined state")
    elif initial_state:
        violations.append(
            f"Initial state '{initial_state}' set but the workflow has no states"
        )

    for state_id, state in states.items():
        for index, transition in enumerate(state.transitions):
            if transition.next not in states:
                violations.append(
                    f"Transition '{identity.generate(state_id, index)}' references "
                    f"unknown state: {transition.next}"
                )

    return violations


class WorkflowConfiguration(CamelModel):
    """
    Complete functional definition of a workflow.

    Construction fails when the initial state or any transition target is not
    a defined state.
    """

    version: str = "1.0"
    name: str = Field(..., min_length=1)
    desc: Optional[str] = None
    initial_state: str = ""
    active: Optional[bool] = None
    criterion: Optional[Criterion] = None
    states: Dict[str, StateDefinition] = Field(default_factory=dict)

    @field_validator("states")
    @classmethod
    def validate_state_ids(
        cls, v: Dict[str, StateDefinition]
    ) -> Dict[str, StateDefinition]:
        """State ids must be non-empty and free of surrounding whitespace."""
        for state_id in v:
            if not state_id or state_id != state_id.strip():
                raise ValueError(f"Invalid state id: {state_id!r}")
        return v

    @model_validator(mode="after")
    def validate_references(self):
        """Validate that all state references are valid."""
        violations = configuration_violations(self.initial_state, self.states)
        if violations:
            raise ValueError("; ".join(violations))
        return self

    @property
    def is_active(self) -> bool:
        """A missing ``active`` flag means active; it is not written back on export."""
        return self.active is not False

    def get_state(self, state_id: str) -> Optional[StateDefinition]:
        return self.states.get(state_id)

    def get_terminal_states(self) -> List[str]:
        """Ids of states without outgoing transitions."""
        return [sid for sid, s in self.states.items() if s.is_terminal]

    def iter_transitions(self) -> Iterator[Tuple[str, str, TransitionDefinition]]:
        """Yield (transition_id, source_state_id, definition) in configuration order."""
        for state_id, state in self.states.items():
            for index, transition in enumerate(state.transitions):
                yield identity.generate(state_id, index), state_id, transition

    @property
    def transition_count(self) -> int:
        return sum(len(s.transitions) for s in self.states.values())


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


class Position(CamelModel):
    x: float = 0.0
    y: float = 0.0


class StateLayout(CamelModel):
    """Canvas position (top-left corner) and styling of one state."""

    id: str
    position: Position = Field(default_factory=Position)
    properties: Optional[Dict[str, Any]] = None


class TransitionLayout(CamelModel):
    """Label offset and handle anchors of one transition edge."""

    id: str
    label_position: Optional[Position] = None
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class CanvasLayout(CamelModel):
    """Visual overlay for one workflow. Carries no functional meaning."""

    workflow_id: str = ""
    version: int = 1
    updated_at: datetime = Field(default_factory=utcnow)
    states: List[StateLayout] = Field(default_factory=list)
    transitions: List[TransitionLayout] = Field(default_factory=list)

    def state_positions(self) -> Dict[str, Position]:
        return {s.id: s.position for s in self.states}

    def get_state_layout(self, state_id: str) -> Optional[StateLayout]:
        for state in self.states:
            if state.id == state_id:
                return state
        return None

    def get_transition_layout(self, transition_id: str) -> Optional[TransitionLayout]:
        for record in self.transitions:
            if record.id == transition_id:
                return record
        return None


def layout_violations(
    configuration: WorkflowConfiguration, layout: CanvasLayout
) -> List[str]:
    """Violations of the layout-totality and live-transition-record invariants."""
    violations = []
    states = configuration.states

    seen_states = set()
    for entry in layout.states:
        if entry.id in seen_states:
            violations.append(f"Duplicate layout entry for state: {entry.id}")
        seen_states.add(entry.id)
        if entry.id not in states:
            violations.append(f"Layout entry for unknown state: {entry.id}")

    for state_id in states:
        if state_id not in seen_states:
            violations.append(f"Missing layout entry for state: {state_id}")

    seen_transitions = set()
    for record in layout.transitions:
        if record.id in seen_transitions:
            violations.append(f"Duplicate layout record for transition: {record.id}")
        seen_transitions.add(record.id)
        if not identity.validate_exists(record.id, states):
            violations.append(f"Layout record for unknown transition: {record.id}")

    return violations


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


class EntityModel(CamelModel):
    """The entity model a workflow belongs to."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = Field(..., min_length=1)
    model_version: int = 1


class WorkflowSummary(CamelModel):
    """Listing entry for a stored workflow."""

    id: str
    name: str
    description: Optional[str] = None
    state_count: int = 0
    transition_count: int = 0
    updated_at: Optional[datetime] = None


def generate_workflow_id(workflow_name: str, entity_model: EntityModel) -> str:
    """Derive a workflow id such as 'user-registration-user-v1'."""

    def slug(value: str) -> str:
        return re.sub(r"\s+", "-", value.strip()).lower()

    return (
        f"{slug(workflow_name)}-{slug(entity_model.model_name)}"
        f"-v{entity_model.model_version}"
    )


class WorkflowDocument(CamelModel):
    """
    Configuration plus layout: the unit every engine operation works on.

    Documents are treated as immutable values. Engine operations build new
    documents; construction re-checks that the layout matches the
    configuration.
    """

    id: str = Field(..., min_length=1)
    entity_model: EntityModel
    configuration: WorkflowConfiguration
    layout: CanvasLayout
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def validate_layout(self):
        """Validate that the layout covers exactly the configured states and transitions."""
        violations = layout_violations(self.configuration, self.layout)
        if violations:
            raise ValueError("; ".join(violations))
        return self

    @property
    def states(self) -> Dict[str, StateDefinition]:
        return self.configuration.states

    @property
    def initial_state(self) -> str:
        return self.configuration.initial_state

    def terminal_states(self) -> List[str]:
        return self.configuration.get_terminal_states()

    def iter_transitions(self) -> Iterator[Tuple[str, str, TransitionDefinition]]:
        return self.configuration.iter_transitions()

    @property
    def transition_count(self) -> int:
        return self.configuration.transition_count

    def summary(self) -> WorkflowSummary:
        return WorkflowSummary(
            id=self.id,
            name=self.configuration.name,
            description=self.configuration.desc,
            state_count=len(self.configuration.states),
            transition_count=self.transition_count,
            updated_at=self.updated_at,
        )


def check_invariants(document: WorkflowDocument) -> List[str]:
    """
    Re-check all document invariants.

    Documents are validated on construction, so this only reports problems
    for documents built with ``model_construct`` or mutated in place.
    """
    config = document.configuration
    return configuration_violations(config.initial_state, config.states) + layout_violations(
        config, document.layout
    )
