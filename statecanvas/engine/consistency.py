"""
Consistency-preserving edit operations.

Every function here takes a WorkflowDocument and returns a new one; inputs are
never modified. Each operation validates its arguments first and raises a
typed error before building anything, so a failed call has no observable
effect. The returned document satisfies all document invariants:

1. the initial state is a defined state (or "" when there are no states)
2. every transition target is a defined state
3. the layout has exactly one entry per state
4. every transition layout record points at a live transition

Transition ids are positional (see ``statecanvas.workflow.identity``).
Deleting a transition, or a state that other states transition to, shifts
the indices of later transitions of the affected source states. Layout
records are re-keyed to follow their transitions, but ids held by callers
across such a delete are stale and must be re-resolved.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from statecanvas.workflow import identity
from statecanvas.workflow.errors import (
    DuplicateStateError,
    InvalidConfigurationError,
    UnknownStateError,
    UnknownTransitionError,
)
from statecanvas.workflow.schema import (
    CanvasLayout,
    Position,
    StateDefinition,
    StateLayout,
    TransitionDefinition,
    TransitionLayout,
    WorkflowConfiguration,
    WorkflowDocument,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_LABEL_OFFSET = Position(x=0, y=0)
# Loop-back labels sit above and to the right of their state
LOOPBACK_LABEL_OFFSET = Position(x=30, y=-30)

PositionLike = Union[Position, Mapping[str, float], Tuple[float, float]]

_UNSET: Any = object()


def as_position(value: Optional[PositionLike]) -> Optional[Position]:
    """Coerce a Position, {'x', 'y'} mapping or (x, y) tuple."""
    if value is None or isinstance(value, Position):
        return value
    if isinstance(value, Mapping):
        return Position.model_validate(value)
    x, y = value
    return Position(x=x, y=y)


def default_label_offset(source_state_id: str, transition: TransitionDefinition) -> Position:
    if transition.next == source_state_id:
        return LOOPBACK_LABEL_OFFSET.model_copy()
    return DEFAULT_LABEL_OFFSET.model_copy()


def rebuild_document(
    document: WorkflowDocument,
    *,
    states: Optional[Dict[str, StateDefinition]] = None,
    initial_state: Optional[str] = None,
    layout_states: Optional[List[StateLayout]] = None,
    layout_transitions: Optional[List[TransitionLayout]] = None,
) -> WorkflowDocument:
    """Assemble a new validated document from the parts that changed."""
    config = document.configuration
    layout = document.layout
    now = utcnow()

    try:
        new_config = WorkflowConfiguration.model_validate(
            {
                **dict(config),
                "states": config.states if states is None else states,
                "initial_state": (
                    config.initial_state if initial_state is None else initial_state
                ),
            }
        )
        new_layout = CanvasLayout.model_validate(
            {
                **dict(layout),
                "states": layout.states if layout_states is None else layout_states,
                "transitions": (
                    layout.transitions
                    if layout_transitions is None
                    else layout_transitions
                ),
                "updated_at": now,
            }
        )
        return WorkflowDocument(
            id=document.id,
            entity_model=document.entity_model,
            configuration=new_config,
            layout=new_layout,
            created_at=document.created_at,
            updated_at=now,
        )
    except ValidationError as e:
        raise InvalidConfigurationError(
            f"Edit would leave workflow '{document.id}' inconsistent",
            [err["msg"] for err in e.errors()],
        ) from e


def _rekey_records(
    records: List[TransitionLayout],
    source_state_id: str,
    index_map: Mapping[int, Optional[int]],
) -> List[TransitionLayout]:
    """
    Move records of one source state to new indices.

    ``index_map`` maps old index -> new index, or None when the transition
    was removed (its record is dropped).
    """
    result = []
    for record in records:
        ref = identity.parse(record.id)
        if ref is None or ref.source_state_id != source_state_id:
            result.append(record)
            continue
        new_index = index_map.get(ref.index)
        if new_index is None:
            continue
        if new_index != ref.index:
            record = record.model_copy(
                update={"id": identity.generate(source_state_id, new_index)}
            )
        result.append(record)
    return result


def _source_of(transition_id: str) -> Optional[str]:
    ref = identity.parse(transition_id)
    return ref.source_state_id if ref else None


def _require_state(document: WorkflowDocument, state_id: str) -> StateDefinition:
    state = document.configuration.states.get(state_id)
    if state is None:
        raise UnknownStateError(state_id)
    return state


def _require_transition(
    document: WorkflowDocument, transition_id: str
) -> Tuple[identity.TransitionRef, TransitionDefinition]:
    ref = identity.parse_strict(transition_id)
    if not identity.validate_exists(transition_id, document.configuration.states):
        raise UnknownTransitionError(transition_id)
    state = document.configuration.states[ref.source_state_id]
    return ref, state.transitions[ref.index]


def _check_targets(
    state_id: str, definition: StateDefinition, known_states: Mapping[str, Any]
) -> None:
    dangling = [
        f"Transition '{identity.generate(state_id, i)}' references unknown state: {t.next}"
        for i, t in enumerate(definition.transitions)
        if t.next not in known_states and t.next != state_id
    ]
    if dangling:
        raise InvalidConfigurationError(f"Invalid definition for state '{state_id}'", dangling)


# ---------------------------------------------------------------------------
# State operations
# ---------------------------------------------------------------------------


def add_state(
    document: WorkflowDocument,
    state_id: str,
    definition: Optional[StateDefinition] = None,
    position: Optional[PositionLike] = None,
) -> WorkflowDocument:
    """
    Add a state at ``position`` (top-left, default origin).

    The first state added to an empty workflow becomes its initial state.

    Raises:
        DuplicateStateError: If the id is taken
        InvalidConfigurationError: If the id is blank or the definition's
            transitions target unknown states
    """
    if not state_id or state_id != state_id.strip():
        raise InvalidConfigurationError(f"Invalid state id: {state_id!r}")

    states = document.configuration.states
    if state_id in states:
        raise DuplicateStateError(state_id)

    definition = definition or StateDefinition()
    _check_targets(state_id, definition, states)

    initial_state = document.configuration.initial_state or state_id
    records = [
        TransitionLayout(
            id=identity.generate(state_id, index),
            label_position=default_label_offset(state_id, transition),
        )
        for index, transition in enumerate(definition.transitions)
    ]

    logger.debug(f"Adding state '{state_id}' to workflow '{document.id}'")
    return rebuild_document(
        document,
        states={**states, state_id: definition},
        initial_state=initial_state,
        layout_states=[
            *document.layout.states,
            StateLayout(id=state_id, position=as_position(position) or Position()),
        ],
        layout_transitions=[*document.layout.transitions, *records],
    )


def rename_state_display_name(
    document: WorkflowDocument, state_id: str, definition: StateDefinition
) -> WorkflowDocument:
    """
    Replace the definition of an existing state. The state id never changes.

    Layout records for transitions beyond the new definition's transition
    count are dropped.

    Raises:
        UnknownStateError: If the state does not exist
        InvalidConfigurationError: If a transition targets an unknown state
    """
    _require_state(document, state_id)
    states = document.configuration.states
    _check_targets(state_id, definition, states)

    count = len(definition.transitions)
    stale = {
        ref.index: None
        for ref in (identity.parse(r.id) for r in document.layout.transitions)
        if ref is not None and ref.source_state_id == state_id and ref.index >= count
    }
    records = document.layout.transitions
    if stale:
        keep = {i: i for i in range(count)}
        records = _rekey_records(records, state_id, {**keep, **stale})

    logger.debug(f"Updating definition of state '{state_id}' in workflow '{document.id}'")
    return rebuild_document(
        document,
        states={**states, state_id: definition},
        layout_transitions=records,
    )


update_state = rename_state_display_name


def delete_state(document: WorkflowDocument, state_id: str) -> WorkflowDocument:
    """
    Delete a state and everything that references it.

    - transitions targeting the state are removed from every other state
    - the state's layout entry and transition records are removed
    - surviving transition records are re-keyed to their new indices
    - if the state was initial, the first remaining state becomes initial
      (or "" when none remain)

    Raises:
        UnknownStateError: If the state does not exist
    """
    _require_state(document, state_id)

    states: Dict[str, StateDefinition] = {}
    records = [
        r for r in document.layout.transitions if _source_of(r.id) != state_id
    ]

    for sid, state in document.configuration.states.items():
        if sid == state_id:
            continue

        kept = [i for i, t in enumerate(state.transitions) if t.next != state_id]
        if len(kept) == len(state.transitions):
            states[sid] = state
            continue

        index_map: Dict[int, Optional[int]] = {i: None for i in range(len(state.transitions))}
        index_map.update({old: new for new, old in enumerate(kept)})
        records = _rekey_records(records, sid, index_map)
        states[sid] = state.model_copy(
            update={"transitions": [state.transitions[i] for i in kept]}
        )
        logger.debug(
            f"Removed {len(state.transitions) - len(kept)} transition(s) from "
            f"'{sid}' targeting deleted state '{state_id}'"
        )

    initial_state = document.configuration.initial_state
    if initial_state == state_id:
        initial_state = next(iter(states), "")
        logger.info(
            f"Deleted initial state '{state_id}'; initial state is now '{initial_state}'"
        )

    return rebuild_document(
        document,
        states=states,
        initial_state=initial_state,
        layout_states=[s for s in document.layout.states if s.id != state_id],
        layout_transitions=records,
    )


def move_state(
    document: WorkflowDocument, state_id: str, position: PositionLike
) -> WorkflowDocument:
    """Set the canvas position (top-left corner) of a state."""
    _require_state(document, state_id)
    new_position = as_position(position)
    layout_states = [
        s.model_copy(update={"position": new_position}) if s.id == state_id else s
        for s in document.layout.states
    ]
    return rebuild_document(document, layout_states=layout_states)


# ---------------------------------------------------------------------------
# Transition operations
# ---------------------------------------------------------------------------


def add_transition(
    document: WorkflowDocument,
    source_state_id: str,
    definition: TransitionDefinition,
    label_position: Optional[PositionLike] = None,
    source_handle: Optional[str] = None,
    target_handle: Optional[str] = None,
) -> WorkflowDocument:
    """
    Append a transition to the source state's transition list.

    The new transition's id is '<source>-<previous transition count>'.

    Raises:
        UnknownStateError: If the source or target state does not exist
    """
    source = _require_state(document, source_state_id)
    if definition.next not in document.configuration.states:
        raise UnknownStateError(definition.next)

    transition_id = identity.generate(source_state_id, len(source.transitions))
    record = TransitionLayout(
        id=transition_id,
        label_position=(
            as_position(label_position)
            or default_label_offset(source_state_id, definition)
        ),
        source_handle=source_handle,
        target_handle=target_handle,
    )

    logger.debug(
        f"Adding transition '{transition_id}' ({source_state_id} -> {definition.next})"
    )
    return rebuild_document(
        document,
        states={
            **document.configuration.states,
            source_state_id: source.model_copy(
                update={"transitions": [*source.transitions, definition]}
            ),
        },
        layout_transitions=[*document.layout.transitions, record],
    )


def update_transition(
    document: WorkflowDocument,
    transition_id: str,
    definition: Union[TransitionDefinition, Mapping[str, Any]],
) -> WorkflowDocument:
    """
    Replace the transition at ``transition_id``.

    ``definition`` is either a full TransitionDefinition or a mapping of
    fields to change; with a mapping, fields not named (including ``next``)
    keep their current values.

    Raises:
        MalformedIdentityError: If the id does not parse
        UnknownTransitionError: If no transition lives at the id
        UnknownStateError: If the new target state does not exist
    """
    ref, existing = _require_transition(document, transition_id)

    if isinstance(definition, Mapping):
        data = existing.model_dump(by_alias=True, exclude_none=True)
        data.update(definition)
        try:
            definition = TransitionDefinition.model_validate(data)
        except ValidationError as e:
            raise InvalidConfigurationError(
                f"Invalid update for transition '{transition_id}'",
                [err["msg"] for err in e.errors()],
            ) from e

    if definition.next not in document.configuration.states:
        raise UnknownStateError(definition.next)

    source = document.configuration.states[ref.source_state_id]
    transitions = list(source.transitions)
    transitions[ref.index] = definition

    logger.debug(f"Updating transition '{transition_id}'")
    return rebuild_document(
        document,
        states={
            **document.configuration.states,
            ref.source_state_id: source.model_copy(update={"transitions": transitions}),
        },
    )


def delete_transition(document: WorkflowDocument, transition_id: str) -> WorkflowDocument:
    """
    Remove the transition at ``transition_id`` and its layout record.

    Later transitions of the same source state move down one index and so
    change id; their layout records move with them.

    Raises:
        MalformedIdentityError: If the id does not parse
        UnknownTransitionError: If no transition lives at the id
    """
    ref, _ = _require_transition(document, transition_id)
    source = document.configuration.states[ref.source_state_id]

    transitions = list(source.transitions)
    del transitions[ref.index]

    index_map: Dict[int, Optional[int]] = {
        i: (i if i < ref.index else i - 1) for i in range(len(source.transitions))
    }
    index_map[ref.index] = None

    logger.debug(f"Deleting transition '{transition_id}'")
    return rebuild_document(
        document,
        states={
            **document.configuration.states,
            ref.source_state_id: source.model_copy(update={"transitions": transitions}),
        },
        layout_transitions=_rekey_records(
            document.layout.transitions, ref.source_state_id, index_map
        ),
    )


def update_transition_layout(
    document: WorkflowDocument,
    transition_id: str,
    *,
    label_position: Optional[PositionLike] = _UNSET,
    source_handle: Optional[str] = _UNSET,
    target_handle: Optional[str] = _UNSET,
) -> WorkflowDocument:
    """
    Set the label offset and/or handle anchors of a transition edge.

    Only the keyword arguments that are passed change; pass None to clear.
    A record is created when the transition has none yet.
    """
    _require_transition(document, transition_id)

    changes: Dict[str, Any] = {}
    if label_position is not _UNSET:
        changes["label_position"] = as_position(label_position)
    if source_handle is not _UNSET:
        changes["source_handle"] = source_handle
    if target_handle is not _UNSET:
        changes["target_handle"] = target_handle

    records = list(document.layout.transitions)
    existing = document.layout.get_transition_layout(transition_id)
    if existing is None:
        records.append(TransitionLayout(id=transition_id, **changes))
    else:
        records[records.index(existing)] = existing.model_copy(update=changes)

    return rebuild_document(document, layout_transitions=records)
