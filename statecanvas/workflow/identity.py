"""
Canonical transition identities.

A transition is identified by its source state and its zero-based position in
that state's transition list:

    "<sourceStateId>-<index>"

Examples:
    "start-0"       first transition leaving "start"
    "processing-1"  second transition leaving "processing"
    "email-sent-0"  first transition leaving "email-sent"

Parsing splits at the last hyphen. The suffix is always purely numeric, so
state ids that themselves contain hyphens stay unambiguous.

Older layouts used "<source>-to-<target>" ids. Those are only understood by
the one-way migration helpers at the bottom of this module. The legacy form is
ambiguous when a state has parallel transitions to one target or when state
ids contain "-to-"; migration takes the first matching transition.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Tuple

from statecanvas.workflow.errors import MalformedIdentityError

if TYPE_CHECKING:
    from statecanvas.workflow.schema import CanvasLayout, TransitionDefinition

logger = logging.getLogger(__name__)

LEGACY_SEPARATOR = "-to-"


@dataclass(frozen=True)
class TransitionRef:
    """Parsed location of a transition."""

    source_state_id: str
    index: int


@dataclass(frozen=True)
class LegacyTransitionRef:
    """Parsed legacy '<source>-to-<target>' id."""

    source_state_id: str
    target_state_id: str


def generate(source_state_id: str, index: int) -> str:
    """Build the canonical id for the transition at ``index`` of a state."""
    if index < 0:
        raise ValueError(f"Transition index must be non-negative: {index}")
    return f"{source_state_id}-{index}"


def parse(transition_id: str) -> Optional[TransitionRef]:
    """
    Parse a canonical transition id.

    Returns None unless the id has a non-empty source part and a purely
    numeric index after the last hyphen.
    """
    if not isinstance(transition_id, str):
        return None

    source, sep, index_str = transition_id.rpartition("-")
    if not sep or not source:
        return None
    if not index_str or not (index_str.isascii() and index_str.isdigit()):
        return None

    return TransitionRef(source_state_id=source, index=int(index_str))


def parse_strict(transition_id: str) -> TransitionRef:
    """Like :func:`parse` but raises MalformedIdentityError on failure."""
    ref = parse(transition_id)
    if ref is None:
        raise MalformedIdentityError(transition_id)
    return ref


def _transitions_of(states: Mapping[str, Any], state_id: str) -> Optional[list]:
    state = states.get(state_id)
    if state is None:
        return None
    return state.transitions


def validate_exists(transition_id: str, states: Mapping[str, Any]) -> bool:
    """True when the id parses and points inside a live state's transition list."""
    ref = parse(transition_id)
    if ref is None:
        return False
    transitions = _transitions_of(states, ref.source_state_id)
    return transitions is not None and ref.index < len(transitions)


def resolve(
    transition_id: str, states: Mapping[str, Any]
) -> Optional["TransitionDefinition"]:
    """Return the transition the id points at, or None."""
    if not validate_exists(transition_id, states):
        return None
    ref = parse(transition_id)
    return states[ref.source_state_id].transitions[ref.index]


def find_transition_id(
    source_state_id: str, target_state_id: str, states: Mapping[str, Any]
) -> Optional[str]:
    """Canonical id of the first transition from source to target, if any."""
    transitions = _transitions_of(states, source_state_id)
    if not transitions:
        return None
    for index, transition in enumerate(transitions):
        if transition.next == target_state_id:
            return generate(source_state_id, index)
    return None


# ---------------------------------------------------------------------------
# Legacy "<source>-to-<target>" ids
# ---------------------------------------------------------------------------


def generate_legacy_id(source_state_id: str, target_state_id: str) -> str:
    """Build a legacy id. Only used to produce fixtures for migration."""
    return f"{source_state_id}{LEGACY_SEPARATOR}{target_state_id}"


def parse_legacy_id(legacy_id: str) -> Optional[LegacyTransitionRef]:
    """Split a legacy id at the first '-to-'."""
    if not isinstance(legacy_id, str):
        return None
    source, sep, target = legacy_id.partition(LEGACY_SEPARATOR)
    if not sep or not source or not target:
        return None
    return LegacyTransitionRef(source_state_id=source, target_state_id=target)


def migrate_legacy_id(legacy_id: str, states: Mapping[str, Any]) -> Optional[str]:
    """
    Map a legacy id to the canonical id of the first matching transition.

    Returns None when the id is not in legacy form or no transition from the
    source targets the named state.
    """
    legacy = parse_legacy_id(legacy_id)
    if legacy is None:
        return None
    return find_transition_id(legacy.source_state_id, legacy.target_state_id, states)


def migrate_layout_ids(
    layout: "CanvasLayout", states: Mapping[str, Any]
) -> Tuple["CanvasLayout", List[str]]:
    """
    Rewrite legacy transition record ids in a layout to canonical ids.

    Canonical ids that already resolve are kept. Legacy ids are migrated;
    when two records migrate to the same canonical id, the first one wins.
    Returns the new layout and the ids that could not be migrated, which are
    left untouched so the caller can decide whether to reject the layout.
    """
    migrated = []
    unresolved: List[str] = []
    seen = set()

    for record in layout.transitions:
        new_id = record.id
        if not validate_exists(record.id, states):
            candidate = migrate_legacy_id(record.id, states)
            if candidate is None:
                unresolved.append(record.id)
            else:
                logger.debug(f"Migrated legacy transition id '{record.id}' -> '{candidate}'")
                new_id = candidate

        if new_id in seen:
            logger.warning(f"Dropping duplicate layout record for transition '{new_id}'")
            continue
        seen.add(new_id)
        migrated.append(record.model_copy(update={"id": new_id}))

    if unresolved:
        logger.warning(f"Could not migrate transition ids: {', '.join(unresolved)}")

    return layout.model_copy(update={"transitions": migrated}), unresolved
