"""
Hierarchical auto-layout for workflow states.

A layered ("Sugiyama-style") layout in four steps:

1. Graph: one node per state, one edge per transition between two different
   states. Self-loops are left out and reported as loop-backs; their labels
   get a fixed offset instead.
2. Cycle breaking: a depth-first search from the root states (no incoming
   edges), then from any state not reached yet, in configuration order.
   Back edges it finds are reversed for ranking purposes only.
3. Ranking: longest-path layering, so every state sits one rank below its
   deepest predecessor.
4. Ordering and positioning: barycenter sweeps order states within a rank,
   then ranks are spaced along the main axis and states within a rank along
   the cross axis, each rank centered on the widest one.

The whole computation is deterministic: the same configuration and options
always give the same positions. Positions are returned as top-left corners,
the canvas' anchor convention.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional, Set, Tuple

import networkx as nx

from statecanvas.config.settings import LayoutConfig
from statecanvas.engine.consistency import LOOPBACK_LABEL_OFFSET, rebuild_document
from statecanvas.workflow import identity
from statecanvas.workflow.schema import (
    Position,
    TransitionLayout,
    WorkflowConfiguration,
    WorkflowDocument,
)

logger = logging.getLogger(__name__)

Direction = Literal["TB", "BT", "LR", "RL"]


@dataclass
class LayoutOptions:
    """Node size and spacing used by the layout. Units are canvas pixels."""

    node_width: float = 160
    node_height: float = 60
    rank_separation: float = 150
    node_separation: float = 120
    direction: Direction = "TB"
    ordering_passes: int = 4

    @classmethod
    def from_config(cls, config: LayoutConfig) -> "LayoutOptions":
        return cls(**config.model_dump())

    @property
    def horizontal(self) -> bool:
        """True when ranks advance along the x axis."""
        return self.direction in ("LR", "RL")


@dataclass
class StatePosition:
    """Computed top-left position of one state."""

    id: str
    position: Position


@dataclass
class LayoutResult:
    """Output of a layout run."""

    states: List[StatePosition] = field(default_factory=list)
    # State id -> rank (0 = first rank)
    ranks: Dict[str, int] = field(default_factory=dict)
    # Ids of self-loop transitions, which are not part of the layout graph
    loopbacks: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.states

    def positions(self) -> Dict[str, Position]:
        return {s.id: s.position for s in self.states}


def build_layout_graph(
    configuration: WorkflowConfiguration,
) -> Tuple[nx.DiGraph, List[str]]:
    """
    Build the directed state graph used for layout.

    Returns:
        Tuple of (graph, loop-back transition ids). Parallel transitions
        between the same two states collapse into one edge.
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(configuration.states)

    loopbacks = []
    for transition_id, source, transition in configuration.iter_transitions():
        if transition.next == source:
            loopbacks.append(transition_id)
        elif transition.next in configuration.states:
            graph.add_edge(source, transition.next)

    logger.debug(
        f"Built layout graph with {graph.number_of_nodes()} nodes, "
        f"{graph.number_of_edges()} edges and {len(loopbacks)} loop-backs"
    )
    return graph, loopbacks


def _find_back_edges(graph: nx.DiGraph) -> List[Tuple[str, str]]:
    """Back edges of a DFS started from roots first, then in node order."""
    order = list(graph.nodes)
    roots = [n for n in order if graph.in_degree(n) == 0]

    visited: Set[str] = set()
    on_stack: Set[str] = set()
    back_edges = []

    for start in roots + order:
        if start in visited:
            continue
        visited.add(start)
        on_stack.add(start)
        stack = [(start, iter(graph.successors(start)))]

        while stack:
            node, children = stack[-1]
            child = next(children, None)
            if child is None:
                stack.pop()
                on_stack.discard(node)
            elif child in on_stack:
                back_edges.append((node, child))
            elif child not in visited:
                visited.add(child)
                on_stack.add(child)
                stack.append((child, iter(graph.successors(child))))

    return back_edges


def make_acyclic(graph: nx.DiGraph) -> nx.DiGraph:
    """Copy of the graph with DFS back edges reversed."""
    dag = graph.copy()
    for source, target in _find_back_edges(graph):
        dag.remove_edge(source, target)
        if not dag.has_edge(target, source):
            dag.add_edge(target, source)
    return dag


def assign_ranks(dag: nx.DiGraph) -> Dict[str, int]:
    """Longest-path layering: rank = length of the longest path from a root."""
    ranks: Dict[str, int] = {}
    for node in nx.topological_sort(dag):
        ranks[node] = max((ranks[p] + 1 for p in dag.predecessors(node)), default=0)
    return ranks


def _barycenter_order(
    layer: List[str], neighbours: Dict[str, List[str]], index: Dict[str, float]
) -> List[str]:
    def key(node: str) -> Tuple[float, float]:
        placed = [index[n] for n in neighbours[node] if n in index]
        center = sum(placed) / len(placed) if placed else index[node]
        return (center, index[node])

    return sorted(layer, key=key)


def order_layers(dag: nx.DiGraph, ranks: Dict[str, int], passes: int) -> List[List[str]]:
    """
    Group states by rank and reduce edge crossings with barycenter sweeps.

    Initial order within a rank is configuration order; each pass sweeps
    down (ordering by predecessors) and then up (ordering by successors).
    """
    if not ranks:
        return []

    layers: List[List[str]] = [[] for _ in range(max(ranks.values()) + 1)]
    for node in dag.nodes:
        layers[ranks[node]].append(node)

    preds = {n: list(dag.predecessors(n)) for n in dag.nodes}
    succs = {n: list(dag.successors(n)) for n in dag.nodes}

    def positions() -> Dict[str, float]:
        return {n: float(i) for layer in layers for i, n in enumerate(layer)}

    for _ in range(passes):
        for r in range(1, len(layers)):
            layers[r] = _barycenter_order(layers[r], preds, positions())
        for r in range(len(layers) - 2, -1, -1):
            layers[r] = _barycenter_order(layers[r], succs, positions())

    return layers


class AutoLayoutEngine:
    """
    Computes canvas positions for the states of a workflow.

    Example:
        ```python
        engine = AutoLayoutEngine(LayoutOptions(direction="LR"))

        result = engine.run(document)
        document = engine.apply_layout(document, result)
        ```
    """

    def __init__(self, options: Optional[LayoutOptions] = None):
        self.options = options or LayoutOptions()

    def run(self, document: WorkflowDocument) -> LayoutResult:
        """Compute one top-left position per state. Empty workflows give an empty result."""
        return self.run_configuration(document.configuration)

    def run_configuration(self, configuration: WorkflowConfiguration) -> LayoutResult:
        if not configuration.states:
            return LayoutResult()

        opts = self.options
        graph, loopbacks = build_layout_graph(configuration)
        dag = make_acyclic(graph)
        ranks = assign_ranks(dag)
        layers = order_layers(dag, ranks, opts.ordering_passes)

        if opts.horizontal:
            rank_size, slot_size = opts.node_width, opts.node_height
        else:
            rank_size, slot_size = opts.node_height, opts.node_width
        rank_span = rank_size + opts.rank_separation
        slot_span = slot_size + opts.node_separation

        widest = max(len(layer) for layer in layers)
        last_rank = len(layers) - 1
        centers: Dict[str, Tuple[float, float]] = {}

        for r, layer in enumerate(layers):
            step = last_rank - r if opts.direction in ("BT", "RL") else r
            rank_center = step * rank_span + rank_size / 2
            offset = (widest - len(layer)) / 2
            for i, node in enumerate(layer):
                slot_center = (offset + i) * slot_span + slot_size / 2
                if opts.horizontal:
                    centers[node] = (rank_center, slot_center)
                else:
                    centers[node] = (slot_center, rank_center)

        states = []
        for state_id in configuration.states:
            cx, cy = centers[state_id]
            states.append(
                StatePosition(
                    id=state_id,
                    position=Position(
                        x=cx - opts.node_width / 2, y=cy - opts.node_height / 2
                    ),
                )
            )

        logger.debug(
            f"Laid out {len(states)} states in {len(layers)} ranks "
            f"(direction={opts.direction})"
        )
        return LayoutResult(states=states, ranks=ranks, loopbacks=loopbacks)

    def apply_layout(self, document: WorkflowDocument, result: LayoutResult) -> WorkflowDocument:
        return apply_layout(document, result)

    def auto_layout(self, document: WorkflowDocument) -> WorkflowDocument:
        """Run the layout and merge it into the document."""
        return apply_layout(document, self.run(document))


def apply_layout(document: WorkflowDocument, result: LayoutResult) -> WorkflowDocument:
    """
    Merge computed positions into a document's layout.

    States missing from the result keep their position. Loop-back transitions
    without a label position get the loop-back offset. An empty result
    returns the document unchanged.
    """
    if result.is_empty:
        return document

    positions = result.positions()
    layout_states = [
        s.model_copy(update={"position": positions[s.id]}) if s.id in positions else s
        for s in document.layout.states
    ]

    states = document.configuration.states
    records = list(document.layout.transitions)
    for transition_id in result.loopbacks:
        if not identity.validate_exists(transition_id, states):
            continue
        record = document.layout.get_transition_layout(transition_id)
        if record is None:
            records.append(
                TransitionLayout(
                    id=transition_id, label_position=LOOPBACK_LABEL_OFFSET.model_copy()
                )
            )
        elif record.label_position is None:
            records[records.index(record)] = record.model_copy(
                update={"label_position": LOOPBACK_LABEL_OFFSET.model_copy()}
            )

    logger.info(f"Applied auto-layout to workflow '{document.id}' ({len(positions)} states)")
    return rebuild_document(
        document, layout_states=layout_states, layout_transitions=records
    )


def can_auto_layout(document: Optional[WorkflowDocument]) -> bool:
    """True when the document has states and every state has a layout entry."""
    if document is None or not document.configuration.states:
        return False
    placed = {s.id for s in document.layout.states}
    return all(state_id in placed for state_id in document.configuration.states)
