"""Static analysis of workflow graphs, run when a workflow is built.

Checks that every edge target exists, that END is reachable from START, and
that every node reachable from START can still reach END (so every cycle
has an exit). Nodes that START can never reach are reported, not rejected.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from circuitflow.core.errors import (
    UnknownEdgeTargetError,
    UnreachableEndError,
    WorkflowDefinitionError,
)
from circuitflow.graph.edges import END, START, Edge, edge_targets

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class GraphReport:
    reachable: frozenset[str]
    unreachable: frozenset[str]
    cyclic: frozenset[str]


def _walk(start: Iterable[str], adjacency: Mapping[str, list[str]]) -> set[str]:
    seen: set[str] = set()
    queue = deque(start)
    while queue:
        current = queue.popleft()
        if current in seen:
            continue
        seen.add(current)
        queue.extend(adjacency.get(current, []))
    return seen


def analyze_graph(
    workflow_id: str, node_ids: Iterable[str], edges: Mapping[str, Edge]
) -> GraphReport:
    """Validate a graph's wiring and reachability.

    Raises:
        WorkflowDefinitionError: START or a node has no outgoing edge.
        UnknownEdgeTargetError: An edge names an undeclared node.
        UnreachableEndError: END cannot be reached.
    """
    nodes = set(node_ids)

    if START not in edges:
        raise WorkflowDefinitionError(f"Workflow '{workflow_id}' has no edge from START")

    for source in edges:
        if source != START and source not in nodes:
            raise UnknownEdgeTargetError(workflow_id, source, "*", missing=source)

    missing = sorted(nodes - set(edges))
    if missing:
        raise WorkflowDefinitionError(
            f"Workflow '{workflow_id}': node(s) without an outgoing edge: {', '.join(missing)}"
        )

    forward: dict[str, list[str]] = {}
    backward: dict[str, list[str]] = {}
    for source, edge in edges.items():
        for target in edge_targets(edge):
            if target == START or (target != END and target not in nodes):
                raise UnknownEdgeTargetError(workflow_id, source, target)
            forward.setdefault(source, []).append(target)
            backward.setdefault(target, []).append(source)

    reachable = _walk([START], forward) - {START, END}
    reaches_end = _walk([END], backward)

    if START not in reaches_end:
        raise UnreachableEndError(workflow_id, [])

    stuck = sorted(node for node in reachable if node not in reaches_end)
    if stuck:
        raise UnreachableEndError(workflow_id, stuck)

    unreachable = frozenset(nodes - reachable)
    if unreachable:
        logger.warning(
            f"Workflow '{workflow_id}': node(s) unreachable from START: "
            f"{', '.join(sorted(unreachable))}"
        )

    cyclic = frozenset(
        node for node in nodes if node in _walk(forward.get(node, []), forward)
    )

    return GraphReport(reachable=frozenset(reachable), unreachable=unreachable, cyclic=cyclic)
