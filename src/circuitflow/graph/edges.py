"""Edge routing: literal transitions, END, and conditional branches.

A ``Branch`` declares every outcome its condition can produce, so a
workflow's graph can be validated before it serves traffic. A condition
returns a single label, ``END``, or an ordered list of labels (fan-out).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Union

from circuitflow.context import ExternalContext
from circuitflow.core.errors import UnknownEdgeTargetError
from circuitflow.graph.calls import call_maybe_async
from circuitflow.graph.state import State

logger = logging.getLogger(__name__)

START = "__start__"
END = "__end__"

RESERVED_IDS = frozenset({START, END})

ConditionResult = Union[str, Sequence[str]]
Condition = Callable[[State, ExternalContext], Union[ConditionResult, Awaitable[ConditionResult]]]


@dataclass(frozen=True, slots=True)
class Branch:
    """A conditional edge.

    ``targets`` is either a sequence of node ids (the condition returns ids
    directly) or a mapping of label -> node id. ``END`` must be declared
    when the condition can end the traversal.
    """

    condition: Condition
    targets: Mapping[str, str] | Sequence[str]

    def __post_init__(self) -> None:
        if isinstance(self.targets, Mapping):
            mapping = dict(self.targets)
        else:
            mapping = {target: target for target in self.targets}
        if not mapping:
            raise ValueError("Branch must declare at least one target")
        object.__setattr__(self, "targets", MappingProxyType(mapping))

    def possible_targets(self) -> list[str]:
        return list(dict.fromkeys(self.targets.values()))

    def translate(self, label: str) -> str | None:
        return self.targets.get(label)


Edge = Union[str, Branch]


def edge_targets(edge: Edge) -> list[str]:
    """All node ids (or END) an edge may lead to."""
    if isinstance(edge, Branch):
        return edge.possible_targets()
    return [edge]


async def resolve_edge(
    workflow_id: str,
    source: str,
    edge: Edge,
    state: State,
    ctx: ExternalContext,
) -> list[str]:
    """Resolve an edge to the ordered list of next node ids (possibly ``[END]``)."""
    if not isinstance(edge, Branch):
        return [edge]

    outcome = await call_maybe_async(edge.condition, state, ctx)
    labels = [outcome] if isinstance(outcome, str) else list(outcome)
    if not labels:
        raise UnknownEdgeTargetError(workflow_id, source, "<empty fan-out>")

    resolved: list[str] = []
    for label in labels:
        target = edge.translate(label)
        if target is None:
            raise UnknownEdgeTargetError(workflow_id, source, str(label))
        resolved.append(target)

    logger.debug(
        f"[{workflow_id}] edge decision {source} -> {', '.join(resolved)}",
        extra={"workflow_id": workflow_id, "source": source, "targets": resolved},
    )
    return resolved


def describe_edge(edge: Edge) -> Any:
    """JSON-friendly description of an edge."""
    if isinstance(edge, Branch):
        name = getattr(edge.condition, "__name__", type(edge.condition).__name__)
        return {"condition": name, "targets": dict(edge.targets)}
    return edge
