"""Workflow definitions and the builder that validates them.

A :class:`Workflow` is immutable once built. ``WorkflowBuilder.build()`` is
the single place where a graph's wiring, its nodes' declared state writes,
and END reachability are checked.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from pydantic import BaseModel

from circuitflow.context import ExternalContext
from circuitflow.core.errors import StateFieldError, WorkflowDefinitionError
from circuitflow.graph.analysis import GraphReport, analyze_graph
from circuitflow.graph.edges import Edge, describe_edge
from circuitflow.graph.nodes import Node
from circuitflow.graph.state import State, StateSchema

logger = logging.getLogger(__name__)

InputBootstrap = Callable[[Any, ExternalContext], "Mapping[str, Any] | None"]
ResultBootstrap = Callable[[State, ExternalContext], Any]


@dataclass(frozen=True)
class Workflow:
    """A named, validated graph of nodes over one state schema.

    Attributes:
        id: Registry-wide workflow id.
        schema: State fields threaded through every invocation.
        nodes: Node id -> node.
        edges: Source id (or ``START``) -> edge.
        input_schema: Optional pydantic model validating raw input.
        bootstrap: ``bootstrap(input, ctx) -> partial`` seeding the state.
        output_bootstrap: ``output_bootstrap(state, ctx) -> result`` applied
            to the final state before it is returned.
        persistence_key: Name of the registered checkpoint store; ``None``
            disables checkpointing.
    """

    id: str
    schema: StateSchema
    nodes: Mapping[str, Node]
    edges: Mapping[str, Edge]
    report: GraphReport
    input_schema: type[BaseModel] | None = None
    bootstrap: InputBootstrap | None = None
    output_bootstrap: ResultBootstrap | None = None
    persistence_key: str | None = None
    description: str = ""

    def node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def edge(self, source: str) -> Edge:
        return self.edges[source]

    def describe(self) -> dict[str, Any]:
        """JSON-friendly summary of the graph."""
        return {
            "id": self.id,
            "description": self.description,
            "persistence_key": self.persistence_key,
            "state": sorted(self.schema.names()),
            "nodes": {
                node_id: {"kind": node.kind.value, "description": node.description}
                for node_id, node in self.nodes.items()
            },
            "edges": {source: describe_edge(edge) for source, edge in self.edges.items()},
            "cycles": sorted(self.report.cyclic),
            "unreachable": sorted(self.report.unreachable),
        }


@dataclass
class WorkflowBuilder:
    """Collects nodes and edges, then validates them into a :class:`Workflow`.

    Usage::

        builder = WorkflowBuilder("greet", schema)
        builder.add_node(TransformNode(id="hello", fn=say_hello))
        builder.add_edge(START, "hello")
        builder.add_edge("hello", END)
        workflow = builder.build()
    """

    workflow_id: str
    schema: StateSchema
    input_schema: type[BaseModel] | None = None
    bootstrap: InputBootstrap | None = None
    output_bootstrap: ResultBootstrap | None = None
    persistence_key: str | None = None
    description: str = ""
    _nodes: dict[str, Node] = field(default_factory=dict, init=False, repr=False)
    _edges: dict[str, Edge] = field(default_factory=dict, init=False, repr=False)

    def add_node(self, node: Node) -> WorkflowBuilder:
        if node.id in self._nodes:
            raise WorkflowDefinitionError(
                f"Workflow '{self.workflow_id}': duplicate node id '{node.id}'"
            )
        self._nodes[node.id] = node
        return self

    def add_nodes(self, *nodes: Node) -> WorkflowBuilder:
        for node in nodes:
            self.add_node(node)
        return self

    def add_edge(self, source: str, target: Edge) -> WorkflowBuilder:
        if source in self._edges:
            raise WorkflowDefinitionError(
                f"Workflow '{self.workflow_id}': node '{source}' already has an outgoing edge"
            )
        self._edges[source] = target
        return self

    def build(self) -> Workflow:
        if not self.workflow_id:
            raise WorkflowDefinitionError("Workflow id must not be empty")

        for node in self._nodes.values():
            node.validate()
            if node.writes is not None:
                self.schema.check_fields(
                    node.writes, f"Workflow '{self.workflow_id}', node '{node.id}'"
                )

        if self.input_schema is not None and self.bootstrap is None:
            unknown = self.schema.undeclared(self.input_schema.model_fields)
            if unknown:
                raise StateFieldError(
                    unknown, f"Workflow '{self.workflow_id}' input schema without bootstrap"
                )

        report = analyze_graph(self.workflow_id, self._nodes, self._edges)

        workflow = Workflow(
            id=self.workflow_id,
            schema=self.schema,
            nodes=MappingProxyType(dict(self._nodes)),
            edges=MappingProxyType(dict(self._edges)),
            report=report,
            input_schema=self.input_schema,
            bootstrap=self.bootstrap,
            output_bootstrap=self.output_bootstrap,
            persistence_key=self.persistence_key,
            description=self.description,
        )
        logger.debug(
            f"Workflow '{workflow.id}' built: {len(workflow.nodes)} nodes, "
            f"{len(workflow.edges)} edges"
        )
        return workflow
