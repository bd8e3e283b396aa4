"""Straight-chain workflows: ``START -> n1 -> ... -> nN -> END``."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from circuitflow.core.errors import WorkflowDefinitionError
from circuitflow.graph.edges import END, START
from circuitflow.graph.nodes import Node
from circuitflow.graph.state import StateSchema
from circuitflow.graph.workflow import Workflow, WorkflowBuilder


def build_linear_workflow(
    workflow_id: str,
    schema: StateSchema,
    nodes: Sequence[Node],
    **kwargs: Any,
) -> Workflow:
    """Chain ``nodes`` in order.

    Extra keyword arguments (``input_schema``, ``bootstrap``,
    ``output_bootstrap``, ``persistence_key``, ``description``) are passed
    to :class:`WorkflowBuilder`.
    """
    if not nodes:
        raise WorkflowDefinitionError(f"Linear workflow '{workflow_id}' needs at least one node")

    builder = WorkflowBuilder(workflow_id, schema, **kwargs)
    builder.add_nodes(*nodes)

    previous = START
    for node in nodes:
        builder.add_edge(previous, node.id)
        previous = node.id
    builder.add_edge(previous, END)
    return builder.build()
