"""Declarative workflow graphs.

- ``state``: state schemas and reducers
- ``nodes``: node kinds and the input/core/output bootstrap pipeline
- ``edges``: START/END markers and conditional branches
- ``workflow``: immutable workflows and the validating builder
- ``analysis``: static reachability checks run at build time
"""

from circuitflow.graph.analysis import GraphReport, analyze_graph
from circuitflow.graph.edges import END, START, Branch, Edge
from circuitflow.graph.nodes import (
    ErrorPolicy,
    Node,
    NodeKind,
    PassthroughNode,
    PromptNode,
    SubworkflowNode,
    ToolNode,
    TransformNode,
)
from circuitflow.graph.state import (
    State,
    StateField,
    StateSchema,
    add,
    append,
    merge_dict,
    replace,
)
from circuitflow.graph.workflow import Workflow, WorkflowBuilder

__all__ = [
    "END",
    "START",
    "Branch",
    "Edge",
    "ErrorPolicy",
    "GraphReport",
    "Node",
    "NodeKind",
    "PassthroughNode",
    "PromptNode",
    "State",
    "StateField",
    "StateSchema",
    "SubworkflowNode",
    "ToolNode",
    "TransformNode",
    "Workflow",
    "WorkflowBuilder",
    "add",
    "analyze_graph",
    "append",
    "merge_dict",
    "replace",
]
