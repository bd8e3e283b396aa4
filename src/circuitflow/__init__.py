"""circuitflow: a declarative workflow graph engine.

Workflows are graphs of typed nodes over a schema-defined state, with
conditional branches, fan-out, nested sub-workflows and per-thread
checkpoints. Definitions are collected in an explicit registry and run by
the execution engine.
"""

__version__ = "0.1.0"

from circuitflow.checkpoint import InMemoryCheckpointStore, JsonFileCheckpointStore
from circuitflow.context import ExternalContext, InvocationContext
from circuitflow.core.config import CircuitflowConfig, EngineConfig
from circuitflow.graph import (
    END,
    START,
    Branch,
    ErrorPolicy,
    PassthroughNode,
    PromptNode,
    StateField,
    StateSchema,
    SubworkflowNode,
    ToolNode,
    TransformNode,
    Workflow,
    WorkflowBuilder,
)
from circuitflow.runtime import ExecutionEngine, RegistryPlugin, WorkflowRegistry
from circuitflow.tools import Tool

__all__ = [
    "__version__",
    "END",
    "START",
    "Branch",
    "CircuitflowConfig",
    "EngineConfig",
    "ErrorPolicy",
    "ExecutionEngine",
    "ExternalContext",
    "InMemoryCheckpointStore",
    "InvocationContext",
    "JsonFileCheckpointStore",
    "PassthroughNode",
    "PromptNode",
    "RegistryPlugin",
    "StateField",
    "StateSchema",
    "SubworkflowNode",
    "Tool",
    "ToolNode",
    "TransformNode",
    "Workflow",
    "WorkflowBuilder",
    "WorkflowRegistry",
]
