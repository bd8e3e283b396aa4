"""Registry and execution engine."""

from circuitflow.runtime.engine import ExecutionEngine
from circuitflow.runtime.registry import RegistryPlugin, WorkflowRegistry

__all__ = ["ExecutionEngine", "RegistryPlugin", "WorkflowRegistry"]
