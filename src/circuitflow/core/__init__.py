"""Core package initialization."""

from circuitflow.core.config import (
    CheckpointConfig,
    CircuitflowConfig,
    EngineConfig,
    LLMConfig,
)
from circuitflow.core.errors import (
    CheckpointIOError,
    CircuitflowError,
    CycleBudgetExceededError,
    InvocationCancelledError,
    NodeExecutionError,
    RegistryError,
    SchemaValidationError,
    StateFieldError,
    UnknownEdgeTargetError,
    UnreachableEndError,
    WorkflowDefinitionError,
    WorkflowNotFoundError,
    WorkflowOutputError,
)

__all__ = [
    "CheckpointConfig",
    "CheckpointIOError",
    "CircuitflowConfig",
    "CircuitflowError",
    "CycleBudgetExceededError",
    "EngineConfig",
    "InvocationCancelledError",
    "LLMConfig",
    "NodeExecutionError",
    "RegistryError",
    "SchemaValidationError",
    "StateFieldError",
    "UnknownEdgeTargetError",
    "UnreachableEndError",
    "WorkflowDefinitionError",
    "WorkflowNotFoundError",
    "WorkflowOutputError",
]
