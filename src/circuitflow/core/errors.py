"""Error taxonomy for workflow definition and execution."""

from __future__ import annotations

from typing import Any


class CircuitflowError(Exception):
    """Base class for every error raised by circuitflow."""


class WorkflowDefinitionError(CircuitflowError):
    """A workflow or registry is structurally invalid.

    Raised while building or registering definitions, before any
    invocation is served.
    """


class UnknownEdgeTargetError(WorkflowDefinitionError):
    """An edge references a node id that the workflow does not declare."""

    def __init__(
        self, workflow_id: str, source: str, target: str, missing: str | None = None
    ) -> None:
        self.workflow_id = workflow_id
        self.source = source
        self.target = target
        self.missing = missing or target
        super().__init__(
            f"Workflow '{workflow_id}': edge {source} -> {target} references unknown node "
            f"'{self.missing}'"
        )


class UnreachableEndError(WorkflowDefinitionError):
    """No path leads to END from START or from a reachable node."""

    def __init__(self, workflow_id: str, nodes: list[str]) -> None:
        self.workflow_id = workflow_id
        self.nodes = nodes
        where = ", ".join(nodes) if nodes else "START"
        super().__init__(f"Workflow '{workflow_id}': END is unreachable from {where}")


class StateFieldError(WorkflowDefinitionError):
    """A state update references fields the schema does not declare."""

    def __init__(self, fields: list[str], context: str = "") -> None:
        self.fields = sorted(fields)
        prefix = f"{context}: " if context else ""
        super().__init__(f"{prefix}undeclared state field(s): {', '.join(self.fields)}")


class RegistryError(WorkflowDefinitionError):
    """The registry was given duplicate, missing, or cyclic references."""


class WorkflowNotFoundError(RegistryError):
    def __init__(self, workflow_id: str) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Unknown workflow: {workflow_id}")


class SchemaValidationError(CircuitflowError):
    """Raw invocation input does not satisfy the workflow's input schema."""

    def __init__(self, workflow_id: str, message: str, errors: list[Any] | None = None) -> None:
        self.workflow_id = workflow_id
        self.errors = errors or []
        super().__init__(f"Invalid input for workflow '{workflow_id}': {message}")


class NodeExecutionError(CircuitflowError):
    """A node's bootstrap or core operation failed.

    ``stage`` is one of ``"input"``, ``"core"``, ``"output"``, ``"merge"`` or
    ``"edge"`` (the node's outgoing branch condition raised).
    """

    def __init__(self, node_id: str, cause: BaseException, stage: str = "core") -> None:
        self.node_id = node_id
        self.cause = cause
        self.stage = stage
        super().__init__(f"Node '{node_id}' failed during {stage}: {cause}")

    def to_json(self) -> dict[str, object]:
        return {
            "node_id": self.node_id,
            "stage": self.stage,
            "error": type(self.cause).__name__,
            "message": str(self.cause),
        }


class CycleBudgetExceededError(CircuitflowError):
    def __init__(self, workflow_id: str, max_steps: int) -> None:
        self.workflow_id = workflow_id
        self.max_steps = max_steps
        super().__init__(
            f"Workflow '{workflow_id}' exceeded its step budget of {max_steps} node executions"
        )


class CheckpointIOError(CircuitflowError):
    """Reading or writing a checkpoint failed."""


class WorkflowOutputError(CircuitflowError):
    """The workflow's output bootstrap failed to project the final state."""

    def __init__(self, workflow_id: str, cause: BaseException) -> None:
        self.workflow_id = workflow_id
        self.cause = cause
        super().__init__(f"Output bootstrap of workflow '{workflow_id}' failed: {cause}")


class InvocationCancelledError(CircuitflowError):
    """The invocation was cancelled or ran past its deadline."""

    def __init__(self, workflow_id: str, reason: str) -> None:
        self.workflow_id = workflow_id
        self.reason = reason
        super().__init__(f"Invocation of '{workflow_id}' cancelled: {reason}")


# Errors that cross node and sub-workflow boundaries untouched.
PROPAGATING_ERRORS: tuple[type[CircuitflowError], ...] = (
    CycleBudgetExceededError,
    CheckpointIOError,
    InvocationCancelledError,
)
