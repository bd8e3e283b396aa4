"""Reusable workflow shapes."""

from circuitflow.patterns.linear import build_linear_workflow
from circuitflow.patterns.status_polling import (
    OperationStatus,
    StatusPollingInput,
    StatusProcessing,
    build_status_polling_workflow,
)

__all__ = [
    "OperationStatus",
    "StatusPollingInput",
    "StatusProcessing",
    "build_linear_workflow",
    "build_status_polling_workflow",
]
