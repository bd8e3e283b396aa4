"""Checkpoint stores."""

from circuitflow.checkpoint.store import (
    Checkpoint,
    CheckpointStore,
    InMemoryCheckpointStore,
    JsonFileCheckpointStore,
    create_checkpoint_store,
)

__all__ = [
    "Checkpoint",
    "CheckpointStore",
    "InMemoryCheckpointStore",
    "JsonFileCheckpointStore",
    "create_checkpoint_store",
]
