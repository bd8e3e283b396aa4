"""Checkpoint persistence keyed by (workflow id, thread id), with TTL.

Stores hold JSON-safe state snapshots (the engine dumps and loads them
through the workflow's state schema). Writes are last-write-wins; no
cross-invocation locking is provided, callers serialize per thread.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import threading
import time
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from circuitflow.core.config import CheckpointConfig
from circuitflow.core.errors import CheckpointIOError

logger = logging.getLogger(__name__)


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


def _safe_name(value: str) -> str:
    quoted = quote(value, safe="")
    return quoted.replace(".", "%2E") if set(quoted) == {"."} else quoted


class Checkpoint(BaseModel):
    workflow_id: str
    thread_id: str
    state: dict[str, Any]
    created_at: str
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class CheckpointStore(Protocol):
    """Consumed interface. Implementations must be safe for concurrent use
    across distinct ``(workflow_id, thread_id)`` pairs."""

    async def get(self, workflow_id: str, thread_id: str) -> dict[str, Any] | None: ...

    async def set(
        self, workflow_id: str, thread_id: str, state: dict[str, Any], ttl: float
    ) -> None: ...

    async def clear(self, thread_id: str) -> int: ...


class InMemoryCheckpointStore:
    """Process-local store. Suitable for development and testing."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._items: dict[tuple[str, str], Checkpoint] = {}

    async def get(self, workflow_id: str, thread_id: str) -> dict[str, Any] | None:
        with self._lock:
            checkpoint = self._items.get((workflow_id, thread_id))
            if checkpoint is None:
                return None
            if checkpoint.expired(self._clock()):
                del self._items[(workflow_id, thread_id)]
                logger.debug(f"Checkpoint expired: {workflow_id}/{thread_id}")
                return None
            return copy.deepcopy(checkpoint.state)

    async def set(
        self, workflow_id: str, thread_id: str, state: dict[str, Any], ttl: float
    ) -> None:
        with self._lock:
            self._items[(workflow_id, thread_id)] = Checkpoint(
                workflow_id=workflow_id,
                thread_id=thread_id,
                state=copy.deepcopy(state),
                created_at=_utc_iso_now(),
                expires_at=self._clock() + ttl,
            )

    async def clear(self, thread_id: str) -> int:
        with self._lock:
            keys = [key for key in self._items if key[1] == thread_id]
            for key in keys:
                del self._items[key]
            return len(keys)


class JsonFileCheckpointStore:
    """One JSON file per checkpoint: ``<root>/<workflow_id>/<thread_id>.json``.

    File work runs in a worker thread so the event loop is never blocked.
    """

    def __init__(self, root: Path, clock: Callable[[], float] = time.time) -> None:
        self.root = root
        self._clock = clock
        self._lock = threading.Lock()
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFileCheckpointStore initialized at {self.root}")

    def path_for(self, workflow_id: str, thread_id: str) -> Path:
        return self.root / _safe_name(workflow_id) / f"{_safe_name(thread_id)}.json"

    async def get(self, workflow_id: str, thread_id: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get_sync, workflow_id, thread_id)

    async def set(
        self, workflow_id: str, thread_id: str, state: dict[str, Any], ttl: float
    ) -> None:
        await asyncio.to_thread(self._set_sync, workflow_id, thread_id, state, ttl)

    async def clear(self, thread_id: str) -> int:
        return await asyncio.to_thread(self._clear_sync, thread_id)

    def _get_sync(self, workflow_id: str, thread_id: str) -> dict[str, Any] | None:
        path = self.path_for(workflow_id, thread_id)
        with self._lock:
            if not path.exists():
                return None
            try:
                checkpoint = Checkpoint.model_validate_json(path.read_text(encoding="utf-8"))
            except (OSError, ValidationError) as e:
                raise CheckpointIOError(f"Failed to read checkpoint {path}: {e}") from e

            if checkpoint.expired(self._clock()):
                logger.debug(f"Checkpoint expired: {workflow_id}/{thread_id}")
                path.unlink(missing_ok=True)
                return None
            return checkpoint.state

    def _set_sync(
        self, workflow_id: str, thread_id: str, state: dict[str, Any], ttl: float
    ) -> None:
        path = self.path_for(workflow_id, thread_id)
        checkpoint = Checkpoint(
            workflow_id=workflow_id,
            thread_id=thread_id,
            state=state,
            created_at=_utc_iso_now(),
            expires_at=self._clock() + ttl,
        )
        with self._lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                tmp = path.with_suffix(".json.tmp")
                tmp.write_text(
                    json.dumps(checkpoint.model_dump(mode="json"), indent=2, ensure_ascii=False)
                    + "\n",
                    encoding="utf-8",
                )
                os.replace(tmp, path)
            except (OSError, TypeError, ValueError) as e:
                raise CheckpointIOError(f"Failed to write checkpoint {path}: {e}") from e

    def _clear_sync(self, thread_id: str) -> int:
        name = f"{_safe_name(thread_id)}.json"
        removed = 0
        with self._lock:
            try:
                for path in self.root.glob(f"*/{name}"):
                    path.unlink(missing_ok=True)
                    removed += 1
            except OSError as e:
                raise CheckpointIOError(f"Failed to clear thread {thread_id}: {e}") from e
        if removed:
            logger.info(f"Cleared {removed} checkpoint(s) for thread {thread_id}")
        return removed


def create_checkpoint_store(config: CheckpointConfig) -> CheckpointStore:
    """Build the store selected by configuration."""
    if config.backend == "file":
        return JsonFileCheckpointStore(config.storage_path)
    return InMemoryCheckpointStore()
