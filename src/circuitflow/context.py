"""Invocation-scoped context objects.

``ExternalContext`` is the read-only bag handed to every bootstrap, core and
edge condition. ``InvocationContext`` is what callers pass to
``ExecutionEngine.invoke``. ``CancellationScope`` enforces the caller's
deadline and cancel signal around each node execution.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import time
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeVar

from circuitflow.core.errors import InvocationCancelledError

T = TypeVar("T")


class ExternalContext(Mapping[str, Any]):
    """Read-only, invocation-scoped data: caller identity, tenant, services.

    Never persisted as part of state.
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, Any] | None = None, **values: Any) -> None:
        merged = dict(data or {})
        merged.update(values)
        self._data = MappingProxyType(merged)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ExternalContext({dict(self._data)!r})"

    def scoped(self, **overrides: Any) -> ExternalContext:
        """Return a copy with some values replaced or added."""
        return ExternalContext(self._data, **overrides)

    def without(self, *keys: str) -> ExternalContext:
        return ExternalContext({k: v for k, v in self._data.items() if k not in keys})


@dataclass(frozen=True, slots=True)
class InvocationContext:
    """Per-call settings for ``ExecutionEngine.invoke``.

    Attributes:
        thread_id: Conversation/thread key for checkpoints. ``None`` disables
            checkpoint load and save for the call.
        external: Read-only context passed to nodes and conditions.
        timeout: Wall-clock budget in seconds for the whole invocation.
        cancel_event: Set by the caller to abort the invocation.
    """

    thread_id: str | None = None
    external: ExternalContext = field(default_factory=ExternalContext)
    timeout: float | None = None
    cancel_event: asyncio.Event | None = None


class CancellationScope:
    """Deadline and cancel signal shared by one invocation and its children."""

    def __init__(
        self,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._deadline = None if timeout is None else clock() + timeout
        self._event = cancel_event

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(self._deadline - self._clock(), 0.0)

    def reason(self) -> str | None:
        if self._event is not None and self._event.is_set():
            return "cancelled by caller"
        if self._deadline is not None and self._clock() >= self._deadline:
            return "deadline exceeded"
        return None

    def check(self, workflow_id: str) -> None:
        reason = self.reason()
        if reason is not None:
            raise InvocationCancelledError(workflow_id, reason)

    async def run(self, awaitable: Awaitable[T], workflow_id: str) -> T:
        """Await ``awaitable`` unless the scope is cancelled or expires first."""
        reason = self.reason()
        if reason is not None:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise InvocationCancelledError(workflow_id, reason)
        if self._event is None and self._deadline is None:
            return await awaitable

        task = asyncio.ensure_future(awaitable)
        waiters: set[asyncio.Future[Any]] = {task}
        cancel_waiter: asyncio.Future[Any] | None = None
        if self._event is not None:
            cancel_waiter = asyncio.ensure_future(self._event.wait())
            waiters.add(cancel_waiter)

        try:
            await asyncio.wait(
                waiters, timeout=self.remaining(), return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if not task.cancelled():
            return task.result()
        raise InvocationCancelledError(workflow_id, self.reason() or "deadline exceeded")
