"""Workflow execution engine.

``ExecutionEngine.invoke`` runs one workflow turn from START to END:

1. validate the raw input against the workflow's ``input_schema``;
2. build the initial state from schema defaults and overlay the thread's
   checkpoint, when the workflow is persistent and a thread id is given;
3. merge the top-level bootstrap partial (or the validated input itself);
4. traverse: each step executes the frontier (one node, or several under
   fan-out) against the pre-step state, merges the partials in declared
   order, then resolves every executed node's edge on the merged state;
5. project the result through the workflow's output bootstrap, then
   persist the final state with a fresh TTL and return the result.

Cancellation and deadlines are checked around every node; a cancelled
invocation never writes a checkpoint.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from circuitflow.context import CancellationScope, ExternalContext, InvocationContext
from circuitflow.core.config import EngineConfig
from circuitflow.core.errors import (
    CheckpointIOError,
    CircuitflowError,
    CycleBudgetExceededError,
    NodeExecutionError,
    RegistryError,
    SchemaValidationError,
    StateFieldError,
    WorkflowOutputError,
)
from circuitflow.graph.calls import call_maybe_async
from circuitflow.graph.edges import END, START, resolve_edge
from circuitflow.graph.nodes import Node
from circuitflow.graph.state import State
from circuitflow.graph.workflow import Workflow
from circuitflow.llm.provider import LLMProvider
from circuitflow.runtime.registry import WorkflowRegistry
from circuitflow.tools import Tool

logger = logging.getLogger(__name__)


class _Invocation:
    """Per-call services handed to node cores.

    Child workflows share the parent's thread id and cancellation scope and
    run one level deeper.
    """

    def __init__(
        self,
        engine: ExecutionEngine,
        thread_id: str | None,
        scope: CancellationScope,
        depth: int,
    ) -> None:
        self.engine = engine
        self.thread_id = thread_id
        self.scope = scope
        self.depth = depth
        self.steps = 0

    def tool(self, tool_id: str) -> Tool:
        return self.engine.registry.tool(tool_id)

    def model(self, name: str) -> LLMProvider:
        return self.engine.registry.model(name)

    async def invoke_subworkflow(
        self, workflow_id: str, raw_input: Any, external: ExternalContext
    ) -> Any:
        child = _Invocation(self.engine, self.thread_id, self.scope, self.depth + 1)
        return await self.engine._run(workflow_id, raw_input, external, child)


class ExecutionEngine:
    """Runs workflows from a sealed :class:`WorkflowRegistry`."""

    def __init__(self, registry: WorkflowRegistry, config: EngineConfig | None = None) -> None:
        self.registry = registry.seal()
        self.config = config or EngineConfig()

    async def invoke(
        self,
        workflow_id: str,
        raw_input: Any = None,
        ctx: InvocationContext | None = None,
    ) -> Any:
        """Run ``workflow_id`` to END and return its result.

        Args:
            workflow_id: Registered workflow id.
            raw_input: Caller input, validated by the workflow's input schema.
            ctx: Thread id, external context, timeout and cancel signal.

        Returns:
            The final state, or the workflow's output bootstrap projection.

        Raises:
            WorkflowNotFoundError: Unknown workflow id.
            SchemaValidationError: The input is rejected.
            NodeExecutionError: A node failed under the PROPAGATE policy.
            CycleBudgetExceededError: The step budget was exhausted.
            CheckpointIOError: The checkpoint store failed.
            InvocationCancelledError: Cancelled or past the deadline.
            WorkflowOutputError: The output bootstrap raised.
        """
        ctx = ctx or InvocationContext()
        timeout = ctx.timeout if ctx.timeout is not None else self.config.default_timeout
        scope = CancellationScope(timeout, ctx.cancel_event)
        invocation = _Invocation(self, ctx.thread_id, scope, depth=0)
        return await self._run(workflow_id, raw_input, ctx.external, invocation)

    async def clear_thread(self, thread_id: str) -> int:
        """Remove a thread's checkpoints from every registered store."""
        removed = 0
        for store in self.registry.checkpoint_stores():
            removed += await store.clear(thread_id)
        return removed

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def _run(
        self,
        workflow_id: str,
        raw_input: Any,
        external: ExternalContext,
        invocation: _Invocation,
    ) -> Any:
        workflow = self.registry.get_workflow(workflow_id)
        if invocation.depth > self.config.max_depth:
            raise RegistryError(
                f"Workflow '{workflow_id}' exceeds the maximum nesting depth of "
                f"{self.config.max_depth}"
            )

        started = time.perf_counter()
        logger.info(
            f"[{workflow.id}] Invocation started",
            extra={
                "workflow_id": workflow.id,
                "thread_id": invocation.thread_id,
                "depth": invocation.depth,
            },
        )

        validated = self._validate_input(workflow, raw_input)
        state = workflow.schema.initial()
        state = await self._load_checkpoint(workflow, state, invocation)
        state = await self._apply_bootstrap(workflow, state, validated, external)

        state = await self._traverse(workflow, state, external, invocation)

        invocation.scope.check(workflow.id)
        result = await self._project_output(workflow, state, external)
        await self._save_checkpoint(workflow, state, invocation)

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"[{workflow.id}] Invocation finished in {duration_ms}ms",
            extra={
                "workflow_id": workflow.id,
                "thread_id": invocation.thread_id,
                "steps": invocation.steps,
                "duration_ms": duration_ms,
            },
        )
        return result

    def _validate_input(self, workflow: Workflow, raw_input: Any) -> Any:
        schema = workflow.input_schema
        if schema is None or isinstance(raw_input, schema):
            return raw_input
        try:
            if isinstance(raw_input, (str, bytes)):
                return schema.model_validate_json(raw_input)
            return schema.model_validate({} if raw_input is None else raw_input)
        except ValidationError as e:
            raise SchemaValidationError(
                workflow.id, f"{e.error_count()} validation error(s)", e.errors()
            ) from e

    async def _apply_bootstrap(
        self, workflow: Workflow, state: State, validated: Any, external: ExternalContext
    ) -> State:
        if workflow.bootstrap is not None:
            try:
                partial = await call_maybe_async(workflow.bootstrap, validated, external)
            except CircuitflowError:
                raise
            except Exception as e:
                raise SchemaValidationError(workflow.id, f"input bootstrap failed: {e}") from e
        elif isinstance(validated, BaseModel):
            # Only fields the caller sent, as validated objects.
            partial = {name: getattr(validated, name) for name in validated.model_fields_set}
        else:
            partial = validated

        if partial is None:
            return state
        if not isinstance(partial, Mapping):
            raise SchemaValidationError(
                workflow.id, f"input must be a mapping, got {type(partial).__name__}"
            )

        unknown = workflow.schema.undeclared(partial)
        if unknown:
            raise SchemaValidationError(
                workflow.id, f"undeclared state field(s): {', '.join(sorted(unknown))}"
            )
        return workflow.schema.merge(state, partial)

    async def _project_output(
        self, workflow: Workflow, state: State, external: ExternalContext
    ) -> Any:
        if workflow.output_bootstrap is None:
            return state
        try:
            return await call_maybe_async(workflow.output_bootstrap, state, external)
        except CircuitflowError:
            raise
        except Exception as e:
            raise WorkflowOutputError(workflow.id, e) from e

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    async def _traverse(
        self,
        workflow: Workflow,
        state: State,
        external: ExternalContext,
        invocation: _Invocation,
    ) -> State:
        frontier = await self._next_frontier(workflow, [START], state, external)
        max_steps = self.config.max_steps

        while frontier:
            snapshot = state
            for node_id in frontier:
                invocation.steps += 1
                if invocation.steps > max_steps:
                    raise CycleBudgetExceededError(workflow.id, max_steps)
                node = workflow.node(node_id)
                partial = await self._execute_node(workflow, node, snapshot, external, invocation)
                state = self._merge(workflow, node, state, partial)

            frontier = await self._next_frontier(workflow, frontier, state, external)

        return state

    async def _next_frontier(
        self,
        workflow: Workflow,
        sources: list[str],
        state: State,
        external: ExternalContext,
    ) -> list[str]:
        frontier: list[str] = []
        for source in sources:
            try:
                targets = await resolve_edge(
                    workflow.id, source, workflow.edge(source), state, external
                )
            except CircuitflowError:
                raise
            except Exception as e:
                raise NodeExecutionError(source, e, "edge") from e
            for target in targets:
                if target != END and target not in frontier:
                    frontier.append(target)
        return frontier

    async def _execute_node(
        self,
        workflow: Workflow,
        node: Node,
        state: State,
        external: ExternalContext,
        invocation: _Invocation,
    ) -> dict[str, Any]:
        logger.debug(
            f"[{workflow.id}] -> {node.id} ({node.kind.value})",
            extra={
                "event": "node_enter",
                "workflow_id": workflow.id,
                "node_id": node.id,
                "step": invocation.steps,
            },
        )
        start = time.perf_counter()
        try:
            partial = await invocation.scope.run(
                node.execute(state, external, invocation), workflow.id
            )
        except Exception as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.error(
                f"[{workflow.id}] Node '{node.id}' ({node.kind.value}) failed after "
                f"{duration_ms}ms: {e}"
            )
            raise

        duration_ms = int((time.perf_counter() - start) * 1000)
        logger.debug(
            f"[{workflow.id}] <- {node.id} in {duration_ms}ms, wrote {sorted(partial)}",
            extra={
                "event": "node_exit",
                "workflow_id": workflow.id,
                "node_id": node.id,
                "duration_ms": duration_ms,
            },
        )
        return partial

    def _merge(
        self, workflow: Workflow, node: Node, state: State, partial: dict[str, Any]
    ) -> State:
        if node.writes is not None:
            extra = sorted(set(partial) - node.writes)
            if extra:
                error = StateFieldError(extra, f"Node '{node.id}' wrote outside its declared writes")
                raise NodeExecutionError(node.id, error, "merge") from error
        try:
            return workflow.schema.merge(state, partial)
        except (StateFieldError, TypeError, ValueError) as e:
            raise NodeExecutionError(node.id, e, "merge") from e

    # ------------------------------------------------------------------
    # Checkpoints
    # ------------------------------------------------------------------

    def _checkpointing(self, workflow: Workflow, invocation: _Invocation) -> bool:
        return workflow.persistence_key is not None and invocation.thread_id is not None

    async def _load_checkpoint(
        self, workflow: Workflow, state: State, invocation: _Invocation
    ) -> State:
        if not self._checkpointing(workflow, invocation):
            return state

        store, _ = self.registry.checkpoint_store(workflow.persistence_key)
        try:
            data = await invocation.scope.run(
                store.get(workflow.id, invocation.thread_id), workflow.id
            )
            if data is None:
                return state
            snapshot = workflow.schema.load(data)
        except CircuitflowError:
            raise
        except Exception as e:
            raise CheckpointIOError(
                f"Failed to load checkpoint {workflow.id}/{invocation.thread_id}: {e}"
            ) from e

        logger.info(f"[{workflow.id}] Loaded checkpoint for thread {invocation.thread_id}")
        return workflow.schema.overlay(state, snapshot)

    async def _save_checkpoint(
        self, workflow: Workflow, state: State, invocation: _Invocation
    ) -> None:
        if not self._checkpointing(workflow, invocation):
            return

        store, ttl = self.registry.checkpoint_store(workflow.persistence_key)
        try:
            await store.set(workflow.id, invocation.thread_id, workflow.schema.dump(state), ttl)
        except CircuitflowError:
            raise
        except Exception as e:
            raise CheckpointIOError(
                f"Failed to save checkpoint {workflow.id}/{invocation.thread_id}: {e}"
            ) from e

        logger.info(f"[{workflow.id}] Saved checkpoint for thread {invocation.thread_id}")
