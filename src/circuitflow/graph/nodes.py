"""Workflow nodes.

Every node runs the same three stages: ``input_bootstrap`` projects the
state down to the core operation's input, the core runs, and
``output_bootstrap`` projects the raw result back into a state partial.
Each node kind supplies its own core and its own default bootstraps.

Error policy per node:

* ``ErrorPolicy.PROPAGATE`` (the default for every kind) fails the
  invocation with :class:`NodeExecutionError`.
* ``ErrorPolicy.DEGRADE`` turns a core failure into state through
  ``error_bootstrap``. Tool nodes may omit ``error_bootstrap``: the error is
  serialized as a JSON tool result and parsed by ``output_bootstrap`` like
  any other result.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from circuitflow.context import ExternalContext
from circuitflow.core.errors import (
    PROPAGATING_ERRORS,
    NodeExecutionError,
    WorkflowDefinitionError,
)
from circuitflow.graph.calls import call_maybe_async
from circuitflow.graph.edges import RESERVED_IDS
from circuitflow.graph.state import State
from circuitflow.llm.prompt import PromptSpec
from circuitflow.tools import Tool

if TYPE_CHECKING:
    from circuitflow.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

InputBootstrap = Callable[[State, ExternalContext], Any]
OutputBootstrap = Callable[[Any, ExternalContext], "Mapping[str, Any] | None"]
ErrorBootstrap = Callable[[NodeExecutionError, ExternalContext], "Mapping[str, Any] | None"]
TransformFn = Callable[[Any, ExternalContext], Any]
ScopeFn = Callable[[ExternalContext], ExternalContext]


class NodeKind(str, Enum):
    PROMPT = "prompt"
    TOOL = "tool"
    TRANSFORM = "transform"
    PASSTHROUGH = "passthrough"
    SUBWORKFLOW = "subworkflow"


class ErrorPolicy(str, Enum):
    PROPAGATE = "propagate"
    DEGRADE = "degrade"


class NodeServices(Protocol):
    """What a node's core may ask of the engine running it."""

    def tool(self, tool_id: str) -> Tool: ...

    def model(self, name: str) -> LLMProvider: ...

    def invoke_subworkflow(
        self, workflow_id: str, raw_input: Any, external: ExternalContext
    ) -> Awaitable[Any]: ...


def _as_partial(node_id: str, value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise TypeError(
            f"Node '{node_id}' produced {type(value).__name__}; a state partial must be a mapping"
        )
    return dict(value)


@dataclass(frozen=True, kw_only=True)
class Node:
    """Base node. Use one of the concrete kinds below."""

    kind: ClassVar[NodeKind]

    id: str
    input_bootstrap: InputBootstrap | None = None
    output_bootstrap: OutputBootstrap | None = None
    writes: frozenset[str] | None = None
    error_policy: ErrorPolicy = ErrorPolicy.PROPAGATE
    error_bootstrap: ErrorBootstrap | None = None
    description: str = ""

    def __post_init__(self) -> None:
        if self.writes is not None and not isinstance(self.writes, frozenset):
            object.__setattr__(self, "writes", frozenset(self.writes))

    # ------------------------------------------------------------------
    # Definition checks
    # ------------------------------------------------------------------

    def validate(self) -> None:
        if not self.id or self.id in RESERVED_IDS:
            raise WorkflowDefinitionError(f"Invalid node id: {self.id!r}")
        if self.error_policy is ErrorPolicy.DEGRADE and self.error_bootstrap is None:
            if not self._can_degrade_without_bootstrap():
                raise WorkflowDefinitionError(
                    f"Node '{self.id}' ({self.kind.value}) degrades errors but has no "
                    "error_bootstrap"
                )

    def _can_degrade_without_bootstrap(self) -> bool:
        return False

    def tool_refs(self) -> list[str]:
        return []

    def model_refs(self) -> list[str]:
        return []

    def workflow_refs(self) -> list[str]:
        return []

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self, state: State, ctx: ExternalContext, services: NodeServices
    ) -> dict[str, Any]:
        """Run ``input -> core -> output`` and return the state partial."""
        node_input = await self._stage("input", self._prepare_input, state, ctx)

        try:
            raw = await self.run_core(node_input, ctx, services)
        except PROPAGATING_ERRORS:
            raise
        except Exception as exc:
            error = NodeExecutionError(self.id, exc, "core")
            if self.error_policy is ErrorPolicy.DEGRADE:
                logger.warning(f"Node '{self.id}' degraded a failure into state: {exc}")
                return await self._degrade(error, ctx)
            raise error from exc

        return await self._stage("output", self._finish_output, raw, ctx)

    async def _stage(self, stage: str, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await fn(*args)
        except PROPAGATING_ERRORS:
            raise
        except NodeExecutionError:
            raise
        except Exception as exc:
            raise NodeExecutionError(self.id, exc, stage) from exc

    async def _prepare_input(self, state: State, ctx: ExternalContext) -> Any:
        if self.input_bootstrap is None:
            return self.default_input(state)
        return await call_maybe_async(self.input_bootstrap, state, ctx)

    async def _finish_output(self, raw: Any, ctx: ExternalContext) -> dict[str, Any]:
        if self.output_bootstrap is None:
            return _as_partial(self.id, self.default_output(raw))
        return _as_partial(self.id, await call_maybe_async(self.output_bootstrap, raw, ctx))

    async def _degrade(self, error: NodeExecutionError, ctx: ExternalContext) -> dict[str, Any]:
        if self.error_bootstrap is None:
            raise error from error.cause
        try:
            return _as_partial(self.id, await call_maybe_async(self.error_bootstrap, error, ctx))
        except Exception as exc:
            raise NodeExecutionError(self.id, exc, "output") from exc

    def default_input(self, state: State) -> Any:
        return state

    def default_output(self, raw: Any) -> Any:
        return raw

    async def run_core(self, node_input: Any, ctx: ExternalContext, services: NodeServices) -> Any:
        raise NotImplementedError


@dataclass(frozen=True, kw_only=True)
class PromptNode(Node):
    """One model call; by default appends the assistant message to history."""

    kind: ClassVar[NodeKind] = NodeKind.PROMPT

    prompt: PromptSpec

    def model_refs(self) -> list[str]:
        return [self.prompt.model]

    def tool_refs(self) -> list[str]:
        return list(self.prompt.tools)

    def default_output(self, raw: Any) -> Any:
        return {self.prompt.messages_field: [raw]}

    async def run_core(self, node_input: Any, ctx: ExternalContext, services: NodeServices) -> Any:
        if not isinstance(node_input, Mapping):
            raise TypeError(f"Prompt node '{self.id}' expects a mapping input")

        messages = self.prompt.render(node_input)
        tools = [services.tool(tool_id).spec() for tool_id in self.prompt.tools]
        provider = services.model(self.prompt.model)
        return await asyncio.to_thread(
            provider.chat,
            messages,
            tools or None,
            self.prompt.max_tokens,
            self.prompt.temperature,
        )


@dataclass(frozen=True, kw_only=True)
class ToolNode(Node):
    """Calls a tool; by default parses its JSON result into a partial."""

    kind: ClassVar[NodeKind] = NodeKind.TOOL

    tool: str | Tool

    @property
    def tool_id(self) -> str:
        return self.tool.tool_id if isinstance(self.tool, Tool) else self.tool

    def tool_refs(self) -> list[str]:
        return [] if isinstance(self.tool, Tool) else [self.tool]

    def _can_degrade_without_bootstrap(self) -> bool:
        return True

    def default_output(self, raw: Any) -> Any:
        return json.loads(raw)

    async def _degrade(self, error: NodeExecutionError, ctx: ExternalContext) -> dict[str, Any]:
        if self.error_bootstrap is not None:
            return await super()._degrade(error, ctx)
        serialized = json.dumps(
            {"error": type(error.cause).__name__, "message": str(error.cause)},
            ensure_ascii=False,
        )
        return await self._stage("output", self._finish_output, serialized, ctx)

    async def run_core(self, node_input: Any, ctx: ExternalContext, services: NodeServices) -> Any:
        tool = self.tool if isinstance(self.tool, Tool) else services.tool(self.tool)
        return await tool.invoke(node_input, ctx)


@dataclass(frozen=True, kw_only=True)
class TransformNode(Node):
    """Runs a local function ``fn(input, ctx)``; its result is the partial."""

    kind: ClassVar[NodeKind] = NodeKind.TRANSFORM

    fn: TransformFn

    async def run_core(self, node_input: Any, ctx: ExternalContext, services: NodeServices) -> Any:
        return await call_maybe_async(self.fn, node_input, ctx)


@dataclass(frozen=True, kw_only=True)
class PassthroughNode(Node):
    """Identity core. Without an output bootstrap it leaves state untouched."""

    kind: ClassVar[NodeKind] = NodeKind.PASSTHROUGH

    def default_output(self, raw: Any) -> Any:
        return {}

    async def run_core(self, node_input: Any, ctx: ExternalContext, services: NodeServices) -> Any:
        return node_input


@dataclass(frozen=True, kw_only=True)
class SubworkflowNode(Node):
    """Runs another registered workflow to its END.

    Parent and child state are independent: ``input_bootstrap`` builds the
    child's raw input, ``output_bootstrap`` maps the child's result back into
    a parent partial. Both default to passing nothing across. ``scope``
    optionally reshapes the external context seen by the child.
    """

    kind: ClassVar[NodeKind] = NodeKind.SUBWORKFLOW

    workflow: str
    scope: ScopeFn | None = None

    def workflow_refs(self) -> list[str]:
        return [self.workflow]

    def default_input(self, state: State) -> Any:
        return {}

    def default_output(self, raw: Any) -> Any:
        return {}

    async def run_core(self, node_input: Any, ctx: ExternalContext, services: NodeServices) -> Any:
        external = self.scope(ctx) if self.scope is not None else ctx
        return await services.invoke_subworkflow(self.workflow, node_input, external)
