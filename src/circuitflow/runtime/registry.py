"""Explicit registry of workflows, tools, model bindings and checkpoint stores.

Plugins contribute definitions through :meth:`WorkflowRegistry.install`.
Once every plugin is installed, :meth:`WorkflowRegistry.seal` checks all
cross-references and freezes the registry. The execution engine only
accepts sealed registries, so a broken reference fails at startup rather
than on the first invocation that reaches it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol

from circuitflow.checkpoint import CheckpointStore
from circuitflow.core.config import SEVEN_DAYS_SECONDS
from circuitflow.core.errors import RegistryError, WorkflowNotFoundError
from circuitflow.graph.workflow import Workflow
from circuitflow.llm.provider import LLMProvider
from circuitflow.tools import Tool

logger = logging.getLogger(__name__)


class RegistryPlugin(Protocol):
    """A bundle of definitions contributed to a registry."""

    def setup(self, registry: WorkflowRegistry) -> None: ...


class WorkflowRegistry:
    """One addressable namespace for everything workflows reference.

    Example:
        >>> registry = WorkflowRegistry()
        >>> registry.add_tool(Tool("status", check_status))
        >>> registry.add_model("default", OpenAIProvider(config))
        >>> registry.add_workflow(polling_workflow)
        >>> registry.seal()
    """

    def __init__(self, default_ttl: float = SEVEN_DAYS_SECONDS) -> None:
        self.default_ttl = default_ttl
        self._workflows: dict[str, Workflow] = {}
        self._tools: dict[str, Tool] = {}
        self._models: dict[str, LLMProvider] = {}
        self._stores: dict[str, tuple[CheckpointStore, float]] = {}
        self._plugins: list[str] = []
        self._sealed = False

    @classmethod
    def from_plugins(
        cls, plugins: Iterable[RegistryPlugin], default_ttl: float = SEVEN_DAYS_SECONDS
    ) -> WorkflowRegistry:
        """Install every plugin in order and return the sealed registry."""
        registry = cls(default_ttl=default_ttl)
        for plugin in plugins:
            registry.install(plugin)
        return registry.seal()

    @property
    def sealed(self) -> bool:
        return self._sealed

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def _ensure_open(self, what: str) -> None:
        if self._sealed:
            raise RegistryError(f"Cannot add {what}: registry is sealed")

    def install(self, plugin: RegistryPlugin) -> WorkflowRegistry:
        name = type(plugin).__name__
        self._ensure_open(f"plugin '{name}'")
        logger.info(f"Installing plugin: {name}")
        plugin.setup(self)
        self._plugins.append(name)
        return self

    def add_workflow(self, workflow: Workflow) -> Workflow:
        self._ensure_open(f"workflow '{workflow.id}'")
        if workflow.id in self._workflows:
            raise RegistryError(f"Duplicate workflow id: {workflow.id}")
        self._workflows[workflow.id] = workflow
        logger.debug(f"Registered workflow: {workflow.id}")
        return workflow

    def add_tool(self, tool: Tool) -> Tool:
        self._ensure_open(f"tool '{tool.tool_id}'")
        if tool.tool_id in self._tools:
            raise RegistryError(f"Duplicate tool id: {tool.tool_id}")
        self._tools[tool.tool_id] = tool
        logger.debug(f"Registered tool: {tool.tool_id}")
        return tool

    def add_model(self, name: str, provider: LLMProvider) -> LLMProvider:
        self._ensure_open(f"model '{name}'")
        if name in self._models:
            raise RegistryError(f"Duplicate model binding: {name}")
        self._models[name] = provider
        logger.debug(f"Registered model binding: {name} ({type(provider).__name__})")
        return provider

    def add_checkpoint_store(
        self, name: str, store: CheckpointStore, ttl: float | None = None
    ) -> CheckpointStore:
        self._ensure_open(f"checkpoint store '{name}'")
        if name in self._stores:
            raise RegistryError(f"Duplicate checkpoint store: {name}")
        resolved_ttl = self.default_ttl if ttl is None else ttl
        if resolved_ttl <= 0:
            raise RegistryError(f"Checkpoint store '{name}' needs a positive TTL")
        self._stores[name] = (store, resolved_ttl)
        logger.debug(f"Registered checkpoint store: {name} (ttl={resolved_ttl}s)")
        return store

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_workflow(self, workflow_id: str) -> Workflow:
        try:
            return self._workflows[workflow_id]
        except KeyError:
            raise WorkflowNotFoundError(workflow_id) from None

    def workflow_ids(self) -> list[str]:
        return sorted(self._workflows)

    def tool(self, tool_id: str) -> Tool:
        try:
            return self._tools[tool_id]
        except KeyError:
            raise RegistryError(f"Unknown tool: {tool_id}") from None

    def model(self, name: str) -> LLMProvider:
        try:
            return self._models[name]
        except KeyError:
            raise RegistryError(f"Unknown model binding: {name}") from None

    def checkpoint_store(self, name: str) -> tuple[CheckpointStore, float]:
        """Return ``(store, ttl_seconds)`` for a persistence key."""
        try:
            return self._stores[name]
        except KeyError:
            raise RegistryError(f"Unknown checkpoint store: {name}") from None

    def checkpoint_stores(self) -> list[CheckpointStore]:
        return [store for store, _ in self._stores.values()]

    # ------------------------------------------------------------------
    # Sealing
    # ------------------------------------------------------------------

    def seal(self) -> WorkflowRegistry:
        """Validate every cross-reference and freeze the registry.

        Sealing an already sealed registry is a no-op.

        Raises:
            RegistryError: A workflow references an unknown tool, model,
                child workflow or checkpoint store, or workflows embed
                each other in a cycle.
        """
        if self._sealed:
            return self

        problems: list[str] = []
        for workflow in self._workflows.values():
            problems.extend(self._missing_refs(workflow))
        if problems:
            raise RegistryError("Registry has unresolved references:\n  " + "\n  ".join(problems))

        cycle = self._find_composition_cycle()
        if cycle:
            raise RegistryError(f"Workflow composition cycle: {' -> '.join(cycle)}")

        self._sealed = True
        logger.info(
            f"Registry sealed: {len(self._workflows)} workflows, {len(self._tools)} tools, "
            f"{len(self._models)} models, {len(self._stores)} checkpoint stores"
        )
        return self

    def _missing_refs(self, workflow: Workflow) -> list[str]:
        problems = []
        if workflow.persistence_key is not None and workflow.persistence_key not in self._stores:
            problems.append(
                f"{workflow.id}: unknown checkpoint store '{workflow.persistence_key}'"
            )
        for node in workflow.nodes.values():
            where = f"{workflow.id}.{node.id}"
            problems.extend(
                f"{where}: unknown tool '{ref}'" for ref in node.tool_refs()
                if ref not in self._tools
            )
            problems.extend(
                f"{where}: unknown model '{ref}'" for ref in node.model_refs()
                if ref not in self._models
            )
            problems.extend(
                f"{where}: unknown workflow '{ref}'" for ref in node.workflow_refs()
                if ref not in self._workflows
            )
        return problems

    def _children(self, workflow_id: str) -> list[str]:
        children: list[str] = []
        for node in self._workflows[workflow_id].nodes.values():
            children.extend(node.workflow_refs())
        return children

    def _find_composition_cycle(self) -> list[str] | None:
        done: set[str] = set()

        def visit(workflow_id: str, path: list[str]) -> list[str] | None:
            if workflow_id in path:
                return path[path.index(workflow_id):] + [workflow_id]
            if workflow_id in done:
                return None
            path.append(workflow_id)
            for child in self._children(workflow_id):
                cycle = visit(child, path)
                if cycle:
                    return cycle
            path.pop()
            done.add(workflow_id)
            return None

        for workflow_id in sorted(self._workflows):
            cycle = visit(workflow_id, [])
            if cycle:
                return cycle
        return None
