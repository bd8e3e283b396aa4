"""Unit tests for workflow traversal."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
from pydantic import BaseModel

from circuitflow import ExternalContext, InvocationContext
from circuitflow.core.config import EngineConfig
from circuitflow.core.errors import (
    CycleBudgetExceededError,
    NodeExecutionError,
    SchemaValidationError,
    StateFieldError,
    UnknownEdgeTargetError,
    WorkflowNotFoundError,
)
from circuitflow.graph import (
    END,
    START,
    Branch,
    PassthroughNode,
    StateField,
    StateSchema,
    TransformNode,
    Workflow,
    WorkflowBuilder,
    append,
)
from circuitflow.llm.messages import ChatMessage
from circuitflow.patterns import build_linear_workflow
from circuitflow.runtime import ExecutionEngine, WorkflowRegistry


def _engine(*workflows: Workflow, config: EngineConfig | None = None) -> ExecutionEngine:
    registry = WorkflowRegistry()
    for workflow in workflows:
        registry.add_workflow(workflow)
    return ExecutionEngine(registry, config)


def _mark(name: str, calls: list[str] | None = None):
    def fn(state: dict[str, Any], ctx: ExternalContext) -> dict[str, Any]:
        if calls is not None:
            calls.append(name)
        return {"trail": [name]}

    fn.__name__ = f"mark_{name}"
    return fn


def test_linear_workflow_runs_in_order(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow(
        "linear",
        chat_schema,
        [TransformNode(id=name, fn=_mark(name)) for name in ("a", "b", "c")],
    )

    state = asyncio.run(_engine(workflow).invoke("linear"))

    assert state["trail"] == ["a", "b", "c"]


def test_async_transform_and_external_context(chat_schema: StateSchema) -> None:
    async def greet(state: dict[str, Any], ctx: ExternalContext) -> dict[str, Any]:
        await asyncio.sleep(0)
        return {"trail": [f"hello {ctx['tenant']}"]}

    workflow = build_linear_workflow("greet", chat_schema, [TransformNode(id="greet", fn=greet)])
    ctx = InvocationContext(external=ExternalContext(tenant="acme"))

    state = asyncio.run(_engine(workflow).invoke("greet", None, ctx))

    assert state["trail"] == ["hello acme"]


def test_unknown_workflow(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow("w", chat_schema, [PassthroughNode(id="p")])

    with pytest.raises(WorkflowNotFoundError):
        asyncio.run(_engine(workflow).invoke("other"))


def test_passthrough_leaves_state_untouched(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow("w", chat_schema, [PassthroughNode(id="p")])

    state = asyncio.run(_engine(workflow).invoke("w", {"trail": ["seed"], "count": 2}))

    assert state == {"messages": [], "count": 2, "trail": ["seed"]}


# ----------------------------------------------------------------------
# Short-circuit from START
# ----------------------------------------------------------------------


class SetupInput(BaseModel):
    has_configured: bool = False


def _setup_workflow(calls: list[str]) -> Workflow:
    schema = StateSchema.of(
        has_configured=StateField(default=bool, type_=bool),
        trail=StateField(default=list, reducer=append, type_=list[str]),
    )

    def already_configured(state: dict[str, Any], ctx: ExternalContext) -> str:
        return END if state["has_configured"] else "configure"

    builder = WorkflowBuilder("setup", schema, input_schema=SetupInput)
    builder.add_node(TransformNode(id="configure", fn=_mark("configure", calls)))
    builder.add_edge(START, Branch(already_configured, ["configure", END]))
    builder.add_edge("configure", END)
    return builder.build()


def test_start_condition_can_end_immediately() -> None:
    calls: list[str] = []
    engine = _engine(_setup_workflow(calls))

    state = asyncio.run(engine.invoke("setup", {"has_configured": True}))

    assert calls == []
    assert state == {"has_configured": True, "trail": []}


def test_start_condition_routes_to_node() -> None:
    calls: list[str] = []
    engine = _engine(_setup_workflow(calls))

    state = asyncio.run(engine.invoke("setup", {"has_configured": False}))

    assert calls == ["configure"]
    assert state["trail"] == ["configure"]


# ----------------------------------------------------------------------
# Fan-out
# ----------------------------------------------------------------------


def has_subscription(state: dict[str, Any]) -> bool:
    if state["subscription_id"]:
        return True
    return bool(state["subscription_name"]) and bool(state["billing_account"])


def is_commit_ready(state: dict[str, Any]) -> bool:
    return bool(state["verified"]) and has_subscription(state)


def route_connect(state: dict[str, Any], ctx: ExternalContext) -> str | list[str]:
    return ["message", "tool"] if is_commit_ready(state) else "login"


def _connect_workflow() -> Workflow:
    schema = StateSchema.of(
        verified=StateField(default=bool, type_=bool),
        subscription_id=StateField(type_=str | None),
        subscription_name=StateField(type_=str | None),
        billing_account=StateField(type_=str | None),
        trail=StateField(default=list, reducer=append, type_=list[str]),
        seen=StateField(default=list, reducer=append, type_=list[int]),
    )

    def observe(name: str):
        def fn(state: dict[str, Any], ctx: ExternalContext) -> dict[str, Any]:
            return {"trail": [name], "seen": [len(state["trail"])]}

        return fn

    builder = WorkflowBuilder("connect", schema)
    builder.add_nodes(
        TransformNode(id="login", fn=observe("login")),
        TransformNode(id="message", fn=observe("message")),
        TransformNode(id="tool", fn=observe("tool")),
        TransformNode(id="commit", fn=observe("commit")),
    )
    builder.add_edge(START, Branch(route_connect, ["login", "message", "tool"]))
    builder.add_edge("login", END)
    builder.add_edge("message", "commit")
    builder.add_edge("tool", "commit")
    builder.add_edge("commit", END)
    return builder.build()


@pytest.mark.parametrize(
    ("verified", "sub_id", "sub_name", "billing", "ready"),
    [
        (False, "sub-1", None, None, False),
        (True, None, None, None, False),
        (True, "sub-1", None, None, True),
        (True, None, "new-sub", None, False),
        (True, None, None, "billing-1", False),
        (True, None, "new-sub", "billing-1", True),
        (False, None, "new-sub", "billing-1", False),
    ],
)
def test_commit_readiness_truth_table(
    verified: bool, sub_id: str | None, sub_name: str | None, billing: str | None, ready: bool
) -> None:
    state = {
        "verified": verified,
        "subscription_id": sub_id,
        "subscription_name": sub_name,
        "billing_account": billing,
    }

    assert is_commit_ready(state) is ready


def test_fan_out_runs_in_declared_order_on_shared_snapshot() -> None:
    engine = _engine(_connect_workflow())
    raw = {"verified": True, "subscription_id": "sub-1"}

    first = asyncio.run(engine.invoke("connect", raw))
    second = asyncio.run(engine.invoke("connect", raw))

    # both branches saw the pre-step trail; the shared successor ran once
    assert first["trail"] == ["message", "tool", "commit"]
    assert first["seen"] == [0, 0, 2]
    assert first == second


def test_not_ready_routes_to_login() -> None:
    state = asyncio.run(_engine(_connect_workflow()).invoke("connect", {"verified": False}))

    assert state["trail"] == ["login"]


# ----------------------------------------------------------------------
# Failures
# ----------------------------------------------------------------------


def test_cycle_budget_is_enforced(chat_schema: StateSchema) -> None:
    calls: list[str] = []

    def forever(state: dict[str, Any], ctx: ExternalContext) -> str:
        return "again"

    builder = WorkflowBuilder("spin", chat_schema)
    builder.add_node(TransformNode(id="spin", fn=_mark("spin", calls)))
    builder.add_edge(START, "spin")
    builder.add_edge("spin", Branch(forever, {"again": "spin", "done": END}))
    engine = _engine(builder.build(), config=EngineConfig(max_steps=25))

    with pytest.raises(CycleBudgetExceededError) as exc_info:
        asyncio.run(engine.invoke("spin"))

    assert exc_info.value.max_steps == 25
    assert len(calls) == 25


def test_undeclared_runtime_label(chat_schema: StateSchema) -> None:
    builder = WorkflowBuilder("w", chat_schema)
    builder.add_node(PassthroughNode(id="a"))
    builder.add_edge(START, "a")
    builder.add_edge("a", Branch(lambda s, c: "elsewhere", {"done": END}))

    with pytest.raises(UnknownEdgeTargetError) as exc_info:
        asyncio.run(_engine(builder.build()).invoke("w"))

    assert exc_info.value.target == "elsewhere"


def test_failing_condition_is_reported_against_its_node(chat_schema: StateSchema) -> None:
    def broken(state: dict[str, Any], ctx: ExternalContext) -> str:
        raise KeyError("missing")

    builder = WorkflowBuilder("w", chat_schema)
    builder.add_node(PassthroughNode(id="a"))
    builder.add_edge(START, "a")
    builder.add_edge("a", Branch(broken, [END]))

    with pytest.raises(NodeExecutionError) as exc_info:
        asyncio.run(_engine(builder.build()).invoke("w"))

    assert exc_info.value.node_id == "a"
    assert exc_info.value.stage == "edge"


def test_core_failure_propagates_with_cause(chat_schema: StateSchema) -> None:
    def explode(state: dict[str, Any], ctx: ExternalContext) -> dict[str, Any]:
        raise ValueError("boom")

    workflow = build_linear_workflow("w", chat_schema, [TransformNode(id="x", fn=explode)])

    with pytest.raises(NodeExecutionError) as exc_info:
        asyncio.run(_engine(workflow).invoke("w"))

    assert exc_info.value.stage == "core"
    assert isinstance(exc_info.value.__cause__, ValueError)
    assert exc_info.value.to_json() == {
        "node_id": "x",
        "stage": "core",
        "error": "ValueError",
        "message": "boom",
    }


def test_undeclared_partial_field_fails_the_node(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow(
        "w", chat_schema, [TransformNode(id="x", fn=lambda s, c: {"bogus": 1})]
    )

    with pytest.raises(NodeExecutionError) as exc_info:
        asyncio.run(_engine(workflow).invoke("w"))

    assert exc_info.value.stage == "merge"
    assert isinstance(exc_info.value.cause, StateFieldError)


def test_write_outside_declared_writes_fails_the_node(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow(
        "w",
        chat_schema,
        [TransformNode(id="x", fn=_mark("x"), writes={"count"})],
    )

    with pytest.raises(NodeExecutionError) as exc_info:
        asyncio.run(_engine(workflow).invoke("w"))

    assert exc_info.value.stage == "merge"


def test_non_mapping_transform_result(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow(
        "w", chat_schema, [TransformNode(id="x", fn=lambda s, c: ["not", "a", "dict"])]
    )

    with pytest.raises(NodeExecutionError) as exc_info:
        asyncio.run(_engine(workflow).invoke("w"))

    assert exc_info.value.stage == "output"
    assert isinstance(exc_info.value.cause, TypeError)


# ----------------------------------------------------------------------
# Input handling
# ----------------------------------------------------------------------


class CountInput(BaseModel):
    count: int


def test_input_schema_rejects_bad_input(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow(
        "w", chat_schema, [PassthroughNode(id="p")], input_schema=CountInput
    )

    with pytest.raises(SchemaValidationError) as exc_info:
        asyncio.run(_engine(workflow).invoke("w", {"count": "many"}))

    assert exc_info.value.errors
    assert exc_info.value.errors[0]["loc"] == ("count",)


def test_input_schema_accepts_json_text(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow(
        "w", chat_schema, [PassthroughNode(id="p")], input_schema=CountInput
    )

    state = asyncio.run(_engine(workflow).invoke("w", '{"count": 4}'))

    assert state["count"] == 4


class ChatInput(BaseModel):
    messages: list[ChatMessage]


def test_validated_input_keeps_model_values(chat_schema: StateSchema) -> None:
    def echo_last(state: dict[str, Any], ctx: ExternalContext) -> dict[str, Any]:
        return {"trail": [state["messages"][-1].content]}

    workflow = build_linear_workflow(
        "w", chat_schema, [TransformNode(id="echo", fn=echo_last)], input_schema=ChatInput
    )

    state = asyncio.run(
        _engine(workflow).invoke("w", {"messages": [{"role": "user", "content": "hi"}]})
    )

    assert state["messages"] == [ChatMessage.user("hi")]
    assert state["trail"] == ["hi"]
    assert state["count"] == 0


def test_undeclared_input_fields_are_rejected(chat_schema: StateSchema) -> None:
    workflow = build_linear_workflow("w", chat_schema, [PassthroughNode(id="p")])

    with pytest.raises(SchemaValidationError, match="undeclared state field"):
        asyncio.run(_engine(workflow).invoke("w", {"count": 1, "bogus": True}))


def test_bootstrap_and_output_bootstrap(chat_schema: StateSchema) -> None:
    def bootstrap(data: CountInput, ctx: ExternalContext) -> dict[str, Any]:
        return {"count": data.count * 10, "trail": ["boot"]}

    def project(state: dict[str, Any], ctx: ExternalContext) -> dict[str, Any]:
        return {"total": state["count"], "trail": state["trail"]}

    workflow = build_linear_workflow(
        "w",
        chat_schema,
        [TransformNode(id="x", fn=_mark("x"))],
        input_schema=CountInput,
        bootstrap=bootstrap,
        output_bootstrap=project,
    )

    result = asyncio.run(_engine(workflow).invoke("w", {"count": 3}))

    assert result == {"total": 30, "trail": ["boot", "x"]}


def test_failing_bootstrap_is_an_input_error(chat_schema: StateSchema) -> None:
    def bootstrap(data: Any, ctx: ExternalContext) -> dict[str, Any]:
        return {"count": int(data["count"])}

    workflow = build_linear_workflow(
        "w", chat_schema, [PassthroughNode(id="p")], bootstrap=bootstrap
    )

    with pytest.raises(SchemaValidationError, match="input bootstrap failed"):
        asyncio.run(_engine(workflow).invoke("w", {"count": "x"}))
