"""Reusable "wait for a long-running operation" workflow.

Graph::

    START -> status:tool --(terminal or out of polls)--> END
                  |
                  +--(deadline passed)--> status:expired -> END
                  |
                  +--> status:message -> status:delay --(deadline passed)--> END
                                              |
                                              +--> status:tool

``status:tool`` asks an external action for the operation's current status,
``status:message`` has a model summarize progress for the user, and
``status:delay`` waits before polling again. The loop is bounded by
``max_polls`` and, optionally, by a wall-clock deadline checked after every
poll and every wait; when the deadline passes the workflow ends with
``expired`` set instead of raising.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from circuitflow.context import ExternalContext
from circuitflow.graph.edges import END, START, Branch
from circuitflow.graph.nodes import PromptNode, ToolNode, TransformNode
from circuitflow.graph.state import State, StateField, StateSchema, add, append
from circuitflow.graph.workflow import Workflow, WorkflowBuilder
from circuitflow.llm.messages import ChatMessage
from circuitflow.llm.prompt import PromptSpec
from circuitflow.tools import Tool

logger = logging.getLogger(__name__)

TOOL_NODE = "status:tool"
MESSAGE_NODE = "status:message"
DELAY_NODE = "status:delay"
EXPIRED_NODE = "status:expired"

DEFAULT_OPERATION_PROMPT = (
    "Inform the user of the status of their operation and let them know you will "
    "check the status again shortly. Summarize the status in a short and concise way. "
    "The user cannot give you more information, so if the status has few details, "
    "summarize it based on the operation context. Do not ask questions.\n\n"
    "Operation Context:\n{operation}"
)


class StatusProcessing(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (StatusProcessing.COMPLETE, StatusProcessing.ERROR)


class OperationStatus(BaseModel):
    """Status of an external operation as reported by the status tool.

    Unknown fields reported by the tool are kept.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    processing: StatusProcessing = StatusProcessing.QUEUED
    messages: dict[str, Any] = Field(default_factory=dict)

    @property
    def terminal(self) -> bool:
        return self.processing.terminal


class StatusPollingInput(BaseModel):
    status: OperationStatus
    operation: str = ""
    messages: list[ChatMessage] = Field(default_factory=list)
    delay: float | None = Field(default=None, ge=0, description="Seconds between polls")

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value: Any) -> Any:
        if isinstance(value, (str, bytes)):
            return json.loads(value)
        return value


def status_polling_schema(delay_seconds: float) -> StateSchema:
    return StateSchema.of(
        messages=StateField(default=list, reducer=append, type_=list[ChatMessage]),
        operation=StateField(default=str, type_=str),
        status=StateField(type_=OperationStatus | None),
        polls=StateField(default=int, reducer=add, type_=int),
        deadline=StateField(type_=float | None),
        expired=StateField(default=bool, type_=bool),
        delay_seconds=StateField(default=lambda: delay_seconds, type_=float),
    )


def should_stop_polling(state: State, max_polls: int) -> bool:
    """Whether the poll that just ran ends the loop."""
    status: OperationStatus | None = state.get("status")
    if status is not None and status.terminal:
        return True
    if state.get("polls", 0) >= max_polls:
        logger.warning(
            f"Giving up on operation {status.id if status else '?'} after {max_polls} polls"
        )
        return True
    return False


def deadline_passed(state: State, now: float) -> bool:
    deadline = state.get("deadline")
    return deadline is not None and now >= deadline


def build_status_polling_workflow(
    workflow_id: str,
    *,
    status_tool: str | Tool,
    model: str,
    operation_prompt: str | None = None,
    delay_seconds: float = 5.0,
    max_polls: int = 60,
    timeout_seconds: float | None = None,
    personality: str | None = None,
    clock: Callable[[], float] = time.time,
) -> Workflow:
    """Build the polling workflow.

    Args:
        workflow_id: Id to register the workflow under.
        status_tool: Tool (or registered tool id) called with the current
            :class:`OperationStatus`; it must return the updated status as JSON.
        model: Model binding used for progress messages.
        operation_prompt: System template for progress messages, formatted
            over the state (``{operation}``, ``{status}``, ...).
        delay_seconds: Default wait between polls; the input's ``delay``
            overrides it per invocation.
        max_polls: Maximum number of status tool calls per invocation.
        timeout_seconds: Optional wall-clock budget measured from the start
            of the invocation.
        personality: Optional preamble for the progress prompt.
        clock: Wall-clock source, in seconds.

    Returns:
        The built workflow. Its result is a dict with ``messages``,
        ``status``, ``polls`` and ``expired``.
    """
    if max_polls < 1:
        raise ValueError("max_polls must be at least 1")
    if delay_seconds < 0:
        raise ValueError("delay_seconds must not be negative")
    if timeout_seconds is not None and timeout_seconds < 0:
        raise ValueError("timeout_seconds must not be negative")

    def bootstrap(data: StatusPollingInput, ctx: ExternalContext) -> dict[str, Any]:
        return {
            "messages": data.messages,
            "operation": data.operation,
            "status": data.status,
            "delay_seconds": delay_seconds if data.delay is None else data.delay,
            "deadline": None if timeout_seconds is None else clock() + timeout_seconds,
        }

    def current_status(state: State, ctx: ExternalContext) -> OperationStatus:
        return state["status"]

    def record_status(raw: str, ctx: ExternalContext) -> dict[str, Any]:
        return {"status": OperationStatus.model_validate_json(raw), "polls": 1}

    def after_status(state: State, ctx: ExternalContext) -> str:
        if should_stop_polling(state, max_polls):
            return END
        if deadline_passed(state, clock()):
            logger.warning(f"Deadline passed while waiting for operation {state['status'].id}")
            return "expired"
        return "message"

    def mark_expired(state: State, ctx: ExternalContext) -> dict[str, Any]:
        return {"expired": True}

    async def wait(state: State, ctx: ExternalContext) -> dict[str, Any]:
        pause = state["delay_seconds"]
        deadline = state["deadline"]
        if deadline is not None:
            remaining = deadline - clock()
            if remaining <= 0:
                return {"expired": True}
            pause = min(pause, remaining)
        await asyncio.sleep(pause)
        return {"expired": deadline is not None and clock() >= deadline}

    def after_delay(state: State, ctx: ExternalContext) -> str:
        return END if state["expired"] else "poll"

    def result(state: State, ctx: ExternalContext) -> dict[str, Any]:
        return {
            "messages": state["messages"],
            "status": state["status"],
            "polls": state["polls"],
            "expired": state["expired"],
        }

    prompt = PromptSpec(
        system_template=operation_prompt or DEFAULT_OPERATION_PROMPT,
        model=model,
        new_messages=(
            ("user", "Can you help summarize my current operation status:"),
            ("user", "{status}"),
        ),
        personality=personality,
    )

    builder = WorkflowBuilder(
        workflow_id,
        status_polling_schema(delay_seconds),
        input_schema=StatusPollingInput,
        bootstrap=bootstrap,
        output_bootstrap=result,
        description="Poll an external operation until it completes, fails or times out",
    )
    builder.add_nodes(
        ToolNode(
            id=TOOL_NODE,
            tool=status_tool,
            input_bootstrap=current_status,
            output_bootstrap=record_status,
            writes={"status", "polls"},
            description="Fetch the operation's current status",
        ),
        PromptNode(
            id=MESSAGE_NODE,
            prompt=prompt,
            writes={"messages"},
            description="Summarize progress for the user",
        ),
        TransformNode(
            id=DELAY_NODE,
            fn=wait,
            writes={"expired"},
            description="Wait before polling again",
        ),
        TransformNode(
            id=EXPIRED_NODE,
            fn=mark_expired,
            writes={"expired"},
            description="Record that the deadline passed",
        ),
    )
    builder.add_edge(START, TOOL_NODE)
    builder.add_edge(
        TOOL_NODE,
        Branch(after_status, {"message": MESSAGE_NODE, "expired": EXPIRED_NODE, END: END}),
    )
    builder.add_edge(MESSAGE_NODE, DELAY_NODE)
    builder.add_edge(DELAY_NODE, Branch(after_delay, {"poll": TOOL_NODE, END: END}))
    builder.add_edge(EXPIRED_NODE, END)
    return builder.build()
