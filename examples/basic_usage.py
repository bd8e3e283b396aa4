#!/usr/bin/env python3
"""Status polling example.

This demonstrates using circuitflow components directly:

* register a status tool and a model binding
* build the status polling workflow
* invoke it on a thread and print the progress messages

The status tool is simulated: it reports the operation as processing for a
few polls and then as complete. Pass ``--openai`` to summarize progress with
the configured OpenAI model instead of the canned summarizer.
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Any, Sequence

from circuitflow import (
    ExecutionEngine,
    InvocationContext,
    Tool,
    WorkflowRegistry,
)
from circuitflow.core.config import CircuitflowConfig
from circuitflow.llm import ChatMessage, LLMFactory, LLMProvider
from circuitflow.patterns import OperationStatus, StatusProcessing, build_status_polling_workflow


class CannedSummarizer(LLMProvider):
    """Offline stand-in that echoes the latest status."""

    def chat(self, messages: list[ChatMessage], tools=None, max_tokens=None, temperature=None, **kwargs: Any) -> ChatMessage:
        return ChatMessage.assistant(f"Still working on it: {messages[-1].content}")

    def count_tokens(self, text: str) -> int:
        return len(text.split())


def _simulated_status_tool(finish_after: int) -> Tool:
    polls = 0

    def check(status: OperationStatus, ctx) -> OperationStatus:
        nonlocal polls
        polls += 1
        processing = StatusProcessing.COMPLETE if polls >= finish_after else StatusProcessing.PROCESSING
        return status.model_copy(update={"processing": processing, "messages": {"poll": polls}})

    return Tool("operation_status", check, description="Report the operation's status")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Poll a simulated operation until it completes.")
    parser.add_argument("--polls", type=int, default=3, help="Polls before the operation completes")
    parser.add_argument("--delay", type=float, default=0.5, help="Seconds between polls")
    parser.add_argument("--thread", default="example-thread", help="Thread id")
    parser.add_argument("--openai", action="store_true", help="Use the configured OpenAI model")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    config = CircuitflowConfig()
    config.setup_logging()

    model = LLMFactory.create(config.llm) if args.openai else CannedSummarizer()

    registry = WorkflowRegistry(default_ttl=config.checkpoint.ttl_seconds)
    registry.add_tool(_simulated_status_tool(args.polls))
    registry.add_model("default", model)
    registry.add_workflow(
        build_status_polling_workflow(
            "wait_for_operation",
            status_tool="operation_status",
            model="default",
            delay_seconds=args.delay,
            max_polls=10,
        )
    )

    engine = ExecutionEngine(registry, config.engine)
    result = asyncio.run(
        engine.invoke(
            "wait_for_operation",
            {"status": {"id": "op-42"}, "operation": "Deploying the example service"},
            InvocationContext(thread_id=args.thread),
        )
    )

    for message in result["messages"]:
        print(f"[{message.role}] {message.content}")
    print(f"Final status: {result['status'].processing.value} after {result['polls']} poll(s)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
