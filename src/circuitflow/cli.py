"""Command-line entrypoint.

Workflows are never discovered implicitly: every command that needs them
takes ``--registry module:attr``, naming a :class:`WorkflowRegistry` or a
zero-argument factory returning one.
"""

from __future__ import annotations

import argparse
import asyncio
import importlib
import json
import logging
import sys
from typing import Any

from pydantic import BaseModel, ValidationError

from circuitflow import __version__
from circuitflow.checkpoint import create_checkpoint_store
from circuitflow.context import InvocationContext
from circuitflow.core.config import CircuitflowConfig
from circuitflow.core.errors import (
    CircuitflowError,
    SchemaValidationError,
    WorkflowDefinitionError,
)
from circuitflow.runtime import ExecutionEngine, WorkflowRegistry

logger = logging.getLogger(__name__)


def load_registry(target: str) -> WorkflowRegistry:
    """Import ``module:attr`` and return the registry it names."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Registry must be given as 'module:attr', got {target!r}")

    obj: Any = importlib.import_module(module_name)
    for part in attr.split("."):
        obj = getattr(obj, part)

    if not isinstance(obj, WorkflowRegistry) and callable(obj):
        obj = obj()
    if not isinstance(obj, WorkflowRegistry):
        raise TypeError(f"{target} is not a WorkflowRegistry (got {type(obj).__name__})")
    return obj


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=_json_default, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="circuitflow",
        description="Run and inspect declarative workflow graphs",
    )
    parser.add_argument("--version", action="version", version=f"circuitflow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_registry_arg(sub: argparse.ArgumentParser, required: bool = True) -> None:
        sub.add_argument(
            "--registry",
            required=required,
            help="Registry to load, as 'module:attr' (a WorkflowRegistry or a factory)",
        )

    validate = subparsers.add_parser(
        "validate", help="Load a registry and check every workflow and reference"
    )
    add_registry_arg(validate)

    describe = subparsers.add_parser("describe", help="Print a workflow's graph as JSON")
    add_registry_arg(describe)
    describe.add_argument("--workflow", required=True, help="Workflow id")

    invoke = subparsers.add_parser("invoke", help="Run a workflow once and print its result")
    add_registry_arg(invoke)
    invoke.add_argument("--workflow", required=True, help="Workflow id")
    invoke.add_argument("--input", default="{}", help="Raw input as a JSON document")
    invoke.add_argument("--thread", default=None, help="Thread id for checkpoints")
    invoke.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Wall-clock timeout in seconds",
    )

    clear = subparsers.add_parser(
        "clear-checkpoints",
        help=(
            "Delete a thread's checkpoints from the registry's stores, or from the "
            "configured store when no registry is given"
        ),
    )
    add_registry_arg(clear, required=False)
    clear.add_argument("--thread", required=True, help="Thread id")

    return parser


async def _clear(
    thread_id: str, registry: WorkflowRegistry | None, config: CircuitflowConfig
) -> int:
    if registry is not None:
        return await ExecutionEngine(registry, config.engine).clear_thread(thread_id)
    store = create_checkpoint_store(config.checkpoint)
    return await store.clear(thread_id)


def _run_command(
    args: argparse.Namespace,
    config: CircuitflowConfig,
    registry: WorkflowRegistry | None,
    raw_input: Any,
) -> int:
    if args.command == "validate":
        for workflow_id in registry.workflow_ids():
            print(f"ok  {workflow_id}")
        return 0

    if args.command == "describe":
        _print_json(registry.get_workflow(args.workflow).describe())
        return 0

    if args.command == "invoke":
        engine = ExecutionEngine(registry, config.engine)
        ctx = InvocationContext(thread_id=args.thread, timeout=args.timeout)
        _print_json(asyncio.run(engine.invoke(args.workflow, raw_input, ctx)))
        return 0

    if args.command == "clear-checkpoints":
        removed = asyncio.run(_clear(args.thread, registry, config))
        print(f"Removed {removed} checkpoint(s) for thread {args.thread}")
        return 0

    logger.error("Unknown command", extra={"command": args.command})
    return 2


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = CircuitflowConfig()
    except ValidationError as e:
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    config.setup_logging()

    try:
        registry = load_registry(args.registry).seal() if args.registry else None
        raw_input = json.loads(args.input) if args.command == "invoke" else None
    except (WorkflowDefinitionError, ImportError, AttributeError, TypeError, ValueError) as e:
        logger.error(f"Invalid registry or arguments: {e}")
        print(str(e), file=sys.stderr)
        return 2

    try:
        return _run_command(args, config, registry, raw_input)

    except WorkflowDefinitionError as e:
        logger.error(f"Invalid workflow: {e}")
        print(str(e), file=sys.stderr)
        return 2

    except SchemaValidationError as e:
        logger.warning(str(e), extra={"errors": e.errors})
        print(str(e), file=sys.stderr)
        return 3

    except CircuitflowError as e:
        logger.error(f"Invocation failed: {e}")
        print(str(e), file=sys.stderr)
        return 1

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
