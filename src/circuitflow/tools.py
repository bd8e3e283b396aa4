"""Tool contract: externally implemented actions invoked by tool nodes."""

from __future__ import annotations

import asyncio
import inspect
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from circuitflow.context import ExternalContext
from circuitflow.llm.messages import ToolSpec

logger = logging.getLogger(__name__)

ToolAction = Callable[[Any, ExternalContext], "str | Awaitable[str]"]


def _serialize_result(tool_id: str, result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, BaseModel):
        return result.model_dump_json()
    if isinstance(result, (dict, list)):
        return json.dumps(result, ensure_ascii=False)
    raise TypeError(f"Tool '{tool_id}' returned {type(result).__name__}, expected a string")


@dataclass(frozen=True, slots=True)
class Tool:
    """An action exposed to workflows and, optionally, to models.

    ``action(input, ctx)`` returns an opaque serialized string (usually JSON)
    that the owning node's output bootstrap parses. Synchronous actions run
    in a worker thread.
    """

    tool_id: str
    action: ToolAction
    description: str = ""
    input_schema: type[BaseModel] | None = None

    async def invoke(self, tool_input: Any, ctx: ExternalContext) -> str:
        if self.input_schema is not None and not isinstance(tool_input, self.input_schema):
            tool_input = self.input_schema.model_validate(tool_input)

        logger.debug(f"Invoking tool '{self.tool_id}'")
        if inspect.iscoroutinefunction(self.action):
            result = await self.action(tool_input, ctx)
        else:
            result = await asyncio.to_thread(self.action, tool_input, ctx)
            if inspect.isawaitable(result):
                result = await result
        return _serialize_result(self.tool_id, result)

    def spec(self) -> ToolSpec:
        """Describe the tool as a function the model may call."""
        parameters = (
            self.input_schema.model_json_schema()
            if self.input_schema is not None
            else {"type": "object", "properties": {}}
        )
        return ToolSpec(name=self.tool_id, description=self.description, parameters=parameters)
