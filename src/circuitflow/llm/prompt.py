"""Prompt specifications and their rendering into chat messages."""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from circuitflow.llm.messages import ChatMessage, Role


def _template_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=_json_default, ensure_ascii=False)
    if value is None:
        return ""
    return value


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return str(value)


def format_template(template: str, values: Mapping[str, Any]) -> str:
    """``str.format`` a template over state-like values.

    Pydantic models and containers are rendered as JSON. A placeholder that
    names a missing value raises ``KeyError``.
    """
    return template.format_map({key: _template_value(value) for key, value in values.items()})


@dataclass(frozen=True, slots=True)
class PromptSpec:
    """Everything a prompt node needs to produce one assistant message.

    Attributes:
        system_template: System message template, formatted over the node input.
        model: Name of the model binding registered in the workflow registry.
        messages_field: Input key holding the conversation history.
        new_messages: ``(role, template)`` pairs appended after the history.
        tools: Tool ids exposed to the model as callable functions.
        personality: Optional preamble prepended to the system message.
    """

    system_template: str
    model: str
    messages_field: str = "messages"
    new_messages: Sequence[tuple[Role, str]] = ()
    tools: Sequence[str] = ()
    personality: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None

    def render(self, values: Mapping[str, Any]) -> list[ChatMessage]:
        system = format_template(self.system_template, values)
        if self.personality:
            system = f"{self.personality.rstrip()} {system}"

        messages = [ChatMessage.system(system)]
        for item in values.get(self.messages_field) or []:
            messages.append(
                item if isinstance(item, ChatMessage) else ChatMessage.model_validate(item)
            )
        for role, template in self.new_messages:
            messages.append(ChatMessage(role=role, content=format_template(template, values)))
        return messages
