"""Unit tests for LLM providers, messages and prompt rendering."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import Mock

import pytest

from circuitflow.core.config import LLMConfig
from circuitflow.llm import ChatMessage, LLMFactory, PromptSpec, ToolCall, ToolSpec
from circuitflow.llm.openai_provider import OpenAIProvider
from circuitflow.llm.prompt import format_template
from circuitflow.patterns import OperationStatus


def _completion(content: str | None, tool_calls: list | None = None) -> SimpleNamespace:
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def test_openai_provider_requires_key() -> None:
    with pytest.raises(ValueError, match="API key"):
        OpenAIProvider(LLMConfig(openai_api_key=None))


def test_openai_provider_chat(llm_config: LLMConfig) -> None:
    client = Mock()
    client.chat.completions.create.return_value = _completion("Hello there")
    provider = OpenAIProvider(llm_config, client=client)

    reply = provider.chat([ChatMessage.system("Be nice."), ChatMessage.user("Hi")])

    assert reply == ChatMessage.assistant("Hello there")
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["temperature"] == 0.7
    assert kwargs["messages"] == [
        {"role": "system", "content": "Be nice."},
        {"role": "user", "content": "Hi"},
    ]
    assert "tools" not in kwargs


def test_openai_provider_parses_tool_calls(llm_config: LLMConfig) -> None:
    call = SimpleNamespace(
        id="call_1",
        function=SimpleNamespace(name="lookup", arguments='{"key": "pi"}'),
    )
    client = Mock()
    client.chat.completions.create.return_value = _completion(None, [call])
    provider = OpenAIProvider(llm_config, client=client)
    spec = ToolSpec(name="lookup", description="Look up a key")

    reply = provider.chat([ChatMessage.user("pi?")], tools=[spec], temperature=0.0)

    assert reply.content == ""
    assert reply.tool_calls == [ToolCall(id="call_1", name="lookup", arguments='{"key": "pi"}')]
    assert reply.tool_calls[0].parsed_arguments() == {"key": "pi"}
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["temperature"] == 0.0
    assert kwargs["tools"] == [
        {
            "type": "function",
            "function": {
                "name": "lookup",
                "description": "Look up a key",
                "parameters": {"type": "object", "properties": {}},
            },
        }
    ]


def test_tool_call_arguments_must_be_an_object() -> None:
    with pytest.raises(ValueError):
        ToolCall(name="x", arguments="[1, 2]").parsed_arguments()


def test_assistant_tool_calls_render_for_provider() -> None:
    message = ChatMessage.assistant("", tool_calls=[ToolCall(id="c1", name="lookup")])

    rendered = message.to_provider()

    assert rendered["tool_calls"] == [
        {"id": "c1", "type": "function", "function": {"name": "lookup", "arguments": "{}"}}
    ]
    assert ChatMessage.tool("{}", name="lookup", tool_call_id="c1").to_provider() == {
        "role": "tool",
        "content": "{}",
        "name": "lookup",
        "tool_call_id": "c1",
    }


def test_factory_creates_openai_provider(llm_config: LLMConfig) -> None:
    assert isinstance(LLMFactory.create(llm_config), OpenAIProvider)


def test_factory_llama_requires_model_path() -> None:
    with pytest.raises(ValueError, match="model path"):
        LLMFactory.create(LLMConfig(provider="llama"))


def test_format_template_renders_models_and_containers() -> None:
    status = OperationStatus(id="op-1")

    text = format_template(
        "{name}: {status} {items} [{missing}]",
        {"name": "job", "status": status, "items": ["a"], "missing": None},
    )

    assert text == f'job: {status.model_dump_json()} ["a"] []'


def test_format_template_missing_placeholder() -> None:
    with pytest.raises(KeyError):
        format_template("{absent}", {})


def test_prompt_render_validates_history() -> None:
    spec = PromptSpec(
        system_template="You help with {topic}.",
        model="default",
        messages_field="history",
        new_messages=(("user", "Tell me about {topic}"),),
    )

    messages = spec.render(
        {"topic": "graphs", "history": [{"role": "assistant", "content": "Hi!"}]}
    )

    assert messages == [
        ChatMessage.system("You help with graphs."),
        ChatMessage.assistant("Hi!"),
        ChatMessage.user("Tell me about graphs"),
    ]
