"""OpenAI LLM provider implementation."""

import logging
from typing import Any

from openai import OpenAI

from circuitflow.core.config import LLMConfig
from circuitflow.llm.messages import ChatMessage, ToolCall, ToolSpec
from circuitflow.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(self, config: LLMConfig, client: OpenAI | None = None) -> None:
        """Initialize the OpenAI provider.

        Args:
            config: LLM configuration.
            client: Pre-built client (mainly for tests).

        Raises:
            ValueError: If API key is not provided.
        """
        if client is None and not config.openai_api_key:
            raise ValueError("OpenAI API key is required")

        self.config = config
        self.client = client or OpenAI(api_key=config.openai_api_key)
        self.model = config.openai_model
        self.temperature = config.openai_temperature

        logger.info(f"OpenAI provider initialized with model: {self.model}")

    def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolSpec] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> ChatMessage:
        """Generate chat completion using OpenAI API.

        Args:
            messages: Conversation so far.
            tools: Functions the model may call.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional OpenAI-specific parameters.

        Returns:
            Assistant message with any requested tool calls.
        """
        temp = temperature if temperature is not None else self.temperature

        logger.debug(f"Generating chat completion with {len(messages)} messages")

        if tools:
            kwargs["tools"] = [tool.to_provider() for tool in tools]

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[message.to_provider() for message in messages],  # type: ignore
            max_tokens=max_tokens,
            temperature=temp,
            **kwargs,
        )

        choice = response.choices[0].message
        content = choice.content or ""
        tool_calls = [
            ToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments)
            for call in (choice.tool_calls or [])
        ]
        logger.debug(f"Generated {len(content)} characters, {len(tool_calls)} tool call(s)")

        return ChatMessage.assistant(content, tool_calls=tool_calls)

    def count_tokens(self, text: str) -> int:
        """Count tokens using a simple approximation.

        Note:
            This is a rough approximation. For accurate counts,
            use tiktoken library with the specific model's encoding.
        """
        # Rough approximation: 1 token ≈ 4 characters
        return len(text) // 4
