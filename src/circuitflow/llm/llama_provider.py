"""Local LLaMA LLM provider implementation."""

import logging
from typing import Any

from circuitflow.core.config import LLMConfig
from circuitflow.llm.messages import ChatMessage, ToolCall, ToolSpec
from circuitflow.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


class LLaMAProvider(LLMProvider):
    """Local LLaMA model provider implementation.

    Requires llama-cpp-python to be installed:
        pip install circuitflow[llama]
    """

    def __init__(self, config: LLMConfig) -> None:
        """Initialize the LLaMA provider.

        Raises:
            ValueError: If model path is not provided.
            ImportError: If llama-cpp-python is not installed.
        """
        if not config.llama_model_path:
            raise ValueError("LLaMA model path is required")

        try:
            from llama_cpp import Llama
        except ImportError as e:
            raise ImportError(
                "llama-cpp-python is required for LLaMA provider. "
                "Install it with: pip install circuitflow[llama]"
            ) from e

        self.config = config

        logger.info(f"Loading LLaMA model from: {config.llama_model_path}")

        self.llm = Llama(
            model_path=str(config.llama_model_path),
            n_ctx=config.llama_n_ctx,
            n_threads=config.llama_n_threads,
            verbose=False,
        )

        logger.info("LLaMA model loaded successfully")

    def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolSpec] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> ChatMessage:
        """Generate chat completion using local LLaMA model."""
        logger.debug(f"Generating chat completion with {len(messages)} messages")

        if tools:
            kwargs["tools"] = [tool.to_provider() for tool in tools]

        result = self.llm.create_chat_completion(
            messages=[message.to_provider() for message in messages],
            max_tokens=max_tokens or 512,
            temperature=temperature if temperature is not None else 0.7,
            **kwargs,
        )

        message = result["choices"][0]["message"]
        content = message.get("content") or ""
        tool_calls = [
            ToolCall(
                id=call.get("id", ""),
                name=call["function"]["name"],
                arguments=call["function"].get("arguments", "{}"),
            )
            for call in message.get("tool_calls") or []
        ]
        logger.debug(f"Generated {len(content)} characters")

        return ChatMessage.assistant(content, tool_calls=tool_calls)

    def count_tokens(self, text: str) -> int:
        """Count tokens using LLaMA tokenizer."""
        tokens = self.llm.tokenize(text.encode("utf-8"))
        return len(tokens)
