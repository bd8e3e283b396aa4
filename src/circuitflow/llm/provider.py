"""Abstract base class for LLM providers."""

from abc import ABC, abstractmethod
from typing import Any

from circuitflow.llm.messages import ChatMessage, ToolSpec


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    This interface allows pluggable LLM backends (OpenAI, LLaMA, etc.).
    Providers are synchronous; prompt nodes call them off the event loop.
    """

    @abstractmethod
    def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolSpec] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> ChatMessage:
        """Generate the next assistant message.

        Args:
            messages: Conversation so far, system message first.
            tools: Functions the model may call instead of answering.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            **kwargs: Additional provider-specific parameters.

        Returns:
            The assistant message, possibly carrying tool calls.
        """
        pass

    @abstractmethod
    def count_tokens(self, text: str) -> int:
        """Count the number of tokens in text.

        Args:
            text: Text to count tokens for.

        Returns:
            Number of tokens.
        """
        pass
