"""LLM package initialization."""

from circuitflow.llm.factory import LLMFactory
from circuitflow.llm.messages import ChatMessage, ToolCall, ToolSpec
from circuitflow.llm.prompt import PromptSpec, format_template
from circuitflow.llm.provider import LLMProvider

__all__ = [
    "ChatMessage",
    "LLMFactory",
    "LLMProvider",
    "PromptSpec",
    "ToolCall",
    "ToolSpec",
    "format_template",
]
