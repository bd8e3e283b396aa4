"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from circuitflow.core.config import (
    CheckpointConfig,
    CircuitflowConfig,
    EngineConfig,
    LLMConfig,
)
from circuitflow.graph import StateField, StateSchema, append, replace
from circuitflow.llm.messages import ChatMessage, ToolSpec
from circuitflow.llm.provider import LLMProvider


class ScriptedProvider(LLMProvider):
    """LLM provider returning canned assistant replies and recording calls."""

    def __init__(self, replies: list[str] | Callable[[list[ChatMessage]], str] | None = None):
        self.replies = replies
        self.calls: list[list[ChatMessage]] = []
        self.tools_seen: list[list[ToolSpec] | None] = []

    def chat(
        self,
        messages: list[ChatMessage],
        tools: list[ToolSpec] | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        **kwargs: Any,
    ) -> ChatMessage:
        self.calls.append(list(messages))
        self.tools_seen.append(tools)
        if callable(self.replies):
            return ChatMessage.assistant(self.replies(messages))
        if self.replies:
            return ChatMessage.assistant(self.replies[(len(self.calls) - 1) % len(self.replies)])
        return ChatMessage.assistant(f"reply {len(self.calls)}")

    def count_tokens(self, text: str) -> int:
        return len(text.split())


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def chat_schema() -> StateSchema:
    """Provide a schema with an appended message history and a replaced counter."""
    return StateSchema.of(
        messages=StateField(default=list, reducer=append, type_=list[ChatMessage]),
        count=StateField(default=int, reducer=replace, type_=int),
        trail=StateField(default=list, reducer=append, type_=list[str]),
    )


@pytest.fixture
def temp_checkpoint_dir(tmp_path: Path) -> Path:
    """Provide a temporary checkpoint directory."""
    checkpoint_dir = tmp_path / ".checkpoints"
    checkpoint_dir.mkdir()
    return checkpoint_dir


@pytest.fixture
def llm_config() -> LLMConfig:
    """Provide a test LLM configuration."""
    return LLMConfig(
        provider="openai",
        openai_api_key="test-key",
        openai_model="gpt-4o-mini",
    )


@pytest.fixture
def checkpoint_config(temp_checkpoint_dir: Path) -> CheckpointConfig:
    """Provide a file-backed checkpoint configuration."""
    return CheckpointConfig(backend="file", storage_path=temp_checkpoint_dir)


@pytest.fixture
def circuitflow_config(
    llm_config: LLMConfig, checkpoint_config: CheckpointConfig
) -> CircuitflowConfig:
    """Provide a test top-level configuration."""
    return CircuitflowConfig(
        log_level="DEBUG",
        debug=True,
        engine=EngineConfig(max_steps=100),
        checkpoint=checkpoint_config,
        llm=llm_config,
    )


@pytest.fixture
def make_provider() -> type[ScriptedProvider]:
    """Provide the scripted provider class for tests that need custom replies."""
    return ScriptedProvider
