"""Unit tests for configuration."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from circuitflow.core.config import (
    SEVEN_DAYS_SECONDS,
    CheckpointConfig,
    CircuitflowConfig,
    EngineConfig,
    LLMConfig,
)


def test_engine_config_defaults() -> None:
    """Test engine config default values."""
    config = EngineConfig()

    assert config.max_steps == 10_000
    assert config.max_depth == 16
    assert config.default_timeout is None


def test_checkpoint_config_defaults() -> None:
    """Test checkpoint config default values."""
    config = CheckpointConfig()

    assert config.backend == "memory"
    assert config.storage_path == Path(".checkpoints")
    assert config.ttl_seconds == SEVEN_DAYS_SECONDS == 604_800


def test_llm_config_defaults() -> None:
    """Test LLM config default values."""
    config = LLMConfig(openai_api_key="test-key")

    assert config.provider == "openai"
    assert config.openai_model == "gpt-4o"
    assert config.openai_temperature == 0.7
    assert config.llama_n_ctx == 4096


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    """Test settings are read from prefixed environment variables."""
    monkeypatch.setenv("CIRCUITFLOW_ENGINE_MAX_STEPS", "42")
    monkeypatch.setenv("CIRCUITFLOW_CHECKPOINT_BACKEND", "file")
    monkeypatch.setenv("CIRCUITFLOW_LOG_FORMAT", "text")

    assert EngineConfig().max_steps == 42
    assert CheckpointConfig().backend == "file"
    assert CircuitflowConfig().log_format == "text"


def test_invalid_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        EngineConfig(max_steps=0)
    with pytest.raises(ValidationError):
        CheckpointConfig(backend="redis")


def test_circuitflow_config_composition(circuitflow_config: CircuitflowConfig) -> None:
    """Test top-level config with nested configs."""
    assert circuitflow_config.log_level == "DEBUG"
    assert circuitflow_config.debug is True
    assert circuitflow_config.engine.max_steps == 100
    assert circuitflow_config.checkpoint.backend == "file"
    assert isinstance(circuitflow_config.llm, LLMConfig)
