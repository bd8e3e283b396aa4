"""Core configuration for the workflow engine."""

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SEVEN_DAYS_SECONDS = 7 * 24 * 60 * 60


class EngineConfig(BaseSettings):
    """Configuration for workflow traversal."""

    max_steps: int = Field(
        default=10_000,
        gt=0,
        description="Maximum node executions per traversal before the cycle guard trips",
    )
    max_depth: int = Field(
        default=16,
        gt=0,
        description="Maximum nesting depth of sub-workflow invocations",
    )
    default_timeout: float | None = Field(
        default=None,
        gt=0,
        description="Wall-clock timeout in seconds applied when an invocation sets none",
    )

    model_config = SettingsConfigDict(
        env_prefix="CIRCUITFLOW_ENGINE_",
        env_file=".env",
        extra="ignore",
    )


class CheckpointConfig(BaseSettings):
    """Configuration for checkpoint persistence."""

    backend: Literal["memory", "file"] = Field(
        default="memory",
        description="Checkpoint store implementation",
    )
    storage_path: Path = Field(
        default=Path(".checkpoints"),
        description="Directory used by the file backend",
    )
    ttl_seconds: float = Field(
        default=SEVEN_DAYS_SECONDS,
        gt=0,
        description="Time-to-live applied to every persisted checkpoint",
    )

    model_config = SettingsConfigDict(
        env_prefix="CIRCUITFLOW_CHECKPOINT_",
        env_file=".env",
        extra="ignore",
    )


class LLMConfig(BaseSettings):
    """Configuration for LLM providers."""

    provider: Literal["openai", "llama"] = Field(
        default="openai",
        description="LLM provider to use",
    )

    # OpenAI settings
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o",
        description="OpenAI model to use",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Temperature for OpenAI model",
    )

    # LLaMA settings
    llama_model_path: Path | None = Field(
        default=None,
        description="Path to LLaMA model file",
    )
    llama_n_ctx: int = Field(
        default=4096,
        gt=0,
        description="Context window size for LLaMA",
    )
    llama_n_threads: int | None = Field(
        default=None,
        description="Number of threads for LLaMA (None = auto)",
    )

    model_config = SettingsConfigDict(
        env_prefix="CIRCUITFLOW_LLM_",
        env_file=".env",
        extra="ignore",
    )


class CircuitflowConfig(BaseSettings):
    """Main configuration, composing the component settings."""

    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log record format",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    engine: EngineConfig = Field(
        default_factory=EngineConfig,
        description="Engine configuration",
    )
    checkpoint: CheckpointConfig = Field(
        default_factory=CheckpointConfig,
        description="Checkpoint configuration",
    )
    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="CIRCUITFLOW_",
        env_file=".env",
        extra="ignore",
    )

    def setup_logging(self) -> None:
        """Configure logging based on settings."""
        from circuitflow.logging import configure_logging

        configure_logging(self.log_level, fmt=self.log_format)

        if self.debug:
            logging.getLogger("circuitflow").setLevel(logging.DEBUG)
