"""Model bindings built from :class:`LLMConfig`."""

from __future__ import annotations

import logging
from collections.abc import Callable

from circuitflow.core.config import LLMConfig
from circuitflow.llm.provider import LLMProvider

logger = logging.getLogger(__name__)


def _openai(config: LLMConfig) -> LLMProvider:
    from circuitflow.llm.openai_provider import OpenAIProvider

    return OpenAIProvider(config)


def _llama(config: LLMConfig) -> LLMProvider:
    from circuitflow.llm.llama_provider import LLaMAProvider

    return LLaMAProvider(config)


class LLMFactory:
    """Creates the provider named by ``LLMConfig.provider``.

    Provider modules are imported on demand, so the llama-cpp backend is only
    needed when it is selected.
    """

    _builders: dict[str, Callable[[LLMConfig], LLMProvider]] = {
        "openai": _openai,
        "llama": _llama,
    }

    @classmethod
    def providers(cls) -> list[str]:
        return sorted(cls._builders)

    @classmethod
    def create(cls, config: LLMConfig) -> LLMProvider:
        """Create the configured provider.

        Raises:
            ValueError: Unknown provider, or the provider rejects its settings.
        """
        builder = cls._builders.get(config.provider)
        if builder is None:
            raise ValueError(
                f"Unsupported LLM provider '{config.provider}' "
                f"(expected one of: {', '.join(cls.providers())})"
            )
        logger.info(f"Creating LLM provider: {config.provider}")
        return builder(config)
