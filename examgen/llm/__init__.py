"""LLM adapter layer: OpenAI and Anthropic behind a common protocol."""

from examgen.llm.anthropic_provider import AnthropicProvider
from examgen.llm.base import (
    CapacityExceededError,
    Completion,
    LLMError,
    LLMProvider,
    TransientLLMError,
)
from examgen.llm.openai_provider import OpenAIProvider


def get_provider(provider_name: str, **kwargs: object) -> LLMProvider:
    """Return the configured LLM provider. provider_name: 'openai' | 'anthropic'."""
    if provider_name.lower() == "anthropic":
        return AnthropicProvider(**kwargs)
    return OpenAIProvider(**kwargs)


__all__ = [
    "AnthropicProvider",
    "CapacityExceededError",
    "Completion",
    "LLMError",
    "LLMProvider",
    "OpenAIProvider",
    "TransientLLMError",
    "get_provider",
]
