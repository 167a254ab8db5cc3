"""Abstract LLM provider protocol and the failure signals generation code reacts to."""

from dataclasses import dataclass
from typing import Any, Protocol


class LLMError(Exception):
    """Base class for generative-service failures."""


class CapacityExceededError(LLMError):
    """Input or output exceeded the service's size ceiling (incl. truncated output)."""


class TransientLLMError(LLMError):
    """Timeout, connection error, rate limit or 5xx; worth retrying after a pause."""


@dataclass
class Completion:
    """Raw text plus usage metadata from one generation call."""

    text: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None


class LLMProvider(Protocol):
    """Protocol for LLM backends (OpenAI, Anthropic)."""

    def complete(self, prompt: str, **kwargs: Any) -> str:
        """Return raw text completion."""
        ...

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> Completion:
        """Return a completion with usage.

        Raises CapacityExceededError or TransientLLMError for the failures
        callers handle specially; anything else propagates as-is.
        """
        ...
