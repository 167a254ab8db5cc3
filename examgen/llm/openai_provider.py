"""OpenAI LLM implementation; maps SDK errors onto capacity / transient signals."""

from typing import Any

from openai import (
    APIConnectionError,
    APITimeoutError,
    BadRequestError,
    InternalServerError,
    OpenAI,
    RateLimitError,
)

from examgen.llm.base import CapacityExceededError, Completion, TransientLLMError

_CAPACITY_MARKERS = ("context_length_exceeded", "maximum context length", "too many tokens")


class OpenAIProvider:
    """OpenAI chat completion."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "gpt-4o",
        timeout: float = 120.0,
    ):
        # Retries are owned by the caller's retry policy
        self._client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model

    def complete(self, prompt: str, **kwargs: Any) -> str:
        return self.generate(
            prompt,
            max_tokens=kwargs.get("max_tokens", 4000),
            temperature=kwargs.get("temperature", 0.7),
            model=kwargs.get("model"),
        ).text

    def generate(
        self,
        prompt: str,
        *,
        max_tokens: int,
        temperature: float,
        model: str | None = None,
    ) -> Completion:
        try:
            response = self._client.chat.completions.create(
                model=model or self._model,
                messages=[{"role": "user", "content": prompt}],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except BadRequestError as e:
            message = str(e).lower()
            if any(marker in message for marker in _CAPACITY_MARKERS):
                raise CapacityExceededError(str(e)) from e
            raise
        except (APITimeoutError, APIConnectionError, RateLimitError, InternalServerError) as e:
            raise TransientLLMError(str(e)) from e

        choice = response.choices[0]
        if choice.finish_reason == "length":
            raise CapacityExceededError(f"Output truncated at max_tokens={max_tokens}")
        usage = response.usage
        return Completion(
            text=choice.message.content or "",
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            finish_reason=choice.finish_reason,
        )
