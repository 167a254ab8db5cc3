"""Anthropic LLM implementation; maps SDK errors onto capacity / transient signals."""

from typing import Any

from anthropic import (
    Anthropic,
    APIConnectionError,
    APITimeoutError,
    BadRequestError,
    InternalServerError,
    RateLimitError,
)

from examgen.llm.base import CapacityExceededError, Completion, TransientLLMError


class AnthropicProvider:
    """Anthropic messages API."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = "claude-3-5-sonnet-20241022",
        timeout: float = 120.0,
    ):
        self._client = Anthropic(api_key=api_key, timeout=timeout, max_retries=0)
        self._model = model

    def complete(self, prompt: str, **kwargs: Any) -> str:
        return self.generate(
            prompt,
            max_tokens=kwargs.get("max_tokens", 4096),
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
            response = self._client.messages.create(
                model=model or self._model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except BadRequestError as e:
            if "too long" in str(e).lower():
                raise CapacityExceededError(str(e)) from e
            raise
        except (APITimeoutError, APIConnectionError, RateLimitError, InternalServerError) as e:
            raise TransientLLMError(str(e)) from e

        if response.stop_reason == "max_tokens":
            raise CapacityExceededError(f"Output truncated at max_tokens={max_tokens}")
        text = "".join(block.text for block in response.content if block.type == "text")
        return Completion(
            text=text,
            prompt_tokens=response.usage.input_tokens,
            completion_tokens=response.usage.output_tokens,
            finish_reason=response.stop_reason,
        )
