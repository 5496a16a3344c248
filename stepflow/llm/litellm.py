"""LiteLLM adapter supporting multiple providers."""

from __future__ import annotations

from typing import Any

from .adapter import ChatOptions, LLMResponse, Message
from .openai import OpenAIAdapter


class LiteLLMAdapter:
    """Adapter routing chat calls through ``litellm.completion``."""

    def __init__(
        self,
        model: str = "gemini/gemini-pro",
        api_key: str | None = None,
        temperature: float = 0.7,
        **config,
    ):
        try:
            import litellm
        except ImportError:
            raise ImportError("Install litellm: pip install 'stepflow[litellm]'")

        self.model = model
        self.temperature = temperature
        self.config = config
        if api_key:
            self.config["api_key"] = api_key
        self.litellm = litellm

    def chat(self, messages: list[Message], options: ChatOptions | None = None) -> LLMResponse:
        options = options or ChatOptions()
        request_kwargs: dict[str, Any] = {
            "model": self.model,
            # litellm accepts the OpenAI message shape
            "messages": [OpenAIAdapter._convert_message(m) for m in messages],
            "temperature": options.temperature if options.temperature is not None else self.temperature,
            **self.config,
        }
        if options.max_tokens is not None:
            request_kwargs["max_tokens"] = options.max_tokens
        if options.format == "json":
            request_kwargs["response_format"] = {"type": "json_object"}

        response = self.litellm.completion(**request_kwargs)
        choice = response.choices[0]

        usage = {}
        if getattr(response, "usage", None):
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=choice.message.content or "",
            finish_reason=choice.finish_reason,
            usage=usage,
        )
