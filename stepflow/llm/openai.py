"""OpenAI-compatible LLM adapter."""

from __future__ import annotations

from typing import Any

from .adapter import ChatOptions, LLMResponse, Message


class OpenAIAdapter:
    """Adapter for the OpenAI chat completions API."""

    def __init__(
        self,
        model: str = "gpt-4o",
        api_key: str | None = None,
        temperature: float = 0.7,
        **kwargs,
    ):
        try:
            import openai
        except ImportError:
            raise ImportError("Install openai: pip install 'stepflow[openai]'")
        self.model = model
        self.temperature = temperature
        self._client = openai.OpenAI(api_key=api_key, **kwargs)

    def chat(self, messages: list[Message], options: ChatOptions | None = None) -> LLMResponse:
        options = options or ChatOptions()
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": [self._convert_message(m) for m in messages],
            "temperature": options.temperature if options.temperature is not None else self.temperature,
        }
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.format == "json":
            kwargs["response_format"] = {"type": "json_object"}

        response = self._client.chat.completions.create(**kwargs)
        choice = response.choices[0]

        usage = {}
        if response.usage:
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

    @staticmethod
    def _convert_message(m: Message) -> dict[str, Any]:
        if not m.image_urls:
            return {"role": m.role, "content": m.content}
        parts: list[dict[str, Any]] = []
        if m.content:
            parts.append({"type": "text", "text": m.content})
        for url in m.image_urls:
            parts.append({"type": "image_url", "image_url": {"url": url}})
        return {"role": m.role, "content": parts}
