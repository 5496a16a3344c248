"""LLM client protocol and shared data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable


@dataclass
class Message:
    """A chat message."""

    role: str  # "system", "user", "assistant"
    content: str = ""
    image_urls: list[str] = field(default_factory=list)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str, image_urls: list[str] | None = None) -> Message:
        return cls(role="user", content=content, image_urls=list(image_urls or []))


@dataclass
class ChatOptions:
    """Per-call options. ``format="json"`` asks the model for a JSON reply."""

    format: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None


@dataclass
class LLMResponse:
    """Response from an LLM chat call; ``usage`` and ``finish_reason`` are the response info."""

    content: str = ""
    finish_reason: str | None = None
    usage: dict[str, int] = field(default_factory=dict)


@runtime_checkable
class LLMClient(Protocol):
    """Minimal protocol for LLM providers."""

    def chat(self, messages: list[Message], options: ChatOptions | None = None) -> LLMResponse: ...
