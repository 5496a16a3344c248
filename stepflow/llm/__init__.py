"""LLM adapter layer."""

from .adapter import ChatOptions, LLMClient, LLMResponse, Message
from .factory import create_llm_client

__all__ = ["ChatOptions", "LLMClient", "LLMResponse", "Message", "create_llm_client"]
