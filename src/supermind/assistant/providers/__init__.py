"""LLM provider implementations."""

from .anthropic import AnthropicProvider
from .base import BaseLLMProvider, LLMProviderConfig, LLMProviderError
from .openai import OpenAIProvider

__all__ = [
    "AnthropicProvider",
    "BaseLLMProvider",
    "LLMProviderConfig",
    "LLMProviderError",
    "OpenAIProvider",
]
