"""
LLM Providers for taskloop.

- OpenAILLMProvider: GPT-4o and GPT-4o-mini
- AnthropicLLMProvider: Claude models
"""

from .base import BaseLLMProvider, LLMConfig, LLMProvider, LLMResponse, Message, MessageRole
from .openai import AnthropicLLMProvider, OpenAILLMProvider

__all__ = [
    "AnthropicLLMProvider",
    "BaseLLMProvider",
    "LLMConfig",
    "LLMProvider",
    "LLMResponse",
    "Message",
    "MessageRole",
    "OpenAILLMProvider",
]
