"""LLM module - provides a unified interface for chat-completion providers."""

from .base import LLMProvider, LLMMessage, LLMResponse
from .openai_compatible import OpenAICompatibleProvider
from .factory import create_llm_provider

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'LLMResponse',
    'OpenAICompatibleProvider',
    'create_llm_provider',
]
