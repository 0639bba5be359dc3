"""
AI capability: the structured-generation contract and its HTTP adapter.
"""

from .chat_completions import ChatCompletionsGenerator
from .selector import build_generator
from .types import (
    AIProviderError,
    ChatMessage,
    GenerationError,
    ProviderUnavailableError,
    StructuredGenerationResult,
    StructuredGenerator,
    StructuredOutputError,
    TokenUsage,
)

__all__ = [
    "AIProviderError",
    "ChatCompletionsGenerator",
    "ChatMessage",
    "GenerationError",
    "ProviderUnavailableError",
    "StructuredGenerationResult",
    "StructuredGenerator",
    "StructuredOutputError",
    "TokenUsage",
    "build_generator",
]
