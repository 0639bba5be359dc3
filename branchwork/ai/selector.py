"""
Provider selection.

``build_generator`` is an explicit factory: callers construct the generator
once (at app startup, in the CLI, in tests) and pass it into the services
that need it. Nothing is cached at module level.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from ..config import Settings, get_settings
from .chat_completions import ChatCompletionsGenerator
from .types import StructuredGenerator

logger = logging.getLogger(__name__)

# Auto-detection order when no provider is forced
PROVIDER_PRIORITY = ("openai", "xai", "ollama")


def _openai(settings: Settings) -> Optional[StructuredGenerator]:
    if not settings.openai_api_key:
        return None
    return ChatCompletionsGenerator(
        name="openai",
        base_url=settings.openai_base_url,
        default_model=settings.openai_default_model,
        api_key=settings.openai_api_key,
        timeout=settings.ai_timeout_seconds,
        max_retries=settings.ai_max_retries,
    )


def _xai(settings: Settings) -> Optional[StructuredGenerator]:
    if not settings.xai_api_key:
        return None
    return ChatCompletionsGenerator(
        name="xai",
        base_url=settings.xai_base_url,
        default_model=settings.xai_default_model,
        api_key=settings.xai_api_key,
        timeout=settings.ai_timeout_seconds,
        max_retries=settings.ai_max_retries,
    )


def _ollama(settings: Settings) -> Optional[StructuredGenerator]:
    if not settings.ollama_enabled:
        return None
    return ChatCompletionsGenerator(
        name="ollama",
        base_url=settings.ollama_base_url,
        default_model=settings.ollama_default_model,
        timeout=settings.ai_timeout_seconds,
        max_retries=settings.ai_max_retries,
    )


_FACTORIES: Dict[str, Callable[[Settings], Optional[StructuredGenerator]]] = {
    "openai": _openai,
    "xai": _xai,
    "ollama": _ollama,
}


def build_generator(settings: Optional[Settings] = None) -> Optional[StructuredGenerator]:
    """Build the configured generator, or return None if none is available.

    Selection order:
    1. ``AI_PROVIDER`` when set and its credentials are present
    2. the first provider of ``PROVIDER_PRIORITY`` with credentials
    """
    settings = settings or get_settings()

    explicit = (settings.ai_provider or "").strip().lower()
    if explicit:
        factory = _FACTORIES.get(explicit)
        generator = factory(settings) if factory else None
        if generator is not None:
            return generator
        logger.warning(
            f'Requested AI provider "{explicit}" is not available. '
            "Falling back to auto-detection."
        )

    for name in PROVIDER_PRIORITY:
        generator = _FACTORIES[name](settings)
        if generator is not None:
            return generator

    return None
