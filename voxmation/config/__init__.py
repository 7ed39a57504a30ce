"""
Configuration Management

Centralized configuration for:
- LLM providers (Groq, Gemini, OpenAI, Anthropic, Ollama)
- Document store backend
- Automation rule constants
- Logging
"""

import logging

from .settings import (
    AutomationConfig,
    LLMConfig,
    LLMProviderType,
    Settings,
    StoreBackendType,
    StoreConfig,
    get_settings
)
from .providers import (
    LLMProvider,
    get_chat_model
)


def configure_logging(level: str = None) -> None:
    """Configure root logging from settings."""
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )


def create_store(settings: Settings = None):
    """Build the configured document store."""
    from ..core.store import InMemoryDocumentStore, JsonFileDocumentStore

    settings = settings or get_settings()
    if settings.store.backend == StoreBackendType.JSON:
        return JsonFileDocumentStore(settings.store.path)
    return InMemoryDocumentStore()


__all__ = [
    "AutomationConfig",
    "LLMConfig",
    "LLMProviderType",
    "Settings",
    "StoreBackendType",
    "StoreConfig",
    "get_settings",
    "LLMProvider",
    "get_chat_model",
    "configure_logging",
    "create_store"
]
