"""Provider handlers built on the transport selector."""

from ai_providers.handlers.base import ProviderHandler, build_messages
from ai_providers.handlers.ollama import OllamaHandler
from ai_providers.handlers.openai import OpenAIHandler

__all__ = ["OllamaHandler", "OpenAIHandler", "ProviderHandler", "build_messages"]
