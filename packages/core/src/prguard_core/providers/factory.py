from __future__ import annotations

from prguard_core.config import Settings
from prguard_core.errors import ConfigError
from prguard_core.providers.base import BaseProvider


def build_provider(settings: Settings) -> BaseProvider:
    if settings.model == "anthropic":
        if not settings.anthropic_api_key:
            raise ConfigError("ANTHROPIC_API_KEY environment variable is not set.")
        from prguard_core.providers.anthropic import AnthropicProvider

        return AnthropicProvider(api_key=settings.anthropic_api_key, model=settings.model_name)
    if settings.model == "openai":
        if not settings.openai_api_key:
            raise ConfigError("OPENAI_API_KEY environment variable is not set.")
        from prguard_core.providers.openai import OpenAIProvider

        return OpenAIProvider(api_key=settings.openai_api_key, model=settings.model_name)
    raise ConfigError(f"Unknown model provider: {settings.model!r}. Choose 'anthropic' or 'openai'.")
