from __future__ import annotations

from reviewscope_core.exceptions import ConfigurationError
from reviewscope_core.providers.anthropic import AnthropicProvider
from reviewscope_core.providers.base import BaseProvider
from reviewscope_core.providers.openai import OpenAIProvider

PROVIDERS: dict[str, type[BaseProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def create_provider(name: str, api_key: str) -> BaseProvider:
    """Construct a provider client for one job. Clients are never cached."""
    try:
        cls = PROVIDERS[name]
    except KeyError:
        raise ConfigurationError(f"Unknown LLM provider: {name!r}. Choose 'anthropic' or 'openai'.")
    if not api_key:
        raise ConfigurationError(f"No API key configured for provider {name!r}.")
    try:
        return cls(api_key=api_key)
    except ImportError as e:
        raise ConfigurationError(str(e)) from e
