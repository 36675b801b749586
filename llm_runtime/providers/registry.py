from typing import Dict, Optional, Type

from .anthropic import AnthropicProvider
from .base import BaseLLMProvider, ChatTransport
from .deepseek import DeepSeekProvider
from .google import GoogleProvider
from .huggingface import HuggingFaceProvider
from .openai import OpenAIProvider
from ..config import load_provider_config

PROVIDER_REGISTRY: Dict[str, Type[BaseLLMProvider]] = {
    "google": GoogleProvider,
    "openai": OpenAIProvider,
    "anthropic": AnthropicProvider,
    "deepseek": DeepSeekProvider,
    "huggingface": HuggingFaceProvider,
}

PROVIDER_ALIASES = {
    "gemini": "google",
    "claude": "anthropic",
}


def resolve_provider_name(provider: str) -> str:
    """
    Normalize a provider name, mapping aliases like 'claude' -> 'anthropic'.

    Raises:
        ValueError: If the provider is not supported.
    """
    name = provider.lower()
    name = PROVIDER_ALIASES.get(name, name)
    if name not in PROVIDER_REGISTRY:
        raise ValueError(
            f"Unknown provider: {provider}. Use one of: {', '.join(sorted(PROVIDER_REGISTRY))}"
        )
    return name


def create_provider(
    provider: str,
    transport: Optional[ChatTransport] = None,
    **options,
) -> BaseLLMProvider:
    """
    Instantiate the adapter for a provider.

    Configuration is resolved from the environment (see config.load_provider_config);
    keyword options (api_key, base_url, debug, timeout) take precedence.

    Raises:
        ValueError: If the provider is not supported.
        AgentRuntimeError: InvalidAPIKey if no API key is configured,
                           CallerInputError for a malformed LLM_RUNTIME_TIMEOUT.
    """
    name = resolve_provider_name(provider)
    config = load_provider_config(name, **options)
    return PROVIDER_REGISTRY[name].from_config(config, transport=transport)
