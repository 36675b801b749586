from .base import BaseLLMProvider, ChatTransport
from .openai import OpenAIProvider
from .anthropic import AnthropicProvider
from .google import GoogleProvider
from .deepseek import DeepSeekProvider
from .huggingface import HuggingFaceProvider
from .registry import PROVIDER_REGISTRY, create_provider, resolve_provider_name

__all__ = [
    "BaseLLMProvider",
    "ChatTransport",
    "OpenAIProvider",
    "AnthropicProvider",
    "GoogleProvider",
    "DeepSeekProvider",
    "HuggingFaceProvider",
    "PROVIDER_REGISTRY",
    "create_provider",
    "resolve_provider_name",
]
