from typing import Optional, Dict, List

from .config import load_provider_config
from .providers.base import BaseLLMProvider
from .providers.registry import PROVIDER_REGISTRY, resolve_provider_name
from .stream import ChatStream
from .types import ChatStreamPayload


class AgentRuntime:
    """
    Single entry point over the provider adapters.

    Holds one adapter per configured provider, keyed by provider id, and
    routes calls to them. Adapters are immutable, so one runtime can serve
    concurrent chats.
    """

    def __init__(self, providers: Optional[Dict[str, BaseLLMProvider]] = None):
        """
        Args:
            providers: Adapters keyed by provider id (aliases are accepted).
        """
        self.providers: Dict[str, BaseLLMProvider] = {}
        for name, provider in (providers or {}).items():
            self.providers[resolve_provider_name(name)] = provider

    @classmethod
    def from_env(cls, *providers: str) -> "AgentRuntime":
        """
        Build adapters for every provider whose API key is configured.

        Providers without a key are skipped so the runtime can work with a
        subset of providers.

        Args:
            *providers: Provider ids to consider. Defaults to all supported providers.
        """
        names = [resolve_provider_name(p) for p in providers] or list(PROVIDER_REGISTRY)
        configured: Dict[str, BaseLLMProvider] = {}
        for name in names:
            config = load_provider_config(name)
            if not config.api_key:
                continue
            configured[name] = PROVIDER_REGISTRY[name].from_config(config)
        return cls(configured)

    def get_provider(self, provider: str) -> BaseLLMProvider:
        """
        Look up a configured adapter.

        Raises:
            ValueError: If the provider is not configured or not supported.
        """
        try:
            name = resolve_provider_name(provider)
        except ValueError:
            name = provider
        if name not in self.providers:
            raise ValueError(f"Provider '{provider}' not configured or not supported.")
        return self.providers[name]

    async def chat(
        self,
        provider: str,
        request: ChatStreamPayload,
        *,
        debug: Optional[bool] = None,
    ) -> ChatStream:
        """
        Start a streamed chat with the given provider.

        Args:
            provider (str): The provider name (e.g., 'google', 'openai', 'anthropic').
            request (ChatStreamPayload): messages, model, temperature and optional tools.
            debug (bool, optional): Per-call override of the adapter's debug tee.

        Returns:
            ChatStream: Async iterator of StreamChunk dictionaries:
                - {"type": "text", "provider": "google", "text": "Hello"}
                - {"type": "tool_calls", "provider": "openai", "tool_calls": [...]}

        Raises:
            ValueError: If the provider is not configured.
            AgentRuntimeError: On invalid input or any vendor failure.
        """
        return await self.get_provider(provider).chat(request, debug=debug)

    async def list_models(self, provider: str) -> List[str]:
        """
        Get the list of available models for a specific provider.

        Raises:
            ValueError: If the provider is not configured.
            AgentRuntimeError: If the provider call fails.
        """
        return await self.get_provider(provider).list_models()
