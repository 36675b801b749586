import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, Any, List, AsyncIterator, Optional, Protocol, runtime_checkable

from ..config import ProviderConfig
from ..debug_stream import DebugStreamSink
from ..errors import AgentRuntimeError, normalize_error
from ..stream import ChatStream, StreamTransformer
from ..types import ChatStreamPayload, Message
from ..utils import validate_messages

logger = logging.getLogger(__name__)


@runtime_checkable
class ChatTransport(Protocol):
    """
    A streaming chat transport: the only part of an adapter that talks to the network.

    Adapters receive one at construction. The default implementations wrap the
    vendor SDKs; tests pass fakes.
    """

    async def stream(self, model: str, payload: Dict[str, Any]) -> AsyncIterator[Any]:
        """Open a streamed generation and return the vendor's fragment iterator."""
        ...

    async def list_models(self) -> List[str]:
        """Return the model identifiers available to these credentials."""
        ...


class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM provider adapters.

    An adapter is built once per set of credentials and holds only immutable
    configuration plus its transport, so one instance can serve concurrent calls.

    Args:
        api_key (str): Provider API key. Missing keys fail here, before any
                       SDK client is created.
        base_url (str, optional): Custom endpoint replacing the vendor default.
        debug (bool): Tee response streams into the debug sink by default.
        timeout (float, optional): Seconds allowed for opening the stream and
                                   for each chunk. None waits indefinitely.
        transport (ChatTransport, optional): Transport to use instead of the
                                             SDK-backed default.

    Raises:
        AgentRuntimeError: InvalidAPIKey when no API key is given.
    """

    provider_name: str = ""
    default_base_url: Optional[str] = None

    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        debug: bool = False,
        timeout: Optional[float] = None,
        transport: Optional[ChatTransport] = None,
    ):
        if not api_key:
            raise AgentRuntimeError.missing_api_key(self.provider_name)

        self.config = ProviderConfig(
            api_key=api_key,
            base_url=base_url or self.default_base_url,
            debug=debug,
            timeout=timeout,
        )
        self.transport: ChatTransport = transport or self._create_transport(self.config)

    @classmethod
    def from_config(cls, config: ProviderConfig, transport: Optional[ChatTransport] = None):
        return cls(
            config.api_key,
            base_url=config.base_url,
            debug=config.debug,
            timeout=config.timeout,
            transport=transport,
        )

    async def chat(
        self,
        request: ChatStreamPayload,
        *,
        debug: Optional[bool] = None,
    ) -> ChatStream:
        """
        Start a streamed chat generation.

        Steps: validate messages -> select model -> translate the request ->
        open the vendor stream -> wrap it as a ChatStream. Any failure along
        the way is raised as an AgentRuntimeError.

        Args:
            request (ChatStreamPayload): messages, model, temperature and optional tools.
            debug (bool, optional): Overrides the adapter's debug setting for this call.

        Returns:
            ChatStream: The canonical chunk stream.

        Raises:
            AgentRuntimeError: On invalid input or any vendor failure.
        """
        try:
            if not request.get("model"):
                raise AgentRuntimeError.caller_input(self.provider_name, "Request has no model")
            messages = validate_messages(request.get("messages") or [], self.provider_name)
            model = self.select_model(request["model"], messages)
            payload = self.build_payload(request, messages, model)
            logger.debug("%s chat with model %s", self.provider_name, model)

            opening = self.transport.stream(model, payload)
            if self.config.timeout is not None:
                source = await asyncio.wait_for(opening, self.config.timeout)
            else:
                source = await opening
        except Exception as exc:
            error = normalize_error(exc, self.provider_name)
            logger.warning("%s chat failed: %s", self.provider_name, error)
            raise error from exc

        use_debug = self.config.debug if debug is None else debug
        return ChatStream(
            source,
            self.create_transformer(model),
            timeout=self.config.timeout,
            debug_sink=DebugStreamSink(self.provider_name, model) if use_debug else None,
        )

    async def list_models(self) -> List[str]:
        """
        Get list of available models from the provider.

        Raises:
            AgentRuntimeError: If the provider call fails.
        """
        try:
            return await self.transport.list_models()
        except Exception as exc:
            error = normalize_error(exc, self.provider_name)
            logger.warning("%s list_models failed: %s", self.provider_name, error)
            raise error from exc

    def select_model(self, model: str, messages: List[Message]) -> str:
        """
        Effective backend model for the request. Identity unless the vendor
        ships separate variants per input modality.
        """
        return model

    @abstractmethod
    def _create_transport(self, config: ProviderConfig) -> ChatTransport:
        """Build the SDK-backed default transport."""

    @abstractmethod
    def build_payload(
        self,
        request: ChatStreamPayload,
        messages: List[Message],
        model: str,
    ) -> Dict[str, Any]:
        """
        Translate a request into the vendor's native request fields.
        Must not touch the network.
        """

    @abstractmethod
    def create_transformer(self, model: str) -> StreamTransformer:
        """Create the per-call stream transformer."""

    @staticmethod
    def normalize_usage(
        provider: str,
        *,
        input_tokens: Optional[int],
        output_tokens: Optional[int],
        total_tokens: Optional[int],
        raw: Optional[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Normalize token usage information across providers.

        Creates a standardized dictionary structure for token usage statistics,
        optionally calculating totals if missing.

        Args:
            provider (str): Name of the provider.
            input_tokens (int, optional): Number of prompt tokens.
            output_tokens (int, optional): Number of generated tokens.
            total_tokens (int, optional): Total token count.
            raw (dict, optional): Raw usage data from the provider response.

        Returns:
            Dict[str, Any]: Standardized usage dictionary.
        """
        if total_tokens is None and input_tokens is not None and output_tokens is not None:
            total_tokens = input_tokens + output_tokens

        return {
            "input_tokens": input_tokens,
            "output_tokens": output_tokens,
            "total_tokens": total_tokens,
            "raw": {
                "provider": provider,
                **(raw or {}),
            } if raw is not None else None,
        }
