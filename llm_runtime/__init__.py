from .client import AgentRuntime
from .config import ProviderConfig, load_provider_config
from .errors import AgentRuntimeError, AgentRuntimeErrorType, normalize_error
from .model_selector import select_model
from .providers import (
    BaseLLMProvider,
    ChatTransport,
    GoogleProvider,
    OpenAIProvider,
    AnthropicProvider,
    DeepSeekProvider,
    HuggingFaceProvider,
    create_provider,
)
from .stream import ChatStream
from .utils import (
    create_image_content, create_tool, create_assistant_message_with_tool_calls,
    create_tool_result,
)
from .types import (
    Message, Tool, ToolCall, ContentPart, ImageContent, TextContent,
    Provider, ChatStreamPayload, StreamChunk,
)

__all__ = [
    "AgentRuntime",
    "AgentRuntimeError",
    "AgentRuntimeErrorType",
    "normalize_error",
    "ProviderConfig",
    "load_provider_config",
    "select_model",
    "BaseLLMProvider",
    "ChatTransport",
    "GoogleProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "DeepSeekProvider",
    "HuggingFaceProvider",
    "create_provider",
    "ChatStream",
    "Message",
    "Tool",
    "ToolCall",
    "ContentPart",
    "ImageContent",
    "TextContent",
    "Provider",
    "ChatStreamPayload",
    "StreamChunk",
    "create_image_content",
    "create_tool",
    "create_assistant_message_with_tool_calls",
    "create_tool_result",
]
