from typing import Literal, List, Dict, Any, Union, TypedDict, Optional

# =============================================================================
# Type Definitions
# =============================================================================

# Supported LLM providers
Provider = Literal["google", "openai", "anthropic", "deepseek", "huggingface"]

# Roles accepted in a conversation
Role = Literal["system", "user", "assistant", "tool"]


class TextContent(TypedDict, total=False):
    """
    Text content part for multimodal messages.
    """
    type: Literal["text"]
    text: str


class ImageUrlDetail(TypedDict, total=False):
    """
    Image reference. The url must be a base64 data URI
    (data:<mime>;base64,<data>); remote URLs are rejected by every adapter.
    """
    url: str
    detail: Literal["auto", "low", "high"]  # OpenAI-specific


class ImageContent(TypedDict, total=False):
    """
    Image content part for multimodal messages (OpenAI format).
    """
    type: Literal["image_url"]
    image_url: ImageUrlDetail


# Content can be a simple string or a list of content parts (text + images)
ContentPart = Union[TextContent, ImageContent]
MessageContent = Union[str, List[ContentPart]]


# =============================================================================
# Tool Calling Type Definitions
# =============================================================================

class FunctionParameters(TypedDict, total=False):
    """
    JSON Schema for function parameters.
    """
    type: Literal["object"]
    properties: Dict[str, Any]
    required: List[str]


class FunctionDefinition(TypedDict, total=False):
    """
    Function definition for tools.
    """
    name: str
    description: str
    parameters: FunctionParameters


class Tool(TypedDict):
    """
    Tool definition in OpenAI format.
    """
    type: Literal["function"]
    function: FunctionDefinition


class ToolCall(TypedDict, total=False):
    """
    Tool call made by the assistant, kept in conversation history.
    """
    id: str
    name: str
    arguments: Dict[str, Any]  # Parsed JSON arguments


# =============================================================================
# Message and Request Types
# =============================================================================

class Message(TypedDict, total=False):
    """
    Provider-neutral chat message.

    Roles:
    - "system": System prompt / instructions
    - "user": User message
    - "assistant": Model response (may carry tool_calls)
    - "tool": Result of a tool call, answering the assistant turn before it
    """
    role: Role
    content: MessageContent
    tool_calls: List[ToolCall]  # For assistant messages
    tool_call_id: str  # For tool result messages
    name: str  # Tool name on tool results; looked up from tool_call_id if absent


class ChatStreamPayload(TypedDict, total=False):
    """
    A single generation request. Owned by the caller; adapters only read it.
    """
    messages: List[Message]
    model: str
    temperature: float
    tools: List[Tool]
    max_tokens: int
    top_p: float


# =============================================================================
# Stream Types
# =============================================================================

class ToolCallFragment(TypedDict, total=False):
    """
    Incremental piece of a tool call. `arguments` is JSON text and may be
    partial; fragments sharing an index belong to the same call.
    """
    index: int
    id: str
    name: str
    arguments: str


class StreamChunk(TypedDict, total=False):
    """
    Canonical unit of streamed output.
    """
    type: Literal["text", "tool_calls"]
    provider: str
    text: str
    tool_calls: List[ToolCallFragment]


class StreamMeta(TypedDict, total=False):
    """
    Summary available on a ChatStream once it has been fully consumed.
    """
    model: str
    usage: Optional[Dict[str, Any]]
    finish_reason: Optional[str]
    latency_ms: float
