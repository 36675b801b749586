import base64
import binascii
import json
from typing import Union, List, Optional, Dict, Any, Literal, Tuple

from .errors import AgentRuntimeError
from .types import Message, ContentPart, ImageContent, Tool, ToolCall, ImageUrlDetail

VALID_ROLES = ("system", "user", "assistant", "tool")

# =============================================================================
# Image Helpers
# =============================================================================

def parse_data_uri(url: str) -> Tuple[str, str]:
    """
    Split a base64 data URI into its MIME type and payload.

    Args:
        url (str): A data URI of the form data:<mime>;base64,<data>.

    Returns:
        Tuple[str, str]: (mime_type, b64_data).

    Raises:
        ValueError: If the url is not a base64 data URI.
    """
    if not url.startswith("data:") or "," not in url:
        raise ValueError("Image URL must be a base64 data URI")

    header, data = url.split(",", 1)
    params = header[len("data:"):].split(";")
    if "base64" not in params[1:] or not data:
        raise ValueError("Image URL must be a base64 data URI")

    mime_type = params[0] or "application/octet-stream"
    return mime_type, data


def parse_image_part(part: ImageContent, provider: str) -> Tuple[str, str]:
    """
    Extract inline image data from an image content part.

    Only inline base64 images are accepted. A remote URL is a caller error and
    is rejected here, before any request is dispatched.

    Args:
        part (ImageContent): The image_url content part.
        provider (str): Provider identifier, used for the error.

    Returns:
        Tuple[str, str]: (mime_type, b64_data).

    Raises:
        AgentRuntimeError: CallerInputError if the image is not a data URI.
    """
    url = (part.get("image_url") or {}).get("url") or ""
    try:
        return parse_data_uri(url)
    except ValueError:
        raise AgentRuntimeError.caller_input(
            provider,
            f"Image content must be inline base64 data, got: {url[:50]}",
        ) from None


def decode_image_data(b64_data: str, provider: str) -> bytes:
    """
    Decode an inline image payload, raising CallerInputError on bad base64.
    """
    try:
        return base64.b64decode(b64_data, validate=True)
    except (binascii.Error, ValueError):
        raise AgentRuntimeError.caller_input(provider, "Image data is not valid base64") from None


def create_image_content(
    data: Union[bytes, str],
    mime_type: Optional[str] = None,
    *,
    detail: Optional[Literal["auto", "low", "high"]] = None,
) -> ImageContent:
    """
    Build an inline image content part.

    Args:
        data: Raw image bytes, base64 text, or a complete data URI.
        mime_type (str, optional): Required unless `data` is already a data URI.
        detail (str, optional): Detail level for OpenAI vision ('auto', 'low', 'high').

    Raises:
        ValueError: For remote URLs, or when the MIME type is missing.
    """
    if isinstance(data, bytes):
        data = base64.b64encode(data).decode("utf-8")

    if data.startswith("data:"):
        url = data
    elif data.startswith(("http://", "https://")):
        raise ValueError(
            "Remote image URLs are not supported; download the image and pass its bytes instead."
        )
    elif mime_type:
        url = f"data:{mime_type};base64,{data}"
    else:
        raise ValueError("mime_type is required for raw image data")

    image_url: ImageUrlDetail = {"url": url}
    if detail:
        image_url["detail"] = detail
    return {"type": "image_url", "image_url": image_url}


# =============================================================================
# Message Helpers
# =============================================================================

def validate_messages(messages: List[Message], provider: str) -> List[Message]:
    """
    Check message shape and normalize missing content.

    Returns shallow copies so the caller's request is never mutated.

    Args:
        messages (List[Message]): Conversation history.
        provider (str): Provider identifier, used for errors.

    Returns:
        List[Message]: Messages whose content is never None.

    Raises:
        AgentRuntimeError: CallerInputError on an unknown role, bad content,
                           an empty part list, a tool call without id/name,
                           or a tool result without tool_call_id.
    """
    validated: List[Message] = []
    for index, msg in enumerate(messages):
        role = msg.get("role")
        if role not in VALID_ROLES:
            raise AgentRuntimeError.caller_input(
                provider, f"Message {index} has unsupported role: {role!r}"
            )

        content = msg.get("content")
        if content is None:
            content = ""
        elif not isinstance(content, (str, list)):
            raise AgentRuntimeError.caller_input(
                provider, f"Message {index} content must be a string or a list of parts"
            )
        elif isinstance(content, list) and not content:
            raise AgentRuntimeError.caller_input(
                provider, f"Message {index} has an empty list of content parts"
            )

        if role == "tool" and not msg.get("tool_call_id"):
            raise AgentRuntimeError.caller_input(
                provider, f"Message {index} is a tool result without tool_call_id"
            )
        for tc in msg.get("tool_calls") or []:
            if not tc.get("id") or not tc.get("name"):
                raise AgentRuntimeError.caller_input(
                    provider, f"Message {index} has a tool call without id or name"
                )

        validated.append({**msg, "content": content})
    return validated


def content_text(content: Union[str, List[ContentPart]]) -> str:
    """
    Join the text parts of a message content, ignoring images.
    """
    if isinstance(content, str):
        return content
    return "\n".join(part.get("text", "") for part in content if part.get("type") == "text")


def tool_call_names(messages: List[Message]) -> Dict[str, str]:
    """
    Map tool call ids to function names over the assistant turns of a history.
    """
    return {
        tc["id"]: tc["name"]
        for msg in messages
        if msg.get("role") == "assistant"
        for tc in msg.get("tool_calls") or []
    }


# =============================================================================
# Tool Calling Helpers
# =============================================================================

def create_tool(
    name: str,
    description: str,
    parameters: Optional[Dict[str, Any]] = None,
) -> Tool:
    """
    Create a function tool definition.

    Tools are declared once in OpenAI's function shape; each adapter
    translates them to its vendor's format.

    Args:
        name (str): Function name the model will call.
        description (str): What the tool does.
        parameters (Dict, optional): JSON Schema object for the arguments.
                                     Defaults to an object with no properties.
    """
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": parameters or {"type": "object", "properties": {}},
        },
    }


def create_assistant_message_with_tool_calls(
    content: str,
    tool_calls: List[ToolCall],
) -> Message:
    """
    Create an assistant message that includes tool calls, for replaying
    a conversation that contained function calls.
    """
    return {
        "role": "assistant",
        "content": content,
        "tool_calls": tool_calls,
    }


def create_tool_result(
    tool_call_id: str,
    result: Any,
    name: Optional[str] = None,
) -> Message:
    """
    Create the tool message answering a tool call.

    Args:
        tool_call_id (str): Id of the call being answered.
        result: Tool output. Non-string values are JSON-encoded.
        name (str, optional): Function name. Google needs it; when omitted it
                              is looked up from the matching assistant tool call.
    """
    message: Message = {
        "role": "tool",
        "tool_call_id": tool_call_id,
        "content": result if isinstance(result, str) else json.dumps(result, ensure_ascii=False),
    }
    if name:
        message["name"] = name
    return message
