from typing import Dict, Any, List, AsyncIterator, Optional, Tuple

from anthropic import AsyncAnthropic

from .base import BaseLLMProvider
from ..config import ProviderConfig
from ..errors import AgentRuntimeError
from ..schema import sanitize_json_schema
from ..stream import StreamTransformer
from ..types import ChatStreamPayload, Message, StreamChunk, Tool
from ..utils import content_text, parse_image_part

# Claude requires max_tokens on every request
DEFAULT_MAX_TOKENS = 4096


class AnthropicTransport:
    """
    Streaming transport over the Anthropic Messages API.
    """

    def __init__(self, config: ProviderConfig):
        self.client = AsyncAnthropic(api_key=config.api_key, base_url=config.base_url)

    async def stream(self, model: str, payload: Dict[str, Any]) -> AsyncIterator[Any]:
        return await self.client.messages.create(model=model, stream=True, **payload)

    async def list_models(self) -> List[str]:
        models = await self.client.models.list()
        return [m.id for m in models.data]


class AnthropicStreamTransformer(StreamTransformer):
    """
    Converts raw Messages API stream events into canonical chunks.
    """

    def __init__(self, provider: str, model: str):
        super().__init__(provider, model)
        self._input_tokens: Optional[int] = None

    def transform(self, fragment: Any) -> List[StreamChunk]:
        event_type = getattr(fragment, "type", None)

        if event_type == "message_start":
            usage = getattr(fragment.message, "usage", None)
            if usage is not None:
                self._input_tokens = usage.input_tokens
            return []

        if event_type == "content_block_start":
            block = fragment.content_block
            if getattr(block, "type", None) == "tool_use":
                return [self.tool_calls_chunk([{
                    "index": fragment.index,
                    "id": block.id,
                    "name": block.name,
                    "arguments": "",
                }])]
            return []

        if event_type == "content_block_delta":
            delta = fragment.delta
            delta_type = getattr(delta, "type", None)
            if delta_type == "text_delta" and delta.text:
                return [self.text_chunk(delta.text)]
            if delta_type == "input_json_delta" and delta.partial_json:
                return [self.tool_calls_chunk([{
                    "index": fragment.index,
                    "arguments": delta.partial_json,
                }])]
            return []

        if event_type == "message_delta":
            if fragment.delta.stop_reason:
                self.finish_reason = fragment.delta.stop_reason
            usage = getattr(fragment, "usage", None)
            if usage is not None:
                self.usage = BaseLLMProvider.normalize_usage(
                    self.provider,
                    input_tokens=self._input_tokens,
                    output_tokens=usage.output_tokens,
                    total_tokens=None,
                    raw={
                        "input_tokens": self._input_tokens,
                        "output_tokens": usage.output_tokens,
                    },
                )
        return []


class AnthropicProvider(BaseLLMProvider):
    """
    Provider for Anthropic (Claude) API.
    """

    provider_name = "anthropic"

    def _create_transport(self, config: ProviderConfig) -> AnthropicTransport:
        return AnthropicTransport(config)

    def create_transformer(self, model: str) -> AnthropicStreamTransformer:
        return AnthropicStreamTransformer(self.provider_name, model)

    def build_payload(
        self,
        request: ChatStreamPayload,
        messages: List[Message],
        model: str,
    ) -> Dict[str, Any]:
        system_text, converted_messages = self.convert_messages(messages)

        payload: Dict[str, Any] = {
            "messages": converted_messages,
            "max_tokens": request.get("max_tokens") or DEFAULT_MAX_TOKENS,
        }

        optional_params = {
            "system": system_text,
            "temperature": request.get("temperature"),
            "top_p": request.get("top_p"),
            "tools": self.convert_tools(request.get("tools")),
        }
        payload.update({k: v for k, v in optional_params.items() if v is not None})
        return payload

    def convert_messages(
        self,
        messages: List[Message],
    ) -> Tuple[Optional[str], List[Dict[str, Any]]]:
        """
        Convert messages to Claude format.

        Anthropic's API differs from OpenAI's in that 'system' messages are passed
        as a separate top-level parameter, not within the `messages` list, and
        tool results are 'tool_result' blocks inside a user turn.

        Args:
            messages (List[Message]): Validated message list.

        Returns:
            Tuple containing:
            - system_text: Joined system prompt (or None)
            - converted: List of message dicts suitable for the API

        Raises:
            AgentRuntimeError: CallerInputError for remote image URLs or unknown parts.
        """
        system_parts = []
        converted = []

        for msg in messages:
            role = msg["role"]
            content = msg["content"]

            if role == "system":
                system_parts.append(content_text(content))
                continue

            if role == "tool":
                result_block = {
                    "type": "tool_result",
                    "tool_use_id": msg["tool_call_id"],
                    "content": content_text(content),
                }
                # Results for one assistant turn travel together in a single user turn
                if converted and self._is_tool_results(converted[-1]):
                    converted[-1]["content"].append(result_block)
                else:
                    converted.append({"role": "user", "content": [result_block]})
                continue

            blocks: List[Dict[str, Any]] = []
            if isinstance(content, str):
                if content:
                    blocks.append({"type": "text", "text": content})
            else:
                for part in content:
                    if part.get("type") == "text":
                        blocks.append({"type": "text", "text": part.get("text", "")})
                    elif part.get("type") == "image_url":
                        media_type, b64_data = parse_image_part(part, self.provider_name)
                        blocks.append({
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": b64_data,
                            },
                        })
                    else:
                        raise AgentRuntimeError.caller_input(
                            self.provider_name,
                            f"Unsupported content part type: {part.get('type')!r}",
                        )

            if role == "assistant":
                for tc in msg.get("tool_calls") or []:
                    blocks.append({
                        "type": "tool_use",
                        "id": tc["id"],
                        "name": tc["name"],
                        "input": tc.get("arguments", {}),
                    })

            if isinstance(content, str) and content and not msg.get("tool_calls"):
                converted.append({"role": role, "content": content})
            elif blocks:
                converted.append({"role": role, "content": blocks})

        system_text = "\n\n".join(system_parts) if system_parts else None
        return system_text, converted

    @staticmethod
    def _is_tool_results(message: Dict[str, Any]) -> bool:
        content = message.get("content")
        return (
            message.get("role") == "user"
            and isinstance(content, list)
            and all(block.get("type") == "tool_result" for block in content)
        )

    @staticmethod
    def convert_tools(tools: Optional[List[Tool]]) -> Optional[List[Dict[str, Any]]]:
        """
        Convert OpenAI-format tools to Claude format.

        Claude uses 'input_schema' instead of 'parameters'.
        """
        if not tools:
            return None

        claude_tools = []
        for tool in tools:
            func = tool.get("function", {})
            schema = func.get("parameters") or {"type": "object", "properties": {}}
            claude_tools.append({
                "name": func.get("name", ""),
                "description": func.get("description", ""),
                "input_schema": sanitize_json_schema(schema),
            })
        return claude_tools
