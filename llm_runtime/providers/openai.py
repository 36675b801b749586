import json
from typing import Dict, Any, List, AsyncIterator

from openai import AsyncOpenAI

from .base import BaseLLMProvider
from ..config import ProviderConfig
from ..errors import AgentRuntimeError
from ..stream import StreamTransformer
from ..types import ChatStreamPayload, Message, StreamChunk, ToolCallFragment
from ..utils import content_text, parse_image_part


class OpenAITransport:
    """
    Streaming transport for OpenAI-compatible APIs.
    """

    def __init__(self, config: ProviderConfig):
        self.client = AsyncOpenAI(api_key=config.api_key, base_url=config.base_url)

    async def stream(self, model: str, payload: Dict[str, Any]) -> AsyncIterator[Any]:
        return await self.client.chat.completions.create(model=model, stream=True, **payload)

    async def list_models(self) -> List[str]:
        models = await self.client.models.list()
        return [m.id for m in models.data]


class OpenAIStreamTransformer(StreamTransformer):
    """
    Converts ChatCompletionChunk objects into canonical chunks.
    """

    def transform(self, fragment: Any) -> List[StreamChunk]:
        usage = getattr(fragment, "usage", None)
        if usage is not None:
            self.usage = BaseLLMProvider.normalize_usage(
                self.provider,
                input_tokens=usage.prompt_tokens,
                output_tokens=usage.completion_tokens,
                total_tokens=usage.total_tokens,
                raw={
                    "prompt_tokens": usage.prompt_tokens,
                    "completion_tokens": usage.completion_tokens,
                    "total_tokens": usage.total_tokens,
                },
            )

        if not fragment.choices:
            return []

        choice = fragment.choices[0]
        if choice.finish_reason:
            self.finish_reason = choice.finish_reason

        delta = choice.delta
        chunks: List[StreamChunk] = []

        content = delta.content
        if content:
            # Handle both list and string content
            if isinstance(content, list):
                piece = "".join(part.get("text", "") for part in content if isinstance(part, dict))
            else:
                piece = str(content)
            if piece:
                chunks.append(self.text_chunk(piece))

        if getattr(delta, "tool_calls", None):
            fragments: List[ToolCallFragment] = []
            for tc in delta.tool_calls:
                call: ToolCallFragment = {"index": tc.index, "arguments": ""}
                if tc.id:
                    call["id"] = tc.id
                if tc.function is not None:
                    if tc.function.name:
                        call["name"] = tc.function.name
                    call["arguments"] = tc.function.arguments or ""
                fragments.append(call)
            chunks.append(self.tool_calls_chunk(fragments))

        return chunks


class OpenAIProvider(BaseLLMProvider):
    """
    Provider for OpenAI-compatible APIs (OpenAI, DeepSeek, Hugging Face, etc.).
    """

    provider_name = "openai"
    # Ask for a final usage chunk; not every compatible endpoint supports it
    include_usage = True

    def _create_transport(self, config: ProviderConfig) -> OpenAITransport:
        return OpenAITransport(config)

    def create_transformer(self, model: str) -> OpenAIStreamTransformer:
        return OpenAIStreamTransformer(self.provider_name, model)

    def build_payload(
        self,
        request: ChatStreamPayload,
        messages: List[Message],
        model: str,
    ) -> Dict[str, Any]:
        """
        Build chat.completions.create arguments (besides model and stream).
        """
        payload: Dict[str, Any] = {"messages": self.convert_messages(messages)}

        optional_params = {
            "temperature": request.get("temperature"),
            "max_tokens": request.get("max_tokens"),
            "top_p": request.get("top_p"),
            "tools": request.get("tools") or None,
        }
        payload.update({k: v for k, v in optional_params.items() if v is not None})

        if self.include_usage:
            payload["stream_options"] = {"include_usage": True}
        return payload

    def convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """
        Convert internal message format to OpenAI's expected format.

        Handles:
        - Assistant messages with tool calls (preserving tool_calls field)
        - Tool results (role 'tool' with tool_call_id, text content)
        - Multimodal content (text + inline images)

        Args:
            messages (List[Message]): Validated message list.

        Returns:
            List[Dict]: OpenAI-compatible message list.

        Raises:
            AgentRuntimeError: CallerInputError for remote image URLs or unknown parts.
        """
        converted = []
        for msg in messages:
            role = msg["role"]
            content = msg["content"]

            if role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg["tool_call_id"],
                    "content": content_text(content),
                })
                continue

            if isinstance(content, str):
                openai_msg: Dict[str, Any] = {"role": role, "content": content}
            else:
                openai_content = []
                for part in content:
                    if part.get("type") == "text":
                        openai_content.append({"type": "text", "text": part.get("text", "")})
                    elif part.get("type") == "image_url":
                        mime_type, b64_data = parse_image_part(part, self.provider_name)
                        image_url_obj = {"url": f"data:{mime_type};base64,{b64_data}"}
                        detail = part["image_url"].get("detail")
                        if detail:
                            image_url_obj["detail"] = detail
                        openai_content.append({"type": "image_url", "image_url": image_url_obj})
                    else:
                        raise AgentRuntimeError.caller_input(
                            self.provider_name,
                            f"Unsupported content part type: {part.get('type')!r}",
                        )
                openai_msg = {"role": role, "content": openai_content}

            # These need to preserve the tool_calls field for context
            if role == "assistant" and msg.get("tool_calls"):
                openai_msg["tool_calls"] = [
                    {
                        "id": tc["id"],
                        "type": "function",
                        "function": {
                            "name": tc["name"],
                            "arguments": json.dumps(tc.get("arguments", {})),
                        },
                    }
                    for tc in msg["tool_calls"]
                ]

            converted.append(openai_msg)

        return converted
