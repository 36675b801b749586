import asyncio
import json
from typing import Dict, Any, List, AsyncIterator, Optional

from google import genai
from google.genai import types

from .base import BaseLLMProvider
from ..config import ProviderConfig
from ..errors import AgentRuntimeError, AgentRuntimeErrorType
from ..model_selector import select_model
from ..schema import build_google_tools
from ..stream import StreamTransformer
from ..types import ChatStreamPayload, ContentPart, Message, StreamChunk
from ..utils import content_text, decode_image_data, parse_image_part, tool_call_names

# Model families that accept any turn order and a native system instruction.
# Matched by substring, so a new family name is treated as strict until added here.
NON_STRICT_MODEL_FAMILIES = ("gemini-1.5", "gemini-2", "gemini-3", "gemini-exp", "learnlm")


def requires_strict_alternation(model: str) -> bool:
    """
    Whether the model family needs strictly alternating user/model turns
    that end on a user turn.
    """
    return not any(family in model for family in NON_STRICT_MODEL_FAMILIES)


class GoogleTransport:
    """
    Streaming transport over the google-genai SDK.
    """

    def __init__(self, config: ProviderConfig):
        http_options = types.HttpOptions(base_url=config.base_url) if config.base_url else None
        self.client = genai.Client(api_key=config.api_key, http_options=http_options)

    async def stream(self, model: str, payload: Dict[str, Any]) -> AsyncIterator[Any]:
        return await self.client.aio.models.generate_content_stream(
            model=model,
            contents=payload["contents"],
            config=payload["config"],
        )

    async def list_models(self) -> List[str]:
        # models.list is synchronous on the top-level client and paginates itself
        def _list() -> List[str]:
            names = []
            for m in self.client.models.list():
                actions = getattr(m, "supported_actions", None)
                if not actions or "generateContent" in actions:
                    names.append(m.name)
            return names

        return await asyncio.to_thread(_list)


class GoogleStreamTransformer(StreamTransformer):
    """
    Converts GenerateContentResponse fragments into canonical chunks.
    """

    def __init__(self, provider: str, model: str):
        super().__init__(provider, model)
        self._tool_index = 0

    def transform(self, fragment: Any) -> List[StreamChunk]:
        self._record_usage(fragment)

        candidates = getattr(fragment, "candidates", None)
        if not candidates:
            feedback = getattr(fragment, "prompt_feedback", None)
            block_reason = getattr(feedback, "block_reason", None)
            if block_reason:
                raise AgentRuntimeError(
                    AgentRuntimeErrorType.ProviderBizError,
                    self.provider,
                    {"message": f"Prompt blocked: {getattr(block_reason, 'value', block_reason)}"},
                )
            return []

        candidate = candidates[0]
        if candidate.finish_reason:
            self.finish_reason = getattr(candidate.finish_reason, "value", str(candidate.finish_reason))

        parts = candidate.content.parts if candidate.content and candidate.content.parts else []
        chunks: List[StreamChunk] = []
        for part in parts:
            if part.function_call:
                fc = part.function_call
                chunks.append(self.tool_calls_chunk([{
                    "index": self._tool_index,
                    # Gemini doesn't always provide call IDs
                    "id": fc.id or f"google_{fc.name}_{self._tool_index}",
                    "name": fc.name,
                    "arguments": json.dumps(fc.args or {}, ensure_ascii=False),
                }]))
                self._tool_index += 1
            elif part.text and not part.thought:
                chunks.append(self.text_chunk(part.text))
        return chunks

    def _record_usage(self, fragment: Any) -> None:
        um = getattr(fragment, "usage_metadata", None)
        if um is None:
            return
        self.usage = BaseLLMProvider.normalize_usage(
            self.provider,
            input_tokens=um.prompt_token_count,
            output_tokens=um.candidates_token_count,
            total_tokens=um.total_token_count,
            raw={
                "prompt_token_count": um.prompt_token_count,
                "candidates_token_count": um.candidates_token_count,
                "total_token_count": um.total_token_count,
            },
        )


class GoogleProvider(BaseLLMProvider):
    """
    Provider for Google Gemini API (using google-genai SDK).
    """

    provider_name = "google"

    def _create_transport(self, config: ProviderConfig) -> GoogleTransport:
        return GoogleTransport(config)

    def select_model(self, model: str, messages: List[Message]) -> str:
        return select_model(model, messages)

    def create_transformer(self, model: str) -> GoogleStreamTransformer:
        return GoogleStreamTransformer(self.provider_name, model)

    def build_payload(
        self,
        request: ChatStreamPayload,
        messages: List[Message],
        model: str,
    ) -> Dict[str, Any]:
        """
        Build contents and GenerateContentConfig for generate_content_stream.
        """
        contents = self.build_google_messages(messages, model)

        config_kwargs = {
            "temperature": request.get("temperature"),
            "max_output_tokens": request.get("max_tokens"),
            "top_p": request.get("top_p"),
            "system_instruction": self.build_system_instruction(messages, model),
            "tools": build_google_tools(request.get("tools")),
        }
        config = types.GenerateContentConfig(
            **{k: v for k, v in config_kwargs.items() if v is not None}
        )
        return {"contents": contents, "config": config}

    def build_google_messages(self, messages: List[Message], model: str) -> List[Dict[str, Any]]:
        """
        Convert messages to Gemini contents.

        Strict families get turns that alternate user/model: a synthetic empty
        turn of the opposite role separates two same-role turns (a system
        prompt becomes a user turn followed by an empty model turn), and an
        empty user turn is appended if the conversation ends on the model.
        Other families get their turns unmodified, with system prompts moved to
        the native system instruction.
        """
        if not requires_strict_alternation(model):
            return self.convert_messages([msg for msg in messages if msg["role"] != "system"])

        contents: List[Dict[str, Any]] = []
        last_role = "model"

        for google_message in self.convert_messages(messages):
            if google_message["role"] == last_role:
                contents.append({
                    "role": "model" if last_role == "user" else "user",
                    "parts": [{"text": ""}],
                })

            contents.append(google_message)
            last_role = google_message["role"]

        if last_role == "model":
            contents.append({"role": "user", "parts": [{"text": ""}]})

        return contents

    def build_system_instruction(self, messages: List[Message], model: str) -> Optional[str]:
        if requires_strict_alternation(model):
            return None
        texts = [content_text(msg["content"]) for msg in messages if msg["role"] == "system"]
        return "\n".join(texts) if texts else None

    def convert_messages(self, messages: List[Message]) -> List[Dict[str, Any]]:
        """
        Convert messages one by one, folding consecutive tool results into
        a single user turn of function responses.
        """
        call_names = tool_call_names(messages)
        converted: List[Dict[str, Any]] = []
        previous_role = None
        for msg in messages:
            if msg["role"] == "tool":
                part = self.convert_tool_result(msg, call_names)
                if previous_role == "tool":
                    converted[-1]["parts"].append(part)
                else:
                    converted.append({"role": "user", "parts": [part]})
            else:
                converted.append(self.convert_message(msg))
            previous_role = msg["role"]
        return converted

    def convert_tool_result(self, message: Message, call_names: Dict[str, str]) -> Dict[str, Any]:
        """
        Convert a tool message into a function_response part.

        Gemini matches responses by function name, taken from the message or
        from the assistant tool call it answers. Object results are passed as
        the response; anything else is wrapped as {"result": value}.

        Raises:
            AgentRuntimeError: CallerInputError if the function name cannot be resolved.
        """
        name = message.get("name") or call_names.get(message["tool_call_id"])
        if not name:
            raise AgentRuntimeError.caller_input(
                self.provider_name,
                f"No function name for tool result {message['tool_call_id']!r}",
            )

        text = content_text(message["content"])
        try:
            result = json.loads(text)
        except ValueError:
            result = text
        response = result if isinstance(result, dict) else {"result": result}
        return {"function_response": {"name": name, "response": response}}

    def convert_message(self, message: Message) -> Dict[str, Any]:
        """
        Convert one message; 'assistant' maps to 'model', everything else to 'user'.
        """
        role = "model" if message["role"] == "assistant" else "user"
        content = message.get("content", "")

        if isinstance(content, str):
            parts = [{"text": content}]
        else:
            parts = [self.convert_content_part(part) for part in content]

        for tc in message.get("tool_calls") or []:
            parts.append({"function_call": {"name": tc["name"], "args": tc.get("arguments", {})}})
        if len(parts) > 1 and parts[0] == {"text": ""}:
            parts = parts[1:]

        return {"role": role, "parts": parts}

    def convert_content_part(self, part: ContentPart) -> Dict[str, Any]:
        """
        Convert a text or inline image part.

        Raises:
            AgentRuntimeError: CallerInputError for remote image URLs, bad base64
                               or unknown part types.
        """
        part_type = part.get("type")
        if part_type == "text":
            return {"text": part.get("text", "")}
        if part_type == "image_url":
            mime_type, b64_data = parse_image_part(part, self.provider_name)
            return {
                "inline_data": {
                    "mime_type": mime_type,
                    "data": decode_image_data(b64_data, self.provider_name),
                }
            }
        raise AgentRuntimeError.caller_input(
            self.provider_name, f"Unsupported content part type: {part_type!r}"
        )
