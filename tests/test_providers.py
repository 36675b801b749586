import asyncio
import json
from types import SimpleNamespace

import pytest
from unittest.mock import patch
from google.genai import types

from llm_runtime.errors import AgentRuntimeError, AgentRuntimeErrorType
from llm_runtime.providers.anthropic import AnthropicProvider, DEFAULT_MAX_TOKENS
from llm_runtime.providers.base import ChatTransport
from llm_runtime.providers.deepseek import DeepSeekProvider
from llm_runtime.providers.google import GoogleProvider, requires_strict_alternation
from llm_runtime.providers.huggingface import HuggingFaceProvider
from llm_runtime.providers.openai import OpenAIProvider
from llm_runtime.utils import (
    create_assistant_message_with_tool_calls, create_tool, create_tool_result,
)

from fakes import FakeTransport, google_chunk, PNG_B64, PNG_BYTES

WEATHER_TOOL = create_tool(
    name="get_weather",
    description="Get weather",
    parameters={
        "type": "object",
        "properties": {"city": {"type": "string", "format": "city-name"}},
        "required": ["city"],
    },
)

TOOL_EXCHANGE = [
    {"role": "user", "content": "Weather in Paris and Rome?"},
    create_assistant_message_with_tool_calls("", [
        {"id": "call_1", "name": "get_weather", "arguments": {"city": "Paris"}},
        {"id": "call_2", "name": "get_weather", "arguments": {"city": "Rome"}},
    ]),
    create_tool_result("call_1", {"temp": 21}),
    create_tool_result("call_2", "sunny"),
    {"role": "user", "content": "Thanks"},
]


class TestGoogleMessages:

    def setup_method(self):
        self.provider = GoogleProvider(api_key="fake-key", transport=FakeTransport())

    def test_strict_model_single_user_turn_is_unmodified(self):
        contents = self.provider.build_google_messages([{"role": "user", "content": "Hello"}], "gemini-pro")

        assert contents == [{"role": "user", "parts": [{"text": "Hello"}]}]

    def test_strict_model_ends_with_user_turn(self):
        messages = [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi"},
        ]

        contents = self.provider.build_google_messages(messages, "gemini-pro")

        assert contents == [
            {"role": "user", "parts": [{"text": "Hello"}]},
            {"role": "model", "parts": [{"text": "Hi"}]},
            {"role": "user", "parts": [{"text": ""}]},
        ]

    def test_strict_model_separates_system_prompt(self):
        messages = [
            {"role": "system", "content": "You are a helpful assistant"},
            {"role": "user", "content": "Hello"},
        ]

        contents = self.provider.build_google_messages(messages, "gemini-pro")

        assert contents == [
            {"role": "user", "parts": [{"text": "You are a helpful assistant"}]},
            {"role": "model", "parts": [{"text": ""}]},
            {"role": "user", "parts": [{"text": "Hello"}]},
        ]

    def test_strict_model_separates_consecutive_model_turns(self):
        messages = [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi"},
            {"role": "assistant", "content": "Anything else?"},
            {"role": "user", "content": "No"},
        ]

        contents = self.provider.build_google_messages(messages, "gemini-pro")

        roles = [c["role"] for c in contents]
        assert roles == ["user", "model", "user", "model", "user"]
        assert contents[2] == {"role": "user", "parts": [{"text": ""}]}

    def test_strict_model_leading_assistant_turn(self):
        contents = self.provider.build_google_messages(
            [{"role": "assistant", "content": "Welcome"}], "gemini-pro"
        )

        assert [c["role"] for c in contents] == ["user", "model", "user"]

    def test_exempt_model_keeps_turns(self):
        messages = [
            {"role": "user", "content": "Hello"},
            {"role": "assistant", "content": "Hi"},
        ]

        contents = self.provider.build_google_messages(messages, "gemini-1.5-pro-latest")

        assert contents == [
            {"role": "user", "parts": [{"text": "Hello"}]},
            {"role": "model", "parts": [{"text": "Hi"}]},
        ]

    def test_exempt_model_uses_system_instruction(self):
        messages = [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Hello"},
        ]

        contents = self.provider.build_google_messages(messages, "gemini-1.5-pro-latest")

        assert contents == [{"role": "user", "parts": [{"text": "Hello"}]}]
        assert self.provider.build_system_instruction(messages, "gemini-1.5-pro-latest") == "Be brief"
        assert self.provider.build_system_instruction(messages, "gemini-pro") is None

    @pytest.mark.parametrize("model, strict", [
        ("gemini-pro", True),
        ("gemini-1.0-pro-latest", True),
        ("gemini-1.5-pro-latest", False),
        ("gemini-2.0-flash", False),
        ("models/gemini-2.5-pro", False),
    ])
    def test_requires_strict_alternation(self, model, strict):
        assert requires_strict_alternation(model) is strict

    def test_convert_message_roles(self):
        assert self.provider.convert_message({"role": "assistant", "content": "im helper"}) == {
            "role": "model",
            "parts": [{"text": "im helper"}],
        }
        assert self.provider.convert_message({"role": "user", "content": "hi"}) == {
            "role": "user",
            "parts": [{"text": "hi"}],
        }

    def test_convert_message_with_inline_image(self, image_message):
        converted = self.provider.convert_message(image_message)

        assert converted["role"] == "user"
        assert converted["parts"][0] == {"text": "Hello"}
        assert converted["parts"][1] == {
            "inline_data": {"mime_type": "image/png", "data": PNG_BYTES}
        }

    def test_convert_message_with_tool_calls(self):
        message = {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "c1", "name": "get_weather", "arguments": {"city": "Paris"}}],
        }

        converted = self.provider.convert_message(message)

        assert converted == {
            "role": "model",
            "parts": [{"function_call": {"name": "get_weather", "args": {"city": "Paris"}}}],
        }

    def test_tool_results_become_one_function_response_turn(self):
        contents = self.provider.build_google_messages(TOOL_EXCHANGE, "gemini-1.5-pro-latest")

        assert contents == [
            {"role": "user", "parts": [{"text": "Weather in Paris and Rome?"}]},
            {"role": "model", "parts": [
                {"function_call": {"name": "get_weather", "args": {"city": "Paris"}}},
                {"function_call": {"name": "get_weather", "args": {"city": "Rome"}}},
            ]},
            {"role": "user", "parts": [
                {"function_response": {"name": "get_weather", "response": {"temp": 21}}},
                {"function_response": {"name": "get_weather", "response": {"result": "sunny"}}},
            ]},
            {"role": "user", "parts": [{"text": "Thanks"}]},
        ]

    def test_strict_model_alternates_around_tool_results(self):
        contents = self.provider.build_google_messages(TOOL_EXCHANGE, "gemini-pro")

        assert [c["role"] for c in contents] == ["user", "model", "user", "model", "user"]
        assert len(contents[2]["parts"]) == 2
        assert contents[3] == {"role": "model", "parts": [{"text": ""}]}

    def test_tool_result_uses_explicit_name(self):
        messages = [create_tool_result("call_9", "[1, 2]", name="list_ids")]

        contents = self.provider.build_google_messages(messages, "gemini-1.5-pro-latest")

        assert contents == [{"role": "user", "parts": [
            {"function_response": {"name": "list_ids", "response": {"result": [1, 2]}}},
        ]}]

    def test_tool_result_without_resolvable_name(self):
        with pytest.raises(AgentRuntimeError) as exc_info:
            self.provider.build_google_messages([create_tool_result("call_9", "ok")], "gemini-pro")

        assert exc_info.value.error_type == AgentRuntimeErrorType.CallerInputError
        assert "call_9" in exc_info.value.error["message"]

    def test_unknown_part_type(self):
        with pytest.raises(AgentRuntimeError) as exc_info:
            self.provider.convert_content_part({"type": "audio", "data": "..."})

        assert exc_info.value.error_type == AgentRuntimeErrorType.CallerInputError

    def test_build_payload(self):
        request = {
            "model": "gemini-1.5-pro-latest",
            "temperature": 0.5,
            "max_tokens": 256,
            "tools": [WEATHER_TOOL],
        }
        messages = [{"role": "user", "content": "Weather in Paris?"}]

        payload = self.provider.build_payload(request, messages, "gemini-1.5-pro-latest")

        config = payload["config"]
        assert payload["contents"] == [{"role": "user", "parts": [{"text": "Weather in Paris?"}]}]
        assert config.temperature == 0.5
        assert config.max_output_tokens == 256
        declaration = config.tools[0].function_declarations[0]
        assert declaration.name == "get_weather"
        assert declaration.parameters.type == types.Type.OBJECT
        assert declaration.parameters.required == ["city"]


class TestGoogleProvider:

    def test_missing_api_key_fails_before_sdk_client(self):
        with patch("llm_runtime.providers.google.genai") as mock_genai:
            with pytest.raises(AgentRuntimeError) as exc_info:
                GoogleProvider(api_key=None)

        assert exc_info.value.error_type == AgentRuntimeErrorType.InvalidAPIKey
        assert exc_info.value.provider == "google"
        mock_genai.Client.assert_not_called()

    def test_default_transport_uses_sdk_client(self):
        with patch("llm_runtime.providers.google.genai") as mock_genai:
            provider = GoogleProvider(api_key="fake-key")

        mock_genai.Client.assert_called_once_with(api_key="fake-key", http_options=None)
        assert isinstance(provider.transport, ChatTransport)

    @pytest.mark.asyncio
    async def test_chat_streams_text(self):
        transport = FakeTransport([
            google_chunk(text="Hello"),
            google_chunk(text=", "),
            google_chunk(
                text="world!",
                finish_reason=types.FinishReason.STOP,
                usage=types.GenerateContentResponseUsageMetadata(
                    prompt_token_count=3, candidates_token_count=5, total_token_count=8
                ),
            ),
        ])
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({
            "model": "gemini-pro",
            "messages": [{"role": "user", "content": "Hi"}],
            "temperature": 0.5,
        })
        chunks = [chunk async for chunk in stream]

        assert chunks == [
            {"type": "text", "provider": "google", "text": "Hello"},
            {"type": "text", "provider": "google", "text": ", "},
            {"type": "text", "provider": "google", "text": "world!"},
        ]
        assert stream.meta["finish_reason"] == "STOP"
        assert stream.meta["usage"]["total_tokens"] == 8

    @pytest.mark.asyncio
    async def test_chat_streams_function_call(self):
        transport = FakeTransport([google_chunk(function_call=("get_weather", {"city": "Paris"}))])
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({
            "model": "gemini-1.5-pro-latest",
            "messages": [{"role": "user", "content": "Weather in Paris?"}],
            "tools": [WEATHER_TOOL],
        })
        chunks = [chunk async for chunk in stream]

        assert len(chunks) == 1
        assert chunks[0]["type"] == "tool_calls"
        call = chunks[0]["tool_calls"][0]
        assert call["name"] == "get_weather"
        assert call["id"] == "google_get_weather_0"
        assert json.loads(call["arguments"]) == {"city": "Paris"}

    @pytest.mark.asyncio
    async def test_blocked_prompt_fails_the_stream(self):
        blocked = types.GenerateContentResponse(
            prompt_feedback=types.GenerateContentResponsePromptFeedback(
                block_reason=types.BlockedReason.SAFETY
            )
        )
        provider = GoogleProvider(api_key="fake-key", transport=FakeTransport([blocked]))

        stream = await provider.chat({"model": "gemini-pro", "messages": [{"role": "user", "content": "Hi"}]})

        with pytest.raises(AgentRuntimeError) as exc_info:
            await stream.collect()
        assert exc_info.value.error_type == AgentRuntimeErrorType.ProviderBizError
        assert "SAFETY" in exc_info.value.error["message"]

    @pytest.mark.asyncio
    async def test_remote_image_rejected_before_network(self):
        transport = FakeTransport()
        provider = GoogleProvider(api_key="fake-key", transport=transport)
        request = {
            "model": "gemini-pro-vision",
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": "What is this?"},
                    {"type": "image_url", "image_url": {"url": "https://example.com/cat.png"}},
                ],
            }],
        }

        with pytest.raises(AgentRuntimeError) as exc_info:
            await provider.chat(request)

        assert exc_info.value.error_type == AgentRuntimeErrorType.CallerInputError
        assert transport.calls == []

    @pytest.mark.asyncio
    async def test_vision_model_without_images_uses_text_model(self):
        transport = FakeTransport([google_chunk(text="ok")])
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({
            "model": "gemini-pro-vision",
            "messages": [{"role": "user", "content": "Hello"}],
        })
        await stream.collect()

        assert transport.calls[0][0] == "gemini-pro"
        assert stream.meta["model"] == "gemini-pro"

    @pytest.mark.asyncio
    async def test_vision_model_with_images_is_kept(self, image_message):
        transport = FakeTransport([google_chunk(text="a cat")])
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({"model": "gemini-pro-vision", "messages": [image_message]})
        await stream.collect()

        model, payload = transport.calls[0]
        assert model == "gemini-pro-vision"
        assert payload["contents"][0]["parts"][1]["inline_data"]["data"] == PNG_BYTES

    @pytest.mark.asyncio
    async def test_vendor_error_is_normalized(self):
        transport = FakeTransport(error=Exception(
            "[400 Bad Request] User location is not supported for the API use."
        ))
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        with pytest.raises(AgentRuntimeError) as exc_info:
            await provider.chat({"model": "gemini-pro", "messages": [{"role": "user", "content": "Hi"}]})

        assert exc_info.value.error_type == AgentRuntimeErrorType.LocationNotSupported
        assert exc_info.value.provider == "google"

    @pytest.mark.asyncio
    async def test_missing_model_is_caller_error(self):
        transport = FakeTransport()
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        with pytest.raises(AgentRuntimeError) as exc_info:
            await provider.chat({"messages": [{"role": "user", "content": "Hi"}]})

        assert exc_info.value.error_type == AgentRuntimeErrorType.CallerInputError
        assert transport.calls == []

    @pytest.mark.asyncio
    @patch("llm_runtime.providers.base.DebugStreamSink")
    async def test_debug_flag_tees_stream(self, mock_sink_cls):
        transport = FakeTransport([google_chunk(text="Hello"), google_chunk(text="!")])
        provider = GoogleProvider(api_key="fake-key", debug=True, transport=transport)
        request = {"model": "gemini-pro", "messages": [{"role": "user", "content": "Hi"}]}

        text = await (await provider.chat(request)).collect()

        assert text == "Hello!"
        mock_sink_cls.assert_called_once_with("google", "gemini-pro")
        sink = mock_sink_cls.return_value
        assert sink.feed.call_count == 2
        sink.close.assert_called_once()

        mock_sink_cls.reset_mock()
        await (await provider.chat(request, debug=False)).collect()
        mock_sink_cls.assert_not_called()

    @pytest.mark.asyncio
    @patch("llm_runtime.providers.base.DebugStreamSink")
    async def test_debug_can_be_enabled_per_call(self, mock_sink_cls):
        transport = FakeTransport([google_chunk(text="Hello")])
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        await (await provider.chat(
            {"model": "gemini-pro", "messages": [{"role": "user", "content": "Hi"}]},
            debug=True,
        )).collect()

        mock_sink_cls.assert_called_once_with("google", "gemini-pro")

    @pytest.mark.asyncio
    async def test_concurrent_chats_are_independent(self):
        transport = FakeTransport([google_chunk(text="one"), google_chunk(text="two")])
        provider = GoogleProvider(api_key="fake-key", transport=transport)

        async def run(prompt):
            stream = await provider.chat({"model": "gemini-pro", "messages": [{"role": "user", "content": prompt}]})
            return await stream.collect()

        results = await asyncio.gather(*(run(f"prompt {i}") for i in range(5)))

        assert results == ["onetwo"] * 5
        sent = sorted(payload["contents"][0]["parts"][0]["text"] for _, payload in transport.calls)
        assert sent == [f"prompt {i}" for i in range(5)]

    @pytest.mark.asyncio
    async def test_list_models(self):
        provider = GoogleProvider(
            api_key="fake-key",
            transport=FakeTransport(models=["models/gemini-pro", "models/gemini-1.5-pro-latest"]),
        )

        assert await provider.list_models() == ["models/gemini-pro", "models/gemini-1.5-pro-latest"]


def openai_chunk(content=None, tool_calls=None, finish_reason=None, usage=None):
    choices = []
    if content is not None or tool_calls is not None or finish_reason is not None:
        delta = SimpleNamespace(content=content, tool_calls=tool_calls)
        choices.append(SimpleNamespace(delta=delta, finish_reason=finish_reason))
    return SimpleNamespace(choices=choices, usage=usage)


def openai_tool_delta(index, arguments, id=None, name=None):
    return SimpleNamespace(
        index=index,
        id=id,
        function=SimpleNamespace(name=name, arguments=arguments),
    )


class TestOpenAIProvider:

    @patch("llm_runtime.providers.openai.AsyncOpenAI")
    def test_default_transport(self, mock_openai_cls):
        provider = OpenAIProvider(api_key="fake-key")

        mock_openai_cls.assert_called_once_with(api_key="fake-key", base_url=None)
        assert provider.transport.client is mock_openai_cls.return_value

    @patch("llm_runtime.providers.openai.AsyncOpenAI")
    def test_deepseek_uses_its_endpoint(self, mock_openai_cls):
        DeepSeekProvider(api_key="fake-key")

        mock_openai_cls.assert_called_once_with(api_key="fake-key", base_url="https://api.deepseek.com")

    @patch("llm_runtime.providers.openai.AsyncOpenAI")
    def test_base_url_override(self, mock_openai_cls):
        DeepSeekProvider(api_key="fake-key", base_url="https://proxy.local/v1")

        mock_openai_cls.assert_called_once_with(api_key="fake-key", base_url="https://proxy.local/v1")

    def test_convert_messages_text(self):
        provider = OpenAIProvider(api_key="fake-key", transport=FakeTransport())

        converted = provider.convert_messages([{"role": "user", "content": "hello"}])

        assert converted == [{"role": "user", "content": "hello"}]

    def test_convert_messages_image_and_tool_calls(self, image_message):
        provider = OpenAIProvider(api_key="fake-key", transport=FakeTransport())
        assistant = {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "call_1", "name": "get_weather", "arguments": {"city": "Paris"}}],
        }

        converted = provider.convert_messages([image_message, assistant])

        assert converted[0]["content"][1] == {
            "type": "image_url",
            "image_url": {"url": f"data:image/png;base64,{PNG_B64}"},
        }
        assert converted[1]["tool_calls"] == [{
            "id": "call_1",
            "type": "function",
            "function": {"name": "get_weather", "arguments": '{"city": "Paris"}'},
        }]

    @pytest.mark.asyncio
    async def test_chat_sends_tool_results(self):
        transport = FakeTransport()
        provider = OpenAIProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({"model": "gpt-4o", "messages": TOOL_EXCHANGE})
        await stream.collect()

        sent = transport.calls[0][1]["messages"]
        assert [m["role"] for m in sent] == ["user", "assistant", "tool", "tool", "user"]
        assert sent[2] == {"role": "tool", "tool_call_id": "call_1", "content": '{"temp": 21}'}
        assert sent[3] == {"role": "tool", "tool_call_id": "call_2", "content": "sunny"}
        assert [tc["id"] for tc in sent[1]["tool_calls"]] == ["call_1", "call_2"]

    @pytest.mark.asyncio
    async def test_chat_rejects_tool_result_without_call_id(self):
        transport = FakeTransport()
        provider = OpenAIProvider(api_key="fake-key", transport=transport)
        messages = [{"role": "tool", "content": "sunny"}]

        with pytest.raises(AgentRuntimeError) as exc_info:
            await provider.chat({"model": "gpt-4o", "messages": messages})

        assert exc_info.value.error_type == AgentRuntimeErrorType.CallerInputError
        assert transport.calls == []

    def test_build_payload(self):
        provider = OpenAIProvider(api_key="fake-key", transport=FakeTransport())
        request = {"model": "gpt-4o", "temperature": 0.2, "tools": [WEATHER_TOOL]}

        payload = provider.build_payload(request, [{"role": "user", "content": "hi"}], "gpt-4o")

        assert payload["temperature"] == 0.2
        assert payload["tools"] == [WEATHER_TOOL]
        assert payload["stream_options"] == {"include_usage": True}
        assert "max_tokens" not in payload

    def test_huggingface_skips_usage_option(self):
        provider = HuggingFaceProvider(api_key="fake-key", transport=FakeTransport())

        payload = provider.build_payload({"model": "m"}, [{"role": "user", "content": "hi"}], "m")

        assert "stream_options" not in payload
        assert provider.config.base_url == "https://router.huggingface.co/v1/"

    @pytest.mark.asyncio
    async def test_chat_streams_text_and_tool_calls(self):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=20, total_tokens=30)
        transport = FakeTransport([
            openai_chunk(content="Let me check"),
            openai_chunk(tool_calls=[openai_tool_delta(0, "", id="call_1", name="get_weather")]),
            openai_chunk(tool_calls=[openai_tool_delta(0, '{"city": "Paris"}')]),
            openai_chunk(finish_reason="tool_calls"),
            openai_chunk(usage=usage),
        ])
        provider = OpenAIProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({"model": "gpt-4o", "messages": [{"role": "user", "content": "hi"}]})
        chunks = [chunk async for chunk in stream]

        assert chunks[0] == {"type": "text", "provider": "openai", "text": "Let me check"}
        assert chunks[1]["tool_calls"] == [{"index": 0, "id": "call_1", "name": "get_weather", "arguments": ""}]
        assert chunks[2]["tool_calls"] == [{"index": 0, "arguments": '{"city": "Paris"}'}]
        assert len(chunks) == 3
        assert stream.meta["finish_reason"] == "tool_calls"
        assert stream.meta["usage"]["total_tokens"] == 30
        assert transport.calls[0][0] == "gpt-4o"


def anthropic_event(type, **fields):
    return SimpleNamespace(type=type, **fields)


class TestAnthropicProvider:

    def setup_method(self):
        self.provider = AnthropicProvider(api_key="fake-key", transport=FakeTransport())

    @patch("llm_runtime.providers.anthropic.AsyncAnthropic")
    def test_default_transport(self, mock_anthropic_cls):
        AnthropicProvider(api_key="fake-key")

        mock_anthropic_cls.assert_called_once_with(api_key="fake-key", base_url=None)

    def test_convert_messages_split_system(self):
        messages = [
            {"role": "system", "content": "system prompt"},
            {"role": "user", "content": "user query"},
        ]

        system, converted = self.provider.convert_messages(messages)

        assert system == "system prompt"
        assert converted == [{"role": "user", "content": "user query"}]

    def test_convert_messages_image(self, image_message):
        _, converted = self.provider.convert_messages([image_message])

        assert converted[0]["content"][1] == {
            "type": "image",
            "source": {"type": "base64", "media_type": "image/png", "data": PNG_B64},
        }

    def test_convert_messages_tool_calls(self):
        message = {
            "role": "assistant",
            "content": "",
            "tool_calls": [{"id": "toolu_1", "name": "get_weather", "arguments": {"city": "Paris"}}],
        }

        _, converted = self.provider.convert_messages([message])

        assert converted == [{
            "role": "assistant",
            "content": [{"type": "tool_use", "id": "toolu_1", "name": "get_weather", "input": {"city": "Paris"}}],
        }]

    def test_convert_messages_tool_results(self):
        _, converted = self.provider.convert_messages(TOOL_EXCHANGE)

        assert converted[2] == {
            "role": "user",
            "content": [
                {"type": "tool_result", "tool_use_id": "call_1", "content": '{"temp": 21}'},
                {"type": "tool_result", "tool_use_id": "call_2", "content": "sunny"},
            ],
        }
        assert converted[3] == {"role": "user", "content": "Thanks"}
        assert len(converted) == 4

    def test_convert_tools(self):
        tools = AnthropicProvider.convert_tools([WEATHER_TOOL])

        assert tools == [{
            "name": "get_weather",
            "description": "Get weather",
            "input_schema": {
                "type": "object",
                "properties": {"city": {"type": "string"}},
                "required": ["city"],
            },
        }]
        assert AnthropicProvider.convert_tools(None) is None

    def test_build_payload_defaults_max_tokens(self):
        payload = self.provider.build_payload(
            {"model": "claude-sonnet-4-5"},
            [{"role": "user", "content": "hi"}],
            "claude-sonnet-4-5",
        )

        assert payload == {
            "messages": [{"role": "user", "content": "hi"}],
            "max_tokens": DEFAULT_MAX_TOKENS,
        }

    @pytest.mark.asyncio
    async def test_chat_streams_events(self):
        transport = FakeTransport([
            anthropic_event("message_start", message=SimpleNamespace(usage=SimpleNamespace(input_tokens=12))),
            anthropic_event("content_block_start", index=0, content_block=SimpleNamespace(type="text", text="")),
            anthropic_event("content_block_delta", index=0, delta=SimpleNamespace(type="text_delta", text="Checking")),
            anthropic_event(
                "content_block_start",
                index=1,
                content_block=SimpleNamespace(type="tool_use", id="toolu_1", name="get_weather"),
            ),
            anthropic_event(
                "content_block_delta",
                index=1,
                delta=SimpleNamespace(type="input_json_delta", partial_json='{"city": "Paris"}'),
            ),
            anthropic_event(
                "message_delta",
                delta=SimpleNamespace(stop_reason="tool_use"),
                usage=SimpleNamespace(output_tokens=7),
            ),
            anthropic_event("message_stop"),
        ])
        provider = AnthropicProvider(api_key="fake-key", transport=transport)

        stream = await provider.chat({
            "model": "claude-sonnet-4-5",
            "messages": [{"role": "user", "content": "Weather in Paris?"}],
        })
        chunks = [chunk async for chunk in stream]

        assert chunks == [
            {"type": "text", "provider": "anthropic", "text": "Checking"},
            {
                "type": "tool_calls",
                "provider": "anthropic",
                "tool_calls": [{"index": 1, "id": "toolu_1", "name": "get_weather", "arguments": ""}],
            },
            {
                "type": "tool_calls",
                "provider": "anthropic",
                "tool_calls": [{"index": 1, "arguments": '{"city": "Paris"}'}],
            },
        ]
        assert stream.meta["finish_reason"] == "tool_use"
        assert stream.meta["usage"]["input_tokens"] == 12
        assert stream.meta["usage"]["total_tokens"] == 19
