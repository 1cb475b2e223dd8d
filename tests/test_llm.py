"""
Unit tests for the model client layer: provider resolution, tool format
conversion, message formatting, response parsing, streaming and the
client factory. Provider SDK clients are replaced with mocks.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from agentloop.config import AgentSettings
from agentloop.errors import ModelErrorCode
from agentloop.exceptions import ProviderNotConfiguredError, ProviderNotSupportedError
from agentloop.hello import greet_user, hello_world
from agentloop.llm import (
    AnthropicModelClient,
    OpenAIModelClient,
    create_model_client,
    get_supported_providers,
    resolve_provider,
    tools_to_anthropic_format,
    tools_to_openai_format,
)
from agentloop.models import Message, ToolCallRequest


async def aiter_of(items):
    for item in items:
        yield item


def openai_mock(response=None, side_effect=None):
    sdk = MagicMock()
    sdk.chat.completions.create = AsyncMock(return_value=response, side_effect=side_effect)
    return sdk


def anthropic_mock(response=None, side_effect=None):
    sdk = MagicMock()
    sdk.messages.create = AsyncMock(return_value=response, side_effect=side_effect)
    return sdk


def openai_completion(content="", tool_calls=None, usage=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)], usage=usage)


def openai_tool_call(id, name, arguments):
    return SimpleNamespace(id=id, function=SimpleNamespace(name=name, arguments=arguments))


TRANSCRIPT = [
    Message.system("sys"),
    Message.user("greet Ana and Bo"),
    Message.assistant(
        "",
        [
            ToolCallRequest(id="c1", name="hello_world", args={"name": "Ana"}),
            ToolCallRequest(id="c2", name="hello_world", args={"name": "Bo"}),
        ],
    ),
    Message.tool("r1", tool_call_id="c1", name="hello_world"),
    Message.tool("r2", tool_call_id="c2", name="hello_world"),
]

# ---------------------------------------------------------------------------
# Provider Resolution
# ---------------------------------------------------------------------------


class TestProviderResolution:
    def test_openai_default(self):
        assert resolve_provider("gpt-4o") == "openai"
        assert resolve_provider("some-model") == "openai"

    def test_anthropic(self):
        assert resolve_provider("claude-sonnet-4-20250514") == "anthropic"

    def test_grok_and_deepseek(self):
        assert resolve_provider("grok-2") == "grok"
        assert resolve_provider("deepseek-chat") == "deepseek"

    def test_openrouter(self):
        assert resolve_provider("meta-llama/llama-3-70b") == "openrouter"


# ---------------------------------------------------------------------------
# Tool Format Conversion
# ---------------------------------------------------------------------------


class TestToolFormatConversion:
    def test_openai_format(self):
        result = tools_to_openai_format([hello_world])
        assert result[0]["type"] == "function"
        assert result[0]["function"]["name"] == "hello_world"
        assert result[0]["function"]["parameters"] == hello_world.parameters

    def test_anthropic_format(self):
        result = tools_to_anthropic_format([greet_user])
        assert result[0]["name"] == "greet_user"
        assert result[0]["input_schema"]["required"] == ["name"]


# ---------------------------------------------------------------------------
# OpenAI client
# ---------------------------------------------------------------------------


class TestOpenAIModelClient:
    def test_format_messages(self):
        formatted = OpenAIModelClient.format_messages(TRANSCRIPT)
        assert formatted[0] == {"role": "system", "content": "sys"}
        assistant = formatted[2]
        assert assistant["content"] is None
        assert assistant["tool_calls"][0]["function"] == {
            "name": "hello_world",
            "arguments": '{"name": "Ana"}',
        }
        assert formatted[3] == {"role": "tool", "tool_call_id": "c1", "content": "r1"}

    @pytest.mark.asyncio
    async def test_invoke_parses_content_and_usage(self):
        usage = SimpleNamespace(prompt_tokens=10, completion_tokens=5, total_tokens=15)
        sdk = openai_mock(openai_completion("Hello!", usage=usage))
        client = OpenAIModelClient("gpt-4o", client=sdk, temperature=0.2)

        result = await client.invoke([Message.user("hi")], [hello_world])

        assert result.success
        assert result.result.content == "Hello!"
        assert not result.result.has_tool_calls
        assert result.result.usage.total_tokens == 15
        kwargs = sdk.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.2
        assert kwargs["tools"][0]["function"]["name"] == "hello_world"

    @pytest.mark.asyncio
    async def test_invoke_parses_tool_calls(self):
        calls = [
            openai_tool_call("c1", "hello_world", '{"name": "Ana"}'),
            openai_tool_call("c2", "hello_world", "{not json"),
        ]
        client = OpenAIModelClient("gpt-4o", client=openai_mock(openai_completion(None, calls)))

        result = await client.invoke([Message.user("hi")], [hello_world])

        assert result.result.content == ""
        assert result.result.tool_calls == (
            ToolCallRequest(id="c1", name="hello_world", args={"name": "Ana"}),
            ToolCallRequest(id="c2", name="hello_world", args={}),
        )

    @pytest.mark.asyncio
    async def test_no_tools_key_without_tools(self):
        sdk = openai_mock(openai_completion("ok"))
        await OpenAIModelClient("gpt-4o", client=sdk).invoke([Message.user("hi")], [])
        assert "tools" not in sdk.chat.completions.create.call_args.kwargs

    @pytest.mark.asyncio
    async def test_invoke_maps_errors(self):
        error = Exception("Unauthorized")
        error.status_code = 401
        client = OpenAIModelClient("gpt-4o", client=openai_mock(side_effect=error))

        result = await client.invoke([Message.user("hi")], [])

        assert not result.success
        assert result.error == ModelErrorCode.AUTHENTICATION_ERROR
        assert result.metadata["status_code"] == 401
        assert result.metadata["provider"] == "openai"

    @pytest.mark.asyncio
    async def test_invalid_response(self):
        client = OpenAIModelClient("gpt-4o", client=openai_mock(SimpleNamespace(choices=[])))
        result = await client.invoke([Message.user("hi")], [])
        assert result.error == ModelErrorCode.INVALID_RESPONSE

    @pytest.mark.asyncio
    async def test_stream(self):
        chunks = [
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="Hel"))]),
            SimpleNamespace(choices=[]),
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=None))]),
            SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content="lo"))]),
        ]
        sdk = openai_mock(aiter_of(chunks))
        client = OpenAIModelClient("gpt-4o", client=sdk)

        result = await client.stream([Message.user("hi")], [])

        assert result.success
        assert [f async for f in result.result] == ["Hel", "lo"]
        assert sdk.chat.completions.create.call_args.kwargs["stream"] is True

    @pytest.mark.asyncio
    async def test_stream_open_failure(self):
        client = OpenAIModelClient(
            "gpt-4o", client=openai_mock(side_effect=ConnectionError("refused"))
        )
        result = await client.stream([Message.user("hi")], [])
        assert result.error == ModelErrorCode.NETWORK_ERROR


# ---------------------------------------------------------------------------
# Anthropic client
# ---------------------------------------------------------------------------


class TestAnthropicModelClient:
    def test_format_messages(self):
        system, formatted = AnthropicModelClient.format_messages(TRANSCRIPT)
        assert system == "sys"
        assert formatted[0] == {"role": "user", "content": "greet Ana and Bo"}
        assert formatted[1]["role"] == "assistant"
        assert [b["type"] for b in formatted[1]["content"]] == ["tool_use", "tool_use"]
        assert formatted[1]["content"][0]["input"] == {"name": "Ana"}
        assert len(formatted) == 3
        results = formatted[2]["content"]
        assert [b["tool_use_id"] for b in results] == ["c1", "c2"]

    @pytest.mark.asyncio
    async def test_invoke(self):
        response = SimpleNamespace(
            content=[
                SimpleNamespace(type="text", text="Let me greet."),
                SimpleNamespace(type="tool_use", id="t1", name="hello_world", input={"name": "Ana"}),
            ],
            usage=SimpleNamespace(input_tokens=7, output_tokens=3),
        )
        sdk = anthropic_mock(response)
        client = AnthropicModelClient("claude-sonnet-4-20250514", client=sdk)

        result = await client.invoke(TRANSCRIPT[:2], [hello_world])

        assert result.result.content == "Let me greet."
        assert result.result.tool_calls[0].args == {"name": "Ana"}
        assert result.result.usage.total_tokens == 10
        kwargs = sdk.messages.create.call_args.kwargs
        assert kwargs["system"] == "sys"
        assert kwargs["max_tokens"] == 4096
        assert kwargs["tools"][0]["input_schema"] == hello_world.parameters

    @pytest.mark.asyncio
    async def test_invoke_maps_errors(self):
        client = AnthropicModelClient(
            "claude-x", client=anthropic_mock(side_effect=Exception("rate limit exceeded"))
        )
        result = await client.invoke([Message.user("hi")], [])
        assert result.error == ModelErrorCode.RATE_LIMITED
        assert result.metadata["provider"] == "anthropic"

    @pytest.mark.asyncio
    async def test_stream(self):
        events = [
            SimpleNamespace(type="message_start"),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="Bon")),
            SimpleNamespace(type="content_block_delta", delta=SimpleNamespace(text="jour")),
            SimpleNamespace(type="message_stop"),
        ]
        client = AnthropicModelClient("claude-x", client=anthropic_mock(aiter_of(events)))

        result = await client.stream([Message.user("hi")], [])

        assert [f async for f in result.result] == ["Bon", "jour"]


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestCreateModelClient:
    def test_supported_providers(self):
        assert "openai" in get_supported_providers()
        assert "anthropic" in get_supported_providers()

    def test_openai(self):
        client = create_model_client(AgentSettings(model="gpt-4o", api_key="sk-test"))
        assert isinstance(client, OpenAIModelClient)
        assert client.get_provider_name() == "openai"
        assert client.get_model_name() == "gpt-4o"

    def test_anthropic_inferred_from_model(self):
        client = create_model_client(
            AgentSettings(model="claude-sonnet-4-20250514", api_key="sk-ant")
        )
        assert isinstance(client, AnthropicModelClient)

    def test_local_needs_no_key(self, monkeypatch):
        client = create_model_client(AgentSettings(provider="local"))
        assert client.get_provider_name() == "local"
        assert client.get_model_name() == "qwen3:latest"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ProviderNotConfiguredError):
            create_model_client(AgentSettings(provider="openai"))

    def test_unsupported_provider(self):
        with pytest.raises(ProviderNotSupportedError) as exc_info:
            create_model_client(AgentSettings(model="gemini-pro", api_key="k"))
        assert exc_info.value.provider == "gemini"
