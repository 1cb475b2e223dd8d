"""
agentloop - Model client contract and provider clients.

The agent loop depends only on :class:`ModelClient`. Concrete clients wrap
the ``openai`` and ``anthropic`` SDKs, translate :class:`Message` lists into
each provider's wire format, and report every failure as a
:class:`ModelResult` instead of raising.

Usage:
    ```python
    from agentloop.config import AgentSettings
    from agentloop.llm import create_model_client

    client = create_model_client(AgentSettings(model="gpt-4o"))
    result = await client.invoke([Message.user("Hello")], [])
    if result.success:
        print(result.result.content)
    ```
"""

import abc
import json
import logging
import uuid
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Optional, Sequence

from .errors import ModelErrorCode, map_error_to_code
from .exceptions import ProviderNotConfiguredError, ProviderNotSupportedError
from .models import (
    LLMResponse,
    Message,
    MessageRole,
    ModelResult,
    StreamResult,
    TokenUsage,
    ToolCallRequest,
)
from .tools import ToolDef

if TYPE_CHECKING:
    from .config import AgentSettings

logger = logging.getLogger("agentloop.llm")

OPENAI_STYLE_PROVIDERS = {"openai", "deepseek", "grok", "openrouter", "local"}
ANTHROPIC_STYLE_PROVIDERS = {"anthropic"}

DEFAULT_BASE_URLS = {
    "deepseek": "https://api.deepseek.com",
    "grok": "https://api.x.ai/v1",
    "openrouter": "https://openrouter.ai/api/v1",
    "local": "http://localhost:11434/v1",
}


def resolve_provider(model: str) -> str:
    """Infer provider from model name if not explicitly set."""
    m = model.lower()
    if m.startswith("claude"):
        return "anthropic"
    if m.startswith("gemini"):
        return "gemini"
    if m.startswith("grok"):
        return "grok"
    if m.startswith("deepseek"):
        return "deepseek"
    if "/" in m:
        return "openrouter"
    return "openai"


def tools_to_openai_format(tools: Sequence[ToolDef]) -> list[dict]:
    """Convert tool definitions to OpenAI function-calling format."""
    return [
        {
            "type": "function",
            "function": {
                "name": t.name,
                "description": t.description,
                "parameters": t.parameters,
            },
        }
        for t in tools
    ]


def tools_to_anthropic_format(tools: Sequence[ToolDef]) -> list[dict]:
    """Convert tool definitions to Anthropic tool format."""
    return [
        {
            "name": t.name,
            "description": t.description,
            "input_schema": t.parameters,
        }
        for t in tools
    ]


def _parse_arguments(raw: Any) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (json.JSONDecodeError, TypeError):
        logger.debug("Discarding malformed tool arguments: %r", raw)
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _usage_dict(usage: Any) -> Optional[dict[str, Any]]:
    if usage is None:
        return None
    if isinstance(usage, dict):
        return usage
    if hasattr(usage, "model_dump"):
        return usage.model_dump()
    return {
        key: getattr(usage, key)
        for key in (
            "prompt_tokens",
            "completion_tokens",
            "total_tokens",
            "input_tokens",
            "output_tokens",
        )
        if isinstance(getattr(usage, key, None), int)
    }


class ModelClient(abc.ABC):
    """Provider-agnostic model client.

    Implementations must not raise from :meth:`invoke` or :meth:`stream`
    for provider faults; they return ``ModelResult(success=False, ...)``.
    The agent loop still guards against exceptions.
    """

    @abc.abstractmethod
    async def invoke(
        self, messages: Sequence[Message], tools: Sequence[ToolDef]
    ) -> ModelResult[LLMResponse]:
        """Make one buffered model call."""

    @abc.abstractmethod
    async def stream(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> StreamResult:
        """Open a streaming model call yielding text fragments."""

    @abc.abstractmethod
    def get_model_name(self) -> str: ...

    @abc.abstractmethod
    def get_provider_name(self) -> str: ...

    def _failure(self, error: BaseException) -> ModelResult[Any]:
        code = map_error_to_code(error)
        metadata: dict[str, Any] = {
            "provider": self.get_provider_name(),
            "model": self.get_model_name(),
        }
        status = getattr(error, "status_code", None)
        if status is not None:
            metadata["status_code"] = status
        logger.debug("%s call failed: %s (%s)", self.get_provider_name(), error, code.value)
        return ModelResult.fail(code, str(error) or type(error).__name__, **metadata)


class OpenAIModelClient(ModelClient):
    """Client for OpenAI and OpenAI-compatible chat completion APIs."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider: str = "openai",
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        client: Any = None,
    ) -> None:
        self._model = model
        self._provider = provider
        self._temperature = temperature
        self._max_tokens = max_tokens
        if client is None:
            import openai

            client = openai.AsyncOpenAI(api_key=api_key, base_url=base_url)
        self._client = client

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return self._provider

    @staticmethod
    def format_messages(messages: Sequence[Message]) -> list[dict[str, Any]]:
        formatted: list[dict[str, Any]] = []
        for m in messages:
            if m.role == MessageRole.TOOL:
                formatted.append(
                    {"role": "tool", "tool_call_id": m.tool_call_id, "content": m.content}
                )
                continue
            msg: dict[str, Any] = {"role": m.role.value, "content": m.content}
            if m.role == MessageRole.ASSISTANT and m.tool_calls:
                msg["content"] = m.content or None
                msg["tool_calls"] = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {"name": tc.name, "arguments": json.dumps(tc.args)},
                    }
                    for tc in m.tool_calls
                ]
            formatted.append(msg)
        return formatted

    def _call_kwargs(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> dict:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": self.format_messages(messages),
        }
        if tools:
            kwargs["tools"] = tools_to_openai_format(tools)
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        if self._max_tokens is not None:
            kwargs["max_tokens"] = self._max_tokens
        return kwargs

    @staticmethod
    def parse_response(response: Any) -> LLMResponse:
        """Extract content, tool calls and usage from a chat completion."""
        if not getattr(response, "choices", None):
            raise ValueError("Response contained no choices")
        msg = response.choices[0].message
        calls = []
        for tc in getattr(msg, "tool_calls", None) or []:
            calls.append(
                ToolCallRequest(
                    id=getattr(tc, "id", None) or str(uuid.uuid4()),
                    name=tc.function.name,
                    args=_parse_arguments(tc.function.arguments),
                )
            )
        return LLMResponse(
            content=msg.content or "",
            tool_calls=tuple(calls),
            usage=TokenUsage.from_dict(_usage_dict(getattr(response, "usage", None))),
        )

    async def invoke(
        self, messages: Sequence[Message], tools: Sequence[ToolDef]
    ) -> ModelResult[LLMResponse]:
        try:
            response = await self._client.chat.completions.create(
                **self._call_kwargs(messages, tools)
            )
        except Exception as e:
            return self._failure(e)
        try:
            return ModelResult.ok(self.parse_response(response))
        except (AttributeError, IndexError, TypeError, ValueError) as e:
            return ModelResult.fail(
                ModelErrorCode.INVALID_RESPONSE,
                f"Invalid response from {self._provider}: {e}",
                provider=self._provider,
                model=self._model,
            )

    async def stream(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> StreamResult:
        kwargs = self._call_kwargs(messages, tools)
        kwargs["stream"] = True
        try:
            raw_stream = await self._client.chat.completions.create(**kwargs)
        except Exception as e:
            return self._failure(e)
        return ModelResult.ok(self._iter_stream(raw_stream))

    async def _iter_stream(self, raw_stream: Any) -> AsyncIterator[str]:
        async for chunk in raw_stream:
            choices = getattr(chunk, "choices", None)
            if not choices:
                continue
            content = getattr(choices[0].delta, "content", None)
            if content:
                yield content


class AnthropicModelClient(ModelClient):
    """Client for the Anthropic Messages API."""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: int = 4096,
        client: Any = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._max_tokens = max_tokens
        if client is None:
            import anthropic

            client = anthropic.AsyncAnthropic(api_key=api_key, base_url=base_url)
        self._client = client

    def get_model_name(self) -> str:
        return self._model

    def get_provider_name(self) -> str:
        return "anthropic"

    @staticmethod
    def format_messages(messages: Sequence[Message]) -> tuple[str, list[dict[str, Any]]]:
        """Split out the system prompt and convert the rest to Anthropic turns.

        Consecutive tool results are merged into a single ``user`` turn, as
        the API requires all results for one assistant turn together.
        """
        system_parts: list[str] = []
        formatted: list[dict[str, Any]] = []
        for m in messages:
            if m.role == MessageRole.SYSTEM:
                system_parts.append(m.content)
            elif m.role == MessageRole.TOOL:
                block = {
                    "type": "tool_result",
                    "tool_use_id": m.tool_call_id,
                    "content": m.content,
                }
                last = formatted[-1] if formatted else None
                if (
                    last is not None
                    and last["role"] == "user"
                    and isinstance(last["content"], list)
                    and all(b.get("type") == "tool_result" for b in last["content"])
                ):
                    last["content"].append(block)
                else:
                    formatted.append({"role": "user", "content": [block]})
            elif m.role == MessageRole.ASSISTANT and m.tool_calls:
                content: list[dict[str, Any]] = []
                if m.content:
                    content.append({"type": "text", "text": m.content})
                for tc in m.tool_calls:
                    content.append(
                        {"type": "tool_use", "id": tc.id, "name": tc.name, "input": tc.args}
                    )
                formatted.append({"role": "assistant", "content": content})
            else:
                formatted.append({"role": m.role.value, "content": m.content})
        return "\n\n".join(p for p in system_parts if p), formatted

    def _call_kwargs(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> dict:
        system, formatted = self.format_messages(messages)
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": self._max_tokens,
            "messages": formatted,
        }
        if system:
            kwargs["system"] = system
        if tools:
            kwargs["tools"] = tools_to_anthropic_format(tools)
        if self._temperature is not None:
            kwargs["temperature"] = self._temperature
        return kwargs

    @staticmethod
    def parse_response(response: Any) -> LLMResponse:
        """Extract text blocks, ``tool_use`` blocks and usage."""
        blocks = getattr(response, "content", None)
        if not isinstance(blocks, list):
            raise ValueError("Response contained no content blocks")
        texts = []
        calls = []
        for block in blocks:
            block_type = getattr(block, "type", "")
            if block_type == "text":
                texts.append(block.text)
            elif block_type == "tool_use":
                calls.append(
                    ToolCallRequest(
                        id=getattr(block, "id", None) or str(uuid.uuid4()),
                        name=block.name,
                        args=_parse_arguments(getattr(block, "input", {})),
                    )
                )
        return LLMResponse(
            content="\n".join(texts),
            tool_calls=tuple(calls),
            usage=TokenUsage.from_dict(_usage_dict(getattr(response, "usage", None))),
        )

    async def invoke(
        self, messages: Sequence[Message], tools: Sequence[ToolDef]
    ) -> ModelResult[LLMResponse]:
        try:
            response = await self._client.messages.create(**self._call_kwargs(messages, tools))
        except Exception as e:
            return self._failure(e)
        try:
            return ModelResult.ok(self.parse_response(response))
        except (AttributeError, TypeError, ValueError) as e:
            return ModelResult.fail(
                ModelErrorCode.INVALID_RESPONSE,
                f"Invalid response from anthropic: {e}",
                provider="anthropic",
                model=self._model,
            )

    async def stream(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> StreamResult:
        kwargs = self._call_kwargs(messages, tools)
        kwargs["stream"] = True
        try:
            raw_stream = await self._client.messages.create(**kwargs)
        except Exception as e:
            return self._failure(e)
        return ModelResult.ok(self._iter_stream(raw_stream))

    async def _iter_stream(self, raw_stream: Any) -> AsyncIterator[str]:
        async for event in raw_stream:
            if getattr(event, "type", "") != "content_block_delta":
                continue
            text = getattr(getattr(event, "delta", None), "text", None)
            if text:
                yield text


def _create_openai(settings: "AgentSettings") -> ModelClient:
    provider = settings.provider or "openai"
    return OpenAIModelClient(
        model=settings.model,
        # Local OpenAI-compatible servers accept any key.
        api_key=settings.api_key or ("local" if provider == "local" else None),
        base_url=settings.base_url or DEFAULT_BASE_URLS.get(provider),
        provider=provider,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )


def _create_anthropic(settings: "AgentSettings") -> ModelClient:
    return AnthropicModelClient(
        model=settings.model,
        api_key=settings.api_key,
        base_url=settings.base_url,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens or 4096,
    )


PROVIDER_REGISTRY: dict[str, Callable[["AgentSettings"], ModelClient]] = {
    "openai": _create_openai,
    "deepseek": _create_openai,
    "grok": _create_openai,
    "openrouter": _create_openai,
    "local": _create_openai,
    "anthropic": _create_anthropic,
}


def get_supported_providers() -> list[str]:
    return sorted(PROVIDER_REGISTRY)


def create_model_client(settings: "AgentSettings") -> ModelClient:
    """Build the model client selected by ``settings``.

    Raises:
        ProviderNotSupportedError: No factory is registered for the provider.
        ProviderNotConfiguredError: The model name or API key is missing.
    """
    provider = settings.provider or resolve_provider(settings.model)
    factory = PROVIDER_REGISTRY.get(provider)
    if factory is None:
        raise ProviderNotSupportedError(provider, get_supported_providers())
    if not settings.model:
        raise ProviderNotConfiguredError(provider, f"No model configured for provider '{provider}'")
    if not settings.api_key and provider != "local":
        raise ProviderNotConfiguredError(
            provider, f"No API key configured for provider '{provider}'"
        )
    logger.debug("Creating %s client for model %s", provider, settings.model)
    return factory(settings.merged(provider=provider))
