"""Shared fixtures: a scripted model client and a callback recorder."""

from typing import Any, Optional, Sequence

import pytest

from agentloop.callbacks import HOOK_NAMES, AgentCallbacks
from agentloop.llm import ModelClient
from agentloop.models import LLMResponse, Message, ModelResult, StreamResult, ToolCallRequest
from agentloop.tools import ToolDef


class FakeModelClient(ModelClient):
    """Model client that replays scripted responses.

    Each item in ``responses`` is an :class:`LLMResponse` (returned as a
    success), a :class:`ModelResult` (returned as is) or an exception
    (raised from ``invoke``). ``stream`` yields ``stream_fragments`` and then
    raises ``stream_error`` if one is set; ``stream_result`` replaces the
    whole stream outcome.
    """

    def __init__(
        self,
        responses: Optional[list[Any]] = None,
        stream_fragments: Optional[list[str]] = None,
        stream_error: Optional[Exception] = None,
        stream_result: Optional[ModelResult] = None,
        model: str = "fake-model",
        provider: str = "fake",
    ):
        self.responses = list(responses or [])
        self.stream_fragments = list(stream_fragments or [])
        self.stream_error = stream_error
        self.stream_result = stream_result
        self.model = model
        self.provider = provider
        self.invoke_calls: list[list[Message]] = []
        self.stream_calls: list[list[Message]] = []
        self.tools_seen: list[list[ToolDef]] = []

    def get_model_name(self) -> str:
        return self.model

    def get_provider_name(self) -> str:
        return self.provider

    async def invoke(self, messages: Sequence[Message], tools: Sequence[ToolDef]):
        self.invoke_calls.append(list(messages))
        self.tools_seen.append(list(tools))
        item = self.responses.pop(0) if self.responses else LLMResponse(content="")
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, ModelResult):
            return item
        return ModelResult.ok(item)

    async def stream(self, messages: Sequence[Message], tools: Sequence[ToolDef]) -> StreamResult:
        self.stream_calls.append(list(messages))
        if self.stream_result is not None:
            return self.stream_result
        return ModelResult.ok(self._fragments())

    async def _fragments(self):
        for fragment in self.stream_fragments:
            yield fragment
        if self.stream_error is not None:
            raise self.stream_error


class EventRecorder:
    """Records every callback invocation as ``(hook_name, args)``."""

    def __init__(self):
        self.events: list[tuple[str, tuple]] = []

    def _hook(self, name: str):
        def record(*args):
            self.events.append((name, args))

        return record

    def callbacks(self) -> AgentCallbacks:
        return AgentCallbacks(**{name: self._hook(name) for name in HOOK_NAMES})

    def names(self, include_diagnostics: bool = False) -> list[str]:
        skip = set() if include_diagnostics else {"on_debug", "on_trace"}
        return [name for name, _ in self.events if name not in skip]

    def of(self, name: str) -> list[tuple]:
        return [args for hook, args in self.events if hook == name]

    def debug_messages(self) -> list[str]:
        return [args[0] for args in self.of("on_debug")]


def tool_call_response(*calls: tuple[str, str, dict], content: str = "") -> LLMResponse:
    """Build a response requesting ``(id, name, args)`` tool calls."""
    return LLMResponse(
        content=content,
        tool_calls=tuple(ToolCallRequest(id=i, name=n, args=a) for i, n, a in calls),
    )


@pytest.fixture
def recorder():
    return EventRecorder()
