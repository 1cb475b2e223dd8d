"""
Tests for tool definitions, the registry, dispatch and the sample tools.
"""

import json
from unittest.mock import MagicMock

import pytest

from agentloop.callbacks import AgentCallbacks, CallbackEmitter
from agentloop.errors import ToolErrorCode
from agentloop.exceptions import ToolRegistrationError
from agentloop.hello import default_tools, greet_user, hello_world
from agentloop.models import MessageRole, ToolCallRequest, ToolFailure, ToolSuccess
from agentloop.tools import (
    DEFAULT_PARAMETERS,
    ToolDef,
    ToolRegistry,
    define_tool,
    dispatch,
    normalize_outcome,
    tool,
    tool_failure,
    tool_success,
)
from agentloop.tracing import new_trace

# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------


class TestDefineTool:
    def test_uses_function_name_and_docstring(self):
        @define_tool()
        def lookup(input: str):
            """Look something up."""
            return input

        assert isinstance(lookup, ToolDef)
        assert lookup.name == "lookup"
        assert lookup.description == "Look something up."
        assert lookup.parameters == DEFAULT_PARAMETERS

    def test_explicit_values(self):
        params = {"type": "object", "properties": {"q": {"type": "string"}}}

        @tool(name="search", description="Search things.", parameters=params)
        def _impl(q: str):
            return q

        assert _impl.name == "search"
        assert _impl.to_schema() == {
            "name": "search",
            "description": "Search things.",
            "parameters": params,
        }

    @pytest.mark.asyncio
    async def test_invoke_async_handler(self):
        @define_tool(description="Async tool.")
        async def fetch(input: str):
            return {"fetched": input}

        outcome = await fetch.invoke({"input": "x"})
        assert outcome.success
        assert outcome.result == {"fetched": "x"}

    @pytest.mark.asyncio
    async def test_invoke_without_handler(self):
        outcome = await ToolDef(name="empty", description="No handler.").invoke({})
        assert not outcome.success
        assert outcome.error == ToolErrorCode.CONFIG_ERROR


class TestOutcomes:
    def test_normalize_keeps_typed_outcomes(self):
        ok = tool_success({"a": 1}, "done")
        bad = tool_failure(ToolErrorCode.IO_ERROR, "disk full")
        assert normalize_outcome(ok) is ok
        assert normalize_outcome(bad) is bad

    def test_normalize_wraps_other_values(self):
        assert normalize_outcome({"a": 1}).result == {"a": 1}
        assert normalize_outcome("text").result == "text"
        assert normalize_outcome(42).result == {"result": "42"}

    def test_success_content(self):
        assert ToolSuccess(result="plain text").to_content() == "plain text"
        payload = json.loads(ToolSuccess(result={"a": 1}, title="t").to_content())
        assert payload == {"success": True, "result": {"a": 1}, "message": "t"}

    def test_failure_content(self):
        payload = json.loads(ToolFailure(ToolErrorCode.TIMEOUT, "slow").to_content())
        assert payload == {"success": False, "error": "TIMEOUT", "message": "slow"}

    def test_tool_success_metadata(self):
        assert tool_success("x", "t", bytes=3).metadata == {"bytes": 3}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TestToolRegistry:
    def test_register_and_lookup(self):
        registry = ToolRegistry([hello_world])
        assert "hello_world" in registry
        assert registry.get("hello_world") is hello_world
        assert registry.get("missing") is None
        assert len(registry) == 1

    def test_order_is_preserved(self):
        registry = ToolRegistry([greet_user, hello_world])
        assert registry.names() == ["greet_user", "hello_world"]
        assert [s["name"] for s in registry.schemas()] == ["greet_user", "hello_world"]

    def test_duplicate_rejected(self):
        registry = ToolRegistry([hello_world])
        with pytest.raises(ToolRegistrationError) as exc_info:
            registry.register(hello_world)
        assert exc_info.value.tool_name == "hello_world"

    def test_replace(self):
        registry = ToolRegistry([hello_world])
        other = ToolDef(name="hello_world", description="Replacement.")
        registry.register(other, replace=True)
        assert registry.get("hello_world") is other

    def test_empty_name_rejected(self):
        with pytest.raises(ToolRegistrationError):
            ToolRegistry([ToolDef(name="", description="x")])

    def test_unregister(self):
        registry = ToolRegistry([hello_world])
        assert registry.unregister("hello_world") is True
        assert registry.unregister("hello_world") is False
        assert len(registry) == 0

    def test_registries_are_independent(self):
        a = ToolRegistry([hello_world])
        b = ToolRegistry([greet_user])
        assert "greet_user" not in a
        assert "hello_world" not in b


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def _emitter():
    callbacks = AgentCallbacks(
        on_tool_start=MagicMock(), on_tool_end=MagicMock(), on_debug=MagicMock()
    )
    return callbacks, CallbackEmitter(callbacks)


class TestDispatch:
    @pytest.mark.asyncio
    async def test_success(self):
        callbacks, emitter = _emitter()
        ctx = new_trace()
        request = ToolCallRequest(id="c1", name="hello_world", args={"name": "Ada"})

        msg = await dispatch(request, ToolRegistry([hello_world]), ctx, emitter)

        assert msg.role == MessageRole.TOOL
        assert msg.tool_call_id == "c1"
        assert msg.name == "hello_world"
        assert json.loads(msg.content)["result"] == {"greeting": "Hello, Ada!"}
        callbacks.on_tool_start.assert_called_once_with(ctx, "hello_world", {"name": "Ada"})
        end_args = callbacks.on_tool_end.call_args[0]
        assert end_args[0] is ctx
        assert end_args[2].title == "Greeted Ada"

    @pytest.mark.asyncio
    async def test_not_found(self):
        callbacks, emitter = _emitter()
        request = ToolCallRequest(id="c1", name="nope", args={})

        msg = await dispatch(request, ToolRegistry([hello_world]), new_trace(), emitter)

        callbacks.on_tool_start.assert_not_called()
        callbacks.on_tool_end.assert_not_called()
        callbacks.on_debug.assert_called_once_with("Tool 'nope' not found", {"tool_call": request})
        assert msg.tool_call_id == "c1"
        assert json.loads(msg.content) == {
            "success": False,
            "error": "NOT_FOUND",
            "message": "Tool 'nope' not found",
        }

    @pytest.mark.asyncio
    async def test_handler_exception(self):
        def fail(**kwargs):
            raise ValueError("bad input")

        callbacks, emitter = _emitter()
        registry = ToolRegistry([ToolDef(name="fail", description="x", handler=fail)])

        msg = await dispatch(ToolCallRequest("c", "fail", {}), registry, new_trace(), emitter)

        outcome = callbacks.on_tool_end.call_args[0][2]
        assert outcome.error == ToolErrorCode.UNKNOWN
        assert outcome.message == "bad input"
        assert json.loads(msg.content)["error"] == "UNKNOWN"

    @pytest.mark.asyncio
    async def test_unexpected_arguments_become_failure(self):
        request = ToolCallRequest(id="c", name="hello_world", args={"bogus": 1})
        msg = await dispatch(request, ToolRegistry([hello_world]), new_trace())
        assert json.loads(msg.content)["success"] is False

    @pytest.mark.asyncio
    async def test_string_result_used_verbatim(self):
        echo = ToolDef(name="echo", description="Echo.", handler=lambda input: input)
        request = ToolCallRequest(id="c", name="echo", args={"input": "raw text"})
        msg = await dispatch(request, ToolRegistry([echo]), new_trace())
        assert msg.content == "raw text"


# ---------------------------------------------------------------------------
# Sample tools
# ---------------------------------------------------------------------------


class TestHelloTools:
    @pytest.mark.asyncio
    async def test_hello_world_default(self):
        outcome = await hello_world.invoke({})
        assert outcome.result == {"greeting": "Hello, World!"}
        assert outcome.title == "Greeted World"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "language,greeting",
        [("en", "Hello, Ana!"), ("es", "¡Hola, Ana!"), ("fr", "Bonjour, Ana!")],
    )
    async def test_greet_user(self, language, greeting):
        outcome = await greet_user.invoke({"name": "Ana", "language": language})
        assert outcome.success
        assert outcome.result == {"greeting": greeting, "language": language}

    @pytest.mark.asyncio
    async def test_greet_user_unsupported_language(self):
        outcome = await greet_user.invoke({"name": "Bob", "language": "de"})
        assert not outcome.success
        assert outcome.error == ToolErrorCode.VALIDATION_ERROR
        assert outcome.message == "Language 'de' not supported. Use: en, es, fr"

    def test_default_tools(self):
        assert [t.name for t in default_tools()] == ["hello_world", "greet_user"]
