"""
agentloop - Tool definitions, registry and dispatch.

Usage:
    ```python
    from agentloop.tools import ToolRegistry, define_tool, tool_success

    @define_tool(description="Greet someone.", parameters={
        "type": "object",
        "properties": {"name": {"type": "string"}},
        "required": ["name"],
    })
    def greeting(name: str):
        return tool_success({"greeting": f"Hello, {name}!"}, f"Greeted {name}")

    registry = ToolRegistry([greeting])
    ```
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional

from .callbacks import CallbackEmitter
from .errors import ToolErrorCode
from .exceptions import ToolRegistrationError
from .models import Message, SpanContext, ToolCallRequest, ToolFailure, ToolResult, ToolSuccess

logger = logging.getLogger("agentloop.tools")

DEFAULT_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "input": {"type": "string", "description": "Input for the tool."},
    },
    "required": ["input"],
}


@dataclass
class ToolDef:
    """A tool the model can call.

    The ``handler`` receives the model-supplied arguments as keyword
    arguments and may be sync or async. It may return a
    :class:`~agentloop.models.ToolSuccess`/:class:`~agentloop.models.ToolFailure`,
    a ``dict`` (treated as a success payload) or any other value (wrapped as
    ``{"result": str(value)}``). Exceptions are caught by :func:`dispatch`.

    Example::

        ToolDef(
            name="hello_world",
            description="Say hello to someone.",
            parameters={
                "type": "object",
                "properties": {"name": {"type": "string", "default": "World"}},
            },
            handler=hello_world,
        )
    """

    name: str
    description: str
    parameters: dict = field(default_factory=lambda: dict(DEFAULT_PARAMETERS))
    handler: Optional[Callable[..., Any]] = None

    def to_schema(self) -> dict:
        """Return the tool definition as a JSON-schema dict for the LLM."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }

    async def invoke(self, args: dict[str, Any]) -> ToolResult:
        """Run the handler and normalize its return value."""
        if self.handler is None:
            return ToolFailure(
                ToolErrorCode.CONFIG_ERROR, f"Tool '{self.name}' has no handler"
            )
        raw = self.handler(**args)
        if inspect.isawaitable(raw):
            raw = await raw
        return normalize_outcome(raw)


def define_tool(
    name: Optional[str] = None,
    description: str = "",
    parameters: Optional[dict] = None,
) -> Callable[[Callable[..., Any]], ToolDef]:
    """Decorator that turns a function into a :class:`ToolDef`.

    The function's ``__name__`` is the tool name unless *name* is given;
    its docstring is the description unless *description* is given.
    """

    def decorator(func: Callable[..., Any]) -> ToolDef:
        tool_name = name or func.__name__
        return ToolDef(
            name=tool_name,
            description=description or (func.__doc__ or "").strip() or f"Tool: {tool_name}",
            parameters=parameters or dict(DEFAULT_PARAMETERS),
            handler=func,
        )

    return decorator


tool = define_tool


def tool_success(result: Any, title: str = "", **metadata: Any) -> ToolSuccess:
    """Create a success outcome."""
    return ToolSuccess(result=result, title=title, metadata=metadata)


def tool_failure(error: ToolErrorCode, message: str) -> ToolFailure:
    """Create a typed failure outcome."""
    return ToolFailure(error=ToolErrorCode(error), message=message)


def normalize_outcome(raw: Any) -> ToolResult:
    """Coerce a handler's return value into a :data:`ToolResult`."""
    if isinstance(raw, (ToolSuccess, ToolFailure)):
        return raw
    if isinstance(raw, str):
        return ToolSuccess(result=raw, title="Tool executed successfully")
    if isinstance(raw, dict):
        return ToolSuccess(result=raw, title="Tool executed successfully")
    return ToolSuccess(result={"result": str(raw)}, title="Tool executed successfully")


class ToolRegistry:
    """Name-keyed collection of tools bound to one agent.

    Registries are plain injected objects: several agents with different
    tool sets can coexist in one process. Lookups are read-only and safe to
    call from concurrent runs; mutate a registry only while no run uses it.
    """

    def __init__(self, tools: Optional[Iterable[ToolDef]] = None) -> None:
        self._tools: dict[str, ToolDef] = {}
        for t in tools or ():
            self.register(t)

    def register(self, tool_def: ToolDef, replace: bool = False) -> None:
        if not tool_def.name:
            raise ToolRegistrationError("Tool name must be a non-empty string")
        if tool_def.name in self._tools and not replace:
            raise ToolRegistrationError(
                f"Tool '{tool_def.name}' is already registered", tool_name=tool_def.name
            )
        self._tools[tool_def.name] = tool_def

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> Optional[ToolDef]:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools)

    def schemas(self) -> list[dict]:
        return [t.to_schema() for t in self._tools.values()]

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __iter__(self) -> Iterator[ToolDef]:
        return iter(list(self._tools.values()))

    def __len__(self) -> int:
        return len(self._tools)


async def dispatch(
    request: ToolCallRequest,
    registry: ToolRegistry,
    ctx: SpanContext,
    emitter: Optional[CallbackEmitter] = None,
) -> Message:
    """Execute one tool-call request and return the ``tool`` message for it.

    Unknown tools are reported through ``on_debug`` only, no start/end
    events fire for them, and the model receives a ``NOT_FOUND`` failure
    as the tool output. Exceptions raised by a handler become ``UNKNOWN``
    failures. Nothing raised by a tool escapes this function.
    """
    emitter = emitter or CallbackEmitter()
    tool_def = registry.get(request.name)

    if tool_def is None:
        message = f"Tool '{request.name}' not found"
        emitter.debug(message, {"tool_call": request})
        outcome: ToolResult = ToolFailure(ToolErrorCode.NOT_FOUND, message)
        return Message.tool(outcome.to_content(), tool_call_id=request.id, name=request.name)

    emitter.tool_start(ctx, request.name, request.args)
    try:
        outcome = await tool_def.invoke(dict(request.args))
    except Exception as e:
        logger.debug("Tool %s raised", request.name, exc_info=True)
        outcome = ToolFailure(ToolErrorCode.UNKNOWN, str(e) or type(e).__name__)
    emitter.tool_end(ctx, request.name, outcome)

    return Message.tool(outcome.to_content(), tool_call_id=request.id, name=request.name)
