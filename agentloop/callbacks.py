"""
agentloop - Lifecycle callbacks.

Callbacks are the only way external code observes a run. Every hook is
optional and invoked synchronously in state-machine order. Hooks are
observers, not gates: their return values are ignored and an exception
raised by a hook is logged and swallowed so it cannot corrupt a run.
"""

import logging
from dataclasses import dataclass, fields
from typing import Any, Callable, Optional

from .errors import AgentErrorResponse
from .models import LLMResponse, SpanContext, ToolResult

logger = logging.getLogger("agentloop.callbacks")


@dataclass
class AgentCallbacks:
    """Optional hooks for agent lifecycle events.

    Attributes:
        on_agent_start: ``(ctx, query)`` when a run begins.
        on_agent_end: ``(ctx, answer)`` when a run ends, including the
            ``"Error: ..."`` strings returned on failure.
        on_error: ``(ctx, error)`` for model-client failures only.
        on_llm_start: ``(ctx)`` before each model call.
        on_llm_stream: ``(ctx, fragment)`` for each streamed fragment.
        on_llm_end: ``(ctx, response)`` after a successful model call.
        on_tool_start: ``(ctx, name, args)`` before a registered tool runs.
        on_tool_end: ``(ctx, name, outcome)`` after it returns or fails.
        on_spinner_start: ``(label)`` to show a progress indicator.
        on_spinner_stop: ``()`` to hide it.
        on_debug: ``(message, data)`` implementer-facing diagnostics.
        on_trace: ``(message, data)`` verbose diagnostics.
    """

    on_agent_start: Optional[Callable[[SpanContext, str], None]] = None
    on_agent_end: Optional[Callable[[SpanContext, str], None]] = None
    on_error: Optional[Callable[[SpanContext, AgentErrorResponse], None]] = None
    on_llm_start: Optional[Callable[[SpanContext], None]] = None
    on_llm_stream: Optional[Callable[[SpanContext, str], None]] = None
    on_llm_end: Optional[Callable[[SpanContext, LLMResponse], None]] = None
    on_tool_start: Optional[Callable[[SpanContext, str, dict[str, Any]], None]] = None
    on_tool_end: Optional[Callable[[SpanContext, str, ToolResult], None]] = None
    on_spinner_start: Optional[Callable[[str], None]] = None
    on_spinner_stop: Optional[Callable[[], None]] = None
    on_debug: Optional[Callable[..., None]] = None
    on_trace: Optional[Callable[..., None]] = None


HOOK_NAMES = tuple(f.name for f in fields(AgentCallbacks))


def merge_callbacks(*callback_sets: Optional[AgentCallbacks]) -> AgentCallbacks:
    """Combine several callback sets; each hook fans out in argument order."""
    merged: dict[str, Callable[..., None]] = {}
    for name in HOOK_NAMES:
        hooks = [getattr(cb, name) for cb in callback_sets if cb and getattr(cb, name)]
        if not hooks:
            continue
        if len(hooks) == 1:
            merged[name] = hooks[0]
            continue

        def _fan_out(*args: Any, _hooks: list = hooks) -> None:
            for hook in _hooks:
                hook(*args)

        merged[name] = _fan_out
    return AgentCallbacks(**merged)


def logging_callbacks(
    target: Optional[logging.Logger] = None, include_errors: bool = True
) -> AgentCallbacks:
    """Callbacks that forward debug and trace diagnostics to a logger.

    With ``include_errors`` the ``on_error`` hook logs at ERROR as well.
    """
    log = target or logging.getLogger("agentloop.agent")

    def _debug(message: str, data: Any = None) -> None:
        if data is None:
            log.debug(message)
        else:
            log.debug("%s %s", message, data)

    def _trace(message: str, data: Any = None) -> None:
        # No TRACE level in stdlib logging; emit below DEBUG.
        if data is None:
            log.log(5, message)
        else:
            log.log(5, "%s %s", message, data)

    def _error(ctx: SpanContext, error: AgentErrorResponse) -> None:
        log.error(
            "Agent error %s: %s (trace=%s)", error.error.value, error.message, ctx.trace_id
        )

    return AgentCallbacks(
        on_debug=_debug,
        on_trace=_trace,
        on_error=_error if include_errors else None,
    )


class CallbackEmitter:
    """Invokes an :class:`AgentCallbacks` set without letting hooks fail a run."""

    def __init__(self, callbacks: Optional[AgentCallbacks] = None) -> None:
        self._callbacks = callbacks or AgentCallbacks()

    @property
    def callbacks(self) -> AgentCallbacks:
        return self._callbacks

    def _invoke(self, hook_name: str, *args: Any) -> None:
        hook = getattr(self._callbacks, hook_name, None)
        if hook is None:
            return
        try:
            hook(*args)
        except Exception:
            logger.debug("Callback %s raised; ignoring", hook_name, exc_info=True)

    def agent_start(self, ctx: SpanContext, query: str) -> None:
        self._invoke("on_agent_start", ctx, query)

    def agent_end(self, ctx: SpanContext, answer: str) -> None:
        self._invoke("on_agent_end", ctx, answer)

    def error(self, ctx: SpanContext, error: AgentErrorResponse) -> None:
        self._invoke("on_error", ctx, error)

    def llm_start(self, ctx: SpanContext) -> None:
        self._invoke("on_llm_start", ctx)

    def llm_stream(self, ctx: SpanContext, fragment: str) -> None:
        self._invoke("on_llm_stream", ctx, fragment)

    def llm_end(self, ctx: SpanContext, response: LLMResponse) -> None:
        self._invoke("on_llm_end", ctx, response)

    def tool_start(self, ctx: SpanContext, name: str, args: dict[str, Any]) -> None:
        self._invoke("on_tool_start", ctx, name, args)

    def tool_end(self, ctx: SpanContext, name: str, outcome: ToolResult) -> None:
        self._invoke("on_tool_end", ctx, name, outcome)

    def spinner_start(self, label: str) -> None:
        self._invoke("on_spinner_start", label)

    def spinner_stop(self) -> None:
        self._invoke("on_spinner_stop")

    def debug(self, message: str, data: Any = None) -> None:
        if data is None:
            self._invoke("on_debug", message)
        else:
            self._invoke("on_debug", message, data)

    def trace(self, message: str, data: Any = None) -> None:
        if data is None:
            self._invoke("on_trace", message)
        else:
            self._invoke("on_trace", message, data)
