"""
agentloop - Agent execution engine.

The :class:`Agent` drives a bounded reason/act/observe loop: send the
transcript to the model, dispatch any requested tools, append their
results, and repeat until the model answers in plain text or the
iteration cap is reached.

Usage:
    ```python
    from agentloop import Agent, AgentCallbacks
    from agentloop.hello import hello_world

    agent = Agent(
        client,
        tools=[hello_world],
        callbacks=AgentCallbacks(on_tool_start=lambda ctx, name, args: print(name)),
    )

    answer = await agent.run("Say hello to Alice")

    async for fragment in agent.run_stream("Tell me a story"):
        print(fragment, end="")
    ```

Termination rules:
    - Model-client failures end the run with ``"Error: <message>"`` after
      ``on_error``.
    - Tool failures are written into the transcript and the loop goes on.
    - Hitting ``max_iterations`` ends the run with
      ``"Error: Maximum iterations (<N>) reached"``; it is not an ``on_error``
      condition and no partial answer is returned.
"""

import logging
from typing import Any, AsyncIterator, Iterable, Optional, Union

from .callbacks import AgentCallbacks, CallbackEmitter
from .config import DEFAULT_MAX_ITERATIONS
from .errors import ModelErrorCode, error_response, map_error_to_code, map_model_error_code
from .history import HistoryEntry, build_initial_messages
from .llm import ModelClient
from .models import (
    AgentRunState,
    LLMResponse,
    Message,
    ModelResult,
    SpanContext,
    StreamResult,
)
from .prompts import build_system_prompt
from .tools import ToolDef, ToolRegistry, dispatch
from .tracing import child_span, new_trace

logger = logging.getLogger("agentloop.agent")

THINKING_LABEL = "Thinking..."


class Agent:
    """Orchestrates model calls and tool dispatch for one configured tool set.

    Configuration is fixed at construction. Each ``run``/``run_stream`` call
    owns its own :class:`~agentloop.models.AgentRunState` and trace, so
    concurrent calls on one instance do not share history.
    """

    def __init__(
        self,
        client: ModelClient,
        tools: Union[ToolRegistry, Iterable[ToolDef], None] = None,
        system_prompt: Optional[str] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        callbacks: Optional[AgentCallbacks] = None,
    ) -> None:
        if isinstance(max_iterations, bool) or not isinstance(max_iterations, int):
            raise ValueError(f"max_iterations must be an integer, got {max_iterations!r}")
        if max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {max_iterations}")

        self._client = client
        self._registry = tools if isinstance(tools, ToolRegistry) else ToolRegistry(tools)
        self._max_iterations = max_iterations
        self._emitter = CallbackEmitter(callbacks)
        # Snapshot for error metadata.
        self._model_name = client.get_model_name()
        self._provider_name = client.get_provider_name()
        self._system_prompt = system_prompt or build_system_prompt(
            model=self._model_name,
            provider=self._provider_name,
            tools=self.tools,
        )

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    @property
    def tools(self) -> list[ToolDef]:
        return list(self._registry)

    @property
    def registry(self) -> ToolRegistry:
        return self._registry

    @property
    def system_prompt(self) -> str:
        return self._system_prompt

    def get_model_name(self) -> str:
        return self._client.get_model_name()

    def get_provider_name(self) -> str:
        return self._client.get_provider_name()

    # -----------------------------------------------------------------------
    # Public entry points
    # -----------------------------------------------------------------------

    async def run(self, query: str, history: Optional[Iterable[HistoryEntry]] = None) -> str:
        """Run the loop and return the final answer or an ``"Error: ..."`` string."""
        agent_ctx = new_trace()
        self._emitter.agent_start(agent_ctx, query)

        try:
            state = self._start_state(agent_ctx, query, history)

            while state.iteration < self._max_iterations:
                state.iteration += 1
                llm_ctx = child_span(agent_ctx)
                self._emitter.llm_start(llm_ctx)
                self._emitter.debug(
                    f"LLM iteration {state.iteration}",
                    {"message_count": len(state.messages)},
                )
                self._trace_request(state)

                outcome = await self._invoke(state.messages)
                if not outcome.success:
                    return self._fail(agent_ctx, outcome)

                response = outcome.result
                self._emitter.llm_end(llm_ctx, response)

                if not response.has_tool_calls:
                    self._emitter.spinner_stop()
                    self._emitter.agent_end(agent_ctx, response.content)
                    return response.content

                await self._dispatch_tool_calls(state, response)

            return self._max_iterations_reached(agent_ctx)
        except Exception as e:
            logger.exception("Unexpected error in Agent.run")
            return self._fail(agent_ctx, self._exception_result(e))

    async def run_stream(
        self, query: str, history: Optional[Iterable[HistoryEntry]] = None
    ) -> AsyncIterator[str]:
        """Run the loop and stream the final answer fragment by fragment.

        Turns that request tools are made as buffered calls. The final
        answer is requested in streaming mode. On failure the generator
        yields exactly one ``"Error: ..."`` fragment and stops. The
        generator is single-use; call ``run_stream`` again for a new run.
        """
        agent_ctx = new_trace()
        self._emitter.agent_start(agent_ctx, query)

        try:
            state = self._start_state(agent_ctx, query, history)
            buffered_answer = ""

            if len(self._registry) > 0:
                finished = False
                while state.iteration < self._max_iterations:
                    state.iteration += 1
                    llm_ctx = child_span(agent_ctx)
                    self._emitter.llm_start(llm_ctx)
                    self._trace_request(state)

                    outcome = await self._invoke(state.messages)
                    if not outcome.success:
                        yield self._fail(agent_ctx, outcome)
                        return

                    response = outcome.result
                    self._emitter.llm_end(llm_ctx, response)

                    if not response.has_tool_calls:
                        buffered_answer = response.content
                        finished = True
                        break

                    await self._dispatch_tool_calls(state, response)

                if not finished:
                    yield self._max_iterations_reached(agent_ctx)
                    return
            else:
                state.iteration += 1

            stream_ctx = child_span(agent_ctx)
            self._emitter.llm_start(stream_ctx)
            self._emitter.debug("Opening stream", {"message_count": len(state.messages)})
            self._trace_request(state)

            opened = await self._open_stream(state.messages)
            if not opened.success:
                yield self._fail(agent_ctx, opened)
                return

            self._emitter.spinner_stop()
            fragments: list[str] = []
            try:
                async for fragment in opened.result:
                    if not fragment:
                        continue
                    fragments.append(fragment)
                    self._emitter.llm_stream(stream_ctx, fragment)
                    yield fragment
            except Exception as e:
                self._emitter.debug(
                    "Stream failed mid-response", {"received_fragments": len(fragments)}
                )
                yield self._fail(agent_ctx, self._exception_result(e), stop_spinner=False)
                return

            if not fragments and buffered_answer:
                self._emitter.debug(
                    "Stream produced no text; using buffered answer",
                    {"length": len(buffered_answer)},
                )
                fragments.append(buffered_answer)
                self._emitter.llm_stream(stream_ctx, buffered_answer)
                yield buffered_answer

            answer = "".join(fragments)
            self._emitter.llm_end(stream_ctx, LLMResponse(content=answer))
            self._emitter.agent_end(agent_ctx, answer)
        except Exception as e:
            logger.exception("Unexpected error in Agent.run_stream")
            yield self._fail(agent_ctx, self._exception_result(e))

    # -----------------------------------------------------------------------
    # Loop internals
    # -----------------------------------------------------------------------

    def _start_state(
        self,
        agent_ctx: SpanContext,
        query: str,
        history: Optional[Iterable[HistoryEntry]],
    ) -> AgentRunState:
        history = list(history or ())
        messages = build_initial_messages(
            self.system_prompt, history, query, on_debug=self._emitter.debug
        )
        self._emitter.spinner_start(THINKING_LABEL)
        self._emitter.debug(
            "Agent run started",
            {"query": query, "history_length": len(history), "trace_id": agent_ctx.trace_id},
        )
        return AgentRunState(messages=messages, span_context=agent_ctx)

    def _trace_request(self, state: AgentRunState) -> None:
        self._emitter.trace(
            "LLM request",
            {
                "iteration": state.iteration,
                "messages": [m.to_dict() for m in state.messages],
            },
        )

    def _exception_result(self, error: BaseException) -> ModelResult[Any]:
        return ModelResult.fail(
            map_error_to_code(error),
            str(error) or type(error).__name__,
            original_error=error,
        )

    async def _invoke(self, messages: list[Message]) -> ModelResult[LLMResponse]:
        try:
            result = await self._client.invoke(list(messages), self.tools)
        except Exception as e:
            return self._exception_result(e)
        if result.success and not isinstance(result.result, LLMResponse):
            return ModelResult.fail(
                ModelErrorCode.INVALID_RESPONSE,
                f"Model client returned {type(result.result).__name__}, expected LLMResponse",
            )
        return result

    async def _open_stream(self, messages: list[Message]) -> StreamResult:
        try:
            return await self._client.stream(list(messages), self.tools)
        except Exception as e:
            return self._exception_result(e)

    async def _dispatch_tool_calls(self, state: AgentRunState, response: LLMResponse) -> None:
        state.append(Message.assistant(response.content, list(response.tool_calls)))
        self._emitter.debug(
            f"Executing {len(response.tool_calls)} tool call(s)",
            {"tools": [tc.name for tc in response.tool_calls]},
        )
        for request in response.tool_calls:
            tool_ctx = child_span(state.span_context)
            state.append(await dispatch(request, self._registry, tool_ctx, self._emitter))

    def _fail(
        self,
        agent_ctx: SpanContext,
        outcome: ModelResult[Any],
        stop_spinner: bool = True,
    ) -> str:
        message = outcome.message or "Unknown error"
        metadata = {
            "provider": self._provider_name,
            "model": self._model_name,
            **outcome.metadata,
        }
        code = map_model_error_code(outcome.error or ModelErrorCode.UNKNOWN)
        if stop_spinner:
            self._emitter.spinner_stop()
        self._emitter.error(agent_ctx, error_response(code, message, metadata))
        answer = f"Error: {message}"
        self._emitter.agent_end(agent_ctx, answer)
        return answer

    def _max_iterations_reached(self, agent_ctx: SpanContext) -> str:
        answer = f"Error: Maximum iterations ({self._max_iterations}) reached"
        self._emitter.debug("Iteration cap reached", {"max_iterations": self._max_iterations})
        self._emitter.spinner_stop()
        self._emitter.agent_end(agent_ctx, answer)
        return answer
