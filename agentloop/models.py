"""
agentloop - Data models for conversations, tool calls and model responses.
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Generic, Optional, TypeVar, Union

from .errors import ModelErrorCode, ToolErrorCode

T = TypeVar("T")


class MessageRole(str, Enum):
    """Role of a single conversation turn."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


@dataclass(frozen=True)
class SpanContext:
    """Identifiers that correlate callback events belonging to one run."""

    trace_id: str
    span_id: str
    parent_span_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"trace_id": self.trace_id, "span_id": self.span_id}
        if self.parent_span_id:
            result["parent_span_id"] = self.parent_span_id
        return result


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model.

    ``id`` is opaque and supplied by the model client; it is echoed back on
    the ``tool`` message carrying the result.
    """

    id: str
    name: str
    args: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "args": dict(self.args)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ToolCallRequest":
        args = data.get("args", data.get("arguments", {}))
        if isinstance(args, str):
            try:
                args = json.loads(args) if args else {}
            except json.JSONDecodeError:
                args = {}
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            args=args if isinstance(args, dict) else {},
        )


@dataclass(frozen=True)
class Message:
    """One conversation turn.

    ``name`` and ``tool_call_id`` are only meaningful on ``tool`` messages,
    ``tool_calls`` only on ``assistant`` messages. A ``tool`` message without
    a ``tool_call_id`` is invalid and is dropped by
    :func:`agentloop.history.sanitize_history`.
    """

    role: MessageRole
    content: str = ""
    name: Optional[str] = None
    tool_call_id: Optional[str] = None
    tool_calls: tuple[ToolCallRequest, ...] = ()

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(
        cls, content: str = "", tool_calls: Optional[list[ToolCallRequest]] = None
    ) -> "Message":
        return cls(
            role=MessageRole.ASSISTANT,
            content=content,
            tool_calls=tuple(tool_calls or ()),
        )

    @classmethod
    def tool(cls, content: str, tool_call_id: str, name: Optional[str] = None) -> "Message":
        return cls(
            role=MessageRole.TOOL,
            content=content,
            name=name,
            tool_call_id=tool_call_id,
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.name is not None:
            result["name"] = self.name
        if self.tool_call_id is not None:
            result["tool_call_id"] = self.tool_call_id
        if self.tool_calls:
            result["tool_calls"] = [tc.to_dict() for tc in self.tool_calls]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Message":
        tool_call_id = data.get("tool_call_id", data.get("toolCallId"))
        raw_calls = data.get("tool_calls", data.get("toolCalls")) or []
        return cls(
            role=MessageRole(data["role"]),
            content=data.get("content") or "",
            name=data.get("name"),
            tool_call_id=tool_call_id,
            tool_calls=tuple(ToolCallRequest.from_dict(tc) for tc in raw_calls),
        )


@dataclass(frozen=True)
class ToolSuccess:
    """Successful tool outcome: a structured payload plus a short title."""

    result: Any
    title: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "result": self.result, "message": self.title}

    def to_content(self) -> str:
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.to_dict(), default=str)


@dataclass(frozen=True)
class ToolFailure:
    """Typed tool failure. Returned as data, never raised."""

    error: ToolErrorCode
    message: str

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.error.value, "message": self.message}

    def to_content(self) -> str:
        return json.dumps(self.to_dict())


ToolResult = Union[ToolSuccess, ToolFailure]


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting reported by a provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Optional["TokenUsage"]:
        """Build usage from OpenAI or Anthropic style usage dicts."""
        if not data:
            return None
        prompt = data.get("prompt_tokens", data.get("input_tokens")) or 0
        completion = data.get("completion_tokens", data.get("output_tokens")) or 0
        total = data.get("total_tokens") or prompt + completion
        return cls(
            prompt_tokens=int(prompt),
            completion_tokens=int(completion),
            total_tokens=int(total),
        )


@dataclass(frozen=True)
class LLMResponse:
    """A buffered model response: plain content and/or tool-call requests."""

    content: str = ""
    tool_calls: tuple[ToolCallRequest, ...] = ()
    usage: Optional[TokenUsage] = None

    @property
    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0


@dataclass
class ModelResult(Generic[T]):
    """Discriminated result returned by every model client operation."""

    success: bool
    result: Optional[T] = None
    error: Optional[ModelErrorCode] = None
    message: str = ""
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, result: T, message: str = "Success") -> "ModelResult[T]":
        return cls(success=True, result=result, message=message)

    @classmethod
    def fail(
        cls,
        error: ModelErrorCode,
        message: str,
        **metadata: Any,
    ) -> "ModelResult[T]":
        return cls(success=False, error=error, message=message, metadata=metadata)


StreamResult = ModelResult[AsyncIterator[str]]


@dataclass
class AgentRunState:
    """Transient state owned by a single ``run``/``run_stream`` call."""

    messages: list[Message]
    span_context: SpanContext
    iteration: int = 0

    def append(self, message: Message) -> None:
        self.messages.append(message)
