"""
agentloop - Runtime core for a command-line LLM agent.

A bounded reason/act/observe loop over a provider-agnostic model client,
with typed tool dispatch, per-run traces and lifecycle callbacks.
"""

from .agent import Agent
from .callbacks import AgentCallbacks, CallbackEmitter, logging_callbacks, merge_callbacks
from .config import AgentSettings
from .errors import (
    AgentErrorCode,
    AgentErrorResponse,
    ModelErrorCode,
    ToolErrorCode,
    get_user_friendly_message,
    map_error_to_code,
)
from .exceptions import (
    AgentLoopError,
    ConfigError,
    ProviderNotConfiguredError,
    ProviderNotSupportedError,
    ToolRegistrationError,
)
from .history import build_initial_messages, sanitize_history
from .llm import (
    AnthropicModelClient,
    ModelClient,
    OpenAIModelClient,
    create_model_client,
)
from .models import (
    AgentRunState,
    LLMResponse,
    Message,
    MessageRole,
    ModelResult,
    SpanContext,
    StreamResult,
    TokenUsage,
    ToolCallRequest,
    ToolFailure,
    ToolResult,
    ToolSuccess,
)
from .tools import ToolDef, ToolRegistry, define_tool, dispatch, tool, tool_failure, tool_success
from .tracing import child_span, new_trace

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentCallbacks",
    "CallbackEmitter",
    "logging_callbacks",
    "merge_callbacks",
    "AgentSettings",
    "AgentErrorCode",
    "AgentErrorResponse",
    "ModelErrorCode",
    "ToolErrorCode",
    "get_user_friendly_message",
    "map_error_to_code",
    "AgentLoopError",
    "ConfigError",
    "ProviderNotConfiguredError",
    "ProviderNotSupportedError",
    "ToolRegistrationError",
    "build_initial_messages",
    "sanitize_history",
    "ModelClient",
    "OpenAIModelClient",
    "AnthropicModelClient",
    "create_model_client",
    "AgentRunState",
    "LLMResponse",
    "Message",
    "MessageRole",
    "ModelResult",
    "SpanContext",
    "StreamResult",
    "TokenUsage",
    "ToolCallRequest",
    "ToolFailure",
    "ToolResult",
    "ToolSuccess",
    "ToolDef",
    "ToolRegistry",
    "define_tool",
    "dispatch",
    "tool",
    "tool_failure",
    "tool_success",
    "child_span",
    "new_trace",
]
