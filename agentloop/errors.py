"""
agentloop - Structured error codes and responses.

Model-client failures are fatal to a run and reach observers through
``on_error`` as an :class:`AgentErrorResponse`. Tool failures stay inside the
transcript. Both share the code vocabulary defined here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ModelErrorCode(str, Enum):
    """Error codes for model-client operations."""

    PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"
    PROVIDER_NOT_SUPPORTED = "PROVIDER_NOT_SUPPORTED"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    UNKNOWN = "UNKNOWN"


class ToolErrorCode(str, Enum):
    """Error codes for tool failures."""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    IO_ERROR = "IO_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    RATE_LIMITED = "RATE_LIMITED"
    NOT_FOUND = "NOT_FOUND"
    LLM_ASSIST_REQUIRED = "LLM_ASSIST_REQUIRED"
    TIMEOUT = "TIMEOUT"
    UNKNOWN = "UNKNOWN"


class AgentErrorCode(str, Enum):
    """Error codes surfaced by the agent layer."""

    # Provider errors
    PROVIDER_NOT_CONFIGURED = "PROVIDER_NOT_CONFIGURED"
    PROVIDER_NOT_SUPPORTED = "PROVIDER_NOT_SUPPORTED"
    AUTHENTICATION_ERROR = "AUTHENTICATION_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_RESPONSE = "INVALID_RESPONSE"

    # Tool errors
    VALIDATION_ERROR = "VALIDATION_ERROR"
    IO_ERROR = "IO_ERROR"
    CONFIG_ERROR = "CONFIG_ERROR"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    LLM_ASSIST_REQUIRED = "LLM_ASSIST_REQUIRED"

    # Agent errors
    MAX_ITERATIONS_EXCEEDED = "MAX_ITERATIONS_EXCEEDED"
    TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"
    INITIALIZATION_ERROR = "INITIALIZATION_ERROR"
    UNKNOWN = "UNKNOWN"


@dataclass
class AgentErrorResponse:
    """Structured error passed to ``on_error``.

    Attributes:
        error: The error code.
        message: Human-readable message (also used for ``"Error: <message>"``).
        metadata: Provider context such as ``provider``, ``model``,
            ``status_code``, ``retry_after`` and ``original_error``.
    """

    error: AgentErrorCode
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        metadata = {k: v for k, v in self.metadata.items() if k != "original_error"}
        return {
            "success": False,
            "error": self.error.value,
            "message": self.message,
            "metadata": metadata,
        }


def error_response(
    code: AgentErrorCode,
    message: str,
    metadata: Optional[dict[str, Any]] = None,
) -> AgentErrorResponse:
    """Create an :class:`AgentErrorResponse`."""
    return AgentErrorResponse(error=code, message=message, metadata=dict(metadata or {}))


def map_model_error_code(code: ModelErrorCode) -> AgentErrorCode:
    """Map a model error code onto the agent vocabulary."""
    return AgentErrorCode(ModelErrorCode(code).value)


def map_tool_error_code(code: ToolErrorCode) -> AgentErrorCode:
    """Map a tool error code onto the agent vocabulary."""
    return AgentErrorCode(ToolErrorCode(code).value)


_STATUS_CODES = {
    401: ModelErrorCode.AUTHENTICATION_ERROR,
    403: ModelErrorCode.AUTHENTICATION_ERROR,
    404: ModelErrorCode.MODEL_NOT_FOUND,
    408: ModelErrorCode.TIMEOUT,
    429: ModelErrorCode.RATE_LIMITED,
    504: ModelErrorCode.TIMEOUT,
}


def map_error_to_code(error: BaseException) -> ModelErrorCode:
    """Classify a provider exception.

    Uses the ``status_code`` attribute when the SDK exposes one, then falls
    back to keyword matching on the message.
    """
    status = getattr(error, "status_code", None)
    if isinstance(status, int):
        if status in _STATUS_CODES:
            return _STATUS_CODES[status]
        if status >= 500:
            return ModelErrorCode.NETWORK_ERROR

    message = str(error).lower()

    if "api key" in message or "authentication" in message or "unauthorized" in message:
        return ModelErrorCode.AUTHENTICATION_ERROR
    if "rate limit" in message or "429" in message or "too many requests" in message:
        return ModelErrorCode.RATE_LIMITED
    if "model" in message and "not found" in message:
        return ModelErrorCode.MODEL_NOT_FOUND
    if "context length" in message or "too long" in message or "token limit" in message:
        return ModelErrorCode.CONTEXT_LENGTH_EXCEEDED
    if "timeout" in message or "timed out" in message:
        return ModelErrorCode.TIMEOUT
    if isinstance(error, (ConnectionError, TimeoutError)):
        return (
            ModelErrorCode.TIMEOUT
            if isinstance(error, TimeoutError)
            else ModelErrorCode.NETWORK_ERROR
        )
    network_markers = (
        "network",
        "connection refused",
        "connection error",
        "econnrefused",
        "econnreset",
        "fetch failed",
        "dns",
        "internal server error",
        "bad gateway",
        "service unavailable",
    )
    if any(marker in message for marker in network_markers):
        return ModelErrorCode.NETWORK_ERROR
    return ModelErrorCode.UNKNOWN


def get_user_friendly_message(
    code: AgentErrorCode, metadata: Optional[dict[str, Any]] = None
) -> str:
    """Return a short hint suitable for showing to an end user."""
    metadata = metadata or {}
    provider = metadata.get("provider") or "the provider"

    if code == AgentErrorCode.AUTHENTICATION_ERROR:
        return f"Authentication failed with {provider}. Please check your API key."
    if code == AgentErrorCode.RATE_LIMITED:
        if metadata.get("retry_after") is not None:
            return f"Rate limited by {provider}. Retry after {metadata['retry_after']} seconds."
        return f"Rate limited by {provider}. Please wait before retrying."
    if code == AgentErrorCode.MODEL_NOT_FOUND:
        if metadata.get("model"):
            return f"Model '{metadata['model']}' not found on {provider}."
        return f"The requested model was not found on {provider}."
    if code == AgentErrorCode.CONTEXT_LENGTH_EXCEEDED:
        return f"Input exceeds the context length limit for {provider}."
    if code == AgentErrorCode.NETWORK_ERROR:
        return f"Network error connecting to {provider}. Please check your connection."
    if code == AgentErrorCode.TIMEOUT:
        return f"Request to {provider} timed out. Please try again."
    if code == AgentErrorCode.PROVIDER_NOT_CONFIGURED:
        return f"Provider '{provider}' is not configured. Please check your configuration."
    if code == AgentErrorCode.PROVIDER_NOT_SUPPORTED:
        return f"Provider '{provider}' is not supported."
    if code == AgentErrorCode.INVALID_RESPONSE:
        return f"Received an invalid response from {provider}."
    if code == AgentErrorCode.MAX_ITERATIONS_EXCEEDED:
        return "Maximum iterations exceeded. The query may be too complex."
    if code == AgentErrorCode.TOOL_EXECUTION_ERROR:
        return "A tool failed to execute. Please check the tool configuration."
    if code == AgentErrorCode.INITIALIZATION_ERROR:
        return "Agent initialization failed. Please check your configuration."
    return "An unexpected error occurred."
