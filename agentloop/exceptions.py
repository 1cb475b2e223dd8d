"""
agentloop - Custom exceptions for setup-time errors.

These are raised while building settings, model clients and tool registries.
``Agent.run`` and ``Agent.run_stream`` never raise them; runtime failures are
reported as data.
"""

from typing import Any, Optional


class AgentLoopError(Exception):
    """Base exception for all agentloop errors."""

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ConfigError(AgentLoopError):
    """Raised when settings cannot be loaded or fail validation."""

    def __init__(self, message: str, errors: Optional[list[Any]] = None, **kwargs: Any) -> None:
        super().__init__(message, code="CONFIG_ERROR", **kwargs)
        self.errors = errors or []


class ProviderNotConfiguredError(AgentLoopError):
    """Raised when the selected provider lacks required settings."""

    def __init__(self, provider: str, message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Provider '{provider}' is not configured",
            code="PROVIDER_NOT_CONFIGURED",
        )
        self.provider = provider


class ProviderNotSupportedError(AgentLoopError):
    """Raised when no model client is registered for a provider."""

    def __init__(self, provider: str, supported: Optional[list[str]] = None) -> None:
        supported = supported or []
        super().__init__(
            f"Provider '{provider}' is not supported. "
            f"Supported providers: {', '.join(supported) or 'none'}",
            code="PROVIDER_NOT_SUPPORTED",
        )
        self.provider = provider
        self.supported = supported


class ToolRegistrationError(AgentLoopError):
    """Raised when a tool cannot be registered (e.g. duplicate name)."""

    def __init__(self, message: str, tool_name: Optional[str] = None) -> None:
        super().__init__(message, code="TOOL_REGISTRATION_ERROR")
        self.tool_name = tool_name
