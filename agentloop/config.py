"""
agentloop - Settings for the CLI and model client factory.

Settings come from three layers, later ones winning: environment
variables, an optional YAML file, and explicit overrides (CLI flags).

Example settings file::

    provider: anthropic
    model: claude-sonnet-4-20250514
    max_iterations: 8
    temperature: 0.2
    system_prompt: |
      You are a terse assistant.
"""

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from .exceptions import ConfigError

DEFAULT_MAX_ITERATIONS = 10
DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "anthropic": "claude-sonnet-4-20250514",
    "deepseek": "deepseek-chat",
    "grok": "grok-2",
    "local": "qwen3:latest",
}
KNOWN_PROVIDERS = {"openai", "anthropic", "deepseek", "grok", "openrouter", "local"}
LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}

API_KEY_ENV = {
    "openai": "OPENAI_API_KEY",
    "anthropic": "ANTHROPIC_API_KEY",
    "deepseek": "DEEPSEEK_API_KEY",
    "grok": "XAI_API_KEY",
    "openrouter": "OPENROUTER_API_KEY",
}


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


@dataclass
class AgentSettings:
    """Configuration for building a model client and agent."""

    provider: str = ""
    model: str = ""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    log_level: str = "warning"

    def __post_init__(self) -> None:
        provider = self.resolved_provider
        if not self.model and provider in DEFAULT_MODELS:
            self.model = DEFAULT_MODELS[provider]
        if self.api_key is None:
            env_var = API_KEY_ENV.get(provider)
            if env_var:
                self.api_key = os.environ.get(env_var)

    @property
    def resolved_provider(self) -> str:
        if self.provider:
            return self.provider
        from .llm import resolve_provider

        return resolve_provider(self.model) if self.model else "openai"

    @classmethod
    def from_env(cls) -> "AgentSettings":
        """Create settings from environment variables."""
        values: dict[str, Any] = {
            "provider": os.environ.get("AGENT_PROVIDER", ""),
            "model": os.environ.get("AGENT_MODEL", ""),
            "base_url": os.environ.get("AGENT_BASE_URL") or None,
            "system_prompt": os.environ.get("AGENT_SYSTEM_PROMPT") or None,
            "temperature": _env_float("AGENT_TEMPERATURE"),
            "max_tokens": _env_int("AGENT_MAX_TOKENS"),
            "log_level": os.environ.get("AGENT_LOG_LEVEL", "warning").lower(),
        }
        max_iterations = _env_int("AGENT_MAX_ITERATIONS")
        if max_iterations is not None:
            values["max_iterations"] = max_iterations
        return cls(**values)

    @classmethod
    def from_yaml(
        cls, path: Union[str, Path], base: Optional["AgentSettings"] = None
    ) -> "AgentSettings":
        """Load settings from a YAML file, layered over ``base`` if given."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Settings file not found: {path}")
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Settings file {path} must contain a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(
                f"Unknown settings in {path}: {', '.join(unknown)}", errors=unknown
            )
        if base is None:
            return cls(**data)
        return base.merged(**data)

    def merged(self, **overrides: Any) -> "AgentSettings":
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        new_provider = changes.get("provider")
        if new_provider and new_provider != self.resolved_provider:
            # A new provider implies its own default model and API key.
            if "model" not in changes:
                changes["model"] = DEFAULT_MODELS.get(new_provider, "")
            if "api_key" not in changes:
                changes["api_key"] = None
        return replace(self, **changes)

    def validate(self) -> "AgentSettings":
        """Check invariants; returns ``self`` for chaining."""
        errors = []
        if not isinstance(self.max_iterations, int) or self.max_iterations < 1:
            errors.append(f"max_iterations must be a positive integer, got {self.max_iterations!r}")
        if self.provider and self.provider not in KNOWN_PROVIDERS:
            errors.append(
                f"Unknown provider '{self.provider}'. Known: {', '.join(sorted(KNOWN_PROVIDERS))}"
            )
        if self.temperature is not None and not 0 <= self.temperature <= 2:
            errors.append(f"temperature must be between 0 and 2, got {self.temperature}")
        if self.log_level.lower() not in LOG_LEVELS:
            errors.append(f"Unknown log level '{self.log_level}'")
        if errors:
            raise ConfigError("; ".join(errors), errors=errors)
        return self

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if data.get("api_key"):
            data["api_key"] = "***"
        return data
