"""
agentloop - Sample greeting tools.

Small reference tools showing both outcome shapes: ``hello_world`` always
succeeds, ``greet_user`` returns a typed ``VALIDATION_ERROR`` failure for an
unsupported language instead of raising.
"""

from .errors import ToolErrorCode
from .tools import ToolDef, define_tool, tool_failure, tool_success

GREETINGS = {
    "en": "Hello",
    "es": "¡Hola",
    "fr": "Bonjour",
}


@define_tool(
    description="Say hello to someone. Returns greeting message.",
    parameters={
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "Name to greet", "default": "World"},
        },
    },
)
def hello_world(name: str = "World"):
    return tool_success({"greeting": f"Hello, {name}!"}, f"Greeted {name}")


@define_tool(
    description=(
        "Greet user in different languages (en, es, fr). "
        "Returns localized greeting or error if language unsupported."
    ),
    parameters={
        "type": "object",
        "properties": {
            "name": {"type": "string", "description": "User's name"},
            "language": {
                "type": "string",
                "description": "Language code (en, es, fr)",
                "default": "en",
            },
        },
        "required": ["name"],
    },
)
def greet_user(name: str, language: str = "en"):
    if language not in GREETINGS:
        supported = ", ".join(GREETINGS)
        return tool_failure(
            ToolErrorCode.VALIDATION_ERROR,
            f"Language '{language}' not supported. Use: {supported}",
        )
    return tool_success(
        {"greeting": f"{GREETINGS[language]}, {name}!", "language": language},
        f"Greeted {name} in {language}",
    )


def default_tools() -> list[ToolDef]:
    """Tools bound by the CLI."""
    return [hello_world, greet_user]
